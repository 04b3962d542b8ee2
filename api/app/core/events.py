"""
Manejadores de eventos de inicio y cierre de la aplicacion.
"""
from pathlib import Path
from typing import Callable
from fastapi import FastAPI
from loguru import logger

from app.core.config import settings


def startup_handler(app: FastAPI) -> Callable:
    """
    Manejador de eventos de inicio de la aplicacion.
    
    Args:
        app: Instancia de FastAPI
        
    Returns:
        Callable: Funcion asincrona de inicio
    """
    async def startup() -> None:
        """Valida la configuracion y agrega el sink de archivo de loguru."""
        try:
            logger.info(f"Iniciando {settings.APP_NAME} v{settings.APP_VERSION}")
            logger.info(f"Entorno: {settings.ENVIRONMENT}")

            _validate_config()

            if settings.SNAPSHOT_BACKEND == "file":
                Path(settings.SNAPSHOT_DIR).mkdir(parents=True, exist_ok=True)
                logger.info(f"Snapshots en: {Path(settings.SNAPSHOT_DIR).resolve()}")
            else:
                logger.info("Snapshots en memoria (se pierden al reiniciar)")

            # Configurar logging adicional
            logger.add(
                settings.LOG_FILE,
                rotation="500 MB",
                retention="10 days",
                level=settings.LOG_LEVEL
            )

            logger.success("Aplicacion iniciada correctamente")

        except Exception as e:
            logger.error(f"Error durante startup: {e}")
            logger.exception("Detalle del error:")
            raise

    return startup


def _validate_config() -> None:
    """Valida que la configuracion critica este presente."""
    warnings = []

    if not settings.airtable_configured:
        warnings.append("AIRTABLE_TOKEN/AIRTABLE_BASE_ID no configurados - el sync no funcionara")
    if settings.USE_CLOUDINARY and not settings.cloudinary_enabled:
        warnings.append("USE_CLOUDINARY=true sin credenciales completas - imagenes sin CDN")
    if not settings.SYNC_TOKEN:
        warnings.append("SYNC_TOKEN vacio - POST /api/v1/sync/portfolio queda abierto")

    for warning in warnings:
        logger.warning(f"CONFIG: {warning}")


def shutdown_handler(app: FastAPI) -> Callable:
    """
    Manejador de eventos de cierre de la aplicacion.
    
    Args:
        app: Instancia de FastAPI
        
    Returns:
        Callable: Funcion asincrona de cierre
    """
    async def shutdown() -> None:
        logger.info("Cerrando aplicacion...")
        logger.success("Aplicacion cerrada correctamente")

    return shutdown
