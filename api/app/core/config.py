"""
Configuracion central de la aplicacion.
Gestiona variables de entorno y configuraciones globales.

El pipeline de sync no lee esta instancia directamente: recibe un
PortfolioSyncConfig construido a partir de ella (ver sync_config.py).
"""
import json
from typing import List
from pydantic_settings import BaseSettings
from pydantic import Field, computed_field


class Settings(BaseSettings):
    """
    Clase de configuracion de la aplicacion.
    Lee variables de entorno y proporciona valores por defecto.

    Grupos:
    - Airtable: credenciales, timeouts y nombre del campo "Last Modified"
    - Cloudinary: opcional (USE_CLOUDINARY + credenciales)
    - Snapshot: backend 'file' o 'memory' y directorio de salida
    - Sync: token Bearer del endpoint de sync y TTL del lease
    """

    # Configuracion de la aplicacion
    APP_NAME: str = Field(default="Portfolio Sync API")
    APP_VERSION: str = Field(default="1.0.0")
    DEBUG: bool = Field(default=False)
    ENVIRONMENT: str = Field(default="production")

    # Configuracion del servidor
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=8000)

    # CORS (acepta lista JSON o "*" para todos los origenes)
    CORS_ORIGINS: str = Field(default="*")

    # Airtable
    AIRTABLE_TOKEN: str = Field(default="")
    AIRTABLE_BASE_ID: str = Field(default="")
    AIRTABLE_API_URL: str = Field(default="https://api.airtable.com/v0")
    AIRTABLE_TIMEOUT_S: float = Field(default=10.0)
    # Sin reintentos automaticos dentro de una corrida (el 429 degrada a cache)
    AIRTABLE_MAX_RETRIES: int = Field(default=0)
    AIRTABLE_LAST_MOD_FIELD: str = Field(default="Last Modified")

    # Cloudinary (opcional)
    USE_CLOUDINARY: bool = Field(default=False)
    CLOUDINARY_CLOUD_NAME: str = Field(default="")
    CLOUDINARY_API_KEY: str = Field(default="")
    CLOUDINARY_API_SECRET: str = Field(default="")
    CLOUDINARY_UPLOAD_TIMEOUT_S: float = Field(default=60.0)

    # Thumbnails de video (Vimeo oEmbed / v2)
    THUMBNAIL_TIMEOUT_S: float = Field(default=5.0)

    # Sitio publico
    SITE_URL: str = Field(default="https://example.com")
    PORTFOLIO_ID: str = Field(default="")
    PORTFOLIO_OWNER_NAME: str = Field(default="")
    FALLBACK_PROFILE_IMAGE: str = Field(default="")
    READING_WPM: int = Field(default=225)

    # Snapshot
    SNAPSHOT_BACKEND: str = Field(default="file")
    SNAPSHOT_DIR: str = Field(default="data")
    SNAPSHOT_SOURCE: str = Field(default="scheduled-sync")

    # Sync
    SYNC_TOKEN: str = Field(default="")
    SYNC_LEASE_TTL_S: float = Field(default=600.0)

    # Logging
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FILE: str = Field(default="logs/app.log")

    @computed_field
    @property
    def airtable_configured(self) -> bool:
        """Indica si hay credenciales de Airtable para sincronizar."""
        return bool(self.AIRTABLE_TOKEN and self.AIRTABLE_BASE_ID)

    @computed_field
    @property
    def cloudinary_enabled(self) -> bool:
        """USE_CLOUDINARY activo y las tres credenciales presentes."""
        return bool(
            self.USE_CLOUDINARY
            and self.CLOUDINARY_CLOUD_NAME
            and self.CLOUDINARY_API_KEY
            and self.CLOUDINARY_API_SECRET
        )

    @computed_field
    @property
    def is_development(self) -> bool:
        """Indica si el entorno es de desarrollo."""
        return self.ENVIRONMENT.lower() == "development"

    class Config:
        """Configuracion de Pydantic."""
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignorar campos extra del .env


def get_cors_origins(cors_string: str) -> List[str]:
    """
    Parsea la configuracion de CORS.
    Acepta "*" para todos los origenes o una lista JSON.
    """
    if cors_string == "*":
        return ["*"]
    try:
        return json.loads(cors_string)
    except json.JSONDecodeError:
        # Si no es JSON valido, retornar como lista simple
        return [origin.strip() for origin in cors_string.split(",")]


# Instancia global de configuración (solo la leen main.py, events.py y las dependencias)
settings = Settings()
