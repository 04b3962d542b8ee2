"""
Endpoints para sincronizacion del portfolio (Airtable -> snapshot).
Pensado para ser invocado por un cron externo con token Bearer.
"""
from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse
from loguru import logger

from app.api.v1.dependencies.sync_deps import get_sync_service, verify_sync_token
from app.infrastructure.external.portfolio_sync.sync_service import PortfolioSyncService


router = APIRouter(prefix="/sync", tags=["Sync"])

STALE_CACHE_CONTROL = "public, max-age=300, s-maxage=600, must-revalidate"


@router.post(
    "/portfolio",
    status_code=status.HTTP_200_OK,
    summary="Sincronizar Airtable con el snapshot del portfolio",
    dependencies=[Depends(verify_sync_token)],
)
async def sync_portfolio(
    force: bool = Query(
        default=False,
        description="Si True, ignora el baseline y hace un full sync."
    ),
    service: PortfolioSyncService = Depends(get_sync_service),
) -> JSONResponse:
    """
    Ejecuta una corrida del sync.

    - Sin cambios en Airtable: devuelve el snapshot existente (modo cached)
    - Rate limit con cache: devuelve el snapshot previo marcado como stale
    - Errores (409/503/502) los resuelve el handler global de AppException
    """
    sync_type = "completa (forzada)" if force else "incremental"
    logger.info(f"Iniciando sincronizacion {sync_type} del portfolio desde API")

    outcome = await service.run(force_full=force, owner="api")

    headers = {"X-Sync-Mode": outcome.stats.mode.value}
    if outcome.stale:
        headers["X-Data-Source"] = outcome.data_source
        headers["Cache-Control"] = STALE_CACHE_CONTROL

    return JSONResponse(content=outcome.to_payload(), headers=headers)
