"""
Dependencias para inyeccion del pipeline de sync del portfolio.

El store y el orquestador se construyen una sola vez por proceso: el lease
local (asyncio.Lock) tiene que ser compartido entre requests.
"""
import secrets
from functools import lru_cache
from typing import Optional

from fastapi import Header

from app.core.config import settings
from app.infrastructure.external.portfolio_sync.snapshot_store import SnapshotStore
from app.infrastructure.external.portfolio_sync.sync_config import PortfolioSyncConfig
from app.infrastructure.external.portfolio_sync.sync_service import (
    PortfolioSyncService,
    build_from_config,
    build_snapshot_store,
)
from app.shared.exceptions.auth import UnauthorizedException


@lru_cache
def get_snapshot_store() -> SnapshotStore:
    """
    Store del snapshot segun SNAPSHOT_BACKEND ('file' o 'memory').

    Returns:
        SnapshotStore: instancia unica del proceso
    """
    return build_snapshot_store(settings.SNAPSHOT_BACKEND, settings.SNAPSHOT_DIR)


@lru_cache
def _build_sync_service() -> PortfolioSyncService:
    return build_from_config(PortfolioSyncConfig.from_settings(settings), store=get_snapshot_store())


def get_sync_service() -> PortfolioSyncService:
    """
    Orquestador del sync.

    Raises:
        SyncConfigError: faltan credenciales de Airtable (no se cachea el fallo)
    """
    return _build_sync_service()


def verify_sync_token(authorization: Optional[str] = Header(default=None)) -> None:
    """
    Exige `Authorization: Bearer <SYNC_TOKEN>` cuando SYNC_TOKEN esta definido.

    Raises:
        UnauthorizedException: token ausente o incorrecto
    """
    expected = settings.SYNC_TOKEN
    if not expected:
        return
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not secrets.compare_digest(token.strip().encode(), expected.encode()):
        raise UnauthorizedException("Token de sync inválido o ausente")
