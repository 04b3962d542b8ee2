"""
Endpoints publicos del portfolio.
Sirven el ultimo snapshot publicado y sus artefactos derivados.
"""
import asyncio

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse

from app.api.v1.dependencies.sync_deps import get_snapshot_store
from app.infrastructure.external.portfolio_sync.artifacts import SHARE_META_FILENAME, SITEMAP_FILENAME
from app.infrastructure.external.portfolio_sync.snapshot_store import SnapshotStore
from app.infrastructure.external.portfolio_sync.types import isoformat_z
from app.shared.exceptions.sync import SnapshotNotFoundError


router = APIRouter(prefix="/portfolio", tags=["Portfolio"])

DATA_CACHE_CONTROL = "public, max-age=300, s-maxage=3600, stale-while-revalidate=86400"


@router.get("/data", summary="Dataset publicado del portfolio")
async def get_portfolio_data(store: SnapshotStore = Depends(get_snapshot_store)) -> JSONResponse:
    """
    Retorna el snapshot sin los registros crudos (`_rawRecords`).

    Raises:
        SnapshotNotFoundError: todavia no hubo un sync exitoso (503)
    """
    snapshot = await asyncio.to_thread(store.load)
    if snapshot is None:
        raise SnapshotNotFoundError()

    mode = snapshot.sync_stats.mode.value if snapshot.sync_stats else "full"
    return JSONResponse(
        content=snapshot.to_public_payload(),
        headers={
            "Cache-Control": DATA_CACHE_CONTROL,
            "X-Sync-Mode": mode,
            "X-Last-Updated": isoformat_z(snapshot.last_updated),
        },
    )


@router.get("/sitemap.xml", summary="Sitemap generado en el ultimo sync")
async def get_sitemap(store: SnapshotStore = Depends(get_snapshot_store)) -> Response:
    content = await asyncio.to_thread(store.load_artifact, SITEMAP_FILENAME)
    if content is None:
        raise SnapshotNotFoundError()
    return Response(content=content, media_type="application/xml")


@router.get("/share-meta.json", summary="Metadatos para previews sociales")
async def get_share_meta(store: SnapshotStore = Depends(get_snapshot_store)) -> Response:
    content = await asyncio.to_thread(store.load_artifact, SHARE_META_FILENAME)
    if content is None:
        raise SnapshotNotFoundError()
    return Response(content=content, media_type="application/json")
