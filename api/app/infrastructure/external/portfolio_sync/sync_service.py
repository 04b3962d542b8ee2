"""
Orquestador del sync Airtable -> snapshot del portfolio.

Diseño (resumen):
- Adquiere el lease (una corrida a la vez)
- Carga el snapshot previo (baseline de timestamps + registros crudos)
- FULL si se fuerza o no hay baseline; si no, INCREMENTAL:
  - detecta cambios por timestamps; sin cambios -> devuelve el snapshot previo
  - trae solo nuevos/modificados y reutiliza los crudos del snapshot previo
- MERGE: el mismo transformer para registros frescos y reutilizados
- Image sync -> artefactos -> snapshot (el snapshot es el punto de commit)

Manejo de errores:
- 429 de Airtable -> snapshot previo marcado como stale; sin snapshot ->
  SyncUnavailableError (con Retry-After)
- cualquier otro fallo de Projects -> SyncFailedError, no se publica nada
"""

from __future__ import annotations

import asyncio
import json
import math
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import httpx
from loguru import logger

from app.domain.entities.portfolio import (
    ImageMapping,
    PortfolioSnapshot,
    SyncMetadata,
    SyncMode,
    SyncStats,
)
from app.shared.exceptions.sync import SyncConfigError, SyncFailedError, SyncUnavailableError

from .airtable_client import AirtableApiError, AirtableClient, AirtableCredentials, AirtableRateLimitError
from .artifacts import (
    SHARE_META_FILENAME,
    SHARE_META_HASH_FILENAME,
    SITEMAP_FILENAME,
    generate_share_meta,
    generate_sitemap,
    share_meta_hash,
)
from .change_detector import ChangeDetector
from .image_sync import CloudinaryUploader, ImageSyncService, apply_image_mapping
from .snapshot_store import FileSnapshotStore, InMemorySnapshotStore, SnapshotStore
from .sync_config import PortfolioSyncConfig
from .sync_lock import SyncLeaseManager
from .transformer import RecordTransformer, TransformResult, ensure_unique_slugs
from .types import ChangeSet, AirtableRecord, utc_now
from .video_helpers import VideoThumbnailResolver


DEFAULT_RETRY_AFTER_S = 3600
AIRTABLE_PAGE_SIZE = 100


@dataclass(frozen=True)
class SyncOutcome:
    """
    Resultado de una corrida.

    - data_source: "airtable" (dataset nuevo), "cache" (sin cambios) o
      "cached-fallback" (rate limit, dataset stale)
    """

    snapshot: PortfolioSnapshot
    stats: SyncStats
    stale: bool = False
    data_source: str = "airtable"

    def to_payload(self) -> dict[str, Any]:
        payload = self.snapshot.to_public_payload()
        payload["syncStats"] = self.stats.model_dump(mode="json", by_alias=True)
        if self.stale:
            payload["sync"] = {
                "contentChanged": False,
                "rateLimitHit": True,
                "reason": "Rate limit excedido - se sirven datos cacheados",
                "cachedDataAge": payload.get("lastUpdated"),
            }
        return payload


def _estimate_full_calls(raw_records: dict[str, list[Any]]) -> int:
    """Requests que costaría un full sync del mismo dataset (1 por página)."""
    return sum(max(1, math.ceil(len(rows) / AIRTABLE_PAGE_SIZE)) for rows in raw_records.values())


class PortfolioSyncService:
    """
    Orquestador único del sync, parametrizado por un SnapshotStore.
    """

    def __init__(
        self,
        *,
        config: PortfolioSyncConfig,
        airtable: AirtableClient,
        store: SnapshotStore,
        image_sync: Optional[ImageSyncService] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        lease_manager: Optional[SyncLeaseManager] = None,
    ) -> None:
        self._config = config
        self._airtable = airtable
        self._store = store
        self._http_client = http_client
        self._image_sync = image_sync or ImageSyncService(
            config.cloudinary, CloudinaryUploader(config.cloudinary, http_client)
        )
        self._detector = ChangeDetector(airtable)
        self._lease = lease_manager or SyncLeaseManager(store, ttl_s=config.lease_ttl_s)

    @property
    def store(self) -> SnapshotStore:
        return self._store

    async def run(self, *, force_full: bool = False, owner: str = "api") -> SyncOutcome:
        """
        Ejecuta una corrida completa bajo lease.

        Raises:
            SyncInProgressError: otra corrida tiene el lease
            SyncUnavailableError: rate limit sin snapshot previo
            SyncFailedError: fallo fatal (no se publica dataset)
        """
        async with self._lease.lease(owner):
            return await self._run(force_full=force_full)

    async def _run(self, *, force_full: bool) -> SyncOutcome:
        started_at = utc_now()
        mode = SyncMode.FULL if force_full else SyncMode.INCREMENTAL
        logger.info(f"=== Iniciando sync Airtable ({'FULL forzado' if force_full else 'INCREMENTAL'}) ===")

        previous = await asyncio.to_thread(self._store.load)
        calls_before = self._airtable.request_count
        stats = SyncStats(mode=mode)

        try:
            if force_full or previous is None or not previous.sync_metadata.timestamps:
                stats.mode = SyncMode.FULL
                raw, timestamps = await self._fetch_full()
                stats.new_records = sum(len(rows) for rows in raw.values())
            else:
                changes = await self._detector.detect(previous.sync_metadata.timestamps, self._config.tables)
                if not changes.has_changes:
                    return self._cache_hit(previous, calls_before)
                raw, timestamps = await self._fetch_incremental(previous, changes, stats)
        except AirtableRateLimitError as e:
            return await self._stale_fallback(previous, e)
        except AirtableApiError as e:
            logger.error(f"Sync fallido leyendo Airtable: {e}")
            raise SyncFailedError("No se pudo leer Airtable; no se publica ningún dataset", cause=str(e)) from e

        stats.api_calls = self._airtable.request_count - calls_before
        if stats.mode == SyncMode.INCREMENTAL:
            stats.api_calls_saved = max(0, _estimate_full_calls(raw) - stats.api_calls)

        snapshot = await self._build_snapshot(raw, timestamps, stats, started_at, force_full)
        await self._persist(snapshot)

        logger.success(
            f"=== Sync completo ({stats.mode.value}): {len(snapshot.projects)} proyectos, "
            f"{len(snapshot.posts)} posts, {stats.api_calls} llamadas API | nuevos={stats.new_records} "
            f"modificados={stats.changed_records} eliminados={stats.deleted_records} "
            f"sin cambios={stats.unchanged_records} ==="
        )
        return SyncOutcome(snapshot=snapshot, stats=stats)

    async def _fetch_full(self) -> tuple[dict[str, list[AirtableRecord]], dict[str, dict[str, Optional[str]]]]:
        logger.info("Trayendo todas las tablas de Airtable (full sync)...")
        names = list(self._config.tables)
        results = await asyncio.gather(
            *(asyncio.to_thread(self._airtable.fetch_table, name, self._config.tables[name]) for name in names)
        )
        raw = dict(zip(names, results))
        return raw, {name: self._timestamps_of(records) for name, records in raw.items()}

    def _timestamps_of(self, records: list[AirtableRecord]) -> dict[str, Optional[str]]:
        field_name = self._airtable.last_modified_field
        return {r.record_id: r.fields.get(field_name) for r in records}

    async def _fetch_incremental(
        self,
        previous: PortfolioSnapshot,
        changes: ChangeSet,
        stats: SyncStats,
    ) -> tuple[dict[str, list[AirtableRecord]], dict[str, dict[str, Optional[str]]]]:
        logger.info("Trayendo solo registros nuevos/modificados...")
        names = list(self._config.tables)
        results = await asyncio.gather(
            *(asyncio.to_thread(self._merge_table, name, previous, changes) for name in names)
        )

        raw: dict[str, list[AirtableRecord]] = {}
        timestamps = dict(changes.current_timestamps)
        for name, (records, unchanged) in zip(names, results):
            raw[name] = records
            stats.unchanged_records += unchanged
            if name in changes.full_resync:
                timestamps[name] = self._timestamps_of(records)

        stats.new_records = changes.count("new")
        stats.changed_records = changes.count("changed")
        stats.deleted_records = changes.count("deleted")
        return raw, timestamps

    def _merge_table(
        self,
        table: str,
        previous: PortfolioSnapshot,
        changes: ChangeSet,
    ) -> tuple[list[AirtableRecord], int]:
        """
        Registros de una tabla para esta corrida: frescos + reutilizados.

        Retorna (registros, cantidad_sin_cambios). Corre en un thread.
        """
        sort_field = self._config.tables[table]
        if table in changes.full_resync:
            logger.warning(f"Resync completo de '{table}'")
            return self._airtable.fetch_table(table, sort_field), 0

        to_fetch = changes.ids_to_fetch(table)
        fetched = self._airtable.fetch_records_by_id(table, to_fetch, sort_field) if to_fetch else []

        fetched_ids = set(to_fetch)
        current_ids = changes.current_timestamps.get(table, {})
        unchanged_ids = [rid for rid in current_ids if rid not in fetched_ids]
        if not unchanged_ids:
            return fetched, 0

        cached_rows = previous.raw_records.get(table)
        if cached_rows is None:
            # Sin caché de crudos para esta tabla: hay que traerlos igual
            return fetched + self._airtable.fetch_records_by_id(table, unchanged_ids, sort_field), len(unchanged_ids)

        wanted = set(unchanged_ids)
        reused = [AirtableRecord.from_api(row) for row in cached_rows if row.get("id") in wanted]
        missing = wanted - {r.record_id for r in reused}
        if missing:
            logger.warning(f"{len(missing)} registros de '{table}' faltan en la caché; se traen de Airtable")
            reused += self._airtable.fetch_records_by_id(
                table, [rid for rid in unchanged_ids if rid in missing], sort_field
            )
        return fetched + reused, len(unchanged_ids)

    def _cache_hit(self, previous: PortfolioSnapshot, calls_before: int) -> SyncOutcome:
        api_calls = self._airtable.request_count - calls_before
        stats = SyncStats(
            mode=SyncMode.CACHED,
            api_calls=api_calls,
            api_calls_saved=max(0, _estimate_full_calls(previous.raw_records) - api_calls),
            unchanged_records=sum(len(ids) for ids in previous.sync_metadata.timestamps.values()),
        )
        logger.success("Sin cambios en Airtable: se sirve el snapshot existente")
        return SyncOutcome(snapshot=previous, stats=stats, data_source="cache")

    async def _stale_fallback(self, previous: Optional[PortfolioSnapshot], error: AirtableRateLimitError) -> SyncOutcome:
        logger.error(f"Rate limit de Airtable excedido ({error})")
        retry_after = int(error.retry_after) if error.retry_after else DEFAULT_RETRY_AFTER_S
        if previous is None:
            logger.error("Sin snapshot previo al cual degradar")
            raise SyncUnavailableError(
                "Rate limit excedido y no hay datos cacheados disponibles", retry_after=retry_after
            ) from error

        logger.warning(
            f"Usando snapshot cacheado (lastUpdated={previous.last_updated.isoformat()}, "
            f"{len(previous.projects)} proyectos, {len(previous.posts)} posts)"
        )
        share_meta = generate_share_meta(previous.projects, previous.posts, previous.config)
        await self._save_artifacts({
            SHARE_META_FILENAME: json.dumps(share_meta, ensure_ascii=False, indent=2),
            SHARE_META_HASH_FILENAME: share_meta_hash(share_meta),
        })
        stats = SyncStats(mode=SyncMode.CACHED)
        return SyncOutcome(snapshot=previous, stats=stats, stale=True, data_source="cached-fallback")

    async def _build_snapshot(
        self,
        raw: dict[str, list[AirtableRecord]],
        timestamps: dict[str, dict[str, Optional[str]]],
        stats: SyncStats,
        started_at: datetime,
        force_full: bool,
    ) -> PortfolioSnapshot:
        resolver = VideoThumbnailResolver(self._http_client, timeout_s=self._config.thumbnail_timeout_s)
        result: TransformResult = await RecordTransformer(self._config, resolver).transform(raw, now=started_at)
        stats.invalid_records = len(result.invalid_records)

        existing_mapping = await asyncio.to_thread(self._store.load_image_mapping)
        images = await self._image_sync.sync(
            result.projects, result.posts, result.config, existing_mapping, retry_failed=force_full
        )
        stats.images_uploaded = images.uploaded
        stats.images_skipped = images.skipped
        stats.images_failed = images.failed
        if self._image_sync.enabled:
            await asyncio.to_thread(self._store.save_image_mapping, images.mapping)
        apply_image_mapping(result.projects, result.posts, result.config, images.mapping, self._config.cloudinary)

        now = utc_now()
        snapshot = PortfolioSnapshot(
            projects=result.projects,
            posts=result.posts,
            config=result.config,
            last_updated=now,
            source=self._config.snapshot_source,
            sync_stats=stats,
            raw_records={table: [r.to_api() for r in records] for table, records in raw.items()},
            sync_metadata=SyncMetadata(last_sync=now, timestamps=timestamps),
        )
        if not ensure_unique_slugs(snapshot):
            raise SyncFailedError("Slugs vacíos o duplicados en el dataset; no se publica")
        return snapshot

    async def _persist(self, snapshot: PortfolioSnapshot) -> None:
        share_meta = generate_share_meta(snapshot.projects, snapshot.posts, snapshot.config, snapshot.last_updated)
        await self._save_artifacts({
            SITEMAP_FILENAME: generate_sitemap(snapshot.projects, snapshot.posts, self._config.site_url),
            SHARE_META_FILENAME: json.dumps(share_meta, ensure_ascii=False, indent=2),
            SHARE_META_HASH_FILENAME: share_meta_hash(share_meta),
        })
        try:
            await asyncio.to_thread(self._store.save, snapshot)
        except OSError as e:
            logger.error(f"No se pudo guardar el snapshot: {e}")
            raise SyncFailedError("No se pudo persistir el snapshot", cause=str(e)) from e

    async def _save_artifacts(self, artifacts: dict[str, str]) -> None:
        # Los artefactos son derivados: un fallo de escritura no invalida la corrida
        for name, content in artifacts.items():
            try:
                await asyncio.to_thread(self._store.save_artifact, name, content)
            except OSError as e:
                logger.warning(f"No se pudo escribir {name} (no crítico): {e}")


def build_snapshot_store(backend: str, directory: Path | str) -> SnapshotStore:
    """'file' (default) o 'memory'."""
    if backend == "memory":
        return InMemorySnapshotStore()
    return FileSnapshotStore(directory)


def build_from_config(
    config: PortfolioSyncConfig,
    *,
    store: SnapshotStore,
    http_client: Optional[httpx.AsyncClient] = None,
    lease_manager: Optional[SyncLeaseManager] = None,
) -> PortfolioSyncService:
    """
    Constructor "oficial" del pipeline a partir de la config explícita.

    Requiere AIRTABLE_TOKEN y AIRTABLE_BASE_ID.
    """
    if not config.airtable_token:
        raise SyncConfigError("AIRTABLE_TOKEN")
    if not config.airtable_base_id:
        raise SyncConfigError("AIRTABLE_BASE_ID")

    airtable = AirtableClient(
        AirtableCredentials(token=config.airtable_token, base_id=config.airtable_base_id),
        base_url=config.airtable_api_url,
        timeout_s=config.airtable_timeout_s,
        max_retries=config.airtable_max_retries,
        last_modified_field=config.last_modified_field,
    )
    if config.cloudinary.enabled and not config.cloudinary.is_active:
        logger.warning("USE_CLOUDINARY=true pero faltan credenciales de Cloudinary: imágenes sin CDN")

    return PortfolioSyncService(
        config=config,
        airtable=airtable,
        store=store,
        http_client=http_client,
        lease_manager=lease_manager,
    )
