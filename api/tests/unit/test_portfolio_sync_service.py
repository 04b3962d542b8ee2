"""
Tests unitarios para el orquestador del sync (PortfolioSyncService).

Verifica el flujo completo contra un Airtable en memoria:
- Full sync inicial (stats new=N, snapshot y artefactos persistidos).
- Corto circuito sin cambios (no se invoca el transformer).
- Incremental: solo se traen nuevos/modificados, el resto se reutiliza.
- Caché de crudos ausente o incompleta: los no modificados se traen por id.
- Tabla opcional inexistente en la base: no impide el corto circuito.
- Rate limit: fallback a snapshot stale, o error sin snapshot previo.
- Fallo de Projects: no se publica nada.
- Lease: corridas superpuestas rechazadas.
"""
from __future__ import annotations

from typing import Any, Dict, List
from unittest.mock import AsyncMock
from urllib.parse import unquote

import pytest

from app.domain.entities.portfolio import SyncMode
from app.infrastructure.external.portfolio_sync import sync_service as sync_service_module
from app.infrastructure.external.portfolio_sync.airtable_client import (
    AirtableApiError,
    AirtableClient,
    AirtableCredentials,
)
from app.infrastructure.external.portfolio_sync.artifacts import SHARE_META_FILENAME, SITEMAP_FILENAME
from app.infrastructure.external.portfolio_sync.snapshot_store import SyncLease
from app.infrastructure.external.portfolio_sync.sync_service import PortfolioSyncService, build_from_config
from app.infrastructure.external.portfolio_sync.sync_config import PortfolioSyncConfig
from app.shared.exceptions.sync import (
    SyncConfigError,
    SyncFailedError,
    SyncInProgressError,
    SyncUnavailableError,
)


@pytest.fixture
def service(sync_config, fake_airtable, memory_store) -> PortfolioSyncService:
    return PortfolioSyncService(config=sync_config, airtable=fake_airtable, store=memory_store)


def _launch(make_record, last_modified: str = "2025-01-01T00:00:00.000Z", name: str = "The Launch"):
    return make_record("p1", last_modified, Name=name, Feature=True, **{"Release Date": "2023-05-01"})


class TestFullSync:
    """Primera corrida: sin snapshot previo."""

    @pytest.mark.asyncio
    async def test_first_run_is_full_and_persists(self, service, fake_airtable, memory_store, make_record) -> None:
        fake_airtable.tables = {"Projects": [_launch(make_record)]}

        outcome = await service.run()

        assert outcome.stats.mode == SyncMode.FULL
        assert outcome.stats.new_records == 1
        assert outcome.stats.api_calls == 5
        assert outcome.stale is False
        assert outcome.snapshot.projects[0].slug == "the-launch-2023"

        stored = memory_store.load()
        assert stored.projects[0].slug == "the-launch-2023"
        assert stored.sync_metadata.timestamps["Projects"] == {"p1": "2025-01-01T00:00:00.000Z"}
        assert stored.raw_records["Projects"][0]["id"] == "p1"
        assert "/work/the-launch-2023" in memory_store.load_artifact(SITEMAP_FILENAME)
        assert memory_store.load_artifact(SHARE_META_FILENAME) is not None

    @pytest.mark.asyncio
    async def test_force_ignores_baseline(self, service, fake_airtable, make_record) -> None:
        fake_airtable.tables = {"Projects": [_launch(make_record)]}
        await service.run()

        outcome = await service.run(force_full=True)

        assert outcome.stats.mode == SyncMode.FULL
        assert fake_airtable.full_fetches.count("Projects") == 2

    @pytest.mark.asyncio
    async def test_projects_failure_publishes_nothing(self, service, fake_airtable, memory_store) -> None:
        def broken_fetch(table_name, sort_field=None):
            raise AirtableApiError("boom", status_code=500, table=table_name)

        fake_airtable.fetch_table = broken_fetch

        with pytest.raises(SyncFailedError):
            await service.run()

        assert memory_store.load() is None


class TestIncrementalSync:
    """Corridas con baseline previo."""

    @pytest.mark.asyncio
    async def test_no_changes_short_circuits(self, service, fake_airtable, memory_store, make_record, monkeypatch) -> None:
        """Verifica que sin cambios se devuelve el snapshot previo sin transformar."""
        fake_airtable.tables = {"Projects": [_launch(make_record)]}
        await service.run()
        previous = memory_store.load()

        transform = AsyncMock()
        monkeypatch.setattr(sync_service_module.RecordTransformer, "transform", transform)
        outcome = await service.run()

        transform.assert_not_called()
        assert outcome.stats.mode == SyncMode.CACHED
        assert outcome.data_source == "cache"
        assert outcome.snapshot.model_dump() == previous.model_dump()

    @pytest.mark.asyncio
    async def test_only_changed_and_new_records_fetched(self, service, fake_airtable, make_record) -> None:
        fake_airtable.tables = {
            "Projects": [_launch(make_record), make_record("p3", Name="Kept", Feature=True)],
        }
        await service.run()

        fake_airtable.tables["Projects"] = [
            _launch(make_record, "2025-02-01T00:00:00.000Z", name="The Relaunch"),
            make_record("p2", Name="Brand New", Feature=True),
            make_record("p3", Name="Kept", Feature=True),
        ]
        outcome = await service.run()

        assert outcome.stats.mode == SyncMode.INCREMENTAL
        assert outcome.stats.changed_records == 1
        assert outcome.stats.new_records == 1
        assert outcome.stats.unchanged_records == 1
        assert sorted(fake_airtable.fetched_ids["Projects"]) == ["p1", "p2"]
        assert fake_airtable.full_fetches.count("Projects") == 1
        titles = {p.id: p.title for p in outcome.snapshot.projects}
        assert titles == {"p1": "The Relaunch", "p2": "Brand New", "p3": "Kept"}

    @pytest.mark.asyncio
    async def test_deleted_records_are_dropped(self, service, fake_airtable, make_record) -> None:
        fake_airtable.tables = {
            "Projects": [_launch(make_record), make_record("p3", Name="Gone", Feature=True)],
        }
        await service.run()

        fake_airtable.tables["Projects"] = [_launch(make_record)]
        outcome = await service.run()

        assert outcome.stats.deleted_records == 1
        assert [p.id for p in outcome.snapshot.projects] == ["p1"]
        assert "p3" not in outcome.snapshot.sync_metadata.timestamps["Projects"]

    @pytest.mark.asyncio
    async def test_timestamp_failure_refetches_table(self, service, fake_airtable, make_record) -> None:
        fake_airtable.tables = {
            "Projects": [_launch(make_record)],
            "Settings": [make_record("s1", **{"Owner Name": "Ana"})],
        }
        await service.run()

        fake_airtable.failing_timestamps = {"Settings"}
        outcome = await service.run()

        assert outcome.stats.mode == SyncMode.INCREMENTAL
        assert fake_airtable.full_fetches.count("Settings") == 2
        assert outcome.snapshot.config.portfolio_owner_name == "Ana"


    @pytest.mark.asyncio
    async def test_missing_raw_cache_fetches_unchanged_by_id(self, service, fake_airtable, memory_store, make_record) -> None:
        """Verifica que sin crudos cacheados los registros sin cambios se piden por id."""
        fake_airtable.tables = {
            "Projects": [_launch(make_record), make_record("p3", Name="Kept", Feature=True)],
        }
        await service.run()
        memory_store.save(memory_store.load().model_copy(update={"raw_records": {}}))

        fake_airtable.tables["Projects"][0] = _launch(make_record, "2025-02-01T00:00:00.000Z", name="The Relaunch")
        outcome = await service.run()

        assert outcome.stats.mode == SyncMode.INCREMENTAL
        assert sorted(fake_airtable.fetched_ids["Projects"]) == ["p1", "p3"]
        assert fake_airtable.full_fetches.count("Projects") == 1
        titles = {p.id: p.title for p in outcome.snapshot.projects}
        assert titles == {"p1": "The Relaunch", "p3": "Kept"}

    @pytest.mark.asyncio
    async def test_partial_raw_cache_fetches_missing_ids(self, service, fake_airtable, memory_store, make_record) -> None:
        """Verifica que un id ausente de la caché se trae y el resto se reutiliza."""
        fake_airtable.tables = {
            "Projects": [
                _launch(make_record),
                make_record("p3", Name="Kept", Feature=True),
                make_record("p4", Name="Cached", Feature=True),
            ],
        }
        await service.run()
        previous = memory_store.load()
        rows = [row for row in previous.raw_records["Projects"] if row["id"] != "p3"]
        memory_store.save(previous.model_copy(update={"raw_records": {**previous.raw_records, "Projects": rows}}))

        fake_airtable.tables["Projects"][0] = _launch(make_record, "2025-02-01T00:00:00.000Z", name="The Relaunch")
        outcome = await service.run()

        assert sorted(fake_airtable.fetched_ids["Projects"]) == ["p1", "p3"]
        assert sorted(p.id for p in outcome.snapshot.projects) == ["p1", "p3", "p4"]
        assert outcome.stats.unchanged_records == 2

class TestRateLimitFallback:
    """429 de Airtable."""

    @pytest.mark.asyncio
    async def test_stale_snapshot_served_when_cached(self, service, fake_airtable, memory_store, make_record) -> None:
        fake_airtable.tables = {"Projects": [_launch(make_record)]}
        await service.run()
        previous = memory_store.load()

        fake_airtable.rate_limited = True
        outcome = await service.run()

        assert outcome.stale is True
        assert outcome.data_source == "cached-fallback"
        assert outcome.snapshot.model_dump() == previous.model_dump()
        payload = outcome.to_payload()
        assert payload["sync"]["rateLimitHit"] is True
        assert "_rawRecords" not in payload

    @pytest.mark.asyncio
    async def test_no_cache_reports_unavailable(self, service, fake_airtable, memory_store) -> None:
        fake_airtable.rate_limited = True

        with pytest.raises(SyncUnavailableError) as exc_info:
            await service.run()

        assert exc_info.value.retry_after == 30
        assert memory_store.load() is None


class TestLeaseAndConfig:
    """Lease y construcción del servicio."""

    @pytest.mark.asyncio
    async def test_run_rejected_while_lease_held(self, service, memory_store) -> None:
        memory_store.try_acquire_lease(SyncLease.new("other", "ci-job", ttl_s=600))

        with pytest.raises(SyncInProgressError):
            await service.run()

    def test_missing_credentials_raise_config_error(self, memory_store) -> None:
        config = PortfolioSyncConfig(airtable_token="", airtable_base_id="app")

        with pytest.raises(SyncConfigError) as exc_info:
            build_from_config(config, store=memory_store)

        assert exc_info.value.details == {"missing": "AIRTABLE_TOKEN"}


class _Response:
    def __init__(self, status_code: int, payload: Dict[str, Any]) -> None:
        self.status_code = status_code
        self._payload = payload
        self.headers: Dict[str, str] = {}
        self.text = str(payload)

    def json(self) -> Dict[str, Any]:
        return self._payload


class RoutingSession:
    """Sesión HTTP falsa: responde por nombre de tabla; las tablas ausentes dan 404."""

    def __init__(self, tables: Dict[str, List[Dict[str, Any]]]) -> None:
        self.tables = tables
        self.requested: List[str] = []

    def request(self, method, url, params=None, headers=None, timeout=None):
        table = unquote(url.rsplit("/", 1)[-1])
        self.requested.append(table)
        if table not in self.tables:
            return _Response(404, {"error": {"type": "TABLE_NOT_FOUND"}})
        return _Response(200, {"records": self.tables[table]})


class TestMissingOptionalTable:
    """Base sin alguna tabla opcional (p.ej. Festivals)."""

    @pytest.mark.asyncio
    async def test_second_run_without_changes_is_cached(self, sync_config, memory_store) -> None:
        session = RoutingSession({
            "Projects": [{
                "id": "p1",
                "createdTime": "2024-01-01T00:00:00.000Z",
                "fields": {
                    "Name": "The Launch",
                    "Feature": True,
                    "Release Date": "2023-05-01",
                    "Last Modified": "2025-01-01T00:00:00.000Z",
                },
            }],
            "Journal": [],
            "Client Book": [],
            "Settings": [],
        })
        airtable = AirtableClient(AirtableCredentials(token="key-test", base_id="app-test"), session=session)
        service = PortfolioSyncService(config=sync_config, airtable=airtable, store=memory_store)

        first = await service.run()
        second = await service.run()

        assert first.stats.mode == SyncMode.FULL
        assert second.stats.mode == SyncMode.CACHED
        assert second.data_source == "cache"
        assert second.snapshot.projects[0].slug == "the-launch-2023"
