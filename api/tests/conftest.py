"""
Configuración de fixtures para pytest.

Fakes compartidos del sync del portfolio:
- FakeAirtable: reemplaza al AirtableClient (tablas en memoria + contador de requests)
- make_record: registros crudos con forma de la API de Airtable
"""
from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

import pytest

from app.infrastructure.external.portfolio_sync.airtable_client import AirtableRateLimitError
from app.infrastructure.external.portfolio_sync.snapshot_store import InMemorySnapshotStore
from app.infrastructure.external.portfolio_sync.sync_config import PortfolioSyncConfig
from app.infrastructure.external.portfolio_sync.types import AirtableRecord, RecordTimestamp


def _make_record(record_id: str, last_modified: str = "2025-01-01T00:00:00.000Z", **fields: Any) -> AirtableRecord:
    return AirtableRecord(
        record_id=record_id,
        fields={"Last Modified": last_modified, **fields},
        created_time="2024-01-01T00:00:00.000Z",
    )


class FakeAirtable:
    """Doble del AirtableClient: mismas operaciones, tablas en memoria."""

    last_modified_field = "Last Modified"

    def __init__(self, tables: Optional[Dict[str, List[AirtableRecord]]] = None) -> None:
        self.tables: Dict[str, List[AirtableRecord]] = tables or {}
        self.request_count = 0
        self.rate_limited = False
        self.failing_timestamps: set[str] = set()
        self.fetched_ids: Dict[str, List[str]] = {}
        self.full_fetches: List[str] = []

    def _hit(self, table: str) -> None:
        self.request_count += 1
        if self.rate_limited:
            raise AirtableRateLimitError(table, retry_after=30)

    def fetch_table(self, table_name: str, sort_field: Optional[str] = None) -> List[AirtableRecord]:
        self._hit(table_name)
        self.full_fetches.append(table_name)
        return list(self.tables.get(table_name, []))

    def fetch_timestamps(self, table_name: str) -> Optional[List[RecordTimestamp]]:
        self._hit(table_name)
        if table_name in self.failing_timestamps:
            return None
        return [
            RecordTimestamp(record_id=r.record_id, last_modified=r.fields.get(self.last_modified_field))
            for r in self.tables.get(table_name, [])
        ]

    def fetch_records_by_id(
        self, table_name: str, record_ids: List[str], sort_field: Optional[str] = None
    ) -> List[AirtableRecord]:
        if not record_ids:
            return []
        self._hit(table_name)
        self.fetched_ids.setdefault(table_name, []).extend(record_ids)
        wanted = set(record_ids)
        return [r for r in self.tables.get(table_name, []) if r.record_id in wanted]


@pytest.fixture
def make_record() -> Callable[..., AirtableRecord]:
    """Factory de registros crudos: make_record("rec1", Name="X")."""
    return _make_record


@pytest.fixture
def sync_config() -> PortfolioSyncConfig:
    return PortfolioSyncConfig(
        airtable_token="key-test",
        airtable_base_id="app-test",
        site_url="https://portfolio.test",
        portfolio_owner_name="Jane Doe",
    )


@pytest.fixture
def fake_airtable() -> FakeAirtable:
    return FakeAirtable()


@pytest.fixture
def memory_store() -> InMemorySnapshotStore:
    return InMemorySnapshotStore()
