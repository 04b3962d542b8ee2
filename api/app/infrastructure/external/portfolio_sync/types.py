"""
Tipos y utilidades puras del pipeline Airtable -> snapshot.

Se mantienen libres de I/O para poder testearlos fácilmente.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional


# Tablas Airtable que consume el portfolio
PROJECTS_TABLE = "Projects"
JOURNAL_TABLE = "Journal"
FESTIVALS_TABLE = "Festivals"
CLIENTS_TABLE = "Client Book"
SETTINGS_TABLE = "Settings"

# Campo de sort por tabla (None = orden natural de Airtable)
SYNC_TABLES: dict[str, Optional[str]] = {
    FESTIVALS_TABLE: None,
    CLIENTS_TABLE: None,
    PROJECTS_TABLE: "Release Date",
    JOURNAL_TABLE: "Date",
    SETTINGS_TABLE: None,
}

# Marca de "resync completo" para una tabla cuyos timestamps no se pudieron leer
FULL_RESYNC = "full-sync"


def utc_now() -> datetime:
    """Retorna la hora actual en UTC, como datetime aware."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """
    Normaliza datetime a UTC (aware).

    Airtable suele devolver ISO8601 con zona; aun así, normalizamos para
    comparar/almacenar de forma consistente.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def isoformat_z(dt: datetime) -> str:
    """Serializa a ISO8601 con 'Z', el formato que usa Airtable."""
    dt_utc = ensure_utc(dt)
    return dt_utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso_datetime(value: Any) -> Optional[datetime]:
    """Parsea fechas ISO8601 de Airtable ("2025-12-16" o "...T10:15:00.000Z")."""
    if not value:
        return None
    try:
        return ensure_utc(datetime.fromisoformat(str(value).replace("Z", "+00:00")))
    except ValueError:
        return None


@dataclass(frozen=True)
class AirtableRecord:
    """Registro Airtable crudo, tal como viene de la API."""

    record_id: str
    fields: dict[str, Any]
    created_time: Optional[str] = None

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> "AirtableRecord":
        return cls(
            record_id=str(payload["id"]),
            fields=dict(payload.get("fields") or {}),
            created_time=payload.get("createdTime"),
        )

    def to_api(self) -> dict[str, Any]:
        data: dict[str, Any] = {"id": self.record_id, "fields": self.fields}
        if self.created_time:
            data["createdTime"] = self.created_time
        return data


@dataclass(frozen=True)
class RecordTimestamp:
    """Par liviano id/lastModified usado por la detección de cambios."""

    record_id: str
    last_modified: Optional[str]


@dataclass
class ChangeSet:
    """
    Resultado de la detección de cambios.

    - new/changed/deleted: ids por tabla (solo tablas con algo que reportar)
    - full_resync: tablas cuyos timestamps fallaron y deben re-leerse completas
    - current_timestamps: baseline para la próxima corrida
    """

    new: dict[str, list[str]] = field(default_factory=dict)
    changed: dict[str, list[str]] = field(default_factory=dict)
    deleted: dict[str, list[str]] = field(default_factory=dict)
    full_resync: set[str] = field(default_factory=set)
    current_timestamps: dict[str, dict[str, Optional[str]]] = field(default_factory=dict)
    api_calls: int = 0

    @property
    def has_changes(self) -> bool:
        return bool(self.new or self.changed or self.deleted or self.full_resync)

    def ids_to_fetch(self, table: str) -> list[str]:
        return [*self.changed.get(table, []), *self.new.get(table, [])]

    def count(self, kind: str) -> int:
        bucket: dict[str, list[str]] = getattr(self, kind)
        return sum(len(ids) for ids in bucket.values())
