"""
Detección de cambios por timestamps ("Last Modified") contra el snapshot previo.

Por tabla:
- new: ids presentes ahora y ausentes en el baseline
- changed: ids presentes en ambos con timestamp distinto
- deleted: ids del baseline que ya no existen
- si la lectura de timestamps falla, la tabla se marca para resync completo
"""

from __future__ import annotations

import asyncio
from typing import Iterable, Optional

from loguru import logger

from .airtable_client import AirtableClient
from .types import FULL_RESYNC, ChangeSet, RecordTimestamp


def classify_table(
    previous: dict[str, Optional[str]],
    current: list[RecordTimestamp],
) -> tuple[list[str], list[str], list[str]]:
    """Compara baseline vs estado actual de una tabla. Retorna (new, changed, deleted)."""
    current_ids = {ts.record_id for ts in current}

    new_ids = [ts.record_id for ts in current if ts.record_id not in previous]
    changed_ids = [
        ts.record_id
        for ts in current
        if ts.record_id in previous and previous[ts.record_id] != ts.last_modified
    ]
    deleted_ids = [rid for rid in previous if rid not in current_ids]
    return new_ids, changed_ids, deleted_ids


class ChangeDetector:
    """Consulta timestamps de cada tabla y arma el ChangeSet de la corrida."""

    def __init__(self, client: AirtableClient) -> None:
        self._client = client

    async def detect(
        self,
        previous_timestamps: dict[str, dict[str, Optional[str]]],
        tables: Iterable[str],
    ) -> ChangeSet:
        """
        Las tablas son independientes: se consultan en paralelo.

        Un AirtableRateLimitError se propaga (el orquestador decide el fallback).
        """
        table_names = list(tables)
        results = await asyncio.gather(
            *(asyncio.to_thread(self._client.fetch_timestamps, name) for name in table_names)
        )

        changes = ChangeSet(api_calls=len(table_names))
        for table, current in zip(table_names, results):
            if current is None:
                logger.warning(f"Timestamps de '{table}' no disponibles: se marca {FULL_RESYNC}")
                changes.full_resync.add(table)
                continue

            previous = previous_timestamps.get(table) or {}
            new_ids, changed_ids, deleted_ids = classify_table(previous, current)
            if new_ids:
                changes.new[table] = new_ids
            if changed_ids:
                changes.changed[table] = changed_ids
            if deleted_ids:
                changes.deleted[table] = deleted_ids

            changes.current_timestamps[table] = {ts.record_id: ts.last_modified for ts in current}

            if new_ids or changed_ids or deleted_ids:
                logger.info(
                    f"  {table}: {len(new_ids)} nuevos, {len(changed_ids)} modificados, "
                    f"{len(deleted_ids)} eliminados"
                )

        logger.info(
            f"Detección de cambios completa: {changes.count('new')} nuevos, "
            f"{changes.count('changed')} modificados, {changes.count('deleted')} eliminados "
            f"({changes.api_calls} consultas de timestamps)"
        )
        return changes
