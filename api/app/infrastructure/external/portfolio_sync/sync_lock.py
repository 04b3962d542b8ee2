"""
Lease contra corridas superpuestas del sync.

Motivacion:
- El trigger manual puede dispararse mientras otra corrida está en curso
  (otro request, el CLI o un job de CI).
- Dos corridas simultáneas pisarían el snapshot y el mapping de imágenes.

Caracteristicas:
- asyncio.Lock para corridas dentro del mismo proceso
- lease con expiración guardado junto al snapshot para otros procesos
- una corrida concurrente se rechaza (SyncInProgressError), no se encola
- un lease vencido (proceso caído) se toma sin intervención manual
"""

from __future__ import annotations

import asyncio
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator

from loguru import logger

from app.shared.exceptions.sync import SyncInProgressError

from .snapshot_store import SnapshotStore, SyncLease


# Vida por defecto de un lease (en segundos)
DEFAULT_LEASE_TTL = 600.0


class SyncLeaseManager:
    """
    Gestor del lease de sync para un SnapshotStore.

    Implementacion:
    - El lock en proceso se intenta sin esperar: si está tomado, se rechaza.
    - Las operaciones del store corren en threads (I/O de archivos) para no
      bloquear el event loop.
    """

    def __init__(self, store: SnapshotStore, ttl_s: float = DEFAULT_LEASE_TTL) -> None:
        self._store = store
        self._ttl_s = ttl_s
        self._local_lock = asyncio.Lock()
        self._current: SyncLease | None = None

    @property
    def is_held(self) -> bool:
        return self._local_lock.locked()

    @asynccontextmanager
    async def lease(self, owner: str) -> AsyncIterator[SyncLease]:
        """
        Context manager async que mantiene el lease durante la corrida.

        Raises:
            SyncInProgressError: si otra corrida (local o externa) tiene el
                lease vigente.

        Ejemplo:
            async with lease_manager.lease("api"):
                await orchestrator.run()
        """
        if self._local_lock.locked():
            current = self._current
            raise SyncInProgressError(
                current.owner if current else "local",
                current.expires_at if current else None,
            )

        async with self._local_lock:
            requested = SyncLease.new(token=uuid.uuid4().hex, owner=owner, ttl_s=self._ttl_s)
            holder = await asyncio.to_thread(self._store.try_acquire_lease, requested)
            if holder.token != requested.token:
                logger.warning(f"Sync rechazado: lease en manos de '{holder.owner}' hasta {holder.expires_at}")
                raise SyncInProgressError(holder.owner, holder.expires_at)

            self._current = requested
            logger.debug(f"Lease de sync adquirido por '{owner}' (ttl {self._ttl_s}s)")
            try:
                yield requested
            finally:
                self._current = None
                released = await asyncio.to_thread(self._store.release_lease, requested.token)
                if not released:
                    logger.warning(f"El lease de '{owner}' ya no era propio al liberarlo (¿expiró?)")
