"""
Snapshot Store: persistencia del dataset, el mapping de imágenes, los
artefactos derivados y el lease de corrida.

El orquestador depende solo del protocolo SnapshotStore; el backend
(filesystem, memoria) se inyecta. Los callers deben tolerar que no haya
snapshot (instancia fría / storage efímero).
"""

from __future__ import annotations

import json
import os
import tempfile
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Optional, Protocol

from loguru import logger
from pydantic import ValidationError

from app.domain.entities.portfolio import ImageMapping, PortfolioSnapshot

from .types import isoformat_z, parse_iso_datetime, utc_now


SNAPSHOT_FILENAME = "portfolio-data.json"
IMAGE_MAPPING_FILENAME = "cloudinary-mapping.json"
LEASE_FILENAME = "sync.lease"


@dataclass(frozen=True)
class SyncLease:
    """Token con expiración que marca una corrida en curso."""

    token: str
    owner: str
    acquired_at: datetime
    expires_at: datetime

    @classmethod
    def new(cls, token: str, owner: str, ttl_s: float, now: Optional[datetime] = None) -> "SyncLease":
        now = now or utc_now()
        return cls(token=token, owner=owner, acquired_at=now, expires_at=now + timedelta(seconds=ttl_s))

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utc_now()) >= self.expires_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "token": self.token,
            "owner": self.owner,
            "acquiredAt": isoformat_z(self.acquired_at),
            "expiresAt": isoformat_z(self.expires_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Optional["SyncLease"]:
        acquired_at = parse_iso_datetime(data.get("acquiredAt"))
        expires_at = parse_iso_datetime(data.get("expiresAt"))
        if not data.get("token") or acquired_at is None or expires_at is None:
            return None
        return cls(token=data["token"], owner=data.get("owner", ""), acquired_at=acquired_at, expires_at=expires_at)


class SnapshotStore(Protocol):
    """Contrato de persistencia del sync."""

    def load(self) -> Optional[PortfolioSnapshot]: ...

    def save(self, snapshot: PortfolioSnapshot) -> None: ...

    def load_image_mapping(self) -> Optional[ImageMapping]: ...

    def save_image_mapping(self, mapping: ImageMapping) -> None: ...

    def load_artifact(self, name: str) -> Optional[str]: ...

    def save_artifact(self, name: str, content: str) -> None: ...

    def try_acquire_lease(self, lease: SyncLease) -> SyncLease:
        """Retorna `lease` si se adquirió, o el lease vigente de otro owner."""
        ...

    def release_lease(self, token: str) -> bool: ...


class InMemorySnapshotStore:
    """Backend en memoria (tests, dev, instancias efímeras)."""

    def __init__(self) -> None:
        self._snapshot: Optional[dict[str, Any]] = None
        self._mapping: Optional[dict[str, Any]] = None
        self._artifacts: dict[str, str] = {}
        self._lease: Optional[SyncLease] = None
        self._lock = threading.Lock()

    def load(self) -> Optional[PortfolioSnapshot]:
        if self._snapshot is None:
            return None
        return PortfolioSnapshot.from_document(self._snapshot)

    def save(self, snapshot: PortfolioSnapshot) -> None:
        self._snapshot = snapshot.to_document()

    def load_image_mapping(self) -> Optional[ImageMapping]:
        if self._mapping is None:
            return None
        return ImageMapping.model_validate(self._mapping)

    def save_image_mapping(self, mapping: ImageMapping) -> None:
        self._mapping = mapping.model_dump(mode="json", by_alias=True)

    def load_artifact(self, name: str) -> Optional[str]:
        return self._artifacts.get(name)

    def save_artifact(self, name: str, content: str) -> None:
        self._artifacts[name] = content

    def try_acquire_lease(self, lease: SyncLease) -> SyncLease:
        with self._lock:
            current = self._lease
            if current is not None and not current.is_expired() and current.token != lease.token:
                return current
            self._lease = lease
            return lease

    def release_lease(self, token: str) -> bool:
        with self._lock:
            if self._lease is not None and self._lease.token == token:
                self._lease = None
                return True
            return False


class FileSnapshotStore:
    """
    Backend filesystem: un directorio con el snapshot y los artefactos.

    Escrituras atómicas (archivo temporal + os.replace) para que un lector
    nunca vea un JSON a medio escribir.
    """

    def __init__(self, directory: Path | str) -> None:
        self._dir = Path(directory)

    @property
    def directory(self) -> Path:
        return self._dir

    def load(self) -> Optional[PortfolioSnapshot]:
        document = self._read_json(SNAPSHOT_FILENAME)
        if document is None:
            return None
        try:
            return PortfolioSnapshot.from_document(document)
        except ValidationError as e:
            logger.warning(f"Snapshot en {self._dir} inválido, se ignora: {e.error_count()} errores")
            return None

    def save(self, snapshot: PortfolioSnapshot) -> None:
        self._write_text(SNAPSHOT_FILENAME, json.dumps(snapshot.to_document(), ensure_ascii=False, indent=2))
        logger.info(f"Snapshot guardado en {self._dir / SNAPSHOT_FILENAME}")

    def load_image_mapping(self) -> Optional[ImageMapping]:
        document = self._read_json(IMAGE_MAPPING_FILENAME)
        if document is None:
            return None
        try:
            return ImageMapping.model_validate(document)
        except ValidationError as e:
            logger.warning(f"Mapping de imágenes inválido, se empieza de cero: {e.error_count()} errores")
            return None

    def save_image_mapping(self, mapping: ImageMapping) -> None:
        content = json.dumps(mapping.model_dump(mode="json", by_alias=True), ensure_ascii=False, indent=2)
        self._write_text(IMAGE_MAPPING_FILENAME, content)

    def load_artifact(self, name: str) -> Optional[str]:
        path = self._dir / name
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def save_artifact(self, name: str, content: str) -> None:
        self._write_text(name, content)

    def try_acquire_lease(self, lease: SyncLease) -> SyncLease:
        self._dir.mkdir(parents=True, exist_ok=True)
        path = self._dir / LEASE_FILENAME

        # Dos intentos: el segundo solo si el lease existente estaba vencido
        for _ in range(2):
            try:
                fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
            except FileExistsError:
                current = self._read_lease(path)
                if current is not None and not current.is_expired() and current.token != lease.token:
                    return current
                logger.warning(f"Lease vencido o ilegible en {path}, se toma el control")
                path.unlink(missing_ok=True)
                continue

            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(lease.to_dict(), fh)
            return lease

        current = self._read_lease(path)
        return current if current is not None else lease

    def release_lease(self, token: str) -> bool:
        path = self._dir / LEASE_FILENAME
        current = self._read_lease(path)
        if current is None or current.token != token:
            return False
        path.unlink(missing_ok=True)
        return True

    def _read_lease(self, path: Path) -> Optional[SyncLease]:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return None
        return SyncLease.from_dict(data) if isinstance(data, dict) else None

    def _read_json(self, name: str) -> Optional[dict[str, Any]]:
        path = self._dir / name
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"No se pudo leer {path}: {e}")
            return None
        return data if isinstance(data, dict) else None

    def _write_text(self, name: str, content: str) -> None:
        self._dir.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self._dir, prefix=f".{name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(content)
            os.replace(tmp_path, self._dir / name)
        except OSError:
            Path(tmp_path).unlink(missing_ok=True)
            raise
