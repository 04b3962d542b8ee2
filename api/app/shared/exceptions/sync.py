"""
Excepciones del sync del portfolio (Airtable -> snapshot).
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from app.shared.exceptions.base import AppException


class SyncException(AppException):
    """Excepción base para errores del pipeline de sync."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_code: str = "SYNC_ERROR",
        details=None,
        retry_after: Optional[int] = None
    ):
        super().__init__(
            message=message,
            status_code=status_code,
            error_code=error_code,
            details=details,
            retry_after=retry_after
        )


class SyncConfigError(SyncException):
    """Falta configuración obligatoria (credenciales Airtable, etc)."""

    def __init__(self, missing: str):
        super().__init__(
            message=f"Falta configuración obligatoria: {missing}",
            error_code="SYNC_CONFIG_ERROR",
            details={"missing": missing}
        )


class SyncInProgressError(SyncException):
    """Otra corrida tiene el lease vigente: la nueva se rechaza (no se encola)."""

    def __init__(self, owner: str, expires_at: Optional[datetime]):
        self.owner = owner
        self.expires_at = expires_at
        super().__init__(
            message=f"Ya hay un sync en curso (owner: {owner})",
            status_code=409,
            error_code="SYNC_IN_PROGRESS",
            details={
                "owner": owner,
                "expires_at": expires_at.isoformat() if expires_at else None,
            }
        )


class SyncUnavailableError(SyncException):
    """Rate limit de Airtable sin snapshot previo al cual degradar."""

    def __init__(self, message: str, retry_after: int = 3600):
        super().__init__(
            message=message,
            status_code=503,
            error_code="SYNC_UNAVAILABLE",
            details={"rate_limit_hit": True, "retry_after": retry_after},
            retry_after=retry_after
        )


class SyncFailedError(SyncException):
    """Fallo fatal de la corrida (p.ej. tabla Projects). No se publica nada."""

    def __init__(self, message: str, cause: Optional[str] = None, retry_after: int = 300):
        super().__init__(
            message=message,
            status_code=502,
            error_code="SYNC_FAILED",
            details={"cause": cause} if cause else None,
            retry_after=retry_after
        )


class SnapshotNotFoundError(SyncException):
    """Todavía no existe un snapshot para servir (instancia fría)."""

    def __init__(self, retry_after: int = 3600):
        super().__init__(
            message="No hay datos sincronizados disponibles todavía",
            status_code=503,
            error_code="SNAPSHOT_NOT_FOUND",
            details={"retry_after": retry_after},
            retry_after=retry_after
        )


class RecordValidationError(SyncException):
    """Un registro crudo no respeta el schema esperado de su tabla."""

    def __init__(self, table: str, record_id: str, errors: List[Dict[str, Any]]):
        self.table = table
        self.record_id = record_id
        self.errors = errors
        fields = sorted({".".join(str(p) for p in e.get("loc", ())) for e in errors})
        super().__init__(
            message=f"Registro {record_id} de '{table}' inválido: {', '.join(fields) or 'schema'}",
            status_code=422,
            error_code="RECORD_VALIDATION_ERROR",
            details={"table": table, "record_id": record_id, "fields": fields}
        )
