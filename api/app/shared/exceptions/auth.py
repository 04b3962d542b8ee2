"""
Excepciones de autenticación del endpoint de sync.
"""
from app.shared.exceptions.base import AppException


class UnauthorizedException(AppException):
    """Token Bearer ausente o distinto de SYNC_TOKEN."""

    def __init__(self, message: str = "No autorizado"):
        super().__init__(
            message=message,
            status_code=401,
            error_code="UNAUTHORIZED",
            details={"scheme": "Bearer"}
        )
