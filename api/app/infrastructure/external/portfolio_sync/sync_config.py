"""
Configuración explícita del sync del portfolio.

Un único struct inmutable que se construye a partir de Settings y se pasa
a cada componente al construirlo. Ningún componente lee configuración
global por su cuenta.

Este módulo no realiza I/O: solo define configuración.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .types import SYNC_TABLES

if TYPE_CHECKING:
    from app.core.config import Settings


@dataclass(frozen=True)
class DeliveryPreset:
    """Variante de entrega del CDN (se aplica por URL, no al subir)."""

    quality: int
    width: int


def default_delivery_presets() -> dict[str, DeliveryPreset]:
    return {
        "micro": DeliveryPreset(quality=70, width=600),
        "fine": DeliveryPreset(quality=80, width=1000),
        "ultra": DeliveryPreset(quality=90, width=1600),
        "hero": DeliveryPreset(quality=90, width=3000),
    }


@dataclass(frozen=True)
class CloudinarySettings:
    enabled: bool = False
    cloud_name: str = ""
    api_key: str = ""
    api_secret: str = ""
    upload_timeout_s: float = 60.0
    delivery_format: str = "webp"
    delivery_crop: str = "limit"
    delivery_presets: dict[str, DeliveryPreset] = field(default_factory=default_delivery_presets)

    @property
    def is_active(self) -> bool:
        """Habilitado y con credenciales completas."""
        return self.enabled and bool(self.cloud_name and self.api_key and self.api_secret)


@dataclass(frozen=True)
class PortfolioSyncConfig:
    """
    Config de una corrida de sync.

    - tables: tablas Airtable a sincronizar y su campo de sort
    - fallback_profile_image: imagen de "About" si Settings no trae una
    - lease_ttl_s: vida máxima del lease contra corridas superpuestas
    """

    airtable_token: str
    airtable_base_id: str
    airtable_api_url: str = "https://api.airtable.com/v0"
    airtable_timeout_s: float = 10.0
    airtable_max_retries: int = 0
    last_modified_field: str = "Last Modified"
    tables: dict[str, str | None] = field(default_factory=lambda: dict(SYNC_TABLES))
    thumbnail_timeout_s: float = 5.0
    site_url: str = "https://example.com"
    portfolio_id: str = ""
    portfolio_owner_name: str = ""
    fallback_profile_image: str = ""
    reading_words_per_minute: int = 225
    lease_ttl_s: float = 600.0
    snapshot_source: str = "scheduled-sync"
    cloudinary: CloudinarySettings = field(default_factory=CloudinarySettings)

    @classmethod
    def from_settings(cls, settings: "Settings") -> "PortfolioSyncConfig":
        return cls(
            airtable_token=settings.AIRTABLE_TOKEN,
            airtable_base_id=settings.AIRTABLE_BASE_ID,
            airtable_api_url=settings.AIRTABLE_API_URL,
            airtable_timeout_s=settings.AIRTABLE_TIMEOUT_S,
            airtable_max_retries=settings.AIRTABLE_MAX_RETRIES,
            last_modified_field=settings.AIRTABLE_LAST_MOD_FIELD,
            thumbnail_timeout_s=settings.THUMBNAIL_TIMEOUT_S,
            site_url=settings.SITE_URL.rstrip("/"),
            portfolio_id=settings.PORTFOLIO_ID,
            portfolio_owner_name=settings.PORTFOLIO_OWNER_NAME,
            fallback_profile_image=settings.FALLBACK_PROFILE_IMAGE,
            reading_words_per_minute=settings.READING_WPM,
            lease_ttl_s=settings.SYNC_LEASE_TTL_S,
            snapshot_source=settings.SNAPSHOT_SOURCE,
            cloudinary=CloudinarySettings(
                enabled=settings.USE_CLOUDINARY,
                cloud_name=settings.CLOUDINARY_CLOUD_NAME,
                api_key=settings.CLOUDINARY_API_KEY,
                api_secret=settings.CLOUDINARY_API_SECRET,
                upload_timeout_s=settings.CLOUDINARY_UPLOAD_TIMEOUT_S,
            ),
        )
