"""
Image Sync: adjuntos de Airtable -> Cloudinary.

Requisitos cubiertos:
- una imagen se sube si y solo si su id de adjunto (estable) difiere del
  último registrado para ese slot; si coincide, se copia la entrada previa
- fallos de subida por imagen: no fatales, quedan registrados con error y
  cloudinaryUrl vacío (el render usa la URL original)
- subida firmada a la REST API de Cloudinary, calidad original
- transformaciones solo en la entrega (parámetros en la URL)
"""

from __future__ import annotations

import hashlib
import time
from dataclasses import dataclass
from typing import Optional

import httpx
from loguru import logger

from app.domain.entities.portfolio import (
    ImageMapping,
    ImageSource,
    MappedImage,
    MappedRecord,
    Post,
    Project,
    SiteConfig,
)

from .sync_config import CloudinarySettings
from .types import utc_now


CLOUDINARY_API_URL = "https://api.cloudinary.com/v1_1"
CLOUDINARY_DELIVERY_URL = "https://res.cloudinary.com"

# Parámetros que Cloudinary excluye de la firma
_UNSIGNED_PARAMS = {"file", "api_key", "resource_type", "cloud_name"}


def project_public_id(record_id: str, index: int) -> str:
    return f"portfolio-projects-{record_id}-{index}"


def journal_public_id(record_id: str) -> str:
    return f"portfolio-journal-{record_id}"


def sign_params(params: dict[str, str], api_secret: str) -> str:
    """Firma Cloudinary: sha1('k1=v1&k2=v2...' + secret) con claves ordenadas."""
    to_sign = "&".join(f"{k}={v}" for k, v in sorted(params.items()) if k not in _UNSIGNED_PARAMS and v != "")
    return hashlib.sha1(f"{to_sign}{api_secret}".encode("utf-8")).hexdigest()


def build_delivery_url(
    settings: CloudinarySettings,
    public_id: str,
    preset: str = "fine",
    dpr: float = 1.0,
) -> str:
    """URL de entrega con preset (calidad/ancho), formato, crop y dpr."""
    p = settings.delivery_presets[preset]
    transformation = f"f_{settings.delivery_format},q_{p.quality},w_{p.width},c_{settings.delivery_crop},dpr_{dpr:.1f}"
    return f"{CLOUDINARY_DELIVERY_URL}/{settings.cloud_name}/image/upload/{transformation}/{public_id}"


@dataclass(frozen=True)
class UploadResult:
    success: bool
    public_id: str
    cloudinary_url: str = ""
    format: Optional[str] = None
    size: Optional[int] = None
    error: Optional[str] = None


class CloudinaryUploader:
    """Sube imágenes por URL de origen (Cloudinary descarga el archivo)."""

    def __init__(self, settings: CloudinarySettings, client: Optional[httpx.AsyncClient] = None) -> None:
        self._settings = settings
        self._client = client

    async def upload(self, source_url: str, public_id: str) -> UploadResult:
        """Nunca lanza: cualquier fallo vuelve como UploadResult(success=False)."""
        params = {
            "public_id": public_id,
            "overwrite": "true",
            "timestamp": str(int(time.time())),
        }
        data = {
            **params,
            "file": source_url,
            "api_key": self._settings.api_key,
            "signature": sign_params(params, self._settings.api_secret),
        }
        url = f"{CLOUDINARY_API_URL}/{self._settings.cloud_name}/image/upload"

        try:
            if self._client is not None:
                response = await self._client.post(url, data=data, timeout=self._settings.upload_timeout_s)
            else:
                async with httpx.AsyncClient(timeout=self._settings.upload_timeout_s) as client:
                    response = await client.post(url, data=data)
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Fallo al subir {public_id}: {e}")
            return UploadResult(success=False, public_id=public_id, error=str(e) or type(e).__name__)

        if response.status_code != 200 or not isinstance(payload, dict):
            error = payload.get("error") if isinstance(payload, dict) else None
            message = (error.get("message") if isinstance(error, dict) else None) or f"HTTP {response.status_code}"
            logger.error(f"Fallo al subir {public_id}: {message}")
            return UploadResult(success=False, public_id=public_id, error=message)

        return UploadResult(
            success=True,
            public_id=payload.get("public_id", public_id),
            cloudinary_url=payload.get("secure_url", ""),
            format=payload.get("format"),
            size=payload.get("bytes"),
        )


@dataclass
class ImageSyncResult:
    mapping: ImageMapping
    uploaded: int = 0
    skipped: int = 0
    failed: int = 0


class ImageSyncService:
    """Compara slots contra el mapping previo y sube solo lo nuevo/cambiado."""

    def __init__(self, settings: CloudinarySettings, uploader: CloudinaryUploader) -> None:
        self._settings = settings
        self._uploader = uploader

    @property
    def enabled(self) -> bool:
        return self._settings.is_active

    async def sync(
        self,
        projects: list[Project],
        posts: list[Post],
        site_config: SiteConfig,
        existing: Optional[ImageMapping],
        *,
        retry_failed: bool = False,
    ) -> ImageSyncResult:
        """
        Args:
            retry_failed: si True, los slots con error previo se reintentan
                aunque el id de adjunto no haya cambiado (sync forzado).
        """
        previous = existing or ImageMapping(generated_at=utc_now())
        if not self.enabled:
            logger.info("Cloudinary deshabilitado: se conserva el mapping existente")
            return ImageSyncResult(mapping=previous)

        result = ImageSyncResult(mapping=ImageMapping(generated_at=utc_now()))

        for project in projects:
            prev_record = previous.find_project(project.id)
            record = MappedRecord(record_id=project.id, title=project.title)
            for index, source in enumerate(project.gallery_sources):
                prev_image = _image_at(prev_record, index)
                record.images.append(
                    await self._sync_slot(source, project_public_id(project.id, index), index, prev_image, result, retry_failed)
                )
            result.mapping.projects.append(record)

        for post in posts:
            if post.cover_source is None:
                continue
            prev_record = previous.find_post(post.id)
            prev_image = prev_record.images[0] if prev_record and prev_record.images else None
            record = MappedRecord(record_id=post.id, title=post.title)
            record.images.append(
                await self._sync_slot(post.cover_source, journal_public_id(post.id), 0, prev_image, result, retry_failed)
            )
            result.mapping.journal.append(record)

        for image_type, source_url in (
            ("profile", site_config.about.profile_image),
            ("showreel", site_config.showreel.placeholder_image),
        ):
            if source_url:
                result.mapping.config.images.append(
                    await self._sync_config_image(image_type, source_url, previous, result, retry_failed)
                )

        logger.info(
            f"Cloudinary sync completo: {result.uploaded} subidas, {result.skipped} sin cambios, "
            f"{result.failed} fallidas"
        )
        return result

    async def _sync_slot(
        self,
        source: ImageSource,
        public_id: str,
        index: int,
        prev_image: Optional[MappedImage],
        result: ImageSyncResult,
        retry_failed: bool,
    ) -> MappedImage:
        unchanged = (
            prev_image is not None
            and bool(prev_image.airtable_id)
            and prev_image.airtable_id == source.attachment_id
        )
        if unchanged and not (retry_failed and prev_image.error):
            result.skipped += 1
            return prev_image

        upload = await self._uploader.upload(source.url, public_id)
        if upload.success:
            result.uploaded += 1
        else:
            result.failed += 1
        return MappedImage(
            index=index,
            public_id=upload.public_id,
            cloudinary_url=upload.cloudinary_url,
            airtable_id=source.attachment_id,
            source_url=source.url,
            filename=source.filename,
            format=upload.format,
            size=source.size or upload.size,
            error=upload.error,
        )

    async def _sync_config_image(
        self,
        image_type: str,
        source_url: str,
        previous: ImageMapping,
        result: ImageSyncResult,
        retry_failed: bool,
    ) -> MappedImage:
        # Las imágenes de config se comparan por URL de origen
        prev_image = previous.find_config_image(image_type)
        if prev_image is not None and prev_image.original_url == source_url:
            if not (retry_failed and prev_image.error):
                result.skipped += 1
                return prev_image

        public_id = f"portfolio-config-{image_type}"
        upload = await self._uploader.upload(source_url, public_id)
        if upload.success:
            result.uploaded += 1
        else:
            result.failed += 1
        return MappedImage(
            public_id=upload.public_id,
            cloudinary_url=upload.cloudinary_url,
            source_url=source_url,
            format=upload.format,
            size=upload.size,
            error=upload.error,
            type=image_type,
            original_url=source_url,
        )


def _image_at(record: Optional[MappedRecord], index: int) -> Optional[MappedImage]:
    if record is None:
        return None
    return next((img for img in record.images if img.index == index), None)


def apply_image_mapping(
    projects: list[Project],
    posts: list[Post],
    site_config: SiteConfig,
    mapping: ImageMapping,
    settings: CloudinarySettings,
) -> None:
    """
    Reescribe galería/hero/portadas a URLs de entrega del CDN.

    Solo para entradas con cloudinaryUrl; el resto conserva la URL original.
    """
    if not settings.cloud_name:
        return

    for project in projects:
        record = mapping.find_project(project.id)
        if record is None:
            continue
        original_first = project.gallery[0] if project.gallery else None
        for image in record.images:
            if _is_current(image, project.gallery_sources, image.index):
                project.gallery[image.index] = build_delivery_url(settings, image.public_id, "ultra")
        if original_first and project.hero_image == original_first:
            first = _image_at(record, 0)
            if first is not None and _is_current(first, project.gallery_sources, 0):
                project.hero_image = build_delivery_url(settings, first.public_id, "hero")

    for post in posts:
        record = mapping.find_post(post.id)
        if record and record.images and post.cover_source and _is_current(record.images[0], [post.cover_source], 0):
            post.image_url = build_delivery_url(settings, record.images[0].public_id, "fine")

    profile = mapping.find_config_image("profile")
    if profile and profile.cloudinary_url and profile.original_url == site_config.about.profile_image:
        site_config.about.profile_image = build_delivery_url(settings, profile.public_id, "ultra")
    showreel = mapping.find_config_image("showreel")
    if showreel and showreel.cloudinary_url and showreel.original_url == site_config.showreel.placeholder_image:
        site_config.showreel.placeholder_image = build_delivery_url(settings, showreel.public_id, "hero")


def _is_current(image: MappedImage, sources: list[ImageSource], index: int) -> bool:
    """La entrada subió bien y corresponde al adjunto actual de ese slot."""
    return (
        bool(image.cloudinary_url)
        and index < len(sources)
        and image.airtable_id == sources[index].attachment_id
    )
