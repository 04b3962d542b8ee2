"""
Utilidades de video: extracción de ids (YouTube/Vimeo) y resolución de
thumbnails.

La resolución de thumbnails nunca lanza: si no hay thumbnail se retorna ''.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

import httpx
from loguru import logger


_YOUTUBE_RE = re.compile(
    r"(?:youtube\.com/(?:[^/]+/.+/|(?:v|e(?:mbed)?|shorts|live)/|.*[?&]v=)|youtu\.be/)([^\"&?/\s]{11})"
)
_VIMEO_RE = re.compile(
    r"(?:vimeo\.com/|player\.vimeo\.com/video/)"
    r"(?:(?:channels/[a-zA-Z0-9]+/)|(?:groups/[a-zA-Z0-9]+/videos/)|(?:manage/videos/))?"
    r"([0-9]+)(?:/([a-zA-Z0-9]+))?"
)
_VIMEO_HASH_RE = re.compile(r"[?&]h=([a-zA-Z0-9]+)")

VIMEO_OEMBED_URL = "https://vimeo.com/api/oembed.json"
VIMEO_V2_URL = "https://vimeo.com/api/v2/video/{id}.json"
YOUTUBE_THUMBNAIL_URL = "https://img.youtube.com/vi/{id}/maxresdefault.jpg"


@dataclass(frozen=True)
class VideoRef:
    """Referencia a un video de plataforma conocida."""

    type: str  # "youtube" | "vimeo"
    id: str
    hash: Optional[str] = None


def get_video_id(url: Optional[str]) -> Optional[VideoRef]:
    """Extrae plataforma + id (y hash privado de Vimeo). None si no es video."""
    if not url:
        return None
    clean = url.strip()

    yt = _YOUTUBE_RE.search(clean)
    if yt:
        return VideoRef(type="youtube", id=yt.group(1))

    vm = _VIMEO_RE.search(clean)
    if vm:
        video_hash = vm.group(2)
        if not video_hash and "?" in clean:
            query_hash = _VIMEO_HASH_RE.search(clean)
            if query_hash:
                video_hash = query_hash.group(1)
        return VideoRef(type="vimeo", id=vm.group(1), hash=video_hash)

    return None


def is_video_url(url: str) -> bool:
    return get_video_id(url) is not None


def first_video_url(raw: Optional[str]) -> str:
    """El campo 'Video URL' admite varias URLs separadas por coma: se usa la primera."""
    if not raw:
        return ""
    for part in raw.split(","):
        if part.strip():
            return part.strip()
    return ""


class VideoThumbnailResolver:
    """
    Resuelve thumbnails de video:

    - YouTube: URL conocida a partir del id (sin red)
    - Vimeo: oEmbed primero (soporta privados/unlisted); si falla y el id es
      numérico, API pública v2
    - Resultados cacheados por URL durante la vida del resolver (una corrida)
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None, *, timeout_s: float = 5.0) -> None:
        self._client = client
        self._timeout_s = timeout_s
        self._cache: dict[str, str] = {}

    async def resolve(self, video_field: Optional[str]) -> str:
        url = first_video_url(video_field)
        if not url:
            return ""
        if url in self._cache:
            return self._cache[url]

        thumbnail = await self._resolve_uncached(url)
        self._cache[url] = thumbnail
        return thumbnail

    async def _resolve_uncached(self, url: str) -> str:
        ref = get_video_id(url)
        if ref is None:
            return ""
        if ref.type == "youtube":
            return YOUTUBE_THUMBNAIL_URL.format(id=ref.id)

        if self._client is not None:
            return await self._resolve_vimeo(self._client, url, ref)
        async with httpx.AsyncClient(timeout=self._timeout_s) as client:
            return await self._resolve_vimeo(client, url, ref)

    async def _resolve_vimeo(self, client: httpx.AsyncClient, url: str, ref: VideoRef) -> str:
        try:
            response = await client.get(VIMEO_OEMBED_URL, params={"url": url}, timeout=self._timeout_s)
            if response.status_code == 200:
                data = response.json()
                return data.get("thumbnail_url") or data.get("thumbnail_url_with_play_button") or ""
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Vimeo oEmbed falló para {url}, probando API v2: {e}")

        if not ref.id.isdigit():
            return ""

        try:
            response = await client.get(VIMEO_V2_URL.format(id=ref.id), timeout=self._timeout_s)
            if response.status_code == 200:
                data = response.json()
                if data:
                    return data[0].get("thumbnail_large") or ""
        except (httpx.HTTPError, ValueError, LookupError, AttributeError) as e:
            logger.warning(f"No se pudo obtener thumbnail de {url}: {e}")
        return ""
