"""
Clasificación de links externos: videos vs links con etiqueta legible.
"""

from __future__ import annotations

import re
from typing import Optional
from urllib.parse import urlparse

from app.domain.entities.portfolio import ExternalLink

from .video_helpers import is_video_url


_LINKS_SPLIT_RE = re.compile(r"[,|\n]+")

_LABELS = {
    "imdb": "IMDb",
    "youtube": "YouTube",
    "linkedin": "LinkedIn",
    "instagram": "Instagram",
    "vimeo": "Vimeo",
    "facebook": "Facebook",
}


def label_from_url(url: str) -> str:
    """'https://www.imdb.com/title/x' -> 'IMDb'; dominio desconocido -> 'Example'."""
    try:
        hostname = urlparse(url).hostname or ""
    except ValueError:
        return "Link"
    core = hostname.replace("www.", "", 1).split(".")[0]
    if not core:
        return "Link"
    return _LABELS.get(core, core[:1].upper() + core[1:])


def parse_external_links(raw: Optional[str]) -> tuple[list[ExternalLink], list[str]]:
    """
    Separa un texto con URLs (coma, '|' o salto de línea) en links y videos.

    Solo se consideran items que empiezan con 'http'.
    """
    links: list[ExternalLink] = []
    videos: list[str] = []
    if not raw:
        return links, videos

    for item in (s.strip() for s in _LINKS_SPLIT_RE.split(raw)):
        if not item.startswith("http"):
            continue
        if is_video_url(item):
            videos.append(item)
        else:
            links.append(ExternalLink(label=label_from_url(item), url=item))
    return links, videos
