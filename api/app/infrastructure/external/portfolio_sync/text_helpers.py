"""
Utilidades de texto puras: títulos, slugs, créditos, tiempo de lectura y
tipo de proyecto.
"""

from __future__ import annotations

import math
import re
import unicodedata
from typing import Optional

from app.domain.entities.portfolio import Credit, ProjectType


MAX_SLUG_LENGTH = 80
DEFAULT_WORDS_PER_MINUTE = 225

_HTML_TAG_RE = re.compile(r"<[^>]*>")
_CREDITS_SPLIT_RE = re.compile(r"[,|\n]+")
_WORD_RE = re.compile(r"\w\S*")

# Orden = prioridad (gana el primer match)
_TYPE_KEYWORDS: list[tuple[tuple[str, ...], ProjectType]] = [
    (("short", "feature", "narrative"), ProjectType.NARRATIVE),
    (("commercial", "tvc", "brand"), ProjectType.COMMERCIAL),
    (("music",), ProjectType.MUSIC_VIDEO),
    (("documentary",), ProjectType.DOCUMENTARY),
]


def normalize_title(title: Optional[str]) -> str:
    """'the_big-launch  ' -> 'The Big Launch'. Vacío -> 'Untitled'."""
    if not title:
        return "Untitled"
    clean = re.sub(r"[_-]", " ", title)
    clean = re.sub(r"\s+", " ", clean).strip()
    if not clean:
        return "Untitled"
    return _WORD_RE.sub(lambda m: m.group(0)[0].upper() + m.group(0)[1:].lower(), clean)


def slugify(text: Optional[str]) -> str:
    """
    Slug ASCII: NFKD sin diacríticos, minúsculas, no alfanuméricos -> '-'.

    Nunca retorna vacío ('untitled').
    """
    if not text:
        return "untitled"
    normalized = unicodedata.normalize("NFKD", str(text))
    normalized = "".join(ch for ch in normalized if not unicodedata.combining(ch)).lower()
    slug = re.sub(r"[^a-z0-9]+", "-", normalized).strip("-")
    slug = re.sub(r"-{2,}", "-", slug)
    slug = slug[:MAX_SLUG_LENGTH].rstrip("-")
    return slug or "untitled"


class SlugRegistry:
    """
    Slugs únicos dentro de una corrida de sync.

    El espacio es compartido entre proyectos y posts; las colisiones se
    resuelven con sufijo numérico (-2, -3, ...).
    """

    def __init__(self) -> None:
        self._used: set[str] = set()

    def make_unique(self, text: Optional[str]) -> str:
        candidate = slugify(text)
        if candidate not in self._used:
            self._used.add(candidate)
            return candidate

        suffix = 2
        while f"{candidate}-{suffix}" in self._used:
            suffix += 1
        slug = f"{candidate}-{suffix}"
        self._used.add(slug)
        return slug

    def __contains__(self, slug: str) -> bool:
        return slug in self._used


def parse_credits_text(text: Optional[str]) -> list[Credit]:
    """
    'Director: Ana, DOP: Luis' -> [Credit(Director, Ana), Credit(DOP, Luis)].

    Items sin ':' quedan con rol 'Credit'. Solo se corta en el primer ':'.
    """
    if not text:
        return []
    credits: list[Credit] = []
    for item in (s.strip() for s in _CREDITS_SPLIT_RE.split(text)):
        if not item:
            continue
        role, sep, name = item.partition(":")
        if sep:
            credits.append(Credit(role=role.strip(), name=name.strip()))
        else:
            credits.append(Credit(role="Credit", name=item))
    return credits


def strip_html(content: str) -> str:
    return _HTML_TAG_RE.sub("", content)


def calculate_reading_time(content: Optional[str], words_per_minute: int = DEFAULT_WORDS_PER_MINUTE) -> str:
    """Palabras / wpm, redondeo hacia arriba, mínimo 1: 'N min read'."""
    if not content:
        return "1 min read"
    word_count = len(strip_html(content).split())
    minutes = max(1, math.ceil(word_count / words_per_minute))
    return f"{minutes} min read"


def infer_project_type(raw_type: Optional[str]) -> ProjectType:
    """
    Heurística por palabras clave sobre el texto libre de tipo/kind.

    Best-effort: un título ambiguo puede clasificarse mal.
    """
    if not raw_type:
        return ProjectType.UNCATEGORIZED
    lowered = raw_type.strip().lower()
    for project_type in ProjectType:
        if lowered == project_type.value.lower():
            return project_type
    for keywords, project_type in _TYPE_KEYWORDS:
        if any(k in lowered for k in keywords):
            return project_type
    return ProjectType.UNCATEGORIZED
