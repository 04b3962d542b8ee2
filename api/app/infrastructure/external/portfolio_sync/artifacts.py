"""
Artefactos derivados del snapshot: sitemap.xml y share-meta.json.

Los consume un componente aparte (inyección de meta tags por página).
"""

from __future__ import annotations

import hashlib
import json
from datetime import date, datetime
from typing import Any, Optional
from xml.sax.saxutils import escape

from app.domain.entities.portfolio import Post, Project, ProjectType, SiteConfig

from .types import isoformat_z, utc_now


SITEMAP_FILENAME = "sitemap.xml"
SHARE_META_FILENAME = "share-meta.json"
SHARE_META_HASH_FILENAME = "share-meta.hash"

SHARE_DESCRIPTION_LENGTH = 220

# (ruta, changefreq, prioridad)
STATIC_ROUTES: list[tuple[str, str, str]] = [
    ("/", "weekly", "1.0"),
    ("/work", "monthly", "0.9"),
    ("/journal", "monthly", "0.8"),
    ("/about", "yearly", "0.7"),
]


def _url_entry(loc: str, lastmod: str, changefreq: str, priority: str) -> str:
    return (
        "  <url>\n"
        f"    <loc>{escape(loc)}</loc>\n"
        f"    <lastmod>{escape(lastmod)}</lastmod>\n"
        f"    <changefreq>{changefreq}</changefreq>\n"
        f"    <priority>{priority}</priority>\n"
        "  </url>\n"
    )


def _project_priority(project: Project) -> str:
    if project.type == ProjectType.NARRATIVE:
        return "0.9"
    return "0.8" if project.is_featured else "0.7"


def generate_sitemap(
    projects: list[Project],
    posts: list[Post],
    site_url: str,
    today: Optional[date] = None,
) -> str:
    """Una entrada por ruta estática + una por proyecto/post."""
    base_url = site_url.rstrip("/")
    current = (today or utc_now().date()).isoformat()

    parts = [
        '<?xml version="1.0" encoding="UTF-8"?>\n',
        '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">\n',
    ]
    for route, changefreq, priority in STATIC_ROUTES:
        parts.append(_url_entry(f"{base_url}{route}", current, changefreq, priority))

    for project in projects:
        lastmod = f"{project.year}-01-01" if project.year else current
        parts.append(_url_entry(f"{base_url}/work/{project.slug}", lastmod, "monthly", _project_priority(project)))

    for post in posts:
        parts.append(_url_entry(f"{base_url}/journal/{post.slug}", post.date or current, "monthly", "0.7"))

    parts.append("</urlset>")
    return "".join(parts)


def _collapse_whitespace(text: str) -> str:
    return " ".join(text.split())


def generate_share_meta(
    projects: list[Project],
    posts: list[Post],
    config: SiteConfig,
    generated_at: Optional[datetime] = None,
) -> dict[str, Any]:
    """Manifest para previews sociales (id/slug/título/descripción/imagen)."""
    return {
        "generatedAt": isoformat_z(generated_at or utc_now()),
        "projects": [
            {
                "id": p.id,
                "slug": p.slug,
                "title": p.title,
                "description": (p.description or "")[:SHARE_DESCRIPTION_LENGTH],
                "image": p.hero_image or "",
                "type": p.type.value,
                "year": p.year,
            }
            for p in projects
        ],
        "posts": [
            {
                "id": p.id,
                "slug": p.slug,
                "title": p.title,
                "description": _collapse_whitespace(p.content or "")[:SHARE_DESCRIPTION_LENGTH],
                "image": p.image_url or "",
                "type": "article",
                "date": p.date,
            }
            for p in posts
        ],
        "config": {"defaultOgImage": config.default_og_image or ""},
    }


def share_meta_hash(share_meta: dict[str, Any]) -> str:
    """sha256 del contenido (sin generatedAt) para detectar cambios reales."""
    projects = json.dumps(share_meta.get("projects", []), sort_keys=True, ensure_ascii=False)
    posts = json.dumps(share_meta.get("posts", []), sort_keys=True, ensure_ascii=False)
    return hashlib.sha256((projects + posts).encode("utf-8")).hexdigest()
