"""
Tests unitarios para sitemap.xml y share-meta.json.
"""
from __future__ import annotations

from datetime import date, datetime, timezone

from app.domain.entities.portfolio import Post, Project, ProjectType, SiteConfig
from app.infrastructure.external.portfolio_sync.artifacts import (
    STATIC_ROUTES,
    generate_share_meta,
    generate_sitemap,
    share_meta_hash,
)


PROJECT = Project(id="rec1", title="Fish & Chips", slug="fish-chips-2023", year="2023", type=ProjectType.NARRATIVE)
POST = Post(id="post1", title="Hola", slug="hola-2025-01-02", date="2025-01-02", content="Uno  dos\n tres")


class TestSitemap:
    """Tests para generate_sitemap()."""

    def test_one_entry_per_route_project_and_post(self) -> None:
        xml = generate_sitemap([PROJECT], [POST], "https://portfolio.test/", today=date(2025, 3, 1))

        assert xml.count("<url>") == len(STATIC_ROUTES) + 2
        assert "<loc>https://portfolio.test/work/fish-chips-2023</loc>" in xml
        assert "<loc>https://portfolio.test/journal/hola-2025-01-02</loc>" in xml
        assert "<lastmod>2023-01-01</lastmod>" in xml
        assert "<lastmod>2025-03-01</lastmod>" in xml

    def test_narrative_projects_have_higher_priority(self) -> None:
        xml = generate_sitemap([PROJECT], [], "https://portfolio.test", today=date(2025, 3, 1))

        project_entry = xml.split("/work/fish-chips-2023")[1].split("</url>")[0]
        assert "<priority>0.9</priority>" in project_entry


class TestShareMeta:
    """Tests para generate_share_meta() / share_meta_hash()."""

    def test_manifest_shape(self) -> None:
        meta = generate_share_meta(
            [PROJECT], [POST], SiteConfig(default_og_image="https://x/og.jpg"),
            generated_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
        )

        assert meta["generatedAt"] == "2025-01-01T00:00:00.000Z"
        assert meta["projects"][0]["type"] == "Narrative"
        assert meta["posts"][0]["description"] == "Uno dos tres"
        assert meta["config"]["defaultOgImage"] == "https://x/og.jpg"

    def test_hash_ignores_generation_time(self) -> None:
        """Verifica que el hash solo cambia con el contenido."""
        first = generate_share_meta([PROJECT], [POST], SiteConfig(), datetime(2025, 1, 1, tzinfo=timezone.utc))
        second = generate_share_meta([PROJECT], [POST], SiteConfig(), datetime(2025, 6, 1, tzinfo=timezone.utc))
        changed = generate_share_meta([PROJECT], [], SiteConfig(), datetime(2025, 6, 1, tzinfo=timezone.utc))

        assert share_meta_hash(first) == share_meta_hash(second)
        assert share_meta_hash(first) != share_meta_hash(changed)
