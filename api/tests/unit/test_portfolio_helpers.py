"""
Tests unitarios para las utilidades de texto, video y links.
"""
from __future__ import annotations

import httpx
import pytest

from app.domain.entities.portfolio import ProjectType
from app.infrastructure.external.portfolio_sync.link_helpers import label_from_url, parse_external_links
from app.infrastructure.external.portfolio_sync.text_helpers import (
    MAX_SLUG_LENGTH,
    SlugRegistry,
    calculate_reading_time,
    infer_project_type,
    normalize_title,
    parse_credits_text,
    slugify,
)
from app.infrastructure.external.portfolio_sync.video_helpers import (
    VideoThumbnailResolver,
    first_video_url,
    get_video_id,
)


class TestSlugs:
    """Tests para slugify() y SlugRegistry."""

    def test_slugify_strips_diacritics(self) -> None:
        assert slugify("Canción de Año 2023") == "cancion-de-ano-2023"

    def test_slugify_never_empty(self) -> None:
        assert slugify("") == "untitled"
        assert slugify("¡¡¡") == "untitled"

    def test_slugify_truncates(self) -> None:
        assert len(slugify("a" * 200)) == MAX_SLUG_LENGTH

    def test_registry_adds_numeric_suffix(self) -> None:
        """Verifica -2, -3 en colisiones."""
        registry = SlugRegistry()

        assert registry.make_unique("Reel") == "reel"
        assert registry.make_unique("reel") == "reel-2"
        assert registry.make_unique("REEL") == "reel-3"
        assert "reel-2" in registry


class TestTextHelpers:
    """Tests para títulos, créditos, lectura y tipo."""

    def test_normalize_title(self) -> None:
        assert normalize_title("the_big-launch  ") == "The Big Launch"
        assert normalize_title(None) == "Untitled"

    def test_parse_credits_text(self) -> None:
        credits = parse_credits_text("Director: Ana | DOP: Luis\nMusic by: X: Y, Someone")

        assert [(c.role, c.name) for c in credits] == [
            ("Director", "Ana"),
            ("DOP", "Luis"),
            ("Music by", "X: Y"),
            ("Credit", "Someone"),
        ]

    def test_reading_time_minimum_one(self) -> None:
        assert calculate_reading_time("") == "1 min read"
        assert calculate_reading_time("<p>hola</p>") == "1 min read"

    def test_reading_time_rounds_up(self) -> None:
        content = " ".join(["palabra"] * 226)

        assert calculate_reading_time(content, 225) == "2 min read"

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("Short Film", ProjectType.NARRATIVE),
            ("TVC", ProjectType.COMMERCIAL),
            ("Music Video", ProjectType.MUSIC_VIDEO),
            ("documentary series", ProjectType.DOCUMENTARY),
            ("Podcast", ProjectType.UNCATEGORIZED),
            (None, ProjectType.UNCATEGORIZED),
        ],
    )
    def test_infer_project_type(self, raw, expected) -> None:
        assert infer_project_type(raw) == expected


class TestVideoHelpers:
    """Tests para get_video_id() y VideoThumbnailResolver."""

    def test_youtube_id(self) -> None:
        ref = get_video_id("https://www.youtube.com/watch?v=dQw4w9WgXcQ")

        assert ref.type == "youtube"
        assert ref.id == "dQw4w9WgXcQ"

    def test_vimeo_private_hash(self) -> None:
        ref = get_video_id("https://vimeo.com/123456/abcdef12")

        assert (ref.type, ref.id, ref.hash) == ("vimeo", "123456", "abcdef12")

    def test_vimeo_hash_from_query(self) -> None:
        ref = get_video_id("https://player.vimeo.com/video/123456?h=ff00")

        assert ref.hash == "ff00"

    def test_first_video_url(self) -> None:
        assert first_video_url(" , https://vimeo.com/1, https://vimeo.com/2") == "https://vimeo.com/1"

    @pytest.mark.asyncio
    async def test_youtube_thumbnail_without_network(self) -> None:
        """Verifica que YouTube no hace requests."""
        resolver = VideoThumbnailResolver(httpx.AsyncClient(transport=httpx.MockTransport(lambda r: 1 / 0)))

        thumb = await resolver.resolve("https://youtu.be/dQw4w9WgXcQ")

        assert thumb == "https://img.youtube.com/vi/dQw4w9WgXcQ/maxresdefault.jpg"

    @pytest.mark.asyncio
    async def test_vimeo_falls_back_to_v2(self) -> None:
        """Verifica oEmbed fallido -> API v2, con cache por URL."""
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.url.path)
            if request.url.path.endswith("oembed.json"):
                return httpx.Response(404)
            return httpx.Response(200, json=[{"thumbnail_large": "https://i.vimeocdn.com/x.jpg"}])

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            resolver = VideoThumbnailResolver(client)
            first = await resolver.resolve("https://vimeo.com/123456")
            second = await resolver.resolve("https://vimeo.com/123456")

        assert first == second == "https://i.vimeocdn.com/x.jpg"
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_network_error_returns_empty(self) -> None:
        """Verifica que un error de red nunca se propaga."""
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("down", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            thumb = await VideoThumbnailResolver(client).resolve("https://vimeo.com/123456")

        assert thumb == ""


class TestLinkHelpers:
    """Tests para parse_external_links()."""

    def test_splits_videos_and_labelled_links(self) -> None:
        links, videos = parse_external_links(
            "https://www.imdb.com/title/tt1 | https://vimeo.com/42\nnot-a-link, https://festival.org/x"
        )

        assert videos == ["https://vimeo.com/42"]
        assert [(l.label, l.url) for l in links] == [
            ("IMDb", "https://www.imdb.com/title/tt1"),
            ("Festival", "https://festival.org/x"),
        ]

    def test_label_for_unknown_domain(self) -> None:
        assert label_from_url("https://www.example.com") == "Example"
