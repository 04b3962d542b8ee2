"""
Record Transformer: filas crudas de Airtable -> Project / Post / SiteConfig.

Requisitos cubiertos:
- schemas tipados en el borde (filas inválidas se omiten y se reportan)
- resolución de referencias cruzadas (festivales, clientes)
- campos derivados: título normalizado, tipo, créditos, links, hero image,
  tiempo de lectura, slugs únicos en el espacio proyectos+posts
- la lógica no distingue registros frescos de reutilizados (full e
  incremental pasan por el mismo camino)
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Sequence, Type, TypeVar

from loguru import logger

from app.domain.entities.portfolio import (
    AboutConfig,
    ContactConfig,
    Credit,
    ImageSource,
    PortfolioSnapshot,
    Post,
    PostStatus,
    Project,
    ShowreelConfig,
    SiteConfig,
)
from app.shared.exceptions.sync import RecordValidationError

from .link_helpers import parse_external_links
from .schemas import (
    AirtableRow,
    Attachment,
    ClientRow,
    FestivalRow,
    JournalRow,
    ProjectRow,
    SettingsRow,
    parse_row,
)
from .sync_config import PortfolioSyncConfig
from .text_helpers import (
    SlugRegistry,
    calculate_reading_time,
    infer_project_type,
    normalize_title,
    parse_credits_text,
)
from .types import (
    CLIENTS_TABLE,
    FESTIVALS_TABLE,
    JOURNAL_TABLE,
    PROJECTS_TABLE,
    SETTINGS_TABLE,
    AirtableRecord,
    parse_iso_datetime,
    utc_now,
)
from .video_helpers import VideoThumbnailResolver

RowT = TypeVar("RowT", bound=AirtableRow)

_HIDDEN_STATUSES = {"", "hidden"}
_FEATURED_STATUSES = {"featured", "hero"}


@dataclass(frozen=True)
class LookupMaps:
    """recordId -> etiqueta legible, para resolver links entre tablas."""

    festivals: dict[str, str] = field(default_factory=dict)
    clients: dict[str, str] = field(default_factory=dict)


@dataclass
class TransformResult:
    projects: list[Project]
    posts: list[Post]
    config: SiteConfig
    invalid_records: list[RecordValidationError] = field(default_factory=list)


def _to_source(attachment: Attachment) -> ImageSource:
    return ImageSource(
        attachment_id=attachment.id,
        url=attachment.url,
        filename=attachment.filename,
        size=attachment.size,
    )


def resolve_awards(festivals: list[str] | str | None, lookup: dict[str, str]) -> list[str]:
    """Lista de ids -> nombres (fallback al id); texto -> una línea por premio."""
    if not festivals:
        return []
    if isinstance(festivals, str):
        return [line.strip() for line in festivals.split("\n") if line.strip()]
    return [lookup.get(fid, fid) for fid in festivals]


def resolve_production_company(value: list[str] | str | None, lookup: dict[str, str]) -> str:
    if not value:
        return ""
    if isinstance(value, str):
        return lookup.get(value, value)
    return ", ".join(lookup.get(cid, cid) for cid in value)


def is_project_visible(row: ProjectRow, allowed_roles: Sequence[str]) -> bool:
    """
    Visible si tiene 'Feature' o un 'Display Status' no oculto; con roles
    permitidos configurados, además debe compartir al menos un rol.
    """
    status = (row.display_status or "").strip().lower()
    if not row.feature and status in _HIDDEN_STATUSES:
        return False
    if allowed_roles:
        return any(role in allowed_roles for role in row.role)
    return True


def is_post_visible(row: JournalRow, now: datetime) -> bool:
    """Public siempre; Scheduled solo si su fecha ya pasó; el resto no."""
    if row.status == PostStatus.PUBLIC.value:
        return True
    if row.status == PostStatus.SCHEDULED.value and row.date:
        post_date = parse_iso_datetime(row.date)
        return post_date is not None and post_date <= now
    return False


class RecordTransformer:
    """Convierte registros crudos en el dataset publicable del portfolio."""

    def __init__(self, config: PortfolioSyncConfig, thumbnails: VideoThumbnailResolver) -> None:
        self._config = config
        self._thumbnails = thumbnails

    async def transform(
        self,
        raw_records: dict[str, list[AirtableRecord]],
        *,
        now: Optional[datetime] = None,
    ) -> TransformResult:
        now = now or utc_now()
        invalid: list[RecordValidationError] = []

        festivals = self._parse_all(FestivalRow, raw_records.get(FESTIVALS_TABLE, []), FESTIVALS_TABLE, invalid)
        clients = self._parse_all(ClientRow, raw_records.get(CLIENTS_TABLE, []), CLIENTS_TABLE, invalid)
        settings_rows = self._parse_all(SettingsRow, raw_records.get(SETTINGS_TABLE, []), SETTINGS_TABLE, invalid)
        project_rows = self._parse_all(ProjectRow, raw_records.get(PROJECTS_TABLE, []), PROJECTS_TABLE, invalid)
        journal_rows = self._parse_all(JournalRow, raw_records.get(JOURNAL_TABLE, []), JOURNAL_TABLE, invalid)

        lookups = LookupMaps(
            festivals={rid: row.label for rid, row in festivals},
            clients={rid: row.label for rid, row in clients},
        )
        site_config = self.build_site_config(settings_rows)

        # Orden determinístico (fecha desc, id) para que los slugs no dependan
        # del orden en que llegaron registros frescos y reutilizados
        project_rows = sorted(project_rows, key=lambda item: item[0])
        project_rows.sort(key=lambda item: item[1].release_date or item[1].work_date or "", reverse=True)
        visible_projects = [
            (rid, row) for rid, row in project_rows if is_project_visible(row, site_config.allowed_roles)
        ]
        projects = list(
            await asyncio.gather(
                *(self.transform_project(rid, row, lookups, site_config) for rid, row in visible_projects)
            )
        )

        journal_rows = sorted(journal_rows, key=lambda item: item[0])
        journal_rows.sort(key=lambda item: item[1].date or "", reverse=True)
        posts = [self.transform_post(rid, row) for rid, row in journal_rows if is_post_visible(row, now)]

        assign_slugs(projects, posts)

        logger.info(f"Transformados {len(projects)} proyectos y {len(posts)} posts ({len(invalid)} inválidos)")
        return TransformResult(projects=projects, posts=posts, config=site_config, invalid_records=invalid)

    def _parse_all(
        self,
        model: Type[RowT],
        records: list[AirtableRecord],
        table: str,
        invalid: list[RecordValidationError],
    ) -> list[tuple[str, RowT]]:
        parsed: list[tuple[str, RowT]] = []
        for record in records:
            try:
                parsed.append((record.record_id, parse_row(model, record, table)))
            except RecordValidationError as e:
                logger.warning(f"Se omite registro: {e.message}")
                invalid.append(e)
        return parsed

    def build_site_config(self, rows: list[tuple[str, SettingsRow]]) -> SiteConfig:
        """Fila de Settings del portfolio configurado (o la primera); defaults si no hay."""
        row: Optional[SettingsRow] = None
        if self._config.portfolio_id:
            row = next((r for _, r in rows if r.portfolio_id == self._config.portfolio_id), None)
        if row is None and rows:
            row = rows[0][1]
        if row is None:
            return SiteConfig(
                about=AboutConfig(profile_image=self._config.fallback_profile_image),
                portfolio_owner_name=self._config.portfolio_owner_name,
            )

        return SiteConfig(
            showreel=ShowreelConfig(
                enabled=row.showreel_enabled,
                video_url=row.showreel_url or "",
                placeholder_image=row.showreel_placeholder[0].url if row.showreel_placeholder else "",
            ),
            contact=ContactConfig(
                email=row.contact_email or "",
                phone=row.contact_phone or "",
                rep_uk=row.rep_uk or "",
                rep_usa=row.rep_usa or "",
                instagram=row.instagram_url or "",
                vimeo=row.vimeo_url or "",
                linkedin=row.linkedin_url or "",
                imdb=row.imdb_url or "",
            ),
            about=AboutConfig(
                bio=row.bio or row.bio_text or "",
                profile_image=row.about_image[0].url if row.about_image else self._config.fallback_profile_image,
            ),
            allowed_roles=row.allowed_roles,
            default_og_image=row.default_og_image[0].url if row.default_og_image else "",
            portfolio_owner_name=(
                row.owner_name or row.portfolio_owner or row.site_title or self._config.portfolio_owner_name
            ),
            site_title=row.site_title or "",
            last_modified=row.last_modified,
        )

    async def transform_project(
        self,
        record_id: str,
        row: ProjectRow,
        lookups: LookupMaps,
        site_config: SiteConfig,
    ) -> Project:
        allowed_roles = site_config.allowed_roles
        gallery_sources = [_to_source(att) for att in row.gallery]
        gallery = [src.url for src in gallery_sources]

        video_url = row.video_url or ""
        has_video = bool(video_url.strip())
        hero_image = gallery[0] if gallery else ""
        if not hero_image and has_video:
            hero_image = await self._thumbnails.resolve(video_url)
        if not hero_image:
            hero_image = site_config.default_og_image

        links, videos = parse_external_links(row.external_links)

        owner_credits = [
            Credit(role=role, name=site_config.portfolio_owner_name)
            for role in row.role
            if not allowed_roles or role in allowed_roles
        ]
        credits = owner_credits + parse_credits_text(row.credits_text or row.credits)

        raw_date = row.release_date or row.work_date or ""
        related = row.related_article or row.journal

        return Project(
            id=record_id,
            title=normalize_title(row.name),
            type=infer_project_type(row.raw_type),
            kinds=row.kind,
            genre=row.genre,
            production_company=resolve_production_company(row.production_company, lookups.clients),
            client=row.client or "",
            year=raw_date[:4],
            description=row.about or row.description or "",
            is_featured=row.front_page or (row.display_status or "").strip().lower() in _FEATURED_STATUSES,
            hero_image=hero_image,
            gallery=gallery,
            video_url=video_url,
            additional_videos=videos,
            awards=resolve_awards(row.festivals, lookups.festivals),
            credits=credits,
            external_links=links,
            related_article_id=related[0] if related else None,
            gallery_sources=gallery_sources,
        )

    def transform_post(self, record_id: str, row: JournalRow) -> Post:
        cover = row.cover_image[0] if row.cover_image else None
        raw_links = row.links or row.external_links or ""
        related = row.related_project or row.projects

        return Post(
            id=record_id,
            title=row.title or "Untitled",
            date=row.date or "",
            status=PostStatus(row.status),
            tags=row.tags,
            content=row.content or "",
            reading_time=calculate_reading_time(row.content, self._config.reading_words_per_minute),
            image_url=cover.url if cover else "",
            related_project_id=related[0] if related else None,
            related_links=[s.strip() for s in raw_links.split(",") if s.strip()],
            cover_source=_to_source(cover) if cover else None,
        )


def assign_slugs(projects: list[Project], posts: list[Post]) -> None:
    """Proyectos ('titulo año') y luego posts ('titulo fecha') en un mismo registro."""
    registry = SlugRegistry()
    for project in projects:
        base = project.title or project.id or "project"
        project.slug = registry.make_unique(f"{base} {project.year}" if project.year else base)
    for post in posts:
        base = post.title or post.id or "post"
        post.slug = registry.make_unique(f"{base} {post.date}" if post.date else base)


def ensure_unique_slugs(snapshot: PortfolioSnapshot) -> bool:
    """True si todo proyecto/post tiene slug no vacío y único en el espacio combinado."""
    slugs = [p.slug for p in snapshot.projects] + [p.slug for p in snapshot.posts]
    return all(slugs) and len(slugs) == len(set(slugs))
