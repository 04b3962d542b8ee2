"""
Schemas de registros crudos por tabla (parse, don't validate).

Cada fila de Airtable se parsea en el borde a un modelo tipado; el
transformer nunca recibe dicts sueltos. Los campos que Airtable puede
devolver como escalar o como lista (lookups, multi-select) se normalizan
acá, una sola vez.
"""

from __future__ import annotations

from typing import Any, List, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from app.shared.exceptions.sync import RecordValidationError

from .types import AirtableRecord

RowT = TypeVar("RowT", bound="AirtableRow")


def _as_list(value: Any) -> List[str]:
    if value is None or value == "":
        return []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value if v is not None and str(v) != ""]
    return [str(value)]


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value if v is not None)
    return str(value)


class Attachment(BaseModel):
    """Adjunto de Airtable (el id es estable, la URL rota)."""

    model_config = ConfigDict(extra="ignore")

    id: str = ""
    url: str
    filename: str = ""
    size: Optional[int] = None
    type: Optional[str] = None


class AirtableRow(BaseModel):
    """Base: alias = nombre del field en Airtable; se ignoran fields extra."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    last_modified: Optional[str] = Field(default=None, alias="Last Modified")


class ProjectRow(AirtableRow):
    name: Optional[str] = Field(default=None, alias="Name")
    feature: bool = Field(default=False, alias="Feature")
    display_status: Optional[str] = Field(default=None, alias="Display Status")
    front_page: bool = Field(default=False, alias="Front Page")
    role: List[str] = Field(default_factory=list, alias="Role")
    release_date: Optional[str] = Field(default=None, alias="Release Date")
    work_date: Optional[str] = Field(default=None, alias="Work Date")
    project_type: Optional[str] = Field(default=None, alias="Project Type")
    kind: List[str] = Field(default_factory=list, alias="Kind")
    genre: List[str] = Field(default_factory=list, alias="Genre")
    about: Optional[str] = Field(default=None, alias="About")
    description: Optional[str] = Field(default=None, alias="Description")
    gallery: List[Attachment] = Field(default_factory=list, alias="Gallery")
    video_url: Optional[str] = Field(default=None, alias="Video URL")
    external_links: Optional[str] = Field(default=None, alias="External Links")
    festivals: Union[List[str], str, None] = Field(default=None, alias="Festivals")
    production_company: Union[List[str], str, None] = Field(default=None, alias="Production Company")
    client: Optional[str] = Field(default=None, alias="Client")
    credits_text: Optional[str] = Field(default=None, alias="Credits Text")
    credits: Optional[str] = Field(default=None, alias="Credits")
    related_article: List[str] = Field(default_factory=list, alias="Related Article")
    journal: List[str] = Field(default_factory=list, alias="Journal")

    @field_validator("feature", "front_page", mode="before")
    @classmethod
    def _truthy(cls, v: Any) -> bool:
        return bool(v)

    @field_validator("role", "kind", "genre", "related_article", "journal", mode="before")
    @classmethod
    def _list(cls, v: Any) -> List[str]:
        return _as_list(v)

    @field_validator(
        "name", "display_status", "release_date", "work_date", "project_type", "about",
        "description", "video_url", "external_links", "client", "credits_text", "credits",
        mode="before",
    )
    @classmethod
    def _text(cls, v: Any) -> Optional[str]:
        return _as_text(v)

    @property
    def raw_type(self) -> Optional[str]:
        return self.project_type or (self.kind[0] if self.kind else None)


class JournalRow(AirtableRow):
    title: Optional[str] = Field(default=None, alias="Title")
    date: Optional[str] = Field(default=None, alias="Date")
    status: str = Field(default="Draft", alias="Status")
    tags: List[str] = Field(default_factory=list, alias="Tags")
    content: Optional[str] = Field(default=None, alias="Content")
    cover_image: List[Attachment] = Field(default_factory=list, alias="Cover Image")
    related_project: List[str] = Field(default_factory=list, alias="Related Project")
    projects: List[str] = Field(default_factory=list, alias="Projects")
    links: Optional[str] = Field(default=None, alias="Links")
    external_links: Optional[str] = Field(default=None, alias="External Links")

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, v: Any) -> str:
        return str(v) if v else "Draft"

    @field_validator("tags", "related_project", "projects", mode="before")
    @classmethod
    def _list(cls, v: Any) -> List[str]:
        return _as_list(v)

    @field_validator("title", "date", "content", "links", "external_links", mode="before")
    @classmethod
    def _text(cls, v: Any) -> Optional[str]:
        return _as_text(v)


class SettingsRow(AirtableRow):
    portfolio_id: Optional[str] = Field(default=None, alias="Portfolio ID")
    showreel_enabled: bool = Field(default=False, alias="Showreel Enabled")
    showreel_url: Optional[str] = Field(default=None, alias="Showreel URL")
    showreel_placeholder: List[Attachment] = Field(default_factory=list, alias="Showreel Placeholder")
    contact_email: Optional[str] = Field(default=None, alias="Contact Email")
    contact_phone: Optional[str] = Field(default=None, alias="Contact Phone")
    rep_uk: Optional[str] = Field(default=None, alias="Rep UK")
    rep_usa: Optional[str] = Field(default=None, alias="Rep USA")
    instagram_url: Optional[str] = Field(default=None, alias="Instagram URL")
    vimeo_url: Optional[str] = Field(default=None, alias="Vimeo URL")
    linkedin_url: Optional[str] = Field(default=None, alias="LinkedIn URL")
    imdb_url: Optional[str] = Field(default=None, alias="IMDb URL")
    bio: Optional[str] = Field(default=None, alias="Bio")
    bio_text: Optional[str] = Field(default=None, alias="Bio Text")
    about_image: List[Attachment] = Field(default_factory=list, alias="About Image")
    allowed_roles: List[str] = Field(default_factory=list, alias="Allowed Roles")
    default_og_image: List[Attachment] = Field(default_factory=list, alias="Default OG Image")
    owner_name: Optional[str] = Field(default=None, alias="Owner Name")
    portfolio_owner: Optional[str] = Field(default=None, alias="Portfolio Owner")
    site_title: Optional[str] = Field(default=None, alias="Site Title")

    @field_validator("showreel_enabled", mode="before")
    @classmethod
    def _truthy(cls, v: Any) -> bool:
        return bool(v)

    @field_validator("allowed_roles", mode="before")
    @classmethod
    def _roles(cls, v: Any) -> List[str]:
        # Multi-select (lista) o texto separado por comas
        if isinstance(v, str):
            return [r.strip() for r in v.split(",") if r.strip()]
        return _as_list(v)

    @field_validator(
        "portfolio_id", "showreel_url", "contact_email", "contact_phone", "rep_uk", "rep_usa",
        "instagram_url", "vimeo_url", "linkedin_url", "imdb_url", "bio", "bio_text",
        "owner_name", "portfolio_owner", "site_title",
        mode="before",
    )
    @classmethod
    def _text(cls, v: Any) -> Optional[str]:
        return _as_text(v)


class FestivalRow(AirtableRow):
    display_name: Optional[str] = Field(default=None, alias="Display Name")
    name: Optional[str] = Field(default=None, alias="Name")
    award: Optional[str] = Field(default=None, alias="Award")

    @field_validator("display_name", "name", "award", mode="before")
    @classmethod
    def _text(cls, v: Any) -> Optional[str]:
        return _as_text(v)

    @property
    def label(self) -> str:
        return self.display_name or self.name or self.award or "Unknown Award"


class ClientRow(AirtableRow):
    company: Optional[str] = Field(default=None, alias="Company")
    company_name: Optional[str] = Field(default=None, alias="Company Name")
    client: Optional[str] = Field(default=None, alias="Client")

    @field_validator("company", "company_name", "client", mode="before")
    @classmethod
    def _text(cls, v: Any) -> Optional[str]:
        return _as_text(v)

    @property
    def label(self) -> str:
        return self.company or self.company_name or self.client or "Unknown"


def parse_row(model: Type[RowT], record: AirtableRecord, table: str) -> RowT:
    """Parsea un registro crudo o lanza RecordValidationError (nunca retorna dicts)."""
    try:
        return model.model_validate(record.fields)
    except ValidationError as e:
        raise RecordValidationError(table, record.record_id, e.errors(include_url=False)) from e
