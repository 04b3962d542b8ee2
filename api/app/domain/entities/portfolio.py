"""
Entidades de dominio del portfolio.

Proyectos, posts del journal y la configuración del sitio, tal como se
publican en el snapshot. Se serializan en camelCase (contrato con el
frontend) mediante alias de pydantic.

El snapshot guarda además los registros crudos y los timestamps de la
corrida anterior; las claves con prefijo "_" nunca se exponen por la API.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base con alias camelCase y carga tolerante por nombre o alias."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProjectType(str, Enum):
    """Tipo de proyecto inferido desde texto libre (heurística)."""
    NARRATIVE = "Narrative"
    COMMERCIAL = "Commercial"
    MUSIC_VIDEO = "Music Video"
    DOCUMENTARY = "Documentary"
    UNCATEGORIZED = "Uncategorized"


class PostStatus(str, Enum):
    """Estado editorial de un post (controla visibilidad)."""
    DRAFT = "Draft"
    SCHEDULED = "Scheduled"
    PUBLIC = "Public"


class SyncMode(str, Enum):
    FULL = "full"
    INCREMENTAL = "incremental"
    CACHED = "cached"


class ImageSource(CamelModel):
    """Adjunto de Airtable: el id es estable aunque la URL rote."""
    attachment_id: str = ""
    url: str
    filename: str = ""
    size: Optional[int] = None


class Credit(CamelModel):
    role: str
    name: str


class ExternalLink(CamelModel):
    label: str
    url: str


class Project(CamelModel):
    """Proyecto del portfolio. Se recrea completo en cada sync."""

    id: str
    title: str
    slug: str = ""
    type: ProjectType = ProjectType.UNCATEGORIZED
    kinds: List[str] = Field(default_factory=list)
    genre: List[str] = Field(default_factory=list)
    production_company: str = ""
    client: str = ""
    year: str = ""
    description: str = ""
    is_featured: bool = False
    hero_image: str = ""
    gallery: List[str] = Field(default_factory=list)
    video_url: str = ""
    additional_videos: List[str] = Field(default_factory=list)
    awards: List[str] = Field(default_factory=list)
    credits: List[Credit] = Field(default_factory=list)
    external_links: List[ExternalLink] = Field(default_factory=list)
    related_article_id: Optional[str] = None

    # Solo vive durante la corrida (image sync); no se persiste
    gallery_sources: List[ImageSource] = Field(default_factory=list, exclude=True)


class Post(CamelModel):
    """Entrada del journal."""

    id: str
    title: str
    slug: str = ""
    date: str = ""
    status: PostStatus = PostStatus.PUBLIC
    tags: List[str] = Field(default_factory=list)
    content: str = ""
    reading_time: str = "1 min read"
    image_url: str = ""
    related_project_id: Optional[str] = None
    related_links: List[str] = Field(default_factory=list)
    source: str = "local"

    cover_source: Optional[ImageSource] = Field(default=None, exclude=True)


class ShowreelConfig(CamelModel):
    enabled: bool = False
    video_url: str = ""
    placeholder_image: str = ""


class ContactConfig(CamelModel):
    email: str = ""
    phone: str = ""
    rep_uk: str = Field(default="", alias="repUK")
    rep_usa: str = Field(default="", alias="repUSA")
    instagram: str = ""
    vimeo: str = ""
    linkedin: str = ""
    imdb: str = ""


class AboutConfig(CamelModel):
    bio: str = ""
    profile_image: str = ""


class SiteConfig(CamelModel):
    """Configuración singleton del sitio (una por snapshot)."""

    showreel: ShowreelConfig = Field(default_factory=ShowreelConfig)
    contact: ContactConfig = Field(default_factory=ContactConfig)
    about: AboutConfig = Field(default_factory=AboutConfig)
    allowed_roles: List[str] = Field(default_factory=list)
    default_og_image: str = ""
    portfolio_owner_name: str = ""
    site_title: str = ""
    last_modified: Optional[str] = None


class SyncStats(CamelModel):
    """Estadísticas de una corrida de sync (observabilidad)."""

    mode: SyncMode
    api_calls: int = 0
    api_calls_saved: int = 0
    new_records: int = 0
    changed_records: int = 0
    deleted_records: int = 0
    unchanged_records: int = 0
    invalid_records: int = 0
    images_uploaded: int = 0
    images_skipped: int = 0
    images_failed: int = 0


class SyncMetadata(CamelModel):
    """Baseline para la detección de cambios: {tabla: {recordId: lastModified}}."""

    last_sync: Optional[datetime] = None
    timestamps: Dict[str, Dict[str, Optional[str]]] = Field(default_factory=dict)


class PortfolioSnapshot(CamelModel):
    """Dataset completo producido por una corrida de sync."""

    projects: List[Project] = Field(default_factory=list)
    posts: List[Post] = Field(default_factory=list)
    config: SiteConfig = Field(default_factory=SiteConfig)
    last_updated: datetime
    version: str = "1.0"
    source: str = "scheduled-sync"
    sync_stats: Optional[SyncStats] = None
    raw_records: Dict[str, List[Dict[str, Any]]] = Field(default_factory=dict, alias="_rawRecords")
    sync_metadata: SyncMetadata = Field(default_factory=SyncMetadata)

    def to_document(self) -> Dict[str, Any]:
        """Documento JSON completo (incluye registros crudos para el próximo sync)."""
        return self.model_dump(mode="json", by_alias=True)

    def to_public_payload(self) -> Dict[str, Any]:
        """Payload para la API: se eliminan las claves internas con prefijo '_'."""
        return {k: v for k, v in self.to_document().items() if not k.startswith("_")}

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "PortfolioSnapshot":
        return cls.model_validate(document)


class MappedImage(CamelModel):
    """
    Entrada del mapping de imágenes.

    - index/airtable_id: slot de galería (o portada) y su id estable
    - cloudinary_url vacío + error: la subida falló, se usa source_url
    - type/original_url: imágenes de configuración (perfil, showreel)
    """

    index: int = 0
    public_id: str
    cloudinary_url: str = ""
    airtable_id: str = ""
    source_url: str = ""
    filename: str = ""
    format: Optional[str] = None
    size: Optional[int] = None
    error: Optional[str] = None
    type: Optional[str] = None
    original_url: Optional[str] = None


class MappedRecord(CamelModel):
    record_id: str
    title: str = ""
    images: List[MappedImage] = Field(default_factory=list)


class MappedConfigImages(CamelModel):
    images: List[MappedImage] = Field(default_factory=list)


class ImageMapping(CamelModel):
    """Mapping airtableId -> URL de CDN, por proyecto/post."""

    generated_at: datetime
    projects: List[MappedRecord] = Field(default_factory=list)
    journal: List[MappedRecord] = Field(default_factory=list)
    config: MappedConfigImages = Field(default_factory=MappedConfigImages)

    def find_project(self, record_id: str) -> Optional[MappedRecord]:
        return next((p for p in self.projects if p.record_id == record_id), None)

    def find_post(self, record_id: str) -> Optional[MappedRecord]:
        return next((p for p in self.journal if p.record_id == record_id), None)

    def find_config_image(self, image_type: str) -> Optional[MappedImage]:
        return next((img for img in self.config.images if img.type == image_type), None)
