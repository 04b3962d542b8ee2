"""
Entidades del dominio.
"""
from app.domain.entities.portfolio import (
    ImageMapping,
    PortfolioSnapshot,
    Post,
    PostStatus,
    Project,
    ProjectType,
    SiteConfig,
    SyncMetadata,
    SyncMode,
    SyncStats,
)

__all__ = [
    "ImageMapping",
    "PortfolioSnapshot",
    "Post",
    "PostStatus",
    "Project",
    "ProjectType",
    "SiteConfig",
    "SyncMetadata",
    "SyncMode",
    "SyncStats",
]
