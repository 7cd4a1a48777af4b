"""Data models module for the Wine List Generator."""

from winelist.models.schemas import (
    # Base Models
    BaseModel,
    FrozenModel,

    # Records
    CleanedRecord,
    ZoneDescriptor,
    ZoneMapping,

    # Validation Output
    NormalizedWineEntry,
    WarningRecord,
    InvalidRecord,
    ClassificationResult,

    # Document
    VenueInfo,
    CategoryDefinition,
    DocumentMeta,
    MainCover,
    WineSection,
    DocumentModel,

    # Publishing
    Attachment,
    PublishedRecord,

    # Pipeline
    GenerationRequest,
    GenerationResult,
)

__all__ = [
    "BaseModel",
    "FrozenModel",
    "CleanedRecord",
    "ZoneDescriptor",
    "ZoneMapping",
    "NormalizedWineEntry",
    "WarningRecord",
    "InvalidRecord",
    "ClassificationResult",
    "VenueInfo",
    "CategoryDefinition",
    "DocumentMeta",
    "MainCover",
    "WineSection",
    "DocumentModel",
    "Attachment",
    "PublishedRecord",
    "GenerationRequest",
    "GenerationResult",
]
