"""
Pydantic models and schemas for the wine list pipeline.

This module defines the data structures flowing through the pipeline, from the
cleaned Airtable record to the assembled document and the published record.

Models:
    - CleanedRecord: Whitelisted projection of a raw Airtable record
    - ZoneDescriptor: Zone metadata used for sorting and display
    - NormalizedWineEntry: Validated wine entry
    - ClassificationResult: Valid / warning / invalid partition of a record set
    - DocumentModel: Document handed to the renderer
    - PublishedRecord: Wine list record with its uploaded attachment
    - GenerationRequest: Parameters of a generation run
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Optional, Self

from pydantic import (
    BaseModel as PydanticBaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)


# =============================================================================
# Base Configuration
# =============================================================================

class BaseModel(PydanticBaseModel):
    """Base model with common configuration for all schemas."""

    model_config = ConfigDict(
        populate_by_name=True,
        use_enum_values=True,
    )

    def to_json(self, **kwargs) -> str:
        """Serialize model to JSON string."""
        return self.model_dump_json(indent=2, **kwargs)

    def to_dict(self, **kwargs) -> dict[str, Any]:
        """Serialize model to dictionary."""
        return self.model_dump(**kwargs)

    @classmethod
    def from_json(cls, json_str: str) -> Self:
        """Deserialize model from JSON string."""
        return cls.model_validate_json(json_str)


class FrozenModel(BaseModel):
    """Immutable model; pipeline stages build new values instead of mutating."""

    model_config = ConfigDict(
        populate_by_name=True,
        use_enum_values=True,
        frozen=True,
    )


# =============================================================================
# Records
# =============================================================================

class CleanedRecord(FrozenModel):
    """Airtable record restricted to the whitelisted wine fields."""
    id: Optional[str] = None
    created_time: Optional[str] = Field(default=None, alias="createdTime")
    fields: dict[str, Any] = Field(default_factory=dict)

    def as_raw(self) -> dict[str, Any]:
        """Return the record in Airtable's wire shape."""
        return {"id": self.id, "createdTime": self.created_time, "fields": dict(self.fields)}


class ZoneDescriptor(FrozenModel):
    """Zone metadata resolved from the zones table."""
    id: str
    name: Optional[str] = None
    region: Optional[str] = None
    country: Optional[str] = None
    priority: Optional[float] = None


ZoneMapping = dict[str, ZoneDescriptor]


# =============================================================================
# Validation Output
# =============================================================================

class NormalizedWineEntry(FrozenModel):
    """A wine ready for the document."""
    name: Optional[str] = None
    producer: Optional[str] = None
    zone: Optional[str] = None
    price_eur: Optional[float] = None
    category: Optional[str] = None
    region: Optional[str] = None
    grapes: Optional[str] = None
    production_location: Optional[str] = None
    aging: Optional[str] = None
    abv: Optional[str] = None

    def as_item(self) -> dict[str, Any]:
        """Item shape used inside a document section (section keys lifted out)."""
        return self.model_dump(exclude={"category", "region", "zone"}, exclude_none=True)


class WarningRecord(FrozenModel):
    """Record with every required field but some optional fields missing."""
    id: Optional[str] = None
    warning_fields: list[str] = Field(default_factory=list)
    entry: Optional[NormalizedWineEntry] = None


class InvalidRecord(FrozenModel):
    """Record excluded because required fields are missing or malformed."""
    id: Optional[str] = None
    invalid_fields: list[str] = Field(default_factory=list)
    warning_fields: list[str] = Field(default_factory=list)


class ClassificationResult(BaseModel):
    """Partition of a record set; each input record lands in exactly one bucket."""
    valid_records: list[NormalizedWineEntry] = Field(default_factory=list)
    warning_records: list[WarningRecord] = Field(default_factory=list)
    invalid_records: list[InvalidRecord] = Field(default_factory=list)
    categories: list[str] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.valid_records) + len(self.warning_records) + len(self.invalid_records)

    def summary(self) -> dict[str, int]:
        """Counts per bucket, as shown to operators."""
        return {
            "valid": len(self.valid_records),
            "warning": len(self.warning_records),
            "invalid": len(self.invalid_records),
            "categories": len(self.categories),
        }


# =============================================================================
# Venue and Document
# =============================================================================

class VenueInfo(BaseModel):
    """The venue (enoteca) a wine list is generated for."""
    id: str
    name: Optional[str] = None
    description: Optional[str] = None
    logo_url: Optional[str] = None
    qr_code_url: Optional[str] = None
    digital_menu_url: Optional[str] = None


class CategoryDefinition(BaseModel):
    """Category entry of the document, optionally overridden from a definitions file."""
    id: str
    name: str
    subtitle: Optional[str] = None
    note: Optional[str] = None
    icon_path: Optional[str] = None
    icon_alt: Optional[str] = None


class DocumentMeta(BaseModel):
    id: str
    date: str
    ref: str


class MainCover(BaseModel):
    venue_name: Optional[str] = None
    description: str
    logo: Optional[str] = None
    qr_code: Optional[str] = None
    digital_menu_url: Optional[str] = None


class WineSection(BaseModel):
    """All wines sharing one (category, region, zone) triple."""
    category: Optional[str] = None
    region: Optional[str] = None
    zone: Optional[str] = None
    items: list[dict[str, Any]] = Field(default_factory=list)


class DocumentModel(BaseModel):
    """Document consumed by the renderer."""
    meta: DocumentMeta
    main_cover: MainCover
    categories: list[CategoryDefinition] = Field(default_factory=list)
    wines: list[WineSection] = Field(default_factory=list)

    @property
    def item_count(self) -> int:
        return sum(len(section.items) for section in self.wines)

    def to_serializable(self) -> dict[str, Any]:
        """Plain nested dict in declaration order, without empty optional keys."""
        return self.model_dump(exclude_none=True)


# =============================================================================
# Publishing
# =============================================================================

class Attachment(BaseModel):
    id: Optional[str] = None
    url: Optional[str] = None
    filename: Optional[str] = None
    size: Optional[int] = None
    type: Optional[str] = None


class PublishedRecord(BaseModel):
    """Wine list record after create, upload and verification."""
    id: str
    created_time: Optional[str] = None
    fields: dict[str, Any] = Field(default_factory=dict)
    attachment_field: str
    attachments: list[Attachment] = Field(default_factory=list)
    filename: str


# =============================================================================
# Generation Request / Result
# =============================================================================

RECORD_ID_PATTERN = re.compile(r"^rec[a-zA-Z0-9]{14}$")
BASE_ID_PATTERN = re.compile(r"^app[a-zA-Z0-9]{14}$")
TABLE_ID_PATTERN = re.compile(r"^tbl[a-zA-Z0-9]{14}$")
FIELD_ID_PATTERN = re.compile(r"^fld[a-zA-Z0-9]+$")


class GenerationRequest(BaseModel):
    """Parameters identifying a generation run against one Airtable base."""
    venue_id: str
    base_id: Optional[str] = None
    table_id: Optional[str] = None
    venue_table_id: Optional[str] = None
    wine_list_table_id: Optional[str] = None
    wine_list_field_id: Optional[str] = None

    @field_validator("venue_id")
    @classmethod
    def validate_venue_id(cls, v: str) -> str:
        if not RECORD_ID_PATTERN.match(v):
            raise ValueError("must match ^rec[a-zA-Z0-9]{14}$ ('rec' + 14 alphanumeric chars)")
        return v

    @field_validator("base_id")
    @classmethod
    def validate_base_id(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not BASE_ID_PATTERN.match(v):
            raise ValueError("must match ^app[a-zA-Z0-9]{14}$ ('app' + 14 alphanumeric chars)")
        return v

    @field_validator("table_id", "venue_table_id", "wine_list_table_id")
    @classmethod
    def validate_table_id(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not TABLE_ID_PATTERN.match(v):
            raise ValueError("must match ^tbl[a-zA-Z0-9]{14}$ ('tbl' + 14 alphanumeric chars)")
        return v

    @field_validator("wine_list_field_id")
    @classmethod
    def validate_field_id(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not FIELD_ID_PATTERN.match(v):
            raise ValueError("must start with 'fld' followed by alphanumeric chars")
        return v

    @classmethod
    def collect_errors(cls, data: dict[str, Any]) -> dict[str, str]:
        """Validate parameters and return every problem keyed by parameter name."""
        try:
            cls.model_validate(data)
        except ValidationError as e:
            errors = {}
            for err in e.errors():
                key = ".".join(str(part) for part in err["loc"]) or "request"
                errors[key] = err["msg"]
            return errors
        return {}


class GenerationResult(BaseModel):
    """Outcome of a pipeline run."""
    run_id: str
    venue: VenueInfo
    document: DocumentModel
    document_yaml: str
    summary: dict[str, int]
    html_path: Optional[Path] = None
    pdf_path: Optional[Path] = None
    published: Optional[PublishedRecord] = None
