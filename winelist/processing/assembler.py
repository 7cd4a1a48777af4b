"""
Document assembly and YAML serialization.

Valid entries are grouped into category -> region -> zone sections in
first-seen order. Feeding entries in sorted order therefore yields sections
in display order.
"""

import re
from datetime import date, datetime
from pathlib import Path
from typing import Iterable, Mapping, Optional, Union

import yaml

from winelist.models.schemas import (
    CategoryDefinition,
    DocumentMeta,
    DocumentModel,
    MainCover,
    NormalizedWineEntry,
    VenueInfo,
    WineSection,
)
from winelist.utils.errors import InputFormatError
from winelist.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_COVER_DESCRIPTION = "La nostra selezione di vini"
CATEGORY_SUBTITLE = "La nostra selezione di {name}"
CATEGORY_NOTE = "Prezzi espressi in euro. Annate e disponibilità possono variare."

_WHITESPACE = re.compile(r"\s+")


class NoAliasDumper(yaml.SafeDumper):
    """SafeDumper that writes repeated objects in full instead of as anchors."""

    def ignore_aliases(self, data) -> bool:
        return True


def category_slug(name: str) -> str:
    return _WHITESPACE.sub("-", name.strip().lower())


def load_category_definitions(path: Union[str, Path]) -> dict[str, CategoryDefinition]:
    """
    Read a categories file (``categories:`` list of definitions).

    The result is keyed by both ``name`` and ``id`` so a category can be
    matched by either.
    """
    path = Path(path)
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise InputFormatError(f"Invalid categories file {path}: {e}") from e
    if not isinstance(data, Mapping):
        raise InputFormatError(f"Categories file {path} must contain a mapping")

    definitions: dict[str, CategoryDefinition] = {}
    for item in data.get("categories") or []:
        if not isinstance(item, Mapping) or not (item.get("id") or item.get("name")):
            logger.warning("Category definition skipped", path=str(path), definition=item)
            continue
        definition = CategoryDefinition(
            id=str(item.get("id") or category_slug(str(item["name"]))),
            name=str(item.get("name") or item["id"]),
            subtitle=item.get("subtitle"),
            note=item.get("note"),
            icon_path=item.get("icon_path"),
            icon_alt=item.get("icon_alt"),
        )
        definitions[definition.name] = definition
        definitions.setdefault(definition.id, definition)

    logger.info("Category definitions loaded", path=str(path), count=len(data.get("categories") or []))
    return definitions


def build_categories(
    names: Iterable[str],
    definitions: Optional[Mapping[str, CategoryDefinition]] = None,
) -> list[CategoryDefinition]:
    """Category entries for the document; a matching definition overrides generated values."""
    categories = []
    seen = set()
    for name in names:
        if name in seen:
            continue
        seen.add(name)
        override = (definitions or {}).get(name)
        categories.append(
            CategoryDefinition(
                id=override.id if override else category_slug(name),
                name=override.name if override else name,
                subtitle=(override.subtitle if override else None) or CATEGORY_SUBTITLE.format(name=name),
                note=(override.note if override else None) or CATEGORY_NOTE,
                icon_path=override.icon_path if override else None,
                icon_alt=override.icon_alt if override else None,
            )
        )
    return categories


def group_entries(entries: Iterable[NormalizedWineEntry]) -> list[WineSection]:
    """Group entries into (category, region, zone) sections in first-seen order."""
    tree: dict[Optional[str], dict[Optional[str], dict[Optional[str], list[dict]]]] = {}
    for entry in entries:
        regions = tree.setdefault(entry.category, {})
        zones = regions.setdefault(entry.region, {})
        zones.setdefault(entry.zone, []).append(entry.as_item())

    return [
        WineSection(category=category, region=region, zone=zone, items=items)
        for category, regions in tree.items()
        for region, zones in regions.items()
        for zone, items in zones.items()
    ]


def _as_date(value: Union[date, datetime, str, None]) -> date:
    if value is None:
        return date.today()
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError as e:
        raise InputFormatError(f"Invalid date {value!r}, expected YYYY-MM-DD") from e


def assemble_document(
    valid_records: Iterable[NormalizedWineEntry],
    venue: VenueInfo,
    generated_on: Union[date, datetime, str, None] = None,
    category_definitions: Optional[Mapping[str, CategoryDefinition]] = None,
) -> DocumentModel:
    """
    Build the document model for one venue.

    Args:
        valid_records: Entries in display order.
        venue: Venue shown on the cover.
        generated_on: Document date, today when omitted.
        category_definitions: Optional overrides keyed by category name.
    """
    entries = list(valid_records)
    day = _as_date(generated_on).isoformat()

    meta = DocumentMeta(
        id=f"{day}_{venue.id}",
        date=day,
        ref=f"{day}-{venue.id}",
    )
    cover = MainCover(
        venue_name=venue.name,
        description=venue.description or DEFAULT_COVER_DESCRIPTION,
        logo=venue.logo_url,
        qr_code=venue.qr_code_url,
        digital_menu_url=venue.digital_menu_url,
    )
    sections = group_entries(entries)
    categories = build_categories(
        (entry.category for entry in entries if entry.category),
        category_definitions,
    )

    logger.info(
        "Document assembled",
        venue_id=venue.id,
        categories=len(categories),
        sections=len(sections),
        items=len(entries),
    )
    return DocumentModel(meta=meta, main_cover=cover, categories=categories, wines=sections)


def serialize_document(document: DocumentModel) -> str:
    """YAML text with declaration key order, two-space indent, no wrapping and no aliases."""
    return yaml.dump(
        document.to_serializable(),
        Dumper=NoAliasDumper,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
        indent=2,
        width=float("inf"),
    )
