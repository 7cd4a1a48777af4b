"""Zone metadata lookup built from the zones table."""

from typing import Any, Iterable, Mapping, Optional

from winelist.models.schemas import ZoneDescriptor, ZoneMapping
from winelist.processing.fields import extract_value
from winelist.services.airtable_client import AirtableClient
from winelist.utils.errors import AppError, ConfigurationError, ZoneResolutionError
from winelist.utils.logger import get_logger

logger = get_logger(__name__)

ZONE_NAME_FIELDS = ("Nome Zona", "Zona", "Nome")
ZONE_PRIORITY_FIELDS = ("Priorità Zone", "Priorità Zona")


def _first_present(fields: Mapping[str, Any], names: Iterable[str]) -> Any:
    for name in names:
        value = fields.get(name)
        if value is not None and value != "" and value != []:
            return value
    return None


def _text_or_none(value: Any) -> Optional[str]:
    text = extract_value(value)
    return text or None


def _priority(value: Any) -> Optional[float]:
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if isinstance(value, dict):
        value = value.get("value")
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def build_zone_mapping(records: Iterable[Mapping[str, Any]]) -> ZoneMapping:
    """
    Build the zone id -> ZoneDescriptor mapping.

    Records without an id are skipped. Missing values become None.
    """
    mapping: ZoneMapping = {}
    skipped = 0
    for record in records:
        zone_id = record.get("id") if isinstance(record, Mapping) else None
        if not isinstance(zone_id, str) or not zone_id:
            skipped += 1
            logger.warning("Zone record without id skipped")
            continue

        fields = record.get("fields")
        if not isinstance(fields, Mapping):
            fields = {}

        mapping[zone_id] = ZoneDescriptor(
            id=zone_id,
            name=_text_or_none(_first_present(fields, ZONE_NAME_FIELDS)),
            region=_text_or_none(fields.get("Regione")),
            country=_text_or_none(fields.get("Nazione")),
            priority=_priority(_first_present(fields, ZONE_PRIORITY_FIELDS)),
        )

    logger.info("Zone mapping built", zones=len(mapping), skipped=skipped)
    return mapping


def zone_display_name(zone_value: Any, zone_mapping: Optional[ZoneMapping]) -> str:
    """
    Display name of a zone link value.

    Falls back to the raw id when the mapping or the entry is missing.
    """
    if isinstance(zone_value, (list, tuple)):
        zone_value = zone_value[0] if zone_value else ""
    zone_id = extract_value(zone_value)
    if zone_mapping:
        descriptor = zone_mapping.get(zone_id)
        if descriptor is not None and descriptor.name:
            return descriptor.name
    return zone_id


class ZoneService:
    """Fetches the zones table and resolves it into a ZoneMapping."""

    def __init__(self, client: AirtableClient, table: Optional[str] = None):
        self.client = client
        self._table = table

    @property
    def table(self) -> str:
        return self._table or self.client.settings.require("airtable_zone_table")

    async def resolve_zones(self) -> ZoneMapping:
        """Fetch every zone record; any fetch failure raises ZoneResolutionError."""
        table = self.table
        try:
            records = await self.client.list_all_records(table)
        except ConfigurationError:
            raise
        except AppError as e:
            raise ZoneResolutionError(
                f"Failed to fetch zones from {table}: {e.message}",
                details={"table": table, **e.details},
            ) from e
        return build_zone_mapping(records)
