"""Venue (enoteca) lookup."""

from typing import Any, Mapping, Optional

from winelist.models.schemas import VenueInfo
from winelist.processing.fields import extract_value
from winelist.services.airtable_client import AirtableClient
from winelist.utils.logger import get_logger

logger = get_logger(__name__)

VENUE_NAME_FIELD = "Nome"
VENUE_DESCRIPTION_FIELD = "Descrizione"
VENUE_LOGO_FIELD = "Logo"
VENUE_QR_CODE_FIELD = "QR Code"
VENUE_MENU_URL_FIELD = "Menu Digitale"


def _attachment_url(value: Any) -> Optional[str]:
    """URL of the first attachment, or the value itself when it is a plain URL."""
    if isinstance(value, list):
        value = value[0] if value else None
    if isinstance(value, Mapping):
        return value.get("url") or None
    return extract_value(value) or None


def venue_from_record(record: Mapping[str, Any]) -> VenueInfo:
    fields = record.get("fields") or {}
    return VenueInfo(
        id=record["id"],
        name=extract_value(fields.get(VENUE_NAME_FIELD)) or None,
        description=extract_value(fields.get(VENUE_DESCRIPTION_FIELD)) or None,
        logo_url=_attachment_url(fields.get(VENUE_LOGO_FIELD)),
        qr_code_url=_attachment_url(fields.get(VENUE_QR_CODE_FIELD)),
        digital_menu_url=extract_value(fields.get(VENUE_MENU_URL_FIELD)) or None,
    )


class VenueService:
    """Reads venues from the venues table."""

    def __init__(self, client: AirtableClient, table: Optional[str] = None):
        self.client = client
        self._table = table

    @property
    def table(self) -> str:
        return self._table or self.client.settings.require("airtable_venue_table")

    async def find_venue_id(self, name: str) -> Optional[str]:
        """Id of the venue whose name matches exactly, None if there is none."""
        return await self.client.find_record_id_by_field(self.table, VENUE_NAME_FIELD, name)

    async def get_venue(self, venue_id: str) -> VenueInfo:
        record = await self.client.get_record(self.table, venue_id)
        venue = venue_from_record(record)
        logger.info("Venue loaded", venue_id=venue.id, venue_name=venue.name)
        return venue
