"""Projection of raw Airtable records onto the wine field whitelist."""

from typing import Any, Iterable, Mapping, Optional

from winelist.models.schemas import CleanedRecord
from winelist.utils.logger import get_logger

logger = get_logger(__name__)

KEEP_FIELDS: tuple[str, ...] = (
    "Vino + Annata",
    "Carta dei Vini",
    "Vino (from Wine Catalog)",
    "Lista Vitigni AI",
    "Produttore",
    "Alcolicità AI",
    "Affinamento AI",
    "Regione",
    "Zona",
    "Luogo di Produzione",
    "Tipologia",
    "Priorità Zona",
    "Prezzo In Carta Testo",
)


def _str_or_none(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def clean_record(record: Any, keep_fields: Iterable[str] = KEEP_FIELDS) -> CleanedRecord:
    """Copy whitelisted fields; a malformed record becomes an empty-fields record."""
    if isinstance(record, CleanedRecord):
        record = record.as_raw()
    if not isinstance(record, Mapping):
        logger.warning("Malformed record replaced with empty fields", type=type(record).__name__)
        return CleanedRecord()

    fields = record.get("fields")
    if not isinstance(fields, Mapping):
        if fields is not None:
            logger.warning("Record fields is not an object", record_id=record.get("id"))
        fields = {}

    kept = {name: fields[name] for name in keep_fields if name in fields}
    return CleanedRecord(
        id=_str_or_none(record.get("id")),
        created_time=_str_or_none(record.get("createdTime")),
        fields=kept,
    )


def clean_records(
    response: Optional[Mapping[str, Any]],
    keep_fields: Iterable[str] = KEEP_FIELDS,
) -> list[CleanedRecord]:
    """
    Clean every record of a list response.

    Accepts the ``{"records": [...]}`` shape returned by the list endpoint; a
    missing or non-list ``records`` key yields an empty list. Record count is
    preserved.
    """
    records = response.get("records") if isinstance(response, Mapping) else None
    if not isinstance(records, list):
        return []
    keep = tuple(keep_fields)
    return [clean_record(record, keep) for record in records]
