"""
Validation and normalization of cleaned wine records.

Each record is classified into exactly one bucket of a ClassificationResult:

    - valid: every required and optional field present
    - warning: every required field present, some optional fields missing
    - invalid: at least one required field missing or malformed

Problems are never raised; they are reported in the result so the caller can
decide what to do with partial data.
"""

from typing import Any, Iterable, Mapping, Optional, Protocol

from winelist.models.schemas import (
    ClassificationResult,
    CleanedRecord,
    InvalidRecord,
    NormalizedWineEntry,
    WarningRecord,
    ZoneMapping,
)
from winelist.processing.fields import extract_link_id, extract_value, is_blank, parse_price
from winelist.services.airtable_client import AirtableClient
from winelist.services.zone_service import zone_display_name
from winelist.utils.errors import AirtableClientError, AirtableNotFoundError
from winelist.utils.logger import get_logger

logger = get_logger(__name__)

REQUIRED_FIELDS: dict[str, str] = {
    "Vino + Annata": "name",
    "Produttore": "producer",
    "Zona": "zone",
    "Prezzo In Carta Testo": "price_eur",
    "Tipologia": "category",
    "Regione": "region",
}

OPTIONAL_FIELDS: dict[str, str] = {
    "Lista Vitigni AI": "grapes",
    "Luogo di Produzione": "production_location",
    "Affinamento AI": "aging",
    "Alcolicità AI": "abv",
}

# =============================================================================
# Producer resolution
# =============================================================================

class ProducerResolver(Protocol):
    """Turns the value of a ``Produttore`` link field into a display name."""

    async def resolve(self, value: Any) -> Optional[str]:
        ...


class AirtableProducerResolver:
    """
    Resolves producer links by fetching each producer record.

    Lookups are awaited one at a time and cached per producer id. A producer
    that cannot be found resolves to None.
    """

    def __init__(
        self,
        client: AirtableClient,
        table: Optional[str] = None,
        name_field: Optional[str] = None,
    ):
        self.client = client
        self._table = table
        self.name_field = name_field or client.settings.producer_name_field
        self._cache: dict[str, Optional[str]] = {}

    @property
    def table(self) -> str:
        return self._table or self.client.settings.require("airtable_producer_table")

    async def resolve(self, value: Any) -> Optional[str]:
        producer_id = extract_link_id(value)
        if not producer_id or not producer_id.startswith("rec"):
            return extract_value(value) or None
        if producer_id in self._cache:
            return self._cache[producer_id]

        try:
            record = await self.client.get_record(self.table, producer_id)
        except (AirtableNotFoundError, AirtableClientError) as e:
            logger.warning("Producer lookup failed", producer_id=producer_id, error=e.message)
            name = None
        else:
            name = extract_value((record or {}).get("fields", {}).get(self.name_field)) or None

        self._cache[producer_id] = name
        return name


def _producer_from_mapping(value: Any, producer_names: Optional[Mapping[str, str]]) -> Optional[str]:
    if producer_names is None:
        return extract_value(value) or None
    producer_id = extract_link_id(value)
    name = producer_names.get(producer_id) if producer_id else None
    return extract_value(name) or None


# =============================================================================
# Classification
# =============================================================================

def classify_record(
    record: CleanedRecord,
    zone_mapping: Optional[ZoneMapping],
    producer_name: Optional[str],
) -> tuple[NormalizedWineEntry, list[str], list[str]]:
    """
    Normalize one record.

    Returns:
        (entry, invalid_fields, warning_fields). Fields reported invalid are
        None in the entry.
    """
    fields = record.fields
    values: dict[str, Any] = {}
    invalid: list[str] = []
    warnings: list[str] = []

    for field, key in REQUIRED_FIELDS.items():
        raw = fields.get(field)
        if is_blank(raw):
            invalid.append(field)
            continue
        if key == "price_eur":
            value = parse_price(raw)
        elif key == "producer":
            value = producer_name
        elif key == "zone":
            value = zone_display_name(raw, zone_mapping)
        else:
            value = extract_value(raw)
        if value is None or value == "":
            invalid.append(field)
            continue
        values[key] = value

    for field, key in OPTIONAL_FIELDS.items():
        value = extract_value(fields.get(field))
        if value:
            values[key] = value
        else:
            warnings.append(field)

    return NormalizedWineEntry(**values), invalid, warnings


class _Classifier:
    """Accumulates per-record outcomes into a ClassificationResult."""

    def __init__(self, include_warning_records: bool):
        self.include_warning_records = include_warning_records
        self.result = ClassificationResult()
        self._seen_categories: set[str] = set()

    def _accept(self, entry: NormalizedWineEntry) -> None:
        self.result.valid_records.append(entry)
        if entry.category and entry.category not in self._seen_categories:
            self._seen_categories.add(entry.category)
            self.result.categories.append(entry.category)

    def add(self, record: CleanedRecord, entry: NormalizedWineEntry, invalid: list[str], warnings: list[str]) -> None:
        if invalid:
            logger.warning("Invalid record excluded", record_id=record.id, invalid_fields=invalid)
            self.result.invalid_records.append(
                InvalidRecord(id=record.id, invalid_fields=invalid, warning_fields=warnings)
            )
        elif warnings:
            logger.info("Record with missing optional fields", record_id=record.id, warning_fields=warnings)
            self.result.warning_records.append(
                WarningRecord(id=record.id, warning_fields=warnings, entry=entry)
            )
            if self.include_warning_records:
                self._accept(entry)
        else:
            self._accept(entry)

    def finish(self) -> ClassificationResult:
        logger.info("Records classified", **self.result.summary())
        return self.result


def validate_records(
    records: Iterable[CleanedRecord],
    zone_mapping: Optional[ZoneMapping] = None,
    producer_names: Optional[Mapping[str, str]] = None,
    include_warning_records: bool = False,
) -> ClassificationResult:
    """
    Classify records with producer names known up front.

    Args:
        records: Cleaned records, ideally in display order.
        zone_mapping: Zone metadata for display names.
        producer_names: Producer record id -> name. When None the raw
            ``Produttore`` value is used as the name; otherwise an id missing
            from the mapping marks the producer invalid.
        include_warning_records: Also add warning records to valid_records.
    """
    classifier = _Classifier(include_warning_records)
    for record in records:
        producer = _producer_from_mapping(record.fields.get("Produttore"), producer_names)
        classifier.add(record, *classify_record(record, zone_mapping, producer))
    return classifier.finish()


async def validate_records_async(
    records: Iterable[CleanedRecord],
    zone_mapping: Optional[ZoneMapping],
    resolver: ProducerResolver,
    include_warning_records: bool = False,
) -> ClassificationResult:
    """Classify records, resolving producers one record at a time through ``resolver``."""
    classifier = _Classifier(include_warning_records)
    for record in records:
        raw_producer = record.fields.get("Produttore")
        producer = None if is_blank(raw_producer) else await resolver.resolve(raw_producer)
        classifier.add(record, *classify_record(record, zone_mapping, producer))
    return classifier.finish()


class ValidationService:
    """Applies the configured warning-record policy to record classification."""

    def __init__(self, include_warning_records: bool = False):
        self.include_warning_records = include_warning_records

    def classify(
        self,
        records: Iterable[CleanedRecord],
        zone_mapping: Optional[ZoneMapping] = None,
        producer_names: Optional[Mapping[str, str]] = None,
    ) -> ClassificationResult:
        return validate_records(records, zone_mapping, producer_names, self.include_warning_records)

    async def classify_async(
        self,
        records: Iterable[CleanedRecord],
        zone_mapping: Optional[ZoneMapping],
        resolver: ProducerResolver,
    ) -> ClassificationResult:
        return await validate_records_async(records, zone_mapping, resolver, self.include_warning_records)
