"""
Services package for the Wine List Generator.

Services:
    - AirtableClient: Async client for the Airtable REST and content APIs
    - ZoneService: Zone metadata lookup
    - VenueService: Venue lookup
    - ValidationService: Record classification and normalization
    - AttachmentPublisher: Record creation and attachment upload
"""

from winelist.services.airtable_client import AirtableClient, wine_list_formula
from winelist.services.publisher import AttachmentPublisher
from winelist.services.validation_service import (
    AirtableProducerResolver,
    ProducerResolver,
    ValidationService,
    validate_records,
    validate_records_async,
)
from winelist.services.venue_service import VenueService
from winelist.services.zone_service import ZoneService, build_zone_mapping

__all__ = [
    "AirtableClient",
    "wine_list_formula",
    "AttachmentPublisher",
    "AirtableProducerResolver",
    "ProducerResolver",
    "ValidationService",
    "validate_records",
    "validate_records_async",
    "VenueService",
    "ZoneService",
    "build_zone_mapping",
]
