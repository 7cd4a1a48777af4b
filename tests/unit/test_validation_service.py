from unittest.mock import AsyncMock, MagicMock

import pytest

from winelist.processing.cleaner import clean_record
from winelist.services.validation_service import (
    AirtableProducerResolver,
    ValidationService,
    classify_record,
    validate_records,
    validate_records_async,
)
from winelist.utils.errors import AirtableNotFoundError, AirtableServerError


@pytest.fixture
def records(make_wine):
    return [
        clean_record(make_wine("recWINE000000001")),
        clean_record(make_wine("recWINE000000002", **{"Affinamento AI": None})),
        clean_record(make_wine("recWINE000000003", **{"Prezzo In Carta Testo": None})),
    ]


def test_classify_record_normalizes_fields(records, zone_mapping):
    entry, invalid, warnings = classify_record(records[0], zone_mapping, "Castello di Ama")

    assert invalid == []
    assert warnings == []
    assert entry.name == "Chianti Classico 2019"
    assert entry.producer == "Castello di Ama"
    assert entry.zone == "Chianti Classico"
    assert entry.price_eur == 45.0
    assert entry.category == "Rosso"
    assert entry.region == "Toscana"
    assert entry.grapes == "Sangiovese"
    assert entry.aging == "12 mesi in botte"
    assert entry.abv == "13,5%"


def test_missing_price_marks_record_invalid(records, zone_mapping):
    result = validate_records(records, zone_mapping)

    assert [e.name for e in result.valid_records] == ["Chianti Classico 2019"]
    assert len(result.invalid_records) == 1
    assert result.invalid_records[0].id == "recWINE000000003"
    assert "Prezzo In Carta Testo" in result.invalid_records[0].invalid_fields


def test_unparseable_price_is_invalid(make_wine):
    record = clean_record(make_wine("recWINE000000001", **{"Prezzo In Carta Testo": "su richiesta"}))
    result = validate_records([record])
    assert result.invalid_records[0].invalid_fields == ["Prezzo In Carta Testo"]


def test_each_record_lands_in_one_bucket(records, zone_mapping):
    result = validate_records(records, zone_mapping)

    assert result.total == len(records)
    assert result.summary() == {"valid": 1, "warning": 1, "invalid": 1, "categories": 1}
    assert result.warning_records[0].id == "recWINE000000002"
    assert result.warning_records[0].warning_fields == ["Affinamento AI"]


def test_include_warning_records_adds_them_to_valid(records, zone_mapping):
    result = ValidationService(include_warning_records=True).classify(records, zone_mapping)

    assert len(result.valid_records) == 2
    assert len(result.warning_records) == 1
    assert result.valid_records[1].aging is None


def test_categories_in_first_seen_order(make_wine):
    records = [
        clean_record(make_wine("rec1", Tipologia="Bianco")),
        clean_record(make_wine("rec2", Tipologia="Rosso")),
        clean_record(make_wine("rec3", Tipologia="Bianco")),
    ]
    assert validate_records(records).categories == ["Bianco", "Rosso"]


def test_producer_names_mapping(make_wine):
    records = [
        clean_record(make_wine("rec1", Produttore=["recPRODUCER1"])),
        clean_record(make_wine("rec2", Produttore=["recPRODUCER2"])),
    ]
    result = validate_records(records, producer_names={"recPRODUCER1": "Tenuta San Guido"})

    assert result.valid_records[0].producer == "Tenuta San Guido"
    assert result.invalid_records[0].invalid_fields == ["Produttore"]


def test_zone_falls_back_to_raw_id(make_wine):
    record = clean_record(make_wine("rec1", Zona=["recNOTMAPPED"]))
    result = validate_records([record], zone_mapping={})
    assert result.valid_records[0].zone == "recNOTMAPPED"


@pytest.mark.asyncio
async def test_validate_records_async_uses_resolver(records, zone_mapping):
    resolver = MagicMock()
    resolver.resolve = AsyncMock(return_value="Produttore Risolto")

    result = await validate_records_async(records, zone_mapping, resolver)

    assert result.valid_records[0].producer == "Produttore Risolto"
    assert resolver.resolve.await_count == 3


@pytest.mark.asyncio
async def test_producer_resolver_fetches_and_caches(settings):
    client = MagicMock()
    client.settings = settings
    client.get_record = AsyncMock(return_value={"id": "recPRODUCER1", "fields": {"Nome": "Gaja"}})
    resolver = AirtableProducerResolver(client, table="tblPRODUCERS0001")

    assert await resolver.resolve(["recPRODUCER1"]) == "Gaja"
    assert await resolver.resolve(["recPRODUCER1"]) == "Gaja"
    assert await resolver.resolve("Antinori") == "Antinori"

    client.get_record.assert_awaited_once_with("tblPRODUCERS0001", "recPRODUCER1")


@pytest.mark.asyncio
async def test_producer_resolver_not_found_is_invalid(settings, make_wine):
    client = MagicMock()
    client.settings = settings
    client.get_record = AsyncMock(side_effect=AirtableNotFoundError("missing", status=404))
    resolver = AirtableProducerResolver(client, table="tblPRODUCERS0001")

    record = clean_record(make_wine("rec1", Produttore=["recGONE"]))
    result = await ValidationService().classify_async([record], None, resolver)

    assert result.invalid_records[0].invalid_fields == ["Produttore"]


@pytest.mark.asyncio
async def test_producer_resolver_propagates_server_errors(settings):
    client = MagicMock()
    client.settings = settings
    client.get_record = AsyncMock(side_effect=AirtableServerError("boom", status=503))
    resolver = AirtableProducerResolver(client, table="tblPRODUCERS0001")

    with pytest.raises(AirtableServerError):
        await resolver.resolve(["recPRODUCER1"])
