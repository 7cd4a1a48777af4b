import pytest

from winelist.processing.fields import (
    extract_link_id,
    extract_value,
    is_blank,
    normalize_sort_value,
    parse_price,
)


@pytest.mark.parametrize("value,expected", [
    (None, ""),
    ([], ""),
    (["Toscana", "Umbria"], "Toscana"),
    ({"value": " Sangiovese "}, "Sangiovese"),
    ({"state": "generated"}, ""),
    ([{"value": "Rosso"}], "Rosso"),
    (True, "true"),
    (12, "12"),
    ("  Rosso  ", "Rosso"),
])
def test_normalize_sort_value(value, expected):
    assert normalize_sort_value(value) == expected


def test_extract_value_joins_lists():
    assert extract_value(["Sangiovese", {"value": "Merlot"}, "", None]) == "Sangiovese, Merlot"


def test_extract_value_unwraps_nested_value():
    assert extract_value({"value": ["Nebbiolo"]}) == "Nebbiolo"


def test_extract_link_id():
    assert extract_link_id(["recA", "recB"]) == "recA"
    assert extract_link_id(" recA ") == "recA"
    assert extract_link_id([]) is None
    assert extract_link_id(42) is None


def test_is_blank():
    assert is_blank(None)
    assert is_blank("   ")
    assert is_blank([])
    assert is_blank({"value": ""})
    assert not is_blank(0)
    assert not is_blank(["x"])


@pytest.mark.parametrize("value,expected", [
    ("12,50 €", 12.5),
    ("€ 45", 45.0),
    ("1234.5", 1234.5),
    ("18.333", 18.33),
    ("12,125 €", 12.13),
    (2.675, 2.68),
    (30, 30.0),
    (19.999, 20.0),
    (["25,00"], 25.0),
])
def test_parse_price(value, expected):
    assert parse_price(value) == expected


@pytest.mark.parametrize("value", ["abc", "", None, True, float("nan"), "€", 1e300])
def test_parse_price_unparseable(value):
    assert parse_price(value) is None
