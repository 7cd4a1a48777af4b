import random

import pytest

from winelist.processing.sorter import ZonePriorityPolicy, collation_key, compare_text, sort_records


def names(records):
    return [r.fields.get("Vino + Annata") for r in records]


def test_basic_sort_by_category_then_name(cleaned):
    records = [
        cleaned("rec1", Tipologia="Bianco", Regione="Toscana", **{"Vino + Annata": "Vernaccia 2022"}),
        cleaned("rec2", Tipologia="Rosso", Regione="Toscana", **{"Vino + Annata": "Chianti 2019"}),
        cleaned("rec3", Tipologia="Bianco", Regione="Toscana", **{"Vino + Annata": "Ansonica 2021"}),
    ]

    ordered = sort_records(records)

    assert names(ordered) == ["Ansonica 2021", "Vernaccia 2022", "Chianti 2019"]


def test_sort_does_not_mutate_input(cleaned):
    records = [cleaned("rec2", Tipologia="Rosso"), cleaned("rec1", Tipologia="Bianco")]
    snapshot = list(records)

    sort_records(records)

    assert records == snapshot


def test_sort_is_deterministic_over_permutations(cleaned, zone_mapping):
    records = [
        cleaned(f"rec{i}", Tipologia=t, Regione=r, Zona=[z], Produttore=p, **{"Vino + Annata": n})
        for i, (t, r, z, p, n) in enumerate([
            ("Rosso", "Toscana", "recZONEMONTALC01", "Biondi-Santi", "Brunello 2017"),
            ("Rosso", "Toscana", "recZONECHIANTI01", "Castello di Ama", "Chianti 2019"),
            ("Rosso", "Piemonte", "recZONEBOLGHERI1", "Giacosa", "Barolo 2016"),
            ("Bianco", "Toscana", "recZONEBOLGHERI1", "Guado al Tasso", "Vermentino 2022"),
            ("Rosso", "Toscana", "recZONECHIANTI01", "Castello di Ama", "Chianti 2018"),
        ])
    ]
    expected = sort_records(records, zone_mapping)

    rng = random.Random(7)
    for _ in range(10):
        shuffled = list(records)
        rng.shuffle(shuffled)
        assert [r.id for r in sort_records(shuffled, zone_mapping)] == [r.id for r in expected]


def test_zone_priority_orders_zones(cleaned, zone_mapping):
    records = [
        cleaned("recA", Tipologia="Rosso", Regione="Toscana", Zona=["recZONEMONTALC01"]),
        cleaned("recB", Tipologia="Rosso", Regione="Toscana", Zona=["recZONEBOLGHERI1"]),
        cleaned("recC", Tipologia="Rosso", Regione="Toscana", Zona=["recZONECHIANTI01"]),
    ]

    ordered = sort_records(records, zone_mapping)

    # Zones with a priority come first, by priority; Bolgheri has none.
    assert [r.id for r in ordered] == ["recC", "recA", "recB"]


def test_zone_name_only_policy(cleaned, zone_mapping):
    records = [
        cleaned("recA", Tipologia="Rosso", Regione="Toscana", Zona=["recZONEMONTALC01"]),
        cleaned("recB", Tipologia="Rosso", Regione="Toscana", Zona=["recZONEBOLGHERI1"]),
        cleaned("recC", Tipologia="Rosso", Regione="Toscana", Zona=["recZONECHIANTI01"]),
    ]

    ordered = sort_records(records, zone_mapping, ZonePriorityPolicy.NAME_ONLY)

    assert [r.id for r in ordered] == ["recB", "recC", "recA"]


def test_zone_without_mapping_compares_raw_value(cleaned):
    records = [
        cleaned("recA", Tipologia="Rosso", Zona=["recZZZ"]),
        cleaned("recB", Tipologia="Rosso", Zona=["recAAA"]),
    ]
    assert [r.id for r in sort_records(records)] == ["recB", "recA"]


def test_producer_breaks_zone_ties(cleaned):
    records = [
        cleaned("recA", Tipologia="Rosso", Produttore="Zenato"),
        cleaned("recB", Tipologia="Rosso", Produttore="Allegrini"),
    ]
    assert [r.id for r in sort_records(records)] == ["recB", "recA"]


def test_record_id_is_last_tie_break(cleaned):
    records = [cleaned("recB", Tipologia="Rosso"), cleaned("recA", Tipologia="Rosso")]
    assert [r.id for r in sort_records(records)] == ["recA", "recB"]


def test_identical_records_keep_input_order(cleaned, zone_mapping):
    def wine(record_id):
        return cleaned(record_id, Tipologia="Rosso", Regione="Toscana", Zona=["recZONECHIANTI01"],
                       Produttore="Castello di Ama", **{"Vino + Annata": "Chianti Classico 2019"})

    records = [wine("recB"), wine("recA"), wine("recC")]

    assert [r.id for r in sort_records(records, zone_mapping)] == ["recB", "recA", "recC"]
    assert [r.id for r in sort_records(records[::-1], zone_mapping)] == ["recC", "recA", "recB"]


def test_missing_fields_sort_first(cleaned):
    records = [cleaned("recA", Tipologia="Rosso"), cleaned("recB")]
    assert [r.id for r in sort_records(records)] == ["recB", "recA"]


@pytest.mark.parametrize("a,b", [
    ("Zona 2", "Zona 10"),
    ("Barbera", "barolo"),
    ("Élite", "Etna"),
    ("Ca' del Bosco", "Cabernet"),
])
def test_compare_text_orders(a, b):
    assert compare_text(a, b) < 0
    assert compare_text(b, a) > 0


def test_collation_ignores_case_and_accents():
    assert collation_key("Nerello Mascalese") == collation_key("nerèllo mascalese")
    assert compare_text("Lagrein", "LAGREIN") == 0
