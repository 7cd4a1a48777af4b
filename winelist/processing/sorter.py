"""
Deterministic ordering of cleaned wine records.

Records are ordered by category, region, zone, producer and finally by wine
name (or record id). Text comparison approximates an Italian collator with
base sensitivity and numeric ordering: case and accents are ignored and
embedded digit runs compare by value, so "Zona 2" sorts before "Zona 10".
"""

import re
import unicodedata
from enum import Enum
from functools import cmp_to_key
from typing import Iterable, Optional

from winelist.models.schemas import CleanedRecord, ZoneDescriptor, ZoneMapping
from winelist.processing.fields import extract_link_id, normalize_sort_value

_CHUNKS = re.compile(r"(\d+)")


class ZonePriorityPolicy(str, Enum):
    """How zone priorities from the zones table take part in ordering."""
    PRIORITY_THEN_NAME = "priority_then_name"
    NAME_ONLY = "name_only"


def collation_key(text: str) -> tuple:
    """
    Build a sort key for ``text``.

    Letters are folded to their base form (NFKD without combining marks,
    casefolded). Digit runs become integers. Chunks starting with a space or
    punctuation sort before digits, digits before letters.
    """
    decomposed = unicodedata.normalize("NFKD", text or "")
    base = "".join(ch for ch in decomposed if not unicodedata.combining(ch)).casefold().strip()

    key = []
    for chunk in _CHUNKS.split(base):
        if not chunk:
            continue
        if chunk.isdigit():
            key.append((1, int(chunk), ""))
        elif chunk[0].isalpha():
            key.append((2, 0, chunk))
        else:
            key.append((0, 0, chunk))
    return tuple(key)


def compare_text(a: str, b: str) -> int:
    """Three-way comparison of two strings under ``collation_key``."""
    ka, kb = collation_key(a), collation_key(b)
    return (ka > kb) - (ka < kb)


def _compare_field(a: CleanedRecord, b: CleanedRecord, field: str) -> int:
    return compare_text(
        normalize_sort_value(a.fields.get(field)),
        normalize_sort_value(b.fields.get(field)),
    )


def _resolve_zone(record: CleanedRecord, zone_mapping: ZoneMapping) -> Optional[ZoneDescriptor]:
    zone_id = extract_link_id(record.fields.get("Zona"))
    return zone_mapping.get(zone_id) if zone_id else None


def _compare_zone(
    a: CleanedRecord,
    b: CleanedRecord,
    zone_mapping: Optional[ZoneMapping],
    policy: ZonePriorityPolicy,
) -> int:
    if zone_mapping:
        zone_a = _resolve_zone(a, zone_mapping)
        zone_b = _resolve_zone(b, zone_mapping)

        if policy == ZonePriorityPolicy.NAME_ONLY:
            if zone_a is not None or zone_b is not None:
                name_a = (zone_a.name if zone_a else None) or normalize_sort_value(a.fields.get("Zona"))
                name_b = (zone_b.name if zone_b else None) or normalize_sort_value(b.fields.get("Zona"))
                return compare_text(name_a, name_b)
        else:
            priority_a = zone_a.priority if zone_a else None
            priority_b = zone_b.priority if zone_b else None
            if priority_a is not None and priority_b is not None:
                if priority_a != priority_b:
                    return -1 if priority_a < priority_b else 1
                return compare_text(zone_a.name or "", zone_b.name or "")
            if priority_a is not None:
                return -1
            if priority_b is not None:
                return 1

    return _compare_field(a, b, "Zona")


def _tie_break_value(record: CleanedRecord) -> str:
    return normalize_sort_value(record.fields.get("Vino + Annata")) or (record.id or "")


def sort_records(
    records: Iterable[CleanedRecord],
    zone_mapping: Optional[ZoneMapping] = None,
    policy: ZonePriorityPolicy = ZonePriorityPolicy.PRIORITY_THEN_NAME,
) -> list[CleanedRecord]:
    """
    Return a new list of records in display order.

    Args:
        records: Cleaned records; the input is never mutated.
        zone_mapping: Zone metadata keyed by zone record id. Without it zones
            compare by their raw ``Zona`` value.
        policy: Zone priority policy.
    """
    policy = ZonePriorityPolicy(policy)

    def compare(a: CleanedRecord, b: CleanedRecord) -> int:
        return (
            _compare_field(a, b, "Tipologia")
            or _compare_field(a, b, "Regione")
            or _compare_zone(a, b, zone_mapping, policy)
            or _compare_field(a, b, "Produttore")
            or compare_text(_tie_break_value(a), _tie_break_value(b))
        )

    return sorted(list(records), key=cmp_to_key(compare))
