"""Pure record processing: normalization, cleaning, sorting and assembly."""

from winelist.processing.assembler import assemble_document, serialize_document
from winelist.processing.cleaner import KEEP_FIELDS, clean_records
from winelist.processing.fields import extract_link_id, extract_value, normalize_sort_value, parse_price
from winelist.processing.sorter import ZonePriorityPolicy, compare_text, sort_records

__all__ = [
    "KEEP_FIELDS",
    "clean_records",
    "normalize_sort_value",
    "extract_value",
    "extract_link_id",
    "parse_price",
    "sort_records",
    "compare_text",
    "ZonePriorityPolicy",
    "assemble_document",
    "serialize_document",
]
