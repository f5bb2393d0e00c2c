from __future__ import annotations

from typing import Any, Iterable

from boost_aid.normalization import cell_text
from boost_aid.shared import CANONICAL_KEYS, ColumnMapping


def apply_column_mapping(record: dict[str, Any], mapping: ColumnMapping) -> dict[str, Any]:
    """Project one raw row onto the canonical record keys.

    Multi-source fields are joined with ", " after dropping blank parts.
    Single-source fields are copied untouched, and only when the source
    column is present in the row.
    """
    mapped: dict[str, Any] = {}
    for target, source in mapping.items():
        if not source:
            continue
        key = CANONICAL_KEYS.get(target, target)
        if isinstance(source, list):
            parts = [cell_text(record.get(column)) for column in source]
            mapped[key] = ", ".join(part for part in parts if part.strip())
        elif source in record:
            mapped[key] = record[source]
    return mapped


def apply_mapping_to_rows(rows: Iterable[dict[str, Any]], mapping: ColumnMapping | None) -> list[dict[str, Any]]:
    if mapping is None:
        return [dict(row) for row in rows]
    return [apply_column_mapping(row, mapping) for row in rows]
