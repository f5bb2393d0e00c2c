"""Resolve arbitrary source headers onto the Gift Aid target fields."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Sequence

from boost_aid.contracts import build_contract
from boost_aid.normalization import cell_text
from boost_aid.shared import (
    ELIGIBILITY_FIELD,
    FIELD_BY_KEY,
    FIELD_PATTERNS,
    MAX_MULTI_SOURCE_COLUMNS,
    STANDARD_COLUMN_HINTS,
    TARGET_FIELDS,
    ColumnMapping,
    EligibilityConfig,
)


class MappingError(ValueError):
    """Raised when a mapping refers to an unknown field or column."""


@dataclass
class MappingPlan:
    columns: list[str]
    mapping: ColumnMapping = field(default_factory=dict)
    gift_aid_values: list[str] = field(default_factory=list)
    selected_values: list[str] = field(default_factory=list)

    @property
    def missing_required(self) -> list[str]:
        return [f.key for f in TARGET_FIELDS if f.required and not _is_mapped(self.mapping.get(f.key))]

    @property
    def is_complete(self) -> bool:
        return is_mapping_complete(self.mapping, self.selected_values)

    def as_dict(self) -> dict[str, Any]:
        return {
            "contract": build_contract("boost_aid.mapping_plan"),
            "columns": list(self.columns),
            "mapping": {key: (list(value) if isinstance(value, list) else value) for key, value in self.mapping.items()},
            "gift_aid_values": list(self.gift_aid_values),
            "selected_values": list(self.selected_values),
            "missing_required": self.missing_required,
            "is_complete": self.is_complete,
        }


def _is_mapped(value: str | list[str] | None) -> bool:
    if isinstance(value, list):
        return len(value) > 0
    return bool(value)


def normalize_column_name(name: Any) -> str:
    return re.sub(r"[^a-z0-9]", "", str(name).lower())


def column_matches_field(column: str, field_key: str) -> bool:
    normalized = normalize_column_name(column)
    return any(pattern in normalized for pattern in FIELD_PATTERNS[field_key])


def auto_detect_mapping(columns: Sequence[str]) -> ColumnMapping:
    """Map each target field to the first matching column (Address takes up to three).

    Fields are resolved independently, so one column can satisfy more than one field.
    """
    mapping: ColumnMapping = {}
    for target in TARGET_FIELDS:
        matches = [column for column in columns if column_matches_field(column, target.key)]
        if not matches:
            continue
        if target.allow_multiple:
            mapping[target.key] = matches[:MAX_MULTI_SOURCE_COLUMNS]
        else:
            mapping[target.key] = matches[0]
    return mapping


def distinct_values(rows: Iterable[dict[str, Any]], column: str) -> list[str]:
    seen: dict[str, None] = {}
    for row in rows:
        value = cell_text(row.get(column)).strip()
        if value:
            seen.setdefault(value, None)
    return list(seen)


def _looks_eligible(value: str) -> bool:
    lowered = value.lower()
    if "yes" in lowered:
        return True
    if "effective" in lowered and "non" not in lowered:
        return True
    return lowered in {"y", "true"}


def default_eligible_values(values: Sequence[str]) -> list[str]:
    """Pre-select affirmative values; with none recognised, keep everything."""
    selected = [value for value in values if _looks_eligible(value)]
    return selected if selected else list(values)


def _refresh_gift_aid_values(plan: MappingPlan, sample_rows: Sequence[dict[str, Any]]) -> None:
    column = plan.mapping.get(ELIGIBILITY_FIELD)
    if not isinstance(column, str) or not column:
        plan.gift_aid_values = []
        plan.selected_values = []
        return
    plan.gift_aid_values = distinct_values(sample_rows, column)
    plan.selected_values = default_eligible_values(plan.gift_aid_values)


def detect_mapping_plan(columns: Sequence[str], sample_rows: Sequence[dict[str, Any]]) -> MappingPlan:
    plan = MappingPlan(columns=list(columns), mapping=auto_detect_mapping(columns))
    _refresh_gift_aid_values(plan, sample_rows)
    return plan


def _require_field(field_key: str) -> None:
    if field_key not in FIELD_BY_KEY:
        raise MappingError(f"Unknown target field: {field_key}")


def _require_column(plan: MappingPlan, column: str) -> None:
    if column not in plan.columns:
        raise MappingError(f"Column not found in source: {column}")


def assign_column(
    plan: MappingPlan,
    field_key: str,
    column: str,
    sample_rows: Sequence[dict[str, Any]] = (),
) -> MappingPlan:
    _require_field(field_key)
    _require_column(plan, column)
    if FIELD_BY_KEY[field_key].allow_multiple:
        current = plan.mapping.get(field_key)
        sources = list(current) if isinstance(current, list) else ([current] if current else [])
        if column not in sources:
            sources.append(column)
        plan.mapping[field_key] = sources
    else:
        plan.mapping[field_key] = column
    if field_key == ELIGIBILITY_FIELD:
        _refresh_gift_aid_values(plan, sample_rows)
    return plan


def remove_column(plan: MappingPlan, field_key: str, column: str | None = None) -> MappingPlan:
    _require_field(field_key)
    current = plan.mapping.get(field_key)
    if isinstance(current, list) and column is not None:
        if column not in current:
            raise MappingError(f"Column {column!r} is not mapped to {field_key}")
        remaining = [source for source in current if source != column]
        if remaining:
            plan.mapping[field_key] = remaining
        else:
            plan.mapping.pop(field_key, None)
    else:
        plan.mapping.pop(field_key, None)
    if field_key == ELIGIBILITY_FIELD:
        plan.gift_aid_values = []
        plan.selected_values = []
    return plan


def select_values(plan: MappingPlan, values: Sequence[str]) -> MappingPlan:
    unknown = [value for value in values if value not in plan.gift_aid_values]
    if unknown:
        raise MappingError(f"Gift Aid value(s) not present in source: {', '.join(unknown)}")
    plan.selected_values = list(dict.fromkeys(values))
    return plan


def is_mapping_complete(mapping: ColumnMapping, selected_values: Sequence[str]) -> bool:
    required_mapped = all(_is_mapped(mapping.get(f.key)) for f in TARGET_FIELDS if f.required)
    return required_mapped and len(selected_values) > 0


def has_standard_columns(columns: Sequence[str]) -> bool:
    lowered = [str(column).lower().replace(" ", "") for column in columns]
    return all(
        any(hint.lower().replace(" ", "") in column for column in lowered)
        for hint in STANDARD_COLUMN_HINTS
    )


def build_eligibility_config(plan: MappingPlan) -> EligibilityConfig | None:
    if not _is_mapped(plan.mapping.get(ELIGIBILITY_FIELD)):
        return None
    return EligibilityConfig(column=ELIGIBILITY_FIELD, values_to_keep=tuple(plan.selected_values))
