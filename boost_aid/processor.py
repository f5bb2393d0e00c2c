"""Per-record Gift Aid cleaning and the batch driver around it."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable

from boost_aid.analytics import BatchAnalytics
from boost_aid.eligibility import is_eligible
from boost_aid.normalization import (
    address_exceeds_limit,
    address_needs_review,
    cell_text,
    extract_name_from_email,
    format_date,
    format_postcode,
    parse_amount,
    postcode_needs_review,
    repair_names,
    resolve_title,
)
from boost_aid.shared import (
    ADDRESS_KEY,
    AMOUNT_KEY,
    ANONYMOUS_NAMES,
    CHANGE_ADDRESS,
    CHANGE_ANONYMOUS,
    CHANGE_DATE,
    CHANGE_FIRST_NAME,
    CHANGE_LAST_NAME,
    CHANGE_POSTCODE,
    CHANGE_TITLE,
    DATE_KEY,
    EMAIL_KEY,
    FIRST_NAME_KEY,
    LAST_NAME_KEY,
    POSTCODE_KEY,
    TITLE_KEY,
    CleanedFields,
    EligibilityConfig,
    ProcessedRecord,
)


@dataclass
class ProcessingOutcome:
    analytics: BatchAnalytics
    processed: list[ProcessedRecord] = field(default_factory=list)
    ineligible: list[dict[str, Any]] = field(default_factory=list)
    total_records: int = 0

    @property
    def valid(self) -> list[ProcessedRecord]:
        return [item for item in self.processed if item.is_valid]

    @property
    def needs_review(self) -> list[ProcessedRecord]:
        return [item for item in self.processed if not item.is_valid]


def _track_names(
    analytics: BatchAnalytics,
    changes: list[str],
    *,
    original_first: str,
    original_last: str,
    first_name: str,
    last_name: str,
    email: str,
) -> None:
    if not original_first and not original_last and (first_name, last_name) == ANONYMOUS_NAMES:
        analytics.record("names_fixed", cells=2)
        changes.append(CHANGE_ANONYMOUS)
        return
    if original_first == first_name and original_last == last_name:
        return

    derived = extract_name_from_email(email) if email else None
    if derived and (
        (not original_first and first_name == derived[0])
        or (not original_last and last_name == derived[1])
    ):
        analytics.record("names_split_from_email", cells=0)
    analytics.record("names_fixed", cells=0)
    if original_first != first_name:
        analytics.record(cells=1)
        changes.append(CHANGE_FIRST_NAME)
    if original_last != last_name:
        analytics.record(cells=1)
        changes.append(CHANGE_LAST_NAME)


def process_record(
    record: dict[str, Any],
    config: EligibilityConfig | None,
    analytics: BatchAnalytics | None = None,
) -> ProcessedRecord:
    if not is_eligible(record, config):
        return ProcessedRecord(original=record, processed=None, is_valid=False, changes_applied=())

    if analytics is None:
        analytics = BatchAnalytics()
    changes: list[str] = []

    original_title = cell_text(record.get(TITLE_KEY)).strip()
    original_first = cell_text(record.get(FIRST_NAME_KEY)).strip()
    original_last = cell_text(record.get(LAST_NAME_KEY)).strip()
    email = cell_text(record.get(EMAIL_KEY)).strip()

    title, first_name, last_name = resolve_title(original_title, original_first, original_last)
    if title and title != original_title:
        analytics.record("titles_filled")
        changes.append(CHANGE_TITLE)

    first_name, last_name = repair_names(first_name, last_name, email)
    _track_names(
        analytics,
        changes,
        original_first=original_first,
        original_last=original_last,
        first_name=first_name,
        last_name=last_name,
        email=email,
    )

    raw_postcode = cell_text(record.get(POSTCODE_KEY))
    formatted_postcode = format_postcode(raw_postcode)
    if raw_postcode.strip() and raw_postcode.strip() != formatted_postcode:
        analytics.record("postcodes_corrected")
        changes.append(CHANGE_POSTCODE)

    raw_date = record.get(DATE_KEY)
    raw_date_text = cell_text(raw_date).strip()
    donation_date = format_date(raw_date)
    if raw_date_text and donation_date and raw_date_text != donation_date:
        analytics.record("dates_formatted")
        changes.append(CHANGE_DATE)

    address = cell_text(record.get(ADDRESS_KEY))
    if address_exceeds_limit(address):
        analytics.record("addresses_shortened")
        changes.append(CHANGE_ADDRESS)

    needs_review = (
        postcode_needs_review(raw_postcode)
        or address_needs_review(address)
        or donation_date is None
        or not first_name
        or not last_name
    )

    processed = CleanedFields(
        title=title,
        first_name=first_name,
        last_name=last_name,
        address=address,
        postcode=raw_postcode if needs_review else (formatted_postcode or ""),
        donation_date=donation_date,
        donation_amount=parse_amount(record.get(AMOUNT_KEY)),
        needs_review=needs_review,
    )
    return ProcessedRecord(
        original=record,
        processed=processed,
        is_valid=not needs_review,
        changes_applied=tuple(changes),
    )


def process_records(records: Iterable[dict[str, Any]], config: EligibilityConfig | None) -> ProcessingOutcome:
    outcome = ProcessingOutcome(analytics=BatchAnalytics())
    for record in records:
        outcome.total_records += 1
        result = process_record(record, config, outcome.analytics)
        if result.processed is None:
            outcome.ineligible.append(record)
        else:
            outcome.processed.append(result)
    return outcome
