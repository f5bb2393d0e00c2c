from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Sequence

from boost_aid import __version__ as TOOL_VERSION
from boost_aid.contracts import build_contract, build_run_summary
from boost_aid.normalization import parse_amount
from boost_aid.processor import ProcessingOutcome
from boost_aid.shared import AMOUNT_KEY, CHUNK_SIZE, GIFT_AID_RATE, OUTPUT_DATE_FORMAT, ProcessedRecord

STATUS_OK = "OK"
STATUS_AUTO_FIXED = "Auto-Fixed"


@dataclass
class ExportBundle:
    clean_rows: list[list[Any]] = field(default_factory=list)
    review_rows: list[list[Any]] = field(default_factory=list)
    ineligible_rows: list[dict[str, Any]] = field(default_factory=list)
    audit_rows: list[list[Any]] = field(default_factory=list)
    chunks: list[list[list[Any]]] = field(default_factory=list)
    earliest_donation_date: str = ""
    total_amount_reviewed: float = 0.0
    total_gift_aid_value: float = 0.0

    @property
    def estimated_reclaimable(self) -> float:
        return round(self.total_gift_aid_value * GIFT_AID_RATE, 2)


def chunk_records(rows: Sequence[Any], chunk_size: int = CHUNK_SIZE) -> list[list[Any]]:
    if chunk_size < 1:
        raise ValueError("chunk_size must be at least 1")
    return [list(rows[start:start + chunk_size]) for start in range(0, len(rows), chunk_size)]


def earliest_donation_date(records: Sequence[ProcessedRecord]) -> str:
    dates = []
    for item in records:
        text = item.processed.donation_date if item.processed else None
        if not text:
            continue
        try:
            dates.append(datetime.strptime(text, OUTPUT_DATE_FORMAT))
        except ValueError:
            continue
    if not dates:
        return ""
    return min(dates).strftime(OUTPUT_DATE_FORMAT)


def audit_row(row_number: int, item: ProcessedRecord) -> list[Any]:
    status = STATUS_AUTO_FIXED if item.changes_applied else STATUS_OK
    changes = ", ".join(item.changes_applied) if item.changes_applied else "None"
    return [row_number, status, changes] + item.processed.as_row()


def assemble_export(outcome: ProcessingOutcome, chunk_size: int = CHUNK_SIZE) -> ExportBundle:
    valid = outcome.valid
    bundle = ExportBundle(
        clean_rows=[item.processed.as_row() for item in valid],
        review_rows=[item.processed.as_row() for item in outcome.needs_review],
        ineligible_rows=list(outcome.ineligible),
        audit_rows=[audit_row(index, item) for index, item in enumerate(outcome.processed, start=1)],
        earliest_donation_date=earliest_donation_date(valid),
        total_amount_reviewed=sum(parse_amount(item.original.get(AMOUNT_KEY)) for item in outcome.processed),
        total_gift_aid_value=sum(item.processed.donation_amount for item in valid),
    )
    bundle.chunks = chunk_records(bundle.clean_rows, chunk_size)
    return bundle


def compliance_rate(valid_records: int, eligible_records: int) -> float:
    if eligible_records == 0:
        return 100.0
    return round(valid_records / eligible_records * 100, 2)


def build_batch_summary(
    outcome: ProcessingOutcome,
    bundle: ExportBundle,
    *,
    input_path: Path | None,
    outputs: dict[str, Any] | None = None,
    warnings: list[str] | None = None,
    mapping: dict[str, Any] | None = None,
) -> dict[str, Any]:
    contract = build_contract("boost_aid.batch_summary")
    eligible = len(outcome.processed)
    valid = len(bundle.clean_rows)
    counts = {
        "total_records": outcome.total_records,
        "eligible_records": eligible,
        "valid_records": valid,
        "invalid_records": len(bundle.review_rows),
        "filtered_records": len(bundle.ineligible_rows),
    }
    totals = {
        "total_amount_reviewed": round(bundle.total_amount_reviewed, 2),
        "total_gift_aid_value": round(bundle.total_gift_aid_value, 2),
        "estimated_reclaimable": bundle.estimated_reclaimable,
        "compliance_rate": compliance_rate(valid, eligible),
        "earliest_donation_date": bundle.earliest_donation_date,
    }
    analytics = outcome.analytics.as_dict()
    return {
        "contract": contract,
        "schema_version": contract["version"],
        "tool_version": TOOL_VERSION,
        "input_file": str(input_path) if input_path else None,
        "mapping": mapping,
        "records": counts,
        "totals": totals,
        "analytics": analytics,
        "chunks": len(bundle.chunks),
        "run_summary": build_run_summary(
            command="process",
            input_path=input_path,
            status="needs_review" if bundle.review_rows else "ok",
            outputs=outputs,
            warnings=warnings,
            metrics={**counts, **totals, **analytics, "chunks": len(bundle.chunks)},
        ),
    }
