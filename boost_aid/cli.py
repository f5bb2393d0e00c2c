from __future__ import annotations

import argparse
import json
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from boost_aid import __version__ as TOOL_VERSION
from boost_aid.export import assemble_export, build_batch_summary
from boost_aid.field_matcher import (
    MappingError,
    MappingPlan,
    assign_column,
    build_eligibility_config,
    detect_mapping_plan,
    has_standard_columns,
    remove_column,
    select_values,
)
from boost_aid.loader import load_file
from boost_aid.mapping import apply_mapping_to_rows
from boost_aid.processor import process_records
from boost_aid.shared import CHUNK_SIZE, TARGET_FIELD_KEYS
from boost_aid.workbook import write_cleaned_workbook, write_output_sheets, write_submission_files

EXIT_SUCCESS = 0
EXIT_COMMAND_ERROR = 1
EXIT_PARSE_FAILED = 2
EXIT_MAPPING_INCOMPLETE = 3
EXIT_NEEDS_REVIEW = 4
EXIT_REVIEW_FAILED = 5

OUTPUT_STAMP_ENV = "BOOST_AID_OUTPUT_STAMP"


class CliError(Exception):
    def __init__(self, message: str, code: int = EXIT_COMMAND_ERROR) -> None:
        super().__init__(message)
        self.code = code


class BoostAidArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        raise CliError(message, EXIT_COMMAND_ERROR)


def eprint(message: str) -> None:
    print(message, file=sys.stderr)


def emit_human(message: str, *, quiet: bool = False) -> None:
    if not quiet:
        eprint(message)


def json_dumps(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, sort_keys=True)


def timestamp_token() -> str:
    override = os.environ.get(OUTPUT_STAMP_ENV)
    if override:
        return override
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def default_output_dir(input_path: Path) -> Path:
    return Path.cwd() / "boost-aid-output" / f"{input_path.stem}-{timestamp_token()}"


def determine_output_dir(args: argparse.Namespace, input_path: Path) -> Path:
    if getattr(args, "out_dir", None):
        return Path(args.out_dir)
    return default_output_dir(input_path)


def write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json_dumps(payload), encoding="utf-8")


def remove_generated_at(value: Any) -> Any:
    if isinstance(value, dict):
        result = {}
        for key, item in value.items():
            if key == "generated_at":
                result[key] = "1970-01-01T00:00:00Z"
            else:
                result[key] = remove_generated_at(item)
        return result
    if isinstance(value, list):
        return [remove_generated_at(item) for item in value]
    return value


def safe_output_path(path: Path) -> Path:
    if path.exists():
        raise CliError(f"Refusing to overwrite existing output: {path}", EXIT_COMMAND_ERROR)
    return path


def maybe_emit_json_stdout(payload: Any, enabled: bool) -> None:
    if enabled:
        print(json_dumps(payload))


def classify_backend_exception(exc: Exception) -> int:
    if isinstance(exc, CliError):
        return exc.code
    if isinstance(exc, MappingError):
        return EXIT_COMMAND_ERROR
    if isinstance(exc, (ImportError, UnicodeDecodeError)):
        return EXIT_PARSE_FAILED
    if isinstance(exc, FileNotFoundError):
        return EXIT_COMMAND_ERROR
    if isinstance(exc, ValueError):
        return EXIT_PARSE_FAILED
    return EXIT_COMMAND_ERROR


# ══════════════════════════════════════════════════════════════════════════
# MAPPING ARGUMENTS
# ══════════════════════════════════════════════════════════════════════════

def parse_field_assignments(items: list[str] | None) -> list[tuple[str, str]]:
    assignments: list[tuple[str, str]] = []
    for item in items or []:
        if "=" not in item:
            raise CliError(f"Invalid --map value '{item}'. Expected FIELD=COLUMN.", EXIT_COMMAND_ERROR)
        field_key, column = (part.strip() for part in item.split("=", 1))
        if field_key not in TARGET_FIELD_KEYS:
            raise CliError(
                f"Unknown target field '{field_key}'. Expected one of: {', '.join(TARGET_FIELD_KEYS)}",
                EXIT_COMMAND_ERROR,
            )
        if not column:
            raise CliError(f"Invalid --map value '{item}'. Column name is empty.", EXIT_COMMAND_ERROR)
        assignments.append((field_key, column))
    return assignments


def load_mapping_file(mapping_path: Path) -> tuple[dict[str, Any], list[str] | None]:
    if not mapping_path.exists():
        raise CliError(f"Mapping file not found: {mapping_path}", EXIT_COMMAND_ERROR)
    try:
        payload = json.loads(mapping_path.read_text(encoding="utf-8"))
    except Exception as exc:
        raise CliError(f"Could not read mapping file: {exc}", EXIT_COMMAND_ERROR) from exc
    if not isinstance(payload, dict) or not isinstance(payload.get("mapping"), dict):
        raise CliError("Mapping file must be a JSON object with a 'mapping' object.", EXIT_COMMAND_ERROR)
    values = payload.get("selected_values", payload.get("gift_aid_values"))
    if values is not None and not isinstance(values, list):
        raise CliError("Gift Aid values must be a list of strings.", EXIT_COMMAND_ERROR)
    return payload["mapping"], [str(value) for value in values] if values is not None else None


def _replace_field(plan: MappingPlan, field_key: str, columns: list[str], rows: list[dict[str, Any]]) -> None:
    remove_column(plan, field_key)
    for column in columns:
        assign_column(plan, field_key, column, rows)


def build_mapping_plan(args: argparse.Namespace, columns: list[str], rows: list[dict[str, Any]]) -> MappingPlan:
    plan = detect_mapping_plan(columns, rows)

    if getattr(args, "mapping", None):
        mapping, values = load_mapping_file(Path(args.mapping))
        for field_key, source in mapping.items():
            sources = source if isinstance(source, list) else [source]
            _replace_field(plan, field_key, [str(item) for item in sources if item], rows)
        if values is not None:
            select_values(plan, values)

    grouped: dict[str, list[str]] = {}
    for field_key, column in parse_field_assignments(args.map):
        grouped.setdefault(field_key, []).append(column)
    for field_key, sources in grouped.items():
        _replace_field(plan, field_key, sources, rows)

    if args.keep_values:
        select_values(plan, args.keep_values)
    return plan


def explicit_mapping_requested(args: argparse.Namespace) -> bool:
    return bool(getattr(args, "mapping", None) or args.map or args.keep_values)


# ══════════════════════════════════════════════════════════════════════════
# RENDERING
# ══════════════════════════════════════════════════════════════════════════

def render_plan_text(plan: MappingPlan, input_path: Path) -> str:
    lines = [
        "boost-aid map",
        f"Input: {input_path}",
        f"Columns: {len(plan.columns)}",
    ]
    for field_key in TARGET_FIELD_KEYS:
        source = plan.mapping.get(field_key)
        if isinstance(source, list):
            source = ", ".join(source)
        lines.append(f"- {field_key}: {source or '[unmapped]'}")
    if plan.gift_aid_values:
        lines.append("Gift Aid values: " + ", ".join(plan.gift_aid_values))
        lines.append("Kept as eligible: " + (", ".join(plan.selected_values) or "[none]"))
    if plan.missing_required:
        lines.append("Missing required fields: " + ", ".join(plan.missing_required))
    lines.append(f"Complete: {'yes' if plan.is_complete else 'no'}")
    return "\n".join(lines) + "\n"


def render_process_text(summary: dict[str, Any], cleaned_path: Path | None) -> str:
    records = summary["records"]
    totals = summary["totals"]
    analytics = summary["analytics"]
    lines = [
        "boost-aid process",
        f"Input: {summary['input_file']}",
        f"Records: {records['total_records']}",
        f"Gift Aid eligible: {records['eligible_records']}",
        f"Ready to claim: {records['valid_records']}",
        f"Needs review: {records['invalid_records']}",
        f"Filtered out: {records['filtered_records']}",
        f"Amount reviewed: {totals['total_amount_reviewed']:.2f}",
        f"Gift Aid value: {totals['total_gift_aid_value']:.2f}",
        f"Estimated reclaimable: {totals['estimated_reclaimable']:.2f}",
        f"Compliance rate: {totals['compliance_rate']:.1f}%",
        f"Cells modified: {analytics['total_cells_modified']}",
    ]
    if cleaned_path is not None:
        lines.append(f"Cleaned workbook: {cleaned_path}")
    warnings = summary["run_summary"]["warnings"]
    if warnings:
        lines.append("Warnings:")
        lines.extend(f"- {warning}" for warning in warnings)
    return "\n".join(lines) + "\n"


EXPLAIN_RULES = {
    "title": {
        "description": "Moves an honorific (Mr, Mrs, Miss, Ms, Dr, Prof) out of the name fields into Title.",
        "evidence": "The Title cell is not a recognised title but a name field contains one as a separate word.",
        "auto_fixable": True,
        "review_hint": "Titles outside the recognised list are left in the name and Title stays blank.",
    },
    "names": {
        "description": "Splits a full name held in one name field into first and last name.",
        "evidence": "One of First Name / Last Name is empty and the other holds several words.",
        "auto_fixable": True,
        "review_hint": "Rows whose names are still empty after repair go to Needs Review.",
    },
    "names_from_email": {
        "description": "Fills missing names from the donor's email address.",
        "evidence": "Name fields are empty and the email local part looks like first.last, first_last or similar.",
        "auto_fixable": True,
        "review_hint": "Check the audit sheet for rows whose names were derived from email.",
    },
    "anonymous": {
        "description": "Names a donor with no name and no email as 'A Anonymous'.",
        "evidence": "First Name, Last Name and Email are all empty.",
        "auto_fixable": True,
        "review_hint": "HMRC accepts aggregated anonymous donations only under specific rules.",
    },
    "postcode": {
        "description": "Upper-cases postcodes and puts the single space before the inward code.",
        "evidence": "The postcode text differs from its normalised form.",
        "auto_fixable": True,
        "review_hint": "Blank, too short, too long or numeric postcodes go to Needs Review.",
    },
    "date": {
        "description": "Rewrites donation dates as dd/MM/yyyy.",
        "evidence": "The date is an Excel serial, a native date, or text in another recognised format.",
        "auto_fixable": True,
        "review_hint": "Dates that cannot be parsed send the row to Needs Review.",
    },
    "address": {
        "description": "Flags addresses longer than 50 characters.",
        "evidence": "The mapped address text is longer than 50 characters.",
        "auto_fixable": False,
        "review_hint": "The address is kept as-is; shorten it to house name or number if HMRC rejects it.",
    },
    "eligibility": {
        "description": "Keeps only donations that carry a Gift Aid declaration.",
        "evidence": "The mapped Gift Aid cell is one of the kept values, or reads yes/true/tax effective.",
        "auto_fixable": False,
        "review_hint": "Use --keep-value to choose which Gift Aid values count as eligible.",
    },
}


# ══════════════════════════════════════════════════════════════════════════
# COMMANDS
# ══════════════════════════════════════════════════════════════════════════

def build_parser() -> argparse.ArgumentParser:
    parser = BoostAidArgumentParser(prog="boost-aid", description="Gift Aid donation cleanup and HMRC-ready exports.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_mapping_args(sub: argparse.ArgumentParser) -> None:
        sub.add_argument("input", help="Donation export (.csv/.tsv/.txt/.xlsx/.xlsm/.xls/.ods)")
        sub.add_argument("--sheet", dest="sheet_name", help="Read only this workbook sheet")
        sub.add_argument("--mapping", help="Mapping JSON as written by 'boost-aid map --output'")
        sub.add_argument("--map", action="append", metavar="FIELD=COLUMN", help="Map a target field to a source column (repeatable)")
        sub.add_argument("--keep-value", dest="keep_values", action="append", metavar="VALUE", help="Gift Aid value to treat as eligible (repeatable)")
        sub.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
        sub.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")

    map_cmd = subparsers.add_parser("map", help="Detect and review the column mapping.")
    add_mapping_args(map_cmd)
    map_cmd.add_argument("--output", help="Write the mapping plan to this JSON path")

    process = subparsers.add_parser("process", help="Clean donations and write export workbooks.")
    add_mapping_args(process)
    process.add_argument("--skip-mapping", action="store_true", help="Use source columns as-is with the built-in Gift Aid check")
    process.add_argument("--template", help="HMRC schedule template (.xlsx) to fill per chunk")
    process.add_argument("--chunk-size", type=int, default=CHUNK_SIZE, help=f"Rows per output chunk (default {CHUNK_SIZE})")
    process.add_argument("-o", "--out", dest="out_dir", help="Output directory")
    process.add_argument("--output", help="Explicit cleaned workbook path")
    process.add_argument("--dry-run", action="store_true", help="Process without writing outputs")
    process.add_argument("--fail-on-review", action="store_true", help="Return exit code 5 instead of 4 when rows need review")

    explain = subparsers.add_parser("explain", help="Explain a correction rule.")
    explain.add_argument("rule_id", help="Rule identifier")
    explain.add_argument("--json", action="store_true", help="Write machine JSON to stdout")

    subparsers.add_parser("version", help="Print version")
    return parser


def run_map(args: argparse.Namespace) -> int:
    input_path = Path(args.input)
    if not input_path.exists():
        eprint(f"File not found: {input_path}")
        return EXIT_COMMAND_ERROR

    try:
        loaded = load_file(input_path, sheet_name=args.sheet_name)
        plan = build_mapping_plan(args, loaded["columns"], loaded["records"])
        payload = plan.as_dict()
        if args.output:
            output_path = safe_output_path(Path(args.output))
            write_json(output_path, payload)
            emit_human(f"Mapping written: {output_path}", quiet=args.quiet or args.json)
        if args.json:
            maybe_emit_json_stdout(payload, True)
        else:
            emit_human(render_plan_text(plan, input_path).rstrip(), quiet=args.quiet)
        return EXIT_SUCCESS if plan.is_complete else EXIT_MAPPING_INCOMPLETE
    except Exception as exc:
        eprint(str(exc))
        return classify_backend_exception(exc)


def run_process(args: argparse.Namespace) -> int:
    input_path = Path(args.input)
    if not input_path.exists():
        eprint(f"File not found: {input_path}")
        return EXIT_COMMAND_ERROR

    try:
        if args.chunk_size < 1:
            raise CliError("--chunk-size must be at least 1.", EXIT_COMMAND_ERROR)
        if args.skip_mapping and explicit_mapping_requested(args):
            raise CliError("--skip-mapping cannot be combined with --mapping, --map or --keep-value.", EXIT_COMMAND_ERROR)
        template_path = Path(args.template) if args.template else None
        if template_path is not None and not template_path.exists():
            raise CliError(f"Template not found: {template_path}", EXIT_COMMAND_ERROR)

        loaded = load_file(input_path, sheet_name=args.sheet_name)
        columns, rows = loaded["columns"], loaded["records"]
        warnings = list(loaded["warnings"])

        skip_mapping = args.skip_mapping or (not explicit_mapping_requested(args) and has_standard_columns(columns))
        if skip_mapping:
            if has_standard_columns(columns):
                emit_human("Standard columns found; using them without a mapping step.", quiet=args.quiet or args.json)
            else:
                warnings.append("Source lacks First Name / Last Name / Gift Aid columns; processing it unmapped anyway.")
            mapping = None
            config = None
        else:
            plan = build_mapping_plan(args, columns, rows)
            if not plan.is_complete:
                missing = plan.missing_required
                detail = f"unmapped: {', '.join(missing)}" if missing else "no Gift Aid values selected"
                raise CliError(
                    f"Column mapping is incomplete ({detail}). Run 'boost-aid map' and pass --map/--keep-value.",
                    EXIT_MAPPING_INCOMPLETE,
                )
            mapping = plan.mapping
            config = build_eligibility_config(plan)

        canonical_rows = apply_mapping_to_rows(rows, mapping)
        outcome = process_records(canonical_rows, config)
        bundle = assemble_export(outcome, chunk_size=args.chunk_size)

        out_dir = determine_output_dir(args, input_path)
        cleaned_path = Path(args.output) if args.output else out_dir / f"{input_path.stem}-cleaned.xlsx"
        summary_path = out_dir / "batch-summary.json"
        outputs: dict[str, Any] = {}
        if not args.dry_run:
            safe_output_path(cleaned_path)
            safe_output_path(summary_path)
            for index in range(1, len(bundle.chunks) + 1):
                safe_output_path(out_dir / f"output_sheet_{index}.xlsx")
                if template_path is not None:
                    safe_output_path(out_dir / f"HMRC_submission_{index}.xlsx")

            outputs["cleaned_workbook"] = str(write_cleaned_workbook(bundle, cleaned_path))
            outputs["output_sheets"] = [str(path) for path in write_output_sheets(bundle, out_dir)]
            if template_path is not None:
                outputs["submissions"] = [str(path) for path in write_submission_files(bundle, template_path, out_dir)]
            outputs["summary"] = str(summary_path)

        summary = build_batch_summary(
            outcome,
            bundle,
            input_path=input_path,
            outputs=outputs,
            warnings=warnings,
            mapping=mapping,
        )
        summary = remove_generated_at(summary)
        if not args.dry_run:
            write_json(summary_path, summary)

        if args.json:
            maybe_emit_json_stdout(summary, True)
        else:
            emit_human(
                render_process_text(summary, None if args.dry_run else cleaned_path).rstrip(),
                quiet=args.quiet,
            )

        if bundle.review_rows:
            return EXIT_REVIEW_FAILED if args.fail_on_review else EXIT_NEEDS_REVIEW
        return EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_backend_exception(exc)


def run_explain(args: argparse.Namespace) -> int:
    rule = EXPLAIN_RULES.get(args.rule_id)
    if rule is None:
        eprint(f"Unknown rule id: {args.rule_id}. Known: {', '.join(sorted(EXPLAIN_RULES))}")
        return EXIT_COMMAND_ERROR
    payload = {"rule_id": args.rule_id, **rule}
    if args.json:
        maybe_emit_json_stdout(payload, True)
    else:
        print(
            "\n".join(
                [
                    f"Rule: {args.rule_id}",
                    f"What it does: {rule['description']}",
                    f"What triggers it: {rule['evidence']}",
                    f"Auto-fixable: {'yes' if rule['auto_fixable'] else 'no'}",
                    f"Review: {rule['review_hint']}",
                ]
            )
        )
    return EXIT_SUCCESS


def run_version() -> int:
    print(TOOL_VERSION)
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    try:
        parser = build_parser()
        args = parser.parse_args(argv)
        if args.command == "map":
            return run_map(args)
        if args.command == "process":
            return run_process(args)
        if args.command == "explain":
            return run_explain(args)
        if args.command == "version":
            return run_version()
        raise CliError(f"Unknown command: {args.command}", EXIT_COMMAND_ERROR)
    except CliError as exc:
        eprint(str(exc))
        return exc.code


if __name__ == "__main__":
    raise SystemExit(main())
