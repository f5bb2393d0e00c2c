from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Any, Callable

import openpyxl
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from boost_aid.export import STATUS_AUTO_FIXED, ExportBundle
from boost_aid.normalization import cell_text
from boost_aid.shared import (
    AUDIT_HEADERS,
    OUTPUT_HEADERS,
    TEMPLATE_EARLIEST_DATE_CELL,
    TEMPLATE_START_COLUMN,
    TEMPLATE_START_ROW,
)

SHEET_CORRECT = "Correct Data"
SHEET_REVIEW = "Needs Review"
SHEET_INELIGIBLE = "Ineligible Records"
SHEET_AUDIT = "Auto-Fixed Records"

AUDIT_COLUMN_WIDTHS = [8, 12, 30, 8, 15, 15, 30, 12, 12, 12]
FILL_AUTO_FIXED = PatternFill("solid", fgColor="D4EDDA")   # soft green
FONT_AUTO_FIXED = Font(bold=True, color="155724")


def _header_font() -> Font:
    return Font(bold=True, color="FFFFFF")


def _header_fill(hex_color: str) -> PatternFill:
    return PatternFill("solid", fgColor=hex_color)


def _style_sheet(ws, col_widths: list[int], header_color: str):
    """Apply bold header, color, frozen row, and column widths."""
    fill = _header_fill(header_color)
    font = _header_font()
    for cell in ws[1]:
        cell.font  = font
        cell.fill  = fill
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=False)
    ws.freeze_panes = "A2"
    for i, width in enumerate(col_widths, start=1):
        ws.column_dimensions[get_column_letter(i)].width = width


def _infer_col_widths(rows: list[list], min_width: int = 10, max_width: int = 60, sample: int = 300) -> list[int]:
    if not rows:
        return []
    widths = [max(min_width, min(max_width, len(str(v)) + 2)) for v in rows[0]]
    for row in rows[1 : sample + 1]:
        for i, val in enumerate(row):
            widths[i] = max(widths[i], min(max_width, len(str(val)) + 2))
    return [max(min_width, min(max_width, w)) for w in widths]


def save_atomically(output_path: Path, writer: Callable[[Path], None]) -> None:
    """Run writer against a sibling temp file, then move it into place."""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{output_path.stem}.",
        suffix=output_path.suffix,
        dir=str(output_path.parent),
    )
    os.close(fd)
    temp_path = Path(tmp_name)
    try:
        writer(temp_path)
        os.replace(temp_path, output_path)
    finally:
        if temp_path.exists():
            temp_path.unlink()


def _append_table(ws, headers: list[str], rows: list[list[Any]], header_color: str) -> None:
    ws.append(headers)
    for row in rows:
        ws.append(row)
    _style_sheet(ws, _infer_col_widths([headers] + rows), header_color)


def _ineligible_table(records: list[dict[str, Any]]) -> tuple[list[str], list[list[Any]]]:
    headers: dict[str, None] = {}
    for record in records:
        for key in record:
            headers.setdefault(str(key), None)
    ordered = list(headers)
    return ordered, [[cell_text(record.get(key)) for key in ordered] for record in records]


# ══════════════════════════════════════════════════════════════════════════
# CLEANED WORKBOOK
# ══════════════════════════════════════════════════════════════════════════

def _build_cleaned_workbook(bundle: ExportBundle) -> openpyxl.Workbook:
    wb = openpyxl.Workbook()

    ws_correct = wb.active
    ws_correct.title = SHEET_CORRECT
    _append_table(ws_correct, OUTPUT_HEADERS, bundle.clean_rows, "4CAF50")   # green

    if bundle.review_rows:
        ws_review = wb.create_sheet(SHEET_REVIEW)
        _append_table(ws_review, OUTPUT_HEADERS, bundle.review_rows, "E53935")   # red

    if bundle.ineligible_rows:
        ws_ineligible = wb.create_sheet(SHEET_INELIGIBLE)
        headers, rows = _ineligible_table(bundle.ineligible_rows)
        _append_table(ws_ineligible, headers, rows, "757575")   # grey

    ws_audit = wb.create_sheet(SHEET_AUDIT)
    ws_audit.append(AUDIT_HEADERS)
    for row in bundle.audit_rows:
        ws_audit.append(row)
        if row[1] == STATUS_AUTO_FIXED:
            for cell in ws_audit[ws_audit.max_row]:
                cell.fill = FILL_AUTO_FIXED
                cell.font = FONT_AUTO_FIXED
    _style_sheet(ws_audit, AUDIT_COLUMN_WIDTHS, "1565C0")   # blue
    return wb


def write_cleaned_workbook(bundle: ExportBundle, output_path: Path) -> Path:
    wb = _build_cleaned_workbook(bundle)
    save_atomically(output_path, wb.save)
    return output_path


# ══════════════════════════════════════════════════════════════════════════
# CHUNKED OUTPUTS
# ══════════════════════════════════════════════════════════════════════════

def _fill_submission_template(ws, chunk: list[list[Any]], earliest_date: str) -> None:
    ws[TEMPLATE_EARLIEST_DATE_CELL] = earliest_date
    for offset, row in enumerate(chunk):
        title, first_name, last_name, address, postcode, donation_date, amount = row
        values = [title, first_name, last_name, address, postcode, None, None, donation_date, amount]
        for column_offset, value in enumerate(values):
            ws.cell(row=TEMPLATE_START_ROW + offset, column=TEMPLATE_START_COLUMN + column_offset, value=value)


def write_submission_files(bundle: ExportBundle, template_path: Path, out_dir: Path) -> list[Path]:
    """Populate one copy of the HMRC schedule template per chunk of clean rows."""
    if not template_path.exists():
        raise FileNotFoundError(f"Template not found: {template_path}")
    written = []
    for index, chunk in enumerate(bundle.chunks, start=1):
        try:
            wb = openpyxl.load_workbook(template_path)
        except Exception as exc:
            raise ValueError(f"Could not open template workbook: {exc}") from exc
        _fill_submission_template(wb.worksheets[0], chunk, bundle.earliest_donation_date)
        path = out_dir / f"HMRC_submission_{index}.xlsx"
        save_atomically(path, wb.save)
        written.append(path)
    return written


def write_output_sheets(bundle: ExportBundle, out_dir: Path) -> list[Path]:
    written = []
    for index, chunk in enumerate(bundle.chunks, start=1):
        wb = openpyxl.Workbook()
        ws = wb.active
        ws.title = "Sheet1"
        ws.append(OUTPUT_HEADERS)
        for row in chunk:
            ws.append(row)
        path = out_dir / f"output_sheet_{index}.xlsx"
        save_atomically(path, wb.save)
        written.append(path)
    return written
