"""
loader.py: source file loader for boost-aid

Supports: .csv .tsv .txt .xlsx .xlsm .xls .ods

Public API:
    result  = load_file("path/to/donations.xlsx")
    records = result["records"]

Result dict keys:
    records: list of raw row dicts (missing cells are "")
    columns: header names in first-seen order across sheets
    detected_format: "csv", "xlsx", ...
    detected_encoding: encoding name for text files; None for workbooks
    delimiter: delimiter char for text files; None otherwise
    sheet_name: the sheet loaded, or "[all N sheets]" for a union
    sheet_names: all sheet names for workbooks; None otherwise
    warnings: list of warning strings
"""

from __future__ import annotations

import csv
import io
import math
from collections import Counter
from datetime import date, datetime
from pathlib import Path
from typing import Any, Optional

import chardet
import pandas as pd

# ── Format groups ──────────────────────────────────────────────────────────────
TEXT_FORMATS  = {".csv", ".tsv", ".txt"}
EXCEL_FORMATS = {".xlsx", ".xlsm", ".xls"}
ODS_FORMATS   = {".ods"}
ALL_FORMATS   = TEXT_FORMATS | EXCEL_FORMATS | ODS_FORMATS

_NATIVE_TYPES = (str, bool, int, float, datetime, date)


# ══════════════════════════════════════════════════════════════════════════════
# ENCODING & DELIMITER DETECTION
# ══════════════════════════════════════════════════════════════════════════════

def _detect_encoding(raw: bytes) -> str:
    result = chardet.detect(raw)
    return result.get("encoding") or "utf-8"


def _read_text_safely(raw: bytes, preferred_encoding: str) -> str:
    """
    Decode raw bytes line-by-line.

    Each line tries UTF-8, then the detected encoding, then latin-1, and
    finally CP1252 with replacement. Embedded null bytes are dropped.
    """
    decoded_lines: list[str] = []
    for raw_line in raw.split(b"\n"):
        decoded: str | None = None
        for enc in ("utf-8", preferred_encoding, "latin-1"):
            if not enc:
                continue
            try:
                decoded = raw_line.decode(enc)
                break
            except (LookupError, UnicodeDecodeError):
                continue
        if decoded is None:
            decoded = raw_line.decode("cp1252", errors="replace")
        decoded_lines.append(decoded.replace("\x00", ""))
    return "\n".join(decoded_lines).lstrip("\ufeff")


def _detect_delimiter(text: str) -> str:
    """
    Infer the delimiter from sample lines.

    csv.Sniffer goes first; otherwise each candidate is scored by how
    consistently it splits rows into the same number of columns.
    """
    sample_lines = [line for line in text.splitlines() if line.strip()][:50]
    sample = "\n".join(sample_lines[:25])

    if sample:
        try:
            return csv.Sniffer().sniff(sample, delimiters=",;\t|").delimiter
        except csv.Error:
            pass

    best_delim = ","
    best_score = float("-inf")
    for delim in (",", ";", "\t", "|"):
        rows = [
            row
            for row in csv.reader(io.StringIO("\n".join(sample_lines)), delimiter=delim)
            if any(cell.strip() for cell in row)
        ]
        if len(rows) < 2:
            continue
        mode_width, mode_count = Counter(len(row) for row in rows).most_common(1)[0]
        score = mode_width * 2.0 + (mode_count / len(rows)) * mode_width
        if len(rows[0]) == mode_width:
            score += 1.0
        if mode_width == 1:
            score -= 10.0
        if score > best_score:
            best_score = score
            best_delim = delim
    return best_delim


# ══════════════════════════════════════════════════════════════════════════════
# FRAME → RECORDS
# ══════════════════════════════════════════════════════════════════════════════

def _column_label(name: Any, position: int) -> str:
    text = "" if name is None else str(name).strip()
    if not text or text.startswith("Unnamed:"):
        return f"Column{position}"
    return text


def _cell_value(value: Any) -> Any:
    if value is None or value is pd.NaT:
        return ""
    if isinstance(value, float) and math.isnan(value):
        return ""
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    if isinstance(value, _NATIVE_TYPES):
        return value
    # numpy scalars
    if hasattr(value, "item"):
        return value.item()
    return value


def _frame_records(df: pd.DataFrame) -> tuple[list[str], list[dict[str, Any]]]:
    columns = [_column_label(name, idx) for idx, name in enumerate(df.columns)]
    records = []
    for values in df.itertuples(index=False, name=None):
        row = {column: _cell_value(value) for column, value in zip(columns, values)}
        if any(value != "" for value in row.values()):
            records.append(row)
    return columns, records


def _union_frames(frames: list[pd.DataFrame]) -> tuple[list[str], list[dict[str, Any]]]:
    all_columns: dict[str, None] = {}
    all_records: list[dict[str, Any]] = []
    for df in frames:
        columns, records = _frame_records(df)
        for column in columns:
            all_columns.setdefault(column, None)
        all_records.extend(records)
    ordered = list(all_columns)
    return ordered, [{column: record.get(column, "") for column in ordered} for record in all_records]


# ══════════════════════════════════════════════════════════════════════════════
# FORMAT LOADERS
# ══════════════════════════════════════════════════════════════════════════════

def _load_text(path: Path, suffix: str) -> dict:
    raw  = path.read_bytes()
    enc  = _detect_encoding(raw)
    text = _read_text_safely(raw, enc)

    delimiter = "\t" if suffix == ".tsv" else _detect_delimiter(text)
    sep = r"\|" if delimiter == "|" else delimiter
    try:
        df = pd.read_csv(
            io.StringIO(text),
            dtype=str,
            keep_default_na=False,
            on_bad_lines="skip",
            sep=sep,
            engine="python",
        )
    except Exception as exc:
        raise ValueError(f"Could not parse {suffix} file: {exc}") from exc

    columns, records = _frame_records(df)
    return {
        "records":           records,
        "columns":           columns,
        "detected_format":   suffix.lstrip("."),
        "detected_encoding": enc,
        "delimiter":         delimiter,
        "sheet_name":        None,
        "sheet_names":       None,
        "warnings":          [],
    }


def _require_engine(suffix: str) -> Optional[str]:
    if suffix == ".xls":
        try:
            import xlrd  # noqa: F401
        except ImportError:
            raise ImportError(".xls files require xlrd; run: pip install xlrd")
        return None
    if suffix == ".ods":
        try:
            import odf  # noqa: F401
        except ImportError:
            raise ImportError(".ods files require odfpy; run: pip install odfpy")
        return "odf"
    return None


def _load_workbook(path: Path, suffix: str, sheet_name: Optional[str] = None) -> dict:
    """
    Load a workbook.

    With sheet_name, only that sheet is read. Otherwise every sheet is read
    and the rows are unioned under the combined header set.
    """
    engine = _require_engine(suffix)
    warnings: list[str] = []

    try:
        with pd.ExcelFile(path, engine=engine) as xf:
            all_sheets = list(xf.sheet_names)
    except Exception as exc:
        raise ValueError(f"Could not open workbook: {exc}") from exc

    if sheet_name is not None and sheet_name not in all_sheets:
        raise ValueError(f"Sheet '{sheet_name}' not found. Available: {all_sheets}")

    chosen = [sheet_name] if sheet_name is not None else all_sheets
    frames = []
    for name in chosen:
        try:
            frames.append(pd.read_excel(path, sheet_name=name, dtype=object, engine=engine))
        except Exception as exc:
            if sheet_name is not None:
                raise ValueError(f"Could not load sheet '{name}': {exc}") from exc
            warnings.append(f"Could not load sheet '{name}': {exc}")
    if not frames:
        raise ValueError("No sheets could be loaded.")

    columns, records = _union_frames(frames)
    if len(frames) > 1:
        active_sheet = f"[all {len(frames)} sheets]"
        warnings.append(f"Combined {len(frames)} sheets into one table.")
    else:
        active_sheet = chosen[0]

    return {
        "records":           records,
        "columns":           columns,
        "detected_format":   suffix.lstrip("."),
        "detected_encoding": None,
        "delimiter":         None,
        "sheet_name":        active_sheet,
        "sheet_names":       all_sheets,
        "warnings":          warnings,
    }


# ══════════════════════════════════════════════════════════════════════════════
# PUBLIC API
# ══════════════════════════════════════════════════════════════════════════════

def load_file(path: "str | Path", sheet_name: Optional[str] = None) -> dict:
    """
    Load a donation export into raw row dicts.

    Raises:
        FileNotFoundError  if the file does not exist.
        ValueError         if the format is unsupported or unreadable.
        ImportError        if a required optional engine is missing.
    """
    path   = Path(path)
    suffix = path.suffix.lower()

    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    if suffix not in ALL_FORMATS:
        supported = ", ".join(sorted(ALL_FORMATS))
        raise ValueError(f"Unsupported format '{suffix}'. Supported: {supported}")

    if suffix in TEXT_FORMATS:
        return _load_text(path, suffix)
    return _load_workbook(path, suffix, sheet_name)
