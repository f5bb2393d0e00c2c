from __future__ import annotations

import math
import re
from datetime import date, datetime, timedelta
from typing import Any

import pandas as pd

from boost_aid.shared import (
    ADDRESS_TRACKING_LIMIT,
    ANONYMOUS_NAMES,
    OUTPUT_DATE_FORMAT,
    POSTCODE_MAX_LENGTH,
    POSTCODE_MIN_LENGTH,
    VALID_TITLES,
)

EXCEL_EPOCH = datetime(1899, 12, 30)
EXCEL_SERIAL_TEXT_MIN = 25_000
EXCEL_SERIAL_TEXT_MAX = 60_000

# Tried in order; the first pattern whose format yields a real calendar date wins.
DATE_FORMAT_PATTERNS = [
    ("%m/%d/%Y", re.compile(r"^\d{1,2}/\d{1,2}/\d{4}$"), "MM/dd/yyyy"),
    ("%m/%d/%Y", re.compile(r"^\d{1,2}/\d{1,2}/\d{4}$"), "M/d/yyyy"),
    ("%d/%m/%Y", re.compile(r"^\d{1,2}/\d{1,2}/\d{4}$"), "dd/MM/yyyy"),
    ("%d/%m/%Y", re.compile(r"^\d{1,2}/\d{1,2}/\d{4}$"), "d/M/yyyy"),
    ("%Y-%m-%d", re.compile(r"^\d{4}-\d{1,2}-\d{1,2}$"), "yyyy-MM-dd"),
    ("%d-%m-%Y", re.compile(r"^\d{1,2}-\d{1,2}-\d{4}$"), "dd-MM-yyyy"),
    ("%m-%d-%Y", re.compile(r"^\d{1,2}-\d{1,2}-\d{4}$"), "MM-dd-yyyy"),
]
CANONICAL_DATE_RE = re.compile(r"^\d{2}/\d{2}/\d{4}$")
NUMERIC_TEXT_RE = re.compile(r"^\d+(?:\.\d+)?$")
DIGITS_ONLY_RE = re.compile(r"^[0-9]+$")

TITLE_SPLIT_RE = re.compile(r"[\s,.]+")
EMAIL_DELIMITER_RE = re.compile(r"[._-]")
EMAIL_SPLIT_NAME_RE = re.compile(r"^([A-Za-z]+)\d+([A-Za-z]+)$")
DIGIT_RUN_RE = re.compile(r"\d+")


def _is_blank(value: Any) -> bool:
    if value is None or value is pd.NaT:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False


def cell_text(value: Any) -> str:
    """Render a raw cell the way a spreadsheet user would read it."""
    if _is_blank(value):
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        return value.isoformat(sep=" ")
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


# ══════════════════════════════════════════════════════════════════════════
# TITLES & NAMES
# ══════════════════════════════════════════════════════════════════════════

def canonical_title(text: str) -> str | None:
    lowered = text.strip().lower()
    return next((title for title in VALID_TITLES if title.lower() == lowered), None)


def extract_title(text: str) -> tuple[str | None, str]:
    """Find a title token inside a name and return (title, name without it)."""
    if not text:
        return None, text
    for part in TITLE_SPLIT_RE.split(text):
        match = canonical_title(part) if part else None
        if match:
            cleaned = re.sub(rf"\b{match}\b\.?", "", text, flags=re.IGNORECASE)
            return match, " ".join(cleaned.split())
    return None, text


def resolve_title(title: Any, first_name: Any, last_name: Any) -> tuple[str, str, str]:
    """Return (title, first_name, last_name) with any embedded title moved out.

    A title already in the vocabulary wins. Otherwise the first name is
    searched before the last name; nothing found leaves the title empty.
    """
    title_text = cell_text(title).strip()
    first = cell_text(first_name).strip()
    last = cell_text(last_name).strip()

    existing = canonical_title(title_text) if title_text else None
    if existing:
        return existing, first, last

    found, cleaned = extract_title(first)
    if found:
        return found, cleaned, last
    found, cleaned = extract_title(last)
    if found:
        return found, first, cleaned
    return "", first, last


def extract_name_from_email(email: Any) -> tuple[str, str] | None:
    text = cell_text(email).strip()
    if not text or "@" not in text:
        return None
    local_part = text.split("@")[0]

    if EMAIL_DELIMITER_RE.search(local_part):
        pieces = [DIGIT_RUN_RE.sub("", piece) for piece in EMAIL_DELIMITER_RE.split(local_part) if piece]
        pieces = [piece for piece in pieces if piece]
        if len(pieces) >= 2:
            return pieces[0], pieces[-1]
        if len(pieces) == 1:
            return pieces[0], pieces[0][0]

    # rashi2zzz -> rashi / zzz
    match = EMAIL_SPLIT_NAME_RE.match(local_part)
    if match:
        return match.group(1), match.group(2)

    stripped = DIGIT_RUN_RE.sub("", local_part)
    if len(stripped) > 1:
        return stripped, stripped[0]
    return None


def repair_names(first_name: Any, last_name: Any, email: Any) -> tuple[str, str]:
    first = cell_text(first_name).strip()
    last = cell_text(last_name).strip()
    email_text = cell_text(email).strip()

    if not first and not last:
        if not email_text:
            return ANONYMOUS_NAMES
        derived = extract_name_from_email(email_text)
        return derived if derived else (first, last)

    if first and not last:
        parts = first.split()
        if len(parts) > 1:
            return parts[0], " ".join(parts[1:])
        derived = extract_name_from_email(email_text)
        if derived:
            return first, derived[1]
        return first, last

    if last and not first:
        parts = last.split()
        if len(parts) > 1:
            return parts[0], " ".join(parts[1:])
        derived = extract_name_from_email(email_text)
        if derived:
            return derived[0], last
        return first, last

    return first, last


# ══════════════════════════════════════════════════════════════════════════
# POSTCODE & ADDRESS
# ══════════════════════════════════════════════════════════════════════════

def format_postcode(value: Any) -> str | None:
    text = cell_text(value).strip().upper()
    if not text:
        return None
    text = "".join(text.split())
    if len(text) >= 5:
        return f"{text[:-3]} {text[-3:]}"
    return text


def postcode_needs_review(value: Any) -> bool:
    text = cell_text(value).strip()
    if not text:
        return True
    if len(text) < POSTCODE_MIN_LENGTH or len(text) > POSTCODE_MAX_LENGTH:
        return True
    return bool(DIGITS_ONLY_RE.fullmatch(text[:5]))


def address_needs_review(value: Any) -> bool:
    text = cell_text(value).strip()
    return not text or bool(DIGITS_ONLY_RE.fullmatch(text))


def address_exceeds_limit(value: Any) -> bool:
    return len(cell_text(value).strip()) > ADDRESS_TRACKING_LIMIT


# ══════════════════════════════════════════════════════════════════════════
# DATES & AMOUNTS
# ══════════════════════════════════════════════════════════════════════════

def _from_excel_serial(serial: float) -> datetime | None:
    try:
        return EXCEL_EPOCH + timedelta(days=float(serial))
    except (OverflowError, ValueError):
        return None


def _lenient_parse(text: str) -> datetime | None:
    try:
        parsed = pd.to_datetime(text, errors="coerce")
    except (ValueError, TypeError, OverflowError):
        return None
    if pd.isna(parsed):
        return None
    return parsed.to_pydatetime()


def parse_date(value: Any) -> datetime | None:
    if _is_blank(value) or isinstance(value, bool):
        return None
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, (int, float)):
        return _from_excel_serial(value)

    text = str(value).strip()
    if CANONICAL_DATE_RE.fullmatch(text):
        try:
            return datetime.strptime(text, OUTPUT_DATE_FORMAT)
        except ValueError:
            pass

    for fmt, pattern, _label in DATE_FORMAT_PATTERNS:
        if not pattern.fullmatch(text):
            continue
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue

    if NUMERIC_TEXT_RE.fullmatch(text):
        serial = float(text)
        if EXCEL_SERIAL_TEXT_MIN <= serial <= EXCEL_SERIAL_TEXT_MAX:
            return _from_excel_serial(serial)
        return None

    return _lenient_parse(text)


def format_date(value: Any) -> str | None:
    parsed = parse_date(value)
    if parsed is None:
        return None
    try:
        return parsed.strftime(OUTPUT_DATE_FORMAT)
    except ValueError:
        return None


def parse_amount(value: Any) -> float:
    if _is_blank(value) or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        try:
            number = float(str(value).strip())
        except ValueError:
            return 0.0
    return number if math.isfinite(number) else 0.0
