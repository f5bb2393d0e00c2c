from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union

# ══════════════════════════════════════════════════════════════════════════
# TARGET SCHEMA
# ══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class TargetField:
    key: str
    required: bool
    allow_multiple: bool = False


TARGET_FIELDS = (
    TargetField("Title", required=False),
    TargetField("First Name", required=True),
    TargetField("Last Name", required=True),
    TargetField("Email", required=False),
    TargetField("Address", required=True, allow_multiple=True),
    TargetField("Postcode", required=True),
    TargetField("Date", required=True),
    TargetField("Amount", required=True),
    TargetField("Gift Aid", required=True),
)
TARGET_FIELD_KEYS = tuple(f.key for f in TARGET_FIELDS)
FIELD_BY_KEY = {f.key: f for f in TARGET_FIELDS}

MAX_MULTI_SOURCE_COLUMNS = 3
ELIGIBILITY_FIELD = "Gift Aid"

# Normalised header substrings per target field, checked in order.
FIELD_PATTERNS: dict[str, tuple[str, ...]] = {
    "Title": ("title", "donortitle", "prefix"),
    "First Name": ("firstname", "first_name", "donorfirstname", "forename", "givenname"),
    "Last Name": ("lastname", "last_name", "surname", "donorsurname", "familyname"),
    "Email": ("email", "donoremail", "emailaddress"),
    "Address": ("address", "addressline", "donoraddress", "street"),
    "Postcode": ("postcode", "postal_code", "donoraddresspostcode", "zipcode", "zip"),
    "Date": ("date", "donationdate", "transactiondate", "paymentdate"),
    "Amount": ("amount", "donationamount", "value", "donationgrossamount"),
    "Gift Aid": ("giftaid", "taxeffective", "donationtaxeffective", "giftaidstatus", "tax_eligible"),
}

# Canonical record keys are the column names a standard donor-system export
# already uses, so unmapped exports flow straight into the processor.
TITLE_KEY = "Title Prefix"
FIRST_NAME_KEY = "First Name"
LAST_NAME_KEY = "Last Name"
EMAIL_KEY = "Email"
ADDRESS_KEY = "Gift Aid Address 1"
POSTCODE_KEY = "Gift Aid Postal Code"
DATE_KEY = "Last Donation Date"
AMOUNT_KEY = "Total Donation Amount"
GIFT_AID_KEY = "Gift Aid"

CANONICAL_KEYS = {
    "Title": TITLE_KEY,
    "First Name": FIRST_NAME_KEY,
    "Last Name": LAST_NAME_KEY,
    "Email": EMAIL_KEY,
    "Address": ADDRESS_KEY,
    "Postcode": POSTCODE_KEY,
    "Date": DATE_KEY,
    "Amount": AMOUNT_KEY,
    "Gift Aid": GIFT_AID_KEY,
}

FALLBACK_GIFT_AID_KEYS = ("Gift Aid", "DonationTaxEffective")
FALLBACK_TAX_ELIGIBLE_KEY = "Tax Eligible"
STANDARD_COLUMN_HINTS = ("First Name", "Last Name", "Gift Aid")

# ══════════════════════════════════════════════════════════════════════════
# CLEANING RULES
# ══════════════════════════════════════════════════════════════════════════

VALID_TITLES = ("Mr", "Mrs", "Miss", "Ms", "Dr", "Prof")
ANONYMOUS_NAMES = ("A", "Anonymous")

POSTCODE_MIN_LENGTH = 4
POSTCODE_MAX_LENGTH = 8
ADDRESS_TRACKING_LIMIT = 50

OUTPUT_DATE_FORMAT = "%d/%m/%Y"

CHANGE_TITLE = "Title"
CHANGE_ANONYMOUS = "Names (Anonymous)"
CHANGE_FIRST_NAME = "First Name"
CHANGE_LAST_NAME = "Last Name"
CHANGE_POSTCODE = "Postcode"
CHANGE_DATE = "Date"
CHANGE_ADDRESS = "Address"

# ══════════════════════════════════════════════════════════════════════════
# EXPORT LAYOUT
# ══════════════════════════════════════════════════════════════════════════

OUTPUT_HEADERS = [
    "Title",
    "First Name",
    "Last Name",
    "Address",
    "Postcode",
    "Donation Date",
    "Donation Amount",
]
AUDIT_HEADERS = ["Row #", "Status", "Changes Applied"] + OUTPUT_HEADERS

CHUNK_SIZE = 1000
GIFT_AID_RATE = 0.25

TEMPLATE_EARLIEST_DATE_CELL = "D13"
TEMPLATE_START_ROW = 25
TEMPLATE_START_COLUMN = 3   # column C

ColumnMapping = dict[str, Union[str, list[str]]]


@dataclass(frozen=True)
class EligibilityConfig:
    column: str | None
    values_to_keep: tuple[str, ...] = ()


@dataclass(frozen=True)
class CleanedFields:
    title: str
    first_name: str
    last_name: str
    address: str
    postcode: str
    donation_date: str | None
    donation_amount: float
    needs_review: bool

    def as_row(self) -> list[Any]:
        return [
            self.title,
            self.first_name,
            self.last_name,
            self.address,
            self.postcode,
            self.donation_date or "",
            self.donation_amount,
        ]

    def as_dict(self) -> dict[str, Any]:
        return dict(zip(OUTPUT_HEADERS, self.as_row()))


@dataclass(frozen=True)
class ProcessedRecord:
    original: dict[str, Any]
    processed: CleanedFields | None
    is_valid: bool
    changes_applied: tuple[str, ...] = field(default_factory=tuple)
