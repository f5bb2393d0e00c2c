#!/usr/bin/env python3
"""
Generates sample-data/messy_donations.xlsx and sample-data/hmrc_template.xlsx
for trying out boost-aid.

Run from the repo root:
    python sample-data/generate_donations.py
    boost-aid process sample-data/messy_donations.xlsx --template sample-data/hmrc_template.xlsx

Problems baked in:
  Sheet "Online"
    - Non-standard headers ("Forename", "Surname", "Donor Email", "Tax Effective"...)
    - Titles inside name cells ("Mr John", "Smith Dr")
    - Whole names in one cell, names only in the email address
    - Lower-case and unspaced postcodes, a numeric postcode
    - Dates as Excel serials, US text dates, ISO text dates, junk text
    - Address split across two columns, one over 50 characters
  Sheet "Events"
    - Same layout plus a "Notes" column only this sheet has
    - Non-eligible rows ("Non tax effective")
"""

from datetime import datetime
from pathlib import Path

import openpyxl

HERE = Path(__file__).parent
DONATIONS = HERE / "messy_donations.xlsx"
TEMPLATE = HERE / "hmrc_template.xlsx"

HEADERS = [
    "Donor Title", "Forename", "Surname", "Donor Email", "Address Line 1", "Address Line 2",
    "Postcode", "Donation Date", "Donation Amount", "Tax Effective",
]

ONLINE = [
    ["Mr", "John", "Smith", "john.smith@example.com", "12 High Street", "Leeds", "ls1 4ap", 45292, 25, "Tax effective"],
    ["", "Mrs Jane", "Doe", "", "4 Mill Lane", "", "SW1A1AA", "12/15/2025", 10.5, "Tax effective"],
    ["", "Peter Jones", "", "pj@example.com", "The Old Rectory", "", "BS1 5TR", "2024-03-01", "40", "Tax effective"],
    ["", "", "", "rashi.zzz@example.com", "88 Station Road", "", "M1 1AE", "01/02/2024", 5, "Tax effective"],
    ["", "", "", "", "1 Church Row", "", "EH1 1YZ", "03/04/2024", 15, "Tax effective"],
    ["", "Ann", "Smith Dr", "", "Flat 2, Riverside Court, Long Meadow Road, Upper Wickham", "", "OX1 2JD", "05/06/2024", 30, "Tax effective"],
    ["", "Bob", "Stone", "", "22", "", "12345", "not a date", 12, "Tax effective"],
]

EVENTS = [
    ["Miss", "Cara", "Lee", "", "9 Park View", "", "CF10 1AA", datetime(2024, 7, 9), 50, "Tax effective", "Fun run"],
    ["", "Dan", "Fox", "", "3 Elm Close", "", "B1 1AA", "2024-07-10", 20, "Non tax effective", "Fun run"],
    ["", "Eve", "Hart", "", "7 Ash Grove", "", "", "2024-07-11", 35, "Tax effective", "Bake sale"],
]


def write_donations() -> None:
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Online"
    ws.append(HEADERS)
    for row in ONLINE:
        ws.append(row)

    events = wb.create_sheet("Events")
    events.append(HEADERS + ["Notes"])
    for row in EVENTS:
        events.append(row)
    wb.save(DONATIONS)


def write_template() -> None:
    """A stand-in for the HMRC Gift Aid schedule spreadsheet layout."""
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "R68 Gift Aid Schedule"
    ws["B13"] = "Earliest donation date in the period of claim"
    labels = [
        "Title", "First name or initial", "Last name", "House name or number", "Postcode",
        "Aggregated donations", "Sponsored event", "Donation date", "Amount",
    ]
    for offset, label in enumerate(labels):
        ws.cell(row=24, column=3 + offset, value=label)
    wb.save(TEMPLATE)


if __name__ == "__main__":
    write_donations()
    write_template()
    print(f"Wrote {DONATIONS}")
    print(f"Wrote {TEMPLATE}")
