import math
import unittest
from datetime import date, datetime

import pandas as pd

from boost_aid.normalization import (
    address_exceeds_limit,
    address_needs_review,
    cell_text,
    extract_name_from_email,
    extract_title,
    format_date,
    format_postcode,
    parse_amount,
    postcode_needs_review,
    repair_names,
    resolve_title,
)


class CellTextTests(unittest.TestCase):
    def test_blank_values_render_empty(self):
        for value in (None, "", "   ", float("nan"), pd.NaT):
            self.assertEqual(cell_text(value), "")

    def test_integral_float_drops_decimal(self):
        self.assertEqual(cell_text(25.0), "25")
        self.assertEqual(cell_text(10.5), "10.5")
        self.assertEqual(cell_text(7), "7")

    def test_dates_render_iso(self):
        self.assertEqual(cell_text(date(2024, 1, 2)), "2024-01-02")
        self.assertEqual(cell_text(datetime(2024, 1, 2, 0, 0)), "2024-01-02 00:00:00")


class TitleTests(unittest.TestCase):
    def test_existing_title_is_kept_with_canonical_casing(self):
        self.assertEqual(resolve_title("mrs", "Jane", "Doe"), ("Mrs", "Jane", "Doe"))

    def test_title_is_moved_out_of_first_name(self):
        self.assertEqual(resolve_title("", "Mr John", "Smith"), ("Mr", "John", "Smith"))
        self.assertEqual(resolve_title("", "Mr. John", "Smith"), ("Mr", "John", "Smith"))

    def test_title_is_found_in_last_name_when_first_has_none(self):
        self.assertEqual(resolve_title("", "Ann", "Smith Dr"), ("Dr", "Ann", "Smith"))

    def test_unknown_title_becomes_empty(self):
        self.assertEqual(resolve_title("Rev", "Paul", "Green"), ("", "Paul", "Green"))

    def test_title_must_be_a_whole_word(self):
        self.assertEqual(extract_title("Drake"), (None, "Drake"))
        self.assertEqual(extract_title("Missy Elliot"), (None, "Missy Elliot"))

    def test_resolved_title_is_always_in_vocabulary_or_empty(self):
        samples = [
            ("", "Prof Ada Lovelace", ""),
            ("Ms", "", ""),
            ("", "miss,Kate", "Bush"),
            ("Sir", "Elton", "John"),
        ]
        for title, first, last in samples:
            resolved, _, _ = resolve_title(title, first, last)
            self.assertIn(resolved, {"", "Mr", "Mrs", "Miss", "Ms", "Dr", "Prof"})


class EmailNameTests(unittest.TestCase):
    def test_delimited_local_part(self):
        self.assertEqual(extract_name_from_email("rashi.zzz@example.com"), ("rashi", "zzz"))
        self.assertEqual(extract_name_from_email("john_smith99@example.com"), ("john", "smith"))
        self.assertEqual(extract_name_from_email("mary-jane-watson@example.com"), ("mary", "watson"))

    def test_single_piece_uses_initial_for_last_name(self):
        self.assertEqual(extract_name_from_email("anna.@example.com"), ("anna", "a"))

    def test_letters_digits_letters(self):
        self.assertEqual(extract_name_from_email("rashi2zzz@example.com"), ("rashi", "zzz"))

    def test_plain_local_part(self):
        self.assertEqual(extract_name_from_email("pj@example.com"), ("pj", "p"))

    def test_unusable_addresses(self):
        self.assertIsNone(extract_name_from_email("no-at-sign"))
        self.assertIsNone(extract_name_from_email("j@example.com"))
        self.assertIsNone(extract_name_from_email("12345@example.com"))
        self.assertIsNone(extract_name_from_email(""))


class NameRepairTests(unittest.TestCase):
    def test_both_empty_uses_email(self):
        self.assertEqual(repair_names("", "", "rashi.zzz@example.com"), ("rashi", "zzz"))

    def test_both_empty_without_email_is_anonymous(self):
        self.assertEqual(repair_names("", "", ""), ("A", "Anonymous"))

    def test_both_empty_with_unusable_email_stays_blank(self):
        self.assertEqual(repair_names("", "", "not-an-email"), ("", ""))

    def test_full_name_in_one_field_is_split(self):
        self.assertEqual(repair_names("Peter Jones", "", "pj@example.com"), ("Peter", "Jones"))
        self.assertEqual(repair_names("", "Mary Ann Evans", ""), ("Mary", "Ann Evans"))

    def test_missing_side_filled_from_email(self):
        self.assertEqual(repair_names("John", "", "john.smith@example.com"), ("John", "smith"))
        self.assertEqual(repair_names("", "Smith", "john.smith@example.com"), ("john", "Smith"))

    def test_missing_side_without_email_stays_empty(self):
        self.assertEqual(repair_names("", "Doe", ""), ("", "Doe"))


class PostcodeAndAddressTests(unittest.TestCase):
    def test_format_postcode(self):
        self.assertEqual(format_postcode("ls1 4ap"), "LS1 4AP")
        self.assertEqual(format_postcode("SW1A1AA"), "SW1A 1AA")
        self.assertEqual(format_postcode(" m1  1ae "), "M1 1AE")
        self.assertEqual(format_postcode("M11"), "M11")
        self.assertIsNone(format_postcode(""))
        self.assertIsNone(format_postcode(None))

    def test_format_postcode_is_idempotent(self):
        for raw in ("ls1 4ap", "SW1A1AA", "b11aa", "EC1A 1BB", "N1"):
            once = format_postcode(raw)
            self.assertEqual(format_postcode(once), once)

    def test_postcode_review_rules(self):
        self.assertFalse(postcode_needs_review("LS1 4AP"))
        self.assertFalse(postcode_needs_review("SW1A 1AA"))
        self.assertTrue(postcode_needs_review(""))
        self.assertTrue(postcode_needs_review("M1"))
        self.assertTrue(postcode_needs_review("SW1A  1AAX"))
        self.assertTrue(postcode_needs_review("12345"))
        self.assertTrue(postcode_needs_review("1234"))

    def test_address_rules(self):
        self.assertTrue(address_needs_review(""))
        self.assertTrue(address_needs_review("22"))
        self.assertFalse(address_needs_review("22 Acacia Avenue"))
        self.assertFalse(address_exceeds_limit("x" * 50))
        self.assertTrue(address_exceeds_limit("x" * 51))


class DateTests(unittest.TestCase):
    def test_canonical_dates_are_unchanged(self):
        self.assertEqual(format_date("01/02/2024"), "01/02/2024")
        self.assertEqual(format_date("31/12/2023"), "31/12/2023")

    def test_us_dates_win_when_valid(self):
        self.assertEqual(format_date("12/15/2025"), "15/12/2025")
        self.assertEqual(format_date("1/2/2024"), "02/01/2024")

    def test_other_text_formats(self):
        self.assertEqual(format_date("2024-03-01"), "01/03/2024")
        self.assertEqual(format_date("31-12-2024"), "31/12/2024")

    def test_excel_serials(self):
        self.assertEqual(format_date(45292), "01/01/2024")
        self.assertEqual(format_date(45292.0), "01/01/2024")
        self.assertEqual(format_date("45292"), "01/01/2024")

    def test_native_dates(self):
        self.assertEqual(format_date(datetime(2024, 7, 9, 13, 30)), "09/07/2024")
        self.assertEqual(format_date(date(2024, 7, 9)), "09/07/2024")
        self.assertEqual(format_date(pd.Timestamp("2024-07-09")), "09/07/2024")

    def test_unparsable_dates(self):
        for value in ("", None, "not a date", "123", True, float("nan")):
            self.assertIsNone(format_date(value), value)

    def test_impossible_calendar_dates(self):
        for value in ("31/02/2024", "2024-02-30"):
            self.assertIsNone(format_date(value), value)

    def test_format_date_is_idempotent(self):
        for raw in ("12/15/2025", "2024-03-01", 45292, "31-12-2024", "01/02/2024"):
            once = format_date(raw)
            self.assertEqual(format_date(once), once)


class AmountTests(unittest.TestCase):
    def test_parse_amount(self):
        self.assertEqual(parse_amount(25), 25.0)
        self.assertEqual(parse_amount(" 10.50 "), 10.5)
        self.assertEqual(parse_amount(""), 0.0)
        self.assertEqual(parse_amount("abc"), 0.0)
        self.assertEqual(parse_amount(None), 0.0)
        self.assertEqual(parse_amount(float("inf")), 0.0)
        self.assertFalse(math.isnan(parse_amount(float("nan"))))


if __name__ == "__main__":
    unittest.main()
