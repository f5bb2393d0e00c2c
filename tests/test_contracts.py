from __future__ import annotations

import re
import unittest
from pathlib import Path

from boost_aid import __version__
from boost_aid.contracts import CONTRACT_VERSIONS, build_contract, build_run_summary, utc_now_iso
from boost_aid.export import assemble_export, build_batch_summary
from boost_aid.field_matcher import detect_mapping_plan
from boost_aid.processor import process_records


class ContractTests(unittest.TestCase):
    def test_every_contract_is_versioned(self):
        for name in CONTRACT_VERSIONS:
            with self.subTest(contract=name):
                contract = build_contract(name)
                self.assertEqual(contract["name"], name)
                self.assertRegex(contract["version"], r"^\d+\.\d+\.\d+$")

    def test_unknown_contract_raises(self):
        with self.assertRaises(KeyError):
            build_contract("boost_aid.unknown")

    def test_utc_timestamp_format(self):
        self.assertTrue(re.fullmatch(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}Z", utc_now_iso()))

    def test_run_summary_defaults(self):
        summary = build_run_summary(command="map", input_path=Path("donations.csv"))
        self.assertEqual(summary["tool"], "boost-aid")
        self.assertEqual(summary["command"], "map")
        self.assertEqual(summary["status"], "ok")
        self.assertEqual(summary["input_file"], "donations.csv")
        self.assertEqual(summary["outputs"], {})
        self.assertEqual(summary["warnings_count"], 0)
        self.assertEqual(summary["metrics"], {})

    def test_run_summary_counts_warnings(self):
        summary = build_run_summary(
            command="process",
            input_path=None,
            status="needs_review",
            warnings=["Combined 2 sheets"],
        )
        self.assertIsNone(summary["input_file"])
        self.assertEqual(summary["warnings_count"], 1)
        self.assertEqual(summary["warnings"], ["Combined 2 sheets"])

    def test_mapping_plan_emits_versioned_contract(self):
        plan = detect_mapping_plan(["First Name", "Surname", "Gift Aid"], [{"Gift Aid": "Yes"}])
        payload = plan.as_dict()
        self.assertEqual(payload["contract"]["name"], "boost_aid.mapping_plan")
        self.assertFalse(payload["is_complete"])
        self.assertIn("Postcode", payload["missing_required"])

    def test_batch_summary_emits_versioned_contract_and_run_summary(self):
        outcome = process_records([], None)
        summary = build_batch_summary(outcome, assemble_export(outcome), input_path=Path("empty.csv"), outputs={})
        self.assertEqual(summary["contract"]["name"], "boost_aid.batch_summary")
        self.assertEqual(summary["schema_version"], summary["contract"]["version"])
        self.assertEqual(summary["tool_version"], __version__)
        self.assertEqual(summary["run_summary"]["command"], "process")
        self.assertEqual(summary["run_summary"]["status"], "ok")
        self.assertEqual(summary["totals"]["compliance_rate"], 100.0)


if __name__ == "__main__":
    unittest.main()
