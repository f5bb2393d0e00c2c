from __future__ import annotations

import io
import json
import os
import subprocess
import sys
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path

import openpyxl

from boost_aid import __version__
from boost_aid.cli import main


ROOT = Path(__file__).resolve().parents[1]
CLI = [sys.executable, "-m", "boost_aid.cli"]
FIXED_STAMP = "20260301T010203Z"

HEADERS = [
    "Donor Title", "Forename", "Surname", "Donor Email", "Address Line 1", "Address Line 2",
    "Postcode", "Donation Date", "Donation Amount", "Tax Effective",
]
ROWS = [
    ["Mr", "John", "Smith", "john.smith@example.com", "12 High Street", "Leeds", "ls1 4ap", 45292, 25, "Tax effective"],
    ["", "Mrs Jane", "Doe", "", "4 Mill Lane", "", "SW1A1AA", "12/15/2025", 15, "Tax effective"],
    ["", "Bob", "Stone", "", "22", "", "12345", "not a date", 12, "Tax effective"],
    ["", "Dan", "Fox", "", "3 Elm Close", "", "B1 1AA", "2024-07-10", 20, "Non tax effective"],
]


def run_cli(*args: str, cwd: Path = ROOT, env: dict[str, str] | None = None) -> subprocess.CompletedProcess[str]:
    merged_env = dict(os.environ)
    merged_env["BOOST_AID_OUTPUT_STAMP"] = FIXED_STAMP
    merged_env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(ROOT), merged_env.get("PYTHONPATH")]))
    if env:
        merged_env.update(env)
    return subprocess.run(
        [*CLI, *args],
        cwd=cwd,
        capture_output=True,
        text=True,
        env=merged_env,
    )


def run_main(*args: str) -> tuple[int, str, str]:
    stdout, stderr = io.StringIO(), io.StringIO()
    with redirect_stdout(stdout), redirect_stderr(stderr):
        code = main(list(args))
    return code, stdout.getvalue(), stderr.getvalue()


def write_donations(path: Path) -> Path:
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.append(HEADERS)
    for row in ROWS:
        ws.append(row)
    wb.save(path)
    return path


def write_template(path: Path) -> Path:
    wb = openpyxl.Workbook()
    wb.active["B13"] = "Earliest donation date"
    wb.save(path)
    return path


class BoostAidCliTests(unittest.TestCase):
    def test_process_writes_outputs_and_returns_review_exit(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            source = write_donations(Path(tmpdir) / "donations.xlsx")
            template = write_template(Path(tmpdir) / "template.xlsx")
            out_dir = Path(tmpdir) / "out"
            proc = run_cli("process", str(source), "--template", str(template), "--out", str(out_dir))

            self.assertEqual(proc.returncode, 4, proc.stderr)
            self.assertIn("Ready to claim: 2", proc.stderr)
            self.assertTrue((out_dir / "donations-cleaned.xlsx").exists())
            self.assertTrue((out_dir / "output_sheet_1.xlsx").exists())
            self.assertTrue((out_dir / "HMRC_submission_1.xlsx").exists())

            summary = json.loads((out_dir / "batch-summary.json").read_text(encoding="utf-8"))
            self.assertEqual(
                summary["records"],
                {
                    "total_records": 4,
                    "eligible_records": 3,
                    "valid_records": 2,
                    "invalid_records": 1,
                    "filtered_records": 1,
                },
            )
            self.assertEqual(summary["totals"]["total_amount_reviewed"], 52.0)
            self.assertEqual(summary["totals"]["total_gift_aid_value"], 40.0)
            self.assertEqual(summary["totals"]["estimated_reclaimable"], 10.0)
            self.assertEqual(summary["totals"]["earliest_donation_date"], "01/01/2024")
            self.assertEqual(summary["mapping"]["Address"], ["Address Line 1", "Address Line 2"])
            self.assertEqual(summary["run_summary"]["generated_at"], "1970-01-01T00:00:00Z")

            wb = openpyxl.load_workbook(out_dir / "donations-cleaned.xlsx")
            correct = wb["Correct Data"]
            self.assertEqual(
                [c.value for c in correct[2]],
                ["Mr", "John", "Smith", "12 High Street, Leeds", "LS1 4AP", "01/01/2024", 25],
            )
            self.assertEqual(
                [c.value for c in correct[3]],
                ["Mrs", "Jane", "Doe", "4 Mill Lane", "SW1A 1AA", "15/12/2025", 15],
            )

    def test_fail_on_review_returns_exit_5(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            source = write_donations(Path(tmpdir) / "donations.xlsx")
            proc = run_cli("process", str(source), "--dry-run", "--fail-on-review", "--json")
            self.assertEqual(proc.returncode, 5, proc.stderr)
            summary = json.loads(proc.stdout)
            self.assertEqual(summary["run_summary"]["outputs"], {})
            self.assertEqual(list(Path(tmpdir).iterdir()), [source])

    def test_json_stdout_contains_only_json(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            source = write_donations(Path(tmpdir) / "donations.xlsx")
            proc = run_cli("process", str(source), "--json", "--out", str(Path(tmpdir) / "out"))
            self.assertEqual(proc.returncode, 4, proc.stderr)
            payload = json.loads(proc.stdout)
            self.assertEqual(payload["contract"]["name"], "boost_aid.batch_summary")
            self.assertNotIn("Ready to claim", proc.stderr)

    def test_process_refuses_to_overwrite_outputs(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            source = write_donations(Path(tmpdir) / "donations.xlsx")
            out_dir = Path(tmpdir) / "out"
            first = run_cli("process", str(source), "--out", str(out_dir), "-q")
            self.assertEqual(first.returncode, 4, first.stderr)
            second = run_cli("process", str(source), "--out", str(out_dir), "-q")
            self.assertEqual(second.returncode, 1)
            self.assertIn("Refusing to overwrite existing output", second.stderr)

    def test_default_output_directory_uses_stamp(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            source = write_donations(Path(tmpdir) / "donations.xlsx")
            proc = run_cli("process", str(source), "-q", cwd=Path(tmpdir))
            output_dir = Path(tmpdir) / "boost-aid-output" / f"donations-{FIXED_STAMP}"
            self.assertEqual(proc.returncode, 4, proc.stderr)
            self.assertTrue((output_dir / "donations-cleaned.xlsx").exists())
            self.assertTrue((output_dir / "batch-summary.json").exists())

    def test_standard_columns_skip_mapping(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            source = Path(tmpdir) / "standard.csv"
            source.write_text(
                "First Name,Last Name,Gift Aid,Gift Aid Address 1,Gift Aid Postal Code,Last Donation Date,Total Donation Amount\n"
                "John,Smith,Yes,12 High Street,LS1 4AP,01/02/2024,25\n"
                "Jane,Doe,No,4 Mill Lane,SW1A 1AA,02/02/2024,10\n",
                encoding="utf-8",
            )
            code, stdout, stderr = run_main("process", str(source), "--dry-run", "--json")
            self.assertEqual(code, 0, stderr)
            summary = json.loads(stdout)
            self.assertIsNone(summary["mapping"])
            self.assertEqual(summary["records"]["valid_records"], 1)
            self.assertEqual(summary["records"]["filtered_records"], 1)

    def test_incomplete_mapping_returns_exit_3(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            source = Path(tmpdir) / "thin.csv"
            source.write_text("Name,Amount\nJohn,5\nJane,6\n", encoding="utf-8")
            code, _, stderr = run_main("process", str(source), "--dry-run")
            self.assertEqual(code, 3)
            self.assertIn("Column mapping is incomplete", stderr)

            code, _, _ = run_main("map", str(source))
            self.assertEqual(code, 3)

    def test_map_writes_plan_that_process_accepts(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            source = write_donations(Path(tmpdir) / "donations.xlsx")
            plan_path = Path(tmpdir) / "mapping.json"
            code, stdout, stderr = run_main(
                "map", str(source), "--keep-value", "Non tax effective", "--output", str(plan_path), "--json"
            )
            self.assertEqual(code, 0, stderr)
            payload = json.loads(stdout)
            self.assertEqual(payload["selected_values"], ["Non tax effective"])
            self.assertEqual(json.loads(plan_path.read_text(encoding="utf-8"))["mapping"]["Gift Aid"], "Tax Effective")

            code, stdout, stderr = run_main("process", str(source), "--mapping", str(plan_path), "--dry-run", "--json")
            self.assertEqual(code, 0, stderr)
            summary = json.loads(stdout)
            self.assertEqual(summary["records"]["eligible_records"], 1)
            self.assertEqual(summary["records"]["filtered_records"], 3)

    def test_map_override_and_bad_values(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            source = write_donations(Path(tmpdir) / "donations.xlsx")
            code, stdout, _ = run_main("map", str(source), "--map", "Address=Address Line 1", "--json")
            self.assertEqual(code, 0)
            self.assertEqual(json.loads(stdout)["mapping"]["Address"], ["Address Line 1"])

            code, _, stderr = run_main("map", str(source), "--map", "Address=Nope")
            self.assertEqual(code, 1)
            self.assertIn("Column not found in source", stderr)

            code, _, stderr = run_main("map", str(source), "--map", "Phone=Postcode")
            self.assertEqual(code, 1)
            self.assertIn("Unknown target field", stderr)

            code, _, stderr = run_main("map", str(source), "--keep-value", "Maybe")
            self.assertEqual(code, 1)
            self.assertIn("not present in source", stderr)

    def test_missing_input_and_template(self):
        code, _, stderr = run_main("process", "/nonexistent/donations.csv")
        self.assertEqual(code, 1)
        self.assertIn("File not found", stderr)

        with tempfile.TemporaryDirectory() as tmpdir:
            source = write_donations(Path(tmpdir) / "donations.xlsx")
            code, _, stderr = run_main("process", str(source), "--template", str(Path(tmpdir) / "missing.xlsx"))
            self.assertEqual(code, 1)
            self.assertIn("Template not found", stderr)

    def test_unreadable_input_returns_exit_2(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            source = Path(tmpdir) / "broken.xlsx"
            source.write_bytes(b"not a workbook")
            code, _, stderr = run_main("process", str(source), "--dry-run")
            self.assertEqual(code, 2)
            self.assertIn("Could not open workbook", stderr)

    def test_bad_arguments_return_exit_1(self):
        code, _, _ = run_main("process")
        self.assertEqual(code, 1)
        code, _, _ = run_main("process", "x.csv", "--chunk-size", "abc")
        self.assertEqual(code, 1)

    def test_generated_sample_processes_end_to_end(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            tmp = Path(tmpdir)
            script = tmp / "generate_donations.py"
            script.write_text((ROOT / "sample-data" / "generate_donations.py").read_text(encoding="utf-8"), encoding="utf-8")
            generated = subprocess.run([sys.executable, str(script)], cwd=tmp, capture_output=True, text=True)
            self.assertEqual(generated.returncode, 0, generated.stderr)

            proc = run_cli(
                "process",
                str(tmp / "messy_donations.xlsx"),
                "--template",
                str(tmp / "hmrc_template.xlsx"),
                "--out",
                str(tmp / "out"),
                "--json",
            )
            self.assertEqual(proc.returncode, 4, proc.stderr)
            summary = json.loads(proc.stdout)
            self.assertEqual(summary["records"]["total_records"], 10)
            self.assertEqual(summary["records"]["filtered_records"], 1)
            self.assertEqual(summary["records"]["invalid_records"], 2)
            self.assertEqual(summary["records"]["valid_records"], 7)
            self.assertEqual(summary["analytics"]["addresses_shortened"], 1)
            self.assertIn("Combined 2 sheets", " ".join(summary["run_summary"]["warnings"]))

            ws = openpyxl.load_workbook(tmp / "out" / "HMRC_submission_1.xlsx")["R68 Gift Aid Schedule"]
            self.assertEqual(ws["C24"].value, "Title")
            self.assertEqual(ws["D25"].value, "John")

    def test_explain_and_version(self):
        code, stdout, _ = run_main("explain", "postcode", "--json")
        self.assertEqual(code, 0)
        self.assertTrue(json.loads(stdout)["auto_fixable"])

        code, _, stderr = run_main("explain", "nope")
        self.assertEqual(code, 1)
        self.assertIn("Unknown rule id", stderr)

        proc = run_cli("version")
        self.assertEqual(proc.returncode, 0)
        self.assertEqual(proc.stdout.strip(), __version__)


if __name__ == "__main__":
    unittest.main()
