import unittest
import csv
import io
import json
import random
import tempfile
import sys
import os

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from resilience_auditor.catalog import load_sites, load_tests
from resilience_auditor.csv_reporting import CSV_COLUMNS, render_csv, CsvReporter
from resilience_auditor.html_reporting import render_html, HtmlReporter
from resilience_auditor.pdf_reporting import render_pdf, sanitize
from resilience_auditor.reporting import build_report, chart_data, render_json, render_text, generate_json_report
from resilience_auditor.store import SecurityStore

class TestReports(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.store = SecurityStore(tests=load_tests(), sites_loader=load_sites, rng=random.Random(9))
        cls.store.initialize()

    def test_report_types(self):
        with self.assertRaises(ValueError):
            build_report(self.store, report_type="weekly")
        with self.assertRaises(KeyError):
            build_report(self.store, ["mcx-999"])

    def test_summary_counts(self):
        report = build_report(self.store)
        s = report["summary"]
        self.assertEqual(s["total_sites"], 12)
        self.assertEqual(s["passed"] + s["warning"] + s["failed"], 12 * 11)
        self.assertNotIn("comparison", report)

    def test_comparison(self):
        report = build_report(self.store, ["mcx-001", "mcx-002"], "comparison")
        comp = report["comparison"]
        self.assertEqual(comp["sites"], ["mcx-001", "mcx-002"])
        self.assertEqual(len(comp["rows"]), 11)
        suite = self.store.get_test_suite("mcx-002")
        row = comp["rows"][0]
        self.assertEqual(row["scores"]["mcx-002"], suite.tests[row["test_id"]])

    def test_chart_data(self):
        charts = chart_data(self.store.get_test_suite("mcx-001"), self.store.tests)
        self.assertEqual(len(charts["bar"]), 11)
        self.assertEqual(len(charts["radar"]), 11)
        self.assertEqual({c["name"] for c in charts["category"]},
                         {"Jamming", "Flooding", "Spoofing", "Injection", "Manipulation"})

    def test_json_round_trip(self):
        report = build_report(self.store, ["mcx-001"])
        data = json.loads(render_json(report))
        self.assertEqual(data["sites"][0]["site"]["id"], "mcx-001")

    def test_csv(self):
        text = render_csv(build_report(self.store, ["mcx-001", "mcx-003"]))
        rows = list(csv.DictReader(io.StringIO(text)))
        self.assertEqual(len(rows), 22)
        self.assertEqual(list(rows[0].keys()), CSV_COLUMNS)

    def test_text_and_html(self):
        report = build_report(self.store, ["mcx-001"], "summary")
        site_name = self.store.get_site("mcx-001").name
        self.assertIn(site_name, render_text(report))
        html = render_html(report)
        self.assertIn("<html", html)
        self.assertIn(site_name, html)

    def test_pdf(self):
        pdf = render_pdf(build_report(self.store, ["mcx-001", "mcx-002"], "comparison"))
        self.assertTrue(pdf.startswith(b"%PDF"))
        self.assertEqual(sanitize("Jeddah – North"), "Jeddah ? North")

    def test_file_writers(self):
        report = build_report(self.store, ["mcx-001"])
        with tempfile.TemporaryDirectory() as tmp:
            json_path = os.path.join(tmp, "r.json")
            generate_json_report(report, json_path)
            CsvReporter(os.path.join(tmp, "r.csv")).generate(report)
            HtmlReporter(os.path.join(tmp, "r.html")).generate(report)
            for name in ("r.json", "r.csv", "r.html"):
                self.assertGreater(os.path.getsize(os.path.join(tmp, name)), 0)

if __name__ == '__main__':
    unittest.main()
