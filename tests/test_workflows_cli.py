import unittest
from unittest.mock import patch
import io
import random
import tempfile
import sys
import os

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from resilience_auditor import cli
from resilience_auditor.catalog import load_demo_scenarios, load_tests
from resilience_auditor.config import Settings
from resilience_auditor.runtime import make_store
from resilience_auditor.workflows import WorkflowValidator, WORKFLOW_SCENARIOS

def make_validator(scenarios=None):
    tests = load_tests()
    return WorkflowValidator(lambda: make_store(Settings(), tests, rng=random.Random(0)),
                             load_demo_scenarios(), scenarios)

class TestWorkflowValidator(unittest.TestCase):
    def test_all_workflows_pass(self):
        report = make_validator().validate_all()
        failed = [
            (r["scenario"]["id"], [s for s in r["steps"] if not s["passed"]])
            for r in report["scenarios"] if not r["success"]
        ]
        self.assertEqual(failed, [])
        summary = report["summary"]
        self.assertEqual(summary["total_scenarios"], len(WORKFLOW_SCENARIOS))
        self.assertEqual(summary["passed_steps"], summary["total_steps"])

    def test_unknown_workflow(self):
        with self.assertRaises(KeyError):
            make_validator().validate_workflow("nope")

    def test_failure_skips_remaining_steps(self):
        scenarios = [{
            "id": "broken",
            "name": "Broken",
            "description": "",
            "steps": [
                {"id": "init", "action": "initialize"},
                {"id": "bad", "action": "run_test", "params": {"test_id": "does_not_exist"}},
                {"id": "after", "assert": "test_running"},
            ],
        }]
        result = make_validator(scenarios).validate_workflow("broken")
        self.assertFalse(result["success"])
        self.assertEqual([s["passed"] for s in result["steps"]], [True, False, False])
        self.assertTrue(result["steps"][2]["skipped"])
        self.assertIn("KeyError", result["steps"][1]["message"])

@patch('resilience_auditor.cli.init')
@patch('resilience_auditor.cli.load_settings', return_value=Settings())
class TestCli(unittest.TestCase):
    def run_cli(self, *argv):
        with patch('sys.stdout', new_callable=io.StringIO) as out:
            code = cli.main(["--no-banner"] + list(argv))
        return code, out.getvalue()

    def test_no_command(self, mock_settings, mock_init):
        code, _ = self.run_cli()
        self.assertEqual(code, 1)

    def test_validate(self, mock_settings, mock_init):
        code, out = self.run_cli("validate", "data_initialization")
        self.assertEqual(code, 0)
        self.assertIn("Passed: 1/1", out)

    def test_run(self, mock_settings, mock_init):
        code, out = self.run_cli("run", "--site", "mcx-001", "--test", "gnss_jamming")
        self.assertEqual(code, 0)
        self.assertIn("Result:", out)

    def test_run_unknown_site(self, mock_settings, mock_init):
        code, _ = self.run_cli("run", "--site", "mcx-999", "--test", "gnss_jamming")
        self.assertEqual(code, 2)

    def test_report(self, mock_settings, mock_init):
        with tempfile.TemporaryDirectory() as tmp:
            code, _ = self.run_cli("report", "--format", "json,csv,text", "--site-ids", "mcx-001",
                                   "--output-dir", tmp)
            self.assertEqual(code, 0)
            exts = sorted(os.path.splitext(name)[1] for name in os.listdir(tmp))
            self.assertEqual(exts, [".csv", ".json", ".txt"])

            code, _ = self.run_cli("report", "--format", "xls", "--output-dir", tmp)
            self.assertEqual(code, 2)

    def test_demo_list(self, mock_settings, mock_init):
        code, out = self.run_cli("demo", "--list")
        self.assertEqual(code, 0)
        self.assertIn("quick_overview", out)

if __name__ == '__main__':
    unittest.main()
