import unittest
from unittest.mock import MagicMock, patch
import tempfile
import threading
import sys
import os

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from resilience_auditor.config import Settings
from resilience_auditor.runtime import build_runtime
from resilience_auditor.web import create_app

def locked_elsewhere(lock):
    taken = []
    def try_lock():
        got = lock.acquire(blocking=False)
        if got:
            lock.release()
        taken.append(got)
    worker = threading.Thread(target=try_lock)
    worker.start()
    worker.join()
    return not taken[0]

class TestWebApp(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.runtime = build_runtime(Settings(reports_dir=self.tmp.name))
        self.runtime.store.sleep = MagicMock()
        self.app = create_app(self.runtime)
        self.app.config['TESTING'] = True
        self.client = self.app.test_client()

    def tearDown(self):
        self.tmp.cleanup()

    def test_pages_render(self):
        for path in ("/", "/map", "/reports", "/demo", "/testing"):
            resp = self.client.get(path)
            self.assertEqual(resp.status_code, 200, path)
        self.assertEqual(self.runtime.store.state.route, "/testing")

    def test_state(self):
        data = self.client.get("/api/state").get_json()
        self.assertEqual(data["site_count"], 12)
        self.assertFalse(data["loading"])
        self.assertIsNone(data["error"])

    def test_sites(self):
        self.assertEqual(len(self.client.get("/api/sites").get_json()), 12)
        self.assertEqual(self.client.get("/api/sites/mcx-001").get_json()["id"], "mcx-001")
        resp = self.client.get("/api/sites/mcx-999")
        self.assertEqual(resp.status_code, 404)
        self.assertIn("mcx-999", resp.get_json()["error"])

        results = self.client.get("/api/sites/mcx-002/results").get_json()
        self.assertEqual(len(results["results"]), 11)

    def test_select_site_opens_panel(self):
        data = self.client.post("/api/sites/mcx-003/select").get_json()
        self.assertEqual(data["selected_site_id"], "mcx-003")
        self.assertEqual(data["panel"]["state"], "details")

        resp = self.client.post("/api/panel/run_tests")
        self.assertEqual(resp.get_json()["state"], "selection")
        resp = self.client.post("/api/panel/back_to_selection")
        self.assertEqual(resp.status_code, 400)

    def test_map(self):
        markers = self.client.get("/api/map/markers").get_json()["markers"]
        self.assertEqual(len(markers), 12)
        self.assertTrue(self.client.post("/api/map/coverage").get_json()["show_coverage_areas"])

    def test_tests_filter(self):
        jamming = self.client.get("/api/tests?category=jamming").get_json()
        self.assertTrue(jamming)
        self.assertTrue(all(t["category"] == "jamming" for t in jamming))
        self.assertEqual(self.client.get("/api/tests?category=telepathy").status_code, 400)

    def test_execution(self):
        resp = self.client.post("/api/execution/start", json={"test_id": "gnss_jamming"})
        self.assertEqual(resp.status_code, 400)

        resp = self.client.post("/api/execution/start", json={"site_id": "mcx-001", "test_id": "gnss_jamming"})
        data = resp.get_json()
        self.assertTrue(data["execution"]["is_running"])
        self.assertEqual(data["sequencer"]["state"], "running")

        self.assertEqual(self.client.post("/api/execution/pause").get_json()["sequencer"]["state"], "paused")
        self.assertEqual(self.client.post("/api/execution/stop").get_json()["sequencer"]["state"], "idle")
        self.assertEqual(self.client.post("/api/execution/explode").status_code, 404)

    def test_alerts(self):
        alerts = self.client.get("/api/alerts").get_json()
        self.assertTrue(alerts)
        alert_id = alerts[0]["id"]
        resp = self.client.post(f"/api/alerts/{alert_id}/acknowledge")
        self.assertEqual(resp.get_json()["status"], "acknowledged")
        acked = self.client.get("/api/alerts?status=acknowledged").get_json()
        self.assertEqual([a["id"] for a in acked], [alert_id])
        self.assertEqual(self.client.post("/api/alerts/nope/resolve").status_code, 404)

    def test_reports(self):
        resp = self.client.get("/api/reports/csv?sites=mcx-001,mcx-002")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.headers["Content-Disposition"], "attachment; filename=mcx-security-report.csv")
        self.assertEqual(len(resp.data.decode().strip().splitlines()), 1 + 2 * 11)

        resp = self.client.get("/api/reports/pdf?type=comparison")
        self.assertTrue(resp.data.startswith(b"%PDF"))
        self.assertEqual(self.client.get("/api/reports/xls").status_code, 400)
        self.assertEqual(self.client.get("/api/reports/json?type=weekly").status_code, 400)

    def test_demo(self):
        self.assertEqual(len(self.client.get("/api/demo/scenarios").get_json()), 3)
        data = self.client.post("/api/demo/start/quick_overview").get_json()
        self.assertEqual(data["state"], "running")
        self.assertEqual(data["current_step"]["id"], "intro")
        data = self.client.post("/api/demo/next").get_json()
        self.assertEqual(data["progress"]["current"], 1)
        self.assertEqual(self.client.post("/api/demo/start/missing").status_code, 404)

    def test_demo_commands_hold_store_lock(self):
        store, demo = self.runtime.store, self.runtime.demo
        held = []
        record = lambda *args: held.append(locked_elsewhere(store.lock))

        with patch.object(demo, "start_scenario", side_effect=record):
            self.assertEqual(self.client.post("/api/demo/start/quick_overview").status_code, 200)
        demo.start_scenario("quick_overview")
        for command, method in (("next", "next_step"), ("previous", "previous_step"),
                                ("pause", "pause"), ("resume", "resume"), ("stop", "stop")):
            with patch.object(demo, method, side_effect=record):
                self.assertEqual(self.client.post(f"/api/demo/{command}").status_code, 200, command)
        self.assertEqual(held, [True] * 6)

    def test_panel_transition_holds_store_lock(self):
        store = self.runtime.store
        self.client.post("/api/sites/mcx-001/select")
        self.client.post("/api/panel/run_tests")
        held = []
        with patch.object(store, "run_security_test",
                          side_effect=lambda *args: held.append(locked_elsewhere(store.lock))):
            resp = self.client.post("/api/panel/select_test", json={"test_id": "gnss_jamming"})
        self.assertEqual(resp.get_json()["state"], "execution")
        self.assertEqual(held, [True])

    def test_map_panel_escapes_catalog_text(self):
        page = self.client.get("/map").get_data(as_text=True)
        self.assertIn("function esc(", page)
        for value in ("site.name", "site.area", "t.name", "s.name", "seq.test_name", "r"):
            self.assertIn("${esc(%s)}" % value, page)
        self.assertNotIn("${site.name}", page)
        self.assertNotIn("${t.name}", page)

    def test_retry(self):
        resp = self.client.post("/api/retry")
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.get_json()["success"])

    def test_workflows(self):
        self.assertEqual(len(self.client.get("/api/workflows").get_json()), 7)
        data = self.client.post("/api/workflows/run/site_selection").get_json()
        self.assertTrue(data["success"])
        self.assertEqual(self.client.post("/api/workflows/run/nope").status_code, 404)

if __name__ == '__main__':
    unittest.main()
