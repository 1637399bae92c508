import unittest
from unittest.mock import MagicMock
import random
import sys
import os

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from resilience_auditor.catalog import DataLoadError, load_sites, load_tests
from resilience_auditor.models import AlertStatus, SecurityTest
from resilience_auditor.sequencer import SequencerState
from resilience_auditor.store import (
    Action, ActionType, SecurityState, SecurityStore, security_reducer, status_for_progress,
    retry_delay, MAX_RETRY_ERROR, NO_SITES_ERROR,
)

def make_store(sites_loader=load_sites, sleep=None):
    return SecurityStore(tests=load_tests(), sites_loader=sites_loader, seed=0,
                         rng=random.Random(42), sleep=sleep or MagicMock())

class TestReducer(unittest.TestCase):
    def test_returns_new_state(self):
        state = SecurityState()
        new = security_reducer(state, Action(ActionType.SELECT_SITE, "mcx-001"))
        self.assertIsNot(new, state)
        self.assertIsNone(state.selected_site_id)
        self.assertEqual(new.selected_site_id, "mcx-001")
        self.assertEqual(new.map_view.selected_site_id, "mcx-001")
        self.assertIsNone(state.map_view.selected_site_id)

    def test_set_error_stops_loading(self):
        new = security_reducer(SecurityState(), Action(ActionType.SET_ERROR, "boom"))
        self.assertEqual(new.error, "boom")
        self.assertFalse(new.loading)

    def test_retry_counter(self):
        state = SecurityState()
        state = security_reducer(state, Action(ActionType.INCREMENT_RETRY_COUNT))
        state = security_reducer(state, Action(ActionType.INCREMENT_RETRY_COUNT))
        self.assertEqual(state.retry_count, 2)
        state = security_reducer(state, Action(ActionType.REFRESH_ALL_DATA))
        self.assertEqual(state.retry_count, 0)
        self.assertTrue(state.loading)

    def test_unknown_action_is_ignored(self):
        state = SecurityState()
        self.assertIs(security_reducer(state, Action("NOPE")), state)

    def test_progress_messages(self):
        self.assertEqual(status_for_progress(10), "Preparing test environment...")
        self.assertEqual(status_for_progress(45), "Running security assessment...")
        self.assertEqual(status_for_progress(75), "Analyzing results...")
        self.assertEqual(status_for_progress(95), "Finalizing report...")

    def test_retry_delay_backoff(self):
        self.assertEqual([retry_delay(n) for n in range(5)], [1.0, 2.0, 4.0, 8.0, 10.0])

class TestStoreLoading(unittest.TestCase):
    def test_initialize(self):
        store = make_store()
        self.assertTrue(store.initialize())
        s = store.state
        self.assertEqual(len(s.sites), 12)
        self.assertEqual(set(s.test_suites), {site.id for site in s.sites})
        self.assertFalse(s.loading)
        self.assertIsNone(s.error)
        self.assertEqual(s.kpi_data.last_audit_coverage, 100)
        self.assertTrue(s.threat_alerts)

    def test_no_sites(self):
        store = make_store(sites_loader=lambda: [])
        self.assertFalse(store.initialize())
        self.assertEqual(store.state.error, NO_SITES_ERROR)
        self.assertEqual(store.state.retry_count, 1)
        self.assertFalse(store.state.loading)

    def test_retry_recovers_with_backoff(self):
        sleep = MagicMock()
        loader = MagicMock(side_effect=[DataLoadError("offline"), load_sites()])
        store = make_store(sites_loader=loader, sleep=sleep)
        self.assertFalse(store.initialize())
        self.assertTrue(store.retry_operation())
        sleep.assert_called_once_with(2.0)
        self.assertEqual(store.state.retry_count, 0)
        self.assertIsNone(store.state.error)
        self.assertEqual(len(store.state.sites), 12)

    def test_retry_gives_up(self):
        sleep = MagicMock()
        store = make_store(sites_loader=MagicMock(side_effect=DataLoadError("offline")), sleep=sleep)
        store.initialize()
        self.assertFalse(store.retry_operation())
        self.assertFalse(store.retry_operation())
        self.assertEqual(store.state.retry_count, 3)
        self.assertFalse(store.retry_operation())
        self.assertEqual(store.state.error, MAX_RETRY_ERROR)
        self.assertEqual([c.args[0] for c in sleep.call_args_list], [2.0, 4.0])

    def test_subscribe_and_unsubscribe(self):
        store = make_store()
        seen = []
        unsubscribe = store.subscribe(lambda state, action: seen.append(action.type))
        store.dispatch(Action(ActionType.SET_ROUTE, "/map"))
        unsubscribe()
        store.dispatch(Action(ActionType.SET_ROUTE, "/"))
        self.assertEqual(seen, [ActionType.SET_ROUTE])

class TestStoreActions(unittest.TestCase):
    def setUp(self):
        self.store = make_store()
        self.store.initialize()

    def test_select_site(self):
        self.store.select_site("mcx-003")
        self.assertEqual(self.store.selected_site.id, "mcx-003")
        self.assertEqual(self.store.state.map_view.selected_site_id, "mcx-003")
        self.store.select_site(None)
        self.assertIsNone(self.store.selected_site)

    def test_select_unknown_site(self):
        with self.assertRaises(KeyError):
            self.store.select_site("nope")

    def test_navigate_updates_map(self):
        self.store.navigate("/map", center=[21.5, 39.2], zoom=13)
        self.assertEqual(self.store.state.route, "/map")
        self.assertEqual(self.store.state.map_view.center, [21.5, 39.2])
        self.assertEqual(self.store.state.map_view.zoom, 13)

    def test_toggle_coverage(self):
        self.assertTrue(self.store.toggle_coverage_areas())
        self.assertFalse(self.store.toggle_coverage_areas())

    def test_unknown_test(self):
        with self.assertRaises(KeyError):
            self.store.run_security_test("mcx-001", "nope")

    def test_run_test_writes_back(self):
        seq = self.store.run_security_test("mcx-001", "gnss_spoofing")
        ex = self.store.state.test_execution
        self.assertTrue(ex.is_running)
        self.assertEqual(ex.status, "Initializing test...")

        self.store.tick(10)
        self.assertTrue(0 < self.store.state.test_execution.progress < 100)

        while seq.state != SequencerState.COMPLETED:
            self.store.tick()

        ex = self.store.state.test_execution
        self.assertFalse(ex.is_running)
        self.assertEqual(ex.progress, 100.0)
        self.assertEqual(ex.status, "Test completed")
        self.assertEqual(ex.results, [seq.result])

        suite = self.store.state.test_suites["mcx-001"]
        self.assertEqual(suite.tests["gnss_spoofing"], seq.result.score)
        stored = {r.test_id: r for r in self.store.get_test_results("mcx-001")}
        self.assertEqual(len(stored), len(self.store.tests))
        self.assertEqual(stored["gnss_spoofing"].score, seq.result.score)

    def test_stop_test(self):
        seq = self.store.run_security_test("mcx-002", "prach_flooding")
        self.store.tick(8)
        self.store.stop_test()
        self.assertEqual(seq.state, SequencerState.IDLE)
        self.assertFalse(self.store.state.test_execution.is_running)
        self.assertEqual(self.store.state.test_execution.progress, 0.0)

    def test_new_run_replaces_running_test(self):
        first = self.store.run_security_test("mcx-002", "prach_flooding")
        self.store.tick(3)
        second = self.store.run_security_test("mcx-002", "gnss_jamming")
        self.assertEqual(first.state, SequencerState.IDLE)
        self.assertIs(self.store.sequencer, second)

    def test_alert_status_changes(self):
        alert_id = self.store.state.threat_alerts[0].id
        self.store.acknowledge_alert(alert_id)
        self.store.refresh_threat_alerts()
        status = {a.id: a.status for a in self.store.state.threat_alerts}
        self.assertEqual(status[alert_id], AlertStatus.ACKNOWLEDGED)
        self.store.resolve_alert(alert_id)
        self.assertEqual(self.store.summary()["active_alerts"],
                         len(self.store.state.threat_alerts) - 1)
        with self.assertRaises(KeyError):
            self.store.acknowledge_alert("alert-missing")

    def test_summary(self):
        summary = self.store.summary()
        self.assertEqual(summary["site_count"], 12)
        self.assertEqual(summary["test_count"], 11)
        self.assertFalse(summary["test_execution"]["is_running"])
        self.assertIsNone(summary["demo"])

if __name__ == '__main__':
    unittest.main()
