"""
Global Security State Store
A reducer-style store: every change goes through dispatch(Action), action
methods wrap the common flows, and subscribers hear about each new state.
"""
import copy
import dataclasses
import logging
import random
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Any, List, Optional

from .catalog import DataLoadError
from .demo import DemoManager, DemoStoreBinding
from .kpi import calculate_kpi_data
from .models import (
    Site, SecurityTest, TestResult, TestSuite, KPIData, ThreatAlert, AlertStatus,
    MapViewState, TestExecutionState, to_jsonable,
)
from .sequencer import StepSequencer, SequencerState
from .synthetic import (
    generate_test_suite, results_from_suite, generate_threat_alerts, active_alert_count,
)

logger = logging.getLogger("resilience_auditor.store")

MAX_RETRIES = 3
RETRY_BASE_DELAY = 1.0 # seconds
RETRY_MAX_DELAY = 10.0
SUITE_BATCH_SIZE = 5

NO_SITES_ERROR = "No MCX sites found. Please check your data configuration."
MAX_RETRY_ERROR = "Maximum retry attempts exceeded. Please refresh the page."

class ActionType(str, Enum):
    SET_LOADING = "SET_LOADING"
    SET_ERROR = "SET_ERROR"
    SET_SITES = "SET_SITES"
    SELECT_SITE = "SELECT_SITE"
    UPDATE_KPI_DATA = "UPDATE_KPI_DATA"
    UPDATE_THREAT_ALERTS = "UPDATE_THREAT_ALERTS"
    UPDATE_TEST_RESULTS = "UPDATE_TEST_RESULTS"
    UPDATE_TEST_SUITE = "UPDATE_TEST_SUITE"
    UPDATE_MAP_VIEW = "UPDATE_MAP_VIEW"
    UPDATE_TEST_EXECUTION = "UPDATE_TEST_EXECUTION"
    SET_ROUTE = "SET_ROUTE"
    INCREMENT_RETRY_COUNT = "INCREMENT_RETRY_COUNT"
    RESET_RETRY_COUNT = "RESET_RETRY_COUNT"
    REFRESH_ALL_DATA = "REFRESH_ALL_DATA"

@dataclass
class Action:
    type: ActionType
    payload: Any = None

@dataclass
class SecurityState:
    sites: List[Site] = field(default_factory=list)
    selected_site_id: Optional[str] = None
    kpi_data: KPIData = field(default_factory=KPIData)
    threat_alerts: List[ThreatAlert] = field(default_factory=list)
    test_results: Dict[str, List[TestResult]] = field(default_factory=dict)
    test_suites: Dict[str, TestSuite] = field(default_factory=dict)
    map_view: MapViewState = field(default_factory=MapViewState)
    test_execution: TestExecutionState = field(default_factory=TestExecutionState)
    route: str = "/"
    loading: bool = True
    error: Optional[str] = None
    retry_count: int = 0

def security_reducer(state: SecurityState, action: Action) -> SecurityState:
    """Pure function: returns a new state, never mutates the old one."""
    t = action.type
    p = action.payload

    if t == ActionType.SET_LOADING:
        return dataclasses.replace(state, loading=bool(p))
    if t == ActionType.SET_ERROR:
        return dataclasses.replace(state, error=p, loading=False)
    if t == ActionType.SET_SITES:
        return dataclasses.replace(state, sites=list(p))
    if t == ActionType.SELECT_SITE:
        return dataclasses.replace(
            state,
            selected_site_id=p,
            map_view=dataclasses.replace(state.map_view, selected_site_id=p),
        )
    if t == ActionType.UPDATE_KPI_DATA:
        return dataclasses.replace(state, kpi_data=p)
    if t == ActionType.UPDATE_THREAT_ALERTS:
        return dataclasses.replace(state, threat_alerts=list(p))
    if t == ActionType.UPDATE_TEST_RESULTS:
        results = dict(state.test_results)
        results[p["site_id"]] = list(p["results"])
        return dataclasses.replace(state, test_results=results)
    if t == ActionType.UPDATE_TEST_SUITE:
        suites = dict(state.test_suites)
        suites[p["site_id"]] = p["test_suite"]
        return dataclasses.replace(state, test_suites=suites)
    if t == ActionType.UPDATE_MAP_VIEW:
        return dataclasses.replace(state, map_view=dataclasses.replace(state.map_view, **p))
    if t == ActionType.UPDATE_TEST_EXECUTION:
        return dataclasses.replace(state, test_execution=dataclasses.replace(state.test_execution, **p))
    if t == ActionType.SET_ROUTE:
        return dataclasses.replace(state, route=p)
    if t == ActionType.INCREMENT_RETRY_COUNT:
        return dataclasses.replace(state, retry_count=state.retry_count + 1)
    if t == ActionType.RESET_RETRY_COUNT:
        return dataclasses.replace(state, retry_count=0)
    if t == ActionType.REFRESH_ALL_DATA:
        return dataclasses.replace(state, loading=True, error=None, retry_count=0)

    logger.warning("Ignoring unknown action %r", t)
    return state

def status_for_progress(progress: float) -> str:
    if progress < 30:
        return "Preparing test environment..."
    if progress < 60:
        return "Running security assessment..."
    if progress < 90:
        return "Analyzing results..."
    return "Finalizing report..."

def retry_delay(retry_count: int) -> float:
    return min(RETRY_BASE_DELAY * (2 ** retry_count), RETRY_MAX_DELAY)

class SecurityStore:
    def __init__(self, tests: Optional[List[SecurityTest]] = None,
                 sites_loader: Optional[Callable[[], List[Site]]] = None,
                 seed: int = 0,
                 rng: Optional[random.Random] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self._lock = threading.RLock()
        self._subscribers: List[Callable[[SecurityState, Action], None]] = []
        self.state = SecurityState()
        self.tests: List[SecurityTest] = list(tests or [])
        self.sites_loader = sites_loader
        self.seed = seed
        self.rng = rng or random.Random()
        self.sleep = sleep
        self.sequencer: Optional[StepSequencer] = None
        self.demo: Optional[DemoManager] = None
        self.demo_binding: Optional[DemoStoreBinding] = None

    # --- Core ---

    @property
    def lock(self) -> threading.RLock:
        """Held around every mutation, including the demo and panels driven off this store."""
        return self._lock

    def dispatch(self, action: Action) -> SecurityState:
        with self._lock:
            self.state = security_reducer(self.state, action)
            state = self.state
            for cb in list(self._subscribers):
                cb(state, action)
            return state

    def subscribe(self, callback: Callable[[SecurityState, Action], None]) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe():
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)
        return unsubscribe

    # --- Lookups ---

    def get_site(self, site_id: str) -> Site:
        for site in self.state.sites:
            if site.id == site_id:
                return site
        raise KeyError(f"Unknown site: {site_id}")

    def get_test(self, test_id: str) -> SecurityTest:
        for test in self.tests:
            if test.id == test_id:
                return test
        raise KeyError(f"Unknown test: {test_id}")

    @property
    def selected_site(self) -> Optional[Site]:
        sid = self.state.selected_site_id
        return self.get_site(sid) if sid else None

    def get_test_suite(self, site_id: str) -> TestSuite:
        with self._lock:
            suite = self.state.test_suites.get(site_id)
            if suite is None:
                suite = generate_test_suite(self.get_site(site_id), self.tests, self.seed)
            return suite

    def get_test_results(self, site_id: str) -> List[TestResult]:
        """Stored results for a site, or results derived from its suite."""
        with self._lock:
            stored = self.state.test_results.get(site_id)
            if stored is not None:
                return list(stored)
            return results_from_suite(self.get_test_suite(site_id), self.tests)

    # --- Data loading ---

    def _load_data(self):
        if self.sites_loader is None:
            raise DataLoadError(NO_SITES_ERROR)
        sites = self.sites_loader()
        if not sites:
            raise DataLoadError(NO_SITES_ERROR)

        with self._lock:
            self.dispatch(Action(ActionType.SET_SITES, sites))
            for start in range(0, len(sites), SUITE_BATCH_SIZE):
                for site in sites[start:start + SUITE_BATCH_SIZE]:
                    suite = generate_test_suite(site, self.tests, self.seed)
                    self.dispatch(Action(ActionType.UPDATE_TEST_SUITE,
                                         {"site_id": site.id, "test_suite": suite}))
            self.refresh_kpi_data()
            self.refresh_threat_alerts()
            self.dispatch(Action(ActionType.SET_LOADING, False))
        logger.info("Loaded %d sites, %d tests", len(sites), len(self.tests))

    def initialize(self) -> bool:
        self.dispatch(Action(ActionType.SET_ERROR, None))
        self.dispatch(Action(ActionType.SET_LOADING, True))
        try:
            self._load_data()
        except DataLoadError as e:
            self.handle_error(e, "Data Initialization")
            return False
        self.dispatch(Action(ActionType.RESET_RETRY_COUNT))
        return True

    def refresh_all_data(self) -> bool:
        self.dispatch(Action(ActionType.REFRESH_ALL_DATA))
        return self.initialize()

    def handle_error(self, error: Exception, context: Optional[str] = None):
        logger.error("Security store error%s: %s", f" ({context})" if context else "", error)
        self.dispatch(Action(ActionType.SET_ERROR, str(error)))
        self.dispatch(Action(ActionType.INCREMENT_RETRY_COUNT))

    def retry_operation(self, operation: Optional[Callable[[], Any]] = None) -> bool:
        """
        Runs `operation` (default: reload data) after an exponential backoff.
        Gives up for good once MAX_RETRIES failures have been counted.
        """
        operation = operation or self._load_data
        if self.state.retry_count >= MAX_RETRIES:
            self.dispatch(Action(ActionType.SET_ERROR, MAX_RETRY_ERROR))
            return False

        delay = retry_delay(self.state.retry_count)
        self.dispatch(Action(ActionType.SET_ERROR, None))
        logger.info("Retrying in %.1fs (attempt %d/%d)", delay, self.state.retry_count + 1, MAX_RETRIES)
        self.sleep(delay)
        try:
            operation()
        except Exception as e:
            self.handle_error(e, "Retry Operation")
            return False
        self.dispatch(Action(ActionType.RESET_RETRY_COUNT))
        return True

    # --- Selection / map ---

    def select_site(self, site_id: Optional[str]):
        with self._lock:
            if site_id is not None:
                self.get_site(site_id)
            self.dispatch(Action(ActionType.SELECT_SITE, site_id))

    def update_map_view(self, **changes):
        self.dispatch(Action(ActionType.UPDATE_MAP_VIEW, changes))

    def set_highlighted_sites(self, site_ids: List[str]):
        self.update_map_view(highlighted_sites=list(site_ids))

    def toggle_coverage_areas(self) -> bool:
        with self._lock:
            show = not self.state.map_view.show_coverage_areas
            self.update_map_view(show_coverage_areas=show)
            return show

    def navigate(self, route: str, center: Optional[List[float]] = None, zoom: Optional[int] = None):
        with self._lock:
            self.dispatch(Action(ActionType.SET_ROUTE, route))
            changes: Dict[str, Any] = {}
            if center is not None:
                changes["center"] = [float(c) for c in center]
            if zoom is not None:
                changes["zoom"] = int(zoom)
            if changes:
                self.update_map_view(**changes)

    # --- Aggregates ---

    def refresh_kpi_data(self) -> KPIData:
        with self._lock:
            kpi = calculate_kpi_data(
                self.state.sites, self.state.test_suites,
                suite_factory=lambda site: generate_test_suite(site, self.tests, self.seed),
            )
            self.dispatch(Action(ActionType.UPDATE_KPI_DATA, kpi))
            return kpi

    def refresh_threat_alerts(self) -> List[ThreatAlert]:
        with self._lock:
            alerts = generate_threat_alerts(self.state.sites, self.state.test_suites,
                                            self.tests, previous=self.state.threat_alerts)
            self.dispatch(Action(ActionType.UPDATE_THREAT_ALERTS, alerts))
            return alerts

    def set_alert_status(self, alert_id: str, status: AlertStatus) -> ThreatAlert:
        with self._lock:
            alerts = [copy.copy(a) for a in self.state.threat_alerts]
            for alert in alerts:
                if alert.id == alert_id:
                    alert.status = AlertStatus(status)
                    self.dispatch(Action(ActionType.UPDATE_THREAT_ALERTS, alerts))
                    return alert
            raise KeyError(f"Unknown alert: {alert_id}")

    def acknowledge_alert(self, alert_id: str) -> ThreatAlert:
        return self.set_alert_status(alert_id, AlertStatus.ACKNOWLEDGED)

    def resolve_alert(self, alert_id: str) -> ThreatAlert:
        return self.set_alert_status(alert_id, AlertStatus.RESOLVED)

    def update_test_results(self, site_id: str, results: List[TestResult]):
        """Stores results and folds their scores back into the site's suite."""
        with self._lock:
            self.dispatch(Action(ActionType.UPDATE_TEST_RESULTS, {"site_id": site_id, "results": results}))

            suite = copy.deepcopy(self.get_test_suite(site_id))
            for r in results:
                suite.tests[r.test_id] = r.score
            suite.recompute()
            self.dispatch(Action(ActionType.UPDATE_TEST_SUITE, {"site_id": site_id, "test_suite": suite}))

            self.refresh_kpi_data()
            self.refresh_threat_alerts()

    # --- Test execution ---

    def run_security_test(self, site_id: str, test_id: str) -> StepSequencer:
        with self._lock:
            test = self.get_test(test_id)
            self.get_site(site_id)
            if self.sequencer and self.sequencer.is_running:
                logger.info("Replacing running test %s", self.sequencer.test.id)
                self.sequencer.stop()

            self.sequencer = StepSequencer(test, site_id, rng=self.rng, on_complete=self._on_test_complete)
            self.sequencer.start()
            self.dispatch(Action(ActionType.UPDATE_TEST_EXECUTION, {
                "is_running": True,
                "current_test": test,
                "site_id": site_id,
                "progress": 0.0,
                "status": "Initializing test...",
                "results": [],
            }))
            return self.sequencer

    def _on_test_complete(self, result: TestResult):
        with self._lock:
            merged = [r for r in self.get_test_results(result.site_id) if r.test_id != result.test_id]
            merged.append(result)
            self.update_test_results(result.site_id, merged)
            self.dispatch(Action(ActionType.UPDATE_TEST_EXECUTION, {
                "is_running": False,
                "progress": 100.0,
                "status": "Test completed",
                "results": [result],
            }))

    def pause_test(self):
        with self._lock:
            if self.sequencer:
                self.sequencer.pause()

    def resume_test(self):
        with self._lock:
            if self.sequencer:
                self.sequencer.resume()

    def stop_test(self):
        with self._lock:
            if self.sequencer:
                self.sequencer.stop()
            self.dispatch(Action(ActionType.UPDATE_TEST_EXECUTION, {
                "is_running": False, "progress": 0.0, "status": "", "results": [],
            }))

    def reset_test(self):
        self.stop_test()

    # --- Demo ---

    def attach_demo(self, manager: DemoManager) -> DemoStoreBinding:
        with self._lock:
            self.demo = manager
            self.demo_binding = DemoStoreBinding(self)
            self.demo_binding.attach(manager)
            return self.demo_binding

    # --- Clock ---

    def tick(self, seconds: int = 1):
        """One clock tick for the active sequencer and demo."""
        with self._lock:
            seq = self.sequencer
            if seq and seq.state == SequencerState.RUNNING:
                seq.tick(seconds)
                if seq.state == SequencerState.RUNNING:
                    self.dispatch(Action(ActionType.UPDATE_TEST_EXECUTION, {
                        "progress": seq.progress,
                        "status": status_for_progress(seq.progress),
                    }))
            if self.demo:
                self.demo.tick(float(seconds))

    # --- Views ---

    def summary(self) -> Dict[str, Any]:
        with self._lock:
            s = self.state
            return {
                "loading": s.loading,
                "error": s.error,
                "retry_count": s.retry_count,
                "route": s.route,
                "site_count": len(s.sites),
                "test_count": len(self.tests),
                "selected_site_id": s.selected_site_id,
                "kpis": to_jsonable(s.kpi_data),
                "active_alerts": active_alert_count(s.threat_alerts),
                "map_view": to_jsonable(s.map_view),
                "test_execution": {
                    "is_running": s.test_execution.is_running,
                    "current_test": s.test_execution.current_test.id if s.test_execution.current_test else None,
                    "site_id": s.test_execution.site_id,
                    "progress": round(s.test_execution.progress, 2),
                    "status": s.test_execution.status,
                    "results": to_jsonable(s.test_execution.results),
                },
                "demo": self.demo.state.value if self.demo else None,
            }
