"""
Workflow Validator
Headless end-to-end checks that replay user workflows against a fresh store.
"""
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

from .catalog import DataLoadError
from .csv_reporting import render_csv
from .demo import DemoManager, DemoState, DemoScenario
from .html_reporting import render_html
from .models import StepStatus, AlertStatus
from .panels import PanelStack, PanelState
from .pdf_reporting import render_pdf
from .reporting import build_report, render_json, render_text
from .sequencer import SequencerState

logger = logging.getLogger("resilience_auditor.workflows")

MAX_TICKS = 600

class WorkflowContext:
    def __init__(self, store, demo_scenarios: List[DemoScenario]):
        self.store = store
        self.panels = PanelStack(store)
        self.demo = DemoManager(demo_scenarios)
        store.attach_demo(self.demo)
        self.vars: Dict[str, Any] = {}

    def first_site_id(self) -> str:
        if not self.store.state.sites:
            raise AssertionError("no sites loaded")
        return self.store.state.sites[0].id

# --- Actions: (ctx, params) -> message ---

def _initialize(ctx: WorkflowContext, params: Dict[str, Any]) -> str:
    if not ctx.store.initialize():
        raise AssertionError(ctx.store.state.error or "initialization failed")
    return f"{len(ctx.store.state.sites)} sites loaded"

def _select_site(ctx: WorkflowContext, params: Dict[str, Any]) -> str:
    site_id = params.get("site_id") or ctx.first_site_id()
    ctx.panels.open_site(site_id)
    ctx.vars["site_id"] = site_id
    return f"selected {site_id}"

def _panel(ctx: WorkflowContext, params: Dict[str, Any]) -> str:
    state = ctx.panels.transition(params["transition"], params.get("test_id"))
    return f"panel -> {state.value}"

def _run_test(ctx: WorkflowContext, params: Dict[str, Any]) -> str:
    site_id = ctx.vars.get("site_id") or ctx.first_site_id()
    ctx.store.run_security_test(site_id, params["test_id"])
    ctx.vars["test_id"] = params["test_id"]
    return f"started {params['test_id']} on {site_id}"

def _tick(ctx: WorkflowContext, params: Dict[str, Any]) -> str:
    n = int(params.get("seconds", 1))
    for _ in range(n):
        ctx.store.tick()
    return f"advanced {n}s"

def _tick_until_complete(ctx: WorkflowContext, params: Dict[str, Any]) -> str:
    seq = ctx.store.sequencer
    if seq is None:
        raise AssertionError("no test running")
    ticks = 0
    while seq.state != SequencerState.COMPLETED:
        if ticks >= MAX_TICKS:
            raise AssertionError(f"test did not finish within {MAX_TICKS} ticks")
        ctx.store.tick()
        ticks += 1
    return f"completed after {ticks} ticks"

def _stop_test(ctx: WorkflowContext, params: Dict[str, Any]) -> str:
    ctx.store.stop_test()
    return "stopped"

def _acknowledge_first_alert(ctx: WorkflowContext, params: Dict[str, Any]) -> str:
    alerts = ctx.store.state.threat_alerts
    if not alerts:
        raise AssertionError("no threat alerts generated")
    ctx.vars["alert_id"] = alerts[0].id
    ctx.store.acknowledge_alert(alerts[0].id)
    return f"acknowledged {alerts[0].id}"

def _refresh_alerts(ctx: WorkflowContext, params: Dict[str, Any]) -> str:
    ctx.store.refresh_threat_alerts()
    return "alerts regenerated"

def _export_reports(ctx: WorkflowContext, params: Dict[str, Any]) -> str:
    report = build_report(ctx.store, report_type=params.get("type", "individual"))
    sizes = {
        "json": len(render_json(report)),
        "csv": len(render_csv(report)),
        "html": len(render_html(report)),
        "text": len(render_text(report)),
        "pdf": len(render_pdf(report)),
    }
    ctx.vars["report_sizes"] = sizes
    return ", ".join(f"{k}={v}" for k, v in sizes.items())

def _start_demo(ctx: WorkflowContext, params: Dict[str, Any]) -> str:
    scenarios = ctx.demo.available_scenarios()
    if not scenarios:
        raise AssertionError("no demo scenarios available")
    scenario_id = params.get("scenario_id") or scenarios[0].id
    ctx.demo.start_scenario(scenario_id)
    return f"demo {scenario_id} started"

def _tick_until_demo_complete(ctx: WorkflowContext, params: Dict[str, Any]) -> str:
    ticks = 0
    while ctx.demo.state != DemoState.COMPLETED:
        if ticks >= MAX_TICKS:
            raise AssertionError(f"demo did not finish within {MAX_TICKS} ticks")
        ctx.store.tick()
        ticks += 1
    return f"demo completed after {ticks} ticks"

ACTIONS: Dict[str, Callable[[WorkflowContext, Dict[str, Any]], str]] = {
    "initialize": _initialize,
    "select_site": _select_site,
    "panel": _panel,
    "run_test": _run_test,
    "tick": _tick,
    "tick_until_complete": _tick_until_complete,
    "stop_test": _stop_test,
    "acknowledge_first_alert": _acknowledge_first_alert,
    "refresh_alerts": _refresh_alerts,
    "export_reports": _export_reports,
    "start_demo": _start_demo,
    "tick_until_demo_complete": _tick_until_demo_complete,
}

# --- Assertions: (ctx, params) -> (passed, message) ---

def _sites_loaded(ctx, params) -> Tuple[bool, str]:
    n = len(ctx.store.state.sites)
    return n > 0 and not ctx.store.state.loading, f"{n} sites"

def _suites_generated(ctx, params):
    s = ctx.store.state
    missing = [site.id for site in s.sites if site.id not in s.test_suites]
    return not missing, f"missing suites: {missing}" if missing else "all sites have suites"

def _kpis_computed(ctx, params):
    kpi = ctx.store.state.kpi_data
    ok = 0 <= kpi.overall_network_resilience <= 100 and kpi.last_audit_coverage == 100
    return ok, f"resilience {kpi.overall_network_resilience}, coverage {kpi.last_audit_coverage}%"

def _site_selected(ctx, params):
    s = ctx.store.state
    expected = ctx.vars.get("site_id")
    ok = s.selected_site_id == expected and s.map_view.selected_site_id == expected
    return ok, f"selected {s.selected_site_id}"

def _panel_state(ctx, params):
    expected = PanelState(params["state"])
    return ctx.panels.state == expected, f"panel is {ctx.panels.state.value}"

def _test_running(ctx, params):
    ex = ctx.store.state.test_execution
    return ex.is_running, f"progress {ex.progress:.0f}% ({ex.status})"

def _test_completed(ctx, params):
    ex = ctx.store.state.test_execution
    ok = not ex.is_running and ex.progress == 100 and len(ex.results) == 1
    return ok, ex.status or "no status"

def _score_in_range(ctx, params):
    seq = ctx.store.sequencer
    step_scores = [s.score for s in seq.steps]
    ok = all(s is not None and 60 <= s <= 99 for s in step_scores)
    ok = ok and seq.result.score == sum(step_scores) // len(step_scores)
    return ok, f"steps {step_scores} -> {seq.result.score}"

def _results_written_back(ctx, params):
    site_id = ctx.vars["site_id"]
    test_id = ctx.vars["test_id"]
    result = ctx.store.sequencer.result
    stored = {r.test_id: r for r in ctx.store.state.test_results.get(site_id, [])}
    suite = ctx.store.state.test_suites[site_id]
    ok = test_id in stored and stored[test_id].score == result.score and suite.tests[test_id] == result.score
    return ok, f"suite score for {test_id}: {suite.tests.get(test_id)}"

def _steps_pending(ctx, params):
    seq = ctx.store.sequencer
    ok = all(s.status == StepStatus.PENDING and s.score is None for s in seq.steps)
    return ok and seq.state == SequencerState.IDLE, f"sequencer {seq.state.value}"

def _alert_status_kept(ctx, params):
    alert_id = ctx.vars["alert_id"]
    for a in ctx.store.state.threat_alerts:
        if a.id == alert_id:
            return a.status == AlertStatus.ACKNOWLEDGED, f"{alert_id} is {a.status.value}"
    return False, f"{alert_id} disappeared"

def _reports_rendered(ctx, params):
    sizes = ctx.vars.get("report_sizes", {})
    empty = [k for k, v in sizes.items() if not v]
    return bool(sizes) and not empty, f"empty exports: {empty}" if empty else "all formats rendered"

def _demo_completed(ctx, params):
    progress = ctx.demo.progress()
    ok = ctx.demo.state == DemoState.COMPLETED and progress["percentage"] == 100
    return ok, f"{progress['current']}/{progress['total']} steps"

ASSERTIONS: Dict[str, Callable[[WorkflowContext, Dict[str, Any]], Tuple[bool, str]]] = {
    "sites_loaded": _sites_loaded,
    "suites_generated": _suites_generated,
    "kpis_computed": _kpis_computed,
    "site_selected": _site_selected,
    "panel_state": _panel_state,
    "test_running": _test_running,
    "test_completed": _test_completed,
    "score_in_range": _score_in_range,
    "results_written_back": _results_written_back,
    "steps_pending": _steps_pending,
    "alert_status_kept": _alert_status_kept,
    "reports_rendered": _reports_rendered,
    "demo_completed": _demo_completed,
}

WORKFLOW_SCENARIOS: List[Dict[str, Any]] = [
    {
        "id": "data_initialization",
        "name": "Data Initialization",
        "description": "Sites load, suites are generated and KPIs are computed",
        "steps": [
            {"id": "init", "action": "initialize"},
            {"id": "sites", "assert": "sites_loaded"},
            {"id": "suites", "assert": "suites_generated"},
            {"id": "kpis", "assert": "kpis_computed"},
        ],
    },
    {
        "id": "site_selection",
        "name": "Site Selection",
        "description": "Selecting a site updates the store and opens the panel stack",
        "steps": [
            {"id": "init", "action": "initialize"},
            {"id": "select", "action": "select_site"},
            {"id": "selected", "assert": "site_selected"},
            {"id": "details", "assert": "panel_state", "params": {"state": "details"}},
            {"id": "open_tests", "action": "panel", "params": {"transition": "run_tests"}},
            {"id": "selection", "assert": "panel_state", "params": {"state": "selection"}},
        ],
    },
    {
        "id": "test_execution",
        "name": "Test Execution",
        "description": "A simulated test runs to completion and writes its result back",
        "steps": [
            {"id": "init", "action": "initialize"},
            {"id": "select", "action": "select_site"},
            {"id": "run", "action": "run_test", "params": {"test_id": "jamming_ssb_pbch_prach"}},
            {"id": "running", "assert": "test_running"},
            {"id": "finish", "action": "tick_until_complete"},
            {"id": "completed", "assert": "test_completed"},
            {"id": "scores", "assert": "score_in_range"},
            {"id": "write_back", "assert": "results_written_back"},
        ],
    },
    {
        "id": "stop_and_reset",
        "name": "Stop and Reset",
        "description": "Stopping a running test returns every step to pending",
        "steps": [
            {"id": "init", "action": "initialize"},
            {"id": "select", "action": "select_site"},
            {"id": "run", "action": "run_test", "params": {"test_id": "prach_flooding"}},
            {"id": "advance", "action": "tick", "params": {"seconds": 8}},
            {"id": "stop", "action": "stop_test"},
            {"id": "pending", "assert": "steps_pending"},
        ],
    },
    {
        "id": "threat_alerts",
        "name": "Threat Alert Handling",
        "description": "Acknowledged alerts stay acknowledged after regeneration",
        "steps": [
            {"id": "init", "action": "initialize"},
            {"id": "ack", "action": "acknowledge_first_alert"},
            {"id": "regenerate", "action": "refresh_alerts"},
            {"id": "kept", "assert": "alert_status_kept"},
        ],
    },
    {
        "id": "report_generation",
        "name": "Report Generation",
        "description": "Every export format renders for the full site list",
        "steps": [
            {"id": "init", "action": "initialize"},
            {"id": "export", "action": "export_reports", "params": {"type": "comparison"}},
            {"id": "rendered", "assert": "reports_rendered"},
        ],
    },
    {
        "id": "demo_playback",
        "name": "Demo Playback",
        "description": "The shortest demo scenario plays through",
        "steps": [
            {"id": "init", "action": "initialize"},
            {"id": "start", "action": "start_demo"},
            {"id": "play", "action": "tick_until_demo_complete"},
            {"id": "completed", "assert": "demo_completed"},
        ],
    },
]

class WorkflowValidator:
    def __init__(self, store_factory: Callable[[], Any], demo_scenarios: Optional[List[DemoScenario]] = None,
                 scenarios: Optional[List[Dict[str, Any]]] = None):
        self.store_factory = store_factory
        self.demo_scenarios = list(demo_scenarios or [])
        self.scenarios = {s["id"]: s for s in (scenarios or WORKFLOW_SCENARIOS)}

    def available_scenarios(self) -> List[Dict[str, Any]]:
        return [
            {"id": s["id"], "name": s["name"], "description": s["description"], "steps": len(s["steps"])}
            for s in self.scenarios.values()
        ]

    def validate_workflow(self, scenario_id: str) -> Dict[str, Any]:
        if scenario_id not in self.scenarios:
            raise KeyError(f"Unknown workflow: {scenario_id}")
        scenario = self.scenarios[scenario_id]
        ctx = WorkflowContext(self.store_factory(), self.demo_scenarios)

        started = time.perf_counter()
        steps: List[Dict[str, Any]] = []
        success = True

        for i, step in enumerate(scenario["steps"]):
            step_id = step.get("id", f"step_{i}")
            if not success:
                steps.append({"id": step_id, "passed": False, "skipped": True, "message": "Skipped", "duration_ms": 0})
                continue

            t0 = time.perf_counter()
            params = step.get("params", {})
            try:
                if "action" in step:
                    handler = ACTIONS.get(step["action"])
                    if handler is None:
                        raise ValueError(f"Unknown workflow action {step['action']}")
                    passed, message = True, handler(ctx, params)
                else:
                    check = ASSERTIONS.get(step["assert"])
                    if check is None:
                        raise ValueError(f"Unknown workflow assertion {step['assert']}")
                    passed, message = check(ctx, params)
            except (AssertionError, KeyError, ValueError, DataLoadError) as e:
                passed, message = False, f"{type(e).__name__}: {e}"

            if not passed:
                success = False
                logger.warning("Workflow %s step %s failed: %s", scenario_id, step_id, message)
            steps.append({
                "id": step_id,
                "passed": passed,
                "skipped": False,
                "message": message,
                "duration_ms": round((time.perf_counter() - t0) * 1000, 2),
            })

        return {
            "scenario": {"id": scenario["id"], "name": scenario["name"], "description": scenario["description"]},
            "success": success,
            "steps": steps,
            "duration_ms": round((time.perf_counter() - started) * 1000, 2),
        }

    def validate_all(self) -> Dict[str, Any]:
        results = [self.validate_workflow(sid) for sid in self.scenarios]
        all_steps = [s for r in results for s in r["steps"]]
        passed_steps = sum(1 for s in all_steps if s["passed"])
        return {
            "scenarios": results,
            "summary": {
                "total_scenarios": len(results),
                "passed_scenarios": sum(1 for r in results if r["success"]),
                "failed_scenarios": sum(1 for r in results if not r["success"]),
                "total_steps": len(all_steps),
                "passed_steps": passed_steps,
                "failed_steps": len(all_steps) - passed_steps,
                "total_duration_ms": round(sum(r["duration_ms"] for r in results), 2),
            },
        }
