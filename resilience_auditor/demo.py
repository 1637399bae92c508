"""
Demo Scenario Driver
Plays scripted presentation steps on the shared clock and forwards each step's
action to the store.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Any, List, Optional

logger = logging.getLogger("resilience_auditor.demo")

DEMO_ACTIONS = ("select_site", "run_test", "show_results", "navigate", "highlight", "pause")

class DemoState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"

@dataclass
class DemoStep:
    id: str
    name: str
    description: str
    action: str
    params: Dict[str, Any] = field(default_factory=dict)
    duration: float = 3.0 # seconds

@dataclass
class DemoScenario:
    id: str
    name: str
    description: str
    steps: List[DemoStep] = field(default_factory=list)

    @property
    def total_duration(self) -> float:
        return sum(s.duration for s in self.steps)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "total_duration": self.total_duration,
            "steps": [
                {"id": s.id, "name": s.name, "description": s.description,
                 "action": s.action, "params": dict(s.params), "duration": s.duration}
                for s in self.steps
            ],
        }

class DemoManager:
    """
    idle -> running -> (paused <-> running) -> completed; stop() returns to idle.

    Callbacks (all optional):
        on_step_start(step, index)
        on_step_complete(step, index)
        on_scenario_complete(scenario)
        on_state_change(state)
    """

    def __init__(self, scenarios: Optional[List[DemoScenario]] = None):
        self.scenarios: Dict[str, DemoScenario] = {s.id: s for s in (scenarios or [])}
        self.state = DemoState.IDLE
        self.current_scenario: Optional[DemoScenario] = None
        self.current_index = 0
        self.step_elapsed = 0.0
        self.callbacks: Dict[str, Callable] = {}

    def set_callbacks(self, on_step_start=None, on_step_complete=None,
                      on_scenario_complete=None, on_state_change=None):
        for name, cb in (("on_step_start", on_step_start),
                         ("on_step_complete", on_step_complete),
                         ("on_scenario_complete", on_scenario_complete),
                         ("on_state_change", on_state_change)):
            if cb is not None:
                self.callbacks[name] = cb

    def _emit(self, name: str, *args):
        cb = self.callbacks.get(name)
        if cb:
            cb(*args)

    def _set_state(self, state: DemoState):
        if state != self.state:
            self.state = state
            logger.debug("Demo state -> %s", state.value)
            self._emit("on_state_change", state)

    # --- Catalog ---

    def available_scenarios(self) -> List[DemoScenario]:
        return list(self.scenarios.values())

    @property
    def current_step(self) -> Optional[DemoStep]:
        if not self.current_scenario or self.state == DemoState.COMPLETED:
            return None
        if self.current_index < len(self.current_scenario.steps):
            return self.current_scenario.steps[self.current_index]
        return None

    # --- Controls ---

    def start_scenario(self, scenario_id: str):
        if scenario_id not in self.scenarios:
            raise KeyError(f"Unknown demo scenario: {scenario_id}")
        self.current_scenario = self.scenarios[scenario_id]
        self.current_index = 0
        self.step_elapsed = 0.0
        logger.info("Starting demo scenario %s (%d steps)",
                    scenario_id, len(self.current_scenario.steps))
        self._set_state(DemoState.RUNNING)
        if not self.current_scenario.steps:
            self._finish()
            return
        self._begin_step()

    def pause(self):
        if self.state == DemoState.RUNNING:
            self._set_state(DemoState.PAUSED)

    def resume(self):
        if self.state == DemoState.PAUSED:
            self._set_state(DemoState.RUNNING)

    def stop(self):
        self.current_scenario = None
        self.current_index = 0
        self.step_elapsed = 0.0
        self._set_state(DemoState.IDLE)

    def next_step(self):
        if self.state not in (DemoState.RUNNING, DemoState.PAUSED) or not self.current_scenario:
            return
        self._complete_step()

    def previous_step(self):
        if self.state not in (DemoState.RUNNING, DemoState.PAUSED) or not self.current_scenario:
            return
        self.current_index = max(0, self.current_index - 1)
        self.step_elapsed = 0.0
        self._begin_step()

    # --- Clock ---

    def tick(self, delta: float = 1.0) -> bool:
        if self.state != DemoState.RUNNING or not self.current_scenario:
            return False
        self.step_elapsed += delta
        # A large delta may finish several short steps at once
        while self.state == DemoState.RUNNING:
            step = self.current_step
            if step is None or self.step_elapsed < step.duration:
                break
            overflow = self.step_elapsed - step.duration
            self._complete_step()
            self.step_elapsed = overflow if self.state == DemoState.RUNNING else 0.0
        return True

    def _begin_step(self):
        step = self.current_step
        if step is not None:
            logger.info("Demo step %d: %s (%s)", self.current_index + 1, step.name, step.action)
            self._emit("on_step_start", step, self.current_index)

    def _complete_step(self):
        step = self.current_step
        if step is not None:
            self._emit("on_step_complete", step, self.current_index)
        self.current_index += 1
        self.step_elapsed = 0.0
        if self.current_index >= len(self.current_scenario.steps):
            self._finish()
        else:
            self._begin_step()

    def _finish(self):
        self.current_index = len(self.current_scenario.steps)
        logger.info("Demo scenario %s completed", self.current_scenario.id)
        self._set_state(DemoState.COMPLETED)
        self._emit("on_scenario_complete", self.current_scenario)

    # --- Timing ---

    @property
    def elapsed_time(self) -> float:
        if not self.current_scenario:
            return 0.0
        done = sum(s.duration for s in self.current_scenario.steps[:self.current_index])
        return done + self.step_elapsed

    @property
    def remaining_time(self) -> float:
        if not self.current_scenario:
            return 0.0
        return max(0.0, self.current_scenario.total_duration - self.elapsed_time)

    def progress(self) -> Dict[str, Any]:
        # current counts finished steps
        if not self.current_scenario:
            return {"current": 0, "total": 0, "percentage": 0}
        total = len(self.current_scenario.steps)
        current = min(self.current_index, total)
        percentage = round(current / total * 100) if total else 100
        return {"current": current, "total": total, "percentage": percentage}

    def snapshot(self) -> Dict[str, Any]:
        step = self.current_step
        return {
            "state": self.state.value,
            "scenario": self.current_scenario.to_dict() if self.current_scenario else None,
            "current_step": {"id": step.id, "name": step.name, "description": step.description,
                             "action": step.action} if step else None,
            "progress": self.progress(),
            "elapsed": self.elapsed_time,
            "remaining": self.remaining_time,
        }

class DemoStoreBinding:
    """Turns demo steps into store actions."""

    def __init__(self, store):
        self.store = store
        self.message: Optional[str] = None

    def attach(self, manager: DemoManager):
        manager.set_callbacks(on_step_start=self.execute)

    def execute(self, step: DemoStep, index: int = 0):
        params = step.params or {}
        if step.action == "select_site":
            self.store.select_site(params.get("site_id"))
        elif step.action == "run_test":
            site_id = params.get("site_id") or self.store.state.selected_site_id
            if not site_id:
                logger.warning("Demo step %s wants to run a test but no site is selected", step.id)
                return
            self.store.run_security_test(site_id, params["test_id"])
        elif step.action == "navigate":
            self.store.navigate(params.get("route", "/"),
                                center=params.get("center"), zoom=params.get("zoom"))
        elif step.action == "highlight":
            self.message = params.get("message")
            self.store.set_highlighted_sites(list(params.get("sites", [])))
        # show_results and pause leave the store alone
