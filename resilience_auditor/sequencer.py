"""
Test Execution Simulator
Plays a synthetic list of execution steps on a one-second tick and scores them.
"""
import datetime
import logging
import math
import random
from enum import Enum
from typing import Callable, Dict, Any, List, Optional

from .metadata import BASE_STEPS, FINAL_STEPS, get_category, generate_recommendations
from .models import (
    ExecutionStep, SecurityTest, StepStatus, TestResult, classify_score, to_jsonable,
)

logger = logging.getLogger("resilience_auditor.sequencer")

DEFAULT_DURATION = 30
STEP_SCORE_MIN = 60
STEP_SCORE_MAX = 99 # inclusive
FALLBACK_SCORE = 75

class SequencerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"

def generate_test_steps(test: SecurityTest) -> List[ExecutionStep]:
    """
    Builds the ordered step list for a test.

    Every step gets floor(total * weight) seconds, raised to its minimum. The
    rounding remainder lands on the heaviest step so the durations add up to the
    declared total whenever the minimums leave room for it.
    """
    total = test.estimated_duration or DEFAULT_DURATION
    templates = list(BASE_STEPS) + list(get_category(test.category)["steps"]) + list(FINAL_STEPS)

    steps: List[ExecutionStep] = []
    weights: List[float] = []
    for step_id, name, description, weight, minimum in templates:
        duration = max(minimum, int(math.floor(total * weight + 1e-9)))
        steps.append(ExecutionStep(id=step_id, name=name, description=description, duration=duration))
        weights.append(weight)

    remainder = total - sum(s.duration for s in steps)
    if remainder > 0:
        heaviest = max(range(len(steps)), key=lambda i: (weights[i], i))
        steps[heaviest].duration += remainder
    return steps

class StepSequencer:
    """
    State machine: idle -> running -> (paused <-> running) -> completed.
    stop() from any state returns to idle and wipes step scores.
    """

    def __init__(self, test: SecurityTest, site_id: str,
                 rng: Optional[random.Random] = None,
                 on_complete: Optional[Callable[[TestResult], None]] = None,
                 on_step_complete: Optional[Callable[[ExecutionStep, int], None]] = None):
        self.test = test
        self.site_id = site_id
        self.rng = rng or random.Random()
        self.on_complete = on_complete
        self.on_step_complete = on_step_complete

        self.steps: List[ExecutionStep] = generate_test_steps(test)
        self.state = SequencerState.IDLE
        self.current_step = 0
        self.elapsed = 0 # seconds spent in the current step
        self.progress = 0.0
        self.result: Optional[TestResult] = None
        logger.debug("Initialized %d steps for test %s", len(self.steps), test.id)

    # --- State ---

    @property
    def is_running(self) -> bool:
        return self.state in (SequencerState.RUNNING, SequencerState.PAUSED)

    @property
    def is_paused(self) -> bool:
        return self.state == SequencerState.PAUSED

    @property
    def total_duration(self) -> int:
        return self.test.estimated_duration or sum(s.duration for s in self.steps)

    @property
    def time_remaining(self) -> int:
        if not self.steps:
            return 0
        per_step = self.total_duration / len(self.steps)
        return max(0, int(self.total_duration - self.current_step * per_step - self.elapsed))

    # --- Controls ---

    def start(self):
        self._reset_counters()
        if not self.steps:
            self.steps = generate_test_steps(self.test)
        for index, step in enumerate(self.steps):
            step.status = StepStatus.RUNNING if index == 0 else StepStatus.PENDING
            step.score = None
            step.details = None
        self.state = SequencerState.RUNNING
        logger.info("Started %s on site %s (%d steps, %ds)",
                    self.test.id, self.site_id, len(self.steps), self.total_duration)

    def pause(self):
        if self.state == SequencerState.RUNNING:
            self.state = SequencerState.PAUSED

    def resume(self):
        if self.state == SequencerState.PAUSED:
            self.state = SequencerState.RUNNING

    def toggle_pause(self):
        if self.state == SequencerState.PAUSED:
            self.resume()
        else:
            self.pause()

    def stop(self):
        self.state = SequencerState.IDLE
        self._reset_counters()
        for step in self.steps:
            step.status = StepStatus.PENDING
            step.score = None
            step.details = None

    def reset(self):
        self.stop()

    def _reset_counters(self):
        self.current_step = 0
        self.elapsed = 0
        self.progress = 0.0
        self.result = None

    # --- Clock ---

    def tick(self, seconds: int = 1) -> bool:
        """Advances the simulation by whole seconds. Returns True if anything moved."""
        moved = False
        for _ in range(seconds):
            if not self._advance():
                break
            moved = True
        return moved

    def _advance(self) -> bool:
        if self.state != SequencerState.RUNNING or self.current_step >= len(self.steps):
            return False

        self.elapsed += 1
        step = self.steps[self.current_step]
        step_progress = min(self.elapsed / step.duration, 1.0) if step.duration > 0 else 1.0
        self.progress = (self.current_step + step_progress) / len(self.steps) * 100

        if step_progress >= 1.0:
            score = self.rng.randint(STEP_SCORE_MIN, STEP_SCORE_MAX)
            step.status = StepStatus.COMPLETED
            step.score = score
            step.details = f"Step completed with score: {score}/100"
            logger.debug("Step %d/%d (%s) completed: %d",
                         self.current_step + 1, len(self.steps), step.name, score)
            if self.on_step_complete:
                self.on_step_complete(step, self.current_step)

            if self.current_step + 1 < len(self.steps):
                self.current_step += 1
                self.steps[self.current_step].status = StepStatus.RUNNING
                self.elapsed = 0
            else:
                self._complete()
        return True

    def _complete(self):
        scores = [s.score for s in self.steps if s.score is not None]
        average = sum(scores) // len(scores) if scores else FALLBACK_SCORE

        self.result = TestResult(
            test_id=self.test.id,
            site_id=self.site_id,
            score=average,
            status=classify_score(average),
            timestamp=datetime.datetime.now(datetime.timezone.utc).isoformat(),
            details=f"Test completed with overall score: {average}/100",
            recommendations=generate_recommendations(self.test.category, average),
        )
        self.state = SequencerState.COMPLETED
        self.progress = 100.0
        logger.info("Completed %s on site %s: %d (%s)",
                    self.test.id, self.site_id, average, self.result.status.value)
        if self.on_complete:
            self.on_complete(self.result)

    def snapshot(self) -> Dict[str, Any]:
        current = self.steps[self.current_step] if self.current_step < len(self.steps) else None
        return {
            "test_id": self.test.id,
            "test_name": self.test.name,
            "site_id": self.site_id,
            "state": self.state.value,
            "is_running": self.is_running,
            "is_paused": self.is_paused,
            "progress": round(self.progress, 2),
            "current_step": self.current_step,
            "current_step_name": current.name if current and self.is_running else None,
            "elapsed": self.elapsed,
            "total_duration": self.total_duration,
            "time_remaining": self.time_remaining,
            "steps": to_jsonable(self.steps),
            "result": to_jsonable(self.result) if self.result else None,
        }
