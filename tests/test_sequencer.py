import unittest
from unittest.mock import MagicMock
import random
import sys
import os

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from resilience_auditor.catalog import load_tests
from resilience_auditor.models import SecurityTest, TestCategory, Severity, StepStatus, ResultStatus
from resilience_auditor.sequencer import StepSequencer, SequencerState, generate_test_steps

def make_test(duration=30, category=TestCategory.JAMMING):
    return SecurityTest(id="t1", name="Sample Test", category=category,
                        severity=Severity.HIGH, estimated_duration=duration)

def run_to_completion(seq, limit=1000):
    for _ in range(limit):
        if seq.state == SequencerState.COMPLETED:
            break
        seq.tick()
    return seq

class TestStepGeneration(unittest.TestCase):
    def test_durations_add_up_for_bundled_tests(self):
        for test in load_tests():
            steps = generate_test_steps(test)
            self.assertEqual(len(steps), 5, test.id)
            self.assertEqual(sum(s.duration for s in steps), test.estimated_duration, test.id)
            self.assertTrue(all(s.status == StepStatus.PENDING for s in steps))

    def test_thirty_second_jamming_layout(self):
        steps = generate_test_steps(make_test(30))
        self.assertEqual([s.id for s in steps],
                         ["init", "baseline", "signal_analysis", "jamming_execution", "analysis"])
        self.assertEqual([s.duration for s in steps], [4, 6, 7, 10, 3])

    def test_minimums_win_for_short_tests(self):
        steps = generate_test_steps(make_test(5))
        self.assertEqual([s.duration for s in steps], [2, 3, 4, 5, 2])

    def test_unknown_category_gets_base_and_final_only(self):
        steps = generate_test_steps(make_test(30, category="quantum"))
        self.assertEqual([s.id for s in steps], ["init", "baseline", "analysis"])

class TestStepSequencer(unittest.TestCase):
    def setUp(self):
        self.test = make_test(30)
        self.seq = StepSequencer(self.test, "mcx-001", rng=random.Random(7))

    def test_start_marks_first_step_running(self):
        self.seq.start()
        self.assertEqual(self.seq.state, SequencerState.RUNNING)
        self.assertEqual(self.seq.steps[0].status, StepStatus.RUNNING)
        self.assertTrue(all(s.status == StepStatus.PENDING for s in self.seq.steps[1:]))
        self.assertEqual(self.seq.time_remaining, 30)

    def test_tick_before_start_does_nothing(self):
        self.assertFalse(self.seq.tick())
        self.assertEqual(self.seq.progress, 0.0)

    def test_scores_and_floor_mean(self):
        self.seq.start()
        run_to_completion(self.seq)
        scores = [s.score for s in self.seq.steps]
        self.assertTrue(all(60 <= s <= 99 for s in scores))
        self.assertEqual(self.seq.result.score, sum(scores) // len(scores))
        self.assertEqual(self.seq.progress, 100.0)
        self.assertTrue(all(s.status == StepStatus.COMPLETED for s in self.seq.steps))

    def test_result_status_matches_thresholds(self):
        self.seq.start()
        run_to_completion(self.seq)
        score = self.seq.result.score
        expected = ResultStatus.PASSED if score >= 80 else ResultStatus.WARNING
        self.assertEqual(self.seq.result.status, expected)
        self.assertEqual(self.seq.result.site_id, "mcx-001")

    def test_completes_after_total_duration(self):
        self.seq.start()
        for _ in range(29):
            self.seq.tick()
        self.assertEqual(self.seq.state, SequencerState.RUNNING)
        self.seq.tick()
        self.assertEqual(self.seq.state, SequencerState.COMPLETED)

    def test_callbacks(self):
        on_complete = MagicMock()
        on_step = MagicMock()
        seq = StepSequencer(self.test, "mcx-001", rng=random.Random(1),
                            on_complete=on_complete, on_step_complete=on_step)
        seq.start()
        run_to_completion(seq)
        on_complete.assert_called_once_with(seq.result)
        self.assertEqual(on_step.call_count, 5)

    def test_pause_freezes_progress(self):
        self.seq.start()
        self.seq.tick(3)
        progress = self.seq.progress
        self.seq.pause()
        self.assertTrue(self.seq.is_paused)
        self.assertTrue(self.seq.is_running)
        self.seq.tick(5)
        self.assertEqual(self.seq.progress, progress)
        self.seq.toggle_pause()
        self.seq.tick()
        self.assertGreater(self.seq.progress, progress)

    def test_stop_returns_every_step_to_pending(self):
        self.seq.start()
        self.seq.tick(12)
        self.assertIsNotNone(self.seq.steps[0].score)
        self.seq.stop()
        self.assertEqual(self.seq.state, SequencerState.IDLE)
        self.assertEqual(self.seq.progress, 0.0)
        self.assertIsNone(self.seq.result)
        for step in self.seq.steps:
            self.assertEqual(step.status, StepStatus.PENDING)
            self.assertIsNone(step.score)

    def test_restart_after_completion(self):
        self.seq.start()
        run_to_completion(self.seq)
        self.seq.start()
        self.assertIsNone(self.seq.result)
        self.assertIsNone(self.seq.steps[-1].score)
        self.assertEqual(self.seq.current_step, 0)

    def test_snapshot(self):
        self.seq.start()
        self.seq.tick()
        snap = self.seq.snapshot()
        self.assertEqual(snap["state"], "running")
        self.assertEqual(snap["current_step_name"], "Deploying Digital Twin")
        self.assertEqual(len(snap["steps"]), 5)
        self.assertIsNone(snap["result"])

if __name__ == '__main__':
    unittest.main()
