"""
Progress Tracker Tests

Run with: python -m pytest tests/test_progress_tracker.py -v
"""

from services.documents import StepStatus
from services.progress_tracker import DEFAULT_STEPS, ProgressTracker, advance, build_steps, fail


def statuses(steps):
    return [step.status for step in steps]


class TestStepFunctions:

    def test_build_steps_all_pending(self):
        steps = build_steps()
        assert [s.id for s in steps] == ['save', 'generate', 'email', 'complete']
        assert set(statuses(steps)) == {StepStatus.PENDING}

    def test_advance_marks_complete_and_next_loading(self):
        steps = build_steps()
        steps[0].status = StepStatus.LOADING

        assert advance(steps, 0) == 1
        assert statuses(steps)[:3] == [StepStatus.COMPLETE, StepStatus.LOADING, StepStatus.PENDING]

    def test_advance_on_last_step_stays(self):
        steps = build_steps()
        last = len(steps) - 1

        assert advance(steps, last) == last
        assert steps[last].status is StepStatus.COMPLETE

    def test_fail_freezes_sequence(self):
        steps = build_steps()
        steps[0].status = StepStatus.LOADING
        advance(steps, 0)
        fail(steps, 1, "render failed")

        assert advance(steps, 1) == 1
        assert statuses(steps) == [StepStatus.COMPLETE, StepStatus.ERROR, StepStatus.PENDING, StepStatus.PENDING]


class TestProgressTracker:

    def test_exactly_one_loading_while_running(self):
        tracker = ProgressTracker()
        tracker.start()
        for _ in range(len(DEFAULT_STEPS) - 1):
            assert statuses(tracker.steps).count(StepStatus.LOADING) == 1
            tracker.advance()
        assert statuses(tracker.steps).count(StepStatus.LOADING) == 1

    def test_runs_to_complete(self):
        tracker = ProgressTracker()
        tracker.start()
        for _ in DEFAULT_STEPS:
            tracker.advance()

        assert tracker.is_complete
        assert tracker.current_step.id == 'complete'

    def test_fail_keeps_prior_steps_visible(self):
        tracker = ProgressTracker()
        tracker.start()
        tracker.advance()
        tracker.fail("Template could not be parsed")

        assert tracker.is_frozen
        assert tracker.error == "Template could not be parsed"
        assert tracker.steps[0].status is StepStatus.COMPLETE
        assert tracker.current_step.status is StepStatus.ERROR

    def test_warn_does_not_touch_steps(self):
        tracker = ProgressTracker()
        tracker.start()
        tracker.warn("email: relay down")

        assert tracker.warnings == ["email: relay down"]
        assert not tracker.is_frozen

    def test_to_dict(self):
        tracker = ProgressTracker()
        tracker.start()
        surface = tracker.to_dict()

        assert surface['currentStep'] == 0
        assert surface['error'] is None
        assert surface['steps'][0] == {
            'id': 'save', 'label': 'Saving your transaction information', 'status': 'loading'
        }
