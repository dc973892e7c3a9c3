"""
Submission Progress Tracker

Pure bookkeeping for the step list the agent sees while a submission
runs. Knows nothing about why a step succeeded or failed; the
orchestrator calls advance/fail after each stage.
"""

import logging
from typing import List, Optional

from services.documents.types import StepStatus, SubmissionStep

logger = logging.getLogger(__name__)

# (id, label) in display order
DEFAULT_STEPS = (
    ('save', 'Saving your transaction information'),
    ('generate', 'Preparing your documents'),
    ('email', 'Sending confirmation'),
    ('complete', 'Completing your submission'),
)


def build_steps(definitions=DEFAULT_STEPS) -> List[SubmissionStep]:
    """Fresh, all-pending step list."""
    return [SubmissionStep(id=step_id, label=label) for step_id, label in definitions]


def is_frozen(steps: List[SubmissionStep]) -> bool:
    return any(step.status is StepStatus.ERROR for step in steps)


def advance(steps: List[SubmissionStep], current_index: int) -> int:
    """
    Mark the current step complete and the next one loading.

    Returns:
        The new current index. Unchanged on the last step and on a
        sequence that already holds an error.
    """
    if is_frozen(steps):
        logger.warning(f"Ignoring advance from step {current_index}: sequence halted on error")
        return current_index

    steps[current_index].status = StepStatus.COMPLETE
    next_index = current_index + 1
    if next_index < len(steps):
        steps[next_index].status = StepStatus.LOADING
        return next_index
    return current_index


def fail(steps: List[SubmissionStep], current_index: int, message: str) -> int:
    """Mark the current step as error and freeze the sequence."""
    steps[current_index].status = StepStatus.ERROR
    logger.info(f"Step '{steps[current_index].id}' failed: {message}")
    return current_index


class ProgressTracker:
    """
    Step list plus current index and error, the whole progress surface.

    Usage:
        tracker = ProgressTracker()
        tracker.start()
        tracker.advance()
        tracker.fail("Airtable API error: ...")
    """

    def __init__(self, definitions=DEFAULT_STEPS):
        self.steps = build_steps(definitions)
        self.current_index = 0
        self.error: Optional[str] = None
        self.warnings: List[str] = []

    @property
    def current_step(self) -> SubmissionStep:
        return self.steps[self.current_index]

    @property
    def is_complete(self) -> bool:
        return all(step.status is StepStatus.COMPLETE for step in self.steps)

    @property
    def is_frozen(self) -> bool:
        return is_frozen(self.steps)

    def start(self) -> None:
        """Put the first step into loading."""
        self.steps[0].status = StepStatus.LOADING
        self.current_index = 0

    def advance(self) -> int:
        self.current_index = advance(self.steps, self.current_index)
        return self.current_index

    def fail(self, message: str) -> None:
        self.error = message
        fail(self.steps, self.current_index, message)

    def warn(self, message: str) -> None:
        """Record a non-fatal failure without touching step statuses."""
        self.warnings.append(message)

    def to_dict(self) -> dict:
        return {
            'steps': [step.to_dict() for step in self.steps],
            'currentStep': self.current_index,
            'error': self.error,
            'warnings': list(self.warnings)
        }
