"""Job states and kinds.

Thin enum layer over the FSM in fsm.py. Values match the FSM state strings
and the jobs.state column.

    requested -> processing -> completed
                            -> failed
    requested -> failed        (rejected before any worker picked it up)

completed and failed are terminal. A retry is a new job.
"""

from enum import Enum


class JobState(Enum):
    REQUESTED = "requested"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.FAILED)


class JobKind(Enum):
    TASK_ANALYSIS = "task_analysis"
    STORY_ANALYSIS = "story_analysis"
    TASK_SUGGESTIONS = "task_suggestions"


class InvalidTransition(Exception):
    """Raised when a trigger is not allowed from the job's current state."""

    def __init__(self, from_state: str, trigger: str, job_id: str = ""):
        self.from_state = from_state
        self.trigger = trigger
        self.job_id = job_id
        super().__init__(
            f"Invalid transition: '{trigger}' from {from_state}"
            + (f" (job: {job_id})" if job_id else "")
        )


def parse_state(value: str | None) -> JobState | None:
    """Parse a state string. Returns None if unknown."""
    if value is None:
        return None
    for state in JobState:
        if state.value == value:
            return state
    return None
