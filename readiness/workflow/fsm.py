"""Job state machine using the transitions library.

Each trigger is guarded by a compare-and-swap on the jobs row: the
transition only happens if the row is still in the source state. A lost
race makes the trigger return False instead of raising, so two workers
that pick up the same job id cannot both process it.

Usage:
    fsm = JobFSM(store, job)
    if not fsm.claim():
        return  # another worker owns it
    ...
    fsm.complete(result_count=3)
"""

import logging

from transitions import Machine, MachineError

from readiness.store.models import JobRecord
from readiness.store.repository import ReadinessStore
from readiness.workflow.events import event_type_for
from readiness.workflow.state_machine import InvalidTransition, JobState

logger = logging.getLogger(__name__)


STATES = [state.value for state in JobState]

TRANSITIONS = [
    {"trigger": "claim", "source": "requested", "dest": "processing", "conditions": "_swap_state"},
    {"trigger": "complete", "source": "processing", "dest": "completed", "conditions": "_swap_state"},
    {"trigger": "fail", "source": "processing", "dest": "failed", "conditions": "_swap_state"},
    {"trigger": "fail", "source": "requested", "dest": "failed", "conditions": "_swap_state"},
]

# Columns a trigger may set alongside the state change
JOB_FIELDS = {"error_kind", "error_message", "provider", "result_count"}


class JobFSM:
    """State machine for one job, persisted through the store."""

    def __init__(self, store: ReadinessStore, job: JobRecord):
        self.store = store
        self.job_id = job.id
        self.organization_id = job.organization_id

        initial = job.state
        if initial not in STATES:
            logger.warning(f"[FSM] {self.job_id}: Unknown state '{initial}', treating as failed")
            initial = JobState.FAILED.value

        self.machine = Machine(
            model=self,
            states=STATES,
            transitions=TRANSITIONS,
            initial=initial,
            auto_transitions=False,
            send_event=True,
            after_state_change="on_state_change",
        )

    def _swap_state(self, event) -> bool:
        fields = {k: v for k, v in event.kwargs.items() if k in JOB_FIELDS}
        swapped = self.store.compare_and_swap_state(
            self.job_id, event.transition.source, event.transition.dest, **fields
        )
        if not swapped:
            logger.info(
                f"[FSM] {self.job_id}: {event.event.name} lost race "
                f"({event.transition.source} already changed)"
            )
        return swapped

    def on_state_change(self, event) -> None:
        from_state = event.transition.source
        to_state = event.transition.dest
        trigger = event.event.name

        logger.info(f"[FSM] {self.job_id}: {from_state} -> {to_state} ({trigger})")

        payload = {k: v for k, v in event.kwargs.items() if k in JOB_FIELDS}
        payload["from"] = from_state
        self.store.append_event(self.organization_id, self.job_id, event_type_for(to_state), payload)

    def fire(self, trigger: str, **fields) -> bool:
        """Run a trigger by name. Returns False if the compare-and-swap was lost.

        Raises:
            InvalidTransition: trigger not allowed from the current state
        """
        try:
            return self.trigger(trigger, **fields)
        except MachineError:
            raise InvalidTransition(self.state, trigger, self.job_id) from None

    def can(self, trigger: str) -> bool:
        """Check if a trigger can be executed in current state."""
        return trigger in self.machine.get_triggers(self.state)

    @property
    def job_state(self) -> JobState:
        return JobState(self.state)
