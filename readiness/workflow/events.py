"""Job event types and input hashing.

job_events is append-only. One event per state change; the payload carries
the fields set by that transition.
"""

import hashlib
import json

JOB_REQUESTED = "job.requested"
JOB_PROCESSING = "job.processing"
JOB_COMPLETED = "job.completed"
JOB_FAILED = "job.failed"

_EVENT_FOR_STATE = {
    "requested": JOB_REQUESTED,
    "processing": JOB_PROCESSING,
    "completed": JOB_COMPLETED,
    "failed": JOB_FAILED,
}


def event_type_for(state: str) -> str:
    return _EVENT_FOR_STATE[state]


def content_hash(payload: dict) -> str:
    """Stable sha256 of a JSON-serializable job input.

    Two requests with the same hash would produce the same result, so a
    recent completed job with this hash can be reused instead of re-running.
    """
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(encoded.encode()).hexdigest()
