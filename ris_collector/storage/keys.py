"""Redis key layout for all pipeline state.

Every key is namespaced under ``ris:``. Per-repository keys embed the
``owner/repo`` string form of the repository key.
"""

COLLECTION_STATE_PREFIX = "ris:collection:state:"
FAILED_COLLECTIONS = "ris:collection:failed"  # zset scored by last_attempt_at
PENDING_RETRIES = "ris:collection:retry"  # zset scored by next_retry_at

ACTIVITY_PREFIX = "ris:activity:"
METRICS_PREFIX = "ris:metrics:"

APPROVED_LIBRARIES = "ris:libraries:approved"  # hash owner/repo -> JSON

WEBHOOK_QUEUE = "ris:webhook:queue"
WEBHOOK_PROCESSED = "ris:webhook:processed"
WEBHOOK_ERRORS = "ris:webhook:errors"
INSTALLATIONS = "ris:installations"


def collection_state(repository: str) -> str:
    return f"{COLLECTION_STATE_PREFIX}{repository}"


def activity(repository: str) -> str:
    return f"{ACTIVITY_PREFIX}{repository}"


def metrics(repository: str) -> str:
    return f"{METRICS_PREFIX}{repository}"
