"""Job lifecycle transition rules."""

from app.errors import ApiError
from app.schemas.job import JobStatus

_TERMINAL_STATES: set[JobStatus] = {
    JobStatus.FAILED,
    JobStatus.VERIFIED,
}

# pending_review -> verified covers reviewers who verify without claiming the job first.
_ALLOWED_TRANSITIONS: dict[JobStatus, set[JobStatus]] = {
    JobStatus.PENDING: {JobStatus.PROCESSING, JobStatus.FAILED},
    JobStatus.PROCESSING: {JobStatus.COMPLETED, JobStatus.PENDING_REVIEW, JobStatus.FAILED},
    JobStatus.COMPLETED: {JobStatus.PENDING_REVIEW},
    JobStatus.PENDING_REVIEW: {JobStatus.IN_REVIEW, JobStatus.VERIFIED},
    JobStatus.IN_REVIEW: {JobStatus.PENDING_REVIEW, JobStatus.VERIFIED},
    JobStatus.VERIFIED: set(),
    JobStatus.FAILED: set(),
}

# Statuses that only the review lock manager may enter or leave.
LOCK_GOVERNED_STATUSES: frozenset[JobStatus] = frozenset({JobStatus.IN_REVIEW, JobStatus.VERIFIED})

REVIEWABLE_STATUSES: frozenset[JobStatus] = frozenset({JobStatus.PENDING_REVIEW, JobStatus.IN_REVIEW})


def allowed_next_statuses(status: JobStatus) -> list[JobStatus]:
    """Return deterministically ordered allowed successors for a status."""
    return sorted(_ALLOWED_TRANSITIONS.get(status, set()), key=lambda s: s.value)


def is_terminal(status: JobStatus) -> bool:
    return status in _TERMINAL_STATES


def ensure_transition(old_status: JobStatus, new_status: JobStatus) -> None:
    """Validate transition according to lifecycle rules."""
    if old_status in _TERMINAL_STATES:
        raise ApiError(
            status_code=409,
            code="FSM_TERMINAL_IMMUTABLE",
            message="Terminal state cannot be mutated",
            details={
                "current_status": old_status,
                "attempted_status": new_status,
                "allowed_next_statuses": [],
            },
        )

    if new_status not in _ALLOWED_TRANSITIONS.get(old_status, set()):
        raise ApiError(
            status_code=409,
            code="FSM_TRANSITION_INVALID",
            message="Invalid status transition",
            details={
                "current_status": old_status,
                "attempted_status": new_status,
                "allowed_next_statuses": allowed_next_statuses(old_status),
            },
        )


def ensure_caller_transition(old_status: JobStatus, new_status: JobStatus) -> None:
    """Validate a transition requested outside the review lock manager."""
    if old_status != new_status and (new_status in LOCK_GOVERNED_STATUSES or old_status is JobStatus.IN_REVIEW):
        raise ApiError(
            status_code=409,
            code="LOCK_GOVERNED_STATUS",
            message="Review statuses are driven by the review lock only",
            details={
                "current_status": old_status,
                "attempted_status": new_status,
                "allowed_next_statuses": [],
            },
        )
    ensure_transition(old_status, new_status)
