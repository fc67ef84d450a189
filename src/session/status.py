"""
Session Status Lifecycle

Valid transitions between session statuses:

- CREATED: session opened, no round submitted yet
- VERIFYING: rounds are being exchanged
- CONVERGING: at least one stable round, no open critical issues
- CONVERGED: loop finished (or session ended)
- FORCED_STOP: round limit reached before convergence
- ERROR: unrecoverable failure reported by the caller
"""

from src.models.enums import SessionStatus


VALID_TRANSITIONS: dict[SessionStatus, set[SessionStatus]] = {
    SessionStatus.CREATED: {
        SessionStatus.VERIFYING,
        SessionStatus.CONVERGED,  # Ended before any round
        SessionStatus.ERROR,
    },
    SessionStatus.VERIFYING: {
        SessionStatus.CONVERGING,
        SessionStatus.CONVERGED,
        SessionStatus.FORCED_STOP,
        SessionStatus.ERROR,
    },
    SessionStatus.CONVERGING: {
        SessionStatus.VERIFYING,  # New issues reopened the loop
        SessionStatus.CONVERGED,
        SessionStatus.FORCED_STOP,
        SessionStatus.ERROR,
    },
    SessionStatus.CONVERGED: {
        SessionStatus.VERIFYING,  # Rollback
    },
    SessionStatus.FORCED_STOP: {
        SessionStatus.VERIFYING,  # Rollback
        SessionStatus.CONVERGED,
    },
    SessionStatus.ERROR: {
        SessionStatus.VERIFYING,  # Rollback
    },
}


class InvalidStatusTransition(Exception):
    """Raised when an invalid status transition is attempted."""

    def __init__(self, from_status: SessionStatus, to_status: SessionStatus):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(f"Invalid transition: {from_status.value} -> {to_status.value}")


def can_transition(from_status: SessionStatus, to_status: SessionStatus) -> bool:
    """Check if transition is valid. Staying in place is always allowed."""
    if from_status == to_status:
        return True
    return to_status in VALID_TRANSITIONS.get(from_status, set())
