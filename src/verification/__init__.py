"""
Verification Loop

Round-by-round orchestration of the Verifier/Critic review.

Components:
    arbiter  - loop-level signals (context growth, circular arguments)
    loop     - session lifecycle, round submission, rollback and queries
"""

from src.verification.arbiter import ArbiterSignal, check_for_intervention, is_circular_argument
from src.verification.loop import (
    ContextView,
    RoundSubmission,
    SessionClosed,
    SessionReport,
    VerificationLoop,
    filter_issues,
    find_challenged_issue_ids,
)

__all__ = [
    "ArbiterSignal",
    "ContextView",
    "RoundSubmission",
    "SessionClosed",
    "SessionReport",
    "VerificationLoop",
    "check_for_intervention",
    "filter_issues",
    "find_challenged_issue_ids",
    "is_circular_argument",
]
