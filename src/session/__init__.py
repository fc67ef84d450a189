"""
Session State

Session store, status lifecycle, layered verification context and
optional on-disk persistence.
"""

from src.session.context import (
    expand_context,
    extract_file_references,
    find_new_file_references,
    get_context_summary,
    initialize_context,
)
from src.session.persistence import SessionPersistence, is_safe_session_id
from src.session.status import (
    VALID_TRANSITIONS,
    InvalidStatusTransition,
    can_transition,
)
from src.session.store import CATEGORY_CHECK_TOTALS, SessionStore, generate_session_id

__all__ = [
    "CATEGORY_CHECK_TOTALS",
    "InvalidStatusTransition",
    "SessionPersistence",
    "SessionStore",
    "VALID_TRANSITIONS",
    "can_transition",
    "expand_context",
    "extract_file_references",
    "find_new_file_references",
    "generate_session_id",
    "get_context_summary",
    "initialize_context",
    "is_safe_session_id",
]
