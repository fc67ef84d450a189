"""
Mediator

Coverage tracking, advisory interventions and ripple-effect queries on
top of the session's dependency graph.
"""

from src.mediator.coverage import extract_mentioned_files, match_known_file
from src.mediator.ripple import analyze_ripple_effect
from src.mediator.service import MediatorService
from src.mediator.state import MediatorState

__all__ = [
    "MediatorService",
    "MediatorState",
    "analyze_ripple_effect",
    "extract_mentioned_files",
    "match_known_file",
]
