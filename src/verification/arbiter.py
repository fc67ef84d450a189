"""
Arbiter

Loop-level signals computed after every round, independent of the
mediator's per-file analysis. At most one signal is returned per round,
checked in priority order:

    CONTEXT_EXPAND: the round pulled in many new files at once
    LOOP_BREAK:     the same issue keeps being raised
    SOFT_CORRECT:   the verification context has grown too large
"""

import logging
from collections import Counter
from typing import Optional

from pydantic import BaseModel, Field

from src.config import Settings, get_settings
from src.models.enums import ArbiterAction
from src.models.session import Session

logger = logging.getLogger(__name__)


class ArbiterSignal(BaseModel):
    """A loop-level correction handed back with the round result."""

    type: ArbiterAction
    reason: str
    action: str
    new_context_files: list[str] = Field(default_factory=list)


def is_circular_argument(session: Session, window: int = 4, repeats: int = 3) -> bool:
    """True when an issue id was raised ``repeats`` times in the last ``window`` rounds."""
    if len(session.rounds) < window:
        return False
    counts = Counter(
        issue_id
        for round_ in session.rounds[-window:]
        for issue_id in round_.issues_raised
    )
    return any(count >= repeats for count in counts.values())


def check_for_intervention(
    session: Session,
    new_files: list[str],
    settings: Optional[Settings] = None,
) -> Optional[ArbiterSignal]:
    settings = settings or get_settings()

    if len(new_files) > settings.context_expand_threshold:
        signal = ArbiterSignal(
            type=ArbiterAction.CONTEXT_EXPAND,
            reason=f"{len(new_files)} new files discovered - significant scope expansion",
            action="Review if all files are necessary for verification",
            new_context_files=list(new_files),
        )
    elif is_circular_argument(session, settings.loop_break_window, settings.loop_break_repeats):
        signal = ArbiterSignal(
            type=ArbiterAction.LOOP_BREAK,
            reason="Same issues being raised/challenged repeatedly",
            action="Force conclusion on disputed issues",
        )
    elif len(session.context) > settings.max_context_files:
        signal = ArbiterSignal(
            type=ArbiterAction.SOFT_CORRECT,
            reason="Verification scope has grown too large",
            action="Focus on core files, defer peripheral issues",
        )
    else:
        return None

    logger.info("Session %s: arbiter %s", session.id, signal.type.value)
    return signal
