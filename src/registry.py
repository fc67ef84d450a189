"""
Session Registry

Single owner of the three per-session stores (sessions, mediator state,
role state). Callers receive the registry by injection; ``destroy()``
removes a session from all three together.

The core does not lock. Callers that may touch the same session from
several threads serialize through ``lock(session_id)``.
"""

import logging
import threading
from typing import Optional

from src.config import (
    MediatorConfig,
    RoleEnforcementConfig,
    Settings,
    get_settings,
)
from src.mediator.service import MediatorService
from src.models.session import Session
from src.roles.enforcer import RoleEnforcer
from src.session.store import SessionStore

logger = logging.getLogger(__name__)


class SessionLimitExceeded(Exception):
    """Raised when creating a session would exceed ``max_sessions``."""

    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(f"Session limit reached: {limit} active sessions")


class SessionRegistry:
    """Sessions plus their mediator and role state, keyed by session id."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        mediator_config: Optional[MediatorConfig] = None,
        role_config: Optional[RoleEnforcementConfig] = None,
    ):
        self.settings = settings or get_settings()
        self.sessions = SessionStore(self.settings)
        self.mediator = MediatorService(mediator_config)
        self.roles = RoleEnforcer(role_config)
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def __len__(self) -> int:
        return len(self.sessions)

    def create_session(
        self,
        target: str,
        requirements: str = "",
        max_rounds: Optional[int] = None,
        working_dir: str = ".",
    ) -> Session:
        """Create a session, enforcing the configured capacity.

        Raises:
            SessionLimitExceeded: If ``max_sessions`` sessions are active.
        """
        limit = self.settings.max_sessions
        if limit is not None and len(self.sessions) >= limit:
            raise SessionLimitExceeded(limit)
        return self.sessions.create_session(target, requirements, max_rounds, working_dir)

    def lock(self, session_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(session_id, threading.Lock())

    def destroy(self, session_id: str, purge: bool = False) -> bool:
        """Drop every piece of state held for ``session_id``.

        Returns True if any store held the session.
        """
        removed = [
            self.sessions.delete_session(session_id, purge=purge),
            self.mediator.delete_state(session_id),
            self.roles.delete_state(session_id),
        ]
        with self._locks_guard:
            self._locks.pop(session_id, None)
        if any(removed):
            logger.info("Destroyed session %s", session_id)
        return any(removed)
