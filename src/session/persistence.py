"""
Session Persistence

Optional JSON storage of sessions under ``<sessions_dir>/<id>/session.json``.
Sessions are serialized with pydantic; a missing file is an expected
cache miss, anything else is logged and reported as absent.
"""

import logging
import re
import shutil
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from src.models.session import Session

logger = logging.getLogger(__name__)

SESSION_FILE = "session.json"
MAX_SESSION_ID_LENGTH = 100
_SAFE_ID_RE = re.compile(r"^[a-zA-Z0-9_-]+$")


def is_safe_session_id(session_id: str) -> bool:
    """Session ids become directory names, so only a narrow alphabet is accepted."""
    return (
        bool(session_id)
        and len(session_id) <= MAX_SESSION_ID_LENGTH
        and ".." not in session_id
        and _SAFE_ID_RE.match(session_id) is not None
    )


class SessionPersistence:
    """Reads and writes session JSON files below a base directory."""

    def __init__(self, base_dir: Path):
        self.base_dir = Path(base_dir)

    def _session_file(self, session_id: str) -> Path:
        return self.base_dir / session_id / SESSION_FILE

    def save(self, session: Session) -> None:
        path = self._session_file(session.id)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(session.model_dump_json(indent=2), encoding="utf-8")

    def load(self, session_id: str) -> Optional[Session]:
        if not is_safe_session_id(session_id):
            return None
        path = self._session_file(session_id)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning("Failed to read session %s: %s", session_id, e)
            return None

        try:
            return Session.model_validate_json(raw)
        except ValidationError as e:
            logger.warning("Invalid session file for %s: %d errors", session_id, e.error_count())
            return None

    def list_ids(self) -> list[str]:
        if not self.base_dir.is_dir():
            return []
        return sorted(
            entry.name
            for entry in self.base_dir.iterdir()
            if entry.is_dir() and (entry / SESSION_FILE).is_file()
        )

    def delete(self, session_id: str) -> bool:
        if not is_safe_session_id(session_id):
            return False
        session_dir = self.base_dir / session_id
        if not session_dir.is_dir():
            return False
        shutil.rmtree(session_dir)
        return True
