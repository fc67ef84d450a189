"""
Session Store

Owns the Session/Round/Issue/Checkpoint lifecycle:
- Session creation with filesystem-safe ids
- Round append with strictly increasing numbers
- Issue upsert keyed by issue id
- Checkpoints (deep snapshots) and rollback to the nearest one
- Convergence evaluation and issue summaries

Sessions live in memory; when a sessions directory is configured every
mutation is also written through to disk and cache misses fall back to it.
"""

import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from src.config import Settings, get_settings
from src.models.enums import IssueCategory, IssueStatus, Role, SessionStatus, Severity
from src.models.session import (
    CategoryCoverage,
    Checkpoint,
    ConvergenceStatus,
    Issue,
    IssuesSummary,
    Round,
    Session,
    SessionSnapshot,
)
from src.session.persistence import SessionPersistence, is_safe_session_id
from src.session.status import InvalidStatusTransition, can_transition
from src.utils.text import slugify_target

logger = logging.getLogger(__name__)


# Number of checks each category stands for in the review checklist.
CATEGORY_CHECK_TOTALS: dict[IssueCategory, int] = {
    IssueCategory.SECURITY: 8,
    IssueCategory.CORRECTNESS: 6,
    IssueCategory.RELIABILITY: 4,
    IssueCategory.MAINTAINABILITY: 4,
    IssueCategory.PERFORMANCE: 4,
}


def generate_session_id(target: str) -> str:
    """``<date>_<target-slug>_<random6>``"""
    date = datetime.now(timezone.utc).strftime("%Y-%m-%d")
    return f"{date}_{slugify_target(target)}_{uuid4().hex[:6]}"


class SessionStore:
    """In-memory session registry with optional write-through persistence."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        persistence: Optional[SessionPersistence] = None,
    ):
        self.settings = settings or get_settings()
        if persistence is None and self.settings.sessions_dir is not None:
            persistence = SessionPersistence(self.settings.sessions_dir)
        self._persistence = persistence
        self._sessions: dict[str, Session] = {}

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    # ------------------------------------------------------------------ #
    # Session lifecycle
    # ------------------------------------------------------------------ #

    def create_session(
        self,
        target: str,
        requirements: str = "",
        max_rounds: Optional[int] = None,
        working_dir: str = ".",
    ) -> Session:
        session = Session(
            id=generate_session_id(target),
            target=target,
            requirements=requirements,
            working_dir=working_dir,
            max_rounds=max_rounds or self.settings.default_max_rounds,
        )
        self._sessions[session.id] = session
        self._save(session)
        logger.info("Created session %s for %s", session.id, target)
        return session

    def get_session(self, session_id: str) -> Optional[Session]:
        if not is_safe_session_id(session_id):
            return None
        session = self._sessions.get(session_id)
        if session is None and self._persistence is not None:
            session = self._persistence.load(session_id)
            if session is not None:
                self._sessions[session_id] = session
        return session

    def update_status(self, session_id: str, status: SessionStatus) -> Optional[Session]:
        """Move a session to ``status``.

        Raises:
            InvalidStatusTransition: If the lifecycle forbids the move.
        """
        session = self.get_session(session_id)
        if session is None:
            return None
        if not can_transition(session.status, status):
            raise InvalidStatusTransition(session.status, status)
        if session.status != status:
            logger.info("Session %s: %s -> %s", session_id, session.status.value, status.value)
        session.status = status
        self._save(session)
        return session

    def list_sessions(self) -> list[str]:
        ids = set(self._sessions)
        if self._persistence is not None:
            ids.update(self._persistence.list_ids())
        return sorted(ids)

    def delete_session(self, session_id: str, purge: bool = False) -> bool:
        """Drop the in-memory entry; ``purge`` also removes the on-disk copy."""
        removed = self._sessions.pop(session_id, None) is not None
        if purge and self._persistence is not None:
            removed = self._persistence.delete(session_id) or removed
        return removed

    # ------------------------------------------------------------------ #
    # Rounds and issues
    # ------------------------------------------------------------------ #

    def add_round(
        self,
        session_id: str,
        role: Role,
        output: str,
        input_summary: str = "",
        issues_raised: Optional[list[str]] = None,
        issues_resolved: Optional[list[str]] = None,
        context_expanded: bool = False,
        new_files_discovered: Optional[list[str]] = None,
    ) -> Optional[Round]:
        session = self.get_session(session_id)
        if session is None:
            return None

        round_ = Round(
            number=session.current_round + 1,
            role=role,
            input=input_summary,
            output=output,
            issues_raised=list(issues_raised or []),
            issues_resolved=list(issues_resolved or []),
            context_expanded=context_expanded,
            new_files_discovered=list(new_files_discovered or []),
        )
        session.rounds.append(round_)
        session.current_round = round_.number
        if session.status == SessionStatus.CREATED:
            session.status = SessionStatus.VERIFYING
        self._save(session)
        logger.debug("Session %s: round %d (%s)", session_id, round_.number, role.value)
        return round_

    def upsert_issue(self, session_id: str, issue: Issue) -> Optional[Issue]:
        session = self.get_session(session_id)
        if session is None:
            return None
        for idx, existing in enumerate(session.issues):
            if existing.id == issue.id:
                session.issues[idx] = issue
                break
        else:
            session.issues.append(issue)
        self._save(session)
        return issue

    # ------------------------------------------------------------------ #
    # Checkpoints
    # ------------------------------------------------------------------ #

    def create_checkpoint(self, session_id: str) -> Optional[Checkpoint]:
        session = self.get_session(session_id)
        if session is None:
            return None

        snapshot = SessionSnapshot(
            status=session.status,
            current_round=session.current_round,
            context=session.context,
            rounds=session.rounds,
            issues=session.issues,
        ).model_copy(deep=True)
        checkpoint = Checkpoint(round_number=session.current_round, snapshot=snapshot)

        # One checkpoint per round number
        session.checkpoints = [
            cp for cp in session.checkpoints if cp.round_number != checkpoint.round_number
        ]
        session.checkpoints.append(checkpoint)
        session.checkpoints.sort(key=lambda cp: cp.round_number)
        self._save(session)
        return checkpoint

    def rollback_to_checkpoint(self, session_id: str, round_number: int) -> Optional[Session]:
        """Restore the nearest checkpoint at or before ``round_number``.

        Everything introduced after that checkpoint is discarded. Returns
        None when the session or a suitable checkpoint does not exist.
        """
        session = self.get_session(session_id)
        if session is None:
            return None

        candidates = [cp for cp in session.checkpoints if cp.round_number <= round_number]
        if not candidates:
            return None
        checkpoint = max(candidates, key=lambda cp: cp.round_number)

        snapshot = checkpoint.snapshot.model_copy(deep=True)
        session.current_round = snapshot.current_round
        session.context = snapshot.context
        session.rounds = snapshot.rounds
        session.issues = snapshot.issues
        session.status = (
            SessionStatus.VERIFYING if snapshot.current_round > 0 else snapshot.status
        )
        session.checkpoints = [
            cp for cp in session.checkpoints if cp.round_number <= checkpoint.round_number
        ]
        self._save(session)
        logger.info(
            "Session %s rolled back to round %d (requested %d)",
            session_id, checkpoint.round_number, round_number,
        )
        return session

    # ------------------------------------------------------------------ #
    # Evaluation
    # ------------------------------------------------------------------ #

    def check_convergence(self, session: Session) -> ConvergenceStatus:
        """Decide whether the adversarial loop may stop.

        Converged iff no unresolved CRITICAL issue remains, the trailing
        rounds produced no new issues for long enough, and enough rounds
        have happened overall.
        """
        unresolved = [i for i in session.issues if i.is_open]
        critical_unresolved = sum(1 for i in unresolved if i.severity == Severity.CRITICAL)

        stable_rounds = 0
        for round_ in reversed(session.rounds):
            if round_.issues_raised:
                break
            stable_rounds += 1

        coverage = {
            category: CategoryCoverage(
                checked=sum(1 for i in session.issues if i.category == category),
                total=total,
            )
            for category, total in CATEGORY_CHECK_TOTALS.items()
        }

        is_converged = (
            critical_unresolved == 0
            and stable_rounds >= self.settings.convergence_stable_rounds
            and session.current_round >= self.settings.convergence_min_rounds
        )

        if is_converged:
            reason = (
                f"No critical issues, {self.settings.convergence_stable_rounds}+ "
                "rounds without new issues"
            )
        elif critical_unresolved > 0:
            reason = f"{critical_unresolved} critical issues unresolved"
        else:
            reason = "Verification in progress"

        return ConvergenceStatus(
            is_converged=is_converged,
            reason=reason,
            category_coverage=coverage,
            unresolved_issues=len(unresolved),
            critical_unresolved=critical_unresolved,
            rounds_without_new_issues=stable_rounds,
        )

    @staticmethod
    def get_issues_summary(session: Session) -> IssuesSummary:
        by_severity = {severity: 0 for severity in Severity}
        by_status = {status: 0 for status in IssueStatus}
        for issue in session.issues:
            by_severity[issue.severity] += 1
            by_status[issue.status] += 1
        return IssuesSummary(
            total=len(session.issues),
            by_severity=by_severity,
            by_status=by_status,
        )

    # ------------------------------------------------------------------ #

    def _save(self, session: Session) -> None:
        session.touch()
        if self._persistence is not None:
            try:
                self._persistence.save(session)
            except OSError as e:
                logger.warning("Failed to persist session %s: %s", session.id, e)
