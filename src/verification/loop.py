"""
Verification Loop

Drives the adversarial Verifier/Critic review one submitted round at a
time:

    expand context → mediate → check role compliance → record issues
    → append round → arbiter → checkpoint → convergence → next role

The loop owns no state of its own. Everything lives in the injected
``SessionRegistry`` so that ``end_session`` can tear a session down from
every store at once. Callers serialize same-session calls (see
``SessionRegistry.lock``).
"""

import logging
import re
from pathlib import Path
from typing import Any, Iterable, Optional, Union

from pydantic import BaseModel, Field

from src.config import Settings
from src.models.enums import IssueFilter, IssueStatus, Role, SessionStatus, Severity, Verdict
from src.models.mediator import Intervention
from src.models.roles import RoleComplianceResult
from src.models.session import (
    Checkpoint,
    ConvergenceStatus,
    FileContext,
    Issue,
    IssueDraft,
    IssuesSummary,
    Session,
)
from src.registry import SessionRegistry
from src.roles.definitions import find_issue_ids
from src.session.context import (
    expand_context,
    find_new_file_references,
    get_context_summary,
    initialize_context,
)
from src.verification.arbiter import ArbiterSignal, check_for_intervention

logger = logging.getLogger(__name__)

NEXT_ROLE_COMPLETE = "complete"
CLOSED_STATUSES = frozenset({SessionStatus.CONVERGED, SessionStatus.FORCED_STOP})
# Statuses that accept no further rounds until the session is rolled back
REJECTING_STATUSES = CLOSED_STATUSES | {SessionStatus.ERROR}

_INVALID_VERDICT_RE = re.compile(r"\bINVALID\b")


class SessionClosed(Exception):
    """Raised when a round is submitted to a converged, stopped or failed session."""

    def __init__(self, session_id: str, status: SessionStatus):
        self.session_id = session_id
        self.status = status
        super().__init__(f"Session {session_id} is {status.value}; roll back to continue")


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Results
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class RoundSubmission(BaseModel):
    """Everything the caller learns from one submitted round."""

    round_number: int
    role: Role
    issues_raised: int = 0
    issues_resolved: int = 0
    issues_challenged: list[str] = Field(default_factory=list)
    context_expanded: bool = False
    new_files_discovered: list[str] = Field(default_factory=list)
    convergence: ConvergenceStatus
    interventions: list[Intervention] = Field(default_factory=list)
    compliance: RoleComplianceResult
    arbiter: Optional[ArbiterSignal] = None
    next_role: str = Field(..., description="verifier, critic or complete")


class ContextView(BaseModel):
    """Current verification context of a session."""

    session_id: str
    target: str
    requirements: str
    files: list[FileContext]
    current_round: int
    status: SessionStatus
    expected_role: Role
    issues_summary: IssuesSummary


class SessionReport(BaseModel):
    """Final summary produced when a session is ended."""

    session_id: str
    verdict: Verdict
    total_rounds: int
    total_issues: int
    resolved_issues: int
    unresolved_issues: int
    issues_by_severity: dict[Severity, int]
    mediator: Optional[dict] = None
    roles: Optional[dict] = None


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Helpers
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def find_challenged_issue_ids(output: str) -> list[str]:
    """Issue ids sharing a line with an INVALID verdict."""
    found: dict[str, None] = {}
    for line in output.splitlines():
        if _INVALID_VERDICT_RE.search(line):
            for issue_id in find_issue_ids(line):
                found.setdefault(issue_id, None)
    return list(found)


def filter_issues(issues: Iterable[Issue], status: IssueFilter = IssueFilter.ALL) -> list[Issue]:
    if status == IssueFilter.UNRESOLVED:
        return [i for i in issues if i.is_open]
    if status == IssueFilter.CRITICAL:
        return [i for i in issues if i.severity == Severity.CRITICAL]
    return list(issues)


def _status_after_round(session: Session, convergence: ConvergenceStatus) -> SessionStatus:
    if convergence.is_converged:
        return SessionStatus.CONVERGED
    if session.current_round >= session.max_rounds:
        return SessionStatus.FORCED_STOP
    if convergence.critical_unresolved == 0 and convergence.rounds_without_new_issues > 0:
        return SessionStatus.CONVERGING
    return SessionStatus.VERIFYING


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Loop
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class VerificationLoop:
    """
    Session-level operations of the Verifier/Critic review.

    Usage:
        loop = VerificationLoop()
        session = loop.start_session("src/auth", working_dir="/repo")
        result = loop.submit_round(session.id, Role.VERIFIER, output, issues)
        while result.next_role != "complete":
            ...
        report = loop.end_session(session.id, Verdict.PASS)
    """

    def __init__(self, registry: Optional[SessionRegistry] = None):
        self.registry = registry or SessionRegistry()

    @property
    def settings(self) -> Settings:
        return self.registry.settings

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def start_session(
        self,
        target: str,
        requirements: str = "",
        working_dir: Union[str, Path] = ".",
        max_rounds: Optional[int] = None,
    ) -> Session:
        """Create a session, collect its base context and build the graph.

        A round-0 checkpoint is taken so the session can always be rolled
        back to its starting point.

        Raises:
            SessionLimitExceeded: If the registry is at capacity.
        """
        session = self.registry.create_session(
            target, requirements, max_rounds, working_dir=str(working_dir),
        )
        files = initialize_context(session, working_dir)
        self.registry.mediator.initialize(session.id, files, working_dir)
        self.registry.roles.initialize(session.id)
        self.registry.sessions.create_checkpoint(session.id)

        logger.info("Started session %s with %d files", session.id, len(files))
        return session

    def end_session(self, session_id: str, verdict: Verdict) -> Optional[SessionReport]:
        """Close the session with a verdict and drop it from every store.

        Issues still RAISED are marked UNRESOLVED. The on-disk copy, if
        any, is kept.
        """
        store = self.registry.sessions
        session = store.get_session(session_id)
        if session is None:
            return None

        for issue in session.issues:
            if issue.status == IssueStatus.RAISED:
                issue.status = IssueStatus.UNRESOLVED
        if session.status != SessionStatus.ERROR:
            store.update_status(session_id, SessionStatus.CONVERGED)

        summary = store.get_issues_summary(session)
        resolved = summary.by_status[IssueStatus.RESOLVED]
        report = SessionReport(
            session_id=session_id,
            verdict=verdict,
            total_rounds=session.current_round,
            total_issues=summary.total,
            resolved_issues=resolved,
            unresolved_issues=summary.total - resolved,
            issues_by_severity=summary.by_severity,
            mediator=self.registry.mediator.get_mediator_summary(session_id),
            roles=self.registry.roles.get_role_summary(session_id),
        )

        self.registry.destroy(session_id)
        logger.info("Ended session %s with verdict %s", session_id, verdict.value)
        return report

    # ------------------------------------------------------------------ #
    # Rounds
    # ------------------------------------------------------------------ #

    def submit_round(
        self,
        session_id: str,
        role: Role,
        output: str,
        issues_raised: Optional[Iterable[Union[IssueDraft, dict[str, Any]]]] = None,
        issues_resolved: Optional[Iterable[str]] = None,
    ) -> Optional[RoundSubmission]:
        """Record one Verifier or Critic round and decide what comes next.

        Args:
            session_id: Session to submit to.
            role: Role that produced ``output``.
            output: Free-text round output.
            issues_raised: New issues, as drafts or plain dicts.
            issues_resolved: Ids of tracked issues this round resolves.

        Returns:
            The round result, or None for an unknown session.

        Raises:
            SessionClosed: If the session converged, was stopped or is in error.
            pydantic.ValidationError: If an issue draft is malformed.
        """
        store = self.registry.sessions
        session = store.get_session(session_id)
        if session is None:
            return None
        if session.status in REJECTING_STATUSES:
            raise SessionClosed(session_id, session.status)

        round_number = session.current_round + 1
        drafts = [IssueDraft.model_validate(d) for d in issues_raised or []]

        new_files = find_new_file_references(output, session)
        added = (
            expand_context(session, new_files, round_number, session.working_dir)
            if new_files else []
        )

        new_issues = [
            Issue(**draft.model_dump(), raised_by=role, raised_in_round=round_number)
            for draft in drafts
        ]
        interventions = self.registry.mediator.analyze_round_and_intervene(
            session, output, role, new_issues, round_number,
        )
        # Compliance sees the issues as they stood before this round
        compliance = self.registry.roles.validate_role_compliance(
            session_id, role, output, session,
        )

        for issue in new_issues:
            store.upsert_issue(session_id, issue)
        resolved = self._resolve_issues(session, issues_resolved or [], round_number)
        challenged = (
            self._challenge_issues(session, output, round_number)
            if role == Role.CRITIC else []
        )

        store.add_round(
            session_id,
            role,
            output,
            input_summary=get_context_summary(session),
            issues_raised=[i.id for i in new_issues],
            issues_resolved=resolved,
            context_expanded=bool(added),
            new_files_discovered=new_files,
        )

        arbiter = check_for_intervention(session, new_files, self.settings)

        if session.current_round % self.settings.checkpoint_interval == 0:
            store.create_checkpoint(session_id)

        convergence = store.check_convergence(session)
        status = _status_after_round(session, convergence)
        store.update_status(session_id, status)

        next_role = NEXT_ROLE_COMPLETE if status in CLOSED_STATUSES else role.opposite.value
        return RoundSubmission(
            round_number=session.current_round,
            role=role,
            issues_raised=len(new_issues),
            issues_resolved=len(resolved),
            issues_challenged=challenged,
            context_expanded=bool(added),
            new_files_discovered=new_files,
            convergence=convergence,
            interventions=interventions,
            compliance=compliance,
            arbiter=arbiter,
            next_role=next_role,
        )

    def _resolve_issues(self, session: Session, issue_ids: Iterable[str], round_number: int) -> list[str]:
        resolved: list[str] = []
        for issue_id in issue_ids:
            issue = session.get_issue(issue_id)
            if issue is None:
                logger.debug("Session %s: ignoring unknown resolved id %s", session.id, issue_id)
                continue
            issue.status = IssueStatus.RESOLVED
            issue.resolved_in_round = round_number
            self.registry.sessions.upsert_issue(session.id, issue)
            resolved.append(issue_id)
        return resolved

    def _challenge_issues(self, session: Session, output: str, round_number: int) -> list[str]:
        challenged: list[str] = []
        for issue_id in find_challenged_issue_ids(output):
            issue = session.get_issue(issue_id)
            if issue is None or issue.status != IssueStatus.RAISED:
                continue
            issue.status = IssueStatus.CHALLENGED
            issue.challenged_in_round = round_number
            self.registry.sessions.upsert_issue(session.id, issue)
            challenged.append(issue_id)
        return challenged

    # ------------------------------------------------------------------ #
    # Checkpoints
    # ------------------------------------------------------------------ #

    def checkpoint(self, session_id: str) -> Optional[Checkpoint]:
        return self.registry.sessions.create_checkpoint(session_id)

    def rollback(self, session_id: str, to_round: int) -> Optional[Session]:
        """Restore the nearest checkpoint at or before ``to_round``.

        Mediator coverage and role alternation are realigned with the
        restored rounds. Returns None when no such checkpoint exists.
        """
        session = self.registry.sessions.rollback_to_checkpoint(session_id, to_round)
        if session is None:
            return None
        self.registry.mediator.rebuild_coverage(session)
        self.registry.roles.sync_alternation(session)
        return session

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    def get_context(self, session_id: str) -> Optional[ContextView]:
        session = self.registry.sessions.get_session(session_id)
        if session is None:
            return None
        return ContextView(
            session_id=session.id,
            target=session.target,
            requirements=session.requirements,
            files=list(session.context.values()),
            current_round=session.current_round,
            status=session.status,
            expected_role=self.registry.roles.get_expected_role(session_id),
            issues_summary=self.registry.sessions.get_issues_summary(session),
        )

    def get_issues(
        self,
        session_id: str,
        status: IssueFilter = IssueFilter.ALL,
    ) -> Optional[list[Issue]]:
        session = self.registry.sessions.get_session(session_id)
        if session is None:
            return None
        return filter_issues(session.issues, status)

    def list_sessions(self) -> list[str]:
        return self.registry.sessions.list_sessions()
