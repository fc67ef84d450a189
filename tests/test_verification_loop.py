"""
Tests for the Verification Loop

Tests cover:
- Session start (context, graph, round-0 checkpoint)
- Round submission through to convergence
- Forced stop and closed sessions
- Critic challenges and issue filters
- Context expansion and arbiter signals
- Rollback with mediator/role resync
- Session end and report
"""

import textwrap

import pytest
from pydantic import ValidationError

from src.config import MediatorConfig, RoleEnforcementConfig, Settings
from src.models import (
    ArbiterAction,
    FileContext,
    FileLayer,
    InterventionType,
    IssueFilter,
    IssueStatus,
    Role,
    Round,
    Session,
    SessionStatus,
    Severity,
    Verdict,
)
from src.registry import SessionRegistry
from src.verification import (
    SessionClosed,
    VerificationLoop,
    check_for_intervention,
    find_challenged_issue_ids,
    is_circular_argument,
)


A_TS = textwrap.dedent("""\
    import { query } from './b';

    export function handler(req) {
      return query(req.body);
    }
""")

B_TS = textwrap.dedent("""\
    export function query(sql) {
      return sql;
    }
""")

VERIFIER_OUTPUT = textwrap.dedent("""\
    SECURITY review
    SEC-01 (CRITICAL): SQL injection at src/a.ts:4
    Evidence:
    ```ts
    return query(req.body);
    ```
""")

SEC_01 = {
    "id": "SEC-01",
    "category": "SECURITY",
    "severity": "CRITICAL",
    "summary": "SQL injection",
    "location": "src/a.ts:4",
    "description": "Request body passed straight to query",
}

COR_01 = {
    "id": "COR-01",
    "category": "CORRECTNESS",
    "severity": "HIGH",
    "summary": "Missing null check",
    "location": "src/b.ts:2",
}

CRITIC_ACCEPTS = "SEC-01: VALID because the request body reaches the query unescaped.\n"
CLEAN_VERIFIER = "CORRECTNESS review: no issues found."


@pytest.fixture
def project(tmp_path):
    src = tmp_path / "src"
    src.mkdir()
    (src / "a.ts").write_text(A_TS)
    (src / "b.ts").write_text(B_TS)
    lib = tmp_path / "lib"
    lib.mkdir()
    for name in ("extra", "one", "two", "three", "four"):
        (lib / f"{name}.ts").write_text(f"export const {name} = 1;\n")
    return tmp_path


@pytest.fixture
def registry():
    return SessionRegistry(
        Settings(sessions_dir=None),
        MediatorConfig(),
        RoleEnforcementConfig(),
    )


@pytest.fixture
def loop(registry):
    return VerificationLoop(registry)


@pytest.fixture
def session(loop, project):
    return loop.start_session("src", "Find injection bugs", working_dir=project)


def run_to_convergence(loop, session_id):
    first = loop.submit_round(session_id, Role.VERIFIER, VERIFIER_OUTPUT, [SEC_01])
    second = loop.submit_round(session_id, Role.CRITIC, CRITIC_ACCEPTS, issues_resolved=["SEC-01"])
    third = loop.submit_round(session_id, Role.VERIFIER, CLEAN_VERIFIER)
    return first, second, third


# ---------------------------------------------------------------------------
# Start
# ---------------------------------------------------------------------------


class TestStartSession:
    """Test session start."""

    def test_base_context(self, session):
        assert list(session.context) == ["src/a.ts", "src/b.ts"]
        assert session.status == SessionStatus.CREATED
        assert session.requirements == "Find injection bugs"

    def test_graph_built(self, registry, session):
        state = registry.mediator.get_state(session.id)
        assert state is not None
        assert state.coverage.total_files == 2
        assert state.coverage.unverified_critical == ["src/b.ts"]

    def test_roles_initialized(self, registry, session):
        assert registry.roles.get_expected_role(session.id) == Role.VERIFIER

    def test_round_zero_checkpoint(self, session):
        assert [cp.round_number for cp in session.checkpoints] == [0]

    def test_listed(self, loop, session):
        assert loop.list_sessions() == [session.id]


# ---------------------------------------------------------------------------
# Rounds
# ---------------------------------------------------------------------------


class TestSubmitRound:
    """Test round submission."""

    def test_first_verifier_round(self, loop, session):
        result = loop.submit_round(session.id, Role.VERIFIER, VERIFIER_OUTPUT, [SEC_01])
        assert result.round_number == 1
        assert result.issues_raised == 1
        assert result.next_role == "critic"
        assert result.compliance.is_compliant
        assert result.convergence.critical_unresolved == 1
        assert session.status == SessionStatus.VERIFYING

        issue = session.get_issue("SEC-01")
        assert issue.raised_by == Role.VERIFIER
        assert issue.raised_in_round == 1

    def test_round_records_context_summary(self, loop, session):
        loop.submit_round(session.id, Role.VERIFIER, VERIFIER_OUTPUT, [SEC_01])
        round_ = session.rounds[0]
        assert round_.issues_raised == ["SEC-01"]
        assert "- src/a.ts" in round_.input

    def test_mediator_flags_unchecked_import(self, loop, session):
        result = loop.submit_round(session.id, Role.VERIFIER, VERIFIER_OUTPUT, [SEC_01])
        missed = [i for i in result.interventions if i.type == InterventionType.MISSED_DEPENDENCY]
        assert missed[0].affected_files == ["src/b.ts"]
        assert all(i.round == 1 for i in result.interventions)

    def test_runs_to_convergence(self, loop, session):
        first, second, third = run_to_convergence(loop, session.id)

        assert second.issues_resolved == 1
        assert second.next_role == "verifier"
        assert session.get_issue("SEC-01").resolved_in_round == 2

        assert third.convergence.is_converged
        assert third.next_role == "complete"
        assert session.status == SessionStatus.CONVERGED

    def test_converging_after_stable_round(self, loop, session):
        loop.submit_round(session.id, Role.VERIFIER, VERIFIER_OUTPUT, [SEC_01])
        loop.submit_round(session.id, Role.CRITIC, CRITIC_ACCEPTS, issues_resolved=["SEC-01"])
        assert session.status == SessionStatus.CONVERGING

    def test_periodic_checkpoints(self, loop, session):
        run_to_convergence(loop, session.id)
        assert [cp.round_number for cp in session.checkpoints] == [0, 2]

    def test_closed_session_rejects_rounds(self, loop, session):
        run_to_convergence(loop, session.id)
        with pytest.raises(SessionClosed) as exc_info:
            loop.submit_round(session.id, Role.CRITIC, CRITIC_ACCEPTS)
        assert exc_info.value.status == SessionStatus.CONVERGED
        assert session.current_round == 3

    def test_errored_session_rejects_rounds(self, loop, registry, session):
        loop.submit_round(session.id, Role.VERIFIER, VERIFIER_OUTPUT, [SEC_01])
        registry.sessions.update_status(session.id, SessionStatus.ERROR)

        with pytest.raises(SessionClosed) as exc_info:
            loop.submit_round(session.id, Role.CRITIC, CRITIC_ACCEPTS)
        assert exc_info.value.status == SessionStatus.ERROR
        assert session.current_round == 1
        assert len(session.rounds) == 1
        assert session.status == SessionStatus.ERROR

    def test_forced_stop(self, loop, project):
        session = loop.start_session("src", working_dir=project, max_rounds=2)
        loop.submit_round(session.id, Role.VERIFIER, VERIFIER_OUTPUT, [SEC_01])
        result = loop.submit_round(session.id, Role.CRITIC, CRITIC_ACCEPTS)
        assert session.status == SessionStatus.FORCED_STOP
        assert result.next_role == "complete"
        assert not result.convergence.is_converged

    def test_out_of_turn_round_is_recorded(self, loop, session):
        result = loop.submit_round(session.id, Role.CRITIC, "Nothing to review.")
        assert result.round_number == 1
        assert result.compliance.violations[0].criterion_id == "ALT001"
        assert not result.compliance.is_compliant

    def test_invalid_draft_leaves_session_untouched(self, loop, session):
        with pytest.raises(ValidationError):
            loop.submit_round(session.id, Role.VERIFIER, VERIFIER_OUTPUT, [{"id": "SEC-01"}])
        assert session.current_round == 0
        assert session.issues == []

    def test_unknown_resolved_id_ignored(self, loop, session):
        result = loop.submit_round(session.id, Role.VERIFIER, CLEAN_VERIFIER, issues_resolved=["SEC-99"])
        assert result.issues_resolved == 0

    def test_unknown_session(self, loop):
        assert loop.submit_round("missing", Role.VERIFIER, "x") is None


class TestChallenges:
    """Test critic challenges."""

    @pytest.fixture
    def challenged(self, loop, session):
        verifier = VERIFIER_OUTPUT + "COR-01 (HIGH): missing null check at src/b.ts:2\n"
        loop.submit_round(session.id, Role.VERIFIER, verifier, [SEC_01, COR_01])
        critic = CRITIC_ACCEPTS + "COR-01: INVALID because sql is always a string here.\n"
        return loop.submit_round(session.id, Role.CRITIC, critic)

    def test_invalid_verdict_challenges_issue(self, session, challenged):
        assert challenged.issues_challenged == ["COR-01"]
        issue = session.get_issue("COR-01")
        assert issue.status == IssueStatus.CHALLENGED
        assert issue.challenged_in_round == 2
        assert session.get_issue("SEC-01").status == IssueStatus.RAISED

    def test_still_verifying(self, session, challenged):
        assert session.status == SessionStatus.VERIFYING
        assert challenged.next_role == "verifier"

    def test_issue_filters(self, loop, session, challenged):
        assert len(loop.get_issues(session.id)) == 2
        assert [i.id for i in loop.get_issues(session.id, IssueFilter.CRITICAL)] == ["SEC-01"]
        assert len(loop.get_issues(session.id, IssueFilter.UNRESOLVED)) == 2

    def test_issue_filters_unknown_session(self, loop):
        assert loop.get_issues("missing") is None

    def test_verifier_cannot_challenge(self, loop, session):
        loop.submit_round(session.id, Role.VERIFIER, VERIFIER_OUTPUT, [SEC_01])
        result = loop.submit_round(session.id, Role.CRITIC, CRITIC_ACCEPTS)
        assert result.issues_challenged == []
        again = loop.submit_round(session.id, Role.VERIFIER, "SEC-01 INVALID")
        assert again.issues_challenged == []
        assert session.get_issue("SEC-01").status == IssueStatus.RAISED


class TestChallengedIds:
    """Test INVALID line parsing."""

    def test_ids_on_invalid_lines(self):
        output = "SEC-01: INVALID because x\nCOR-02: VALID\nSEC-01 again INVALID"
        assert find_challenged_issue_ids(output) == ["SEC-01"]

    def test_word_boundary(self):
        assert find_challenged_issue_ids("PRF-01 INVALIDATED the cache") == []


# ---------------------------------------------------------------------------
# Context and arbiter
# ---------------------------------------------------------------------------


class TestContextExpansion:
    """Test discovered files and the arbiter."""

    def test_referenced_file_joins_context(self, loop, session):
        output = VERIFIER_OUTPUT + "Reached from lib/extra.ts:1\n"
        result = loop.submit_round(session.id, Role.VERIFIER, output, [SEC_01])
        assert result.context_expanded
        assert result.new_files_discovered == ["lib/extra.ts"]
        assert result.arbiter is None

        entry = session.context["lib/extra.ts"]
        assert entry.layer == FileLayer.DISCOVERED
        assert entry.added_in_round == 1

    def test_many_new_files_signal_expansion(self, loop, session):
        output = CLEAN_VERIFIER + "\nCallers: lib/one.ts:1 lib/two.ts:1 lib/three.ts:1 lib/four.ts:1\n"
        result = loop.submit_round(session.id, Role.VERIFIER, output)
        assert result.arbiter.type == ArbiterAction.CONTEXT_EXPAND
        assert len(result.arbiter.new_context_files) == 4

    def test_get_context(self, loop, session):
        view = loop.get_context(session.id)
        assert [f.path for f in view.files] == ["src/a.ts", "src/b.ts"]
        assert view.expected_role == Role.VERIFIER
        assert view.status == SessionStatus.CREATED
        assert view.issues_summary.total == 0

    def test_get_context_unknown(self, loop):
        assert loop.get_context("missing") is None


class TestArbiter:
    """Test arbiter signals directly."""

    @staticmethod
    def repeating_session(rounds: int) -> Session:
        session = Session(id="s1", target="src")
        role = Role.VERIFIER
        for number in range(1, rounds + 1):
            session.rounds.append(Round(number=number, role=role, issues_raised=["SEC-01"]))
            role = role.opposite
        return session

    def test_circular_argument(self):
        assert is_circular_argument(self.repeating_session(4))
        assert not is_circular_argument(self.repeating_session(3))

    def test_loop_break(self):
        signal = check_for_intervention(self.repeating_session(4), [], Settings(sessions_dir=None))
        assert signal.type == ArbiterAction.LOOP_BREAK

    def test_soft_correct(self):
        session = Session(id="s1", target="src")
        session.context = {p: FileContext(path=p) for p in ("a.ts", "b.ts")}
        signal = check_for_intervention(session, [], Settings(sessions_dir=None, max_context_files=1))
        assert signal.type == ArbiterAction.SOFT_CORRECT

    def test_expansion_takes_priority(self):
        files = ["a.ts", "b.ts", "c.ts", "d.ts"]
        signal = check_for_intervention(self.repeating_session(4), files, Settings(sessions_dir=None))
        assert signal.type == ArbiterAction.CONTEXT_EXPAND

    def test_quiet(self):
        session = Session(id="s1", target="src")
        assert check_for_intervention(session, ["a.ts"], Settings(sessions_dir=None)) is None


# ---------------------------------------------------------------------------
# Rollback
# ---------------------------------------------------------------------------


class TestRollback:
    """Test rollback through the loop."""

    def test_reopens_converged_session(self, loop, registry, session):
        run_to_convergence(loop, session.id)
        restored = loop.rollback(session.id, 2)

        assert restored.current_round == 2
        assert restored.status == SessionStatus.VERIFYING
        assert registry.roles.get_expected_role(session.id) == Role.VERIFIER

        result = loop.submit_round(session.id, Role.VERIFIER, CLEAN_VERIFIER)
        assert result.round_number == 3
        assert not any(v.criterion_id == "ALT001" for v in result.compliance.violations)

    def test_nearest_earlier_checkpoint(self, loop, registry, session):
        loop.submit_round(session.id, Role.VERIFIER, VERIFIER_OUTPUT, [SEC_01])
        restored = loop.rollback(session.id, 1)

        assert restored.current_round == 0
        assert restored.issues == []
        assert restored.status == SessionStatus.CREATED

        state = registry.mediator.get_state(session.id)
        assert state.coverage.verified_files == set()
        assert state.interventions == []
        assert registry.roles.get_expected_role(session.id) == Role.VERIFIER

    def test_manual_checkpoint(self, loop, session):
        loop.submit_round(session.id, Role.VERIFIER, VERIFIER_OUTPUT, [SEC_01])
        checkpoint = loop.checkpoint(session.id)
        assert checkpoint.round_number == 1

        loop.submit_round(session.id, Role.CRITIC, CRITIC_ACCEPTS, issues_resolved=["SEC-01"])
        restored = loop.rollback(session.id, 1)
        assert restored.get_issue("SEC-01").status == IssueStatus.RAISED

    def test_no_checkpoint(self, loop):
        assert loop.rollback("missing", 1) is None


# ---------------------------------------------------------------------------
# End
# ---------------------------------------------------------------------------


class TestEndSession:
    """Test session end."""

    def test_report(self, loop, session):
        loop.submit_round(session.id, Role.VERIFIER, VERIFIER_OUTPUT, [SEC_01])
        report = loop.end_session(session.id, Verdict.FAIL)

        assert report.verdict == Verdict.FAIL
        assert report.total_rounds == 1
        assert report.total_issues == 1
        assert report.resolved_issues == 0
        assert report.unresolved_issues == 1
        assert report.issues_by_severity[Severity.CRITICAL] == 1
        assert report.mediator["coverage"]["total_files"] == 2
        assert report.roles["stats"]["verifier_rounds"] == 1

    def test_open_issues_marked_unresolved(self, loop, session):
        loop.submit_round(session.id, Role.VERIFIER, VERIFIER_OUTPUT, [SEC_01])
        loop.end_session(session.id, Verdict.FAIL)
        assert session.get_issue("SEC-01").status == IssueStatus.UNRESOLVED
        assert session.status == SessionStatus.CONVERGED

    def test_drops_every_store(self, loop, registry, session):
        loop.end_session(session.id, Verdict.PASS)
        assert loop.list_sessions() == []
        assert session.id not in registry.mediator
        assert session.id not in registry.roles

    def test_unknown_session(self, loop):
        assert loop.end_session("missing", Verdict.PASS) is None
