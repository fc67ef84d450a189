"""
Tests for Role Enforcement

Tests cover:
- Verifier criteria (V001-V005) and required elements
- Critic criteria (C001-C005) and required elements
- Role alternation
- Compliance scoring
- Summaries, config overrides and rollback resync
"""

import textwrap

import pytest

from src.config import RoleEnforcementConfig
from src.models import (
    Issue,
    IssueCategory,
    IssueStatus,
    Role,
    RoleViolation,
    Round,
    Session,
    Severity,
    ViolationSeverity,
)
from src.roles import RoleEnforcer, calculate_compliance_score


GOOD_VERIFIER = textwrap.dedent("""\
    SECURITY review
    SEC-01 (CRITICAL): SQL injection at src/db.ts:42
    Evidence:
    ```ts
    db.query(`SELECT * FROM users WHERE id = ${id}`)
    ```
""")

GOOD_CRITIC = textwrap.dedent("""\
    SEC-01: VALID because the query concatenates user input.
    SEC-02: INVALID because the value is parameterized upstream.
""")


def make_issue(issue_id: str, status: IssueStatus = IssueStatus.RAISED) -> Issue:
    return Issue(
        id=issue_id,
        category=IssueCategory.SECURITY,
        severity=Severity.HIGH,
        summary=f"Issue {issue_id}",
        location="src/db.ts:42",
        raised_by=Role.VERIFIER,
        raised_in_round=1,
        status=status,
    )


def record(session: Session, role: Role, issues_raised=None) -> None:
    """Append a round the way the store would."""
    session.current_round += 1
    session.rounds.append(Round(
        number=session.current_round,
        role=role,
        issues_raised=issues_raised or [],
    ))


def violation_ids(result) -> list[str]:
    return [v.criterion_id for v in result.violations]


def warning_types(result) -> list[str]:
    return [w.type for w in result.warnings]


@pytest.fixture
def enforcer():
    return RoleEnforcer(RoleEnforcementConfig())


@pytest.fixture
def session():
    return Session(id="s1", target="src")


@pytest.fixture
def reviewed_session(session):
    """Round 1 was a verifier round raising SEC-01 and SEC-02."""
    session.issues = [make_issue("SEC-01"), make_issue("SEC-02")]
    record(session, Role.VERIFIER, ["SEC-01", "SEC-02"])
    return session


@pytest.fixture
def critic_enforcer(enforcer):
    enforcer.initialize("s1", require_alternation=False)
    return enforcer


# ---------------------------------------------------------------------------
# Verifier
# ---------------------------------------------------------------------------


class TestVerifierCompliance:
    """Test Verifier output validation."""

    def test_good_output(self, enforcer, session):
        result = enforcer.validate_role_compliance("s1", Role.VERIFIER, GOOD_VERIFIER, session)
        assert result.is_compliant
        assert result.score == 100
        assert result.violations == []
        assert result.warnings == []
        assert result.round == 1

    def test_missing_evidence_and_location(self, enforcer, session):
        output = "SECURITY: SEC-01 (HIGH) token leaked in logs"
        result = enforcer.validate_role_compliance("s1", Role.VERIFIER, output, session)
        assert violation_ids(result) == ["V001", "REQ001"]
        assert result.score == 75
        assert not result.is_compliant

    def test_evidence_violation_is_error(self, enforcer, session):
        output = "SECURITY: SEC-01 (HIGH) token leaked in logs"
        result = enforcer.validate_role_compliance("s1", Role.VERIFIER, output, session)
        v001 = result.violations[0]
        assert v001.severity == ViolationSeverity.ERROR
        assert "SEC-01" in v001.evidence

    def test_reraising_challenged_issue(self, enforcer, session):
        session.issues = [make_issue("SEC-01", IssueStatus.CHALLENGED)]
        result = enforcer.validate_role_compliance("s1", Role.VERIFIER, GOOD_VERIFIER, session)
        assert violation_ids(result) == ["V003"]
        assert result.score == 80

    def test_refutation_language_is_warning(self, enforcer, session):
        output = GOOD_VERIFIER + "I disagree with the earlier assessment.\n"
        result = enforcer.validate_role_compliance("s1", Role.VERIFIER, output, session)
        assert warning_types(result) == ["V004"]
        assert result.score == 95
        assert result.is_compliant

    def test_no_issues_needs_no_id_format(self, enforcer, session):
        output = "CORRECTNESS review: no issues found."
        result = enforcer.validate_role_compliance("s1", Role.VERIFIER, output, session)
        assert "MISSING_ISSUE_FORMAT" not in warning_types(result)
        assert result.score == 100

    def test_missing_category_and_format(self, enforcer, session):
        result = enforcer.validate_role_compliance("s1", Role.VERIFIER, "Looks fine to me.", session)
        assert warning_types(result) == ["V005", "MISSING_ISSUE_FORMAT"]
        assert result.score == 90

    def test_suggestions(self, enforcer, session):
        output = "SECURITY: SEC-01 (HIGH) token leaked in logs"
        result = enforcer.validate_role_compliance("s1", Role.VERIFIER, output, session)
        assert result.suggestions[0] == "Check the Verifier role checklist:"
        assert "Include evidence in code blocks for all issues" in result.suggestions


# ---------------------------------------------------------------------------
# Critic
# ---------------------------------------------------------------------------


class TestCriticCompliance:
    """Test Critic output validation."""

    def test_good_output(self, critic_enforcer, reviewed_session):
        result = critic_enforcer.validate_role_compliance("s1", Role.CRITIC, GOOD_CRITIC, reviewed_session)
        assert result.is_compliant
        assert result.score == 100
        assert result.round == 2

    def test_unreviewed_issue(self, critic_enforcer, reviewed_session):
        output = "SEC-01: VALID because the query concatenates input."
        result = critic_enforcer.validate_role_compliance("s1", Role.CRITIC, output, reviewed_session)
        assert violation_ids(result) == ["C001"]
        assert "SEC-02: review required" in result.violations[0].evidence
        assert not result.is_compliant

    def test_new_issue(self, critic_enforcer, reviewed_session):
        output = (
            "SEC-01: VALID because a.\n"
            "SEC-02: PARTIAL because b.\n"
            "Also found SEC-03 in the same file.\n"
        )
        result = critic_enforcer.validate_role_compliance("s1", Role.CRITIC, output, reviewed_session)
        assert violation_ids(result) == ["C002"]
        assert "Newly mentioned ids: SEC-03" in result.violations[0].evidence

    def test_unreasoned_refutations(self, critic_enforcer, reviewed_session):
        output = "SEC-01: INVALID.\nSEC-02: INVALID.\n"
        result = critic_enforcer.validate_role_compliance("s1", Role.CRITIC, output, reviewed_session)
        assert warning_types(result) == ["C003", "C004"]
        assert violation_ids(result) == ["REQ002"]
        assert result.score == 85

    def test_blind_agreement(self, critic_enforcer, reviewed_session):
        output = "SEC-01: VALID because a.\nSEC-02: VALID because b.\n"
        result = critic_enforcer.validate_role_compliance("s1", Role.CRITIC, output, reviewed_session)
        assert warning_types(result) == ["C004"]
        assert result.warnings[0].message == "Almost every issue was accepted without scrutiny"

    def test_missing_verdict(self, critic_enforcer, reviewed_session):
        output = "SEC-01 and SEC-02 look plausible."
        result = critic_enforcer.validate_role_compliance("s1", Role.CRITIC, output, reviewed_session)
        assert "MISSING_VERDICT" in warning_types(result)

    def test_suggestions(self, critic_enforcer, reviewed_session):
        output = "SEC-01: VALID because a."
        result = critic_enforcer.validate_role_compliance("s1", Role.CRITIC, output, reviewed_session)
        assert "Give a verdict for every issue the Verifier raised" in result.suggestions


# ---------------------------------------------------------------------------
# Alternation
# ---------------------------------------------------------------------------


class TestAlternation:
    """Test role alternation."""

    def test_verifier_goes_first(self, enforcer):
        assert enforcer.get_expected_role("s1") == Role.VERIFIER

    def test_out_of_turn(self, enforcer, session):
        result = enforcer.validate_role_compliance("s1", Role.CRITIC, GOOD_CRITIC, session)
        assert violation_ids(result)[0] == "ALT001"
        assert result.violations[0].fix == "Expected role: verifier"
        assert not result.is_compliant

    def test_flips_after_each_round(self, enforcer, session):
        enforcer.validate_role_compliance("s1", Role.VERIFIER, GOOD_VERIFIER, session)
        assert enforcer.get_expected_role("s1") == Role.CRITIC

        state = enforcer.get_state("s1")
        assert state.alternation.next_role == Role.VERIFIER
        assert state.alternation.history == [(Role.VERIFIER, 1)]

    def test_sync_after_rollback(self, enforcer, session):
        enforcer.validate_role_compliance("s1", Role.VERIFIER, GOOD_VERIFIER, session)
        record(session, Role.VERIFIER, ["SEC-01"])
        enforcer.validate_role_compliance("s1", Role.CRITIC, "SEC-01: VALID because a.", session)
        record(session, Role.CRITIC)
        assert enforcer.get_expected_role("s1") == Role.VERIFIER

        session.rounds = session.rounds[:1]
        session.current_round = 1
        enforcer.sync_alternation(session)

        state = enforcer.get_state("s1")
        assert enforcer.get_expected_role("s1") == Role.CRITIC
        assert state.alternation.history == [(Role.VERIFIER, 1)]
        assert len(enforcer.get_compliance_history("s1")) == 1

    def test_sync_to_empty_session(self, enforcer, session):
        enforcer.validate_role_compliance("s1", Role.VERIFIER, GOOD_VERIFIER, session)
        enforcer.sync_alternation(session)
        assert enforcer.get_expected_role("s1") == Role.VERIFIER
        assert enforcer.get_compliance_history("s1") == []


# ---------------------------------------------------------------------------
# Scoring, config and summary
# ---------------------------------------------------------------------------


class TestScore:
    """Test the compliance score formula."""

    def test_penalties(self):
        violations = [
            RoleViolation(criterion_id="V001", severity=ViolationSeverity.ERROR, message="x"),
            RoleViolation(criterion_id="REQ001", severity=ViolationSeverity.WARNING, message="y"),
        ]
        assert calculate_compliance_score(violations, []) == 75

    def test_clamped_at_zero(self):
        violations = [
            RoleViolation(criterion_id=f"E{i}", severity=ViolationSeverity.ERROR, message="x")
            for i in range(6)
        ]
        assert calculate_compliance_score(violations, []) == 0


class TestConfigAndSummary:
    """Test per-session config and the role summary."""

    def test_initialize_overrides(self, enforcer):
        state = enforcer.initialize("s1", min_compliance_score=90)
        assert state.config.min_compliance_score == 90
        assert enforcer.config.min_compliance_score == 60

    def test_update_config(self, enforcer):
        enforcer.initialize("s1")
        updated = enforcer.update_config("s1", require_alternation=False)
        assert updated.require_alternation is False
        assert enforcer.update_config("missing", require_alternation=False) is None

    def test_min_score_gates_compliance(self, enforcer, session):
        enforcer.initialize("s1", min_compliance_score=100)
        output = GOOD_VERIFIER + "I disagree with the earlier assessment.\n"
        result = enforcer.validate_role_compliance("s1", Role.VERIFIER, output, session)
        assert result.score == 95
        assert not result.is_compliant

    def test_summary(self, enforcer, session):
        enforcer.validate_role_compliance("s1", Role.VERIFIER, GOOD_VERIFIER, session)
        summary = enforcer.get_role_summary("s1")
        assert summary["current_expected_role"] == "critic"
        assert summary["alternation"]["total_alternations"] == 1
        assert summary["stats"]["verifier_rounds"] == 1
        assert summary["stats"]["avg_verifier_score"] == "100.0"
        assert summary["stats"]["compliance_rate"] == "100.0%"

    def test_summary_unknown(self, enforcer):
        assert enforcer.get_role_summary("missing") is None

    def test_delete_state(self, enforcer):
        enforcer.initialize("s1")
        assert enforcer.delete_state("s1")
        assert "s1" not in enforcer
