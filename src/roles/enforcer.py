"""
Role Enforcement

Validates each round's output against its role's profile, tracks which
role is due next, and scores compliance on a 0-100 scale:

    score = 100 - 20 * errors - 5 * warnings   (clamped to [0, 100])

Non-compliance is always reported as a structured result, never raised.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from src.config import RoleEnforcementConfig, get_role_config
from src.models.enums import Role, ViolationSeverity
from src.models.roles import (
    ExistingIssueSummary,
    PreviousRoundSummary,
    RoleAlternation,
    RoleComplianceResult,
    RoleContext,
    RoleViolation,
    RoleWarning,
)
from src.models.session import Session
from src.roles.definitions import (
    FILE_LINE_RE,
    MESSAGES,
    ROLE_DEFINITIONS,
    VERDICT_RE,
    RoleDefinition,
    find_issue_ids,
)
from src.utils.text import contains_any, truncate_excerpt

logger = logging.getLogger(__name__)

BASE_SCORE = 100
ERROR_PENALTY = 20
WARNING_PENALTY = 5


@dataclass
class RoleState:
    """Compliance history and alternation for one session."""
    session_id: str
    config: RoleEnforcementConfig
    compliance_history: list[RoleComplianceResult] = field(default_factory=list)
    current_expected_role: Role = Role.VERIFIER
    alternation: RoleAlternation = field(default_factory=RoleAlternation)


def calculate_compliance_score(
    violations: list[RoleViolation],
    warnings: list[RoleWarning],
) -> int:
    errors = sum(1 for v in violations if v.severity == ViolationSeverity.ERROR)
    soft = sum(1 for v in violations if v.severity == ViolationSeverity.WARNING) + len(warnings)
    score = BASE_SCORE - errors * ERROR_PENALTY - soft * WARNING_PENALTY
    return max(0, min(BASE_SCORE, score))


def build_role_context(session: Session) -> RoleContext:
    """Summarize the session for the validation checks."""
    challenged_in: dict[int, list[str]] = {}
    for issue in session.issues:
        if issue.challenged_in_round is not None:
            challenged_in.setdefault(issue.challenged_in_round, []).append(issue.id)

    return RoleContext(
        session_id=session.id,
        current_round=session.current_round,
        previous_rounds=[
            PreviousRoundSummary(
                round=r.number,
                role=r.role,
                issues_raised=r.issues_raised,
                issues_challenged=challenged_in.get(r.number, []),
                issues_resolved=r.issues_resolved,
            )
            for r in session.rounds
        ],
        existing_issues=[
            ExistingIssueSummary(
                id=i.id,
                severity=i.severity,
                status=i.status,
                raised_by=i.raised_by,
                challenged_by=Role.CRITIC if i.challenged_in_round is not None else None,
            )
            for i in session.issues
        ],
        target_files=list(session.context),
    )


def check_required_elements(role: Role, output: str) -> tuple[list[RoleViolation], list[RoleWarning]]:
    """Structural elements every output of ``role`` should contain."""
    violations: list[RoleViolation] = []
    warnings: list[RoleWarning] = []

    if role == Role.VERIFIER:
        has_ids = bool(find_issue_ids(output))
        if not has_ids and "no issues" not in output.lower():
            warnings.append(RoleWarning(
                type="MISSING_ISSUE_FORMAT",
                message=MESSAGES["MISSING_ISSUE_FORMAT"],
                suggestion=MESSAGES["MISSING_ISSUE_FORMAT.hint"],
            ))
        if has_ids and not FILE_LINE_RE.search(output):
            violations.append(RoleViolation(
                criterion_id="REQ001",
                severity=ViolationSeverity.WARNING,
                message=MESSAGES["REQ001"],
                fix=MESSAGES["REQ001.fix"],
            ))

    elif role == Role.CRITIC:
        if not VERDICT_RE.search(output.upper()):
            warnings.append(RoleWarning(
                type="MISSING_VERDICT",
                message=MESSAGES["MISSING_VERDICT"],
                suggestion=MESSAGES["MISSING_VERDICT.hint"],
            ))
        if "invalid" in output.lower() and not contains_any(output, ("reasoning", "because")):
            violations.append(RoleViolation(
                criterion_id="REQ002",
                severity=ViolationSeverity.WARNING,
                message=MESSAGES["REQ002"],
                fix=MESSAGES["REQ002.fix"],
            ))

    return violations, warnings


def generate_suggestions(definition: RoleDefinition, violations: list[RoleViolation]) -> list[str]:
    suggestions: list[str] = []
    if violations:
        suggestions.append(MESSAGES["suggest.checklist"].format(role=definition.display_name))
        suggestions.extend(definition.checklist[:3])

    violated = {v.criterion_id for v in violations}
    hints = ("V001", "V003") if definition.role == Role.VERIFIER else ("C001", "C002")
    for criterion_id in hints:
        if criterion_id in violated:
            suggestions.append(MESSAGES[f"suggest.{criterion_id}"])
    return suggestions


class RoleEnforcer:
    """
    Registry of per-session role state.

    Usage:
        enforcer = RoleEnforcer()
        result = enforcer.validate_role_compliance(session.id, Role.VERIFIER, output, session)
        if not result.is_compliant:
            ...
    """

    def __init__(self, config: Optional[RoleEnforcementConfig] = None):
        self.config = config or get_role_config()
        self._states: dict[str, RoleState] = {}

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._states

    def initialize(self, session_id: str, **overrides: Any) -> RoleState:
        """Start role tracking; the Verifier always goes first."""
        config = self.config.model_copy(update=overrides) if overrides else self.config
        state = RoleState(session_id=session_id, config=config)
        self._states[session_id] = state
        return state

    def get_state(self, session_id: str) -> Optional[RoleState]:
        return self._states.get(session_id)

    def delete_state(self, session_id: str) -> bool:
        return self._states.pop(session_id, None) is not None

    # ------------------------------------------------------------------ #
    # Validation
    # ------------------------------------------------------------------ #

    def validate_role_compliance(
        self,
        session_id: str,
        role: Role,
        output: str,
        session: Session,
    ) -> RoleComplianceResult:
        """Validate one round's output and advance the alternation.

        Role state is created on first use.
        """
        state = self._states.get(session_id) or self.initialize(session_id)
        config = state.config
        definition = ROLE_DEFINITIONS[role]

        violations: list[RoleViolation] = []
        warnings: list[RoleWarning] = []

        if config.require_alternation and role != state.alternation.expected_role:
            expected = state.alternation.expected_role.value
            violations.append(RoleViolation(
                criterion_id="ALT001",
                severity=ViolationSeverity.ERROR,
                message=MESSAGES["ALT001"].format(expected=expected, actual=role.value),
                fix=MESSAGES["ALT001.fix"].format(expected=expected),
            ))

        context = build_role_context(session)
        for criterion in definition.criteria:
            result = criterion.check(output, context, config)
            if result.passed:
                continue
            if criterion.severity == ViolationSeverity.ERROR:
                violations.append(RoleViolation(
                    criterion_id=criterion.id,
                    severity=ViolationSeverity.ERROR,
                    message=result.message,
                    evidence="\n".join(result.details) or truncate_excerpt(output),
                ))
            else:
                warnings.append(RoleWarning(
                    type=criterion.id,
                    message=result.message,
                    suggestion=result.details[0] if result.details else MESSAGES["default.suggestion"],
                ))

        required_violations, required_warnings = check_required_elements(role, output)
        violations.extend(required_violations)
        warnings.extend(required_warnings)

        score = calculate_compliance_score(violations, warnings)
        round_number = session.current_round + 1
        has_errors = any(v.severity == ViolationSeverity.ERROR for v in violations)

        result = RoleComplianceResult(
            role=role,
            round=round_number,
            is_compliant=not has_errors and score >= config.min_compliance_score,
            score=score,
            violations=violations,
            warnings=warnings,
            suggestions=generate_suggestions(definition, violations),
        )

        state.compliance_history.append(result)
        state.current_expected_role = role.opposite
        state.alternation = RoleAlternation(
            expected_role=role.opposite,
            next_role=role,
            history=[*state.alternation.history, (role, round_number)],
        )

        if not result.is_compliant:
            logger.info(
                "Session %s round %d: %s non-compliant (score %d, %d violations)",
                session_id, round_number, role.value, score, len(violations),
            )
        return result

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    def get_expected_role(self, session_id: str) -> Role:
        state = self._states.get(session_id)
        return state.current_expected_role if state else Role.VERIFIER

    def get_compliance_history(self, session_id: str) -> list[RoleComplianceResult]:
        state = self._states.get(session_id)
        return list(state.compliance_history) if state else []

    @staticmethod
    def get_role_definition(role: Role) -> RoleDefinition:
        return ROLE_DEFINITIONS[role]

    def sync_alternation(self, session: Session) -> None:
        """Realign role state with ``session.rounds`` after a rollback."""
        state = self._states.get(session.id)
        if state is None:
            return

        cutoff = session.current_round
        state.compliance_history = [r for r in state.compliance_history if r.round <= cutoff]
        history = [(role, n) for role, n in state.alternation.history if n <= cutoff]

        if session.rounds:
            last_role = session.rounds[-1].role
            expected, next_role = last_role.opposite, last_role
        else:
            expected, next_role = Role.VERIFIER, Role.CRITIC

        state.current_expected_role = expected
        state.alternation = RoleAlternation(
            expected_role=expected,
            next_role=next_role,
            history=history,
        )

    def update_config(self, session_id: str, **changes: Any) -> Optional[RoleEnforcementConfig]:
        """Override config fields for one session."""
        state = self._states.get(session_id)
        if state is None:
            return None
        state.config = state.config.model_copy(update=changes)
        return state.config

    def get_role_summary(self, session_id: str) -> Optional[dict]:
        state = self._states.get(session_id)
        if state is None:
            return None

        history = state.compliance_history
        verifier = [r for r in history if r.role == Role.VERIFIER]
        critic = [r for r in history if r.role == Role.CRITIC]

        def _avg(results: list[RoleComplianceResult]) -> str:
            if not results:
                return "0.0"
            return f"{sum(r.score for r in results) / len(results):.1f}"

        compliant = sum(1 for r in history if r.is_compliant)
        return {
            "session_id": session_id,
            "config": state.config.model_dump(),
            "current_expected_role": state.current_expected_role.value,
            "alternation": {
                "expected_role": state.alternation.expected_role.value,
                "next_role": state.alternation.next_role.value,
                "total_alternations": len(state.alternation.history),
            },
            "stats": {
                "total_rounds": len(history),
                "verifier_rounds": len(verifier),
                "critic_rounds": len(critic),
                "avg_verifier_score": _avg(verifier),
                "avg_critic_score": _avg(critic),
                "total_violations": sum(len(r.violations) for r in history),
                "total_warnings": sum(len(r.warnings) for r in history),
                "compliance_rate": f"{compliant / len(history) * 100:.1f}%" if history else "N/A",
            },
            "recent_violations": [
                {"id": v.criterion_id, "message": v.message}
                for r in history for v in r.violations
            ][-5:],
        }
