"""
Role Definitions

Declarative profiles for the two reviewing roles:

    Verifier: finds issues and backs each one with evidence
    Critic:   reviews the Verifier's issues and challenges weak ones

Each profile carries an ordered list of validation criteria. A criterion's
check receives the round output, the role context and the enforcement
config, and returns a :class:`CheckResult`. All user-facing text lives in
``MESSAGES`` so wording can change without touching the checks.
"""

import re
from dataclasses import dataclass, field
from typing import Callable

from src.config import RoleEnforcementConfig
from src.models.enums import IssueCategory, IssueStatus, Role, Severity, ViolationSeverity
from src.models.roles import CheckResult, RoleContext

ISSUE_ID_RE = re.compile(r"\b(?:SEC|COR|REL|MNT|PRF)-\d+\b")
FILE_LINE_RE = re.compile(r"\w+\.\w+:\d+")
VERDICT_RE = re.compile(r"\b(VALID|INVALID|PARTIAL)\b")

_EVIDENCE_PATTERNS = [
    re.compile(r"```[\s\S]*?```"),
    FILE_LINE_RE,
    re.compile(r"evidence", re.IGNORECASE),
]
_CRITIC_LANGUAGE_PATTERNS = [
    re.compile(r"this\s+issue\s+is\s+(?:invalid|a\s+false\s+positive)", re.IGNORECASE),
    re.compile(r"\brefut", re.IGNORECASE),
    re.compile(r"\bdisagree\b", re.IGNORECASE),
    re.compile(r"\bINVALID\b"),
    re.compile(r"false\s+positive", re.IGNORECASE),
]
_NEW_ISSUE_PATTERNS = [
    re.compile(r"new\s+(?:issue|problem|vulnerabilit)", re.IGNORECASE),
    re.compile(r"additionally\s+found", re.IGNORECASE),
    re.compile(r"also\s+found", re.IGNORECASE),
]
_REASONING_PATTERNS = [
    re.compile(r"reason|because|since|due\s+to", re.IGNORECASE),
    re.compile(r"actually|in\s+fact|on\s+inspection", re.IGNORECASE),
]
_VERIFIER_LANGUAGE_PATTERNS = [
    re.compile(r"newly\s+discovered", re.IGNORECASE),
    re.compile(r"additional\s+issues?", re.IGNORECASE),
    re.compile(r"the\s+following\s+vulnerabilit", re.IGNORECASE),
    re.compile(r"review\s+(?:found|revealed)", re.IGNORECASE),
]


MESSAGES: dict[str, str] = {
    # Verifier
    "V001.fail": "Issues raised without code evidence",
    "V001.pass": "Evidence requirement met",
    "V002.fail": "Issue severity not specified",
    "V002.detail": "Specify one of CRITICAL/HIGH/MEDIUM/LOW",
    "V002.pass": "Severity classified",
    "V003.fail": "Re-raised an issue the Critic already challenged",
    "V003.detail": "{issue_id}: challenged in a previous round",
    "V003.pass": "No repeated issues",
    "V004.fail": "Verifier performed the Critic role (refutation)",
    "V004.detail": "The Verifier only finds issues; refuting them is the Critic's role",
    "V004.pass": "Role respected",
    "V005.fail": "No review category named",
    "V005.pass": "{count} categories reviewed",
    # Critic
    "C001.none": "No previous Verifier round",
    "C001.fail": "{count} issues were not reviewed",
    "C001.detail": "{issue_id}: review required",
    "C001.pass": "All issues reviewed",
    "C002.fail": "Critic raised new issues",
    "C002.detail": "The Critic only reviews existing issues; finding new ones is the Verifier's role",
    "C002.ids": "Newly mentioned ids: {ids}",
    "C002.pass": "No new issues raised",
    "C003.fail": "INVALID verdict lacks reasoning",
    "C003.detail": "Give a concrete reason when refuting an issue",
    "C003.pass": "Refutations are reasoned",
    "C004.skip": "Too few verdicts to judge balance",
    "C004.valid": "Almost every issue was accepted without scrutiny",
    "C004.invalid": "Almost every issue was refuted without scrutiny",
    "C004.pass": "Balanced verdicts",
    "C005.fail": "Critic performed the Verifier role (discovering issues)",
    "C005.detail": "The Critic only reviews existing issues",
    "C005.pass": "Role respected",
    # Required elements
    "MISSING_ISSUE_FORMAT": "Standard issue ID format (SEC-01, etc.) not found",
    "MISSING_ISSUE_FORMAT.hint": "If there are issues, specify them in SEC-XX, COR-XX format",
    "REQ001": "Issue location (file:line) not specified",
    "REQ001.fix": "Specify location in file:line format for each issue",
    "MISSING_VERDICT": "Issue verdict (VALID/INVALID/PARTIAL) not found",
    "MISSING_VERDICT.hint": "Specify VALID, INVALID, or PARTIAL for each issue",
    "REQ002": "INVALID verdict lacks reasoning",
    "REQ002.fix": "Provide specific reasoning when refuting",
    # Alternation
    "ALT001": "Role alternation violation: expected {expected}, but {actual} was submitted",
    "ALT001.fix": "Expected role: {expected}",
    # Suggestions
    "suggest.checklist": "Check the {role} role checklist:",
    "suggest.V001": "Include evidence in code blocks for all issues",
    "suggest.V003": "Do not re-raise issues refuted in previous rounds without new evidence",
    "suggest.C001": "Give a verdict for every issue the Verifier raised",
    "suggest.C002": "Finding new issues is the Verifier's role; only review existing issues",
    "default.suggestion": "Review required",
}


@dataclass
class ValidationCriterion:
    """One named rule a role's output must follow."""
    id: str
    description: str
    severity: ViolationSeverity
    check: Callable[[str, RoleContext, RoleEnforcementConfig], CheckResult]


@dataclass
class RoleDefinition:
    """Behavioural profile of a role."""
    role: Role
    purpose: str
    must_do: list[str] = field(default_factory=list)
    must_not_do: list[str] = field(default_factory=list)
    focus_areas: list[str] = field(default_factory=list)
    checklist: list[str] = field(default_factory=list)
    criteria: list[ValidationCriterion] = field(default_factory=list)

    @property
    def display_name(self) -> str:
        return self.role.value.capitalize()


def find_issue_ids(output: str) -> list[str]:
    return ISSUE_ID_RE.findall(output)


# ---------------------------------------------------------------------------
# Verifier checks
# ---------------------------------------------------------------------------


def check_verifier_has_evidence(output: str, context: RoleContext, config: RoleEnforcementConfig) -> CheckResult:
    issue_ids = find_issue_ids(output)
    has_evidence = any(p.search(output) for p in _EVIDENCE_PATTERNS)
    if issue_ids and not has_evidence:
        return CheckResult(
            passed=False,
            message=MESSAGES["V001.fail"],
            details=[f"Raised issues: {', '.join(issue_ids)}"],
        )
    return CheckResult(passed=True, message=MESSAGES["V001.pass"])


def check_severity_classification(output: str, context: RoleContext, config: RoleEnforcementConfig) -> CheckResult:
    has_severity = any(s.value in output for s in Severity)
    if not has_severity and find_issue_ids(output):
        return CheckResult(
            passed=False,
            message=MESSAGES["V002.fail"],
            details=[MESSAGES["V002.detail"]],
        )
    return CheckResult(passed=True, message=MESSAGES["V002.pass"])


def check_no_repeated_challenged_issues(output: str, context: RoleContext, config: RoleEnforcementConfig) -> CheckResult:
    challenged = {
        issue.id for issue in context.existing_issues
        if issue.status == IssueStatus.CHALLENGED or issue.challenged_by == Role.CRITIC
    }
    repeated = list(dict.fromkeys(i for i in find_issue_ids(output) if i in challenged))
    if repeated:
        return CheckResult(
            passed=False,
            message=MESSAGES["V003.fail"],
            details=[MESSAGES["V003.detail"].format(issue_id=i) for i in repeated],
        )
    return CheckResult(passed=True, message=MESSAGES["V003.pass"])


def check_not_acting_as_critic(output: str, context: RoleContext, config: RoleEnforcementConfig) -> CheckResult:
    if any(p.search(output) for p in _CRITIC_LANGUAGE_PATTERNS):
        return CheckResult(
            passed=False,
            message=MESSAGES["V004.fail"],
            details=[MESSAGES["V004.detail"]],
        )
    return CheckResult(passed=True, message=MESSAGES["V004.pass"])


def check_category_examined(output: str, context: RoleContext, config: RoleEnforcementConfig) -> CheckResult:
    found = [c.value for c in IssueCategory if c.value in output]
    if not found:
        return CheckResult(
            passed=False,
            message=MESSAGES["V005.fail"],
            details=[c.value for c in IssueCategory],
        )
    return CheckResult(passed=True, message=MESSAGES["V005.pass"].format(count=len(found)))


# ---------------------------------------------------------------------------
# Critic checks
# ---------------------------------------------------------------------------


def check_all_issues_reviewed(output: str, context: RoleContext, config: RoleEnforcementConfig) -> CheckResult:
    last_verifier = context.last_round_by(Role.VERIFIER)
    if last_verifier is None:
        return CheckResult(passed=True, message=MESSAGES["C001.none"])

    missing = [i for i in last_verifier.issues_raised if i not in output]
    if missing:
        return CheckResult(
            passed=False,
            message=MESSAGES["C001.fail"].format(count=len(missing)),
            details=[MESSAGES["C001.detail"].format(issue_id=i) for i in missing],
        )
    return CheckResult(passed=True, message=MESSAGES["C001.pass"])


def check_no_new_issues_from_critic(output: str, context: RoleContext, config: RoleEnforcementConfig) -> CheckResult:
    existing = {issue.id for issue in context.existing_issues}
    new_ids = list(dict.fromkeys(i for i in find_issue_ids(output) if i not in existing))
    has_new_issue_language = any(p.search(output) for p in _NEW_ISSUE_PATTERNS)

    if new_ids or has_new_issue_language:
        details = [MESSAGES["C002.detail"]]
        if new_ids:
            details.append(MESSAGES["C002.ids"].format(ids=", ".join(new_ids)))
        return CheckResult(passed=False, message=MESSAGES["C002.fail"], details=details)
    return CheckResult(passed=True, message=MESSAGES["C002.pass"])


def check_challenge_has_reasoning(output: str, context: RoleContext, config: RoleEnforcementConfig) -> CheckResult:
    if re.search(r"INVALID", output, re.IGNORECASE):
        if not any(p.search(output) for p in _REASONING_PATTERNS):
            return CheckResult(
                passed=False,
                message=MESSAGES["C003.fail"],
                details=[MESSAGES["C003.detail"]],
            )
    return CheckResult(passed=True, message=MESSAGES["C003.pass"])


def check_not_blindly_agree_or_disagree(output: str, context: RoleContext, config: RoleEnforcementConfig) -> CheckResult:
    verdicts = VERDICT_RE.findall(output)
    total = len(verdicts)
    if total < config.min_verdicts_for_uniformity:
        return CheckResult(passed=True, message=MESSAGES["C004.skip"])

    valid = verdicts.count("VALID")
    invalid = verdicts.count("INVALID")
    threshold = config.verdict_uniformity_threshold

    if valid / total > threshold:
        return CheckResult(
            passed=False,
            message=MESSAGES["C004.valid"],
            details=[f"VALID: {valid}/{total}"],
        )
    if invalid / total > threshold:
        return CheckResult(
            passed=False,
            message=MESSAGES["C004.invalid"],
            details=[f"INVALID: {invalid}/{total}"],
        )
    return CheckResult(passed=True, message=MESSAGES["C004.pass"])


def check_not_acting_as_verifier(output: str, context: RoleContext, config: RoleEnforcementConfig) -> CheckResult:
    found = [p for p in _VERIFIER_LANGUAGE_PATTERNS if p.search(output)]
    if len(found) > config.max_verifier_phrases:
        return CheckResult(
            passed=False,
            message=MESSAGES["C005.fail"],
            details=[MESSAGES["C005.detail"]],
        )
    return CheckResult(passed=True, message=MESSAGES["C005.pass"])


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------


VERIFIER_ROLE = RoleDefinition(
    role=Role.VERIFIER,
    purpose="Find problems in the code and report them with evidence",
    must_do=[
        "Review systematically against the standard verification criteria",
        "Back every issue with concrete evidence (code, file:line)",
        "Classify severity as CRITICAL/HIGH/MEDIUM/LOW",
        "Name the issue category (SECURITY/CORRECTNESS/RELIABILITY/MAINTAINABILITY/PERFORMANCE)",
        "Re-check issues left unresolved by earlier rounds",
        "Report newly discovered files or context",
    ],
    must_not_do=[
        "Raise issues without evidence",
        "Re-raise an issue the Critic refuted using the same argument",
        "Review code outside the verification scope",
        "Propose fixes",
        "Refute or challenge issues",
    ],
    focus_areas=[
        "SECURITY: injection, authentication, cryptography, input validation",
        "CORRECTNESS: logic errors, edge cases, type safety",
        "RELIABILITY: error handling, resource management, concurrency",
        "MAINTAINABILITY: complexity, duplication, dependencies",
        "PERFORMANCE: algorithms, memory, I/O",
    ],
    checklist=[
        "Does every issue have a file:line location?",
        "Does every issue have code evidence?",
        "Is severity classified against the criteria?",
        "Were no previously refuted issues re-raised?",
        "Were no fixes proposed?",
    ],
    criteria=[
        ValidationCriterion("V001", "Evidence accompanies every raised issue",
                            ViolationSeverity.ERROR, check_verifier_has_evidence),
        ValidationCriterion("V002", "Severities are classified",
                            ViolationSeverity.WARNING, check_severity_classification),
        ValidationCriterion("V003", "Challenged issues are not re-raised",
                            ViolationSeverity.ERROR, check_no_repeated_challenged_issues),
        ValidationCriterion("V004", "No refutation language",
                            ViolationSeverity.WARNING, check_not_acting_as_critic),
        ValidationCriterion("V005", "At least one category reviewed",
                            ViolationSeverity.WARNING, check_category_examined),
    ],
)

CRITIC_ROLE = RoleDefinition(
    role=Role.CRITIC,
    purpose="Test the validity of the Verifier's issues and challenge weak ones",
    must_do=[
        "Give a review opinion on every raised issue",
        "Call out false positives",
        "Check for exaggerated or understated severity",
        "Validate the evidence",
        "Refute with context (intended behaviour, design decisions)",
        "Acknowledge valid issues",
    ],
    must_not_do=[
        "Raise new issues",
        "Accept every issue without reasoning",
        "Refute every issue without reasoning",
        "Ignore the evidence of an issue",
        "Judge emotionally or subjectively",
    ],
    focus_areas=[
        "False positives: is it really a problem?",
        "Context: intent and design of the code",
        "Severity: real impact and exploitability",
        "Evidence: does it support the issue?",
        "Fixability: is a fix possible and meaningful?",
    ],
    checklist=[
        "Was every raised issue reviewed?",
        "Does every verdict have concrete reasoning?",
        "Were no new issues raised?",
        "Were the code's context and intent considered?",
        "Were issues not blindly accepted or refuted?",
    ],
    criteria=[
        ValidationCriterion("C001", "Every issue of the last Verifier round is reviewed",
                            ViolationSeverity.ERROR, check_all_issues_reviewed),
        ValidationCriterion("C002", "No new issues",
                            ViolationSeverity.ERROR, check_no_new_issues_from_critic),
        ValidationCriterion("C003", "Refutations are reasoned",
                            ViolationSeverity.WARNING, check_challenge_has_reasoning),
        ValidationCriterion("C004", "Verdicts are not uniform",
                            ViolationSeverity.WARNING, check_not_blindly_agree_or_disagree),
        ValidationCriterion("C005", "No discovery language",
                            ViolationSeverity.WARNING, check_not_acting_as_verifier),
    ],
)

ROLE_DEFINITIONS: dict[Role, RoleDefinition] = {
    Role.VERIFIER: VERIFIER_ROLE,
    Role.CRITIC: CRITIC_ROLE,
}
