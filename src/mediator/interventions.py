"""
Intervention Checks

Each check inspects the mediator state plus one round's mentions/issues
and returns an :class:`Intervention` or None. Checks never raise for
missing data: an unknown file or issue just produces no signal.

Checks:
- missed dependency: a mentioned file imports something nobody looked at
- incomplete coverage: critical files still unverified, or low coverage
- side effect: files a fix for a CRITICAL/HIGH issue may break
- scope drift: most mentioned files fall outside the target directory
- circular dependency: import cycles in the graph
- critical path ignored: the most imported files are unmentioned
- context correction: the critic disputes issues of the last verifier round
"""

import re
from pathlib import Path
from typing import Optional

from src.config import MediatorConfig
from src.mediator.coverage import match_known_file
from src.mediator.state import MediatorState
from src.models.enums import (
    Importance,
    InterventionSeverity,
    InterventionType,
    Role,
    Severity,
)
from src.models.mediator import Intervention, MissedCode
from src.models.session import Issue, Session
from src.roles.definitions import find_issue_ids
from src.session.context import target_key
from src.utils.text import contains_any


CORRECTION_KEYWORDS = (
    "incorrect",
    "wrong",
    "misunderstand",
    "false positive",
    "exaggerated",
    "actually",
    "in fact",
)

CONTEXT_CORRECTION_CHECKS = [
    "Verify if evidence matches actual behavior",
    "Re-read the full context of related code",
    "Check intended behavior in tests or documentation",
]


def _percent(rate: float, digits: int = 1) -> str:
    return f"{rate * 100:.{digits}f}%"


# ---------------------------------------------------------------------------
# Missed dependencies
# ---------------------------------------------------------------------------


def check_missed_dependencies(
    state: MediatorState,
    mentioned: dict[str, list[int]],
    new_issues: list[Issue],
    config: MediatorConfig,
) -> Optional[Intervention]:
    """Local imports of mentioned files that are neither mentioned nor verified.

    HIGH when a new issue located in the importing file describes one of
    the imported names; MEDIUM when the imported file is widely used;
    anything else is not reported.
    """
    missed: list[MissedCode] = []
    seen: set[str] = set()

    for file in mentioned:
        node = state.graph.nodes.get(file)
        if node is None:
            continue

        for imp in node.imports:
            if not imp.is_local:
                continue
            imported = state.graph.resolve_import(file, imp.source)
            if (
                imported is None
                or imported in seen
                or imported in mentioned
                or imported in state.coverage.verified_files
            ):
                continue

            related = [
                issue for issue in new_issues
                if file in issue.location
                and any(spec in issue.description for spec in imp.specifiers)
            ]
            if related:
                missed.append(MissedCode(
                    file=imported,
                    functions=imp.specifiers,
                    reason=f"Used in {file} and related issues found",
                    importance=Importance.HIGH,
                ))
            elif state.importance.get(imported, 0) > config.file_importance_threshold:
                missed.append(MissedCode(
                    file=imported,
                    functions=imp.specifiers,
                    reason=f"Dependency of {file} and widely used elsewhere",
                    importance=Importance.MEDIUM,
                ))
            else:
                continue
            seen.add(imported)

    if not missed:
        return None

    high = [m for m in missed if m.importance == Importance.HIGH]
    return Intervention(
        type=InterventionType.MISSED_DEPENDENCY,
        severity=InterventionSeverity.WARNING if high else InterventionSeverity.INFO,
        reason=f"{len(missed)} related files not verified",
        action="Include the following files in verification",
        missed_code=missed,
        affected_files=[m.file for m in missed],
        suggested_checks=[f"{m.file}: {m.reason}" for m in high],
    )


# ---------------------------------------------------------------------------
# Coverage
# ---------------------------------------------------------------------------


def check_incomplete_coverage(
    state: MediatorState,
    round_number: int,
    config: MediatorConfig,
) -> Optional[Intervention]:
    if round_number < config.coverage_check_min_round:
        return None

    coverage = state.coverage
    rate = coverage.coverage_rate
    still_critical = [
        f for f in coverage.unverified_critical if f not in coverage.verified_files
    ]

    if still_critical:
        shown = still_critical[: config.max_critical_files_display]
        return Intervention(
            type=InterventionType.INCOMPLETE_COVERAGE,
            severity=InterventionSeverity.WARNING,
            reason=(
                f"{len(still_critical)} critical files not yet verified "
                f"(total coverage: {_percent(rate)})"
            ),
            action="Verify the following critical files",
            affected_files=shown,
            suggested_checks=[
                f"{f} (referenced by {len(state.graph.get_importers(f))} files)"
                for f in shown
            ],
        )

    if (
        rate < config.low_coverage_threshold
        and round_number >= config.low_coverage_check_min_round
    ):
        unverified = [f for f in state.graph.nodes if f not in coverage.verified_files]
        return Intervention(
            type=InterventionType.INCOMPLETE_COVERAGE,
            severity=InterventionSeverity.INFO,
            reason=f"Total coverage is low at {_percent(rate)}",
            action="Verify more files or narrow the scope",
            affected_files=unverified[: config.max_affected_files_display],
        )

    return None


# ---------------------------------------------------------------------------
# Side effects
# ---------------------------------------------------------------------------


def check_side_effects(
    state: MediatorState,
    new_issues: list[Issue],
    config: MediatorConfig,
) -> Optional[Intervention]:
    """Files a fix for a new CRITICAL/HIGH issue may ripple into."""
    serious = [i for i in new_issues if i.severity in (Severity.CRITICAL, Severity.HIGH)]
    if not serious:
        return None

    all_affected: dict[str, None] = {}
    details: list[str] = []
    for issue in serious:
        if not issue.file:
            continue
        file = match_known_file(issue.file, state.known_files) or issue.file
        affected = state.graph.find_affected_files(file, config.side_effect_depth)
        if not affected:
            continue
        details.append(f"Check when fixing {issue.id}: {', '.join(affected[:3])}")
        for path in affected:
            all_affected.setdefault(path, None)

    if not all_affected:
        return None

    severity = (
        InterventionSeverity.WARNING
        if len(all_affected) > config.side_effect_warning_threshold
        else InterventionSeverity.INFO
    )
    return Intervention(
        type=InterventionType.SIDE_EFFECT_WARNING,
        severity=severity,
        reason=f"Fixing {len(serious)} issues may affect {len(all_affected)} files",
        action="Check impact scope before fixing",
        affected_files=list(all_affected)[: config.max_affected_files_display],
        related_issues=[i.id for i in serious],
        suggested_checks=details,
    )


# ---------------------------------------------------------------------------
# Scope drift
# ---------------------------------------------------------------------------


def target_directory(session: Session) -> str:
    """Directory the target covers, keyed like the context.

    A directory target covers itself; a file target covers its parent.
    """
    key = target_key(session.target, session.working_dir)
    if (Path(session.working_dir) / key).is_dir() or Path(session.target).is_dir():
        return key
    return re.sub(r"/?[^/]+$", "", key)


def is_within(file: str, directory: str) -> bool:
    if directory in ("", "."):
        return True
    return file == directory or file.startswith(directory + "/")


def check_scope_drift(
    mentioned: dict[str, list[int]],
    session: Session,
    config: MediatorConfig,
) -> Optional[Intervention]:
    if len(mentioned) <= config.min_files_for_drift:
        return None

    target_dir = target_directory(session)
    outside = [f for f in mentioned if not is_within(f, target_dir)]
    drift_rate = len(outside) / len(mentioned)
    if drift_rate <= config.drift_threshold:
        return None

    return Intervention(
        type=InterventionType.SCOPE_DRIFT,
        severity=InterventionSeverity.WARNING,
        reason=(
            f"Verification scope expanded outside target ({session.target}) "
            f"by {_percent(drift_rate, 0)}"
        ),
        action="Focus on target scope or explicitly expand verification scope",
        affected_files=outside[: config.max_critical_files_display],
        suggested_checks=[
            f"Current target: {session.target}",
            f"{len(outside)} external files mentioned",
            "Request explicit scope expansion if needed",
        ],
    )


# ---------------------------------------------------------------------------
# Graph-wide checks (fire once per session)
# ---------------------------------------------------------------------------


def check_circular_dependencies(
    state: MediatorState,
    config: MediatorConfig,
) -> Optional[Intervention]:
    cycles = state.graph.detect_circular_dependencies()
    if not cycles:
        return None

    return Intervention(
        type=InterventionType.CIRCULAR_DEPENDENCY,
        severity=InterventionSeverity.WARNING if len(cycles) > 2 else InterventionSeverity.INFO,
        reason=f"{len(cycles)} circular dependencies detected",
        action="Circular dependencies can cause bugs, please review",
        affected_files=sorted({f for cycle in cycles for f in cycle}),
        suggested_checks=[
            f"Cycle: {' → '.join(cycle)}" for cycle in cycles[: config.max_cycles_display]
        ],
    )


def check_critical_path_ignored(
    state: MediatorState,
    mentioned: dict[str, list[int]],
    config: MediatorConfig,
) -> Optional[Intervention]:
    ranked = sorted(state.importance.items(), key=lambda kv: (-kv[1], kv[0]))
    top = ranked[: config.max_critical_files_display]
    ignored = [
        (f, score) for f, score in top
        if f not in mentioned and f not in state.coverage.verified_files
    ]
    if not ignored:
        return None

    return Intervention(
        type=InterventionType.CRITICAL_PATH_IGNORED,
        severity=InterventionSeverity.INFO,
        reason="Critical project files not yet verified",
        action="Also review the following critical files",
        affected_files=[f for f, _ in ignored],
        suggested_checks=[
            f"{f} (importance: {score}, imported by {len(state.graph.get_importers(f))} files)"
            for f, score in ignored
        ],
    )


# ---------------------------------------------------------------------------
# Critic disputes
# ---------------------------------------------------------------------------


def find_disputed_issues(critic_output: str, session: Session) -> list[str]:
    """Ids raised in the last verifier round that the critic output names."""
    last_verifier = session.last_round_by(Role.VERIFIER)
    if last_verifier is None:
        return []

    named = set(find_issue_ids(critic_output))
    disputed = []
    for issue_id in last_verifier.issues_raised:
        issue = session.get_issue(issue_id)
        if issue is None:
            continue
        if issue.id in named or (issue.summary and issue.summary in critic_output):
            disputed.append(issue.id)
    return disputed


def check_context_correction(
    critic_output: str,
    session: Session,
) -> Optional[Intervention]:
    if not contains_any(critic_output, CORRECTION_KEYWORDS):
        return None

    disputed = find_disputed_issues(critic_output, session)
    if not disputed:
        return None

    return Intervention(
        type=InterventionType.CONTEXT_CORRECTION,
        severity=InterventionSeverity.INFO,
        reason=f"Critic disputed {len(disputed)} issues",
        action="Re-review these issues and check code context again",
        related_issues=disputed,
        suggested_checks=list(CONTEXT_CORRECTION_CHECKS),
    )
