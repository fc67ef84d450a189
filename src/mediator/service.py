"""
Mediator Service

Understands the codebase through its dependency graph and watches every
round for what the reviewers missed. Interventions are advisory: they are
returned to the caller and recorded, never enforced.

Per-round pipeline:
1. Extract file mentions from the round output
2. Update coverage
3. Run the intervention checks in a fixed order
"""

import logging
from collections import Counter
from pathlib import Path
from typing import Iterable, Optional, Union

from src.analysis.graph import build_dependency_graph
from src.config import MediatorConfig, get_mediator_config
from src.mediator.coverage import (
    extract_mentioned_files,
    match_known_file,
    normalize_mentions,
    update_coverage,
)
from src.mediator.interventions import (
    check_circular_dependencies,
    check_context_correction,
    check_critical_path_ignored,
    check_incomplete_coverage,
    check_missed_dependencies,
    check_scope_drift,
    check_side_effects,
)
from src.mediator.ripple import analyze_ripple_effect
from src.mediator.state import MediatorState
from src.models.enums import InterventionType, Role
from src.models.mediator import (
    CoverageSummary,
    Intervention,
    RippleEffect,
    VerificationCoverage,
)
from src.models.session import Issue, Session
from src.session.context import target_key

logger = logging.getLogger(__name__)


class MediatorService:
    """
    Registry of per-session mediator state.

    Usage:
        mediator = MediatorService()
        mediator.initialize(session.id, files, working_dir)
        interventions = mediator.analyze_round_and_intervene(
            session, output, Role.VERIFIER, new_issues,
        )
    """

    def __init__(self, config: Optional[MediatorConfig] = None):
        self.config = config or get_mediator_config()
        self._states: dict[str, MediatorState] = {}

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._states

    def initialize(
        self,
        session_id: str,
        files: Iterable[str],
        working_dir: Union[str, Path],
    ) -> MediatorState:
        """Build the graph and seed the unverified-critical files."""
        files = list(files)
        graph = build_dependency_graph(files, working_dir)
        importance = graph.calculate_file_importance()

        coverage = VerificationCoverage(
            total_files=len(files),
            unverified_critical=self._critical_files(importance),
        )

        state = MediatorState(
            session_id=session_id,
            graph=graph,
            known_files=set(files) | set(graph.nodes),
            coverage=coverage,
            working_dir=str(working_dir),
            importance=importance,
        )
        self._states[session_id] = state
        logger.info(
            "Mediator ready for %s: %d nodes, %d edges, %d critical files",
            session_id, len(graph.nodes), len(graph.edges), len(coverage.unverified_critical),
        )
        return state

    def get_state(self, session_id: str) -> Optional[MediatorState]:
        return self._states.get(session_id)

    def delete_state(self, session_id: str) -> bool:
        return self._states.pop(session_id, None) is not None

    # ------------------------------------------------------------------ #
    # Per-round analysis
    # ------------------------------------------------------------------ #

    def analyze_round_and_intervene(
        self,
        session: Session,
        output: str,
        role: Role,
        new_issues: list[Issue],
        round_number: Optional[int] = None,
    ) -> list[Intervention]:
        """Update coverage from ``output`` and run every intervention check.

        Args:
            session: Session the round belongs to.
            output: Free-text round output.
            role: Role that produced the output.
            new_issues: Issues raised in this round.
            round_number: Round being analyzed; defaults to the round about
                to be appended (``current_round + 1``).

        Returns:
            Interventions emitted for this round (also recorded in state).
            Empty for an unknown session.
        """
        state = self._states.get(session.id)
        if state is None:
            return []

        config = self.config
        round_number = round_number or session.current_round + 1
        mentioned = normalize_mentions(extract_mentioned_files(output), state.known_files)
        update_coverage(state.coverage, state.graph, mentioned, state.known_files, round_number)

        candidates: list[Optional[Intervention]] = [
            check_missed_dependencies(state, mentioned, new_issues, config),
            check_incomplete_coverage(state, round_number, config),
            check_side_effects(state, new_issues, config),
            check_scope_drift(mentioned, session, config),
        ]

        if round_number == 1 and not state.has_fired(InterventionType.CIRCULAR_DEPENDENCY):
            candidates.append(self._once(state, check_circular_dependencies(state, config)))

        if not state.has_fired(InterventionType.CRITICAL_PATH_IGNORED):
            candidates.append(
                self._once(state, check_critical_path_ignored(state, mentioned, config))
            )

        if role == Role.CRITIC:
            candidates.append(check_context_correction(output, session))

        interventions = [i for i in candidates if i is not None]
        for intervention in interventions:
            intervention.round = round_number
        state.interventions.extend(interventions)

        logger.debug(
            "Session %s round %d: %d files mentioned, %d interventions",
            session.id, round_number, len(mentioned), len(interventions),
        )
        return interventions

    def rebuild_coverage(self, session: Session) -> None:
        """Recompute coverage from the session's remaining rounds after a rollback."""
        state = self._states.get(session.id)
        if state is None:
            return

        state.coverage = VerificationCoverage(
            total_files=state.coverage.total_files,
            unverified_critical=self._critical_files(state.importance),
        )
        for round_ in session.rounds:
            mentioned = normalize_mentions(extract_mentioned_files(round_.output), state.known_files)
            update_coverage(state.coverage, state.graph, mentioned, state.known_files, round_.number)

        state.interventions = [
            i for i in state.interventions
            if i.round is None or i.round <= session.current_round
        ]
        state.fired_once = {i.type for i in state.interventions} & {
            InterventionType.CIRCULAR_DEPENDENCY,
            InterventionType.CRITICAL_PATH_IGNORED,
        }

    def _critical_files(self, importance: dict[str, int]) -> list[str]:
        """Files scoring at least the configured share of the top importance."""
        if not importance:
            return []
        threshold = max(importance.values()) * self.config.critical_threshold_factor
        return [f for f, score in importance.items() if score >= threshold]

    @staticmethod
    def _once(state: MediatorState, intervention: Optional[Intervention]) -> Optional[Intervention]:
        if intervention is not None:
            state.fired_once.add(intervention.type)
        return intervention

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    def ripple_effect(
        self,
        session_id: str,
        changed_file: str,
        changed_function: Optional[str] = None,
    ) -> Optional[RippleEffect]:
        """Impact of changing a file; the path may be relative or absolute."""
        state = self._states.get(session_id)
        if state is None:
            return None
        key = target_key(changed_file, state.working_dir)
        key = match_known_file(key, state.known_files) or key
        return analyze_ripple_effect(state.graph, key, self.config, changed_function)

    def get_coverage_summary(self, session_id: str) -> Optional[CoverageSummary]:
        state = self._states.get(session_id)
        if state is None:
            return None
        coverage = state.coverage
        return CoverageSummary(
            total_files=coverage.total_files,
            verified_files=len(coverage.verified_files),
            coverage_rate=f"{coverage.coverage_rate * 100:.1f}%",
            unverified_critical=len(coverage.unverified_critical),
        )

    def get_mediator_summary(self, session_id: str) -> Optional[dict]:
        """Serializable overview: graph stats, coverage and interventions."""
        state = self._states.get(session_id)
        if state is None:
            return None

        by_type = Counter(i.type.value for i in state.interventions)
        last = state.interventions[-1] if state.interventions else None
        return {
            "graph_stats": state.graph.stats().model_dump(),
            "coverage": self.get_coverage_summary(session_id).model_dump(),
            "interventions": {
                "total": len(state.interventions),
                "by_type": dict(by_type),
                "last_intervention": last.model_dump(mode="json") if last else None,
            },
        }
