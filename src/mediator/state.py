"""Per-session mediator state."""

from dataclasses import dataclass, field

from src.analysis.graph import DependencyGraph
from src.models.enums import InterventionType
from src.models.mediator import Intervention, VerificationCoverage


@dataclass
class MediatorState:
    """Graph, coverage and intervention history for one session."""

    session_id: str
    graph: DependencyGraph
    known_files: set[str]
    coverage: VerificationCoverage
    working_dir: str = "."
    importance: dict[str, int] = field(default_factory=dict)
    interventions: list[Intervention] = field(default_factory=list)
    fired_once: set[InterventionType] = field(default_factory=set)

    def has_fired(self, kind: InterventionType) -> bool:
        return kind in self.fired_once
