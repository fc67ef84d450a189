"""Enumeration types for the Elenchus verification core."""

from enum import Enum


class Severity(str, Enum):
    """Severity of a raised issue."""
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class IssueCategory(str, Enum):
    """The five verification categories."""
    SECURITY = "SECURITY"
    CORRECTNESS = "CORRECTNESS"
    RELIABILITY = "RELIABILITY"
    MAINTAINABILITY = "MAINTAINABILITY"
    PERFORMANCE = "PERFORMANCE"


class IssueStatus(str, Enum):
    """Lifecycle of an issue."""
    RAISED = "RAISED"
    CHALLENGED = "CHALLENGED"    # Refuted by the critic
    RESOLVED = "RESOLVED"
    UNRESOLVED = "UNRESOLVED"    # Left open when a session is closed


class SessionStatus(str, Enum):
    """Status of a verification session."""
    CREATED = "created"
    VERIFYING = "verifying"
    CONVERGING = "converging"
    CONVERGED = "converged"
    FORCED_STOP = "forced_stop"
    ERROR = "error"


class Role(str, Enum):
    """Roles that may submit a round."""
    VERIFIER = "verifier"
    CRITIC = "critic"

    @property
    def opposite(self) -> "Role":
        return Role.CRITIC if self is Role.VERIFIER else Role.VERIFIER


class FileLayer(str, Enum):
    """How a file entered the verification context."""
    BASE = "base"              # Collected from the target at session start
    DISCOVERED = "discovered"  # Referenced by a round's output later on


class EdgeKind(str, Enum):
    """Kind of import producing a dependency edge."""
    IMPORT = "import"
    DYNAMIC_IMPORT = "dynamic-import"


class ExportKind(str, Enum):
    """What an export statement exports."""
    FUNCTION = "function"
    CLASS = "class"
    VARIABLE = "variable"
    TYPE = "type"
    RE_EXPORT = "re-export"


class InterventionType(str, Enum):
    """Advisory signals emitted by the mediator."""
    MISSED_DEPENDENCY = "MISSED_DEPENDENCY"
    INCOMPLETE_COVERAGE = "INCOMPLETE_COVERAGE"
    SIDE_EFFECT_WARNING = "SIDE_EFFECT_WARNING"
    RIPPLE_EFFECT = "RIPPLE_EFFECT"
    CONTEXT_CORRECTION = "CONTEXT_CORRECTION"
    SCOPE_DRIFT = "SCOPE_DRIFT"
    CIRCULAR_DEPENDENCY = "CIRCULAR_DEPENDENCY"
    CRITICAL_PATH_IGNORED = "CRITICAL_PATH_IGNORED"


class InterventionSeverity(str, Enum):
    """Severity attached to a mediator intervention."""
    INFO = "INFO"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


class Importance(str, Enum):
    """Priority of a piece of code the reviewer skipped."""
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class ImpactType(str, Enum):
    """How a file is reached by a change."""
    DIRECT = "direct"
    INDIRECT = "indirect"


class ViolationSeverity(str, Enum):
    """Severity of a role-compliance finding."""
    ERROR = "ERROR"
    WARNING = "WARNING"


class ArbiterAction(str, Enum):
    """Loop-level signals raised by the arbiter."""
    CONTEXT_EXPAND = "CONTEXT_EXPAND"
    SOFT_CORRECT = "SOFT_CORRECT"
    LOOP_BREAK = "LOOP_BREAK"


class Verdict(str, Enum):
    """Final verdict given when a session is ended."""
    PASS = "PASS"
    FAIL = "FAIL"
    CONDITIONAL = "CONDITIONAL"


class IssueFilter(str, Enum):
    """Issue subsets returned by issue queries."""
    ALL = "all"
    UNRESOLVED = "unresolved"
    CRITICAL = "critical"
