"""Ripple-effect analysis: which files may break when one file changes."""

from typing import Optional

from src.analysis.graph import DependencyGraph
from src.config import MediatorConfig
from src.models.enums import ImpactType
from src.models.mediator import AffectedFile, RippleEffect


def analyze_ripple_effect(
    graph: DependencyGraph,
    changed_file: str,
    config: MediatorConfig,
    changed_function: Optional[str] = None,
) -> Optional[RippleEffect]:
    """Importers of ``changed_file`` within the ripple depth.

    When ``changed_function`` is given, each affected file lists its
    functions whose recorded calls include that name. Returns None when
    nothing depends on the file.
    """
    affected = graph.find_affected_files(changed_file, config.ripple_effect_max_depth)
    if not affected:
        return None

    details: list[AffectedFile] = []
    for path in affected:
        node = graph.nodes.get(path)
        if node is None:
            continue

        functions = []
        if changed_function and changed_file in graph.nodes:
            functions = [fn.name for fn in node.functions if changed_function in fn.calls]

        depth = graph.dependency_depth(changed_file, path, config.default_max_depth)
        details.append(AffectedFile(
            path=path,
            depth=depth,
            affected_functions=functions,
            impact_type=ImpactType.DIRECT if depth == 1 else ImpactType.INDIRECT,
            reason=(
                f"Directly imports {changed_file}"
                if depth == 1
                else f"{depth}-level dependency"
            ),
        ))

    if not details:
        return None

    details.sort(key=lambda a: a.depth)
    return RippleEffect(
        changed_file=changed_file,
        changed_function=changed_function,
        affected_files=details,
        depth=max(a.depth for a in details),
        total_affected=len(details),
    )
