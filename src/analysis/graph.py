"""
Dependency Graph

Assembles per-file :class:`DependencyNode` records into a project graph:
- Forward edges for every resolvable same-project import
- Reverse-edge mapping (file -> files importing it)
- Bounded traversals: affected files, dependency depth, import paths
- Cycle detection and file importance scoring

The edge list is the source of truth; a NetworkX ``DiGraph`` mirrors it
for the traversals. The graph is built once per session and not mutated
afterwards.
"""

import logging
import math
import posixpath
from pathlib import Path
from typing import Iterable, Optional, Union

import networkx as nx

from src.analysis.analyzer import analyze_file
from src.models.enums import EdgeKind
from src.models.graph import DependencyEdge, DependencyNode, GraphStats

logger = logging.getLogger(__name__)

# Tried in order when resolving an extensionless or directory import.
RESOLVE_SUFFIXES = ("", ".ts", ".tsx", ".js", ".jsx", "/index.ts", "/index.js")

DEFAULT_MAX_DEPTH = 100


class DependencyGraph:
    """
    Import graph over the files of one verification target.

    Node keys are paths relative to the working directory (POSIX
    separators) when the file lives under it, absolute paths otherwise.
    """

    def __init__(self, working_dir: Union[str, Path] = "."):
        self.working_dir = Path(working_dir)
        self.nodes: dict[str, DependencyNode] = {}
        self.edges: list[DependencyEdge] = []
        self.reverse_edges: dict[str, list[str]] = {}
        self._graph = nx.DiGraph()

    @property
    def graph(self) -> nx.DiGraph:
        """Get the underlying NetworkX graph."""
        return self._graph

    def __contains__(self, path: str) -> bool:
        return path in self.nodes

    def __len__(self) -> int:
        return len(self.nodes)

    # ------------------------------------------------------------------ #
    # Construction
    # ------------------------------------------------------------------ #

    def add_node(self, node: DependencyNode) -> None:
        self.nodes[node.path] = node
        self._graph.add_node(node.path)

    def add_edge(self, edge: DependencyEdge) -> None:
        self.edges.append(edge)
        importers = self.reverse_edges.setdefault(edge.to_file, [])
        if edge.from_file not in importers:
            importers.append(edge.from_file)
        self._graph.add_edge(edge.from_file, edge.to_file)

    def resolve_import(self, from_file: str, source: str) -> Optional[str]:
        """Map an import specifier to a known file, or None.

        Only relative (``.``) and root-relative (``/``) sources are
        considered; package imports never resolve.
        """
        if source.startswith("/"):
            base = posixpath.normpath(source.lstrip("/"))
        elif source.startswith("."):
            base = posixpath.normpath(posixpath.join(posixpath.dirname(from_file), source))
        else:
            return None

        for suffix in RESOLVE_SUFFIXES:
            candidate = base + suffix
            if candidate in self.nodes:
                return candidate
        return None

    # ------------------------------------------------------------------ #
    # Traversals
    # ------------------------------------------------------------------ #

    def get_importers(self, path: str) -> list[str]:
        return list(self.reverse_edges.get(path, []))

    def get_imports(self, path: str) -> list[str]:
        if path not in self._graph:
            return []
        return list(self._graph.successors(path))

    def _reverse_distances(self, source: str, cutoff: int) -> dict[str, int]:
        if source not in self._graph:
            return {}
        return nx.single_source_shortest_path_length(
            self._graph.reverse(copy=False), source, cutoff=cutoff
        )

    def find_affected_files(self, changed_file: str, depth: int = 3) -> list[str]:
        """Files importing ``changed_file`` directly or transitively, up to ``depth`` hops.

        Ordered by distance, then path.
        """
        distances = self._reverse_distances(changed_file, depth)
        affected = [(d, p) for p, d in distances.items() if p != changed_file]
        return [p for _, p in sorted(affected)]

    def dependency_depth(
        self,
        from_file: str,
        to_file: str,
        max_depth: int = DEFAULT_MAX_DEPTH,
    ) -> float:
        """Reverse-edge hops from ``from_file`` to ``to_file``.

        Returns ``math.inf`` when ``to_file`` does not depend on
        ``from_file`` within ``max_depth`` hops.
        """
        if from_file == to_file:
            return 0
        distance = self._reverse_distances(from_file, max_depth).get(to_file)
        return math.inf if distance is None else distance

    def find_dependency_path(self, from_file: str, to_file: str) -> Optional[list[str]]:
        """Shortest chain of imports leading from ``from_file`` to ``to_file``."""
        try:
            return nx.shortest_path(self._graph, from_file, to_file)
        except (nx.NetworkXNoPath, nx.NodeNotFound):
            return None

    def detect_circular_dependencies(self) -> list[list[str]]:
        """Depth-first search with a recursion stack over the edge list.

        Each cycle is reported once, as discovered, without repeating
        its first file at the end (``A -> B -> C -> A`` gives
        ``[A, B, C]``).
        """
        successors: dict[str, list[str]] = {}
        for edge in self.edges:
            targets = successors.setdefault(edge.from_file, [])
            if edge.to_file not in targets:
                targets.append(edge.to_file)

        cycles: list[list[str]] = []
        visited: set[str] = set()

        for start in self.nodes:
            if start in visited:
                continue
            visited.add(start)
            path = [start]
            on_path = {start}
            stack = [iter(successors.get(start, []))]

            while stack:
                nxt = next(stack[-1], None)
                if nxt is None:
                    stack.pop()
                    on_path.discard(path.pop())
                    continue
                if nxt in on_path:
                    cycles.append(path[path.index(nxt):])
                elif nxt not in visited:
                    visited.add(nxt)
                    path.append(nxt)
                    on_path.add(nxt)
                    stack.append(iter(successors.get(nxt, [])))

        return cycles

    def calculate_file_importance(self) -> dict[str, int]:
        """Score = importers * 2 + exports."""
        return {
            path: len(self.reverse_edges.get(path, [])) * 2 + len(node.exports)
            for path, node in self.nodes.items()
        }

    def stats(self) -> GraphStats:
        return GraphStats(
            total_nodes=len(self.nodes),
            total_edges=len(self.edges),
            circular_deps=len(self.detect_circular_dependencies()),
        )


def _node_key(path: Path, working_dir: Path) -> str:
    try:
        return path.relative_to(working_dir).as_posix()
    except ValueError:
        return path.as_posix()


def build_dependency_graph(
    files: Iterable[Union[str, Path]],
    working_dir: Union[str, Path],
) -> DependencyGraph:
    """Analyze ``files`` and connect them by their local imports.

    Args:
        files: Paths absolute or relative to ``working_dir``.
        working_dir: Project root used for node keys and ``/`` imports.

    Returns:
        The populated graph. Files that cannot be analyzed are left out;
        unresolvable and package imports produce no edge.
    """
    working_dir = Path(working_dir)
    graph = DependencyGraph(working_dir)

    for file in files:
        path = Path(file)
        if not path.is_absolute():
            path = working_dir / path
        node = analyze_file(path)
        if node is None:
            continue
        node.path = _node_key(path, working_dir)
        graph.add_node(node)

    for path, node in list(graph.nodes.items()):
        for imp in node.imports:
            target = graph.resolve_import(path, imp.source)
            if target is None:
                continue
            graph.add_edge(DependencyEdge(
                from_file=path,
                to_file=target,
                kind=EdgeKind.DYNAMIC_IMPORT if imp.is_dynamic else EdgeKind.IMPORT,
                specifiers=imp.specifiers,
            ))

    logger.debug(
        "Built dependency graph: %d nodes, %d edges", len(graph.nodes), len(graph.edges)
    )
    return graph
