"""
Coverage Tracking

Turns free-text round output into file mentions and folds them into the
session's verification coverage.
"""

import posixpath
import re
from collections.abc import Collection
from typing import Optional

from src.analysis.graph import DependencyGraph
from src.models.mediator import CoverageDetail, VerificationCoverage

_MENTION_PATTERNS = [
    re.compile(r"([a-zA-Z0-9_\-./]+\.[a-zA-Z]+):(\d+)"),                            # file.ts:123
    re.compile(r"([a-zA-Z0-9_\-./]+\.[a-zA-Z]+)\s*\(line\s*(\d+)\)", re.IGNORECASE),  # file.ts (line 123)
    re.compile(r"`([a-zA-Z0-9_\-./]+\.[a-zA-Z]+)`"),                                # `file.ts`
]


def extract_mentioned_files(output: str) -> dict[str, list[int]]:
    """File mentions with the line numbers cited for each, merged per file."""
    mentioned: dict[str, list[int]] = {}
    for pattern in _MENTION_PATTERNS:
        for match in pattern.finditer(output):
            file = match.group(1)
            line = int(match.group(2)) if match.lastindex and match.lastindex >= 2 else 0
            lines = mentioned.setdefault(file, [])
            if line > 0 and line not in lines:
                lines.append(line)
    return mentioned


def match_known_file(mention: str, known_files: Collection[str]) -> Optional[str]:
    """Map a mention to a known file: exact key, else a unique path-suffix match."""
    cleaned = posixpath.normpath(mention)
    if cleaned in known_files:
        return cleaned
    matches = [f for f in known_files if f.endswith("/" + cleaned)]
    if len(matches) == 1:
        return matches[0]
    return None


def normalize_mentions(
    mentioned: dict[str, list[int]],
    known_files: Collection[str],
) -> dict[str, list[int]]:
    """Re-key mentions onto known file paths where one matches.

    Unmatched mentions keep their raw text so scope checks still see them.
    """
    normalized: dict[str, list[int]] = {}
    for mention, lines in mentioned.items():
        key = match_known_file(mention, known_files) or mention
        merged = normalized.setdefault(key, [])
        merged.extend(line for line in lines if line not in merged)
    return normalized


def update_coverage(
    coverage: VerificationCoverage,
    graph: DependencyGraph,
    mentioned: dict[str, list[int]],
    known_files: Collection[str],
    round_number: int,
) -> None:
    """Mark known mentioned files verified and merge their cited lines.

    Cited lines falling inside a function's line range also mark that
    function verified.
    """
    for file, lines in mentioned.items():
        if file not in known_files:
            continue
        coverage.verified_files.add(file)

        node = graph.nodes.get(file)
        detail = coverage.partially_verified.get(file)
        if detail is None:
            detail = CoverageDetail(
                path=file,
                functions_total=len(node.functions) if node else 0,
            )
            coverage.partially_verified[file] = detail

        for line in lines:
            if line not in detail.lines_mentioned:
                detail.lines_mentioned.append(line)
            if node is None:
                continue
            for fn in node.functions:
                if fn.line <= line <= fn.end_line and fn.name not in detail.functions_verified:
                    detail.functions_verified.append(fn.name)
        detail.last_verified_round = round_number

        if file in coverage.unverified_critical:
            coverage.unverified_critical.remove(file)
