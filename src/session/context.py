"""
Verification Context

Layered view of the files a session verifies:
- Layer 0 (base): files collected from the target at session start
- Layer 1 (discovered): files a round's output referenced later on

File keys are paths relative to the working directory, matching the keys
of the dependency graph.
"""

import logging
import os
import posixpath
import re
from pathlib import Path
from typing import Iterable, Optional, Union

from src.models.enums import FileLayer
from src.models.session import FileContext, Session

logger = logging.getLogger(__name__)

SKIPPED_DIRECTORIES = frozenset({"node_modules", ".git", "dist", "build", "__pycache__"})

CODE_EXTENSIONS = frozenset({
    ".ts", ".tsx", ".js", ".jsx", ".mjs",
    ".py", ".rb", ".go", ".rs", ".java",
    ".c", ".cpp", ".h", ".hpp",
    ".cs", ".php", ".swift", ".kt",
})

_FILE_REFERENCE_PATTERNS = [
    re.compile(r"([a-zA-Z0-9_\-./]+\.[a-zA-Z]+):(\d+)"),                 # file:line
    re.compile(r"```\w*\s+([a-zA-Z0-9_\-./]+\.[a-zA-Z]+)"),               # fenced block name
    re.compile(r"""import\s+.*from\s+['"]([^'"]+)['"]"""),
    re.compile(r"""require\(['"]([^'"]+)['"]\)"""),
    re.compile(
        r"""(?:file|path|in)\s*[:=]?\s*[`'"]?([a-zA-Z0-9_\-./]+\.[a-zA-Z]+)[`'"]?""",
        re.IGNORECASE,
    ),
]

_INVALID_REFERENCE_PARTS = ("http", "https", "mailto", "node_modules", "package.json", ".git", ".env")

_JS_IMPORT_RE = re.compile(r"""import\s+.*from\s+['"]([^'"]+)['"]""")
_JS_REQUIRE_RE = re.compile(r"""require\(['"]([^'"]+)['"]\)""")
_PY_FROM_IMPORT_RE = re.compile(r"from\s+([a-zA-Z0-9_.]+)\s+import")
_PY_IMPORT_RE = re.compile(r"^import\s+([a-zA-Z0-9_.]+)", re.MULTILINE)


def is_code_file(path: Union[str, Path]) -> bool:
    return Path(path).suffix in CODE_EXTENSIONS


def _is_valid_reference(candidate: str) -> bool:
    if any(part in candidate for part in _INVALID_REFERENCE_PARTS):
        return False
    if not 3 <= len(candidate) <= 200:
        return False
    return "." in candidate


def _context_key(path: Path, working_dir: Path) -> str:
    try:
        return path.relative_to(working_dir).as_posix()
    except ValueError:
        return path.as_posix()


def target_key(target: Union[str, Path], working_dir: Union[str, Path]) -> str:
    """Key a target or file path the way context and graph keys are keyed.

    Relative paths are normalized; absolute ones are made relative to the
    working directory when they fall under it.
    """
    path = Path(target)
    if not path.is_absolute():
        return posixpath.normpath(path.as_posix())
    try:
        return path.resolve().relative_to(Path(working_dir).resolve()).as_posix()
    except ValueError:
        return path.as_posix()


def _extract_dependencies(content: str, key: str) -> list[str]:
    """Import sources of a file; relative ones resolved against its directory."""
    suffix = posixpath.splitext(key)[1]
    deps: list[str] = []

    if suffix in (".ts", ".tsx", ".js", ".jsx", ".mjs"):
        sources = _JS_IMPORT_RE.findall(content) + _JS_REQUIRE_RE.findall(content)
        for source in sources:
            if source.startswith("."):
                source = posixpath.normpath(posixpath.join(posixpath.dirname(key), source))
            deps.append(source)
    elif suffix == ".py":
        deps.extend(_PY_FROM_IMPORT_RE.findall(content))
        deps.extend(_PY_IMPORT_RE.findall(content))

    return deps


def _add_file(
    session: Session,
    path: Path,
    working_dir: Path,
    layer: FileLayer,
    round_number: Optional[int] = None,
) -> Optional[str]:
    try:
        content = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("Skipping unreadable file %s: %s", path, e)
        return None

    key = _context_key(path, working_dir)
    session.context[key] = FileContext(
        path=key,
        layer=layer,
        added_in_round=round_number,
        dependencies=_extract_dependencies(content, key),
    )
    return key


def initialize_context(session: Session, working_dir: Union[str, Path]) -> list[str]:
    """Collect the base layer from ``session.target``.

    A file target contributes itself; a directory target contributes every
    code file below it, skipping dependency and build directories. A
    missing target leaves the context empty.
    """
    working_dir = Path(working_dir)
    target = Path(session.target)
    if not target.is_absolute():
        target = working_dir / target

    added: list[str] = []
    if target.is_dir():
        for root, dirs, files in os.walk(target):
            dirs[:] = sorted(d for d in dirs if d not in SKIPPED_DIRECTORIES)
            for name in sorted(files):
                if not is_code_file(name):
                    continue
                key = _add_file(session, Path(root) / name, working_dir, FileLayer.BASE)
                if key:
                    added.append(key)
    elif target.is_file():
        key = _add_file(session, target, working_dir, FileLayer.BASE)
        if key:
            added.append(key)
    else:
        logger.warning("Target %s does not exist; context left empty", target)

    logger.info("Session %s: collected %d base files", session.id, len(added))
    return added


def expand_context(
    session: Session,
    files: Iterable[str],
    round_number: int,
    working_dir: Union[str, Path],
) -> list[str]:
    """Add readable referenced files as the discovered layer."""
    working_dir = Path(working_dir)
    added: list[str] = []
    for file in files:
        path = Path(file)
        if not path.is_absolute():
            path = working_dir / path
        if _context_key(path, working_dir) in session.context or not path.is_file():
            continue
        key = _add_file(session, path, working_dir, FileLayer.DISCOVERED, round_number)
        if key:
            added.append(key)
    return added


def extract_file_references(output: str) -> list[str]:
    """File names referenced in free text, in first-seen order."""
    found: dict[str, None] = {}
    for pattern in _FILE_REFERENCE_PATTERNS:
        for match in pattern.finditer(output):
            candidate = match.group(1)
            if _is_valid_reference(candidate):
                found.setdefault(candidate, None)
    return list(found)


def find_new_file_references(output: str, session: Session) -> list[str]:
    """References not yet in context (suffix match in either direction)."""
    known = list(session.context)
    return [
        ref for ref in extract_file_references(output)
        if not any(k == ref or k.endswith(ref) or ref.endswith(k) for k in known)
    ]


def get_context_summary(session: Session) -> str:
    """Markdown summary handed to the next agent as round input."""
    base = [f.path for f in session.context.values() if f.layer == FileLayer.BASE]
    discovered = [
        f"{f.path} (discovered in round {f.added_in_round})"
        for f in session.context.values()
        if f.layer == FileLayer.DISCOVERED
    ]

    lines = [
        "## Verification Context",
        "",
        f"**Target**: {session.target}",
        f"**Requirements**: {session.requirements}",
        "",
        "### Base Files (Layer 0)",
        *[f"- {path}" for path in base],
        "",
        "### Discovered Files (Layer 1)",
        *([f"- {entry}" for entry in discovered] or ["(none yet)"]),
    ]
    return "\n".join(lines)
