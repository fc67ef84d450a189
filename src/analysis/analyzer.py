"""
Code Relationship Analyzer

Best-effort, line-oriented scan of JavaScript/TypeScript sources. There is
no real parser behind it: imports, exports, functions and classes are
recognised by regular expressions, and function/class extents are found
by counting braces. Every downstream signal is advisory, so a missed
construct only weakens a hint.

Usage:
    node = analyze_file("src/api/routes.ts")
    if node:
        print([imp.source for imp in node.imports])
"""

import logging
import re
from pathlib import Path
from typing import Optional, Union

from src.models.enums import ExportKind
from src.models.graph import (
    ClassInfo,
    DependencyNode,
    ExportInfo,
    FunctionInfo,
    ImportInfo,
)

logger = logging.getLogger(__name__)

SOURCE_EXTENSIONS = frozenset({".ts", ".tsx", ".js", ".jsx", ".mjs"})


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Patterns
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

# import x, { a, b as c } from 'y' / import * as ns from 'y'
_STATIC_IMPORT_RE = re.compile(
    r"""^import\s+(?:(\w+)\s*,?\s*)?(?:\{([^}]*)\}|\*\s+as\s+(\w+))?\s*from\s*['"]([^'"]+)['"]"""
)
_DEFAULT_IMPORT_RE = re.compile(r"""^import\s+(\w+)\s+from\s*['"]([^'"]+)['"]""")
_SIDE_EFFECT_IMPORT_RE = re.compile(r"""^import\s*['"]([^'"]+)['"]""")
_DYNAMIC_IMPORT_RE = re.compile(r"""(?:await\s+)?import\s*\(\s*['"]([^'"]+)['"]\s*\)""")

_RE_EXPORT_RE = re.compile(r"""^export\s*(?:\{[^}]*\}|\*)\s*from\s*['"]([^'"]+)['"]""")
_DEFAULT_EXPORT_RE = re.compile(r"^export\s+default\s+(?:(function|class)\s+)?(\w+)?")
_NAMED_EXPORT_RE = re.compile(
    r"^export\s+(?:declare\s+)?(?:async\s+)?(const|let|var|function|class|type|interface|enum)\s+(\w+)"
)
_EXPORT_LIST_RE = re.compile(r"^export\s*\{([^}]+)\}")

_FUNCTION_DECL_RE = re.compile(r"^(export\s+)?(async\s+)?function\s*\*?\s*(\w+)\s*\(([^)]*)\)")
_ARROW_FUNCTION_RE = re.compile(
    r"^(export\s+)?(?:const|let|var)\s+(\w+)\s*(?::\s*[^=]+)?=\s*(async\s*)?\(([^)]*)\)\s*(?::\s*[^=]+)?\s*=>"
)
_CALL_RE = re.compile(r"(\w+)\s*\(")

_CLASS_RE = re.compile(
    r"^(export\s+)?(?:default\s+)?(?:abstract\s+)?class\s+(\w+)"
    r"(?:\s+extends\s+([\w.]+))?(?:\s+implements\s+([^{]+))?\s*\{"
)
_METHOD_RE = re.compile(
    r"^(?:(?:public|private|protected|static|readonly|override|get|set)\s+)*(async\s+)?(\w+)\s*\([^)]*\)"
)

_AS_RE = re.compile(r"\s+as\s+")

# Identifiers followed by "(" that are statements, not calls.
_NON_CALL_KEYWORDS = frozenset({
    "if", "for", "while", "switch", "catch", "function", "return", "typeof", "constructor",
})


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Entry point
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def is_source_file(path: Union[str, Path]) -> bool:
    return Path(path).suffix in SOURCE_EXTENSIONS


def analyze_file(path: Union[str, Path]) -> Optional[DependencyNode]:
    """Extract a :class:`DependencyNode` from one source file.

    Args:
        path: File to analyze.

    Returns:
        The node, or None for non-source extensions and unreadable files.
        A missing file is expected and stays silent; any other read error
        is logged.
    """
    path = Path(path)
    if not is_source_file(path):
        return None

    try:
        content = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("Failed to analyze file %s: %s", path, e)
        return None

    return analyze_source(content, path=str(path))


def analyze_source(content: str, path: str = "<source>") -> DependencyNode:
    """Analyze already-loaded source text."""
    lines = content.splitlines()
    return DependencyNode(
        path=path,
        imports=extract_imports(lines),
        exports=extract_exports(lines),
        functions=extract_functions(lines),
        classes=extract_classes(lines),
    )


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Imports / exports
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def _split_names(names: str) -> list[str]:
    """``"a, b as c"`` -> ``["a", "b"]``"""
    result = []
    for item in names.split(","):
        name = _AS_RE.split(item.strip())[0].strip()
        if name:
            result.append(name)
    return result


def extract_imports(lines: list[str]) -> list[ImportInfo]:
    imports: list[ImportInfo] = []

    for idx, line in enumerate(lines, start=1):
        stripped = line.strip()

        static_match = _STATIC_IMPORT_RE.match(stripped)
        if static_match:
            default_name, named, namespace, source = static_match.groups()
            specifiers: list[str] = []
            if default_name:
                specifiers.append(default_name)
            if named:
                specifiers.extend(_split_names(named))
            if namespace:
                specifiers.append(f"* as {namespace}")
            imports.append(ImportInfo(
                source=source,
                specifiers=specifiers,
                is_default=bool(default_name) and not named,
                line=idx,
            ))
            continue

        default_match = _DEFAULT_IMPORT_RE.match(stripped)
        if default_match:
            imports.append(ImportInfo(
                source=default_match.group(2),
                specifiers=[default_match.group(1)],
                is_default=True,
                line=idx,
            ))
            continue

        side_effect = _SIDE_EFFECT_IMPORT_RE.match(stripped)
        if side_effect and "from" not in stripped:
            imports.append(ImportInfo(source=side_effect.group(1), line=idx))

        for dynamic in _DYNAMIC_IMPORT_RE.finditer(line):
            imports.append(ImportInfo(source=dynamic.group(1), is_dynamic=True, line=idx))

    return imports


def extract_exports(lines: list[str]) -> list[ExportInfo]:
    exports: list[ExportInfo] = []

    for idx, line in enumerate(lines, start=1):
        stripped = line.strip()

        if _RE_EXPORT_RE.match(stripped):
            exports.append(ExportInfo(name="*", kind=ExportKind.RE_EXPORT, line=idx))
            continue

        default_match = _DEFAULT_EXPORT_RE.match(stripped)
        if default_match:
            keyword, name = default_match.groups()
            kind = ExportKind(keyword) if keyword else ExportKind.VARIABLE
            exports.append(ExportInfo(
                name=name or "default",
                is_default=True,
                kind=kind,
                line=idx,
            ))
            continue

        named_match = _NAMED_EXPORT_RE.match(stripped)
        if named_match:
            keyword, name = named_match.groups()
            if keyword in ("function", "class"):
                kind = ExportKind(keyword)
            elif keyword in ("type", "interface"):
                kind = ExportKind.TYPE
            else:
                kind = ExportKind.VARIABLE
            exports.append(ExportInfo(name=name, kind=kind, line=idx))
            continue

        list_match = _EXPORT_LIST_RE.match(stripped)
        if list_match:
            for name in _split_names(list_match.group(1)):
                exports.append(ExportInfo(name=name, line=idx))

    return exports


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Functions / classes
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def _brace_delta(line: str) -> tuple[int, int]:
    return line.count("{"), line.count("}")


def _parameters(raw: str) -> list[str]:
    params = []
    for part in raw.split(","):
        match = re.match(r"^(?:\.\.\.)?(\w+)", part.strip())
        if match:
            params.append(match.group(1))
    return params


def _collect_calls(text: str, calls: list[str]) -> None:
    for match in _CALL_RE.finditer(text):
        name = match.group(1)
        if name not in _NON_CALL_KEYWORDS and name not in calls:
            calls.append(name)


def extract_functions(lines: list[str]) -> list[FunctionInfo]:
    """Top-level function declarations and arrow functions.

    The body of a function runs from its header until the braces opened
    after it balance again; nested functions are folded into the
    enclosing one, so their calls count as calls of the outer function.
    """
    functions: list[FunctionInfo] = []
    current: Optional[dict] = None
    depth = 0
    opened = False

    for idx, line in enumerate(lines, start=1):
        stripped = line.strip()

        if current is None:
            decl = _FUNCTION_DECL_RE.match(stripped)
            arrow = None if decl else _ARROW_FUNCTION_RE.match(stripped)
            if decl is None and arrow is None:
                continue

            if decl:
                exported, is_async, name, params = decl.groups()
                body = stripped[decl.end():]
            else:
                exported, name, is_async, params = arrow.groups()
                body = stripped[arrow.end():]

            current = {
                "name": name,
                "line": idx,
                "is_async": bool(is_async),
                "is_exported": bool(exported),
                "parameters": _parameters(params),
                "calls": [],
                "is_arrow": decl is None,
            }
            opens, closes = _brace_delta(stripped)
            depth = opens - closes
            opened = opens > 0
            _collect_calls(body, current["calls"])
        else:
            opens, closes = _brace_delta(line)
            depth += opens - closes
            opened = opened or opens > 0
            _collect_calls(line, current["calls"])

        # Expression-bodied arrows end on their own line
        single_line_arrow = current["is_arrow"] and not opened
        if single_line_arrow or (opened and depth <= 0):
            current.pop("is_arrow")
            functions.append(FunctionInfo(end_line=idx, **current))
            current = None
            depth = 0
            opened = False

    if current is not None:
        current.pop("is_arrow")
        functions.append(FunctionInfo(end_line=max(len(lines), current["line"]), **current))

    return functions


def extract_classes(lines: list[str]) -> list[ClassInfo]:
    """Classes with their methods (members declared at class-body depth)."""
    classes: list[ClassInfo] = []
    current: Optional[dict] = None
    depth = 0

    for idx, line in enumerate(lines, start=1):
        stripped = line.strip()

        if current is None:
            match = _CLASS_RE.match(stripped)
            if not match:
                continue
            exported, name, extends, implements = match.groups()
            current = {
                "name": name,
                "line": idx,
                "is_exported": bool(exported),
                "extends": extends,
                "implements": [s.strip() for s in implements.split(",") if s.strip()]
                if implements else [],
                "methods": [],
            }
            opens, closes = _brace_delta(stripped)
            depth = opens - closes
        else:
            if depth == 1:
                method = _METHOD_RE.match(stripped)
                if method:
                    name = method.group(2)
                    if name not in _NON_CALL_KEYWORDS and name not in current["methods"]:
                        current["methods"].append(name)
            opens, closes = _brace_delta(line)
            depth += opens - closes

        if depth <= 0:
            classes.append(ClassInfo(end_line=idx, **current))
            current = None
            depth = 0

    if current is not None:
        classes.append(ClassInfo(end_line=max(len(lines), current["line"]), **current))

    return classes
