"""Dependency graph models produced by the code relationship analyzer."""

from typing import Optional

from pydantic import BaseModel, Field

from src.models.enums import EdgeKind, ExportKind


class ImportInfo(BaseModel):
    """A single import statement or dynamic ``import()`` call."""

    source: str = Field(..., description="Module specifier as written")
    specifiers: list[str] = Field(default_factory=list)
    is_default: bool = False
    is_dynamic: bool = False
    line: int = Field(..., ge=1)

    @property
    def is_local(self) -> bool:
        """Relative or root-relative imports belong to the project."""
        return self.source.startswith((".", "/"))


class ExportInfo(BaseModel):
    """A single exported binding."""

    name: str
    is_default: bool = False
    kind: ExportKind = ExportKind.VARIABLE
    line: int = Field(..., ge=1)


class FunctionInfo(BaseModel):
    """A function declaration or arrow function bound to a name."""

    name: str
    line: int = Field(..., ge=1)
    end_line: int = Field(..., ge=1)
    calls: list[str] = Field(default_factory=list)
    is_async: bool = False
    is_exported: bool = False
    parameters: list[str] = Field(default_factory=list)


class ClassInfo(BaseModel):
    """A class declaration."""

    name: str
    line: int = Field(..., ge=1)
    end_line: int = Field(..., ge=1)
    methods: list[str] = Field(default_factory=list)
    extends: Optional[str] = None
    implements: list[str] = Field(default_factory=list)
    is_exported: bool = False


class DependencyNode(BaseModel):
    """Everything the analyzer extracted from one source file."""

    path: str
    imports: list[ImportInfo] = Field(default_factory=list)
    exports: list[ExportInfo] = Field(default_factory=list)
    functions: list[FunctionInfo] = Field(default_factory=list)
    classes: list[ClassInfo] = Field(default_factory=list)

    def get_function(self, name: str) -> Optional[FunctionInfo]:
        for fn in self.functions:
            if fn.name == name:
                return fn
        return None


class DependencyEdge(BaseModel):
    """A resolved same-project import from one file to another."""

    from_file: str
    to_file: str
    kind: EdgeKind = EdgeKind.IMPORT
    specifiers: list[str] = Field(default_factory=list)


class GraphStats(BaseModel):
    """Size of a dependency graph."""

    total_nodes: int
    total_edges: int
    circular_deps: int
