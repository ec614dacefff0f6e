"""Core data models: structural facts from parsing and graph snapshots."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Union


# ===================================================================
# Structural facts (produced once per analysis pass)
# ===================================================================

@dataclass(frozen=True)
class FileInfo:
    path: str
    content: str = field(default="", repr=False)


@dataclass(frozen=True)
class FunctionInfo:
    name: str
    file_path: str
    line: int
    column: int
    is_exported: bool = False
    is_async: bool = False
    parameters: Tuple[str, ...] = ()
    return_type: Optional[str] = None


@dataclass(frozen=True)
class MethodInfo:
    name: str
    file_path: str
    line: int
    column: int
    is_public: bool = True
    is_static: bool = False
    is_async: bool = False
    parameters: Tuple[str, ...] = ()
    return_type: Optional[str] = None


@dataclass(frozen=True)
class PropertyInfo:
    name: str
    file_path: str
    line: int
    column: int
    type: Optional[str] = None
    is_public: bool = True
    is_static: bool = False


@dataclass(frozen=True)
class ClassInfo:
    name: str
    file_path: str
    line: int
    column: int
    is_exported: bool = False
    is_abstract: bool = False
    extends: Optional[str] = None
    implements: Tuple[str, ...] = ()
    methods: Tuple[MethodInfo, ...] = ()
    properties: Tuple[PropertyInfo, ...] = ()


@dataclass(frozen=True)
class InterfaceInfo:
    name: str
    file_path: str
    line: int
    column: int
    is_exported: bool = False
    extends: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ImportInfo:
    """One import declaration.

    ``source`` is the resolved, workspace-relative path for relative
    specifiers that exist on disk, otherwise the raw specifier.
    """
    file_path: str
    specifier: str
    source: str
    names: Tuple[str, ...] = ()
    is_default: bool = False
    is_namespace: bool = False
    is_relative: bool = False


@dataclass(frozen=True)
class ExportInfo:
    name: str
    kind: str  # "named", "default", "namespace"
    file_path: str
    line: int
    column: int


@dataclass(frozen=True)
class Diagnostic:
    """A failure that was absorbed while analysing one file or syntax node."""
    file_path: str
    message: str
    line: int = 0
    column: int = 0
    node_type: str = ""

    def __str__(self) -> str:
        where = f"{self.file_path}:{self.line}:{self.column}" if self.line else self.file_path
        suffix = f" ({self.node_type})" if self.node_type else ""
        return f"{where}{suffix}: {self.message}"


@dataclass
class AnalysisResult:
    files: List[FileInfo] = field(default_factory=list)
    functions: List[FunctionInfo] = field(default_factory=list)
    classes: List[ClassInfo] = field(default_factory=list)
    interfaces: List[InterfaceInfo] = field(default_factory=list)
    imports: List[ImportInfo] = field(default_factory=list)
    exports: List[ExportInfo] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)

    def counts(self) -> Dict[str, int]:
        return {
            "files": len(self.files),
            "functions": len(self.functions),
            "classes": len(self.classes),
            "interfaces": len(self.interfaces),
            "imports": len(self.imports),
            "exports": len(self.exports),
            "diagnostics": len(self.diagnostics),
        }


# ===================================================================
# Graph model
# ===================================================================

class NodeKind(str, Enum):
    FILE = "file"
    FUNCTION = "function"
    CLASS = "class"
    METHOD = "method"
    INTERFACE = "interface"


class EdgeKind(str, Enum):
    IMPORT = "import"
    EXTENDS = "extends"
    IMPLEMENTS = "implements"
    CONTAINS = "contains"


def file_node_id(path: str) -> str:
    return f"file:{path}"


def function_node_id(path: str, name: str) -> str:
    return f"function:{path}:{name}"


def class_node_id(path: str, name: str) -> str:
    return f"class:{path}:{name}"


def interface_node_id(path: str, name: str) -> str:
    return f"interface:{path}:{name}"


def method_node_id(path: str, class_name: str, method_name: str) -> str:
    return f"method:{path}:{class_name}.{method_name}"


def make_edge_id(kind: EdgeKind, source: str, target: str) -> str:
    """Deterministic edge key used for diff matching."""
    return f"{kind.value}:{source}->{target}"


@dataclass
class GraphNode:
    """Common contract shared by every node kind."""
    id: str
    label: str
    file_path: str
    line: Optional[int] = None
    column: Optional[int] = None
    parent_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    kind: ClassVar[NodeKind]

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.id,
            "label": self.label,
            "kind": self.kind.value,
            "filePath": self.file_path,
        }
        if self.line is not None:
            payload["line"] = self.line
        if self.column is not None:
            payload["column"] = self.column
        if self.parent_id is not None:
            payload["parentId"] = self.parent_id
        payload["metadata"] = dict(self.metadata)
        return payload


@dataclass
class FileNode(GraphNode):
    kind: ClassVar[NodeKind] = NodeKind.FILE


@dataclass
class FunctionNode(GraphNode):
    kind: ClassVar[NodeKind] = NodeKind.FUNCTION


@dataclass
class ClassNode(GraphNode):
    kind: ClassVar[NodeKind] = NodeKind.CLASS


@dataclass
class MethodNode(GraphNode):
    kind: ClassVar[NodeKind] = NodeKind.METHOD


@dataclass
class InterfaceNode(GraphNode):
    kind: ClassVar[NodeKind] = NodeKind.INTERFACE


AnyNode = Union[FileNode, FunctionNode, ClassNode, MethodNode, InterfaceNode]


@dataclass
class GraphEdge:
    id: str
    source: str
    target: str
    label: Optional[str] = None

    kind: ClassVar[EdgeKind]

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.id,
            "source": self.source,
            "target": self.target,
            "kind": self.kind.value,
        }
        if self.label is not None:
            payload["label"] = self.label
        return payload


@dataclass
class ImportEdge(GraphEdge):
    kind: ClassVar[EdgeKind] = EdgeKind.IMPORT


@dataclass
class ExtendsEdge(GraphEdge):
    kind: ClassVar[EdgeKind] = EdgeKind.EXTENDS


@dataclass
class ImplementsEdge(GraphEdge):
    kind: ClassVar[EdgeKind] = EdgeKind.IMPLEMENTS


@dataclass
class ContainsEdge(GraphEdge):
    kind: ClassVar[EdgeKind] = EdgeKind.CONTAINS


AnyEdge = Union[ImportEdge, ExtendsEdge, ImplementsEdge, ContainsEdge]


@dataclass
class GraphSnapshot:
    """A complete, self-contained graph state at one point in time."""
    nodes: List[GraphNode] = field(default_factory=list)
    edges: List[GraphEdge] = field(default_factory=list)

    @classmethod
    def empty(cls) -> "GraphSnapshot":
        return cls(nodes=[], edges=[])

    def node_ids(self) -> List[str]:
        return [n.id for n in self.nodes]

    def edge_ids(self) -> List[str]:
        return [e.id for e in self.edges]

    def node(self, node_id: str) -> Optional[GraphNode]:
        for n in self.nodes:
            if n.id == node_id:
                return n
        return None

    def edge(self, edge_id: str) -> Optional[GraphEdge]:
        for e in self.edges:
            if e.id == edge_id:
                return e
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
        }
