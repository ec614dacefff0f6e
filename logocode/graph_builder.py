"""Assemble structural facts into an identity-stable dependency graph."""

from __future__ import annotations

import logging
import posixpath
from abc import ABC, abstractmethod
from typing import Dict, Mapping, Optional, Sequence

from .models import (
    AnalysisResult,
    ClassInfo,
    ClassNode,
    ContainsEdge,
    EdgeKind,
    ExtendsEdge,
    FileNode,
    FunctionNode,
    GraphEdge,
    GraphNode,
    GraphSnapshot,
    ImplementsEdge,
    ImportEdge,
    InterfaceInfo,
    InterfaceNode,
    MethodNode,
    NodeKind,
    class_node_id,
    file_node_id,
    function_node_id,
    interface_node_id,
    make_edge_id,
    method_node_id,
)

logger = logging.getLogger(__name__)


class SymbolResolver(ABC):
    """Strategy for mapping a referenced name to a graph node id.

    *hint_path* is the module the name most likely lives in: the resolved
    import source for imports, the referencing file for inheritance.
    """

    @abstractmethod
    def resolve(
        self,
        name: str,
        kinds: Sequence[NodeKind],
        nodes: Mapping[str, GraphNode],
        hint_path: Optional[str] = None,
    ) -> Optional[str]:
        ...


class NameOnlyResolver(SymbolResolver):
    """First node, in insertion order, whose label and kind match.

    Not scope-aware: two files defining the same name always resolve to
    whichever was inserted first, regardless of the import path.
    """

    def resolve(
        self,
        name: str,
        kinds: Sequence[NodeKind],
        nodes: Mapping[str, GraphNode],
        hint_path: Optional[str] = None,
    ) -> Optional[str]:
        for node_id, node in nodes.items():
            if node.label == name and node.kind in kinds:
                return node_id
        return None


class GraphBuilder:
    """Builds a :class:`GraphSnapshot` from an :class:`AnalysisResult`.

    ``build`` is a pure function of its input: every call starts from fresh
    local collections, so no state leaks between invocations.
    """

    def __init__(self, resolver: Optional[SymbolResolver] = None) -> None:
        self.resolver = resolver or NameOnlyResolver()

    def build(self, result: AnalysisResult) -> GraphSnapshot:
        nodes: Dict[str, GraphNode] = {}
        edges: Dict[str, GraphEdge] = {}

        # 1. File nodes
        for file in result.files:
            _add_node(nodes, _file_node(file.path))

        # 2. Function nodes
        for fn in result.functions:
            _add_node(nodes, FunctionNode(
                id=function_node_id(fn.file_path, fn.name),
                label=fn.name,
                file_path=fn.file_path,
                line=fn.line,
                column=fn.column,
                parent_id=file_node_id(fn.file_path),
                metadata={
                    "is_exported": fn.is_exported,
                    "is_async": fn.is_async,
                    "parameters": list(fn.parameters),
                    "return_type": fn.return_type,
                },
            ))

        # 3. Class + method nodes, then interfaces
        for cls in result.classes:
            self._add_class(nodes, cls)
        for iface in result.interfaces:
            _add_node(nodes, InterfaceNode(
                id=interface_node_id(iface.file_path, iface.name),
                label=iface.name,
                file_path=iface.file_path,
                line=iface.line,
                column=iface.column,
                parent_id=file_node_id(iface.file_path),
                metadata={"is_exported": iface.is_exported, "extends": list(iface.extends)},
            ))

        # 4. Import edges
        for imp in result.imports:
            source_id = file_node_id(imp.file_path)
            if source_id not in nodes:
                _add_node(nodes, _file_node(imp.file_path))
            for name in imp.names:
                target_id = self.resolver.resolve(
                    name, (NodeKind.FUNCTION, NodeKind.CLASS), nodes, hint_path=imp.source,
                )
                if target_id is None:
                    continue
                _add_edge(edges, ImportEdge(
                    id=make_edge_id(EdgeKind.IMPORT, source_id, target_id),
                    source=source_id,
                    target=target_id,
                    label=name,
                ))

        # 5. Inheritance edges
        for cls in result.classes:
            self._add_inheritance(nodes, edges, cls)
        for iface in result.interfaces:
            self._add_interface_extends(nodes, edges, iface)

        # 6. Containment edges
        for node_id, node in list(nodes.items()):
            if node.parent_id and node.parent_id in nodes:
                _add_edge(edges, ContainsEdge(
                    id=make_edge_id(EdgeKind.CONTAINS, node.parent_id, node_id),
                    source=node.parent_id,
                    target=node_id,
                ))

        snapshot = GraphSnapshot(nodes=list(nodes.values()), edges=list(edges.values()))
        logger.info("Graph: %d nodes, %d edges", len(snapshot.nodes), len(snapshot.edges))
        return snapshot

    # ------------------------------------------------------------------

    @staticmethod
    def _add_class(nodes: Dict[str, GraphNode], cls: ClassInfo) -> None:
        class_id = class_node_id(cls.file_path, cls.name)
        _add_node(nodes, ClassNode(
            id=class_id,
            label=cls.name,
            file_path=cls.file_path,
            line=cls.line,
            column=cls.column,
            parent_id=file_node_id(cls.file_path),
            metadata={
                "is_exported": cls.is_exported,
                "is_abstract": cls.is_abstract,
                "extends": cls.extends,
                "implements": list(cls.implements),
                "properties": [p.name for p in cls.properties],
            },
        ))
        for method in cls.methods:
            _add_node(nodes, MethodNode(
                id=method_node_id(method.file_path, cls.name, method.name),
                label=f"{cls.name}.{method.name}",
                file_path=method.file_path,
                line=method.line,
                column=method.column,
                parent_id=class_id,
                metadata={
                    "is_public": method.is_public,
                    "is_static": method.is_static,
                    "is_async": method.is_async,
                    "parameters": list(method.parameters),
                },
            ))

    def _add_inheritance(
        self,
        nodes: Dict[str, GraphNode],
        edges: Dict[str, GraphEdge],
        cls: ClassInfo,
    ) -> None:
        class_id = class_node_id(cls.file_path, cls.name)
        if cls.extends:
            parent_id = self.resolver.resolve(cls.extends, (NodeKind.CLASS,), nodes, cls.file_path)
            if parent_id:
                _add_edge(edges, ExtendsEdge(
                    id=make_edge_id(EdgeKind.EXTENDS, class_id, parent_id),
                    source=class_id,
                    target=parent_id,
                    label="extends",
                ))
        for iface in cls.implements:
            # TypeScript also allows implementing a class
            target_id = (
                self.resolver.resolve(iface, (NodeKind.INTERFACE,), nodes, cls.file_path)
                or self.resolver.resolve(iface, (NodeKind.CLASS,), nodes, cls.file_path)
            )
            if target_id:
                _add_edge(edges, ImplementsEdge(
                    id=make_edge_id(EdgeKind.IMPLEMENTS, class_id, target_id),
                    source=class_id,
                    target=target_id,
                    label="implements",
                ))

    def _add_interface_extends(
        self,
        nodes: Dict[str, GraphNode],
        edges: Dict[str, GraphEdge],
        iface: InterfaceInfo,
    ) -> None:
        iface_id = interface_node_id(iface.file_path, iface.name)
        for base in iface.extends:
            base_id = self.resolver.resolve(base, (NodeKind.INTERFACE,), nodes, iface.file_path)
            if base_id:
                _add_edge(edges, ExtendsEdge(
                    id=make_edge_id(EdgeKind.EXTENDS, iface_id, base_id),
                    source=iface_id,
                    target=base_id,
                    label="extends",
                ))


def build_graph(result: AnalysisResult, resolver: Optional[SymbolResolver] = None) -> GraphSnapshot:
    return GraphBuilder(resolver).build(result)


def _file_node(path: str) -> FileNode:
    return FileNode(
        id=file_node_id(path),
        label=posixpath.basename(path),
        file_path=path,
        metadata={"full_path": path},
    )


def _add_node(nodes: Dict[str, GraphNode], node: GraphNode) -> None:
    # first writer wins
    if node.id not in nodes:
        nodes[node.id] = node


def _add_edge(edges: Dict[str, GraphEdge], edge: GraphEdge) -> None:
    if edge.id not in edges:
        edges[edge.id] = edge
