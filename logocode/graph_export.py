"""Graph export helpers for D3-style JSON and DOT outputs."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from .models import EdgeKind, GraphEdge, GraphNode, GraphSnapshot, NodeKind
from .session import DiffSession, EdgeStatus, NodeStatus

NODE_GROUPS = {
    NodeKind.FILE: 1,
    NodeKind.FUNCTION: 2,
    NodeKind.CLASS: 3,
    NodeKind.METHOD: 4,
    NodeKind.INTERFACE: 5,
}

EDGE_VALUES = {
    EdgeKind.IMPORT: 1,
    EdgeKind.EXTENDS: 3,
    EdgeKind.IMPLEMENTS: 2,
    EdgeKind.CONTAINS: 1,
}

NODE_COLORS = {
    NodeKind.FILE: "#5B8DEF",
    NodeKind.FUNCTION: "#E8915A",
    NodeKind.CLASS: "#5EC269",
    NodeKind.METHOD: "#E06C75",
    NodeKind.INTERFACE: "#B07CD8",
}

EDGE_COLORS = {
    EdgeKind.IMPORT: "#5B8DEF",
    EdgeKind.EXTENDS: "#E06C75",
    EdgeKind.IMPLEMENTS: "#B07CD8",
    EdgeKind.CONTAINS: "#8B8B8B",
}

STATUS_COLORS = {
    "added": "#2EA043",
    "removed": "#F85149",
    "changed": "#D29922",
    "touched": "#58A6FF",
}

DEFAULT_COLOR = "#8B8B8B"


def to_d3(snapshot: GraphSnapshot, session: Optional[DiffSession] = None) -> Dict[str, List[Dict[str, Any]]]:
    """D3 force-layout payload; with *session*, each item carries its diff status."""
    nodes = []
    for node in snapshot.nodes:
        item = node.to_dict()
        item["type"] = node.kind.value
        item["group"] = NODE_GROUPS.get(node.kind, 0)
        item["color"] = NODE_COLORS.get(node.kind, DEFAULT_COLOR)
        if session is not None:
            item["status"] = session.node_status_by_id.get(node.id, NodeStatus.UNCHANGED).value
        nodes.append(item)

    links = []
    for edge in snapshot.edges:
        item = edge.to_dict()
        item["type"] = edge.kind.value
        item["value"] = EDGE_VALUES.get(edge.kind, 1)
        item["color"] = EDGE_COLORS.get(edge.kind, DEFAULT_COLOR)
        if session is not None:
            item["status"] = session.edge_status_by_key.get(edge.id, EdgeStatus.UNCHANGED).value
        links.append(item)

    return {"nodes": nodes, "links": links}


def export_json(
    snapshot: GraphSnapshot,
    output_file: Path,
    session: Optional[DiffSession] = None,
) -> None:
    output_file.write_text(json.dumps(to_d3(snapshot, session), indent=2), encoding="utf-8")


def export_dot(
    snapshot: GraphSnapshot,
    output_file: Optional[Path] = None,
    focus: str = "",
    session: Optional[DiffSession] = None,
) -> str:
    """Render *snapshot* as Graphviz DOT, writing it to *output_file* if given.

    With *session*, nodes and edges that are not unchanged are colored by
    their diff status.
    """
    nodes = {n.id: n for n in snapshot.nodes}
    selected = _focused_subgraph(nodes, snapshot.edges, focus)

    lines = ["digraph LogoCode {"]
    lines.append("  rankdir=LR;")

    for node_id in selected["nodes"]:
        node = nodes[node_id]
        label = f"{node.kind.value}\\n{node.label}"
        attrs = [f'label="{_esc(label)}"']
        status = session.node_status_by_id.get(node_id) if session else None
        if status is not None and status is not NodeStatus.UNCHANGED:
            attrs.append(f'color="{STATUS_COLORS[status.value]}"')
            attrs.append("style=bold")
        lines.append(f'  "{_esc(node_id)}" [{", ".join(attrs)}];')

    for edge in selected["edges"]:
        attrs = [f'label="{_esc(edge.label or edge.kind.value)}"']
        status = session.edge_status_by_key.get(edge.id) if session else None
        if status is not None and status is not EdgeStatus.UNCHANGED:
            attrs.append(f'color="{STATUS_COLORS[status.value]}"')
        lines.append(f'  "{_esc(edge.source)}" -> "{_esc(edge.target)}" [{", ".join(attrs)}];')

    lines.append("}")
    doc = "\n".join(lines)
    if output_file is not None:
        output_file.write_text(doc, encoding="utf-8")
    return doc


def _focused_subgraph(
    nodes: Dict[str, GraphNode],
    edges: List[GraphEdge],
    focus: str,
) -> Dict[str, List]:
    known_edges = [e for e in edges if e.source in nodes and e.target in nodes]
    if not focus:
        return {"nodes": list(nodes), "edges": known_edges}

    focus_ids = {
        node_id
        for node_id, node in nodes.items()
        if focus in node_id or focus in node.label
    }
    if not focus_ids:
        return {"nodes": list(nodes), "edges": known_edges}

    edge_subset = [e for e in known_edges if e.source in focus_ids or e.target in focus_ids]
    node_subset = set(focus_ids)
    for e in edge_subset:
        node_subset.add(e.source)
        node_subset.add(e.target)
    return {"nodes": sorted(node_subset), "edges": edge_subset}


def _esc(text: str) -> str:
    return text.replace('"', '\\"')
