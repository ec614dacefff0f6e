"""DiffEngine: structural diff between two graph snapshots."""

from __future__ import annotations

import difflib
import logging
from typing import Dict, List, Sequence

from .models import GraphEdge, GraphNode, GraphSnapshot
from .session import DiffSession, EdgeStatus, FilePatch, NodeStatus

logger = logging.getLogger(__name__)


class DiffEngine:
    """Classifies every node and edge of two snapshots.

    Inputs are never mutated; each call returns a new, independently owned
    :class:`DiffSession`.
    """

    def compute_diff(
        self,
        before: GraphSnapshot,
        after: GraphSnapshot,
        patches: Sequence[FilePatch],
    ) -> DiffSession:
        """Compute the full diff between *before* and *after*.

        Args:
            before: Snapshot of the current workspace
            after: Snapshot with the patches applied
            patches: File-level patches; their paths are the touched files

        Returns:
            DiffSession with node / edge statuses and an accept map
            initialised to False for every patched file
        """
        before_nodes: Dict[str, GraphNode] = {n.id: n for n in before.nodes}
        after_nodes: Dict[str, GraphNode] = {n.id: n for n in after.nodes}
        before_edges: Dict[str, GraphEdge] = {e.id: e for e in before.edges}
        after_edges: Dict[str, GraphEdge] = {e.id: e for e in after.edges}
        touched_files = {p.file_path for p in patches}

        added_nodes = [nid for nid in after_nodes if nid not in before_nodes]
        removed_nodes = [nid for nid in before_nodes if nid not in after_nodes]
        changed_nodes = [
            nid for nid, node in after_nodes.items()
            if nid in before_nodes and _node_changed(before_nodes[nid], node)
        ]
        added_edges = [eid for eid in after_edges if eid not in before_edges]
        removed_edges = [eid for eid in before_edges if eid not in after_edges]

        added_set = set(added_nodes)
        removed_set = set(removed_nodes)
        changed_set = set(changed_nodes)

        node_status: Dict[str, NodeStatus] = {}
        for nid in _union(before_nodes, after_nodes):
            if nid in added_set:
                node_status[nid] = NodeStatus.ADDED
            elif nid in removed_set:
                node_status[nid] = NodeStatus.REMOVED
            elif nid in changed_set:
                node_status[nid] = NodeStatus.CHANGED
            else:
                node = after_nodes.get(nid) or before_nodes[nid]
                if node.file_path in touched_files:
                    node_status[nid] = NodeStatus.TOUCHED
                else:
                    node_status[nid] = NodeStatus.UNCHANGED

        added_edge_set = set(added_edges)
        removed_edge_set = set(removed_edges)
        edge_status: Dict[str, EdgeStatus] = {}
        for eid in _union(before_edges, after_edges):
            if eid in added_edge_set:
                edge_status[eid] = EdgeStatus.ADDED
            elif eid in removed_edge_set:
                edge_status[eid] = EdgeStatus.REMOVED
            else:
                edge_status[eid] = EdgeStatus.UNCHANGED

        accepted: Dict[str, bool] = {}
        for patch in patches:
            accepted.setdefault(patch.file_path, False)

        logger.debug(
            "Diff: +%d -%d ~%d nodes, +%d -%d edges, %d touched file(s)",
            len(added_nodes), len(removed_nodes), len(changed_nodes),
            len(added_edges), len(removed_edges), len(accepted),
        )
        return DiffSession(
            before=before,
            after=after,
            added_nodes=added_nodes,
            removed_nodes=removed_nodes,
            changed_nodes=changed_nodes,
            added_edges=added_edges,
            removed_edges=removed_edges,
            node_status_by_id=node_status,
            edge_status_by_key=edge_status,
            patches=list(patches),
            _accepted=accepted,
        )

    # ------------------------------------------------------------------
    # Text previews
    # ------------------------------------------------------------------

    def create_diff(self, original: str, modified: str, filename: str = "file") -> str:
        """Create unified diff between two versions.

        Args:
            original: Original content
            modified: Modified content
            filename: Name of file for diff header

        Returns:
            Unified diff string
        """
        diff = difflib.unified_diff(
            original.splitlines(keepends=True),
            modified.splitlines(keepends=True),
            fromfile=f"a/{filename}",
            tofile=f"b/{filename}",
        )
        return "".join(diff)

    def preview_session(self, session: DiffSession) -> str:
        """Render every patch of *session* with its accept flag."""
        lines: List[str] = []
        summary = session.summary()
        lines.append(
            f"Diff: {summary['files']} file(s), "
            f"{summary['added']} added / {summary['removed']} removed / "
            f"{summary['changed']} changed / {summary['touched']} touched node(s)"
        )
        lines.append("")
        for patch in session.patches:
            mark = "x" if session.is_accepted(patch.file_path) else " "
            lines.append("=" * 60)
            lines.append(f"[{mark}] {patch.file_path}")
            lines.append("=" * 60)
            lines.append(self.create_diff(patch.original_content, patch.patched_content, patch.file_path))
        return "\n".join(lines)


def _node_changed(before: GraphNode, after: GraphNode) -> bool:
    # shallow comparison; metadata is ignored
    return (
        before.label != after.label
        or before.kind != after.kind
        or before.line != after.line
        or before.column != after.column
    )


def _union(first: Dict[str, object], second: Dict[str, object]) -> List[str]:
    ids = list(first)
    ids.extend(k for k in second if k not in first)
    return ids
