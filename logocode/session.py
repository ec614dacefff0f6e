"""Workflow models for the plan -> diff -> apply cycle."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Literal, Mapping, Optional

from .errors import StaleSessionError
from .models import GraphSnapshot


class Phase(str, Enum):
    IDLE = "idle"
    PLANNING = "planning"
    DIFFING = "diffing"
    REVIEWING = "reviewing"
    APPLYING = "applying"


class NodeStatus(str, Enum):
    ADDED = "added"
    REMOVED = "removed"
    CHANGED = "changed"
    TOUCHED = "touched"
    UNCHANGED = "unchanged"


class EdgeStatus(str, Enum):
    ADDED = "added"
    REMOVED = "removed"
    UNCHANGED = "unchanged"


@dataclass(frozen=True)
class FilePatch:
    """A full-file replacement proposed for one file."""
    file_path: str
    original_content: str = field(repr=False)
    patched_content: str = field(repr=False)


@dataclass(frozen=True)
class ContextItem:
    """A piece of context attached to a request (search hit, selection, ...)."""
    id: str
    file_path: str
    snippet: str = ""
    line: Optional[int] = None
    source: Literal["search", "editor", "graph", "manual"] = "manual"


@dataclass
class PlanStep:
    id: str
    description: str
    kind: Literal["create", "modify", "delete", "rename"] = "modify"
    status: Literal["pending", "diffed", "applied", "rejected"] = "pending"
    file_path: Optional[str] = None


@dataclass
class AgentPlan:
    plan_steps: List[PlanStep]
    touched_files: List[str]
    touched_symbols: List[str] = field(default_factory=list)


@dataclass
class ApplyResult:
    applied: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    error: Optional[str] = None
    backup_id: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None

    def __str__(self) -> str:
        if self.success:
            return f"Applied {len(self.applied)} file(s), skipped {len(self.skipped)}."
        return f"Apply failed: {self.error}"


@dataclass
class DiffSession:
    """Result of comparing two snapshots, plus the per-file accept state.

    The accept map is owned by the session and only changed through the
    mutation methods below. Once the session is retired (replaced by a new
    diff or cleared) every mutation raises :class:`StaleSessionError`, so
    stale toggles cannot leak into a new review cycle.
    """
    before: GraphSnapshot = field(repr=False)
    after: GraphSnapshot = field(repr=False)
    added_nodes: List[str]
    removed_nodes: List[str]
    changed_nodes: List[str]
    added_edges: List[str]
    removed_edges: List[str]
    node_status_by_id: Dict[str, NodeStatus]
    edge_status_by_key: Dict[str, EdgeStatus]
    patches: List[FilePatch]
    _accepted: Dict[str, bool] = field(default_factory=dict, repr=False)
    _retired: bool = field(default=False, repr=False)

    # ------------------------------------------------------------------
    # Accept state
    # ------------------------------------------------------------------

    @property
    def accepted_by_file_id(self) -> Mapping[str, bool]:
        """Live read-only view of the accept map."""
        return MappingProxyType(self._accepted)

    @property
    def touched_files(self) -> List[str]:
        return list(self._accepted)

    @property
    def accepted_paths(self) -> List[str]:
        return [p for p, ok in self._accepted.items() if ok is True]

    @property
    def retired(self) -> bool:
        return self._retired

    def is_accepted(self, file_path: str) -> bool:
        return self._accepted.get(file_path) is True

    def toggle_accept(self, file_path: str) -> bool:
        """Flip one file's accept flag and return the new value."""
        self._check_live()
        self._require_known(file_path)
        self._accepted[file_path] = not self._accepted[file_path]
        return self._accepted[file_path]

    def set_accepted(self, file_path: str, accepted: bool) -> None:
        self._check_live()
        self._require_known(file_path)
        self._accepted[file_path] = bool(accepted)

    def accept_all_touched(self) -> None:
        self._check_live()
        for path in self._accepted:
            self._accepted[path] = True

    def accept_none(self) -> None:
        self._check_live()
        for path in self._accepted:
            self._accepted[path] = False

    def retire(self) -> None:
        self._retired = True

    def _check_live(self) -> None:
        if self._retired:
            raise StaleSessionError("This diff session was replaced or cleared; generate a new diff.")

    def _require_known(self, file_path: str) -> None:
        if file_path not in self._accepted:
            raise KeyError(f"{file_path} is not touched by this diff session")

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def summary(self) -> Dict[str, int]:
        counts = {status.value: 0 for status in NodeStatus}
        for status in self.node_status_by_id.values():
            counts[status.value] += 1
        counts["added_edges"] = len(self.added_edges)
        counts["removed_edges"] = len(self.removed_edges)
        counts["files"] = len(self._accepted)
        counts["accepted"] = len(self.accepted_paths)
        return counts

    def to_dict(self) -> Dict[str, Any]:
        return {
            "addedNodes": list(self.added_nodes),
            "removedNodes": list(self.removed_nodes),
            "changedNodes": list(self.changed_nodes),
            "addedEdges": list(self.added_edges),
            "removedEdges": list(self.removed_edges),
            "nodeStatusById": {k: v.value for k, v in self.node_status_by_id.items()},
            "edgeStatusByKey": {k: v.value for k, v in self.edge_status_by_key.items()},
            "acceptedByFileId": dict(self._accepted),
            "patches": [p.file_path for p in self.patches],
        }
