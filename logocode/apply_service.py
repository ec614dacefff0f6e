"""ApplyService: commit accepted file patches as one atomic workspace edit.

File-level only: every accepted patch replaces the whole file. Either all
accepted files are updated or none are.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path, PurePosixPath
from typing import Dict, Iterator, List, Mapping, Optional, Sequence, Set, Tuple, Union

from .config_manager import ApplyOptions
from .errors import ApplyAtomicFailure, ReadError
from .session import ApplyResult, DiffSession, FilePatch
from .workspace import read_text_exact

logger = logging.getLogger(__name__)

NO_FILES_ACCEPTED = "No files accepted for apply."
EDIT_REJECTED = "Workspace edit was rejected; no changes were made."


class WorkspaceEdit:
    """An ordered set of full-content replacements across several files."""

    def __init__(self) -> None:
        self._entries: Dict[str, str] = {}

    def replace(self, file_path: str, content: str) -> None:
        self._entries[file_path] = content

    @property
    def paths(self) -> List[str]:
        return list(self._entries)

    def __iter__(self) -> Iterator[Tuple[str, str]]:
        return iter(self._entries.items())

    def __len__(self) -> int:
        return len(self._entries)


class Workspace(ABC):
    """The commit primitive the apply step writes through."""

    @abstractmethod
    def read_text(self, file_path: str) -> str:
        ...

    @abstractmethod
    def apply_edit(self, edit: WorkspaceEdit) -> bool:
        """Apply every replacement in *edit* or none; False means nothing changed."""
        ...

    @abstractmethod
    def is_dirty(self, file_path: str) -> bool:
        ...

    @abstractmethod
    def save(self, file_path: str) -> None:
        ...

    def locate(self, file_path: str) -> str:
        """Stable name for *file_path* recorded in backups and passed back to apply_edit."""
        return file_path


class FileSystemWorkspace(Workspace):
    """Workspace backed by files under *root*.

    Replacements are first staged into temporary siblings; only when every
    file is staged are they swapped in. A failed swap restores the files
    already replaced.
    """

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)
        self._dirty: Set[str] = set()

    def _abs(self, file_path: str) -> Path:
        path = Path(file_path)
        return path if path.is_absolute() else self.root / path

    def read_text(self, file_path: str) -> str:
        return read_text_exact(self._abs(file_path))

    def locate(self, file_path: str) -> str:
        return str(self._abs(file_path).resolve())

    def apply_edit(self, edit: WorkspaceEdit) -> bool:
        staged: List[Tuple[str, Path, Path, bytes]] = []
        try:
            for file_path, content in edit:
                target = self._abs(file_path)
                if not target.is_file():
                    raise FileNotFoundError(f"File not found: {target}")
                original = target.read_bytes()
                tmp = target.with_name(f".{target.name}.logocode-tmp")
                staged.append((file_path, target, tmp, original))
                with open(tmp, "w", encoding="utf-8", newline="") as f:
                    f.write(content)
                shutil.copymode(target, tmp)
        except OSError as exc:
            logger.warning("Staging failed, nothing applied: %s", exc)
            _discard([tmp for _, _, tmp, _ in staged])
            return False

        swapped: List[Tuple[Path, bytes]] = []
        try:
            for _, target, tmp, original in staged:
                os.replace(tmp, target)
                swapped.append((target, original))
        except OSError as exc:
            logger.warning("Swap failed, restoring %d file(s): %s", len(swapped), exc)
            _discard([tmp for _, _, tmp, _ in staged])
            try:
                for target, original in swapped:
                    target.write_bytes(original)
            except OSError as restore_exc:
                raise ApplyAtomicFailure(f"Could not restore {target}: {restore_exc}") from restore_exc
            return False

        self._dirty.update(file_path for file_path, _, _, _ in staged)
        return True

    def is_dirty(self, file_path: str) -> bool:
        return file_path in self._dirty

    def save(self, file_path: str) -> None:
        with open(self._abs(file_path), "rb+") as f:
            os.fsync(f.fileno())
        self._dirty.discard(file_path)


def _discard(paths: Sequence[Path]) -> None:
    for path in paths:
        try:
            path.unlink()
        except FileNotFoundError:
            pass


class ApplyService:
    """Commits accepted patches and manages the accept map of a session."""

    def __init__(
        self,
        workspace: Workspace,
        backup_dir: Optional[Path] = None,
        options: Optional[ApplyOptions] = None,
    ):
        """Initialize ApplyService.

        Args:
            workspace: Commit primitive used to write files
            backup_dir: Where backups are stored; None disables backups
            options: Apply behaviour; defaults to backup + save
        """
        self.workspace = workspace
        self.backup_dir = backup_dir
        self.options = options or ApplyOptions()

    # ------------------------------------------------------------------
    # Apply
    # ------------------------------------------------------------------

    def apply_patches(
        self,
        patches: Sequence[FilePatch],
        accepted_by_file_id: Mapping[str, bool],
        options: Optional[ApplyOptions] = None,
    ) -> ApplyResult:
        """Apply all accepted patches as a single atomic edit.

        Only patches whose path maps to exactly ``True`` are applied; the
        rest are reported as skipped.
        """
        options = options or self.options
        accepted = [p for p in patches if accepted_by_file_id.get(p.file_path) is True]
        skipped = [p.file_path for p in patches if accepted_by_file_id.get(p.file_path) is not True]
        all_paths = [p.file_path for p in patches]

        if not accepted:
            return ApplyResult(applied=[], skipped=skipped, error=NO_FILES_ACCEPTED)

        edit = WorkspaceEdit()
        for patch in accepted:
            edit.replace(patch.file_path, patch.patched_content)

        backup_id: Optional[str] = None
        try:
            if options.backup and self.backup_dir is not None:
                backup_id = self._create_backup(self.backup_dir, accepted)
            committed = self.workspace.apply_edit(edit)
        except Exception as exc:
            message = f"Apply failed: {exc}. {_undo_hint(backup_id)}"
            logger.error(message)
            return ApplyResult(applied=[], skipped=all_paths, error=message, backup_id=backup_id)

        if not committed:
            logger.error(EDIT_REJECTED)
            return ApplyResult(applied=[], skipped=all_paths, error=EDIT_REJECTED, backup_id=backup_id)

        applied = edit.paths
        if options.save:
            for file_path in applied:
                if not self.workspace.is_dirty(file_path):
                    continue
                try:
                    self.workspace.save(file_path)
                except OSError as exc:
                    logger.warning("Could not save %s: %s", file_path, exc)

        logger.info("Applied %d file(s), skipped %d", len(applied), len(skipped))
        return ApplyResult(applied=applied, skipped=skipped, backup_id=backup_id)

    def apply_session(self, session: DiffSession, options: Optional[ApplyOptions] = None) -> ApplyResult:
        return self.apply_patches(session.patches, session.accepted_by_file_id, options)

    # ------------------------------------------------------------------
    # Accept state
    # ------------------------------------------------------------------

    def toggle_accept(self, session: DiffSession, file_path: str) -> bool:
        return session.toggle_accept(file_path)

    def accept_all_touched(self, session: DiffSession) -> None:
        session.accept_all_touched()

    def accept_none(self, session: DiffSession) -> None:
        session.accept_none()

    # ------------------------------------------------------------------
    # Backups
    # ------------------------------------------------------------------

    def _create_backup(self, backup_dir: Path, patches: Sequence[FilePatch]) -> str:
        """Save the current content of every patched file aside.

        Content is read through the workspace, so any Workspace can be
        backed up and later restored with :meth:`rollback`.

        Returns:
            Backup ID for rollback
        """
        backup_id = f"{datetime.now().strftime('%Y%m%d_%H%M%S')}_{uuid.uuid4().hex[:8]}"
        backup_path = backup_dir / backup_id
        backup_path.mkdir(parents=True, exist_ok=True)

        metadata = {
            "timestamp": datetime.now().isoformat(),
            "files": [],
        }
        for index, patch in enumerate(patches):
            content = self.workspace.read_text(patch.file_path)
            backup_file = backup_path / f"{index:03d}_{PurePosixPath(patch.file_path).name}"
            with open(backup_file, "w", encoding="utf-8", newline="") as f:
                f.write(content)
            metadata["files"].append({
                "original": self.workspace.locate(patch.file_path),
                "backup": str(backup_file),
            })

        (backup_path / "metadata.json").write_text(json.dumps(metadata, indent=2), encoding="utf-8")
        return backup_id

    def rollback(self, backup_id: str) -> bool:
        """Restore every file recorded in a backup as one workspace edit.

        Returns:
            True if successful, False otherwise
        """
        if self.backup_dir is None:
            return False
        metadata_file = self.backup_dir / backup_id / "metadata.json"
        if not metadata_file.exists():
            return False
        edit = WorkspaceEdit()
        try:
            metadata = json.loads(metadata_file.read_text(encoding="utf-8"))
            for file_info in metadata["files"]:
                edit.replace(file_info["original"], read_text_exact(file_info["backup"]))
        except (ReadError, OSError, ValueError, KeyError) as exc:
            logger.error("Rollback of %s failed: %s", backup_id, exc)
            return False
        return self.workspace.apply_edit(edit)

    def list_backups(self) -> List[dict]:
        """List all available backups, newest first."""
        if self.backup_dir is None or not self.backup_dir.exists():
            return []
        backups = []
        for entry in self.backup_dir.iterdir():
            metadata_file = entry / "metadata.json"
            if entry.is_dir() and metadata_file.exists():
                metadata = json.loads(metadata_file.read_text(encoding="utf-8"))
                metadata["backup_id"] = entry.name
                backups.append(metadata)
        return sorted(backups, key=lambda x: x["timestamp"], reverse=True)


def _undo_hint(backup_id: Optional[str]) -> str:
    if backup_id:
        return f"Run `logocode undo {backup_id}` to restore the previous contents."
    return "Use your editor's undo or version control to roll back."
