"""Workspace access: root resolution, file discovery, reading, cancellation."""

from __future__ import annotations

import fnmatch
import logging
import os
import threading
from pathlib import Path
from typing import List, Optional, Union

from . import config
from .errors import ReadError, WorkspaceUnavailableError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class CancellationToken:
    """Cooperative cancellation flag, checked between files and lines."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()


def resolve_workspace_root(root: Optional[PathLike]) -> Path:
    """Return an absolute workspace root or raise WorkspaceUnavailableError."""
    if root is None or str(root) == "":
        raise WorkspaceUnavailableError("Workspace path is not available")
    path = Path(root).expanduser().resolve()
    if not path.is_dir():
        raise WorkspaceUnavailableError(f"Workspace path is not a directory: {path}")
    return path


def to_workspace_path(root: Path, path: PathLike) -> str:
    """Workspace-relative POSIX path for *path* (absolute or already relative)."""
    p = Path(path)
    if p.is_absolute():
        try:
            p = p.resolve().relative_to(root)
        except ValueError:
            return p.as_posix()
    return p.as_posix()


def read_text(path: PathLike) -> str:
    """Read a file as UTF-8 for analysis and search; undecodable bytes are replaced."""
    try:
        return Path(path).read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        raise ReadError(str(path), exc.strerror or str(exc)) from exc


def read_text_exact(path: PathLike) -> str:
    """Read a file as strict UTF-8 with line endings untouched.

    Used where the text is written back, so content that would not
    survive the round trip raises ReadError instead.
    """
    try:
        with open(path, "r", encoding="utf-8", newline="") as f:
            return f.read()
    except UnicodeDecodeError as exc:
        raise ReadError(str(path), f"not valid UTF-8 ({exc.reason} at byte {exc.start})") from exc
    except OSError as exc:
        raise ReadError(str(path), exc.strerror or str(exc)) from exc


# ------------------------------------------------------------------
# Glob handling
# ------------------------------------------------------------------

def _split_top_level(pattern: str) -> List[str]:
    parts: List[str] = []
    depth = 0
    current = ""
    for ch in pattern:
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
        if ch == "," and depth == 0:
            parts.append(current)
            current = ""
        else:
            current += ch
    parts.append(current)
    return [p.strip() for p in parts if p.strip()]


def expand_braces(pattern: str) -> List[str]:
    """Expand ``{a,b}`` alternatives (nested allowed) into plain globs."""
    results: List[str] = []
    for part in _split_top_level(pattern):
        start = part.find("{")
        if start == -1:
            results.append(part)
            continue
        depth = 0
        end = -1
        for i in range(start, len(part)):
            if part[i] == "{":
                depth += 1
            elif part[i] == "}":
                depth -= 1
                if depth == 0:
                    end = i
                    break
        if end == -1:
            results.append(part)
            continue
        head, body, tail = part[:start], part[start + 1:end], part[end + 1:]
        for option in _split_top_level(body) or [""]:
            results.extend(expand_braces(head + option + tail))
    return results


def glob_match(rel_path: str, pattern: str) -> bool:
    """Match a workspace-relative path; a leading ``**/`` also matches the root."""
    if fnmatch.fnmatchcase(rel_path, pattern):
        return True
    if pattern.startswith("**/"):
        return glob_match(rel_path, pattern[3:])
    return False


def _matches_any(rel_path: str, patterns: List[str]) -> bool:
    return any(glob_match(rel_path, p) for p in patterns)


def find_matching_files(
    root: PathLike,
    pattern: str = config.DEFAULT_INCLUDE_PATTERN,
    exclude_pattern: Optional[str] = None,
    token: Optional[CancellationToken] = None,
    max_files: Optional[int] = None,
) -> List[str]:
    """Discover workspace-relative files matching *pattern*.

    Without *exclude_pattern* the built-in exclusion set applies (build,
    dependency and cache directories, minified and bundled files). Order is
    deterministic: directories and files are walked in sorted order.
    """
    root_path = resolve_workspace_root(root)
    includes = expand_braces(pattern)
    excludes = expand_braces(exclude_pattern) if exclude_pattern else []

    found: List[str] = []
    for dirpath, dirnames, filenames in os.walk(root_path):
        if token is not None and token.is_cancelled:
            logger.info("File discovery cancelled after %d files", len(found))
            break
        if exclude_pattern is None:
            dirnames[:] = [d for d in dirnames if d not in config.DEFAULT_EXCLUDED_DIRS]
        dirnames.sort()
        rel_dir = Path(dirpath).relative_to(root_path).as_posix()
        for name in sorted(filenames):
            rel = name if rel_dir == "." else f"{rel_dir}/{name}"
            if not _matches_any(rel, includes):
                continue
            if exclude_pattern is None:
                if any(fnmatch.fnmatchcase(name, p) for p in config.DEFAULT_EXCLUDED_FILES):
                    continue
            elif _matches_any(rel, excludes):
                continue
            found.append(rel)
            if max_files is not None and len(found) >= max_files:
                return found
    return found
