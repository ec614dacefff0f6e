"""Workspace search: line-scanning text search and a semantic front end.

The semantic engine is not wired yet; SemanticSearchService always falls
back to text search and retags the hits.
"""

from __future__ import annotations

import logging
import posixpath
import re
from dataclasses import dataclass, replace
from pathlib import Path
from typing import List, Literal, Optional, Pattern, Tuple, Union

from .config_manager import SearchConfig
from .errors import ReadError
from .workspace import (
    CancellationToken,
    expand_braces,
    find_matching_files,
    glob_match,
    read_text,
    resolve_workspace_root,
)

logger = logging.getLogger(__name__)

SearchMode = Literal["text", "semantic"]

BINARY_EXTENSIONS = frozenset({
    ".png", ".jpg", ".jpeg", ".gif", ".bmp", ".ico", ".webp", ".svg",
    ".mp3", ".mp4", ".wav", ".ogg", ".avi", ".mov", ".mkv",
    ".zip", ".gz", ".tar", ".rar", ".7z",
    ".pdf", ".doc", ".docx", ".xls", ".xlsx",
    ".woff", ".woff2", ".ttf", ".eot", ".otf",
    ".exe", ".dll", ".so", ".dylib", ".o", ".obj",
    ".pyc", ".pyo", ".class", ".wasm",
    ".sqlite", ".db",
})

PREVIEW_CONTEXT_BEFORE = 30


@dataclass
class TextSearchOptions:
    query: str
    is_regex: bool = False
    is_case_sensitive: bool = False
    is_whole_word: bool = False
    include_glob: Optional[str] = None
    exclude_glob: Optional[str] = None


@dataclass
class SemanticSearchOptions:
    query: str
    include_external_folders: bool = False
    top_k: int = 20


@dataclass(frozen=True)
class SearchResultItem:
    id: str
    file_path: str
    file_name: str
    preview: str
    source: SearchMode
    line: Optional[int] = None
    column: Optional[int] = None
    match_range: Optional[Tuple[int, int]] = None
    score: Optional[float] = None


def build_pattern(options: TextSearchOptions) -> Optional[Pattern[str]]:
    """Compile the query, or None for an empty query or invalid regex."""
    if not options.query:
        return None
    pattern = options.query if options.is_regex else re.escape(options.query)
    if options.is_whole_word:
        pattern = rf"\b{pattern}\b"
    try:
        return re.compile(pattern, 0 if options.is_case_sensitive else re.IGNORECASE)
    except re.error as exc:
        logger.debug("Invalid search pattern %r: %s", options.query, exc)
        return None


def line_preview(line: str, match_start: int, max_length: int = 120) -> str:
    """Trim a long line around its match for display."""
    trimmed = line.lstrip()
    offset = len(line) - len(trimmed)
    if len(trimmed) <= max_length:
        return trimmed

    start = max(0, match_start - offset - PREVIEW_CONTEXT_BEFORE)
    end = min(len(trimmed), start + max_length)
    if end - start < max_length:
        start = max(0, end - max_length)

    preview = trimmed[start:end]
    if start > 0:
        preview = "…" + preview
    if end < len(trimmed):
        preview = preview + "…"
    return preview


class TextSearchService:
    """Regex / literal search over workspace files, line by line."""

    def __init__(self, workspace_root: Union[str, Path], settings: Optional[SearchConfig] = None):
        self.workspace_root = workspace_root
        self.settings = settings or SearchConfig()

    def search(
        self,
        options: TextSearchOptions,
        token: Optional[CancellationToken] = None,
    ) -> List[SearchResultItem]:
        regex = build_pattern(options)
        if regex is None:
            return []

        root = resolve_workspace_root(self.workspace_root)
        files = find_matching_files(
            root, options.include_glob or "**/*", token=token, max_files=self.settings.max_files,
        )
        excludes = expand_braces(options.exclude_glob) if options.exclude_glob else []

        results: List[SearchResultItem] = []
        for rel_path in files:
            if token is not None and token.is_cancelled:
                break
            if len(results) >= self.settings.max_results:
                break
            if posixpath.splitext(rel_path)[1].lower() in BINARY_EXTENSIONS:
                continue
            if any(glob_match(rel_path, p) for p in excludes):
                continue
            try:
                content = read_text(root / rel_path)
            except ReadError as exc:
                logger.debug("Skipping unreadable file: %s", exc)
                continue
            if not regex.search(content):
                continue
            self._scan_lines(rel_path, content, regex, results, token)

        logger.debug("Text search %r: %d result(s)", options.query, len(results))
        return results

    def _scan_lines(
        self,
        rel_path: str,
        content: str,
        regex: Pattern[str],
        results: List[SearchResultItem],
        token: Optional[CancellationToken],
    ) -> None:
        file_name = posixpath.basename(rel_path)
        for index, line in enumerate(content.split("\n")):
            if len(results) >= self.settings.max_results:
                return
            if token is not None and token.is_cancelled:
                return
            match = regex.search(line)
            if match is None:
                continue
            results.append(SearchResultItem(
                id=f"text-{len(results)}",
                file_path=rel_path,
                file_name=file_name,
                preview=line_preview(line, match.start(), self.settings.preview_length),
                source="text",
                line=index + 1,
                column=match.start() + 1,
                match_range=(match.start(), match.end()),
            ))


class SemanticSearchService:
    """Semantic search front end; with no embedding engine connected it
    answers every query from text search and retags the hits.
    """

    def __init__(self, text_fallback: TextSearchService):
        self._text_fallback = text_fallback

    @property
    def is_available(self) -> bool:
        return False

    def initialize(self) -> bool:
        return self.is_available

    def search(
        self,
        options: SemanticSearchOptions,
        token: Optional[CancellationToken] = None,
    ) -> Tuple[List[SearchResultItem], bool]:
        """Return ``(results, did_fallback)``."""
        if not options.query:
            return [], False

        logger.debug("Semantic engine unavailable, using text search for %r", options.query)
        text_results = self._text_fallback.search(TextSearchOptions(query=options.query), token)
        return [replace(item, source="semantic") for item in text_results], True
