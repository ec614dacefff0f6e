"""Pytest configuration and fixtures for LogoCode tests."""

import shutil
import tempfile
from pathlib import Path
from typing import Callable, Dict, Generator

import pytest

from logocode.models import (
    ContainsEdge,
    FileNode,
    FunctionNode,
    GraphSnapshot,
    ImportEdge,
)
from logocode.parser import TreeSitterAnalyzer


@pytest.fixture(autouse=True)
def _isolated_home(tmp_path_factory, monkeypatch):
    """Keep backups and config out of the real ~/.logocode."""
    home = tmp_path_factory.mktemp("logocode_home")
    monkeypatch.setattr("logocode.config.BASE_DIR", home)
    monkeypatch.setattr("logocode.config.BACKUP_DIR", home / "backups")
    monkeypatch.setattr("logocode.config.CONFIG_FILE", home / "config.toml")
    return home


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def sample_project_path() -> Path:
    """Get path to the sample TypeScript / JavaScript project."""
    return Path(__file__).parent / "fixtures" / "ts_project"


@pytest.fixture
def sample_workspace(temp_dir: Path, sample_project_path: Path) -> Path:
    """A writable copy of the sample project."""
    target = temp_dir / "workspace"
    shutil.copytree(sample_project_path, target)
    return target


@pytest.fixture
def write_files(temp_dir: Path) -> Callable[[Dict[str, str]], Path]:
    """Write ``{relative path: content}`` under a fresh workspace root."""
    root = temp_dir / "ws"
    root.mkdir(exist_ok=True)

    def _write(files: Dict[str, str]) -> Path:
        for rel, content in files.items():
            path = root / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        return root

    return _write


@pytest.fixture
def analyzer(sample_project_path: Path) -> TreeSitterAnalyzer:
    return TreeSitterAnalyzer(sample_project_path)


@pytest.fixture
def small_snapshot() -> GraphSnapshot:
    """Graph for a.ts exporting foo and b.ts importing it."""
    return GraphSnapshot(
        nodes=[
            FileNode(id="file:a.ts", label="a.ts", file_path="a.ts"),
            FileNode(id="file:b.ts", label="b.ts", file_path="b.ts"),
            FunctionNode(
                id="function:a.ts:foo", label="foo", file_path="a.ts",
                line=1, column=1, parent_id="file:a.ts",
            ),
        ],
        edges=[
            ImportEdge(
                id="import:file:b.ts->function:a.ts:foo",
                source="file:b.ts", target="function:a.ts:foo", label="foo",
            ),
            ContainsEdge(
                id="contains:file:a.ts->function:a.ts:foo",
                source="file:a.ts", target="function:a.ts:foo",
            ),
        ],
    )
