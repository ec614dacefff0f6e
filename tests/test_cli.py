"""Integration tests for CLI commands."""

import json
from pathlib import Path

from typer.testing import CliRunner

from logocode import __version__
from logocode.cli import app
from logocode.config import PATCH_MARKER

runner = CliRunner()


class TestGlobalOptions:
    def test_version(self):
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_no_args_shows_help(self):
        result = runner.invoke(app, [])

        assert "analyze" in result.output


class TestAnalyzeCommand:
    def test_analyze_sample_project(self, sample_project_path: Path):
        result = runner.invoke(app, ["analyze", str(sample_project_path)])

        assert result.exit_code == 0
        assert "functions" in result.output
        assert "classes" in result.output

    def test_analyze_nonexistent_path(self):
        result = runner.invoke(app, ["analyze", "/nonexistent/path"])

        assert result.exit_code != 0


class TestGraphCommand:
    def test_graph_exports(self, sample_project_path: Path, temp_dir: Path):
        json_out = temp_dir / "graph.json"
        dot_out = temp_dir / "graph.dot"

        result = runner.invoke(
            app, ["graph", str(sample_project_path), "--json", str(json_out), "--dot", str(dot_out)],
        )

        assert result.exit_code == 0
        assert "Nodes:" in result.output
        payload = json.loads(json_out.read_text())
        ids = {n["id"] for n in payload["nodes"]}
        assert "class:src/models.ts:Circle" in ids
        assert dot_out.read_text().startswith("digraph LogoCode {")

    def test_graph_honours_configured_extensions(self, sample_project_path: Path, temp_dir: Path):
        cfg = temp_dir / "config.toml"
        cfg.write_text('[analysis]\nextensions = [".js"]\n')
        json_out = temp_dir / "graph.json"

        result = runner.invoke(
            app, ["--config", str(cfg), "graph", str(sample_project_path), "--json", str(json_out)],
        )

        assert result.exit_code == 0, result.output
        files = {n["id"] for n in json.loads(json_out.read_text())["nodes"] if n["type"] == "file"}
        assert files == {"file:lib/legacy.js"}


class TestSearchCommand:
    def test_search_finds_matches(self, sample_project_path: Path):
        result = runner.invoke(app, ["search", "formatArea", "--path", str(sample_project_path)])

        assert result.exit_code == 0
        assert "src/utils.ts" in result.output
        assert "src/main.ts" in result.output

    def test_search_no_matches(self, sample_project_path: Path):
        result = runner.invoke(app, ["search", "zzz_not_there", "--path", str(sample_project_path)])

        assert result.exit_code == 0
        assert "No matches" in result.output

    def test_semantic_search_falls_back(self, sample_project_path: Path):
        result = runner.invoke(
            app, ["search", "loadShapes", "--semantic", "--path", str(sample_project_path)],
        )

        assert result.exit_code == 0
        assert "src/utils.ts" in result.output


class TestAgentCommand:
    def test_agent_preview_without_accept(self, sample_workspace: Path):
        original = (sample_workspace / "src" / "utils.ts").read_text()

        result = runner.invoke(app, [
            "agent", "tidy utils", "--path", str(sample_workspace),
            "--file", "src/utils.ts", "--preview",
        ])

        assert result.exit_code == 0
        assert "Modify src/utils.ts" in result.output
        assert PATCH_MARKER in result.output
        assert "nothing applied" in result.output
        assert (sample_workspace / "src" / "utils.ts").read_text() == original

    def test_agent_apply_and_undo(self, sample_workspace: Path):
        target = sample_workspace / "src" / "utils.ts"
        original = target.read_text()

        result = runner.invoke(app, [
            "agent", "tidy", "--path", str(sample_workspace),
            "--file", "src/utils.ts", "--file", "src/main.ts",
            "--accept", "src/utils.ts", "--yes",
        ])

        assert result.exit_code == 0, result.output
        assert "Applied 1 file(s), skipped 1." in result.output
        assert PATCH_MARKER in target.read_text()
        assert PATCH_MARKER not in (sample_workspace / "src" / "main.ts").read_text()

        listed = runner.invoke(app, ["backups"])
        assert listed.exit_code == 0
        backup_line = next(line for line in result.output.splitlines() if line.startswith("Backup: "))
        backup_id = backup_line.split()[1]
        assert backup_id in listed.output

        undone = runner.invoke(app, ["undo", backup_id])
        assert undone.exit_code == 0
        assert target.read_text() == original

    def test_agent_confirmation_declined(self, sample_workspace: Path):
        target = sample_workspace / "src" / "main.ts"
        original = target.read_text()

        result = runner.invoke(
            app,
            ["agent", "x", "--path", str(sample_workspace), "--file", "src/main.ts", "--accept-all"],
            input="n\n",
        )

        assert result.exit_code == 0
        assert "Aborted" in result.output
        assert target.read_text() == original

    def test_agent_unknown_accept_path(self, sample_workspace: Path):
        result = runner.invoke(app, [
            "agent", "x", "--path", str(sample_workspace),
            "--file", "src/main.ts", "--accept", "src/other.ts", "--yes",
        ])

        assert result.exit_code != 0


class TestBackupCommands:
    def test_backups_empty(self):
        result = runner.invoke(app, ["backups"])

        assert result.exit_code == 0
        assert "No backups" in result.output

    def test_undo_unknown(self):
        result = runner.invoke(app, ["undo", "missing"])

        assert result.exit_code == 1
        assert "not found" in result.output
