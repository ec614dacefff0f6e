"""Tests for the Tree-sitter source analyzer."""

from pathlib import Path

import pytest

from logocode.errors import WorkspaceUnavailableError
from logocode.parser import TreeSitterAnalyzer
from logocode.workspace import CancellationToken


def _by_name(items, name):
    matches = [i for i in items if i.name == name]
    assert len(matches) == 1, f"expected one {name}, got {matches}"
    return matches[0]


def test_analyzer_loads_grammars(analyzer: TreeSitterAnalyzer):
    assert analyzer.supports_language("typescript")
    assert analyzer.supports_language("tsx")
    assert analyzer.supports_language("javascript")
    assert not analyzer.supports_language("python")


def test_analyze_sample_project_counts(analyzer: TreeSitterAnalyzer):
    result = analyzer.analyze_workspace()

    assert [f.path for f in result.files] == [
        "lib/legacy.js",
        "src/main.ts",
        "src/models.ts",
        "src/utils.ts",
    ]
    assert [f.name for f in result.functions] == [
        "helper", "main", "formatArea", "double", "internal", "loadShapes",
    ]
    assert [c.name for c in result.classes] == ["Emitter", "Base", "Circle"]
    assert [i.name for i in result.interfaces] == ["Shape", "Labelled"]
    assert len(result.imports) == 3


def test_function_facts(analyzer: TreeSitterAnalyzer):
    result = analyzer.analyze_workspace()

    fmt = _by_name(result.functions, "formatArea")
    assert fmt.file_path == "src/utils.ts"
    assert (fmt.line, fmt.column) == (1, 1)
    assert fmt.is_exported
    assert not fmt.is_async
    assert fmt.parameters == ("value", "digits")
    assert fmt.return_type == "string"

    load = _by_name(result.functions, "loadShapes")
    assert load.is_async
    assert load.return_type == "Promise<string[]>"

    helper = _by_name(result.functions, "helper")
    assert helper.parameters == ("a", "b")
    assert not helper.is_exported


def test_variable_bound_functions(analyzer: TreeSitterAnalyzer):
    result = analyzer.analyze_workspace()

    double = _by_name(result.functions, "double")
    assert double.is_exported
    assert double.parameters == ("n",)
    assert double.line == 5

    internal = _by_name(result.functions, "internal")
    assert not internal.is_exported


def test_class_facts(analyzer: TreeSitterAnalyzer):
    result = analyzer.analyze_workspace()

    circle = _by_name(result.classes, "Circle")
    assert (circle.line, circle.column) == (15, 1)
    assert circle.is_exported
    assert not circle.is_abstract
    assert circle.extends == "Base"
    assert circle.implements == ("Shape",)
    # constructor and the `size` accessor are not methods
    assert [m.name for m in circle.methods] == ["area", "describe", "scale", "fromJson"]

    scale = _by_name(circle.methods, "scale")
    assert not scale.is_public
    from_json = _by_name(circle.methods, "fromJson")
    assert from_json.is_static
    assert from_json.is_async

    radius = _by_name(circle.properties, "radius")
    assert not radius.is_public
    assert radius.type == "number"
    unit = _by_name(circle.properties, "unit")
    assert unit.is_static

    base = _by_name(result.classes, "Base")
    assert base.is_abstract
    assert [m.name for m in base.methods] == ["describe"]
    assert [p.name for p in base.properties] == ["id"]


def test_javascript_class_heritage(analyzer: TreeSitterAnalyzer):
    result = analyzer.analyze_workspace()

    emitter = _by_name(result.classes, "Emitter")
    assert emitter.extends == "EventEmitter"
    assert emitter.implements == ()
    assert [m.name for m in emitter.methods] == ["emit"]


def test_interface_facts(analyzer: TreeSitterAnalyzer):
    result = analyzer.analyze_workspace()

    labelled = _by_name(result.interfaces, "Labelled")
    assert labelled.extends == ("Shape",)
    assert labelled.is_exported


def test_import_facts(analyzer: TreeSitterAnalyzer):
    result = analyzer.analyze_workspace()
    models, utils, path_import = result.imports

    assert models.file_path == "src/main.ts"
    assert models.specifier == "./models"
    assert models.source == "src/models.ts"
    assert models.is_relative
    assert models.names == ("Circle",)

    # the imported name is recorded, not the local alias
    assert utils.names == ("formatArea", "double")

    assert path_import.source == "path"
    assert not path_import.is_relative
    assert path_import.is_namespace
    assert path_import.names == ("path",)


def test_export_facts(analyzer: TreeSitterAnalyzer):
    result = analyzer.analyze_workspace()

    main_exports = [(e.name, e.kind) for e in result.exports if e.file_path == "src/main.ts"]
    assert main_exports == [("main", "named"), ("default", "default")]

    util_exports = [e.name for e in result.exports if e.file_path == "src/utils.ts"]
    assert util_exports == ["formatArea", "double", "loadShapes", "helperValue"]


def test_import_resolution_probes_index(write_files):
    root = write_files({
        "app.ts": "import { widget } from './widgets';\n",
        "widgets/index.ts": "export function widget() {}\n",
    })
    result = TreeSitterAnalyzer(root).analyze_workspace()

    imp = result.imports[0]
    assert imp.source == "widgets/index.ts"
    assert imp.is_relative


def test_unresolved_relative_import_keeps_specifier(write_files):
    root = write_files({"app.ts": "import { gone } from './missing';\n"})
    imp = TreeSitterAnalyzer(root).analyze_workspace().imports[0]

    assert imp.source == "./missing"
    assert not imp.is_relative


def test_column_counts_characters(write_files):
    root = write_files({"uni.ts": "/* é */ function f() {}\n"})
    fn = TreeSitterAnalyzer(root).analyze_workspace().functions[0]

    assert (fn.line, fn.column) == (1, 9)


def test_syntax_errors_yield_partial_facts(write_files):
    root = write_files({"broken.ts": "function ok() { return 1; }\nclass {\n"})
    result = TreeSitterAnalyzer(root).analyze_workspace()

    assert [f.name for f in result.functions] == ["ok"]
    assert any("syntax errors" in d.message for d in result.diagnostics)


def test_node_failure_becomes_diagnostic(write_files, monkeypatch):
    root = write_files({"a.ts": "class Broken {}\nfunction fine() {}\n"})
    analyzer = TreeSitterAnalyzer(root)

    def _boom(node, facts):
        raise RuntimeError("boom")

    monkeypatch.setattr(analyzer, "_extract_class", _boom)
    result = analyzer.analyze_workspace()

    assert [f.name for f in result.functions] == ["fine"]
    diag = next(d for d in result.diagnostics if d.message == "boom")
    assert diag.file_path == "a.ts"
    assert diag.node_type == "class_declaration"
    assert (diag.line, diag.column) == (1, 1)


def test_unreadable_and_unsupported_files_are_reported(write_files):
    root = write_files({"ok.ts": "export function ok() {}\n", "notes.txt": "hi\n"})
    result = TreeSitterAnalyzer(root).analyze(["ok.ts", "missing.ts", "notes.txt"])

    assert [f.path for f in result.files] == ["ok.ts"]
    messages = {d.file_path: d.message for d in result.diagnostics}
    assert "Could not read" in messages["missing.ts"]
    assert "no grammar" in messages["notes.txt"]


def test_analyze_source_in_memory(write_files):
    root = write_files({})
    result = TreeSitterAnalyzer(root).analyze_source("mem.ts", "export class Mem {}\n")

    assert [c.name for c in result.classes] == ["Mem"]
    assert result.files[0].path == "mem.ts"


def test_cancellation_stops_between_files(analyzer: TreeSitterAnalyzer):
    token = CancellationToken()
    token.cancel()

    result = analyzer.analyze(["src/main.ts", "src/utils.ts"], token=token)

    assert result.files == []


def test_missing_workspace_is_fatal():
    with pytest.raises(WorkspaceUnavailableError):
        TreeSitterAnalyzer(None).analyze_workspace()

    with pytest.raises(WorkspaceUnavailableError):
        TreeSitterAnalyzer(Path("/nonexistent/logocode/root")).analyze([])


def test_absolute_paths_become_workspace_relative(sample_project_path: Path):
    analyzer = TreeSitterAnalyzer(sample_project_path)
    result = analyzer.analyze([sample_project_path / "src" / "utils.ts"])

    assert result.files[0].path == "src/utils.ts"
    assert all(f.file_path == "src/utils.ts" for f in result.functions)


def test_extensions_limit_analysed_files(sample_project_path: Path):
    analyzer = TreeSitterAnalyzer(sample_project_path, extensions=[".ts"])

    result = analyzer.analyze_workspace()

    assert [f.path for f in result.files] == ["src/main.ts", "src/models.ts", "src/utils.ts"]
    assert "lib/legacy.js" not in {d.file_path for d in result.diagnostics}

    explicit = analyzer.analyze(["lib/legacy.js"])
    assert explicit.files == []
    assert "no grammar" in explicit.diagnostics[0].message


def test_facts_are_hashable(analyzer: TreeSitterAnalyzer):
    result = analyzer.analyze_workspace()

    circle = _by_name(result.classes, "Circle")
    assert isinstance(circle.methods, tuple)
    assert len({circle, circle}) == 1
    assert len(set(result.imports)) == len(result.imports)
