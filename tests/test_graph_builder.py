"""Tests for graph assembly."""

from logocode.graph_builder import GraphBuilder, NameOnlyResolver, SymbolResolver, build_graph
from logocode.models import (
    AnalysisResult,
    ClassInfo,
    EdgeKind,
    FileInfo,
    FunctionInfo,
    ImportInfo,
    MethodInfo,
    NodeKind,
)
from logocode.parser import TreeSitterAnalyzer


def test_graph_construction_example(write_files):
    root = write_files({
        "a.ts": "export function foo() {}\n",
        "b.ts": "import { foo } from './a';\n",
    })
    snapshot = build_graph(TreeSitterAnalyzer(root).analyze_workspace())

    assert set(snapshot.node_ids()) == {"file:a.ts", "function:a.ts:foo", "file:b.ts"}
    assert set(snapshot.edge_ids()) == {
        "import:file:b.ts->function:a.ts:foo",
        "contains:file:a.ts->function:a.ts:foo",
    }
    assert snapshot.edge("import:file:b.ts->function:a.ts:foo").label == "foo"
    assert snapshot.edge("contains:file:a.ts->function:a.ts:foo").label is None


def test_sample_project_graph(analyzer):
    snapshot = build_graph(analyzer.analyze_workspace())
    edges = set(snapshot.edge_ids())

    assert "import:file:src/main.ts->class:src/models.ts:Circle" in edges
    assert "import:file:src/main.ts->function:src/utils.ts:formatArea" in edges
    assert "import:file:src/main.ts->function:src/utils.ts:double" in edges
    assert "extends:class:src/models.ts:Circle->class:src/models.ts:Base" in edges
    assert "implements:class:src/models.ts:Circle->interface:src/models.ts:Shape" in edges
    assert "extends:interface:src/models.ts:Labelled->interface:src/models.ts:Shape" in edges
    assert "contains:class:src/models.ts:Circle->method:src/models.ts:Circle.area" in edges

    # EventEmitter lives outside the workspace: no edge, no error
    assert not any(e.startswith("extends:class:lib/legacy.js:Emitter") for e in edges)

    method = snapshot.node("method:src/models.ts:Circle.area")
    assert method.kind is NodeKind.METHOD
    assert method.label == "Circle.area"
    assert method.parent_id == "class:src/models.ts:Circle"


def test_node_metadata(analyzer):
    snapshot = build_graph(analyzer.analyze_workspace())

    fn = snapshot.node("function:src/utils.ts:loadShapes")
    assert fn.metadata["is_async"] is True
    assert fn.metadata["is_exported"] is True
    assert fn.metadata["parameters"] == ["url"]

    cls = snapshot.node("class:src/models.ts:Circle")
    assert cls.metadata["extends"] == "Base"
    assert cls.metadata["implements"] == ["Shape"]

    file_node = snapshot.node("file:src/main.ts")
    assert file_node.label == "main.ts"
    assert file_node.metadata["full_path"] == "src/main.ts"


def test_build_is_deterministic(analyzer):
    first = build_graph(analyzer.analyze_workspace())
    second = build_graph(analyzer.analyze_workspace())

    assert first.node_ids() == second.node_ids()
    assert first.edge_ids() == second.edge_ids()
    assert first.to_dict() == second.to_dict()


def test_builder_does_not_leak_between_calls():
    builder = GraphBuilder()
    one = AnalysisResult(
        files=[FileInfo("one.ts")],
        functions=[FunctionInfo("f", "one.ts", 1, 1)],
    )
    two = AnalysisResult(files=[FileInfo("two.ts")])

    builder.build(one)
    snapshot = builder.build(two)

    assert snapshot.node_ids() == ["file:two.ts"]
    assert snapshot.edges == []


def test_unresolved_import_creates_file_node_only():
    result = AnalysisResult(
        imports=[ImportInfo("orphan.ts", "lodash", "lodash", names=("map",))],
    )
    snapshot = build_graph(result)

    assert snapshot.node_ids() == ["file:orphan.ts"]
    assert snapshot.edges == []


def test_name_collision_resolves_to_first_match(write_files):
    """Known limitation: resolution ignores the import path."""
    root = write_files({
        "a.ts": "export function foo() {}\n",
        "b.ts": "import { foo } from './c';\n",
        "c.ts": "export function foo() {}\n",
    })
    snapshot = build_graph(TreeSitterAnalyzer(root).analyze_workspace())
    imports = [e for e in snapshot.edges if e.kind is EdgeKind.IMPORT]

    assert [e.target for e in imports] == ["function:a.ts:foo"]


def test_custom_resolver_can_use_hint_path(write_files):
    class PathAwareResolver(SymbolResolver):
        def resolve(self, name, kinds, nodes, hint_path=None):
            for node_id, node in nodes.items():
                if node.label == name and node.kind in kinds and node.file_path == hint_path:
                    return node_id
            return NameOnlyResolver().resolve(name, kinds, nodes, hint_path)

    root = write_files({
        "a.ts": "export function foo() {}\n",
        "b.ts": "import { foo } from './c';\n",
        "c.ts": "export function foo() {}\n",
    })
    snapshot = GraphBuilder(PathAwareResolver()).build(TreeSitterAnalyzer(root).analyze_workspace())
    imports = [e for e in snapshot.edges if e.kind is EdgeKind.IMPORT]

    assert [e.target for e in imports] == ["function:c.ts:foo"]


def test_duplicate_ids_first_writer_wins():
    result = AnalysisResult(
        files=[FileInfo("dup.ts")],
        classes=[
            ClassInfo("Dup", "dup.ts", 1, 1, methods=(MethodInfo("run", "dup.ts", 2, 3),)),
            ClassInfo("Dup", "dup.ts", 10, 1),
        ],
    )
    snapshot = build_graph(result)

    assert snapshot.node("class:dup.ts:Dup").line == 1
    assert snapshot.node_ids().count("class:dup.ts:Dup") == 1
    assert "contains:class:dup.ts:Dup->method:dup.ts:Dup.run" in snapshot.edge_ids()


def test_snapshot_to_dict_uses_camel_case(small_snapshot):
    payload = small_snapshot.to_dict()
    fn = next(n for n in payload["nodes"] if n["id"] == "function:a.ts:foo")

    assert fn["filePath"] == "a.ts"
    assert fn["parentId"] == "file:a.ts"
    assert fn["kind"] == "function"
    imp = next(e for e in payload["edges"] if e["kind"] == "import")
    assert imp["label"] == "foo"
