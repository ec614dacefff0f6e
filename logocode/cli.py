"""Typer-based CLI for LogoCode."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from . import __version__, config
from .apply_service import ApplyService, FileSystemWorkspace
from .config_manager import AnalysisConfig, LogoCodeConfig, load_config
from .diff_engine import DiffEngine
from .errors import LogoCodeError, WorkspaceUnavailableError
from .graph_builder import build_graph
from .graph_export import export_dot, export_json
from .orchestrator import AgentCallbacks, AgentOrchestrator, WorkspaceGraphProvider
from .parser import TreeSitterAnalyzer
from .search import SemanticSearchOptions, SemanticSearchService, TextSearchOptions, TextSearchService
from .session import ContextItem
from .workspace import resolve_workspace_root, to_workspace_path

console = Console()

app = typer.Typer(
    help="LogoCode: explore a TS/JS codebase as a graph and apply agent edits with review.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"LogoCode v{__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@app.callback()
def main(
    ctx: typer.Context,
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
    config_file: Optional[Path] = typer.Option(None, "--config", help="Path to config.toml."),
):
    """LogoCode CLI: structural graphs, diffs and reviewed multi-file edits."""
    _configure_logging(verbose)
    ctx.obj = load_config(config_file)


def _settings(ctx: typer.Context) -> LogoCodeConfig:
    return ctx.obj if isinstance(ctx.obj, LogoCodeConfig) else LogoCodeConfig()


def _analyzer(root: Path, settings: AnalysisConfig) -> TreeSitterAnalyzer:
    try:
        resolve_workspace_root(root)
    except WorkspaceUnavailableError as exc:
        raise typer.BadParameter(str(exc)) from exc
    return TreeSitterAnalyzer(root, extensions=settings.extensions)


@app.command("analyze")
def analyze(
    ctx: typer.Context,
    path: Path = typer.Argument(Path("."), help="Workspace root to analyze."),
    pattern: Optional[str] = typer.Option(None, "--pattern", "-p", help="Include glob."),
    exclude: Optional[str] = typer.Option(None, "--exclude", "-e", help="Exclude glob (replaces defaults)."),
    show_diagnostics: bool = typer.Option(False, "--diagnostics", "-d", help="List every diagnostic."),
):
    """Extract structural facts from every source file."""
    settings = _settings(ctx).analysis
    analyzer = _analyzer(path, settings)
    result = analyzer.analyze_workspace(
        pattern or settings.include_pattern,
        exclude or settings.exclude_pattern,
    )

    table = Table(title=f"Analysis of {path.resolve()}")
    table.add_column("Fact", style="cyan")
    table.add_column("Count", justify="right")
    for name, count in result.counts().items():
        table.add_row(name, str(count))
    console.print(table)

    if result.diagnostics:
        if show_diagnostics:
            for diag in result.diagnostics:
                console.print(f"[yellow]![/yellow] {escape(str(diag))}")
        else:
            console.print(f"[yellow]{len(result.diagnostics)} diagnostic(s); use --diagnostics to list them.[/yellow]")


@app.command("graph")
def graph(
    ctx: typer.Context,
    path: Path = typer.Argument(Path("."), help="Workspace root."),
    json_out: Optional[Path] = typer.Option(None, "--json", help="Write a D3 JSON payload."),
    dot_out: Optional[Path] = typer.Option(None, "--dot", help="Write a Graphviz DOT file."),
    focus: str = typer.Option("", "--focus", "-f", help="Restrict DOT output to nodes matching this text."),
):
    """Build the dependency graph of a workspace."""
    settings = _settings(ctx).analysis
    analyzer = _analyzer(path, settings)
    snapshot = build_graph(analyzer.analyze_workspace(settings.include_pattern, settings.exclude_pattern))

    if json_out:
        export_json(snapshot, json_out)
        typer.echo(f"Wrote graph JSON to {json_out}")
    if dot_out:
        export_dot(snapshot, dot_out, focus=focus)
        typer.echo(f"Wrote graph DOT to {dot_out}")

    table = Table(title="Graph")
    table.add_column("Kind", style="cyan")
    table.add_column("Nodes", justify="right")
    kinds: dict = {}
    for node in snapshot.nodes:
        kinds[node.kind.value] = kinds.get(node.kind.value, 0) + 1
    for kind, count in kinds.items():
        table.add_row(kind, str(count))
    console.print(table)
    typer.echo(f"Nodes: {len(snapshot.nodes)} | Edges: {len(snapshot.edges)}")


@app.command("search")
def search(
    ctx: typer.Context,
    query: str = typer.Argument(..., help="Text or regex to search for."),
    path: Path = typer.Option(Path("."), "--path", help="Workspace root."),
    regex: bool = typer.Option(False, "--regex", "-r", help="Treat the query as a regex."),
    case_sensitive: bool = typer.Option(False, "--case-sensitive", "-c"),
    whole_word: bool = typer.Option(False, "--whole-word", "-w"),
    include: Optional[str] = typer.Option(None, "--include", help="Include glob."),
    exclude: Optional[str] = typer.Option(None, "--exclude", help="Extra exclude glob."),
    semantic: bool = typer.Option(False, "--semantic", help="Use semantic search (falls back to text)."),
):
    """Search workspace files line by line."""
    try:
        root = resolve_workspace_root(path)
    except WorkspaceUnavailableError as exc:
        raise typer.BadParameter(str(exc)) from exc
    text_service = TextSearchService(root, _settings(ctx).search)

    if semantic:
        results, did_fallback = SemanticSearchService(text_service).search(SemanticSearchOptions(query=query))
        if did_fallback:
            console.print("[dim]Semantic engine unavailable; showing text matches.[/dim]")
    else:
        results = text_service.search(TextSearchOptions(
            query=query,
            is_regex=regex,
            is_case_sensitive=case_sensitive,
            is_whole_word=whole_word,
            include_glob=include,
            exclude_glob=exclude,
        ))

    if not results:
        typer.echo("No matches found.")
        raise typer.Exit(code=0)

    for item in results:
        console.print(f"[cyan]{item.file_path}[/cyan]:{item.line}:{item.column}  {escape(item.preview)}", highlight=False)
    typer.echo(f"{len(results)} match(es)")


@app.command("agent")
def agent(
    ctx: typer.Context,
    request: str = typer.Argument(..., help="What the agent should do."),
    files: List[Path] = typer.Option([], "--file", "-f", help="Context file (repeatable)."),
    path: Path = typer.Option(Path("."), "--path", help="Workspace root."),
    accept: List[str] = typer.Option([], "--accept", "-a", help="Accept the patch for this file (repeatable)."),
    accept_all: bool = typer.Option(False, "--accept-all", help="Accept every touched file."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Apply without confirmation."),
    preview: bool = typer.Option(False, "--preview", help="Print unified diffs before applying."),
):
    """Plan, diff and optionally apply an edit across the given files."""
    settings = _settings(ctx)
    analyzer = _analyzer(path, settings.analysis)
    root = resolve_workspace_root(path)
    workspace = FileSystemWorkspace(root)

    backup_dir = None
    if settings.apply.backup:
        config.ensure_base_dirs()
        backup_dir = config.BACKUP_DIR
    apply_service = ApplyService(workspace, backup_dir=backup_dir, options=settings.apply)

    callbacks = AgentCallbacks(
        on_message=lambda msg: console.print(f"[dim]{escape(msg)}[/dim]", highlight=False),
        get_graph_data=WorkspaceGraphProvider(
            analyzer,
            pattern=settings.analysis.include_pattern,
            exclude_pattern=settings.analysis.exclude_pattern,
        ),
    )
    orchestrator = AgentOrchestrator(workspace, apply_service=apply_service, callbacks=callbacks)

    context = [
        ContextItem(id=f"cli-{i}", file_path=to_workspace_path(root, f), source="manual")
        for i, f in enumerate(files)
    ]
    plan = orchestrator.generate_plan(request, context)
    for step in plan.plan_steps:
        typer.echo(f"  [{step.status}] {step.description}")

    session = orchestrator.generate_diff()
    if session is None:
        raise typer.Exit(code=1)

    if preview:
        console.print(DiffEngine().preview_session(session), highlight=False, markup=False)

    try:
        if accept_all:
            orchestrator.accept_all()
        for target in accept:
            session.set_accepted(to_workspace_path(root, Path(target)), True)
    except KeyError as exc:
        raise typer.BadParameter(str(exc.args[0])) from exc

    table = Table(title="Review")
    table.add_column("File", style="cyan")
    table.add_column("Accepted")
    for file_path in session.touched_files:
        table.add_row(file_path, "yes" if session.is_accepted(file_path) else "no")
    console.print(table)

    if not session.accepted_paths:
        typer.echo("No files accepted; nothing applied.")
        orchestrator.reset()
        raise typer.Exit(code=0)

    if not yes and not typer.confirm(f"Apply {len(session.accepted_paths)} accepted file(s)?"):
        orchestrator.reset()
        typer.echo("Aborted.")
        raise typer.Exit(code=0)

    result = orchestrator.apply_changes()
    if result is None or not result.success:
        raise typer.Exit(code=1)
    typer.echo(str(result))
    if result.backup_id:
        typer.echo(f"Backup: {result.backup_id} (undo with `logocode undo {result.backup_id}`)")


@app.command("undo")
def undo(backup_id: str = typer.Argument(..., help="Backup ID to restore.")):
    """Restore the files recorded in a backup."""
    service = ApplyService(FileSystemWorkspace(Path.cwd()), backup_dir=config.BACKUP_DIR)
    if not service.rollback(backup_id):
        typer.echo(f"Backup '{backup_id}' not found or could not be restored.")
        raise typer.Exit(code=1)
    typer.echo(f"Restored backup '{backup_id}'.")


@app.command("backups")
def backups():
    """List available backups."""
    service = ApplyService(FileSystemWorkspace(Path.cwd()), backup_dir=config.BACKUP_DIR)
    entries = service.list_backups()
    if not entries:
        typer.echo("No backups found.")
        raise typer.Exit(code=0)

    table = Table(title="Backups")
    table.add_column("ID", style="cyan")
    table.add_column("Created")
    table.add_column("Files", justify="right")
    for entry in entries:
        table.add_row(entry["backup_id"], entry["timestamp"], str(len(entry["files"])))
    console.print(table)


def run() -> None:
    try:
        app()
    except LogoCodeError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise SystemExit(1) from exc
