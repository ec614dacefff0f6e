"""Agent orchestrator coordinating plan, diff and apply."""

from __future__ import annotations

import logging
import posixpath
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from . import config
from .apply_service import ApplyService, Workspace
from .diff_engine import DiffEngine
from .errors import DiffComputationError, LogoCodeError, ReadError
from .graph_builder import GraphBuilder
from .models import GraphSnapshot
from .parser import TreeSitterAnalyzer
from .session import AgentPlan, ApplyResult, ContextItem, DiffSession, FilePatch, Phase, PlanStep

logger = logging.getLogger(__name__)

NO_PLAN = "No plan available. Generate a plan first."
NO_DIFF = "No diff result available. Generate a diff first."


@dataclass
class AgentCallbacks:
    """Hooks the host uses to observe the orchestrator and feed it graphs."""
    on_phase_change: Optional[Callable[[Phase], None]] = None
    on_plan: Optional[Callable[[AgentPlan], None]] = None
    on_diff_result: Optional[Callable[[DiffSession], None]] = None
    on_apply_result: Optional[Callable[[ApplyResult], None]] = None
    on_message: Optional[Callable[[str], None]] = None
    get_graph_data: Optional[Callable[[], GraphSnapshot]] = None


class PatchGenerator(ABC):
    """Produces the proposed content for one touched file."""

    @abstractmethod
    def generate(self, file_path: str, original: str, plan: AgentPlan) -> str:
        ...


class MarkerPatchGenerator(PatchGenerator):
    """Appends a marker comment so every patch is traceable."""

    _HASH_COMMENT = {".py", ".sh", ".rb", ".toml", ".yaml", ".yml"}

    def __init__(self, marker: str = config.PATCH_MARKER):
        self.marker = marker

    def generate(self, file_path: str, original: str, plan: AgentPlan) -> str:
        ext = posixpath.splitext(file_path)[1].lower()
        prefix = "#" if ext in self._HASH_COMMENT else "//"
        return f"{original}\n{prefix} {self.marker}\n"


class WorkspaceGraphProvider:
    """Analyzes the workspace and builds its current snapshot on demand.

    Never raises: any failure is logged and an empty snapshot returned.
    """

    def __init__(
        self,
        analyzer: TreeSitterAnalyzer,
        builder: Optional[GraphBuilder] = None,
        pattern: str = config.DEFAULT_INCLUDE_PATTERN,
        exclude_pattern: Optional[str] = None,
    ):
        self.analyzer = analyzer
        self.builder = builder or GraphBuilder()
        self.pattern = pattern
        self.exclude_pattern = exclude_pattern

    def __call__(self) -> GraphSnapshot:
        try:
            result = self.analyzer.analyze_workspace(self.pattern, self.exclude_pattern)
            return self.builder.build(result)
        except Exception as exc:
            logger.warning("Could not build workspace graph: %s", exc)
            return GraphSnapshot.empty()


class AgentOrchestrator:
    """Phase machine for the plan -> diff -> review -> apply cycle.

    Calls are serialized through one reentrant lock, so overlapping calls
    from several threads run one after another.
    """

    def __init__(
        self,
        workspace: Workspace,
        apply_service: Optional[ApplyService] = None,
        callbacks: Optional[AgentCallbacks] = None,
        patch_generator: Optional[PatchGenerator] = None,
        diff_engine: Optional[DiffEngine] = None,
    ):
        self.workspace = workspace
        self.apply_service = apply_service or ApplyService(workspace)
        self.callbacks = callbacks or AgentCallbacks()
        self.patch_generator = patch_generator or MarkerPatchGenerator()
        self.diff_engine = diff_engine or DiffEngine()
        self.last_error: Optional[LogoCodeError] = None
        self._phase = Phase.IDLE
        self._plan: Optional[AgentPlan] = None
        self._session: Optional[DiffSession] = None
        self._lock = threading.RLock()

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def plan(self) -> Optional[AgentPlan]:
        return self._plan

    @property
    def session(self) -> Optional[DiffSession]:
        return self._session

    # ------------------------------------------------------------------
    # Phase management
    # ------------------------------------------------------------------

    def _set_phase(self, phase: Phase) -> None:
        self._phase = phase
        logger.debug("Phase -> %s", phase.value)
        if self.callbacks.on_phase_change:
            self.callbacks.on_phase_change(phase)

    def _message(self, content: str) -> None:
        logger.info(content)
        if self.callbacks.on_message:
            self.callbacks.on_message(content)

    def _discard_session(self) -> None:
        if self._session is not None:
            self._session.retire()
        self._session = None

    def reset(self) -> None:
        with self._lock:
            self._plan = None
            self._discard_session()
            self._set_phase(Phase.IDLE)

    # ------------------------------------------------------------------
    # 1. Plan
    # ------------------------------------------------------------------

    def generate_plan(self, request: str, context: Sequence[ContextItem] = ()) -> AgentPlan:
        """Build a plan from the files referenced by *context*.

        The phase stays at Planning afterwards; generate_diff moves it on.
        """
        with self._lock:
            self._set_phase(Phase.PLANNING)
            self._message(f'Planning: "{request}"...')

            touched_files = list(dict.fromkeys(item.file_path for item in context))
            steps = [
                PlanStep(id=f"step-{i}", description=f"Modify {fp}", kind="modify", file_path=fp)
                for i, fp in enumerate(touched_files)
            ]
            if not steps:
                steps.append(PlanStep(id="step-0", description=request, kind="modify"))

            self._plan = AgentPlan(
                plan_steps=steps,
                touched_files=touched_files,
                touched_symbols=[item.snippet[:50] for item in context],
            )
            if self.callbacks.on_plan:
                self.callbacks.on_plan(self._plan)
            self._message(
                f"Plan ready: {len(steps)} step(s), {len(touched_files)} file(s). "
                "Generate a diff to proceed."
            )
            return self._plan

    # ------------------------------------------------------------------
    # 2. Diff
    # ------------------------------------------------------------------

    def generate_diff(self) -> Optional[DiffSession]:
        """Read every touched file, build patches and diff the graphs.

        Returns None when there is no plan or the diff could not be computed.
        """
        with self._lock:
            if self._plan is None:
                self._message(NO_PLAN)
                return None

            self._set_phase(Phase.DIFFING)
            self._discard_session()
            self._message("Computing diff...")
            plan = self._plan

            try:
                patches: List[FilePatch] = []
                for fp in plan.touched_files:
                    try:
                        original = self.workspace.read_text(fp)
                    except (ReadError, OSError) as exc:
                        logger.warning("Could not read %s: %s", fp, exc)
                        self._message(f"Could not read: {fp}")
                        continue
                    patched = self.patch_generator.generate(fp, original, plan)
                    patches.append(FilePatch(fp, original, patched))

                before = self._current_snapshot()
                # no patched re-analysis yet: after is the same snapshot
                after = before

                session = self.diff_engine.compute_diff(before, after, patches)

                patched_paths = {p.file_path for p in patches}
                for step in plan.plan_steps:
                    if step.file_path in patched_paths:
                        step.status = "diffed"

                self._session = session
                self._set_phase(Phase.REVIEWING)
                if self.callbacks.on_diff_result:
                    self.callbacks.on_diff_result(session)
                self._message(
                    f"Diff ready: {len(patches)} file(s). Review and accept files, then apply."
                )
            except Exception as exc:
                logger.exception("Diff generation failed")
                self._discard_session()
                for step in plan.plan_steps:
                    if step.status == "diffed":
                        step.status = "pending"
                self.last_error = DiffComputationError(f"Diff failed: {exc}")
                self._message(str(self.last_error))
                self._set_phase(Phase.IDLE)
                return None

            self.last_error = None
            return session

    def _current_snapshot(self) -> GraphSnapshot:
        if self.callbacks.get_graph_data is None:
            return GraphSnapshot.empty()
        return self.callbacks.get_graph_data()

    # ------------------------------------------------------------------
    # Review
    # ------------------------------------------------------------------

    def toggle_accept(self, file_path: str) -> Optional[bool]:
        with self._lock:
            if self._session is None:
                self._message(NO_DIFF)
                return None
            return self.apply_service.toggle_accept(self._session, file_path)

    def accept_all(self) -> None:
        with self._lock:
            if self._session is None:
                self._message(NO_DIFF)
                return
            self.apply_service.accept_all_touched(self._session)

    def accept_none(self) -> None:
        with self._lock:
            if self._session is None:
                self._message(NO_DIFF)
                return
            self.apply_service.accept_none(self._session)

    # ------------------------------------------------------------------
    # 3. Apply
    # ------------------------------------------------------------------

    def apply_changes(self) -> Optional[ApplyResult]:
        """Commit the accepted patches; the phase always ends at Idle."""
        with self._lock:
            if self._session is None:
                self._message(NO_DIFF)
                return None

            self._set_phase(Phase.APPLYING)
            self._message("Applying changes...")
            try:
                result = self.apply_service.apply_session(self._session)

                if self.callbacks.on_apply_result:
                    self.callbacks.on_apply_result(result)
                if result.error:
                    self._message(f"Apply error: {result.error}")
                else:
                    self._message(str(result))

                if self._plan is not None:
                    applied = set(result.applied)
                    skipped = set(result.skipped)
                    for step in self._plan.plan_steps:
                        if step.file_path in applied:
                            step.status = "applied"
                        elif step.file_path in skipped:
                            step.status = "rejected"
                return result
            finally:
                self._set_phase(Phase.IDLE)
