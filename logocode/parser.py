"""Structural analysis of TypeScript / JavaScript sources with Tree-sitter.

Every file is parsed into a concrete syntax tree and walked once in
pre-order. Recognised constructs become immutable structural facts
(functions, classes with their methods and properties, interfaces, imports,
exports). Tree-sitter is error-tolerant, so a file with broken syntax still
yields whatever facts its valid regions contain.

Failures are isolated: an exception while visiting one syntax node, or
while reading / parsing one file, becomes a :class:`Diagnostic` on the
result and the walk carries on.
"""

from __future__ import annotations

import importlib
import logging
import posixpath
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from . import config
from .errors import ParseError, ReadError
from .models import (
    AnalysisResult,
    ClassInfo,
    Diagnostic,
    ExportInfo,
    FileInfo,
    FunctionInfo,
    ImportInfo,
    InterfaceInfo,
    MethodInfo,
    PropertyInfo,
)
from .workspace import (
    CancellationToken,
    find_matching_files,
    read_text,
    resolve_workspace_root,
    to_workspace_path,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Language <-> file-extension mapping
# ---------------------------------------------------------------------------
LANGUAGE_MAP: Dict[str, str] = {
    ".ts": "typescript",
    ".mts": "typescript",
    ".cts": "typescript",
    ".tsx": "tsx",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
}

FUNCTION_DECLARATIONS = {"function_declaration", "generator_function_declaration"}
FUNCTION_VALUES = {"arrow_function", "function_expression", "function", "generator_function"}
VARIABLE_DECLARATIONS = {"lexical_declaration", "variable_declaration"}
CLASS_DECLARATIONS = {"class_declaration", "abstract_class_declaration"}
METHOD_MEMBERS = {"method_definition", "abstract_method_signature"}
PROPERTY_MEMBERS = {"public_field_definition", "field_definition"}


# ===================================================================
# Abstract Analyzer Interface
# ===================================================================

class SourceAnalyzer(ABC):
    """Turns a list of source files into structural facts."""

    @abstractmethod
    def analyze(
        self,
        files: Sequence[Union[str, Path]],
        token: Optional[CancellationToken] = None,
    ) -> AnalysisResult:
        """Analyse *files*; per-file failures are reported, never raised."""
        ...

    @abstractmethod
    def supports_language(self, language: str) -> bool:
        """Return True if this analyzer can handle *language*."""
        ...


# ===================================================================
# Per-file accumulator
# ===================================================================

@dataclass
class _FileFacts:
    rel_path: str
    source: bytes
    functions: List[FunctionInfo] = field(default_factory=list)
    classes: List[ClassInfo] = field(default_factory=list)
    interfaces: List[InterfaceInfo] = field(default_factory=list)
    imports: List[ImportInfo] = field(default_factory=list)
    exports: List[ExportInfo] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)

    def position(self, ts_node: Any) -> Tuple[int, int]:
        """1-based line and character column of the node's first token."""
        row, byte_col = ts_node.start_point
        line_start = ts_node.start_byte - byte_col
        prefix = self.source[line_start:ts_node.start_byte]
        return row + 1, len(prefix.decode("utf-8", errors="replace")) + 1


# ===================================================================
# Tree-sitter Analyzer
# ===================================================================

class TreeSitterAnalyzer(SourceAnalyzer):
    """Analyzer for TypeScript, TSX and JavaScript built on Tree-sitter."""

    # language -> (grammar module, factory function)
    _GRAMMAR_MODULES: Dict[str, Tuple[str, str]] = {
        "typescript": ("tree_sitter_typescript", "language_typescript"),
        "tsx": ("tree_sitter_typescript", "language_tsx"),
        "javascript": ("tree_sitter_javascript", "language"),
    }

    def __init__(
        self,
        workspace_root: Optional[Union[str, Path]],
        languages: Optional[List[str]] = None,
        resolution_suffixes: Sequence[str] = config.RESOLUTION_SUFFIXES,
        extensions: Optional[Sequence[str]] = None,
    ) -> None:
        self.workspace_root = workspace_root
        # file suffixes analysed; every mapped suffix when not given
        self.extensions = tuple(e.lower() for e in extensions) if extensions is not None else tuple(LANGUAGE_MAP)
        self.resolution_suffixes = tuple(resolution_suffixes)
        self._parsers: Dict[str, Any] = {}
        self._requested_languages = languages or list(self._GRAMMAR_MODULES)
        self._init_parsers()

    # ------------------------------------------------------------------
    # Initialisation
    # ------------------------------------------------------------------

    def _init_parsers(self) -> None:
        from tree_sitter import Language, Parser as TSParser

        for lang in self._requested_languages:
            entry = self._GRAMMAR_MODULES.get(lang)
            if entry is None:
                logger.warning("No grammar module mapped for language '%s'", lang)
                continue
            mod_name, factory = entry
            try:
                mod = importlib.import_module(mod_name)
                ts_lang = Language(getattr(mod, factory)())
                self._parsers[lang] = TSParser(ts_lang)
                logger.debug("Loaded tree-sitter parser for %s", lang)
            except ImportError:
                logger.warning(
                    "Grammar package '%s' not installed for language '%s'. "
                    "Install with: pip install %s",
                    mod_name, lang, mod_name.replace("_", "-"),
                )

    def supports_language(self, language: str) -> bool:
        return language in self._parsers

    # ------------------------------------------------------------------
    # Workspace / file-list level
    # ------------------------------------------------------------------

    def analyze_workspace(
        self,
        pattern: str = config.DEFAULT_INCLUDE_PATTERN,
        exclude_pattern: Optional[str] = None,
        token: Optional[CancellationToken] = None,
    ) -> AnalysisResult:
        root = resolve_workspace_root(self.workspace_root)
        files = [
            f for f in find_matching_files(root, pattern, exclude_pattern, token=token)
            if posixpath.splitext(f)[1].lower() in self.extensions
        ]
        logger.info("Found %d files matching %s", len(files), pattern)
        return self.analyze(files, token=token)

    def analyze(
        self,
        files: Sequence[Union[str, Path]],
        token: Optional[CancellationToken] = None,
    ) -> AnalysisResult:
        root = resolve_workspace_root(self.workspace_root)
        result = AnalysisResult()

        for entry in files:
            if token is not None and token.is_cancelled:
                logger.info("Analysis cancelled after %d files", len(result.files))
                break
            rel_path = to_workspace_path(root, entry)
            lang = self._language_for(rel_path)
            if lang is None:
                result.diagnostics.append(Diagnostic(rel_path, "no grammar available for this file type"))
                continue
            try:
                content = read_text(root / rel_path)
            except ReadError as exc:
                logger.warning("%s", exc)
                result.diagnostics.append(Diagnostic(rel_path, str(exc)))
                continue
            self._analyze_into(result, rel_path, content, lang, root)

        logger.info(
            "Analysis: %d fns, %d classes, %d imports, %d exports, %d diagnostics",
            len(result.functions), len(result.classes), len(result.imports),
            len(result.exports), len(result.diagnostics),
        )
        return result

    def analyze_source(self, rel_path: str, source: str) -> AnalysisResult:
        """Analyse in-memory *source* as if it lived at *rel_path*."""
        root = resolve_workspace_root(self.workspace_root)
        result = AnalysisResult()
        lang = self._language_for(rel_path)
        if lang is None:
            result.diagnostics.append(Diagnostic(rel_path, "no grammar available for this file type"))
            return result
        self._analyze_into(result, rel_path, source, lang, root)
        return result

    def _language_for(self, rel_path: str) -> Optional[str]:
        """Grammar name for *rel_path*, or None when its suffix is not analysed."""
        ext = posixpath.splitext(rel_path)[1].lower()
        if ext not in self.extensions:
            return None
        lang = LANGUAGE_MAP.get(ext)
        return lang if lang in self._parsers else None

    def _analyze_into(self, result: AnalysisResult, rel_path: str, content: str, lang: str, root: Path) -> None:
        try:
            facts = self._analyze_file(rel_path, content, lang, root)
        except ParseError as exc:
            logger.warning("Failed to analyze %s: %s", rel_path, exc)
            result.diagnostics.append(Diagnostic(rel_path, str(exc)))
            return
        result.files.append(FileInfo(rel_path, content))
        result.functions.extend(facts.functions)
        result.classes.extend(facts.classes)
        result.interfaces.extend(facts.interfaces)
        result.imports.extend(facts.imports)
        result.exports.extend(facts.exports)
        result.diagnostics.extend(facts.diagnostics)

    # ------------------------------------------------------------------
    # File level
    # ------------------------------------------------------------------

    def _analyze_file(self, rel_path: str, content: str, lang: str, root: Path) -> _FileFacts:
        source = content.encode("utf-8")
        facts = _FileFacts(rel_path=rel_path, source=source)
        try:
            tree = self._parsers[lang].parse(source)
        except Exception as exc:
            raise ParseError(rel_path, f"parse failed: {exc}") from exc

        if tree.root_node.has_error:
            facts.diagnostics.append(Diagnostic(rel_path, "syntax errors present; partial facts extracted"))

        # Pre-order walk over the whole tree, each node visited once.
        stack = [tree.root_node]
        while stack:
            node = stack.pop()
            try:
                self._visit(node, facts, root)
            except Exception as exc:
                line, column = facts.position(node)
                logger.debug("Skipped %s at %s:%d:%d: %s", node.type, rel_path, line, column, exc)
                facts.diagnostics.append(Diagnostic(rel_path, str(exc), line, column, node.type))
            stack.extend(reversed(node.children))
        return facts

    def _visit(self, node: Any, facts: _FileFacts, root: Path) -> None:
        kind = node.type
        if kind in FUNCTION_DECLARATIONS:
            info = self._extract_function(node, facts)
            if info:
                facts.functions.append(info)
        elif kind in VARIABLE_DECLARATIONS:
            facts.functions.extend(self._extract_variable_functions(node, facts))
        elif kind in CLASS_DECLARATIONS:
            info = self._extract_class(node, facts)
            if info:
                facts.classes.append(info)
        elif kind == "interface_declaration":
            iface = self._extract_interface(node, facts)
            if iface:
                facts.interfaces.append(iface)
        elif kind == "import_statement":
            imp = self._extract_import(node, facts, root)
            if imp:
                facts.imports.append(imp)
        elif kind == "export_statement":
            facts.exports.extend(self._extract_exports(node, facts))

    # ------------------------------------------------------------------
    # Extractors
    # ------------------------------------------------------------------

    def _extract_function(self, node: Any, facts: _FileFacts) -> Optional[FunctionInfo]:
        name = _field_text(node, "name")
        if not name:
            return None
        line, column = facts.position(_outer(node))
        return FunctionInfo(
            name=name,
            file_path=facts.rel_path,
            line=line,
            column=column,
            is_exported=_is_exported(node),
            is_async=_has_token(node, "async"),
            parameters=_param_names(node),
            return_type=_return_type(node),
        )

    def _extract_variable_functions(self, node: Any, facts: _FileFacts) -> List[FunctionInfo]:
        functions: List[FunctionInfo] = []
        exported = _is_exported(node)
        for decl in node.named_children:
            if decl.type != "variable_declarator":
                continue
            name_node = decl.child_by_field_name("name")
            value = decl.child_by_field_name("value")
            if name_node is None or name_node.type != "identifier" or value is None:
                continue
            if value.type not in FUNCTION_VALUES:
                continue
            line, column = facts.position(decl)
            functions.append(FunctionInfo(
                name=_text(name_node),
                file_path=facts.rel_path,
                line=line,
                column=column,
                is_exported=exported,
                is_async=_has_token(value, "async"),
                parameters=_param_names(value),
                return_type=_return_type(value),
            ))
        return functions

    def _extract_class(self, node: Any, facts: _FileFacts) -> Optional[ClassInfo]:
        name = _field_text(node, "name")
        if not name:
            return None
        line, column = facts.position(_outer(node))
        methods: List[MethodInfo] = []
        properties: List[PropertyInfo] = []

        body = node.child_by_field_name("body")
        for member in body.named_children if body is not None else []:
            if member.type in METHOD_MEMBERS:
                name_node = member.child_by_field_name("name")
                if name_node is None or name_node.type != "property_identifier":
                    continue
                # constructors and accessors are not methods
                if _text(name_node) == "constructor" or _has_token(member, "get") or _has_token(member, "set"):
                    continue
                m_line, m_column = facts.position(member)
                methods.append(MethodInfo(
                    name=_text(name_node),
                    file_path=facts.rel_path,
                    line=m_line,
                    column=m_column,
                    is_public=not _is_private(member),
                    is_static=_has_token(member, "static"),
                    is_async=_has_token(member, "async"),
                    parameters=_param_names(member),
                    return_type=_return_type(member),
                ))
            elif member.type in PROPERTY_MEMBERS:
                name_node = member.child_by_field_name("name") or member.child_by_field_name("property")
                if name_node is None or name_node.type != "property_identifier":
                    continue
                p_line, p_column = facts.position(member)
                properties.append(PropertyInfo(
                    name=_text(name_node),
                    file_path=facts.rel_path,
                    line=p_line,
                    column=p_column,
                    type=_annotation_text(member.child_by_field_name("type")),
                    is_public=not _is_private(member),
                    is_static=_has_token(member, "static"),
                ))

        extends, implements = _class_heritage(node)
        return ClassInfo(
            name=name,
            file_path=facts.rel_path,
            line=line,
            column=column,
            is_exported=_is_exported(node),
            is_abstract=node.type == "abstract_class_declaration",
            extends=extends,
            implements=tuple(implements),
            methods=tuple(methods),
            properties=tuple(properties),
        )

    def _extract_interface(self, node: Any, facts: _FileFacts) -> Optional[InterfaceInfo]:
        name = _field_text(node, "name")
        if not name:
            return None
        line, column = facts.position(_outer(node))
        extends: List[str] = []
        for child in node.named_children:
            if child.type == "extends_type_clause":
                extends.extend(_type_names(child))
        return InterfaceInfo(
            name=name,
            file_path=facts.rel_path,
            line=line,
            column=column,
            is_exported=_is_exported(node),
            extends=tuple(extends),
        )

    def _extract_import(self, node: Any, facts: _FileFacts, root: Path) -> Optional[ImportInfo]:
        specifier = _string_value(node.child_by_field_name("source"))
        if not specifier:
            return None

        names: List[str] = []
        is_default = False
        is_namespace = False
        clause = next((c for c in node.named_children if c.type == "import_clause"), None)
        for child in clause.named_children if clause is not None else []:
            if child.type == "identifier":
                names.append(_text(child))
                is_default = True
            elif child.type == "namespace_import":
                ident = next((c for c in child.named_children if c.type == "identifier"), None)
                if ident is not None:
                    names.append(_text(ident))
                    is_namespace = True
            elif child.type == "named_imports":
                for spec in child.named_children:
                    if spec.type == "import_specifier":
                        imported = _field_text(spec, "name")
                        if imported:
                            names.append(imported)

        source, is_relative = self.resolve_import(facts.rel_path, specifier, root)
        return ImportInfo(
            file_path=facts.rel_path,
            specifier=specifier,
            source=source,
            names=tuple(names),
            is_default=is_default,
            is_namespace=is_namespace,
            is_relative=is_relative,
        )

    def _extract_exports(self, node: Any, facts: _FileFacts) -> List[ExportInfo]:
        line, column = facts.position(node)
        is_default = _has_token(node, "default")
        exports: List[ExportInfo] = []

        declaration = node.child_by_field_name("declaration")
        if declaration is not None:
            kind = "default" if is_default else "named"
            if declaration.type in VARIABLE_DECLARATIONS:
                for decl in declaration.named_children:
                    if decl.type == "variable_declarator":
                        name = _field_text(decl, "name")
                        if name:
                            exports.append(ExportInfo(name, kind, facts.rel_path, line, column))
            else:
                name = _field_text(declaration, "name")
                if name:
                    exports.append(ExportInfo(name, kind, facts.rel_path, line, column))
            return exports

        if is_default:
            exports.append(ExportInfo("default", "default", facts.rel_path, line, column))
            return exports

        for child in node.named_children:
            if child.type == "export_clause":
                for spec in child.named_children:
                    if spec.type != "export_specifier":
                        continue
                    name = _field_text(spec, "alias") or _field_text(spec, "name")
                    if name:
                        exports.append(ExportInfo(name, "named", facts.rel_path, line, column))
            elif child.type == "namespace_export":
                ident = next((c for c in child.named_children if c.type in ("identifier", "string")), None)
                if ident is not None:
                    exports.append(ExportInfo(_string_value(ident) or _text(ident), "namespace",
                                              facts.rel_path, line, column))
        return exports

    # ------------------------------------------------------------------
    # Import resolution
    # ------------------------------------------------------------------

    def resolve_import(self, importer: str, specifier: str, root: Path) -> Tuple[str, bool]:
        """Resolve a relative specifier against the importing file's directory.

        Returns ``(source, resolved)``. Non-relative or unresolvable
        specifiers come back unchanged with ``resolved`` False.
        """
        if not specifier.startswith("."):
            return specifier, False
        candidate = posixpath.normpath(posixpath.join(posixpath.dirname(importer), specifier))
        if (root / candidate).is_file():
            return candidate, True
        for suffix in self.resolution_suffixes:
            probe = candidate + suffix
            if (root / probe).is_file():
                return posixpath.normpath(probe), True
        return specifier, False


# ===================================================================
# Shared Helpers
# ===================================================================

def _text(node: Any) -> str:
    return node.text.decode("utf-8", errors="replace")


def _field_text(node: Any, field_name: str) -> Optional[str]:
    child = node.child_by_field_name(field_name)
    return _text(child) if child is not None else None


def _outer(node: Any) -> Any:
    """The export statement wrapping *node*, if any; it owns the first token."""
    parent = node.parent
    if parent is not None and parent.type == "export_statement":
        return parent
    return node


def _is_exported(node: Any) -> bool:
    parent = node.parent
    return parent is not None and parent.type == "export_statement"


def _has_token(node: Any, token: str) -> bool:
    return any(child.type == token for child in node.children)


def _is_private(member: Any) -> bool:
    return any(
        child.type == "accessibility_modifier" and _text(child) == "private"
        for child in member.children
    )


def _param_names(func_node: Any) -> Tuple[str, ...]:
    single = func_node.child_by_field_name("parameter")
    if single is not None:
        return (_text(single),) if single.type == "identifier" else ()
    params = func_node.child_by_field_name("parameters")
    if params is None:
        return ()
    names: List[str] = []
    for param in params.named_children:
        target = param
        if param.type in ("required_parameter", "optional_parameter"):
            target = param.child_by_field_name("pattern")
        elif param.type == "assignment_pattern":
            target = param.child_by_field_name("left")
        if target is not None and target.type == "identifier":
            names.append(_text(target))
    return tuple(names)


def _annotation_text(annotation: Any) -> Optional[str]:
    if annotation is None:
        return None
    text = _text(annotation).strip()
    if text.startswith(":"):
        text = text[1:].strip()
    return text or None


def _return_type(func_node: Any) -> Optional[str]:
    return _annotation_text(func_node.child_by_field_name("return_type"))


def _type_names(clause: Any) -> List[str]:
    names: List[str] = []
    for child in clause.named_children:
        if child.type in ("type_identifier", "identifier"):
            names.append(_text(child))
        elif child.type == "generic_type":
            name = _field_text(child, "name")
            if name:
                names.append(name)
    return names


def _class_heritage(class_node: Any) -> Tuple[Optional[str], List[str]]:
    extends: Optional[str] = None
    implements: List[str] = []
    heritage = next((c for c in class_node.named_children if c.type == "class_heritage"), None)
    if heritage is None:
        return extends, implements
    for child in heritage.named_children:
        if child.type == "extends_clause":
            value = child.child_by_field_name("value")
            if value is not None and value.type == "identifier":
                extends = _text(value)
        elif child.type == "implements_clause":
            implements.extend(_type_names(child))
        elif child.type == "identifier" and extends is None:
            # JavaScript grammar: `extends <expression>` directly under the heritage
            extends = _text(child)
    return extends, implements


def _string_value(node: Any) -> Optional[str]:
    if node is None or node.type != "string":
        return None
    raw = _text(node)
    if len(raw) >= 2 and raw[0] in "'\"`" and raw[-1] == raw[0]:
        return raw[1:-1]
    return raw
