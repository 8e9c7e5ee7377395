"""
Python extraction adapter.

Extracts symbols and relationships from Python source using the AST
module. Calls to a name defined exactly once in the same file are bound
locally; every other reference is handed to the resolution engine.
"""

import ast
import builtins
import logging
import sys
from pathlib import PurePosixPath
from typing import Dict, List, Optional, Union

from codegraph.extraction.registry import AdapterRegistry, ExtractionAdapter
from codegraph.graph.entities import (
    EdgeKind,
    ExtractionResult,
    NodeKind,
    ParseIssue,
    Relationship,
    Symbol,
    UnresolvedReference,
    Visibility,
)

logger = logging.getLogger(__name__)

BUILTIN_NAMES = frozenset(dir(builtins))

STDLIB_MODULES = frozenset(sys.stdlib_module_names)

# Base classes that only mark a class rather than name a definition
MARKER_BASES = frozenset({"object", "ABC", "Protocol", "Generic", "Enum", "IntEnum"})

FunctionNode = Union[ast.FunctionDef, ast.AsyncFunctionDef]


def module_name_for(file_path: str) -> str:
    """Dotted module name of a project-relative Python file path."""
    path = PurePosixPath(file_path)
    parts = list(path.with_suffix("").parts)
    if parts and parts[-1] == "__init__":
        parts = parts[:-1]
    return ".".join(parts) or path.stem


def import_signature(module: str, export: Optional[str] = None) -> str:
    """Signature recorded on import symbols: `<module>|export=<name>`."""
    return f"{module}|export={export or ''}"


@AdapterRegistry.register
class PythonAdapter(ExtractionAdapter):
    """
    Extraction adapter for Python source code.

    Uses Python's AST module to extract files, classes, functions,
    methods, module-level variables and imports, together with the
    contains, calls, instantiates, extends and imports relationships
    between them.
    """

    LANGUAGE = "python"
    SUPPORTED_EXTENSIONS = [".py", ".pyi", ".pyw"]

    def extract(self, file_path: str, content: str) -> ExtractionResult:
        """
        Extract symbols and relationships from a Python file.

        Args:
            file_path: Project-relative path of the file.
            content: Source code content.

        Returns:
            ExtractionResult with symbols, local edges and unresolved refs.
        """
        result = ExtractionResult()

        try:
            tree = ast.parse(content, filename=file_path)
        except SyntaxError as e:
            result.errors.append(ParseIssue(
                message=f"Syntax error: {e.msg}",
                line=e.lineno,
                column=e.offset,
            ))
            return result
        except ValueError as e:
            result.errors.append(ParseIssue(message=f"Unparseable source: {e}"))
            return result

        walker = _ModuleWalker(file_path, content, self.LANGUAGE)
        walker.walk(tree)

        result.symbols = walker.symbols
        result.relationships = walker.relationships
        result.unresolved = walker.unresolved
        return result


class _ModuleWalker:
    """Single-file walk holding the symbols found so far."""

    def __init__(self, file_path: str, content: str, language: str):
        self.file_path = file_path
        self.language = language
        self.module = module_name_for(file_path)
        self.is_package = PurePosixPath(file_path).stem == "__init__"
        self.line_count = max(1, len(content.splitlines()))

        self.symbols: List[Symbol] = []
        self.relationships: List[Relationship] = []
        self.unresolved: List[UnresolvedReference] = []

        self._exports: Optional[set] = None
        self._pending_calls: List[tuple] = []
        self._pending_bases: List[tuple] = []

    def walk(self, tree: ast.Module) -> None:
        self._exports = self._read_dunder_all(tree)

        file_symbol = Symbol(
            kind=NodeKind.FILE,
            name=PurePosixPath(self.file_path).name,
            qualified_name=self.file_path,
            file_path=self.file_path,
            language=self.language,
            start_line=1,
            end_line=self.line_count,
            docstring=ast.get_docstring(tree),
            signature=self.module,
        )
        self.symbols.append(file_symbol)

        self._visit_body(tree.body, file_symbol, self.module, in_class=False, top_level=True)
        self._bind_references()

    def _read_dunder_all(self, tree: ast.Module) -> Optional[set]:
        for node in tree.body:
            if isinstance(node, ast.Assign):
                for target in node.targets:
                    if isinstance(target, ast.Name) and target.id == "__all__":
                        if isinstance(node.value, (ast.List, ast.Tuple)):
                            return {
                                elt.value for elt in node.value.elts
                                if isinstance(elt, ast.Constant) and isinstance(elt.value, str)
                            }
        return None

    def _visit_body(
        self,
        body: List[ast.stmt],
        parent: Symbol,
        scope: str,
        in_class: bool,
        top_level: bool = False,
        collect_calls: bool = True,
    ) -> None:
        for node in body:
            if isinstance(node, ast.ClassDef):
                self._visit_class(node, parent, scope, top_level)

            elif isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
                self._visit_function(node, parent, scope, in_class, top_level)

            elif isinstance(node, ast.Import):
                for alias in node.names:
                    self._add_import(node, alias.name, None, alias.asname, parent)

            elif isinstance(node, ast.ImportFrom):
                module = self._absolute_module(node.module, node.level)
                for alias in node.names:
                    if alias.name == "*":
                        continue
                    self._add_import(node, module, alias.name, alias.asname, parent)

            else:
                if top_level and isinstance(node, (ast.Assign, ast.AnnAssign)):
                    self._add_variables(node, parent)
                if collect_calls:
                    self._collect_calls(node, parent)
                self._visit_nested(node, parent, scope, in_class, top_level)

    def _visit_nested(
        self, node: ast.AST, parent: Symbol, scope: str, in_class: bool, top_level: bool
    ) -> None:
        # Definitions inside if/try/with/for/match blocks belong to the enclosing scope
        for field_name in ("body", "orelse", "finalbody", "handlers", "cases"):
            block = getattr(node, field_name, None)
            if not isinstance(block, list):
                continue
            statements = []
            for item in block:
                if isinstance(item, (ast.ExceptHandler, ast.match_case)):
                    statements.extend(item.body)
                elif isinstance(item, ast.stmt):
                    statements.append(item)
            defs = [
                s for s in statements
                if isinstance(s, (ast.ClassDef, ast.FunctionDef, ast.AsyncFunctionDef,
                                  ast.Import, ast.ImportFrom))
                or hasattr(s, "body") or hasattr(s, "cases")
            ]
            if defs:
                self._visit_body(defs, parent, scope, in_class, top_level, collect_calls=False)

    def _visit_class(
        self, node: ast.ClassDef, parent: Symbol, scope: str, top_level: bool
    ) -> None:
        qualified_name = f"{scope}.{node.name}"
        base_names = [self._get_name(b) for b in node.bases]
        base_names = [b for b in base_names if b]
        decorators = self._decorator_names(node)

        kind = NodeKind.CLASS
        if any(b.split(".")[-1] == "Protocol" for b in base_names):
            kind = NodeKind.PROTOCOL
        elif any(b.split(".")[-1] in ("Enum", "IntEnum", "StrEnum", "Flag") for b in base_names):
            kind = NodeKind.ENUM

        is_abstract = any(b.split(".")[-1] == "ABC" for b in base_names) or any(
            isinstance(item, (ast.FunctionDef, ast.AsyncFunctionDef))
            and "abstractmethod" in [d.split(".")[-1] for d in self._decorator_names(item)]
            for item in node.body
        )

        symbol = self._make_symbol(
            node,
            kind=kind,
            name=node.name,
            qualified_name=qualified_name,
            signature=f"({', '.join(ast.unparse(b) for b in node.bases)})" if node.bases else None,
            is_abstract=is_abstract,
            decorators=decorators or None,
            top_level=top_level,
        )
        self._add_symbol(symbol, parent)

        for base in base_names:
            short = base.split(".")[-1]
            if short not in MARKER_BASES:
                self._pending_bases.append((symbol, short, node.lineno, node.col_offset))

        self._collect_decorator_refs(node, symbol)

        for item in node.body:
            if isinstance(item, (ast.ClassDef, ast.FunctionDef, ast.AsyncFunctionDef)):
                continue
            self._collect_calls(item, symbol)
            self._visit_nested(item, symbol, qualified_name, True, False)

        self._visit_body(
            [item for item in node.body
             if isinstance(item, (ast.ClassDef, ast.FunctionDef, ast.AsyncFunctionDef))],
            symbol,
            qualified_name,
            in_class=True,
        )

    def _visit_function(
        self,
        node: FunctionNode,
        parent: Symbol,
        scope: str,
        in_class: bool,
        top_level: bool,
    ) -> None:
        qualified_name = f"{scope}.{node.name}"
        decorators = self._decorator_names(node)
        short_decorators = {d.split(".")[-1] for d in decorators}

        if in_class and "property" in short_decorators:
            kind = NodeKind.PROPERTY
        elif in_class:
            kind = NodeKind.METHOD
        else:
            kind = NodeKind.FUNCTION

        signature = f"({ast.unparse(node.args)})"
        if node.returns is not None:
            signature += f" -> {ast.unparse(node.returns)}"

        symbol = self._make_symbol(
            node,
            kind=kind,
            name=node.name,
            qualified_name=qualified_name,
            signature=signature,
            is_async=isinstance(node, ast.AsyncFunctionDef),
            is_static="staticmethod" in short_decorators,
            is_abstract="abstractmethod" in short_decorators,
            decorators=decorators or None,
            top_level=top_level,
        )
        self._add_symbol(symbol, parent)
        self._collect_decorator_refs(node, symbol)

        for default in node.args.defaults + [d for d in node.args.kw_defaults if d]:
            self._collect_calls(default, parent)

        for statement in node.body:
            if isinstance(statement, (ast.ClassDef, ast.FunctionDef, ast.AsyncFunctionDef)):
                continue
            self._collect_calls(statement, symbol)
            self._visit_nested(statement, symbol, qualified_name, False, False)

        nested = [
            s for s in node.body
            if isinstance(s, (ast.ClassDef, ast.FunctionDef, ast.AsyncFunctionDef))
        ]
        if nested:
            self._visit_body(nested, symbol, qualified_name, in_class=False)

    def _make_symbol(
        self,
        node: Union[ast.ClassDef, FunctionNode],
        kind: NodeKind,
        name: str,
        qualified_name: str,
        top_level: bool,
        **kwargs,
    ) -> Symbol:
        start_line = min([node.lineno] + [d.lineno for d in node.decorator_list])
        type_params = [
            getattr(p, "name", ast.unparse(p))
            for p in getattr(node, "type_params", [])
        ]
        return Symbol(
            kind=kind,
            name=name,
            qualified_name=qualified_name,
            file_path=self.file_path,
            language=self.language,
            start_line=start_line,
            end_line=node.end_lineno or node.lineno,
            start_column=node.col_offset,
            end_column=node.end_col_offset or 0,
            docstring=ast.get_docstring(node),
            visibility=self._visibility(name),
            is_exported=top_level and self._is_exported(name),
            type_parameters=type_params or None,
            **kwargs,
        )

    def _add_symbol(self, symbol: Symbol, parent: Symbol) -> None:
        self.symbols.append(symbol)
        self.relationships.append(Relationship(
            source=parent.id,
            target=symbol.id,
            kind=EdgeKind.CONTAINS,
        ))

    def _visibility(self, name: str) -> Visibility:
        if name.startswith("__") and not name.endswith("__"):
            return Visibility.PRIVATE
        if name.startswith("_") and not name.startswith("__"):
            return Visibility.INTERNAL
        return Visibility.PUBLIC

    def _is_exported(self, name: str) -> bool:
        if self._exports is not None:
            return name in self._exports
        return not name.startswith("_")

    def _add_variables(self, node: Union[ast.Assign, ast.AnnAssign], parent: Symbol) -> None:
        targets = node.targets if isinstance(node, ast.Assign) else [node.target]
        for target in targets:
            if not isinstance(target, ast.Name) or target.id == "__all__":
                continue
            name = target.id
            kind = NodeKind.CONSTANT if name.isupper() else NodeKind.VARIABLE
            signature = None
            if isinstance(node, ast.AnnAssign):
                signature = ast.unparse(node.annotation)
            self._add_symbol(Symbol(
                kind=kind,
                name=name,
                qualified_name=f"{self.module}.{name}",
                file_path=self.file_path,
                language=self.language,
                start_line=node.lineno,
                end_line=node.end_lineno or node.lineno,
                start_column=node.col_offset,
                end_column=node.end_col_offset or 0,
                signature=signature,
                visibility=self._visibility(name),
                is_exported=self._is_exported(name),
            ), parent)

    def _absolute_module(self, module: Optional[str], level: int) -> str:
        if level == 0:
            return module or ""
        package = self.module.split(".")
        if not self.is_package:
            package = package[:-1]
        if level > 1:
            package = package[:len(package) - (level - 1)]
        parts = package + ([module] if module else [])
        return ".".join(p for p in parts if p)

    def _add_import(
        self,
        node: Union[ast.Import, ast.ImportFrom],
        module: str,
        export: Optional[str],
        alias: Optional[str],
        parent: Symbol,
    ) -> None:
        if export:
            bound_name = alias or export
            full_name = f"{module}.{export}" if module else export
        else:
            bound_name = alias or module.split(".")[0]
            full_name = module

        symbol = Symbol(
            kind=NodeKind.IMPORT,
            name=bound_name,
            qualified_name=f"{self.module}:import:{full_name}",
            file_path=self.file_path,
            language=self.language,
            start_line=node.lineno,
            end_line=node.end_lineno or node.lineno,
            start_column=node.col_offset,
            end_column=node.end_col_offset or 0,
            signature=import_signature(module, export),
        )
        self.symbols.append(symbol)
        self.relationships.append(Relationship(
            source=parent.id,
            target=symbol.id,
            kind=EdgeKind.IMPORTS,
            line=node.lineno,
        ))

        root = module.split(".")[0] if module else ""
        if root in STDLIB_MODULES or not module:
            return

        self.unresolved.append(UnresolvedReference(
            from_node_id=symbol.id,
            reference_name=export or module,
            reference_kind=EdgeKind.IMPORTS,
            line=node.lineno,
            column=node.col_offset,
        ))

    def _decorator_names(self, node: Union[ast.ClassDef, FunctionNode]) -> List[str]:
        names = []
        for decorator in node.decorator_list:
            name = self._get_name(decorator)
            if name:
                names.append(name)
        return names

    def _collect_decorator_refs(self, node: Union[ast.ClassDef, FunctionNode], symbol: Symbol) -> None:
        for decorator in node.decorator_list:
            name = self._get_name(decorator)
            if not name:
                continue
            short = name.split(".")[-1]
            if short in BUILTIN_NAMES or short == "abstractmethod":
                continue
            self._pending_calls.append(
                (symbol, short, decorator.lineno, decorator.col_offset, None, EdgeKind.REFERENCES)
            )

    def _collect_calls(self, node: ast.AST, caller: Symbol) -> None:
        for child in _walk_scope(node):
            if not isinstance(child, ast.Call):
                continue

            func = child.func
            if isinstance(func, ast.Name):
                name = func.id
                if name in BUILTIN_NAMES:
                    continue
            elif isinstance(func, ast.Attribute):
                name = func.attr
            else:
                continue

            arity: Optional[int] = len(child.args) + len(child.keywords)
            if any(isinstance(a, ast.Starred) for a in child.args) or any(
                k.arg is None for k in child.keywords
            ):
                arity = None

            self._pending_calls.append(
                (caller, name, child.lineno, child.col_offset, arity, EdgeKind.CALLS)
            )

    def _bind_references(self) -> None:
        """Bind references with exactly one local definition; queue the rest."""
        local: Dict[str, List[Symbol]] = {}
        for symbol in self.symbols:
            if symbol.kind in (NodeKind.FUNCTION, NodeKind.METHOD, NodeKind.CLASS,
                               NodeKind.PROTOCOL, NodeKind.ENUM):
                local.setdefault(symbol.name, []).append(symbol)

        for caller, name, line, column, arity, kind in self._pending_calls:
            targets = local.get(name, [])
            if len(targets) == 1:
                target = targets[0]
                edge_kind = kind
                if kind == EdgeKind.CALLS and target.kind != NodeKind.FUNCTION \
                        and target.kind != NodeKind.METHOD:
                    edge_kind = EdgeKind.INSTANTIATES
                self.relationships.append(Relationship(
                    source=caller.id,
                    target=target.id,
                    kind=edge_kind,
                    line=line,
                    column=column,
                    metadata={"arity": arity} if arity is not None else None,
                ))
            else:
                self.unresolved.append(UnresolvedReference(
                    from_node_id=caller.id,
                    reference_name=name,
                    reference_kind=kind,
                    line=line,
                    column=column,
                    arity=arity,
                ))

        for symbol, base, line, column in self._pending_bases:
            targets = [
                t for t in local.get(base, [])
                if t.kind != NodeKind.FUNCTION and t.kind != NodeKind.METHOD and t.id != symbol.id
            ]
            if len(targets) == 1:
                self.relationships.append(Relationship(
                    source=symbol.id,
                    target=targets[0].id,
                    kind=EdgeKind.EXTENDS,
                    line=line,
                    column=column,
                ))
            else:
                self.unresolved.append(UnresolvedReference(
                    from_node_id=symbol.id,
                    reference_name=base,
                    reference_kind=EdgeKind.EXTENDS,
                    line=line,
                    column=column,
                ))

    def _get_name(self, node: ast.AST) -> Optional[str]:
        """Get the dotted name from an AST node."""
        if isinstance(node, ast.Name):
            return node.id
        elif isinstance(node, ast.Attribute):
            value_name = self._get_name(node.value)
            if value_name:
                return f"{value_name}.{node.attr}"
            return node.attr
        elif isinstance(node, ast.Call):
            return self._get_name(node.func)
        elif isinstance(node, ast.Subscript):
            return self._get_name(node.value)
        return None


def _walk_scope(node: ast.AST):
    """Walk a node without descending into nested definitions or lambdas' own scopes."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        for child in ast.iter_child_nodes(current):
            if isinstance(child, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
                continue
            stack.append(child)
