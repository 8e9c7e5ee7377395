"""
Language-neutral graph entity definitions.

Defines the records exchanged between extraction adapters, the
ingestion pipeline, the graph store and the query layer: symbols,
relationships, file records and unresolved references.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from codegraph.utils.hashing import symbol_id


class NodeKind(Enum):
    """Kinds of symbols stored in the graph."""
    FILE = "file"
    MODULE = "module"
    CLASS = "class"
    STRUCT = "struct"
    INTERFACE = "interface"
    TRAIT = "trait"
    PROTOCOL = "protocol"
    FUNCTION = "function"
    METHOD = "method"
    PROPERTY = "property"
    FIELD = "field"
    VARIABLE = "variable"
    CONSTANT = "constant"
    ENUM = "enum"
    ENUM_MEMBER = "enum_member"
    TYPE_ALIAS = "type_alias"
    NAMESPACE = "namespace"
    PARAMETER = "parameter"
    IMPORT = "import"
    EXPORT = "export"
    ROUTE = "route"
    COMPONENT = "component"


class EdgeKind(Enum):
    """Kinds of relationships between symbols."""
    CONTAINS = "contains"
    CALLS = "calls"
    IMPORTS = "imports"
    EXPORTS = "exports"
    EXTENDS = "extends"
    IMPLEMENTS = "implements"
    REFERENCES = "references"
    TYPE_OF = "type_of"
    RETURNS = "returns"
    INSTANTIATES = "instantiates"
    OVERRIDES = "overrides"
    DECORATES = "decorates"


class Visibility(Enum):
    """Declared visibility of a symbol."""
    PUBLIC = "public"
    PRIVATE = "private"
    PROTECTED = "protected"
    INTERNAL = "internal"


CALLABLE_KINDS = frozenset({NodeKind.FUNCTION, NodeKind.METHOD})

TYPE_KINDS = frozenset({
    NodeKind.CLASS, NodeKind.STRUCT, NodeKind.INTERFACE, NodeKind.TRAIT,
    NodeKind.PROTOCOL, NodeKind.ENUM, NodeKind.TYPE_ALIAS,
})


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass
class Symbol:
    """
    A named code entity in the graph.

    The id is derived from the file path, qualified name and span when
    not given explicitly, so re-extraction of unchanged code is stable.
    """

    kind: NodeKind
    name: str
    qualified_name: str
    file_path: str
    language: str
    start_line: int
    end_line: int
    start_column: int = 0
    end_column: int = 0
    docstring: Optional[str] = None
    signature: Optional[str] = None
    visibility: Optional[Visibility] = None
    is_exported: bool = False
    is_async: bool = False
    is_static: bool = False
    is_abstract: bool = False
    decorators: Optional[List[str]] = None
    type_parameters: Optional[List[str]] = None
    updated_at: int = field(default_factory=now_ms)
    id: str = ""

    def __post_init__(self):
        if not self.id:
            self.id = symbol_id(
                self.file_path,
                self.qualified_name,
                self.start_line,
                self.start_column,
                self.end_line,
                self.end_column,
            )

    @property
    def depth(self) -> int:
        """Nesting depth of the qualified name."""
        return self.qualified_name.count(".")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "kind": self.kind.value,
            "name": self.name,
            "qualified_name": self.qualified_name,
            "file_path": self.file_path,
            "language": self.language,
            "start_line": self.start_line,
            "end_line": self.end_line,
            "start_column": self.start_column,
            "end_column": self.end_column,
            "docstring": self.docstring,
            "signature": self.signature,
            "visibility": self.visibility.value if self.visibility else None,
            "is_exported": self.is_exported,
            "is_async": self.is_async,
            "is_static": self.is_static,
            "is_abstract": self.is_abstract,
            "decorators": self.decorators,
            "type_parameters": self.type_parameters,
            "updated_at": self.updated_at,
        }


@dataclass
class Relationship:
    """A directed, typed edge between two symbols."""

    source: str
    target: str
    kind: EdgeKind
    metadata: Optional[Dict[str, Any]] = None
    line: Optional[int] = None
    column: Optional[int] = None
    id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "source": self.source,
            "target": self.target,
            "kind": self.kind.value,
            "metadata": self.metadata,
            "line": self.line,
            "column": self.column,
        }


@dataclass
class Candidate:
    """A scored resolution target for an unresolved reference."""

    node_id: str
    score: float

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.node_id, "score": self.score}


@dataclass
class UnresolvedReference:
    """
    A reference by name that has not been bound to a definition yet.

    `arity` is the number of arguments at a call site, when known.
    `file_path` is filled in by the store when rows are read back.
    """

    from_node_id: str
    reference_name: str
    reference_kind: EdgeKind
    line: Optional[int] = None
    column: Optional[int] = None
    candidates: List[Candidate] = field(default_factory=list)
    arity: Optional[int] = None
    id: Optional[int] = None
    file_path: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "from_node_id": self.from_node_id,
            "reference_name": self.reference_name,
            "reference_kind": self.reference_kind.value,
            "line": self.line,
            "column": self.column,
            "arity": self.arity,
            "candidates": [c.to_dict() for c in self.candidates],
        }


@dataclass
class ParseIssue:
    """A problem reported by an extraction adapter."""

    message: str
    line: Optional[int] = None
    column: Optional[int] = None
    fatal: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "line": self.line,
            "column": self.column,
            "fatal": self.fatal,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ParseIssue":
        return cls(
            message=data.get("message", ""),
            line=data.get("line"),
            column=data.get("column"),
            fatal=data.get("fatal", True),
        )


@dataclass
class FileRecord:
    """Per-file metadata; the content hash decides re-processing."""

    path: str
    content_hash: str
    language: str
    size: int
    modified_at: Optional[int] = None
    indexed_at: int = field(default_factory=now_ms)
    node_count: int = 0
    errors: List[ParseIssue] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "path": self.path,
            "content_hash": self.content_hash,
            "language": self.language,
            "size": self.size,
            "modified_at": self.modified_at,
            "indexed_at": self.indexed_at,
            "node_count": self.node_count,
            "errors": [e.to_dict() for e in self.errors],
        }


@dataclass
class ExtractionResult:
    """Output of an extraction adapter for a single file."""

    symbols: List[Symbol] = field(default_factory=list)
    relationships: List[Relationship] = field(default_factory=list)
    unresolved: List[UnresolvedReference] = field(default_factory=list)
    errors: List[ParseIssue] = field(default_factory=list)

    @property
    def parse_failed(self) -> bool:
        """True when the file could not be parsed at all."""
        return any(e.fatal for e in self.errors)
