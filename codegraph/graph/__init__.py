"""
Graph data model: symbol and relationship records plus the in-memory
subgraph used by traversal and context queries.
"""

from codegraph.graph.entities import (
    NodeKind,
    EdgeKind,
    Visibility,
    Symbol,
    Relationship,
    Candidate,
    UnresolvedReference,
    ParseIssue,
    FileRecord,
    ExtractionResult,
)
from codegraph.graph.semantic_graph import SemanticGraph

__all__ = [
    "NodeKind",
    "EdgeKind",
    "Visibility",
    "Symbol",
    "Relationship",
    "Candidate",
    "UnresolvedReference",
    "ParseIssue",
    "FileRecord",
    "ExtractionResult",
    "SemanticGraph",
]
