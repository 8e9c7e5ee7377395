"""Read-only queries over the code graph."""

from codegraph.query.traversal import (
    GraphTraversal,
    ImpactEntry,
    Neighbor,
    NodeDetail,
)
from codegraph.query.search import CodeSearch, SearchHit
from codegraph.query.context import CodeBlock, ContextBuilder, RankedSymbol, TaskContext

__all__ = [
    "CodeBlock",
    "CodeSearch",
    "ContextBuilder",
    "GraphTraversal",
    "ImpactEntry",
    "Neighbor",
    "NodeDetail",
    "RankedSymbol",
    "SearchHit",
    "TaskContext",
]
