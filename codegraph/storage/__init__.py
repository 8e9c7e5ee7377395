"""
Persistent graph storage.
"""

from codegraph.storage.store import GraphStore, UpsertResult, build_fts_query

__all__ = [
    "GraphStore",
    "UpsertResult",
    "build_fts_query",
]
