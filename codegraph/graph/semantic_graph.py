"""
In-memory semantic subgraph.

Traversal and context queries materialize the part of the persisted
graph they touched as a SemanticGraph, a thin wrapper around a
NetworkX multi-digraph keyed by symbol id.
"""

import logging
from typing import Any, Dict, Iterator, List, Optional, Set

import networkx as nx

from codegraph.graph.entities import EdgeKind, Relationship, Symbol

logger = logging.getLogger(__name__)


class SemanticGraph:
    """
    A set of symbols and the relationships among them.

    Edges whose endpoints are not part of the graph are dropped on
    insertion, so every edge held here is between two known symbols.
    """

    def __init__(self, name: str = "", roots: Optional[List[str]] = None):
        self.name = name
        self.roots: List[str] = list(roots or [])
        self._graph = nx.MultiDiGraph()
        self._symbols: Dict[str, Symbol] = {}
        self._kind_index: Dict[str, Set[str]] = {}

    @property
    def node_count(self) -> int:
        """Number of symbols in the graph."""
        return len(self._symbols)

    @property
    def edge_count(self) -> int:
        """Number of relationships in the graph."""
        return self._graph.number_of_edges()

    def __contains__(self, symbol_id: str) -> bool:
        return symbol_id in self._symbols

    def add_symbol(self, symbol: Symbol) -> None:
        """
        Add a symbol to the graph.

        Args:
            symbol: Symbol to add. Re-adding an id replaces the record.
        """
        self._symbols[symbol.id] = symbol
        self._graph.add_node(
            symbol.id,
            kind=symbol.kind.value,
            name=symbol.name,
            qualified_name=symbol.qualified_name,
            file_path=symbol.file_path,
        )
        self._kind_index.setdefault(symbol.kind.value, set()).add(symbol.id)

    def add_relationship(self, relationship: Relationship) -> bool:
        """
        Add a relationship to the graph.

        Args:
            relationship: Relationship to add.

        Returns:
            True if the edge was added, False if an endpoint is missing
            or the same edge is already present.
        """
        if relationship.source not in self._symbols:
            logger.debug(f"Source node not in subgraph: {relationship.source}")
            return False
        if relationship.target not in self._symbols:
            logger.debug(f"Target node not in subgraph: {relationship.target}")
            return False

        key = relationship.kind.value
        if self._graph.has_edge(relationship.source, relationship.target, key=key):
            return False

        self._graph.add_edge(
            relationship.source,
            relationship.target,
            key=key,
            kind=key,
            line=relationship.line,
            column=relationship.column,
            metadata=relationship.metadata,
        )
        return True

    def get_symbol(self, symbol_id: str) -> Optional[Symbol]:
        """Get a symbol by ID."""
        return self._symbols.get(symbol_id)

    def iter_symbols(self) -> Iterator[Symbol]:
        """Iterate over all symbols."""
        yield from self._symbols.values()

    def iter_relationships(self) -> Iterator[Relationship]:
        """Iterate over all relationships."""
        for source, target, data in self._graph.edges(data=True):
            yield Relationship(
                source=source,
                target=target,
                kind=EdgeKind(data["kind"]),
                metadata=data.get("metadata"),
                line=data.get("line"),
                column=data.get("column"),
            )

    def get_type_distribution(self) -> Dict[str, Dict[str, int]]:
        """Get distribution of symbol and edge kinds."""
        edge_counts: Dict[str, int] = {}
        for _, _, kind in self._graph.edges(keys=True):
            edge_counts[kind] = edge_counts.get(kind, 0) + 1
        return {
            "nodes": {
                kind: len(ids) for kind, ids in self._kind_index.items()
            },
            "edges": edge_counts,
        }

    def get_statistics(self) -> Dict[str, Any]:
        """Get graph statistics."""
        if self.node_count == 0:
            return {
                "node_count": 0,
                "edge_count": 0,
                "type_distribution": {"nodes": {}, "edges": {}},
            }

        return {
            "node_count": self.node_count,
            "edge_count": self.edge_count,
            "type_distribution": self.get_type_distribution(),
            "connected_components": (
                nx.number_weakly_connected_components(self._graph)
            ),
        }

    def to_dict(self) -> Dict[str, Any]:
        """Convert graph to dictionary for serialization."""
        return {
            "name": self.name,
            "roots": self.roots,
            "nodes": [symbol.to_dict() for symbol in self._symbols.values()],
            "edges": [rel.to_dict() for rel in self.iter_relationships()],
            "statistics": self.get_statistics(),
        }

    def get_networkx_graph(self) -> nx.MultiDiGraph:
        """Get the underlying NetworkX graph."""
        return self._graph
