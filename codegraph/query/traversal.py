"""
Graph traversal queries.

One-hop callers and callees, impact radius, subgraph exploration and
node detail. Every query here is read-only and bounded by depth or
node limits, so traversal terminates on cyclic graphs.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from codegraph.core.config import TraversalConfig
from codegraph.core.exceptions import QueryError
from codegraph.graph.entities import EdgeKind, Relationship, Symbol, UnresolvedReference
from codegraph.graph.semantic_graph import SemanticGraph
from codegraph.storage.store import GraphStore

logger = logging.getLogger(__name__)

CALL_EDGE_KINDS = (EdgeKind.CALLS, EdgeKind.INSTANTIATES)

_DIRECTIONS = ("in", "out", "both")


@dataclass
class Neighbor:
    """A symbol one hop away together with the edge that links it."""

    symbol: Symbol
    relationship: Relationship

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol.to_dict(),
            "kind": self.relationship.kind.value,
            "line": self.relationship.line,
        }


@dataclass
class ImpactEntry:
    """A symbol reached by an impact query and its shortest distance."""

    symbol: Symbol
    depth: int
    via: Optional[EdgeKind] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.symbol.id,
            "name": self.symbol.name,
            "qualified_name": self.symbol.qualified_name,
            "kind": self.symbol.kind.value,
            "file_path": self.symbol.file_path,
            "depth": self.depth,
            "via": self.via.value if self.via else None,
        }


@dataclass
class NodeDetail:
    """Everything the graph knows about one symbol."""

    symbol: Symbol
    ancestors: List[Symbol] = field(default_factory=list)
    children: List[Symbol] = field(default_factory=list)
    incoming: List[Neighbor] = field(default_factory=list)
    outgoing: List[Neighbor] = field(default_factory=list)
    unresolved: List[UnresolvedReference] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "symbol": self.symbol.to_dict(),
            "ancestors": [s.qualified_name for s in self.ancestors],
            "children": [
                {"id": s.id, "name": s.name, "kind": s.kind.value} for s in self.children
            ],
            "incoming": [n.to_dict() for n in self.incoming],
            "outgoing": [n.to_dict() for n in self.outgoing],
            "unresolved": [r.to_dict() for r in self.unresolved],
        }


class GraphTraversal:
    """
    Read-only traversal over a graph store.
    """

    def __init__(self, store: GraphStore, config: TraversalConfig = None):
        self.store = store
        self.config = config or TraversalConfig()

    @property
    def impact_edge_kinds(self) -> List[EdgeKind]:
        return [EdgeKind(kind) for kind in self.config.impact_edge_kinds]

    def callers(
        self,
        symbol_id: str,
        kinds: Sequence[EdgeKind] = CALL_EDGE_KINDS,
        limit: Optional[int] = None,
    ) -> List[Neighbor]:
        """
        Symbols that call (or instantiate) the given symbol.

        Args:
            symbol_id: Target symbol.
            kinds: Edge kinds that count as a call.
            limit: Maximum number of callers.

        Returns:
            Callers in edge order, one entry per distinct caller.
        """
        return self._one_hop(symbol_id, kinds, incoming=True, limit=limit)

    def callees(
        self,
        symbol_id: str,
        kinds: Sequence[EdgeKind] = CALL_EDGE_KINDS,
        limit: Optional[int] = None,
    ) -> List[Neighbor]:
        """Symbols called (or instantiated) by the given symbol."""
        return self._one_hop(symbol_id, kinds, incoming=False, limit=limit)

    def _one_hop(
        self,
        symbol_id: str,
        kinds: Sequence[EdgeKind],
        incoming: bool,
        limit: Optional[int],
    ) -> List[Neighbor]:
        edges: List[Relationship] = []
        for kind in kinds:
            if incoming:
                edges.extend(self.store.edges_to(symbol_id, kind))
            else:
                edges.extend(self.store.edges_from(symbol_id, kind))
        edges.sort(key=lambda e: e.id or 0)

        other_ids = [e.source if incoming else e.target for e in edges]
        symbols = self.store.get_symbols(other_ids)

        neighbors, seen = [], set()
        for edge, other_id in zip(edges, other_ids):
            if other_id in seen or other_id not in symbols:
                continue
            seen.add(other_id)
            neighbors.append(Neighbor(symbols[other_id], edge))
            if limit is not None and len(neighbors) >= limit:
                break
        return neighbors

    def impact(
        self,
        symbol_id: str,
        max_depth: Optional[int] = None,
        include_seed: bool = False,
        edge_kinds: Optional[Iterable[EdgeKind]] = None,
    ) -> List[ImpactEntry]:
        """
        Symbols that depend on the given symbol, directly or transitively.

        Breadth-first over incoming edges of the impact edge kinds,
        examining one kind at a time. Each symbol is reported once at the
        smallest depth it was reached.

        Args:
            symbol_id: Seed symbol.
            max_depth: Number of hops to follow, defaults to the
                configured maximum.
            include_seed: Report the seed itself at depth 0.
            edge_kinds: Override the configured impact edge kinds.

        Returns:
            Entries ordered by depth then qualified name. Empty if the
            seed does not exist.

        Raises:
            QueryError: If max_depth is negative.
        """
        if max_depth is None:
            max_depth = self.config.max_impact_depth
        if max_depth < 0:
            raise QueryError(
                f"Impact depth must be non-negative, got {max_depth}",
                details={"symbol_id": symbol_id},
            )

        seed = self.store.get_symbol(symbol_id)
        if seed is None:
            return []

        kinds = list(edge_kinds) if edge_kinds is not None else self.impact_edge_kinds
        depths: Dict[str, int] = {seed.id: 0}
        via: Dict[str, EdgeKind] = {}
        queue = deque([(seed.id, 0)])

        while queue:
            current, depth = queue.popleft()
            if depth >= max_depth:
                continue
            for kind in kinds:
                for edge in self.store.edges_to(current, kind):
                    if edge.source in depths:
                        continue
                    depths[edge.source] = depth + 1
                    via[edge.source] = kind
                    queue.append((edge.source, depth + 1))

        symbols = self.store.get_symbols(depths)
        entries = [
            ImpactEntry(symbols[sid], depth, via.get(sid))
            for sid, depth in depths.items()
            if sid in symbols and (include_seed or sid != seed.id)
        ]
        entries.sort(key=lambda e: (e.depth, e.symbol.qualified_name, e.symbol.id))

        logger.debug(
            f"Impact of {seed.qualified_name} (depth {max_depth}): {len(entries)} symbols"
        )
        return entries

    def subgraph(
        self,
        roots: Iterable[str],
        depth: int = 1,
        direction: str = "both",
        edge_kinds: Optional[Iterable[EdgeKind]] = None,
        limit: Optional[int] = None,
    ) -> SemanticGraph:
        """
        Materialize the neighbourhood of some symbols.

        Args:
            roots: Symbol ids to start from. Unknown ids are ignored.
            depth: Number of hops to follow.
            direction: "in", "out", or "both".
            edge_kinds: Only follow these edge kinds, all kinds if None.
            limit: Maximum number of symbols, defaults to the configured
                subgraph limit.

        Returns:
            SemanticGraph with the visited symbols and the edges among them.
        """
        if direction not in _DIRECTIONS:
            raise QueryError(f"Unknown direction: {direction}")
        if depth < 0:
            raise QueryError(f"Subgraph depth must be non-negative, got {depth}")

        limit = limit or self.config.subgraph_limit
        kinds = set(edge_kinds) if edge_kinds is not None else None

        root_symbols = self.store.get_symbols(roots)
        graph = SemanticGraph(name="subgraph", roots=list(root_symbols))
        for symbol in root_symbols.values():
            graph.add_symbol(symbol)

        edges: Dict[Any, Relationship] = {}
        frontier = list(root_symbols)
        for _ in range(depth):
            next_ids = []
            for symbol_id in frontier:
                for edge in self._edges_around(symbol_id, direction):
                    if kinds is not None and edge.kind not in kinds:
                        continue
                    edges[edge.id] = edge
                    other = edge.target if edge.source == symbol_id else edge.source
                    if other not in graph and other not in next_ids:
                        next_ids.append(other)

            room = limit - graph.node_count
            if room <= 0 or not next_ids:
                break
            found = self.store.get_symbols(next_ids[:room])
            for symbol_id in next_ids[:room]:
                if symbol_id in found:
                    graph.add_symbol(found[symbol_id])
            frontier = list(found)

        for edge in edges.values():
            graph.add_relationship(edge)
        return graph

    def _edges_around(self, symbol_id: str, direction: str) -> List[Relationship]:
        edges = []
        if direction in ("out", "both"):
            edges.extend(self.store.edges_from(symbol_id))
        if direction in ("in", "both"):
            edges.extend(self.store.edges_to(symbol_id))
        return edges

    def node_detail(self, symbol_id: str) -> Optional[NodeDetail]:
        """
        Collect a symbol with its containment chain and direct relations.

        Returns:
            NodeDetail, or None if the symbol does not exist.
        """
        symbol = self.store.get_symbol(symbol_id)
        if symbol is None:
            return None

        detail = NodeDetail(symbol=symbol)
        detail.ancestors = self._ancestors(symbol)

        contained = self.store.edges_from(symbol.id, EdgeKind.CONTAINS)
        children = self.store.get_symbols(e.target for e in contained)
        detail.children = [children[e.target] for e in contained if e.target in children]

        detail.incoming = [
            n for n in self._one_hop(symbol.id, list(EdgeKind), incoming=True, limit=None)
            if n.relationship.kind != EdgeKind.CONTAINS
        ]
        detail.outgoing = [
            n for n in self._one_hop(symbol.id, list(EdgeKind), incoming=False, limit=None)
            if n.relationship.kind != EdgeKind.CONTAINS
        ]
        detail.unresolved = self.store.unresolved_from(symbol.id)
        return detail

    def _ancestors(self, symbol: Symbol) -> List[Symbol]:
        """Containment chain from the file down to the direct parent."""
        chain: List[Symbol] = []
        seen = {symbol.id}
        current = symbol.id
        while True:
            parents = self.store.edges_to(current, EdgeKind.CONTAINS, limit=1)
            if not parents or parents[0].source in seen:
                break
            parent = self.store.get_symbol(parents[0].source)
            if parent is None:
                break
            chain.append(parent)
            seen.add(parent.id)
            current = parent.id
        chain.reverse()
        return chain
