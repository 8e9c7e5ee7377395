"""
Task context assembly.

Gathers the symbols relevant to a task (explicit seeds, search hits for
a free-text query and their graph neighbourhood), ranks and trims them
to the configured budgets and attaches source snippets, producing a
bundle an assistant can read as markdown or JSON.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import networkx as nx

from codegraph.core.config import ContextConfig
from codegraph.core.exceptions import QueryError
from codegraph.graph.entities import NodeKind, Symbol
from codegraph.graph.semantic_graph import SemanticGraph
from codegraph.query.search import CodeSearch
from codegraph.query.traversal import GraphTraversal

logger = logging.getLogger(__name__)

# Score multiplier per hop away from an entry point
NEIGHBOR_DECAY = 0.5

# Search hits promoted to entry points
MAX_SEARCH_ENTRY_POINTS = 5

_SKIPPED_KINDS = frozenset({NodeKind.IMPORT, NodeKind.PARAMETER})

_CODE_KINDS = frozenset({
    NodeKind.FUNCTION, NodeKind.METHOD, NodeKind.CLASS, NodeKind.STRUCT,
    NodeKind.INTERFACE, NodeKind.TRAIT, NodeKind.PROTOCOL, NodeKind.ENUM,
    NodeKind.PROPERTY, NodeKind.ROUTE, NodeKind.COMPONENT,
})


@dataclass
class CodeBlock:
    """Source snippet of one symbol."""

    symbol_id: str
    qualified_name: str
    file_path: str
    start_line: int
    end_line: int
    language: str
    content: str
    truncated: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol_id": self.symbol_id,
            "qualified_name": self.qualified_name,
            "file_path": self.file_path,
            "start_line": self.start_line,
            "end_line": self.end_line,
            "language": self.language,
            "content": self.content,
            "truncated": self.truncated,
        }


@dataclass
class RankedSymbol:
    """A symbol selected for a context and why."""

    symbol: Symbol
    score: float
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.symbol.id,
            "name": self.symbol.name,
            "qualified_name": self.symbol.qualified_name,
            "kind": self.symbol.kind.value,
            "file_path": self.symbol.file_path,
            "start_line": self.symbol.start_line,
            "signature": self.symbol.signature,
            "score": round(self.score, 4),
            "reason": self.reason,
        }


@dataclass
class TaskContext:
    """
    Context bundle for a task.

    `nodes` is ranked best first; `subgraph` holds those nodes and the
    edges among them.
    """

    query: Optional[str]
    nodes: List[RankedSymbol] = field(default_factory=list)
    subgraph: SemanticGraph = field(default_factory=SemanticGraph)
    entry_points: List[str] = field(default_factory=list)
    code_blocks: List[CodeBlock] = field(default_factory=list)
    related_files: List[str] = field(default_factory=list)
    summary: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.nodes

    @property
    def stats(self) -> Dict[str, int]:
        return {
            "nodes": len(self.nodes),
            "edges": self.subgraph.edge_count,
            "entry_points": len(self.entry_points),
            "code_blocks": len(self.code_blocks),
            "files": len(self.related_files),
        }

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "query": self.query,
            "summary": self.summary,
            "entry_points": self.entry_points,
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [
                {
                    "source": r.source,
                    "target": r.target,
                    "kind": r.kind.value,
                }
                for r in self.subgraph.iter_relationships()
            ],
            "code_blocks": [b.to_dict() for b in self.code_blocks],
            "related_files": self.related_files,
            "stats": self.stats,
        }

    def to_markdown(self) -> str:
        """Render the context as markdown."""
        lines = ["# Code Context", ""]
        if self.query:
            lines.extend([f"**Query:** {self.query}", ""])
        if self.summary:
            lines.extend([self.summary, ""])

        if self.is_empty:
            lines.append("_No matching symbols._")
            return "\n".join(lines) + "\n"

        names = {n.symbol.id: n.symbol.qualified_name for n in self.nodes}

        lines.extend(["## Symbols", ""])
        for node in self.nodes:
            symbol = node.symbol
            marker = " (entry point)" if symbol.id in self.entry_points else ""
            lines.append(
                f"- `{symbol.qualified_name}` {symbol.kind.value} "
                f"at {symbol.file_path}:{symbol.start_line}{marker}"
            )
        lines.append("")

        relationships = list(self.subgraph.iter_relationships())
        if relationships:
            lines.extend(["## Relationships", ""])
            for rel in relationships:
                lines.append(
                    f"- `{names.get(rel.source, rel.source)}` {rel.kind.value} "
                    f"`{names.get(rel.target, rel.target)}`"
                )
            lines.append("")

        if self.code_blocks:
            lines.extend(["## Code", ""])
            for block in self.code_blocks:
                lines.append(
                    f"### {block.qualified_name} "
                    f"({block.file_path}:{block.start_line}-{block.end_line})"
                )
                lines.append("")
                lines.append(f"```{block.language}")
                lines.append(block.content)
                lines.append("```")
                lines.append("")

        if self.related_files:
            lines.extend(["## Files", ""])
            lines.extend(f"- {path}" for path in self.related_files)
            lines.append("")

        return "\n".join(lines)


class ContextBuilder:
    """
    Builds task contexts from seeds and free-text queries.
    """

    def __init__(
        self,
        traversal: GraphTraversal,
        search: CodeSearch,
        config: ContextConfig = None,
        source_root: Optional[Path] = None,
    ):
        self.traversal = traversal
        self.search = search
        self.config = config or ContextConfig()
        self.source_root = Path(source_root) if source_root else None

    def build_context(
        self,
        query: Optional[str] = None,
        seeds: Optional[Iterable[str]] = None,
        max_nodes: Optional[int] = None,
        include_code: Optional[bool] = None,
        depth: Optional[int] = None,
    ) -> TaskContext:
        """
        Assemble a ranked, de-duplicated context bundle.

        Seeds score highest, search hits score by relevance, and graph
        neighbours inherit a decayed score from the entry point they are
        closest to.

        Args:
            query: Free-text description of the task.
            seeds: Symbol ids to start from. Unknown ids are ignored.
            max_nodes: Node budget, defaults to the configured value.
            include_code: Attach source snippets.
            depth: Neighbourhood depth around entry points.

        Returns:
            TaskContext, empty if nothing matched.

        Raises:
            QueryError: If neither a query nor seeds are given.
        """
        seeds = list(seeds or [])
        if not seeds and not (query or "").strip():
            raise QueryError("A query or at least one seed symbol is required")

        max_nodes = max_nodes or self.config.max_nodes
        depth = self.config.traversal_depth if depth is None else depth
        include_code = self.config.include_code if include_code is None else include_code

        scores: Dict[str, float] = {}
        reasons: Dict[str, str] = {}
        symbols: Dict[str, Symbol] = {}

        for symbol_id, symbol in self.traversal.store.get_symbols(seeds).items():
            symbols[symbol_id] = symbol
            scores[symbol_id] = 1.0
            reasons[symbol_id] = "seed"

        if query and query.strip():
            hits = self.search.search(query, limit=max_nodes)
            top = max((h.score for h in hits), default=0.0)
            for hit in hits:
                if hit.symbol.kind in _SKIPPED_KINDS or hit.symbol.id in scores:
                    continue
                symbols[hit.symbol.id] = hit.symbol
                scores[hit.symbol.id] = 0.9 * (hit.score / top if top > 0 else 0.0)
                reasons[hit.symbol.id] = f"{hit.source} match"

        entry_points = self._rank(scores, symbols)[:len(seeds) + MAX_SEARCH_ENTRY_POINTS]
        if not entry_points:
            return TaskContext(query=query, summary="No matching symbols found.")

        neighbourhood = self.traversal.subgraph(
            entry_points, depth=depth, direction="both", limit=max_nodes * 3
        )
        self._score_neighbours(neighbourhood, entry_points, scores, reasons, symbols)

        selected = self._rank(scores, symbols)[:max_nodes]
        context = TaskContext(
            query=query,
            nodes=[RankedSymbol(symbols[sid], scores[sid], reasons[sid]) for sid in selected],
            entry_points=[sid for sid in entry_points if sid in selected],
        )

        graph = SemanticGraph(name="context", roots=context.entry_points)
        for node in context.nodes:
            graph.add_symbol(node.symbol)
        for rel in neighbourhood.iter_relationships():
            graph.add_relationship(rel)
        context.subgraph = graph

        context.related_files = list(dict.fromkeys(n.symbol.file_path for n in context.nodes))
        if include_code:
            context.code_blocks = self._code_blocks(context.nodes)

        context.summary = (
            f"{len(context.nodes)} symbols across {len(context.related_files)} files, "
            f"{len(context.entry_points)} entry points."
        )
        logger.debug(f"Built context for {query!r}: {context.stats}")
        return context

    def _rank(self, scores: Dict[str, float], symbols: Dict[str, Symbol]) -> List[str]:
        return sorted(
            scores,
            key=lambda sid: (-scores[sid], symbols[sid].qualified_name, sid),
        )

    def _score_neighbours(
        self,
        neighbourhood: SemanticGraph,
        entry_points: List[str],
        scores: Dict[str, float],
        reasons: Dict[str, str],
        symbols: Dict[str, Symbol],
    ) -> None:
        undirected = neighbourhood.get_networkx_graph().to_undirected(as_view=True)
        for entry in entry_points:
            if entry not in undirected:
                continue
            distances = nx.single_source_shortest_path_length(undirected, entry)
            for symbol_id, distance in distances.items():
                if distance == 0:
                    continue
                symbol = neighbourhood.get_symbol(symbol_id)
                if symbol is None or symbol.kind in _SKIPPED_KINDS:
                    continue
                score = scores[entry] * (NEIGHBOR_DECAY ** distance)
                if score > scores.get(symbol_id, 0.0):
                    scores[symbol_id] = score
                    reasons[symbol_id] = f"related to {symbols[entry].name}"
                    symbols[symbol_id] = symbol

    def _code_blocks(self, nodes: List[RankedSymbol]) -> List[CodeBlock]:
        if self.source_root is None:
            return []

        blocks: List[CodeBlock] = []
        files: Dict[str, Optional[List[str]]] = {}
        limit = self.config.max_code_block_size

        for node in nodes:
            if len(blocks) >= self.config.max_code_blocks:
                break
            symbol = node.symbol
            if symbol.kind not in _CODE_KINDS:
                continue

            if symbol.file_path not in files:
                files[symbol.file_path] = self._read_lines(symbol.file_path)
            lines = files[symbol.file_path]
            if not lines:
                continue

            content = "\n".join(lines[symbol.start_line - 1:symbol.end_line])
            truncated = len(content) > limit
            if truncated:
                content = content[:limit].rstrip() + "\n..."

            blocks.append(CodeBlock(
                symbol_id=symbol.id,
                qualified_name=symbol.qualified_name,
                file_path=symbol.file_path,
                start_line=symbol.start_line,
                end_line=symbol.end_line,
                language=symbol.language,
                content=content,
                truncated=truncated,
            ))
        return blocks

    def _read_lines(self, file_path: str) -> Optional[List[str]]:
        try:
            text = (self.source_root / file_path).read_text(encoding="utf-8", errors="replace")
        except (IOError, OSError) as e:
            logger.debug(f"Failed to read {file_path}: {e}")
            return None
        return text.splitlines()
