"""
Lexical, semantic and hybrid symbol search.

Lexical search is the store's full-text index with OR semantics over
the query terms. Semantic search embeds the query and ranks stored
vectors of the active model by cosine similarity. Hybrid search blends
the two with configurable weights.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

import numpy as np

from codegraph.core.config import SearchConfig
from codegraph.core.exceptions import EmbeddingError, QueryError
from codegraph.embedding.provider import EmbeddingProvider
from codegraph.embedding.vectors import cosine_matrix, from_bytes
from codegraph.graph.entities import NodeKind, Symbol
from codegraph.storage.store import GraphStore

logger = logging.getLogger(__name__)

SEARCH_MODES = ("lexical", "semantic", "hybrid")


@dataclass
class SearchHit:
    """A symbol matched by a search and its score."""

    symbol: Symbol
    score: float
    source: str = "lexical"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.symbol.id,
            "name": self.symbol.name,
            "qualified_name": self.symbol.qualified_name,
            "kind": self.symbol.kind.value,
            "file_path": self.symbol.file_path,
            "start_line": self.symbol.start_line,
            "score": round(self.score, 4),
            "source": self.source,
        }


def _ranked(hits: Iterable[SearchHit], limit: int) -> List[SearchHit]:
    ordered = sorted(
        hits, key=lambda h: (-h.score, h.symbol.qualified_name, h.symbol.id)
    )
    return ordered[:limit]


class CodeSearch:
    """
    Symbol search over a graph store.

    Semantic and hybrid search need an embedding provider; without one
    they fall back to lexical results.
    """

    def __init__(
        self,
        store: GraphStore,
        config: SearchConfig = None,
        provider: Optional[EmbeddingProvider] = None,
    ):
        self.store = store
        self.config = config or SearchConfig()
        self.provider = provider

    def search(
        self,
        query: str,
        limit: Optional[int] = None,
        kinds: Optional[Iterable[NodeKind]] = None,
        mode: str = "hybrid",
    ) -> List[SearchHit]:
        """
        Search symbols.

        Args:
            query: Free text.
            limit: Maximum number of hits.
            kinds: Restrict to these symbol kinds.
            mode: "lexical", "semantic" or "hybrid".

        Returns:
            Hits ordered best first, at most one per symbol.
        """
        if mode not in SEARCH_MODES:
            raise QueryError(f"Unknown search mode: {mode}", details={"modes": SEARCH_MODES})

        if mode == "lexical":
            return self.lexical(query, limit, kinds)
        if mode == "semantic":
            return self.semantic(query, limit, kinds)
        return self.hybrid(query, limit, kinds)

    def lexical(
        self,
        query: str,
        limit: Optional[int] = None,
        kinds: Optional[Iterable[NodeKind]] = None,
    ) -> List[SearchHit]:
        """Full-text search; a symbol matching any query word is a hit."""
        limit = limit or self.config.default_limit
        return [
            SearchHit(symbol, score, "lexical")
            for symbol, score in self.store.search_text(query, limit=limit, kinds=kinds)
        ]

    def semantic(
        self,
        query: str,
        limit: Optional[int] = None,
        kinds: Optional[Iterable[NodeKind]] = None,
        min_similarity: Optional[float] = None,
    ) -> List[SearchHit]:
        """
        Rank stored vectors of the active model by similarity to the query.

        Returns an empty list when there is no provider or the query
        cannot be embedded.
        """
        if self.provider is None or not (query or "").strip():
            return []

        try:
            vector = self.provider.embed(query)
        except EmbeddingError as e:
            logger.warning(f"Could not embed query, skipping semantic search: {e}")
            return []

        return self.similar_to_vector(vector, limit, kinds, min_similarity)

    def similar_to_vector(
        self,
        vector: np.ndarray,
        limit: Optional[int] = None,
        kinds: Optional[Iterable[NodeKind]] = None,
        min_similarity: Optional[float] = None,
    ) -> List[SearchHit]:
        """Symbols whose stored vectors are most similar to `vector`."""
        if self.provider is None:
            return []

        limit = limit or self.config.default_limit
        floor = self.config.min_similarity if min_similarity is None else min_similarity
        vector = np.asarray(vector, dtype=np.float32).reshape(-1)

        ids, rows = [], []
        for symbol_id, data in self.store.iter_embeddings(self.provider.model_name):
            row = from_bytes(data)
            if row.shape != vector.shape:
                continue
            ids.append(symbol_id)
            rows.append(row)

        scores = cosine_matrix(vector, rows)
        if scores is None:
            return []

        above = [(ids[i], float(s)) for i, s in enumerate(scores) if s >= floor]
        symbols = self.store.get_symbols(sid for sid, _ in above)
        kind_filter = set(kinds) if kinds else None

        hits = [
            SearchHit(symbols[sid], score, "semantic")
            for sid, score in above
            if sid in symbols and (kind_filter is None or symbols[sid].kind in kind_filter)
        ]
        return _ranked(hits, limit)

    def hybrid(
        self,
        query: str,
        limit: Optional[int] = None,
        kinds: Optional[Iterable[NodeKind]] = None,
    ) -> List[SearchHit]:
        """
        Blend lexical and semantic results.

        Lexical scores are scaled so the best lexical hit scores 1.0,
        then each symbol scores the weighted sum of its lexical and
        semantic scores.
        """
        limit = limit or self.config.default_limit
        pool = limit * 2

        lexical = self.lexical(query, pool, kinds)
        semantic = self.semantic(query, pool, kinds)
        if not semantic:
            return lexical[:limit]

        top_lexical = max((h.score for h in lexical), default=0.0)
        combined: Dict[str, SearchHit] = {}

        for hit in lexical:
            normalized = hit.score / top_lexical if top_lexical > 0 else 0.0
            combined[hit.symbol.id] = SearchHit(
                hit.symbol, self.config.lexical_weight * normalized, "lexical"
            )

        for hit in semantic:
            weighted = self.config.semantic_weight * hit.score
            existing = combined.get(hit.symbol.id)
            if existing is None:
                combined[hit.symbol.id] = SearchHit(hit.symbol, weighted, "semantic")
            else:
                existing.score += weighted
                existing.source = "hybrid"

        return _ranked(combined.values(), limit)
