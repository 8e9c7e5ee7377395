"""
Semantic embeddings for graph symbols.

Provides the embedding provider interface, a transformer-backed
provider and the pass that stores symbol vectors in the graph store.
"""

from codegraph.embedding.provider import EmbeddingProvider
from codegraph.embedding.encoder import TransformerEmbeddingProvider
from codegraph.embedding.embedder import (
    EmbeddingReport,
    EmbeddingStage,
    SymbolEmbedder,
    SymbolPayload,
    build_payload,
)
from codegraph.embedding.vectors import cosine_similarity, from_bytes, to_bytes

__all__ = [
    "EmbeddingProvider",
    "EmbeddingReport",
    "EmbeddingStage",
    "SymbolEmbedder",
    "SymbolPayload",
    "TransformerEmbeddingProvider",
    "build_payload",
    "cosine_similarity",
    "from_bytes",
    "to_bytes",
]
