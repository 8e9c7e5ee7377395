"""
Embedding pass over stored symbols.

Builds a short text payload for each symbol (signature, docstring and
leading code lines), embeds the payloads in batches and stores the
vectors under the provider's model name.
"""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from codegraph.core.config import EmbeddingConfig, ProjectConfig
from codegraph.core.exceptions import EmbeddingError
from codegraph.core.pipeline import PipelineStage, PipelineState
from codegraph.embedding.encoder import TransformerEmbeddingProvider
from codegraph.embedding.provider import EmbeddingProvider
from codegraph.embedding.vectors import to_bytes
from codegraph.graph.entities import NodeKind, Symbol
from codegraph.storage.store import GraphStore

logger = logging.getLogger(__name__)

EMBEDDABLE_KINDS = (
    NodeKind.FUNCTION, NodeKind.METHOD, NodeKind.CLASS, NodeKind.INTERFACE,
    NodeKind.PROTOCOL, NodeKind.ENUM, NodeKind.STRUCT, NodeKind.TRAIT,
    NodeKind.FILE,
)


@dataclass
class SymbolPayload:
    """
    Text content embedded for one symbol.
    """

    symbol_id: str
    kind: str
    signature: str
    docstring: Optional[str] = None
    code_lines: List[str] = field(default_factory=list)

    def to_text(self, max_length: int = 512) -> str:
        """
        Convert payload to text for embedding.

        Args:
            max_length: Maximum character length.

        Returns:
            Text representation of the payload.
        """
        parts = [self.signature]

        if self.docstring:
            doc_lines = self.docstring.split("\n")[:3]
            parts.append(" ".join(doc_lines).strip())

        if self.code_lines:
            parts.append(" ".join(self.code_lines[:10]))

        text = " ".join(parts)

        if len(text) > max_length:
            text = text[:max_length - 3] + "..."

        return text


def build_payload(symbol: Symbol, source: Optional[str] = None) -> SymbolPayload:
    """
    Build the embedding payload of a symbol.

    Args:
        symbol: Symbol to describe.
        source: Full text of the symbol's file, if available.

    Returns:
        SymbolPayload for the symbol.
    """
    header = f"{symbol.kind.value} {symbol.qualified_name}"
    if symbol.signature and symbol.kind != NodeKind.FILE:
        header += symbol.signature

    code_lines: List[str] = []
    if source:
        lines = source.splitlines()[symbol.start_line - 1:symbol.end_line]
        code_lines = [
            line.strip() for line in lines
            if line.strip() and not line.strip().startswith("#")
        ]

    return SymbolPayload(
        symbol_id=symbol.id,
        kind=symbol.kind.value,
        signature=header,
        docstring=symbol.docstring,
        code_lines=code_lines,
    )


@dataclass
class EmbeddingReport:
    """Summary of an embedding pass."""

    model: str
    embedded: int = 0
    failed: int = 0
    duration_seconds: float = 0.0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "model": self.model,
            "embedded": self.embedded,
            "failed": self.failed,
            "duration_seconds": round(self.duration_seconds, 3),
            "errors": self.errors[:20],
        }


class SymbolEmbedder:
    """
    Embeds the symbols of a graph store that lack a vector for the
    provider's model.
    """

    def __init__(
        self,
        store: GraphStore,
        provider: EmbeddingProvider,
        config: EmbeddingConfig = None,
        source_root: Optional[Path] = None,
    ):
        self.store = store
        self.provider = provider
        self.config = config or EmbeddingConfig()
        self.source_root = Path(source_root) if source_root else None
        self._sources: Dict[str, Optional[str]] = {}

    def embed_symbols(
        self,
        kinds: Iterable[NodeKind] = EMBEDDABLE_KINDS,
        limit: int = 10000,
    ) -> EmbeddingReport:
        """
        Embed symbols without a vector for the current model.

        A batch the provider rejects is retried symbol by symbol, so one
        bad payload only fails itself.

        Args:
            kinds: Symbol kinds to embed.
            limit: Maximum number of symbols in this pass.

        Returns:
            EmbeddingReport with counts and errors.
        """
        started = time.time()
        model = self.provider.model_name
        report = EmbeddingReport(model=model)

        pending = self.store.symbols_without_embedding(model, kinds=list(kinds), limit=limit)
        logger.info(f"Embedding {len(pending)} symbols with {model}")

        batch_size = max(1, self.config.batch_size)
        for start in range(0, len(pending), batch_size):
            batch = pending[start:start + batch_size]
            texts = [self._payload_text(symbol) for symbol in batch]

            try:
                vectors = self.provider.embed_batch(texts)
            except EmbeddingError as e:
                logger.warning(f"Batch embedding failed, retrying one by one: {e}")
                vectors = None

            if vectors is not None and len(vectors) == len(batch):
                for symbol, vector in zip(batch, vectors):
                    self._store(symbol, vector, report)
            else:
                for symbol, text in zip(batch, texts):
                    try:
                        self._store(symbol, self.provider.embed(text), report)
                    except EmbeddingError as e:
                        report.failed += 1
                        report.errors.append(f"{symbol.qualified_name}: {e}")

        report.duration_seconds = time.time() - started
        logger.info(
            f"Embedded {report.embedded} symbols ({report.failed} failed) "
            f"in {report.duration_seconds:.2f}s"
        )
        return report

    def _store(self, symbol: Symbol, vector, report: EmbeddingReport) -> None:
        data = to_bytes(vector)
        if not data:
            report.failed += 1
            report.errors.append(f"{symbol.qualified_name}: empty vector")
            return
        self.store.store_embedding(symbol.id, data, self.provider.model_name)
        report.embedded += 1

    def _payload_text(self, symbol: Symbol) -> str:
        payload = build_payload(symbol, self._source_for(symbol.file_path))
        return payload.to_text(max_length=self.config.max_token_length * 4)

    def _source_for(self, file_path: str) -> Optional[str]:
        if self.source_root is None:
            return None
        if file_path not in self._sources:
            try:
                self._sources[file_path] = (self.source_root / file_path).read_text(
                    encoding="utf-8", errors="replace"
                )
            except (IOError, OSError) as e:
                logger.debug(f"Failed to read {file_path}: {e}")
                self._sources[file_path] = None
        return self._sources[file_path]


class EmbeddingStage(PipelineStage):
    """
    Pipeline stage that embeds new symbols when embeddings are enabled.
    """

    def __init__(self, config: ProjectConfig, provider: EmbeddingProvider = None):
        super().__init__(config)
        self.provider = provider

    @property
    def name(self) -> str:
        return "embed"

    @property
    def dependencies(self) -> List[str]:
        return ["ingest"]

    def should_run(self, state: PipelineState) -> bool:
        return self.config.embedding.enabled or self.provider is not None

    def execute(self, state: PipelineState) -> Tuple[EmbeddingReport, Dict[str, Any]]:
        if self.provider is None:
            self.provider = TransformerEmbeddingProvider(self.config.embedding)

        embedder = SymbolEmbedder(
            state.store,
            self.provider,
            self.config.embedding,
            source_root=Path(state.project_root),
        )
        removed = state.store.delete_embeddings(except_model=self.provider.model_name)
        if removed:
            self.logger.info(f"Dropped {removed} vectors from other models")

        report = embedder.embed_symbols()
        return report, report.to_dict()
