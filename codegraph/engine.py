"""
Main engine for the Code Graph system.

Provides a high-level interface over one project's graph: project
initialization, full indexing and incremental sync, resolution, and the
query operations consumed by the tool layer.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from codegraph.core.config import CONFIG_FILE_NAME, Config, ProjectConfig
from codegraph.core.exceptions import StoreUnavailableError
from codegraph.core.pipeline import Pipeline
from codegraph.embedding.embedder import EmbeddingReport, EmbeddingStage, SymbolEmbedder
from codegraph.embedding.encoder import TransformerEmbeddingProvider
from codegraph.embedding.provider import EmbeddingProvider
from codegraph.graph.entities import EdgeKind, NodeKind, Symbol
from codegraph.graph.semantic_graph import SemanticGraph
from codegraph.ingestion.scanner import ScanStage
from codegraph.ingestion.sync import BatchReport, IngestionPipeline, IngestStage
from codegraph.memory import MemoryManager
from codegraph.query.context import ContextBuilder, TaskContext
from codegraph.query.search import CodeSearch, SearchHit
from codegraph.query.traversal import GraphTraversal, ImpactEntry, Neighbor, NodeDetail
from codegraph.resolution.resolver import ReferenceResolver, ResolutionReport, ResolutionStage
from codegraph.storage.store import GraphStore

logger = logging.getLogger(__name__)

MEMORY_DIR_NAME = "memories"
LAST_RUN_FILE = "last_run.json"


class CodeGraphEngine:
    """
    Code graph of one project.

    Use `init()` to create the graph for a new project and `open()` for
    an existing one. The engine owns its store; close it when done.
    """

    def __init__(
        self,
        root: Path,
        store: GraphStore,
        config: ProjectConfig = None,
        provider: Optional[EmbeddingProvider] = None,
    ):
        self.root = Path(root).resolve()
        self.store = store
        self.config = config or Config.get()

        if provider is None and self.config.embedding.enabled:
            provider = TransformerEmbeddingProvider(self.config.embedding)
        self.provider = provider

        self.resolver = ReferenceResolver(store, self.config.resolution)
        self.ingestion = IngestionPipeline(store, self.config.index, resolver=self.resolver)
        self.traversal = GraphTraversal(store, self.config.traversal)
        self.searcher = CodeSearch(store, self.config.search, provider)
        self.context_builder = ContextBuilder(
            self.traversal, self.searcher, self.config.context, source_root=self.root
        )
        self.memory = MemoryManager(self.data_dir / MEMORY_DIR_NAME)

    # Lifecycle

    @staticmethod
    def _data_dir(root: Path, config: ProjectConfig) -> Path:
        return Path(root).resolve() / config.storage.data_dir

    @classmethod
    def _db_path(cls, root: Path, config: ProjectConfig) -> Path:
        return cls._data_dir(root, config) / config.storage.database_name

    @classmethod
    def is_initialized(cls, root: str, config: ProjectConfig = None) -> bool:
        """Whether a project already has a graph database."""
        config = config or Config.get()
        return cls._db_path(Path(root), config).exists()

    @classmethod
    def init(
        cls,
        root: str,
        config: ProjectConfig = None,
        provider: Optional[EmbeddingProvider] = None,
    ) -> "CodeGraphEngine":
        """
        Initialize the graph for a project.

        Creates the data directory, the database, a default config file
        and template memories. Initializing an existing project just opens
        it.

        Args:
            root: Project root directory.
            config: Configuration, defaults to the global one.
            provider: Embedding provider for semantic search.

        Returns:
            Engine for the project.
        """
        config = config or Config.get()
        data_dir = cls._data_dir(Path(root), config)
        data_dir.mkdir(parents=True, exist_ok=True)

        config_path = data_dir / CONFIG_FILE_NAME
        if not config_path.exists():
            Config.save_to_file(str(config_path), config)

        store = GraphStore.open(str(cls._db_path(Path(root), config)), config.storage)
        engine = cls(Path(root), store, config, provider)
        engine.memory.create_initial_memories(engine.root.name)
        logger.info(f"Initialized code graph in {data_dir}")
        return engine

    @classmethod
    def open(
        cls,
        root: str,
        config: ProjectConfig = None,
        provider: Optional[EmbeddingProvider] = None,
    ) -> "CodeGraphEngine":
        """
        Open the graph of an initialized project.

        Args:
            root: Project root directory.
            config: Configuration, defaults to the project's config file.
            provider: Embedding provider for semantic search.

        Raises:
            StoreUnavailableError: If the project is not initialized or
                its database is unusable.
        """
        config = config or Config.for_project(root)
        db_path = cls._db_path(Path(root), config)
        if not db_path.exists():
            raise StoreUnavailableError(
                str(db_path), "project is not initialized, run init first"
            )
        store = GraphStore.open(str(db_path), config.storage, create=False)
        return cls(Path(root), store, config, provider)

    @property
    def data_dir(self) -> Path:
        return self._data_dir(self.root, self.config)

    def close(self) -> None:
        if isinstance(self.provider, TransformerEmbeddingProvider):
            self.provider.unload_model()
        self.store.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    # Indexing

    def _create_pipeline(self) -> Pipeline:
        """Create and configure the indexing pipeline."""
        pipeline = Pipeline(self.config)

        pipeline.register_stage(ScanStage(self.config))
        pipeline.register_stage(IngestStage(self.config))
        pipeline.register_stage(ResolutionStage(self.config))
        pipeline.register_stage(EmbeddingStage(self.config, self.provider))

        pipeline.set_execution_order(["scan", "ingest", "resolve", "embed"])
        return pipeline

    def index_all(self, force: bool = False) -> BatchReport:
        """
        Index the whole project.

        Args:
            force: Drop the existing graph and rebuild from scratch.

        Returns:
            BatchReport of the ingestion, with the resolution summary.

        Raises:
            CodeGraphError: The error of the first failing stage.
        """
        state = self._create_pipeline().run(str(self.root), self.store, force=force)
        state.save(self.data_dir / LAST_RUN_FILE)

        failed = state.failed_stage
        if failed is not None:
            raise failed.exception

        report = state.data["ingest"]
        logger.info(
            f"Indexed {report.files_checked} files: {report.nodes} nodes, "
            f"{report.edges} edges, {len(report.errors)} files with errors"
        )
        return report

    def sync(self) -> BatchReport:
        """Bring the graph up to date with the project directory."""
        return self.ingestion.sync_directory(self.root)

    def ingest_file(self, path: str, content: bytes) -> BatchReport:
        """Index one file from in-memory content, then resolve."""
        return self.ingestion.ingest_file(path, content)

    def remove_file(self, path: str) -> BatchReport:
        """Remove one file from the graph, then resolve."""
        return self.ingestion.remove_file(path)

    def resolve(self) -> ResolutionReport:
        """Run a resolution pass over every unresolved reference."""
        return self.resolver.resolve_all()

    def stats(self) -> Dict[str, Any]:
        """Counts and distributions of the project graph."""
        stats = self.store.get_statistics()
        stats["root"] = str(self.root)
        stats["embedding_model"] = self.provider.model_name if self.provider else None
        return stats

    # Queries

    def get_symbol(self, symbol_id: str) -> Optional[Symbol]:
        return self.store.get_symbol(symbol_id)

    def find_symbols(
        self,
        name_pattern: Optional[str] = None,
        qualified_pattern: Optional[str] = None,
        kinds: Optional[Iterable[NodeKind]] = None,
        limit: Optional[int] = 100,
    ) -> List[Symbol]:
        return self.store.find_symbols(
            name_pattern=name_pattern,
            qualified_pattern=qualified_pattern,
            kinds=kinds,
            limit=limit,
        )

    def search(
        self,
        query: str,
        limit: Optional[int] = None,
        kinds: Optional[Iterable[NodeKind]] = None,
        mode: str = "hybrid",
    ) -> List[SearchHit]:
        return self.searcher.search(query, limit=limit, kinds=kinds, mode=mode)

    def callers(self, symbol_id: str, limit: Optional[int] = None) -> List[Neighbor]:
        return self.traversal.callers(symbol_id, limit=limit)

    def callees(self, symbol_id: str, limit: Optional[int] = None) -> List[Neighbor]:
        return self.traversal.callees(symbol_id, limit=limit)

    def impact(
        self, symbol_id: str, max_depth: Optional[int] = None, include_seed: bool = False
    ) -> List[ImpactEntry]:
        return self.traversal.impact(symbol_id, max_depth, include_seed=include_seed)

    def subgraph(
        self,
        roots: Iterable[str],
        depth: int = 1,
        direction: str = "both",
        edge_kinds: Optional[Iterable[EdgeKind]] = None,
        limit: Optional[int] = None,
    ) -> SemanticGraph:
        return self.traversal.subgraph(roots, depth, direction, edge_kinds, limit)

    def node_detail(self, symbol_id: str) -> Optional[NodeDetail]:
        return self.traversal.node_detail(symbol_id)

    def build_context(
        self,
        query: Optional[str] = None,
        seeds: Optional[Iterable[str]] = None,
        max_nodes: Optional[int] = None,
        include_code: Optional[bool] = None,
    ) -> TaskContext:
        return self.context_builder.build_context(
            query=query, seeds=seeds, max_nodes=max_nodes, include_code=include_code
        )

    # Embeddings

    def embed_symbols(
        self, provider: Optional[EmbeddingProvider] = None, limit: int = 10000
    ) -> EmbeddingReport:
        """
        Embed symbols that have no vector for the provider's model yet.

        Args:
            provider: Provider to use, defaults to the engine's provider
                or a transformer provider built from configuration.
            limit: Maximum number of symbols to embed.
        """
        provider = provider or self.provider
        if provider is None:
            provider = TransformerEmbeddingProvider(self.config.embedding)
        if self.provider is None:
            self.provider = provider
            self.searcher.provider = provider

        embedder = SymbolEmbedder(
            self.store, provider, self.config.embedding, source_root=self.root
        )
        return embedder.embed_symbols(limit=limit)

    def purge_embeddings(self, except_model: Optional[str] = None) -> int:
        """Drop stored vectors, keeping only those of `except_model`."""
        removed = self.store.delete_embeddings(except_model=except_model)
        logger.info(f"Removed {removed} embeddings")
        return removed
