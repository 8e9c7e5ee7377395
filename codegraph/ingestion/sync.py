"""
Incremental ingestion and synchronization.

Feeds extraction output into the graph store one file at a time,
skipping files whose content hash is unchanged, replacing the graph
contribution of changed files transactionally and removing files that
disappeared from the project.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from codegraph.core.config import IndexConfig
from codegraph.core.exceptions import ExtractionError, LanguageNotSupportedError
from codegraph.core.pipeline import PipelineStage, PipelineState
from codegraph.extraction.detector import LanguageDetector
from codegraph.extraction.registry import AdapterRegistry
from codegraph.graph.entities import ExtractionResult, FileRecord, ParseIssue
from codegraph.ingestion.scanner import SourceFile, SourceScanner
from codegraph.resolution.resolver import ReferenceResolver, ResolutionReport
from codegraph.storage.store import GraphStore
from codegraph.utils.hashing import content_hash

logger = logging.getLogger(__name__)


class FileStatus(Enum):
    """Outcome of ingesting one file."""
    ADDED = "added"
    MODIFIED = "modified"
    UNCHANGED = "unchanged"
    FAILED = "failed"


@dataclass
class FileOutcome:
    """What happened to one file during ingestion."""

    path: str
    status: FileStatus
    nodes: int = 0
    edges: int = 0
    unresolved: int = 0
    requeued: int = 0
    dropped_edges: int = 0
    errors: List[str] = field(default_factory=list)


@dataclass
class BatchReport:
    """Summary of an ingestion batch or a directory sync."""

    files_checked: int = 0
    added: List[str] = field(default_factory=list)
    modified: List[str] = field(default_factory=list)
    unchanged: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    nodes: int = 0
    edges: int = 0
    unresolved: int = 0
    requeued: int = 0
    errors: Dict[str, List[str]] = field(default_factory=dict)
    resolution: Optional[ResolutionReport] = None
    duration_seconds: float = 0.0

    @property
    def changed(self) -> bool:
        """True if any file was added, modified or removed."""
        return bool(self.added or self.modified or self.removed)

    def record(self, outcome: FileOutcome) -> None:
        self.files_checked += 1
        if outcome.status == FileStatus.ADDED:
            self.added.append(outcome.path)
        elif outcome.status == FileStatus.MODIFIED:
            self.modified.append(outcome.path)
        elif outcome.status == FileStatus.UNCHANGED:
            self.unchanged.append(outcome.path)
        self.nodes += outcome.nodes
        self.edges += outcome.edges
        self.unresolved += outcome.unresolved
        self.requeued += outcome.requeued
        if outcome.errors:
            self.errors[outcome.path] = list(outcome.errors)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "files_checked": self.files_checked,
            "files_added": len(self.added),
            "files_modified": len(self.modified),
            "files_unchanged": len(self.unchanged),
            "files_removed": len(self.removed),
            "nodes": self.nodes,
            "edges": self.edges,
            "unresolved": self.unresolved,
            "requeued": self.requeued,
            "errors": self.errors,
            "resolution": self.resolution.to_dict() if self.resolution else None,
            "duration_seconds": round(self.duration_seconds, 3),
        }


@dataclass
class _Prepared:
    source: SourceFile
    digest: str
    status: FileStatus
    extraction: ExtractionResult


class IngestionPipeline:
    """
    Moves extraction output into the graph store.

    Extraction runs outside any transaction; each batch of at most
    `batch_size` changed files is then written in one transaction. A
    file whose extraction fails is recorded and skipped, never aborting
    the batch.
    """

    def __init__(
        self,
        store: GraphStore,
        config: IndexConfig = None,
        resolver: Optional[ReferenceResolver] = None,
        detector: LanguageDetector = None,
    ):
        self.store = store
        self.config = config or IndexConfig()
        self.resolver = resolver
        self.detector = detector or LanguageDetector(self.config.language_extensions)
        self.scanner = SourceScanner(self.config, self.detector)

    def ingest_file(
        self,
        path: str,
        content: bytes,
        language: Optional[str] = None,
        modified_at: Optional[int] = None,
        force: bool = False,
        resolve: bool = True,
    ) -> BatchReport:
        """
        Ingest a single file from in-memory content.

        Args:
            path: Project-relative path of the file.
            content: Raw file content.
            language: Language tag, detected from the path if omitted.
            modified_at: Modification time in epoch milliseconds.
            force: Re-process even if the content hash is unchanged.
            resolve: Run a resolution pass if the graph changed.

        Returns:
            BatchReport for the single file.
        """
        if isinstance(content, str):
            content = content.encode("utf-8")

        language = language or self.detector.detect(path)
        source = SourceFile(
            path=path,
            absolute_path=Path(path),
            language=language or "unknown",
            size=len(content),
            modified_at=modified_at or int(time.time() * 1000),
        )
        return self.ingest_batch([source], force=force, resolve=resolve, contents={path: content})

    def ingest_batch(
        self,
        sources: List[SourceFile],
        force: bool = False,
        resolve: bool = True,
        contents: Optional[Dict[str, bytes]] = None,
    ) -> BatchReport:
        """
        Ingest a set of files, skipping unchanged ones.

        Args:
            sources: Files to ingest.
            force: Re-process files even if their hash is unchanged.
            resolve: Run a resolution pass afterwards if anything changed.
            contents: Optional pre-read content keyed by path.

        Returns:
            BatchReport with per-file outcomes and errors.
        """
        started = time.time()
        report = BatchReport()
        contents = contents or {}
        batch_size = max(1, self.config.batch_size)

        for start in range(0, len(sources), batch_size):
            chunk = sources[start:start + batch_size]
            prepared = []
            for source in chunk:
                item, outcome = self._prepare(source, contents.get(source.path), force)
                if item is not None:
                    prepared.append(item)
                else:
                    report.record(outcome)

            if prepared:
                for outcome in self._write(prepared):
                    report.record(outcome)

        if resolve:
            self._resolve_if_changed(report)

        report.duration_seconds = time.time() - started
        return report

    def remove_file(self, path: str, resolve: bool = True) -> BatchReport:
        """
        Remove a file from the graph.

        References from other files into the removed symbols are
        re-queued as unresolved.

        Args:
            path: Project-relative path.
            resolve: Run a resolution pass afterwards.

        Returns:
            BatchReport listing the removal.
        """
        started = time.time()
        report = BatchReport()
        if self.store.get_file(path) is not None:
            report.requeued += self.store.delete_file(path)
            report.removed.append(path)
            logger.info(f"Removed {path} from graph")

        if resolve:
            self._resolve_if_changed(report)

        report.duration_seconds = time.time() - started
        return report

    def sync_sources(
        self,
        sources: List[SourceFile],
        force: bool = False,
        remove_missing: bool = True,
        resolve: bool = True,
    ) -> BatchReport:
        """
        Bring the graph in line with a list of discovered files.

        Args:
            sources: Every file currently present in the project.
            force: Re-process files even if their hash is unchanged.
            remove_missing: Delete stored files absent from `sources`.
            resolve: Run a resolution pass afterwards if anything changed.

        Returns:
            BatchReport covering removals and ingestion.
        """
        started = time.time()
        removed: List[str] = []
        requeued = 0

        if remove_missing:
            present = {s.path for s in sources}
            for path in self.store.file_paths():
                if path not in present:
                    requeued += self.store.delete_file(path)
                    removed.append(path)
                    logger.debug(f"Removed deleted file {path}")

        report = self.ingest_batch(sources, force=force, resolve=False)
        report.removed.extend(removed)
        report.requeued += requeued

        if resolve:
            self._resolve_if_changed(report)

        report.duration_seconds = time.time() - started
        logger.info(
            f"Sync complete: {len(report.added)} added, {len(report.modified)} modified, "
            f"{len(report.removed)} removed, {len(report.unchanged)} unchanged, "
            f"{len(report.errors)} with errors"
        )
        return report

    def sync_directory(
        self,
        root: Path,
        force: bool = False,
        remove_missing: bool = True,
        resolve: bool = True,
    ) -> BatchReport:
        """Scan a project directory and sync the graph with it."""
        sources = self.scanner.scan(Path(root))
        return self.sync_sources(
            sources, force=force, remove_missing=remove_missing, resolve=resolve
        )

    def _resolve_if_changed(self, report: BatchReport) -> None:
        if self.resolver is not None and (report.changed or report.requeued):
            report.resolution = self.resolver.resolve_all()

    def _prepare(
        self, source: SourceFile, content: Optional[bytes], force: bool
    ) -> Tuple[Optional[_Prepared], Optional[FileOutcome]]:
        try:
            if content is None:
                content = source.read_bytes()
        except (OSError, IOError) as e:
            logger.warning(f"Failed to read {source.path}: {e}")
            return None, FileOutcome(source.path, FileStatus.FAILED, errors=[f"Read failed: {e}"])

        digest = content_hash(content)
        existing = self.store.get_file(source.path)
        if existing is not None and existing.content_hash == digest and not force:
            logger.debug(f"Unchanged: {source.path}")
            return None, FileOutcome(source.path, FileStatus.UNCHANGED)

        status = FileStatus.ADDED if existing is None else FileStatus.MODIFIED

        try:
            extraction = self._extract(source, content.decode("utf-8", errors="replace"))
        except ExtractionError as e:
            logger.warning(f"Extraction failed for {source.path}: {e}")
            extraction = ExtractionResult(errors=[ParseIssue(message=str(e))])
        except Exception as e:
            logger.exception(f"Unexpected extraction error in {source.path}")
            extraction = ExtractionResult(errors=[ParseIssue(message=f"Extraction crashed: {e}")])

        source.size = len(content)
        return _Prepared(source, digest, status, extraction), None

    def _extract(self, source: SourceFile, text: str) -> ExtractionResult:
        adapter = AdapterRegistry.get_adapter(source.language)
        if adapter is None:
            raise LanguageNotSupportedError(source.language)
        return adapter.extract(source.path, text)

    def _write(self, prepared: List[_Prepared]) -> List[FileOutcome]:
        outcomes = []
        with self.store.transaction():
            for item in prepared:
                outcomes.append(self._write_file(item))
        return outcomes

    def _write_file(self, item: _Prepared) -> FileOutcome:
        extraction = item.extraction
        outcome = FileOutcome(item.source.path, item.status)
        outcome.errors = [
            f"line {e.line}: {e.message}" if e.line else e.message
            for e in extraction.errors
        ]

        if extraction.parse_failed:
            symbols, edges, unresolved = [], [], []
        else:
            symbols = self._unique_symbols(item.source.path, extraction)
            local_ids = {s.id for s in symbols}
            edges = self._valid_edges(item.source.path, extraction, local_ids)
            unresolved = [r for r in extraction.unresolved if r.from_node_id in local_ids]
            if len(unresolved) != len(extraction.unresolved):
                logger.warning(
                    f"{item.source.path}: dropped "
                    f"{len(extraction.unresolved) - len(unresolved)} references from unknown symbols"
                )
            outcome.dropped_edges = len(extraction.relationships) - len(edges)

        record = FileRecord(
            path=item.source.path,
            content_hash=item.digest,
            language=item.source.language,
            size=item.source.size,
            modified_at=item.source.modified_at,
            errors=list(extraction.errors),
        )
        result = self.store.upsert_file_symbols(record, symbols, edges, unresolved)

        outcome.nodes = result.nodes
        outcome.edges = result.edges
        outcome.unresolved = result.unresolved
        outcome.requeued = result.requeued
        logger.debug(
            f"Indexed {item.source.path}: {result.nodes} nodes, "
            f"{result.edges} edges, {result.unresolved} unresolved"
        )
        return outcome

    def _unique_symbols(self, path: str, extraction: ExtractionResult) -> list:
        seen = set()
        symbols = []
        for symbol in extraction.symbols:
            if symbol.id in seen:
                logger.warning(f"{path}: duplicate symbol {symbol.qualified_name} skipped")
                continue
            seen.add(symbol.id)
            symbols.append(symbol)
        return symbols

    def _valid_edges(self, path: str, extraction: ExtractionResult, local_ids: set) -> list:
        foreign = {
            endpoint
            for edge in extraction.relationships
            for endpoint in (edge.source, edge.target)
            if endpoint not in local_ids
        }
        known = local_ids | (self.store.existing_ids(foreign) if foreign else set())

        edges = []
        for edge in extraction.relationships:
            if edge.source in known and edge.target in known:
                edges.append(edge)
            else:
                logger.warning(
                    f"{path}: dropping {edge.kind.value} edge with missing endpoint "
                    f"{edge.source} -> {edge.target}"
                )
        return edges


class IngestStage(PipelineStage):
    """Pipeline stage that syncs discovered files into the store."""

    @property
    def name(self) -> str:
        return "ingest"

    @property
    def dependencies(self) -> List[str]:
        return ["scan"]

    def execute(self, state: PipelineState) -> Tuple[BatchReport, Dict[str, Any]]:
        sources = state.data["scan"]["files"]
        pipeline = IngestionPipeline(state.store, self.config.index)

        if state.force:
            state.store.clear()

        report = pipeline.sync_sources(sources, force=state.force, resolve=False)
        return report, {
            "added": len(report.added),
            "modified": len(report.modified),
            "removed": len(report.removed),
            "unchanged": len(report.unchanged),
            "errors": len(report.errors),
        }
