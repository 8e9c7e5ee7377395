"""Source discovery and incremental ingestion into the graph store."""

from codegraph.ingestion.scanner import ScanStage, SourceFile, SourceScanner
from codegraph.ingestion.sync import (
    BatchReport,
    FileOutcome,
    FileStatus,
    IngestionPipeline,
    IngestStage,
)

__all__ = [
    "BatchReport",
    "FileOutcome",
    "FileStatus",
    "IngestionPipeline",
    "IngestStage",
    "ScanStage",
    "SourceFile",
    "SourceScanner",
]
