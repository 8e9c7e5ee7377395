"""
Core module containing pipeline orchestration, configuration, and base classes.
"""

from codegraph.core.config import Config, ProjectConfig
from codegraph.core.pipeline import Pipeline, PipelineStage, PipelineState
from codegraph.core.exceptions import (
    CodeGraphError,
    StorageError,
    StoreUnavailableError,
    GraphIntegrityError,
    ExtractionError,
    ResolutionError,
    EmbeddingError,
    QueryError,
)

__all__ = [
    "Config",
    "ProjectConfig",
    "Pipeline",
    "PipelineStage",
    "PipelineState",
    "CodeGraphError",
    "StorageError",
    "StoreUnavailableError",
    "GraphIntegrityError",
    "ExtractionError",
    "ResolutionError",
    "EmbeddingError",
    "QueryError",
]
