"""
Configuration management for the Code Graph Engine.

Provides centralized configuration for indexing, resolution, traversal,
search and storage with sensible defaults and file/env overrides.
"""

import copy
import os
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from dotenv import load_dotenv


@dataclass
class IndexConfig:
    """Configuration for source discovery and ingestion."""

    # Glob patterns a file must match to be indexed
    include_patterns: List[str] = field(default_factory=lambda: [
        "*.py", "*.pyi",
    ])

    # Patterns to skip during file discovery
    exclude_patterns: List[str] = field(default_factory=lambda: [
        "*.pyc", "__pycache__", ".git", ".svn", ".hg", ".codegraph",
        "node_modules", "vendor", ".venv", "venv", "env",
        ".idea", ".vscode", ".DS_Store", "*.egg-info",
        "build", "dist", "target", ".tox", ".mypy_cache",
    ])

    # Maximum file size to process (in bytes)
    max_file_size: int = 1024 * 1024  # 1MB

    # Files written per ingestion transaction
    batch_size: int = 50

    follow_symlinks: bool = False

    language_extensions: Dict[str, str] = field(default_factory=lambda: {
        ".py": "python",
        ".pyi": "python",
        ".pyw": "python",
    })


@dataclass
class ResolutionConfig:
    """Configuration for cross-file reference resolution."""

    # Minimum lead of the best candidate over the runner-up to commit an edge
    margin: float = 10.0

    # Candidates kept on an ambiguous reference
    top_k: int = 5

    # References processed per resolution transaction
    batch_size: int = 500

    same_file_weight: float = 100.0
    import_hint_weight: float = 50.0
    same_directory_weight: float = 40.0
    arity_match_weight: float = 15.0

    # Bonus for a shallow qualified name, decreasing by one per level
    max_depth_bonus: float = 5.0


@dataclass
class TraversalConfig:
    """Configuration for graph traversal."""

    impact_edge_kinds: List[str] = field(default_factory=lambda: [
        "calls", "references", "imports", "extends", "implements",
        "instantiates",
    ])

    max_impact_depth: int = 5

    # Hard cap on nodes visited by a subgraph exploration
    subgraph_limit: int = 200


@dataclass
class SearchConfig:
    """Configuration for lexical and semantic search."""

    default_limit: int = 20

    # Cosine similarity floor for semantic hits
    min_similarity: float = 0.3

    lexical_weight: float = 0.4
    semantic_weight: float = 0.6


@dataclass
class ContextConfig:
    """Configuration for task context assembly."""

    max_nodes: int = 20
    max_code_blocks: int = 5
    max_code_block_size: int = 1500
    traversal_depth: int = 1
    include_code: bool = True


@dataclass
class EmbeddingConfig:
    """Configuration for semantic embedding generation."""

    enabled: bool = False

    # Model identifier for code embeddings
    model_name: str = "microsoft/codebert-base"

    # Cache directory for models
    model_cache_dir: str = "./model_cache"

    # Maximum token length for embedding
    max_token_length: int = 512

    # Batch size for embedding generation
    batch_size: int = 32

    # Device for inference (cpu, cuda, mps, or auto)
    device: str = "auto"


@dataclass
class StorageConfig:
    """Configuration for the graph store."""

    # Project-relative directory holding the database and memories
    data_dir: str = ".codegraph"

    database_name: str = "codegraph.db"

    # Seconds to wait on a locked database
    busy_timeout: float = 30.0


@dataclass
class ProjectConfig:
    """Master configuration combining all component configurations."""

    index: IndexConfig = field(default_factory=IndexConfig)
    resolution: ResolutionConfig = field(default_factory=ResolutionConfig)
    traversal: TraversalConfig = field(default_factory=TraversalConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
    context: ContextConfig = field(default_factory=ContextConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)

    # Enable verbose logging
    verbose: bool = False


CONFIG_FILE_NAME = "config.json"

_SECTIONS = {
    "index": IndexConfig,
    "resolution": ResolutionConfig,
    "traversal": TraversalConfig,
    "search": SearchConfig,
    "context": ContextConfig,
    "embedding": EmbeddingConfig,
    "storage": StorageConfig,
}


class Config:
    """
    Central configuration manager providing access to all settings.

    Supports loading from environment variables, a `.env` file and
    per-project JSON configuration files.
    """

    _instance: Optional["Config"] = None
    _config: ProjectConfig = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._config = ProjectConfig()
        return cls._instance

    @classmethod
    def get(cls) -> ProjectConfig:
        """Get the current configuration."""
        if cls._instance is None:
            cls()
        return cls._instance._config

    @classmethod
    def reset(cls) -> ProjectConfig:
        """Restore the default configuration."""
        instance = cls()
        instance._config = ProjectConfig()
        return instance._config

    @classmethod
    def load_from_file(cls, config_path: str) -> ProjectConfig:
        """
        Load configuration from a JSON file.

        Args:
            config_path: Path to the configuration file.

        Returns:
            Loaded ProjectConfig instance.
        """
        instance = cls()
        instance._config = cls._read_file(config_path)
        return instance._config

    @classmethod
    def for_project(cls, root: str) -> ProjectConfig:
        """
        Build the configuration of one project.

        Starts from the config file inside the project's data directory,
        or from a copy of the current configuration when there is none,
        then applies CODEGRAPH_ environment overrides. The global
        configuration is left untouched.

        Args:
            root: Project root directory.

        Returns:
            New ProjectConfig for the project.
        """
        config_path = Path(root) / cls.get().storage.data_dir / CONFIG_FILE_NAME
        if config_path.exists():
            config = cls._read_file(config_path)
        else:
            config = copy.deepcopy(cls.get())
        return cls._apply_env(config)

    @classmethod
    def load_from_env(cls) -> ProjectConfig:
        """
        Load configuration from environment variables.

        Environment variables are prefixed with CODEGRAPH_. A `.env` file in
        the working directory is read first.

        Returns:
            ProjectConfig with environment overrides applied.
        """
        load_dotenv()

        instance = cls()
        return cls._apply_env(instance._config)

    @staticmethod
    def _apply_env(config: ProjectConfig) -> ProjectConfig:
        """Apply CODEGRAPH_ environment overrides to a configuration in place."""
        if os.getenv("CODEGRAPH_MODEL_NAME"):
            config.embedding.model_name = os.getenv("CODEGRAPH_MODEL_NAME")

        if os.getenv("CODEGRAPH_MODEL_CACHE_DIR"):
            config.embedding.model_cache_dir = os.getenv("CODEGRAPH_MODEL_CACHE_DIR")

        if os.getenv("CODEGRAPH_DEVICE"):
            config.embedding.device = os.getenv("CODEGRAPH_DEVICE")

        if os.getenv("CODEGRAPH_EMBEDDINGS"):
            config.embedding.enabled = _env_flag("CODEGRAPH_EMBEDDINGS")

        if os.getenv("CODEGRAPH_DATA_DIR"):
            config.storage.data_dir = os.getenv("CODEGRAPH_DATA_DIR")

        if os.getenv("CODEGRAPH_MAX_FILE_SIZE"):
            config.index.max_file_size = int(os.getenv("CODEGRAPH_MAX_FILE_SIZE"))

        if os.getenv("CODEGRAPH_RESOLUTION_MARGIN"):
            config.resolution.margin = float(os.getenv("CODEGRAPH_RESOLUTION_MARGIN"))

        if os.getenv("CODEGRAPH_VERBOSE"):
            config.verbose = _env_flag("CODEGRAPH_VERBOSE")

        return config

    @classmethod
    def _read_file(cls, config_path) -> ProjectConfig:
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, "r") as f:
            data = json.load(f)
        return cls._dict_to_config(data)

    @staticmethod
    def _dict_to_config(data: dict) -> ProjectConfig:
        """Convert a dictionary to ProjectConfig."""
        config = ProjectConfig()

        for section, section_cls in _SECTIONS.items():
            if section in data:
                setattr(config, section, section_cls(**data[section]))

        if "verbose" in data:
            config.verbose = data["verbose"]

        return config

    @classmethod
    def save_to_file(cls, config_path: str, config: ProjectConfig = None) -> None:
        """
        Save a configuration to a JSON file.

        Args:
            config_path: Path to save the configuration file.
            config: Configuration to save, defaults to the current one.
        """
        config_path = Path(config_path)
        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = cls._config_to_dict(config or cls.get())

        with open(config_path, "w") as f:
            json.dump(data, f, indent=2)

    @staticmethod
    def _config_to_dict(config: ProjectConfig) -> dict:
        """Convert ProjectConfig to a dictionary."""
        data = {
            section: dict(vars(getattr(config, section)))
            for section in _SECTIONS
        }
        data["verbose"] = config.verbose
        return data


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").lower() in ("true", "1", "yes")
