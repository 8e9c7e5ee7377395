"""
Source file discovery.

Walks a project tree and yields the files that should be indexed,
applying include/exclude glob patterns and the size limit from
configuration.
"""

import fnmatch
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from codegraph.core.config import IndexConfig, ProjectConfig
from codegraph.core.exceptions import ConfigurationError
from codegraph.core.pipeline import PipelineStage, PipelineState
from codegraph.extraction.detector import LanguageDetector
from codegraph.utils.validation import to_relative_path, validate_path

logger = logging.getLogger(__name__)


@dataclass
class SourceFile:
    """A discovered source file."""

    path: str
    absolute_path: Path
    language: str
    size: int
    modified_at: int

    def read_bytes(self) -> bytes:
        return self.absolute_path.read_bytes()


class SourceScanner:
    """
    Discovers indexable source files below a project root.
    """

    def __init__(self, config: IndexConfig = None, detector: LanguageDetector = None):
        self.config = config or IndexConfig()
        self.detector = detector or LanguageDetector(self.config.language_extensions)

    def scan(self, root: Path) -> List[SourceFile]:
        """
        Discover all indexable files in a project.

        Args:
            root: Project root directory.

        Returns:
            SourceFile entries sorted by relative path.
        """
        root = Path(root).resolve()
        files = []

        for current, dirs, filenames in os.walk(root, followlinks=self.config.follow_symlinks):
            current_path = Path(current)

            dirs[:] = sorted(
                d for d in dirs
                if not self.is_excluded(current_path / d, root)
            )

            for filename in filenames:
                file_path = current_path / filename

                if self.is_excluded(file_path, root) or not self.is_included(file_path, root):
                    continue

                source = self._describe(file_path, root)
                if source is not None:
                    files.append(source)

        files.sort(key=lambda f: f.path)
        logger.debug(f"Discovered {len(files)} files in {root}")
        return files

    def _describe(self, file_path: Path, root: Path) -> Optional[SourceFile]:
        try:
            if not file_path.is_file():
                return None

            stat = file_path.stat()
            if stat.st_size > self.config.max_file_size:
                logger.debug(
                    f"Skipping large file: {file_path} "
                    f"({stat.st_size / 1024:.1f} KB)"
                )
                return None

            language = self.detector.detect(str(file_path))
            if language is None:
                return None

            return SourceFile(
                path=to_relative_path(file_path, root),
                absolute_path=file_path,
                language=language,
                size=stat.st_size,
                modified_at=int(stat.st_mtime * 1000),
            )

        except (OSError, IOError) as e:
            logger.warning(f"Error accessing file {file_path}: {e}")
            return None

    def is_included(self, path: Path, root: Path) -> bool:
        """Whether a file matches one of the include patterns."""
        relative = to_relative_path(path, root)
        return any(
            fnmatch.fnmatch(path.name, pattern) or fnmatch.fnmatch(relative, pattern)
            for pattern in self.config.include_patterns
        )

    def is_excluded(self, path: Path, root: Path) -> bool:
        """
        Check if a path should be skipped based on exclude patterns.

        A pattern matches the file name, the relative path, or any
        directory component of the relative path.
        """
        relative = Path(to_relative_path(path, root))

        for pattern in self.config.exclude_patterns:
            if fnmatch.fnmatch(path.name, pattern):
                return True

            if fnmatch.fnmatch(relative.as_posix(), pattern):
                return True

            for part in relative.parts:
                if fnmatch.fnmatch(part, pattern):
                    return True

        return False


class ScanStage(PipelineStage):
    """Pipeline stage that discovers the files of a project."""

    def __init__(self, config: ProjectConfig):
        super().__init__(config)
        self.scanner = SourceScanner(config.index)

    @property
    def name(self) -> str:
        return "scan"

    def execute(self, state: PipelineState) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        is_valid, error = validate_path(state.project_root)
        if not is_valid:
            raise ConfigurationError(error, details={"root": state.project_root})

        files = self.scanner.scan(Path(state.project_root))
        return {"files": files}, {
            "files_discovered": len(files),
            "total_size_bytes": sum(f.size for f in files),
        }
