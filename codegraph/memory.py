"""
Project memories.

Named markdown notes kept next to the graph database, so an assistant
can persist what it learned about a project between sessions.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List

from codegraph.core.exceptions import ConfigurationError, MemoryNotFoundError
from codegraph.utils.validation import validate_memory_name

logger = logging.getLogger(__name__)

MEMORY_SUFFIX = ".md"

# Templates written into an empty memory directory when a project is initialized
INITIAL_MEMORIES = {
    "project_overview": """# {project_name} - Project Overview

## Purpose
[Main purpose and goals of the project]

## Architecture
[High-level architecture]

## Key Components
- [Component]: [Description]

## Technologies
- [Languages, frameworks and libraries]

## Entry Points
- [Main files or modules]

## Notes
[Anything else worth remembering]
""",
    "style_conventions": """# Code Style Conventions

## General Principles
- [Principle]

## Naming Conventions
- Modules: [convention]
- Functions: [convention]
- Classes: [convention]
- Constants: [convention]

## Code Organization
- [Layout of packages and modules]

## Patterns to Avoid
- [Anti-pattern]
""",
    "suggested_commands": """# Suggested Development Commands

## Install
```bash
pip install -e .
```

## Test
```bash
pytest tests/
pytest tests/test_module.py -k test_name
```

## Run
```bash
[Command that starts the application]
```

## Code Graph
```bash
codegraph index
codegraph sync
codegraph status
```
""",
    "completion_checklist": """# Feature Completion Checklist

Before calling a change done:

- [ ] Code follows the style conventions
- [ ] Unit tests written and passing
- [ ] Documentation updated
- [ ] Error handling covers the failure cases
- [ ] Code graph re-synced
""",
}


@dataclass
class MemoryInfo:
    """Metadata about a stored memory."""
    name: str
    size: int
    modified_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "size": self.size,
            "modified_at": self.modified_at.isoformat(),
        }


class MemoryManager:
    """
    Stores named markdown memories in a directory.

    Memory names map to `<name>.md` files; names with path separators
    or leading dots are rejected.
    """

    def __init__(self, memory_dir: Path):
        self.memory_dir = Path(memory_dir)

    def _path_for(self, name: str) -> Path:
        is_valid, error = validate_memory_name(name)
        if not is_valid:
            raise ConfigurationError(error, details={"name": name})
        return self.memory_dir / f"{name}{MEMORY_SUFFIX}"

    def write(self, name: str, content: str) -> MemoryInfo:
        """
        Create or overwrite a memory.

        Args:
            name: Memory name.
            content: Markdown content.

        Returns:
            MemoryInfo for the written memory.
        """
        path = self._path_for(name)
        self.memory_dir.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        logger.debug(f"Wrote memory {name} ({len(content)} chars)")
        return self._info(path)

    def read(self, name: str) -> str:
        """
        Read a memory.

        Raises:
            MemoryNotFoundError: If no memory has this name.
        """
        path = self._path_for(name)
        if not path.exists():
            raise MemoryNotFoundError(name)
        return path.read_text(encoding="utf-8")

    def exists(self, name: str) -> bool:
        return self._path_for(name).exists()

    def delete(self, name: str) -> None:
        """
        Delete a memory.

        Raises:
            MemoryNotFoundError: If no memory has this name.
        """
        path = self._path_for(name)
        if not path.exists():
            raise MemoryNotFoundError(name)
        path.unlink()
        logger.debug(f"Deleted memory {name}")

    def list(self) -> List[MemoryInfo]:
        """All memories ordered by name."""
        if not self.memory_dir.exists():
            return []
        return [
            self._info(path)
            for path in sorted(self.memory_dir.glob(f"*{MEMORY_SUFFIX}"))
            if path.is_file()
        ]

    def create_initial_memories(self, project_name: str) -> List[MemoryInfo]:
        """
        Seed template memories for a new project.

        Nothing is written when the directory already holds memories.

        Args:
            project_name: Name used in the project overview title.

        Returns:
            MemoryInfo of each seeded memory.
        """
        if self.list():
            return []

        created = [
            self.write(name, template.replace("{project_name}", project_name))
            for name, template in INITIAL_MEMORIES.items()
        ]
        logger.info(f"Seeded {len(created)} memory templates in {self.memory_dir}")
        return created

    def _info(self, path: Path) -> MemoryInfo:
        stat = path.stat()
        return MemoryInfo(
            name=path.name[:-len(MEMORY_SUFFIX)],
            size=stat.st_size,
            modified_at=datetime.fromtimestamp(stat.st_mtime),
        )
