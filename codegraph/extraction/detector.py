"""
Language detection for source files.

Maps file extensions to language tags, falling back to the shebang
line for extensionless scripts.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


class LanguageDetector:
    """
    Detects the language tag of a source file.

    Extensions come from configuration; a shebang naming a known
    interpreter is used when the extension is unknown.
    """

    SHEBANG_MAP: Dict[str, str] = {
        "python": "python",
        "python3": "python",
    }

    def __init__(self, extension_map: Dict[str, str] = None):
        if extension_map is None:
            from codegraph.core.config import IndexConfig
            extension_map = IndexConfig().language_extensions
        self.extension_map = {ext.lower(): lang for ext, lang in extension_map.items()}

    def detect(self, file_path: str, first_line: Optional[str] = None) -> Optional[str]:
        """
        Detect the language of a file.

        Args:
            file_path: Path of the file.
            first_line: First line of content, used for shebang detection.

        Returns:
            Language tag, or None if unknown.
        """
        suffix = Path(file_path).suffix.lower()
        if suffix in self.extension_map:
            return self.extension_map[suffix]

        if first_line and first_line.startswith("#!"):
            return self._detect_shebang(first_line)

        return None

    def _detect_shebang(self, line: str) -> Optional[str]:
        parts = line[2:].strip().split()
        if not parts:
            return None

        interpreter = Path(parts[0]).name
        if interpreter == "env" and len(parts) > 1:
            interpreter = parts[1]

        return self.SHEBANG_MAP.get(interpreter)

    def get_supported_languages(self) -> List[str]:
        """All language tags known by extension."""
        return sorted(set(self.extension_map.values()))

    def get_extensions_for_language(self, language: str) -> List[str]:
        """Extensions mapped to a language tag."""
        return sorted(ext for ext, lang in self.extension_map.items() if lang == language)
