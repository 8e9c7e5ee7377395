"""
Stable hashing helpers for content and symbol identity.
"""

import hashlib
from typing import Union


def content_hash(content: Union[str, bytes]) -> str:
    """SHA-256 hex digest of file content."""
    if isinstance(content, str):
        content = content.encode("utf-8")
    return hashlib.sha256(content).hexdigest()


def symbol_id(
    file_path: str,
    qualified_name: str,
    start_line: int,
    start_column: int,
    end_line: int,
    end_column: int,
) -> str:
    """
    Derive the identifier of a symbol.

    The id depends only on where the symbol lives and what it is called,
    so re-extracting unchanged source always yields the same ids.

    Args:
        file_path: Project-relative path of the defining file.
        qualified_name: Fully qualified symbol name.
        start_line: First line of the symbol's span.
        start_column: First column of the symbol's span.
        end_line: Last line of the symbol's span.
        end_column: Last column of the symbol's span.

    Returns:
        32-character hex identifier.
    """
    key = (
        f"{file_path}|{qualified_name}|"
        f"{start_line}:{start_column}-{end_line}:{end_column}"
    )
    return hashlib.sha256(key.encode("utf-8")).hexdigest()[:32]
