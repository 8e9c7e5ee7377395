"""
Input validation utilities.

Provides validation functions for project roots, project-relative
paths and memory names.
"""

import os
import re
from pathlib import Path
from typing import Optional, Tuple

_MEMORY_NAME = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.\-]*$")


def validate_path(path: str) -> Tuple[bool, Optional[str]]:
    """
    Validate a local project directory.

    Args:
        path: Path to validate.

    Returns:
        Tuple of (is_valid, error_message).
    """
    if not path:
        return False, "Path cannot be empty"

    try:
        path_obj = Path(path).resolve()
    except (OSError, RuntimeError) as e:
        return False, f"Invalid path format: {e}"

    if not path_obj.exists():
        return False, f"Path does not exist: {path}"

    if not path_obj.is_dir():
        return False, f"Path is not a directory: {path}"

    if not os.access(path_obj, os.R_OK):
        return False, f"Path is not readable: {path}"

    return True, None


def validate_memory_name(name: str) -> Tuple[bool, Optional[str]]:
    """
    Validate a project memory name.

    Names become file names, so separators and leading dots are rejected.

    Args:
        name: Memory name to validate.

    Returns:
        Tuple of (is_valid, error_message).
    """
    if not name:
        return False, "Memory name cannot be empty"

    if not _MEMORY_NAME.match(name) or ".." in name:
        return False, f"Invalid memory name: {name}"

    return True, None


def to_relative_path(path: Path, root: Path) -> str:
    """Project-relative path with forward slashes."""
    return Path(path).relative_to(root).as_posix()
