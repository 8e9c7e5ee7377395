"""
Utility functions and helpers.
"""

from codegraph.utils.logging_config import setup_logging
from codegraph.utils.hashing import content_hash, symbol_id
from codegraph.utils.validation import validate_path, validate_memory_name

__all__ = [
    "setup_logging",
    "content_hash",
    "symbol_id",
    "validate_path",
    "validate_memory_name",
]
