"""
Per-language extraction adapters.

Importing this package registers the bundled adapters with the
AdapterRegistry.
"""

from codegraph.extraction.registry import AdapterRegistry, ExtractionAdapter
from codegraph.extraction.detector import LanguageDetector
from codegraph.extraction.python_adapter import PythonAdapter

__all__ = [
    "AdapterRegistry",
    "ExtractionAdapter",
    "LanguageDetector",
    "PythonAdapter",
]
