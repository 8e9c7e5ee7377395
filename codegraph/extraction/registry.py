"""
Extraction adapter registry.

Provides a plugin-based architecture where per-language extraction
adapters are registered under a language tag and retrieved
dynamically by the ingestion pipeline.
"""

import logging
from typing import Dict, List, Optional, Type

from codegraph.graph.entities import ExtractionResult

logger = logging.getLogger(__name__)


class ExtractionAdapter:
    """
    Base class for language-specific extraction adapters.

    An adapter turns the content of one file into symbols, the edges it
    can bind locally, and the references it could not bind. It never
    touches the store.
    """

    LANGUAGE: str = "unknown"
    SUPPORTED_EXTENSIONS: List[str] = []

    def extract(self, file_path: str, content: str) -> ExtractionResult:
        """
        Extract the graph contribution of a single source file.

        Args:
            file_path: Project-relative path of the file.
            content: Source code content.

        Returns:
            ExtractionResult; a file that cannot be parsed is reported
            through a fatal entry in `errors` rather than an exception.
        """
        raise NotImplementedError("Subclasses must implement extract")


class AdapterRegistry:
    """
    Central registry for extraction adapters, keyed by language tag.
    """

    _adapters: Dict[str, Type[ExtractionAdapter]] = {}
    _instances: Dict[str, ExtractionAdapter] = {}

    @classmethod
    def register(cls, adapter_class: Type[ExtractionAdapter]) -> Type[ExtractionAdapter]:
        """
        Register an extraction adapter.

        Can be used as a decorator:
            @AdapterRegistry.register
            class PythonAdapter(ExtractionAdapter):
                ...

        Args:
            adapter_class: The adapter class to register.

        Returns:
            The registered class (for decorator usage).
        """
        language = adapter_class.LANGUAGE
        if language in cls._adapters:
            logger.warning(
                f"Overwriting existing adapter for {language}: "
                f"{cls._adapters[language].__name__} -> {adapter_class.__name__}"
            )
            cls._instances.pop(language, None)

        cls._adapters[language] = adapter_class
        logger.debug(f"Registered adapter for {language}: {adapter_class.__name__}")
        return adapter_class

    @classmethod
    def get_adapter(cls, language: str) -> Optional[ExtractionAdapter]:
        """
        Get the adapter instance for a language.

        Lazily instantiates adapters on first request.

        Args:
            language: Language tag.

        Returns:
            Adapter instance or None if not available.
        """
        if language not in cls._adapters:
            return None

        if language not in cls._instances:
            cls._instances[language] = cls._adapters[language]()

        return cls._instances[language]

    @classmethod
    def has_adapter(cls, language: str) -> bool:
        """Check if an adapter exists for a language."""
        return language in cls._adapters

    @classmethod
    def list_languages(cls) -> List[str]:
        """List all languages with registered adapters."""
        return sorted(cls._adapters.keys())

    @classmethod
    def unregister(cls, language: str) -> None:
        """Remove the adapter for a language."""
        cls._adapters.pop(language, None)
        cls._instances.pop(language, None)
