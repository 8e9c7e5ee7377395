"""
Custom exceptions for the Code Graph Engine.

Provides a hierarchy of exceptions for the storage, extraction,
resolution, embedding and query layers, enabling precise error
handling and clear failure reporting.
"""


class CodeGraphError(Exception):
    """Base exception for all engine errors."""

    def __init__(self, message: str, stage: str = None, details: dict = None):
        super().__init__(message)
        self.stage = stage
        self.details = details or {}

    def __str__(self):
        base_msg = super().__str__()
        if self.stage:
            return f"[{self.stage}] {base_msg}"
        return base_msg


class StorageError(CodeGraphError):
    """Raised when graph store operations fail."""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message, stage="Storage", details=details)


class StoreUnavailableError(StorageError):
    """Raised when the store cannot be opened, initialized or is corrupt."""

    def __init__(self, path: str, reason: str):
        super().__init__(
            f"Graph store unavailable: {reason}",
            details={"path": path, "reason": reason}
        )


class GraphIntegrityError(StorageError):
    """Raised when a write would break referential integrity."""


class ExtractionError(CodeGraphError):
    """Raised when symbol extraction for a file fails."""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message, stage="Extraction", details=details)


class LanguageNotSupportedError(ExtractionError):
    """Raised when no extraction adapter is available for a language."""

    def __init__(self, language: str):
        super().__init__(
            f"No extraction adapter available for language: {language}",
            details={"language": language}
        )


class ResolutionError(CodeGraphError):
    """Raised when reference resolution fails."""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message, stage="Resolution", details=details)


class EmbeddingError(CodeGraphError):
    """Raised when embedding generation fails."""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message, stage="Embedding", details=details)


class QueryError(CodeGraphError):
    """Raised when a query is given invalid arguments."""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message, stage="Query", details=details)


class MemoryNotFoundError(CodeGraphError):
    """Raised when a named project memory does not exist."""

    def __init__(self, name: str):
        super().__init__(
            f"Memory not found: {name}",
            stage="Memory",
            details={"name": name}
        )


class ConfigurationError(CodeGraphError):
    """Raised when project configuration is missing or invalid."""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message, stage="Configuration", details=details)
