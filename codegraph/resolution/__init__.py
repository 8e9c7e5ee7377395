"""Cross-file reference resolution."""

from codegraph.resolution.hints import (
    ImportHint,
    arity_matches,
    parse_import_signature,
    path_matches_module,
    signature_arity,
)
from codegraph.resolution.resolver import (
    ReferenceResolver,
    ResolutionReport,
    ResolutionStage,
    is_compatible,
)

__all__ = [
    "ImportHint",
    "ReferenceResolver",
    "ResolutionReport",
    "ResolutionStage",
    "arity_matches",
    "is_compatible",
    "parse_import_signature",
    "path_matches_module",
    "signature_arity",
]
