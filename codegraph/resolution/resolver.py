"""
Cross-file reference resolution.

Binds unresolved references to definitions elsewhere in the graph.
Every candidate is scored deterministically from its location relative
to the reference, import hints, call arity and nesting depth. A clear
winner becomes an edge; otherwise the ranked candidates are kept on the
reference row for the query layer and for the next pass.
"""

import logging
import posixpath
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from codegraph.core.config import ResolutionConfig
from codegraph.core.exceptions import ResolutionError
from codegraph.core.pipeline import PipelineStage, PipelineState
from codegraph.graph.entities import (
    CALLABLE_KINDS,
    Candidate,
    EdgeKind,
    NodeKind,
    Relationship,
    Symbol,
    TYPE_KINDS,
    UnresolvedReference,
)
from codegraph.resolution.hints import (
    ImportHint,
    arity_matches,
    hints_from_imports,
    module_file_paths,
    parse_import_signature,
    path_matches_module,
)
from codegraph.storage.store import GraphStore

logger = logging.getLogger(__name__)

_NEVER_TARGETS = frozenset({NodeKind.IMPORT, NodeKind.EXPORT, NodeKind.PARAMETER})

_CLASS_LIKE = frozenset({NodeKind.CLASS, NodeKind.STRUCT, NodeKind.ENUM})

COMPATIBLE_KINDS: Dict[EdgeKind, frozenset] = {
    EdgeKind.CALLS: CALLABLE_KINDS | _CLASS_LIKE,
    EdgeKind.EXTENDS: frozenset({
        NodeKind.CLASS, NodeKind.STRUCT, NodeKind.INTERFACE, NodeKind.TRAIT,
        NodeKind.PROTOCOL, NodeKind.ENUM,
    }),
    EdgeKind.IMPLEMENTS: frozenset({
        NodeKind.INTERFACE, NodeKind.TRAIT, NodeKind.PROTOCOL,
    }),
    EdgeKind.INSTANTIATES: _CLASS_LIKE,
    EdgeKind.TYPE_OF: TYPE_KINDS,
    EdgeKind.RETURNS: TYPE_KINDS,
}


def is_compatible(reference_kind: EdgeKind, node_kind: NodeKind) -> bool:
    """Whether a symbol of `node_kind` can be the target of the reference."""
    allowed = COMPATIBLE_KINDS.get(reference_kind)
    if allowed is None:
        return node_kind not in _NEVER_TARGETS
    return node_kind in allowed


@dataclass
class ResolutionReport:
    """Summary of one resolution pass."""

    processed: int = 0
    resolved: int = 0
    ambiguous: int = 0
    unmatched: int = 0
    duration_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "processed": self.processed,
            "resolved": self.resolved,
            "ambiguous": self.ambiguous,
            "unmatched": self.unmatched,
            "duration_seconds": round(self.duration_seconds, 3),
        }


class ReferenceResolver:
    """
    Resolves unresolved references stored in a graph store.

    Scoring is additive: a same-file bonus, else a same-directory bonus,
    plus an import-hint bonus, an arity bonus for calls whose argument
    count fits the candidate's signature, and a bonus that shrinks with
    the candidate's qualified-name depth. Ties are broken by qualified
    name and id so the ranking never depends on storage order.

    Running the resolver again over the same graph commits nothing new
    and leaves persisted candidate lists untouched.
    """

    def __init__(self, store: GraphStore, config: ResolutionConfig = None):
        self.store = store
        self.config = config or ResolutionConfig()
        self._hint_cache: Dict[str, Dict[str, ImportHint]] = {}

    def resolve_all(self) -> ResolutionReport:
        """
        Run a resolution pass over every unresolved reference.

        References are processed in id order in chunks of
        `config.batch_size`, each chunk in its own transaction.

        Returns:
            ResolutionReport with counts for the pass.
        """
        started = time.time()
        report = ResolutionReport()
        self._hint_cache = {}
        batch_size = max(1, self.config.batch_size)
        after_id = 0

        while True:
            refs = self.store.fetch_unresolved(after_id=after_id, limit=batch_size)
            if not refs:
                break

            with self.store.transaction():
                sources = self.store.get_symbols(r.from_node_id for r in refs)
                for ref in refs:
                    try:
                        self._resolve_one(ref, sources.get(ref.from_node_id), report)
                    except ResolutionError as e:
                        report.unmatched += 1
                        logger.warning(f"Could not resolve reference {ref.id}: {e}")

            after_id = refs[-1].id

        report.duration_seconds = time.time() - started
        logger.info(
            f"Resolution pass: {report.processed} processed, {report.resolved} resolved, "
            f"{report.ambiguous} ambiguous, {report.unmatched} unmatched "
            f"in {report.duration_seconds:.2f}s"
        )
        return report

    def rank_candidates(
        self, ref: UnresolvedReference, source: Optional[Symbol] = None
    ) -> List[Candidate]:
        """
        Score every compatible definition for a reference.

        Args:
            ref: The reference to resolve. `file_path` must be set.
            source: The referencing symbol, fetched if omitted.

        Returns:
            Candidates ordered best first.
        """
        if source is None:
            source = self.store.get_symbol(ref.from_node_id)
        hint = self._hint_for(ref, source)
        scored = []
        for symbol in self._gather(ref, source, hint):
            scored.append((self._score(ref, symbol, hint), symbol))

        scored.sort(key=lambda item: (-item[0], item[1].qualified_name, item[1].id))
        return [Candidate(node_id=symbol.id, score=score) for score, symbol in scored]

    def _resolve_one(
        self,
        ref: UnresolvedReference,
        source: Optional[Symbol],
        report: ResolutionReport,
    ) -> None:
        report.processed += 1
        ranked = self.rank_candidates(ref, source)

        if not ranked:
            report.unmatched += 1
            if ref.candidates:
                self.store.set_candidates(ref, [])
            return

        if len(ranked) == 1 or ranked[0].score - ranked[1].score >= self.config.margin:
            winner = ranked[0]
            target = self.store.get_symbol(winner.node_id)
            if target is None:
                raise ResolutionError(
                    f"Candidate {winner.node_id} vanished during resolution",
                    details={"reference": ref.reference_name},
                )
            self.store.commit_resolution(ref, self._edge_for(ref, target, winner))
            report.resolved += 1
            logger.debug(
                f"Resolved {ref.reference_kind.value} '{ref.reference_name}' "
                f"from {ref.file_path} to {target.qualified_name}"
            )
            return

        report.ambiguous += 1
        top = ranked[:self.config.top_k]
        if _candidate_keys(top) != _candidate_keys(ref.candidates):
            self.store.set_candidates(ref, top)

    def _edge_for(
        self, ref: UnresolvedReference, target: Symbol, winner: Candidate
    ) -> Relationship:
        kind = ref.reference_kind
        if kind == EdgeKind.CALLS and target.kind in _CLASS_LIKE:
            kind = EdgeKind.INSTANTIATES

        metadata: Dict[str, Any] = {"resolved_by": "resolver", "score": winner.score}
        if ref.arity is not None:
            metadata["arity"] = ref.arity

        return Relationship(
            source=ref.from_node_id,
            target=target.id,
            kind=kind,
            metadata=metadata,
            line=ref.line,
            column=ref.column,
        )

    def _hint_for(
        self, ref: UnresolvedReference, source: Optional[Symbol]
    ) -> Optional[ImportHint]:
        if source is not None and source.kind == NodeKind.IMPORT:
            parsed = parse_import_signature(source.signature)
            if parsed is not None:
                return ImportHint(source.name, parsed[0], parsed[1])

        if not ref.file_path:
            return None
        hints = self._hint_cache.get(ref.file_path)
        if hints is None:
            hints = hints_from_imports(
                self.store.symbols_in_file(ref.file_path, kinds=[NodeKind.IMPORT])
            )
            self._hint_cache[ref.file_path] = hints
        return hints.get(ref.reference_name)

    def _gather(
        self,
        ref: UnresolvedReference,
        source: Optional[Symbol],
        hint: Optional[ImportHint],
    ) -> List[Symbol]:
        names = [ref.reference_name]
        if hint is not None and hint.lookup_name != ref.reference_name:
            names.append(hint.lookup_name)

        found = {s.id: s for s in self.store.symbols_named(names)}

        if ref.reference_kind == EdgeKind.IMPORTS:
            module = hint.module if hint is not None else ref.reference_name
            if hint is None or hint.export is None:
                for symbol in self._module_files(module):
                    found.setdefault(symbol.id, symbol)

        candidates = []
        for symbol in found.values():
            if not is_compatible(ref.reference_kind, symbol.kind):
                continue
            if source is not None and symbol.id == source.id:
                continue
            if ref.reference_kind == EdgeKind.IMPORTS and symbol.kind == NodeKind.FILE:
                if not path_matches_module(symbol.file_path, module):
                    continue
            candidates.append(symbol)
        return candidates

    def _module_files(self, module: str) -> List[Symbol]:
        files = self.store.symbols_named(module_file_paths(module))
        if not files:
            # The project may be indexed from above its source root
            for path in module_file_paths(module):
                files.extend(self.store.find_symbols(
                    qualified_pattern=f"*/{path}", kinds=[NodeKind.FILE], limit=None
                ))
        return [f for f in files if f.kind == NodeKind.FILE]

    def _score(
        self, ref: UnresolvedReference, symbol: Symbol, hint: Optional[ImportHint]
    ) -> float:
        config = self.config
        score = 0.0

        if ref.file_path and symbol.file_path == ref.file_path:
            score += config.same_file_weight
        elif ref.file_path and _directory(symbol.file_path) == _directory(ref.file_path):
            score += config.same_directory_weight

        if hint is not None and path_matches_module(symbol.file_path, hint.module):
            score += config.import_hint_weight

        if ref.reference_kind == EdgeKind.CALLS and arity_matches(symbol.signature, ref.arity):
            score += config.arity_match_weight

        score += max(0, config.max_depth_bonus - symbol.depth)
        return float(score)


def _directory(path: str) -> str:
    return posixpath.dirname(path)


def _candidate_keys(candidates: List[Candidate]) -> List[Tuple[str, float]]:
    return [(c.node_id, c.score) for c in candidates]


class ResolutionStage(PipelineStage):
    """Pipeline stage that runs a resolution pass after ingestion."""

    @property
    def name(self) -> str:
        return "resolve"

    @property
    def dependencies(self) -> List[str]:
        return ["ingest"]

    def should_run(self, state: PipelineState) -> bool:
        report = state.data.get("ingest")
        if report is None:
            return False
        return state.force or report.changed or bool(report.requeued)

    def execute(self, state: PipelineState) -> Tuple[ResolutionReport, Dict[str, Any]]:
        resolver = ReferenceResolver(state.store, self.config.resolution)
        report = resolver.resolve_all()
        state.data["ingest"].resolution = report
        return report, report.to_dict()
