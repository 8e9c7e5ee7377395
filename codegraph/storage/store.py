"""
SQLite-backed graph store.

Holds symbols, relationships, file records, unresolved references and
embeddings for one project. Every mutating call runs in a single
transaction; writers are serialized by the store and readers always
see the last committed state.
"""

import json
import logging
import re
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from codegraph.core.config import StorageConfig
from codegraph.core.exceptions import (
    GraphIntegrityError,
    StorageError,
    StoreUnavailableError,
)
from codegraph.graph.entities import (
    Candidate,
    EdgeKind,
    FileRecord,
    NodeKind,
    ParseIssue,
    Relationship,
    Symbol,
    UnresolvedReference,
    Visibility,
    now_ms,
)
from codegraph.storage.schema import PRAGMAS_SQL, SCHEMA_SQL, SCHEMA_VERSION

logger = logging.getLogger(__name__)

# Keeps IN (...) lists under SQLite's host parameter limit
_CHUNK = 500

_TOKEN = re.compile(r"\w+", re.UNICODE)

_NODE_COLUMNS = (
    "id", "kind", "name", "qualified_name", "file_path", "language",
    "start_line", "end_line", "start_column", "end_column", "docstring",
    "signature", "visibility", "is_exported", "is_async", "is_static",
    "is_abstract", "decorators", "type_parameters", "updated_at",
)


@dataclass
class UpsertResult:
    """Counts from replacing one file's contribution to the graph."""

    nodes: int = 0
    edges: int = 0
    unresolved: int = 0
    requeued: int = 0


def _chunks(items: Sequence[Any], size: int = _CHUNK) -> Iterator[Sequence[Any]]:
    for i in range(0, len(items), size):
        yield items[i:i + size]


def _placeholders(count: int) -> str:
    return ",".join("?" * count)


def _dump_json(value: Any) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value)


def _load_json(text: Optional[str]) -> Any:
    if not text:
        return None
    return json.loads(text)


def build_fts_query(query: str) -> Optional[str]:
    """
    Turn free text into an FTS5 expression that matches any term.

    Each word becomes a quoted prefix term and the terms are OR-combined,
    so a hit on any one word is enough to match.

    Args:
        query: Free text typed by the user.

    Returns:
        FTS5 MATCH expression, or None when the text has no words.
    """
    tokens = _TOKEN.findall(query or "")
    if not tokens:
        return None
    return " OR ".join(f'"{token}"*' for token in tokens)


class GraphStore:
    """
    Durable graph store for one project.

    Connections are per thread. Use `transaction()` to group writes; it
    is reentrant, so a store method called inside an outer transaction
    joins it instead of committing on its own.
    """

    def __init__(self, db_path: str, config: StorageConfig = None):
        self.db_path = Path(db_path)
        self.config = config or StorageConfig()
        self._local = threading.local()
        self._write_lock = threading.RLock()
        self._connections: List[sqlite3.Connection] = []
        self._connections_lock = threading.Lock()
        self._closed = False

    @classmethod
    def open(
        cls, db_path: str, config: StorageConfig = None, create: bool = True
    ) -> "GraphStore":
        """
        Open a store, creating and initializing the schema if needed.

        Args:
            db_path: Path to the SQLite database file.
            config: Storage configuration.
            create: Create the database when it does not exist.

        Returns:
            Ready-to-use GraphStore.

        Raises:
            StoreUnavailableError: If the database is missing, unreadable
                or corrupt.
        """
        db_path = Path(db_path)
        if not create and not db_path.exists():
            raise StoreUnavailableError(str(db_path), "database does not exist")

        if create:
            db_path.parent.mkdir(parents=True, exist_ok=True)

        store = cls(str(db_path), config)
        store.initialize()
        return store

    def initialize(self) -> None:
        """Create tables, indexes and triggers if they do not exist."""
        conn = self._conn
        try:
            conn.executescript(SCHEMA_SQL)
            conn.execute(
                "INSERT OR IGNORE INTO schema_versions (version, applied_at, description) "
                "VALUES (?, ?, ?)",
                (SCHEMA_VERSION, now_ms(), "Initial schema"),
            )
            row = conn.execute("PRAGMA quick_check").fetchone()
        except sqlite3.Error as e:
            raise StoreUnavailableError(str(self.db_path), str(e)) from e

        if row is None or row[0] != "ok":
            raise StoreUnavailableError(
                str(self.db_path), f"integrity check failed: {row[0] if row else 'no result'}"
            )

        logger.debug(f"Graph store ready at {self.db_path}")

    @property
    def _conn(self) -> sqlite3.Connection:
        if self._closed:
            raise StorageError("Graph store is closed", details={"path": str(self.db_path)})

        conn = getattr(self._local, "conn", None)
        if conn is None:
            try:
                conn = sqlite3.connect(
                    str(self.db_path),
                    timeout=self.config.busy_timeout,
                    isolation_level=None,
                    check_same_thread=False,
                )
                conn.row_factory = sqlite3.Row
                conn.executescript(PRAGMAS_SQL)
            except sqlite3.Error as e:
                raise StoreUnavailableError(str(self.db_path), str(e)) from e

            self._local.conn = conn
            self._local.depth = 0
            with self._connections_lock:
                self._connections.append(conn)
        return conn

    def close(self) -> None:
        """Close every connection opened by this store."""
        with self._connections_lock:
            for conn in self._connections:
                conn.close()
            self._connections.clear()
        self._local = threading.local()
        self._closed = True

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    @contextmanager
    def transaction(self):
        """
        Run the enclosed writes as one atomic transaction.

        Nested use joins the outermost transaction. Integrity violations
        roll back and surface as GraphIntegrityError, other database
        failures as StorageError.
        """
        conn = self._conn
        if self._local.depth > 0:
            self._local.depth += 1
            try:
                yield conn
            finally:
                self._local.depth -= 1
            return

        with self._write_lock:
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                raise StorageError(f"Could not start transaction: {e}") from e

            self._local.depth = 1
            try:
                yield conn
                conn.execute("COMMIT")
            except sqlite3.IntegrityError as e:
                conn.execute("ROLLBACK")
                raise GraphIntegrityError(
                    f"Integrity violation: {e}", details={"path": str(self.db_path)}
                ) from e
            except sqlite3.Error as e:
                conn.execute("ROLLBACK")
                raise StorageError(f"Database error: {e}") from e
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            finally:
                self._local.depth = 0

    def _query(self, sql: str, params: Iterable[Any] = ()) -> List[sqlite3.Row]:
        try:
            return self._conn.execute(sql, tuple(params)).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Query failed: {e}", details={"sql": sql}) from e

    # Files

    def upsert_file_symbols(
        self,
        file: FileRecord,
        symbols: List[Symbol],
        edges: List[Relationship],
        unresolved: List[UnresolvedReference],
    ) -> UpsertResult:
        """
        Replace everything a file contributes to the graph.

        Incoming edges from other files that point at the file's current
        symbols are turned back into unresolved references first, so they
        can be re-bound to the new symbols by the next resolution pass.

        Args:
            file: File record to store, node_count is filled in here.
            symbols: Symbols defined in the file.
            edges: Relationships whose endpoints are known to exist.
            unresolved: References still to be resolved.

        Returns:
            UpsertResult with the written counts.

        Raises:
            GraphIntegrityError: If an edge points at a missing symbol.
        """
        result = UpsertResult()
        with self.transaction() as conn:
            result.requeued = self._requeue_incoming(conn, file.path)
            conn.execute("DELETE FROM nodes WHERE file_path = ?", (file.path,))

            self._insert_symbols(conn, symbols)
            result.nodes = len(symbols)

            for edge in edges:
                self._insert_edge(conn, edge)
            result.edges = len(edges)

            for ref in unresolved:
                self._insert_unresolved(conn, ref)
            result.unresolved = len(unresolved)

            file.node_count = len(symbols)
            self._upsert_file_record(conn, file)

        return result

    def delete_file(self, path: str) -> int:
        """
        Remove a file and every symbol, edge and reference it owns.

        Args:
            path: Project-relative file path.

        Returns:
            Number of references from other files that were re-queued.
        """
        with self.transaction() as conn:
            requeued = self._requeue_incoming(conn, path)
            conn.execute("DELETE FROM nodes WHERE file_path = ?", (path,))
            conn.execute("DELETE FROM files WHERE path = ?", (path,))
        return requeued

    def _requeue_incoming(self, conn: sqlite3.Connection, path: str) -> int:
        rows = conn.execute(
            """SELECT e.source, e.kind, e.line, e.col, e.metadata, t.name
               FROM edges e
               JOIN nodes t ON t.id = e.target
               JOIN nodes s ON s.id = e.source
               WHERE t.file_path = ? AND s.file_path != ?""",
            (path, path),
        ).fetchall()

        for row in rows:
            metadata = _load_json(row["metadata"]) or {}
            self._insert_unresolved(conn, UnresolvedReference(
                from_node_id=row["source"],
                reference_name=row["name"],
                reference_kind=EdgeKind(row["kind"]),
                line=row["line"],
                column=row["col"],
                arity=metadata.get("arity"),
            ))

        if rows:
            logger.debug(f"Re-queued {len(rows)} references into {path}")
        return len(rows)

    def _upsert_file_record(self, conn: sqlite3.Connection, file: FileRecord) -> None:
        conn.execute(
            """INSERT INTO files
               (path, content_hash, language, size, modified_at, indexed_at, node_count, errors)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)
               ON CONFLICT(path) DO UPDATE SET
                   content_hash = excluded.content_hash,
                   language = excluded.language,
                   size = excluded.size,
                   modified_at = excluded.modified_at,
                   indexed_at = excluded.indexed_at,
                   node_count = excluded.node_count,
                   errors = excluded.errors""",
            (
                file.path,
                file.content_hash,
                file.language,
                file.size,
                file.modified_at,
                file.indexed_at,
                file.node_count,
                _dump_json([e.to_dict() for e in file.errors]) if file.errors else None,
            ),
        )

    def get_file(self, path: str) -> Optional[FileRecord]:
        """Get the record for a file, if indexed."""
        rows = self._query("SELECT * FROM files WHERE path = ?", (path,))
        return self._row_to_file(rows[0]) if rows else None

    def file_paths(self) -> List[str]:
        return [row["path"] for row in self._query("SELECT path FROM files ORDER BY path")]

    def _row_to_file(self, row: sqlite3.Row) -> FileRecord:
        errors = _load_json(row["errors"]) or []
        return FileRecord(
            path=row["path"],
            content_hash=row["content_hash"],
            language=row["language"],
            size=row["size"],
            modified_at=row["modified_at"],
            indexed_at=row["indexed_at"],
            node_count=row["node_count"] or 0,
            errors=[ParseIssue.from_dict(e) for e in errors],
        )

    # Symbols

    def _insert_symbols(self, conn: sqlite3.Connection, symbols: List[Symbol]) -> None:
        conn.executemany(
            f"INSERT INTO nodes ({', '.join(_NODE_COLUMNS)}) "
            f"VALUES ({_placeholders(len(_NODE_COLUMNS))})",
            [
                (
                    s.id,
                    s.kind.value,
                    s.name,
                    s.qualified_name,
                    s.file_path,
                    s.language,
                    s.start_line,
                    s.end_line,
                    s.start_column,
                    s.end_column,
                    s.docstring,
                    s.signature,
                    s.visibility.value if s.visibility else None,
                    int(s.is_exported),
                    int(s.is_async),
                    int(s.is_static),
                    int(s.is_abstract),
                    _dump_json(s.decorators),
                    _dump_json(s.type_parameters),
                    s.updated_at,
                )
                for s in symbols
            ],
        )

    def get_symbol(self, symbol_id: str) -> Optional[Symbol]:
        """Get a symbol by ID."""
        rows = self._query("SELECT * FROM nodes WHERE id = ?", (symbol_id,))
        return self._row_to_symbol(rows[0]) if rows else None

    def get_symbols(self, symbol_ids: Iterable[str]) -> Dict[str, Symbol]:
        """Fetch many symbols at once, keyed by id. Unknown ids are left out."""
        ids = list(dict.fromkeys(symbol_ids))
        found: Dict[str, Symbol] = {}
        for chunk in _chunks(ids):
            rows = self._query(
                f"SELECT * FROM nodes WHERE id IN ({_placeholders(len(chunk))})", chunk
            )
            for row in rows:
                found[row["id"]] = self._row_to_symbol(row)
        return found

    def existing_ids(self, symbol_ids: Iterable[str]) -> set:
        """Subset of the given ids that are present in the store."""
        ids = list(set(symbol_ids))
        present = set()
        for chunk in _chunks(ids):
            rows = self._query(
                f"SELECT id FROM nodes WHERE id IN ({_placeholders(len(chunk))})", chunk
            )
            present.update(row["id"] for row in rows)
        return present

    def find_symbols(
        self,
        name_pattern: Optional[str] = None,
        qualified_pattern: Optional[str] = None,
        kinds: Optional[Iterable[NodeKind]] = None,
        file_path: Optional[str] = None,
        limit: Optional[int] = 100,
    ) -> List[Symbol]:
        """
        Find symbols by short or qualified name.

        Patterns use glob syntax (`*`, `?`, `[...]`); a pattern without
        wildcards matches the name exactly.

        Args:
            name_pattern: Pattern for the short name.
            qualified_pattern: Pattern for the qualified name.
            kinds: Restrict to these symbol kinds.
            file_path: Restrict to one file.
            limit: Maximum number of results, None for no limit.

        Returns:
            Matching symbols ordered by qualified name.
        """
        clauses, params = [], []
        if name_pattern is not None:
            clauses.append("name GLOB ?")
            params.append(name_pattern)
        if qualified_pattern is not None:
            clauses.append("qualified_name GLOB ?")
            params.append(qualified_pattern)
        if file_path is not None:
            clauses.append("file_path = ?")
            params.append(file_path)
        kind_values = [k.value for k in kinds] if kinds else []
        if kind_values:
            clauses.append(f"kind IN ({_placeholders(len(kind_values))})")
            params.extend(kind_values)

        sql = "SELECT * FROM nodes"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY qualified_name, id"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)

        return [self._row_to_symbol(row) for row in self._query(sql, params)]

    def symbols_named(self, names: Iterable[str]) -> List[Symbol]:
        """Symbols whose short or qualified name is one of `names`."""
        names = list(dict.fromkeys(n for n in names if n))
        found: Dict[str, Symbol] = {}
        for chunk in _chunks(names, _CHUNK // 2):
            marks = _placeholders(len(chunk))
            rows = self._query(
                f"SELECT * FROM nodes WHERE name IN ({marks}) OR qualified_name IN ({marks})",
                list(chunk) + list(chunk),
            )
            for row in rows:
                found[row["id"]] = self._row_to_symbol(row)
        return list(found.values())

    def symbols_in_file(
        self, path: str, kinds: Optional[Iterable[NodeKind]] = None
    ) -> List[Symbol]:
        """Symbols defined in a file, in source order."""
        params: List[Any] = [path]
        sql = "SELECT * FROM nodes WHERE file_path = ?"
        kind_values = [k.value for k in kinds] if kinds else []
        if kind_values:
            sql += f" AND kind IN ({_placeholders(len(kind_values))})"
            params.extend(kind_values)
        sql += " ORDER BY start_line, start_column"
        return [self._row_to_symbol(row) for row in self._query(sql, params)]

    def _row_to_symbol(self, row: sqlite3.Row) -> Symbol:
        return Symbol(
            id=row["id"],
            kind=NodeKind(row["kind"]),
            name=row["name"],
            qualified_name=row["qualified_name"],
            file_path=row["file_path"],
            language=row["language"],
            start_line=row["start_line"],
            end_line=row["end_line"],
            start_column=row["start_column"],
            end_column=row["end_column"],
            docstring=row["docstring"],
            signature=row["signature"],
            visibility=Visibility(row["visibility"]) if row["visibility"] else None,
            is_exported=bool(row["is_exported"]),
            is_async=bool(row["is_async"]),
            is_static=bool(row["is_static"]),
            is_abstract=bool(row["is_abstract"]),
            decorators=_load_json(row["decorators"]),
            type_parameters=_load_json(row["type_parameters"]),
            updated_at=row["updated_at"],
        )

    # Edges

    def _insert_edge(self, conn: sqlite3.Connection, edge: Relationship) -> None:
        conn.execute(
            "INSERT INTO edges (source, target, kind, metadata, line, col) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (
                edge.source,
                edge.target,
                edge.kind.value,
                _dump_json(edge.metadata),
                edge.line,
                edge.column,
            ),
        )

    def add_relationship(self, edge: Relationship) -> None:
        """Insert one relationship between two existing symbols."""
        with self.transaction() as conn:
            self._insert_edge(conn, edge)

    def edges_from(
        self,
        symbol_id: str,
        kind: Optional[EdgeKind] = None,
        limit: Optional[int] = None,
    ) -> List[Relationship]:
        """Outgoing relationships of a symbol."""
        return self._edges("source", symbol_id, kind, limit)

    def edges_to(
        self,
        symbol_id: str,
        kind: Optional[EdgeKind] = None,
        limit: Optional[int] = None,
    ) -> List[Relationship]:
        """Incoming relationships of a symbol."""
        return self._edges("target", symbol_id, kind, limit)

    def _edges(
        self,
        column: str,
        symbol_id: str,
        kind: Optional[EdgeKind],
        limit: Optional[int],
    ) -> List[Relationship]:
        sql = f"SELECT * FROM edges WHERE {column} = ?"
        params: List[Any] = [symbol_id]
        if kind is not None:
            sql += " AND kind = ?"
            params.append(kind.value)
        sql += " ORDER BY id"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        return [self._row_to_edge(row) for row in self._query(sql, params)]

    def _row_to_edge(self, row: sqlite3.Row) -> Relationship:
        return Relationship(
            id=row["id"],
            source=row["source"],
            target=row["target"],
            kind=EdgeKind(row["kind"]),
            metadata=_load_json(row["metadata"]),
            line=row["line"],
            column=row["col"],
        )

    # Unresolved references

    def _insert_unresolved(self, conn: sqlite3.Connection, ref: UnresolvedReference) -> None:
        cursor = conn.execute(
            "INSERT INTO unresolved_refs "
            "(from_node_id, reference_name, reference_kind, line, col, candidates) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (
                ref.from_node_id,
                ref.reference_name,
                ref.reference_kind.value,
                ref.line,
                ref.column,
                self._encode_candidates(ref.arity, ref.candidates),
            ),
        )
        ref.id = cursor.lastrowid

    @staticmethod
    def _encode_candidates(arity: Optional[int], candidates: List[Candidate]) -> Optional[str]:
        if arity is None and not candidates:
            return None
        return json.dumps({
            "arity": arity,
            "candidates": [c.to_dict() for c in candidates],
        })

    @staticmethod
    def _decode_candidates(text: Optional[str]) -> Tuple[Optional[int], List[Candidate]]:
        data = _load_json(text)
        if not data:
            return None, []
        return data.get("arity"), [
            Candidate(node_id=c["id"], score=c["score"])
            for c in data.get("candidates", [])
        ]

    def fetch_unresolved(
        self, after_id: int = 0, limit: int = 500
    ) -> List[UnresolvedReference]:
        """
        Page through unresolved references in id order.

        Args:
            after_id: Only return rows with a larger id.
            limit: Page size.

        Returns:
            References with `file_path` set to the referencing file.
        """
        rows = self._query(
            """SELECT u.*, n.file_path AS from_file
               FROM unresolved_refs u
               JOIN nodes n ON n.id = u.from_node_id
               WHERE u.id > ?
               ORDER BY u.id
               LIMIT ?""",
            (after_id, limit),
        )
        return [self._row_to_unresolved(row) for row in rows]

    def unresolved_from(self, symbol_id: str) -> List[UnresolvedReference]:
        """Unresolved references made by one symbol."""
        rows = self._query(
            """SELECT u.*, n.file_path AS from_file
               FROM unresolved_refs u
               JOIN nodes n ON n.id = u.from_node_id
               WHERE u.from_node_id = ?
               ORDER BY u.id""",
            (symbol_id,),
        )
        return [self._row_to_unresolved(row) for row in rows]

    def _row_to_unresolved(self, row: sqlite3.Row) -> UnresolvedReference:
        arity, candidates = self._decode_candidates(row["candidates"])
        return UnresolvedReference(
            id=row["id"],
            from_node_id=row["from_node_id"],
            reference_name=row["reference_name"],
            reference_kind=EdgeKind(row["reference_kind"]),
            line=row["line"],
            column=row["col"],
            candidates=candidates,
            arity=arity,
            file_path=row["from_file"],
        )

    def commit_resolution(self, ref: UnresolvedReference, edge: Relationship) -> None:
        """Materialize a resolved reference as an edge and drop the row."""
        with self.transaction() as conn:
            self._insert_edge(conn, edge)
            conn.execute("DELETE FROM unresolved_refs WHERE id = ?", (ref.id,))

    def set_candidates(self, ref: UnresolvedReference, candidates: List[Candidate]) -> None:
        """Persist the ranked candidates of an ambiguous reference."""
        with self.transaction() as conn:
            conn.execute(
                "UPDATE unresolved_refs SET candidates = ? WHERE id = ?",
                (self._encode_candidates(ref.arity, candidates), ref.id),
            )
        ref.candidates = candidates

    # Search

    def search_text(
        self,
        query: str,
        limit: int = 20,
        kinds: Optional[Iterable[NodeKind]] = None,
    ) -> List[Tuple[Symbol, float]]:
        """
        Full-text search over names, qualified names and docstrings.

        Args:
            query: Free text; any matching word is a hit.
            limit: Maximum number of results.
            kinds: Restrict to these symbol kinds.

        Returns:
            (symbol, score) pairs, best first. Higher scores are better.
        """
        fts_query = build_fts_query(query)
        if fts_query is None:
            return []

        sql = """SELECT n.*, nodes_fts.rank AS fts_rank
                 FROM nodes_fts
                 JOIN nodes n ON n.rowid = nodes_fts.rowid
                 WHERE nodes_fts MATCH ?"""
        params: List[Any] = [fts_query]
        kind_values = [k.value for k in kinds] if kinds else []
        if kind_values:
            sql += f" AND n.kind IN ({_placeholders(len(kind_values))})"
            params.extend(kind_values)
        sql += " ORDER BY fts_rank, length(n.name), n.id LIMIT ?"
        params.append(limit)

        return [
            (self._row_to_symbol(row), -float(row["fts_rank"]))
            for row in self._query(sql, params)
        ]

    # Embeddings

    def store_embedding(self, symbol_id: str, vector: bytes, model: str) -> None:
        """Store or overwrite the embedding of a symbol for a model."""
        with self.transaction() as conn:
            conn.execute(
                """INSERT INTO vectors (node_id, embedding, model, created_at)
                   VALUES (?, ?, ?, ?)
                   ON CONFLICT(node_id, model) DO UPDATE SET
                       embedding = excluded.embedding,
                       created_at = excluded.created_at""",
                (symbol_id, sqlite3.Binary(vector), model, now_ms()),
            )

    def load_embedding(self, symbol_id: str, model: str) -> Optional[bytes]:
        """Raw embedding bytes of a symbol for a model."""
        rows = self._query(
            "SELECT embedding FROM vectors WHERE node_id = ? AND model = ?",
            (symbol_id, model),
        )
        return bytes(rows[0]["embedding"]) if rows else None

    def iter_embeddings(self, model: str, batch_size: int = 1000) -> Iterator[Tuple[str, bytes]]:
        """Iterate over (symbol id, embedding bytes) for a model."""
        last_id = ""
        while True:
            rows = self._query(
                "SELECT node_id, embedding FROM vectors "
                "WHERE model = ? AND node_id > ? ORDER BY node_id LIMIT ?",
                (model, last_id, batch_size),
            )
            if not rows:
                return
            for row in rows:
                yield row["node_id"], bytes(row["embedding"])
            last_id = rows[-1]["node_id"]

    def symbols_without_embedding(
        self,
        model: str,
        kinds: Optional[Iterable[NodeKind]] = None,
        limit: int = 10000,
    ) -> List[Symbol]:
        """Symbols that have no embedding for `model` yet."""
        sql = """SELECT n.* FROM nodes n
                 LEFT JOIN vectors v ON v.node_id = n.id AND v.model = ?
                 WHERE v.node_id IS NULL"""
        params: List[Any] = [model]
        kind_values = [k.value for k in kinds] if kinds else []
        if kind_values:
            sql += f" AND n.kind IN ({_placeholders(len(kind_values))})"
            params.extend(kind_values)
        sql += " ORDER BY n.id LIMIT ?"
        params.append(limit)
        return [self._row_to_symbol(row) for row in self._query(sql, params)]

    def delete_embeddings(self, except_model: Optional[str] = None) -> int:
        """Drop embeddings, keeping only those of `except_model` if given."""
        with self.transaction() as conn:
            if except_model is None:
                cursor = conn.execute("DELETE FROM vectors")
            else:
                cursor = conn.execute("DELETE FROM vectors WHERE model != ?", (except_model,))
        return cursor.rowcount

    # Maintenance

    def clear(self) -> None:
        """Remove all graph content, keeping the schema."""
        with self.transaction() as conn:
            conn.execute("DELETE FROM unresolved_refs")
            conn.execute("DELETE FROM edges")
            conn.execute("DELETE FROM vectors")
            conn.execute("DELETE FROM nodes")
            conn.execute("DELETE FROM files")
        logger.info("Graph store cleared")

    def _count(self, sql: str, params: Iterable[Any] = ()) -> int:
        return self._query(sql, params)[0][0]

    def get_statistics(self) -> Dict[str, Any]:
        """Counts of everything in the store."""
        return {
            "files": self._count("SELECT COUNT(*) FROM files"),
            "nodes": self._count("SELECT COUNT(*) FROM nodes"),
            "edges": self._count("SELECT COUNT(*) FROM edges"),
            "unresolved": self._count("SELECT COUNT(*) FROM unresolved_refs"),
            "vectors": self._count("SELECT COUNT(*) FROM vectors"),
            "files_with_errors": self._count(
                "SELECT COUNT(*) FROM files WHERE errors IS NOT NULL"
            ),
            "nodes_by_kind": {
                row["kind"]: row["n"]
                for row in self._query(
                    "SELECT kind, COUNT(*) AS n FROM nodes GROUP BY kind ORDER BY kind"
                )
            },
            "edges_by_kind": {
                row["kind"]: row["n"]
                for row in self._query(
                    "SELECT kind, COUNT(*) AS n FROM edges GROUP BY kind ORDER BY kind"
                )
            },
            "files_by_language": {
                row["language"]: row["n"]
                for row in self._query(
                    "SELECT language, COUNT(*) AS n FROM files GROUP BY language ORDER BY language"
                )
            },
            "db_size_bytes": self.db_path.stat().st_size if self.db_path.exists() else 0,
        }
