"""
SQLiteRecordStore - SQLite-backed RecordStore with an FTS5 text index.

Documents are stored as JSON. Fields the identity index filters on are
also copied into real columns so they can carry B-tree indexes; any other
dotted path is resolved per row with the ``doc_get`` SQL function.
Pattern clauses run through Python ``REGEXP`` and ``iregexp`` functions.
"""

import json
import logging
import re
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from certindex.core.predicates import (
    MISSING,
    And,
    EqualsField,
    MemberOf,
    PatternMatch,
    Predicate,
    compile_pattern,
    get_path,
)
from certindex.core.store import RecordStore, project
from certindex.errors import StoreError

logger = logging.getLogger(__name__)

# document path -> promoted column
COLUMNS: Dict[str, str] = {
    "txid": "txid",
    "outputIndex": "output_index",
    "certificate.subject": "subject",
    "certificate.certifier": "certifier",
    "certificate.type": "type",
    "certificate.serialNumber": "serial_number",
    "searchableAttributes": "searchable_attributes",
    "createdAt": "created_at",
}

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _search(pattern: str, value: Any, ignore_case: bool) -> bool:
    if not isinstance(value, str):
        return False
    return compile_pattern(pattern, ignore_case).search(value) is not None


def _regexp(pattern: str, value: Any) -> bool:
    """SQLite REGEXP: ``value REGEXP pattern`` calls ``regexp(pattern, value)``."""
    return _search(pattern, value, False)


def _iregexp(pattern: str, value: Any) -> bool:
    """Case-insensitive counterpart of ``_regexp``, called as ``iregexp(pattern, value)``."""
    return _search(pattern, value, True)


def _doc_get(document: str, path: str) -> Any:
    """Resolve a dotted path inside a JSON document, scalars only."""
    value = get_path(json.loads(document), path)
    if value is MISSING or isinstance(value, (dict, list)):
        return None
    return value


class SQLiteRecordStore(RecordStore):
    """SQLite-backed document collection."""

    def __init__(self, db_path: Path, table: str = "identityRecords", timeout: float = 5.0):
        """Initialize store with database path.

        Args:
            db_path: Path to SQLite database file
            table: Collection (table) name, a plain SQL identifier
            timeout: Seconds to wait on a locked database before failing

        Raises:
            ValueError: If the table name is not a plain identifier
            StoreError: If the base schema cannot be created
        """
        if not _IDENTIFIER_RE.match(table):
            raise ValueError(f"Invalid table name: {table!r}")

        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.table = table
        self.timeout = timeout
        self._init_db()

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Open a connection with the custom functions registered.

        Commits on success, rolls back on error, and always closes.
        Driver errors surface as StoreError.
        """
        try:
            conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        except sqlite3.Error as exc:
            raise StoreError(f"Cannot open {self.db_path}: {exc}") from exc

        try:
            conn.row_factory = sqlite3.Row
            conn.create_function("REGEXP", 2, _regexp, deterministic=True)
            conn.create_function("iregexp", 2, _iregexp, deterministic=True)
            conn.create_function("doc_get", 2, _doc_get, deterministic=True)
            with conn:
                yield conn
        except sqlite3.Error as exc:
            raise StoreError(f"{type(exc).__name__}: {exc}") from exc
        finally:
            conn.close()

    def _init_db(self) -> None:
        """Create the records table and its lookup indexes."""
        t = self.table
        with self._connection() as conn:
            conn.executescript(f"""
                CREATE TABLE IF NOT EXISTS {t} (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    txid TEXT NOT NULL,
                    output_index INTEGER NOT NULL,
                    subject TEXT,
                    certifier TEXT,
                    type TEXT,
                    serial_number TEXT,
                    searchable_attributes TEXT,
                    created_at TEXT,
                    document TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_{t}_reference ON {t}(txid, output_index);
                CREATE INDEX IF NOT EXISTS idx_{t}_subject ON {t}(subject);
                CREATE INDEX IF NOT EXISTS idx_{t}_certifier ON {t}(certifier);
                CREATE INDEX IF NOT EXISTS idx_{t}_serial ON {t}(serial_number);
            """)

    # --- predicate translation -------------------------------------------

    def _field_sql(self, path: str) -> Tuple[str, List[Any]]:
        column = COLUMNS.get(path)
        if column:
            return column, []
        return "doc_get(document, ?)", [path]

    def _where(self, predicate: Predicate) -> Tuple[str, List[Any]]:
        """Translate a predicate tree into a WHERE clause and parameters."""
        if isinstance(predicate, And):
            if not predicate.clauses:
                return "1", []
            parts, params = [], []
            for clause in predicate.clauses:
                sql, clause_params = self._where(clause)
                parts.append(sql)
                params.extend(clause_params)
            return "(" + " AND ".join(parts) + ")", params

        expr, params = self._field_sql(predicate.field)

        if isinstance(predicate, EqualsField):
            return f"{expr} = ?", params + [predicate.value]

        if isinstance(predicate, MemberOf):
            if not predicate.values:
                return "0", []
            placeholders = ", ".join("?" for _ in predicate.values)
            return f"{expr} IN ({placeholders})", params + list(predicate.values)

        if isinstance(predicate, PatternMatch):
            if predicate.ignore_case:
                return f"iregexp(?, {expr})", [predicate.pattern] + params
            return f"{expr} REGEXP ?", params + [predicate.pattern]

        raise TypeError(f"Unknown predicate: {predicate!r}")

    # --- RecordStore -----------------------------------------------------

    def insert_one(self, document: Mapping[str, Any]) -> None:
        row = {}
        for path, column in COLUMNS.items():
            value = get_path(document, path)
            row[column] = None if value is MISSING else value

        if row["txid"] is None or row["output_index"] is None:
            raise StoreError("document must carry txid and outputIndex")

        columns = list(COLUMNS.values()) + ["document"]
        values = [row[c] for c in COLUMNS.values()] + [json.dumps(document, default=str)]

        with self._connection() as conn:
            conn.execute(
                f"INSERT INTO {self.table} ({', '.join(columns)}) "
                f"VALUES ({', '.join('?' for _ in columns)})",
                values,
            )

    def delete_one(self, predicate: Predicate) -> int:
        where, params = self._where(predicate)
        with self._connection() as conn:
            cursor = conn.execute(
                f"""
                DELETE FROM {self.table} WHERE id = (
                    SELECT id FROM {self.table} WHERE {where} ORDER BY id LIMIT 1
                )
                """,
                params,
            )
            return cursor.rowcount

    def find(
        self, predicate: Predicate, projection: Optional[Iterable[str]] = None
    ) -> List[Dict[str, Any]]:
        where, params = self._where(predicate)
        projection = list(projection) if projection is not None else None

        # Projection entirely on promoted columns: skip the JSON document
        if projection and all(p in COLUMNS for p in projection):
            select = ", ".join(COLUMNS[p] for p in projection)
            with self._connection() as conn:
                rows = conn.execute(
                    f"SELECT {select} FROM {self.table} WHERE {where} ORDER BY id",
                    params,
                ).fetchall()
            return [{p: row[COLUMNS[p]] for p in projection} for row in rows]

        with self._connection() as conn:
            rows = conn.execute(
                f"SELECT document FROM {self.table} WHERE {where} ORDER BY id",
                params,
            ).fetchall()
        return [project(json.loads(row["document"]), projection) for row in rows]

    def create_text_index(self, field: str) -> None:
        """Create an FTS5 table over a promoted column, kept in sync by triggers.

        Raises:
            StoreError: If the field isn't promoted or FTS5 is unavailable
        """
        column = COLUMNS.get(field)
        if column is None:
            raise StoreError(f"Cannot text-index unpromoted field: {field}")

        t = self.table
        fts = f"{t}_fts"
        with self._connection() as conn:
            exists = conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (fts,)
            ).fetchone()

            conn.executescript(f"""
                CREATE VIRTUAL TABLE IF NOT EXISTS {fts} USING fts5(
                    {column},
                    content='{t}',
                    content_rowid='id'
                );

                CREATE TRIGGER IF NOT EXISTS {t}_ai AFTER INSERT ON {t} BEGIN
                    INSERT INTO {fts}(rowid, {column}) VALUES (new.id, new.{column});
                END;

                CREATE TRIGGER IF NOT EXISTS {t}_ad AFTER DELETE ON {t} BEGIN
                    INSERT INTO {fts}({fts}, rowid, {column})
                    VALUES ('delete', old.id, old.{column});
                END;
            """)

            # Backfill rows stored before the index existed
            if not exists:
                conn.execute(f"INSERT INTO {fts}({fts}) VALUES ('rebuild')")
                logger.info("Created text index %s on %s.%s", fts, t, column)

    def count(self) -> int:
        with self._connection() as conn:
            result = conn.execute(f"SELECT COUNT(*) FROM {self.table}").fetchone()
            return result[0] if result else 0
