"""
ObservabilityLogger - Phase-based audit log for index operations.

Records what was stored, deleted and queried with structured data so a
session can be replayed or summarized later.
"""

import json
import sqlite3
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional


@dataclass
class LogEntry:
    """A log entry from the observability database."""

    id: int
    ts: str
    session: str
    phase: str
    data: Dict[str, Any] = field(default_factory=dict)


class ObservabilityLogger:
    """Phase-based audit logging.

    Phases:
    - store: A record was inserted
    - delete: A record deletion was requested
    - query: A query ran (criteria and hit count)
    - index: Index setup
    - error: Errors and how they were handled
    """

    PHASES = ["store", "delete", "query", "index", "error"]

    def __init__(self, db_path: Path):
        """Initialize logger with database path.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()
        self.session_id = self._new_session()

    def _init_db(self) -> None:
        """Create tables if they don't exist."""
        with sqlite3.connect(self.db_path) as conn:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    ts TEXT NOT NULL DEFAULT (datetime('now')),
                    session TEXT NOT NULL,
                    phase TEXT NOT NULL,
                    data JSON NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_session ON logs(session);
                CREATE INDEX IF NOT EXISTS idx_phase ON logs(phase);
                CREATE INDEX IF NOT EXISTS idx_ts ON logs(ts);

                CREATE VIEW IF NOT EXISTS errors AS
                SELECT id, ts, session,
                       json_extract(data, '$.error_type') as error_type,
                       json_extract(data, '$.details') as details,
                       json_extract(data, '$.resolution') as resolution,
                       data
                FROM logs WHERE phase = 'error';
            """)

    def _new_session(self) -> str:
        return f"session_{datetime.now().strftime('%Y%m%d_%H%M%S')}_{uuid.uuid4().hex[:6]}"

    def new_session(self) -> str:
        """Start a new session and return its ID."""
        self.session_id = self._new_session()
        return self.session_id

    def log(self, phase: str, data: Dict[str, Any]) -> None:
        """Log a phase with structured data.

        Raises:
            ValueError: If phase is not one of PHASES
        """
        if phase not in self.PHASES:
            raise ValueError(f"Invalid phase: {phase}. Must be one of {self.PHASES}")

        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                "INSERT INTO logs (session, phase, data) VALUES (?, ?, ?)",
                (self.session_id, phase, json.dumps(data, default=str)),
            )

    # Convenience methods

    def log_store(self, txid: str, output_index: int, serial_number: str) -> None:
        self.log(
            "store",
            {"txid": txid, "output_index": output_index, "serial_number": serial_number},
        )

    def log_delete(self, txid: str, output_index: int, deleted: int) -> None:
        self.log("delete", {"txid": txid, "output_index": output_index, "deleted": deleted})

    def log_query(self, operation: str, criteria: Any, hits: int) -> None:
        """Log a query.

        Args:
            operation: Query method name (e.g., "find_by_attribute")
            criteria: Rendered predicate, or None when input was rejected
            hits: Number of references returned
        """
        self.log(
            "query",
            {"operation": operation, "criteria": criteria, "hits": hits},
        )

    def log_index(self, field: str, status: str) -> None:
        self.log("index", {"field": field, "status": status})

    def log_error(
        self,
        error_type: str,
        details: Optional[Dict] = None,
        resolution: Optional[str] = None,
    ) -> None:
        """Log errors and how they were handled."""
        data: Dict[str, Any] = {"error_type": error_type}
        if details:
            data["details"] = details
        if resolution:
            data["resolution"] = resolution

        self.log("error", data)

    # Query methods

    def _rows_to_entries(self, rows) -> List[LogEntry]:
        return [
            LogEntry(
                id=row["id"],
                ts=row["ts"],
                session=row["session"],
                phase=row["phase"],
                data=json.loads(row["data"]),
            )
            for row in rows
        ]

    def get_session(self, session_id: Optional[str] = None) -> List[LogEntry]:
        """Get all logs for a session (defaults to current session)."""
        session_id = session_id or self.session_id

        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            rows = conn.execute(
                "SELECT * FROM logs WHERE session = ? ORDER BY id",
                (session_id,),
            ).fetchall()
            return self._rows_to_entries(rows)

    def get_errors(self, since: Optional[str] = None, limit: int = 100) -> List[LogEntry]:
        """Get error logs, newest first.

        Args:
            since: Optional ISO timestamp to filter from
            limit: Maximum results
        """
        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row

            if since:
                rows = conn.execute(
                    """
                    SELECT * FROM logs
                    WHERE phase = 'error' AND ts >= ?
                    ORDER BY id DESC LIMIT ?
                    """,
                    (since, limit),
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM logs WHERE phase = 'error' ORDER BY id DESC LIMIT ?",
                    (limit,),
                ).fetchall()

            return self._rows_to_entries(rows)

    def latest_session(self) -> Optional[str]:
        """Most recently written session ID, if any."""
        with sqlite3.connect(self.db_path) as conn:
            row = conn.execute("SELECT session FROM logs ORDER BY id DESC LIMIT 1").fetchone()
            return row[0] if row else None

    def get_session_summary(self, session_id: Optional[str] = None) -> Dict[str, Any]:
        """Get summary statistics for a session.

        Returns:
            Dictionary with phase counts, per-operation query counts,
            total hits and error count
        """
        session_id = session_id or self.session_id

        with sqlite3.connect(self.db_path) as conn:
            phase_counts = {}
            for row in conn.execute(
                """
                SELECT phase, COUNT(*) as count
                FROM logs WHERE session = ?
                GROUP BY phase
                """,
                (session_id,),
            ):
                phase_counts[row[0]] = row[1]

            query_counts = {}
            total_hits = 0
            for row in conn.execute(
                """
                SELECT json_extract(data, '$.operation') as operation,
                       COUNT(*) as count,
                       SUM(json_extract(data, '$.hits')) as hits
                FROM logs
                WHERE session = ? AND phase = 'query'
                GROUP BY json_extract(data, '$.operation')
                """,
                (session_id,),
            ):
                if row[0]:
                    query_counts[row[0]] = row[1]
                    total_hits += row[2] or 0

            return {
                "session_id": session_id,
                "phase_counts": phase_counts,
                "query_counts": query_counts,
                "total_hits": total_hits,
                "error_count": phase_counts.get("error", 0),
                "total_logs": sum(phase_counts.values()),
            }
