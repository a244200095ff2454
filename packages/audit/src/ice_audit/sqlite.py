"""SQLiteSink: local audit database for CI caching and ad-hoc queries.

Schema:
  audit_events  one row per event; ``details`` is stored as a JSON blob.
"""

from __future__ import annotations

import json
import sqlite3
import threading

from ice_audit.base import AuditSink
from ice_audit.models import AuditEvent

_SCHEMA = """
CREATE TABLE IF NOT EXISTS audit_events (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp     TEXT NOT NULL,
    run_id        TEXT NOT NULL,
    event_type    TEXT NOT NULL,
    message       TEXT,
    details_json  TEXT DEFAULT '{}',
    error         TEXT,
    repository    TEXT
);
CREATE INDEX IF NOT EXISTS idx_audit_run  ON audit_events (run_id);
CREATE INDEX IF NOT EXISTS idx_audit_type ON audit_events (event_type);
"""


class SQLiteSink(AuditSink):
    """Stores audit events in a local SQLite database file.

    The path defaults to ``.ice-audit.db`` in the working directory and is
    configured via ``audit.config.path``.
    """

    def __init__(self, db_path: str = ".ice-audit.db"):
        # Worker threads share one connection; writes go through the lock.
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(_SCHEMA)
        self._conn.commit()
        self._lock = threading.Lock()

    def record(self, event: AuditEvent) -> None:
        with self._lock:
            self._conn.execute(
                """
                INSERT INTO audit_events
                  (timestamp, run_id, event_type, message, details_json, error, repository)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    event.timestamp,
                    event.run_id,
                    event.event_type,
                    event.message,
                    json.dumps(event.details, default=str),
                    event.error,
                    event.repository,
                ),
            )
            self._conn.commit()

    def list_events(self, run_id: str | None = None) -> list[AuditEvent]:
        with self._lock:
            if run_id is not None:
                rows = self._conn.execute(
                    "SELECT * FROM audit_events WHERE run_id=? ORDER BY id",
                    (run_id,),
                ).fetchall()
            else:
                rows = self._conn.execute("SELECT * FROM audit_events ORDER BY id").fetchall()
        return [self._row_to_event(r) for r in rows]

    def close(self) -> None:
        self._conn.close()

    @staticmethod
    def _row_to_event(row: sqlite3.Row) -> AuditEvent:
        return AuditEvent(
            timestamp=row["timestamp"],
            run_id=row["run_id"],
            event_type=row["event_type"],
            message=row["message"] or "",
            details=json.loads(row["details_json"] or "{}"),
            error=row["error"],
            repository=row["repository"] or "",
        )
