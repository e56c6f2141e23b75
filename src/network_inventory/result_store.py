"""
Durable scan result store.

SQLite database storing:
- The current result snapshot (one row per probed address)
- Scan history (one row per ScanJob)

Every snapshot write replaces the whole result table inside a single
transaction, so a reader (another process polling the file, or the API)
always sees a complete result set. Uses WAL mode so readers never block
the writer.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterable, Iterator, Optional

from ._types import (
    DeviceRecord,
    HardwareInfo,
    ScanHistory,
    ScanJob,
    ScanState,
)

logger = logging.getLogger(__name__)


SCHEMA = """
-- Latest result snapshot, replaced as a whole after every host
CREATE TABLE IF NOT EXISTS scan_results (
    ip_address TEXT PRIMARY KEY,
    position INTEGER NOT NULL,
    status TEXT NOT NULL,
    hostname TEXT NOT NULL DEFAULT '-',
    mac_address TEXT NOT NULL DEFAULT '-',
    vendor TEXT NOT NULL DEFAULT 'Unknown',
    category TEXT NOT NULL,
    open_ports TEXT NOT NULL DEFAULT '[]',  -- JSON array
    os_hint TEXT NOT NULL DEFAULT 'Unknown',

    -- Enrichment ('-' when unavailable)
    model TEXT NOT NULL DEFAULT '-',
    processor TEXT NOT NULL DEFAULT '-',
    memory TEXT NOT NULL DEFAULT '-',
    storage TEXT NOT NULL DEFAULT '-',
    os_name TEXT NOT NULL DEFAULT '-',
    os_version TEXT NOT NULL DEFAULT '-',
    os_architecture TEXT NOT NULL DEFAULT '-',
    install_date TEXT NOT NULL DEFAULT '-',
    uptime TEXT NOT NULL DEFAULT '-',
    logged_in_user TEXT NOT NULL DEFAULT '-',

    scanned_at TEXT NOT NULL
);

-- Scan history
CREATE TABLE IF NOT EXISTS scan_history (
    id TEXT PRIMARY KEY,
    range_expression TEXT NOT NULL,
    profile TEXT NOT NULL,
    state TEXT NOT NULL DEFAULT 'pending',
    started_at TEXT NOT NULL,
    completed_at TEXT,
    progress INTEGER DEFAULT 0,
    total INTEGER DEFAULT 0,
    error_message TEXT
);

CREATE INDEX IF NOT EXISTS idx_scan_results_position ON scan_results(position);
CREATE INDEX IF NOT EXISTS idx_scan_history_started ON scan_history(started_at);
"""

RESULT_COLUMNS = (
    "ip_address", "position", "status", "hostname", "mac_address", "vendor",
    "category", "open_ports", "os_hint",
    *HardwareInfo.field_names(),
    "scanned_at",
)


def _parse_datetime(s: Optional[str]) -> Optional[datetime]:
    """Parse ISO datetime string."""
    if not s:
        return None
    try:
        return datetime.fromisoformat(s)
    except ValueError:
        return None


class ResultStore:
    """SQLite store for result snapshots and scan history."""

    def __init__(self, db_path: Path | str = "/var/lib/network-inventory/results.db"):
        self.db_path = Path(db_path)
        self._ensure_directory()
        self._init_db()

    def _ensure_directory(self) -> None:
        """Ensure database directory exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def _init_db(self) -> None:
        """Initialize database with schema."""
        with self._get_connection() as conn:
            conn.executescript(SCHEMA)
            # WAL lets pollers read the last committed snapshot mid-write
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
            conn.commit()

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Get database connection with row factory."""
        conn = sqlite3.connect(str(self.db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    # -------------------------------------------------------------------------
    # Result snapshot
    # -------------------------------------------------------------------------

    def save_snapshot(self, records: Iterable[DeviceRecord]) -> int:
        """
        Replace the stored result set with `records`, atomically.

        Returns the number of rows written.
        """
        rows = [self._record_to_row(position, record) for position, record in enumerate(records)]
        placeholders = ", ".join("?" for _ in RESULT_COLUMNS)
        insert = f"INSERT INTO scan_results ({', '.join(RESULT_COLUMNS)}) VALUES ({placeholders})"

        with self._get_connection() as conn:
            try:
                conn.execute("BEGIN IMMEDIATE")
                conn.execute("DELETE FROM scan_results")
                conn.executemany(insert, rows)
                conn.commit()
            except sqlite3.Error:
                conn.rollback()
                raise
        return len(rows)

    def load_snapshot(self) -> list[DeviceRecord]:
        """Load the last stored result set, in snapshot order."""
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM scan_results ORDER BY position"
            ).fetchall()
        return [self._row_to_record(row) for row in rows]

    def clear_snapshot(self) -> None:
        with self._get_connection() as conn:
            conn.execute("DELETE FROM scan_results")
            conn.commit()

    def _record_to_row(self, position: int, record: DeviceRecord) -> tuple:
        data = record.to_dict()
        data["position"] = position
        data["open_ports"] = json.dumps(data["open_ports"])
        return tuple(data[column] for column in RESULT_COLUMNS)

    def _row_to_record(self, row: sqlite3.Row) -> DeviceRecord:
        data = {key: row[key] for key in row.keys()}
        try:
            data["open_ports"] = json.loads(data.get("open_ports") or "[]")
        except json.JSONDecodeError:
            data["open_ports"] = []
        return DeviceRecord.from_dict(data)

    # -------------------------------------------------------------------------
    # Scan history
    # -------------------------------------------------------------------------

    def create_scan_record(self, job: ScanJob) -> None:
        """Create (or overwrite) the history row for a job."""
        with self._get_connection() as conn:
            conn.execute("""
                INSERT OR REPLACE INTO scan_history (
                    id, range_expression, profile, state, started_at,
                    completed_at, progress, total, error_message
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                job.scan_id,
                job.range_expression,
                job.profile.name,
                job.state.value,
                job.started_at.isoformat(),
                job.completed_at.isoformat() if job.completed_at else None,
                job.progress,
                job.total,
                job.error_message,
            ))
            conn.commit()

    def complete_scan(self, job: ScanJob) -> None:
        """Record a job's terminal state."""
        with self._get_connection() as conn:
            conn.execute("""
                UPDATE scan_history SET
                    state = ?,
                    completed_at = ?,
                    progress = ?,
                    total = ?,
                    error_message = ?
                WHERE id = ?
            """, (
                job.state.value,
                job.completed_at.isoformat() if job.completed_at else None,
                job.progress,
                job.total,
                job.error_message,
                job.scan_id,
            ))
            conn.commit()

    def get_latest_scan(self) -> Optional[ScanHistory]:
        """Get most recent scan."""
        history = self.get_scan_history(limit=1)
        return history[0] if history else None

    def get_scan_history(self, limit: int = 10) -> list[ScanHistory]:
        """Get recent scan history, newest first."""
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM scan_history ORDER BY started_at DESC LIMIT ?",
                (limit,),
            ).fetchall()
        return [
            ScanHistory(
                id=row["id"],
                range_expression=row["range_expression"],
                profile=row["profile"],
                state=ScanState(row["state"]),
                started_at=_parse_datetime(row["started_at"]),
                completed_at=_parse_datetime(row["completed_at"]),
                progress=row["progress"] or 0,
                total=row["total"] or 0,
                error_message=row["error_message"],
            )
            for row in rows
        ]
