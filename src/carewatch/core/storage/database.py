"""SQLite database management for the CareWatch data store.

Handles connection lifecycle, schema creation, migrations, and the
transaction boundaries every repository write goes through.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

logger = logging.getLogger(__name__)

# Current schema version
SCHEMA_VERSION = 2

# ---------------------------------------------------------------------------
# Schema DDL
# ---------------------------------------------------------------------------

_SCHEMA_V1 = """
CREATE TABLE IF NOT EXISTS caregivers (
    id           TEXT PRIMARY KEY,
    display_name TEXT NOT NULL,
    email        TEXT UNIQUE,
    role         TEXT NOT NULL DEFAULT 'family',
    created_at   TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS care_subjects (
    id              TEXT PRIMARY KEY,
    first_name      TEXT NOT NULL,
    last_name       TEXT NOT NULL,
    date_of_birth   TEXT,
    gender          TEXT,

    -- Encrypted JSON blob (contact details + clinical profile)
    profile_enc     TEXT,

    mobility_status TEXT,
    mobility_aids   TEXT,
    vision_status   TEXT,
    hearing_status  TEXT,
    speech_status   TEXT,

    device_id       TEXT UNIQUE,
    is_active       INTEGER NOT NULL DEFAULT 1,
    created_at      TEXT NOT NULL,
    updated_at      TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS access_relations (
    id                TEXT PRIMARY KEY,
    caregiver_id      TEXT NOT NULL REFERENCES caregivers(id),
    care_subject_id   TEXT NOT NULL REFERENCES care_subjects(id),
    relationship_type TEXT NOT NULL,
    permission_level  TEXT NOT NULL DEFAULT 'view',
    is_active         INTEGER NOT NULL DEFAULT 1,
    created_at        TEXT NOT NULL
);

-- Append-only interaction ledger
CREATE TABLE IF NOT EXISTS interactions (
    id               TEXT PRIMARY KEY,
    care_subject_id  TEXT NOT NULL REFERENCES care_subjects(id),
    interaction_type TEXT NOT NULL,
    transcript_enc   TEXT,
    sentiment_score  REAL,
    sentiment_label  TEXT,
    mood_score       INTEGER,
    duration_seconds INTEGER NOT NULL,
    notes_enc        TEXT,
    recorded_by      TEXT,
    created_at       TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS health_alerts (
    id              TEXT PRIMARY KEY,
    care_subject_id TEXT NOT NULL REFERENCES care_subjects(id),
    alert_type      TEXT NOT NULL,
    severity        TEXT NOT NULL,
    title           TEXT NOT NULL,
    description     TEXT NOT NULL,
    is_resolved     INTEGER NOT NULL DEFAULT 0,
    resolved_by     TEXT,
    resolved_at     TEXT,
    created_by      TEXT,
    created_at      TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS schema_version (
    version    INTEGER NOT NULL,
    applied_at TEXT NOT NULL DEFAULT (datetime('now'))
);

-- At most one active relation per (caregiver, subject) pair
CREATE UNIQUE INDEX IF NOT EXISTS uq_relations_active_pair
    ON access_relations(caregiver_id, care_subject_id) WHERE is_active = 1;

CREATE INDEX IF NOT EXISTS idx_relations_caregiver    ON access_relations(caregiver_id);
CREATE INDEX IF NOT EXISTS idx_relations_subject      ON access_relations(care_subject_id);
CREATE INDEX IF NOT EXISTS idx_interactions_subject_ts ON interactions(care_subject_id, created_at);
CREATE INDEX IF NOT EXISTS idx_alerts_subject_ts      ON health_alerts(care_subject_id, created_at);
CREATE INDEX IF NOT EXISTS idx_alerts_resolved        ON health_alerts(care_subject_id, is_resolved);
"""

# ---------------------------------------------------------------------------
# V2: Audit log table (access decisions and mutations, PHI-free)
# ---------------------------------------------------------------------------

_SCHEMA_V2 = """
CREATE TABLE IF NOT EXISTS audit_log (
    id              TEXT PRIMARY KEY,
    timestamp       TEXT NOT NULL DEFAULT (datetime('now')),
    action          TEXT NOT NULL,
    operation       TEXT,
    caregiver_id    TEXT,
    care_subject_id TEXT,
    input_hash      TEXT,
    duration_ms     REAL,
    status          TEXT NOT NULL DEFAULT 'success',
    error_type      TEXT,
    metadata_json   TEXT
);

CREATE INDEX IF NOT EXISTS idx_audit_timestamp ON audit_log(timestamp);
CREATE INDEX IF NOT EXISTS idx_audit_action    ON audit_log(action);
CREATE INDEX IF NOT EXISTS idx_audit_caregiver ON audit_log(caregiver_id);
"""


class DatabaseError(Exception):
    """Raised when database operations fail (infrastructure, not domain, errors)."""


class ConstraintError(DatabaseError):
    """Raised when a write violates a UNIQUE, FOREIGN KEY or NOT NULL constraint."""


class CareDatabase:
    """SQLite database manager for the CareWatch store.

    Supports both file-based and in-memory (`:memory:`) databases.
    In-memory mode is used for testing. One connection is shared by all
    request threads; :meth:`transaction` and :meth:`snapshot` serialize
    access to it.

    Usage::

        db = CareDatabase(":memory:")
        db.initialize()
        with db.transaction() as conn:
            conn.execute(...)
        db.close()
    """

    def __init__(self, db_path: str = ":memory:") -> None:
        """Initialize database manager.

        Args:
            db_path: Path to SQLite file, or ":memory:" for in-memory DB.
        """
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()

    @property
    def connection(self) -> sqlite3.Connection:
        """Get the active database connection.

        Raises:
            DatabaseError: If the database has not been initialized.
        """
        if self._conn is None:
            raise DatabaseError("Database not initialized. Call initialize() first.")
        return self._conn

    def initialize(self) -> None:
        """Create the database connection and ensure schema exists.

        For file-based databases, creates parent directories if needed.
        Idempotent: safe to call multiple times.
        """
        if self._conn is not None:
            return  # Already initialized

        if self._db_path != ":memory:":
            db_file = Path(self._db_path).expanduser()
            db_file.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(db_file), check_same_thread=False)
        else:
            self._conn = sqlite3.connect(":memory:", check_same_thread=False)

        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")

        self._ensure_schema()
        logger.info("Care database initialized: %s", self._db_path)

    def _ensure_schema(self) -> None:
        """Create tables if they don't exist and apply migrations."""
        conn = self.connection

        # V1: Core tables (always applied, CREATE IF NOT EXISTS is idempotent)
        conn.executescript(_SCHEMA_V1)

        cursor = conn.execute("SELECT MAX(version) FROM schema_version")
        row = cursor.fetchone()
        current_version = row[0] if row[0] is not None else 0

        # V2: Audit log table
        if current_version < 2:
            conn.executescript(_SCHEMA_V2)
            logger.info("Applied schema migration V2: audit_log table")

        if current_version < SCHEMA_VERSION:
            conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)",
                (SCHEMA_VERSION,),
            )
            conn.commit()
            logger.info(
                "Schema updated from version %d to %d", current_version, SCHEMA_VERSION
            )

    def get_schema_version(self) -> int:
        """Return the current schema version."""
        cursor = self.connection.execute("SELECT MAX(version) FROM schema_version")
        row = cursor.fetchone()
        return row[0] if row[0] is not None else 0

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a block of writes atomically.

        Commits when the block exits normally and rolls back on any
        exception. ``sqlite3`` failures are re-raised as
        :class:`DatabaseError`; any other exception propagates unchanged.
        """
        with self._lock:
            conn = self.connection
            try:
                yield conn
            except sqlite3.IntegrityError as exc:
                conn.rollback()
                raise ConstraintError(f"Constraint violated: {exc}") from exc
            except sqlite3.Error as exc:
                conn.rollback()
                raise DatabaseError(f"Database operation failed: {exc}") from exc
            except BaseException:
                conn.rollback()
                raise
            try:
                conn.commit()
            except sqlite3.Error as exc:
                raise DatabaseError(f"Commit failed: {exc}") from exc

    @contextmanager
    def snapshot(self) -> Iterator[sqlite3.Connection]:
        """Run several reads against one consistent view of the data."""
        with self._lock:
            conn = self.connection
            # Nested inside a write transaction: reuse it, never end it here.
            owns_transaction = not conn.in_transaction
            try:
                if owns_transaction:
                    conn.execute("BEGIN")
                yield conn
            except sqlite3.Error as exc:
                raise DatabaseError(f"Database read failed: {exc}") from exc
            finally:
                if owns_transaction and conn.in_transaction:
                    conn.rollback()

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
                logger.info("Care database closed")

    def __enter__(self) -> CareDatabase:
        self.initialize()
        return self

    def __exit__(self, *args) -> None:
        self.close()
