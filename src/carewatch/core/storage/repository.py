"""Care data repository — persistence operations for the CareWatch store.

The repository mediates between domain objects (CareSubject, Interaction,
HealthAlert, ...) and the SQLite database, using FieldEncryptor for the
fields that hold protected health information. It enforces storage-level
invariants only (unique active relations, conditional alert resolution);
authorization and input validation belong to the domain layer.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from collections.abc import Iterable, Iterator
from datetime import datetime, timezone
from typing import Any

from carewatch.core.storage.database import CareDatabase, ConstraintError
from carewatch.core.storage.encryption import FieldEncryptor
from carewatch.core.storage.models import (
    AccessRelation,
    AlertSeverity,
    AlertState,
    AlertType,
    Caregiver,
    CaregiverRole,
    CareSubject,
    HealthAlert,
    Interaction,
    InteractionType,
    Medication,
    PermissionLevel,
    RelationshipType,
    SentimentLabel,
    SeriesPoint,
    StatsSummary,
)

logger = logging.getLogger(__name__)


class RepositoryError(Exception):
    """Raised when a repository operation cannot be carried out."""


class ConflictError(RepositoryError):
    """Raised when a write violates a uniqueness constraint."""


_ACTIVE_ALERTS_SQL = (
    "SELECT COUNT(*) FROM health_alerts WHERE care_subject_id = ? AND is_resolved = 0"
)


def utc_iso(moment: datetime) -> str:
    """Format a datetime as a UTC ISO 8601 string with microsecond precision.

    A fixed width keeps lexical order equal to chronological order, which
    every ``ORDER BY created_at`` and window cutoff relies on.
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


class CareRepository:
    """Persistence for caregivers, care subjects, relations, interactions and alerts.

    Usage::

        db = CareDatabase(":memory:")
        db.initialize()
        repo = CareRepository(db, FieldEncryptor(key))

        caregiver = repo.insert_caregiver(Caregiver(id="", display_name="Ana", role=...))
        stats = repo.get_stats(subject_id)
    """

    def __init__(self, database: CareDatabase, encryptor: FieldEncryptor) -> None:
        self._db = database
        self._enc = encryptor

    @property
    def database(self) -> CareDatabase:
        return self._db

    @staticmethod
    def _new_id() -> str:
        return str(uuid.uuid4())

    @staticmethod
    def _now_iso() -> str:
        return utc_iso(datetime.now(timezone.utc))

    # ------------------------------------------------------------------
    # Caregivers
    # ------------------------------------------------------------------

    def insert_caregiver(self, caregiver: Caregiver) -> Caregiver:
        """Persist a caregiver. Raises ConflictError if the email is taken."""
        caregiver.id = caregiver.id or self._new_id()
        caregiver.created_at = caregiver.created_at or self._now_iso()
        try:
            with self._db.transaction() as conn:
                conn.execute(
                    """INSERT INTO caregivers (id, display_name, email, role, created_at)
                       VALUES (?, ?, ?, ?, ?)""",
                    (
                        caregiver.id,
                        caregiver.display_name,
                        caregiver.email,
                        caregiver.role.value,
                        caregiver.created_at,
                    ),
                )
        except ConstraintError as exc:
            raise ConflictError(f"Caregiver conflicts with an existing record: {exc}") from exc
        logger.info("Registered caregiver %s (role=%s)", caregiver.id, caregiver.role.value)
        return caregiver

    def get_caregiver(self, caregiver_id: str) -> Caregiver | None:
        row = self._fetchone("SELECT * FROM caregivers WHERE id = ?", (caregiver_id,))
        return self._row_to_caregiver(row) if row is not None else None

    # ------------------------------------------------------------------
    # Care subjects
    # ------------------------------------------------------------------

    def insert_subject(
        self, subject: CareSubject, creator_relation: AccessRelation
    ) -> tuple[CareSubject, AccessRelation]:
        """Persist a new care subject together with its creator's relation.

        Both rows are written in one transaction so that no subject ever
        exists without an administrative relation.
        """
        now = self._now_iso()
        subject.id = subject.id or self._new_id()
        subject.created_at = subject.created_at or now
        subject.updated_at = subject.updated_at or subject.created_at
        creator_relation.id = creator_relation.id or self._new_id()
        creator_relation.care_subject_id = subject.id
        creator_relation.created_at = creator_relation.created_at or now

        try:
            with self._db.transaction() as conn:
                conn.execute(
                    """INSERT INTO care_subjects (
                        id, first_name, last_name, date_of_birth, gender, profile_enc,
                        mobility_status, mobility_aids, vision_status, hearing_status,
                        speech_status, device_id, is_active, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    (
                        subject.id,
                        subject.first_name,
                        subject.last_name,
                        subject.date_of_birth,
                        subject.gender,
                        self._enc.encrypt(subject.clinical_profile()),
                        subject.mobility_status,
                        json.dumps(subject.mobility_aids),
                        subject.vision_status,
                        subject.hearing_status,
                        subject.speech_status,
                        subject.device_id,
                        int(subject.is_active),
                        subject.created_at,
                        subject.updated_at,
                    ),
                )
                self._insert_relation_row(conn, creator_relation)
        except ConstraintError as exc:
            raise ConflictError(f"Care subject conflicts with an existing record: {exc}") from exc

        logger.info("Created care subject %s (admin=%s)", subject.id, creator_relation.caregiver_id)
        return subject, creator_relation

    def get_subject(self, subject_id: str) -> CareSubject | None:
        row = self._fetchone("SELECT * FROM care_subjects WHERE id = ?", (subject_id,))
        return self._row_to_subject(row) if row is not None else None

    def get_subjects(
        self, subject_ids: Iterable[str], *, include_inactive: bool = False
    ) -> list[CareSubject]:
        """Fetch several subjects, preserving the order of ``subject_ids``."""
        ids = list(dict.fromkeys(subject_ids))
        if not ids:
            return []
        placeholders = ",".join("?" for _ in ids)
        query = f"SELECT * FROM care_subjects WHERE id IN ({placeholders})"
        if not include_inactive:
            query += " AND is_active = 1"
        with self._db.snapshot() as conn:
            rows = conn.execute(query, ids).fetchall()
        by_id = {row["id"]: self._row_to_subject(row) for row in rows}
        return [by_id[sid] for sid in ids if sid in by_id]

    def update_subject(self, subject: CareSubject) -> CareSubject:
        """Rewrite the mutable columns of an existing subject."""
        subject.updated_at = self._now_iso()
        try:
            with self._db.transaction() as conn:
                cursor = conn.execute(
                    """UPDATE care_subjects SET
                        first_name = ?, last_name = ?, date_of_birth = ?, gender = ?,
                        profile_enc = ?, mobility_status = ?, mobility_aids = ?,
                        vision_status = ?, hearing_status = ?, speech_status = ?,
                        device_id = ?, updated_at = ?
                       WHERE id = ?""",
                    (
                        subject.first_name,
                        subject.last_name,
                        subject.date_of_birth,
                        subject.gender,
                        self._enc.encrypt(subject.clinical_profile()),
                        subject.mobility_status,
                        json.dumps(subject.mobility_aids),
                        subject.vision_status,
                        subject.hearing_status,
                        subject.speech_status,
                        subject.device_id,
                        subject.updated_at,
                        subject.id,
                    ),
                )
        except ConstraintError as exc:
            raise ConflictError(f"Care subject update conflicts: {exc}") from exc
        if cursor.rowcount == 0:
            raise RepositoryError(f"Care subject {subject.id} does not exist")
        logger.info("Updated care subject %s", subject.id)
        return subject

    def set_subject_active(self, subject_id: str, active: bool) -> bool:
        """Flip the soft-deactivation flag. Returns False for unknown ids."""
        with self._db.transaction() as conn:
            cursor = conn.execute(
                "UPDATE care_subjects SET is_active = ?, updated_at = ? WHERE id = ?",
                (int(active), self._now_iso(), subject_id),
            )
        changed = cursor.rowcount > 0
        if changed:
            logger.info("Care subject %s is_active=%s", subject_id, active)
        return changed

    # ------------------------------------------------------------------
    # Access relations
    # ------------------------------------------------------------------

    def insert_relation(self, relation: AccessRelation) -> AccessRelation:
        """Persist a relation.

        Raises:
            ConflictError: If an active relation exists for the same pair,
                or the caregiver / subject does not exist.
        """
        relation.id = relation.id or self._new_id()
        relation.created_at = relation.created_at or self._now_iso()
        try:
            with self._db.transaction() as conn:
                self._insert_relation_row(conn, relation)
        except ConstraintError as exc:
            raise ConflictError(
                f"Relation {relation.caregiver_id} -> {relation.care_subject_id} conflicts: {exc}"
            ) from exc
        logger.info(
            "Granted %s on %s to %s",
            relation.permission_level.label,
            relation.care_subject_id,
            relation.caregiver_id,
        )
        return relation

    def _insert_relation_row(self, conn: sqlite3.Connection, relation: AccessRelation) -> None:
        conn.execute(
            """INSERT INTO access_relations
               (id, caregiver_id, care_subject_id, relationship_type,
                permission_level, is_active, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (
                relation.id,
                relation.caregiver_id,
                relation.care_subject_id,
                relation.relationship_type.value,
                relation.permission_level.label,
                int(relation.is_active),
                relation.created_at,
            ),
        )

    def get_active_relation(self, caregiver_id: str, subject_id: str) -> AccessRelation | None:
        row = self._fetchone(
            """SELECT * FROM access_relations
               WHERE caregiver_id = ? AND care_subject_id = ? AND is_active = 1""",
            (caregiver_id, subject_id),
        )
        return self._row_to_relation(row) if row is not None else None

    def get_relations_for_caregiver(self, caregiver_id: str) -> list[AccessRelation]:
        """Active relations of a caregiver, oldest first."""
        with self._db.snapshot() as conn:
            rows = conn.execute(
                """SELECT * FROM access_relations
                   WHERE caregiver_id = ? AND is_active = 1
                   ORDER BY created_at ASC, rowid ASC""",
                (caregiver_id,),
            ).fetchall()
        return [self._row_to_relation(row) for row in rows]

    # ------------------------------------------------------------------
    # Interactions (append-only)
    # ------------------------------------------------------------------

    def insert_interaction(self, interaction: Interaction) -> Interaction:
        """Append an interaction; the row is committed before this returns."""
        interaction.id = interaction.id or self._new_id()
        interaction.created_at = interaction.created_at or self._now_iso()
        with self._db.transaction() as conn:
            conn.execute(
                """INSERT INTO interactions (
                    id, care_subject_id, interaction_type, transcript_enc,
                    sentiment_score, sentiment_label, mood_score, duration_seconds,
                    notes_enc, recorded_by, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    interaction.id,
                    interaction.care_subject_id,
                    interaction.interaction_type.value,
                    self._enc.encrypt(interaction.transcript),
                    interaction.sentiment_score,
                    interaction.sentiment_label.value if interaction.sentiment_label else None,
                    interaction.mood_score,
                    interaction.duration_seconds,
                    self._enc.encrypt(interaction.notes),
                    interaction.recorded_by,
                    interaction.created_at,
                ),
            )
        logger.info(
            "Recorded interaction %s (subject=%s, type=%s)",
            interaction.id,
            interaction.care_subject_id,
            interaction.interaction_type.value,
        )
        return interaction

    def get_interaction(self, interaction_id: str) -> Interaction | None:
        row = self._fetchone("SELECT * FROM interactions WHERE id = ?", (interaction_id,))
        return self._row_to_interaction(row) if row is not None else None

    def iter_interactions(
        self,
        subject_id: str,
        *,
        limit: int,
        page_size: int = 100,
    ) -> Iterator[Interaction]:
        """Yield up to ``limit`` interactions, newest first, one page at a time.

        Pages are fetched with a keyset on ``(created_at, rowid)``, so the
        database lock is held only while a page is read, never while the
        caller consumes it.
        """
        remaining = limit
        last_key: tuple[str, int] | None = None

        while remaining > 0:
            size = min(page_size, remaining)
            if last_key is None:
                query = """SELECT rowid AS seq, * FROM interactions
                           WHERE care_subject_id = ?
                           ORDER BY created_at DESC, rowid DESC LIMIT ?"""
                params: tuple[Any, ...] = (subject_id, size)
            else:
                query = """SELECT rowid AS seq, * FROM interactions
                           WHERE care_subject_id = ?
                             AND (created_at < ? OR (created_at = ? AND rowid < ?))
                           ORDER BY created_at DESC, rowid DESC LIMIT ?"""
                params = (subject_id, last_key[0], last_key[0], last_key[1], size)

            with self._db.snapshot() as conn:
                rows = conn.execute(query, params).fetchall()

            for row in rows:
                yield self._row_to_interaction(row)

            remaining -= len(rows)
            if len(rows) < size:
                return
            last_key = (rows[-1]["created_at"], rows[-1]["seq"])

    # ------------------------------------------------------------------
    # Aggregates (read-only)
    # ------------------------------------------------------------------

    def get_stats(self, subject_id: str) -> StatsSummary:
        """Whole-history statistics for one subject, read from a single snapshot."""
        with self._db.snapshot() as conn:
            stats = conn.execute(
                """SELECT COUNT(*),
                          COALESCE(AVG(mood_score), 0.0),
                          COALESCE(AVG(sentiment_score), 0.0),
                          COALESCE(SUM(duration_seconds), 0)
                   FROM interactions WHERE care_subject_id = ?""",
                (subject_id,),
            ).fetchone()
            alerts = conn.execute(_ACTIVE_ALERTS_SQL, (subject_id,)).fetchone()

        return StatsSummary(
            total_interactions=stats[0],
            avg_mood_score=float(stats[1]),
            avg_sentiment=float(stats[2]),
            total_duration_seconds=int(stats[3]),
            active_alerts_count=alerts[0],
        )

    def get_daily_series(self, subject_id: str, *, since: str) -> list[SeriesPoint]:
        """Per-UTC-date means for interactions created at or after ``since``.

        Dates without interactions produce no row. Ascending by date.
        """
        with self._db.snapshot() as conn:
            rows = conn.execute(
                """SELECT substr(created_at, 1, 10) AS day,
                          COALESCE(AVG(sentiment_score), 0.0),
                          COALESCE(AVG(mood_score), 0.0),
                          COUNT(*)
                   FROM interactions
                   WHERE care_subject_id = ? AND created_at >= ?
                   GROUP BY day
                   ORDER BY day ASC""",
                (subject_id, since),
            ).fetchall()
        return [
            SeriesPoint(
                date=row[0],
                avg_sentiment=float(row[1]),
                avg_mood=float(row[2]),
                interaction_count=row[3],
            )
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Health alerts
    # ------------------------------------------------------------------

    def insert_alert(self, alert: HealthAlert) -> HealthAlert:
        alert.id = alert.id or self._new_id()
        alert.created_at = alert.created_at or self._now_iso()
        with self._db.transaction() as conn:
            conn.execute(
                """INSERT INTO health_alerts (
                    id, care_subject_id, alert_type, severity, title, description,
                    is_resolved, resolved_by, resolved_at, created_by, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    alert.id,
                    alert.care_subject_id,
                    alert.alert_type.value,
                    alert.severity.value,
                    alert.title,
                    alert.description,
                    int(alert.is_resolved),
                    alert.resolved_by,
                    alert.resolved_at,
                    alert.created_by,
                    alert.created_at,
                ),
            )
        logger.info(
            "Created %s alert %s (subject=%s, severity=%s)",
            alert.alert_type.value,
            alert.id,
            alert.care_subject_id,
            alert.severity.value,
        )
        return alert

    def get_alert(self, alert_id: str) -> HealthAlert | None:
        row = self._fetchone("SELECT * FROM health_alerts WHERE id = ?", (alert_id,))
        return self._row_to_alert(row) if row is not None else None

    def get_alerts(
        self,
        subject_id: str,
        *,
        resolved: bool | None = None,
        alert_type: AlertType | None = None,
    ) -> list[HealthAlert]:
        """Alerts for a subject, newest first, optionally filtered."""
        conditions = ["care_subject_id = ?"]
        params: list[Any] = [subject_id]
        if resolved is not None:
            conditions.append("is_resolved = ?")
            params.append(int(resolved))
        if alert_type is not None:
            conditions.append("alert_type = ?")
            params.append(alert_type.value)

        query = (
            "SELECT * FROM health_alerts WHERE "
            + " AND ".join(conditions)
            + " ORDER BY created_at DESC, rowid DESC"
        )
        with self._db.snapshot() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_alert(row) for row in rows]

    def count_active_alerts(
        self, subject_id: str, *, alert_type: AlertType | None = None
    ) -> int:
        query, params = _ACTIVE_ALERTS_SQL, [subject_id]
        if alert_type is not None:
            query += " AND alert_type = ?"
            params.append(alert_type.value)
        row = self._fetchone(query, tuple(params))
        return row[0]

    def mark_alert_resolved(
        self, alert_id: str, resolved_by: str, resolved_at: str | None = None
    ) -> bool:
        """Move an alert from active to resolved.

        The update is conditional on the alert still being unresolved, so
        of several concurrent callers exactly one sees ``True``.
        """
        with self._db.transaction() as conn:
            cursor = conn.execute(
                """UPDATE health_alerts
                   SET is_resolved = 1, resolved_by = ?, resolved_at = ?
                   WHERE id = ? AND is_resolved = 0""",
                (resolved_by, resolved_at or self._now_iso(), alert_id),
            )
        return cursor.rowcount == 1

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _fetchone(self, query: str, params: tuple[Any, ...]) -> sqlite3.Row | None:
        with self._db.snapshot() as conn:
            return conn.execute(query, params).fetchone()

    @staticmethod
    def _row_to_caregiver(row: Any) -> Caregiver:
        return Caregiver(
            id=row["id"],
            display_name=row["display_name"],
            role=CaregiverRole(row["role"]),
            email=row["email"],
            created_at=row["created_at"],
        )

    def _row_to_subject(self, row: Any) -> CareSubject:
        """Convert a database row to a CareSubject with the profile decrypted."""
        profile = self._enc.decrypt(row["profile_enc"]) or {}
        mobility_aids = json.loads(row["mobility_aids"]) if row["mobility_aids"] else []

        return CareSubject(
            id=row["id"],
            first_name=row["first_name"],
            last_name=row["last_name"],
            date_of_birth=row["date_of_birth"],
            gender=row["gender"],
            phone_number=profile.get("phone_number"),
            address=profile.get("address"),
            health_status=profile.get("health_status"),
            medical_history=profile.get("medical_history"),
            conditions=profile.get("conditions") or [],
            medications=[Medication(**m) for m in profile.get("medications") or []],
            allergies=profile.get("allergies") or [],
            sensitivities=profile.get("sensitivities") or [],
            emergency_contact=profile.get("emergency_contact"),
            care_instructions=profile.get("care_instructions"),
            mobility_status=row["mobility_status"],
            mobility_aids=mobility_aids,
            vision_status=row["vision_status"],
            hearing_status=row["hearing_status"],
            speech_status=row["speech_status"],
            device_id=row["device_id"],
            is_active=bool(row["is_active"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _row_to_relation(row: Any) -> AccessRelation:
        return AccessRelation(
            id=row["id"],
            caregiver_id=row["caregiver_id"],
            care_subject_id=row["care_subject_id"],
            relationship_type=RelationshipType(row["relationship_type"]),
            permission_level=PermissionLevel.parse(row["permission_level"]),
            is_active=bool(row["is_active"]),
            created_at=row["created_at"],
        )

    def _row_to_interaction(self, row: Any) -> Interaction:
        label = row["sentiment_label"]
        return Interaction(
            id=row["id"],
            care_subject_id=row["care_subject_id"],
            interaction_type=InteractionType(row["interaction_type"]),
            duration_seconds=row["duration_seconds"],
            transcript=self._enc.decrypt(row["transcript_enc"]),
            sentiment_score=row["sentiment_score"],
            sentiment_label=SentimentLabel(label) if label else None,
            mood_score=row["mood_score"],
            notes=self._enc.decrypt(row["notes_enc"]),
            recorded_by=row["recorded_by"],
            created_at=row["created_at"],
        )

    @staticmethod
    def _row_to_alert(row: Any) -> HealthAlert:
        return HealthAlert(
            id=row["id"],
            care_subject_id=row["care_subject_id"],
            alert_type=AlertType(row["alert_type"]),
            severity=AlertSeverity(row["severity"]),
            title=row["title"],
            description=row["description"],
            state=AlertState.RESOLVED if row["is_resolved"] else AlertState.ACTIVE,
            resolved_by=row["resolved_by"],
            resolved_at=row["resolved_at"],
            created_by=row["created_by"],
            created_at=row["created_at"],
        )
