"""Data models for the care persistence layer."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum, IntEnum
from typing import Any


# ---------------------------------------------------------------------------
# Enumerated tags
# ---------------------------------------------------------------------------

class PermissionLevel(IntEnum):
    """Access level a caregiver holds on a care subject.

    Ordered ``VIEW < EDIT < ADMIN`` so that an authorization check is a
    single comparison. Persisted as the lower-case name.
    """

    VIEW = 1
    EDIT = 2
    ADMIN = 3

    @property
    def label(self) -> str:
        return self.name.lower()

    @classmethod
    def parse(cls, value: str | PermissionLevel) -> PermissionLevel:
        if isinstance(value, cls):
            return value
        try:
            return cls[str(value).upper()]
        except KeyError:
            raise ValueError(f"Unknown permission level: {value!r}") from None


class CaregiverRole(str, Enum):
    FAMILY = "family"
    MEDICAL = "medical"
    CAREGIVER = "caregiver"


class RelationshipType(str, Enum):
    CHILD = "child"
    MEDICAL_PROFESSIONAL = "medical_professional"
    CAREGIVER = "caregiver"
    OTHER = "other"


class InteractionType(str, Enum):
    CONVERSATION = "conversation"
    HEALTH_CHECK = "health_check"
    REMINDER = "reminder"
    GAME = "game"
    VOICE_RECORDING = "voice_recording"


class SentimentLabel(str, Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


class AlertType(str, Enum):
    HEALTH = "health"
    SAFETY = "safety"
    MOOD = "mood"
    COGNITIVE = "cognitive"


class AlertSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AlertState(str, Enum):
    ACTIVE = "active"
    RESOLVED = "resolved"


# Profile status tags (values accepted by the care-subject registry)
GENDERS = ("male", "female", "other")
MOBILITY_STATUSES = ("independent", "limited", "assisted", "wheelchair")
VISION_STATUSES = ("normal", "corrected", "limited", "blind")
HEARING_STATUSES = ("normal", "corrected", "limited", "deaf")
SPEECH_STATUSES = ("normal", "limited", "non_verbal")


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------

@dataclass
class Caregiver:
    """A registered caregiver account (credentials live elsewhere)."""

    id: str
    display_name: str
    role: CaregiverRole
    email: str | None = None
    created_at: str = ""


@dataclass
class Medication:
    name: str
    dose: str
    schedule: str
    notes: str | None = None


@dataclass
class CareSubject:
    """A monitored person.

    Contact details and the clinical profile are stored encrypted;
    names, status tags and flags stay in clear columns.
    """

    id: str
    first_name: str
    last_name: str
    date_of_birth: str | None = None  # ISO 8601 date
    gender: str | None = None

    # Encrypted at rest
    phone_number: str | None = None
    address: str | None = None
    health_status: str | None = None
    medical_history: str | None = None
    conditions: list[str] = field(default_factory=list)
    medications: list[Medication] = field(default_factory=list)
    allergies: list[str] = field(default_factory=list)
    sensitivities: list[str] = field(default_factory=list)
    emergency_contact: str | None = None
    care_instructions: str | None = None

    mobility_status: str | None = None
    mobility_aids: list[str] = field(default_factory=list)
    vision_status: str | None = None
    hearing_status: str | None = None
    speech_status: str | None = None

    device_id: str | None = None
    is_active: bool = True
    created_at: str = ""
    updated_at: str = ""

    def clinical_profile(self) -> dict[str, Any]:
        """Return the fields that are encrypted at rest."""
        return {
            "phone_number": self.phone_number,
            "address": self.address,
            "health_status": self.health_status,
            "medical_history": self.medical_history,
            "conditions": list(self.conditions),
            "medications": [asdict(m) for m in self.medications],
            "allergies": list(self.allergies),
            "sensitivities": list(self.sensitivities),
            "emergency_contact": self.emergency_contact,
            "care_instructions": self.care_instructions,
        }

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


@dataclass
class AccessRelation:
    """Permissioned edge between a caregiver and a care subject."""

    id: str
    caregiver_id: str
    care_subject_id: str
    relationship_type: RelationshipType
    permission_level: PermissionLevel
    is_active: bool = True
    created_at: str = ""

    def allows(self, required: PermissionLevel) -> bool:
        return self.is_active and self.permission_level >= required


@dataclass
class Interaction:
    """One recorded, analyzed session with a care subject. Immutable once stored."""

    id: str
    care_subject_id: str
    interaction_type: InteractionType
    duration_seconds: int
    transcript: str | None = None
    sentiment_score: float | None = None
    sentiment_label: SentimentLabel | None = None
    mood_score: int | None = None
    notes: str | None = None
    recorded_by: str | None = None
    created_at: str = ""


@dataclass
class HealthAlert:
    """A flagged condition with a two-state resolution lifecycle."""

    id: str
    care_subject_id: str
    alert_type: AlertType
    severity: AlertSeverity
    title: str
    description: str
    state: AlertState = AlertState.ACTIVE
    resolved_by: str | None = None
    resolved_at: str | None = None
    created_by: str | None = None
    created_at: str = ""

    @property
    def is_resolved(self) -> bool:
        return self.state is AlertState.RESOLVED


# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------

@dataclass
class StatsSummary:
    total_interactions: int = 0
    avg_mood_score: float = 0.0
    avg_sentiment: float = 0.0
    total_duration_seconds: int = 0
    active_alerts_count: int = 0


@dataclass
class SeriesPoint:
    """Daily sentiment / mood means for one UTC calendar date."""

    date: str  # YYYY-MM-DD
    avg_sentiment: float
    avg_mood: float
    interaction_count: int


def to_dict(obj: Any) -> dict[str, Any]:
    """Convert a model to a JSON-friendly dict (enums become their values)."""
    data = asdict(obj)
    for key, value in data.items():
        if isinstance(value, PermissionLevel):
            data[key] = value.label
        elif isinstance(value, Enum):
            data[key] = value.value
    return data
