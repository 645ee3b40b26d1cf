"""Domain error taxonomy shared by every care component.

Each error carries a stable ``code`` used by the tool layer to build its
response payloads. Storage failures are not part of this taxonomy; they
surface as :class:`carewatch.core.storage.database.DatabaseError`.
"""

from __future__ import annotations


class CareError(Exception):
    """Base class for domain errors visible to callers."""

    code = "error"


class AccessDenied(CareError):
    """The caller holds no active relation, or one below the required level."""

    code = "denied"


class NotFound(CareError):
    """A single resource (alert, caregiver) does not exist."""

    code = "not_found"


class ValidationFailed(CareError):
    """Input violates a constraint. Raised before any write."""

    code = "invalid"


class InvalidInteraction(ValidationFailed):
    pass


class InvalidCareSubject(ValidationFailed):
    pass


class InvalidAlert(ValidationFailed):
    pass


class InvalidCaregiver(ValidationFailed):
    pass


class InvalidQuery(ValidationFailed):
    pass


class DuplicateRelation(CareError):
    """An active relation already exists for the (caregiver, subject) pair."""

    code = "duplicate_relation"


class AlreadyResolved(CareError):
    """The alert was resolved earlier; its resolver and timestamp stay as they are."""

    code = "already_resolved"
