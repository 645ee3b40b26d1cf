"""Identity store: caregiver accounts as seen by the care core.

Credentials and token issuance live outside the core; here a caregiver is
only an immutable identity with a display name and a role tag.
"""

from __future__ import annotations

import logging

from carewatch.core.storage.models import Caregiver, CaregiverRole
from carewatch.core.storage.repository import CareRepository, ConflictError
from carewatch.domains.care.domain_logic.errors import InvalidCaregiver, NotFound

logger = logging.getLogger(__name__)


class IdentityStore:
    """Registers and resolves caregivers.

    Usage::

        identities = IdentityStore(repository)
        ana = identities.register("Ana", "family", email="ana@example.org")
        identities.get(ana.id)
    """

    def __init__(self, repository: CareRepository) -> None:
        self._repo = repository

    def register(
        self,
        display_name: str,
        role: str | CaregiverRole = CaregiverRole.FAMILY,
        *,
        email: str | None = None,
    ) -> Caregiver:
        """Create a caregiver identity.

        Raises:
            InvalidCaregiver: Empty name, unknown role, malformed or taken email.
        """
        name = (display_name or "").strip()
        if not name:
            raise InvalidCaregiver("display_name must not be empty")
        try:
            role_tag = CaregiverRole(role)
        except ValueError:
            valid = ", ".join(r.value for r in CaregiverRole)
            raise InvalidCaregiver(f"Unknown role {role!r}; expected one of: {valid}") from None

        normalized_email = email.strip().lower() if email and email.strip() else None
        if normalized_email is not None and "@" not in normalized_email:
            raise InvalidCaregiver(f"Malformed email address: {email!r}")

        try:
            return self._repo.insert_caregiver(
                Caregiver(id="", display_name=name, role=role_tag, email=normalized_email)
            )
        except ConflictError:
            raise InvalidCaregiver("A caregiver with that email is already registered") from None

    def get(self, caregiver_id: str) -> Caregiver:
        caregiver = self._repo.get_caregiver(caregiver_id)
        if caregiver is None:
            raise NotFound(f"Caregiver {caregiver_id} not found")
        return caregiver

    def exists(self, caregiver_id: str) -> bool:
        return bool(caregiver_id) and self._repo.get_caregiver(caregiver_id) is not None
