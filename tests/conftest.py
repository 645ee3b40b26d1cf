"""Shared test fixtures for CareWatch tests."""

from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

# ---------------------------------------------------------------------------
# Test hermeticity
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _force_hermetic_test_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("ENCRYPTION_KEY", "")
    monkeypatch.setenv("DB_PATH", str(tmp_path / "care.db"))
    monkeypatch.setenv("CAREWATCH_ALLOW_INSECURE_BIND", "false")

# Allow running tests without `pip install -e .` by making `src/` importable.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_SRC_DIR = _PROJECT_ROOT / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))


# Wednesday noon, UTC. Ledger and aggregation tests compute windows from this.
FIXED_NOW = datetime(2026, 3, 18, 12, 0, 0, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return FIXED_NOW


# ---------------------------------------------------------------------------
# In-memory storage fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def care_db():
    """Create an in-memory CareDatabase for testing."""
    from carewatch.core.storage.database import CareDatabase

    db = CareDatabase(":memory:")
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def field_encryptor():
    """Create a FieldEncryptor with a test key."""
    from cryptography.fernet import Fernet

    from carewatch.core.storage.encryption import FieldEncryptor

    return FieldEncryptor(Fernet.generate_key().decode())


@pytest.fixture
def care_repository(care_db, field_encryptor):
    """Create a CareRepository backed by in-memory SQLite."""
    from carewatch.core.storage.repository import CareRepository

    return CareRepository(care_db, field_encryptor)


@pytest.fixture
def audit_logger(care_db):
    """Create an AuditLogger backed by in-memory SQLite."""
    from carewatch.core.audit.logger import AuditLogger

    return AuditLogger(care_db)


@pytest.fixture
def access_graph(care_repository):
    from carewatch.domains.care.domain_logic.access_graph import AccessGraph

    return AccessGraph(care_repository)


@pytest.fixture
def identities(care_repository):
    from carewatch.domains.care.domain_logic.identity import IdentityStore

    return IdentityStore(care_repository)


@pytest.fixture
def registry(care_repository, access_graph):
    from carewatch.domains.care.domain_logic.registry import CareSubjectRegistry

    return CareSubjectRegistry(care_repository, access_graph)


@pytest.fixture
def ledger(care_repository, access_graph):
    from carewatch.domains.care.domain_logic.ledger import InteractionLedger

    return InteractionLedger(care_repository, access_graph, clock=fixed_clock)


@pytest.fixture
def alert_manager(care_repository, access_graph):
    from carewatch.domains.care.domain_logic.alerts import AlertLifecycleManager

    return AlertLifecycleManager(care_repository, access_graph, clock=fixed_clock)


@pytest.fixture
def service(care_repository, audit_logger):
    """A CareService over in-memory storage with a fixed clock."""
    from carewatch.domains.care.service import CareService

    return CareService(care_repository, audit_logger=audit_logger, clock=fixed_clock)


# ---------------------------------------------------------------------------
# Seeded care circle
# ---------------------------------------------------------------------------

@pytest.fixture
def ana(identities):
    """Family caregiver who creates (and administers) the subject."""
    return identities.register("Ana", "family", email="ana@example.com")


@pytest.fixture
def bruno(identities):
    """A second caregiver with no access until a test grants it."""
    return identities.register("Bruno", "medical")


@pytest.fixture
def rosa(registry, ana):
    """Care subject administered by ``ana``."""
    return registry.create(ana.id, {"first_name": "Rosa", "last_name": "Diaz"})
