"""CareWatch MCP server — application factory.

This module provides:
- create_app() for testability (integration tests create fresh server instances)
- Module-level `mcp` variable for FastMCP discovery
"""

from __future__ import annotations

import logging

from fastmcp import FastMCP

from carewatch.core.audit.logger import AuditLogger
from carewatch.core.config.settings import get_settings
from carewatch.core.storage.database import CareDatabase
from carewatch.core.storage.encryption import FieldEncryptor
from carewatch.core.storage.repository import CareRepository
from carewatch.domains.care.service import CareService
from carewatch.domains.care.tools.alert_tools import register_alert_tools
from carewatch.domains.care.tools.audit_tools import register_audit_tools
from carewatch.domains.care.tools.insight_tools import register_insight_tools
from carewatch.domains.care.tools.interaction_tools import register_interaction_tools
from carewatch.domains.care.tools.subject_tools import register_subject_tools

logger = logging.getLogger(__name__)

SERVER_NAME = "CareWatch"
SERVER_VERSION = "0.1.0"


def create_app(
    *,
    service_override: CareService | None = None,
    audit_logger_override: AuditLogger | None = None,
) -> FastMCP:
    """Create and configure the CareWatch MCP server.

    This is the main application factory. It:
    1. Creates the FastMCP server instance
    2. Opens the encrypted care database (unless a service is injected)
    3. Builds the care service with its audit logger
    4. Registers all tools
    """
    settings = get_settings()

    server = FastMCP(
        SERVER_NAME,
        instructions=(
            "CareWatch: remote monitoring of elderly care subjects. "
            "Caregivers record interactions, follow sentiment and mood over time "
            "and manage health alerts. Every tool takes the calling caregiver's id; "
            "access is limited to subjects the caregiver has been granted."
        ),
    )

    audit_logger = audit_logger_override
    if service_override is not None:
        service = service_override
        db_path = None
    else:
        if settings.encryption_key:
            encryption_key = settings.encryption_key
        else:
            encryption_key = FieldEncryptor.generate_key()
            logger.warning(
                "No ENCRYPTION_KEY configured; using an ephemeral key. "
                "Encrypted fields will be unreadable after restart."
            )
        encryptor = FieldEncryptor(encryption_key)
        care_db = CareDatabase(settings.db_path)
        care_db.initialize()
        db_path = settings.db_path
        logger.info(
            "Care database initialized: %s (schema v%d)",
            settings.db_path,
            care_db.get_schema_version(),
        )
        repository = CareRepository(care_db, encryptor)
        if audit_logger is None:
            audit_logger = AuditLogger(care_db)
        service = CareService.from_settings(repository, settings, audit_logger=audit_logger)

    @server.tool
    def health_check() -> dict:
        """Check server health and return basic status information."""
        return {
            "status": "ok",
            "server": SERVER_NAME,
            "version": SERVER_VERSION,
            "db_path": db_path,
            "audit_enabled": audit_logger is not None,
        }

    register_subject_tools(server, service)
    register_interaction_tools(server, service)
    register_insight_tools(server, service)
    register_alert_tools(server, service)
    logger.info("Care tools registered")

    if audit_logger is not None:
        register_audit_tools(server, audit_logger, max_days=settings.max_series_days)
        logger.info("Audit tools registered")

    return server


# Module-level instance for FastMCP discovery ("...app.py:mcp").
# Lazy: only created when this module is loaded directly (not when tests import create_app).
def __getattr__(name: str):
    if name == "mcp":
        global mcp  # noqa: PLW0603
        mcp = create_app()
        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
