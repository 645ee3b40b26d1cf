"""CareWatch server entry point — ``python -m carewatch.core.server.main``."""

from __future__ import annotations

import logging
from ipaddress import ip_address

from carewatch.core.config.settings import get_settings
from carewatch.core.server.app import create_app


def _is_loopback_host(host: str) -> bool:
    if host == "localhost":
        return True
    try:
        return ip_address(host).is_loopback
    except ValueError:
        return False


def run() -> None:
    """Start the CareWatch MCP server with Streamable HTTP transport."""
    settings = get_settings()
    logging.basicConfig(level=getattr(logging, settings.carewatch_log_level.upper(), logging.INFO))

    logger = logging.getLogger(__name__)
    if not settings.carewatch_allow_insecure_bind and not _is_loopback_host(settings.carewatch_host):
        raise RuntimeError(
            "Refusing to bind CareWatch to a non-loopback host: tools trust the "
            "caregiver id they are given. Set CAREWATCH_ALLOW_INSECURE_BIND=true "
            "to override (unsafe)."
        )
    logger.info(
        "Starting CareWatch server on %s:%d",
        settings.carewatch_host,
        settings.carewatch_port,
    )

    mcp = create_app()
    mcp.run(
        transport="streamable-http",
        host=settings.carewatch_host,
        port=settings.carewatch_port,
    )


if __name__ == "__main__":
    run()
