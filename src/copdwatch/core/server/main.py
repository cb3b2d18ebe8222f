"""COPD Watch server entry point: ``python -m copdwatch.core.server.main``."""

from __future__ import annotations

import logging
from ipaddress import ip_address

from copdwatch.core.config.settings import get_settings
from copdwatch.core.server.app import create_app


def _is_loopback_host(host: str) -> bool:
    if host in {"localhost"}:
        return True
    try:
        return ip_address(host).is_loopback
    except ValueError:
        return False


def run() -> None:
    """Start the COPD Watch MCP server with Streamable HTTP transport."""
    settings = get_settings()
    logging.basicConfig(level=getattr(logging, settings.copd_log_level.upper(), logging.INFO))

    logger = logging.getLogger(__name__)
    if not settings.copd_allow_insecure_bind and not _is_loopback_host(settings.copd_host):
        raise RuntimeError(
            "Refusing to bind COPD Watch to a non-loopback host without an auth layer. "
            "Set COPD_ALLOW_INSECURE_BIND=true to override (unsafe)."
        )
    logger.info(
        "Starting COPD Watch server on %s:%d",
        settings.copd_host,
        settings.copd_port,
    )

    mcp = create_app()
    mcp.run(
        transport="streamable-http",
        host=settings.copd_host,
        port=settings.copd_port,
    )


if __name__ == "__main__":
    run()
