# === NAVMAP v1 ===
# {
#   "module": "LemurHSM.AzureCore.network.client",
#   "purpose": "HTTPX client factory for object-store traffic.",
#   "sections": [
#     {"id": "create-ssl-context", "name": "_create_ssl_context", "anchor": "function-create-ssl-context", "kind": "function"},
#     {"id": "create-http-client", "name": "create_http_client", "anchor": "function-create-http-client", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""HTTPX client factory for object-store traffic.

Key design:
- **Owned, not global**: each mover builds one client at startup and passes it
  to the engine; nothing is cached at module level.
- **Pool sized for parallelism**: the connection pool always admits at least
  ``parallelism`` concurrent block transfers.
- **No redirects, no caching**: every request is a signed object-store call.
- **TLS**: certifi bundle with hostname verification unless disabled.
"""

from __future__ import annotations

import logging
import ssl
from typing import Optional

import certifi
import httpx

from ..settings import HttpSettings

logger = logging.getLogger(__name__)

USER_AGENT = "lemur-hsm-azcore"


def _create_ssl_context(verify: bool) -> ssl.SSLContext:
    """Create SSL context with secure defaults."""
    if not verify:
        ctx = ssl.create_default_context()
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE
        logger.warning("TLS verification DISABLED (development only!)")
        return ctx

    ctx = ssl.create_default_context(cafile=certifi.where())
    ctx.check_hostname = True
    ctx.verify_mode = ssl.CERT_REQUIRED
    return ctx


def create_http_client(
    settings: Optional[HttpSettings] = None,
    *,
    parallelism: int = 1,
    transport: Optional[httpx.BaseTransport] = None,
) -> httpx.Client:
    """Create the HTTPX client used by :class:`BlobServiceClient`.

    Args:
        settings: Timeouts and pool limits; defaults apply when omitted.
        parallelism: Upload workers per action; the pool never holds fewer
            connections than this.
        transport: Optional transport override (tests pass an
            ``httpx.MockTransport``).

    Returns:
        Configured ``httpx.Client``; the caller closes it.
    """
    settings = settings or HttpSettings()
    max_connections = max(settings.max_connections, parallelism)
    ssl_ctx = _create_ssl_context(settings.verify_tls)

    client = httpx.Client(
        transport=transport,
        timeout=httpx.Timeout(
            connect=settings.connect_timeout_sec,
            read=settings.read_timeout_sec,
            write=settings.write_timeout_sec,
            pool=settings.pool_timeout_sec,
        ),
        limits=httpx.Limits(
            max_connections=max_connections,
            max_keepalive_connections=max_connections,
            keepalive_expiry=settings.keepalive_expiry_sec,
        ),
        headers={"User-Agent": USER_AGENT},
        follow_redirects=False,
        verify=ssl_ctx,
    )

    logger.debug(
        "HTTPX client created",
        extra={"max_connections": max_connections, "verify_tls": settings.verify_tls},
    )
    return client


__all__ = ["USER_AGENT", "create_http_client"]
