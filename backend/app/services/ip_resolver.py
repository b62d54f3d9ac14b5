"""
backend/app/services/ip_resolver.py

Purpose:
    Lazily resolves and caches the public IP address attributed to one
    dashboard session. The first successful lookup wins and is reused for
    every log entry written during the session.

Dependencies:
    - httpx
    - ipaddress
    - app.config
"""

from __future__ import annotations

import asyncio
import ipaddress
import logging
from typing import Optional

import httpx
from fastapi import Request

from app.config import settings

logger = logging.getLogger("intrusion.ip_resolver")

UNKNOWN_IP = "unknown"


def client_ip_from_request(request: Optional[Request]) -> str:
    """Extract client IP from request, preferring X-Forwarded-For (behind nginx)."""
    if request is None:
        return ""

    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        # Take the first IP (original client)
        return forwarded.split(",")[0].strip()

    if request.client:
        return request.client.host

    return ""


def _is_public(ip: str) -> bool:
    try:
        return ipaddress.ip_address(ip).is_global
    except ValueError:
        return False


class IpResolver:
    """Per-session public IP cache backed by an IP-echo service.

    Failures are not cached: resolve() returns "unknown" and a later call
    performs a fresh lookup while the cache is still empty.

    The echo lookup runs from this server, so without a globally routable
    client hint (local or private-network clients) the cached value is the
    server's own egress IP. The non-routable peer address is logged when
    that fallback happens.
    """

    def __init__(
        self,
        *,
        echo_url: str | None = None,
        timeout: float | None = None,
        client_hint: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._echo_url = echo_url or settings.IP_ECHO_URL
        self._timeout = timeout if timeout is not None else settings.IP_ECHO_TIMEOUT_SECONDS
        self._transport = transport
        self._client_hint = client_hint or ""
        self._cached: str | None = client_hint if client_hint and _is_public(client_hint) else None
        self._lock = asyncio.Lock()
        self.lookups = 0

    @property
    def cached(self) -> str | None:
        return self._cached

    async def resolve(self) -> str:
        if self._cached:
            return self._cached
        async with self._lock:
            # Another caller may have finished the lookup while we waited
            if self._cached:
                return self._cached
            ip = await self._lookup()
            if ip and self._client_hint:
                logger.info(
                    "Peer %s is not globally routable; attributing server egress IP %s",
                    self._client_hint, ip,
                )
            if ip:
                self._cached = ip
                return ip
            return UNKNOWN_IP

    async def _lookup(self) -> str | None:
        self.lookups += 1
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.get(self._echo_url)
                resp.raise_for_status()
                payload = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("IP fetch failed: %s", exc)
            return None

        ip = str(payload.get("ip") or "").strip() if isinstance(payload, dict) else ""
        if not ip:
            logger.warning("IP echo response carried no ip field")
            return None
        return ip
