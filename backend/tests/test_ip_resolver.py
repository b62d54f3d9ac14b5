"""
backend/tests/test_ip_resolver.py

Purpose:
    Public IP lookup caching, failure fallback and client hints.
"""

from __future__ import annotations

import asyncio
import logging

import httpx
import pytest
from starlette.requests import Request

from app.services.ip_resolver import UNKNOWN_IP, IpResolver, client_ip_from_request


def _request(headers=None, client=("127.0.0.1", 12345)) -> Request:
    raw = [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
    return Request({"type": "http", "headers": raw, "client": client})


class _EchoHandler:
    def __init__(self, ip="93.184.216.34", fail=False):
        self.ip = ip
        self.fail = fail
        self.calls = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        if self.fail:
            return httpx.Response(503, json={"error": "down"})
        return httpx.Response(200, json={"ip": self.ip})


@pytest.mark.asyncio
async def test_first_lookup_is_cached_for_the_session():
    handler = _EchoHandler()
    resolver = IpResolver(transport=httpx.MockTransport(handler))

    assert await resolver.resolve() == "93.184.216.34"
    assert await resolver.resolve() == "93.184.216.34"
    assert handler.calls == 1
    assert resolver.cached == "93.184.216.34"


@pytest.mark.asyncio
async def test_failure_returns_unknown_and_is_not_cached():
    handler = _EchoHandler(fail=True)
    resolver = IpResolver(transport=httpx.MockTransport(handler))

    assert await resolver.resolve() == UNKNOWN_IP
    assert resolver.cached is None

    handler.fail = False
    assert await resolver.resolve() == "93.184.216.34"
    assert handler.calls == 2


@pytest.mark.asyncio
async def test_missing_ip_field_counts_as_failure():
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"origin": "x"}))
    resolver = IpResolver(transport=transport)

    assert await resolver.resolve() == UNKNOWN_IP
    assert resolver.lookups == 1


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_lookup():
    handler = _EchoHandler()
    resolver = IpResolver(transport=httpx.MockTransport(handler))

    results = await asyncio.gather(*(resolver.resolve() for _ in range(5)))

    assert set(results) == {"93.184.216.34"}
    assert handler.calls == 1


@pytest.mark.asyncio
async def test_public_client_hint_skips_the_echo_service():
    handler = _EchoHandler()
    resolver = IpResolver(client_hint="8.8.8.8", transport=httpx.MockTransport(handler))

    assert await resolver.resolve() == "8.8.8.8"
    assert handler.calls == 0


@pytest.mark.asyncio
async def test_private_client_hint_is_ignored():
    handler = _EchoHandler()
    resolver = IpResolver(client_hint="10.0.0.5", transport=httpx.MockTransport(handler))

    assert await resolver.resolve() == "93.184.216.34"
    assert handler.calls == 1


@pytest.mark.asyncio
async def test_server_egress_fallback_logs_the_peer_address(caplog):
    resolver = IpResolver(client_hint="192.168.1.20", transport=httpx.MockTransport(_EchoHandler()))

    with caplog.at_level(logging.INFO, logger="intrusion.ip_resolver"):
        assert await resolver.resolve() == "93.184.216.34"

    [record] = [r for r in caplog.records if r.name == "intrusion.ip_resolver"]
    assert "192.168.1.20" in record.getMessage()
    assert "93.184.216.34" in record.getMessage()


def test_client_ip_prefers_first_forwarded_hop():
    request = _request({"X-Forwarded-For": "8.8.4.4, 10.0.0.1"})
    assert client_ip_from_request(request) == "8.8.4.4"
    assert client_ip_from_request(_request()) == "127.0.0.1"
    assert client_ip_from_request(None) == ""
