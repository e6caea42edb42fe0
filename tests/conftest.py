"""Shared test fixtures for all test modules."""

from __future__ import annotations

import copy
import json
from collections.abc import Callable

import httpx
import pytest

STUB_STATUS = (
    "Active connections: 2\n"
    "server accepts handled requests\n"
    "8522429 8522429 8641727\n"
    "Reading: 0 Writing: 1 Waiting: 3"
)

PLUS_STATUS = {
    "version": 6,
    "nginx_version": "1.22.333",
    "address": "1.2.3.4",
    "generation": 88,
    "load_timestamp": 1451606400000,
    "timestamp": 1451606400000,
    "pid": 9999,
    "processes": {"respawned": 9999},
    "connections": {"accepted": 1234567890000, "dropped": 2345678900000, "active": 345, "idle": 567},
    "ssl": {"handshakes": 1234567800000, "handshakes_failed": 5432100000000, "session_reuses": 6543210000000},
    "requests": {"total": 9876543210000, "current": 98},
    "server_zones": {
        "zone.a_80": {
            "processing": 12,
            "requests": 34,
            "responses": {"1xx": 111, "2xx": 222, "3xx": 333, "4xx": 444, "5xx": 555, "total": 999},
            "discarded": 11,
            "received": 22,
            "sent": 33,
        }
    },
    "upstreams": {
        "first_upstream": {
            "queue": {"size": 100, "max_size": 1000, "overflows": 12},
            "peers": [
                {
                    "id": 0,
                    "server": "1.2.3.123:80",
                    "backup": False,
                    "weight": 1,
                    "state": "up",
                    "active": 0,
                    "requests": 9876,
                    "responses": {"1xx": 1111, "2xx": 2222, "3xx": 3333, "4xx": 4444, "5xx": 5555, "total": 987654},
                    "sent": 987654321,
                    "received": 87654321,
                    "fails": 98,
                    "unavail": 65,
                    "health_checks": {"checks": 54, "fails": 32, "unhealthy": 21, "last_passed": False},
                    "downtime": 5432,
                    "downstart": 4321,
                    "selected": 1451606400000,
                    "header_time": 2451606400000,
                    "response_time": 3451606400000,
                    "max_conns": 1000000,
                }
            ],
            "keepalive": 1,
            "zombies": 2,
        }
    },
    "caches": {
        "cache_01": {
            "size": 12,
            "max_size": 23,
            "cold": False,
            "hit": {"responses": 34, "bytes": 45},
            "stale": {"responses": 56, "bytes": 67},
            "updating": {"responses": 78, "bytes": 89},
            "revalidated": {"responses": 90, "bytes": 98},
            "miss": {"responses": 87, "bytes": 76, "responses_written": 65, "bytes_written": 54},
            "expired": {"responses": 43, "bytes": 32, "responses_written": 21, "bytes_written": 10},
            "bypass": {"responses": 13, "bytes": 35, "responses_written": 57, "bytes_written": 79},
        }
    },
    "stream": {
        "server_zones": {
            "dns": {
                "processing": 10,
                "connections": 20,
                "sessions": {"2xx": 15, "4xx": 3, "5xx": 1, "total": 19},
                "discarded": 2,
                "received": 30,
                "sent": 40,
            }
        },
        "upstreams": {
            "dns_upstream": {
                "peers": [
                    {
                        "id": 1,
                        "server": "5.4.3.2:2345",
                        "backup": False,
                        "weight": 1,
                        "state": "up",
                        "active": 0,
                        "connections": 0,
                        "sent": 0,
                        "received": 0,
                        "fails": 0,
                        "unavail": 0,
                        "downtime": 0,
                        "downstart": 0,
                        "selected": 0,
                        "health_checks": {"checks": 40851, "fails": 0, "unhealthy": 0, "last_passed": True},
                        "connect_time": 993,
                        "first_byte_time": 994,
                        "response_time": 995,
                    }
                ],
                "zombies": 0,
            }
        },
    },
}


@pytest.fixture
def base_labels() -> dict[str, str]:
    return {"server": "localhost", "port": "8080"}


@pytest.fixture
def stub_body() -> bytes:
    return STUB_STATUS.encode()


@pytest.fixture
def plus_status() -> dict:
    """A fresh, mutable copy of a version 6 nginx plus status document."""
    return copy.deepcopy(PLUS_STATUS)


@pytest.fixture
def plus_body(plus_status: dict) -> bytes:
    return json.dumps(plus_status).encode()


@pytest.fixture
def routed_transport() -> Callable[[dict], httpx.MockTransport]:
    """Factory for a MockTransport answering per URL.

    Route values are either an ``httpx.Response`` or an exception instance
    to raise for that URL. Unknown URLs answer 404.
    """

    def _make(routes: dict) -> httpx.MockTransport:
        def handler(request: httpx.Request) -> httpx.Response:
            route = routes.get(str(request.url))
            if route is None:
                return httpx.Response(404)
            if isinstance(route, Exception):
                raise route
            # fresh copy so a route can answer more than one cycle
            return httpx.Response(route.status_code, headers=route.headers, content=route.content)

        return httpx.MockTransport(handler)

    return _make
