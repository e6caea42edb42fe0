"""Scraper for the JSON report of the nginx plus status module.

The document layout changed across status versions 1 to 7: fields were added
and a few removed. Every field that is not present in all versions is
optional in the models below and is skipped when absent.
"""

from __future__ import annotations

import fnmatch
import logging
from collections.abc import Callable, Iterable, Iterator, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .base import BaseScraper, DecodeError, Measurement

logger = logging.getLogger(__name__)

PeerPredicate = Callable[[str], bool]


class _Schema(BaseModel):
    # type mismatches are decode errors, no coercion of "6" into 6
    model_config = ConfigDict(strict=True)


class Processes(_Schema):
    respawned: int | None = None  # version 5


class Connections(_Schema):
    accepted: int = 0
    dropped: int = 0
    active: int = 0
    idle: int = 0


class Ssl(_Schema):
    handshakes: int = 0
    handshakes_failed: int = 0
    session_reuses: int = 0


class Requests(_Schema):
    total: int = 0
    current: int = 0


class Responses(_Schema):
    responses_1xx: int = Field(0, alias="1xx")
    responses_2xx: int = Field(0, alias="2xx")
    responses_3xx: int = Field(0, alias="3xx")
    responses_4xx: int = Field(0, alias="4xx")
    responses_5xx: int = Field(0, alias="5xx")
    total: int = 0

    def by_class(self) -> list[tuple[str, int]]:
        return [
            ("1xx", self.responses_1xx),
            ("2xx", self.responses_2xx),
            ("3xx", self.responses_3xx),
            ("4xx", self.responses_4xx),
            ("5xx", self.responses_5xx),
            ("total", self.total),
        ]


class ServerZone(_Schema):
    processing: int = 0
    requests: int = 0
    responses: Responses = Field(default_factory=Responses)
    discarded: int | None = None  # version 6
    received: int = 0
    sent: int = 0


class HealthChecks(_Schema):
    checks: int = 0
    fails: int = 0
    unhealthy: int = 0
    last_passed: bool | None = None


class UpstreamPeer(_Schema):
    id: int | None = None  # version 3
    server: str = ""
    backup: bool = False
    weight: int = 0
    state: str = ""
    active: int = 0
    keepalive: int | None = None  # removed in version 5
    max_conns: int | None = None  # version 3
    requests: int = 0
    responses: Responses = Field(default_factory=Responses)
    sent: int = 0
    received: int = 0
    fails: int = 0
    unavail: int = 0
    health_checks: HealthChecks = Field(default_factory=HealthChecks)
    downtime: int = 0
    downstart: int = 0
    selected: int | None = None  # version 4
    header_time: int | None = None  # version 5
    response_time: int | None = None  # version 5


class Queue(_Schema):
    size: int = 0
    max_size: int = 0
    overflows: int = 0


class Upstream(_Schema):
    peers: list[UpstreamPeer] = Field(default_factory=list)
    keepalive: int = 0
    zombies: int = 0  # version 6
    queue: Queue | None = None  # version 6


class CacheOutcome(_Schema):
    responses: int = 0
    bytes: int = 0
    responses_written: int | None = None
    bytes_written: int | None = None


class Cache(_Schema):
    size: int = 0
    max_size: int = 0
    cold: bool = False
    hit: CacheOutcome = Field(default_factory=CacheOutcome)
    stale: CacheOutcome = Field(default_factory=CacheOutcome)
    updating: CacheOutcome = Field(default_factory=CacheOutcome)
    revalidated: CacheOutcome | None = None  # version 3
    miss: CacheOutcome = Field(default_factory=CacheOutcome)
    expired: CacheOutcome = Field(default_factory=CacheOutcome)
    bypass: CacheOutcome = Field(default_factory=CacheOutcome)


class Sessions(_Schema):
    sessions_1xx: int = Field(0, alias="1xx")
    sessions_2xx: int = Field(0, alias="2xx")
    sessions_3xx: int = Field(0, alias="3xx")
    sessions_4xx: int = Field(0, alias="4xx")
    sessions_5xx: int = Field(0, alias="5xx")
    total: int = 0

    def by_class(self) -> list[tuple[str, int]]:
        return [
            ("1xx", self.sessions_1xx),
            ("2xx", self.sessions_2xx),
            ("3xx", self.sessions_3xx),
            ("4xx", self.sessions_4xx),
            ("5xx", self.sessions_5xx),
            ("total", self.total),
        ]


class StreamServerZone(_Schema):
    processing: int = 0
    connections: int = 0
    sessions: Sessions | None = None
    discarded: int | None = None  # version 7
    received: int = 0
    sent: int = 0


class StreamPeer(_Schema):
    id: int | None = None
    server: str = ""
    backup: bool = False
    weight: int = 0
    state: str = ""
    active: int = 0
    connections: int = 0
    connect_time: int | None = None
    first_byte_time: int | None = None
    response_time: int | None = None
    sent: int = 0
    received: int = 0
    fails: int = 0
    unavail: int = 0
    health_checks: HealthChecks = Field(default_factory=HealthChecks)
    downtime: int = 0
    downstart: int = 0
    selected: int | None = None


class StreamUpstream(_Schema):
    peers: list[StreamPeer] = Field(default_factory=list)
    zombies: int = 0


class Stream(_Schema):
    server_zones: dict[str, StreamServerZone] = Field(default_factory=dict)
    upstreams: dict[str, StreamUpstream] = Field(default_factory=dict)


class Status(_Schema):
    """Top-level nginx plus status document."""

    version: int = 0
    nginx_version: str = ""
    address: str = ""
    generation: int | None = None  # version 5
    load_timestamp: int | None = None  # version 2
    timestamp: int = 0
    pid: int | None = None  # version 6

    processes: Processes | None = None
    connections: Connections = Field(default_factory=Connections)
    ssl: Ssl = Field(default_factory=Ssl)
    requests: Requests = Field(default_factory=Requests)
    server_zones: dict[str, ServerZone] = Field(default_factory=dict)
    upstreams: dict[str, Upstream] = Field(default_factory=dict)
    caches: dict[str, Cache] = Field(default_factory=dict)
    stream: Stream = Field(default_factory=Stream)


def peer_matcher(patterns: Iterable[str]) -> PeerPredicate | None:
    """Build a predicate matching peer addresses against shell-style patterns.

    Returns None when there is nothing to exclude. A pattern equal to the
    address always matches, so bracketed IPv6 peers like ``[::1]:80`` can be
    listed verbatim.
    """
    patterns = [p for p in patterns if p]
    if not patterns:
        return None

    def _match(address: str) -> bool:
        return any(address == p or fnmatch.fnmatchcase(address, p) for p in patterns)

    return _match


def _peer_labels(upstream_labels: Mapping[str, str], server: str, peer_id: int | None) -> dict[str, str]:
    labels = {**upstream_labels, "serverAddress": server}
    if peer_id is not None:
        labels["id"] = str(peer_id)
    return labels


class PlusStatusScraper(BaseScraper):
    def __init__(self, exclude_peer: PeerPredicate | None = None) -> None:
        self.exclude_peer = exclude_peer

    def scrape(self, body: bytes, labels: Mapping[str, str]) -> Iterator[Measurement]:
        # decode eagerly so a bad document yields nothing at all
        status = self.decode(body)
        return self.walk(status, labels)

    @staticmethod
    def decode(body: bytes) -> Status:
        try:
            return Status.model_validate_json(body)
        except ValidationError as exc:
            raise DecodeError(
                f"error while decoding JSON response: {exc.error_count()} error(s), "
                f"first: {exc.errors()[0]['msg']}"
            ) from exc

    def walk(self, status: Status, labels: Mapping[str, str]) -> Iterator[Measurement]:
        yield from self._processes(status, labels)
        yield from self._connections(status, labels)
        yield from self._ssl(status, labels)
        yield from self._requests(status, labels)
        yield from self._server_zones(status, labels)
        yield from self._upstreams(status, labels)
        yield from self._caches(status, labels)
        yield from self._stream(status, labels)

    def _excluded(self, address: str) -> bool:
        if self.exclude_peer is not None and self.exclude_peer(address):
            logger.debug("Skipping excluded upstream peer %s", address)
            return True
        return False

    def _processes(self, status: Status, labels: Mapping[str, str]) -> Iterator[Measurement]:
        if status.processes is not None and status.processes.respawned is not None:
            yield Measurement("processes_respawned", status.processes.respawned, labels)

    def _connections(self, status: Status, labels: Mapping[str, str]) -> Iterator[Measurement]:
        conns = status.connections
        yield Measurement("connections_accepted", conns.accepted, labels)
        yield Measurement("connections_dropped", conns.dropped, labels)
        yield Measurement("connections_active", conns.active, labels)
        yield Measurement("connections_idle", conns.idle, labels)

    def _ssl(self, status: Status, labels: Mapping[str, str]) -> Iterator[Measurement]:
        ssl = status.ssl
        yield Measurement("ssl_handshakes", ssl.handshakes, labels)
        yield Measurement("ssl_handshakes_failed", ssl.handshakes_failed, labels)
        yield Measurement("ssl_session_reuses", ssl.session_reuses, labels)

    def _requests(self, status: Status, labels: Mapping[str, str]) -> Iterator[Measurement]:
        yield Measurement("requests_total", status.requests.total, labels)
        yield Measurement("requests_current", status.requests.current, labels)

    def _server_zones(self, status: Status, labels: Mapping[str, str]) -> Iterator[Measurement]:
        for zone_name, zone in status.server_zones.items():
            zone_labels = {**labels, "zone": zone_name}
            yield Measurement("zone_processing", zone.processing, zone_labels)
            yield Measurement("zone_requests", zone.requests, zone_labels)
            for cls, count in zone.responses.by_class():
                yield Measurement(f"zone_responses_{cls}", count, zone_labels)
            yield Measurement("zone_received", zone.received, zone_labels)
            yield Measurement("zone_sent", zone.sent, zone_labels)
            if zone.discarded is not None:
                yield Measurement("zone_discarded", zone.discarded, zone_labels)

    def _upstreams(self, status: Status, labels: Mapping[str, str]) -> Iterator[Measurement]:
        for upstream_name, upstream in status.upstreams.items():
            upstream_labels = {**labels, "upstream": upstream_name}
            yield Measurement("upstream_keepalive", upstream.keepalive, upstream_labels)
            yield Measurement("upstream_zombies", upstream.zombies, upstream_labels)

            if upstream.queue is not None:
                yield Measurement("upstream_queue_size", upstream.queue.size, upstream_labels)
                yield Measurement("upstream_queue_max_size", upstream.queue.max_size, upstream_labels)
                yield Measurement("upstream_queue_overflows", upstream.queue.overflows, upstream_labels)

            for peer in upstream.peers:
                if self._excluded(peer.server):
                    continue
                yield from self._upstream_peer(peer, _peer_labels(upstream_labels, peer.server, peer.id))

    def _upstream_peer(self, peer: UpstreamPeer, labels: dict[str, str]) -> Iterator[Measurement]:
        yield Measurement("upstream_peer_backup", peer.backup, labels)
        yield Measurement("upstream_peer_weight", peer.weight, labels)
        yield Measurement("upstream_peer_state", peer.state, labels)
        yield Measurement("upstream_peer_active", peer.active, labels)
        yield Measurement("upstream_peer_requests", peer.requests, labels)
        for cls, count in peer.responses.by_class():
            yield Measurement(f"upstream_peer_responses_{cls}", count, labels)
        yield Measurement("upstream_peer_sent", peer.sent, labels)
        yield Measurement("upstream_peer_received", peer.received, labels)
        yield Measurement("upstream_peer_fails", peer.fails, labels)
        yield Measurement("upstream_peer_unavail", peer.unavail, labels)
        yield Measurement("upstream_peer_healthchecks_checks", peer.health_checks.checks, labels)
        yield Measurement("upstream_peer_healthchecks_fails", peer.health_checks.fails, labels)
        yield Measurement("upstream_peer_healthchecks_unhealthy", peer.health_checks.unhealthy, labels)
        yield Measurement("upstream_peer_downtime", peer.downtime, labels)
        yield Measurement("upstream_peer_downstart", peer.downstart, labels)

        optional = (
            ("upstream_peer_selected", peer.selected),
            ("upstream_peer_healthchecks_last_passed", peer.health_checks.last_passed),
            ("upstream_peer_header_time", peer.header_time),
            ("upstream_peer_response_time", peer.response_time),
            ("upstream_peer_max_conns", peer.max_conns),
        )
        for name, value in optional:
            if value is not None:
                yield Measurement(name, value, labels)

    def _caches(self, status: Status, labels: Mapping[str, str]) -> Iterator[Measurement]:
        for cache_name, cache in status.caches.items():
            cache_labels = {**labels, "cache": cache_name}
            yield Measurement("cache_size", cache.size, cache_labels)
            yield Measurement("cache_max_size", cache.max_size, cache_labels)
            yield Measurement("cache_cold", cache.cold, cache_labels)

            outcomes = (
                ("cache_hit_", cache.hit, False),
                ("cache_stale_", cache.stale, False),
                ("cache_updating_", cache.updating, False),
                ("cache_revalidated_", cache.revalidated, False),
                ("cache_miss_", cache.miss, True),
                ("cache_expired_", cache.expired, True),
                # bypass is published without a category prefix
                ("cache_", cache.bypass, True),
            )
            for prefix, outcome, written in outcomes:
                if outcome is None:
                    continue
                yield Measurement(f"{prefix}responses", outcome.responses, cache_labels)
                yield Measurement(f"{prefix}bytes", outcome.bytes, cache_labels)
                if written:
                    yield Measurement(f"{prefix}responses_written", outcome.responses_written or 0, cache_labels)
                    yield Measurement(f"{prefix}bytes_written", outcome.bytes_written or 0, cache_labels)

    def _stream(self, status: Status, labels: Mapping[str, str]) -> Iterator[Measurement]:
        for zone_name, zone in status.stream.server_zones.items():
            zone_labels = {**labels, "zone": zone_name}
            yield Measurement("stream_zone_processing", zone.processing, zone_labels)
            yield Measurement("stream_zone_connections", zone.connections, zone_labels)
            if zone.sessions is not None:
                for cls, count in zone.sessions.by_class():
                    yield Measurement(f"stream_zone_sessions_{cls}", count, zone_labels)
            yield Measurement("stream_zone_received", zone.received, zone_labels)
            yield Measurement("stream_zone_sent", zone.sent, zone_labels)
            if zone.discarded is not None:
                yield Measurement("stream_zone_discarded", zone.discarded, zone_labels)

        for upstream_name, upstream in status.stream.upstreams.items():
            upstream_labels = {**labels, "upstream": upstream_name}
            yield Measurement("stream_upstream_zombies", upstream.zombies, upstream_labels)

            for peer in upstream.peers:
                if self._excluded(peer.server):
                    continue
                yield from self._stream_peer(peer, _peer_labels(upstream_labels, peer.server, peer.id))

    def _stream_peer(self, peer: StreamPeer, labels: dict[str, str]) -> Iterator[Measurement]:
        yield Measurement("stream_upstream_peer_backup", peer.backup, labels)
        yield Measurement("stream_upstream_peer_weight", peer.weight, labels)
        yield Measurement("stream_upstream_peer_state", peer.state, labels)
        yield Measurement("stream_upstream_peer_active", peer.active, labels)
        yield Measurement("stream_upstream_peer_connections", peer.connections, labels)
        yield Measurement("stream_upstream_peer_sent", peer.sent, labels)
        yield Measurement("stream_upstream_peer_received", peer.received, labels)
        yield Measurement("stream_upstream_peer_fails", peer.fails, labels)
        yield Measurement("stream_upstream_peer_unavail", peer.unavail, labels)
        yield Measurement("stream_upstream_peer_healthchecks_checks", peer.health_checks.checks, labels)
        yield Measurement("stream_upstream_peer_healthchecks_fails", peer.health_checks.fails, labels)
        yield Measurement("stream_upstream_peer_healthchecks_unhealthy", peer.health_checks.unhealthy, labels)
        yield Measurement("stream_upstream_peer_healthchecks_downtime", peer.downtime, labels)
        yield Measurement("stream_upstream_peer_healthchecks_downstart", peer.downstart, labels)

        optional = (
            ("stream_upstream_peer_healthchecks_selected", peer.selected),
            ("stream_upstream_peer_healthchecks_last_passed", peer.health_checks.last_passed),
            ("stream_upstream_peer_connect_time", peer.connect_time),
            ("stream_upstream_peer_first_byte_time", peer.first_byte_time),
            ("stream_upstream_peer_response_time", peer.response_time),
        )
        for name, value in optional:
            if value is not None:
                yield Measurement(name, value, labels)
