"""Collector that scrapes every configured nginx status endpoint and keeps the
resulting gauge series for Prometheus exposition.

One collection cycle fetches all endpoints concurrently. Their measurements
are funnelled through a single queue into one merge task, which is the only
writer of the series cache. Series are never dropped: when an endpoint stops
answering its series keep the last value seen.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field

import httpx
from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily, Metric
from prometheus_client.registry import Collector

from .base import BaseScraper, ConversionError, EndpointError, Measurement, ScrapeError
from .convert import to_float
from .plus_status import PeerPredicate, PlusStatusScraper
from .stub_status import StubStatusScraper

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json"
DEFAULT_TIMEOUT = httpx.Timeout(4.0, connect=3.0)

LabelKey = tuple[tuple[str, str], ...]


class StatusFormat(str, enum.Enum):
    STUB = "stub"  # plain-text stub_status
    PLUS = "plus"  # JSON nginx plus status


@dataclass(frozen=True)
class Endpoint:
    url: str
    format: StatusFormat

    @property
    def labels(self) -> dict[str, str]:
        """Base labels identifying the endpoint."""
        url = httpx.URL(self.url)
        return {
            "port": str(url.port) if url.port is not None else "",
            "server": url.host,
        }


@dataclass
class EndpointStatus:
    url: str
    format: str
    last_updated: float | None = None
    measurements: int = 0
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "format": self.format,
            "last_updated": self.last_updated,
            "measurements": self.measurements,
            "error": self.error,
        }


@dataclass
class GaugeSeries:
    """All label-valued samples sharing one metric name."""

    name: str
    label_names: tuple[str, ...]
    samples: dict[LabelKey, float] = field(default_factory=dict)

    def set(self, labels: Mapping[str, str], value: float) -> None:
        self.samples[label_key(labels)] = value

    def copy(self) -> GaugeSeries:
        return GaugeSeries(self.name, self.label_names, dict(self.samples))


def label_key(labels: Mapping[str, str]) -> LabelKey:
    return tuple(sorted(labels.items()))


class NginxCollector(Collector):
    """Scrapes nginx stub_status and nginx plus endpoints into gauge series."""

    def __init__(
        self,
        namespace: str = "nginx",
        stub_urls: Iterable[str] = (),
        plus_urls: Iterable[str] = (),
        exclude_peer: PeerPredicate | None = None,
        timeout: httpx.Timeout = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.namespace = namespace
        endpoints = [Endpoint(u, StatusFormat.STUB) for u in stub_urls]
        endpoints += [Endpoint(u, StatusFormat.PLUS) for u in plus_urls]
        # a url listed twice under one format is scraped once
        self.endpoints = list(dict.fromkeys(endpoints))
        self.timeout = timeout
        self._transport = transport
        self._scrapers: dict[StatusFormat, BaseScraper] = {
            StatusFormat.STUB: StubStatusScraper(),
            StatusFormat.PLUS: PlusStatusScraper(exclude_peer),
        }

        self.status: dict[Endpoint, EndpointStatus] = {
            ep: EndpointStatus(ep.url, ep.format.value) for ep in self.endpoints
        }
        self.total_scrapes = 0
        self.last_duration = 0.0

        self._series: dict[str, GaugeSeries] = {}
        self._snapshot: dict[str, GaugeSeries] = {}
        self._lock = asyncio.Lock()

    # -- collection cycle ---------------------------------------------------

    async def scrape(self) -> None:
        """Run one full collection cycle. Never raises for endpoint failures."""
        async with self._lock:
            start = time.perf_counter()
            self.total_scrapes += 1

            queue: asyncio.Queue[Measurement | None] = asyncio.Queue()
            merger = asyncio.create_task(self._merge(queue))
            try:
                async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                    await asyncio.gather(
                        *(self._scrape_endpoint(client, ep, queue) for ep in self.endpoints)
                    )
            finally:
                queue.put_nowait(None)
                merged = await merger

            self._snapshot = {name: s.copy() for name, s in self._series.items()}
            self.last_duration = time.perf_counter() - start
            logger.debug(
                "Scrape #%d merged %d measurements in %.3fs",
                self.total_scrapes, merged, self.last_duration,
            )

    async def _scrape_endpoint(
        self, client: httpx.AsyncClient, endpoint: Endpoint, queue: asyncio.Queue
    ) -> None:
        status = self.status[endpoint]
        count = 0
        try:
            body = await self._fetch(client, endpoint)
            scraper = self._scrapers[endpoint.format]
            for m in scraper.scrape(body, endpoint.labels):
                queue.put_nowait(m)
                count += 1
        except ScrapeError as e:
            logger.error("Error scraping %s stats from '%s': %s", endpoint.format.value, endpoint.url, e)
            status.error = str(e) or type(e).__name__
        except Exception as e:
            logger.exception("Unexpected error scraping %s stats from '%s'", endpoint.format.value, endpoint.url)
            status.error = f"{type(e).__name__}: {e}"
        else:
            status.error = None
        status.measurements = count
        status.last_updated = time.time()

    async def _fetch(self, client: httpx.AsyncClient, endpoint: Endpoint) -> bytes:
        try:
            resp = await client.get(endpoint.url)
        except httpx.HTTPError as e:
            raise EndpointError(f"error making HTTP request to '{endpoint.url}': {e!r}") from e

        if resp.status_code != httpx.codes.OK:
            raise EndpointError(f"{endpoint.url} returned HTTP status {resp.status_code}")

        if endpoint.format is StatusFormat.PLUS:
            content_type = resp.headers.get("content-type", "").split(";")[0].strip()
            if content_type != JSON_CONTENT_TYPE:
                raise EndpointError(f"{endpoint.url} returned unsupported content type '{content_type}'")

        return resp.content

    async def _merge(self, queue: asyncio.Queue) -> int:
        merged = 0
        while (item := await queue.get()) is not None:
            if self.merge(item):
                merged += 1
        return merged

    def merge(self, m: Measurement) -> bool:
        """Fold one measurement into the series cache."""
        try:
            value = to_float(m.value)
        except ConversionError as e:
            logger.error("Convert error for metric '%s': %s", m.name, e)
            return False

        key = f"{self.namespace}_{m.name}"
        series = self._series.get(key)
        if series is None:
            series = GaugeSeries(key, tuple(sorted(m.labels)))
            self._series[key] = series
        series.set(m.labels, value)
        return True

    # -- exposition ---------------------------------------------------------

    def snapshot(self) -> dict[str, GaugeSeries]:
        """Series as of the last completed cycle."""
        return self._snapshot

    def describe(self) -> Iterator[Metric]:
        yield from self._meta_metrics()

    def collect(self) -> Iterator[Metric]:
        yield from self._meta_metrics()
        for series in self._snapshot.values():
            family = GaugeMetricFamily(series.name, "")
            for key, value in series.samples.items():
                family.add_sample(series.name, dict(key), value)
            yield family

    def _meta_metrics(self) -> Iterator[Metric]:
        yield GaugeMetricFamily(
            f"{self.namespace}_last_scrape_duration_seconds",
            "The last scrape duration.",
            value=self.last_duration,
        )
        yield CounterMetricFamily(
            f"{self.namespace}_exporter_scrapes",
            "Current total nginx scrapes.",
            value=self.total_scrapes,
        )
