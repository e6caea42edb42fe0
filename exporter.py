#!/usr/bin/env python3
"""nginx stats exporter — Prometheus endpoint for nginx and nginx plus status.

Usage:
    python exporter.py --nginx-stats-urls http://127.0.0.1/status
    python exporter.py -c config/exporter.yaml --listen-address :9001
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import httpx
import uvicorn
import yaml
from fastapi import FastAPI
from fastapi.responses import HTMLResponse, JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest

from collectors import NginxCollector, __version__, peer_matcher

logger = logging.getLogger("exporter")

LANDING_PAGE = """<html>
<head>
<title>Nginx stats exporter</title>
</head>
<body>
<h1>Nginx stats exporter</h1>
<p><a href="{metrics_path}">Metrics</a></p>
</body>
</html>"""


class ConfigError(Exception):
    pass


@dataclass
class ExporterConfig:
    listen_address: str = ":9001"
    metrics_path: str = "/metrics"
    namespace: str = "nginx"
    nginx_stats_urls: list[str] = field(default_factory=list)
    nginx_plus_stats_urls: list[str] = field(default_factory=list)
    exclude_upstream_peers: list[str] = field(default_factory=list)
    timeout: float = 4.0
    connect_timeout: float = 3.0
    log_level: str = "info"

    def bind(self) -> tuple[str, int]:
        """Split ``listen_address`` into host and port."""
        host, _, port = self.listen_address.rpartition(":")
        try:
            return host or "0.0.0.0", int(port)
        except ValueError:
            raise ConfigError(f"invalid listen address '{self.listen_address}'") from None

    def validate(self) -> None:
        if not self.nginx_stats_urls and not self.nginx_plus_stats_urls:
            raise ConfigError("no nginx or nginx plus stats url specified")
        for u in self.nginx_stats_urls + self.nginx_plus_stats_urls:
            try:
                url = httpx.URL(u)
            except httpx.InvalidURL as e:
                raise ConfigError(f"unable to parse address '{u}': {e}") from e
            if url.scheme not in ("http", "https") or not url.host:
                raise ConfigError(f"unable to parse address '{u}': expected http(s)://host[:port]/path")
        if not self.metrics_path.startswith("/"):
            raise ConfigError(f"metrics path must start with '/', got '{self.metrics_path}'")
        self.bind()


# ---------------------------------------------------------------------------
# Config loader — YAML file first, CLI flags on top
# ---------------------------------------------------------------------------

def load_config(path: Path | None = None, overrides: dict[str, Any] | None = None) -> ExporterConfig:
    """Build the exporter config from an optional YAML file and CLI overrides."""
    data: dict[str, Any] = {}
    if path is not None:
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")

    known = {f.name for f in fields(ExporterConfig)}
    values = {k: v for k, v in data.items() if k in known}
    for k, v in (overrides or {}).items():
        if v is not None and v != []:
            values[k] = v
    for k in ("nginx_stats_urls", "nginx_plus_stats_urls", "exclude_upstream_peers"):
        if isinstance(values.get(k), str):
            values[k] = [values[k]]
    if isinstance(values.get("log_level"), str):
        values["log_level"] = values["log_level"].lower()

    try:
        config = ExporterConfig(**values)
    except TypeError as e:
        raise ConfigError(str(e)) from e
    config.validate()
    return config


def build_collector(config: ExporterConfig) -> NginxCollector:
    return NginxCollector(
        namespace=config.namespace,
        stub_urls=config.nginx_stats_urls,
        plus_urls=config.nginx_plus_stats_urls,
        exclude_peer=peer_matcher(config.exclude_upstream_peers),
        timeout=httpx.Timeout(config.timeout, connect=config.connect_timeout),
    )


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------

def create_app(collector: NginxCollector, metrics_path: str = "/metrics") -> FastAPI:
    registry = CollectorRegistry()
    registry.register(collector)

    app = FastAPI(title="Nginx stats exporter")

    @app.get("/", response_class=HTMLResponse)
    async def index():
        return LANDING_PAGE.format(metrics_path=metrics_path)

    @app.get(metrics_path)
    async def metrics():
        """Run one collection cycle and expose every cached series."""
        await collector.scrape()
        return Response(generate_latest(registry), media_type=CONTENT_TYPE_LATEST)

    @app.get("/api/status")
    async def api_status():
        """Per-endpoint health as of the last cycle."""
        return JSONResponse({
            "endpoints": [s.to_dict() for s in collector.status.values()],
            "total_scrapes": collector.total_scrapes,
            "last_scrape_duration_seconds": collector.last_duration,
            "series": len(collector.snapshot()),
            "timestamp": time.time(),
        })

    return app


# ---------------------------------------------------------------------------
# CLI entrypoint
# ---------------------------------------------------------------------------

def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Nginx stats exporter for Prometheus")
    parser.add_argument("-c", "--config", help="Path to exporter.yaml config file")
    parser.add_argument("--listen-address", help="Address on which to expose metrics (default: :9001)")
    parser.add_argument("--metrics-path", help="Path under which to expose metrics (default: /metrics)")
    parser.add_argument("--namespace", help="The namespace of metrics (default: nginx)")
    parser.add_argument(
        "--nginx-stats-urls", action="append", default=[],
        help="Nginx stub_status URL to gather stats from (repeatable)",
    )
    parser.add_argument(
        "--nginx-plus-stats-urls", action="append", default=[],
        help="Nginx plus status URL to gather stats from (repeatable)",
    )
    parser.add_argument(
        "--exclude-upstream-peers", action="append", default=[],
        help="Upstream peer address or wildcard pattern to skip (repeatable)",
    )
    parser.add_argument("--log-level", choices=["debug", "info", "warning", "error"])
    parser.add_argument("--version", action="version", version=__version__)
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    overrides = {
        "listen_address": args.listen_address,
        "metrics_path": args.metrics_path,
        "namespace": args.namespace,
        "nginx_stats_urls": args.nginx_stats_urls,
        "nginx_plus_stats_urls": args.nginx_plus_stats_urls,
        "exclude_upstream_peers": args.exclude_upstream_peers,
        "log_level": args.log_level,
    }

    try:
        config = load_config(Path(args.config) if args.config else None, overrides)
    except ConfigError as e:
        print(e, file=sys.stderr)
        sys.exit(1)

    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    host, port = config.bind()
    app = create_app(build_collector(config), config.metrics_path)
    logger.info("Starting nginx exporter on http://%s:%d%s", host, port, config.metrics_path)
    uvicorn.run(app, host=host, port=port, log_level=config.log_level)


if __name__ == "__main__":
    main()
