"""Tests for config loading and the FastAPI app."""

from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient

from collectors import NginxCollector
from exporter import ConfigError, ExporterConfig, build_collector, create_app, load_config, parse_args

STUB_URL = "http://nginx.local:8080/nginx_status"


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "exporter.yaml"
    path.write_text(
        "namespace: web\n"
        "nginx_stats_urls:\n"
        f"  - {STUB_URL}\n"
        "exclude_upstream_peers: \"10.0.0.1:80\"\n"
        "log_level: DEBUG\n"
        "unknown_key: ignored\n"
    )
    return path


class TestLoadConfig:
    def test_yaml_file(self, config_file: Path) -> None:
        config = load_config(config_file)
        assert config.namespace == "web"
        assert config.nginx_stats_urls == [STUB_URL]
        assert config.exclude_upstream_peers == ["10.0.0.1:80"]
        assert config.log_level == "debug"
        assert config.metrics_path == "/metrics"

    def test_cli_overrides_file(self, config_file: Path) -> None:
        config = load_config(config_file, {"namespace": "edge", "nginx_plus_stats_urls": [], "listen_address": None})
        assert config.namespace == "edge"
        assert config.listen_address == ":9001"

    def test_no_urls(self) -> None:
        with pytest.raises(ConfigError, match="no nginx or nginx plus stats url specified"):
            load_config(None, {})

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Config file not found"):
            load_config(tmp_path / "nope.yaml")

    def test_bad_url(self) -> None:
        with pytest.raises(ConfigError, match="unable to parse address"):
            load_config(None, {"nginx_stats_urls": ["localhost/status"]})

    def test_bind(self) -> None:
        assert ExporterConfig(listen_address=":9001").bind() == ("0.0.0.0", 9001)
        assert ExporterConfig(listen_address="127.0.0.1:9113").bind() == ("127.0.0.1", 9113)
        with pytest.raises(ConfigError):
            ExporterConfig(listen_address="localhost").bind()

    def test_build_collector(self, config_file: Path) -> None:
        collector = build_collector(load_config(config_file))
        assert collector.namespace == "web"
        assert [ep.url for ep in collector.endpoints] == [STUB_URL]


def test_parse_args_repeatable_urls() -> None:
    args = parse_args(["--nginx-stats-urls", "http://a/status", "--nginx-stats-urls", "http://b/status"])
    assert args.nginx_stats_urls == ["http://a/status", "http://b/status"]
    assert args.namespace is None


class TestApp:
    @pytest.fixture
    def client(self, routed_transport, stub_body: bytes):
        routes = {STUB_URL: httpx.Response(200, content=stub_body)}
        collector = NginxCollector(stub_urls=[STUB_URL], transport=routed_transport(routes))
        with TestClient(create_app(collector, "/stats")) as client:
            yield client

    def test_landing_page_links_metrics(self, client: TestClient) -> None:
        resp = client.get("/")
        assert resp.status_code == 200
        assert 'href="/stats"' in resp.text

    def test_metrics_runs_a_cycle(self, client: TestClient) -> None:
        resp = client.get("/stats")
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/plain")
        assert 'nginx_active{port="8080",server="nginx.local"} 2.0' in resp.text
        assert "nginx_exporter_scrapes_total 1.0" in resp.text

        resp = client.get("/stats")
        assert "nginx_exporter_scrapes_total 2.0" in resp.text

    def test_api_status(self, client: TestClient) -> None:
        client.get("/stats")
        data = client.get("/api/status").json()
        assert data["total_scrapes"] == 1
        [endpoint] = data["endpoints"]
        assert endpoint["url"] == STUB_URL
        assert endpoint["format"] == "stub"
        assert endpoint["measurements"] == 7
        assert endpoint["error"] is None
