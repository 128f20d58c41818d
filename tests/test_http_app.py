# tests/test_http_app.py
"""
Endpoint tests for app/transport/http_app.py.

Pipeline collaborators are swapped via dependency overrides; the
lifespan (and therefore the real HTTP session) is never started.
"""
from __future__ import annotations

import io

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from app.config import settings
from app.infra.favicon_service import FaviconProvider, FaviconResolver
from app.infra.image_processor import ImageConfig, ImageTranscoder
from app.infra.image_service import ImageTransformService, build_proxy_url
from app.transport.http_app import app, get_favicon_resolver, get_image_service
from fakes import FakeFetcher, make_image_bytes

ORIGIN = "https://images.example.com/photos/cat.png"
PROXY = "https://proxy.example.net/proxy"
ICON_PRIMARY = FaviconProvider("primary", "https://icons.example.com/{domain}", "image/x-icon")
ICON_SECONDARY = FaviconProvider("secondary", "https://extract.example.com/{domain}", "image/png")


@pytest.fixture
def fetcher():
    return FakeFetcher({
        ORIGIN: make_image_bytes(1000, 500),
        "https://icons.example.com/example.com": b"ico",
        "https://extract.example.com/fallback.org": b"png",
    })


@pytest.fixture
def client(fetcher):
    app.dependency_overrides[get_image_service] = lambda: ImageTransformService(
        fetcher=fetcher,
        transcoder=ImageTranscoder(ImageConfig()),
        proxy_fallback_url=PROXY,
    )
    app.dependency_overrides[get_favicon_resolver] = lambda: FaviconResolver(
        fetcher, ICON_PRIMARY, ICON_SECONDARY
    )
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


class TestLiveness:
    def test_root_ok(self, client):
        resp = client.get("/")
        assert resp.status_code == 200
        assert resp.text == "Ok"

    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "healthy"}

    def test_unknown_route_404(self, client):
        resp = client.get("/nope/nothing")
        assert resp.status_code == 404
        assert resp.json() == {"error": "Not found"}

    def test_request_id_header(self, client):
        assert "X-Request-ID" in client.get("/").headers

    def test_metrics_json(self, client):
        client.get(f"/img?url={ORIGIN}&w=10")
        resp = client.get("/metrics")
        assert resp.status_code == 200
        assert "counters" in resp.json()


class TestImageEndpoint:
    def test_success_headers_and_size(self, client):
        resp = client.get("/img", params={"url": ORIGIN, "w": 100, "h": 100})

        assert resp.status_code == 200
        assert resp.headers["content-type"] == "image/jpeg"
        assert resp.headers["cache-control"] == settings.cache_control_success
        assert resp.headers["x-server"] == settings.server_header
        assert resp.headers["x-content-type-options"] == "nosniff"
        assert Image.open(io.BytesIO(resp.content)).size == (100, 50)

    def test_width_only(self, client):
        resp = client.get("/img", params={"url": ORIGIN, "w": 300})
        assert Image.open(io.BytesIO(resp.content)).size == (300, 150)

    def test_upstream_failure_is_400_with_short_cache(self, client, fetcher):
        missing = "https://images.example.com/missing.png"
        resp = client.get("/img", params={"url": missing, "w": 10})

        assert resp.status_code == 400
        assert resp.headers["cache-control"] == settings.cache_control_failure
        assert fetcher.calls[-2:] == [missing, build_proxy_url(PROXY, missing)]

    def test_zero_width_is_400(self, client):
        resp = client.get("/img", params={"url": ORIGIN, "w": 0})
        assert resp.status_code == 400
        assert resp.headers["cache-control"] == settings.cache_control_failure

    @pytest.mark.parametrize("query", [
        "",
        "?w=100",
        f"?url={ORIGIN}&w=abc",
        f"?url={ORIGIN}&h=-3",
    ])
    def test_malformed_query_is_400(self, client, query):
        resp = client.get(f"/img{query}")
        assert resp.status_code == 400
        assert resp.headers["cache-control"] == settings.cache_control_failure

    @pytest.mark.parametrize("path", ["/img", "/dim"])
    @pytest.mark.parametrize("url", ["http://[::1/x.png", "https://[bad/x.png"])
    def test_malformed_host_is_400_with_short_cache(self, client, fetcher, path, url):
        resp = client.get(path, params={"url": url})
        assert resp.status_code == 400
        assert resp.headers["cache-control"] == settings.cache_control_failure
        assert fetcher.calls == []

    def test_non_http_url_is_400(self, client, fetcher):
        resp = client.get("/img", params={"url": "ftp://a.com/x.png"})
        assert resp.status_code == 400
        assert fetcher.calls == []


class TestDimensionsEndpoint:
    def test_reports_size(self, client):
        resp = client.get("/dim", params={"url": ORIGIN})
        assert resp.status_code == 200
        assert resp.json() == {"width": 1000, "height": 500}

    def test_failure(self, client):
        resp = client.get("/dim", params={"url": "https://images.example.com/missing.png"})
        assert resp.status_code == 400
        assert resp.headers["cache-control"] == settings.cache_control_failure


class TestFaviconEndpoint:
    def test_primary(self, client):
        resp = client.get("/favicon", params={"domain": "example.com"})
        assert resp.status_code == 200
        assert resp.content == b"ico"
        assert resp.headers["content-type"] == "image/x-icon"
        assert resp.headers["cache-control"] == settings.cache_control_success

    def test_secondary(self, client):
        resp = client.get("/favicon", params={"domain": "fallback.org"})
        assert resp.status_code == 200
        assert resp.content == b"png"
        assert resp.headers["content-type"] == "image/png"

    @pytest.mark.parametrize("query", ["", "?domain=ab"])
    def test_bad_domain_is_400(self, client, fetcher, query):
        resp = client.get(f"/favicon{query}")
        assert resp.status_code == 400
        assert fetcher.calls == []

    def test_no_provider_is_500(self, client):
        resp = client.get("/favicon", params={"domain": "unknown.net"})
        assert resp.status_code == 500


class TestLifespan:
    def test_session_closed_on_shutdown(self):
        with TestClient(app) as started:
            session = app.state.http_session
            assert not session.closed
            assert started.get("/").text == "Ok"
        assert session.closed
