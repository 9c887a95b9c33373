#!/usr/bin/env python3
"""
End-to-End Gateway Tests
========================

Drives the fully wired service through its HTTP interface with the
upstream feed service and media CDN replaced by in-memory fakes.
"""

import asyncio
import pytest
import xml.etree.ElementTree as ET

from aiohttp import web
from aiohttp.test_utils import TestClient, TestServer

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from feedmirror.app import build_components
from feedmirror.config.settings import (
    FeedMirrorSettings,
    MediaSettings,
    ServerSettings,
    UpstreamSettings,
)
from feedmirror.recovery.error_handler import ErrorHandler, ErrorSeverity
from feedmirror.server import gateway as gateway_module
from feedmirror.server.gateway import GatewayServer

from conftest import FakeFeedSource, FakeHttpClient, JPEG_BYTES


@pytest.fixture
def settings(media_dir):
    return FeedMirrorSettings(
        server=ServerSettings(base_url="http://mirror.test", default_channel="abc"),
        upstream=UpstreamSettings(base_delay=0.0),
        media=MediaSettings(directory=str(media_dir), base_delay=0.0),
    )


class TestFeedEndpoint:

    @pytest.mark.asyncio
    async def test_first_request_builds_feed(self, settings, fake_http):
        source = FakeFeedSource()
        components = build_components(settings, source=source, http_client=fake_http)

        async with TestClient(TestServer(components.gateway.create_app())) as client:
            resp = await client.get("/?channel=abc")
            body = await resp.text()

            assert resp.status == 200
            assert resp.content_type == "application/xml"
            assert resp.charset == "utf-8"
            assert resp.headers["Access-Control-Allow-Origin"] == "*"

        await components.close()

        assert "<title>[Photo]</title>" in body
        assert 'url="http://mirror.test/images/abc/100/image.jpg"' in body
        root = ET.fromstring(body.encode("utf-8"))
        links = [item.findtext("link") for item in root.iter("item")]
        assert links == ["https://t.me/abc/102", "https://t.me/abc/101", "https://t.me/abc/100"]

    @pytest.mark.asyncio
    async def test_second_request_served_from_cache(self, settings, fake_http):
        source = FakeFeedSource()
        components = build_components(settings, source=source, http_client=fake_http)

        async with TestClient(TestServer(components.gateway.create_app())) as client:
            first = await (await client.get("/?channel=abc")).read()
            second = await (await client.get("/?channel=abc")).read()

            assert first == second
            assert source.calls == ["abc"]
            # polling starts after the first successful fetch
            assert components.scheduler.is_running("abc")

        await components.close()
        assert not components.scheduler.is_running("abc")

    @pytest.mark.asyncio
    async def test_path_alias_and_default_channel(self, settings, fake_http):
        source = FakeFeedSource()
        components = build_components(settings, source=source, http_client=fake_http)

        async with TestClient(TestServer(components.gateway.create_app())) as client:
            by_query = await (await client.get("/?channel=abc")).text()
            by_path = await (await client.get("/rss/abc")).text()
            by_default = await (await client.get("/")).text()

        await components.close()

        assert by_query == by_path == by_default
        assert source.calls == ["abc"]

    @pytest.mark.asyncio
    async def test_concurrent_first_requests_fetch_once(self, settings, fake_http):
        source = FakeFeedSource()
        original_fetch = source.fetch

        async def slow_fetch(source_id):
            await asyncio.sleep(0.05)
            return await original_fetch(source_id)

        source.fetch = slow_fetch
        components = build_components(settings, source=source, http_client=fake_http)

        async with TestClient(TestServer(components.gateway.create_app())) as client:
            responses = await asyncio.gather(*(client.get("/?channel=abc") for _ in range(4)))
            bodies = {await r.text() for r in responses}

        await components.close()

        assert {r.status for r in responses} == {200}
        assert len(bodies) == 1
        assert source.calls == ["abc"]

    @pytest.mark.asyncio
    async def test_failed_first_fetch_returns_500(self, settings, fake_http):
        source = FakeFeedSource(failures=99)
        components = build_components(settings, source=source, http_client=fake_http)

        async with TestClient(TestServer(components.gateway.create_app())) as client:
            resp = await client.get("/?channel=abc")

            assert resp.status == 500
            assert await resp.text() == "Error generating RSS feed."
            assert len(source.calls) == settings.upstream.max_attempts
            assert not components.scheduler.is_running("abc")

        await components.close()
        stats = components.error_handler.get_error_statistics()
        assert stats["by_source"] == {"abc": 1}
        assert stats["by_category"] == {"serving": 1}

    @pytest.mark.asyncio
    async def test_media_failure_degrades_to_original_url(self, settings):
        http = FakeHttpClient()
        components = build_components(settings, source=FakeFeedSource(), http_client=http)

        async with TestClient(TestServer(components.gateway.create_app())) as client:
            resp = await client.get("/?channel=abc")
            body = await resp.text()

        await components.close()

        assert resp.status == 200
        assert 'url="https://cdn.example.com/abc/100.jpg" type="image/jpeg" length="0"' in body


class TestMediaEndpoint:

    @pytest.mark.asyncio
    async def test_serves_stored_media(self, settings, fake_http):
        components = build_components(settings, source=FakeFeedSource(), http_client=fake_http)

        async with TestClient(TestServer(components.gateway.create_app())) as client:
            await client.get("/?channel=abc")
            resp = await client.get("/images/abc/100/image.jpg")

            assert resp.status == 200
            assert resp.content_type == "image/jpeg"
            assert await resp.read() == JPEG_BYTES

        await components.close()

    @pytest.mark.asyncio
    async def test_missing_media_is_404(self, settings, fake_http):
        components = build_components(settings, source=FakeFeedSource(), http_client=fake_http)

        async with TestClient(TestServer(components.gateway.create_app())) as client:
            resp = await client.get("/images/abc/999/image.jpg")

            assert resp.status == 404
            assert await resp.text() == "Image not found"

        await components.close()


class TestStatusEndpoint:

    @pytest.mark.asyncio
    async def test_status_lists_feeds_and_tasks(self, settings, fake_http):
        components = build_components(settings, source=FakeFeedSource(), http_client=fake_http)

        async with TestClient(TestServer(components.gateway.create_app())) as client:
            await client.get("/?channel=abc")
            resp = await client.get("/status")
            data = await resp.json()

        await components.close()

        assert resp.status == 200
        assert list(data["feeds"]) == ["abc"]
        assert data["scheduled"] == ["abc"]
        assert data["errors"]["total_errors"] == 0


class TestGatewayServer:

    @pytest.mark.asyncio
    async def test_listener_restarts_after_failure(self, monkeypatch):
        stop_event = asyncio.Event()
        built = []

        def app_factory():
            app = web.Application()
            built.append(app)
            return app

        class FlakySite:
            starts = 0

            def __init__(self, runner, host, port):
                self.runner = runner

            async def start(self):
                FlakySite.starts += 1
                if FlakySite.starts == 1:
                    raise OSError("address already in use")
                stop_event.set()

        monkeypatch.setattr(gateway_module.web, "TCPSite", FlakySite)
        error_handler = ErrorHandler()
        server = GatewayServer(app_factory, "127.0.0.1", 8080, error_handler, restart_delay=0)

        await asyncio.wait_for(server.run(stop_event), timeout=2)

        assert FlakySite.starts == 2
        assert len(built) == 2
        assert server.restarts == 1
        event = error_handler.get_recent_errors()[-1]
        assert event.severity == ErrorSeverity.CRITICAL
        assert event.context.component == "gateway_server"

    @pytest.mark.asyncio
    async def test_loop_exception_handler_reports(self):
        error_handler = ErrorHandler()
        server = GatewayServer(web.Application, "127.0.0.1", 8080, error_handler)

        server.handle_loop_exception(
            asyncio.get_running_loop(), {"message": "Task exception was never retrieved"}
        )
        server.handle_loop_exception(
            asyncio.get_running_loop(), {"exception": ValueError("stray"), "message": "x"}
        )

        events = error_handler.get_recent_errors()
        assert [e.exception_type for e in events] == ["RuntimeError", "ValueError"]
        assert {e.context.component for e in events} == {"event_loop"}
