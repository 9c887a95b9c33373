"""
Request Gateway
==============

aiohttp application serving normalized feeds and stored media.

Routes:
    GET /?channel=<id>                     normalized feed
    GET /rss/{channel}                     normalized feed
    GET /images/{channel}/{post}/{file}    stored media
    GET /status                            cache, task and error overview
"""

import asyncio
from typing import Callable, Optional

from aiohttp import web

from ..processing.pipeline import RefreshPipeline
from ..recovery.error_handler import ErrorContext, ErrorHandler
from ..scheduler.source_scheduler import SourceScheduler
from ..storage.freshness_cache import FreshnessCache
from ..storage.media_store import PUBLIC_PREFIX, MediaStore
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import ErrorCode, FeedMirrorError, ServingError, get_user_friendly_message

FEED_CONTENT_TYPE = "application/xml"
CORS_HEADERS = {"Access-Control-Allow-Origin": "*"}


class FeedGateway:
    """Maps HTTP requests onto the cache, the refresh pipeline and the media store."""

    def __init__(
        self,
        pipeline: RefreshPipeline,
        scheduler: SourceScheduler,
        media_store: MediaStore,
        cache: FreshnessCache,
        error_handler: ErrorHandler,
        default_channel: str = "lookonchainchannel",
    ):
        self.pipeline = pipeline
        self.scheduler = scheduler
        self.media_store = media_store
        self.cache = cache
        self.error_handler = error_handler
        self.default_channel = default_channel
        self.logger = get_logger_for_component("gateway")

    def create_app(self) -> web.Application:
        @web.middleware
        async def error_middleware(request: web.Request, handler):
            try:
                return await handler(request)
            except web.HTTPException:
                raise
            except Exception as e:
                self.error_handler.handle_error(
                    e, ErrorContext(component="gateway", operation=f"{request.method} {request.path}")
                )
                return web.Response(status=500, text=get_user_friendly_message(e))

        app = web.Application(middlewares=[error_middleware])
        app.router.add_get("/", self.handle_feed)
        app.router.add_get("/rss/{channel}", self.handle_feed)
        app.router.add_get(f"/{PUBLIC_PREFIX}/{{channel}}/{{post}}/{{filename}}", self.handle_media)
        app.router.add_get("/status", self.handle_status)
        return app

    def _requested_channel(self, request: web.Request) -> str:
        channel = request.match_info.get("channel") or request.query.get("channel", "")
        return channel.strip() or self.default_channel

    @staticmethod
    def _feed_response(xml: str) -> web.Response:
        return web.Response(
            text=xml, content_type=FEED_CONTENT_TYPE, charset="utf-8", headers=CORS_HEADERS
        )

    async def handle_feed(self, request: web.Request) -> web.Response:
        channel = self._requested_channel(request)

        entry = self.cache.get(channel)
        if entry is not None:
            return self._feed_response(entry.xml)

        try:
            xml = await self.pipeline.get_or_refresh(channel)
        except Exception as e:
            error = ServingError(f"First fetch failed for {channel}: {e}", source_id=channel)
            error.__cause__ = e
            self.error_handler.handle_error(
                error, ErrorContext(component="gateway", operation="first_fetch", source_id=channel)
            )
            return web.Response(status=500, text=error.user_message)

        if not self.scheduler.is_running(channel):
            self.scheduler.start(channel, initial_delay=self.scheduler.next_success_interval())
        return self._feed_response(xml)

    async def handle_media(self, request: web.Request) -> web.Response:
        found = await self.media_store.read(
            request.match_info["channel"],
            request.match_info["post"],
            request.match_info["filename"],
        )
        if found is None:
            return web.Response(status=404, text="Image not found")

        data, mime_type = found
        return web.Response(body=data, content_type=mime_type)

    async def handle_status(self, request: web.Request) -> web.Response:
        return web.json_response({
            "feeds": {
                source_id: self.cache.get(source_id).last_update.isoformat()
                for source_id in self.cache.sources()
            },
            "scheduled": self.scheduler.sources(),
            "errors": self.error_handler.get_error_statistics(hours=24),
        })


class GatewayServer:
    """Runs the gateway listener, retrying after a delay if it fails to start.

    Only runner setup and socket bind are covered; once the site is listening,
    request-level errors are handled by aiohttp and the error middleware.
    """

    def __init__(
        self,
        app_factory: Callable[[], web.Application],
        host: str,
        port: int,
        error_handler: ErrorHandler,
        restart_delay: float = 5.0,
    ):
        self.app_factory = app_factory
        self.host = host
        self.port = port
        self.error_handler = error_handler
        self.restart_delay = restart_delay
        self.logger = get_logger_for_component("gateway_server")
        self.restarts = 0

    def handle_loop_exception(self, loop: asyncio.AbstractEventLoop, context: dict) -> None:
        """Event-loop exception handler: report instead of crashing."""
        exception = context.get("exception")
        if exception is None:
            exception = RuntimeError(context.get("message", "Unhandled event loop error"))
        self.error_handler.handle_error(
            exception, ErrorContext(component="event_loop", operation="unhandled")
        )

    async def run(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """Serve until ``stop_event`` is set (or forever)."""
        stop_event = stop_event or asyncio.Event()
        asyncio.get_running_loop().set_exception_handler(self.handle_loop_exception)

        while not stop_event.is_set():
            runner = web.AppRunner(self.app_factory())
            try:
                await runner.setup()
                site = web.TCPSite(runner, self.host, self.port)
                await site.start()
                self.logger.info(
                    f"Server {'restarted and ' if self.restarts else ''}running at port {self.port}"
                )
                await stop_event.wait()
            except Exception as e:
                error = FeedMirrorError(
                    f"Listener on {self.host}:{self.port} failed: {e}",
                    error_code=ErrorCode.SERVING_LISTENER_FAILED,
                    recoverable=True,
                )
                self.error_handler.handle_error(
                    error, ErrorContext(component="gateway_server", operation="listen")
                )
                self.restarts += 1
            finally:
                await runner.cleanup()

            if not stop_event.is_set():
                self.logger.info(f"Restarting listener in {self.restart_delay:g}s")
                await asyncio.sleep(self.restart_delay)
