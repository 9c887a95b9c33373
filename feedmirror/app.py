"""
Component wiring: builds the refresh pipeline, scheduler and gateway from
settings, and runs the service until interrupted.
"""

import asyncio
from dataclasses import dataclass
from typing import Optional

from .config.settings import FeedMirrorSettings
from .ingestion.feed_source import FeedSource, HttpClient, HttpFeedSource
from .processing.normalizer import DocumentNormalizer
from .processing.pipeline import RefreshPipeline
from .recovery.error_handler import ErrorHandler
from .recovery.retry_logic import RetryConfig, RetryManager
from .scheduler.source_scheduler import SourceScheduler
from .server.gateway import FeedGateway, GatewayServer
from .storage.freshness_cache import FreshnessCache
from .storage.media_store import MediaStore
from .utils.logging import get_logger_for_component


@dataclass
class FeedMirrorComponents:
    settings: FeedMirrorSettings
    http_client: HttpClient
    error_handler: ErrorHandler
    cache: FreshnessCache
    media_store: MediaStore
    normalizer: DocumentNormalizer
    pipeline: RefreshPipeline
    scheduler: SourceScheduler
    gateway: FeedGateway

    async def close(self) -> None:
        await self.scheduler.stop_all()
        await self.http_client.close()


def build_components(
    settings: FeedMirrorSettings,
    source: Optional[FeedSource] = None,
    http_client: Optional[HttpClient] = None,
) -> FeedMirrorComponents:
    """Assemble the service. ``source`` and ``http_client`` may be replaced for tests."""
    http_client = http_client or HttpClient(user_agent=f"{settings.app_name}/{settings.version}")
    error_handler = ErrorHandler()
    cache = FreshnessCache()

    media_store = MediaStore(
        root_dir=settings.media.directory,
        http_client=http_client,
        retry_manager=RetryManager(
            RetryConfig(max_attempts=settings.media.max_attempts, base_delay=settings.media.base_delay),
            component="media_store",
        ),
        download_timeout=settings.media.download_timeout,
    )

    normalizer = DocumentNormalizer(
        media_store=media_store,
        base_url=settings.server.base_url,
        item_title=settings.feed.item_title,
        fallback_title=settings.feed.fallback_title,
        channel_link_template=settings.upstream.channel_link_template,
        error_handler=error_handler,
    )

    source = source or HttpFeedSource(
        http_client,
        settings.upstream.url_template,
        timeout=settings.upstream.request_timeout,
    )
    pipeline = RefreshPipeline(
        source=source,
        normalizer=normalizer,
        cache=cache,
        retry_manager=RetryManager(
            RetryConfig(max_attempts=settings.upstream.max_attempts, base_delay=settings.upstream.base_delay),
            component="feed_source",
        ),
    )

    scheduler = SourceScheduler(
        pipeline,
        min_refresh_minutes=settings.scheduler.min_refresh_minutes,
        max_refresh_minutes=settings.scheduler.max_refresh_minutes,
        failure_retry_seconds=settings.scheduler.failure_retry_seconds,
        attempt_config=RetryConfig(
            max_attempts=settings.scheduler.max_attempts, base_delay=settings.scheduler.base_delay
        ),
        error_handler=error_handler,
    )

    gateway = FeedGateway(
        pipeline=pipeline,
        scheduler=scheduler,
        media_store=media_store,
        cache=cache,
        error_handler=error_handler,
        default_channel=settings.server.default_channel,
    )

    return FeedMirrorComponents(
        settings=settings,
        http_client=http_client,
        error_handler=error_handler,
        cache=cache,
        media_store=media_store,
        normalizer=normalizer,
        pipeline=pipeline,
        scheduler=scheduler,
        gateway=gateway,
    )


async def serve(settings: FeedMirrorSettings, stop_event: Optional[asyncio.Event] = None) -> None:
    """Run the HTTP gateway until ``stop_event`` is set or the task is cancelled."""
    logger = get_logger_for_component("app")
    components = build_components(settings)
    server = GatewayServer(
        app_factory=components.gateway.create_app,
        host=settings.server.host,
        port=settings.server.port,
        error_handler=components.error_handler,
        restart_delay=settings.server.listener_restart_delay,
    )

    try:
        await server.run(stop_event)
    finally:
        logger.info("Shutting down")
        await components.close()
