"""
FeedMirror - Telegram Channel Feed Mirror
=========================================

Serves cleaned, reader-friendly RSS documents for Telegram channels with
their media mirrored locally.

Main Components:
- Ingestion: Upstream RSS fetching over a shared aiohttp session
- Processing: Normalization of raw feeds into canonical RSS documents
- Storage: Local media store and in-memory freshness cache
- Scheduler: One background refresh task per channel
- Server: aiohttp gateway serving feeds and stored media
"""

__version__ = "1.0.0"
__author__ = "FeedMirror Development Team"
__description__ = "Telegram channel RSS mirror with local media"

# Core imports for easy access
from .config.settings import get_settings
from .utils.logging import configure_application_logging, get_logger_for_component
from .utils.exceptions import FeedMirrorError

__all__ = [
    "get_settings",
    "configure_application_logging",
    "get_logger_for_component",
    "FeedMirrorError",
]
