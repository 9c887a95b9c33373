"""
FeedMirror Processing Module
===========================

Normalization of raw upstream feeds into canonical RSS documents and the
refresh pipeline that keeps the cache current.
"""

from .normalizer import DocumentNormalizer
from .pipeline import RefreshPipeline
from .rss_writer import render_rss

__all__ = [
    'DocumentNormalizer',
    'RefreshPipeline',
    'render_rss',
]
