"""
FeedMirror Ingestion Module
==========================

Upstream feed retrieval and text cleaning helpers.

This module handles:
- HTTP access to the upstream feed service
- XML text sanitization and raw document repair
- Date parsing and formatting
"""
