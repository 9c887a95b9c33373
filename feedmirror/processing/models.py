"""
Feed Document Models
===================

Raw posts as read from an upstream document, and the canonical document
the normalizer produces. Canonical text fields are stored XML-escaped,
ready to be written verbatim by the RSS writer.
"""

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class RawPost:
    """One upstream ``item``, with its text unescaped."""

    title: str
    link: str
    description: Optional[str] = None
    pub_date: Optional[str] = None
    media_url: Optional[str] = None


@dataclass
class Enclosure:
    url: str
    type: str
    length: int


@dataclass
class CanonicalItem:
    title: str
    description: str
    pub_date: str
    link: str
    guid: str
    enclosure: Optional[Enclosure] = None


@dataclass
class CanonicalDocument:
    """Normalized channel, items already in newest-first order."""

    title: str
    link: str
    description: str
    pub_date: str
    last_build_date: str
    language: Optional[str] = None
    items: List[CanonicalItem] = field(default_factory=list)
