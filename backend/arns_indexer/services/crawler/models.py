"""Data models for content parsing and manifest crawling."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from .constants import (
    DEFAULT_MAX_BODY_SIZE,
    DEFAULT_MAX_DEPTH,
    DEFAULT_MAX_HEADINGS_COUNT,
    DEFAULT_MAX_LINKS_COUNT,
    DEFAULT_MAX_TITLE_SIZE,
)


@dataclass
class CrawlConfig:
    """Limits applied while parsing and traversing content."""
    max_depth: int = DEFAULT_MAX_DEPTH
    max_body_size: int = DEFAULT_MAX_BODY_SIZE
    max_title_size: int = DEFAULT_MAX_TITLE_SIZE
    max_headings_count: int = DEFAULT_MAX_HEADINGS_COUNT
    max_links_count: int = DEFAULT_MAX_LINKS_COUNT

    @classmethod
    def from_settings(cls, settings) -> "CrawlConfig":
        return cls(
            max_depth=settings.crawl_max_depth,
            max_body_size=settings.crawl_max_body_size,
            max_title_size=settings.crawl_max_title_size,
            max_headings_count=settings.crawl_max_headings_count,
            max_links_count=settings.crawl_max_links_count,
        )


@dataclass
class ParsedDocument:
    """Fields extracted from fetched HTML or text."""
    title: Optional[str]
    body: Optional[str]
    body_truncated: bool
    meta_description: Optional[str]
    meta_keywords: Optional[str]
    headings: List[str]
    links: List[str]
    content_hash: str
    content_length: int


@dataclass
class RobotsTxtRules:
    allowed_paths: List[str] = field(default_factory=list)
    disallowed_paths: List[str] = field(default_factory=list)
    sitemap_urls: List[str] = field(default_factory=list)
    crawl_delay: Optional[int] = None


@dataclass
class RobotsTxtValidation:
    is_valid: bool
    rules: Optional[RobotsTxtRules] = None
    error: Optional[str] = None


@dataclass
class SitemapEntry:
    loc: str
    lastmod: Optional[str] = None
    changefreq: Optional[str] = None
    priority: Optional[float] = None


@dataclass
class SitemapValidation:
    is_valid: bool
    entries: List[SitemapEntry] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class ManifestCrawlContext:
    """State carried through one manifest crawl invocation."""
    manifest: Dict[str, Any]
    robots_rules: Optional[RobotsTxtRules]
    base_url: str
    visited_paths: Set[str] = field(default_factory=set)

    @property
    def paths(self) -> Dict[str, Any]:
        return self.manifest.get("paths") or {}

    def has_path(self, path: str) -> bool:
        return path in self.paths
