"""Manifest-aware content crawler."""

from .models import (
    CrawlConfig,
    ParsedDocument,
    RobotsTxtRules,
    RobotsTxtValidation,
    SitemapEntry,
    SitemapValidation,
    ManifestCrawlContext,
)
from .parser import ContentParser, normalize_link, hash_content, is_crawlable_content_type, is_html_content_type
from .robots import parse_robots_txt, is_path_allowed, matches_robots_pattern
from .sitemap import parse_sitemap_xml, extract_manifest_paths
from .manifest import ManifestCrawler, manifest_relative_path

__all__ = [
    # Main entry points
    "ManifestCrawler",
    "ContentParser",

    # Policy and parsing helpers
    "normalize_link",
    "manifest_relative_path",
    "hash_content",
    "is_crawlable_content_type",
    "is_html_content_type",
    "parse_robots_txt",
    "is_path_allowed",
    "matches_robots_pattern",
    "parse_sitemap_xml",
    "extract_manifest_paths",

    # Data models
    "CrawlConfig",
    "ParsedDocument",
    "RobotsTxtRules",
    "RobotsTxtValidation",
    "SitemapEntry",
    "SitemapValidation",
    "ManifestCrawlContext",
]
