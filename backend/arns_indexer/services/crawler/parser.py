"""Content parsing: HTML/text field extraction, link normalization, hashing."""

import hashlib
import logging
import re
from typing import List, Optional
from urllib.parse import urlsplit

from selectolax.parser import HTMLParser, Node

from .constants import (
    CRAWLABLE_CONTENT_TYPES,
    HEADING_TAGS,
    HTML_CONTENT_TYPES,
    SKIPPED_LINK_PREFIXES,
    STRIPPED_TAGS,
)
from .models import CrawlConfig, ParsedDocument

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")
_LAST_SEGMENT_RE = re.compile(r"/[^/]*$")
_DEFAULT_PORTS = {"http": 80, "https": 443}


def hash_content(content: str) -> str:
    """sha256 hex digest used for downstream duplicate detection."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def _media_type(content_type: Optional[str]) -> str:
    if not content_type:
        return ""
    return content_type.lower().split(";")[0].strip()


def is_crawlable_content_type(content_type: Optional[str]) -> bool:
    media_type = _media_type(content_type)
    if not media_type:
        return False
    return media_type in CRAWLABLE_CONTENT_TYPES or media_type.startswith("text/")


def is_html_content_type(content_type: Optional[str]) -> bool:
    return _media_type(content_type) in HTML_CONTENT_TYPES


def _origin(url: str):
    parts = urlsplit(url)
    scheme = parts.scheme.lower()
    port = parts.port or _DEFAULT_PORTS.get(scheme)
    return scheme, (parts.hostname or "").lower(), port


def same_origin(url: str, other: str) -> bool:
    return _origin(url) == _origin(other)


def normalize_link(href: str, base_url: str) -> Optional[str]:
    """Normalize an href to a same-origin path (plus query), or None to skip it."""
    try:
        href = href.strip()
        if not href or href.startswith(SKIPPED_LINK_PREFIXES):
            return None

        # Protocol-relative links always point elsewhere
        if href.startswith("//"):
            return None

        if href.startswith(("http://", "https://")):
            if not same_origin(href, base_url):
                return None
            parts = urlsplit(href)
            path = parts.path or "/"
            return f"{path}?{parts.query}" if parts.query else path

        if href.startswith("/"):
            return href

        base_path = urlsplit(base_url).path or "/"
        return _LAST_SEGMENT_RE.sub("/", base_path) + href
    except Exception:
        logger.debug("Failed to normalize link: %s, base: %s", href, base_url)
        return None


class ContentParser:
    """Extracts document fields from fetched HTML and plain text."""

    def __init__(self, config: Optional[CrawlConfig] = None):
        self.config = config or CrawlConfig()

    def _safe_node_text(self, node: Optional[Node]) -> str:
        if node is None:
            return ""
        try:
            text = node.text(deep=True, separator="", strip=False)
        except Exception:
            return ""
        return str(text or "")

    def _safe_attr_text(self, node: Optional[Node], key: str) -> Optional[str]:
        if node is None:
            return None
        raw = node.attributes.get(key)
        if raw is None:
            return None
        value = str(raw).strip()
        return value or None

    def _truncate_body(self, body: str):
        if len(body) > self.config.max_body_size:
            return body[: self.config.max_body_size], True
        return body, False

    def parse_html(self, html: str, base_url: str) -> ParsedDocument:
        tree = HTMLParser(html)

        for tag in STRIPPED_TAGS:
            for node in tree.css(tag):
                node.decompose()

        title = self._safe_node_text(tree.css_first("title")).strip() or None
        if title and len(title) > self.config.max_title_size:
            title = title[: self.config.max_title_size]

        meta_description = self._safe_attr_text(tree.css_first('meta[name="description"]'), "content")
        meta_keywords = self._safe_attr_text(tree.css_first('meta[name="keywords"]'), "content")

        # Walk the tree so headings of mixed levels keep document order
        headings: List[str] = []
        heading_nodes = tree.root.traverse() if tree.root is not None else ()
        for node in heading_nodes:
            if len(headings) >= self.config.max_headings_count:
                break
            if node.tag not in HEADING_TAGS:
                continue
            text = self._safe_node_text(node).strip()
            if text:
                headings.append(text)

        links: List[str] = []
        for node in tree.css("a[href]"):
            if len(links) >= self.config.max_links_count:
                break
            href = node.attributes.get("href")
            if not href:
                continue
            normalized = normalize_link(href, base_url)
            if normalized and normalized not in links:
                links.append(normalized)

        # Text nodes are joined as-is, whitespace only collapses in the body
        body = _WHITESPACE_RE.sub(" ", self._safe_node_text(tree.body)).strip()
        body, body_truncated = self._truncate_body(body)

        return ParsedDocument(
            title=title,
            body=body or None,
            body_truncated=body_truncated,
            meta_description=meta_description,
            meta_keywords=meta_keywords,
            headings=headings,
            links=links,
            content_hash=hash_content(body),
            content_length=len(html),
        )

    def parse_text(self, text: str) -> ParsedDocument:
        body, body_truncated = self._truncate_body(text.strip())

        return ParsedDocument(
            title=None,
            body=body or None,
            body_truncated=body_truncated,
            meta_description=None,
            meta_keywords=None,
            headings=[],
            links=[],
            content_hash=hash_content(body),
            content_length=len(text),
        )

    def parse(self, content: str, content_type: Optional[str], url: str) -> ParsedDocument:
        if is_html_content_type(content_type):
            return self.parse_html(content, url)
        return self.parse_text(content)
