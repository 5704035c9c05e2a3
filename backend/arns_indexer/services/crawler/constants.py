"""Constants for manifest resolution and crawling."""

# Arweave path manifest format
MANIFEST_CONTENT_TYPE = "application/x.arweave-manifest+json"
MANIFEST_MARKER = "arweave/paths"
MANIFEST_VERSION = "0.2.0"

# AO process detection tags
AO_PROTOCOL_TAG = "Data-Protocol"
AO_PROTOCOL_VALUE = "ao"
AO_TYPE_TAG = "Type"
AO_PROCESS_TYPE = "Process"

CONTENT_TYPE_TAG = "Content-Type"

# Media types eligible for crawling, in addition to any text/*
CRAWLABLE_CONTENT_TYPES = {
    "text/html",
    "text/plain",
    "application/xhtml+xml",
}

HTML_CONTENT_TYPES = {
    "text/html",
    "application/xhtml+xml",
}

# Subtrees removed before text extraction
STRIPPED_TAGS = ["script", "style", "noscript", "iframe", "svg"]

HEADING_TAGS = {"h1", "h2", "h3", "h4", "h5", "h6"}

SKIPPED_LINK_PREFIXES = ("javascript:", "mailto:", "tel:", "#")

# Well-known manifest paths
ROBOTS_TXT_PATH = "robots.txt"
SITEMAP_XML_PATH = "sitemap.xml"
SITEMAP_CONTENT_TYPE = "application/xml"
ROBOTS_CONTENT_TYPE = "text/plain"

# Crawl defaults
DEFAULT_MAX_DEPTH = 10
DEFAULT_MAX_BODY_SIZE = 5242880  # 5MB
DEFAULT_MAX_TITLE_SIZE = 1024
DEFAULT_MAX_HEADINGS_COUNT = 25
DEFAULT_MAX_LINKS_COUNT = 25
