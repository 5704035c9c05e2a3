"""sitemap.xml parsing and manifest path extraction."""

import xml.etree.ElementTree as ET
from typing import List, Optional
from urllib.parse import urlsplit

from .models import SitemapEntry, SitemapValidation
from .parser import same_origin


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1].lower() if isinstance(tag, str) else ""


def _child_text(element: ET.Element, name: str) -> Optional[str]:
    for child in element:
        if _local_name(child.tag) == name:
            text = (child.text or "").strip()
            return text or None
    return None


def _parse_priority(value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def parse_sitemap_xml(content: str) -> SitemapValidation:
    """Extract <url> and <sitemap> entries; an empty sitemap is invalid."""
    try:
        root = ET.fromstring(content.strip())
        entries: List[SitemapEntry] = []

        for element in root.iter():
            if _local_name(element.tag) != "url":
                continue
            loc = _child_text(element, "loc")
            if loc:
                entries.append(
                    SitemapEntry(
                        loc=loc,
                        lastmod=_child_text(element, "lastmod"),
                        changefreq=_child_text(element, "changefreq"),
                        priority=_parse_priority(_child_text(element, "priority")),
                    )
                )

        for element in root.iter():
            if _local_name(element.tag) != "sitemap":
                continue
            loc = _child_text(element, "loc")
            if loc:
                entries.append(SitemapEntry(loc=loc, lastmod=_child_text(element, "lastmod")))

        if not entries:
            return SitemapValidation(
                is_valid=False,
                entries=[],
                error="No valid entries found in sitemap",
            )
        return SitemapValidation(is_valid=True, entries=entries)
    except Exception as exc:
        return SitemapValidation(is_valid=False, entries=[], error=str(exc))


def extract_manifest_paths(entries: List[SitemapEntry], manifest_base_url: str) -> List[str]:
    """Paths of same-origin (or already root-relative) sitemap entries."""
    paths: List[str] = []
    for entry in entries:
        loc = entry.loc
        if loc.startswith(("http://", "https://")):
            try:
                if same_origin(loc, manifest_base_url):
                    paths.append(urlsplit(loc).path or "/")
            except ValueError:
                continue
        elif loc.startswith("/"):
            paths.append(loc)
    return paths
