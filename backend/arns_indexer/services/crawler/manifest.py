"""Manifest crawler - bounded, robots-aware traversal of a path manifest's link graph."""

import logging
from dataclasses import asdict
from typing import Any, Callable, Dict, List, Optional, Set

import httpx

from arns_indexer.config import NameFilter
from arns_indexer.models import ROOT_DOCUMENT_PATH, CrawlStatus, ResolvedTarget, TargetCategory
from arns_indexer.models.base import utcnow
from arns_indexer.services.batching import settle_in_chunks
from arns_indexer.services.gateway import GatewayClient
from arns_indexer.services.repository import CrawledDocumentRepository, ResolvedTargetRepository

from .constants import (
    ROBOTS_CONTENT_TYPE,
    ROBOTS_TXT_PATH,
    SITEMAP_CONTENT_TYPE,
    SITEMAP_XML_PATH,
)
from .models import CrawlConfig, ManifestCrawlContext, ParsedDocument
from .parser import ContentParser, is_crawlable_content_type, is_html_content_type, normalize_link
from .robots import is_path_allowed, parse_robots_txt
from .sitemap import extract_manifest_paths, parse_sitemap_xml

logger = logging.getLogger(__name__)

CRAWLED = "crawled"
SKIPPED = "skipped"
FAILED = "failed"

# (transaction_id, manifest_path, depth)
EnqueuePath = Callable[[str, str, int], Any]


def manifest_relative_path(path: str, transaction_id: str) -> str:
    """Turn a same-origin link path into a key of the manifest ``paths`` map."""
    relative = path.split("#", 1)[0].split("?", 1)[0].lstrip("/")
    prefix = f"{transaction_id}/"
    if relative.startswith(prefix):
        relative = relative[len(prefix):]
    elif relative == transaction_id:
        relative = ""
    return relative


def is_crawlable_manifest(target: ResolvedTarget) -> bool:
    validation = target.validation
    return (
        target.target_category == TargetCategory.manifest
        and validation is not None
        and validation.is_valid
        and bool(validation.has_index)
    )


class ManifestCrawler:
    """
    Crawls resolved targets into CrawledDocument rows.

    Manifest targets are walked depth-first from their index path, following
    only links that stay inside the manifest; sitemap entries are handed to
    ``enqueue_path`` so they run as independent jobs. Non-manifest targets
    are fetched once and stored at the root path.
    """

    def __init__(
        self,
        gateway: GatewayClient,
        targets: ResolvedTargetRepository,
        documents: CrawledDocumentRepository,
        config: Optional[CrawlConfig] = None,
        enqueue_path: Optional[EnqueuePath] = None,
        batch_size: int = 50,
        concurrency: int = 2,
        allow: NameFilter = None,
        deny: NameFilter = None,
    ):
        self.gateway = gateway
        self.targets = targets
        self.documents = documents
        self.config = config or CrawlConfig()
        self.parser = ContentParser(self.config)
        self.enqueue_path = enqueue_path
        self.batch_size = batch_size
        self.concurrency = concurrency
        self.allow = allow
        self.deny = deny

    async def _save_document(
        self,
        transaction_id: str,
        manifest_path: str,
        url: str,
        content_type: Optional[str],
        depth: int,
        parsed: ParsedDocument,
    ) -> None:
        await self.documents.upsert(
            transaction_id,
            manifest_path,
            depth,
            url=url,
            content_type=content_type,
            **asdict(parsed),
        )

    async def _fetch_manifest_context(
        self,
        transaction_id: str,
        visited_paths: Optional[Set[str]] = None,
    ) -> ManifestCrawlContext:
        manifest = await self.gateway.fetch_manifest(transaction_id)
        return ManifestCrawlContext(
            manifest=manifest if isinstance(manifest, dict) else {},
            robots_rules=None,
            base_url=self.gateway.content_url(transaction_id),
            visited_paths=visited_paths if visited_paths is not None else set(),
        )

    async def _load_robots(self, transaction_id: str, context: ManifestCrawlContext) -> Optional[str]:
        if not context.has_path(ROBOTS_TXT_PATH):
            return None

        robots_url = f"{context.base_url}/{ROBOTS_TXT_PATH}"
        try:
            response = await self.gateway.get(robots_url)
        except httpx.HTTPError as exc:
            logger.warning("Failed to fetch robots.txt for %s: %s", transaction_id, exc)
            return None
        if not response.is_success:
            return None

        robots_txt = response.text
        validation = parse_robots_txt(robots_txt)
        if validation.is_valid and validation.rules:
            context.robots_rules = validation.rules
            await self._save_document(
                transaction_id,
                ROBOTS_TXT_PATH,
                robots_url,
                ROBOTS_CONTENT_TYPE,
                0,
                self.parser.parse_text(robots_txt),
            )
        return robots_txt

    def _sitemap_candidates(self, transaction_id: str, context: ManifestCrawlContext) -> List[str]:
        candidates = [SITEMAP_XML_PATH]
        if context.robots_rules:
            for sitemap_url in context.robots_rules.sitemap_urls:
                link = normalize_link(sitemap_url, context.base_url)
                if not link:
                    continue
                path = manifest_relative_path(link, transaction_id)
                if path and path not in candidates:
                    candidates.append(path)
        return candidates

    async def _load_sitemap(self, transaction_id: str, context: ManifestCrawlContext) -> Optional[str]:
        for sitemap_path in self._sitemap_candidates(transaction_id, context):
            if not context.has_path(sitemap_path):
                continue

            sitemap_url = f"{context.base_url}/{sitemap_path}"
            try:
                response = await self.gateway.get(sitemap_url)
            except httpx.HTTPError as exc:
                logger.warning("Failed to fetch %s for %s: %s", sitemap_path, transaction_id, exc)
                continue
            if not response.is_success:
                continue

            sitemap_xml = response.text
            await self._save_document(
                transaction_id,
                sitemap_path,
                sitemap_url,
                SITEMAP_CONTENT_TYPE,
                0,
                self.parser.parse_text(sitemap_xml),
            )

            validation = parse_sitemap_xml(sitemap_xml)
            if validation.is_valid:
                for path in extract_manifest_paths(validation.entries, context.base_url):
                    relative = manifest_relative_path(path, transaction_id)
                    if context.has_path(relative) and relative not in context.visited_paths:
                        context.visited_paths.add(relative)
                        self._enqueue(transaction_id, relative, 1)
            else:
                logger.debug("Invalid sitemap %s for %s: %s", sitemap_path, transaction_id, validation.error)
            return sitemap_xml
        return None

    def _enqueue(self, transaction_id: str, manifest_path: str, depth: int) -> None:
        if self.enqueue_path is None:
            logger.debug("No path queue configured, dropping %s for %s", manifest_path, transaction_id)
            return
        self.enqueue_path(transaction_id, manifest_path, depth)

    async def crawl_manifest(self, target: ResolvedTarget) -> None:
        transaction_id = target.transaction_id
        context = await self._fetch_manifest_context(transaction_id)

        robots_txt = await self._load_robots(transaction_id, context)
        sitemap_xml = await self._load_sitemap(transaction_id, context)
        await self.targets.update(transaction_id, robots_txt=robots_txt, sitemap_xml=sitemap_xml)

        index_path = (context.manifest.get("index") or {}).get("path")
        if index_path:
            context.visited_paths.add(index_path)
            await self.crawl_manifest_path(target, index_path, 0, context, self.config.max_depth)

        await self.targets.update(
            transaction_id,
            crawl_status=CrawlStatus.crawled,
            crawled_at=utcnow(),
        )

    async def crawl_manifest_path(
        self,
        target: ResolvedTarget,
        manifest_path: str,
        depth: int,
        context: ManifestCrawlContext,
        max_depth: int,
    ) -> None:
        transaction_id = target.transaction_id

        if depth > max_depth:
            logger.debug("Skipping %s for %s: max depth reached", manifest_path, transaction_id)
            return
        if context.robots_rules and not is_path_allowed(f"/{manifest_path}", context.robots_rules):
            logger.debug("Skipping %s for %s: blocked by robots.txt", manifest_path, transaction_id)
            return
        if not context.has_path(manifest_path):
            logger.debug("Skipping %s for %s: not in manifest", manifest_path, transaction_id)
            return

        path_url = f"{context.base_url}/{manifest_path}"
        try:
            response = await self.gateway.get(path_url)
        except httpx.HTTPError as exc:
            logger.error("Error crawling %s for %s: %s", manifest_path, transaction_id, exc)
            return
        if not response.is_success:
            logger.warning(
                "Failed to fetch %s for %s: HTTP %s", manifest_path, transaction_id, response.status_code
            )
            return

        content_type = response.headers.get("content-type")
        if not is_crawlable_content_type(content_type):
            return

        content = response.text
        if is_html_content_type(content_type):
            parsed = self.parser.parse_html(content, path_url)
            if depth < max_depth:
                for link in parsed.links:
                    relative = manifest_relative_path(link, transaction_id)
                    if context.has_path(relative) and relative not in context.visited_paths:
                        context.visited_paths.add(relative)
                        await self.crawl_manifest_path(target, relative, depth + 1, context, max_depth)
        else:
            parsed = self.parser.parse_text(content)

        await self._save_document(transaction_id, manifest_path, path_url, content_type, depth, parsed)

    async def process_crawl_manifest_path(self, transaction_id: str, manifest_path: str, depth: int = 0) -> None:
        """Resume a sitemap-enqueued path in its own job."""
        if not manifest_path:
            logger.warning("Missing manifest_path in crawl job for %s", transaction_id)
            return

        target = await self.targets.get(transaction_id)
        if target is None:
            logger.warning("Target %s not found for manifest path crawl", transaction_id)
            return

        # Visited set is scoped to this job, so paths already crawled by the
        # parent traversal may be fetched again.
        context = await self._fetch_manifest_context(transaction_id, visited_paths={manifest_path})
        if target.robots_txt:
            validation = parse_robots_txt(target.robots_txt)
            if validation.is_valid and validation.rules:
                context.robots_rules = validation.rules

        await self.crawl_manifest_path(target, manifest_path, depth, context, self.config.max_depth)

    async def crawl_simple_target(self, target: ResolvedTarget) -> None:
        transaction_id = target.transaction_id
        response = await self.gateway.fetch_raw(transaction_id)
        content = response.text
        url = self.gateway.content_url(transaction_id)

        if is_html_content_type(target.content_type):
            parsed = self.parser.parse_html(content, url)
        else:
            parsed = self.parser.parse_text(content)

        await self._save_document(transaction_id, ROOT_DOCUMENT_PATH, url, target.content_type, 0, parsed)
        await self.targets.update(
            transaction_id,
            crawl_status=CrawlStatus.crawled,
            crawled_at=utcnow(),
        )

    async def crawl_target(self, target: ResolvedTarget) -> str:
        transaction_id = target.transaction_id
        try:
            await self.targets.update(transaction_id, crawl_status=CrawlStatus.crawling)

            if is_crawlable_manifest(target):
                await self.crawl_manifest(target)
                return CRAWLED

            if is_crawlable_content_type(target.content_type):
                await self.crawl_simple_target(target)
                return CRAWLED

            await self.targets.update(transaction_id, crawl_status=CrawlStatus.skipped)
            return SKIPPED
        except Exception as exc:
            logger.exception("Failed to crawl target %s: %s", transaction_id, exc)
            await self.targets.update(transaction_id, crawl_status=CrawlStatus.failed)
            return FAILED

    async def process_crawl_targets(self) -> Dict[str, int]:
        """Crawl pending targets batch by batch until none are left."""
        totals = {CRAWLED: 0, SKIPPED: 0, FAILED: 0, "batches": 0}

        if self.deny == "*":
            logger.info("Crawl deny-list is '*', skipping all targets")
            return totals

        last_id: Optional[str] = None
        while True:
            batch = await self.targets.find_pending_crawl(
                self.batch_size,
                allow=self.allow,
                deny=self.deny,
                after=last_id,
            )
            if not batch:
                logger.info("No more pending crawl targets after %d batches", totals["batches"])
                break

            totals["batches"] += 1
            logger.info("Batch %d: processing %d targets", totals["batches"], len(batch))
            last_id = batch[-1].transaction_id

            for target, result in await settle_in_chunks(batch, self.concurrency, self.crawl_target):
                if isinstance(result, BaseException):
                    totals[FAILED] += 1
                    logger.error("Error crawling target %s: %s", target.transaction_id, result)
                else:
                    totals[result] += 1

            logger.info(
                "Batch %d complete: crawled=%d, skipped=%d, failed=%d",
                totals["batches"],
                totals[CRAWLED],
                totals[SKIPPED],
                totals[FAILED],
            )

        logger.info(
            "[alarm=crawl-complete] Crawl complete after %d batches: crawled=%d, skipped=%d, failed=%d",
            totals["batches"],
            totals[CRAWLED],
            totals[SKIPPED],
            totals[FAILED],
        )
        return totals


