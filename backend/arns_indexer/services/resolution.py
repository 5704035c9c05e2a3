"""Target resolution: classify a transaction, validate manifests, drive the retry state machine."""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import httpx

from arns_indexer.models import (
    CrawlStatus,
    ManifestValidation,
    ResolutionStatus,
    ResolvedTarget,
    TargetCategory,
)
from arns_indexer.models.base import utcnow
from arns_indexer.services.crawler.constants import (
    AO_PROTOCOL_VALUE,
    AO_PROTOCOL_TAG,
    AO_PROCESS_TYPE,
    AO_TYPE_TAG,
    CONTENT_TYPE_TAG,
    MANIFEST_CONTENT_TYPE,
    MANIFEST_MARKER,
    MANIFEST_VERSION,
)
from arns_indexer.services.crawler.parser import is_crawlable_content_type
from arns_indexer.services.batching import settle_in_chunks
from arns_indexer.services.errors import TransientNetworkError
from arns_indexer.services.gateway import GatewayClient
from arns_indexer.services.repository import ResolvedTargetRepository, UnresolvedTarget
from arns_indexer.config import NameFilter

logger = logging.getLogger(__name__)

RESOLVED = "resolved"
NOT_FOUND = "not_found"
ERROR = "error"


@dataclass
class ResolutionResult:
    status: str
    content_type: Optional[str] = None
    tags: Dict[str, str] = field(default_factory=dict)
    error: Optional[str] = None


@dataclass
class ProcessResult:
    resolved: bool
    should_retry: bool
    retry_count: int


def determine_crawl_status(
    crawl_enabled: bool,
    category: Optional[TargetCategory],
    validation: Optional[ManifestValidation],
    content_type: Optional[str],
) -> CrawlStatus:
    """Crawl eligibility for a freshly resolved target."""
    if not crawl_enabled:
        return CrawlStatus.skipped

    if (
        category == TargetCategory.manifest
        and validation is not None
        and validation.is_valid
        and validation.has_index
    ):
        return CrawlStatus.pending

    if is_crawlable_content_type(content_type):
        return CrawlStatus.pending

    return CrawlStatus.skipped


class TargetResolver:
    """Owns the pending -> resolved / not_found lifecycle of ResolvedTarget rows."""

    def __init__(
        self,
        gateway: GatewayClient,
        targets: ResolvedTargetRepository,
        crawl_enabled: bool = False,
        allow: NameFilter = None,
        deny: NameFilter = None,
    ):
        self.gateway = gateway
        self.targets = targets
        self.crawl_enabled = crawl_enabled
        self.allow = allow
        self.deny = deny
        logger.info(
            "Using Arweave gateway: %s, crawl enabled: %s", gateway.base_url, crawl_enabled
        )

    async def find_unresolved_targets(
        self,
        max_retries: int,
        limit: int = 100,
        after: Optional[str] = None,
    ) -> List[UnresolvedTarget]:
        if self.deny == "*":
            logger.info("Resolution deny-list is '*', skipping target lookup")
            return []
        return await self.targets.find_unresolved(
            max_retries,
            limit,
            allow=self.allow,
            deny=self.deny,
            after=after,
        )

    async def resolve_transaction_tags(self, transaction_id: str) -> ResolutionResult:
        try:
            response = await self.gateway.query_transaction_tags(transaction_id)

            if response.status_code == 404:
                return ResolutionResult(status=NOT_FOUND)
            if not response.is_success:
                raise TransientNetworkError(
                    f"HTTP {response.status_code}: {response.reason_phrase}",
                    status_code=response.status_code,
                )

            data = response.json()
        except (httpx.HTTPError, TransientNetworkError, ValueError) as exc:
            logger.error("Failed to resolve tags for %s: %s", transaction_id, exc)
            return ResolutionResult(status=ERROR, error=str(exc) or exc.__class__.__name__)

        if data.get("errors"):
            logger.warning("GraphQL errors for %s: %s", transaction_id, json.dumps(data["errors"]))

        transaction = (data.get("data") or {}).get("transaction")
        if not transaction:
            return ResolutionResult(status=NOT_FOUND)

        tags: Dict[str, str] = {}
        for tag in transaction.get("tags") or []:
            name = tag.get("name")
            value = tag.get("value")
            if name is None:
                continue
            if name == CONTENT_TYPE_TAG and isinstance(value, str):
                # Tag transport decodes "+" to a space
                value = value.replace(" ", "+")
            tags[name] = value

        return ResolutionResult(
            status=RESOLVED,
            content_type=tags.get(CONTENT_TYPE_TAG) or None,
            tags=tags,
        )

    def categorize_target(self, content_type: Optional[str], tags: Dict[str, str]) -> TargetCategory:
        if content_type == MANIFEST_CONTENT_TYPE:
            return TargetCategory.manifest
        if tags.get(AO_PROTOCOL_TAG) == AO_PROTOCOL_VALUE and tags.get(AO_TYPE_TAG) == AO_PROCESS_TYPE:
            return TargetCategory.ao_process
        return TargetCategory.transaction

    async def validate_manifest(self, transaction_id: str) -> ManifestValidation:
        try:
            response = await self.gateway.get(self.gateway.raw_url(transaction_id))
            if not response.is_success:
                return ManifestValidation(
                    is_valid=False,
                    error=f"Failed to fetch manifest: HTTP {response.status_code}",
                )
            manifest = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            return ManifestValidation(is_valid=False, error=f"Failed to parse manifest: {exc}")

        if not isinstance(manifest, dict):
            return ManifestValidation(is_valid=False, error="Failed to parse manifest: not a JSON object")

        if manifest.get("manifest") != MANIFEST_MARKER:
            return ManifestValidation(
                is_valid=False, error=f"Invalid manifest type: {manifest.get('manifest')}"
            )
        if manifest.get("version") != MANIFEST_VERSION:
            return ManifestValidation(
                is_valid=False, error=f"Unsupported manifest version: {manifest.get('version')}"
            )

        paths = manifest.get("paths") or {}
        index = manifest.get("index") or {}
        fallback = manifest.get("fallback") or {}
        return ManifestValidation(
            is_valid=True,
            path_count=len(paths),
            has_index=bool(isinstance(index, dict) and index.get("path")),
            has_fallback=bool(isinstance(fallback, dict) and fallback.get("id")),
        )

    def determine_crawl_status(self, target: ResolvedTarget) -> CrawlStatus:
        return determine_crawl_status(
            self.crawl_enabled,
            target.target_category,
            target.validation,
            target.content_type,
        )

    async def process_target(self, candidate: UnresolvedTarget, max_retries: int) -> ProcessResult:
        """
        Run one resolution attempt for ``candidate``.

        A NotFound answer counts against ``max_retries``; a transport or
        gateway error leaves the row untouched and raises
        ``TransientNetworkError`` so the job layer can retry the same attempt.
        """
        transaction_id = candidate.transaction_id
        target = await self.targets.get(transaction_id)
        if target is None:
            target = ResolvedTarget(
                transaction_id=transaction_id,
                status=ResolutionStatus.pending,
                retry_count=0,
            )
        if not target.arns_name and candidate.arns_name:
            target.arns_name = candidate.arns_name
        if not target.undername and candidate.undername:
            target.undername = candidate.undername

        result = await self.resolve_transaction_tags(transaction_id)

        if result.status == RESOLVED:
            target.status = ResolutionStatus.resolved
            target.content_type = result.content_type
            target.target_category = self.categorize_target(result.content_type, result.tags)
            target.resolved_at = utcnow()

            if target.target_category == TargetCategory.manifest:
                validation = await self.validate_manifest(transaction_id)
                target.manifest_validation = validation.to_dict()

            target.crawl_status = self.determine_crawl_status(target)
            await self.targets.save(target)

            logger.info(
                "Resolved target %s: %s (%s), crawl_status=%s",
                transaction_id,
                target.target_category.value,
                target.content_type,
                target.crawl_status.value,
            )
            return ProcessResult(resolved=True, should_retry=False, retry_count=target.retry_count or 0)

        if result.status == NOT_FOUND:
            target.retry_count = (target.retry_count or 0) + 1
            if target.retry_count >= max_retries:
                target.status = ResolutionStatus.not_found
                logger.warning(
                    "Target %s marked as not found after %d attempts", transaction_id, target.retry_count
                )
            else:
                target.status = ResolutionStatus.pending
                logger.info(
                    "Target %s not found, retry %d/%d", transaction_id, target.retry_count, max_retries
                )
            await self.targets.save(target)
            return ProcessResult(
                resolved=False,
                should_retry=target.retry_count < max_retries,
                retry_count=target.retry_count,
            )

        logger.error("Error resolving target %s: %s", transaction_id, result.error)
        raise TransientNetworkError(result.error or "tag lookup failed")

    async def get_stats(self) -> Dict[str, object]:
        return await self.targets.stats()

    async def process_unresolved_targets(
        self,
        max_retries: int,
        batch_size: int = 100,
        concurrency: int = 2,
        schedule_retry: Optional[Callable[[UnresolvedTarget], Any]] = None,
    ) -> Dict[str, int]:
        """Resolve batches of candidates until none are left.

        Candidates that stay NotFound under the retry cap are handed to
        ``schedule_retry``. Batches page forward by transaction id, so each
        candidate is tried at most once per call.
        """
        totals = {"resolved": 0, "queued_retry": 0, "failed": 0, "errors": 0, "batches": 0}
        last_id: Optional[str] = None

        async def resolve(candidate: UnresolvedTarget) -> ProcessResult:
            return await self.process_target(candidate, max_retries)

        while True:
            batch = await self.find_unresolved_targets(max_retries, batch_size, after=last_id)
            if not batch:
                logger.info("No more unresolved targets after %d batches", totals["batches"])
                break

            totals["batches"] += 1
            last_id = batch[-1].transaction_id
            logger.info(
                "Batch %d: processing %d targets with concurrency %d",
                totals["batches"],
                len(batch),
                concurrency,
            )

            for candidate, result in await settle_in_chunks(batch, concurrency, resolve):
                if isinstance(result, BaseException):
                    totals["errors"] += 1
                    logger.error("Error processing target %s: %s", candidate.transaction_id, result)
                elif result.resolved:
                    totals["resolved"] += 1
                elif result.should_retry:
                    if schedule_retry is not None:
                        schedule_retry(candidate)
                    totals["queued_retry"] += 1
                else:
                    totals["failed"] += 1

            logger.info(
                "Batch %d complete: resolved=%d, queued_retry=%d, failed=%d, errors=%d",
                totals["batches"],
                totals["resolved"],
                totals["queued_retry"],
                totals["failed"],
                totals["errors"],
            )

        stats = await self.get_stats()
        logger.info(
            "[alarm=target-resolution-complete] Resolution complete after %d batches: "
            "resolved=%d, queued_retry=%d, failed=%d, errors=%d. Total stats: %s",
            totals["batches"],
            totals["resolved"],
            totals["queued_retry"],
            totals["failed"],
            totals["errors"],
            json.dumps(stats),
        )
        return totals
