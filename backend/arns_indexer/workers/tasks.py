import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
from celery.signals import task_failure, worker_ready
from celery.utils.log import get_task_logger

from arns_indexer.config import Settings, describe_name_filter, get_settings
from arns_indexer.models.base import build_engine, build_session_maker
from arns_indexer.services.crawler import CrawlConfig, ManifestCrawler
from arns_indexer.services.errors import TransientNetworkError
from arns_indexer.services.gateway import GatewayClient, build_http_client
from arns_indexer.services.records import AoComputeUnitSource, RecordDiscovery
from arns_indexer.services.repository import (
    CrawledDocumentRepository,
    RecordRepository,
    ResolvedTargetRepository,
    UnresolvedTarget,
)
from arns_indexer.services.resolution import TargetResolver
from arns_indexer.workers.celery_app import celery_app
from arns_indexer.workers.pipeline import TASK_PREFIX, queue_pipeline

logger = get_task_logger(__name__)

settings = get_settings()

RETRYABLE_ERRORS = (TransientNetworkError, httpx.HTTPError)

RETRYING_TASK_OPTIONS = {
    "autoretry_for": RETRYABLE_ERRORS,
    "max_retries": settings.job_max_attempts - 1,
    "retry_backoff": settings.job_backoff_base_seconds,
    "retry_jitter": False,
}


@dataclass
class IndexerRuntime:
    settings: Settings
    gateway: GatewayClient
    targets: ResolvedTargetRepository
    documents: CrawledDocumentRepository
    records: RecordRepository
    resolver: TargetResolver
    crawler: ManifestCrawler
    discovery: RecordDiscovery


def run_async(coro):
    """Run a coroutine on a fresh event loop owned by this task."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def enqueue_manifest_path(transaction_id: str, manifest_path: str, depth: int) -> None:
    crawl_manifest_path.apply_async(
        kwargs={"transaction_id": transaction_id, "manifest_path": manifest_path, "depth": depth}
    )


def schedule_retry(candidate: UnresolvedTarget) -> None:
    retry_target_resolution.apply_async(
        kwargs={
            "transaction_id": candidate.transaction_id,
            "arns_name": candidate.arns_name,
            "undername": candidate.undername,
        },
        countdown=settings.resolve_retry_delay_seconds,
    )


@asynccontextmanager
async def indexer_runtime(settings: Optional[Settings] = None):
    """Per-task wiring: its own engine, HTTP client and services."""
    settings = settings or get_settings()
    engine = build_engine(settings.database_url, echo=settings.debug, null_pool=True)
    session_maker = build_session_maker(engine)
    client = build_http_client(settings)

    gateway = GatewayClient.from_settings(client, settings)
    targets = ResolvedTargetRepository(session_maker)
    documents = CrawledDocumentRepository(session_maker)
    records = RecordRepository(session_maker)
    source = AoComputeUnitSource(
        client,
        settings.cu_url,
        settings.ario_process_id,
        page_size=settings.name_records_page_size,
    )

    try:
        yield IndexerRuntime(
            settings=settings,
            gateway=gateway,
            targets=targets,
            documents=documents,
            records=records,
            resolver=TargetResolver(
                gateway,
                targets,
                crawl_enabled=settings.crawl_ants_enabled,
                allow=settings.resolution_allow,
                deny=settings.resolution_deny,
            ),
            crawler=ManifestCrawler(
                gateway,
                targets,
                documents,
                config=CrawlConfig.from_settings(settings),
                enqueue_path=enqueue_manifest_path,
                batch_size=settings.crawl_batch_size,
                concurrency=settings.crawl_concurrency,
                allow=settings.crawl_allow,
                deny=settings.crawl_deny,
            ),
            discovery=RecordDiscovery.from_settings(source, records, settings),
        )
    finally:
        await client.aclose()
        await engine.dispose()


async def _discover_name_records() -> int:
    async with indexer_runtime() as runtime:
        return await runtime.discovery.update_name_records_index()


async def _discover_process_records() -> int:
    async with indexer_runtime() as runtime:
        return await runtime.discovery.update_process_records_index()


async def _cleanup_expired_records() -> Dict[str, int]:
    async with indexer_runtime() as runtime:
        return await runtime.records.archive_expired_records()


async def _resolve_targets() -> Dict[str, int]:
    async with indexer_runtime() as runtime:
        return await runtime.resolver.process_unresolved_targets(
            runtime.settings.max_resolve_retries,
            batch_size=runtime.settings.resolution_batch_size,
            concurrency=runtime.settings.resolution_concurrency,
            schedule_retry=schedule_retry,
        )


async def _retry_target_resolution(candidate: UnresolvedTarget) -> Dict[str, Any]:
    async with indexer_runtime() as runtime:
        max_retries = runtime.settings.max_resolve_retries
        result = await runtime.resolver.process_target(candidate, max_retries)

    if result.resolved:
        logger.info("Successfully resolved target %s on retry", candidate.transaction_id)
    elif result.should_retry:
        schedule_retry(candidate)
        logger.info(
            "Target %s still not found, queued retry %d/%d",
            candidate.transaction_id,
            result.retry_count + 1,
            max_retries,
        )
    else:
        logger.warning(
            "Target %s marked as not found after %d retries", candidate.transaction_id, result.retry_count
        )
    return {"resolved": result.resolved, "retry_count": result.retry_count}


async def _crawl_targets() -> Dict[str, int]:
    async with indexer_runtime() as runtime:
        return await runtime.crawler.process_crawl_targets()


async def _crawl_manifest_path(transaction_id: str, manifest_path: str, depth: int) -> None:
    async with indexer_runtime() as runtime:
        await runtime.crawler.process_crawl_manifest_path(transaction_id, manifest_path, depth)


@celery_app.task(name=f"{TASK_PREFIX}.discover_name_records")
def discover_name_records():
    """Refresh arns_records from the registry."""
    try:
        count = run_async(_discover_name_records())
        return {"upserted": count}
    except Exception as e:
        logger.exception("Name record discovery failed: %s", e)
        return {"error": str(e)}


@celery_app.task(name=f"{TASK_PREFIX}.discover_process_records")
def discover_process_records():
    """Refresh ant_records from each name's ANT process state."""
    try:
        count = run_async(_discover_process_records())
        return {"upserted": count}
    except Exception as e:
        logger.exception("Process record discovery failed: %s", e)
        return {"error": str(e)}


@celery_app.task(name=f"{TASK_PREFIX}.cleanup_expired_records")
def cleanup_expired_records():
    """Archive expired leases, then queue the next cycle."""
    try:
        result = run_async(_cleanup_expired_records())
        logger.info(
            "[alarm=cleanup-complete] Archived %d expired records and %d dependent records",
            result["archived"],
            result["dependents_archived"],
        )
    except Exception as e:
        logger.exception("Expired record cleanup failed: %s", e)
        result = {"error": str(e)}

    queue_pipeline(settings.pipeline_cycle_delay_seconds)
    logger.info("Queued next indexing cycle in %ds", settings.pipeline_cycle_delay_seconds)
    return result


@celery_app.task(name=f"{TASK_PREFIX}.resolve_targets")
def resolve_targets():
    """Resolve every unresolved target in batches."""
    logger.info("Starting batch target resolution")
    return run_async(_resolve_targets())


@celery_app.task(name=f"{TASK_PREFIX}.retry_target_resolution", **RETRYING_TASK_OPTIONS)
def retry_target_resolution(transaction_id: str, arns_name: str = "", undername: str = ""):
    logger.info("Retrying resolution for target %s", transaction_id)
    candidate = UnresolvedTarget(
        transaction_id=transaction_id,
        arns_name=arns_name or "",
        undername=undername or "",
    )
    return run_async(_retry_target_resolution(candidate))


@celery_app.task(name=f"{TASK_PREFIX}.crawl_targets")
def crawl_targets():
    """Crawl every pending target in batches."""
    if not settings.crawl_ants_enabled:
        logger.debug("Crawling disabled, skipping crawl_targets")
        return {"skipped": True}
    logger.info(
        "Starting batch content crawl (whitelist: %s, blacklist: %s)",
        describe_name_filter(settings.crawl_allow),
        describe_name_filter(settings.crawl_deny),
    )
    return run_async(_crawl_targets())


@celery_app.task(name=f"{TASK_PREFIX}.crawl_manifest_path", **RETRYING_TASK_OPTIONS)
def crawl_manifest_path(transaction_id: str, manifest_path: str, depth: int = 0):
    if not settings.crawl_ants_enabled:
        logger.debug("Crawling disabled, skipping %s for %s", manifest_path, transaction_id)
        return
    run_async(_crawl_manifest_path(transaction_id, manifest_path, depth))


@worker_ready.connect
def start_pipeline(sender=None, **kwargs):
    if settings.purge_queues_on_start:
        purged = celery_app.control.purge()
        logger.info("Purged %s pending messages before start", purged)
    queue_pipeline(0)
    logger.info(
        "Queued indexing pipeline (resolution=%s, crawl=%s)",
        settings.target_resolution_enabled,
        settings.crawl_ants_enabled,
    )


@task_failure.connect
def log_task_failure(sender=None, task_id=None, exception=None, **kwargs):
    name = getattr(sender, "name", "unknown").rsplit(".", 1)[-1]
    logger.error("[alarm=failed-job-%s] Failed %s [%s]: %s", name, name, task_id, exception)
