from celery import Celery
from arns_indexer.config import get_settings

settings = get_settings()

BATCH_STAGE_TIME_LIMIT = 6 * 3600

# Redis redelivers unacked messages after the visibility timeout, including
# ETA messages still waiting on a countdown. Keep it past the longest
# countdown plus a full batch stage.
VISIBILITY_TIMEOUT_SECONDS = (
    max(settings.resolve_retry_delay_seconds, settings.pipeline_cycle_delay_seconds)
    + BATCH_STAGE_TIME_LIMIT
    + 3600
)

celery_app = Celery(
    "arns_indexer",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["arns_indexer.workers.tasks"],
)

celery_app.conf.update(
    broker_transport_options={"visibility_timeout": VISIBILITY_TIMEOUT_SECONDS},
    result_backend_transport_options={"visibility_timeout": VISIBILITY_TIMEOUT_SECONDS},
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_ignore_result=True,
    result_expires=settings.job_result_expires_seconds,
    task_routes={
        "arns_indexer.workers.tasks.discover_name_records": {"queue": "arns.records"},
        "arns_indexer.workers.tasks.discover_process_records": {"queue": "arns.records"},
        "arns_indexer.workers.tasks.cleanup_expired_records": {"queue": "arns.records"},
        "arns_indexer.workers.tasks.resolve_targets": {"queue": "arns.resolution"},
        "arns_indexer.workers.tasks.retry_target_resolution": {"queue": "arns.resolution"},
        "arns_indexer.workers.tasks.crawl_targets": {"queue": "arns.crawl"},
        "arns_indexer.workers.tasks.crawl_manifest_path": {"queue": "arns.crawl"},
    },
    # Batch stages loop until their backlog is drained, so they get a longer ceiling.
    task_annotations={
        "arns_indexer.workers.tasks.resolve_targets": {"time_limit": BATCH_STAGE_TIME_LIMIT, "soft_time_limit": BATCH_STAGE_TIME_LIMIT - 60},
        "arns_indexer.workers.tasks.crawl_targets": {"time_limit": BATCH_STAGE_TIME_LIMIT, "soft_time_limit": BATCH_STAGE_TIME_LIMIT - 60},
        "arns_indexer.workers.tasks.retry_target_resolution": {"time_limit": 300, "soft_time_limit": 240},
        "arns_indexer.workers.tasks.crawl_manifest_path": {"time_limit": 900, "soft_time_limit": 840},
    },
)
