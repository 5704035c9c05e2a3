"""Stage graph for the indexing cycle.

A stage starts only after all of its children have finished. The graph is
linearized depth-first (children before parent) into a Celery chain of
immutable signatures, so a single submission runs the whole cycle in order.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from celery import chain

from arns_indexer.config import Settings, get_settings

TASK_PREFIX = "arns_indexer.workers.tasks"

DISCOVER_NAME_RECORDS = "discover_name_records"
DISCOVER_PROCESS_RECORDS = "discover_process_records"
CLEANUP_EXPIRED_RECORDS = "cleanup_expired_records"
RESOLVE_TARGETS = "resolve_targets"
CRAWL_TARGETS = "crawl_targets"


@dataclass
class Stage:
    name: str
    children: List["Stage"] = field(default_factory=list)

    def execution_order(self) -> List[str]:
        order: List[str] = []
        for child in self.children:
            order.extend(child.execution_order())
        order.append(self.name)
        return order


def compose_pipeline(settings: Optional[Settings] = None) -> Stage:
    settings = settings or get_settings()

    stage = Stage(
        CLEANUP_EXPIRED_RECORDS,
        [Stage(DISCOVER_PROCESS_RECORDS, [Stage(DISCOVER_NAME_RECORDS)])],
    )
    if settings.target_resolution_enabled:
        stage = Stage(RESOLVE_TARGETS, [stage])
    if settings.crawl_ants_enabled:
        stage = Stage(CRAWL_TARGETS, [stage])
    return stage


def pipeline_signature(settings: Optional[Settings] = None, countdown: int = 0):
    """Celery chain for one full cycle; ``countdown`` delays the first stage."""
    from arns_indexer.workers.celery_app import celery_app

    names = compose_pipeline(settings).execution_order()
    signatures = [celery_app.signature(f"{TASK_PREFIX}.{name}", immutable=True) for name in names]
    if countdown:
        signatures[0] = signatures[0].set(countdown=countdown)
    return chain(*signatures)


def queue_pipeline(delay_seconds: int = 0, settings: Optional[Settings] = None):
    return pipeline_signature(settings, countdown=delay_seconds).apply_async()
