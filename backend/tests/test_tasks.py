from contextlib import asynccontextmanager
from types import SimpleNamespace

from arns_indexer.services.repository import UnresolvedTarget
from arns_indexer.services.resolution import ProcessResult
from arns_indexer.workers import tasks


def test_cleanup_queues_next_cycle_even_when_archival_fails(monkeypatch):
    queued = []

    async def failing_cleanup():
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(tasks, "_cleanup_expired_records", failing_cleanup)
    monkeypatch.setattr(tasks, "queue_pipeline", lambda delay_seconds=0, settings=None: queued.append(delay_seconds))

    result = tasks.cleanup_expired_records()

    assert result == {"error": "database unavailable"}
    assert queued == [tasks.settings.pipeline_cycle_delay_seconds]


def test_cleanup_reports_archive_counts(monkeypatch):
    queued = []

    async def cleanup():
        return {"archived": 2, "dependents_archived": 5}

    monkeypatch.setattr(tasks, "_cleanup_expired_records", cleanup)
    monkeypatch.setattr(tasks, "queue_pipeline", lambda delay_seconds=0, settings=None: queued.append(delay_seconds))

    assert tasks.cleanup_expired_records() == {"archived": 2, "dependents_archived": 5}
    assert len(queued) == 1


def test_discovery_failure_returns_error(monkeypatch):
    async def failing_discovery():
        raise RuntimeError("cu unreachable")

    monkeypatch.setattr(tasks, "_discover_name_records", failing_discovery)

    assert tasks.discover_name_records() == {"error": "cu unreachable"}


def test_crawl_targets_is_a_no_op_when_crawling_disabled(monkeypatch):
    monkeypatch.setattr(tasks.settings, "crawl_ants_enabled", False)
    assert tasks.crawl_targets() == {"skipped": True}


def test_retrying_tasks_retry_transient_errors():
    assert tasks.TransientNetworkError in tasks.retry_target_resolution.autoretry_for
    assert tasks.retry_target_resolution.max_retries == tasks.settings.job_max_attempts - 1
    assert tasks.TransientNetworkError in tasks.crawl_manifest_path.autoretry_for


def use_resolution_result(monkeypatch, result):
    """Run the retry task against a resolver returning ``result``; return the rescheduled candidates."""
    seen = []
    rescheduled = []

    class Resolver:
        async def process_target(self, candidate, max_retries):
            seen.append((candidate, max_retries))
            return result

    @asynccontextmanager
    async def runtime():
        yield SimpleNamespace(settings=SimpleNamespace(max_resolve_retries=3), resolver=Resolver())

    monkeypatch.setattr(tasks, "indexer_runtime", runtime)
    monkeypatch.setattr(tasks, "schedule_retry", rescheduled.append)
    return seen, rescheduled


def test_retry_resolution_stops_once_resolved(monkeypatch):
    seen, rescheduled = use_resolution_result(monkeypatch, ProcessResult(resolved=True, should_retry=False, retry_count=0))

    assert tasks.retry_target_resolution("tx1", "ardrive", "@") == {"resolved": True, "retry_count": 0}
    assert seen == [(UnresolvedTarget("tx1", "ardrive", "@"), 3)]
    assert rescheduled == []


def test_retry_resolution_reschedules_while_under_cap(monkeypatch):
    _, rescheduled = use_resolution_result(monkeypatch, ProcessResult(resolved=False, should_retry=True, retry_count=1))

    assert tasks.retry_target_resolution("tx1", "ardrive", "@") == {"resolved": False, "retry_count": 1}
    assert rescheduled == [UnresolvedTarget("tx1", "ardrive", "@")]


def test_retry_resolution_gives_up_at_cap(monkeypatch):
    _, rescheduled = use_resolution_result(monkeypatch, ProcessResult(resolved=False, should_retry=False, retry_count=3))

    assert tasks.retry_target_resolution("tx1", None, None) == {"resolved": False, "retry_count": 3}
    assert rescheduled == []
