from arns_indexer.workers.celery_app import BATCH_STAGE_TIME_LIMIT, celery_app, settings


def test_visibility_timeout_outlasts_countdowns():
    timeout = celery_app.conf.broker_transport_options["visibility_timeout"]
    longest_countdown = max(settings.resolve_retry_delay_seconds, settings.pipeline_cycle_delay_seconds)

    assert timeout > settings.resolve_retry_delay_seconds
    assert timeout > settings.pipeline_cycle_delay_seconds
    assert timeout > longest_countdown + BATCH_STAGE_TIME_LIMIT


def test_batch_stage_time_limits_fit_inside_visibility_timeout():
    timeout = celery_app.conf.broker_transport_options["visibility_timeout"]
    for name, options in celery_app.conf.task_annotations.items():
        assert options["time_limit"] < timeout, name
        assert options["soft_time_limit"] < options["time_limit"], name


def test_acks_late_with_single_prefetch():
    assert celery_app.conf.task_acks_late is True
    assert celery_app.conf.worker_prefetch_multiplier == 1
