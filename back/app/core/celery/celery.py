# Standard library imports
from typing import Any

# Third-party imports
from celery import Celery
from celery.signals import task_failure, task_retry, task_success

# Local application imports
from app.settings import settings

celery_app = Celery(
    "nearby_verify",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["app.tasks"],
)

# Configure Celery
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    worker_prefetch_multiplier=1,
    worker_concurrency=settings.CELERY_WORKER_CONCURRENCY,
    task_acks_late=True,  # Acknowledge tasks only after completion
    task_reject_on_worker_lost=True,
    task_track_started=True,
    task_time_limit=settings.CELERY_TASK_TIME_LIMIT,
    task_soft_time_limit=settings.CELERY_TASK_SOFT_TIME_LIMIT,
    worker_max_tasks_per_child=1000,
    task_default_retry_delay=60,
    task_max_retries=3,
    worker_log_format="[%(asctime)s: %(levelname)s/%(processName)s] %(message)s",
    worker_task_log_format="[%(asctime)s: %(levelname)s/%(processName)s] [%(task_name)s(%(task_id)s)] %(message)s",
    # RedBeat configuration
    beat_scheduler="redbeat.RedBeatScheduler",
    redbeat_redis_url=settings.CELERY_BROKER_URL,  # Use the same Redis instance
    redbeat_key_prefix="redbeat",
    redbeat_lock_timeout=settings.SCHEDULER_INTERVAL_SECONDS * 2,
)

celery_app.conf.beat_schedule = {
    # Repost or expire issues whose verification window has passed
    "review-expired-issues": {
        "task": "app.tasks.issue_tasks.review_expired_issues_task",
        "schedule": float(settings.SCHEDULER_INTERVAL_SECONDS),
        # Drop ticks still queued when the next one is due
        "options": {"expires": settings.SCHEDULER_INTERVAL_SECONDS},
    },
}


def _task_logger(event: str, task_id: str | None = None):
    # Local application imports
    from app.core.monitoring.logging import get_contextual_logger

    context = {"task_id": task_id} if task_id else {}
    return get_contextual_logger(f"celery.task.{event}", **context)


@task_retry.connect  # type: ignore[misc]
def log_task_retry(sender: Any = None, request: Any = None, reason: Any = None, **kwargs: Any) -> None:  # noqa: ARG001
    task_id = getattr(request, "id", None)
    _task_logger("retry", task_id).warning(f"{sender.name} retrying: {reason}")


@task_failure.connect  # type: ignore[misc]
def log_task_failure(
    sender: Any = None,
    task_id: str | None = None,
    exception: BaseException | None = None,
    **kwargs: Any,  # noqa: ARG001
) -> None:
    # Per-issue errors are caught inside a tick; this is a whole-tick failure
    _task_logger("failure", task_id).error(f"{sender.name} failed: {exception!r}")


@task_success.connect  # type: ignore[misc]
def log_task_success(sender: Any = None, result: Any = None, **kwargs: Any) -> None:  # noqa: ARG001
    _task_logger("success").info(f"{sender.name} finished: {result}")


if __name__ == "__main__":
    print("Registered tasks:")
    for task_name in sorted(name for name in celery_app.tasks if not name.startswith("celery.")):
        print(f"  - {task_name}")

    print("\nBeat schedule:")
    for schedule_name, config in celery_app.conf.beat_schedule.items():
        print(f"  - {schedule_name}: {config['task']} every {config['schedule']}s")
