"""
Celery tasks that run the verification engine outside the API process.
"""

# Third-party imports
from sqlalchemy.pool import NullPool

# Local application imports
from app.core.caching.redis import create_redis_client
from app.core.celery.celery import celery_app
from app.core.db.create_async_engine import create_async_engine
from app.core.db.get_async_session import make_session_factory
from app.core.db.run_with_new_session import run_with_new_session
from app.core.monitoring.logging import get_contextual_logger
from app.services.issues.engine import IssueEngine
from app.services.issues.repost_scheduler import review_expired_issues
from app.services.realtime.redis_bridge import RedisEventBridge
from app.settings import settings
from app.utils.celery_utils import celery_async_task

logger = get_contextual_logger(__name__)


async def _run_review_tick() -> dict[str, int]:
    # Every task run gets its own event loop, so pooled connections can't be reused
    db_engine = create_async_engine(poolclass=NullPool)
    redis_client = create_redis_client() if settings.REALTIME_REDIS_ENABLED else None
    engine = IssueEngine()
    bridge = RedisEventBridge(engine.fanout, client=redis_client) if redis_client is not None else None

    try:
        report = await run_with_new_session(
            review_expired_issues,
            engine,
            session_factory=make_session_factory(db_engine),
        )
    finally:
        if bridge is not None:
            sent = await bridge.flush()
            logger.debug(f"Relayed {sent} change events to API processes")
            await redis_client.aclose()
        await db_engine.dispose()

    if report.failed:
        logger.warning(f"{len(report.failed)} issues failed expiry review: {[str(i) for i in report.failed]}")
    return report.summary()


@celery_app.task(bind=True, name="app.tasks.issue_tasks.review_expired_issues_task", ignore_result=False)
@celery_async_task
async def review_expired_issues_task(self) -> dict[str, int]:  # noqa: ARG001
    """Periodic scheduler tick: repost or expire issues past their window."""
    return await _run_review_tick()
