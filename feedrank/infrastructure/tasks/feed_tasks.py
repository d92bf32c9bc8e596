"""Celery task wrappers for feed background work.

Retry policy: up to 3 additional attempts, 60 s apart.
"""

import asyncio
import logging

from feedrank.infrastructure.tasks.celery_app import celery_app
from feedrank.services.background_tasks import warm_personalized_feed_task

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, name="feed.warm_personalized_feed", max_retries=3)
def warm_personalized_feed(self, user_id: str) -> None:
    """Celery task: recompute and cache the personalised feed of one user."""
    try:
        asyncio.run(warm_personalized_feed_task(user_id))
    except Exception as exc:
        logger.warning(
            "warm_personalized_feed failed (attempt %d/%d): %s",
            self.request.retries + 1,
            self.max_retries + 1,
            exc,
        )
        raise self.retry(exc=exc, countdown=60)
