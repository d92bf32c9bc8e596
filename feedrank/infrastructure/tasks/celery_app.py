"""Celery application; broker and result backend are both Redis.

Workers run apart from the API server, so feed recomputation never blocks a
request handler.
"""

from celery import Celery

from feedrank.core.config import settings

celery_app = Celery(
    "feedrank",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["feedrank.infrastructure.tasks.feed_tasks"],
)

celery_app.conf.update(
    # Serialisation
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    # Timezone
    timezone="UTC",
    enable_utc=True,
    # State tracking
    task_track_started=True,
    result_expires=3600,
    # Reliability
    task_acks_late=True,            # ack only after the task finishes
    worker_prefetch_multiplier=1,
    task_reject_on_worker_lost=True,
)
