"""
Celery Application Configuration
"""

from celery import Celery

from core.config import get_settings
from core.logging import configure_logging

settings = get_settings()
configure_logging()

celery_app = Celery(
    "threadcount",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["workers.sync"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    worker_prefetch_multiplier=1,
    task_routes={
        "workers.sync.*": {"queue": "sync"},
    },
)
