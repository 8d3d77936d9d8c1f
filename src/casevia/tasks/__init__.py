"""Task queue system initialization for casevia.

Pipeline steps run as Celery tasks with Redis as the message broker and result
backend. Tasks are routed to the ``pipeline`` queue.
"""
from __future__ import annotations

import logging

from celery import Celery

from casevia.core.settings import get_settings

logger = logging.getLogger(__name__)

PIPELINE_QUEUE = "pipeline"

# Global Celery app instance
_celery_app: Celery | None = None


def get_celery_app() -> Celery:
    """Get or create the Celery application instance."""
    global _celery_app

    if _celery_app is None:
        settings = get_settings()

        _celery_app = Celery(
            "casevia",
            broker=settings.redis_url,
            backend=settings.redis_url,
            include=["casevia.tasks.worker"],
        )

        _celery_app.conf.update(
            task_serializer="json",
            accept_content=["json"],
            result_serializer="json",
            timezone="UTC",
            enable_utc=True,

            # One project step at a time per worker process
            worker_prefetch_multiplier=1,
            task_acks_late=True,

            result_expires=3600,  # 1 hour
            result_backend_transport_options={
                "retry_policy": {"timeout": 5.0}
            },

            task_default_queue=PIPELINE_QUEUE,
            task_routes={"casevia.tasks.worker.*": {"queue": PIPELINE_QUEUE}},

            # Model calls are the slowest step
            task_time_limit=600,
            task_soft_time_limit=540,
        )

        logger.info("Celery application initialized with Redis broker")

    return _celery_app

