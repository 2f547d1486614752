"""Celery application setup for background jobs."""

from __future__ import annotations

import os

from celery import Celery
from celery.schedules import crontab
from kombu import Queue

from investrisk.core.config import settings


BATCH_JOBS = ("calculate-brapi-risk", "precalculate-anbima-risks", "precalculate-cvm-risks")

broker_url = os.getenv("CELERY_BROKER_URL", settings.valkey_url)
result_backend = os.getenv("CELERY_RESULT_BACKEND", broker_url)

celery_app = Celery(
    "investrisk",
    broker=broker_url,
    backend=result_backend,
    include=["investrisk.jobs.tasks"],
)

celery_app.conf.update(
    timezone=settings.scheduler_timezone,
    enable_utc=True,
    broker_connection_retry_on_startup=True,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_track_started=True,
    task_soft_time_limit=int(os.getenv("CELERY_TASK_SOFT_TIME_LIMIT", "1800")),
    task_time_limit=int(os.getenv("CELERY_TASK_TIME_LIMIT", "2100")),
    worker_max_tasks_per_child=int(os.getenv("CELERY_MAX_TASKS_PER_CHILD", "100")),
    task_default_queue="default",
    task_routes={f"jobs.{name}": {"queue": "batch"} for name in BATCH_JOBS},
    broker_transport_options={"visibility_timeout": 60 * 60},
    task_queues=(
        Queue("default", routing_key="default"),
        Queue("batch", routing_key="batch"),
    ),
    # Each schedule starts chunk 0; later chunks are chained by the tasks
    beat_schedule={
        "calculate-brapi-risk-daily": {
            "task": "jobs.calculate-brapi-risk",
            "schedule": crontab(hour=3, minute=0),
        },
        "precalculate-anbima-risks-daily": {
            "task": "jobs.precalculate-anbima-risks",
            "schedule": crontab(hour=4, minute=0),
        },
        "precalculate-cvm-risks-weekly": {
            "task": "jobs.precalculate-cvm-risks",
            "schedule": crontab(hour=5, minute=0, day_of_week=1),
        },
    },
)
