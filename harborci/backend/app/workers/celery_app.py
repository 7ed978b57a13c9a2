# backend/app/workers/celery_app.py
from celery import Celery
from kombu import Queue

from app.core.config import settings

WEBHOOK_QUEUE_PREFIX = "webhooks"


def webhook_queue_names():
    return [f"{WEBHOOK_QUEUE_PREFIX}.{i}" for i in range(settings.WEBHOOK_PARTITIONS)]


celery_app = Celery(
    "harborci",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["app.workers.webhook_worker"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_default_queue="default",
    # One worker with concurrency 1 per webhooks.N queue keeps per-repository order
    task_queues=[Queue("default")] + [Queue(name) for name in webhook_queue_names()],
    beat_schedule={
        "recover-webhook-events": {
            "task": "recover_webhook_events",
            "schedule": float(settings.WEBHOOK_RECOVERY_INTERVAL_SECONDS),
        },
    },
)
