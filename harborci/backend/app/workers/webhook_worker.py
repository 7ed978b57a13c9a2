# backend/app/workers/webhook_worker.py
import asyncio
import zlib
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, Optional
from celery import Task

from app.core.config import settings
from app.core.logging import logger
from app.workers.celery_app import celery_app, WEBHOOK_QUEUE_PREFIX


def partition_for(repository_key: Optional[str]) -> int:
    """Stable partition index; events without a repository share partition 0"""
    if not repository_key:
        return 0
    return zlib.crc32(repository_key.encode()) % settings.WEBHOOK_PARTITIONS


def queue_for(repository_key: Optional[str]) -> str:
    return f"{WEBHOOK_QUEUE_PREFIX}.{partition_for(repository_key)}"


def enqueue_webhook_event(event_id: str, repository_key: Optional[str] = None) -> None:
    process_webhook_event.apply_async(args=[event_id], queue=queue_for(repository_key))


def enqueue_reconciliation(provider: str, account_ref: str) -> None:
    reconcile_provider_account.delay(provider, account_ref)


def run_async(factory: Callable[[], Awaitable[Any]]) -> Any:
    """Run a coroutine in a fresh loop and drop pooled connections bound to it"""
    from app.db.database import engine

    async def runner():
        try:
            return await factory()
        finally:
            await engine.dispose()

    return asyncio.run(runner())


class WebhookTask(Task):
    """Custom task class for webhook tasks"""

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        logger.error(f"Webhook task {task_id} failed: {exc}", exc_info=True)


@celery_app.task(bind=True, base=WebhookTask, name="process_webhook_event")
def process_webhook_event(self, event_id: str) -> Dict[str, Any]:
    """Interpret one stored webhook event"""
    return run_async(lambda: _process_event_async(event_id))


async def _process_event_async(event_id: str) -> Dict[str, Any]:
    from app.db.database import async_session_local
    from app.services.event_processor import EventProcessor

    async with async_session_local() as session:
        processor = EventProcessor(session)
        return await processor.process(event_id)


@celery_app.task(bind=True, base=WebhookTask, name="recover_webhook_events")
def recover_webhook_events(self) -> int:
    """Re-enqueue events that were stored but never claimed; fail abandoned claims"""
    return run_async(_recover_async)


async def _recover_async() -> int:
    from app.db.database import async_session_local
    from app.db.repositories.webhook_event_repository import WebhookEventRepository
    from app.schemas.webhook import extract_repository_key

    now = datetime.utcnow()
    cutoff = now - timedelta(seconds=settings.WEBHOOK_RECOVERY_AGE_SECONDS)
    claim_cutoff = now - timedelta(seconds=settings.WEBHOOK_STALE_CLAIM_SECONDS)
    async with async_session_local() as session:
        events_repo = WebhookEventRepository(session)
        events = await events_repo.list_unclaimed(cutoff)
        # Events are attempted once; an abandoned claim is recorded as a failure
        abandoned = await events_repo.resolve_stale_claims(
            claim_cutoff, now, "Processing did not finish; the worker stopped after claiming the event"
        )
        await session.commit()

    if abandoned:
        logger.warning(f"Marked {abandoned} abandoned webhook events as failed")

    for event in events:
        enqueue_webhook_event(event.id, extract_repository_key(event.provider, event.payload))

    if events:
        logger.info(f"Re-enqueued {len(events)} unclaimed webhook events")
    return len(events)


@celery_app.task(bind=True, base=WebhookTask, name="reconcile_provider_account")
def reconcile_provider_account(self, provider: str, account_ref: str) -> Dict[str, Any]:
    """Full reconciliation requested by an installation event"""
    return run_async(lambda: _reconcile_async(provider, account_ref))


async def _reconcile_async(provider: str, account_ref: str) -> Dict[str, Any]:
    from app.db.database import async_session_local
    from app.services.reconciler import InstallationReconciler

    async with async_session_local() as session:
        result = await InstallationReconciler(session).sync_account(provider, account_ref)
        return result.model_dump()
