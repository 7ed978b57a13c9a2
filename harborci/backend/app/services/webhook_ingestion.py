# backend/app/services/webhook_ingestion.py
"""
Webhook ingestion: authenticate, deduplicate, persist, enqueue.

Nothing here interprets the payload beyond what is needed to verify and
route it; unknown repositories are still recorded and acknowledged.
"""

import hashlib
from datetime import datetime
from typing import Callable, Dict, Mapping, Optional
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import (
    AuthenticationError,
    ForbiddenError,
    NotConfiguredError,
    NotFoundError,
    PayloadTooLargeError,
)
from app.core.logging import logger
from app.db.repositories.integration_repository import GitHubAppRepository
from app.db.repositories.repo_repository import RepoRepository
from app.db.repositories.webhook_event_repository import WebhookEventRepository
from app.schemas.webhook import extract_gitlab_project_id, extract_repository_key
from app.services.credential_store import CredentialStore
from app.services.signature_verifier import verify_signature

ACCEPTED = "accepted"
DUPLICATE = "duplicate"


def fallback_delivery_id(body: bytes) -> str:
    return f"sha256:{hashlib.sha256(body).hexdigest()}"


def default_enqueue(event_id: str, repository_key: Optional[str]) -> None:
    from app.workers.webhook_worker import enqueue_webhook_event

    enqueue_webhook_event(event_id, repository_key)


class WebhookIngestionService:
    """Fast accept path for provider webhooks"""

    def __init__(
        self,
        session: AsyncSession,
        credential_store: Optional[CredentialStore] = None,
        enqueue: Optional[Callable[[str, Optional[str]], None]] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.session = session
        self.events = WebhookEventRepository(session)
        self.credential_store = credential_store or CredentialStore(session)
        self.enqueue = enqueue or default_enqueue
        self.clock = clock

    def _check_size(self, body: bytes) -> None:
        if len(body) > settings.MAX_WEBHOOK_BYTES:
            raise PayloadTooLargeError(f"Webhook body exceeds {settings.MAX_WEBHOOK_BYTES} bytes")

    async def github_webhook_secret(self) -> str:
        """Secret of the active GitHub App, else the configured fallback"""
        app = await GitHubAppRepository(self.session).get_active()
        if app is not None:
            creds = await self.credential_store.get(app.credential_key)
            if creds and creds.get("webhook_secret"):
                return creds["webhook_secret"]
        if settings.GITHUB_WEBHOOK_SECRET:
            return settings.GITHUB_WEBHOOK_SECRET
        raise NotConfiguredError("GitHub integration is not configured")

    async def ingest_github(self, body: bytes, headers: Mapping[str, str]) -> Dict[str, Optional[str]]:
        self._check_size(body)
        secret = await self.github_webhook_secret()

        if not verify_signature("github", body, headers.get("x-hub-signature-256"), secret):
            logger.warning("Rejected GitHub webhook with invalid signature", extra={"provider": "github"})
            raise AuthenticationError("Invalid webhook signature")

        delivery_id = headers.get("x-github-delivery") or fallback_delivery_id(body)
        event_type = headers.get("x-github-event") or "unknown"
        return await self._record("github", delivery_id, event_type, body)

    async def ingest_gitlab(
        self, repository_id: str, body: bytes, headers: Mapping[str, str]
    ) -> Dict[str, Optional[str]]:
        self._check_size(body)

        repository = await RepoRepository(self.session).get(repository_id)
        if repository is None or repository.provider != "gitlab":
            raise NotFoundError("Repository not found")
        if not settings.GITLAB_SERVER_PEPPER:
            raise NotConfiguredError("GitLab webhook verification is not configured")

        if not verify_signature(
            "gitlab", body, headers.get("x-gitlab-token"), repository.webhook_token_hmac, settings.GITLAB_SERVER_PEPPER
        ):
            logger.warning(
                "Rejected GitLab webhook with invalid token",
                extra={"provider": "gitlab", "repository_id": repository_id},
            )
            raise AuthenticationError("Invalid webhook token")

        project_id = extract_gitlab_project_id(body)
        if project_id is not None and project_id != repository.provider_repo_id:
            logger.warning(
                "GitLab webhook project does not match repository",
                extra={"provider": "gitlab", "repository_id": repository_id},
            )
            raise ForbiddenError("Webhook project does not match this repository")

        delivery_id = headers.get("x-gitlab-event-uuid") or fallback_delivery_id(body)
        event_type = headers.get("x-gitlab-event") or "unknown"
        return await self._record("gitlab", delivery_id, event_type, body)

    async def _record(self, provider: str, delivery_id: str, event_type: str, body: bytes) -> Dict[str, Optional[str]]:
        """Check-and-insert in one transaction; the unique index settles races"""
        log_extra = {"provider": provider, "delivery_id": delivery_id}

        existing = await self.events.get_by_delivery(provider, delivery_id)
        if existing is not None:
            logger.info("Duplicate webhook delivery acknowledged", extra=log_extra)
            return {"status": DUPLICATE, "event_id": existing.id}

        try:
            event = await self.events.create({
                "provider": provider,
                "delivery_id": delivery_id,
                "event_type": event_type,
                "payload": body,
                "received_at": self.clock(),
                "processed": False,
            })
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            existing = await self.events.get_by_delivery(provider, delivery_id)
            logger.info("Concurrent duplicate webhook delivery acknowledged", extra=log_extra)
            return {"status": DUPLICATE, "event_id": existing.id if existing else None}

        log_extra["event_id"] = event.id
        try:
            self.enqueue(event.id, extract_repository_key(provider, body))
        except Exception:
            # The row is durable; the recovery sweep will pick it up
            logger.exception("Failed to enqueue webhook event", extra=log_extra)

        logger.info(f"Accepted {provider} '{event_type}' webhook", extra=log_extra)
        return {"status": ACCEPTED, "event_id": event.id}
