# tests/test_webhook_ingestion.py
"""
Webhook ingestion endpoints: authenticate, deduplicate, persist, enqueue
"""

import asyncio
import pytest
from fastapi import status
from sqlalchemy import func, select

from app.core.config import settings
from app.db.models import GitHubApp, WebhookEvent
from app.services.credential_store import CredentialStore
from app.services.webhook_ingestion import WebhookIngestionService, fallback_delivery_id
from payloads import GITLAB_WEBHOOK_TOKEN, github_headers, github_push, gitlab_push, to_body


async def count_events(session) -> int:
    result = await session.execute(select(func.count()).select_from(WebhookEvent))
    return result.scalar_one()


class TestGitHubWebhook:
    """POST /api/webhooks/github"""

    @pytest.mark.asyncio
    async def test_accepts_and_enqueues(self, client, db_session, enqueued):
        body = to_body(github_push())
        response = client.post("/api/webhooks/github", content=body, headers=github_headers(body, "push", "d1"))

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["status"] == "accepted"
        assert data["event_id"]

        event = (await db_session.execute(select(WebhookEvent))).scalar_one()
        assert event.id == data["event_id"]
        assert event.delivery_id == "d1"
        assert event.event_type == "push"
        assert event.payload == body
        assert event.processed is False
        assert enqueued == [(event.id, "github:1001")]

    @pytest.mark.asyncio
    async def test_duplicate_delivery_is_acknowledged_once(self, client, db_session, enqueued):
        body = to_body(github_push())
        headers = github_headers(body, "push", "d1")

        first = client.post("/api/webhooks/github", content=body, headers=headers)
        second = client.post("/api/webhooks/github", content=body, headers=headers)

        assert first.json()["status"] == "accepted"
        assert second.status_code == status.HTTP_200_OK
        assert second.json() == {"status": "duplicate", "event_id": first.json()["event_id"]}
        assert await count_events(db_session) == 1
        assert len(enqueued) == 1

    @pytest.mark.asyncio
    async def test_bad_signature_is_rejected_without_storage(self, client, db_session, enqueued):
        body = to_body(github_push())
        headers = github_headers(body, "push", "d1", secret="wrong-secret")

        response = client.post("/api/webhooks/github", content=body, headers=headers)

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json()["error"]["code"] == "authentication_failed"
        assert await count_events(db_session) == 0
        assert enqueued == []

    @pytest.mark.asyncio
    async def test_missing_signature_is_rejected(self, client, db_session):
        body = to_body(github_push())
        response = client.post(
            "/api/webhooks/github",
            content=body,
            headers={"X-GitHub-Event": "push", "X-GitHub-Delivery": "d1"},
        )
        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert await count_events(db_session) == 0

    @pytest.mark.asyncio
    async def test_unknown_repository_is_still_accepted(self, client, db_session):
        body = to_body(github_push(repo_id=999999, full_name="someone/else"))
        response = client.post("/api/webhooks/github", content=body, headers=github_headers(body, "push", "d2"))

        assert response.json()["status"] == "accepted"
        assert await count_events(db_session) == 1

    @pytest.mark.asyncio
    async def test_missing_delivery_header_falls_back_to_body_hash(self, client, db_session):
        body = to_body(github_push())
        headers = github_headers(body, "push", "unused")
        del headers["X-GitHub-Delivery"]

        client.post("/api/webhooks/github", content=body, headers=headers)
        repeat = client.post("/api/webhooks/github", content=body, headers=headers)

        assert repeat.json()["status"] == "duplicate"
        event = (await db_session.execute(select(WebhookEvent))).scalar_one()
        assert event.delivery_id == fallback_delivery_id(body)

    def test_oversized_body(self, client, monkeypatch):
        monkeypatch.setattr(settings, "MAX_WEBHOOK_BYTES", 64)
        body = to_body(github_push())
        response = client.post("/api/webhooks/github", content=body, headers=github_headers(body, "push", "d1"))
        assert response.status_code == status.HTTP_413_REQUEST_ENTITY_TOO_LARGE

    def test_not_configured(self, client, monkeypatch):
        monkeypatch.setattr(settings, "GITHUB_WEBHOOK_SECRET", None)
        body = to_body(github_push())
        response = client.post("/api/webhooks/github", content=body, headers=github_headers(body, "push", "d1"))
        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        assert response.json()["error"]["code"] == "not_configured"

    @pytest.mark.asyncio
    async def test_uses_webhook_secret_of_registered_app(self, client, db_session, monkeypatch):
        monkeypatch.setattr(settings, "GITHUB_WEBHOOK_SECRET", None)
        app_row = GitHubApp(app_id=4242, name="HarborCI", slug="harborci", is_active=True)
        db_session.add(app_row)
        await db_session.flush()
        await CredentialStore(db_session).put(app_row.credential_key, {"webhook_secret": "app-secret"})
        await db_session.commit()

        body = to_body(github_push())
        ok = client.post("/api/webhooks/github", content=body, headers=github_headers(body, "push", "d1", "app-secret"))
        bad = client.post(
            "/api/webhooks/github", content=body, headers=github_headers(body, "push", "d2", "test-webhook-secret")
        )

        assert ok.status_code == status.HTTP_200_OK
        assert bad.status_code == status.HTTP_401_UNAUTHORIZED


class TestGitLabWebhook:
    """POST /api/webhooks/gitlab/{repository_id}"""

    def _headers(self, token=GITLAB_WEBHOOK_TOKEN, uuid="g1"):
        return {
            "Content-Type": "application/json",
            "X-Gitlab-Event": "Push Hook",
            "X-Gitlab-Token": token,
            "X-Gitlab-Event-UUID": uuid,
        }

    @pytest.mark.asyncio
    async def test_accepts_valid_token(self, client, db_session, gitlab_repo, enqueued):
        body = to_body(gitlab_push())
        response = client.post(f"/api/webhooks/gitlab/{gitlab_repo.id}", content=body, headers=self._headers())

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == "accepted"
        event = (await db_session.execute(select(WebhookEvent))).scalar_one()
        assert event.provider == "gitlab"
        assert event.delivery_id == "g1"
        assert event.event_type == "Push Hook"
        assert enqueued[0][1] == "gitlab:2002"

    @pytest.mark.asyncio
    async def test_wrong_token(self, client, db_session, gitlab_repo):
        body = to_body(gitlab_push())
        response = client.post(
            f"/api/webhooks/gitlab/{gitlab_repo.id}", content=body, headers=self._headers(token="nope")
        )
        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert await count_events(db_session) == 0

    def test_unknown_repository(self, client, gitlab_repo):
        body = to_body(gitlab_push())
        response = client.post("/api/webhooks/gitlab/01UNKNOWN", content=body, headers=self._headers())
        assert response.status_code == status.HTTP_404_NOT_FOUND

    @pytest.mark.asyncio
    async def test_project_mismatch(self, client, db_session, gitlab_repo):
        body = to_body(gitlab_push(project_id=31337))
        response = client.post(f"/api/webhooks/gitlab/{gitlab_repo.id}", content=body, headers=self._headers())
        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert await count_events(db_session) == 0

    def test_duplicate_uuid(self, client, gitlab_repo):
        body = to_body(gitlab_push())
        url = f"/api/webhooks/gitlab/{gitlab_repo.id}"
        client.post(url, content=body, headers=self._headers())
        again = client.post(url, content=body, headers=self._headers())
        assert again.json()["status"] == "duplicate"


class TestConcurrentDelivery:
    """Racing deliveries of the same id resolve to one row"""

    @pytest.mark.asyncio
    async def test_parallel_duplicates(self, db_session, session_factory):
        body = to_body(github_push())
        headers = {k.lower(): v for k, v in github_headers(body, "push", "race-1").items()}
        enqueued = []

        async def deliver():
            async with session_factory() as session:
                service = WebhookIngestionService(session, enqueue=lambda eid, key: enqueued.append(eid))
                return await service.ingest_github(body, headers)

        results = await asyncio.gather(deliver(), deliver(), deliver())

        statuses = sorted(r["status"] for r in results)
        assert statuses == ["accepted", "duplicate", "duplicate"]
        assert len({r["event_id"] for r in results}) == 1
        assert await count_events(db_session) == 1
        assert len(enqueued) == 1


class TestRedelivery:
    """A provider retrying a delivery gets the original event back"""

    @pytest.mark.asyncio
    async def test_redelivery_in_fresh_sessions(self, db_session, session_factory):
        body = to_body(github_push())
        headers = {k.lower(): v for k, v in github_headers(body, "push", "retry-1").items()}
        enqueued = []

        async def deliver():
            async with session_factory() as session:
                service = WebhookIngestionService(session, enqueue=lambda eid, key: enqueued.append(eid))
                return await service.ingest_github(body, headers)

        first = await deliver()
        second = await deliver()

        assert first["status"] == "accepted"
        assert second == {"status": "duplicate", "event_id": first["event_id"]}
        assert enqueued == [first["event_id"]]

    @pytest.mark.asyncio
    async def test_redelivery_on_same_session(self, db_session):
        body = to_body(github_push())
        headers = {k.lower(): v for k, v in github_headers(body, "push", "retry-2").items()}
        service = WebhookIngestionService(db_session, enqueue=lambda eid, key: None)

        first = await service.ingest_github(body, headers)
        second = await service.ingest_github(body, headers)

        assert second["status"] == "duplicate"
        assert second["event_id"] == first["event_id"]
        assert await count_events(db_session) == 1
