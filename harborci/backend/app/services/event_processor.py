# backend/app/services/event_processor.py
"""
Event Processor

Claims one stored webhook event, interprets it and records the outcome.
An event is attempted at most once: handler failures are written to
error_message and the event is still marked processed.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional, Tuple
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.constants import GITLAB_MR_ACTIONS, TriggerType
from app.core.logging import logger
from app.db.models.repository import Repository
from app.db.models.webhook_event import WebhookEvent
from app.db.repositories.integration_repository import GitHubAppRepository, InstallationRepository
from app.db.repositories.repo_repository import RepoRepository
from app.db.repositories.webhook_event_repository import WebhookEventRepository
from app.schemas.webhook import (
    GitHubInstallationEvent,
    GitHubInstallationRepositoriesEvent,
    GitHubInstallation,
    GitHubPingEvent,
    GitHubPullRequestEvent,
    GitHubPushEvent,
    GitLabMergeRequestEvent,
    GitLabPushEvent,
    GitLabTagPushEvent,
    WebhookPayload,
    branch_from_ref,
    parse_payload,
)
from app.services.build_lifecycle import BuildLifecycleManager
from app.services.upserts import apply_changes, deactivate, upsert_installation, upsert_repository

ERROR_MESSAGE_LIMIT = 2000

INSTALLATION_ACTIVATE_ACTIONS = ("created", "unsuspend", "new_permissions_accepted")
INSTALLATION_DEACTIVATE_ACTIONS = ("deleted", "suspend")


@dataclass
class Outcome:
    repository_id: Optional[str] = None
    note: Optional[str] = None
    build_id: Optional[str] = None
    reconcile: List[Tuple[str, str]] = field(default_factory=list)


def default_enqueue_reconcile(provider: str, account_ref: str) -> None:
    from app.workers.webhook_worker import enqueue_reconciliation

    enqueue_reconciliation(provider, account_ref)


class EventProcessor:
    """Interprets persisted webhook events"""

    def __init__(
        self,
        session: AsyncSession,
        enqueue_reconcile: Optional[Callable[[str, str], None]] = None,
        pull_request_actions: Optional[List[str]] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.session = session
        self.events = WebhookEventRepository(session)
        self.repositories = RepoRepository(session)
        self.installations = InstallationRepository(session)
        self.apps = GitHubAppRepository(session)
        self.builds = BuildLifecycleManager(session, clock=clock)
        self.enqueue_reconcile = enqueue_reconcile or default_enqueue_reconcile
        self.pull_request_actions = set(
            pull_request_actions if pull_request_actions is not None else settings.PULL_REQUEST_BUILD_ACTIONS
        )
        self.clock = clock

    async def process(self, event_id: str) -> dict:
        claimed = await self.events.claim(event_id, self.clock())
        await self.session.commit()
        if not claimed:
            logger.info("Webhook event already claimed, skipping", extra={"event_id": event_id})
            return {"event_id": event_id, "status": "skipped"}

        event = await self.events.get(event_id, fresh=True)
        log_extra = {"event_id": event.id, "provider": event.provider, "delivery_id": event.delivery_id}

        try:
            payload = parse_payload(event.provider, event.event_type, event.payload)
            outcome = await self._dispatch(event, payload)
            await self.events.mark_processed(
                event.id, self.clock(), repository_id=outcome.repository_id, note=outcome.note
            )
            await self.session.commit()
        except Exception as e:
            await self.session.rollback()
            logger.error(f"Webhook event handling failed: {e}", extra=log_extra, exc_info=True)
            await self.events.mark_processed(event_id, self.clock(), error_message=str(e)[:ERROR_MESSAGE_LIMIT])
            await self.session.commit()
            return {"event_id": event_id, "status": "failed", "error": str(e)}

        for provider, account_ref in outcome.reconcile:
            try:
                self.enqueue_reconcile(provider, account_ref)
            except Exception:
                logger.exception("Failed to enqueue reconciliation", extra=log_extra)

        if outcome.note:
            logger.info(f"Webhook event processed: {outcome.note}", extra=log_extra)
        else:
            logger.info("Webhook event processed", extra={**log_extra, "build_id": outcome.build_id})
        return {"event_id": event_id, "status": "processed", "build_id": outcome.build_id, "note": outcome.note}

    async def _dispatch(self, event: WebhookEvent, payload: WebhookPayload) -> Outcome:
        if isinstance(payload, GitHubPushEvent):
            return await self._handle_push(
                event, "github", payload.repository.id, payload.ref, payload.after, payload.deleted
            )
        if isinstance(payload, GitLabPushEvent):
            return await self._handle_push(
                event, "gitlab", payload.project.id, payload.ref, payload.after, payload.deleted
            )
        if isinstance(payload, GitLabTagPushEvent):
            repo = await self.repositories.get_by_provider_id("gitlab", str(payload.project.id))
            return Outcome(repository_id=repo.id if repo else None, note="Tag pushes do not trigger builds")
        if isinstance(payload, GitHubPullRequestEvent):
            head = payload.pull_request.head
            return await self._handle_pull_request(
                event, "github", payload.repository.id, payload.action, payload.number, head.ref, head.sha
            )
        if isinstance(payload, GitLabMergeRequestEvent):
            attrs = payload.object_attributes
            return await self._handle_pull_request(
                event,
                "gitlab",
                payload.project.id,
                self._gitlab_mr_action(attrs.action, attrs.oldrev),
                attrs.iid,
                attrs.source_branch,
                attrs.last_commit.id,
            )
        if isinstance(payload, GitHubInstallationEvent):
            return await self._handle_installation(payload)
        if isinstance(payload, GitHubInstallationRepositoriesEvent):
            return await self._handle_installation_repositories(payload)
        if isinstance(payload, GitHubPingEvent):
            return Outcome(note="Ping received")
        return Outcome(note=f"No handler for '{event.event_type}'")

    @staticmethod
    def _gitlab_mr_action(action: Optional[str], oldrev: Optional[str]) -> str:
        # 'update' without oldrev is a metadata edit, not new commits
        if action == "update" and not oldrev:
            return "edited"
        return GITLAB_MR_ACTIONS.get(action or "", action or "unknown")

    async def _resolve_repository(self, provider: str, provider_repo_id) -> Tuple[Optional[Repository], Optional[str]]:
        repo = await self.repositories.get_by_provider_id(provider, str(provider_repo_id))
        if repo is None:
            return None, f"Unknown repository {provider}:{provider_repo_id}; no build created"
        if not repo.is_active:
            return repo, f"Repository {repo.full_name} is inactive; no build created"
        return repo, None

    async def _handle_push(
        self, event: WebhookEvent, provider: str, provider_repo_id, ref: str, after: str, deleted: bool
    ) -> Outcome:
        repo, note = await self._resolve_repository(provider, provider_repo_id)
        repository_id = repo.id if repo else None
        if note:
            return Outcome(repository_id=repository_id, note=note)

        branch = branch_from_ref(ref)
        if branch is None:
            return Outcome(repository_id=repository_id, note=f"Ref {ref} is not a branch; no build created")
        if deleted:
            return Outcome(repository_id=repository_id, note=f"Branch {branch} was deleted; no build created")

        build = await self.builds.create_from_event(repo, event.id, TriggerType.PUSH, branch, after)
        return Outcome(repository_id=repository_id, build_id=build.id)

    async def _handle_pull_request(
        self,
        event: WebhookEvent,
        provider: str,
        provider_repo_id,
        action: str,
        number: int,
        branch: str,
        commit_sha: str,
    ) -> Outcome:
        repo, note = await self._resolve_repository(provider, provider_repo_id)
        repository_id = repo.id if repo else None
        if note:
            return Outcome(repository_id=repository_id, note=note)

        if action not in self.pull_request_actions:
            return Outcome(
                repository_id=repository_id,
                note=f"Pull request action '{action}' does not trigger builds",
            )

        build = await self.builds.create_from_event(
            repo, event.id, TriggerType.PULL_REQUEST, branch, commit_sha, pull_request_number=number
        )
        return Outcome(repository_id=repository_id, build_id=build.id)

    async def _upsert_installation(self, data: GitHubInstallation, is_active: bool = True):
        app = await self.apps.get_by_app_id(data.app_id) if data.app_id else None
        installation, _ = await upsert_installation(
            self.installations,
            data.id,
            data.account.login,
            account_type=data.account.type,
            account_id=data.account.id,
            repository_selection=data.repository_selection,
            github_app_id=app.id if app else None,
            is_active=is_active,
        )
        return installation, app

    async def _deactivate_installation_repos(self, installation_id: str) -> int:
        count = 0
        for repo in await self.repositories.list_for_installations([installation_id]):
            count += deactivate(repo)
        return count

    async def _handle_installation(self, payload: GitHubInstallationEvent) -> Outcome:
        data = payload.installation

        if payload.action in INSTALLATION_DEACTIVATE_ACTIONS:
            installation = await self.installations.get_by_installation_id(data.id)
            if installation is None:
                return Outcome(note=f"Unknown installation {data.id}; nothing to deactivate")
            deactivate(installation)
            count = await self._deactivate_installation_repos(installation.id)
            return Outcome(note=f"Installation {data.id} {payload.action}; {count} repositories deactivated")

        if payload.action not in INSTALLATION_ACTIVATE_ACTIONS:
            return Outcome(note=f"Installation action '{payload.action}' ignored")

        installation, app = await self._upsert_installation(data)

        if data.repository_selection == "all":
            if app is None:
                return Outcome(note=f"Installation {data.id} has access to all repositories; App is not registered")
            return Outcome(reconcile=[("github", str(app.app_id))])

        for repo_data in payload.repositories:
            await upsert_repository(
                self.repositories,
                "github",
                repo_data.id,
                repo_data.full_name,
                default_branch=repo_data.default_branch,
                clone_url=repo_data.clone_url,
                installation_id=installation.id,
            )
        return Outcome(note=f"Installation {data.id} linked {len(payload.repositories)} repositories")

    async def _handle_installation_repositories(self, payload: GitHubInstallationRepositoriesEvent) -> Outcome:
        installation = await self.installations.get_by_installation_id(payload.installation.id)
        if installation is None:
            installation, _ = await self._upsert_installation(payload.installation)
        if payload.repository_selection:
            apply_changes(installation, {"repository_selection": payload.repository_selection})

        for repo_data in payload.repositories_added:
            await upsert_repository(
                self.repositories,
                "github",
                repo_data.id,
                repo_data.full_name,
                default_branch=repo_data.default_branch,
                clone_url=repo_data.clone_url,
                installation_id=installation.id,
            )

        removed = 0
        for repo_data in payload.repositories_removed:
            repo = await self.repositories.get_by_provider_id("github", str(repo_data.id))
            # Only the installation that grants access may take it away
            if repo is not None and repo.installation_id == installation.id:
                removed += deactivate(repo)

        return Outcome(
            note=f"{len(payload.repositories_added)} repositories added, {removed} deactivated"
        )
