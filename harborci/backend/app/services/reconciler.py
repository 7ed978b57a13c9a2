# backend/app/services/reconciler.py
"""
Installation Reconciler

Brings local installations and repositories in line with what the
provider reports for one account:

1. take the account lease (one sync per account across all processes)
2. fetch the complete remote view; no writes happen in this phase
3. apply upserts and deactivations in a single transaction

A provider failure in step 2 leaves local state untouched. Rows absent
remotely are deactivated, never deleted.
"""

from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import NotConfiguredError, NotFoundError, SyncInProgressError
from app.core.logging import logger
from app.db.base import generate_ulid
from app.db.models.ci_integration import GitHubApp, GitLabCredential
from app.db.repositories.integration_repository import (
    GitHubAppRepository,
    GitLabCredentialRepository,
    InstallationRepository,
)
from app.db.repositories.repo_repository import RepoRepository
from app.db.repositories.sync_lease_repository import SyncLeaseRepository
from app.schemas.integration import SyncResult
from app.services.credential_store import CredentialStore
from app.services.github_client import GitHubClient
from app.services.gitlab_client import GitLabClient
from app.services.provider_auth import github_app_jwt, gitlab_access_token
from app.services.upserts import CREATED, UPDATED, deactivate, upsert_installation, upsert_repository

RemoteInstallation = Tuple[Dict[str, Any], List[Dict[str, Any]]]


def _tally(result: SyncResult, change: str) -> None:
    if change == CREATED:
        result.created += 1
    elif change == UPDATED:
        result.updated += 1
    else:
        result.unchanged += 1


class InstallationReconciler:
    """Idempotent provider -> local sync"""

    def __init__(
        self,
        session: AsyncSession,
        github: Optional[GitHubClient] = None,
        gitlab: Optional[GitLabClient] = None,
        credential_store: Optional[CredentialStore] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.session = session
        self.github = github or GitHubClient()
        self.gitlab = gitlab or GitLabClient()
        self.credential_store = credential_store or CredentialStore(session)
        self.clock = clock
        self.holder = generate_ulid()

        self.apps = GitHubAppRepository(session)
        self.installations = InstallationRepository(session)
        self.gitlab_credentials = GitLabCredentialRepository(session)
        self.repositories = RepoRepository(session)
        self.leases = SyncLeaseRepository(session)

    async def sync(self, provider: str) -> List[SyncResult]:
        """Reconcile every configured account of a provider"""
        if provider == "github":
            app = await self.apps.get_active()
            if app is None:
                raise NotConfiguredError("No GitHub App has been set up")
            return [await self.sync_github_app(app)]

        if provider == "gitlab":
            credentials = await self.gitlab_credentials.list_active()
            if not credentials:
                raise NotConfiguredError("No GitLab instance has been connected")
            return [await self.sync_gitlab_credential(credential) for credential in credentials]

        raise NotFoundError(f"Unknown provider '{provider}'")

    async def sync_account(self, provider: str, account_ref: str) -> SyncResult:
        """Reconcile one account: a GitHub App id or a GitLab credential id"""
        if provider == "github":
            app = await self.apps.get_by_app_id(int(account_ref))
            if app is None:
                raise NotFoundError(f"GitHub App {account_ref} is not registered")
            return await self.sync_github_app(app)

        credential = await self.gitlab_credentials.get(account_ref)
        if credential is None:
            raise NotFoundError(f"GitLab credential {account_ref} not found")
        return await self.sync_gitlab_credential(credential)

    async def _locked(self, account_key: str, run) -> SyncResult:
        now = self.clock()
        expires_at = now + timedelta(seconds=settings.SYNC_LEASE_SECONDS)
        if not await self.leases.acquire(account_key, self.holder, now, expires_at):
            raise SyncInProgressError(f"Reconciliation for {account_key} is already running")

        try:
            result = await run()
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        finally:
            await self.leases.release(account_key, self.holder)

        logger.info(
            f"Reconciled {account_key}: {result.created} created, {result.updated} updated, "
            f"{result.deactivated} deactivated, {result.unchanged} unchanged",
            extra={"provider": result.provider},
        )
        return result

    # GitHub

    async def sync_github_app(self, app: GitHubApp) -> SyncResult:
        app_pk, app_id = app.id, app.app_id

        async def run() -> SyncResult:
            remote = await self._fetch_github(app)
            return await self._apply_github(app_pk, app_id, remote)

        return await self._locked(f"github:{app_id}", run)

    async def _fetch_github(self, app: GitHubApp) -> List[RemoteInstallation]:
        app_jwt = await github_app_jwt(self.credential_store, self.github, app)
        remote: List[RemoteInstallation] = []
        for data in await self.github.list_installations(app_jwt):
            if data.get("suspended_at"):
                remote.append((data, []))
                continue
            token = await self.github.create_installation_token(app_jwt, data["id"])
            remote.append((data, await self.github.list_installation_repositories(token)))
        return remote

    async def _apply_github(self, app_pk: str, app_id: int, remote: List[RemoteInstallation]) -> SyncResult:
        result = SyncResult(provider="github", account=str(app_id))
        seen_installations = set()
        seen_repositories = set()

        for data, repos in remote:
            account = data.get("account") or {}
            installation, change = await upsert_installation(
                self.installations,
                data["id"],
                account.get("login", ""),
                account_type=account.get("type"),
                account_id=account.get("id"),
                repository_selection=data.get("repository_selection"),
                github_app_id=app_pk,
                is_active=not data.get("suspended_at"),
            )
            _tally(result, change)
            seen_installations.add(installation.id)

            if not installation.is_active:
                continue
            for repo_data in repos:
                repo, change = await upsert_repository(
                    self.repositories,
                    "github",
                    repo_data["id"],
                    repo_data["full_name"],
                    default_branch=repo_data.get("default_branch"),
                    clone_url=repo_data.get("clone_url"),
                    installation_id=installation.id,
                )
                _tally(result, change)
                seen_repositories.add(repo.id)

        local_installations = await self.installations.list_for_app(app_pk)
        for installation in local_installations:
            if installation.id not in seen_installations and deactivate(installation):
                result.deactivated += 1

        linked = await self.repositories.list_for_installations([i.id for i in local_installations])
        for repo in linked:
            if repo.id not in seen_repositories and deactivate(repo):
                result.deactivated += 1

        return result

    # GitLab

    async def sync_gitlab_credential(self, credential: GitLabCredential) -> SyncResult:
        credential_id, instance_url = credential.id, credential.instance_url

        async def run() -> SyncResult:
            token = await gitlab_access_token(self.credential_store, self.gitlab, credential, self.clock)
            projects = await self.gitlab.list_projects(instance_url, token)
            return await self._apply_gitlab(credential_id, instance_url, projects)

        return await self._locked(f"gitlab:{credential_id}", run)

    async def _apply_gitlab(self, credential_id: str, instance_url: str, projects: List[Dict[str, Any]]) -> SyncResult:
        result = SyncResult(provider="gitlab", account=instance_url)
        seen = set()

        for project in projects:
            repo, change = await upsert_repository(
                self.repositories,
                "gitlab",
                project["id"],
                project["path_with_namespace"],
                default_branch=project.get("default_branch"),
                clone_url=project.get("http_url_to_repo"),
                gitlab_credential_id=credential_id,
            )
            _tally(result, change)
            seen.add(repo.id)

        for repo in await self.repositories.list_for_gitlab_credential(credential_id):
            if repo.id not in seen and deactivate(repo):
                result.deactivated += 1

        return result
