# backend/app/services/build_lifecycle.py
"""
Build Lifecycle Manager

pending -> running -> success | failure
pending | running -> cancelled

Every transition is a conditional update on the current status, so two
racing callers can never both move the same build.
"""

from datetime import datetime
from typing import Awaitable, Callable, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.constants import ACTIVE_BUILD_STATUSES, BUILD_TRANSITIONS, BuildStatus, TriggerType
from app.core.exceptions import ConflictError, NotConfiguredError, NotFoundError, ProviderError, TransientProviderError
from app.core.logging import logger
from app.db.models.build import Build
from app.db.models.repository import Repository
from app.db.repositories.build_repository import BuildRepository
from app.db.repositories.repo_repository import RepoRepository

DEFAULT_COMMIT = "HEAD"

HeadResolver = Callable[[Repository, str], Awaitable[Optional[str]]]


class ProviderHeadResolver:
    """Resolve a branch HEAD through the provider API when credentials exist"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def __call__(self, repository: Repository, branch: str) -> Optional[str]:
        from app.db.models.ci_integration import GitHubApp, GitLabCredential, Installation
        from app.services.credential_store import CredentialStore
        from app.services.github_client import GitHubClient
        from app.services.gitlab_client import GitLabClient
        from app.services.provider_auth import github_app_jwt, gitlab_access_token

        store = CredentialStore(self.session)
        if repository.provider == "github" and repository.installation_id:
            installation = await self.session.get(Installation, repository.installation_id)
            if installation is None or not installation.github_app_id:
                return None
            app = await self.session.get(GitHubApp, installation.github_app_id)
            if app is None:
                return None
            github = GitHubClient()
            app_jwt = await github_app_jwt(store, github, app)
            token = await github.create_installation_token(app_jwt, installation.installation_id)
            return await github.get_branch_head(token, repository.owner, repository.name, branch)

        if repository.provider == "gitlab" and repository.gitlab_credential_id:
            credential = await self.session.get(GitLabCredential, repository.gitlab_credential_id)
            if credential is None:
                return None
            gitlab = GitLabClient()
            token = await gitlab_access_token(store, gitlab, credential)
            return await gitlab.get_branch_head(credential.instance_url, token, repository.provider_repo_id, branch)

        return None


class BuildLifecycleManager:
    """Owns Build creation and status transitions"""

    def __init__(
        self,
        session: AsyncSession,
        head_resolver: Optional[HeadResolver] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.session = session
        self.builds = BuildRepository(session)
        self.repositories = RepoRepository(session)
        self.head_resolver = head_resolver or ProviderHeadResolver(session)
        self.clock = clock

    async def get(self, build_id: str) -> Build:
        build = await self.builds.get(build_id, fresh=True)
        if build is None:
            raise NotFoundError(f"Build {build_id} not found")
        return build

    async def list(
        self,
        repository_id: Optional[str] = None,
        status: Optional[str] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> List[Build]:
        return await self.builds.list_builds(repository_id=repository_id, status=status, skip=skip, limit=limit)

    async def create_from_event(
        self,
        repository: Repository,
        webhook_event_id: str,
        trigger_type: TriggerType,
        branch: str,
        commit_sha: str,
        pull_request_number: Optional[int] = None,
    ) -> Build:
        """Stage a pending build for a webhook; the event processor commits"""
        return await self.builds.create({
            "repository_id": repository.id,
            "webhook_event_id": webhook_event_id,
            "trigger_type": trigger_type.value,
            "branch": branch,
            "commit_sha": commit_sha,
            "pull_request_number": pull_request_number,
            "status": BuildStatus.PENDING.value,
            "created_at": self.clock(),
        })

    async def _resolve_head(self, repository: Repository, branch: str) -> str:
        try:
            sha = await self.head_resolver(repository, branch)
        except (TransientProviderError, ProviderError, NotConfiguredError) as e:
            logger.warning(
                f"Could not resolve HEAD of {repository.full_name}@{branch}: {e.message}",
                extra={"repository_id": repository.id, "provider": repository.provider},
            )
            return DEFAULT_COMMIT
        return sha or DEFAULT_COMMIT

    async def trigger(
        self,
        repository_id: str,
        branch: Optional[str] = None,
        commit_sha: Optional[str] = None,
        trigger_type: TriggerType = TriggerType.MANUAL,
    ) -> Build:
        repository = await self.repositories.get(repository_id)
        if repository is None:
            raise NotFoundError(f"Repository {repository_id} not found")
        if not repository.is_active:
            raise ConflictError(f"Repository {repository.full_name} is inactive", code="repository_inactive")

        branch = branch or repository.default_branch
        if not commit_sha:
            commit_sha = await self._resolve_head(repository, branch)

        build = await self.builds.create({
            "repository_id": repository.id,
            "trigger_type": trigger_type.value,
            "branch": branch,
            "commit_sha": commit_sha,
            "status": BuildStatus.PENDING.value,
            "created_at": self.clock(),
        })
        await self.session.commit()

        logger.info(
            f"Triggered {trigger_type.value} build for {repository.full_name}@{branch}",
            extra={"build_id": build.id, "repository_id": repository.id},
        )
        return build

    async def cancel(self, build_id: str) -> Build:
        build = await self.get(build_id)
        moved = await self.builds.transition(
            build_id,
            ACTIVE_BUILD_STATUSES,
            status=BuildStatus.CANCELLED.value,
            finished_at=self.clock(),
        )
        await self.session.commit()
        if not moved:
            build = await self.get(build_id)
            raise ConflictError(f"Build is already completed ({build.status})", code="already_completed")

        logger.info("Build cancelled", extra={"build_id": build_id})
        return await self.get(build_id)

    async def transition(self, build_id: str, status: BuildStatus, error_message: Optional[str] = None) -> Build:
        """Narrow update contract for the execution engine"""
        build = await self.get(build_id)
        target = BuildStatus(status).value
        if target not in BUILD_TRANSITIONS.get(build.status, set()):
            raise ConflictError(f"Illegal build transition {build.status} -> {target}", code="illegal_transition")

        previous = build.status
        values = {"status": target}
        now = self.clock()
        if target == BuildStatus.RUNNING.value:
            values["started_at"] = now
        else:
            values["finished_at"] = now
        if error_message:
            values["error_message"] = error_message

        moved = await self.builds.transition(build_id, [previous], **values)
        await self.session.commit()
        if not moved:
            raise ConflictError(f"Build {build_id} changed concurrently", code="illegal_transition")

        logger.info(f"Build {previous} -> {target}", extra={"build_id": build_id})
        return await self.get(build_id)
