# backend/app/services/setup_flow.py
"""
Setup Flow Coordinator

Each provider authorization attempt is a SetupSession row keyed by an
unguessable state token:

    pending -> completed | failed | expired

The callback that wins the conditional claim on consumed_at is the only
one allowed to exchange the provider code. Concurrent or repeated
callbacks wait for that winner and report its stored result. Expiry is
applied lazily whenever a session is read.
"""

import asyncio
import secrets
from datetime import datetime, timedelta
from typing import Callable, Optional, Tuple
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.constants import SetupStatus
from app.core.exceptions import HarborError, NotConfiguredError, NotFoundError
from app.core.logging import logger
from app.db.models.setup_session import SetupSession
from app.db.repositories.integration_repository import GitHubAppRepository, GitLabCredentialRepository
from app.db.repositories.setup_session_repository import SetupSessionRepository
from app.services.credential_store import CredentialStore
from app.services.github_client import GitHubClient
from app.services.gitlab_client import GitLabClient, normalize_instance_url
from app.services.provider_auth import store_gitlab_tokens
from app.services.upserts import apply_changes

STATE_TOKEN_BYTES = 32
IN_PROGRESS_MESSAGE = "Authorization received, finishing setup"
WAITING_MESSAGE = "Waiting for provider authorization"


def github_callback_url() -> str:
    return f"{settings.BASE_URL.rstrip('/')}/setup/github/callback"


def gitlab_callback_url() -> str:
    return f"{settings.BASE_URL.rstrip('/')}/setup/gitlab/callback"


class SetupFlowCoordinator:
    """Drives the GitHub App manifest and GitLab OAuth handshakes"""

    def __init__(
        self,
        session: AsyncSession,
        github: Optional[GitHubClient] = None,
        gitlab: Optional[GitLabClient] = None,
        credential_store: Optional[CredentialStore] = None,
        reconciler_factory: Optional[Callable] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.session = session
        self.github = github or GitHubClient()
        self.gitlab = gitlab or GitLabClient()
        self.credential_store = credential_store or CredentialStore(session)
        self.reconciler_factory = reconciler_factory or self._default_reconciler
        self.clock = clock
        self.sessions = SetupSessionRepository(session)

    def _default_reconciler(self, session: AsyncSession):
        from app.services.reconciler import InstallationReconciler

        return InstallationReconciler(
            session, github=self.github, gitlab=self.gitlab, credential_store=self.credential_store, clock=self.clock
        )

    # start

    async def start(self, provider: str, instance_url: Optional[str] = None) -> Tuple[SetupSession, str]:
        """Create a pending session; returns it with the URL the user should open"""
        now = self.clock()
        state = secrets.token_urlsafe(STATE_TOKEN_BYTES)

        if provider == "github":
            instance_url = None
            authorize_url = f"{settings.BASE_URL.rstrip('/')}/setup/github/create?state={state}"
        elif provider == "gitlab":
            if not self.gitlab.client_id or not self.gitlab.client_secret:
                raise NotConfiguredError("GITLAB_CLIENT_ID and GITLAB_CLIENT_SECRET must be set")
            instance_url = normalize_instance_url(instance_url)
            authorize_url = self.gitlab.authorize_url(instance_url, gitlab_callback_url(), state)
        else:
            raise NotFoundError(f"Unknown provider '{provider}'")

        setup = await self.sessions.create({
            "state": state,
            "provider": provider,
            "status": SetupStatus.PENDING.value,
            "instance_url": instance_url,
            "created_at": now,
            "expires_at": now + timedelta(minutes=settings.SETUP_SESSION_TTL_MINUTES),
            "message": WAITING_MESSAGE,
        })
        await self.session.commit()

        logger.info(f"Started {provider} setup session", extra={"provider": provider})
        return setup, authorize_url

    # reads

    async def get_session(self, provider: str, state: str) -> SetupSession:
        setup = await self.sessions.get(state, fresh=True)
        if setup is None or setup.provider != provider:
            raise NotFoundError("Setup session not found")
        return setup

    async def _expire_if_due(self, setup: SetupSession) -> SetupSession:
        now = self.clock()
        if setup.status != SetupStatus.PENDING.value or now <= setup.expires_at:
            return setup
        # A claimed session keeps running until the callback wait window is over
        if setup.consumed_at and now - setup.consumed_at < timedelta(seconds=settings.SETUP_CALLBACK_WAIT_SECONDS):
            return setup

        if await self.sessions.expire(setup.state, now):
            logger.info("Setup session expired", extra={"provider": setup.provider})
        await self.session.commit()
        return await self.sessions.get(setup.state, fresh=True)

    async def status(self, provider: str, state: str) -> SetupSession:
        """Current status, applying expiry first"""
        setup = await self.get_session(provider, state)
        return await self._expire_if_due(setup)

    async def get_pending(self, provider: str, state: str) -> SetupSession:
        """Session that can still be completed, for the manifest page"""
        setup = await self.status(provider, state)
        if setup.status != SetupStatus.PENDING.value or setup.consumed_at is not None:
            raise NotFoundError("Setup session is no longer pending")
        return setup

    # callback

    async def callback(
        self, provider: str, state: str, code: Optional[str], error: Optional[str] = None
    ) -> SetupSession:
        setup = await self.status(provider, state)
        if setup.status != SetupStatus.PENDING.value:
            return setup

        if not await self.sessions.claim(state, self.clock()):
            await self.session.commit()
            return await self._wait_for_result(provider, state)
        await self.session.commit()

        if error or not code:
            message = f"Provider reported an error: {error}" if error else "No authorization code received"
            await self.sessions.finish(state, SetupStatus.FAILED.value, self.clock(), message=message)
            await self.session.commit()
            logger.warning(f"{provider} setup failed: {message}", extra={"provider": provider})
            return await self.get_session(provider, state)

        try:
            if provider == "github":
                result_ref, account_name, message = await self._complete_github(code)
            else:
                result_ref, account_name, message = await self._complete_gitlab(setup.instance_url, code)
            finished = await self.sessions.finish(
                state,
                SetupStatus.COMPLETED.value,
                self.clock(),
                message=message,
                result_ref=result_ref,
                account_name=account_name,
            )
            if not finished:
                # Expired while the provider exchange ran; keep nothing from it
                await self.session.rollback()
                logger.warning(
                    f"{provider} setup session ended before the exchange finished; discarding result",
                    extra={"provider": provider},
                )
                return await self.get_session(provider, state)
            await self.session.commit()
        except Exception as e:
            await self.session.rollback()
            message = e.message if isinstance(e, HarborError) else "Unexpected error while completing setup"
            logger.error(f"{provider} setup exchange failed: {message}", extra={"provider": provider}, exc_info=True)
            await self.sessions.finish(state, SetupStatus.FAILED.value, self.clock(), message=message)
            await self.session.commit()
            return await self.get_session(provider, state)

        logger.info(f"{provider} setup completed for {account_name}", extra={"provider": provider})
        await self._first_sync(provider, state, result_ref, message)
        return await self.get_session(provider, state)

    async def _wait_for_result(self, provider: str, state: str) -> SetupSession:
        """Poll until the winning callback commits a terminal status"""
        deadline = self.clock() + timedelta(seconds=settings.SETUP_CALLBACK_WAIT_SECONDS)
        while True:
            setup = await self.get_session(provider, state)
            if setup.status != SetupStatus.PENDING.value or self.clock() >= deadline:
                return setup
            await self.session.rollback()
            await asyncio.sleep(settings.SETUP_CALLBACK_POLL_SECONDS)

    async def _complete_github(self, code: str) -> Tuple[str, str, str]:
        data = await self.github.exchange_manifest_code(code)
        apps = GitHubAppRepository(self.session)
        owner = data.get("owner") or {}
        values = {
            "name": data.get("name") or data["slug"],
            "slug": data["slug"],
            "owner_login": owner.get("login"),
            "owner_type": owner.get("type"),
            "client_id": data.get("client_id"),
            "html_url": data.get("html_url"),
            "is_active": True,
        }

        app = await apps.get_by_app_id(data["id"])
        if app is None:
            app = await apps.create({"app_id": data["id"], **values})
        else:
            apply_changes(app, values)

        # A single App receives the webhooks
        for other in await apps.get_multi(filters={"is_active": True}):
            if other.id != app.id:
                other.is_active = False

        await self.credential_store.put(app.credential_key, {
            "private_key": data["pem"],
            "webhook_secret": data["webhook_secret"],
            "client_secret": data.get("client_secret"),
        })

        message = f"GitHub App '{app.name}' created"
        if app.html_url:
            message += f"; install it from {app.html_url}/installations/new"
        return app.id, owner.get("login") or app.name, message

    async def _complete_gitlab(self, instance_url: str, code: str) -> Tuple[str, str, str]:
        now = self.clock()
        tokens = await self.gitlab.exchange_code(instance_url, code, gitlab_callback_url())
        user = await self.gitlab.get_current_user(instance_url, tokens["access_token"])

        credentials = GitLabCredentialRepository(self.session)
        credential = await credentials.get_by_instance(instance_url)
        values = {"user_id": user.get("id"), "username": user.get("username"), "is_active": True}
        if credential is None:
            credential = await credentials.create({"instance_url": instance_url, **values})
        else:
            apply_changes(credential, values)

        await store_gitlab_tokens(self.credential_store, credential, tokens, now)
        username = user.get("username") or "unknown"
        return credential.id, username, f"Connected to {instance_url} as {username}"

    async def _first_sync(self, provider: str, state: str, result_ref: str, message: str) -> None:
        """Initial reconciliation; failure is reported but never undoes completion"""
        reconciler = self.reconciler_factory(self.session)
        try:
            if provider == "github":
                app = await GitHubAppRepository(self.session).get(result_ref)
                await reconciler.sync_github_app(app)
            else:
                credential = await GitLabCredentialRepository(self.session).get(result_ref)
                await reconciler.sync_gitlab_credential(credential)
        except Exception as e:
            if isinstance(e, HarborError):
                reason = e.message
                logger.warning(f"Initial {provider} sync failed: {reason}", extra={"provider": provider})
            else:
                reason = "unexpected error"
                logger.exception(f"Initial {provider} sync failed", extra={"provider": provider})
            await self.session.rollback()
            await self.sessions.update_where(
                SetupSession.state == state,
                message=f"{message}. Initial sync failed ({reason}); run a sync to retry",
            )
            await self.session.commit()
