# backend/app/services/provider_auth.py
"""
Credential lookups for authenticated provider calls.

Decrypted secrets stay inside these helpers and the provider client call
that consumes them.
"""

from datetime import datetime, timedelta
from typing import Callable, Optional

from app.core.exceptions import CredentialError
from app.core.logging import logger
from app.db.models.ci_integration import GitHubApp, GitLabCredential
from app.services.credential_store import CredentialStore
from app.services.github_client import GitHubClient
from app.services.gitlab_client import GitLabClient

# Refresh GitLab tokens slightly before they actually expire
TOKEN_REFRESH_MARGIN = timedelta(minutes=2)


async def github_app_jwt(store: CredentialStore, github: GitHubClient, app: GitHubApp) -> str:
    creds = await store.get(app.credential_key)
    if not creds or not creds.get("private_key"):
        logger.critical(f"No private key stored for GitHub App {app.app_id}", extra={"provider": "github"})
        raise CredentialError(f"Private key for GitHub App {app.app_id} is missing")
    return github.create_app_jwt(app.app_id, creds["private_key"])


def token_expiry(expires_in: Optional[int], now: datetime) -> Optional[datetime]:
    if not expires_in:
        return None
    return now + timedelta(seconds=int(expires_in))


async def store_gitlab_tokens(store: CredentialStore, credential: GitLabCredential, tokens: dict, now: datetime) -> None:
    await store.put(credential.credential_key, {
        "access_token": tokens["access_token"],
        "refresh_token": tokens.get("refresh_token"),
    })
    credential.token_expires_at = token_expiry(tokens.get("expires_in"), now)


async def gitlab_access_token(
    store: CredentialStore,
    gitlab: GitLabClient,
    credential: GitLabCredential,
    clock: Callable[[], datetime] = datetime.utcnow,
) -> str:
    """
    Current access token for a GitLab credential.

    An expired token is refreshed and the new pair committed right away:
    GitLab invalidates the old refresh token as soon as it is used.
    """
    tokens = await store.get(credential.credential_key)
    if not tokens or not tokens.get("access_token"):
        logger.critical(f"No access token stored for GitLab credential {credential.id}", extra={"provider": "gitlab"})
        raise CredentialError(f"Access token for {credential.instance_url} is missing")

    now = clock()
    expires_at = credential.token_expires_at
    if expires_at is None or expires_at - TOKEN_REFRESH_MARGIN > now:
        return tokens["access_token"]

    if not tokens.get("refresh_token"):
        raise CredentialError(f"Access token for {credential.instance_url} expired and cannot be refreshed")

    logger.info(f"Refreshing GitLab access token for {credential.instance_url}", extra={"provider": "gitlab"})
    refreshed = await gitlab.refresh_token(credential.instance_url, tokens["refresh_token"])
    await store_gitlab_tokens(store, credential, refreshed, now)
    await store.session.commit()
    return refreshed["access_token"]
