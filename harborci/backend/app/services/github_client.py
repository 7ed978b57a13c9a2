# backend/app/services/github_client.py
"""
GitHub REST client
Manifest conversion, App JWT auth, installations and repositories
"""

import time
from typing import Any, Dict, List, Optional
from urllib.parse import quote
import jwt

from app.core.config import settings
from app.core.constants import GITHUB_API_VERSION
from app.core.exceptions import CredentialError, ProviderError
from app.core.logging import logger
from app.services.provider_client import ProviderClient

PER_PAGE = 100
MAX_PAGES = 100  # hard stop even if the API keeps paginating
JWT_LIFETIME_SECONDS = 540


class GitHubClient(ProviderClient):
    """Thin async wrapper over the GitHub App endpoints HarborCI needs"""

    provider = "github"

    def __init__(self, api_url: Optional[str] = None, web_url: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.api_url = (api_url or settings.GITHUB_API_URL).rstrip("/")
        self.web_url = (web_url or settings.GITHUB_WEB_URL).rstrip("/")

    def _headers(self, bearer: Optional[str] = None) -> Dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
            "User-Agent": "HarborCI",
        }
        if bearer:
            headers["Authorization"] = f"Bearer {bearer}"
        return headers

    # Manifest flow

    def build_manifest(self, base_url: str, app_name: Optional[str] = None) -> Dict[str, Any]:
        base_url = base_url.rstrip("/")
        return {
            "name": app_name or settings.GITHUB_APP_NAME,
            "url": base_url,
            "hook_attributes": {
                "url": f"{base_url}/api/webhooks/github",
                "active": True,
            },
            "redirect_url": f"{base_url}/setup/github/callback",
            "setup_url": f"{base_url}/setup/github/installed",
            "public": False,
            "default_permissions": {
                "contents": "read",
                "metadata": "read",
                "statuses": "write",
                "checks": "write",
            },
            "default_events": ["push", "pull_request"],
        }

    def manifest_post_url(self, state: str) -> str:
        return f"{self.web_url}/settings/apps/new?state={quote(state)}"

    async def exchange_manifest_code(self, code: str) -> Dict[str, Any]:
        """Convert a one-time manifest code into App credentials"""
        data = await self.request_json(
            "POST",
            f"{self.api_url}/app-manifests/{quote(code)}/conversions",
            headers=self._headers(),
        )
        for field in ("id", "slug", "pem", "webhook_secret"):
            if not data.get(field):
                raise ProviderError(f"GitHub manifest conversion response is missing '{field}'")
        return data

    # App authentication

    def create_app_jwt(self, app_id: int, private_key: str) -> str:
        now = int(time.time())
        payload = {"iat": now - 60, "exp": now + JWT_LIFETIME_SECONDS, "iss": str(app_id)}
        try:
            return jwt.encode(payload, private_key, algorithm="RS256")
        except (ValueError, TypeError, jwt.PyJWTError) as e:
            logger.critical("GitHub App private key is unusable", extra={"provider": self.provider})
            raise CredentialError("GitHub App private key is invalid") from e

    async def create_installation_token(self, app_jwt: str, installation_id: int) -> str:
        data = await self.request_json(
            "POST",
            f"{self.api_url}/app/installations/{installation_id}/access_tokens",
            headers=self._headers(app_jwt),
        )
        token = data.get("token")
        if not token:
            raise ProviderError("GitHub did not return an installation token")
        return token

    async def list_installations(self, app_jwt: str) -> List[Dict[str, Any]]:
        installations: List[Dict[str, Any]] = []
        for page in range(1, MAX_PAGES + 1):
            batch = await self.request_json(
                "GET",
                f"{self.api_url}/app/installations",
                headers=self._headers(app_jwt),
                params={"per_page": PER_PAGE, "page": page},
            )
            installations.extend(batch)
            if len(batch) < PER_PAGE:
                break
        return installations

    async def list_installation_repositories(
        self, installation_token: str, max_repos: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        max_repos = max_repos or settings.GITHUB_MAX_REPOS_PER_INSTALLATION
        repositories: List[Dict[str, Any]] = []
        for page in range(1, MAX_PAGES + 1):
            data = await self.request_json(
                "GET",
                f"{self.api_url}/installation/repositories",
                headers=self._headers(installation_token),
                params={"per_page": PER_PAGE, "page": page},
            )
            batch = data.get("repositories", [])
            repositories.extend(batch)
            if len(repositories) >= max_repos:
                logger.warning(
                    f"Installation has more than {max_repos} repositories, truncating",
                    extra={"provider": self.provider},
                )
                return repositories[:max_repos]
            if len(batch) < PER_PAGE:
                break
        return repositories

    async def get_branch_head(self, installation_token: str, owner: str, name: str, branch: str) -> str:
        data = await self.request_json(
            "GET",
            f"{self.api_url}/repos/{quote(owner)}/{quote(name)}/branches/{quote(branch, safe='')}",
            headers=self._headers(installation_token),
        )
        return data["commit"]["sha"]
