# backend/app/services/gitlab_client.py
"""
GitLab REST client
OAuth code exchange, token refresh and project listing
"""

from typing import Any, Dict, List, Optional
from urllib.parse import quote, urlencode

from app.core.config import settings
from app.core.exceptions import ProviderError
from app.services.provider_client import ProviderClient

PER_PAGE = 100
MAX_PAGES = 100


def normalize_instance_url(url: Optional[str]) -> str:
    return (url or settings.GITLAB_URL).strip().rstrip("/")


class GitLabClient(ProviderClient):

    provider = "gitlab"

    def __init__(self, client_id: Optional[str] = None, client_secret: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.client_id = client_id or settings.GITLAB_CLIENT_ID
        self.client_secret = client_secret or settings.GITLAB_CLIENT_SECRET

    @staticmethod
    def _auth(token: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {token}"}

    def authorize_url(self, instance_url: str, redirect_uri: str, state: str) -> str:
        query = urlencode({
            "client_id": self.client_id or "",
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "state": state,
            "scope": "api",
        })
        return f"{instance_url}/oauth/authorize?{query}"

    async def _token_request(self, instance_url: str, form: Dict[str, str]) -> Dict[str, Any]:
        form = {"client_id": self.client_id or "", "client_secret": self.client_secret or "", **form}
        data = await self.request_json("POST", f"{instance_url}/oauth/token", data=form)
        if not data.get("access_token"):
            raise ProviderError("GitLab did not return an access token")
        return data

    async def exchange_code(self, instance_url: str, code: str, redirect_uri: str) -> Dict[str, Any]:
        return await self._token_request(instance_url, {
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": redirect_uri,
        })

    async def refresh_token(self, instance_url: str, refresh_token: str) -> Dict[str, Any]:
        return await self._token_request(instance_url, {
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        })

    async def get_current_user(self, instance_url: str, access_token: str) -> Dict[str, Any]:
        return await self.request_json("GET", f"{instance_url}/api/v4/user", headers=self._auth(access_token))

    async def list_projects(self, instance_url: str, access_token: str) -> List[Dict[str, Any]]:
        """Every project the token's user is a member of"""
        projects: List[Dict[str, Any]] = []
        for page in range(1, MAX_PAGES + 1):
            batch = await self.request_json(
                "GET",
                f"{instance_url}/api/v4/projects",
                headers=self._auth(access_token),
                params={"membership": "true", "simple": "true", "per_page": PER_PAGE, "page": page},
            )
            projects.extend(batch)
            if len(batch) < PER_PAGE:
                break
        return projects

    async def get_branch_head(self, instance_url: str, access_token: str, project_id: str, branch: str) -> str:
        data = await self.request_json(
            "GET",
            f"{instance_url}/api/v4/projects/{project_id}/repository/branches/{quote(branch, safe='')}",
            headers=self._auth(access_token),
        )
        return data["commit"]["id"]
