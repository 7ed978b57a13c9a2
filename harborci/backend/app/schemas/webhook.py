# backend/app/schemas/webhook.py
"""
Provider webhook payload schemas

One model per (provider, event type). Only fields the processor reads are
declared; anything else in the payload is ignored. Unknown event types and
payloads that do not match their model are rejected with
PayloadValidationError.
"""

import json
from datetime import datetime
from typing import ClassVar, Dict, List, Optional, Tuple, Type
from pydantic import BaseModel, Field, ValidationError

from app.core.exceptions import PayloadValidationError

BRANCH_REF_PREFIX = "refs/heads/"
ZERO_SHA = "0" * 40


def split_full_name(full_name: str) -> Tuple[str, str]:
    """'group/sub/repo' -> ('group/sub', 'repo')"""
    owner, _, name = full_name.rpartition("/")
    return owner, name


def branch_from_ref(ref: str) -> Optional[str]:
    if ref.startswith(BRANCH_REF_PREFIX):
        return ref[len(BRANCH_REF_PREFIX):]
    return None


class WebhookPayload(BaseModel):
    provider: ClassVar[str]
    event_type: ClassVar[str]


# GitHub

class GitHubAccount(BaseModel):
    login: str
    id: Optional[int] = None
    type: Optional[str] = None


class GitHubRepository(BaseModel):
    id: int
    full_name: str
    default_branch: Optional[str] = None
    clone_url: Optional[str] = None


class GitHubInstallationRef(BaseModel):
    id: int


class GitHubInstallation(BaseModel):
    id: int
    app_id: Optional[int] = None
    account: GitHubAccount
    repository_selection: str = "all"


class GitHubPushEvent(WebhookPayload):
    provider = "github"
    event_type = "push"

    ref: str
    after: str
    deleted: bool = False
    repository: GitHubRepository
    installation: Optional[GitHubInstallationRef] = None


class GitHubPullRequestHead(BaseModel):
    ref: str
    sha: str


class GitHubPullRequest(BaseModel):
    head: GitHubPullRequestHead


class GitHubPullRequestEvent(WebhookPayload):
    provider = "github"
    event_type = "pull_request"

    action: str
    number: int
    pull_request: GitHubPullRequest
    repository: GitHubRepository
    installation: Optional[GitHubInstallationRef] = None


class GitHubInstallationEvent(WebhookPayload):
    provider = "github"
    event_type = "installation"

    action: str
    installation: GitHubInstallation
    repositories: List[GitHubRepository] = Field(default_factory=list)


class GitHubInstallationRepositoriesEvent(WebhookPayload):
    provider = "github"
    event_type = "installation_repositories"

    action: str
    installation: GitHubInstallation
    repository_selection: Optional[str] = None
    repositories_added: List[GitHubRepository] = Field(default_factory=list)
    repositories_removed: List[GitHubRepository] = Field(default_factory=list)


class GitHubPingEvent(WebhookPayload):
    provider = "github"
    event_type = "ping"

    zen: Optional[str] = None
    hook_id: Optional[int] = None


# GitLab

class GitLabProject(BaseModel):
    id: int
    path_with_namespace: str
    default_branch: Optional[str] = None
    git_http_url: Optional[str] = None


class GitLabPushEvent(WebhookPayload):
    provider = "gitlab"
    event_type = "Push Hook"

    ref: str
    after: str
    project: GitLabProject

    @property
    def deleted(self) -> bool:
        return self.after == ZERO_SHA


class GitLabTagPushEvent(WebhookPayload):
    provider = "gitlab"
    event_type = "Tag Push Hook"

    ref: str
    after: str
    project: GitLabProject


class GitLabCommit(BaseModel):
    id: str


class GitLabMergeRequestAttributes(BaseModel):
    iid: int
    action: Optional[str] = None
    source_branch: str
    last_commit: GitLabCommit
    oldrev: Optional[str] = None


class GitLabMergeRequestEvent(WebhookPayload):
    provider = "gitlab"
    event_type = "Merge Request Hook"

    object_attributes: GitLabMergeRequestAttributes
    project: GitLabProject


PAYLOAD_SCHEMAS: Dict[Tuple[str, str], Type[WebhookPayload]] = {
    (model.provider, model.event_type): model
    for model in (
        GitHubPushEvent,
        GitHubPullRequestEvent,
        GitHubInstallationEvent,
        GitHubInstallationRepositoriesEvent,
        GitHubPingEvent,
        GitLabPushEvent,
        GitLabTagPushEvent,
        GitLabMergeRequestEvent,
    )
}


def parse_payload(provider: str, event_type: str, body: bytes) -> WebhookPayload:
    schema = PAYLOAD_SCHEMAS.get((provider, event_type))
    if schema is None:
        raise PayloadValidationError(f"Unsupported {provider} event type '{event_type}'", code="unsupported_event")
    try:
        return schema.model_validate_json(body)
    except ValidationError as e:
        raise PayloadValidationError(
            f"Malformed {provider} '{event_type}' payload: {e.error_count()} validation error(s)"
        ) from e


def extract_repository_key(provider: str, body: bytes) -> Optional[str]:
    """Best-effort repository identity used for queue partitioning"""
    try:
        data = json.loads(body)
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None

    if provider == "github":
        repo = data.get("repository")
        if isinstance(repo, dict) and repo.get("id") is not None:
            return f"github:{repo['id']}"
        installation = data.get("installation")
        if isinstance(installation, dict) and installation.get("id") is not None:
            return f"github-installation:{installation['id']}"
    elif provider == "gitlab":
        project = data.get("project")
        if isinstance(project, dict) and project.get("id") is not None:
            return f"gitlab:{project['id']}"
    return None


def extract_gitlab_project_id(body: bytes) -> Optional[str]:
    key = extract_repository_key("gitlab", body)
    return key.split(":", 1)[1] if key else None


class WebhookAck(BaseModel):
    status: str
    event_id: Optional[str] = None


class WebhookEventOut(BaseModel):
    id: str
    provider: str
    delivery_id: str
    event_type: str
    repository_id: Optional[str]
    received_at: datetime
    processed: bool
    processed_at: Optional[datetime]
    note: Optional[str]
    error_message: Optional[str]

    class Config:
        from_attributes = True
