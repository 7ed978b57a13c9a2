# backend/app/services/upserts.py
"""
Change-aware upserts shared by the event processor and the reconciler.

Only attributes whose value actually differs are assigned, so re-applying
the same remote state leaves rows (and updated_at) untouched.
"""

from typing import Any, Dict, Optional, Tuple

from app.db.models.ci_integration import Installation
from app.db.models.repository import Repository
from app.db.repositories.integration_repository import InstallationRepository
from app.db.repositories.repo_repository import RepoRepository
from app.schemas.webhook import split_full_name

CREATED = "created"
UPDATED = "updated"
UNCHANGED = "unchanged"


def apply_changes(obj: Any, values: Dict[str, Any]) -> bool:
    """Assign values that differ; None means 'unknown' and never overwrites"""
    changed = False
    for key, value in values.items():
        if value is None:
            continue
        if getattr(obj, key) != value:
            setattr(obj, key, value)
            changed = True
    return changed


async def upsert_repository(
    repos: RepoRepository,
    provider: str,
    provider_repo_id: Any,
    full_name: str,
    default_branch: Optional[str] = None,
    clone_url: Optional[str] = None,
    installation_id: Optional[str] = None,
    gitlab_credential_id: Optional[str] = None,
) -> Tuple[Repository, str]:
    owner, name = split_full_name(full_name)
    values = {
        "owner": owner,
        "name": name,
        "default_branch": default_branch,
        "clone_url": clone_url,
        "installation_id": installation_id,
        "gitlab_credential_id": gitlab_credential_id,
        "is_active": True,
    }

    repo = await repos.get_by_provider_id(provider, str(provider_repo_id))
    if repo is None:
        values["default_branch"] = default_branch or "main"
        repo = await repos.create({
            "provider": provider,
            "provider_repo_id": str(provider_repo_id),
            **{k: v for k, v in values.items() if v is not None},
        })
        return repo, CREATED

    return repo, UPDATED if apply_changes(repo, values) else UNCHANGED


async def upsert_installation(
    installations: InstallationRepository,
    installation_id: int,
    account_login: str,
    account_type: Optional[str] = None,
    account_id: Optional[int] = None,
    repository_selection: Optional[str] = None,
    github_app_id: Optional[str] = None,
    is_active: bool = True,
) -> Tuple[Installation, str]:
    values = {
        "account_login": account_login,
        "account_type": account_type,
        "account_id": account_id,
        "repository_selection": repository_selection,
        "github_app_id": github_app_id,
        "is_active": is_active,
    }

    installation = await installations.get_by_installation_id(installation_id)
    if installation is None:
        installation = await installations.create({
            "installation_id": installation_id,
            **{k: v for k, v in values.items() if v is not None},
        })
        return installation, CREATED

    return installation, UPDATED if apply_changes(installation, values) else UNCHANGED


def deactivate(obj: Any) -> bool:
    if obj.is_active:
        obj.is_active = False
        return True
    return False
