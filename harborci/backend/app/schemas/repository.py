# backend/app/schemas/repository.py
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from app.core.constants import Provider


class RepositoryCreate(BaseModel):
    provider: Provider
    provider_repo_id: str = Field(..., min_length=1)
    owner: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    default_branch: str = "main"
    clone_url: Optional[str] = None


class Repository(BaseModel):
    id: str
    provider: Provider
    provider_repo_id: str
    owner: str
    name: str
    clone_url: Optional[str]
    default_branch: str
    installation_id: Optional[str]
    gitlab_credential_id: Optional[str]
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class WebhookCredentials(BaseModel):
    """Returned once; the token itself is never stored"""
    webhook_url: str
    webhook_token: Optional[str] = None
