# backend/app/schemas/build.py
from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from app.core.constants import BuildStatus, TriggerType


class BuildTrigger(BaseModel):
    branch: Optional[str] = None
    commit_sha: Optional[str] = None


class BuildStatusUpdate(BaseModel):
    status: BuildStatus
    error_message: Optional[str] = None


class Build(BaseModel):
    id: str
    repository_id: str
    webhook_event_id: Optional[str]
    branch: str
    commit_sha: str
    trigger_type: TriggerType
    pull_request_number: Optional[int]
    status: BuildStatus
    error_message: Optional[str]
    created_at: datetime
    started_at: Optional[datetime]
    finished_at: Optional[datetime]

    class Config:
        from_attributes = True
