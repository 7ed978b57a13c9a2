# backend/app/schemas/setup.py
from pydantic import BaseModel
from typing import Optional
from datetime import datetime


class SetupStart(BaseModel):
    instance_url: Optional[str] = None


class SetupStarted(BaseModel):
    state: str
    authorize_url: str
    expires_at: datetime


class SetupStatus(BaseModel):
    status: str
    message: Optional[str] = None
    provider: Optional[str] = None
    account_name: Optional[str] = None
    result_ref: Optional[str] = None
    expires_at: Optional[datetime] = None
