# backend/app/schemas/integration.py
from pydantic import BaseModel
from typing import List


class SyncResult(BaseModel):
    """Row counts written by one reconciliation run"""
    provider: str
    account: str
    created: int = 0
    updated: int = 0
    deactivated: int = 0
    unchanged: int = 0

    @property
    def writes(self) -> int:
        return self.created + self.updated + self.deactivated


class SyncReport(BaseModel):
    results: List[SyncResult]
