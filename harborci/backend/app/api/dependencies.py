# backend/app/api/dependencies.py
import hmac
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from app.core.config import settings
from app.core.exceptions import AuthenticationError
from app.db.session import get_db
from app.services.build_lifecycle import BuildLifecycleManager
from app.services.reconciler import InstallationReconciler
from app.services.setup_flow import SetupFlowCoordinator
from app.services.webhook_ingestion import WebhookIngestionService

security = HTTPBearer(auto_error=False)


async def require_api_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> None:
    """Bearer token check for the management API"""
    if not settings.API_TOKEN:
        return
    if not credentials or not hmac.compare_digest(credentials.credentials.encode(), settings.API_TOKEN.encode()):
        raise AuthenticationError("Invalid or missing API token")


def get_ingestion_service(db: AsyncSession = Depends(get_db)) -> WebhookIngestionService:
    return WebhookIngestionService(db)


def get_build_manager(db: AsyncSession = Depends(get_db)) -> BuildLifecycleManager:
    return BuildLifecycleManager(db)


def get_reconciler(db: AsyncSession = Depends(get_db)) -> InstallationReconciler:
    return InstallationReconciler(db)


def get_setup_coordinator(db: AsyncSession = Depends(get_db)) -> SetupFlowCoordinator:
    return SetupFlowCoordinator(db)
