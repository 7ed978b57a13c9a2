# backend/app/api/v1/integrations.py
from fastapi import APIRouter, Depends

from app.api.dependencies import get_reconciler, require_api_token
from app.core.constants import Provider
from app.schemas.integration import SyncReport
from app.services.reconciler import InstallationReconciler

router = APIRouter(dependencies=[Depends(require_api_token)])


@router.post("/{provider}/sync", response_model=SyncReport)
async def sync_provider(
    provider: Provider,
    reconciler: InstallationReconciler = Depends(get_reconciler),
):
    """Reconcile installations and repositories; safe to repeat"""
    results = await reconciler.sync(provider.value)
    return SyncReport(results=results)
