# backend/app/api/v1/setup.py
"""
Provider setup flows
Start a session, let the provider redirect back, poll for the outcome.
"""

import html
import json
from fastapi import APIRouter, Depends, Query
from fastapi.responses import HTMLResponse
from typing import Optional

from app.api.dependencies import get_setup_coordinator, require_api_token
from app.core.config import settings
from app.core.constants import Provider, SetupStatus as SetupState
from app.schemas.setup import SetupStart, SetupStarted, SetupStatus
from app.services.setup_flow import IN_PROGRESS_MESSAGE, SetupFlowCoordinator

router = APIRouter()


def _page(title: str, body: str, status_code: int = 200) -> HTMLResponse:
    content = (
        "<!DOCTYPE html><html><head><meta charset=\"utf-8\">"
        f"<title>{html.escape(title)}</title></head>"
        f"<body><h1>{html.escape(title)}</h1>{body}</body></html>"
    )
    return HTMLResponse(content=content, status_code=status_code)


@router.post("/{provider}", response_model=SetupStarted, dependencies=[Depends(require_api_token)])
async def start_setup(
    provider: Provider,
    setup_in: Optional[SetupStart] = None,
    coordinator: SetupFlowCoordinator = Depends(get_setup_coordinator),
):
    """Begin a setup flow; open authorize_url and poll the status endpoint"""
    instance_url = setup_in.instance_url if setup_in else None
    session, authorize_url = await coordinator.start(provider.value, instance_url)
    return SetupStarted(state=session.state, authorize_url=authorize_url, expires_at=session.expires_at)


@router.get("/github/create", response_class=HTMLResponse)
async def github_manifest_form(
    state: str = Query(...),
    coordinator: SetupFlowCoordinator = Depends(get_setup_coordinator),
):
    """Self-submitting form that posts the App manifest to GitHub"""
    await coordinator.get_pending("github", state)
    manifest = coordinator.github.build_manifest(settings.BASE_URL)
    action = coordinator.github.manifest_post_url(state)
    body = (
        f"<form id=\"manifest\" method=\"post\" action=\"{html.escape(action)}\">"
        f"<input type=\"hidden\" name=\"manifest\" value=\"{html.escape(json.dumps(manifest))}\">"
        "<button type=\"submit\">Create GitHub App</button></form>"
        "<script>document.getElementById('manifest').submit();</script>"
    )
    return _page("Redirecting to GitHub", body)


@router.get("/github/installed", response_class=HTMLResponse)
async def github_app_installed(installation_id: Optional[int] = None, setup_action: Optional[str] = None):
    """Landing page after installing the App; the installation webhook does the rest"""
    detail = f"Installation {installation_id} {setup_action or 'installed'}." if installation_id else "Installation received."
    return _page("GitHub App installed", f"<p>{html.escape(detail)} You can close this window.</p>")


@router.get("/{provider}/callback", response_class=HTMLResponse)
async def setup_callback(
    provider: Provider,
    state: str = Query(...),
    code: Optional[str] = None,
    error: Optional[str] = None,
    coordinator: SetupFlowCoordinator = Depends(get_setup_coordinator),
):
    """Provider redirect target"""
    session = await coordinator.callback(provider.value, state, code, error)
    succeeded = session.status == SetupState.COMPLETED.value
    title = "Setup complete" if succeeded else f"Setup {session.status}"
    return _page(
        title,
        f"<p>{html.escape(session.message or '')}</p><p>You can close this window.</p>",
        status_code=200 if succeeded else 400,
    )


@router.get("/{provider}/status", response_model=SetupStatus)
async def setup_status(
    provider: Provider,
    state: str = Query(...),
    coordinator: SetupFlowCoordinator = Depends(get_setup_coordinator),
):
    """Polled by clients until the status is terminal"""
    session = await coordinator.status(provider.value, state)
    message = session.message
    if session.status == SetupState.PENDING.value and session.consumed_at is not None:
        message = IN_PROGRESS_MESSAGE
    return SetupStatus(
        status=session.status,
        message=message,
        provider=session.provider,
        account_name=session.account_name,
        result_ref=session.result_ref,
        expires_at=session.expires_at,
    )
