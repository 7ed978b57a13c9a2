# backend/app/db/models/__init__.py
from app.db.models.ci_integration import GitHubApp, Installation, GitLabCredential
from app.db.models.repository import Repository
from app.db.models.webhook_event import WebhookEvent
from app.db.models.build import Build
from app.db.models.setup_session import SetupSession
from app.db.models.stored_credential import StoredCredential, SyncLease

__all__ = [
    "GitHubApp",
    "Installation",
    "GitLabCredential",
    "Repository",
    "WebhookEvent",
    "Build",
    "SetupSession",
    "StoredCredential",
    "SyncLease",
]
