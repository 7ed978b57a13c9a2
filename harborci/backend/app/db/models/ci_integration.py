# backend/app/db/models/ci_integration.py
"""
Provider account bindings
GitHub App + installations, GitLab OAuth credentials
Secrets themselves live in the credential store, keyed by these rows.
"""

from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, BigInteger, CheckConstraint

from app.db.base import BaseModel, generate_ulid


class GitHubApp(BaseModel):
    """GitHub App created through the manifest flow"""
    __tablename__ = "github_apps"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    app_id = Column(BigInteger, nullable=False, unique=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False)
    owner_login = Column(String(255), nullable=True)
    owner_type = Column(String(32), nullable=True)
    client_id = Column(String(255), nullable=True)
    html_url = Column(String(1024), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    @property
    def credential_key(self) -> str:
        return f"github_app:{self.app_id}"


class Installation(BaseModel):
    """GitHub App installation on a user or organization account"""
    __tablename__ = "installations"
    __table_args__ = (
        CheckConstraint(
            "repository_selection IN ('all', 'selected')",
            name="installations_repository_selection_check",
        ),
    )

    id = Column(String(26), primary_key=True, default=generate_ulid)
    github_app_id = Column(String(26), ForeignKey("github_apps.id"), nullable=True, index=True)
    installation_id = Column(BigInteger, nullable=False, unique=True)
    account_login = Column(String(255), nullable=False)
    account_type = Column(String(32), nullable=True)
    account_id = Column(BigInteger, nullable=True)
    repository_selection = Column(String(16), nullable=False, default="all")
    is_active = Column(Boolean, nullable=False, default=True)


class GitLabCredential(BaseModel):
    """OAuth binding to one GitLab instance"""
    __tablename__ = "gitlab_credentials"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    instance_url = Column(String(1024), nullable=False, unique=True)
    user_id = Column(BigInteger, nullable=True)
    username = Column(String(255), nullable=True)
    token_expires_at = Column(DateTime, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    @property
    def credential_key(self) -> str:
        return f"gitlab:{self.id}"
