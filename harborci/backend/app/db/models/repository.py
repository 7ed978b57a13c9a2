# backend/app/db/models/repository.py
from sqlalchemy import Column, String, Boolean, ForeignKey, UniqueConstraint, CheckConstraint

from app.db.base import BaseModel, generate_ulid


class Repository(BaseModel):
    """
    A source repository known to HarborCI.

    Linked to a GitHub installation or a GitLab credential. Removal upstream
    flips is_active; rows are never deleted so builds stay queryable.
    """
    __tablename__ = "repositories"
    __table_args__ = (
        UniqueConstraint("provider", "provider_repo_id", name="uq_repositories_provider_repo"),
        CheckConstraint("provider IN ('github', 'gitlab')", name="repositories_provider_check"),
    )

    id = Column(String(26), primary_key=True, default=generate_ulid)
    provider = Column(String(16), nullable=False)
    provider_repo_id = Column(String(64), nullable=False)
    owner = Column(String(255), nullable=False)
    name = Column(String(255), nullable=False)
    clone_url = Column(String(1024), nullable=True)
    default_branch = Column(String(255), nullable=False, default="main")

    installation_id = Column(String(26), ForeignKey("installations.id"), nullable=True, index=True)
    gitlab_credential_id = Column(String(26), ForeignKey("gitlab_credentials.id"), nullable=True, index=True)
    webhook_token_hmac = Column(String(64), nullable=True)  # HMAC-SHA256 hex of the GitLab token

    is_active = Column(Boolean, nullable=False, default=True)

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"
