# backend/app/db/models/setup_session.py
from sqlalchemy import Column, String, DateTime, Text, CheckConstraint
from datetime import datetime

from app.db.base import Base


class SetupSession(Base):
    """
    One provider authorization attempt, keyed by its state token.

    consumed_at marks the callback that won the right to exchange the
    provider code. Expiry is evaluated when the row is read.
    """
    __tablename__ = "setup_sessions"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'completed', 'failed', 'expired')",
            name="setup_sessions_status_check",
        ),
    )

    state = Column(String(128), primary_key=True)
    provider = Column(String(16), nullable=False)
    status = Column(String(16), nullable=False, default="pending")
    instance_url = Column(String(1024), nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    expires_at = Column(DateTime, nullable=False)
    consumed_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    message = Column(Text, nullable=True)
    result_ref = Column(String(26), nullable=True)  # github_apps.id or gitlab_credentials.id
    account_name = Column(String(255), nullable=True)
