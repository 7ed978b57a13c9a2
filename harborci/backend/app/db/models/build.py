# backend/app/db/models/build.py
from sqlalchemy import Column, String, DateTime, ForeignKey, Integer, Text, CheckConstraint
from datetime import datetime

from app.db.base import Base, generate_ulid


class Build(Base):
    """
    Recorded intent to build one commit of a repository.

    Status moves pending -> running -> success|failure, or to cancelled
    from pending/running. A build created from a webhook keeps a unique
    reference to that event, so one delivery yields at most one build.
    """
    __tablename__ = "builds"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'running', 'success', 'failure', 'cancelled')",
            name="builds_status_check",
        ),
        CheckConstraint(
            "trigger_type IN ('push', 'pull_request', 'manual')",
            name="builds_trigger_type_check",
        ),
    )

    id = Column(String(26), primary_key=True, default=generate_ulid)
    repository_id = Column(String(26), ForeignKey("repositories.id"), nullable=False, index=True)
    webhook_event_id = Column(String(26), ForeignKey("webhook_events.id"), nullable=True, unique=True)

    branch = Column(String(255), nullable=False)
    commit_sha = Column(String(64), nullable=False)
    trigger_type = Column(String(20), nullable=False)
    pull_request_number = Column(Integer, nullable=True)
    status = Column(String(20), nullable=False, default="pending", index=True)
    error_message = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    started_at = Column(DateTime, nullable=True)
    finished_at = Column(DateTime, nullable=True)
