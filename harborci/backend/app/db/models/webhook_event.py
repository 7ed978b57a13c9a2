# backend/app/db/models/webhook_event.py
from sqlalchemy import Column, String, DateTime, Boolean, LargeBinary, ForeignKey, Text, UniqueConstraint, CheckConstraint, Index
from datetime import datetime

from app.db.base import Base, generate_ulid


class WebhookEvent(Base):
    """
    One provider webhook delivery, stored verbatim.

    (provider, delivery_id) is the idempotency key. Rows are written by
    ingestion and afterwards only touched by the event processor.
    """
    __tablename__ = "webhook_events"
    __table_args__ = (
        UniqueConstraint("provider", "delivery_id", name="uq_webhook_events_provider_delivery"),
        CheckConstraint("provider IN ('github', 'gitlab')", name="webhook_events_provider_check"),
        Index("ix_webhook_events_unprocessed", "processed", "claimed_at"),
    )

    id = Column(String(26), primary_key=True, default=generate_ulid)
    provider = Column(String(16), nullable=False)
    delivery_id = Column(String(255), nullable=False)
    event_type = Column(String(64), nullable=False)
    payload = Column(LargeBinary, nullable=False)
    repository_id = Column(String(26), ForeignKey("repositories.id"), nullable=True, index=True)

    received_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    claimed_at = Column(DateTime, nullable=True)
    processed = Column(Boolean, nullable=False, default=False)
    processed_at = Column(DateTime, nullable=True)
    note = Column(Text, nullable=True)  # why no build was created, when skipped on purpose
    error_message = Column(Text, nullable=True)
