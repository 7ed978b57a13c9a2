# backend/app/db/models/stored_credential.py
from sqlalchemy import Column, String, Text, DateTime

from app.db.base import BaseModel


class StoredCredential(BaseModel):
    """Encrypted credential blob addressed by key"""
    __tablename__ = "stored_credentials"

    key = Column(String(255), primary_key=True)
    ciphertext = Column(Text, nullable=False)


class SyncLease(BaseModel):
    """Exclusive right to reconcile one provider account"""
    __tablename__ = "sync_leases"

    account_key = Column(String(255), primary_key=True)
    holder = Column(String(26), nullable=False)
    acquired_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False)
