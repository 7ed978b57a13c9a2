# backend/app/db/session.py
"""Expose get_db for route modules."""
from app.db.database import get_db

__all__ = ["get_db"]
