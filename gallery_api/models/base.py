"""
Column helpers shared by the models.
"""
import uuid
from datetime import datetime, timezone


def generate_id() -> str:
    """32 character hex id."""
    return uuid.uuid4().hex


def utcnow() -> datetime:
    """Naive UTC timestamp, as stored in the database."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
