import uuid
from datetime import datetime, timezone

from pydantic import BaseModel, Field


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    """Naive UTC, matching what MongoDB hands back."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Record(BaseModel):
    """Base for persisted records; the Mongo backend maps each one onto a Beanie document."""

    id: str = Field(default_factory=new_id)
