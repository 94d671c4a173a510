from datetime import datetime

from pydantic import Field

from app.models.base import Record, utcnow


class HostRating(Record):
    host_id: str
    caller_id: str
    call_id: str  # one rating per call
    rating: int
    feedback: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
