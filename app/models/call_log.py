from datetime import datetime

from pydantic import Field

from app.models.base import Record, utcnow
from app.models.enums import CallStatus, CallType


class CallLog(Record):
    caller_id: str
    receiver_id: str
    call_type: CallType
    status: CallStatus = CallStatus.INITIATED
    room_name: str | None = None
    started_at: datetime | None = None
    ended_at: datetime | None = None
    duration_seconds: int | None = None
    coins_charged: int | None = None  # set once, on the edge into completed
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
