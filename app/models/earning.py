from datetime import datetime

from pydantic import Field

from app.models.base import Record, utcnow
from app.models.enums import CallType, EarningStatus


class Earning(Record):
    """Host revenue share for one billed call. At most one per call_id."""

    host_id: str
    call_id: str
    call_type: CallType
    call_duration_seconds: int
    total_revenue: float
    host_share_percent: float  # stored as a percentage, e.g. 30.0
    host_earning: float
    status: EarningStatus = EarningStatus.COMPLETED
    processed_at: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)
