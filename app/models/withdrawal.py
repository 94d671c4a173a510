from datetime import datetime

from pydantic import Field

from app.models.base import Record, utcnow
from app.models.enums import WithdrawalStatus


class Withdrawal(Record):
    user_id: str
    amount: float
    method: str  # "upi" | "bank_transfer"
    status: WithdrawalStatus = WithdrawalStatus.PENDING
    upi_id: str | None = None
    account_number: str | None = None
    ifsc_code: str | None = None
    account_holder_name: str | None = None
    requested_at: datetime = Field(default_factory=utcnow)
    processed_at: datetime | None = None
    rejection_reason: str | None = None
