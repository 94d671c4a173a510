from datetime import datetime
from typing import Any

from pydantic import Field

from app.models.base import Record, utcnow
from app.models.enums import BonusType


class HostBonus(Record):
    host_id: str
    bonus_type: BonusType
    amount: float
    description: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)
    credited_at: datetime = Field(default_factory=utcnow)
