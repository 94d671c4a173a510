from datetime import datetime
from typing import Any

from pydantic import Field

from app.models.base import Record, utcnow
from app.models.enums import TransactionKind


class Transaction(Record):
    """Immutable coin ledger entry. Sum of `coins` per user equals the user's balance."""

    user_id: str
    kind: TransactionKind
    coins: int  # positive = credit, negative = debit
    amount: int = 0  # money in minor units (paise); 0 for pure coin movements
    balance_after: int | None = None  # filled in by the store inside the atomic write
    description: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
