"""Closed sets of kinds and statuses used across the wallet, call and host flows."""

from enum import Enum


class CallType(str, Enum):
    AUDIO = "audio"
    VIDEO = "video"


class CallStatus(str, Enum):
    INITIATED = "initiated"
    RINGING = "ringing"
    ANSWERED = "answered"
    COMPLETED = "completed"
    REJECTED = "rejected"
    MISSED = "missed"
    DECLINED = "declined"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_CALL_STATUSES


TERMINAL_CALL_STATUSES = frozenset(
    {
        CallStatus.COMPLETED,
        CallStatus.REJECTED,
        CallStatus.MISSED,
        CallStatus.DECLINED,
        CallStatus.FAILED,
    }
)


class TransactionKind(str, Enum):
    PURCHASE = "purchase"
    DEBIT = "debit"
    BONUS = "bonus"
    REFUND = "refund"
    ADMIN = "admin"


class ChargePurpose(str, Enum):
    """What a debit paid for; kept in the ledger entry metadata."""

    AUDIO_CALL = "audio_call"
    VIDEO_CALL = "video_call"
    GIFT = "gift"
    OTHER = "other"


class BonusType(str, Enum):
    HIGH_RATING = "high_rating"
    MILESTONE = "milestone"


class EarningStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"


class WithdrawalStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    REJECTED = "rejected"


class HostVerificationStatus(str, Enum):
    NONE = "none"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class PaymentStatus(str, Enum):
    CREATED = "created"
    PAID = "paid"
    FAILED = "failed"


class ProductType(str, Enum):
    """What a Razorpay order buys."""

    COINS = "coins"
    PREMIUM_MONTHLY = "premium_monthly"
    PREMIUM_YEARLY = "premium_yearly"
