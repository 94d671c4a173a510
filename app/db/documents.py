"""Beanie documents: one per record type, same fields, plus collection name and indexes."""

from beanie import Document
from pydantic import Field
from pymongo import ASCENDING, DESCENDING, IndexModel

from app.models.audit_log import AuditLog
from app.models.base import new_id
from app.models.call_log import CallLog
from app.models.earning import Earning
from app.models.host_bonus import HostBonus
from app.models.host_rating import HostRating
from app.models.payment_order import PaymentOrder
from app.models.transaction import Transaction
from app.models.user import User
from app.models.withdrawal import Withdrawal


class UserDocument(User, Document):
    id: str = Field(default_factory=new_id)

    class Settings:
        name = "users"
        indexes = [
            IndexModel([("phone_number", ASCENDING)], unique=True),
            [("is_host", 1), ("host_verification_status", 1)],
        ]


class TransactionDocument(Transaction, Document):
    id: str = Field(default_factory=new_id)

    class Settings:
        name = "transactions"
        indexes = [[("user_id", 1), ("created_at", -1)]]


class CallLogDocument(CallLog, Document):
    id: str = Field(default_factory=new_id)

    class Settings:
        name = "call_logs"
        indexes = [
            [("caller_id", 1), ("created_at", -1)],
            [("receiver_id", 1), ("created_at", -1)],
        ]


class EarningDocument(Earning, Document):
    id: str = Field(default_factory=new_id)

    class Settings:
        name = "earnings"
        indexes = [
            IndexModel([("call_id", ASCENDING)], unique=True),
            IndexModel([("host_id", ASCENDING), ("created_at", DESCENDING)]),
        ]


class HostBonusDocument(HostBonus, Document):
    id: str = Field(default_factory=new_id)

    class Settings:
        name = "host_bonuses"
        indexes = [[("host_id", 1), ("bonus_type", 1), ("credited_at", -1)]]


class HostRatingDocument(HostRating, Document):
    id: str = Field(default_factory=new_id)

    class Settings:
        name = "host_ratings"
        indexes = [
            IndexModel([("call_id", ASCENDING)], unique=True),
            IndexModel([("host_id", ASCENDING)]),
        ]


class WithdrawalDocument(Withdrawal, Document):
    id: str = Field(default_factory=new_id)

    class Settings:
        name = "withdrawals"
        indexes = [[("user_id", 1), ("requested_at", -1)], [("status", 1)]]


class PaymentOrderDocument(PaymentOrder, Document):
    id: str = Field(default_factory=new_id)

    class Settings:
        name = "payment_orders"
        indexes = [IndexModel([("order_id", ASCENDING)], unique=True)]


class AuditLogDocument(AuditLog, Document):
    id: str = Field(default_factory=new_id)

    class Settings:
        name = "audit_logs"
        indexes = [
            [("user_id", 1), ("created_at", -1)],
            [("entity_type", 1), ("entity_id", 1)],
        ]


DOCUMENT_MODELS = [
    UserDocument,
    TransactionDocument,
    CallLogDocument,
    EarningDocument,
    HostBonusDocument,
    HostRatingDocument,
    WithdrawalDocument,
    PaymentOrderDocument,
    AuditLogDocument,
]
