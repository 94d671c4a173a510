from app.models.audit_log import AuditLog
from app.models.call_log import CallLog
from app.models.earning import Earning
from app.models.host_bonus import HostBonus
from app.models.host_rating import HostRating
from app.models.payment_order import PaymentOrder
from app.models.transaction import Transaction
from app.models.user import User
from app.models.withdrawal import Withdrawal

__all__ = [
    "User",
    "Transaction",
    "CallLog",
    "Earning",
    "HostBonus",
    "HostRating",
    "Withdrawal",
    "PaymentOrder",
    "AuditLog",
]
