"""In-process store: dicts guarded by one asyncio.Lock. Used by tests and STORE_BACKEND=memory."""

import asyncio
from datetime import datetime, timedelta
from typing import Any, TypeVar

from app.core.exceptions import ConflictError, DuplicateEarningError, InsufficientFundsError, NotFoundError
from app.models.audit_log import AuditLog
from app.models.base import Record, utcnow
from app.models.call_log import CallLog
from app.models.earning import Earning
from app.models.enums import CallStatus, EarningStatus, PaymentStatus, WithdrawalStatus
from app.models.host_bonus import HostBonus
from app.models.host_rating import HostRating
from app.models.payment_order import PaymentOrder
from app.models.transaction import Transaction
from app.models.user import User
from app.models.withdrawal import Withdrawal
from app.stores.base import Store

R = TypeVar("R", bound=Record)

_OPEN_WITHDRAWAL = (WithdrawalStatus.PENDING, WithdrawalStatus.PROCESSING)


def _copy(record: R) -> R:
    return record.model_copy(deep=True)


class MemoryStore(Store):
    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self.users: dict[str, User] = {}
        self.transactions: list[Transaction] = []
        self.calls: dict[str, CallLog] = {}
        self.earnings: dict[str, Earning] = {}  # keyed by call_id
        self.bonuses: list[HostBonus] = []
        self.ratings: dict[str, HostRating] = {}  # keyed by call_id
        self.withdrawals: dict[str, Withdrawal] = {}
        self.payment_orders: dict[str, PaymentOrder] = {}  # keyed by order_id
        self.audit_logs: list[AuditLog] = []

    def _user(self, user_id: str) -> User:
        user = self.users.get(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    def _apply_entry(self, entry: Transaction) -> int:
        user = self._user(entry.user_id)
        if entry.coins < 0 and user.coins < -entry.coins:
            raise InsufficientFundsError(
                "Insufficient coins balance",
                details={"balance": user.coins, "required": -entry.coins},
            )
        user.coins += entry.coins
        user.updated_at = utcnow()
        entry.balance_after = user.coins
        self.transactions.append(_copy(entry))
        return user.coins

    # ── users ────────────────────────────────────────────────────────────

    async def insert_user(self, user: User) -> User:
        async with self._lock:
            if user.id in self.users or any(u.phone_number == user.phone_number for u in self.users.values()):
                raise ConflictError("User already exists")
            self.users[user.id] = _copy(user)
        return user

    async def get_user(self, user_id: str) -> User | None:
        user = self.users.get(user_id)
        return _copy(user) if user else None

    async def update_user(self, user_id: str, fields: dict[str, Any]) -> User:
        async with self._lock:
            user = self._user(user_id)
            for key, value in fields.items():
                setattr(user, key, value)
            user.updated_at = utcnow()
            return _copy(user)

    async def increment_user_counters(self, user_id: str, deltas: dict[str, int]) -> None:
        async with self._lock:
            user = self._user(user_id)
            for key, delta in deltas.items():
                setattr(user, key, getattr(user, key) + delta)

    # ── coin ledger ──────────────────────────────────────────────────────

    async def apply_coin_entry(self, entry: Transaction) -> int:
        async with self._lock:
            return self._apply_entry(entry)

    async def apply_coin_transfer(self, debit: Transaction, credit: Transaction) -> tuple[int, int]:
        async with self._lock:
            sender = self._user(debit.user_id)
            self._user(credit.user_id)
            if sender.coins < -debit.coins:
                raise InsufficientFundsError(
                    "Insufficient coins balance",
                    details={"balance": sender.coins, "required": -debit.coins},
                )
            return self._apply_entry(debit), self._apply_entry(credit)

    async def list_transactions(self, user_id: str, offset: int = 0, limit: int = 50) -> list[Transaction]:
        rows = [t for t in reversed(self.transactions) if t.user_id == user_id]
        return [_copy(t) for t in rows[offset : offset + limit]]

    async def count_transactions(self, user_id: str) -> int:
        return sum(1 for t in self.transactions if t.user_id == user_id)

    async def coin_totals(self, user_id: str) -> tuple[int, int]:
        credited = sum(t.coins for t in self.transactions if t.user_id == user_id and t.coins > 0)
        debited = sum(-t.coins for t in self.transactions if t.user_id == user_id and t.coins < 0)
        return credited, debited

    # ── calls ────────────────────────────────────────────────────────────

    async def insert_call(self, call: CallLog) -> CallLog:
        async with self._lock:
            self.calls[call.id] = _copy(call)
        return call

    async def get_call(self, call_id: str) -> CallLog | None:
        call = self.calls.get(call_id)
        return _copy(call) if call else None

    async def transition_call(
        self, call_id: str, expected_status: CallStatus, fields: dict[str, Any]
    ) -> CallLog | None:
        async with self._lock:
            call = self.calls.get(call_id)
            if call is None or call.status != expected_status:
                return None
            for key, value in fields.items():
                setattr(call, key, value)
            call.updated_at = utcnow()
            return _copy(call)

    async def charge_call(self, entry: Transaction, call_id: str) -> int:
        async with self._lock:
            call = self.calls.get(call_id)
            if call is None:
                raise NotFoundError("Call not found")
            if call.coins_charged is not None:
                raise ConflictError("Call already charged", details={"call_id": call_id})
            balance = self._apply_entry(entry)
            call.coins_charged = -entry.coins
            call.updated_at = utcnow()
            return balance

    async def list_calls_for_user(self, user_id: str, offset: int = 0, limit: int | None = 50) -> list[CallLog]:
        rows = sorted(
            (c for c in self.calls.values() if user_id in (c.caller_id, c.receiver_id)),
            key=lambda c: c.created_at,
            reverse=True,
        )
        end = None if limit is None else offset + limit
        return [_copy(c) for c in rows[offset:end]]

    async def count_calls_for_user(self, user_id: str, status: CallStatus | None = None) -> int:
        return sum(
            1
            for c in self.calls.values()
            if user_id in (c.caller_id, c.receiver_id) and (status is None or c.status == status)
        )

    # ── host earnings ────────────────────────────────────────────────────

    async def insert_earning_and_credit_host(self, earning: Earning, minutes: int) -> int:
        async with self._lock:
            if earning.call_id in self.earnings:
                raise DuplicateEarningError(earning.call_id)
            host = self._user(earning.host_id)
            self.earnings[earning.call_id] = _copy(earning)
            host.total_earnings += earning.host_earning
            host.available_balance += earning.host_earning
            host.total_calls_as_host += 1
            host.total_minutes_as_host += minutes
            return host.total_calls_as_host

    async def get_earning_for_call(self, call_id: str) -> Earning | None:
        earning = self.earnings.get(call_id)
        return _copy(earning) if earning else None

    async def list_earnings(
        self, host_id: str, offset: int = 0, limit: int | None = 50, since: datetime | None = None
    ) -> list[Earning]:
        rows = sorted(
            (
                e
                for e in self.earnings.values()
                if e.host_id == host_id
                and e.status == EarningStatus.COMPLETED
                and (since is None or e.created_at >= since)
            ),
            key=lambda e: e.created_at,
            reverse=True,
        )
        end = None if limit is None else offset + limit
        return [_copy(e) for e in rows[offset:end]]

    async def count_earnings(self, host_id: str) -> int:
        return sum(
            1 for e in self.earnings.values() if e.host_id == host_id and e.status == EarningStatus.COMPLETED
        )

    async def insert_bonus_and_credit_host(self, bonus: HostBonus) -> HostBonus:
        async with self._lock:
            host = self._user(bonus.host_id)
            self.bonuses.append(_copy(bonus))
            host.total_earnings += bonus.amount
            host.available_balance += bonus.amount
        return bonus

    async def award_high_rating_bonus(self, bonus: HostBonus, window_start: datetime) -> bool:
        async with self._lock:
            host = self._user(bonus.host_id)
            last = host.last_high_rating_bonus_at
            if last is not None and last >= window_start:
                return False
            host.last_high_rating_bonus_at = bonus.credited_at
            self.bonuses.append(_copy(bonus))
            host.total_earnings += bonus.amount
            host.available_balance += bonus.amount
            return True

    async def list_bonuses(self, host_id: str) -> list[HostBonus]:
        return [_copy(b) for b in self.bonuses if b.host_id == host_id]

    # ── ratings ──────────────────────────────────────────────────────────

    async def insert_rating(self, rating: HostRating) -> HostRating:
        async with self._lock:
            if rating.call_id in self.ratings:
                raise ConflictError("You have already rated this call")
            self.ratings[rating.call_id] = _copy(rating)
        return rating

    async def average_rating(self, host_id: str) -> float | None:
        values = [r.rating for r in self.ratings.values() if r.host_id == host_id]
        if not values:
            return None
        return sum(values) / len(values)

    # ── withdrawals ──────────────────────────────────────────────────────

    async def insert_withdrawal_and_debit_host(self, withdrawal: Withdrawal) -> Withdrawal:
        async with self._lock:
            host = self._user(withdrawal.user_id)
            if host.available_balance < withdrawal.amount:
                raise InsufficientFundsError(
                    "Insufficient balance",
                    details={"available_balance": host.available_balance, "requested": withdrawal.amount},
                )
            host.available_balance -= withdrawal.amount
            self.withdrawals[withdrawal.id] = _copy(withdrawal)
        return withdrawal

    async def get_withdrawal(self, withdrawal_id: str) -> Withdrawal | None:
        withdrawal = self.withdrawals.get(withdrawal_id)
        return _copy(withdrawal) if withdrawal else None

    async def list_withdrawals(
        self, user_id: str | None = None, statuses: list[WithdrawalStatus] | None = None
    ) -> list[Withdrawal]:
        rows = [
            w
            for w in self.withdrawals.values()
            if (user_id is None or w.user_id == user_id) and (statuses is None or w.status in statuses)
        ]
        rows.sort(key=lambda w: w.requested_at, reverse=True)
        return [_copy(w) for w in rows]

    async def settle_withdrawal(
        self, withdrawal_id: str, status: WithdrawalStatus, reason: str | None = None
    ) -> Withdrawal | None:
        async with self._lock:
            withdrawal = self.withdrawals.get(withdrawal_id)
            if withdrawal is None or withdrawal.status not in _OPEN_WITHDRAWAL:
                return None
            host = self._user(withdrawal.user_id)
            if status == WithdrawalStatus.COMPLETED:
                host.total_withdrawn += withdrawal.amount
            else:
                host.available_balance += withdrawal.amount
            withdrawal.status = status
            withdrawal.processed_at = utcnow()
            withdrawal.rejection_reason = reason
            return _copy(withdrawal)

    # ── payments ─────────────────────────────────────────────────────────

    async def insert_payment_order(self, order: PaymentOrder) -> PaymentOrder:
        async with self._lock:
            if order.order_id in self.payment_orders:
                raise ConflictError("Order already exists")
            self.payment_orders[order.order_id] = _copy(order)
        return order

    async def get_payment_order(self, order_id: str) -> PaymentOrder | None:
        order = self.payment_orders.get(order_id)
        return _copy(order) if order else None

    async def complete_payment_order(self, order_id: str, payment_id: str, entry: Transaction) -> int | None:
        async with self._lock:
            order = self.payment_orders.get(order_id)
            if order is None or order.status != PaymentStatus.CREATED:
                return None
            balance = self._apply_entry(entry)
            order.status = PaymentStatus.PAID
            order.payment_id = payment_id
            order.paid_at = utcnow()
            return balance

    async def complete_premium_order(self, order_id: str, payment_id: str, days: int) -> datetime | None:
        async with self._lock:
            order = self.payment_orders.get(order_id)
            if order is None or order.status != PaymentStatus.CREATED:
                return None
            user = self._user(order.user_id)
            now = utcnow()
            start = user.premium_until if user.has_premium(now) else now
            user.is_premium = True
            user.premium_until = start + timedelta(days=days)
            user.updated_at = now
            order.status = PaymentStatus.PAID
            order.payment_id = payment_id
            order.paid_at = now
            return user.premium_until

    async def fail_payment_order(self, order_id: str, payment_id: str | None = None) -> bool:
        async with self._lock:
            order = self.payment_orders.get(order_id)
            if order is None or order.status != PaymentStatus.CREATED:
                return False
            order.status = PaymentStatus.FAILED
            order.payment_id = payment_id
            return True

    # ── audit ────────────────────────────────────────────────────────────

    async def insert_audit_log(self, entry: AuditLog) -> None:
        async with self._lock:
            self.audit_logs.append(_copy(entry))
