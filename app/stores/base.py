"""Persistence contract for the wallet, call and host flows.

Every method that touches more than one record (a balance and its ledger
entry, an earning and the host balance, ...) is a single atomic unit in each
backend: either all of its writes land or none do.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from app.core.config import Settings, get_settings
from app.models.audit_log import AuditLog
from app.models.call_log import CallLog
from app.models.earning import Earning
from app.models.enums import CallStatus, WithdrawalStatus
from app.models.host_bonus import HostBonus
from app.models.host_rating import HostRating
from app.models.payment_order import PaymentOrder
from app.models.transaction import Transaction
from app.models.user import User
from app.models.withdrawal import Withdrawal


class Store(ABC):
    # ── users ────────────────────────────────────────────────────────────

    @abstractmethod
    async def insert_user(self, user: User) -> User:
        ...

    @abstractmethod
    async def get_user(self, user_id: str) -> User | None:
        ...

    @abstractmethod
    async def update_user(self, user_id: str, fields: dict[str, Any]) -> User:
        """Set plain profile/host fields. Never used for coins or host balances."""
        ...

    @abstractmethod
    async def increment_user_counters(self, user_id: str, deltas: dict[str, int]) -> None:
        """Atomic $inc on statistic counters (calls made/received, minutes)."""
        ...

    async def get_balance(self, user_id: str) -> int | None:
        user = await self.get_user(user_id)
        return user.coins if user else None

    async def is_host(self, user_id: str) -> bool:
        user = await self.get_user(user_id)
        return bool(user and user.is_host)

    async def is_premium(self, user_id: str) -> bool:
        user = await self.get_user(user_id)
        return bool(user and user.has_premium())

    async def get_host_rating(self, user_id: str) -> float | None:
        user = await self.get_user(user_id)
        return user.host_rating if user else None

    async def get_host_call_count(self, user_id: str) -> int:
        user = await self.get_user(user_id)
        return user.total_calls_as_host if user else 0

    # ── coin ledger ──────────────────────────────────────────────────────

    @abstractmethod
    async def apply_coin_entry(self, entry: Transaction) -> int:
        """
        Add entry.coins to the user's balance and append the entry, atomically.
        Negative deltas only apply while balance >= -entry.coins.
        Returns the new balance. Raises NotFoundError / InsufficientFundsError.
        """
        ...

    @abstractmethod
    async def apply_coin_transfer(self, debit: Transaction, credit: Transaction) -> tuple[int, int]:
        """Apply a debit and a credit entry for two users as one unit. Returns both new balances."""
        ...

    @abstractmethod
    async def list_transactions(self, user_id: str, offset: int = 0, limit: int = 50) -> list[Transaction]:
        """Newest first."""
        ...

    @abstractmethod
    async def count_transactions(self, user_id: str) -> int:
        ...

    @abstractmethod
    async def coin_totals(self, user_id: str) -> tuple[int, int]:
        """(sum of credits, sum of debits as a positive number)."""
        ...

    # ── calls ────────────────────────────────────────────────────────────

    @abstractmethod
    async def insert_call(self, call: CallLog) -> CallLog:
        ...

    @abstractmethod
    async def get_call(self, call_id: str) -> CallLog | None:
        ...

    @abstractmethod
    async def transition_call(
        self, call_id: str, expected_status: CallStatus, fields: dict[str, Any]
    ) -> CallLog | None:
        """Apply fields only if the call is still in expected_status. None if another writer won."""
        ...

    @abstractmethod
    async def charge_call(self, entry: Transaction, call_id: str) -> int:
        """
        Apply the caller's debit entry and stamp coins_charged = -entry.coins on
        the call in one unit, only while coins_charged is unset. Returns the new
        balance. Raises ConflictError if the call was already charged (nothing is
        debited), InsufficientFundsError, NotFoundError.
        """
        ...

    @abstractmethod
    async def list_calls_for_user(self, user_id: str, offset: int = 0, limit: int | None = 50) -> list[CallLog]:
        """Calls where the user is caller or receiver, newest first."""
        ...

    @abstractmethod
    async def count_calls_for_user(self, user_id: str, status: CallStatus | None = None) -> int:
        ...

    # ── host earnings ────────────────────────────────────────────────────

    @abstractmethod
    async def insert_earning_and_credit_host(self, earning: Earning, minutes: int) -> int:
        """
        Insert the earning (unique per call_id) and increment the host's
        total_earnings, available_balance, total_calls_as_host (+1) and
        total_minutes_as_host. Returns total_calls_as_host after this increment.
        Raises DuplicateEarningError, NotFoundError.
        """
        ...

    @abstractmethod
    async def get_earning_for_call(self, call_id: str) -> Earning | None:
        ...

    @abstractmethod
    async def list_earnings(
        self, host_id: str, offset: int = 0, limit: int | None = 50, since: datetime | None = None
    ) -> list[Earning]:
        """Completed earnings, newest first."""
        ...

    @abstractmethod
    async def count_earnings(self, host_id: str) -> int:
        ...

    @abstractmethod
    async def insert_bonus_and_credit_host(self, bonus: HostBonus) -> HostBonus:
        """Insert the bonus and increment the host's total_earnings and available_balance."""
        ...

    @abstractmethod
    async def award_high_rating_bonus(self, bonus: HostBonus, window_start: datetime) -> bool:
        """
        Insert the bonus and credit the host only if the host's
        last_high_rating_bonus_at is unset or older than window_start, moving it
        to bonus.credited_at in the same unit. False if a bonus already landed
        inside the window.
        """
        ...

    @abstractmethod
    async def list_bonuses(self, host_id: str) -> list[HostBonus]:
        ...

    # ── ratings ──────────────────────────────────────────────────────────

    @abstractmethod
    async def insert_rating(self, rating: HostRating) -> HostRating:
        """Raises ConflictError if the call was already rated."""
        ...

    @abstractmethod
    async def average_rating(self, host_id: str) -> float | None:
        ...

    # ── withdrawals ──────────────────────────────────────────────────────

    @abstractmethod
    async def insert_withdrawal_and_debit_host(self, withdrawal: Withdrawal) -> Withdrawal:
        """
        Insert the request and decrement available_balance, only while
        available_balance >= amount. Raises InsufficientFundsError, NotFoundError.
        """
        ...

    @abstractmethod
    async def get_withdrawal(self, withdrawal_id: str) -> Withdrawal | None:
        ...

    @abstractmethod
    async def list_withdrawals(
        self, user_id: str | None = None, statuses: list[WithdrawalStatus] | None = None
    ) -> list[Withdrawal]:
        """Newest first."""
        ...

    @abstractmethod
    async def settle_withdrawal(
        self, withdrawal_id: str, status: WithdrawalStatus, reason: str | None = None
    ) -> Withdrawal | None:
        """
        Move a pending/processing withdrawal to completed (amount added to
        total_withdrawn) or rejected (amount returned to available_balance).
        None if it was already settled.
        """
        ...

    # ── payments ─────────────────────────────────────────────────────────

    @abstractmethod
    async def insert_payment_order(self, order: PaymentOrder) -> PaymentOrder:
        ...

    @abstractmethod
    async def get_payment_order(self, order_id: str) -> PaymentOrder | None:
        ...

    @abstractmethod
    async def complete_payment_order(
        self, order_id: str, payment_id: str, entry: Transaction
    ) -> int | None:
        """
        Flip the order from created to paid and apply the coin entry in one
        unit. Returns the new balance, or None if the order was not open.
        """
        ...

    @abstractmethod
    async def complete_premium_order(self, order_id: str, payment_id: str, days: int) -> datetime | None:
        """
        Flip the order from created to paid and extend the user's premium by
        days (from premium_until when still running, else from now) in one unit.
        Returns the new premium_until, or None if the order was not open.
        """
        ...

    @abstractmethod
    async def fail_payment_order(self, order_id: str, payment_id: str | None = None) -> bool:
        ...

    # ── audit ────────────────────────────────────────────────────────────

    @abstractmethod
    async def insert_audit_log(self, entry: AuditLog) -> None:
        ...


def get_store(settings: Settings | None = None) -> Store:
    settings = settings or get_settings()
    if settings.store_backend == "memory":
        from app.stores.memory import MemoryStore
        return MemoryStore()
    from app.stores.mongo import MongoStore
    return MongoStore()
