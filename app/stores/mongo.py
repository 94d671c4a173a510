"""MongoDB store: Beanie documents, conditional $inc updates and multi-document transactions."""

from datetime import datetime, timedelta
from typing import Any

from beanie import UpdateResponse
from beanie.operators import In, Inc, Or, Set
from pymongo.errors import DuplicateKeyError

from app.core.exceptions import ConflictError, DuplicateEarningError, InsufficientFundsError, NotFoundError
from app.db.documents import (
    AuditLogDocument,
    CallLogDocument,
    EarningDocument,
    HostBonusDocument,
    HostRatingDocument,
    PaymentOrderDocument,
    TransactionDocument,
    UserDocument,
    WithdrawalDocument,
)
from app.db.init import run_transaction, transaction
from app.models.audit_log import AuditLog
from app.models.base import utcnow
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

_OPEN_WITHDRAWAL = [WithdrawalStatus.PENDING, WithdrawalStatus.PROCESSING]


class MongoStore(Store):
    async def _apply_entry(self, entry: Transaction, session) -> int:
        """Conditional $inc on coins plus ledger insert, inside the caller's transaction."""
        query = [UserDocument.id == entry.user_id]
        if entry.coins < 0:
            query.append(UserDocument.coins >= -entry.coins)
        user = await UserDocument.find_one(*query, session=session).update(
            Inc({UserDocument.coins: entry.coins}),
            Set({UserDocument.updated_at: utcnow()}),
            session=session,
            response_type=UpdateResponse.NEW_DOCUMENT,
        )
        if user is None:
            current = await UserDocument.get(entry.user_id, session=session)
            if current is None:
                raise NotFoundError("User not found")
            raise InsufficientFundsError(
                "Insufficient coins balance",
                details={"balance": current.coins, "required": -entry.coins},
            )
        entry.balance_after = user.coins
        await TransactionDocument(**entry.model_dump()).insert(session=session)
        return user.coins

    # ── users ────────────────────────────────────────────────────────────

    async def insert_user(self, user: User) -> User:
        try:
            await UserDocument(**user.model_dump()).insert()
        except DuplicateKeyError as e:
            raise ConflictError("User already exists") from e
        return user

    async def get_user(self, user_id: str) -> User | None:
        return await UserDocument.get(user_id)

    async def update_user(self, user_id: str, fields: dict[str, Any]) -> User:
        user = await UserDocument.find_one(UserDocument.id == user_id).update(
            Set({**fields, "updated_at": utcnow()}),
            response_type=UpdateResponse.NEW_DOCUMENT,
        )
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def increment_user_counters(self, user_id: str, deltas: dict[str, int]) -> None:
        result = await UserDocument.find_one(UserDocument.id == user_id).update(Inc(deltas))
        if result is None or result.matched_count == 0:
            raise NotFoundError("User not found")

    # ── coin ledger ──────────────────────────────────────────────────────

    async def apply_coin_entry(self, entry: Transaction) -> int:
        async with transaction() as session:
            return await self._apply_entry(entry, session)

    async def apply_coin_transfer(self, debit: Transaction, credit: Transaction) -> tuple[int, int]:
        async with transaction() as session:
            if await UserDocument.get(credit.user_id, session=session) is None:
                raise NotFoundError("Receiver not found")
            sender_balance = await self._apply_entry(debit, session)
            receiver_balance = await self._apply_entry(credit, session)
            return sender_balance, receiver_balance

    async def list_transactions(self, user_id: str, offset: int = 0, limit: int = 50) -> list[Transaction]:
        return (
            await TransactionDocument.find(TransactionDocument.user_id == user_id)
            .sort(-TransactionDocument.created_at)
            .skip(offset)
            .limit(limit)
            .to_list()
        )

    async def count_transactions(self, user_id: str) -> int:
        return await TransactionDocument.find(TransactionDocument.user_id == user_id).count()

    async def coin_totals(self, user_id: str) -> tuple[int, int]:
        credited = await TransactionDocument.find(
            TransactionDocument.user_id == user_id, TransactionDocument.coins > 0
        ).sum(TransactionDocument.coins)
        debited = await TransactionDocument.find(
            TransactionDocument.user_id == user_id, TransactionDocument.coins < 0
        ).sum(TransactionDocument.coins)
        return int(credited or 0), -int(debited or 0)

    # ── calls ────────────────────────────────────────────────────────────

    async def insert_call(self, call: CallLog) -> CallLog:
        await CallLogDocument(**call.model_dump()).insert()
        return call

    async def get_call(self, call_id: str) -> CallLog | None:
        return await CallLogDocument.get(call_id)

    async def transition_call(
        self, call_id: str, expected_status: CallStatus, fields: dict[str, Any]
    ) -> CallLog | None:
        return await CallLogDocument.find_one(
            CallLogDocument.id == call_id, CallLogDocument.status == expected_status
        ).update(
            Set({**fields, "updated_at": utcnow()}),
            response_type=UpdateResponse.NEW_DOCUMENT,
        )

    async def charge_call(self, entry: Transaction, call_id: str) -> int:
        async def _charge(session) -> int:
            call = await CallLogDocument.find_one(
                CallLogDocument.id == call_id,
                CallLogDocument.coins_charged == None,  # noqa: E711
                session=session,
            ).update(
                Set({CallLogDocument.coins_charged: -entry.coins, CallLogDocument.updated_at: utcnow()}),
                session=session,
                response_type=UpdateResponse.NEW_DOCUMENT,
            )
            if call is None:
                if await CallLogDocument.get(call_id, session=session) is None:
                    raise NotFoundError("Call not found")
                raise ConflictError("Call already charged", details={"call_id": call_id})
            return await self._apply_entry(entry, session)

        return await run_transaction(_charge)

    def _calls_for_user(self, user_id: str):
        return Or(CallLogDocument.caller_id == user_id, CallLogDocument.receiver_id == user_id)

    async def list_calls_for_user(self, user_id: str, offset: int = 0, limit: int | None = 50) -> list[CallLog]:
        query = CallLogDocument.find(self._calls_for_user(user_id)).sort(-CallLogDocument.created_at).skip(offset)
        if limit is not None:
            query = query.limit(limit)
        return await query.to_list()

    async def count_calls_for_user(self, user_id: str, status: CallStatus | None = None) -> int:
        query = CallLogDocument.find(self._calls_for_user(user_id))
        if status is not None:
            query = query.find(CallLogDocument.status == status)
        return await query.count()

    # ── host earnings ────────────────────────────────────────────────────

    async def insert_earning_and_credit_host(self, earning: Earning, minutes: int) -> int:
        async with transaction() as session:
            try:
                await EarningDocument(**earning.model_dump()).insert(session=session)
            except DuplicateKeyError as e:
                raise DuplicateEarningError(earning.call_id) from e
            host = await UserDocument.find_one(UserDocument.id == earning.host_id, session=session).update(
                Inc(
                    {
                        UserDocument.total_earnings: earning.host_earning,
                        UserDocument.available_balance: earning.host_earning,
                        UserDocument.total_calls_as_host: 1,
                        UserDocument.total_minutes_as_host: minutes,
                    }
                ),
                session=session,
                response_type=UpdateResponse.NEW_DOCUMENT,
            )
            if host is None:
                raise NotFoundError("Host not found")
            return host.total_calls_as_host

    async def get_earning_for_call(self, call_id: str) -> Earning | None:
        return await EarningDocument.find_one(EarningDocument.call_id == call_id)

    async def list_earnings(
        self, host_id: str, offset: int = 0, limit: int | None = 50, since: datetime | None = None
    ) -> list[Earning]:
        query = EarningDocument.find(
            EarningDocument.host_id == host_id, EarningDocument.status == EarningStatus.COMPLETED
        )
        if since is not None:
            query = query.find(EarningDocument.created_at >= since)
        query = query.sort(-EarningDocument.created_at).skip(offset)
        if limit is not None:
            query = query.limit(limit)
        return await query.to_list()

    async def count_earnings(self, host_id: str) -> int:
        return await EarningDocument.find(
            EarningDocument.host_id == host_id, EarningDocument.status == EarningStatus.COMPLETED
        ).count()

    async def insert_bonus_and_credit_host(self, bonus: HostBonus) -> HostBonus:
        async with transaction() as session:
            await HostBonusDocument(**bonus.model_dump()).insert(session=session)
            result = await UserDocument.find_one(UserDocument.id == bonus.host_id, session=session).update(
                Inc(
                    {
                        UserDocument.total_earnings: bonus.amount,
                        UserDocument.available_balance: bonus.amount,
                    }
                ),
                session=session,
            )
            if result is None or result.matched_count == 0:
                raise NotFoundError("Host not found")
        return bonus

    async def award_high_rating_bonus(self, bonus: HostBonus, window_start: datetime) -> bool:
        async def _award(session) -> bool:
            host = await UserDocument.find_one(
                UserDocument.id == bonus.host_id,
                Or(
                    UserDocument.last_high_rating_bonus_at == None,  # noqa: E711
                    UserDocument.last_high_rating_bonus_at < window_start,
                ),
                session=session,
            ).update(
                Set({UserDocument.last_high_rating_bonus_at: bonus.credited_at}),
                Inc(
                    {
                        UserDocument.total_earnings: bonus.amount,
                        UserDocument.available_balance: bonus.amount,
                    }
                ),
                session=session,
                response_type=UpdateResponse.NEW_DOCUMENT,
            )
            if host is None:
                if await UserDocument.get(bonus.host_id, session=session) is None:
                    raise NotFoundError("Host not found")
                return False
            await HostBonusDocument(**bonus.model_dump()).insert(session=session)
            return True

        return await run_transaction(_award)

    async def list_bonuses(self, host_id: str) -> list[HostBonus]:
        return await HostBonusDocument.find(HostBonusDocument.host_id == host_id).to_list()

    # ── ratings ──────────────────────────────────────────────────────────

    async def insert_rating(self, rating: HostRating) -> HostRating:
        try:
            await HostRatingDocument(**rating.model_dump()).insert()
        except DuplicateKeyError as e:
            raise ConflictError("You have already rated this call") from e
        return rating

    async def average_rating(self, host_id: str) -> float | None:
        return await HostRatingDocument.find(HostRatingDocument.host_id == host_id).avg(HostRatingDocument.rating)

    # ── withdrawals ──────────────────────────────────────────────────────

    async def insert_withdrawal_and_debit_host(self, withdrawal: Withdrawal) -> Withdrawal:
        async with transaction() as session:
            host = await UserDocument.find_one(
                UserDocument.id == withdrawal.user_id,
                UserDocument.available_balance >= withdrawal.amount,
                session=session,
            ).update(
                Inc({UserDocument.available_balance: -withdrawal.amount}),
                session=session,
                response_type=UpdateResponse.NEW_DOCUMENT,
            )
            if host is None:
                current = await UserDocument.get(withdrawal.user_id, session=session)
                if current is None:
                    raise NotFoundError("User not found")
                raise InsufficientFundsError(
                    "Insufficient balance",
                    details={"available_balance": current.available_balance, "requested": withdrawal.amount},
                )
            await WithdrawalDocument(**withdrawal.model_dump()).insert(session=session)
        return withdrawal

    async def get_withdrawal(self, withdrawal_id: str) -> Withdrawal | None:
        return await WithdrawalDocument.get(withdrawal_id)

    async def list_withdrawals(
        self, user_id: str | None = None, statuses: list[WithdrawalStatus] | None = None
    ) -> list[Withdrawal]:
        query = WithdrawalDocument.find()
        if user_id is not None:
            query = query.find(WithdrawalDocument.user_id == user_id)
        if statuses is not None:
            query = query.find(In(WithdrawalDocument.status, statuses))
        return await query.sort(-WithdrawalDocument.requested_at).to_list()

    async def settle_withdrawal(
        self, withdrawal_id: str, status: WithdrawalStatus, reason: str | None = None
    ) -> Withdrawal | None:
        async with transaction() as session:
            withdrawal = await WithdrawalDocument.find_one(
                WithdrawalDocument.id == withdrawal_id,
                In(WithdrawalDocument.status, _OPEN_WITHDRAWAL),
                session=session,
            ).update(
                Set(
                    {
                        WithdrawalDocument.status: status,
                        WithdrawalDocument.processed_at: utcnow(),
                        WithdrawalDocument.rejection_reason: reason,
                    }
                ),
                session=session,
                response_type=UpdateResponse.NEW_DOCUMENT,
            )
            if withdrawal is None:
                return None
            if status == WithdrawalStatus.COMPLETED:
                inc = {UserDocument.total_withdrawn: withdrawal.amount}
            else:
                inc = {UserDocument.available_balance: withdrawal.amount}
            await UserDocument.find_one(UserDocument.id == withdrawal.user_id, session=session).update(
                Inc(inc), session=session
            )
            return withdrawal

    # ── payments ─────────────────────────────────────────────────────────

    async def insert_payment_order(self, order: PaymentOrder) -> PaymentOrder:
        try:
            await PaymentOrderDocument(**order.model_dump()).insert()
        except DuplicateKeyError as e:
            raise ConflictError("Order already exists") from e
        return order

    async def get_payment_order(self, order_id: str) -> PaymentOrder | None:
        return await PaymentOrderDocument.find_one(PaymentOrderDocument.order_id == order_id)

    async def complete_payment_order(self, order_id: str, payment_id: str, entry: Transaction) -> int | None:
        async with transaction() as session:
            order = await PaymentOrderDocument.find_one(
                PaymentOrderDocument.order_id == order_id,
                PaymentOrderDocument.status == PaymentStatus.CREATED,
                session=session,
            ).update(
                Set(
                    {
                        PaymentOrderDocument.status: PaymentStatus.PAID,
                        PaymentOrderDocument.payment_id: payment_id,
                        PaymentOrderDocument.paid_at: utcnow(),
                    }
                ),
                session=session,
                response_type=UpdateResponse.NEW_DOCUMENT,
            )
            if order is None:
                return None
            return await self._apply_entry(entry, session)

    async def complete_premium_order(self, order_id: str, payment_id: str, days: int) -> datetime | None:
        async def _activate(session) -> datetime | None:
            now = utcnow()
            order = await PaymentOrderDocument.find_one(
                PaymentOrderDocument.order_id == order_id,
                PaymentOrderDocument.status == PaymentStatus.CREATED,
                session=session,
            ).update(
                Set(
                    {
                        PaymentOrderDocument.status: PaymentStatus.PAID,
                        PaymentOrderDocument.payment_id: payment_id,
                        PaymentOrderDocument.paid_at: now,
                    }
                ),
                session=session,
                response_type=UpdateResponse.NEW_DOCUMENT,
            )
            if order is None:
                return None
            user = await UserDocument.get(order.user_id, session=session)
            if user is None:
                raise NotFoundError("User not found")
            start = user.premium_until if user.has_premium(now) else now
            premium_until = start + timedelta(days=days)
            await user.set(
                {
                    UserDocument.is_premium: True,
                    UserDocument.premium_until: premium_until,
                    UserDocument.updated_at: now,
                },
                session=session,
            )
            return premium_until

        return await run_transaction(_activate)

    async def fail_payment_order(self, order_id: str, payment_id: str | None = None) -> bool:
        result = await PaymentOrderDocument.find_one(
            PaymentOrderDocument.order_id == order_id,
            PaymentOrderDocument.status == PaymentStatus.CREATED,
        ).update(
            Set({PaymentOrderDocument.status: PaymentStatus.FAILED, PaymentOrderDocument.payment_id: payment_id})
        )
        return bool(result and result.modified_count)

    # ── audit ────────────────────────────────────────────────────────────

    async def insert_audit_log(self, entry: AuditLog) -> None:
        await AuditLogDocument(**entry.model_dump()).insert()
