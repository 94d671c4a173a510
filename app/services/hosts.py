"""Host program: verification, per-call revenue share, performance bonuses, withdrawals, ratings."""

import math
from datetime import timedelta
from typing import Any

from app.core.audit import log_event
from app.core.config import Settings
from app.core.exceptions import BadRequestError, ForbiddenError, NotFoundError
from app.core.logging import get_logger
from app.models.base import utcnow
from app.models.earning import Earning
from app.models.enums import BonusType, CallStatus, CallType, EarningStatus, HostVerificationStatus, WithdrawalStatus
from app.models.host_bonus import HostBonus
from app.models.host_rating import HostRating
from app.models.withdrawal import Withdrawal
from app.stores.base import Store

log = get_logger(__name__)

WITHDRAWAL_METHODS = ("upi", "bank_transfer")


def _money(value: float) -> float:
    return round(value, 2)


class HostService:
    def __init__(self, store: Store, settings: Settings):
        self.store = store
        self.settings = settings

    # ── verification ─────────────────────────────────────────────────────

    async def apply_as_host(self, user_id: str, documents: list[str]) -> dict:
        user = await self.store.get_user(user_id)
        if user is None:
            raise NotFoundError("User not found")
        if user.is_host:
            raise BadRequestError("You are already a verified host")
        if user.host_verification_status == HostVerificationStatus.PENDING:
            raise BadRequestError("Your application is already pending review")
        if not documents:
            raise BadRequestError("At least one verification document is required")
        await self.store.update_user(
            user_id,
            {
                "host_verification_status": HostVerificationStatus.PENDING,
                "host_applied_at": utcnow(),
                "host_documents": documents,
            },
        )
        log.info("host_applied", user_id=user_id, documents=len(documents))
        return {"message": "Host application submitted successfully. We will review it within 24-48 hours."}

    async def approve_host(self, user_id: str, admin_id: str) -> dict:
        user = await self.store.get_user(user_id)
        if user is None:
            raise NotFoundError("User not found")
        if user.host_verification_status != HostVerificationStatus.PENDING:
            raise BadRequestError("No pending host application found")
        await self.store.update_user(
            user_id,
            {
                "is_host": True,
                "host_verification_status": HostVerificationStatus.APPROVED,
                "host_verified_at": utcnow(),
            },
        )
        await log_event(self.store, admin_id, "host_approved", "user", user_id)
        log.info("host_approved", user_id=user_id, admin_id=admin_id)
        return {"message": "Host application approved successfully"}

    async def reject_host(self, user_id: str, reason: str, admin_id: str) -> dict:
        user = await self.store.get_user(user_id)
        if user is None:
            raise NotFoundError("User not found")
        if user.host_verification_status != HostVerificationStatus.PENDING:
            raise BadRequestError("No pending host application found")
        await self.store.update_user(
            user_id,
            {
                "is_host": False,
                "host_verification_status": HostVerificationStatus.REJECTED,
                "host_rejected_at": utcnow(),
                "host_rejection_reason": reason,
            },
        )
        await log_event(self.store, admin_id, "host_rejected", "user", user_id, {"reason": reason})
        log.info("host_rejected", user_id=user_id, admin_id=admin_id)
        return {"message": "Host application rejected"}

    # ── earnings ─────────────────────────────────────────────────────────

    def host_share(self, call_type: CallType) -> float:
        if call_type == CallType.VIDEO:
            return self.settings.video_host_share
        if call_type == CallType.AUDIO:
            return self.settings.audio_host_share
        raise BadRequestError(f"Unknown call type: {call_type}")

    async def record_earning(
        self, call_id: str, host_id: str, call_type: CallType, duration_seconds: int, coins_charged: int
    ) -> Earning | None:
        """
        Credit the host's revenue share for a billed call.

        Returns None (and writes nothing) when host_id is not a verified host.
        The earning is unique per call_id; a second attempt raises
        DuplicateEarningError and credits nothing.
        """
        if not await self.store.is_host(host_id):
            log.debug("earning_skipped_not_host", call_id=call_id, host_id=host_id)
            return None

        share = self.host_share(call_type)
        total_revenue = coins_charged * self.settings.coin_to_currency_rate
        host_earning = _money(total_revenue * share)

        earning = Earning(
            host_id=host_id,
            call_id=call_id,
            call_type=call_type,
            call_duration_seconds=duration_seconds,
            total_revenue=_money(total_revenue),
            host_share_percent=share * 100,
            host_earning=host_earning,
            status=EarningStatus.COMPLETED,
            processed_at=utcnow(),
        )
        calls_as_host = await self.store.insert_earning_and_credit_host(earning, minutes=duration_seconds // 60)
        log.info("host_earning_recorded", call_id=call_id, host_id=host_id, earning=host_earning)

        await self.check_and_award_bonuses(host_id, calls_as_host=calls_as_host)
        return earning

    async def check_and_award_bonuses(self, host_id: str, calls_as_host: int | None = None) -> list[HostBonus]:
        """calls_as_host: the host's call count right after the triggering earning (one earning per count)."""
        host = await self.store.get_user(host_id)
        if host is None:
            return []
        if calls_as_host is None:
            calls_as_host = host.total_calls_as_host
        awarded: list[HostBonus] = []
        s = self.settings

        if host.host_rating is not None and host.host_rating >= s.high_rating_threshold:
            bonus = HostBonus(
                host_id=host_id,
                bonus_type=BonusType.HIGH_RATING,
                amount=s.high_rating_bonus,
                description=f"High rating bonus for maintaining {host.host_rating}+ stars",
                metadata={"rating": host.host_rating},
            )
            # At most one per window, enforced by the store against last_high_rating_bonus_at.
            window_start = bonus.credited_at - timedelta(days=s.high_rating_bonus_window_days)
            if await self.store.award_high_rating_bonus(bonus, window_start):
                log.info("host_bonus_awarded", host_id=host_id, bonus_type=bonus.bonus_type.value, amount=bonus.amount)
                awarded.append(bonus)

        # Equality, not threshold: each milestone fires on the call that reaches it.
        milestone = s.milestone_bonuses.get(calls_as_host)
        if milestone is not None:
            awarded.append(
                await self._award_bonus(
                    host_id,
                    BonusType.MILESTONE,
                    milestone,
                    f"Milestone bonus for completing {calls_as_host} calls",
                    {"calls": calls_as_host},
                )
            )
        return awarded

    async def _award_bonus(
        self, host_id: str, bonus_type: BonusType, amount: float, description: str, metadata: dict[str, Any]
    ) -> HostBonus:
        bonus = HostBonus(
            host_id=host_id,
            bonus_type=bonus_type,
            amount=amount,
            description=description,
            metadata=metadata,
        )
        await self.store.insert_bonus_and_credit_host(bonus)
        log.info("host_bonus_awarded", host_id=host_id, bonus_type=bonus_type.value, amount=amount)
        return bonus

    # ── withdrawals ──────────────────────────────────────────────────────

    async def request_withdrawal(
        self, user_id: str, amount: float, method: str, payment_details: dict[str, Any]
    ) -> Withdrawal:
        user = await self.store.get_user(user_id)
        if user is None:
            raise NotFoundError("User not found")
        if not user.is_host:
            raise ForbiddenError("Only verified hosts can request withdrawals")
        if method not in WITHDRAWAL_METHODS:
            raise BadRequestError(f"Unsupported withdrawal method: {method}")
        if amount < self.settings.min_withdrawal_amount:
            raise BadRequestError(f"Minimum withdrawal amount is ₹{self.settings.min_withdrawal_amount:g}")
        if method == "upi" and not payment_details.get("upi_id"):
            raise BadRequestError("UPI ID is required")
        if method == "bank_transfer" and not (
            payment_details.get("account_number") and payment_details.get("ifsc_code")
        ):
            raise BadRequestError("Account number and IFSC code are required")

        withdrawal = Withdrawal(
            user_id=user_id,
            amount=amount,
            method=method,
            status=WithdrawalStatus.PENDING,
            upi_id=payment_details.get("upi_id"),
            account_number=payment_details.get("account_number"),
            ifsc_code=payment_details.get("ifsc_code"),
            account_holder_name=payment_details.get("account_holder_name"),
        )
        await self.store.insert_withdrawal_and_debit_host(withdrawal)
        await log_event(self.store, user_id, "withdrawal_requested", "withdrawal", withdrawal.id, {"amount": amount})
        log.info("withdrawal_requested", user_id=user_id, withdrawal_id=withdrawal.id, amount=amount)
        return withdrawal

    # ── dashboards ───────────────────────────────────────────────────────

    async def get_host_dashboard(self, user_id: str) -> dict:
        user = await self.store.get_user(user_id)
        if user is None or not user.is_host:
            raise ForbiddenError("Only verified hosts can access this dashboard")

        earnings = await self.store.list_earnings(user_id, limit=None)
        breakdown: dict[CallType, dict[str, float]] = {}
        for e in earnings:
            row = breakdown.setdefault(e.call_type, {"total_calls": 0, "total_earnings": 0.0, "total_seconds": 0})
            row["total_calls"] += 1
            row["total_earnings"] += e.host_earning
            row["total_seconds"] += e.call_duration_seconds

        since = utcnow() - timedelta(days=30)
        last_30_days = sum(e.host_earning for e in earnings if e.created_at >= since)
        pending = await self.store.list_withdrawals(
            user_id=user_id, statuses=[WithdrawalStatus.PENDING, WithdrawalStatus.PROCESSING]
        )

        return {
            "stats": {
                "rating": user.host_rating or 0,
                "total_earnings": user.total_earnings,
                "available_balance": user.available_balance,
                "total_withdrawn": user.total_withdrawn,
                "total_calls": user.total_calls_as_host,
                "total_minutes": user.total_minutes_as_host,
                "last_30_days_earnings": _money(last_30_days),
            },
            "earnings_breakdown": [
                {
                    "call_type": call_type.value,
                    "total_calls": row["total_calls"],
                    "total_earnings": _money(row["total_earnings"]),
                    "total_minutes": int(row["total_seconds"] // 60),
                }
                for call_type, row in breakdown.items()
            ],
            "pending_withdrawals": [
                {
                    "id": w.id,
                    "amount": w.amount,
                    "method": w.method,
                    "status": w.status.value,
                    "requested_at": w.requested_at.isoformat(),
                }
                for w in pending
            ],
        }

    async def get_earnings_history(self, user_id: str, page: int = 1, limit: int = 50) -> dict:
        offset = (page - 1) * limit
        earnings = await self.store.list_earnings(user_id, offset=offset, limit=limit)
        total = await self.store.count_earnings(user_id)
        return {
            "earnings": [e.model_dump(mode="json") for e in earnings],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "total_pages": math.ceil(total / limit) if limit else 0,
            },
        }

    # ── ratings ──────────────────────────────────────────────────────────

    async def rate_host(
        self, host_id: str, call_id: str, caller_id: str, rating: int, feedback: str | None = None
    ) -> dict:
        if rating < 1 or rating > 5:
            raise BadRequestError("Rating must be between 1 and 5")
        call = await self.store.get_call(call_id)
        if call is None:
            raise NotFoundError("Call not found")
        if call.caller_id != caller_id or call.receiver_id != host_id:
            raise ForbiddenError("You can only rate hosts you have called")
        if call.status != CallStatus.COMPLETED:
            raise BadRequestError("Only completed calls can be rated")

        await self.store.insert_rating(
            HostRating(host_id=host_id, caller_id=caller_id, call_id=call_id, rating=rating, feedback=feedback)
        )
        average = await self.store.average_rating(host_id)
        await self.store.update_user(host_id, {"host_rating": round(average or 0, 2)})
        log.info("host_rated", host_id=host_id, call_id=call_id, rating=rating, average=average)
        return {"message": "Rating submitted successfully", "average_rating": round(average or 0, 2)}
