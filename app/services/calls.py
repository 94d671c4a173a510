"""Call records and their status lifecycle; the edge into completed drives billing and host earnings."""

import math

from app.core.config import Settings
from app.core.exceptions import BadRequestError, ConflictError, ForbiddenError, InsufficientFundsError, NotFoundError
from app.core.logging import get_logger
from app.models.base import utcnow
from app.models.call_log import CallLog
from app.models.enums import TERMINAL_CALL_STATUSES, CallStatus, CallType
from app.services.billing import CallBillingService
from app.services.hosts import HostService
from app.stores.base import Store

log = get_logger(__name__)

_ENDINGS = TERMINAL_CALL_STATUSES

ALLOWED_TRANSITIONS: dict[CallStatus, frozenset[CallStatus]] = {
    CallStatus.INITIATED: frozenset({CallStatus.RINGING, CallStatus.ANSWERED}) | _ENDINGS,
    CallStatus.RINGING: frozenset({CallStatus.RINGING, CallStatus.ANSWERED}) | _ENDINGS,
    CallStatus.ANSWERED: frozenset({CallStatus.ANSWERED, CallStatus.COMPLETED, CallStatus.FAILED}),
    CallStatus.COMPLETED: frozenset(),
    CallStatus.REJECTED: frozenset(),
    CallStatus.MISSED: frozenset(),
    CallStatus.DECLINED: frozenset(),
    CallStatus.FAILED: frozenset(),
}


class CallService:
    def __init__(self, store: Store, billing: CallBillingService, hosts: HostService, settings: Settings):
        self.store = store
        self.billing = billing
        self.hosts = hosts
        self.settings = settings

    async def initiate_call(self, caller_id: str, receiver_id: str, call_type: CallType) -> CallLog:
        if caller_id == receiver_id:
            raise BadRequestError("Cannot call yourself")
        caller = await self.store.get_user(caller_id)
        if caller is None or not caller.is_active:
            raise NotFoundError("Caller not found")
        receiver = await self.store.get_user(receiver_id)
        if receiver is None or not receiver.is_active:
            raise NotFoundError("User not found")

        call = CallLog(caller_id=caller_id, receiver_id=receiver_id, call_type=call_type)
        call.room_name = f"call_{call.id}"
        await self.store.insert_call(call)
        log.info("call_initiated", call_id=call.id, caller_id=caller_id, receiver_id=receiver_id, call_type=call_type.value)
        return call

    async def on_call_status_changed(
        self,
        call_id: str,
        status: CallStatus,
        duration_seconds: int | None = None,
        acting_user_id: str | None = None,
    ) -> CallLog:
        """
        Move a call to `status`. Only the request that wins the edge into
        completed (with a positive duration) charges the caller, and only a
        successful charge goes on to credit a host.

        A billing decline leaves the call completed with coins_charged unset.
        Repeating a terminal status returns the stored call unchanged.
        """
        call = await self.store.get_call(call_id)
        if call is None:
            raise NotFoundError("Call not found")
        if acting_user_id is not None and acting_user_id not in (call.caller_id, call.receiver_id):
            raise ForbiddenError("Not a participant in this call")
        if duration_seconds is not None and duration_seconds < 0:
            raise BadRequestError("Duration cannot be negative")

        if call.status.is_terminal:
            if call.status == status:
                log.info("call_status_repeated", call_id=call_id, status=status.value)
                return call
            raise ConflictError("Call already ended", details={"status": call.status.value})
        if status not in ALLOWED_TRANSITIONS[call.status]:
            raise BadRequestError(f"Cannot move call from {call.status.value} to {status.value}")

        now = utcnow()
        fields: dict = {"status": status}
        if duration_seconds is not None:
            fields["duration_seconds"] = duration_seconds
        if status == CallStatus.ANSWERED and call.started_at is None:
            fields["started_at"] = now
        if status in (CallStatus.COMPLETED, CallStatus.FAILED):
            fields["ended_at"] = now

        updated = await self.store.transition_call(call_id, call.status, fields)
        if updated is None:
            # Another request moved the call first; report what it stored.
            current = await self.store.get_call(call_id)
            if current is not None and current.status == status:
                return current
            raise ConflictError("Call status changed concurrently")
        log.info("call_status_updated", call_id=call_id, status=status.value, previous=call.status.value)

        if status == CallStatus.COMPLETED and duration_seconds and duration_seconds > 0:
            updated = await self._settle_completed_call(updated, duration_seconds)
        return updated

    async def _settle_completed_call(self, call: CallLog, duration_seconds: int) -> CallLog:
        try:
            charge = await self.billing.charge_for_call(call.caller_id, call.call_type, duration_seconds, call.id)
        except InsufficientFundsError as e:
            log.warning("call_billing_declined", call_id=call.id, caller_id=call.caller_id, details=e.details)
            charge = None

        minutes = duration_seconds // 60
        await self.store.increment_user_counters(
            call.caller_id, {"total_calls_made": 1, "total_call_minutes": minutes}
        )
        await self.store.increment_user_counters(
            call.receiver_id, {"total_calls_received": 1, "total_call_minutes": minutes}
        )

        if charge is not None:
            await self.hosts.record_earning(
                call.id, call.receiver_id, call.call_type, duration_seconds, charge.coins_charged
            )
        return await self.store.get_call(call.id) or call

    async def get_call(self, call_id: str, user_id: str) -> CallLog:
        call = await self.store.get_call(call_id)
        if call is None or user_id not in (call.caller_id, call.receiver_id):
            raise NotFoundError("Call not found")
        return call

    async def get_call_logs(self, user_id: str, page: int = 1, limit: int = 50) -> dict:
        offset = (page - 1) * limit
        calls = await self.store.list_calls_for_user(user_id, offset=offset, limit=limit)
        total = await self.store.count_calls_for_user(user_id)
        return {
            "calls": [
                {
                    **c.model_dump(mode="json"),
                    "direction": "outgoing" if c.caller_id == user_id else "incoming",
                    "peer_id": c.receiver_id if c.caller_id == user_id else c.caller_id,
                }
                for c in calls
            ],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "total_pages": math.ceil(total / limit) if limit else 0,
            },
        }

    async def get_call_stats(self, user_id: str) -> dict:
        calls = await self.store.list_calls_for_user(user_id, limit=None)
        completed = [c for c in calls if c.status == CallStatus.COMPLETED]
        breakdown: dict[tuple[str, str], int] = {}
        for c in calls:
            key = (c.call_type.value, c.status.value)
            breakdown[key] = breakdown.get(key, 0) + 1
        return {
            "total_calls": len(calls),
            "completed_calls": len(completed),
            "missed_calls": len(calls) - len(completed),
            "total_minutes": sum(c.duration_seconds or 0 for c in completed) // 60,
            "breakdown": [
                {"call_type": call_type, "status": status, "count": count}
                for (call_type, status), count in sorted(breakdown.items())
            ],
        }
