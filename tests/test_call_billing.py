import asyncio
from datetime import timedelta

import pytest

from app.core.exceptions import ConflictError, InsufficientFundsError
from app.models.base import utcnow
from app.models.call_log import CallLog
from app.models.enums import CallType

pytestmark = pytest.mark.asyncio


async def _call(store, caller, receiver, call_type=CallType.AUDIO) -> CallLog:
    call = CallLog(caller_id=caller.id, receiver_id=receiver.id, call_type=call_type)
    await store.insert_call(call)
    return call


async def test_audio_call_61_seconds_costs_two_minutes(services, store, make_user):
    caller = await make_user(coins=100)
    receiver = await make_user()
    call = await _call(store, caller, receiver)

    charge = await services.billing.charge_for_call(caller.id, CallType.AUDIO, 61, call.id)
    assert charge.coins_charged == 20
    assert charge.discount == 0
    assert charge.new_balance == 80
    assert (await store.get_call(call.id)).coins_charged == 20

    entry = store.transactions[-1]
    assert entry.coins == -20
    assert entry.metadata["call_id"] == call.id
    assert entry.metadata["purpose"] == "audio_call"


async def test_video_call_exact_minute(services, store, make_user):
    caller = await make_user(coins=100)
    receiver = await make_user()
    call = await _call(store, caller, receiver, CallType.VIDEO)
    charge = await services.billing.charge_for_call(caller.id, CallType.VIDEO, 60, call.id)
    assert charge.coins_charged == 60
    assert charge.new_balance == 40


async def test_premium_pays_half_rounded_up(services, store, make_user):
    caller = await make_user(coins=100, is_premium=True, premium_until=utcnow() + timedelta(days=10))
    receiver = await make_user()
    call = await _call(store, caller, receiver, CallType.VIDEO)
    charge = await services.billing.charge_for_call(caller.id, CallType.VIDEO, 60, call.id)
    assert charge.original_cost == 60
    assert charge.coins_charged == 30
    assert charge.discount == 30

    call = await _call(store, caller, receiver, CallType.AUDIO)
    charge = await services.billing.charge_for_call(caller.id, CallType.AUDIO, 170, call.id)
    # 3 minutes * 10 = 30, half = 15
    assert charge.coins_charged == 15

    settings = services.billing.settings
    settings.audio_rate_per_minute = 11
    call = await _call(store, caller, receiver, CallType.AUDIO)
    charge = await services.billing.charge_for_call(caller.id, CallType.AUDIO, 30, call.id)
    assert charge.coins_charged == 6


async def test_insufficient_balance_leaves_everything_untouched(services, store, make_user):
    caller = await make_user(coins=50)
    receiver = await make_user()
    call = await _call(store, caller, receiver, CallType.VIDEO)
    entries_before = len(store.transactions)

    with pytest.raises(InsufficientFundsError) as exc:
        await services.billing.charge_for_call(caller.id, CallType.VIDEO, 90, call.id)
    assert exc.value.details == {"balance": 50, "required": 120, "call_id": call.id}
    assert await services.wallet.get_balance(caller.id) == 50
    assert len(store.transactions) == entries_before
    assert (await store.get_call(call.id)).coins_charged is None


async def test_expired_premium_pays_full_price(services, store, make_user):
    caller = await make_user(coins=100, is_premium=True, premium_until=utcnow() - timedelta(minutes=1))
    receiver = await make_user()
    call = await _call(store, caller, receiver, CallType.VIDEO)
    charge = await services.billing.charge_for_call(caller.id, CallType.VIDEO, 60, call.id)
    assert charge.coins_charged == 60
    assert store.transactions[-1].metadata["is_premium"] is False


async def test_same_call_is_charged_once(services, store, make_user):
    caller = await make_user(coins=100)
    receiver = await make_user()
    call = await _call(store, caller, receiver)

    await services.billing.charge_for_call(caller.id, CallType.AUDIO, 60, call.id)
    with pytest.raises(ConflictError):
        await services.billing.charge_for_call(caller.id, CallType.AUDIO, 60, call.id)

    assert await services.wallet.get_balance(caller.id) == 90
    debits = [t for t in store.transactions if t.metadata.get("call_id") == call.id]
    assert len(debits) == 1
    assert (await store.get_call(call.id)).coins_charged == 10


async def test_concurrent_charges_for_one_call_debit_once(services, store, make_user):
    caller = await make_user(coins=100)
    receiver = await make_user()
    call = await _call(store, caller, receiver)

    results = await asyncio.gather(
        *(services.billing.charge_for_call(caller.id, CallType.AUDIO, 60, call.id) for _ in range(3)),
        return_exceptions=True,
    )
    assert sum(1 for r in results if isinstance(r, ConflictError)) == 2
    assert await services.wallet.get_balance(caller.id) == 90
    assert len([t for t in store.transactions if t.metadata.get("call_id") == call.id]) == 1
