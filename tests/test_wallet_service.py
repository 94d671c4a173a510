"""Coin ledger: balance always equals the sum of a user's entries and never goes negative."""

import asyncio

import pytest

from app.core.exceptions import BadRequestError, InsufficientFundsError, NotFoundError
from app.models.enums import ChargePurpose, TransactionKind

pytestmark = pytest.mark.asyncio


async def _ledger_sum(store, user_id: str) -> int:
    return sum(t.coins for t in store.transactions if t.user_id == user_id)


async def test_credit_and_debit_keep_ledger_in_sync(services, store, make_user):
    user = await make_user()
    balance = await services.wallet.credit(user.id, 200, TransactionKind.PURCHASE, "Recharge")
    assert balance == 200
    balance = await services.wallet.debit(user.id, 70, ChargePurpose.AUDIO_CALL, "Audio call - 7 min")
    assert balance == 130
    assert await services.wallet.get_balance(user.id) == 130
    assert await _ledger_sum(store, user.id) == 130

    entries = [t for t in store.transactions if t.user_id == user.id]
    assert [e.coins for e in entries] == [200, -70]
    assert [e.balance_after for e in entries] == [200, 130]
    assert entries[1].kind == TransactionKind.DEBIT
    assert entries[1].metadata["purpose"] == "audio_call"


async def test_debit_more_than_balance_changes_nothing(services, store, make_user):
    user = await make_user(coins=50)
    with pytest.raises(InsufficientFundsError) as exc:
        await services.wallet.debit(user.id, 51, ChargePurpose.OTHER, "Too much")
    assert exc.value.status_code == 402
    assert exc.value.details == {"balance": 50, "required": 51}
    assert await services.wallet.get_balance(user.id) == 50
    assert await services.wallet.get_balance(user.id) == await _ledger_sum(store, user.id)


async def test_concurrent_debits_never_overdraw(services, store, make_user):
    user = await make_user(coins=100)

    async def spend():
        try:
            return await services.wallet.debit(user.id, 30, ChargePurpose.OTHER, "Spend")
        except InsufficientFundsError:
            return None

    results = await asyncio.gather(*(spend() for _ in range(10)))
    assert sum(1 for r in results if r is not None) == 3
    assert await services.wallet.get_balance(user.id) == 10
    assert await _ledger_sum(store, user.id) == 10


async def test_rejects_non_positive_amounts_and_debit_kinds(services, make_user):
    user = await make_user(coins=10)
    with pytest.raises(BadRequestError):
        await services.wallet.credit(user.id, 0, TransactionKind.BONUS, "Nothing")
    with pytest.raises(BadRequestError):
        await services.wallet.debit(user.id, -5, ChargePurpose.OTHER, "Negative")
    with pytest.raises(BadRequestError):
        await services.wallet.credit(user.id, 5, TransactionKind.DEBIT, "Wrong kind")


async def test_unknown_user(services):
    with pytest.raises(NotFoundError):
        await services.wallet.get_balance("missing")
    with pytest.raises(NotFoundError):
        await services.wallet.credit("missing", 10, TransactionKind.BONUS, "Ghost")


async def test_transfer_moves_coins_as_one_unit(services, store, make_user):
    sender = await make_user(coins=100, display_name="Asha")
    receiver = await make_user(display_name="Ravi")
    sender_balance, receiver_balance = await services.wallet.transfer(sender.id, receiver.id, 40, "hi")
    assert (sender_balance, receiver_balance) == (60, 40)
    gift = [t for t in store.transactions if t.user_id == receiver.id][0]
    assert gift.kind == TransactionKind.BONUS
    assert gift.description == "Gift from Asha"


async def test_failed_transfer_writes_no_entries(services, store, make_user):
    sender = await make_user(coins=10)
    receiver = await make_user()
    before = len(store.transactions)
    with pytest.raises(InsufficientFundsError):
        await services.wallet.transfer(sender.id, receiver.id, 11)
    assert len(store.transactions) == before
    assert await services.wallet.get_balance(receiver.id) == 0


async def test_transfer_to_self_rejected(services, make_user):
    user = await make_user(coins=10)
    with pytest.raises(BadRequestError):
        await services.wallet.transfer(user.id, user.id, 5)


async def test_call_cost_rounds_up_to_started_minute(services):
    from app.models.enums import CallType

    assert services.wallet.calculate_call_cost(CallType.AUDIO, 61).total_coins == 20
    assert services.wallet.calculate_call_cost(CallType.AUDIO, 60).total_coins == 10
    assert services.wallet.calculate_call_cost(CallType.VIDEO, 1).total_coins == 60
    assert services.wallet.calculate_call_cost(CallType.VIDEO, 0).total_coins == 0


async def test_history_and_statistics(services, make_user):
    user = await make_user(coins=100)
    await services.wallet.debit(user.id, 30, ChargePurpose.GIFT, "Gift")
    history = await services.wallet.get_transaction_history(user.id, page=1, limit=1)
    assert history["pagination"] == {"page": 1, "limit": 1, "total": 2, "total_pages": 2}
    assert history["transactions"][0]["coins"] == -30
    assert history["transactions"][0]["is_debit"] is True

    stats = await services.wallet.get_coin_statistics(user.id)
    assert stats == {"current_balance": 70, "total_earned": 100, "total_spent": 30, "net_balance": 70}


async def test_registration_grants_welcome_bonus(services, store):
    user = await services.users.register("9876543210", "New")
    assert user.coins == 100
    entries = [t for t in store.transactions if t.user_id == user.id]
    assert len(entries) == 1
    assert entries[0].description == "Welcome bonus"
