import pytest

from app.core.exceptions import BadRequestError, ConflictError, ForbiddenError, InsufficientFundsError
from app.models.enums import CallStatus, CallType, HostVerificationStatus, WithdrawalStatus

pytestmark = pytest.mark.asyncio

UPI = {"upi_id": "host@upi"}


async def test_withdrawal_holds_balance_until_processed(services, store, make_host, make_user):
    host = await make_host(available_balance=1200, total_earnings=1200)
    admin = await make_user(role="admin")
    withdrawal = await services.hosts.request_withdrawal(host.id, 800, "upi", UPI)
    assert withdrawal.status == WithdrawalStatus.PENDING
    assert (await store.get_user(host.id)).available_balance == pytest.approx(400)

    done = await services.admin.process_withdrawal(admin.id, withdrawal.id, approve=True)
    assert done.status == WithdrawalStatus.COMPLETED
    host = await store.get_user(host.id)
    assert host.total_withdrawn == pytest.approx(800)
    assert host.available_balance == pytest.approx(400)

    with pytest.raises(BadRequestError):
        await services.admin.process_withdrawal(admin.id, withdrawal.id, approve=False, reason="late")
    assert [a.event_type for a in store.audit_logs] == ["withdrawal_requested", "withdrawal_approved"]


async def test_rejected_withdrawal_returns_funds(services, store, make_host, make_user):
    host = await make_host(available_balance=600)
    admin = await make_user(role="admin")
    withdrawal = await services.hosts.request_withdrawal(
        host.id, 600, "bank_transfer", {"account_number": "123", "ifsc_code": "SBIN0000001"}
    )
    with pytest.raises(BadRequestError):
        await services.admin.process_withdrawal(admin.id, withdrawal.id, approve=False)
    rejected = await services.admin.process_withdrawal(admin.id, withdrawal.id, approve=False, reason="KYC")
    assert rejected.rejection_reason == "KYC"
    host = await store.get_user(host.id)
    assert host.available_balance == pytest.approx(600)
    assert host.total_withdrawn == 0


async def test_withdrawal_validation(services, make_host, make_user):
    host = await make_host(available_balance=700)
    with pytest.raises(BadRequestError):
        await services.hosts.request_withdrawal(host.id, 499, "upi", UPI)
    with pytest.raises(BadRequestError):
        await services.hosts.request_withdrawal(host.id, 600, "upi", {})
    with pytest.raises(BadRequestError):
        await services.hosts.request_withdrawal(host.id, 600, "cash", UPI)
    with pytest.raises(InsufficientFundsError):
        await services.hosts.request_withdrawal(host.id, 701, "upi", UPI)

    user = await make_user(available_balance=1000)
    with pytest.raises(ForbiddenError):
        await services.hosts.request_withdrawal(user.id, 600, "upi", UPI)


async def test_host_application_review(services, store, make_user):
    user = await make_user()
    admin = await make_user(role="admin")
    await services.hosts.apply_as_host(user.id, ["https://docs/id.png"])
    with pytest.raises(BadRequestError):
        await services.hosts.apply_as_host(user.id, ["https://docs/id.png"])
    await services.hosts.approve_host(user.id, admin.id)
    user = await store.get_user(user.id)
    assert user.is_host
    assert user.host_verification_status == HostVerificationStatus.APPROVED
    assert store.audit_logs[-1].event_type == "host_approved"


async def test_host_application_rejected(services, store, make_user):
    user = await make_user()
    admin = await make_user(role="admin")
    with pytest.raises(BadRequestError):
        await services.hosts.reject_host(user.id, "blurry", admin.id)
    await services.hosts.apply_as_host(user.id, ["https://docs/id.png"])
    await services.hosts.reject_host(user.id, "blurry", admin.id)
    user = await store.get_user(user.id)
    assert not user.is_host
    assert user.host_rejection_reason == "blurry"


async def _completed_call(services, caller, host):
    call = await services.calls.initiate_call(caller.id, host.id, CallType.AUDIO)
    await services.calls.on_call_status_changed(call.id, CallStatus.ANSWERED)
    await services.calls.on_call_status_changed(call.id, CallStatus.COMPLETED, duration_seconds=60)
    return call


async def test_rating_updates_average(services, store, make_user, make_host):
    caller = await make_user(coins=100)
    host = await make_host()
    first = await _completed_call(services, caller, host)
    second = await _completed_call(services, caller, host)

    await services.hosts.rate_host(host.id, first.id, caller.id, 5)
    result = await services.hosts.rate_host(host.id, second.id, caller.id, 4, "ok")
    assert result["average_rating"] == pytest.approx(4.5)
    assert (await store.get_user(host.id)).host_rating == pytest.approx(4.5)

    with pytest.raises(ConflictError):
        await services.hosts.rate_host(host.id, first.id, caller.id, 3)


async def test_rating_rules(services, make_user, make_host):
    caller = await make_user(coins=100)
    host = await make_host()
    other = await make_user()
    call = await _completed_call(services, caller, host)
    with pytest.raises(BadRequestError):
        await services.hosts.rate_host(host.id, call.id, caller.id, 6)
    with pytest.raises(ForbiddenError):
        await services.hosts.rate_host(host.id, call.id, other.id, 5)

    pending = await services.calls.initiate_call(caller.id, host.id, CallType.AUDIO)
    with pytest.raises(BadRequestError):
        await services.hosts.rate_host(host.id, pending.id, caller.id, 5)


async def test_admin_coin_adjustment(services, store, make_user):
    user = await make_user(coins=10)
    admin = await make_user(role="admin")
    assert await services.admin.adjust_coins(admin.id, user.id, 40, "goodwill") == 50
    assert await services.admin.adjust_coins(admin.id, user.id, -20, "chargeback") == 30
    with pytest.raises(InsufficientFundsError):
        await services.admin.adjust_coins(admin.id, user.id, -31, "too much")
    with pytest.raises(BadRequestError):
        await services.admin.adjust_coins(admin.id, user.id, 0, "nothing")
    assert [a.metadata["coins"] for a in store.audit_logs] == [40, -20]
