import asyncio
from datetime import timedelta

import pytest

from app.core.exceptions import DuplicateEarningError
from app.models.base import utcnow
from app.models.enums import BonusType, CallType

pytestmark = pytest.mark.asyncio


async def test_video_earning_share(services, store, make_host):
    host = await make_host()
    # 125s video = 3 minutes * 60 coins
    earning = await services.hosts.record_earning("call-1", host.id, CallType.VIDEO, 125, 180)
    assert earning is not None
    assert earning.total_revenue == pytest.approx(18.0)
    assert earning.host_share_percent == pytest.approx(30)
    assert earning.host_earning == pytest.approx(5.4)

    host = await store.get_user(host.id)
    assert host.total_earnings == pytest.approx(5.4)
    assert host.available_balance == pytest.approx(5.4)
    assert host.total_calls_as_host == 1
    assert host.total_minutes_as_host == 2


async def test_audio_earning_share(services, make_host):
    host = await make_host()
    earning = await services.hosts.record_earning("call-2", host.id, CallType.AUDIO, 600, 100)
    assert earning.total_revenue == pytest.approx(10.0)
    assert earning.host_earning == pytest.approx(1.5)


async def test_second_earning_for_same_call_rejected(services, store, make_host):
    host = await make_host()
    await services.hosts.record_earning("call-3", host.id, CallType.VIDEO, 60, 60)
    with pytest.raises(DuplicateEarningError) as exc:
        await services.hosts.record_earning("call-3", host.id, CallType.VIDEO, 60, 60)
    assert exc.value.status_code == 409
    host = await store.get_user(host.id)
    assert host.total_earnings == pytest.approx(1.8)
    assert host.total_calls_as_host == 1


async def test_non_host_receiver_earns_nothing(services, store, make_user):
    user = await make_user()
    assert await services.hosts.record_earning("call-4", user.id, CallType.AUDIO, 60, 10) is None
    assert store.earnings == {}
    assert (await store.get_user(user.id)).total_earnings == 0


async def test_milestone_fires_on_exact_call_count(services, store, make_host):
    host = await make_host(total_calls_as_host=49)
    await services.hosts.record_earning("call-50", host.id, CallType.AUDIO, 60, 10)
    milestones = [b for b in store.bonuses if b.bonus_type == BonusType.MILESTONE]
    assert len(milestones) == 1
    assert milestones[0].amount == 1000
    assert milestones[0].metadata == {"calls": 50}

    await services.hosts.record_earning("call-51", host.id, CallType.AUDIO, 60, 10)
    assert len([b for b in store.bonuses if b.bonus_type == BonusType.MILESTONE]) == 1

    host = await store.get_user(host.id)
    assert host.total_earnings == pytest.approx(1000 + 2 * 0.15)


async def test_milestone_skipped_when_count_passes_it(services, store, make_host):
    host = await make_host(total_calls_as_host=50)
    await services.hosts.record_earning("call-x", host.id, CallType.AUDIO, 60, 10)
    assert store.bonuses == []


async def test_high_rating_bonus_once_per_window(services, store, make_host):
    host = await make_host(host_rating=4.8)
    await services.hosts.record_earning("call-a", host.id, CallType.AUDIO, 60, 10)
    await services.hosts.record_earning("call-b", host.id, CallType.AUDIO, 60, 10)
    high = [b for b in store.bonuses if b.bonus_type == BonusType.HIGH_RATING]
    assert len(high) == 1
    assert high[0].amount == 500


async def test_high_rating_bonus_again_after_window(services, store, make_host):
    host = await make_host(host_rating=4.5, last_high_rating_bonus_at=utcnow() - timedelta(days=31))
    awarded = await services.hosts.check_and_award_bonuses(host.id)
    assert [b.bonus_type for b in awarded] == [BonusType.HIGH_RATING]
    host = await store.get_user(host.id)
    assert host.last_high_rating_bonus_at == awarded[0].credited_at
    assert host.available_balance == pytest.approx(500)


async def test_high_rating_bonus_blocked_by_recent_award(services, store, make_host):
    host = await make_host(host_rating=4.9, last_high_rating_bonus_at=utcnow() - timedelta(days=29))
    assert await services.hosts.check_and_award_bonuses(host.id) == []
    assert store.bonuses == []
    assert (await store.get_user(host.id)).total_earnings == 0


async def test_low_rating_gets_no_bonus(services, make_host):
    host = await make_host(host_rating=4.4)
    assert await services.hosts.check_and_award_bonuses(host.id) == []


async def test_dashboard_and_history(services, make_host):
    host = await make_host()
    await services.hosts.record_earning("call-d1", host.id, CallType.VIDEO, 125, 180)
    await services.hosts.record_earning("call-d2", host.id, CallType.AUDIO, 60, 10)

    dashboard = await services.hosts.get_host_dashboard(host.id)
    assert dashboard["stats"]["total_calls"] == 2
    assert dashboard["stats"]["last_30_days_earnings"] == pytest.approx(5.55)
    by_type = {row["call_type"]: row for row in dashboard["earnings_breakdown"]}
    assert by_type["video"]["total_minutes"] == 2
    assert by_type["audio"]["total_earnings"] == pytest.approx(0.15)

    history = await services.hosts.get_earnings_history(host.id, page=1, limit=10)
    assert history["pagination"]["total"] == 2
    assert {e["call_id"] for e in history["earnings"]} == {"call-d1", "call-d2"}


async def test_concurrent_earnings_award_milestone_once(services, store, make_host):
    host = await make_host(total_calls_as_host=48)
    await asyncio.gather(
        *(services.hosts.record_earning(f"call-c{i}", host.id, CallType.AUDIO, 60, 10) for i in range(3))
    )
    milestones = [b for b in store.bonuses if b.bonus_type == BonusType.MILESTONE]
    assert [b.metadata["calls"] for b in milestones] == [50]
    assert (await store.get_user(host.id)).total_calls_as_host == 51


async def test_concurrent_checks_award_high_rating_once(services, store, make_host):
    host = await make_host(host_rating=4.7)
    results = await asyncio.gather(*(services.hosts.check_and_award_bonuses(host.id) for _ in range(4)))
    assert sorted(len(r) for r in results) == [0, 0, 0, 1]
    assert len([b for b in store.bonuses if b.bonus_type == BonusType.HIGH_RATING]) == 1
    host = await store.get_user(host.id)
    assert host.total_earnings == pytest.approx(500)
    assert host.available_balance == pytest.approx(500)
