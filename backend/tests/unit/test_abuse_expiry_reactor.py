from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from abuseguard.abuse.domain import container
from abuseguard.abuse.domain.models import ActiveSuspension, ReversalCause, ReversalEvent, WeeklyStats
from abuseguard.abuse.domain.suspensions import truncate_to_millis
from abuseguard.abuse.domain.week_clock import week_key
from abuseguard.abuse.workers.expiry_reactor import ExpiryReactor
from abuseguard.abuse.workers.expiry_relay import ExpiryRelay

MARKER_KEY = "abuse:suspension:active:u1"


def _stats(count: int = 10) -> WeeklyStats:
    return WeeklyStats(
        user_id="u1",
        week_key=week_key(datetime.now(timezone.utc)),
        total_violations=count,
        this_week_violations=count,
    )


def _reactor() -> ExpiryReactor:
    return ExpiryReactor(markers=container.get_markers(), accounts=container.get_accounts(), block_ms=0)


async def _suspend():
    history = await container.get_enforcer().auto_suspend("u1", _stats())
    assert history is not None
    return history


@pytest.mark.asyncio
async def test_expired_marker_reinstates_account_once(fake_redis) -> None:
    history = await _suspend()
    await fake_redis.delete(MARKER_KEY)  # storage TTL elapsed

    relay = ExpiryRelay(markers=container.get_markers())
    assert await relay.run_once(now=history.suspended_until + timedelta(seconds=1)) == 1
    assert await relay.run_once(now=history.suspended_until + timedelta(seconds=2)) == 0

    reactor = _reactor()
    assert await reactor.run_once() == 1

    status = await container.get_enforcer().get_account_status("u1")
    assert status.status == "active"
    assert status.is_suspended is False
    assert status.reinstated_reason == "Suspension period ended"
    assert status.reinstated_at is not None
    pending = await fake_redis.xpending("abuse:suspension:changes", "abuse-reactor")
    assert pending["pending"] == 0


@pytest.mark.asyncio
async def test_duplicate_delivery_is_noop() -> None:
    history = await _suspend()
    await container.get_markers().cancel("u1", cause=ReversalCause.EXPIRED)
    event = ReversalEvent(user_id="u1", suspended_until=history.suspended_until, cause=ReversalCause.EXPIRED)

    reactor = _reactor()
    assert await reactor.handle(event) is True
    assert await reactor.handle(event) is False
    status = await container.get_enforcer().get_account_status("u1")
    assert status.is_suspended is False


@pytest.mark.asyncio
async def test_relay_waits_for_storage_expiry() -> None:
    history = await _suspend()
    relay = ExpiryRelay(markers=container.get_markers())
    # marker still present even though the clock says it is due
    assert await relay.run_once(now=history.suspended_until + timedelta(seconds=1)) == 0
    assert await container.is_user_suspended("u1") is True


@pytest.mark.asyncio
async def test_event_for_superseded_suspension_is_ignored(fake_redis) -> None:
    first = await _suspend()
    await fake_redis.delete(MARKER_KEY)
    later = truncate_to_millis(datetime.now(timezone.utc) + timedelta(hours=2))
    second = ActiveSuspension(
        user_id="u1",
        suspended_at=truncate_to_millis(datetime.now(timezone.utc)),
        suspended_until=later,
        tier=1,
        reason="re-suspended",
    )
    assert await container.get_markers().schedule(second) is True
    await container.get_accounts().mark_suspended(second)

    reactor = _reactor()
    stale = ReversalEvent(user_id="u1", suspended_until=first.suspended_until, cause=ReversalCause.EXPIRED)
    assert await reactor.handle(stale) is False
    status = await container.get_enforcer().get_account_status("u1")
    assert status.is_suspended is True
    assert status.suspended_until == later


@pytest.mark.asyncio
async def test_out_of_order_event_does_not_reinstate_newer_suspension(fake_redis) -> None:
    first = await _suspend()
    newer = ActiveSuspension(
        user_id="u1",
        suspended_at=first.suspended_at,
        suspended_until=first.suspended_until + timedelta(hours=5),
        tier=2,
        reason="newer",
    )
    await container.get_accounts().mark_suspended(newer)
    await fake_redis.delete(MARKER_KEY)

    stale = ReversalEvent(user_id="u1", suspended_until=first.suspended_until, cause=ReversalCause.EXPIRED)
    assert await _reactor().handle(stale) is False
    assert (await container.get_enforcer().get_account_status("u1")).is_suspended is True


@pytest.mark.asyncio
async def test_missing_account_is_noop() -> None:
    event = ReversalEvent(
        user_id="ghost",
        suspended_until=datetime.now(timezone.utc),
        cause=ReversalCause.EXPIRED,
    )
    assert await _reactor().handle(event) is False


@pytest.mark.asyncio
async def test_early_removal_flows_through_reactor() -> None:
    await _suspend()
    enforcer = container.get_enforcer()
    assert await enforcer.reinstate_early("u1", actor_id="admin-1", reason="Manual reinstatement") is True
    assert (await enforcer.get_account_status("u1")).is_suspended is True

    assert await _reactor().run_once() == 1
    status = await enforcer.get_account_status("u1")
    assert status.is_suspended is False
    assert status.reinstated_reason == "Manual reinstatement"


@pytest.mark.asyncio
async def test_failed_event_stays_pending_for_redelivery(monkeypatch) -> None:
    await _suspend()
    await container.get_enforcer().reinstate_early("u1", actor_id="admin-1", reason="lifted")
    reactor = _reactor()

    async def _boom(*args, **kwargs):
        raise ConnectionError("redis blip")

    monkeypatch.setattr(reactor.accounts, "reinstate_if_current", _boom)
    assert await reactor.run_once() == 0
    monkeypatch.undo()

    # a restarted consumer drains its pending entries first
    restarted = _reactor()
    assert await restarted.run_once() == 1
    assert (await container.get_enforcer().get_account_status("u1")).is_suspended is False


@pytest.mark.asyncio
async def test_failing_event_is_dead_lettered_without_blocking_others(fake_redis) -> None:
    enforcer = container.get_enforcer()
    for user_id in ("bad", "good"):
        stats = WeeklyStats(
            user_id=user_id,
            week_key=week_key(datetime.now(timezone.utc)),
            total_violations=10,
            this_week_violations=10,
        )
        assert await enforcer.auto_suspend(user_id, stats) is not None
    await fake_redis.hset("abuse:account:bad", "suspended_until_ms", "oops")
    assert await enforcer.reinstate_early("bad", actor_id="admin-1", reason="lifted") is True
    assert await enforcer.reinstate_early("good", actor_id="admin-1", reason="lifted") is True

    reactor = ExpiryReactor(
        markers=container.get_markers(),
        accounts=container.get_accounts(),
        block_ms=0,
        max_attempts=3,
    )
    assert await reactor.run_once() == 1
    assert (await enforcer.get_account_status("good")).is_suspended is False

    assert await reactor.run_once() == 0
    assert await reactor.run_once() == 1

    dead = await fake_redis.xrange("abuse:suspension:dead")
    assert len(dead) == 1
    assert dead[0][1]["user_id"] == "bad"
    assert dead[0][1]["error"].startswith("ValueError")
    pending = await fake_redis.xpending("abuse:suspension:changes", "abuse-reactor")
    assert pending["pending"] == 0
    assert await fake_redis.hlen("abuse:suspension:changes:attempts") == 0
    assert (await enforcer.get_account_status("bad")).is_suspended is True
