from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Sequence

import pytest
from prometheus_client import REGISTRY

from abuseguard.abuse.domain import container
from abuseguard.abuse.domain.dispatch import NotificationKind
from abuseguard.abuse.domain.errors import InvalidEvidenceError
from abuseguard.abuse.domain.models import (
    EscalationReason,
    PenaltyLevel,
    Severity,
    ViolationRecord,
    ViolationType,
)
from abuseguard.abuse.domain.week_clock import week_key, week_start
from abuseguard.abuse.infra.violation_store import RedisViolationStore

SPAM = {"excerpt": "buy cheap pans", "post_id": "post-1"}


async def _outbound(fake_redis, kind: NotificationKind) -> list[dict[str, Any]]:
    entries = await fake_redis.xrange("abuse:outbound")
    return [fields for _entry_id, fields in entries if fields["kind"] == kind.value]


async def _record(count: int, *, user_id: str = "u1", severity: Severity = Severity.LOW, now: datetime | None = None):
    stats = None
    for _ in range(count):
        stats = await container.record_violation(user_id, ViolationType.SPAM, severity, SPAM, now=now)
    return stats


@pytest.mark.asyncio
async def test_n_violations_in_a_week_count_n() -> None:
    stats = await _record(7)
    assert stats.this_week_violations == 7
    assert stats.total_violations == 7
    assert stats.severity_breakdown == {"low": 7, "medium": 0, "high": 0, "critical": 0}
    assert stats.last_violation is not None


@pytest.mark.asyncio
async def test_four_low_violations_warn_without_admin_or_suspension(fake_redis, ledger) -> None:
    stats = await _record(4)
    assert stats.penalty_level is PenaltyLevel.WARNING
    assert stats.should_notify_admin is False
    assert ledger.notifications == {}
    assert ledger.history == []
    assert await container.is_user_suspended("u1") is False
    assert await _outbound(fake_redis, NotificationKind.WARNING) == []


@pytest.mark.asyncio
async def test_fifth_violation_sends_single_warning(fake_redis, ledger) -> None:
    stats = await _record(5)
    assert stats.penalty_level is PenaltyLevel.RESTRICTED
    warnings = await _outbound(fake_redis, NotificationKind.WARNING)
    assert len(warnings) == 1
    assert warnings[0]["user_id"] == "u1"

    await _record(4)
    assert len(await _outbound(fake_redis, NotificationKind.WARNING)) == 1
    assert len(ledger.notifications) == 1
    notification = next(iter(ledger.notifications.values()))
    assert notification.violation_count == 5
    assert notification.priority == "high"
    assert len(notification.violations) == 5
    assert ledger.history == []


@pytest.mark.asyncio
async def test_tenth_violation_suspends_once(fake_redis, ledger) -> None:
    stats = await _record(10)
    assert stats.penalty_level is PenaltyLevel.SUSPENDED
    assert stats.should_notify_admin is False

    assert len(ledger.history) == 1
    history = ledger.history[0]
    assert history.tier == 1
    assert history.duration_hours == 1
    assert history.appeal_allowed is True
    assert history.suspended_until - history.suspended_at == timedelta(hours=1)
    assert history.stats["this_week_violations"] == 10

    active = await container.get_enforcer().get_active_suspension("u1")
    assert active is not None
    assert active.suspended_until == history.suspended_until

    suspensions = await _outbound(fake_redis, NotificationKind.SUSPENSION)
    assert len(suspensions) == 1
    escalations = [item for item in ledger.escalations if item.reason is EscalationReason.AUTO_SUSPENSION]
    assert len(escalations) == 1

    account = await container.get_enforcer().get_account_status("u1")
    assert account.is_suspended is True
    assert account.status == "suspended"
    assert account.suspended_until == history.suspended_until


@pytest.mark.asyncio
async def test_violations_while_suspended_do_not_duplicate_history(fake_redis, ledger) -> None:
    await _record(12)
    assert len(ledger.history) == 1
    assert len(await _outbound(fake_redis, NotificationKind.SUSPENSION)) == 1


@pytest.mark.asyncio
async def test_critical_violation_escalates(ledger) -> None:
    stats = await container.record_violation(
        "u1",
        ViolationType.INJECTION,
        Severity.CRITICAL,
        {"field": "title", "pattern": "DROP TABLE"},
    )
    assert stats.this_week_violations == 1
    assert [item.reason for item in ledger.escalations] == [EscalationReason.CRITICAL_VIOLATION]
    assert ledger.escalations[0].stats["severity_breakdown"]["critical"] == 1


@pytest.mark.asyncio
async def test_invalid_evidence_is_rejected_before_persisting(fake_redis) -> None:
    with pytest.raises(InvalidEvidenceError):
        await container.record_violation("u1", ViolationType.FAKE_RATING, Severity.LOW, {"rating": 1})
    assert await container.get_violation_store().list_for_user("u1") == []


@pytest.mark.asyncio
async def test_week_boundary_resets_weekly_count(fake_redis) -> None:
    monday = week_start(datetime.now(timezone.utc))
    sunday_night = monday - timedelta(seconds=1)
    await _record(3, now=sunday_night)

    stats = await container.get_stats_aggregator().compute_stats("u1", now=monday)
    assert stats.week_key == week_key(monday)
    assert stats.this_week_violations == 0
    assert stats.total_violations == 3

    stats = await container.record_violation("u1", ViolationType.SPAM, Severity.LOW, SPAM, now=monday)
    assert stats.this_week_violations == 1
    assert stats.total_violations == 4
    assert stats.penalty_level is PenaltyLevel.NONE


@pytest.mark.asyncio
async def test_concurrent_writers_create_one_admin_notification(ledger) -> None:
    await _record(3)
    await asyncio.gather(
        *(
            container.record_violation("u1", ViolationType.SPAM, Severity.MEDIUM, SPAM)
            for _ in range(6)
        )
    )
    assert len(ledger.notifications) == 1
    notification = next(iter(ledger.notifications.values()))
    assert notification.user_id == "u1"
    assert notification.week_key == week_key(datetime.now(timezone.utc))


def _failures(effect: str) -> float:
    return REGISTRY.get_sample_value("abuse_side_effect_failures_total", {"effect": effect}) or 0.0


class _FailingDispatcher:
    async def send(self, kind, user_id, payload) -> None:
        raise RuntimeError("mail relay down")


@pytest.mark.asyncio
async def test_side_effect_failures_do_not_block_suspension(ledger) -> None:
    container.configure(dispatcher=_FailingDispatcher())
    before = _failures("warning_notification")

    stats = await _record(10)

    assert stats.this_week_violations == 10
    assert len(ledger.history) == 1
    assert await container.is_user_suspended("u1") is True
    assert _failures("warning_notification") == before + 1


class _BrokenStore(RedisViolationStore):
    async def append(self, record: ViolationRecord) -> None:
        raise ConnectionError("redis unavailable")


class _UnreadableStore(RedisViolationStore):
    async def list_for_user(self, user_id: str, **kwargs) -> Sequence[ViolationRecord]:
        raise ConnectionError("redis unavailable")


@pytest.mark.asyncio
async def test_persistence_failure_propagates(fake_redis) -> None:
    container.configure(store=_BrokenStore(fake_redis))
    with pytest.raises(ConnectionError):
        await container.record_violation("u1", ViolationType.SPAM, Severity.LOW, SPAM)


@pytest.mark.asyncio
async def test_stats_failure_propagates(fake_redis) -> None:
    container.configure(store=_UnreadableStore(fake_redis))
    with pytest.raises(ConnectionError):
        await container.record_violation("u1", ViolationType.SPAM, Severity.LOW, SPAM)


@pytest.mark.asyncio
async def test_history_queries(fake_redis) -> None:
    await _record(3)
    await _record(2, user_id="u2")
    recorder = container.get_recorder()
    assert len(await recorder.get_user_violation_history("u1")) == 3
    assert len(await recorder.get_user_violation_history("u1", limit=2)) == 2
    weekly = await recorder.get_weekly_violations()
    assert {item.user_id for item in weekly} == {"u1", "u2"}
    assert len(weekly) == 5
