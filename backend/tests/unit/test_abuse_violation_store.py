from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from abuseguard.abuse.domain.evidence import SpamEvidence, XssEvidence
from abuseguard.abuse.domain.models import Severity, ViolationRecord, ViolationType
from abuseguard.abuse.domain.violations import InMemoryViolationStore
from abuseguard.abuse.domain.week_clock import week_key
from abuseguard.abuse.infra.violation_store import RedisViolationStore


def _record(violation_id: str, user_id: str, ts: datetime, *, severity: Severity = Severity.LOW) -> ViolationRecord:
    return ViolationRecord(
        violation_id=violation_id,
        user_id=user_id,
        violation_type=ViolationType.SPAM,
        severity=severity,
        evidence=SpamEvidence(excerpt="buy now", post_id="p-" + violation_id),
        timestamp=ts,
        week_key=week_key(ts),
        expires_at=ts + timedelta(days=30),
    )


@pytest.mark.asyncio
async def test_append_and_list_for_user_newest_first(fake_redis) -> None:
    store = RedisViolationStore(fake_redis)
    now = datetime.now(timezone.utc)
    for offset in range(3):
        await store.append(_record(f"v{offset}", "u1", now - timedelta(minutes=10 - offset)))
    await store.append(_record("other", "u2", now))

    records = await store.list_for_user("u1")
    assert [item.violation_id for item in records] == ["v2", "v1", "v0"]
    assert records[0].evidence == SpamEvidence(excerpt="buy now", post_id="p-v2")
    assert records[0].timestamp == now - timedelta(minutes=8)

    limited = await store.list_for_user("u1", limit=2)
    assert [item.violation_id for item in limited] == ["v2", "v1"]

    recent = await store.list_for_user("u1", since=now - timedelta(minutes=9))
    assert [item.violation_id for item in recent] == ["v2", "v1"]


@pytest.mark.asyncio
async def test_record_key_expires_at_retention_deadline(fake_redis) -> None:
    store = RedisViolationStore(fake_redis)
    now = datetime.now(timezone.utc)
    await store.append(_record("v1", "u1", now))
    ttl = await fake_redis.ttl("abuse:violation:v1")
    assert 30 * 86400 - 5 <= ttl <= 30 * 86400


@pytest.mark.asyncio
async def test_list_for_week_filters_by_week_key(fake_redis) -> None:
    store = RedisViolationStore(fake_redis)
    now = datetime.now(timezone.utc)
    last_week = now - timedelta(days=7)
    await store.append(_record("current", "u1", now))
    await store.append(_record("previous", "u2", last_week))

    current = await store.list_for_week(week_key(now))
    assert [item.violation_id for item in current] == ["current"]
    previous = await store.list_for_week(week_key(last_week))
    assert [item.violation_id for item in previous] == ["previous"]


@pytest.mark.asyncio
async def test_expired_documents_are_pruned_from_indexes(fake_redis) -> None:
    store = RedisViolationStore(fake_redis)
    now = datetime.now(timezone.utc)
    await store.append(_record("gone", "u1", now - timedelta(minutes=1)))
    await store.append(
        ViolationRecord(
            violation_id="kept",
            user_id="u1",
            violation_type=ViolationType.XSS,
            severity=Severity.HIGH,
            evidence=XssEvidence(field="bio", excerpt="<script>"),
            timestamp=now,
            week_key=week_key(now),
            expires_at=now + timedelta(days=30),
        )
    )
    await fake_redis.delete("abuse:violation:gone")

    records = await store.list_for_user("u1")
    assert [item.violation_id for item in records] == ["kept"]
    assert await fake_redis.zscore("abuse:violations:user:u1", "gone") is None


@pytest.mark.asyncio
async def test_in_memory_store_hides_expired_records() -> None:
    store = InMemoryViolationStore()
    now = datetime.now(timezone.utc)
    await store.append(_record("fresh", "u1", now))
    await store.append(_record("stale", "u1", now - timedelta(days=31)))

    records = await store.list_for_user("u1", since=now - timedelta(days=40))
    assert [item.violation_id for item in records] == ["fresh"]
    assert [item.violation_id for item in await store.list_for_week(week_key(now))] == ["fresh"]
