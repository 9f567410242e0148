"""Redis-backed violation history.

Each violation is a JSON document whose key expires at the record's
retention deadline. Two sorted sets index it by user and by week; index
entries whose document has expired are pruned lazily on read.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Sequence

from redis.asyncio import Redis

from abuseguard.abuse.domain.evidence import evidence_to_mapping, parse_evidence
from abuseguard.abuse.domain.models import Severity, ViolationRecord, ViolationType
from abuseguard.abuse.domain.suspensions import to_millis
from abuseguard.abuse.domain.violations import ViolationStore
from abuseguard.infra.redis import RedisProxy


def _record_to_json(record: ViolationRecord) -> str:
    return json.dumps(
        {
            "violation_id": record.violation_id,
            "user_id": record.user_id,
            "violation_type": record.violation_type.value,
            "severity": record.severity.value,
            "evidence": evidence_to_mapping(record.evidence),
            "timestamp": record.timestamp.isoformat(),
            "week_key": record.week_key,
            "expires_at": record.expires_at.isoformat(),
        },
        separators=(",", ":"),
    )


def _json_to_record(raw: str) -> ViolationRecord:
    data: dict[str, Any] = json.loads(raw)
    violation_type = ViolationType(data["violation_type"])
    return ViolationRecord(
        violation_id=str(data["violation_id"]),
        user_id=str(data["user_id"]),
        violation_type=violation_type,
        severity=Severity(data["severity"]),
        evidence=parse_evidence(violation_type, data.get("evidence") or {}),
        timestamp=datetime.fromisoformat(data["timestamp"]),
        week_key=str(data["week_key"]),
        expires_at=datetime.fromisoformat(data["expires_at"]),
    )


class RedisViolationStore(ViolationStore):
    def __init__(self, redis: Redis | RedisProxy, *, prefix: str = "abuse:violation") -> None:
        self._redis = redis
        self._prefix = prefix

    async def append(self, record: ViolationRecord) -> None:
        expire_at = int(record.expires_at.timestamp())
        score = float(to_millis(record.timestamp))
        user_key = self._user_key(record.user_id)
        week_key = self._week_key(record.week_key)
        pipe = self._redis.pipeline(transaction=False)
        pipe.set(self._record_key(record.violation_id), _record_to_json(record), exat=expire_at)
        pipe.zadd(user_key, {record.violation_id: score})
        pipe.expireat(user_key, expire_at)
        pipe.zadd(week_key, {record.violation_id: score})
        pipe.expireat(week_key, expire_at)
        await pipe.execute()

    async def list_for_user(
        self,
        user_id: str,
        *,
        since: datetime | None = None,
        limit: int | None = None,
    ) -> Sequence[ViolationRecord]:
        key = self._user_key(user_id)
        low: float | str = float(to_millis(since)) if since is not None else "-inf"
        ids = await self._redis.zrevrangebyscore(key, "+inf", low)
        return await self._load(key, ids, limit)

    async def list_for_week(self, week_key: str, *, limit: int | None = None) -> Sequence[ViolationRecord]:
        key = self._week_key(week_key)
        ids = await self._redis.zrevrange(key, 0, -1)
        return await self._load(key, ids, limit)

    async def _load(self, index_key: str, ids: list[str], limit: int | None) -> list[ViolationRecord]:
        if not ids:
            return []
        payloads = await self._redis.mget([self._record_key(violation_id) for violation_id in ids])
        records: list[ViolationRecord] = []
        stale: list[str] = []
        for violation_id, payload in zip(ids, payloads):
            if payload is None:
                stale.append(violation_id)
                continue
            records.append(_json_to_record(payload))
        if stale:
            await self._redis.zrem(index_key, *stale)
        if limit is not None:
            return records[:limit]
        return records

    def _record_key(self, violation_id: str) -> str:
        return f"{self._prefix}:{violation_id}"

    def _user_key(self, user_id: str) -> str:
        return f"{self._prefix}s:user:{user_id}"

    def _week_key(self, week_key: str) -> str:
        return f"{self._prefix}s:week:{week_key}"
