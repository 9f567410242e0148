"""Redis realisation of suspension markers, their change feed and the account projection."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Mapping, Sequence

from redis.asyncio import Redis
from redis.exceptions import ResponseError, WatchError

from abuseguard.abuse.domain.models import (
    AccountStatus,
    ActiveSuspension,
    ReversalCause,
    ReversalEvent,
    SuspendedBy,
)
from abuseguard.abuse.domain.suspensions import (
    AccountStatusStore,
    SuspensionMarkers,
    from_millis,
    to_millis,
)
from abuseguard.infra.redis import RedisProxy
from abuseguard.obs import metrics

logger = logging.getLogger(__name__)

CHANGE_STREAM = "abuse:suspension:changes"
CONSUMER_GROUP = "abuse-reactor"
DEAD_LETTER_STREAM = "abuse:suspension:dead"


def _marker_to_json(suspension: ActiveSuspension) -> str:
    return json.dumps(
        {
            "user_id": suspension.user_id,
            "suspended_at": suspension.suspended_at.isoformat(),
            "suspended_until": suspension.suspended_until.isoformat(),
            "suspended_until_ms": to_millis(suspension.suspended_until),
            "tier": suspension.tier,
            "reason": suspension.reason,
            "suspended_by": suspension.suspended_by.value,
        },
        separators=(",", ":"),
    )


def _json_to_marker(raw: str) -> ActiveSuspension:
    data: dict[str, Any] = json.loads(raw)
    return ActiveSuspension(
        user_id=str(data["user_id"]),
        suspended_at=datetime.fromisoformat(data["suspended_at"]),
        suspended_until=datetime.fromisoformat(data["suspended_until"]),
        tier=int(data["tier"]),
        reason=str(data["reason"]),
        suspended_by=SuspendedBy(data.get("suspended_by", SuspendedBy.SYSTEM.value)),
    )


def _decode(payload: Mapping[Any, Any]) -> dict[str, str]:
    decoded: dict[str, str] = {}

    def _to_str(value: Any) -> str:
        return value if isinstance(value, str) else value.decode("utf-8")

    for key, value in payload.items():
        decoded[_to_str(key)] = _to_str(value)
    return decoded


class RedisSuspensionMarkers(SuspensionMarkers):
    """Markers expire via ``PXAT``; a sorted-set index turns expiries into stream events."""

    def __init__(
        self,
        redis: Redis | RedisProxy,
        *,
        marker_prefix: str = "abuse:suspension:active",
        index_key: str = "abuse:suspension:expiry",
        stream_key: str = CHANGE_STREAM,
        group: str = CONSUMER_GROUP,
        stream_maxlen: int = 100_000,
        dead_letter_key: str = DEAD_LETTER_STREAM,
    ) -> None:
        self._redis = redis
        self._marker_prefix = marker_prefix
        self._index_key = index_key
        self._stream_key = stream_key
        self._group = group
        self._stream_maxlen = stream_maxlen
        self._dead_letter_key = dead_letter_key
        self._attempts_key = f"{stream_key}:attempts"

    async def schedule(self, suspension: ActiveSuspension) -> bool:
        until_ms = to_millis(suspension.suspended_until)
        member = self._member(suspension.user_id, until_ms)
        # index first; the relay ignores entries until they are due
        await self._redis.zadd(self._index_key, {member: float(until_ms)})
        created = await self._redis.set(
            self._marker_key(suspension.user_id),
            _marker_to_json(suspension),
            nx=True,
            pxat=until_ms,
        )
        if created:
            return True
        existing = await self.get(suspension.user_id)
        if existing is None or to_millis(existing.suspended_until) != until_ms:
            await self._redis.zrem(self._index_key, member)
        return False

    async def cancel(
        self,
        user_id: str,
        *,
        cause: ReversalCause = ReversalCause.REMOVED,
        reason: str | None = None,
    ) -> ActiveSuspension | None:
        current = await self.get(user_id)
        if current is None:
            return None
        deleted = await self._redis.delete(self._marker_key(user_id))
        if not deleted:
            return None
        until_ms = to_millis(current.suspended_until)
        await self._publish(user_id, until_ms, cause, reason=reason)
        await self._redis.zrem(self._index_key, self._member(user_id, until_ms))
        return current

    async def get(self, user_id: str) -> ActiveSuspension | None:
        raw = await self._redis.get(self._marker_key(user_id))
        if raw is None:
            return None
        return _json_to_marker(raw)

    async def relay_due(self, *, now: datetime | None = None, limit: int = 100) -> int:
        """Publish ``expired`` events for due index entries whose marker is gone."""

        now_ms = to_millis(now or datetime.now(timezone.utc))
        members = await self._redis.zrangebyscore(self._index_key, "-inf", now_ms, start=0, num=limit)
        relayed = 0
        for member in members:
            user_id, _, raw_until = member.rpartition("|")
            try:
                until_ms = int(raw_until)
            except ValueError:
                logger.warning("dropping malformed expiry index entry", extra={"member": member})
                await self._redis.zrem(self._index_key, member)
                continue
            live = await self.get(user_id)
            if live is not None and to_millis(live.suspended_until) == until_ms:
                # storage has not expired the marker yet
                continue
            await self._publish(user_id, until_ms, ReversalCause.EXPIRED)
            await self._redis.zrem(self._index_key, member)
            metrics.inc_relayed_expiry()
            relayed += 1
        if relayed:
            logger.info("relayed suspension expiries", extra={"count": relayed})
        return relayed

    async def ensure_group(self) -> None:
        try:
            await self._redis.xgroup_create(self._stream_key, self._group, id="0", mkstream=True)
        except ResponseError as exc:
            if "BUSYGROUP" not in str(exc):
                raise

    async def read_events(
        self,
        consumer: str,
        *,
        count: int = 50,
        block_ms: int = 0,
        pending: bool = False,
    ) -> Sequence[ReversalEvent]:
        messages = await self._redis.xreadgroup(
            self._group,
            consumer,
            {self._stream_key: "0" if pending else ">"},
            count=count,
            block=block_ms or None,
        )
        events: list[ReversalEvent] = []
        for _stream, entries in messages or []:
            for entry_id, payload in entries:
                if not payload:
                    continue
                body = _decode(payload)
                try:
                    events.append(
                        ReversalEvent(
                            user_id=body["user_id"],
                            suspended_until=from_millis(body["suspended_until_ms"]),
                            cause=ReversalCause(body.get("cause", ReversalCause.EXPIRED.value)),
                            event_id=entry_id,
                            entity_type=body.get("entity_type", "ActiveSuspension"),
                            reason=body.get("reason") or None,
                        )
                    )
                except (KeyError, ValueError):
                    logger.warning("acknowledging malformed suspension event", extra={"entry_id": entry_id})
                    await self.ack(entry_id)
        return events

    async def ack(self, event_id: str) -> None:
        pipe = self._redis.pipeline(transaction=False)
        pipe.xack(self._stream_key, self._group, event_id)
        pipe.hdel(self._attempts_key, event_id)
        await pipe.execute()

    async def record_failure(self, event_id: str) -> int:
        return int(await self._redis.hincrby(self._attempts_key, event_id, 1))

    async def dead_letter(self, event: ReversalEvent, *, error: str) -> None:
        if event.event_id is None:
            return
        fields = {
            "entity_type": event.entity_type,
            "user_id": event.user_id,
            "suspended_until_ms": str(to_millis(event.suspended_until)),
            "cause": ReversalCause(event.cause).value,
            "source_id": event.event_id,
            "error": error[:500],
            "dead_at": datetime.now(timezone.utc).isoformat(),
        }
        if event.reason:
            fields["reason"] = event.reason
        await self._redis.xadd(self._dead_letter_key, fields, maxlen=self._stream_maxlen, approximate=True)
        await self.ack(event.event_id)
        logger.error(
            "suspension event dead-lettered",
            extra={"user_id": event.user_id, "event_id": event.event_id, "error": fields["error"]},
        )

    async def _publish(self, user_id: str, until_ms: int, cause: ReversalCause, *, reason: str | None = None) -> str:
        fields = {
            "entity_type": "ActiveSuspension",
            "user_id": user_id,
            "suspended_until_ms": str(until_ms),
            "cause": cause.value,
        }
        if reason:
            fields["reason"] = reason
        return await self._redis.xadd(self._stream_key, fields, maxlen=self._stream_maxlen, approximate=True)

    def _marker_key(self, user_id: str) -> str:
        return f"{self._marker_prefix}:{user_id}"

    @staticmethod
    def _member(user_id: str, until_ms: int) -> str:
        return f"{user_id}|{until_ms}"


def _hash_to_status(user_id: str, data: Mapping[str, str]) -> AccountStatus:
    def _ts(name: str) -> datetime | None:
        value = data.get(name)
        return datetime.fromisoformat(value) if value else None

    return AccountStatus(
        user_id=user_id,
        status=data.get("status", "active"),
        is_suspended=data.get("is_suspended") == "1",
        suspended_at=_ts("suspended_at"),
        suspended_until=_ts("suspended_until"),
        suspension_reason=data.get("suspension_reason") or None,
        reinstated_at=_ts("reinstated_at"),
        reinstated_reason=data.get("reinstated_reason") or None,
    )


class RedisAccountStatusStore(AccountStatusStore):
    """Account status projection kept in one hash per user."""

    def __init__(self, redis: Redis | RedisProxy, *, prefix: str = "abuse:account") -> None:
        self._redis = redis
        self._prefix = prefix

    async def mark_suspended(self, suspension: ActiveSuspension) -> AccountStatus:
        key = self._key(suspension.user_id)
        mapping = {
            "status": "suspended",
            "is_suspended": "1",
            "suspended_at": suspension.suspended_at.isoformat(),
            "suspended_until": suspension.suspended_until.isoformat(),
            "suspended_until_ms": str(to_millis(suspension.suspended_until)),
            "suspension_reason": suspension.reason,
        }
        pipe = self._redis.pipeline(transaction=True)
        pipe.hset(key, mapping=mapping)
        pipe.hdel(key, "reinstated_at", "reinstated_reason")
        await pipe.execute()
        return _hash_to_status(suspension.user_id, mapping)

    async def reinstate_if_current(
        self,
        user_id: str,
        suspended_until: datetime,
        *,
        reason: str,
        now: datetime | None = None,
    ) -> bool:
        key = self._key(user_id)
        event_ms = to_millis(suspended_until)
        reinstated_at = (now or datetime.now(timezone.utc)).isoformat()
        async with self._redis.pipeline(transaction=True) as pipe:
            while True:
                try:
                    await pipe.watch(key)
                    current = await pipe.hgetall(key)
                    if not current or current.get("is_suspended") != "1":
                        return False
                    if int(current.get("suspended_until_ms") or 0) > event_ms:
                        return False
                    pipe.multi()
                    pipe.hset(
                        key,
                        mapping={
                            "status": "active",
                            "is_suspended": "0",
                            "reinstated_at": reinstated_at,
                            "reinstated_reason": reason,
                        },
                    )
                    pipe.hdel(key, "suspended_at", "suspended_until", "suspended_until_ms", "suspension_reason")
                    await pipe.execute()
                    return True
                except WatchError:
                    continue

    async def get(self, user_id: str) -> AccountStatus | None:
        data = await self._redis.hgetall(self._key(user_id))
        if not data:
            return None
        return _hash_to_status(user_id, data)

    def _key(self, user_id: str) -> str:
        return f"{self._prefix}:{user_id}"
