"""Dispatcher that hands user notifications to a Redis stream for the mail worker."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

from redis.asyncio import Redis

from abuseguard.abuse.domain.dispatch import NotificationDispatcher, NotificationKind
from abuseguard.infra.redis import RedisProxy

logger = logging.getLogger(__name__)


class RedisStreamDispatcher(NotificationDispatcher):
    def __init__(
        self,
        redis: Redis | RedisProxy,
        *,
        stream_key: str = "abuse:outbound",
        maxlen: int = 10_000,
    ) -> None:
        self._redis = redis
        self._stream_key = stream_key
        self._maxlen = maxlen

    async def send(self, kind: NotificationKind, user_id: str, payload: dict[str, Any]) -> None:
        body = {
            "kind": NotificationKind(kind).value,
            "user_id": user_id,
            "payload": json.dumps(payload, default=str),
            "queued_at": datetime.now(timezone.utc).isoformat(),
        }
        entry_id = await self._redis.xadd(self._stream_key, body, maxlen=self._maxlen, approximate=True)
        logger.debug("queued abuse notification", extra={"kind": body["kind"], "user_id": user_id, "entry_id": entry_id})
