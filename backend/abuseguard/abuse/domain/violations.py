"""Violation store port plus an in-memory implementation for tests."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Protocol, Sequence

from abuseguard.abuse.domain.models import ViolationRecord


class ViolationStore(Protocol):
    async def append(self, record: ViolationRecord) -> None:
        ...

    async def list_for_user(
        self,
        user_id: str,
        *,
        since: datetime | None = None,
        limit: int | None = None,
    ) -> Sequence[ViolationRecord]:
        """Newest first, excluding records past their retention expiry."""
        ...

    async def list_for_week(self, week_key: str, *, limit: int | None = None) -> Sequence[ViolationRecord]:
        ...


class InMemoryViolationStore(ViolationStore):
    """Simple store implementation for development and tests."""

    def __init__(self) -> None:
        self._items: list[ViolationRecord] = []

    async def append(self, record: ViolationRecord) -> None:
        self._items.append(record)

    async def list_for_user(
        self,
        user_id: str,
        *,
        since: datetime | None = None,
        limit: int | None = None,
    ) -> Sequence[ViolationRecord]:
        now = datetime.now(timezone.utc)
        items = [
            item
            for item in self._items
            if item.user_id == user_id and item.expires_at > now and (since is None or item.timestamp >= since)
        ]
        items.sort(key=lambda item: item.timestamp, reverse=True)
        return items[:limit] if limit is not None else items

    async def list_for_week(self, week_key: str, *, limit: int | None = None) -> Sequence[ViolationRecord]:
        now = datetime.now(timezone.utc)
        items = [item for item in self._items if item.week_key == week_key and item.expires_at > now]
        items.sort(key=lambda item: item.timestamp, reverse=True)
        return items[:limit] if limit is not None else items
