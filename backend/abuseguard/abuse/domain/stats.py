"""Weekly statistics derived from the violation history."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from abuseguard.abuse.domain.models import WeeklyStats
from abuseguard.abuse.domain.policy import PolicyConfig
from abuseguard.abuse.domain.violations import ViolationStore
from abuseguard.abuse.domain.week_clock import as_utc, week_key


class StatsAggregator:
    """Computes :class:`WeeklyStats` on demand; nothing is cached."""

    def __init__(self, store: ViolationStore, policy: PolicyConfig) -> None:
        self._store = store
        self._policy = policy

    @property
    def policy(self) -> PolicyConfig:
        return self._policy

    async def compute_stats(self, user_id: str, *, now: datetime | None = None) -> WeeklyStats:
        now = as_utc(now) if now else datetime.now(timezone.utc)
        current_week = week_key(now)
        since = now - timedelta(days=self._policy.retention_days)
        history = await self._store.list_for_user(user_id, since=since)

        stats = WeeklyStats(user_id=user_id, week_key=current_week, total_violations=len(history))
        for record in history:
            if stats.last_violation is None or record.timestamp > stats.last_violation:
                stats.last_violation = record.timestamp
            if record.week_key != current_week:
                continue
            stats.this_week_violations += 1
            stats.severity_breakdown[record.severity.value] += 1

        stats.penalty_level = self._policy.penalty_level(stats.this_week_violations)
        stats.should_notify_admin = self._policy.should_notify_admin(stats.this_week_violations)
        return stats
