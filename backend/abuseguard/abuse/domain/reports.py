"""Weekly abuse summary for the admin dashboard."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Any

from abuseguard.abuse.domain.models import empty_breakdown
from abuseguard.abuse.domain.policy import PolicyConfig
from abuseguard.abuse.domain.violations import ViolationStore
from abuseguard.abuse.domain.week_clock import current_week_key


@dataclass(slots=True)
class WeeklyReport:
    week_key: str
    total_violations: int = 0
    unique_users: int = 0
    severity_breakdown: dict[str, int] = field(default_factory=empty_breakdown)
    type_breakdown: dict[str, int] = field(default_factory=dict)
    users_over_threshold: list[dict[str, Any]] = field(default_factory=list)


async def build_weekly_report(
    store: ViolationStore,
    policy: PolicyConfig,
    *,
    week: str | None = None,
) -> WeeklyReport:
    week = week or current_week_key()
    records = await store.list_for_week(week)
    report = WeeklyReport(week_key=week, total_violations=len(records))
    per_user: Counter[str] = Counter()
    types: Counter[str] = Counter()
    for record in records:
        per_user[record.user_id] += 1
        types[record.violation_type.value] += 1
        report.severity_breakdown[record.severity.value] += 1
    report.unique_users = len(per_user)
    report.type_breakdown = dict(types)
    report.users_over_threshold = [
        {"user_id": user_id, "violations": count}
        for user_id, count in per_user.most_common()
        if count >= policy.auto_suspend_threshold
    ]
    return report
