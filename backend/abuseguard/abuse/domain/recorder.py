"""Entry point for detectors: persist a violation and apply the weekly policy."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Mapping, Sequence

from abuseguard.abuse.domain.dispatch import NotificationDispatcher, NotificationKind, build_warning_payload
from abuseguard.abuse.domain.evidence import Evidence, parse_evidence
from abuseguard.abuse.domain.models import (
    EscalationReason,
    Severity,
    ViolationRecord,
    ViolationType,
    WeeklyStats,
)
from abuseguard.abuse.domain.notifier import AdminNotifier
from abuseguard.abuse.domain.policy import PolicyConfig
from abuseguard.abuse.domain.stats import StatsAggregator
from abuseguard.abuse.domain.suspensions import SuspensionEnforcer
from abuseguard.abuse.domain.violations import ViolationStore
from abuseguard.abuse.domain.week_clock import as_utc, current_week_key, week_key, week_start
from abuseguard.obs import metrics

logger = logging.getLogger(__name__)


class ViolationRecorder:
    """Records violations and triggers warnings, admin review and suspensions.

    Persistence and stats errors propagate to the caller. Everything after the
    stats are computed is best effort: a failing side effect is logged and
    counted, and the remaining steps still run.
    """

    def __init__(
        self,
        *,
        store: ViolationStore,
        stats: StatsAggregator,
        notifier: AdminNotifier,
        enforcer: SuspensionEnforcer,
        dispatcher: NotificationDispatcher,
        policy: PolicyConfig,
        frontend_url: str,
    ) -> None:
        self._store = store
        self._stats = stats
        self._notifier = notifier
        self._enforcer = enforcer
        self._dispatcher = dispatcher
        self._policy = policy
        self._frontend_url = frontend_url

    async def record_violation(
        self,
        user_id: str,
        violation_type: ViolationType | str,
        severity: Severity | str,
        evidence: Evidence | Mapping[str, Any] | None,
        *,
        now: datetime | None = None,
    ) -> WeeklyStats:
        violation_type = ViolationType(violation_type)
        severity = Severity(severity)
        parsed = parse_evidence(violation_type, evidence)
        now = as_utc(now) if now else datetime.now(timezone.utc)

        record = ViolationRecord(
            violation_id=str(uuid.uuid4()),
            user_id=user_id,
            violation_type=violation_type,
            severity=severity,
            evidence=parsed,
            timestamp=now,
            week_key=week_key(now),
            expires_at=now + timedelta(days=self._policy.retention_days),
        )
        await self._store.append(record)
        metrics.inc_violation(violation_type.value, severity.value)
        logger.info(
            "violation recorded",
            extra={
                "user_id": user_id,
                "violation_type": violation_type.value,
                "severity": severity.value,
                "week_key": record.week_key,
            },
        )

        stats = await self._stats.compute_stats(user_id, now=now)
        count = stats.this_week_violations
        metrics.inc_penalty_level(stats.penalty_level.value)

        if count == self._policy.warning_email_at:
            await self._side_effect("warning_notification", user_id, lambda: self._send_warning(user_id, stats, now))
        if stats.should_notify_admin:
            await self._side_effect("admin_notification", user_id, lambda: self._notifier.notify(user_id, stats, now=now))
        if severity is Severity.CRITICAL:
            await self._side_effect(
                "critical_escalation",
                user_id,
                lambda: self._notifier.escalate(user_id, stats, EscalationReason.CRITICAL_VIOLATION, now=now),
            )
        if self._policy.should_auto_suspend(count):
            await self._side_effect("auto_suspension", user_id, lambda: self._enforcer.auto_suspend(user_id, stats, now=now))
        return stats

    async def get_weekly_violations(self, week: str | None = None, *, limit: int | None = None) -> Sequence[ViolationRecord]:
        return await self._store.list_for_week(week or current_week_key(), limit=limit)

    async def get_user_violation_history(self, user_id: str, *, limit: int = 50) -> Sequence[ViolationRecord]:
        return await self._store.list_for_user(user_id, limit=limit)

    async def _send_warning(self, user_id: str, stats: WeeklyStats, now: datetime) -> None:
        history = await self._store.list_for_user(user_id, since=week_start(now))
        recent = [record for record in history if record.week_key == stats.week_key]
        payload = build_warning_payload(
            violation_count=stats.this_week_violations,
            recent=recent,
            policy=self._policy,
            frontend_url=self._frontend_url,
        )
        await self._dispatcher.send(NotificationKind.WARNING, user_id, payload)
        metrics.inc_dispatch(NotificationKind.WARNING.value)

    async def _side_effect(self, effect: str, user_id: str, action: Callable[[], Awaitable[Any]]) -> None:
        try:
            await action()
        except Exception:  # noqa: BLE001 - side effects must not fail the recorded violation
            metrics.inc_side_effect_failure(effect)
            logger.exception("Abuse side effect failed", extra={"effect": effect, "user_id": user_id})
