"""Admin review queue: weekly notifications and urgent escalations."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Sequence

from abuseguard.abuse.domain.errors import InvalidTransitionError, NotificationNotFoundError
from abuseguard.abuse.domain.ledger import AbuseLedger
from abuseguard.abuse.domain.models import (
    AdminEscalation,
    AdminNotification,
    EscalationReason,
    NotificationStatus,
    WeeklyStats,
)
from abuseguard.abuse.domain.policy import PolicyConfig
from abuseguard.abuse.domain.violations import ViolationStore
from abuseguard.abuse.domain.week_clock import as_utc, week_start
from abuseguard.obs import metrics

logger = logging.getLogger(__name__)

_ALLOWED_TRANSITIONS: dict[NotificationStatus, frozenset[NotificationStatus]] = {
    NotificationStatus.PENDING: frozenset({NotificationStatus.REVIEWED, NotificationStatus.RESOLVED}),
    NotificationStatus.REVIEWED: frozenset({NotificationStatus.RESOLVED}),
    NotificationStatus.RESOLVED: frozenset(),
}


class AdminNotifier:
    def __init__(self, *, store: ViolationStore, ledger: AbuseLedger, policy: PolicyConfig) -> None:
        self._store = store
        self._ledger = ledger
        self._policy = policy

    async def notify(
        self,
        user_id: str,
        stats: WeeklyStats,
        *,
        now: datetime | None = None,
    ) -> AdminNotification | None:
        """Open the weekly review item for ``user_id``; at most one per user and week."""

        now = as_utc(now) if now else datetime.now(timezone.utc)
        history = await self._store.list_for_user(user_id, since=week_start(now))
        this_week = [record for record in history if record.week_key == stats.week_key]
        priority = "critical" if stats.this_week_violations >= self._policy.auto_suspend_threshold else "high"
        notification = AdminNotification(
            notification_id=str(uuid.uuid4()),
            user_id=user_id,
            week_key=stats.week_key,
            violation_count=stats.this_week_violations,
            severity_breakdown=dict(stats.severity_breakdown),
            violations=[
                {
                    "violation_type": record.violation_type.value,
                    "severity": record.severity.value,
                    "timestamp": record.timestamp.isoformat(),
                }
                for record in this_week
            ],
            priority=priority,
            created_at=now,
        )
        created = await self._ledger.create_notification_if_absent(notification)
        if created is None:
            metrics.inc_admin_notification("duplicate")
            logger.debug(
                "admin notification already open",
                extra={"user_id": user_id, "week_key": stats.week_key},
            )
            return None
        metrics.inc_admin_notification("created")
        logger.info(
            "admin notification created",
            extra={
                "user_id": user_id,
                "week_key": stats.week_key,
                "violation_count": stats.this_week_violations,
                "priority": priority,
            },
        )
        return created

    async def escalate(
        self,
        user_id: str,
        stats: WeeklyStats,
        reason: EscalationReason,
        *,
        now: datetime | None = None,
    ) -> AdminEscalation:
        escalation = AdminEscalation(
            escalation_id=str(uuid.uuid4()),
            user_id=user_id,
            reason=EscalationReason(reason),
            stats=stats.snapshot(),
            created_at=as_utc(now) if now else datetime.now(timezone.utc),
        )
        stored = await self._ledger.add_escalation(escalation)
        metrics.inc_escalation(stored.reason.value)
        logger.warning(
            "abuse escalation raised",
            extra={"user_id": user_id, "reason": stored.reason.value, "week_key": stats.week_key},
        )
        return stored

    async def list_pending(self, *, limit: int = 50) -> Sequence[AdminNotification]:
        return await self._ledger.list_pending_notifications(limit=limit)

    async def transition(
        self,
        notification_id: str,
        status: NotificationStatus,
        *,
        actor_id: str,
    ) -> AdminNotification:
        target = NotificationStatus(status)
        current = await self._ledger.get_notification(notification_id)
        if current is None:
            raise NotificationNotFoundError(notification_id)
        if target not in _ALLOWED_TRANSITIONS[current.status]:
            raise InvalidTransitionError(current.status.value, target.value)
        updated = await self._ledger.update_notification_status(
            notification_id,
            status=target,
            reviewed_by=actor_id,
            updated_at=datetime.now(timezone.utc),
        )
        if updated is None:
            raise NotificationNotFoundError(notification_id)
        logger.info(
            "admin notification updated",
            extra={"notification_id": notification_id, "status": target.value, "actor_id": actor_id},
        )
        return updated
