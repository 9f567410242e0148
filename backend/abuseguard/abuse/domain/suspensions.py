"""Time-bounded account suspensions.

A suspension is a marker with a storage-level expiry equal to
``suspended_until``. Its creation is the gate: only the writer that creates the
marker records history and notifies. Reinstatement never happens here; the
expiry reactor consumes deletion events for markers (TTL or early removal) and
flips the account projection back to active.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Protocol, Sequence

from abuseguard.abuse.domain.dispatch import (
    NotificationDispatcher,
    NotificationKind,
    build_suspension_payload,
)
from abuseguard.abuse.domain.ledger import AbuseLedger
from abuseguard.abuse.domain.models import (
    AccountStatus,
    ActiveSuspension,
    EscalationReason,
    ReversalCause,
    ReversalEvent,
    SuspendedBy,
    SuspensionHistory,
    WeeklyStats,
)
from abuseguard.abuse.domain.notifier import AdminNotifier
from abuseguard.abuse.domain.policy import PolicyConfig
from abuseguard.abuse.domain.violations import ViolationStore
from abuseguard.abuse.domain.week_clock import as_utc, week_key, week_start
from abuseguard.obs import metrics

logger = logging.getLogger(__name__)

ROLLBACK_REASON = "Suspension rolled back after a failed write"


def truncate_to_millis(ts: datetime) -> datetime:
    return ts.replace(microsecond=ts.microsecond - ts.microsecond % 1000)


def to_millis(ts: datetime) -> int:
    return int(round(as_utc(ts).timestamp() * 1000))


def from_millis(value: int | str) -> datetime:
    return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)


class SuspensionMarkers(Protocol):
    """Delayed-reversal port: markers that expire on their own and announce it."""

    async def schedule(self, suspension: ActiveSuspension) -> bool:
        """Create the marker unless one exists; True when this call created it."""
        ...

    async def cancel(
        self,
        user_id: str,
        *,
        cause: ReversalCause = ReversalCause.REMOVED,
        reason: str | None = None,
    ) -> ActiveSuspension | None:
        ...

    async def get(self, user_id: str) -> ActiveSuspension | None:
        ...

    async def relay_due(self, *, now: datetime | None = None, limit: int = 100) -> int:
        ...

    async def ensure_group(self) -> None:
        ...

    async def read_events(
        self,
        consumer: str,
        *,
        count: int = 50,
        block_ms: int = 0,
        pending: bool = False,
    ) -> Sequence[ReversalEvent]:
        """Entries delivered to ``consumer``; ``pending`` re-reads unacknowledged ones."""
        ...

    async def ack(self, event_id: str) -> None:
        ...

    async def record_failure(self, event_id: str) -> int:
        """Count a failed handling attempt; returns the attempts so far."""
        ...

    async def dead_letter(self, event: ReversalEvent, *, error: str) -> None:
        """Park an event that keeps failing and acknowledge it."""
        ...


class AccountStatusStore(Protocol):
    async def mark_suspended(self, suspension: ActiveSuspension) -> AccountStatus:
        ...

    async def reinstate_if_current(
        self,
        user_id: str,
        suspended_until: datetime,
        *,
        reason: str,
        now: datetime | None = None,
    ) -> bool:
        """Compare-and-set back to active when the stored suspension is not newer."""
        ...

    async def get(self, user_id: str) -> AccountStatus | None:
        ...


class SuspensionEnforcer:
    def __init__(
        self,
        *,
        markers: SuspensionMarkers,
        accounts: AccountStatusStore,
        ledger: AbuseLedger,
        notifier: AdminNotifier,
        dispatcher: NotificationDispatcher,
        store: ViolationStore,
        policy: PolicyConfig,
        frontend_url: str,
    ) -> None:
        self._markers = markers
        self._accounts = accounts
        self._ledger = ledger
        self._notifier = notifier
        self._dispatcher = dispatcher
        self._store = store
        self._policy = policy
        self._frontend_url = frontend_url

    async def auto_suspend(
        self,
        user_id: str,
        stats: WeeklyStats,
        *,
        now: datetime | None = None,
    ) -> SuspensionHistory | None:
        count = stats.this_week_violations
        decision = self._policy.resolve_tier(count)
        if not decision.is_action:
            metrics.inc_suspension(0, "no_tier")
            logger.info("auto-suspension skipped; no tier applies", extra={"user_id": user_id, "count": count})
            return None

        suspended_at = truncate_to_millis(as_utc(now) if now else datetime.now(timezone.utc))
        suspended_until = suspended_at + timedelta(hours=decision.duration_hours)
        reason = f"Auto-suspended: {count} violations this week (tier {decision.tier})"
        suspension = ActiveSuspension(
            user_id=user_id,
            suspended_at=suspended_at,
            suspended_until=suspended_until,
            tier=decision.tier,
            reason=reason,
        )
        if not await self._markers.schedule(suspension):
            metrics.inc_suspension(decision.tier, "duplicate")
            logger.info("auto-suspension skipped; already suspended", extra={"user_id": user_id})
            return None

        try:
            await self._accounts.mark_suspended(suspension)
            history = await self._ledger.add_history(
                SuspensionHistory(
                    suspension_id=str(uuid.uuid4()),
                    user_id=user_id,
                    suspended_at=suspended_at,
                    suspended_until=suspended_until,
                    tier=decision.tier,
                    duration_hours=decision.duration_hours,
                    appeal_allowed=decision.appeal_allowed,
                    reason=reason,
                    suspended_by=SuspendedBy.SYSTEM,
                    week_key=week_key(suspended_at),
                    stats=stats.snapshot(),
                )
            )
        except Exception:
            # a marker without history would block every retry
            await self._markers.cancel(user_id, cause=ReversalCause.REMOVED, reason=ROLLBACK_REASON)
            metrics.inc_suspension(decision.tier, "rolled_back")
            logger.warning("auto-suspension rolled back", extra={"user_id": user_id, "tier": decision.tier})
            raise
        metrics.inc_suspension(decision.tier, "created")
        logger.warning(
            "user auto-suspended",
            extra={
                "user_id": user_id,
                "tier": decision.tier,
                "duration_hours": decision.duration_hours,
                "suspended_until": suspended_until.isoformat(),
                "count": count,
            },
        )

        try:
            history_records = await self._store.list_for_user(user_id, since=week_start(suspended_at))
            recent = [record for record in history_records if record.week_key == stats.week_key]
            payload = build_suspension_payload(
                decision=decision,
                suspended_until=suspended_until,
                violation_count=count,
                recent=recent,
                frontend_url=self._frontend_url,
            )
            await self._dispatcher.send(NotificationKind.SUSPENSION, user_id, payload)
            metrics.inc_dispatch(NotificationKind.SUSPENSION.value)
        except Exception:  # noqa: BLE001 - notifications are best effort
            metrics.inc_side_effect_failure("suspension_notification")
            logger.exception("Failed to dispatch suspension notification", extra={"user_id": user_id})

        try:
            await self._notifier.escalate(user_id, stats, EscalationReason.AUTO_SUSPENSION, now=suspended_at)
        except Exception:  # noqa: BLE001 - escalation must not undo the suspension
            metrics.inc_side_effect_failure("auto_suspension_escalation")
            logger.exception("Failed to escalate auto-suspension", extra={"user_id": user_id})

        return history

    async def is_user_suspended(self, user_id: str) -> bool:
        return await self._markers.get(user_id) is not None

    async def get_active_suspension(self, user_id: str) -> ActiveSuspension | None:
        return await self._markers.get(user_id)

    async def reinstate_early(self, user_id: str, *, actor_id: str, reason: str) -> bool:
        """Lift a live suspension ahead of its expiry (admin unban, approved appeal)."""

        removed = await self._markers.cancel(user_id, cause=ReversalCause.REMOVED, reason=reason)
        if removed is None:
            logger.info("early reinstatement skipped; no active suspension", extra={"user_id": user_id})
            return False
        logger.warning(
            "suspension lifted early",
            extra={
                "user_id": user_id,
                "actor_id": actor_id,
                "reason": reason,
                "suspended_until": removed.suspended_until.isoformat(),
            },
        )
        return True

    async def get_account_status(self, user_id: str) -> AccountStatus:
        status = await self._accounts.get(user_id)
        return status or AccountStatus(user_id=user_id)

    async def list_history(self, user_id: str, *, limit: int = 50) -> Sequence[SuspensionHistory]:
        return await self._ledger.list_history(user_id, limit=limit)
