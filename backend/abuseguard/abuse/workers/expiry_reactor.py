"""Consumer of suspension marker deletions: reinstates accounts."""

from __future__ import annotations

import asyncio
import logging

from abuseguard.abuse.domain.models import ReversalCause, ReversalEvent
from abuseguard.abuse.domain.suspensions import AccountStatusStore, SuspensionMarkers
from abuseguard.obs import metrics

logger = logging.getLogger(__name__)

_DEFAULT_REASONS = {
    ReversalCause.EXPIRED: "Suspension period ended",
    ReversalCause.REMOVED: "Suspension lifted early",
}


class ExpiryReactor:
    """Reads the change feed through a consumer group and reinstates accounts.

    Delivery is at-least-once. Duplicate, late and superseded events are
    no-ops, so handling the same event twice is harmless.
    """

    def __init__(
        self,
        *,
        markers: SuspensionMarkers,
        accounts: AccountStatusStore,
        consumer: str = "reactor-1",
        batch_size: int = 50,
        block_ms: int = 5000,
        poll_interval: float = 1.0,
        max_attempts: int = 5,
    ) -> None:
        self.markers = markers
        self.accounts = accounts
        self.consumer = consumer
        self.batch_size = batch_size
        self.block_ms = block_ms
        self.poll_interval = poll_interval
        self.max_attempts = max(1, max_attempts)
        self._running = False
        self._group_ready = False
        self._retry_pending = True

    async def handle(self, event: ReversalEvent) -> bool:
        """Return True only when this call moved the account back to active."""

        if event.entity_type != "ActiveSuspension":
            return False
        cause = ReversalCause(event.cause)
        live = await self.markers.get(event.user_id)
        if live is not None:
            metrics.inc_reinstatement(cause.value, "superseded")
            logger.info(
                "reinstatement skipped; user re-suspended",
                extra={"user_id": event.user_id, "suspended_until": live.suspended_until.isoformat()},
            )
            return False
        reinstated = await self.accounts.reinstate_if_current(
            event.user_id,
            event.suspended_until,
            reason=event.reason or _DEFAULT_REASONS[cause],
        )
        if not reinstated:
            metrics.inc_reinstatement(cause.value, "noop")
            logger.debug("reinstatement no-op", extra={"user_id": event.user_id, "event_id": event.event_id})
            return False
        metrics.inc_reinstatement(cause.value, "reinstated")
        logger.info(
            "account reinstated",
            extra={"user_id": event.user_id, "cause": cause.value, "event_id": event.event_id},
        )
        return True

    async def run_once(self) -> int:
        """Handle one batch from the change feed; returns the number of events settled.

        Unacknowledged entries are retried first, but new entries are read on
        every pass so one failing event cannot hold back the rest of the feed.
        An event that fails ``max_attempts`` times is moved to the dead-letter
        stream.
        """

        if not self._group_ready:
            await self.markers.ensure_group()
            self._group_ready = True
        events: list[ReversalEvent] = []
        if self._retry_pending:
            # entries delivered before a restart or a failed attempt, never acknowledged
            retried = await self.markers.read_events(self.consumer, count=self.batch_size, pending=True)
            self._retry_pending = len(retried) >= self.batch_size
            events.extend(retried)
        fresh = await self.markers.read_events(
            self.consumer,
            count=self.batch_size,
            block_ms=0 if events else self.block_ms,
        )
        events.extend(fresh)
        settled = 0
        for event in events:
            try:
                await self.handle(event)
            except Exception as exc:  # noqa: BLE001 - leave unacknowledged for redelivery
                if await self._give_up(event, exc):
                    settled += 1
                continue
            if event.event_id is not None:
                await self.markers.ack(event.event_id)
                settled += 1
        return settled

    async def _give_up(self, event: ReversalEvent, exc: Exception) -> bool:
        logger.exception(
            "failed to handle suspension event",
            extra={"user_id": event.user_id, "event_id": event.event_id},
        )
        if event.event_id is None:
            return False
        attempts = await self.markers.record_failure(event.event_id)
        if attempts < self.max_attempts:
            self._retry_pending = True
            return False
        await self.markers.dead_letter(event, error=f"{type(exc).__name__}: {exc}")
        metrics.inc_reinstatement(ReversalCause(event.cause).value, "dead_lettered")
        return True

    async def run_forever(self) -> None:
        """Continuously consume the change feed until :meth:`stop` is called."""
        self._running = True
        while self._running:
            try:
                processed = await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception:  # noqa: BLE001 - keep consuming after transient storage errors
                logger.exception("expiry reactor iteration failed")
                processed = 0
            if processed == 0:
                await asyncio.sleep(self.poll_interval)

    def stop(self) -> None:
        """Request the worker to stop after the current iteration."""
        self._running = False
