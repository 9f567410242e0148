"""Permanent abuse ledger: suspension history, admin notifications, escalations."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, Sequence

from abuseguard.abuse.domain.models import (
    AdminEscalation,
    AdminNotification,
    NotificationStatus,
    SuspensionHistory,
)


class AbuseLedger(Protocol):
    async def add_history(self, history: SuspensionHistory) -> SuspensionHistory:
        ...

    async def list_history(self, user_id: str, *, limit: int = 50) -> Sequence[SuspensionHistory]:
        ...

    async def create_notification_if_absent(self, notification: AdminNotification) -> AdminNotification | None:
        """Insert unless (user_id, week_key) already exists; ``None`` on conflict."""
        ...

    async def get_notification(self, notification_id: str) -> AdminNotification | None:
        ...

    async def update_notification_status(
        self,
        notification_id: str,
        *,
        status: NotificationStatus,
        reviewed_by: str | None,
        updated_at: datetime,
    ) -> AdminNotification | None:
        ...

    async def list_pending_notifications(self, *, limit: int = 50) -> Sequence[AdminNotification]:
        ...

    async def add_escalation(self, escalation: AdminEscalation) -> AdminEscalation:
        ...

    async def list_escalations(self, user_id: str | None = None, *, limit: int = 50) -> Sequence[AdminEscalation]:
        ...


class InMemoryAbuseLedger(AbuseLedger):
    """Simple ledger implementation for development and tests."""

    def __init__(self) -> None:
        self.history: list[SuspensionHistory] = []
        self.notifications: dict[str, AdminNotification] = {}
        self.escalations: list[AdminEscalation] = []
        self._notification_index: dict[tuple[str, str], str] = {}

    async def add_history(self, history: SuspensionHistory) -> SuspensionHistory:
        self.history.append(history)
        return history

    async def list_history(self, user_id: str, *, limit: int = 50) -> Sequence[SuspensionHistory]:
        items = [item for item in self.history if item.user_id == user_id]
        items.sort(key=lambda item: item.suspended_at, reverse=True)
        return items[:limit]

    async def create_notification_if_absent(self, notification: AdminNotification) -> AdminNotification | None:
        # check and insert run without yielding to the event loop
        key = (notification.user_id, notification.week_key)
        if key in self._notification_index:
            return None
        self._notification_index[key] = notification.notification_id
        self.notifications[notification.notification_id] = notification
        return notification

    async def get_notification(self, notification_id: str) -> AdminNotification | None:
        return self.notifications.get(notification_id)

    async def update_notification_status(
        self,
        notification_id: str,
        *,
        status: NotificationStatus,
        reviewed_by: str | None,
        updated_at: datetime,
    ) -> AdminNotification | None:
        notification = self.notifications.get(notification_id)
        if notification is None:
            return None
        notification.status = status
        notification.reviewed_by = reviewed_by
        notification.updated_at = updated_at
        return notification

    async def list_pending_notifications(self, *, limit: int = 50) -> Sequence[AdminNotification]:
        items = [item for item in self.notifications.values() if item.status is NotificationStatus.PENDING]
        items.sort(key=lambda item: item.created_at, reverse=True)
        return items[:limit]

    async def add_escalation(self, escalation: AdminEscalation) -> AdminEscalation:
        self.escalations.append(escalation)
        return escalation

    async def list_escalations(self, user_id: str | None = None, *, limit: int = 50) -> Sequence[AdminEscalation]:
        items = [item for item in self.escalations if user_id is None or item.user_id == user_id]
        items.sort(key=lambda item: item.created_at, reverse=True)
        return items[:limit]
