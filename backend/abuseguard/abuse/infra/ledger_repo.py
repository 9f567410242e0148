"""PostgreSQL persistence for the abuse ledger."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Sequence

import asyncpg

from abuseguard.abuse.domain.ledger import AbuseLedger
from abuseguard.abuse.domain.models import (
    AdminEscalation,
    AdminNotification,
    EscalationReason,
    NotificationStatus,
    SuspendedBy,
    SuspensionHistory,
)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS abuse_suspension_history (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    suspended_at TIMESTAMPTZ NOT NULL,
    suspended_until TIMESTAMPTZ NOT NULL,
    tier INTEGER NOT NULL,
    duration_hours INTEGER NOT NULL,
    appeal_allowed BOOLEAN NOT NULL,
    reason TEXT NOT NULL,
    suspended_by TEXT NOT NULL,
    week_key TEXT NOT NULL,
    stats JSONB NOT NULL DEFAULT '{}'::jsonb
);
CREATE INDEX IF NOT EXISTS abuse_suspension_history_user_idx
    ON abuse_suspension_history (user_id, suspended_at DESC);

CREATE TABLE IF NOT EXISTS abuse_admin_notification (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    week_key TEXT NOT NULL,
    violation_count INTEGER NOT NULL,
    severity_breakdown JSONB NOT NULL,
    violations JSONB NOT NULL,
    priority TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending',
    created_at TIMESTAMPTZ NOT NULL,
    updated_at TIMESTAMPTZ,
    reviewed_by TEXT,
    UNIQUE (user_id, week_key)
);
CREATE INDEX IF NOT EXISTS abuse_admin_notification_status_idx
    ON abuse_admin_notification (status, created_at DESC);

CREATE TABLE IF NOT EXISTS abuse_admin_escalation (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    reason TEXT NOT NULL,
    stats JSONB NOT NULL,
    status TEXT NOT NULL DEFAULT 'urgent',
    created_at TIMESTAMPTZ NOT NULL
);
CREATE INDEX IF NOT EXISTS abuse_admin_escalation_user_idx
    ON abuse_admin_escalation (user_id, created_at DESC);
"""

_NOTIFICATION_COLUMNS = (
    "id, user_id, week_key, violation_count, severity_breakdown, violations, priority, "
    "status, created_at, updated_at, reviewed_by"
)


async def ensure_schema(pool: asyncpg.Pool) -> None:
    async with pool.acquire() as conn:
        await conn.execute(SCHEMA_SQL)


def _json(value: Any) -> Any:
    if isinstance(value, str):
        return json.loads(value)
    return value


def _row_to_history(row: asyncpg.Record) -> SuspensionHistory:
    return SuspensionHistory(
        suspension_id=str(row["id"]),
        user_id=str(row["user_id"]),
        suspended_at=row["suspended_at"],
        suspended_until=row["suspended_until"],
        tier=int(row["tier"]),
        duration_hours=int(row["duration_hours"]),
        appeal_allowed=bool(row["appeal_allowed"]),
        reason=str(row["reason"]),
        suspended_by=SuspendedBy(str(row["suspended_by"])),
        week_key=str(row["week_key"]),
        stats=_json(row["stats"]) or {},
    )


def _row_to_notification(row: asyncpg.Record) -> AdminNotification:
    return AdminNotification(
        notification_id=str(row["id"]),
        user_id=str(row["user_id"]),
        week_key=str(row["week_key"]),
        violation_count=int(row["violation_count"]),
        severity_breakdown=_json(row["severity_breakdown"]) or {},
        violations=list(_json(row["violations"]) or []),
        priority=str(row["priority"]),
        created_at=row["created_at"],
        status=NotificationStatus(str(row["status"])),
        updated_at=row["updated_at"],
        reviewed_by=str(row["reviewed_by"]) if row.get("reviewed_by") is not None else None,
    )


def _row_to_escalation(row: asyncpg.Record) -> AdminEscalation:
    return AdminEscalation(
        escalation_id=str(row["id"]),
        user_id=str(row["user_id"]),
        reason=EscalationReason(str(row["reason"])),
        stats=_json(row["stats"]) or {},
        created_at=row["created_at"],
        status=str(row["status"]),
    )


class PostgresAbuseLedger(AbuseLedger):
    """Stores suspension history, admin notifications and escalations."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def add_history(self, history: SuspensionHistory) -> SuspensionHistory:
        await self._pool.execute(
            """
            INSERT INTO abuse_suspension_history (
                id, user_id, suspended_at, suspended_until, tier, duration_hours,
                appeal_allowed, reason, suspended_by, week_key, stats
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11::jsonb)
            """,
            history.suspension_id,
            history.user_id,
            history.suspended_at,
            history.suspended_until,
            history.tier,
            history.duration_hours,
            history.appeal_allowed,
            history.reason,
            history.suspended_by.value,
            history.week_key,
            json.dumps(dict(history.stats)),
        )
        return history

    async def list_history(self, user_id: str, *, limit: int = 50) -> Sequence[SuspensionHistory]:
        rows = await self._pool.fetch(
            """
            SELECT id, user_id, suspended_at, suspended_until, tier, duration_hours,
                   appeal_allowed, reason, suspended_by, week_key, stats
            FROM abuse_suspension_history
            WHERE user_id = $1
            ORDER BY suspended_at DESC
            LIMIT $2
            """,
            user_id,
            limit,
        )
        return [_row_to_history(row) for row in rows]

    async def create_notification_if_absent(self, notification: AdminNotification) -> AdminNotification | None:
        row = await self._pool.fetchrow(
            f"""
            INSERT INTO abuse_admin_notification (
                id, user_id, week_key, violation_count, severity_breakdown, violations,
                priority, status, created_at
            )
            VALUES ($1, $2, $3, $4, $5::jsonb, $6::jsonb, $7, $8, $9)
            ON CONFLICT (user_id, week_key) DO NOTHING
            RETURNING {_NOTIFICATION_COLUMNS}
            """,
            notification.notification_id,
            notification.user_id,
            notification.week_key,
            notification.violation_count,
            json.dumps(dict(notification.severity_breakdown)),
            json.dumps(list(notification.violations)),
            notification.priority,
            notification.status.value,
            notification.created_at,
        )
        if row is None:
            return None
        return _row_to_notification(row)

    async def get_notification(self, notification_id: str) -> AdminNotification | None:
        row = await self._pool.fetchrow(
            f"SELECT {_NOTIFICATION_COLUMNS} FROM abuse_admin_notification WHERE id = $1",
            notification_id,
        )
        if row is None:
            return None
        return _row_to_notification(row)

    async def update_notification_status(
        self,
        notification_id: str,
        *,
        status: NotificationStatus,
        reviewed_by: str | None,
        updated_at: datetime,
    ) -> AdminNotification | None:
        row = await self._pool.fetchrow(
            f"""
            UPDATE abuse_admin_notification
            SET status = $2, reviewed_by = $3, updated_at = $4
            WHERE id = $1
            RETURNING {_NOTIFICATION_COLUMNS}
            """,
            notification_id,
            status.value,
            reviewed_by,
            updated_at,
        )
        if row is None:
            return None
        return _row_to_notification(row)

    async def list_pending_notifications(self, *, limit: int = 50) -> Sequence[AdminNotification]:
        rows = await self._pool.fetch(
            f"""
            SELECT {_NOTIFICATION_COLUMNS}
            FROM abuse_admin_notification
            WHERE status = 'pending'
            ORDER BY created_at DESC
            LIMIT $1
            """,
            limit,
        )
        return [_row_to_notification(row) for row in rows]

    async def add_escalation(self, escalation: AdminEscalation) -> AdminEscalation:
        await self._pool.execute(
            """
            INSERT INTO abuse_admin_escalation (id, user_id, reason, stats, status, created_at)
            VALUES ($1, $2, $3, $4::jsonb, $5, $6)
            """,
            escalation.escalation_id,
            escalation.user_id,
            escalation.reason.value,
            json.dumps(dict(escalation.stats)),
            escalation.status,
            escalation.created_at,
        )
        return escalation

    async def list_escalations(self, user_id: str | None = None, *, limit: int = 50) -> Sequence[AdminEscalation]:
        if user_id is None:
            rows = await self._pool.fetch(
                """
                SELECT id, user_id, reason, stats, status, created_at
                FROM abuse_admin_escalation
                ORDER BY created_at DESC
                LIMIT $1
                """,
                limit,
            )
        else:
            rows = await self._pool.fetch(
                """
                SELECT id, user_id, reason, stats, status, created_at
                FROM abuse_admin_escalation
                WHERE user_id = $1
                ORDER BY created_at DESC
                LIMIT $2
                """,
                user_id,
                limit,
            )
        return [_row_to_escalation(row) for row in rows]
