"""Staff endpoints for reviewing violations and managing suspensions."""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from abuseguard.abuse.domain.container import get_enforcer, get_notifier, get_policy, get_recorder, get_violation_store
from abuseguard.abuse.domain.errors import InvalidTransitionError, NotificationNotFoundError
from abuseguard.abuse.domain.evidence import evidence_to_mapping
from abuseguard.abuse.domain.models import (
    AccountStatus,
    ActiveSuspension,
    AdminNotification,
    NotificationStatus,
    SuspensionHistory,
    ViolationRecord,
)
from abuseguard.abuse.domain.reports import WeeklyReport, build_weekly_report
from abuseguard.abuse.domain.week_clock import current_week_key
from abuseguard.infra.auth import AuthenticatedUser, get_admin_user

router = APIRouter(prefix="/api/abuse/v1/admin", tags=["abuse-admin"])


class ViolationOut(BaseModel):
    violation_id: str
    user_id: str
    violation_type: str
    severity: str
    evidence: dict[str, Any]
    timestamp: str
    week_key: str
    expires_at: str

    @classmethod
    def from_domain(cls, record: ViolationRecord) -> "ViolationOut":
        return cls(
            violation_id=record.violation_id,
            user_id=record.user_id,
            violation_type=record.violation_type.value,
            severity=record.severity.value,
            evidence=evidence_to_mapping(record.evidence),
            timestamp=record.timestamp.isoformat(),
            week_key=record.week_key,
            expires_at=record.expires_at.isoformat(),
        )


class WeeklyViolationsOut(BaseModel):
    week_key: str
    total: int
    items: list[ViolationOut]


class NotificationOut(BaseModel):
    notification_id: str
    user_id: str
    week_key: str
    violation_count: int
    severity_breakdown: dict[str, int]
    violations: list[dict[str, Any]]
    priority: str
    status: str
    created_at: str
    updated_at: str | None
    reviewed_by: str | None

    @classmethod
    def from_domain(cls, notification: AdminNotification) -> "NotificationOut":
        return cls(
            notification_id=notification.notification_id,
            user_id=notification.user_id,
            week_key=notification.week_key,
            violation_count=notification.violation_count,
            severity_breakdown=dict(notification.severity_breakdown),
            violations=[dict(item) for item in notification.violations],
            priority=notification.priority,
            status=notification.status.value,
            created_at=notification.created_at.isoformat(),
            updated_at=notification.updated_at.isoformat() if notification.updated_at else None,
            reviewed_by=notification.reviewed_by,
        )


class NotificationUpdateIn(BaseModel):
    status: NotificationStatus


class ActiveSuspensionOut(BaseModel):
    suspended_at: str
    suspended_until: str
    tier: int
    reason: str
    suspended_by: str

    @classmethod
    def from_domain(cls, suspension: ActiveSuspension) -> "ActiveSuspensionOut":
        return cls(
            suspended_at=suspension.suspended_at.isoformat(),
            suspended_until=suspension.suspended_until.isoformat(),
            tier=suspension.tier,
            reason=suspension.reason,
            suspended_by=suspension.suspended_by.value,
        )


class SuspensionHistoryOut(BaseModel):
    suspension_id: str
    suspended_at: str
    suspended_until: str
    tier: int
    duration_hours: int
    appeal_allowed: bool
    reason: str
    suspended_by: str
    week_key: str

    @classmethod
    def from_domain(cls, history: SuspensionHistory) -> "SuspensionHistoryOut":
        return cls(
            suspension_id=history.suspension_id,
            suspended_at=history.suspended_at.isoformat(),
            suspended_until=history.suspended_until.isoformat(),
            tier=history.tier,
            duration_hours=history.duration_hours,
            appeal_allowed=history.appeal_allowed,
            reason=history.reason,
            suspended_by=history.suspended_by.value,
            week_key=history.week_key,
        )


class AccountStatusOut(BaseModel):
    user_id: str
    status: str
    is_suspended: bool
    suspended_at: str | None = None
    suspended_until: str | None = None
    suspension_reason: str | None = None
    reinstated_at: str | None = None
    reinstated_reason: str | None = None
    active_suspension: ActiveSuspensionOut | None = None
    history: list[SuspensionHistoryOut] = Field(default_factory=list)

    @classmethod
    def from_domain(
        cls,
        account: AccountStatus,
        active: ActiveSuspension | None,
        history: list[SuspensionHistory],
    ) -> "AccountStatusOut":
        return cls(
            user_id=account.user_id,
            status=account.status,
            is_suspended=account.is_suspended,
            suspended_at=account.suspended_at.isoformat() if account.suspended_at else None,
            suspended_until=account.suspended_until.isoformat() if account.suspended_until else None,
            suspension_reason=account.suspension_reason,
            reinstated_at=account.reinstated_at.isoformat() if account.reinstated_at else None,
            reinstated_reason=account.reinstated_reason,
            active_suspension=ActiveSuspensionOut.from_domain(active) if active else None,
            history=[SuspensionHistoryOut.from_domain(item) for item in history],
        )


class UnbanIn(BaseModel):
    reason: str = Field(default="Manual reinstatement", max_length=500)


class RejectBanIn(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class ReinstatementOut(BaseModel):
    user_id: str
    reinstated: bool
    reason: str


class WeeklyReportOut(BaseModel):
    week_key: str
    total_violations: int
    unique_users: int
    severity_breakdown: dict[str, int]
    type_breakdown: dict[str, int]
    users_over_threshold: list[dict[str, Any]]

    @classmethod
    def from_domain(cls, report: WeeklyReport) -> "WeeklyReportOut":
        return cls(
            week_key=report.week_key,
            total_violations=report.total_violations,
            unique_users=report.unique_users,
            severity_breakdown=dict(report.severity_breakdown),
            type_breakdown=dict(report.type_breakdown),
            users_over_threshold=list(report.users_over_threshold),
        )


@router.get("/violations", response_model=WeeklyViolationsOut)
async def list_weekly_violations(
    *,
    week_key: Optional[str] = Query(default=None, pattern=r"^\d{4}-\d{2}$"),
    limit: int = Query(default=500, ge=1, le=5000),
    _: AuthenticatedUser = Depends(get_admin_user),
) -> WeeklyViolationsOut:
    recorder = get_recorder()
    records = await recorder.get_weekly_violations(week_key, limit=limit)
    return WeeklyViolationsOut(
        week_key=week_key or current_week_key(),
        total=len(records),
        items=[ViolationOut.from_domain(record) for record in records],
    )


@router.get("/notifications/pending", response_model=list[NotificationOut])
async def list_pending_notifications(
    *,
    limit: int = Query(default=50, ge=1, le=200),
    _: AuthenticatedUser = Depends(get_admin_user),
) -> list[NotificationOut]:
    notifications = await get_notifier().list_pending(limit=limit)
    return [NotificationOut.from_domain(item) for item in notifications]


@router.patch("/notifications/{notification_id}", response_model=NotificationOut)
async def update_notification(
    notification_id: str,
    payload: NotificationUpdateIn,
    admin: AuthenticatedUser = Depends(get_admin_user),
) -> NotificationOut:
    try:
        updated = await get_notifier().transition(notification_id, payload.status, actor_id=admin.id)
    except NotificationNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="notification_not_found")
    except InvalidTransitionError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    return NotificationOut.from_domain(updated)


@router.get("/users/{user_id}/violations", response_model=list[ViolationOut])
async def list_user_violations(
    user_id: str,
    *,
    limit: int = Query(default=50, ge=1, le=500),
    _: AuthenticatedUser = Depends(get_admin_user),
) -> list[ViolationOut]:
    records = await get_recorder().get_user_violation_history(user_id, limit=limit)
    return [ViolationOut.from_domain(record) for record in records]


@router.get("/users/{user_id}/status", response_model=AccountStatusOut)
async def get_user_status(
    user_id: str,
    _: AuthenticatedUser = Depends(get_admin_user),
) -> AccountStatusOut:
    enforcer = get_enforcer()
    account = await enforcer.get_account_status(user_id)
    active = await enforcer.get_active_suspension(user_id)
    history = await enforcer.list_history(user_id, limit=20)
    return AccountStatusOut.from_domain(account, active, list(history))


@router.post("/users/{user_id}/unban", response_model=ReinstatementOut)
async def unban_user(
    user_id: str,
    payload: UnbanIn | None = None,
    admin: AuthenticatedUser = Depends(get_admin_user),
) -> ReinstatementOut:
    reason = (payload or UnbanIn()).reason
    lifted = await get_enforcer().reinstate_early(user_id, actor_id=admin.id, reason=reason)
    if not lifted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="no_active_suspension")
    return ReinstatementOut(user_id=user_id, reinstated=True, reason=reason)


@router.put("/users/{user_id}/reject-ban", response_model=ReinstatementOut)
async def reject_ban(
    user_id: str,
    payload: RejectBanIn,
    admin: AuthenticatedUser = Depends(get_admin_user),
) -> ReinstatementOut:
    reason = (payload.reason or "").strip()
    if not reason:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="reason_required")
    lifted = await get_enforcer().reinstate_early(user_id, actor_id=admin.id, reason=f"Ban rejected: {reason}")
    if not lifted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="no_active_suspension")
    return ReinstatementOut(user_id=user_id, reinstated=True, reason=reason)


@router.get("/reports/weekly", response_model=WeeklyReportOut)
async def weekly_report(
    *,
    week_key: Optional[str] = Query(default=None, pattern=r"^\d{4}-\d{2}$"),
    _: AuthenticatedUser = Depends(get_admin_user),
) -> WeeklyReportOut:
    report = await build_weekly_report(get_violation_store(), get_policy(), week=week_key)
    return WeeklyReportOut.from_domain(report)
