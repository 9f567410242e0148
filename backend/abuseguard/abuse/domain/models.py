"""Records and enums shared by the abuse engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Mapping

if TYPE_CHECKING:  # pragma: no cover - type-only imports
    from abuseguard.abuse.domain.evidence import Evidence


class ViolationType(str, Enum):
    SPAM = "spam"
    INJECTION = "injection"
    XSS = "xss"
    FAKE_RATING = "fake-rating"
    BOT_BEHAVIOR = "bot-behavior"
    INAPPROPRIATE_CONTENT = "inappropriate-content"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class PenaltyLevel(str, Enum):
    NONE = "none"
    WARNING = "warning"
    RESTRICTED = "restricted"
    SUSPENDED = "suspended"


class SuspendedBy(str, Enum):
    SYSTEM = "system"
    ADMIN = "admin"


class NotificationStatus(str, Enum):
    PENDING = "pending"
    REVIEWED = "reviewed"
    RESOLVED = "resolved"


class EscalationReason(str, Enum):
    AUTO_SUSPENSION = "auto_suspension"
    CRITICAL_VIOLATION = "critical_violation"


class ReversalCause(str, Enum):
    EXPIRED = "expired"
    REMOVED = "removed"


@dataclass(frozen=True, slots=True)
class ViolationRecord:
    violation_id: str
    user_id: str
    violation_type: ViolationType
    severity: Severity
    evidence: "Evidence"
    timestamp: datetime
    week_key: str
    expires_at: datetime


def empty_breakdown() -> dict[str, int]:
    return {severity.value: 0 for severity in Severity}


@dataclass(slots=True)
class WeeklyStats:
    user_id: str
    week_key: str
    total_violations: int = 0
    this_week_violations: int = 0
    severity_breakdown: dict[str, int] = field(default_factory=empty_breakdown)
    last_violation: datetime | None = None
    penalty_level: PenaltyLevel = PenaltyLevel.NONE
    should_notify_admin: bool = False

    def snapshot(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "week_key": self.week_key,
            "total_violations": self.total_violations,
            "this_week_violations": self.this_week_violations,
            "severity_breakdown": dict(self.severity_breakdown),
            "last_violation": self.last_violation.isoformat() if self.last_violation else None,
            "penalty_level": self.penalty_level.value,
            "should_notify_admin": self.should_notify_admin,
        }


@dataclass(frozen=True, slots=True)
class ActiveSuspension:
    """Live lockout marker; its storage expiry is ``suspended_until``."""

    user_id: str
    suspended_at: datetime
    suspended_until: datetime
    tier: int
    reason: str
    suspended_by: SuspendedBy = SuspendedBy.SYSTEM

    @property
    def expires_at(self) -> datetime:
        return self.suspended_until


@dataclass(frozen=True, slots=True)
class SuspensionHistory:
    suspension_id: str
    user_id: str
    suspended_at: datetime
    suspended_until: datetime
    tier: int
    duration_hours: int
    appeal_allowed: bool
    reason: str
    suspended_by: SuspendedBy
    week_key: str
    stats: Mapping[str, Any]


@dataclass(slots=True)
class AdminNotification:
    notification_id: str
    user_id: str
    week_key: str
    violation_count: int
    severity_breakdown: Mapping[str, int]
    violations: list[Mapping[str, Any]]
    priority: str
    created_at: datetime
    status: NotificationStatus = NotificationStatus.PENDING
    updated_at: datetime | None = None
    reviewed_by: str | None = None


@dataclass(frozen=True, slots=True)
class AdminEscalation:
    escalation_id: str
    user_id: str
    reason: EscalationReason
    stats: Mapping[str, Any]
    created_at: datetime
    status: str = "urgent"


@dataclass(slots=True)
class AccountStatus:
    user_id: str
    status: str = "active"
    is_suspended: bool = False
    suspended_at: datetime | None = None
    suspended_until: datetime | None = None
    suspension_reason: str | None = None
    reinstated_at: datetime | None = None
    reinstated_reason: str | None = None


@dataclass(frozen=True, slots=True)
class ReversalEvent:
    """Deletion notice for an active suspension marker."""

    user_id: str
    suspended_until: datetime
    cause: ReversalCause
    event_id: str | None = None
    reason: str | None = None
    entity_type: str = "ActiveSuspension"
