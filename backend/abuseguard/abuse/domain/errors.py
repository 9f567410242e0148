"""Exceptions raised by the abuse engine."""

from __future__ import annotations


class AbuseError(Exception):
    """Base class for abuse engine errors."""


class InvalidEvidenceError(AbuseError, ValueError):
    """Evidence payload does not match the violation type."""


class InvalidPolicyError(AbuseError, ValueError):
    """Policy configuration is internally inconsistent."""


class NotificationNotFoundError(AbuseError):
    """Admin notification id is unknown."""


class InvalidTransitionError(AbuseError):
    """Admin notification status change is not allowed."""

    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"cannot move notification from {current} to {target}")
        self.current = current
        self.target = target
