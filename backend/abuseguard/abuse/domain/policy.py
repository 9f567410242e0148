"""Injectable enforcement policy: weekly thresholds and suspension tiers."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

from abuseguard.abuse.domain.errors import InvalidPolicyError
from abuseguard.abuse.domain.models import PenaltyLevel

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TierRule:
    tier: int
    min_weekly_violations: int
    duration_hours: int
    appeal_allowed: bool


@dataclass(frozen=True)
class TierDecision:
    """Outcome returned by tier resolution."""

    tier: int
    duration_hours: int
    appeal_allowed: bool

    @property
    def is_action(self) -> bool:
        return self.tier > 0

    @staticmethod
    def no_action() -> "TierDecision":
        return TierDecision(tier=0, duration_hours=0, appeal_allowed=False)


def _default_tiers() -> tuple[TierRule, ...]:
    return (
        TierRule(tier=1, min_weekly_violations=5, duration_hours=1, appeal_allowed=True),
        TierRule(tier=2, min_weekly_violations=15, duration_hours=24, appeal_allowed=True),
        TierRule(tier=3, min_weekly_violations=30, duration_hours=720, appeal_allowed=False),
    )


@dataclass(frozen=True)
class PolicyConfig:
    """Thresholds for weekly counts plus the tier table used by auto-suspension."""

    warning_threshold: int = 3
    admin_notify_threshold: int = 5
    warning_email_at: int = 5
    auto_suspend_threshold: int = 10
    retention_days: int = 30
    tiers: tuple[TierRule, ...] = field(default_factory=_default_tiers)

    def __post_init__(self) -> None:
        ordered = tuple(sorted(self.tiers, key=lambda rule: rule.min_weekly_violations))
        object.__setattr__(self, "tiers", ordered)
        self._validate()

    @staticmethod
    def default() -> "PolicyConfig":
        return PolicyConfig()

    # --- Evaluation ------------------------------------------------------

    def resolve_tier(self, weekly_count: int) -> TierDecision:
        decision = TierDecision.no_action()
        for rule in self.tiers:
            if weekly_count >= rule.min_weekly_violations:
                decision = TierDecision(
                    tier=rule.tier,
                    duration_hours=rule.duration_hours,
                    appeal_allowed=rule.appeal_allowed,
                )
        return decision

    def penalty_level(self, weekly_count: int) -> PenaltyLevel:
        if weekly_count >= self.auto_suspend_threshold:
            return PenaltyLevel.SUSPENDED
        if weekly_count >= self.admin_notify_threshold:
            return PenaltyLevel.RESTRICTED
        if weekly_count >= self.warning_threshold:
            return PenaltyLevel.WARNING
        return PenaltyLevel.NONE

    def should_notify_admin(self, weekly_count: int) -> bool:
        return self.admin_notify_threshold <= weekly_count < self.auto_suspend_threshold

    def should_auto_suspend(self, weekly_count: int) -> bool:
        return weekly_count >= self.auto_suspend_threshold

    # --- Validation ------------------------------------------------------

    def _validate(self) -> None:
        if not self.tiers:
            raise InvalidPolicyError("at least one suspension tier is required")
        if self.retention_days < 1:
            raise InvalidPolicyError("retention_days must be positive")
        if not 0 < self.warning_threshold <= self.admin_notify_threshold < self.auto_suspend_threshold:
            raise InvalidPolicyError(
                "thresholds must satisfy 0 < warning <= admin_notify < auto_suspend"
            )
        previous: TierRule | None = None
        for rule in self.tiers:
            if rule.duration_hours <= 0:
                raise InvalidPolicyError(f"tier {rule.tier} duration must be positive")
            if previous is not None:
                if rule.min_weekly_violations == previous.min_weekly_violations:
                    raise InvalidPolicyError(f"tiers {previous.tier} and {rule.tier} share a threshold")
                if rule.tier <= previous.tier or rule.duration_hours < previous.duration_hours:
                    raise InvalidPolicyError("higher thresholds must map to higher tiers and longer durations")
            previous = rule
        if self.auto_suspend_threshold < self.tiers[0].min_weekly_violations:
            raise InvalidPolicyError(
                "auto_suspend_threshold is below every tier threshold; suspensions would resolve to no tier"
            )

    # --- Serialization ---------------------------------------------------

    @staticmethod
    def from_mapping(config: Mapping[str, Any]) -> "PolicyConfig":
        base = PolicyConfig.default()
        thresholds = config.get("thresholds", {}) or {}
        raw_tiers = config.get("tiers")
        tiers = base.tiers
        if raw_tiers:
            tiers = tuple(
                TierRule(
                    tier=int(item["tier"]),
                    min_weekly_violations=int(item["min_weekly_violations"]),
                    duration_hours=int(item["duration_hours"]),
                    appeal_allowed=bool(item.get("appeal_allowed", True)),
                )
                for item in raw_tiers
            )
        return PolicyConfig(
            warning_threshold=int(thresholds.get("warning", base.warning_threshold)),
            admin_notify_threshold=int(thresholds.get("admin_notify", base.admin_notify_threshold)),
            warning_email_at=int(thresholds.get("warning_email_at", base.warning_email_at)),
            auto_suspend_threshold=int(thresholds.get("auto_suspend", base.auto_suspend_threshold)),
            retention_days=int(config.get("retention_days", base.retention_days)),
            tiers=tiers,
        )


def load_policy(path: str | Path) -> PolicyConfig:
    """Load the policy from a YAML (or JSON) file."""

    try:
        text = Path(path).read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.warning("abuse policy file missing at %s; using defaults", path)
        return PolicyConfig.default()
    if str(path).endswith(".json"):
        data = json.loads(text)
    else:
        data = yaml.safe_load(text)
    if not isinstance(data, Mapping):
        logger.warning("abuse policy file invalid; falling back to defaults", extra={"path": str(path)})
        return PolicyConfig.default()
    return PolicyConfig.from_mapping(data)
