from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from abuseguard.abuse.domain.dispatch import (
    build_suspension_payload,
    build_warning_payload,
    describe_duration,
    summarize_violation,
)
from abuseguard.abuse.domain.evidence import FakeRatingEvidence, InjectionEvidence, SpamEvidence
from abuseguard.abuse.domain.models import Severity, ViolationRecord, ViolationType
from abuseguard.abuse.domain.policy import PolicyConfig
from abuseguard.abuse.domain.week_clock import week_key

FRONTEND = "https://cook.example/"
NOW = datetime(2024, 3, 6, 12, 0, tzinfo=timezone.utc)


def _record(index: int, evidence, violation_type: ViolationType = ViolationType.SPAM) -> ViolationRecord:
    ts = NOW - timedelta(minutes=index)
    return ViolationRecord(
        violation_id=f"v{index}",
        user_id="u1",
        violation_type=violation_type,
        severity=Severity.MEDIUM,
        evidence=evidence,
        timestamp=ts,
        week_key=week_key(ts),
        expires_at=ts + timedelta(days=30),
    )


@pytest.mark.parametrize(
    ("hours", "expected"),
    [(1, "1 hour suspension"), (24, "24 hour suspension"), (72, "3 day suspension"), (720, "30 day suspension"), (50, "50 hour suspension")],
)
def test_describe_duration(hours: int, expected: str) -> None:
    assert describe_duration(hours) == expected


def test_summary_links_to_post_and_recipe() -> None:
    post = summarize_violation(_record(0, SpamEvidence(excerpt="x", post_id="p9")), frontend_url=FRONTEND)
    recipe = summarize_violation(
        _record(1, FakeRatingEvidence(recipe_id="r3"), ViolationType.FAKE_RATING),
        frontend_url=FRONTEND,
    )
    bare = summarize_violation(
        _record(2, InjectionEvidence(field="title", pattern="' OR 1=1"), ViolationType.INJECTION),
        frontend_url=FRONTEND,
    )

    assert post["link"] == "https://cook.example/posts/p9"
    assert recipe["link"] == "https://cook.example/recipes/r3"
    assert "link" not in bare
    assert "content_id" not in bare


def test_warning_payload_caps_listed_violations() -> None:
    recent = [_record(i, SpamEvidence(excerpt=str(i))) for i in range(7)]
    payload = build_warning_payload(
        violation_count=7,
        recent=recent,
        policy=PolicyConfig.default(),
        frontend_url=FRONTEND,
    )

    assert len(payload["violations"]) == 5
    assert payload["more_violations"] == 2
    assert payload["auto_suspend_threshold"] == 10
    assert payload["guidelines_url"] == "https://cook.example/guidelines"
    assert any("1 hour suspension to 30 day suspension" in line for line in payload["lines"])


def test_suspension_payload_offers_appeal_for_low_tiers() -> None:
    policy = PolicyConfig.default()
    until = NOW + timedelta(hours=1)
    payload = build_suspension_payload(
        decision=policy.resolve_tier(10),
        suspended_until=until,
        violation_count=10,
        recent=[],
        frontend_url=FRONTEND,
    )

    assert payload["tier"] == 1
    assert payload["duration"] == "1 hour suspension"
    assert payload["suspended_until"] == until.isoformat()
    assert payload["appeal_url"] == "https://cook.example/appeal"
    assert payload["more_violations"] == 0


def test_suspension_payload_without_appeal() -> None:
    policy = PolicyConfig.default()
    payload = build_suspension_payload(
        decision=policy.resolve_tier(30),
        suspended_until=NOW + timedelta(hours=720),
        violation_count=30,
        recent=[],
        frontend_url=FRONTEND,
    )

    assert payload["appeal_allowed"] is False
    assert "appeal_url" not in payload
    assert any("cannot be appealed" in line for line in payload["lines"])
