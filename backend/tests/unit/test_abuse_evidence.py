from __future__ import annotations

import pytest

from abuseguard.abuse.domain.errors import InvalidEvidenceError
from abuseguard.abuse.domain.evidence import (
    BotBehaviorEvidence,
    FakeRatingEvidence,
    InappropriateContentEvidence,
    InjectionEvidence,
    SpamEvidence,
    content_reference,
    evidence_to_mapping,
    parse_evidence,
)
from abuseguard.abuse.domain.models import ViolationType


def test_parse_mapping_into_matching_variant() -> None:
    evidence = parse_evidence(ViolationType.SPAM, {"excerpt": "buy now", "post_id": "p1", "duplicate_count": "4"})
    assert evidence == SpamEvidence(excerpt="buy now", post_id="p1", duplicate_count=4)


def test_instances_pass_through_unchanged() -> None:
    evidence = InjectionEvidence(field="title", pattern="' OR 1=1")
    assert parse_evidence(ViolationType.INJECTION, evidence) is evidence


def test_rejects_variant_for_another_type() -> None:
    with pytest.raises(InvalidEvidenceError):
        parse_evidence(ViolationType.XSS, InjectionEvidence(field="title", pattern="x"))


def test_rejects_unknown_fields() -> None:
    with pytest.raises(InvalidEvidenceError, match="recipe_id"):
        parse_evidence(ViolationType.INJECTION, {"field": "title", "pattern": "x", "recipe_id": "r1"})


def test_rejects_missing_required_fields() -> None:
    with pytest.raises(InvalidEvidenceError, match="pattern"):
        parse_evidence(ViolationType.INJECTION, {"field": "title"})
    with pytest.raises(InvalidEvidenceError, match="recipe_id"):
        parse_evidence(ViolationType.FAKE_RATING, {"rating": 5})


def test_rejects_uncoercible_values() -> None:
    with pytest.raises(InvalidEvidenceError):
        parse_evidence(ViolationType.FAKE_RATING, {"recipe_id": "r1", "rating": "five"})


def test_bot_behavior_takes_no_fields() -> None:
    assert parse_evidence(ViolationType.BOT_BEHAVIOR, None) == BotBehaviorEvidence()
    with pytest.raises(InvalidEvidenceError):
        parse_evidence(ViolationType.BOT_BEHAVIOR, {"requests_per_minute": 900})


def test_labels_round_trip_through_mapping() -> None:
    evidence = parse_evidence(ViolationType.INAPPROPRIATE_CONTENT, {"comment_id": "c9", "labels": ["nsfw", "hate"]})
    assert evidence == InappropriateContentEvidence(comment_id="c9", labels=("nsfw", "hate"))
    assert evidence_to_mapping(evidence) == {"comment_id": "c9", "labels": ["nsfw", "hate"]}


def test_content_reference_prefers_post_then_comment_then_recipe() -> None:
    assert content_reference(SpamEvidence(post_id="p1", comment_id="c1")) == ("post", "p1")
    assert content_reference(InappropriateContentEvidence(comment_id="c1", recipe_id="r1")) == ("comment", "c1")
    assert content_reference(FakeRatingEvidence(recipe_id="r7")) == ("recipe", "r7")
    assert content_reference(BotBehaviorEvidence()) is None


def test_string_labels_are_rejected_not_split() -> None:
    with pytest.raises(InvalidEvidenceError, match="labels"):
        parse_evidence(ViolationType.INAPPROPRIATE_CONTENT, {"labels": "nsfw", "post_id": "p1"})


def test_numeric_content_ids_are_kept_as_strings() -> None:
    evidence = parse_evidence(ViolationType.INAPPROPRIATE_CONTENT, {"post_id": 5, "labels": ["nsfw"]})
    assert evidence == InappropriateContentEvidence(post_id="5", labels=("nsfw",))


def test_blank_required_field_is_rejected() -> None:
    with pytest.raises(InvalidEvidenceError, match="field"):
        parse_evidence(ViolationType.XSS, {"field": "", "excerpt": "<script>"})
