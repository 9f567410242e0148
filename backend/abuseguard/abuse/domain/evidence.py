"""Per-detector evidence payloads keyed by violation type."""

from __future__ import annotations

from typing import Any, ClassVar, Mapping, Optional, Union

from pydantic import BaseModel, Field, ValidationError

from abuseguard.abuse.domain.errors import InvalidEvidenceError
from abuseguard.abuse.domain.models import ViolationType


class _EvidenceModel(BaseModel):
    # detectors often hand over numeric ids; keep them as strings
    model_config = {"extra": "forbid", "frozen": True, "coerce_numbers_to_str": True}

    violation_type: ClassVar[ViolationType]


class SpamEvidence(_EvidenceModel):
    violation_type: ClassVar[ViolationType] = ViolationType.SPAM

    excerpt: str = ""
    post_id: Optional[str] = None
    comment_id: Optional[str] = None
    duplicate_count: Optional[int] = Field(default=None, ge=0)


class InjectionEvidence(_EvidenceModel):
    violation_type: ClassVar[ViolationType] = ViolationType.INJECTION

    field: str = Field(min_length=1)
    pattern: str = Field(min_length=1)


class XssEvidence(_EvidenceModel):
    violation_type: ClassVar[ViolationType] = ViolationType.XSS

    field: str = Field(min_length=1)
    excerpt: str = Field(min_length=1)


class FakeRatingEvidence(_EvidenceModel):
    violation_type: ClassVar[ViolationType] = ViolationType.FAKE_RATING

    recipe_id: str = Field(min_length=1)
    rating: Optional[int] = None
    reason: Optional[str] = None


class BotBehaviorEvidence(_EvidenceModel):
    violation_type: ClassVar[ViolationType] = ViolationType.BOT_BEHAVIOR


class InappropriateContentEvidence(_EvidenceModel):
    violation_type: ClassVar[ViolationType] = ViolationType.INAPPROPRIATE_CONTENT

    post_id: Optional[str] = None
    comment_id: Optional[str] = None
    recipe_id: Optional[str] = None
    labels: tuple[str, ...] = ()


Evidence = Union[
    SpamEvidence,
    InjectionEvidence,
    XssEvidence,
    FakeRatingEvidence,
    BotBehaviorEvidence,
    InappropriateContentEvidence,
]

EVIDENCE_TYPES: dict[ViolationType, type[_EvidenceModel]] = {
    cls.violation_type: cls
    for cls in (
        SpamEvidence,
        InjectionEvidence,
        XssEvidence,
        FakeRatingEvidence,
        BotBehaviorEvidence,
        InappropriateContentEvidence,
    )
}


def _describe(exc: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in error['loc']) or 'evidence'}: {error['msg']}" for error in exc.errors()
    )


def parse_evidence(violation_type: ViolationType, raw: Evidence | Mapping[str, Any] | None) -> Evidence:
    """Validate ``raw`` against the variant registered for ``violation_type``."""

    model = EVIDENCE_TYPES[violation_type]
    if isinstance(raw, model):
        return raw
    if raw is None:
        raw = {}
    if not isinstance(raw, Mapping):
        raise InvalidEvidenceError(
            f"{type(raw).__name__} is not valid evidence for {violation_type.value}"
        )
    try:
        return model.model_validate(dict(raw))
    except ValidationError as exc:
        raise InvalidEvidenceError(f"invalid evidence for {violation_type.value}: {_describe(exc)}") from exc


def evidence_to_mapping(evidence: Evidence) -> dict[str, Any]:
    return evidence.model_dump(mode="json", exclude_none=True)


def content_reference(evidence: Evidence) -> tuple[str, str] | None:
    """First piece of user content the evidence points at, as ``(kind, id)``."""

    for kind in ("post", "comment", "recipe"):
        value = getattr(evidence, f"{kind}_id", None)
        if value:
            return kind, value
    return None
