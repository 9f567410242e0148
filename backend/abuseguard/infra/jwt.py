"""HS256 access tokens for staff calling the admin API.

Tokens carry ``sub`` and ``roles``; issuer, audience and lifetime come from
settings so several deployments can share a signing key without accepting
each other's tokens.
"""

from __future__ import annotations

import time
from typing import Any, Dict, Iterable

import jwt
from jwt import InvalidTokenError

from abuseguard.settings import settings

_ALGORITHM = "HS256"


def encode_access(user_id: str, *, roles: Iterable[str] = (), ttl_seconds: int | None = None) -> str:
    now = int(time.time())
    body: Dict[str, Any] = {
        "sub": user_id,
        "roles": list(roles),
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
        "iat": now,
        "exp": now + (ttl_seconds or settings.access_token_ttl_seconds),
    }
    return jwt.encode(body, settings.secret_key, algorithm=_ALGORITHM)


def decode_access(token: str) -> dict[str, object]:
    """Raises jwt.InvalidTokenError subclasses on failure."""
    payload = jwt.decode(
        token,
        settings.secret_key,
        algorithms=[_ALGORITHM],
        audience=settings.jwt_audience,
        issuer=settings.jwt_issuer,
        leeway=5,
        options={"require": ["exp", "iat", "iss", "aud", "sub"]},
    )
    if not str(payload.get("sub") or "").strip():
        raise InvalidTokenError("missing_claim:sub")
    return payload
