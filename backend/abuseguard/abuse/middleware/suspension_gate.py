"""Request gate that locks suspended accounts out of authenticated routes."""

from __future__ import annotations

from fastapi import Depends, HTTPException, status

from abuseguard.abuse.domain.container import get_enforcer
from abuseguard.abuse.domain.suspensions import SuspensionEnforcer
from abuseguard.infra.auth import AuthenticatedUser, get_current_user
from abuseguard.obs import metrics


class SuspensionGate:
    """Rejects callers holding a live suspension marker."""

    def __init__(self, enforcer: SuspensionEnforcer) -> None:
        self._enforcer = enforcer

    async def enforce(self, user_id: str) -> None:
        active = await self._enforcer.get_active_suspension(user_id)
        if active is None:
            return
        metrics.inc_gate_block()
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "code": "account_suspended",
                "suspended_until": active.suspended_until.isoformat(),
                "reason": active.reason,
            },
        )


async def require_active_account(user: AuthenticatedUser = Depends(get_current_user)) -> AuthenticatedUser:
    """FastAPI dependency: the authenticated caller, unless suspended."""

    await SuspensionGate(get_enforcer()).enforce(user.id)
    return user
