"""Operations endpoints providing health checks and metrics."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Response, status
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from abuseguard.infra.postgres import get_pool
from abuseguard.infra.redis import redis_client
from abuseguard.settings import settings

router = APIRouter(prefix="", tags=["ops"])


def _resolve_token(x_admin_token: Optional[str], authorization: Optional[str]) -> Optional[str]:
	if x_admin_token:
		return x_admin_token
	if authorization and authorization.lower().startswith("bearer "):
		return authorization.split(" ", 1)[1]
	return None


async def require_metrics_access(
	X_Admin_Token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
	authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> None:
	if settings.obs_metrics_public:
		return
	token = settings.obs_admin_token
	if not token:
		raise HTTPException(status.HTTP_403_FORBIDDEN, detail="admin_token_not_configured")
	if _resolve_token(X_Admin_Token, authorization) != token:
		raise HTTPException(status.HTTP_403_FORBIDDEN, detail="forbidden")


@router.get("/health/live")
async def health_live() -> dict[str, str]:
	return {"status": "ok", "service": settings.service_name, "commit": settings.git_commit}


@router.get("/health/ready")
async def health_ready() -> Response:
	checks: dict[str, str] = {}
	try:
		await redis_client.ping()
		checks["redis"] = "ok"
	except Exception:  # noqa: BLE001 - readiness reports the failure instead of raising
		checks["redis"] = "error"
	if settings.abuse_ledger_backend == "postgres":
		try:
			pool = await get_pool()
			async with pool.acquire() as conn:
				await conn.execute("SELECT 1")
			checks["postgres"] = "ok"
		except Exception:  # noqa: BLE001 - readiness reports the failure instead of raising
			checks["postgres"] = "error"
	ready = all(value == "ok" for value in checks.values())
	return JSONResponse(
		content={"status": "ok" if ready else "degraded", "checks": checks},
		status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
	)


@router.get("/metrics")
async def prometheus_metrics(_: None = Depends(require_metrics_access)) -> Response:
	payload = generate_latest()
	return Response(content=payload, media_type=CONTENT_TYPE_LATEST)
