"""FastAPI application entrypoint."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI

from abuseguard.abuse import configure as configure_abuse
from abuseguard.abuse import configure_postgres as configure_abuse_postgres
from abuseguard.abuse import router as abuse_router
from abuseguard.abuse import spawn_workers as spawn_abuse_workers
from abuseguard.abuse.domain.policy import load_policy
from abuseguard.abuse.infra.ledger_repo import ensure_schema
from abuseguard.api import ops
from abuseguard.infra import postgres
from abuseguard.infra.redis import redis_client
from abuseguard.obs import init as obs_init
from abuseguard.settings import settings

logger = logging.getLogger(__name__)

_DEFAULT_POLICY_PATH = Path(__file__).resolve().parent.parent / "config" / "abuse_policy.yml"


def _policy_path() -> str | None:
	if settings.abuse_policy_path:
		return settings.abuse_policy_path
	if _DEFAULT_POLICY_PATH.exists():
		return str(_DEFAULT_POLICY_PATH)
	return None


@asynccontextmanager
async def lifespan(app: FastAPI):
	policy_path = _policy_path()
	use_postgres = settings.abuse_ledger_backend == "postgres"
	if use_postgres:
		pool = await postgres.init_pool()
		await ensure_schema(pool)
		configure_abuse_postgres(
			pool,
			redis_client,
			policy_path=policy_path,
			frontend_url=settings.abuse_frontend_url,
		)
	else:
		configure_abuse(
			policy=load_policy(policy_path) if policy_path else None,
			redis_proxy=redis_client,
			frontend_url=settings.abuse_frontend_url,
		)
	logger.info(
		"abuse engine configured",
		extra={"ledger_backend": settings.abuse_ledger_backend, "policy_path": policy_path},
	)
	worker_tasks: list[asyncio.Task] = []
	if settings.abuse_workers_enabled:
		worker_tasks.extend(
			spawn_abuse_workers(
				relay_interval=settings.abuse_relay_interval_seconds,
				reactor_consumer=settings.abuse_reactor_consumer,
				reactor_block_ms=settings.abuse_reactor_block_ms,
				reactor_max_attempts=settings.abuse_reactor_max_attempts,
			)
		)
	else:
		logger.warning(
			"abuse workers disabled; suspended accounts will not be reinstated by this process",
			extra={"setting": "ABUSE_WORKERS_ENABLED"},
		)
	try:
		yield
	finally:
		if worker_tasks:
			for task in worker_tasks:
				task.cancel()
			await asyncio.gather(*worker_tasks, return_exceptions=True)
		if use_postgres:
			await postgres.close_pool()


app = FastAPI(title="Abuse Guard", lifespan=lifespan)
obs_init(app)

app.include_router(ops.router)
app.include_router(abuse_router)
