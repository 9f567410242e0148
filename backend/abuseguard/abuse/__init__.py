"""Abuse engine integration helpers exposed to the application."""

from abuseguard.abuse.api import router
from abuseguard.abuse.domain.container import configure, configure_postgres
from abuseguard.abuse.workers.runner import spawn_workers

__all__ = ["router", "configure", "configure_postgres", "spawn_workers"]
