"""Utilities for wiring abuse workers into an event loop."""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable, Optional

from abuseguard.abuse.domain.container import get_accounts, get_markers
from abuseguard.abuse.workers.expiry_reactor import ExpiryReactor
from abuseguard.abuse.workers.expiry_relay import ExpiryRelay

logger = logging.getLogger(__name__)


async def _run_forever(worker, delay: float) -> None:
    while True:
        try:
            await worker.run_once()
        except asyncio.CancelledError:
            raise
        except Exception:  # noqa: BLE001 - worker loop must survive transient failures
            logger.exception("abuse worker iteration failed", extra={"worker": type(worker).__name__})
        await asyncio.sleep(delay)


def spawn_workers(
    *,
    relay_interval: float = 1.0,
    reactor_consumer: str = "reactor-1",
    reactor_block_ms: int = 5000,
    reactor_max_attempts: int = 5,
    loop: Optional[asyncio.AbstractEventLoop] = None,
) -> Iterable[asyncio.Task]:
    """Create asyncio tasks for the expiry relay and the expiry reactor."""

    event_loop = loop or asyncio.get_event_loop()
    markers = get_markers()
    relay = ExpiryRelay(markers=markers)
    reactor = ExpiryReactor(
        markers=markers,
        accounts=get_accounts(),
        consumer=reactor_consumer,
        block_ms=reactor_block_ms,
        max_attempts=reactor_max_attempts,
    )
    return [
        event_loop.create_task(_run_forever(relay, relay_interval), name="abuse-expiry-relay"),
        event_loop.create_task(reactor.run_forever(), name="abuse-expiry-reactor"),
    ]
