"""Worker that turns elapsed suspension markers into change-feed events."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from abuseguard.abuse.domain.suspensions import SuspensionMarkers

logger = logging.getLogger(__name__)


@dataclass
class ExpiryRelay:
    """Publishes an ``expired`` event for each due marker that storage has dropped."""

    markers: SuspensionMarkers
    batch_size: int = 100

    async def run_once(self, *, now: datetime | None = None) -> int:
        total = 0
        while True:
            relayed = await self.markers.relay_due(now=now, limit=self.batch_size)
            total += relayed
            if relayed < self.batch_size:
                return total
