from __future__ import annotations

import asyncio
import logging
import time
from typing import Optional

from .registry import Registry

logger = logging.getLogger(__name__)

GOING_AWAY = 1001


class LivenessWatchdog:
    """Evicts connections that have sent nothing for ``timeout_seconds``.

    Clients keep themselves alive with ``ping`` messages; any inbound frame
    counts as activity.
    """

    def __init__(self, registry: Registry, timeout_seconds: float) -> None:
        self.registry = registry
        self.timeout_seconds = timeout_seconds

    async def reap(self, now: Optional[float] = None) -> int:
        now = time.monotonic() if now is None else now
        reaped = 0
        for record in self.registry:
            if now - record.last_seen <= self.timeout_seconds:
                continue
            self.registry.remove(record)
            reaped += 1
            try:
                await record.connection.close(code=GOING_AWAY)
            except Exception as exc:
                logger.debug("Closing stale connection failed: %s", exc)
        if reaped:
            logger.info("Reaped %d stale relay connection(s); %d remain", reaped, self.registry.size())
        return reaped

    async def run(self, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                await self.reap()
            except Exception:
                logger.exception("Liveness sweep failed")
