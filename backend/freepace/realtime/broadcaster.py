from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

from .errors import DeliverySendError
from .registry import ConnectionRecord, Registry

logger = logging.getLogger(__name__)


def serialize(payload: Dict[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False)


class Broadcaster:
    """Fire-and-forget fan-out over a registry.

    A peer that fails to receive is evicted; the rest of the fan-out carries on.
    """

    def __init__(self, registry: Registry) -> None:
        self.registry = registry

    async def _deliver(self, record: ConnectionRecord, message: str) -> None:
        try:
            await record.connection.send_text(message)
        except Exception as exc:
            raise DeliverySendError(f"send to {record.classroom_id}/{record.user_id} failed: {exc}") from exc

    async def send(self, record: ConnectionRecord, payload: Dict[str, Any]) -> None:
        await record.connection.send_text(serialize(payload))

    async def broadcast(self, payload: Dict[str, Any], classroom_id: str, target_role: Optional[str] = None) -> int:
        message = serialize(payload)
        delivered = 0
        for record in self.registry.members(classroom_id, target_role):
            try:
                await self._deliver(record, message)
            except DeliverySendError as err:
                logger.warning("Broadcast error: %s", err.message)
                self.registry.remove(record)
                continue
            delivered += 1
        return delivered
