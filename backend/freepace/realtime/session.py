from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from .broadcaster import Broadcaster
from .errors import ProtocolError, RelayError, RelayValidationError
from .messages import (
    PROCESSING_FAILED_MESSAGE,
    Connected,
    Dispatch,
    ErrorEvent,
    ProgressUpdated,
    Scope,
    iso_timestamp,
    parse_message,
    route_message,
)
from .registry import ConnectionRecord, Registry

logger = logging.getLogger(__name__)


def parse_user_id(value: Optional[str]) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def require_upgrade(upgrade_header: Optional[str]) -> None:
    if upgrade_header is None or upgrade_header.lower() != "websocket":
        raise ProtocolError("Expected Upgrade: websocket")


def require_class_code(class_code: Optional[str]) -> str:
    if not class_code:
        raise RelayValidationError("Missing classCode parameter")
    return class_code


class Relay:
    """Registry, routing and fan-out for one application instance."""

    def __init__(self, registry: Optional[Registry] = None) -> None:
        self.registry = registry or Registry()
        self.broadcaster = Broadcaster(self.registry)

    async def connect(self, connection: Any, class_code: str, user_id: Optional[int] = None, role: Optional[str] = None) -> ConnectionRecord:
        """Registers an accepted connection and greets it."""
        record = ConnectionRecord(connection, class_code, user_id, role or None)
        self.registry.add(record)
        logger.info("Relay connect class=%s user=%s role=%s (clients=%d)", class_code, user_id, role, self.registry.size())
        # Global count, not scoped to the classroom
        greeting = Connected(class_code=class_code, client_count=self.registry.size())
        try:
            await self.broadcaster.send(record, greeting.to_payload())
        except Exception:
            self.registry.remove(record)
            raise
        return record

    def disconnect(self, record: ConnectionRecord) -> None:
        self.registry.remove(record)
        logger.info("WebSocket closed. Remaining clients: %d", self.registry.size())

    async def handle_text(self, record: ConnectionRecord, raw: str) -> None:
        record.touch()
        try:
            data = parse_message(raw)
            dispatch = route_message(data, record)
        except RelayError as err:
            logger.info("Rejected relay message from class=%s: %s", record.classroom_id, err.message)
            await self.reply_error(record, err.message)
            return
        except Exception:
            logger.exception("Message handling error")
            await self.reply_error(record, PROCESSING_FAILED_MESSAGE)
            return
        await self.dispatch(record, dispatch)

    async def dispatch(self, record: ConnectionRecord, dispatch: Dispatch) -> int:
        if dispatch.scope is Scope.SENDER:
            await self.broadcaster.send(record, dispatch.payload)
            return 1
        return await self.broadcaster.broadcast(dispatch.payload, record.classroom_id, dispatch.target_role)

    async def reply_error(self, record: ConnectionRecord, message: str) -> None:
        await self.broadcaster.send(record, ErrorEvent(message=message).to_payload())

    async def publish_progress(self, class_code: str, fields: Dict[str, Any]) -> int:
        """Fans a progress change written over HTTP out to the classroom."""
        event = ProgressUpdated.model_validate({**fields, "timestamp": iso_timestamp()})
        return await self.broadcaster.broadcast(event.to_payload(), class_code)
