from .errors import (
    DeliverySendError,
    MessageParseError,
    ProtocolError,
    RelayError,
    RelayValidationError,
    UnrecognizedTypeError,
)
from .registry import ConnectionRecord, Registry
from .broadcaster import Broadcaster
from .messages import Dispatch, MessageType, Scope, route_message
from .session import Relay
from .watchdog import LivenessWatchdog

__all__ = [
    "Broadcaster",
    "ConnectionRecord",
    "DeliverySendError",
    "Dispatch",
    "LivenessWatchdog",
    "MessageParseError",
    "MessageType",
    "ProtocolError",
    "Registry",
    "Relay",
    "RelayError",
    "RelayValidationError",
    "Scope",
    "UnrecognizedTypeError",
    "route_message",
]
