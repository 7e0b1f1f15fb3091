from __future__ import annotations


class RelayError(Exception):
    """Base class for classroom relay failures.

    ``message`` is what the client is shown; ``status_code`` is only set for
    errors raised before the WebSocket is accepted.
    """

    status_code: int | None = None

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ProtocolError(RelayError):
    status_code = 426


class RelayValidationError(RelayError):
    status_code = 400


class MessageParseError(RelayError):
    pass


class UnrecognizedTypeError(RelayError):
    def __init__(self, type_name: object) -> None:
        super().__init__(f"Unknown message type: {type_name}")
        self.type_name = type_name


class DeliverySendError(RelayError):
    pass
