"""Inbound message dispatch for the classroom relay.

``route_message`` is pure: it turns one parsed client message into a
``Dispatch`` (an outbound event plus who should receive it) and never
touches the registry or the network.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from .errors import MessageParseError, UnrecognizedTypeError
from .registry import ConnectionRecord

CONNECTED_MESSAGE = "WebSocket接続が確立されました"
PROCESSING_FAILED_MESSAGE = "メッセージの処理に失敗しました"


class MessageType(str, Enum):
    PING = "ping"
    PROGRESS_UPDATE = "progress_update"
    HELP_REQUEST = "help_request"
    HELP_RESOLVE = "help_resolve"
    ACTIVITY = "activity"


class Scope(str, Enum):
    SENDER = "sender"
    CLASSROOM = "classroom"
    TEACHERS = "teachers"


TEACHER_ROLE = "teacher"


class Event(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class Connected(Event):
    type: Literal["connected"] = "connected"
    message: str = CONNECTED_MESSAGE
    class_code: str
    client_count: int


class Pong(Event):
    type: Literal["pong"] = "pong"


class ErrorEvent(Event):
    type: Literal["error"] = "error"
    message: str


class ProgressUpdated(Event):
    type: Literal["progress_updated"] = "progress_updated"
    student_id: Any = None
    curriculum_id: Any = None
    course_id: Any = None
    card_id: Any = None
    status: Any = None
    understanding_level: Any = None
    timestamp: str


class HelpRequested(Event):
    type: Literal["help_requested"] = "help_requested"
    student_id: Any = None
    student_name: Any = None
    curriculum_id: Any = None
    card_id: Any = None
    card_title: Any = None
    help_type: Any = None
    timestamp: str


class HelpResolved(Event):
    type: Literal["help_resolved"] = "help_resolved"
    student_id: Any = None
    timestamp: str


class ActivityUpdated(Event):
    type: Literal["activity_updated"] = "activity_updated"
    student_id: Any = None
    card_id: Any = None
    timestamp: str


@dataclass(frozen=True)
class Dispatch:
    payload: Dict[str, Any]
    scope: Scope

    @property
    def target_role(self) -> Optional[str]:
        return TEACHER_ROLE if self.scope is Scope.TEACHERS else None


def iso_timestamp(now: Optional[datetime] = None) -> str:
    """UTC ISO-8601 with milliseconds and a ``Z`` suffix."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _fields(data: Mapping[str, Any], timestamp: str) -> Dict[str, Any]:
    body = {k: v for k, v in data.items() if k != "type"}
    body["timestamp"] = timestamp
    return body


def _ping(data: Mapping[str, Any], timestamp: str) -> Dispatch:
    return Dispatch(Pong().to_payload(), Scope.SENDER)


def _progress_update(data: Mapping[str, Any], timestamp: str) -> Dispatch:
    return Dispatch(ProgressUpdated.model_validate(_fields(data, timestamp)).to_payload(), Scope.CLASSROOM)


def _help_request(data: Mapping[str, Any], timestamp: str) -> Dispatch:
    return Dispatch(HelpRequested.model_validate(_fields(data, timestamp)).to_payload(), Scope.TEACHERS)


def _help_resolve(data: Mapping[str, Any], timestamp: str) -> Dispatch:
    return Dispatch(HelpResolved.model_validate(_fields(data, timestamp)).to_payload(), Scope.CLASSROOM)


def _activity(data: Mapping[str, Any], timestamp: str) -> Dispatch:
    return Dispatch(ActivityUpdated.model_validate(_fields(data, timestamp)).to_payload(), Scope.TEACHERS)


_HANDLERS: Dict[MessageType, Callable[[Mapping[str, Any], str], Dispatch]] = {
    MessageType.PING: _ping,
    MessageType.PROGRESS_UPDATE: _progress_update,
    MessageType.HELP_REQUEST: _help_request,
    MessageType.HELP_RESOLVE: _help_resolve,
    MessageType.ACTIVITY: _activity,
}

_missing = set(MessageType) - set(_HANDLERS)
if _missing:
    raise RuntimeError(f"relay message types without a handler: {sorted(m.value for m in _missing)}")


def parse_message(raw: str) -> Dict[str, Any]:
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise MessageParseError(PROCESSING_FAILED_MESSAGE) from exc
    if not isinstance(data, dict):
        raise MessageParseError(PROCESSING_FAILED_MESSAGE)
    return data


def route_message(
    data: Mapping[str, Any],
    record: Optional[ConnectionRecord] = None,
    now: Optional[datetime] = None,
) -> Dispatch:
    type_name = data.get("type")
    try:
        message_type = MessageType(type_name)
    except ValueError:
        raise UnrecognizedTypeError(type_name) from None
    return _HANDLERS[message_type](data, iso_timestamp(now))
