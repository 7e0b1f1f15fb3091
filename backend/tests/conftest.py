from __future__ import annotations

import json
import os
import socket
import time
from typing import Any, Callable, List, Optional

import pytest

# Keep the app on a throwaway database and away from a developer's Gemini key.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["GEMINI_API_KEY"] = ""
os.environ.setdefault("RELAY_LIVENESS_INTERVAL_SECONDS", "0")


class NetworkBlockedError(RuntimeError):
    pass


def _blocked(*_args: Any, **_kwargs: Any) -> Any:
    raise NetworkBlockedError("Network access is disabled during tests.")


@pytest.fixture(autouse=True)
def _disable_network(monkeypatch: pytest.MonkeyPatch) -> None:
    """Prevent accidental outbound network calls in unit tests."""
    monkeypatch.setattr(socket, "create_connection", _blocked)
    monkeypatch.setattr(socket, "getaddrinfo", _blocked)


class FakeConnection:
    """Stands in for a WebSocket: records what it is sent."""

    def __init__(self, name: str = "", *, fail: bool = False) -> None:
        self.name = name
        self.fail = fail
        self.sent: List[str] = []
        self.closed_with: Optional[int] = None

    async def send_text(self, data: str) -> None:
        if self.fail:
            raise ConnectionResetError(f"{self.name} is gone")
        self.sent.append(data)

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> None:
        self.closed_with = code

    def messages(self) -> List[Any]:
        return [json.loads(m) for m in self.sent]


def wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()
