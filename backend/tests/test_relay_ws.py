import asyncio
from contextlib import ExitStack
from types import SimpleNamespace

import pytest
from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient
from starlette.testclient import WebSocketDenialResponse

from freepace.main import app
from freepace.realtime import ConnectionRecord, Relay
from freepace.routers.relay import relay_session

from conftest import FakeConnection, wait_for


@pytest.fixture
def relay():
    app.state.relay = Relay()
    return app.state.relay


@pytest.fixture
def client(relay):
    with TestClient(app) as c:
        yield c


def _open(stack, client, query):
    ws = stack.enter_context(client.websocket_connect(f"/ws?{query}"))
    greeting = ws.receive_json()
    assert greeting["type"] == "connected"
    return ws


def test_plain_http_gets_426(client):
    resp = client.get("/ws?classCode=A")
    assert resp.status_code == 426
    assert resp.text == "Expected Upgrade: websocket"


def test_missing_class_code_is_rejected(client, relay):
    with pytest.raises(WebSocketDenialResponse) as exc:
        with client.websocket_connect("/ws?role=teacher"):
            pass
    assert exc.value.status_code == 400
    assert exc.value.text == "Missing classCode parameter"
    assert relay.registry.size() == 0


def test_connect_and_disconnect_update_registry(client, relay):
    with client.websocket_connect("/ws?classCode=A&userId=4&role=student") as ws:
        greeting = ws.receive_json()
        assert greeting == {
            "type": "connected",
            "message": "WebSocket接続が確立されました",
            "classCode": "A",
            "clientCount": 1,
        }
        (record,) = list(relay.registry)
        assert (record.classroom_id, record.user_id, record.role) == ("A", 4, "student")
    assert wait_for(lambda: relay.registry.size() == 0)


def test_help_request_reaches_teacher_in_same_classroom_only(client, relay):
    with ExitStack() as stack:
        student = _open(stack, client, "classCode=A&userId=1&role=student")
        teacher = _open(stack, client, "classCode=A&userId=2&role=teacher")
        other = _open(stack, client, "classCode=B&userId=3&role=teacher")
        student.send_json({"type": "help_request", "studentId": 1, "studentName": "たろう", "cardId": 10, "helpType": "teacher"})
        event = teacher.receive_json()
        assert event["type"] == "help_requested"
        assert event["studentName"] == "たろう"
        assert event["timestamp"].endswith("Z")

        # Per-connection order is preserved, so the next thing each sees is its own pong.
        for ws in (student, other):
            ws.send_json({"type": "ping"})
            assert ws.receive_json() == {"type": "pong"}


def test_progress_update_reaches_everyone_in_classroom(client):
    with ExitStack() as stack:
        student = _open(stack, client, "classCode=A&role=student")
        teacher = _open(stack, client, "classCode=A&role=teacher")
        student.send_json({"type": "progress_update", "studentId": 7, "status": "completed"})
        for ws in (student, teacher):
            event = ws.receive_json()
            assert event["type"] == "progress_updated"
            assert event["studentId"] == 7
            assert event["status"] == "completed"
            assert "timestamp" in event


def test_ping_and_bad_messages_keep_connection_open(client, relay):
    with client.websocket_connect("/ws?classCode=A") as ws:
        ws.receive_json()
        ws.send_json({"type": "ping"})
        assert ws.receive_json() == {"type": "pong"}

        ws.send_text("{not json")
        assert ws.receive_json() == {"type": "error", "message": "メッセージの処理に失敗しました"}

        ws.send_json({"type": "teleport"})
        assert ws.receive_json() == {"type": "error", "message": "Unknown message type: teleport"}

        assert relay.registry.size() == 1


def test_half_open_peer_is_still_counted(client, relay):
    # A peer that vanished without a close frame stays registered; no watchdog runs by default.
    ghost = ConnectionRecord(FakeConnection("ghost"), "A", 99, "student")
    relay.registry.add(ghost)
    with client.websocket_connect("/ws?classCode=A") as ws:
        assert ws.receive_json()["clientCount"] == 2
    assert wait_for(lambda: relay.registry.size() == 1)
    assert ghost in relay.registry


def test_info_reports_relay_clients(client):
    with client.websocket_connect("/ws?classCode=A") as ws:
        ws.receive_json()
        assert client.get("/info").json()["relay_clients"] == 1


class _BrokenSocket:
    """Minimal WebSocket stand-in whose transport fails."""

    def __init__(self, relay, *, fail_receive=True, fail_send=False):
        self.app = SimpleNamespace(state=SimpleNamespace(relay=relay))
        self.query_params = {"classCode": "A", "role": "student"}
        self.fail_receive = fail_receive
        self.fail_send = fail_send
        self.sent = []

    async def accept(self):
        pass

    async def send_text(self, data):
        if self.fail_send:
            raise RuntimeError("socket closed")
        self.sent.append(data)

    async def receive_text(self):
        if self.fail_receive:
            raise RuntimeError("transport reset")
        raise WebSocketDisconnect(1000)


def test_transport_error_removes_record():
    relay = Relay()
    ws = _BrokenSocket(relay)
    asyncio.run(relay_session(ws))
    assert len(ws.sent) == 1
    assert relay.registry.size() == 0


def test_failed_greeting_through_session_removes_record():
    relay = Relay()
    asyncio.run(relay_session(_BrokenSocket(relay, fail_send=True)))
    assert relay.registry.size() == 0
