import logging

from fastapi import APIRouter, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import PlainTextResponse

from ..realtime import Relay, RelayError
from ..realtime.session import parse_user_id, require_class_code, require_upgrade

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


def get_relay(request: Request) -> Relay:
    return request.app.state.relay


@router.get("/ws", include_in_schema=False)
async def relay_requires_upgrade(request: Request):
    # Plain HTTP never reaches the WebSocket route below
    try:
        require_upgrade(request.headers.get("upgrade"))
        require_class_code(request.query_params.get("classCode"))
    except RelayError as err:
        return PlainTextResponse(err.message, status_code=err.status_code)
    return PlainTextResponse("Expected Upgrade: websocket", status_code=426)


async def _deny(websocket: WebSocket, err: RelayError) -> None:
    try:
        await websocket.send_denial_response(PlainTextResponse(err.message, status_code=err.status_code))
    except RuntimeError:
        # Server lacks the denial-response extension
        await websocket.close(code=1008, reason=err.message)


@router.websocket("/ws")
async def relay_session(websocket: WebSocket):
    relay: Relay = websocket.app.state.relay
    params = websocket.query_params
    try:
        class_code = require_class_code(params.get("classCode"))
    except RelayError as err:
        await _deny(websocket, err)
        return

    await websocket.accept()
    record = None
    try:
        record = await relay.connect(websocket, class_code, parse_user_id(params.get("userId")), params.get("role"))
        while True:
            raw = await websocket.receive_text()
            await relay.handle_text(record, raw)
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("WebSocket error")
    finally:
        if record is not None:
            relay.disconnect(record)
