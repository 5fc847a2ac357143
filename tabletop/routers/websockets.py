from __future__ import annotations

import asyncio
import json
import uuid

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ..cleanup import handle_disconnect
from ..errors import ErrorCode, nack
from ..handlers import NO_ACK, handle_ws_message
from ..logging_config import get_logger
from ..state import ServerState

router = APIRouter(prefix="", tags=["ws"])

logger = get_logger(__name__)


@router.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    """Tabletop session socket.

    Client frames look like ``{"event": "token:move", "data": {...}, "ack": 7}``.
    When ``ack`` is present the handler's reply comes back as
    ``{"type": "ack", "ack": 7, "data": {...}}``. Room updates arrive as
    ``state:patch`` and ``event:new`` messages.
    """
    server: ServerState = ws.app.state.tabletop
    await ws.accept()

    connection_id = uuid.uuid4().hex
    connection = server.hub.register(connection_id, ws)
    writer = asyncio.create_task(connection.pump())
    logger.info("Connected: %s", connection_id)
    connection.push({"type": "hello", "data": {"id": connection_id}})

    try:
        while True:
            message = await ws.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))

            # Binary frames carry no "text" and are rejected like malformed JSON.
            raw = message.get("text")
            try:
                frame = json.loads(raw) if raw is not None else None
            except json.JSONDecodeError:
                frame = None
            if not isinstance(frame, dict):
                connection.push({"type": "error", "data": nack(ErrorCode.BAD_REQUEST)})
                continue

            await handle_ws_message(
                server,
                connection_id,
                frame.get("event"),
                frame.get("data"),
                ack=frame.get("ack", NO_ACK),
            )
    except WebSocketDisconnect:
        logger.info("Disconnected: %s", connection_id)
    except Exception:
        logger.exception("WebSocket error on %s", connection_id)
    finally:
        handle_disconnect(server, connection_id)
        connection.close()
        await writer
