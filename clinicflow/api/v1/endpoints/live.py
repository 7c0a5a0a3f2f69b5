"""Live updates over a websocket."""

import json
from typing import Any

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from clinicflow.dependencies import Contexts, SessionFactory
from clinicflow.services.live_session import LiveSession

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.websocket("/live")
async def live(websocket: WebSocket, contexts: Contexts, session_factory: SessionFactory) -> None:
    """
    Push access state and list snapshots to the client.

    Client messages: ``{"type": "auth", "access_token"}``,
    ``{"type": "subscribe", "stream", "patient_id"?}``,
    ``{"type": "unsubscribe", "stream", "patient_id"?}`` and
    ``{"type": "sign_out"}``. Every subscription opened on the socket is
    torn down when it closes.
    """
    await websocket.accept()

    async def send(message: dict[str, Any]) -> None:
        await websocket.send_json(message)

    session = LiveSession(send, session_factory, contexts)
    await session.start()
    try:
        while True:
            try:
                message = json.loads(await websocket.receive_text())
            except ValueError:
                message = None
            if not isinstance(message, dict):
                session.reject("Invalid message")
                continue
            await session.handle(message)
    except WebSocketDisconnect:
        logger.info("live_socket_disconnected")
    finally:
        await session.close()
