# WebSocket gateway: creates QR logins and pushes their status to the socket.

import logging
import uuid

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from tg_login.core.errors import LoginError
from tg_login.routes.auth import notifier, orchestrator
from tg_login.services.limiter import limiter

logger = logging.getLogger(__name__)

router = APIRouter()

CREATE_EVENT = "telegram.qr.create"
QR_EVENT = "telegram.qr"
STATUS_EVENT = "telegram.qr.status"
ERROR_EVENT = "telegram.qr.error"


@router.websocket("/ws")
async def telegram_gateway(websocket: WebSocket):
    await websocket.accept()
    socket_id = str(uuid.uuid4())
    host = websocket.client.host if websocket.client else "unknown"

    async def push_status(data: dict) -> None:
        await websocket.send_json({"event": STATUS_EVENT, "data": data})

    try:
        while True:
            try:
                message = await websocket.receive_json()
            except ValueError:
                await websocket.send_json({"event": ERROR_EVENT, "data": {"detail": "Messages must be JSON"}})
                continue
            event = message.get("event") if isinstance(message, dict) else None

            if event != CREATE_EVENT:
                await websocket.send_json({"event": ERROR_EVENT, "data": {"detail": f"Unknown event: {event}"}})
                continue

            if not limiter.allow(host):
                await websocket.send_json({"event": ERROR_EVENT, "data": {"detail": "Too many login attempts. Please wait."}})
                continue

            try:
                created = await orchestrator.create_login_attempt(socket_id)
            except (LoginError, ValueError) as e:
                await websocket.send_json({"event": ERROR_EVENT, "data": {"detail": str(e)}})
                continue

            await websocket.send_json({
                "event": QR_EVENT,
                "data": {
                    "login_id": created.login_id,
                    "login_url": created.login_url,
                    "expires_at": created.expires_at.isoformat(),
                },
            })
            notifier.start(socket_id, created.login_id, push_status)
    except WebSocketDisconnect:
        logger.info(f"Socket disconnected: socket_id={socket_id}")
    finally:
        # The login keeps running; only the pushes stop
        notifier.stop(socket_id)
