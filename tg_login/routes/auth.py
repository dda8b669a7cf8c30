# QR login routes: attempt creation and status polling.

import logging
from datetime import datetime

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from tg_login.core.errors import LoginError
from tg_login.db import store
from tg_login.services.limiter import limiter
from tg_login.services.notifier import StatusNotifier, status_payload
from tg_login.services.orchestrator import CreatedLogin, LoginOrchestrator
from tg_login.services.qr_service import QRService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])
orchestrator = LoginOrchestrator(store)
notifier = StatusNotifier(orchestrator)


class CreateLoginResp(BaseModel):
    login_id: str
    login_url: str
    expires_at: datetime
    qr_png: str


class PollResp(BaseModel):
    login_id: str
    status: str
    user_id: str | None = None
    access_token: str | None = None


def client_host(request: Request) -> str:
    return request.client.host if request.client else "unknown"


async def create_login(caller_id: str) -> CreatedLogin:
    """Starts an attempt, mapping failures to HTTP errors."""
    try:
        return await orchestrator.create_login_attempt(caller_id)
    except ValueError as e:
        logger.error(f"Login unavailable: {e}")
        raise HTTPException(status_code=500, detail="Telegram API credentials are not configured")
    except LoginError as e:
        raise HTTPException(status_code=502, detail=f"Telegram login failed: {e}")


@router.post("/qr", response_model=CreateLoginResp)
async def create_qr_login(request: Request):
    host = client_host(request)
    limiter.check(host)

    created = await create_login(f"http:{host}")
    return CreateLoginResp(
        login_id=created.login_id,
        login_url=created.login_url,
        expires_at=created.expires_at,
        qr_png=QRService.png_base64(created.login_url),
    )


@router.get("/poll/{login_id}", response_model=PollResp, response_model_exclude_none=True)
async def poll(login_id: str):
    # Desktop polls for the attempt's status; a vanished entry reads as expired
    status = await orchestrator.get_attempt_status(login_id)
    return PollResp(**status_payload(login_id, status))
