# FastAPI application entry point that initialises
# the app, registers API routes and runs the handle reaper.

import asyncio
import contextlib
import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import HTMLResponse

from tg_login.core.config import settings
from tg_login.core.errors import StoreError
from tg_login.db import RedisStore, store
from tg_login.routes.auth import client_host, create_login, notifier, orchestrator, router as auth_router
from tg_login.routes.ws import router as ws_router
from tg_login.services.limiter import limiter
from tg_login.services.qr_service import QRService

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def reap_forever(interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        try:
            await orchestrator.reap_abandoned()
        except StoreError as e:
            logger.error(f"Reaper pass failed: {e}")
        except Exception:
            logger.exception("Reaper pass failed unexpectedly")


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI):
    reaper = asyncio.create_task(reap_forever(settings.REAPER_INTERVAL_SECONDS))
    try:
        yield
    finally:
        reaper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await reaper
        await notifier.close()
        await orchestrator.shutdown()
        if isinstance(store, RedisStore):
            await store.close()


app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)
app.include_router(auth_router)
app.include_router(ws_router)


@app.get("/health")
def health():
    return {"ok": True}


@app.get("/login", response_class=HTMLResponse)
async def login_page(request: Request):
    host = client_host(request)
    limiter.check(host)

    try:
        created = await create_login(f"page:{host}")
    except HTTPException as e:
        return HTMLResponse(
            content=f"""
            <html>
            <head><title>Login Unavailable</title></head>
            <body style="font-family: Arial; text-align: center; padding: 2rem;">
                <h1 style="color: #dc3545;">✗ Login Unavailable</h1>
                <p>{e.detail}</p>
            </body>
            </html>
            """,
            status_code=e.status_code,
        )

    qr_image_uri = QRService.data_uri(created.login_url)

    # HTML page with QR code and polling
    html_content = f"""
    <!DOCTYPE html>
    <html>
    <head>
        <title>Telegram QR Login</title>
        <style>
            body {{
                font-family: Arial, sans-serif;
                display: flex;
                flex-direction: column;
                align-items: center;
                justify-content: center;
                min-height: 100vh;
                margin: 0;
                background: #f5f5f5;
            }}
            .container {{
                background: white;
                padding: 2rem;
                border-radius: 10px;
                box-shadow: 0 2px 10px rgba(0,0,0,0.1);
                text-align: center;
            }}
            .success {{ color: #28a745; }}
            .expired, .error {{ color: #dc3545; }}
        </style>
    </head>
    <body>
        <div class="container">
            <h1>Log in with Telegram</h1>
            <p>Open Telegram on your phone, go to Settings &gt; Devices &gt; Link Desktop Device and scan this code.</p>
            <div id="qr-code">
                <img src="{qr_image_uri}" alt="QR Code" />
            </div>
            <div id="status" class="pending">Waiting for scan...</div>
        </div>
        <script>
            const loginId = '{created.login_id}';
            const pollInterval = {settings.STATUS_POLL_INTERVAL_MS};
            let pollTimer = null;

            function updateStatus(status, message) {{
                const statusEl = document.getElementById('status');
                statusEl.className = status;
                statusEl.textContent = message;
            }}

            async function pollStatus() {{
                try {{
                    const response = await fetch(`/auth/poll/${{loginId}}`);
                    const data = await response.json();

                    if (data.status === 'scanned') {{
                        updateStatus('scanned', 'Scanned, confirming login...');
                    }} else if (data.status === 'success') {{
                        updateStatus('success', '✓ Logged in as Telegram user ' + data.user_id);
                        clearInterval(pollTimer);
                    }} else if (data.status === 'expired') {{
                        updateStatus('expired', '✗ Login expired. Please refresh the page.');
                        clearInterval(pollTimer);
                    }}
                }} catch (error) {{
                    console.error('Poll error:', error);
                    updateStatus('error', '✗ Error checking status');
                }}
            }}

            pollTimer = setInterval(pollStatus, pollInterval);
            pollStatus();
        </script>
    </body>
    </html>
    """

    return HTMLResponse(content=html_content)
