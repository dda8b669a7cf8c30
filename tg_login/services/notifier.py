# Watches attempt state and pushes changes to the caller that started the login.

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional

from tg_login.core.config import Settings, settings
from tg_login.core.security import create_access_token
from tg_login.models import LoginStatus
from tg_login.services.orchestrator import AttemptStatus, LoginOrchestrator

logger = logging.getLogger(__name__)

Send = Callable[[dict], Awaitable[None]]


def status_payload(login_id: str, status: Optional[AttemptStatus]) -> dict:
    """Shape pushed to callers. A missing entry reads as expired."""
    if status is None:
        return {"login_id": login_id, "status": LoginStatus.EXPIRED.value}

    payload = {"login_id": login_id, "status": status.status.value}
    if status.user_id is not None:
        payload["user_id"] = status.user_id
    if status.status == LoginStatus.SUCCESS and status.user_id is not None:
        payload["access_token"] = create_access_token(status.user_id, extra={"login_id": login_id})
    return payload


class StatusNotifier:
    def __init__(self, orchestrator: LoginOrchestrator, config: Settings = settings):
        self._orchestrator = orchestrator
        self._config = config
        # caller_id -> watcher task
        self._watchers: Dict[str, asyncio.Task] = {}

    async def watch(self, login_id: str, send: Send) -> None:
        interval = self._config.STATUS_POLL_INTERVAL_MS / 1000
        last = None
        while True:
            status = await self._orchestrator.get_attempt_status(login_id)
            if status is None:
                await send(status_payload(login_id, None))
                return

            if status != last:
                await send(status_payload(login_id, status))
                last = status
            if status.status == LoginStatus.SUCCESS:
                return

            await asyncio.sleep(interval)

    def start(self, caller_id: str, login_id: str, send: Send) -> asyncio.Task:
        self.stop(caller_id)
        task = asyncio.create_task(self._run(caller_id, login_id, send))
        self._watchers[caller_id] = task
        return task

    async def _run(self, caller_id: str, login_id: str, send: Send) -> None:
        try:
            await self.watch(login_id, send)
        except Exception as e:
            # Caller went away mid-send; the login itself carries on
            logger.info(f"Status watcher stopped: caller_id={caller_id}, login_id={login_id}, reason={e}")
        finally:
            if self._watchers.get(caller_id) is asyncio.current_task():
                del self._watchers[caller_id]

    def stop(self, caller_id: str) -> None:
        task = self._watchers.pop(caller_id, None)
        if task is not None and not task.done():
            task.cancel()

    def watching(self, caller_id: str) -> bool:
        return caller_id in self._watchers

    async def close(self) -> None:
        tasks = list(self._watchers.values())
        self._watchers.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
