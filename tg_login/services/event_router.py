import asyncio
import logging
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

"""EventRouter: forwards "login token renewed" updates from a client handle to the orchestrator"""


class EventRouter:
    def __init__(
        self,
        dispatch: Callable[[str], Awaitable[None]],
        is_live: Callable[[str, Any], bool],
    ):
        self._dispatch = dispatch
        self._is_live = is_live
        self._tasks: set[asyncio.Task] = set()

    def subscribe(self, login_id: str, handle: Any) -> None:
        """
        Registers the one UpdateLoginToken handler for this handle.
        The handler only schedules work, so the client's update loop is never blocked.
        """
        async def _on_login_token(update) -> None:
            self.route(login_id, handle)

        handle.add_event_handler(_on_login_token)
        logger.debug(f"Subscribed login token updates: login_id={login_id}")

    def route(self, login_id: str, handle: Any) -> asyncio.Task | None:
        if not self._is_live(login_id, handle):
            logger.info(f"Dropping token update for torn-down handle: login_id={login_id}")
            return None

        task = asyncio.create_task(self._dispatch(login_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Waits for every dispatched continuation to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
