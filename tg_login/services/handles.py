# In-memory map of login_id -> protocol client handle.

import asyncio
from typing import Any, Dict, Optional


class HandleRegistry:
    def __init__(self):
        self._handles: Dict[str, Any] = {}
        self._lock = asyncio.Lock()

    async def add(self, login_id: str, handle: Any) -> None:
        async with self._lock:
            self._handles[login_id] = handle

    async def pop(self, login_id: str) -> Optional[Any]:
        """Removes and returns the handle. Only one caller ever gets it back."""
        async with self._lock:
            return self._handles.pop(login_id, None)

    def get(self, login_id: str) -> Optional[Any]:
        return self._handles.get(login_id)

    def is_live(self, login_id: str, handle: Any) -> bool:
        return self._handles.get(login_id) is handle

    def login_ids(self) -> list[str]:
        return list(self._handles)

    def __len__(self) -> int:
        return len(self._handles)

    def __contains__(self, login_id: str) -> bool:
        return login_id in self._handles
