import time
from fastapi import HTTPException
from tg_login.core.config import settings


class RateLimiter:
    def __init__(self):
        """
        Sliding one-minute window of login attempt creations per client host
        """
        self._requests = {}  # Stores host -> [timestamp1, timestamp2...]

    def allow(self, client_host: str) -> bool:
        if not settings.RATE_LIMIT_ENABLED:
            return True

        now = time.time()

        # Filter out requests older than 1 minute
        recent = [t for t in self._requests.get(client_host, []) if now - t < 60]

        if len(recent) >= settings.MAX_REQUESTS_PER_MINUTE:
            self._requests[client_host] = recent
            return False

        recent.append(now)
        self._requests[client_host] = recent
        return True

    def check(self, client_host: str):
        """
        check Enforces rate limiting, raising 429 for HTTP callers
        """
        if not self.allow(client_host):
            raise HTTPException(status_code=429, detail="Too many login attempts. Please wait.")

    def reset(self):
        self._requests.clear()


limiter = RateLimiter()
