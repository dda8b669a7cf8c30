# Centralised application configuration
# (environment variables, constants, timeouts).

import os


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    APP_NAME = "Telegram QR Login"

    # Telegram application credentials (https://my.telegram.org)
    TG_API_ID = os.getenv("TG_API_ID")
    TG_API_HASH = os.getenv("TG_API_HASH")
    LOGIN_URL_SCHEME = os.getenv("LOGIN_URL_SCHEME", "tg")

    LOGIN_TTL_SECONDS = int(os.getenv("LOGIN_TTL_SECONDS", "60"))  # pending / scanned
    SUCCESS_TTL_SECONDS = int(os.getenv("SUCCESS_TTL_SECONDS", "300"))  # 5 Minutes grace after success

    # "memory" or "redis"
    STORE_BACKEND = os.getenv("STORE_BACKEND", "memory")
    REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

    STATUS_POLL_INTERVAL_MS = int(os.getenv("STATUS_POLL_INTERVAL_MS", "1000"))
    REAPER_INTERVAL_SECONDS = int(os.getenv("REAPER_INTERVAL_SECONDS", "5"))

    RATE_LIMIT_ENABLED = _flag("RATE_LIMIT_ENABLED", "true")
    MAX_REQUESTS_PER_MINUTE = int(os.getenv("MAX_REQUESTS_PER_MINUTE", "10"))

    JWT_SECRET = os.getenv("JWT_SECRET", "dev-change-me")
    JWT_ISSUER = os.getenv("JWT_ISSUER", "tg-qr-login")
    JWT_AUDIENCE = os.getenv("JWT_AUDIENCE", "tg-qr-login-client")
    ACCESS_TOKEN_TTL_SECONDS = int(os.getenv("ACCESS_TOKEN_TTL_SECONDS", "900"))

    # Empty string disables the CSV outcome log
    EVENT_LOG_FILE = os.getenv("EVENT_LOG_FILE", "login_events.csv")

    def api_credentials(self) -> tuple[int, str]:
        if not self.TG_API_ID or not self.TG_API_HASH:
            raise ValueError("TG_API_ID and TG_API_HASH must be set")
        return int(self.TG_API_ID), self.TG_API_HASH


settings = Settings()
