# Access tokens handed to a caller once its QR login succeeds.
import time
import jwt
from tg_login.core.config import settings


def create_access_token(sub: str, extra: dict | None = None, exp_seconds: int | None = None) -> str:
    now = int(time.time())
    if exp_seconds is None:
        exp_seconds = settings.ACCESS_TOKEN_TTL_SECONDS
    payload = {
        "iss": settings.JWT_ISSUER,
        "aud": settings.JWT_AUDIENCE,
        "iat": now,
        "nbf": now,
        "exp": now + exp_seconds,
        "sub": sub,
    }

    if extra:
        payload.update(extra)
    return jwt.encode(payload, settings.JWT_SECRET, algorithm="HS256")


def decode_access_token(token: str) -> dict:
    return jwt.decode(
        token,
        settings.JWT_SECRET,
        algorithms=["HS256"],
        audience=settings.JWT_AUDIENCE,
        issuer=settings.JWT_ISSUER,
    )
