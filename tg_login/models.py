# Login attempt (ephemeral) and user session (durable) records.

import time
from dataclasses import dataclass, asdict, field
from enum import Enum

from tg_login.core.errors import ValidationError


class LoginStatus(str, Enum):
    PENDING = "pending"
    SCANNED = "scanned"
    SUCCESS = "success"
    EXPIRED = "expired"
    FAILED = "failed"


# States an attempt may still be driven forward from
OPEN_STATUSES = (LoginStatus.PENDING, LoginStatus.SCANNED)


def login_key(login_id: str) -> str:
    return f"tg:login:{login_id}"


def user_key(user_id: str) -> str:
    return f"tg:user:{user_id}"


@dataclass
class LoginAttempt:
    caller_id: str
    status: LoginStatus = LoginStatus.PENDING
    session: str | None = None
    user_id: str | None = None
    created_at: int = field(default_factory=lambda: int(time.time()))

    def __post_init__(self):
        self.status = LoginStatus(self.status)
        if (self.session is None) != (self.user_id is None):
            raise ValidationError("session and user_id must be set together")

    def to_dict(self) -> dict:
        data = asdict(self)
        data["status"] = self.status.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "LoginAttempt":
        try:
            return cls(
                caller_id=data["caller_id"],
                status=data.get("status", LoginStatus.PENDING),
                session=data.get("session"),
                user_id=data.get("user_id"),
                created_at=data.get("created_at", int(time.time())),
            )
        except (KeyError, ValueError) as e:
            raise ValidationError(f"Malformed login attempt: {e}") from e


@dataclass
class Identity:
    id: str
    first_name: str
    last_name: str | None = None
    username: str | None = None
    phone: str | None = None


@dataclass
class UserSession:
    user_id: str
    session_string: str
    first_name: str
    last_name: str | None = None
    username: str | None = None
    phone: str | None = None
    created_at: int = field(default_factory=lambda: int(time.time()))
    last_used_at: int = field(default_factory=lambda: int(time.time()))

    @classmethod
    def from_identity(cls, identity: Identity, session_string: str) -> "UserSession":
        return cls(
            user_id=identity.id,
            session_string=session_string,
            first_name=identity.first_name,
            last_name=identity.last_name,
            username=identity.username,
            phone=identity.phone,
        )

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "UserSession":
        return cls(**data)
