import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable

from telethon import TelegramClient, events, functions, types
from telethon.errors import RPCError
from telethon.sessions import StringSession

from tg_login.core.config import Settings, settings
from tg_login.core.errors import LoginConnectionError, ProtocolError, ValidationError
from tg_login.models import Identity

"""Thin wrapper around one Telethon client used for a single QR login attempt."""

logger = logging.getLogger(__name__)

_TRANSPORT_ERRORS = (OSError, asyncio.TimeoutError)


class ResultKind(str, Enum):
    TOKEN = "token"
    MIGRATE = "migrate"
    SUCCESS = "success"
    OTHER = "other"


@dataclass
class LoginTokenResult:
    kind: ResultKind
    token: bytes | None = None
    expires: datetime | None = None
    dc_id: int | None = None
    authorization: Any = None
    raw: Any = None


def classify(result: Any) -> LoginTokenResult:
    """Maps an auth.ExportLoginToken / auth.ImportLoginToken response to a result kind."""
    if isinstance(result, types.auth.LoginToken):
        return LoginTokenResult(ResultKind.TOKEN, token=result.token, expires=result.expires, raw=result)
    if isinstance(result, types.auth.LoginTokenMigrateTo):
        return LoginTokenResult(ResultKind.MIGRATE, token=result.token, dc_id=result.dc_id, raw=result)
    if isinstance(result, types.auth.LoginTokenSuccess):
        return LoginTokenResult(ResultKind.SUCCESS, authorization=result.authorization, raw=result)
    return LoginTokenResult(ResultKind.OTHER, raw=result)


def validate_authorization(authorization: Any) -> types.User:
    # auth.AuthorizationSignUpRequired means the phone has no account yet
    if not isinstance(authorization, types.auth.Authorization):
        raise ValidationError(f"Unexpected authorization payload: {type(authorization).__name__}")
    if not isinstance(authorization.user, types.User):
        raise ValidationError(f"Authorization carries no user: {type(authorization.user).__name__}")
    return authorization.user


def build_export_request(api_id: int, api_hash: str):
    return functions.auth.ExportLoginTokenRequest(api_id=api_id, api_hash=api_hash, except_ids=[])


def build_import_request(token: bytes):
    return functions.auth.ImportLoginTokenRequest(token=token)


class TelegramHandle:
    def __init__(self, client: TelegramClient, api_id: int, api_hash: str):
        self._client = client
        self.api_id = api_id
        self.api_hash = api_hash

    @property
    def connected(self) -> bool:
        return self._client.is_connected()

    async def connect(self) -> None:
        try:
            await self._client.connect()
        except _TRANSPORT_ERRORS as e:
            raise LoginConnectionError(f"Could not connect to Telegram: {e}") from e

    async def invoke(self, request) -> Any:
        try:
            return await self._client(request)
        except RPCError as e:
            raise ProtocolError(f"{type(request).__name__} failed: {e}") from e
        except _TRANSPORT_ERRORS as e:
            raise LoginConnectionError(f"{type(request).__name__} lost connection: {e}") from e

    def add_event_handler(self, callback: Callable[[Any], Awaitable[None]]) -> None:
        self._client.add_event_handler(callback, events.Raw(types.UpdateLoginToken))

    async def switch_endpoint(self, dc_id: int) -> None:
        logger.info(f"Switching to DC {dc_id}")
        try:
            await self._client._switch_dc(dc_id)
        except _TRANSPORT_ERRORS as e:
            raise LoginConnectionError(f"Could not switch to DC {dc_id}: {e}") from e

    async def get_current_identity(self) -> Identity:
        try:
            me = await self._client.get_me()
        except RPCError as e:
            raise ProtocolError(f"get_me failed: {e}") from e
        if me is None:
            raise ProtocolError("Client is not authorized")
        return Identity(
            id=str(me.id),
            first_name=me.first_name or "",
            last_name=me.last_name,
            username=me.username,
            phone=me.phone,
        )

    def serialize_session(self) -> str:
        return StringSession.save(self._client.session)

    async def disconnect(self) -> None:
        await self._client.disconnect()


def telegram_client_factory(config: Settings = settings) -> TelegramHandle:
    api_id, api_hash = config.api_credentials()
    client = TelegramClient(StringSession(), api_id, api_hash)
    return TelegramHandle(client, api_id, api_hash)
