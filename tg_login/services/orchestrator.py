import base64
import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

from tg_login.core.config import Settings, settings
from tg_login.core.errors import LoginError, NotFoundError, ProtocolError, StoreError
from tg_login.db import SessionStore
from tg_login.models import (
    OPEN_STATUSES,
    LoginAttempt,
    LoginStatus,
    UserSession,
    Identity,
    login_key,
    user_key,
)
from tg_login.services.event_router import EventRouter
from tg_login.services.handles import HandleRegistry
from tg_login.services.logger import log_event
from tg_login.services.telegram_client import (
    LoginTokenResult,
    ResultKind,
    build_export_request,
    build_import_request,
    classify,
    telegram_client_factory,
    validate_authorization,
)

"""LoginOrchestrator: drives one QR login attempt from token export to a terminal state"""

logger = logging.getLogger(__name__)


@dataclass
class CreatedLogin:
    login_id: str
    login_url: str
    expires_at: datetime


@dataclass
class AttemptStatus:
    status: LoginStatus
    user_id: Optional[str] = None


def encode_token(token: bytes) -> str:
    """URL-safe base64 without padding."""
    return base64.urlsafe_b64encode(token).decode("ascii").rstrip("=")


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


class LoginOrchestrator:
    def __init__(
        self,
        store: SessionStore,
        client_factory: Callable[[], Any] = telegram_client_factory,
        config: Settings = settings,
        durable_store: Optional[SessionStore] = None,
    ):
        self.store = store
        self.durable_store = durable_store or store
        self.client_factory = client_factory
        self.config = config
        self.handles = HandleRegistry()
        self.router = EventRouter(self.on_token_renewed, self.handles.is_live)
        # login_ids whose renewed-token continuation is currently running
        self._in_flight: set[str] = set()

    async def create_login_attempt(self, caller_id: str) -> CreatedLogin:
        """
        Exports a fresh login token and records the attempt as pending.
        Errors propagate to the caller; the client handle is disconnected first.
        """
        login_id = str(uuid.uuid4())
        started = time.monotonic()
        handle = self.client_factory()

        try:
            await handle.connect()
            result = classify(await handle.invoke(build_export_request(handle.api_id, handle.api_hash)))
            if result.kind != ResultKind.TOKEN:
                raise ProtocolError(f"Unexpected response to ExportLoginToken: {type(result.raw).__name__}")

            attempt = LoginAttempt(caller_id=caller_id)
            await self.store.put(login_key(login_id), attempt.to_dict(), self.config.LOGIN_TTL_SECONDS)
        except BaseException as e:
            # Cancellation included: the handle is not registered yet, nothing else can release it
            logger.warning(f"Login creation failed: login_id={login_id}, error={type(e).__name__}: {e}")
            await self._disconnect(login_id, handle)
            log_event("create", login_id, "failed", _elapsed_ms(started))
            raise

        await self.handles.add(login_id, handle)
        self.router.subscribe(login_id, handle)

        login_url = f"{self.config.LOGIN_URL_SCHEME}://login?token={encode_token(result.token)}"
        logger.info(f"Login Initiated: login_id={login_id}, caller_id={caller_id}")
        log_event("create", login_id, "pending", _elapsed_ms(started))
        return CreatedLogin(login_id=login_id, login_url=login_url, expires_at=result.expires)

    async def on_token_renewed(self, login_id: str) -> None:
        """
        Continuation run when the exported token was scanned. Never raises:
        every failure is logged and followed by cleanup.
        """
        if login_id in self._in_flight:
            logger.info(f"Continuation already running, ignoring update: login_id={login_id}")
            return

        self._in_flight.add(login_id)
        started = time.monotonic()
        try:
            outcome = await self._continue_login(login_id)
        except NotFoundError as e:
            logger.info(f"Login abandoned: login_id={login_id} ({e})")
            await self.cleanup(login_id)
            log_event("token_renewed", login_id, "abandoned", _elapsed_ms(started))
        except LoginError as e:
            logger.warning(f"Login failed: login_id={login_id}, error={type(e).__name__}: {e}")
            await self.cleanup(login_id)
            log_event("token_renewed", login_id, "failed", _elapsed_ms(started))
        except Exception:
            logger.exception(f"Unexpected error during login: login_id={login_id}")
            await self.cleanup(login_id)
            log_event("token_renewed", login_id, "error", _elapsed_ms(started))
        else:
            if outcome is not None:
                log_event("token_renewed", login_id, outcome.value, _elapsed_ms(started))
        finally:
            self._in_flight.discard(login_id)

    async def _continue_login(self, login_id: str) -> Optional[LoginStatus]:
        attempt = await self._load_attempt(login_id)
        if attempt.status not in OPEN_STATUSES:
            logger.info(f"Ignoring update for settled login: login_id={login_id}, status={attempt.status.value}")
            return None

        handle = self.handles.get(login_id)
        if handle is None:
            raise NotFoundError("no client handle registered")

        attempt.status = LoginStatus.SCANNED
        await self.store.put(login_key(login_id), attempt.to_dict(), self.config.LOGIN_TTL_SECONDS)
        logger.info(f"Login scanned: login_id={login_id}")

        result = classify(await handle.invoke(build_export_request(handle.api_id, handle.api_hash)))
        if result.kind == ResultKind.MIGRATE:
            result = await self._migrate(login_id, handle, result)
        elif result.kind != ResultKind.SUCCESS:
            raise ProtocolError(f"Unexpected response after scan: {type(result.raw).__name__}")

        await self._finalize(login_id, handle, result)
        return LoginStatus.SUCCESS

    async def _migrate(self, login_id: str, handle: Any, result: LoginTokenResult) -> LoginTokenResult:
        logger.info(f"Login migrating: login_id={login_id}, dc_id={result.dc_id}")
        await handle.switch_endpoint(result.dc_id)

        imported = classify(await handle.invoke(build_import_request(result.token)))
        if imported.kind != ResultKind.SUCCESS:
            raise ProtocolError(f"Unexpected response to ImportLoginToken: {type(imported.raw).__name__}")
        return imported

    async def _finalize(self, login_id: str, handle: Any, result: LoginTokenResult) -> None:
        validate_authorization(result.authorization)
        identity = await handle.get_current_identity()
        session_string = handle.serialize_session()

        # System of record for future logins, written even if the attempt entry lapsed
        await self._save_user_session(identity, session_string)

        data = await self.store.get(login_key(login_id))
        if data is None:
            logger.info(f"Login entry expired before success was recorded: login_id={login_id}")
        else:
            attempt = LoginAttempt.from_dict(data)
            attempt.status = LoginStatus.SUCCESS
            attempt.session = session_string
            attempt.user_id = identity.id
            await self.store.put(login_key(login_id), attempt.to_dict(), self.config.SUCCESS_TTL_SECONDS)

        await self._release_handle(login_id)
        logger.info(f"Login succeeded: login_id={login_id}, user_id={identity.id}")

    async def _save_user_session(self, identity: Identity, session_string: str) -> None:
        record = UserSession.from_identity(identity, session_string)
        key = user_key(identity.id)
        try:
            existing = await self.durable_store.get(key)
            if existing:
                record.created_at = existing.get("created_at", record.created_at)
            await self.durable_store.put(key, record.to_dict(), 0)
        except StoreError as e:
            logger.error(f"Could not persist user session: user_id={identity.id}, error={e}")

    async def _load_attempt(self, login_id: str) -> LoginAttempt:
        data = await self.store.get(login_key(login_id))
        if data is None:
            raise NotFoundError("login entry expired or missing")
        return LoginAttempt.from_dict(data)

    async def get_attempt_status(self, login_id: str) -> Optional[AttemptStatus]:
        data = await self.store.get(login_key(login_id))
        if data is None:
            return None
        attempt = LoginAttempt.from_dict(data)
        return AttemptStatus(status=attempt.status, user_id=attempt.user_id)

    async def get_user_session(self, user_id: str) -> Optional[UserSession]:
        data = await self.durable_store.get(user_key(user_id))
        if data is None:
            return None
        return UserSession.from_dict(data)

    async def cleanup(self, login_id: str) -> None:
        """Disconnects the handle and deletes the attempt entry. Safe to call twice."""
        await self._release_handle(login_id)
        try:
            await self.store.delete(login_key(login_id))
        except StoreError as e:
            logger.error(f"Could not delete login entry: login_id={login_id}, error={e}")

    async def _release_handle(self, login_id: str) -> bool:
        handle = await self.handles.pop(login_id)
        if handle is None:
            return False
        await self._disconnect(login_id, handle)
        return True

    async def _disconnect(self, login_id: str, handle: Any) -> None:
        try:
            await handle.disconnect()
        except Exception as e:
            logger.warning(f"Disconnect failed: login_id={login_id}, error={type(e).__name__}: {e}")

    async def reap_abandoned(self) -> int:
        """Disconnects handles whose attempt entry expired without a token update."""
        reaped = 0
        for login_id in self.handles.login_ids():
            if login_id in self._in_flight:
                continue
            if await self.store.get(login_key(login_id)) is not None:
                continue
            if await self._release_handle(login_id):
                logger.info(f"Reaped abandoned login: login_id={login_id}")
                log_event("reap", login_id, LoginStatus.EXPIRED.value)
                reaped += 1
        return reaped

    async def shutdown(self) -> None:
        await self.router.drain()
        for login_id in self.handles.login_ids():
            await self._release_handle(login_id)
