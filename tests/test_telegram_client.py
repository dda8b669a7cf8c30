import pytest
from telethon import functions, types
from telethon.errors import RPCError

from tg_login.core.config import settings
from tg_login.core.errors import LoginConnectionError, ProtocolError, ValidationError
from tg_login.models import Identity
from tg_login.services.telegram_client import (
    ResultKind,
    TelegramHandle,
    build_export_request,
    build_import_request,
    classify,
    telegram_client_factory,
    validate_authorization,
)

from fakes import TOKEN_EXPIRES, login_success, login_token, migrate_to


def test_classify_result_kinds():
    token = classify(login_token(b"abc"))
    assert token.kind == ResultKind.TOKEN
    assert token.token == b"abc"
    assert token.expires == TOKEN_EXPIRES

    migrate = classify(migrate_to(dc_id=4, token=b"xyz"))
    assert migrate.kind == ResultKind.MIGRATE
    assert (migrate.dc_id, migrate.token) == (4, b"xyz")

    success = classify(login_success())
    assert success.kind == ResultKind.SUCCESS
    assert isinstance(success.authorization, types.auth.Authorization)

    assert classify(types.UpdateLoginToken()).kind == ResultKind.OTHER
    assert classify(None).kind == ResultKind.OTHER


def test_validate_authorization():
    user = validate_authorization(login_success(user_id=5).authorization)
    assert user.id == 5

    with pytest.raises(ValidationError):
        validate_authorization(types.auth.AuthorizationSignUpRequired())
    with pytest.raises(ValidationError):
        validate_authorization(types.auth.Authorization(user=types.UserEmpty(id=5)))


def test_request_builders():
    export = build_export_request(1, "hash")
    assert isinstance(export, functions.auth.ExportLoginTokenRequest)
    assert (export.api_id, export.api_hash, export.except_ids) == (1, "hash", [])

    imported = build_import_request(b"tok")
    assert isinstance(imported, functions.auth.ImportLoginTokenRequest)
    assert imported.token == b"tok"


class StubClient:
    def __init__(self, error=None, me=None):
        self.error = error
        self.me = me
        self.switched = []

    async def connect(self):
        if self.error:
            raise self.error

    async def __call__(self, request):
        if self.error:
            raise self.error
        return login_token()

    async def _switch_dc(self, dc_id):
        if self.error:
            raise self.error
        self.switched.append(dc_id)

    async def get_me(self):
        return self.me


@pytest.mark.asyncio
async def test_handle_maps_rpc_errors():
    error = RPCError(request=None, message="AUTH_TOKEN_EXPIRED", code=400)
    handle = TelegramHandle(StubClient(error=error), 1, "hash")

    with pytest.raises(ProtocolError):
        await handle.invoke(build_import_request(b"tok"))


@pytest.mark.asyncio
async def test_handle_maps_transport_errors():
    handle = TelegramHandle(StubClient(error=ConnectionError("reset")), 1, "hash")

    with pytest.raises(LoginConnectionError):
        await handle.connect()
    with pytest.raises(LoginConnectionError):
        await handle.invoke(build_export_request(1, "hash"))
    with pytest.raises(LoginConnectionError):
        await handle.switch_endpoint(2)


@pytest.mark.asyncio
async def test_handle_switches_dc():
    client = StubClient()
    handle = TelegramHandle(client, 1, "hash")

    await handle.switch_endpoint(7)

    assert client.switched == [7]


@pytest.mark.asyncio
async def test_handle_reads_identity():
    me = types.User(id=42, first_name="Ada", last_name=None, username="ada", phone="15550001")
    handle = TelegramHandle(StubClient(me=me), 1, "hash")

    identity = await handle.get_current_identity()

    assert identity == Identity(id="42", first_name="Ada", last_name=None, username="ada", phone="15550001")


@pytest.mark.asyncio
async def test_handle_requires_authorized_client():
    handle = TelegramHandle(StubClient(me=None), 1, "hash")

    with pytest.raises(ProtocolError):
        await handle.get_current_identity()


def test_factory_requires_credentials(monkeypatch):
    monkeypatch.setattr(settings, "TG_API_ID", None)
    monkeypatch.setattr(settings, "TG_API_HASH", None)

    with pytest.raises(ValueError):
        telegram_client_factory()
