import asyncio

import pytest

from tg_login.core.config import settings
from tg_login.core.security import decode_access_token
from tg_login.db import MemoryStore
from tg_login.services.notifier import StatusNotifier
from tg_login.services.orchestrator import LoginOrchestrator

from fakes import FakeClock, FakeHandle, login_success, login_token


@pytest.fixture(autouse=True)
def fast_polling(monkeypatch):
    monkeypatch.setattr(settings, "STATUS_POLL_INTERVAL_MS", 10)


@pytest.fixture
def clock():
    return FakeClock()


def build(clock, responses):
    handle = FakeHandle(responses)
    orchestrator = LoginOrchestrator(MemoryStore(clock=clock), client_factory=lambda: handle)
    return orchestrator, handle, StatusNotifier(orchestrator)


@pytest.mark.asyncio
async def test_pushes_changes_until_success(clock):
    orchestrator, handle, notifier = build(clock, [login_token(), login_success()])
    created = await orchestrator.create_login_attempt("caller-1")
    pushed = []

    async def send(data):
        pushed.append(data)

    task = notifier.start("caller-1", created.login_id, send)
    await asyncio.sleep(0.05)
    await handle.fire_token_update()
    await orchestrator.router.drain()
    await asyncio.wait_for(task, timeout=2)

    assert [p["status"] for p in pushed] == ["pending", "success"]
    final = pushed[-1]
    assert final["user_id"] == "777"
    claims = decode_access_token(final["access_token"])
    assert claims["sub"] == "777"
    assert claims["login_id"] == created.login_id
    assert not notifier.watching("caller-1")


@pytest.mark.asyncio
async def test_reports_expired_when_entry_disappears(clock):
    orchestrator, _, notifier = build(clock, [login_token()])
    created = await orchestrator.create_login_attempt("caller-1")
    pushed = []

    async def send(data):
        pushed.append(data)

    clock.advance(61)
    await notifier.watch(created.login_id, send)

    assert pushed == [{"login_id": created.login_id, "status": "expired"}]


@pytest.mark.asyncio
async def test_stop_cancels_watcher_without_touching_login(clock):
    orchestrator, handle, notifier = build(clock, [login_token()])
    created = await orchestrator.create_login_attempt("caller-1")

    async def send(data):
        pass

    task = notifier.start("caller-1", created.login_id, send)
    await asyncio.sleep(0.02)
    notifier.stop("caller-1")
    await asyncio.gather(task, return_exceptions=True)

    assert task.cancelled()
    assert not notifier.watching("caller-1")
    assert (await orchestrator.get_attempt_status(created.login_id)).status.value == "pending"
    assert handle.disconnects == 0


@pytest.mark.asyncio
async def test_new_watch_replaces_previous_one(clock):
    orchestrator, _, notifier = build(clock, [login_token()])
    created = await orchestrator.create_login_attempt("caller-1")

    async def send(data):
        pass

    first = notifier.start("caller-1", created.login_id, send)
    second = notifier.start("caller-1", created.login_id, send)
    await asyncio.gather(first, return_exceptions=True)

    assert first.cancelled()
    assert not second.done()
    await notifier.close()
    assert second.cancelled()


@pytest.mark.asyncio
async def test_send_failure_stops_watcher(clock):
    orchestrator, _, notifier = build(clock, [login_token()])
    created = await orchestrator.create_login_attempt("caller-1")

    async def send(data):
        raise RuntimeError("socket closed")

    task = notifier.start("caller-1", created.login_id, send)
    await asyncio.wait_for(task, timeout=2)

    assert not notifier.watching("caller-1")
