import pytest

from tg_login.core.config import settings


@pytest.fixture(autouse=True)
def no_event_log(monkeypatch):
    # Keep the CSV outcome log out of the working tree
    monkeypatch.setattr(settings, "EVENT_LOG_FILE", "")
