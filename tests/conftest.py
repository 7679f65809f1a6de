import pytest

from chatstream.services import message_store
from chatstream.services.request_relay import relay


@pytest.fixture(autouse=True)
def isolated_stores(tmp_path, monkeypatch):
    """Keep the chat database and relay jobs out of the repository and apart per test."""
    monkeypatch.setenv("CHATSTREAM_CHAT_DB_PATH", str(tmp_path / "messages.db"))
    message_store.reset_db_path()
    relay.clear()
    yield
    message_store.reset_db_path()
    relay.clear()
