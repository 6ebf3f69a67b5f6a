import asyncio

from chat_core.api import service
from chat_core.api.service import get_default_session, snapshot_to_dict
from chat_core.session.controller import ConversationSession


class FakeClient:
    name = "fake"

    async def complete(self, prompt, history=()):
        return "pong"


def test_snapshot_to_dict():
    session = ConversationSession(FakeClient())
    asyncio.run(session.submit("ping"))
    data = snapshot_to_dict(session.snapshot())
    assert data["request_state"] == "idle"
    assert [(m["role"], m["content"], m["sequence"]) for m in data["messages"]] == [
        ("user", "ping", 0),
        ("assistant", "pong", 1),
    ]
    assert data["messages"][1]["error_kind"] is None


def test_default_session_is_singleton(monkeypatch):
    monkeypatch.setattr(service, "_session", None)
    first = get_default_session()
    assert get_default_session() is first
    assert first.snapshot().is_empty
