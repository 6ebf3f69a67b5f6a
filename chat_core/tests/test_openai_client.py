import asyncio
import json as jsonlib

import httpx
import pytest

from chat_core.domain.exceptions import (
    ConfigurationError,
    ErrorKind,
    ProtocolError,
    RateLimitError,
    RemoteRejectedError,
    TransportError,
)
from chat_core.domain.models import ChatMessage
from chat_core.providers.openai_client import OpenAIClient


class SettingsStub:
    openai_api_key = "sk-test-key"
    http_timeout = 1.0
    openai_base_url = "https://api.openai.com/v1"
    default_model = "chat"


class Resp:
    def __init__(self, status_code=200, body=None, text=None, reason_phrase="OK"):
        self.status_code = status_code
        self._body = body
        self.text = text if text is not None else jsonlib.dumps(body)
        self.reason_phrase = reason_phrase

    def json(self):
        if self._body is None:
            return jsonlib.loads(self.text)
        return self._body


def install_client(monkeypatch, resp=None, error=None, captured=None):
    class Client:
        def __init__(self, *a, **kw):
            if captured is not None:
                captured["client_kwargs"] = kw

        async def __aenter__(self):
            return self

        async def __aexit__(self, *a):
            return False

        async def post(self, url, json=None, headers=None, **_):
            if captured is not None:
                captured["url"] = url
                captured["payload"] = json
                captured["headers"] = headers
            if error is not None:
                raise error
            return resp

    monkeypatch.setattr("httpx.AsyncClient", Client)


def ok_body(content="ok"):
    return {
        "choices": [{"index": 0, "message": {"role": "assistant", "content": content}, "finish_reason": "stop"}],
        "usage": {"prompt_tokens": 1, "completion_tokens": 1, "total_tokens": 2},
    }


def test_complete_returns_first_choice_content(monkeypatch):
    install_client(monkeypatch, resp=Resp(body=ok_body("Hi there")))
    assert asyncio.run(OpenAIClient(SettingsStub()).complete("Hello")) == "Hi there"


def test_payload_matches_wire_shape(monkeypatch):
    captured = {}
    install_client(monkeypatch, resp=Resp(body=ok_body()), captured=captured)
    asyncio.run(OpenAIClient(SettingsStub()).complete("Hello"))

    assert captured["url"] == "https://api.openai.com/v1/chat/completions"
    assert captured["headers"]["Authorization"] == "Bearer sk-test-key"
    assert captured["payload"] == {
        "model": "gpt-3.5-turbo",
        "messages": [{"role": "user", "content": "Hello"}],
        "max_tokens": 256,
        "temperature": 0.7,
        "top_p": 1.0,
        "frequency_penalty": 0.0,
        "presence_penalty": 0.0,
    }
    assert captured["client_kwargs"]["timeout"] == 1.0


def test_history_is_sent_before_prompt(monkeypatch):
    captured = {}
    install_client(monkeypatch, resp=Resp(body=ok_body()), captured=captured)
    history = [ChatMessage(role="user", content="A"), ChatMessage(role="assistant", content="a")]
    asyncio.run(OpenAIClient(SettingsStub()).complete("B", history))
    assert captured["payload"]["messages"] == [
        {"role": "user", "content": "A"},
        {"role": "assistant", "content": "a"},
        {"role": "user", "content": "B"},
    ]


@pytest.mark.parametrize("key, code", [(None, "MISSING_API_KEY"), ("  ", "MISSING_API_KEY"), ("your-api-key-here", "PLACEHOLDER_API_KEY")])
def test_missing_or_placeholder_key_fails_without_network(monkeypatch, key, code):
    class Client:
        def __init__(self, *a, **kw):
            raise AssertionError("network should not be touched")

    monkeypatch.setattr("httpx.AsyncClient", Client)

    class NoKey(SettingsStub):
        openai_api_key = key

    with pytest.raises(ConfigurationError) as ei:
        asyncio.run(OpenAIClient(NoKey()).complete("hi"))
    assert ei.value.code == code
    assert ei.value.kind is ErrorKind.CONFIGURATION


def test_transport_error(monkeypatch):
    install_client(monkeypatch, error=httpx.ConnectError("connection refused"))
    with pytest.raises(TransportError) as ei:
        asyncio.run(OpenAIClient(SettingsStub()).complete("hi"))
    assert ei.value.code == "NETWORK_ERROR"


def test_timeout_is_transport_error(monkeypatch):
    install_client(monkeypatch, error=httpx.ReadTimeout("read timed out"))
    with pytest.raises(TransportError) as ei:
        asyncio.run(OpenAIClient(SettingsStub()).complete("hi"))
    assert ei.value.code == "TIMEOUT"


def test_rejected_uses_provider_message(monkeypatch):
    body = {"error": {"message": "Incorrect API key provided", "type": "invalid_request_error"}}
    install_client(monkeypatch, resp=Resp(status_code=401, body=body, reason_phrase="Unauthorized"))
    with pytest.raises(RemoteRejectedError) as ei:
        asyncio.run(OpenAIClient(SettingsStub()).complete("hi"))
    assert ei.value.message == "Incorrect API key provided"
    assert ei.value.http_status == 401
    assert "invalid_request_error" in ei.value.extra["body"]


def test_rejected_without_provider_message_synthesizes_one(monkeypatch):
    install_client(monkeypatch, resp=Resp(status_code=502, text="<html>bad gateway</html>", reason_phrase="Bad Gateway"))
    with pytest.raises(RemoteRejectedError) as ei:
        asyncio.run(OpenAIClient(SettingsStub()).complete("hi"))
    assert ei.value.message == "API request failed with status 502: Bad Gateway"
    assert ei.value.kind is ErrorKind.REMOTE_REJECTED


@pytest.mark.parametrize("status, reason", [(301, "Moved Permanently"), (302, "Found"), (307, "Temporary Redirect")])
def test_redirect_status_is_remote_rejected(monkeypatch, status, reason):
    install_client(monkeypatch, resp=Resp(status_code=status, text="<html>Moved</html>", reason_phrase=reason))
    with pytest.raises(RemoteRejectedError) as ei:
        asyncio.run(OpenAIClient(SettingsStub()).complete("hi"))
    assert ei.value.message == f"API request failed with status {status}: {reason}"
    assert ei.value.http_status == status


def test_rate_limit_is_remote_rejected(monkeypatch):
    install_client(monkeypatch, resp=Resp(status_code=429, body={"error": {"message": "slow down"}}, reason_phrase="Too Many Requests"))
    with pytest.raises(RateLimitError) as ei:
        asyncio.run(OpenAIClient(SettingsStub()).complete("hi"))
    assert isinstance(ei.value, RemoteRejectedError)
    assert ei.value.code == "RATE_LIMIT"


@pytest.mark.parametrize(
    "resp",
    [
        Resp(text="not json"),
        Resp(body={"choices": []}),
        Resp(body={"choices": [{"message": {}}]}),
        Resp(body={"choices": [{"message": {"content": None}}]}),
        Resp(body={"choices": [{"message": {"content": ""}}]}),
        Resp(body={"choices": [{"message": {"content": "   "}}]}),
        Resp(body=["unexpected"]),
    ],
)
def test_malformed_payload_is_protocol_error(monkeypatch, resp):
    install_client(monkeypatch, resp=resp)
    with pytest.raises(ProtocolError):
        asyncio.run(OpenAIClient(SettingsStub()).complete("hi"))


def test_chat_parses_usage(monkeypatch):
    from chat_core.domain.models import ChatRequest

    install_client(monkeypatch, resp=Resp(body=ok_body("fine")))
    req = ChatRequest(provider="openai", model="chat", messages=[ChatMessage(role="user", content="hi")])
    res = asyncio.run(OpenAIClient(SettingsStub()).chat(req))
    assert res.text == "fine"
    assert res.usage.total_tokens == 2
    assert res.choices[0].finish_reason == "stop"
