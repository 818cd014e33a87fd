import httpx
import pytest

from assistant_core.domain.exceptions import (
    ConfigurationError,
    NetworkError,
    ProviderRejected,
    ProviderUnavailable,
    RateLimitError,
)
from assistant_core.domain.models import ChatMessage, ChatRequest
from assistant_core.providers import create_provider, resolve_provider_name
from assistant_core.providers.anthropic_client import AnthropicClient
from assistant_core.providers.openai_client import OpenAIClient


class SettingsStub:
    default_provider = "auto"
    openai_api_key = "sk-openai-123456"
    openai_base_url = "https://api.openai.com/v1"
    anthropic_api_key = None
    anthropic_base_url = "https://api.anthropic.com/v1"
    http_timeout = 1.0


def _fake_client(monkeypatch, resp=None, error=None, captured=None):
    class Client:
        def __init__(self, *a, **kw):
            if captured is not None:
                captured["client_kwargs"] = kw

        def __enter__(self):
            return self

        def __exit__(self, *a):
            return False

        def post(self, url, json=None, headers=None, **kw):
            if captured is not None:
                captured.update({"url": url, "json": json, "headers": headers})
            if error is not None:
                raise error
            return resp

    monkeypatch.setattr("httpx.Client", Client)


class Resp:
    def __init__(self, status_code=200, data=None, text=""):
        self.status_code = status_code
        self._data = data
        self.text = text

    def json(self):
        return self._data


def _req():
    return ChatRequest(
        provider="openai",
        model="assistant-chat",
        system="sys",
        messages=[ChatMessage(role="user", content="hi")],
    )


def test_openai_client_payload_and_parse(monkeypatch):
    captured = {}
    data = {
        "choices": [{"message": {"role": "assistant", "content": "ok"}, "finish_reason": "stop"}],
        "usage": {"prompt_tokens": 3, "completion_tokens": 1, "total_tokens": 4},
    }
    _fake_client(monkeypatch, resp=Resp(200, data), captured=captured)
    res = OpenAIClient(SettingsStub()).chat(_req())
    assert res.text == "ok"
    assert res.usage.total_tokens == 4
    assert captured["url"] == "https://api.openai.com/v1/chat/completions"
    assert captured["json"]["model"] == "gpt-4o"
    assert captured["json"]["max_tokens"] == 1000
    assert captured["json"]["messages"][0] == {"role": "system", "content": "sys"}
    assert captured["headers"]["Authorization"] == "Bearer sk-openai-123456"
    assert captured["client_kwargs"]["timeout"] == 1.0


def test_anthropic_client_payload_and_parse(monkeypatch):
    class AnthropicSettings(SettingsStub):
        anthropic_api_key = "sk-ant-123456789"

    captured = {}
    data = {"content": [{"type": "text", "text": "hello"}], "usage": {"input_tokens": 5, "output_tokens": 2}}
    _fake_client(monkeypatch, resp=Resp(200, data), captured=captured)
    req = ChatRequest(
        provider="anthropic",
        model="assistant-chat",
        system="sys",
        messages=[
            ChatMessage(role="assistant", content="greeting"),
            ChatMessage(role="user", content="a"),
            ChatMessage(role="user", content="b"),
        ],
    )
    res = AnthropicClient(AnthropicSettings()).chat(req)
    assert res.text == "hello"
    assert res.usage.total_tokens == 7
    assert captured["url"].endswith("/messages")
    assert captured["json"]["system"] == "sys"
    assert captured["json"]["model"] == "claude-3-haiku-20240307"
    assert captured["json"]["max_tokens"] == 1024
    # 开头的 assistant 被丢弃，相邻的 user 被合并
    assert captured["json"]["messages"] == [{"role": "user", "content": "a\n\nb"}]
    assert captured["headers"]["x-api-key"] == "sk-ant-123456789"
    assert captured["headers"]["anthropic-version"] == "2023-06-01"


@pytest.mark.parametrize(
    "status, exc_type",
    [(429, RateLimitError), (500, ProviderUnavailable), (503, ProviderUnavailable), (400, ProviderRejected)],
)
def test_openai_client_http_errors(monkeypatch, status, exc_type):
    _fake_client(monkeypatch, resp=Resp(status, None, text="err"))
    with pytest.raises(exc_type) as info:
        OpenAIClient(SettingsStub()).chat(_req())
    assert info.value.http_status == status


def test_rate_limit_and_network_are_unavailable(monkeypatch):
    assert issubclass(RateLimitError, ProviderUnavailable)
    _fake_client(monkeypatch, error=httpx.ConnectError("connection refused"))
    with pytest.raises(NetworkError) as info:
        OpenAIClient(SettingsStub()).chat(_req())
    assert isinstance(info.value, ProviderUnavailable)
    assert "connection refused" in info.value.message


def test_missing_key_is_configuration_error():
    class NoKeys(SettingsStub):
        openai_api_key = None

    with pytest.raises(ConfigurationError):
        OpenAIClient(NoKeys()).chat(_req())


def test_create_provider_auto_selection():
    class Both(SettingsStub):
        anthropic_api_key = "sk-ant-123456789"

    class NoKeys(SettingsStub):
        openai_api_key = None

    assert isinstance(create_provider(settings=SettingsStub()), OpenAIClient)
    assert isinstance(create_provider(settings=Both()), AnthropicClient)
    assert resolve_provider_name("openai", Both()) == "openai"
    with pytest.raises(ConfigurationError) as info:
        create_provider(settings=NoKeys())
    assert info.value.message == "No AI provider configured."
