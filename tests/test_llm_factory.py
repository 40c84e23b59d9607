import types

import pytest

from core.llm_client import (
    AsyncClaudeLLMClient,
    AsyncGeminiLLMClient,
    AsyncOpenAILLMClient,
    _split_anthropic_messages,
    _split_gemini_messages,
)
from core.llm_factory import _gemini_base_url, get_async_llm_client
from core.models import AgentConfig, ProviderKind
from core.obs import NullLogger

MESSAGES = [
    {"role": "system", "content": "be brief"},
    {"role": "user", "content": "hi"},
    {"role": "assistant", "content": "hello"},
    {"role": "user", "content": "again"},
]


@pytest.fixture(autouse=True)
def llm_timeout(monkeypatch):
    from core import config as cfg

    monkeypatch.setenv("LLM_TIMEOUT_SECONDS", "60")
    monkeypatch.setattr("core.llm_client.genai.configure", lambda **kwargs: None)
    cfg._config_adapter.cache_clear()  # type: ignore[attr-defined]


@pytest.mark.parametrize(
    "provider,expected",
    [
        (ProviderKind.OPENAI, AsyncOpenAILLMClient),
        (ProviderKind.GEMINI, AsyncGeminiLLMClient),
        (ProviderKind.CLAUDE, AsyncClaudeLLMClient),
    ],
)
def test_factory_returns_expected_clients(provider, expected):
    config = AgentConfig(model="m", provider=provider, api_key="k")
    assert isinstance(get_async_llm_client(config, logger=NullLogger()), expected)


def test_factory_unknown_provider_raises():
    config = AgentConfig.model_construct(model="m", provider="does-not-exist", endpoint=None, api_key=None)
    with pytest.raises(ValueError):
        get_async_llm_client(config, logger=NullLogger())


def test_openai_client_uses_endpoint_and_placeholder_key(monkeypatch):
    seen = {}

    class FakeAsyncOpenAI:
        def __init__(self, *args, **kwargs):
            seen.update(kwargs)

    monkeypatch.setattr("core.llm_client.AsyncOpenAI", FakeAsyncOpenAI)
    config = AgentConfig(model="local", endpoint="http://localhost:1234/v1")
    get_async_llm_client(config, logger=NullLogger())
    assert seen["base_url"] == "http://localhost:1234/v1"
    assert seen["api_key"] == "not-needed"
    assert seen["max_retries"] == 0


@pytest.mark.parametrize(
    "endpoint,expected",
    [
        (None, None),
        ("https://api.openai.com/v1", None),
        ("https://api.openai.com/v1/", None),
        ("https://gemini-proxy.internal", "https://gemini-proxy.internal"),
    ],
)
def test_gemini_base_url(endpoint, expected):
    assert _gemini_base_url(endpoint) == expected


def test_split_messages_for_providers():
    system, converted = _split_anthropic_messages(MESSAGES)
    assert system == "be brief"
    assert [m["role"] for m in converted] == ["user", "assistant", "user"]

    system, converted = _split_gemini_messages(MESSAGES)
    assert system == "be brief"
    assert converted[1] == {"role": "model", "parts": ["hello"]}


@pytest.mark.asyncio
async def test_openai_chat_and_stream(monkeypatch):
    calls = []

    class FakeStream:
        def __init__(self, deltas):
            self._deltas = iter(deltas)

        def __aiter__(self):
            return self

        async def __anext__(self):
            try:
                delta = next(self._deltas)
            except StopIteration:
                raise StopAsyncIteration
            return types.SimpleNamespace(choices=[types.SimpleNamespace(delta=types.SimpleNamespace(content=delta))])

    class FakeCompletions:
        async def create(self, **kwargs):
            calls.append(kwargs)
            if kwargs.get("stream"):
                return FakeStream(["Hel", None, "lo"])
            message = types.SimpleNamespace(content="ok")
            return types.SimpleNamespace(choices=[types.SimpleNamespace(message=message)], usage=None)

    class FakeAsyncOpenAI:
        def __init__(self, *args, **kwargs):
            self.chat = types.SimpleNamespace(completions=FakeCompletions())

    monkeypatch.setattr("core.llm_client.AsyncOpenAI", FakeAsyncOpenAI)
    llm = AsyncOpenAILLMClient(api_key="k", logger=NullLogger())

    out = await llm.chat(messages=MESSAGES, model="gpt-4o-mini", temperature=0.3)
    assert out == "ok"
    assert calls[0]["temperature"] == 0.3
    assert calls[0]["timeout"] == 60.0

    deltas = [d async for d in llm.stream(messages=MESSAGES, model="gpt-4o-mini")]
    assert deltas == ["Hel", "lo"]
    assert calls[1]["stream"] is True


@pytest.mark.asyncio
async def test_claude_client(monkeypatch):
    payloads = []

    class FakeMessages:
        async def create(self, **kwargs):
            payloads.append(kwargs)
            return types.SimpleNamespace(content=[types.SimpleNamespace(text="hello")], usage=None)

    class FakeAsyncAnthropic:
        def __init__(self, *args, **kwargs):
            self.messages = FakeMessages()

    monkeypatch.setattr("core.llm_client.AsyncAnthropic", FakeAsyncAnthropic)
    llm = AsyncClaudeLLMClient(api_key="k", logger=NullLogger())
    out = await llm.chat(messages=MESSAGES, model="claude-3", temperature=0.5)
    assert out == "hello"
    assert payloads[0]["system"] == "be brief"
    assert payloads[0]["max_tokens"] == 1024


@pytest.mark.asyncio
async def test_gemini_client(monkeypatch):
    class FakeGenResponse:
        def __init__(self):
            self.text = "gemini"
            self.usage_metadata = None

    class FakeModel:
        def __init__(self, *args, **kwargs):
            self.kwargs = kwargs

        async def generate_content_async(self, messages, generation_config=None, request_options=None):
            assert self.kwargs["system_instruction"] == "be brief"
            assert generation_config["temperature"] == 0.2
            return FakeGenResponse()

    monkeypatch.setattr("core.llm_client.genai.GenerativeModel", FakeModel)
    llm = AsyncGeminiLLMClient(api_key="fake", logger=NullLogger())
    out = await llm.chat(messages=MESSAGES, model="gemini-1.5-pro", temperature=0.2)
    assert out == "gemini"
