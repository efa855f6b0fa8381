import json
from types import SimpleNamespace

import httpx
import pytest

from coaching_assistant.config import ConfigSnapshot
from coaching_assistant.errors import ConfigurationError, ModelRequestError
from coaching_assistant.models import ConversationTurn, ModelQuery
from coaching_assistant.providers import ProviderHandle, create_provider, describe_error
from coaching_assistant.providers.anthropic_provider import AnthropicProvider, _alternating
from coaching_assistant.providers.custom_provider import CustomProvider
from coaching_assistant.providers.gemini_provider import GeminiProvider
from coaching_assistant.providers.openai_provider import OpenAIProvider

QUERY = ModelQuery(
    prompt="Coachee: I am not sure where to start",
    conversation_context=(ConversationTurn("user", "hello"), ConversationTurn("assistant", "hi")),
    temperature=0.5,
    max_output_units=300,
    system_prompt="Be a helpful coaching assistant.",
)


async def _collect(stream):
    return [chunk async for chunk in stream]


def test_error_descriptions():
    assert describe_error(Exception("401 Unauthorized"), "m").startswith("Invalid or missing API key")
    assert describe_error(Exception("429 Too Many Requests"), "m").startswith("Rate limit")
    assert describe_error(Exception("model xyz not found"), "xyz") == (
        "Model 'xyz' not found. Please check your COACH_MODEL setting."
    )
    assert describe_error(Exception("Connection refused"), "m").startswith("Network connection failed")
    assert describe_error(Exception("weird"), "m") == "Model request failed: weird"


@pytest.mark.asyncio
async def test_openai_streaming_and_single_shot(monkeypatch: pytest.MonkeyPatch):
    provider = OpenAIProvider("gpt-4o-mini", api_key="test-key")
    calls = []

    def _chunk(text):
        return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=text))])

    async def _stream():
        for text in ["Start ", None, "small"]:
            yield _chunk(text)

    async def _fake_create(*args, **kwargs):
        calls.append(kwargs)
        if kwargs.get("stream"):
            return _stream()
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=" 1. What now? "))])

    monkeypatch.setattr(provider.client.chat.completions, "create", _fake_create)

    assert await _collect(provider.invoke_streaming(QUERY)) == ["Start ", "small"]
    assert await provider.invoke_single_shot(QUERY) == "1. What now?"

    messages = calls[0]["messages"]
    assert messages[0] == {"role": "system", "content": "Be a helpful coaching assistant."}
    assert messages[-1] == {"role": "user", "content": "Coachee: I am not sure where to start"}
    assert calls[0]["max_tokens"] == 300
    assert calls[0]["temperature"] == 0.5


@pytest.mark.asyncio
async def test_openai_failure_is_wrapped(monkeypatch: pytest.MonkeyPatch):
    provider = OpenAIProvider("gpt-4o-mini", api_key="test-key")

    async def _boom(*args, **kwargs):
        raise RuntimeError("Connection error")

    monkeypatch.setattr(provider.client.chat.completions, "create", _boom)

    with pytest.raises(ModelRequestError) as exc_info:
        await _collect(provider.invoke_streaming(QUERY))
    assert exc_info.value.provider == "openai"
    assert str(exc_info.value).startswith("Network connection failed")


class _FakeAnthropicStream:
    def __init__(self, texts):
        self._texts = texts

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    @property
    async def text_stream(self):
        for text in self._texts:
            yield text


@pytest.mark.asyncio
async def test_anthropic_streaming_and_single_shot():
    seen = []

    def _stream(**kwargs):
        seen.append(kwargs)
        return _FakeAnthropicStream(["What ", "matters?"])

    async def _create(**kwargs):
        seen.append(kwargs)
        return SimpleNamespace(content=[SimpleNamespace(type="text", text="1. What matters?")])

    client = SimpleNamespace(messages=SimpleNamespace(stream=_stream, create=_create))
    provider = AnthropicProvider("claude-3-5-sonnet-20241022", api_key="test-key", client=client)

    assert await _collect(provider.invoke_streaming(QUERY)) == ["What ", "matters?"]
    assert await provider.invoke_single_shot(QUERY) == "1. What matters?"
    assert seen[0]["system"] == "Be a helpful coaching assistant."
    assert seen[0]["max_tokens"] == 300
    assert [m["role"] for m in seen[0]["messages"]] == ["user", "assistant", "user"]


def test_anthropic_messages_alternate_and_start_with_user():
    messages = [
        {"role": "assistant", "content": "dangling"},
        {"role": "user", "content": "a"},
        {"role": "user", "content": "b"},
        {"role": "assistant", "content": "c"},
    ]
    assert _alternating(messages) == [
        {"role": "user", "content": "a\n\nb"},
        {"role": "assistant", "content": "c"},
    ]


@pytest.mark.asyncio
async def test_gemini_streaming_and_single_shot():
    class _Chunk:
        def __init__(self, text):
            self._text = text

        @property
        def text(self):
            if self._text is None:
                raise ValueError("no parts")
            return self._text

    class _Response:
        def __init__(self, texts):
            self._texts = texts

        def __aiter__(self):
            return self._gen()

        async def _gen(self):
            for t in self._texts:
                yield _Chunk(t)

    seen = []

    class _Model:
        async def generate_content_async(self, contents, generation_config=None, stream=False):
            seen.append((contents, generation_config))
            if stream:
                return _Response(["How ", None, "so?"])
            return _Chunk(" 1. How so? ")

    provider = GeminiProvider("gemini-1.5-flash", api_key="test-key", client=_Model())

    assert await _collect(provider.invoke_streaming(QUERY)) == ["How ", "so?"]
    assert await provider.invoke_single_shot(QUERY) == "1. How so?"
    contents, generation_config = seen[0]
    assert [c["role"] for c in contents] == ["user", "model", "user"]
    assert generation_config["max_output_tokens"] == 300


@pytest.mark.asyncio
async def test_custom_provider_reads_ndjson_stream():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(json.loads(request.content))
        body = json.loads(request.content)
        if body["stream"]:
            lines = [
                {"message": {"content": "What "}, "done": False},
                {"message": {"content": "else?"}, "done": False},
                {"message": {"content": ""}, "done": True},
            ]
            return httpx.Response(200, content="\n".join(json.dumps(line) for line in lines))
        return httpx.Response(200, json={"message": {"content": "1. What else?"}, "done": True})

    provider = CustomProvider(
        "gemma3:4b",
        endpoint="http://127.0.0.1:11434/",
        transport=httpx.MockTransport(handler),
    )

    assert await _collect(provider.invoke_streaming(QUERY)) == ["What ", "else?"]
    assert await provider.invoke_single_shot(QUERY) == "1. What else?"
    assert requests[0]["model"] == "gemma3:4b"
    assert requests[0]["messages"][0]["role"] == "system"
    assert requests[0]["options"] == {"temperature": 0.5, "num_predict": 300}


@pytest.mark.asyncio
async def test_custom_provider_errors():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=json.dumps({"error": "model 'gemma3:4b' not found"}))

    provider = CustomProvider("gemma3:4b", endpoint="http://localhost:11434", transport=httpx.MockTransport(handler))
    with pytest.raises(ModelRequestError) as exc_info:
        await _collect(provider.invoke_streaming(QUERY))
    assert "not found" in str(exc_info.value)

    with pytest.raises(ConfigurationError):
        CustomProvider("gemma3:4b", endpoint=None)


def test_create_provider_picks_family():
    snap = ConfigSnapshot(model="claude-3-5-sonnet-20241022", anthropic_api_key="test-key")
    assert isinstance(create_provider(snap), AnthropicProvider)

    custom = ConfigSnapshot(
        model="gemma3:4b",
        custom_models=({"value": "gemma3:4b", "type": "custom", "endpoint": "http://localhost:11434"},),
    )
    provider = create_provider(custom)
    assert isinstance(provider, CustomProvider)
    assert provider.endpoint == "http://localhost:11434"

    with pytest.raises(ConfigurationError):
        create_provider(ConfigSnapshot(model="gpt-4o"))


def test_provider_handle_is_lazy_and_cached():
    built = []

    def factory(snap):
        built.append(snap.model)
        return object()

    handle = ProviderHandle(ConfigSnapshot(model="gpt-4o"), factory=factory)
    assert built == []
    first = handle()
    assert handle() is first
    handle.reset(ConfigSnapshot(model="gpt-4o-mini"))
    assert handle() is not first
    assert built == ["gpt-4o", "gpt-4o-mini"]
