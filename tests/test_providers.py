"""Tests for provider adapters, error classification, images and the factory."""

import base64
from types import SimpleNamespace

import pytest

from quorum.config import BackendCredentials, QuorumConfig
from quorum.providers import (
    ClientCache,
    ImageAttachment,
    Message,
    ProviderAuthenticationError,
    ProviderError,
    ProviderFactory,
    ProviderHandle,
    ProviderNotSupportedError,
    ProviderRateLimitError,
    RetryCode,
    TokenUsage,
)
from quorum.providers.images import (
    parse_data_url,
    resolve_base64,
    sniff_image_type,
    to_anthropic_part,
    to_openai_part,
)
from quorum.providers.implementations import (
    AnthropicProvider,
    CustomEndpointProvider,
    OpenAIProvider,
)

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16
JPEG = b"\xff\xd8\xff\xe0" + b"\x00" * 16

USAGE = SimpleNamespace(prompt_tokens=4, completion_tokens=2)

HELLO = [Message(role="system", content="Be brief."), Message(role="user", content="Hello")]


class FakeStream:
    """Async iterable over prepared SDK chunks."""

    def __init__(self, items):
        self.items = list(items)

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for item in self.items:
            if isinstance(item, Exception):
                raise item
            yield item


class RecordingCreate:
    """Stand-in for ``client.chat.completions.create`` / ``client.messages.create``."""

    def __init__(self, result):
        self.result = result
        self.kwargs = None

    async def __call__(self, **kwargs):
        self.kwargs = kwargs
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


def openai_client(result):
    create = RecordingCreate(result)
    return SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create))), create


def anthropic_client(result):
    create = RecordingCreate(result)
    return SimpleNamespace(messages=SimpleNamespace(create=create)), create


def openai_chunk(text=None, usage=None):
    choices = [SimpleNamespace(delta=SimpleNamespace(content=text))] if text is not None else []
    return SimpleNamespace(choices=choices, usage=usage)


# ----------------------------------------------------------------------
# Images
# ----------------------------------------------------------------------


def test_sniff_image_type():
    assert sniff_image_type(PNG) == "image/png"
    assert sniff_image_type(JPEG) == "image/jpeg"
    assert sniff_image_type(b"GIF89a....") == "image/gif"
    assert sniff_image_type(b"RIFF\x00\x00\x00\x00WEBPVP8 ") == "image/webp"
    assert sniff_image_type(b"plain text") is None


def test_parse_data_url():
    assert parse_data_url("data:image/png;base64,AAAA") == ("image/png", "AAAA")
    assert parse_data_url("data:text/plain,hello") is None
    assert parse_data_url("https://example.com/cat.png") is None


def test_mislabelled_image_is_corrected():
    attachment = ImageAttachment(mime_type="image/png", data=JPEG)
    mime, payload = resolve_base64(attachment)
    assert mime == "image/jpeg"
    assert base64.b64decode(payload) == JPEG

    data_url = f"data:image/png;base64,{base64.b64encode(JPEG).decode()}"
    assert resolve_base64(ImageAttachment(url=data_url))[0] == "image/jpeg"


def test_image_parts():
    remote = ImageAttachment(url="https://example.com/cat.png")
    assert to_openai_part(remote) == {"type": "image_url", "image_url": {"url": "https://example.com/cat.png"}}
    assert to_anthropic_part(remote) == {
        "type": "image",
        "source": {"type": "url", "url": "https://example.com/cat.png"},
    }

    inline = ImageAttachment(mime_type="image/png", data=PNG)
    encoded = base64.b64encode(PNG).decode()
    assert to_openai_part(inline)["image_url"]["url"] == f"data:image/png;base64,{encoded}"
    assert to_anthropic_part(inline)["source"] == {
        "type": "base64", "media_type": "image/png", "data": encoded,
    }


def test_image_attachment_requires_a_source():
    with pytest.raises(ValueError):
        ImageAttachment(mime_type="image/png")


# ----------------------------------------------------------------------
# Error classification
# ----------------------------------------------------------------------


class StatusError(Exception):
    def __init__(self, message, status_code):
        super().__init__(message)
        self.status_code = status_code


class RateLimitError(Exception):
    pass


@pytest.mark.parametrize(
    "error,code",
    [
        (StatusError("slow down", 429), RetryCode.RATE_LIMIT_ERROR),
        (StatusError("denied", 401), RetryCode.AUTHENTICATION_ERROR),
        (StatusError("missing", 404), RetryCode.MODEL_NOT_AVAILABLE_ERROR),
        (RateLimitError("x"), RetryCode.RATE_LIMIT_ERROR),
        (Exception("request timed out"), RetryCode.TIMEOUT_ERROR),
        (Exception("maximum context length is 8192 tokens"), RetryCode.CONTEXT_LENGTH_EXCEEDED),
        (Exception("something odd"), RetryCode.EXECUTION_ERROR),
    ],
)
def test_error_categorization(error, code):
    provider = OpenAIProvider(SimpleNamespace())
    assert provider._categorize_error(error) == code


# ----------------------------------------------------------------------
# OpenAI adapter
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_openai_call():
    response = SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content="Hi there"))],
        usage=SimpleNamespace(prompt_tokens=12, completion_tokens=3),
    )
    client, create = openai_client(response)
    provider = OpenAIProvider(client, max_tokens=256)

    completion = await provider.call("gpt-4o", HELLO)

    assert completion.text == "Hi there"
    assert completion.usage == TokenUsage(input_tokens=12, output_tokens=3)
    assert create.kwargs["model"] == "gpt-4o"
    assert create.kwargs["max_completion_tokens"] == 256
    assert create.kwargs["messages"][0] == {"role": "system", "content": "Be brief."}


@pytest.mark.asyncio
async def test_openai_stream_reports_usage_once():
    chunks = [
        openai_chunk("Hel"),
        openai_chunk("lo"),
        openai_chunk(usage=SimpleNamespace(prompt_tokens=7, completion_tokens=2)),
    ]
    client, create = openai_client(FakeStream(chunks))
    provider = OpenAIProvider(client)
    reported = []

    text = "".join([piece async for piece in provider.stream("gpt-4o", HELLO, on_usage=reported.append)])

    assert text == "Hello"
    assert reported == [TokenUsage(input_tokens=7, output_tokens=2)]
    assert create.kwargs["stream"] is True
    assert create.kwargs["stream_options"] == {"include_usage": True}


@pytest.mark.asyncio
async def test_openai_stream_estimates_missing_usage():
    client, _ = openai_client(FakeStream([openai_chunk("Hello world")]))
    provider = OpenAIProvider(client)
    reported = []

    async for _ in provider.stream("gpt-4o", HELLO, on_usage=reported.append):
        pass

    assert reported[0].input_tokens > 0
    assert reported[0].output_tokens > 0


@pytest.mark.asyncio
async def test_openai_stream_error_is_classified_and_usage_reported():
    client, _ = openai_client(FakeStream([openai_chunk("partial"), StatusError("slow down", 429)]))
    provider = OpenAIProvider(client)
    reported = []

    with pytest.raises(ProviderRateLimitError):
        async for _ in provider.stream("gpt-4o", HELLO, on_usage=reported.append):
            pass

    assert len(reported) == 1


@pytest.mark.asyncio
async def test_openai_multimodal_message():
    response = SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content="A cat"))], usage=USAGE)
    client, create = openai_client(response)
    message = Message(
        role="user",
        content="What is this?",
        images=[ImageAttachment(url="https://example.com/cat.png")],
    )

    await OpenAIProvider(client).call("gpt-4o", [message])

    content = create.kwargs["messages"][0]["content"]
    assert content[0] == {"type": "text", "text": "What is this?"}
    assert content[1]["type"] == "image_url"


@pytest.mark.asyncio
async def test_provider_validates_arguments():
    client, _ = openai_client(None)
    provider = OpenAIProvider(client)
    with pytest.raises(ValueError):
        await provider.call("", HELLO)
    with pytest.raises(ValueError):
        await provider.call("gpt-4o", [])


@pytest.mark.asyncio
async def test_custom_endpoint_uses_max_tokens():
    response = SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content="ok"))], usage=USAGE)
    client, create = openai_client(response)
    provider = CustomEndpointProvider(client, name="local", max_tokens=100)

    await provider.call("llama3", HELLO)

    assert provider.name == "local"
    assert create.kwargs["max_tokens"] == 100
    assert "max_completion_tokens" not in create.kwargs


# ----------------------------------------------------------------------
# Anthropic adapter
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_anthropic_call_lifts_system_prompt():
    response = SimpleNamespace(
        content=[SimpleNamespace(type="text", text="Hi")],
        usage=SimpleNamespace(input_tokens=9, output_tokens=1),
    )
    client, create = anthropic_client(response)

    completion = await AnthropicProvider(client, max_tokens=64).call("claude-sonnet-4", HELLO)

    assert completion.text == "Hi"
    assert completion.usage == TokenUsage(input_tokens=9, output_tokens=1)
    assert create.kwargs["system"] == "Be brief."
    assert create.kwargs["messages"] == [{"role": "user", "content": "Hello"}]
    assert create.kwargs["max_tokens"] == 64


@pytest.mark.asyncio
async def test_anthropic_stream():
    events = [
        SimpleNamespace(type="message_start", message=SimpleNamespace(usage=SimpleNamespace(input_tokens=11))),
        SimpleNamespace(type="content_block_start"),
        SimpleNamespace(type="content_block_delta", delta=SimpleNamespace(type="text_delta", text="Hel")),
        SimpleNamespace(type="content_block_delta", delta=SimpleNamespace(type="text_delta", text="lo")),
        SimpleNamespace(type="message_delta", usage=SimpleNamespace(output_tokens=4)),
        SimpleNamespace(type="message_stop"),
    ]
    client, create = anthropic_client(FakeStream(events))
    reported = []

    pieces = [p async for p in AnthropicProvider(client).stream("claude", HELLO, on_usage=reported.append)]

    assert "".join(pieces) == "Hello"
    assert reported == [TokenUsage(input_tokens=11, output_tokens=4)]
    assert create.kwargs["stream"] is True


def test_anthropic_images_precede_text():
    provider = AnthropicProvider(SimpleNamespace())
    message = Message(role="user", content="Describe", images=[ImageAttachment(mime_type="image/png", data=PNG)])
    content = provider._normalize_message(message)["content"]
    assert content[0]["type"] == "image"
    assert content[1] == {"type": "text", "text": "Describe"}


# ----------------------------------------------------------------------
# Client cache and factory
# ----------------------------------------------------------------------


def test_client_cache_shares_clients_per_endpoint():
    cache = ClientCache()
    first = cache.get_or_create("custom", "http://localhost:8000/v1/", "key", object)
    second = cache.get_or_create("custom", "http://localhost:8000/v1", "key", object)
    other_key = cache.get_or_create("custom", "http://localhost:8000/v1", "other", object)

    assert first is second
    assert other_key is not first
    assert len(cache) == 2


@pytest.fixture
def keyed_config() -> QuorumConfig:
    return QuorumConfig(
        openai=BackendCredentials(api_key="sk-openai"),
        anthropic=BackendCredentials(api_key="sk-anthropic"),
        openrouter=BackendCredentials(api_key="sk-or", base_url="https://openrouter.ai/api/v1"),
    )


def test_factory_dispatch(keyed_config):
    factory = ProviderFactory(keyed_config)

    assert isinstance(factory.create(ProviderHandle(id="openai", name="OpenAI", model="gpt-4o")), OpenAIProvider)
    assert isinstance(factory.create(ProviderHandle(id="anthropic", name="Anthropic", model="claude")),
                      AnthropicProvider)
    openrouter = factory.create(ProviderHandle(id="openrouter", name="OpenRouter", model="x/y"))
    assert isinstance(openrouter, CustomEndpointProvider)
    assert openrouter.name == "openrouter"

    custom = factory.create(
        ProviderHandle(id="local", name="Local", model="llama3", base_url="http://localhost:8000/v1", is_custom=True)
    )
    assert isinstance(custom, CustomEndpointProvider)
    assert custom.name == "local"


def test_factory_reuses_adapters(keyed_config):
    factory = ProviderFactory(keyed_config)
    handle = ProviderHandle(id="openai", name="OpenAI", model="gpt-4o")
    other_model = ProviderHandle(id="openai", name="OpenAI", model="gpt-4o-mini")
    assert factory.create(handle) is factory.create(other_model)
    assert len(factory.cache) == 1


def test_factory_rebuilds_custom_adapter_when_key_changes(keyed_config):
    factory = ProviderFactory(keyed_config)
    endpoint = dict(id="local", name="Local", model="llama3", base_url="http://localhost:8000/v1", is_custom=True)

    original = factory.create(ProviderHandle(api_key="key-one", **endpoint))
    rotated = factory.create(ProviderHandle(api_key="key-two", **endpoint))

    assert rotated is not original
    assert factory.create(ProviderHandle(api_key="key-two", **endpoint)) is rotated
    assert len(factory.cache) == 2


def test_factory_reads_keys_from_environment(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
    factory = ProviderFactory(QuorumConfig())
    assert isinstance(factory.create(ProviderHandle(id="openai", name="OpenAI", model="gpt-4o")), OpenAIProvider)


def test_factory_missing_key(monkeypatch):
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    factory = ProviderFactory(QuorumConfig())
    with pytest.raises(ProviderAuthenticationError):
        factory.create(ProviderHandle(id="anthropic", name="Anthropic", model="claude"))


def test_factory_custom_without_base_url(keyed_config):
    with pytest.raises(ProviderAuthenticationError):
        ProviderFactory(keyed_config).create(ProviderHandle(id="local", name="Local", model="m", is_custom=True))


def test_factory_unknown_provider(keyed_config):
    with pytest.raises(ProviderNotSupportedError) as excinfo:
        ProviderFactory(keyed_config).create(ProviderHandle(id="gemini", name="Gemini", model="g"))
    assert isinstance(excinfo.value, ProviderError)
    assert excinfo.value.provider_id == "gemini"
