# tests/test_adapters.py
"""
Tests for model adapters.

Covers:
- configuration validation and capability overrides
- prompt rendering (Human/Assistant history, tool sections)
- response parsing and streaming chunk order
- Ollama, HuggingFace and OpenAI-compatible transports against fake servers
- HTTP and SDK error mapping
- the adapter factory
"""

import json
from types import SimpleNamespace

import httpx
import openai
import pytest

from tandem.config.schema import ModelConfig
from tandem.context.models import Message, MessageRole
from tandem.exceptions import (
    APIError,
    AuthenticationError,
    ConfigurationError,
    ConnectionError,
    ModelUnavailableError,
    ProtocolError,
    RateLimitError,
)
from tandem.llm.adapters import factory
from tandem.llm.adapters.factory import create_adapter, register_adapter
from tandem.llm.adapters.huggingface import HuggingFaceAdapter
from tandem.llm.adapters.mock import MockModelAdapter
from tandem.llm.adapters.ollama import OllamaAdapter
from tandem.llm.adapters.openai_compat import OpenAIAdapter
from tandem.tools.models import ToolResult, ToolResultMetadata

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

READ_FILE_SCHEMA = {
    "name": "read_file",
    "description": "Read a file",
    "parameters": {
        "type": "object",
        "properties": {"path": {"type": "string"}},
        "required": ["path"],
    },
}


def json_response(data, status_code: int = 200, **kwargs) -> httpx.Response:
    return httpx.Response(status_code, json=data, **kwargs)


def make_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def ndjson(*events) -> bytes:
    return "".join(f"{e if isinstance(e, str) else json.dumps(e)}\n" for e in events).encode()


async def collect(adapter, prompt: str = "prompt"):
    return [chunk async for chunk in adapter.stream(prompt)]


class FakeOllama:
    """Request handler standing in for an Ollama server."""

    def __init__(self, models=("llama3.1:8b",), show=None):
        self.models = list(models)
        self.show = show if show is not None else {"details": {"parameter_size": "8.0B"}}
        self.generate: list[httpx.Response] = []
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/api/tags":
            return json_response({"models": [{"name": name, "size": 1} for name in self.models]})
        if path == "/api/show":
            return json_response(self.show)
        if path == "/api/generate":
            return self.generate.pop(0)
        if path == "/api/pull":
            return json_response({"status": "success"})
        return httpx.Response(404, text="not found")

    def payloads(self, path: str) -> list[dict]:
        return [json.loads(r.content) for r in self.requests if r.url.path == path]


async def ollama_adapter(server: FakeOllama, **config) -> OllamaAdapter:
    adapter = OllamaAdapter(http_client=make_client(server))
    settings = {"name": "llama3.1", "provider": "ollama", "max_retries": 0, **config}
    await adapter.initialize(ModelConfig(**settings))
    return adapter


# ---------------------------------------------------------------------------
# Base behaviour (through the mock adapter)
# ---------------------------------------------------------------------------


class TestInitialize:
    @pytest.mark.asyncio
    async def test_requires_name(self):
        with pytest.raises(ConfigurationError, match="Model name is required"):
            await MockModelAdapter().initialize(ModelConfig(name=" ", provider="mock"))

    @pytest.mark.asyncio
    async def test_rejects_foreign_provider(self):
        with pytest.raises(ConfigurationError) as exc_info:
            await MockModelAdapter().initialize(ModelConfig(name="m", provider="ollama"))

        assert exc_info.value.config_key == "provider"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("endpoint", ["ftp://example.com", "localhost"])
    async def test_rejects_invalid_endpoint(self, endpoint):
        with pytest.raises(ConfigurationError, match="Invalid endpoint"):
            await MockModelAdapter().initialize(
                ModelConfig(name="m", provider="mock", endpoint=endpoint),
            )

    @pytest.mark.asyncio
    async def test_unreachable_backend(self):
        adapter = MockModelAdapter(fail_connection=True)

        with pytest.raises(ConfigurationError, match="unavailable"):
            await adapter.initialize(ModelConfig(name="m", provider="mock"))

    @pytest.mark.asyncio
    async def test_capability_overrides_win(self, caplog):
        adapter = MockModelAdapter()

        await adapter.initialize(
            ModelConfig(
                name="m",
                provider="mock",
                capability_overrides={"max_context_length": 16384, "bogus": 1},
            ),
        )

        assert adapter.get_capabilities().max_context_length == 16384
        assert "bogus" in caplog.text

    @pytest.mark.asyncio
    async def test_capabilities_are_copies(self, mock_adapter, mock_model_config):
        await mock_adapter.initialize(mock_model_config)

        capabilities = mock_adapter.get_capabilities()
        capabilities.supported_formats.append("xml")

        assert "xml" not in mock_adapter.get_capabilities().supported_formats

    @pytest.mark.asyncio
    async def test_send_before_initialize(self):
        with pytest.raises(ConfigurationError, match="not initialized"):
            await MockModelAdapter().send_request("hi")


class TestFormatPrompt:
    def test_history_rendering(self):
        result = ToolResult.error_result("missing", metadata=ToolResultMetadata(tool_name="read_file"))
        messages = [
            Message(role=MessageRole.SYSTEM, content="Sys"),
            Message(role=MessageRole.USER, content="Hi"),
            Message(role=MessageRole.ASSISTANT, content="Hello", tool_results=[result]),
            Message(role=MessageRole.TOOL, content="raw output"),
            Message(role=MessageRole.USER, content="Next"),
        ]

        prompt = MockModelAdapter().format_prompt(messages)

        assert prompt == (
            "Sys\n\n"
            "Human: Hi\n"
            "Assistant: Hello\n"
            "Tool Result (read_file): Error: missing\n"
            "Tool: raw output\n"
            "Human: Next\n"
            "Assistant: "
        )

    def test_tools_section_when_supported(self):
        messages = [Message(role=MessageRole.USER, content="Read a.txt")]

        prompt = MockModelAdapter().format_prompt(messages, [READ_FILE_SCHEMA])

        assert "Available tools:" in prompt
        assert '"name": "read_file"' in prompt
        assert "```json" in prompt
        assert prompt.endswith("Human: Read a.txt\nAssistant: ")

    def test_tools_section_omitted_without_support(self):
        messages = [Message(role=MessageRole.USER, content="Read a.txt")]

        prompt = OllamaAdapter().format_prompt(messages, [READ_FILE_SCHEMA])

        assert "Available tools" not in prompt

    def test_accepts_tool_objects(self, read_file_tool):
        messages = [Message(role=MessageRole.USER, content="x")]

        prompt = MockModelAdapter().format_prompt(messages, [read_file_tool])

        assert '"name": "read_file"' in prompt


class TestParseResponse:
    def test_plain_text(self):
        response = MockModelAdapter().parse_response("  Just text.  ")

        assert response.content == "  Just text.  "
        assert response.tool_calls == []
        assert response.metadata.tokens_used == 4

    def test_tool_call_removed_from_content(self):
        raw = 'Reading it.\n```json\n{"name": "read_file", "parameters": {"path": "a"}}\n```'

        response = OllamaAdapter().parse_response(raw)

        assert response.content == "Reading it."
        assert response.tool_calls[0].name == "read_file"

    def test_mock_envelope(self):
        raw = json.dumps(
            {
                "content": "Reading",
                "tool_calls": [{"id": "c1", "name": "read_file", "parameters": {"path": "a"}}, {}],
            },
        )

        response = MockModelAdapter().parse_response(raw)

        assert response.content == "Reading"
        assert [(c.id, c.name) for c in response.tool_calls] == [("c1", "read_file")]

    def test_mock_plain_json_falls_back_to_extraction(self):
        response = MockModelAdapter().parse_response('{"name": "list_dir", "parameters": {}}')

        assert response.tool_calls[0].name == "list_dir"


class TestStreaming:
    @pytest.mark.asyncio
    async def test_chunks_then_terminal(self, mock_model_config):
        adapter = MockModelAdapter(responses=["Hello world"], chunk_size=4)
        await adapter.initialize(mock_model_config)

        chunks = await collect(adapter)

        assert [c.content for c in chunks] == ["Hell", "o wo", "rld", ""]
        assert [c.is_complete for c in chunks] == [False, False, False, True]
        assert chunks[-1].tool_calls == []

    @pytest.mark.asyncio
    async def test_terminal_chunk_carries_tool_calls(self, mock_model_config):
        adapter = MockModelAdapter(responses=['read_file(path="a.txt")'], chunk_size=5)
        await adapter.initialize(mock_model_config)

        chunks = await collect(adapter)

        assert chunks[-1].is_complete
        assert chunks[-1].tool_calls[0].parameters == {"path": "a.txt"}

    @pytest.mark.asyncio
    async def test_non_streaming_backend_yields_single_chunk(self, mock_model_config):
        adapter = MockModelAdapter(responses=["Hello world"], chunk_size=1)
        await adapter.initialize(
            mock_model_config.model_copy(
                update={"capability_overrides": {"supports_streaming": False}},
            ),
        )

        chunks = await collect(adapter)

        assert [c.content for c in chunks] == ["Hello world", ""]

    @pytest.mark.asyncio
    async def test_streaming_callback_may_be_async(self, mock_model_config):
        adapter = MockModelAdapter(responses=["abcdef"], chunk_size=3)
        await adapter.initialize(mock_model_config)
        received = []

        async def on_chunk(chunk):
            received.append(chunk.content)

        await adapter.send_streaming_request("prompt", on_chunk)

        assert received == ["abc", "def", ""]

    @pytest.mark.asyncio
    async def test_scripted_error_is_raised(self, mock_model_config):
        adapter = MockModelAdapter(responses=[RateLimitError("slow down")])
        await adapter.initialize(mock_model_config)

        with pytest.raises(RateLimitError):
            await adapter.send_request("prompt")

        assert adapter.prompts == ["prompt"]


# ---------------------------------------------------------------------------
# Ollama
# ---------------------------------------------------------------------------


class TestOllamaAdapter:
    @pytest.mark.asyncio
    async def test_initialize_refines_capabilities(self):
        server = FakeOllama()

        adapter = await ollama_adapter(server)

        capabilities = adapter.get_capabilities()
        assert capabilities.supports_tool_calling is True
        assert capabilities.supports_streaming is True
        assert capabilities.max_context_length == 4096
        assert server.payloads("/api/show") == [{"name": "llama3.1"}]

    @pytest.mark.asyncio
    async def test_initialize_without_model_details(self):
        server = FakeOllama(models=["codellama:latest"], show={})

        adapter = await ollama_adapter(server, name="codellama")

        assert adapter.get_capabilities().supports_tool_calling is True
        assert adapter.get_capabilities().max_context_length == 16384

    @pytest.mark.asyncio
    async def test_initialize_missing_model(self):
        server = FakeOllama(models=["mistral:7b"])

        with pytest.raises(ConfigurationError, match="ollama pull llama3.1"):
            await ollama_adapter(server)

    @pytest.mark.asyncio
    async def test_test_connection_false_when_down(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        adapter = OllamaAdapter(http_client=make_client(handler))

        assert await adapter.test_connection() is False

    @pytest.mark.asyncio
    async def test_list_models(self):
        adapter = OllamaAdapter(http_client=make_client(FakeOllama(models=["a:1", "b:2"])))

        models = await adapter.list_models()

        assert [m.name for m in models] == ["a:1", "b:2"]

    @pytest.mark.asyncio
    async def test_send_request_payload_and_context(self):
        server = FakeOllama()
        adapter = await ollama_adapter(server, temperature=0.2, max_tokens=100)
        server.generate = [
            json_response({"response": "Hi", "done": True, "context": [1, 2, 3]}),
            json_response({"response": "Again", "done": True}),
        ]

        assert await adapter.send_request("Human: hi\nAssistant: ") == "Hi"
        assert adapter.context_size == 3
        await adapter.send_request("next")

        first, second = server.payloads("/api/generate")
        assert first == {
            "model": "llama3.1",
            "prompt": "Human: hi\nAssistant: ",
            "stream": False,
            "options": {"temperature": 0.2, "num_predict": 100},
        }
        assert second["context"] == [1, 2, 3]

        adapter.clear_context()
        assert adapter.context_size == 0

    @pytest.mark.asyncio
    async def test_memory_error(self):
        server = FakeOllama()
        adapter = await ollama_adapter(server)
        server.generate = [
            json_response({"error": "model requires more system memory (8 GiB)"}, status_code=500),
        ]

        with pytest.raises(APIError) as exc_info:
            await adapter.send_request("hi")

        assert exc_info.value.status_code == 500
        assert exc_info.value.details["suggestions"]

    @pytest.mark.asyncio
    async def test_model_not_found(self):
        server = FakeOllama()
        adapter = await ollama_adapter(server)
        server.generate = [json_response({"error": "model 'llama3.1' not found"}, status_code=404)]

        with pytest.raises(ModelUnavailableError, match='ollama pull llama3.1'):
            await adapter.send_request("hi")

    @pytest.mark.asyncio
    async def test_invalid_body(self):
        server = FakeOllama()
        adapter = await ollama_adapter(server)
        server.generate = [json_response({"done": True})]

        with pytest.raises(ProtocolError):
            await adapter.send_request("hi")

    @pytest.mark.asyncio
    async def test_rate_limit_is_retried(self):
        server = FakeOllama()
        adapter = await ollama_adapter(server, max_retries=1)
        server.generate = [
            json_response({"error": "busy"}, status_code=429, headers={"Retry-After": "0"}),
            json_response({"response": "ok", "done": True}),
        ]

        assert await adapter.send_request("hi") == "ok"

    @pytest.mark.asyncio
    async def test_transport_failure(self):
        server = FakeOllama()
        adapter = await ollama_adapter(server)

        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        adapter._http_client = make_client(refuse)

        with pytest.raises(ConnectionError, match="ollama serve"):
            await adapter.send_request("hi")

    @pytest.mark.asyncio
    async def test_stream_ndjson(self, caplog):
        server = FakeOllama()
        adapter = await ollama_adapter(server)
        server.generate = [
            httpx.Response(
                200,
                content=ndjson(
                    {"response": "Hel", "done": False},
                    "not json",
                    {"response": "lo", "done": False},
                    {"response": "", "done": True, "context": [7]},
                ),
            ),
        ]

        chunks = await collect(adapter)

        assert [c.content for c in chunks] == ["Hel", "lo", ""]
        assert chunks[-1].is_complete
        assert adapter.context_size == 1
        assert server.payloads("/api/generate")[0]["stream"] is True
        assert "malformed" in caplog.text

    @pytest.mark.asyncio
    async def test_stream_error_line(self):
        server = FakeOllama()
        adapter = await ollama_adapter(server)
        server.generate = [
            httpx.Response(200, content=ndjson({"response": "a"}, {"error": "boom"})),
        ]

        with pytest.raises(APIError, match="boom"):
            await collect(adapter)

    @pytest.mark.asyncio
    async def test_pull_model(self):
        server = FakeOllama()
        adapter = await ollama_adapter(server)

        await adapter.pull_model()

        assert server.payloads("/api/pull") == [{"name": "llama3.1", "stream": False}]

    @pytest.mark.asyncio
    async def test_injected_client_not_closed(self):
        client = make_client(FakeOllama())
        adapter = OllamaAdapter(http_client=client)

        await adapter.close()

        assert not client.is_closed
        await client.aclose()


# ---------------------------------------------------------------------------
# HuggingFace
# ---------------------------------------------------------------------------


class TestHuggingFaceAdapter:
    @pytest.mark.asyncio
    async def test_initialize_without_key_skips_probe(self):
        calls = []

        def handler(request):
            calls.append(request)
            return json_response([{"generated_text": "hi"}])

        adapter = HuggingFaceAdapter(http_client=make_client(handler))
        await adapter.initialize(ModelConfig(name="bigcode/starcoder", provider="huggingface"))

        assert calls == []
        assert adapter.get_capabilities().supports_tool_calling is True
        assert adapter.get_capabilities().max_context_length == 8192

    @pytest.mark.asyncio
    async def test_small_models_have_no_tools(self):
        adapter = HuggingFaceAdapter(http_client=make_client(lambda r: json_response([])))
        await adapter.initialize(ModelConfig(name="gpt2", provider="huggingface"))

        assert adapter.get_capabilities().supports_tool_calling is False

    @pytest.mark.asyncio
    async def test_initialize_with_bad_key(self):
        adapter = HuggingFaceAdapter(
            http_client=make_client(lambda r: json_response({"error": "Invalid token"}, 401)),
        )

        with pytest.raises(ConfigurationError, match="API key"):
            await adapter.initialize(
                ModelConfig(name="gpt2", provider="huggingface", api_key="hf_bad", max_retries=0),
            )

    @pytest.mark.asyncio
    async def test_send_request(self):
        requests = []

        def handler(request):
            requests.append(request)
            return json_response([{"generated_text": " Sure."}])

        adapter = HuggingFaceAdapter(http_client=make_client(handler))
        await adapter.initialize(
            ModelConfig(name="bigcode/starcoder", provider="huggingface", api_key="hf_x"),
        )

        assert await adapter.send_request("prompt") == " Sure."

        request = requests[-1]
        body = json.loads(request.content)
        assert str(request.url) == "https://api-inference.huggingface.co/models/bigcode/starcoder"
        assert request.headers["Authorization"] == "Bearer hf_x"
        assert body["inputs"] == "prompt"
        assert body["parameters"]["temperature"] == 0.7
        assert body["parameters"]["max_new_tokens"] == 512
        assert body["parameters"]["stop"][:3] == ["<|endoftext|>", "</s>", "<|end|>"]
        assert "Human:" in body["parameters"]["stop"]
        assert body["options"] == {"wait_for_model": True, "use_cache": False}

    @pytest.mark.asyncio
    async def test_model_loading(self):
        adapter = HuggingFaceAdapter(
            http_client=make_client(
                lambda r: json_response({"error": "Model bigcode/starcoder is currently loading"}, 503),
            ),
        )
        await adapter.initialize(
            ModelConfig(name="bigcode/starcoder", provider="huggingface", max_retries=0),
        )

        with pytest.raises(ModelUnavailableError):
            await adapter.send_request("prompt")

    @pytest.mark.asyncio
    async def test_unexpected_shape(self):
        adapter = HuggingFaceAdapter(http_client=make_client(lambda r: json_response("text")))
        await adapter.initialize(ModelConfig(name="m", provider="huggingface"))

        with pytest.raises(ProtocolError):
            await adapter.send_request("prompt")

    @pytest.mark.asyncio
    async def test_auth_failure_maps(self):
        adapter = HuggingFaceAdapter(
            http_client=make_client(lambda r: json_response({"error": "bad"}, 403)),
        )
        await adapter.initialize(ModelConfig(name="m", provider="huggingface"))

        with pytest.raises(AuthenticationError):
            await adapter.send_request("prompt")

    @pytest.mark.asyncio
    async def test_stream_server_sent_events(self):
        body = (
            'data: {"token": {"text": "Hel", "special": false}}\n\n'
            'data: {"token": {"text": "lo", "special": false}}\n\n'
            'data: {"token": {"text": "</s>", "special": true}}\n\n'
            "data: [DONE]\n\n"
        )
        adapter = HuggingFaceAdapter(
            http_client=make_client(lambda r: httpx.Response(200, content=body.encode())),
        )
        await adapter.initialize(
            ModelConfig(
                name="m",
                provider="huggingface",
                capability_overrides={"supports_streaming": True},
            ),
        )

        chunks = await collect(adapter)

        assert [c.content for c in chunks] == ["Hel", "lo", ""]

    def test_prompt_puts_latest_message_first(self):
        messages = [
            Message(role=MessageRole.SYSTEM, content="Be brief."),
            Message(role=MessageRole.USER, content="first"),
            Message(role=MessageRole.ASSISTANT, content="answer"),
            Message(role=MessageRole.USER, content="second"),
        ]

        prompt = HuggingFaceAdapter().format_prompt(messages)

        assert prompt == (
            "Be brief.\n\n"
            "second"
            "\n\nConversation history:\n"
            "Human: first\n"
            "Assistant: answer\n"
        )

    def test_prompt_tools_section(self):
        messages = [Message(role=MessageRole.USER, content="read it")]

        prompt = HuggingFaceAdapter().format_prompt(messages, [READ_FILE_SCHEMA])

        assert prompt.startswith("<AVAILABLE_TOOLS>\n")
        assert "</AVAILABLE_TOOLS>" in prompt
        assert prompt.endswith("read it")
        assert "Conversation history" not in prompt


# ---------------------------------------------------------------------------
# OpenAI-compatible
# ---------------------------------------------------------------------------


class FakeStream:
    def __init__(self, parts):
        self._parts = list(parts)
        self.closed = False

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self._parts:
            raise StopAsyncIteration
        part = self._parts.pop(0)
        return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=part))])

    async def close(self):
        self.closed = True


class FakeCompletions:
    def __init__(self):
        self.calls: list[dict] = []
        self.error: Exception | None = None
        self.stream = FakeStream(["Hel", None, "lo"])

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        if kwargs.get("stream"):
            return self.stream
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content="Hi"))])


class FakeOpenAIClient:
    def __init__(self):
        self.completions = FakeCompletions()
        self.chat = SimpleNamespace(completions=self.completions)
        self.models = SimpleNamespace(list=self._list_models)
        self.closed = False

    async def _list_models(self):
        return []

    async def close(self):
        self.closed = True


def status_error(cls, status_code: int, headers=None):
    request = httpx.Request("POST", "https://api.example.com/v1/chat/completions")
    response = httpx.Response(status_code, request=request, headers=headers or {})
    return cls("failure", response=response, body=None)


class TestOpenAIAdapter:
    @pytest.mark.asyncio
    async def test_openai_requires_key(self):
        with pytest.raises(ConfigurationError, match="API key"):
            await OpenAIAdapter(client=FakeOpenAIClient()).initialize(
                ModelConfig(name="gpt-4o", provider="openai"),
            )

    @pytest.mark.asyncio
    async def test_custom_requires_endpoint(self):
        with pytest.raises(ConfigurationError, match="Endpoint"):
            await OpenAIAdapter(client=FakeOpenAIClient()).initialize(
                ModelConfig(name="local", provider="custom"),
            )

    @pytest.mark.asyncio
    async def test_send_request(self):
        client = FakeOpenAIClient()
        adapter = OpenAIAdapter(client=client)
        await adapter.initialize(
            ModelConfig(name="gpt-4o-mini", provider="openai", api_key="sk-x", temperature=0.1),
        )

        assert await adapter.send_request("prompt") == "Hi"
        assert client.completions.calls[0] == {
            "model": "gpt-4o-mini",
            "messages": [{"role": "user", "content": "prompt"}],
            "temperature": 0.1,
        }
        assert adapter.get_capabilities().max_context_length == 128000

    @pytest.mark.asyncio
    async def test_stream(self):
        client = FakeOpenAIClient()
        adapter = OpenAIAdapter(client=client)
        await adapter.initialize(
            ModelConfig(name="local", provider="custom", endpoint="http://localhost:8000/v1"),
        )

        chunks = await collect(adapter)

        assert [c.content for c in chunks] == ["Hel", "lo", ""]
        assert client.completions.stream.closed

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("error", "expected"),
        [
            (lambda: status_error(openai.AuthenticationError, 401), AuthenticationError),
            (lambda: status_error(openai.NotFoundError, 404), ModelUnavailableError),
            (lambda: status_error(openai.InternalServerError, 500), APIError),
            (
                lambda: openai.APIConnectionError(
                    request=httpx.Request("POST", "http://localhost:8000/v1"),
                ),
                ConnectionError,
            ),
        ],
    )
    async def test_error_mapping(self, error, expected):
        client = FakeOpenAIClient()
        adapter = OpenAIAdapter(client=client)
        await adapter.initialize(
            ModelConfig(name="gpt-4o", provider="openai", api_key="sk-x", max_retries=0),
        )
        client.completions.error = error()

        with pytest.raises(expected):
            await adapter.send_request("prompt")

    @pytest.mark.asyncio
    async def test_rate_limit_retry_after(self):
        client = FakeOpenAIClient()
        adapter = OpenAIAdapter(client=client)
        await adapter.initialize(
            ModelConfig(name="gpt-4o", provider="openai", api_key="sk-x", max_retries=0),
        )
        client.completions.error = status_error(
            openai.RateLimitError,
            429,
            headers={"retry-after": "2"},
        )

        with pytest.raises(RateLimitError) as exc_info:
            await adapter.send_request("prompt")

        assert exc_info.value.retry_after == 2.0

    @pytest.mark.asyncio
    async def test_injected_client_not_closed(self):
        client = FakeOpenAIClient()

        await OpenAIAdapter(client=client).close()

        assert client.closed is False


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


class TestFactory:
    @pytest.mark.parametrize(
        ("provider", "cls"),
        [
            ("ollama", OllamaAdapter),
            ("HuggingFace", HuggingFaceAdapter),
            ("openai", OpenAIAdapter),
            ("custom", OpenAIAdapter),
            ("mock", MockModelAdapter),
        ],
    )
    def test_create(self, provider, cls):
        assert isinstance(create_adapter(provider), cls)

    def test_unknown_provider(self):
        with pytest.raises(ConfigurationError, match="Available providers"):
            create_adapter("unknown")

    def test_register(self, monkeypatch):
        monkeypatch.setattr(factory, "ADAPTERS", dict(factory.ADAPTERS))

        register_adapter("Scripted", MockModelAdapter)

        assert isinstance(create_adapter("scripted"), MockModelAdapter)

    def test_kwargs_forwarded(self):
        adapter = create_adapter("mock", responses=["a"])

        assert adapter.responses == ["a"]
