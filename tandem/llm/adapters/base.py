"""
Base class for model adapters.

An adapter turns a conversation into a single text prompt in its backend's
dialect, sends it, and normalizes the free-text answer into an
``AIResponse``. This module holds the behaviour every adapter shares:
configuration validation, the ``Human:``/``Assistant:`` history renderer,
response parsing through the tool-call extractor, streaming on top of an
async generator, and mapping HTTP failures onto the error taxonomy.
"""

import abc
import contextlib
import inspect
import json
import logging
import math
import time
from typing import Any, AsyncIterator, Iterator, Sequence

import httpx

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
from tandem.llm.capabilities import apply_capability_overrides
from tandem.llm.extraction import ToolCallExtractor, default_extractor, strip_spans
from tandem.llm.models import AIResponse, ModelCapabilities, ResponseMetadata, StreamChunk
from tandem.llm.retry import RetryStrategy
from tandem.types import ChunkCallback, ToolSchemas

logger = logging.getLogger(__name__)


def normalize_tool_schemas(tools: Sequence[Any] | None) -> ToolSchemas:
    """
    Accept tool objects or schema mappings and return schema mappings.

    Objects are converted with their ``to_schema()`` method.
    """
    schemas: ToolSchemas = []
    for tool in tools or []:
        if isinstance(tool, dict):
            schemas.append(tool)
        else:
            schemas.append(tool.to_schema())
    return schemas


def render_tool_result(result: Any) -> str:
    name = result.metadata.tool_name or "unknown"
    body = result.output if result.success else f"Error: {result.error}"
    return f"Tool Result ({name}): {body}"


class BaseModelAdapter(abc.ABC):
    """
    Abstract base class for model adapters.

    Subclasses set ``providers``, ``display_name`` and
    ``default_capabilities``, and implement ``_send`` and
    ``test_connection``. Streaming backends also implement
    ``_stream_deltas``.

    Parameters
    ----------
    http_client : httpx.AsyncClient | None, optional
        Client used for requests. Created on first use if not provided,
        and then owned (and closed) by the adapter.
    extractor : ToolCallExtractor | None, optional
        Tool-call extractor. Uses the default strategy order if omitted.

    Attributes
    ----------
    config : ModelConfig | None
        Configuration passed to ``initialize``.
    capabilities : ModelCapabilities
        Current capability estimate.
    """

    providers: tuple[str, ...] = ()
    display_name: str = "Model backend"
    connection_hint: str = "Please check that the backend is reachable."
    default_capabilities: ModelCapabilities = ModelCapabilities()

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        extractor: ToolCallExtractor | None = None,
    ) -> None:
        self.config: ModelConfig | None = None
        self.capabilities: ModelCapabilities = self.default_capabilities.model_copy(deep=True)
        self._extractor: ToolCallExtractor = extractor or default_extractor
        self._http_client: httpx.AsyncClient | None = http_client
        self._owns_http_client: bool = http_client is None
        self._retry: RetryStrategy = RetryStrategy()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def model_name(self) -> str:
        return self.config.name if self.config else ""

    @property
    def is_initialized(self) -> bool:
        return self.config is not None

    async def initialize(self, config: ModelConfig) -> None:
        """
        Validate ``config``, probe the backend and refine capabilities.

        Parameters
        ----------
        config : ModelConfig
            Model configuration. It is frozen and kept as is.

        Raises
        ------
        ConfigurationError
            If the configuration is invalid or the backend cannot be used.
        """
        if not config.name or not config.name.strip():
            raise ConfigurationError("Model name is required", config_key="name")
        if not config.provider:
            raise ConfigurationError("Model provider is required", config_key="provider")
        self.validate_provider_config(config)

        self.config = config
        self._retry = RetryStrategy(max_retries=config.max_retries)
        self.capabilities = self.default_capabilities.model_copy(deep=True)

        await self._on_initialize()

        if config.capability_overrides:
            self.capabilities = apply_capability_overrides(
                self.capabilities,
                config.capability_overrides,
            )
        logger.info(
            f"{self.display_name} adapter initialized for {config.name} "
            f"(tools={self.capabilities.supports_tool_calling}, "
            f"streaming={self.capabilities.supports_streaming}, "
            f"context={self.capabilities.max_context_length})",
        )

    async def _on_initialize(self) -> None:
        """Probe the backend and refine capabilities. Override as needed."""

    def validate_provider_config(self, config: ModelConfig) -> None:
        """
        Check provider-specific configuration.

        Raises
        ------
        ConfigurationError
            If the provider does not belong to this adapter or the
            endpoint is not an absolute http(s) URL.
        """
        if self.providers and config.provider not in self.providers:
            raise ConfigurationError(
                f"Provider '{config.provider}' is not supported by {type(self).__name__}",
                config_key="provider",
            )
        if config.endpoint:
            try:
                url = httpx.URL(config.endpoint)
            except httpx.InvalidURL as e:
                raise ConfigurationError(
                    f"Invalid endpoint URL: {config.endpoint}",
                    config_key="endpoint",
                    cause=e,
                ) from e
            if url.scheme not in ("http", "https") or not url.host:
                raise ConfigurationError(
                    f"Invalid endpoint URL: {config.endpoint}",
                    config_key="endpoint",
                )

    def _require_config(self) -> ModelConfig:
        if self.config is None:
            raise ConfigurationError(
                f"{type(self).__name__} is not initialized. Call initialize() first.",
            )
        return self.config

    @property
    def http(self) -> httpx.AsyncClient:
        if self._http_client is None:
            timeout = self.config.timeout if self.config else None
            self._http_client = httpx.AsyncClient(timeout=timeout)
            self._owns_http_client = True
        return self._http_client

    async def close(self) -> None:
        """Release the HTTP client if the adapter created it."""
        if self._http_client is not None and self._owns_http_client:
            await self._http_client.aclose()
            self._http_client = None
            logger.debug(f"{self.display_name} HTTP client closed")

    def clear_context(self) -> None:
        """Drop server-side conversation state. Stateless backends keep none."""

    # ------------------------------------------------------------------
    # Capabilities
    # ------------------------------------------------------------------

    def get_capabilities(self) -> ModelCapabilities:
        return self.capabilities.model_copy(deep=True)

    def supports_tool_calling(self) -> bool:
        return self.capabilities.supports_tool_calling

    def supports_streaming(self) -> bool:
        return self.capabilities.supports_streaming

    # ------------------------------------------------------------------
    # Prompt formatting
    # ------------------------------------------------------------------

    def format_system_section(self, messages: Sequence[Message]) -> str:
        contents = [m.content for m in messages if m.role == MessageRole.SYSTEM and m.content]
        return "\n".join(contents) + "\n\n" if contents else ""

    def format_tools_section(self, tools: ToolSchemas) -> str:
        """
        Describe the available tools and how to call them.

        The default dialect lists the tool schemas as JSON and asks for a
        fenced JSON block per call.
        """
        return (
            "Available tools:\n"
            f"{json.dumps(tools, indent=2)}\n\n"
            "To use a tool, respond with JSON in the following format:\n"
            '```json\n{\n  "name": "tool_name",\n  "parameters": {\n'
            '    "param1": "value1"\n  }\n}\n```\n\n'
        )

    def format_history(self, messages: Sequence[Message]) -> str:
        """
        Render non-system messages with speaker labels.

        Tool results attached to assistant turns follow the turn as
        ``Tool Result (name): output`` or ``Tool Result (name): Error: ...``.
        """
        lines: list[str] = []
        for message in messages:
            if message.role == MessageRole.USER:
                lines.append(f"Human: {message.content}")
            elif message.role == MessageRole.ASSISTANT:
                lines.append(f"Assistant: {message.content}")
                for result in message.tool_results or []:
                    lines.append(render_tool_result(result))
            elif message.role == MessageRole.TOOL:
                lines.append(f"Tool: {message.content}")
        return "".join(f"{line}\n" for line in lines)

    def format_prompt(self, messages: Sequence[Message], tools: Sequence[Any] | None = None) -> str:
        """
        Render a conversation into a single prompt.

        Parameters
        ----------
        messages : Sequence[Message]
            Conversation, system messages included.
        tools : Sequence[Any] | None, optional
            Tool schemas (or tools with ``to_schema``). The tool section is
            omitted when empty or when the model does not support tools.

        Returns
        -------
        str
            Prompt ending with ``"Assistant: "``.
        """
        schemas = normalize_tool_schemas(tools)
        prompt = self.format_system_section(messages)
        if schemas and self.supports_tool_calling():
            prompt += self.format_tools_section(schemas)
        prompt += self.format_history([m for m in messages if m.role != MessageRole.SYSTEM])
        return prompt + "Assistant: "

    # ------------------------------------------------------------------
    # Response parsing
    # ------------------------------------------------------------------

    def _response_metadata(self, raw: str, started: float, **extra: Any) -> ResponseMetadata:
        return ResponseMetadata(
            model=self.model_name,
            tokens_used=math.ceil(len(raw) / 4),
            processing_time=(time.perf_counter() - started) * 1000,
            **extra,
        )

    def parse_response(self, raw: str) -> AIResponse:
        """
        Normalize raw model output.

        Tool calls are extracted and the text that encoded them is removed
        from the displayed content. Text without tool calls is returned
        unchanged.

        Parameters
        ----------
        raw : str
            Raw model output.

        Returns
        -------
        AIResponse
            Content, tool calls and metadata.
        """
        started = time.perf_counter()
        found = self._extractor.extract_with_spans(raw)
        content = strip_spans(raw, [(item.start, item.end) for item in found]) if found else raw
        return AIResponse(
            content=content,
            tool_calls=[item.call for item in found],
            metadata=self._response_metadata(raw, started),
        )

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def send_request(self, prompt: str) -> str:
        """
        Send a prompt and return the raw completion text.

        Connection failures and rate limits are retried according to
        ``ModelConfig.max_retries``.

        Raises
        ------
        ConfigurationError
            If the adapter is not initialized.
        ConnectionError, AuthenticationError, RateLimitError,
        ModelUnavailableError, ProtocolError, APIError
            On backend failures.
        """
        self._require_config()
        return await self._retry.execute(lambda: self._send(prompt))

    @abc.abstractmethod
    async def _send(self, prompt: str) -> str:
        """Perform one request. Subclasses map failures onto the taxonomy."""

    async def _stream_deltas(self, prompt: str) -> AsyncIterator[str]:
        """
        Yield text deltas for ``prompt``.

        The default sends one non-streaming request and yields its text.
        """
        yield await self.send_request(prompt)

    async def stream(self, prompt: str) -> AsyncIterator[StreamChunk]:
        """
        Stream a completion as ordered chunks.

        Content chunks carry deltas with ``is_complete=False``; the final
        chunk has ``is_complete=True`` and the parsed tool calls and
        metadata of the whole response. Backends without streaming
        produce a single content chunk. Closing the generator cancels the
        underlying request.

        Yields
        ------
        StreamChunk
            Chunks in arrival order.
        """
        self._require_config()
        parts: list[str] = []
        if self.supports_streaming():
            deltas = self._stream_deltas(prompt)
        else:
            deltas = BaseModelAdapter._stream_deltas(self, prompt)

        async with contextlib.aclosing(deltas) as stream:
            async for delta in stream:
                if not delta:
                    continue
                parts.append(delta)
                yield StreamChunk(content=delta, is_complete=False)

        parsed = self.parse_response("".join(parts))
        yield StreamChunk(
            content="",
            is_complete=True,
            tool_calls=parsed.tool_calls,
            metadata=parsed.metadata,
        )

    async def send_streaming_request(self, prompt: str, callback: ChunkCallback) -> None:
        """
        Stream a completion into ``callback``.

        Parameters
        ----------
        prompt : str
            Prompt to send.
        callback : ChunkCallback
            Called with every ``StreamChunk``; may be a coroutine function.
        """
        async with contextlib.aclosing(self.stream(prompt)) as chunks:
            async for chunk in chunks:
                outcome = callback(chunk)
                if inspect.isawaitable(outcome):
                    await outcome

    @abc.abstractmethod
    async def test_connection(self) -> bool:
        """Return whether the backend is usable. Never raises."""

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.config and self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        return headers

    @contextlib.contextmanager
    def _transport_errors(self, url: str) -> Iterator[None]:
        """Map httpx transport failures onto ``ConnectionError``."""
        try:
            yield
        except httpx.TimeoutException as e:
            raise ConnectionError(
                f"Request to {self.display_name} timed out ({url}). {self.connection_hint}",
                endpoint=url,
                cause=e,
            ) from e
        except httpx.TransportError as e:
            raise ConnectionError(
                f"Failed to connect to {self.display_name} at {url}. {self.connection_hint}",
                endpoint=url,
                cause=e,
            ) from e

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return response.text.strip()
        if isinstance(data, dict) and data.get("error"):
            error = data["error"]
            return error if isinstance(error, str) else json.dumps(error)
        return response.text.strip()

    def _model_unavailable_message(self, detail: str) -> str:
        return f"Model '{self.model_name}' is not available: {detail}"

    def _raise_for_status(self, response: httpx.Response) -> None:
        """
        Raise the taxonomy error matching a non-success response.

        Raises
        ------
        AuthenticationError
            For 401 and 403.
        RateLimitError
            For 429, with ``Retry-After`` when present.
        ModelUnavailableError
            For 404 and 503 whose body mentions the model.
        APIError
            For any other non-success status.
        """
        if response.is_success:
            return

        status = response.status_code
        detail = self._error_detail(response)
        if status in (401, 403):
            raise AuthenticationError(
                f"{self.display_name} rejected the request ({status}): {detail}. "
                "Check your API key.",
                status_code=status,
            )
        if status == 429:
            retry_after: float | None = None
            header = response.headers.get("retry-after")
            if header:
                try:
                    retry_after = float(header)
                except ValueError:
                    retry_after = None
            raise RateLimitError(
                f"{self.display_name} rate limit exceeded: {detail}",
                retry_after=retry_after,
            )
        if status in (404, 503) and "model" in detail.lower():
            raise ModelUnavailableError(
                self._model_unavailable_message(detail),
                model=self.model_name,
                status_code=status,
            )
        raise APIError(
            f"{self.display_name} API error: {status} {response.reason_phrase}: {detail}",
            status_code=status,
        )

    async def _request_json(
        self,
        method: str,
        url: str,
        payload: dict[str, Any] | None = None,
        timeout: Any = httpx.USE_CLIENT_DEFAULT,
    ) -> Any:
        """
        Perform a request and decode its JSON body.

        ``timeout=None`` waits indefinitely; the default uses the client's
        timeout.

        Raises
        ------
        ConnectionError
            On transport failures or timeouts.
        ProtocolError
            If the body is not JSON.
        """
        kwargs: dict[str, Any] = {"headers": self._headers(), "timeout": timeout}
        if payload is not None:
            kwargs["json"] = payload

        with self._transport_errors(url):
            response = await self.http.request(method, url, **kwargs)
        self._raise_for_status(response)
        try:
            return response.json()
        except ValueError as e:
            raise ProtocolError(
                f"{self.display_name} returned a non-JSON response",
                details={"body": response.text[:200]},
                cause=e,
            ) from e
