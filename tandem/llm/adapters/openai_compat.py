"""
OpenAI-compatible adapter.

Works with the OpenAI API and with any server exposing the same chat
completions endpoint (vLLM, LM Studio, llama.cpp server and others). The
rendered prompt is sent as a single user message and tool calls are
extracted from the answer text, like every other adapter.
"""

import contextlib
import logging
from typing import Any, AsyncIterator, Iterator

import openai
from openai import AsyncOpenAI

from tandem.config.schema import ModelConfig
from tandem.exceptions import (
    APIError,
    AuthenticationError,
    ConfigurationError,
    ConnectionError,
    ModelUnavailableError,
    ProtocolError,
    RateLimitError,
)
from tandem.llm.adapters.base import BaseModelAdapter
from tandem.llm.capabilities import estimate_context_length
from tandem.llm.models import ModelCapabilities

logger = logging.getLogger(__name__)


class OpenAIAdapter(BaseModelAdapter):
    """
    Adapter for OpenAI and OpenAI-compatible chat completion servers.

    Provider ``openai`` requires an API key; provider ``custom`` requires
    an endpoint and accepts a missing key.

    Parameters
    ----------
    client : AsyncOpenAI | None, optional
        Client to use instead of one built from the configuration.
    **kwargs
        Forwarded to ``BaseModelAdapter``.

    Examples
    --------
    >>> adapter = OpenAIAdapter()
    >>> await adapter.initialize(
    ...     ModelConfig(name="gpt-4o-mini", provider="openai", api_key="sk-...")
    ... )
    """

    providers = ("openai", "custom")
    display_name = "OpenAI-compatible API"
    connection_hint = "Please check the endpoint URL and your network connection."
    default_capabilities = ModelCapabilities(
        supports_tool_calling=True,
        supports_streaming=True,
        supports_system_prompts=True,
        max_context_length=4096,
        supported_formats=["text", "json"],
    )

    def __init__(self, client: AsyncOpenAI | None = None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._client: AsyncOpenAI | None = client
        self._owns_client: bool = client is None

    def validate_provider_config(self, config: ModelConfig) -> None:
        super().validate_provider_config(config)
        if config.provider == "openai" and not config.api_key:
            raise ConfigurationError(
                "API key is required for provider 'openai'. Set TANDEM_API_KEY or OPENAI_API_KEY.",
                config_key="api_key",
            )
        if config.provider == "custom" and not config.endpoint:
            raise ConfigurationError(
                "Endpoint is required for provider 'custom'",
                config_key="endpoint",
            )

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            config = self._require_config()
            self._client = AsyncOpenAI(
                # The SDK refuses a missing key; local servers ignore it.
                api_key=config.api_key or "not-needed",
                base_url=config.endpoint,
                timeout=config.timeout,
                max_retries=0,
            )
            self._owns_client = True
            logger.debug("OpenAI client initialized")
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.close()
            self._client = None
            logger.debug("OpenAI client closed")
        await super().close()

    async def _on_initialize(self) -> None:
        config = self._require_config()
        if not await self.test_connection():
            raise ConfigurationError(
                f"Failed to connect to {config.endpoint or 'the OpenAI API'}. "
                "Please check your API key and endpoint.",
                config_key="endpoint",
            )
        self.capabilities = self.capabilities.model_copy(
            update={"max_context_length": estimate_context_length("openai", config.name)},
        )

    async def test_connection(self) -> bool:
        try:
            with self._sdk_errors():
                await self._get_client().models.list()
        except Exception as e:
            logger.debug(f"OpenAI connection test failed: {e}")
            return False
        return True

    @contextlib.contextmanager
    def _sdk_errors(self) -> Iterator[None]:
        """Map OpenAI SDK exceptions onto the error taxonomy."""
        endpoint = self.config.endpoint if self.config else None
        try:
            yield
        except (openai.AuthenticationError, openai.PermissionDeniedError) as e:
            raise AuthenticationError(
                f"Authentication failed: {e.message}. Check your API key.",
                status_code=e.status_code,
                cause=e,
            ) from e
        except openai.RateLimitError as e:
            retry_after: float | None = None
            header = e.response.headers.get("retry-after")
            if header:
                try:
                    retry_after = float(header)
                except ValueError:
                    retry_after = None
            raise RateLimitError(
                f"Rate limit exceeded: {e.message}",
                retry_after=retry_after,
                cause=e,
            ) from e
        except openai.NotFoundError as e:
            raise ModelUnavailableError(
                f"Model '{self.model_name}' is not available: {e.message}",
                model=self.model_name,
                status_code=e.status_code,
                cause=e,
            ) from e
        except openai.APIStatusError as e:
            raise APIError(
                f"API error: {e.status_code}: {e.message}",
                status_code=e.status_code,
                cause=e,
            ) from e
        except openai.APIConnectionError as e:
            # Also covers APITimeoutError
            raise ConnectionError(
                f"Failed to connect to {endpoint or 'the OpenAI API'}: {e}. {self.connection_hint}",
                endpoint=endpoint,
                cause=e,
            ) from e

    def _request_kwargs(self, prompt: str) -> dict[str, Any]:
        config = self._require_config()
        kwargs: dict[str, Any] = {
            "model": config.name,
            "messages": [{"role": "user", "content": prompt}],
        }
        if config.temperature is not None:
            kwargs["temperature"] = config.temperature
        if config.max_tokens is not None:
            kwargs["max_tokens"] = config.max_tokens
        kwargs.update(config.additional_params)
        return kwargs

    async def _send(self, prompt: str) -> str:
        with self._sdk_errors():
            response = await self._get_client().chat.completions.create(
                **self._request_kwargs(prompt),
            )
        if not response.choices:
            raise ProtocolError("Completion response contained no choices")
        return response.choices[0].message.content or ""

    async def _stream_deltas(self, prompt: str) -> AsyncIterator[str]:
        with self._sdk_errors():
            stream = await self._get_client().chat.completions.create(
                **self._request_kwargs(prompt),
                stream=True,
            )
            try:
                async for chunk in stream:
                    if not chunk.choices:
                        continue
                    delta = chunk.choices[0].delta
                    if delta.content:
                        yield delta.content
            finally:
                await stream.close()
