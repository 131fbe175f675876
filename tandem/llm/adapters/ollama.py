"""
Ollama adapter.

Talks to a local Ollama server over its HTTP API: ``/api/tags`` to list
models, ``/api/show`` for model details, ``/api/generate`` for completions
(newline-delimited JSON when streaming) and ``/api/pull`` to download a
model.
"""

import json
import logging
from typing import Any, AsyncIterator, NoReturn

from pydantic import BaseModel, Field

from tandem.constants import CONNECTION_PROBE_TIMEOUT, MODEL_INFO_TIMEOUT, OLLAMA_BASE_URL
from tandem.exceptions import APIError, ConfigurationError, ModelUnavailableError, ProtocolError
from tandem.llm.adapters.base import BaseModelAdapter
from tandem.llm.capabilities import detect_tool_calling_support, estimate_context_length
from tandem.llm.models import ModelCapabilities

logger = logging.getLogger(__name__)

MEMORY_SUGGESTIONS: tuple[str, ...] = (
    "Try a smaller model (e.g. a 7B variant instead of 13B or larger)",
    "Close other applications to free memory",
    "Use a quantized model variant",
)


class OllamaModelInfo(BaseModel):
    """
    Information about an Ollama model.

    Parameters
    ----------
    name : str
        Model name.
    size : int
        Model size in bytes.
    modified_at : str
        Last modification timestamp.
    digest : str
        Content digest.
    details : dict[str, Any]
        Backend-reported details such as ``parameter_size``.

    Examples
    --------
    >>> model = OllamaModelInfo(name="llama3.1:8b", size=4920753328)
    """

    name: str
    size: int = 0
    modified_at: str = ""
    digest: str = ""
    details: dict[str, Any] = Field(default_factory=dict)


class OllamaAdapter(BaseModelAdapter):
    """
    Adapter for a local Ollama server.

    Streaming is supported. Tool calling is enabled for model families
    known to follow the fenced-JSON tool format. The server keeps a
    conversation state token (``context``) that is sent back on the next
    request until ``clear_context`` is called. Callers that render the full
    history into every prompt, like ``AIAgentService``, clear it before
    each request.

    Examples
    --------
    >>> adapter = OllamaAdapter()
    >>> await adapter.initialize(ModelConfig(name="llama3.1:8b", provider="ollama"))
    >>> raw = await adapter.send_request("Human: hi\\nAssistant: ")
    """

    providers = ("ollama",)
    display_name = "Ollama"
    connection_hint = "Please ensure Ollama is running (`ollama serve`)."
    default_capabilities = ModelCapabilities(
        supports_tool_calling=False,
        supports_streaming=True,
        supports_system_prompts=True,
        max_context_length=4096,
        supported_formats=["text", "json"],
    )

    def __init__(self, base_url: str | None = None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._base_url: str | None = base_url
        self._context: list[int] | None = None

    @property
    def base_url(self) -> str:
        """Configured endpoint, else the constructor value, else the local default."""
        endpoint = self.config.endpoint if self.config else None
        return (endpoint or self._base_url or OLLAMA_BASE_URL).rstrip("/")

    @property
    def context_size(self) -> int:
        """Length of the server-side conversation state, 0 if none."""
        return len(self._context) if self._context else 0

    def clear_context(self) -> None:
        if self._context:
            logger.debug(f"Dropping Ollama context of {len(self._context)} tokens")
        self._context = None

    async def _on_initialize(self) -> None:
        config = self._require_config()
        if not await self.test_connection():
            raise ConfigurationError(
                f"Failed to connect to Ollama at {self.base_url}. Please ensure Ollama is "
                f"running and the model '{config.name}' is available "
                f"(run `ollama pull {config.name}`).",
                config_key="endpoint",
            )

        parameter_size: str | None = None
        try:
            info = await self._request_json(
                "POST",
                f"{self.base_url}/api/show",
                {"name": config.name},
                timeout=MODEL_INFO_TIMEOUT,
            )
            parameter_size = (info.get("details") or {}).get("parameter_size")
        except Exception as e:
            logger.debug(f"Could not read model details for {config.name}: {e}")

        tool_calling = detect_tool_calling_support("ollama", config.name)
        self.capabilities = self.capabilities.model_copy(
            update={
                "supports_tool_calling": bool(tool_calling),
                "max_context_length": estimate_context_length(
                    "ollama",
                    config.name,
                    parameter_size,
                ),
            },
        )

    async def list_models(self) -> list[OllamaModelInfo]:
        """
        List models installed on the server.

        Returns
        -------
        list[OllamaModelInfo]
            Installed models.

        Raises
        ------
        ConnectionError
            If the server is unreachable.
        APIError
            If the server answers with an error status.
        """
        data = await self._request_json(
            "GET",
            f"{self.base_url}/api/tags",
            timeout=CONNECTION_PROBE_TIMEOUT,
        )
        return [
            OllamaModelInfo(
                name=model.get("name", ""),
                size=model.get("size", 0),
                modified_at=model.get("modified_at", ""),
                digest=model.get("digest", ""),
                details=model.get("details") or {},
            )
            for model in data.get("models", [])
        ]

    async def test_connection(self) -> bool:
        """
        Check that the server is up and the configured model is installed.

        A model configured without a tag matches any installed tag, so
        ``llama3.1`` matches ``llama3.1:8b``.
        """
        try:
            models = await self.list_models()
        except Exception as e:
            logger.debug(f"Ollama connection test failed: {e}")
            return False
        name = self.model_name
        return any(m.name == name or m.name.startswith(f"{name}:") for m in models)

    async def pull_model(self, name: str | None = None) -> None:
        """
        Download a model. Blocks until the pull finishes.

        Parameters
        ----------
        name : str | None, optional
            Model to pull. Defaults to the configured model.
        """
        model = name or self.model_name
        if not model:
            raise ConfigurationError("Model name is required", config_key="name")
        logger.info(f"Pulling Ollama model {model}")
        await self._request_json(
            "POST",
            f"{self.base_url}/api/pull",
            {"name": model, "stream": False},
            timeout=None,
        )
        logger.info(f"Pulled Ollama model {model}")

    def _payload(self, prompt: str, stream: bool) -> dict[str, Any]:
        config = self._require_config()
        options: dict[str, Any] = {}
        if config.temperature is not None:
            options["temperature"] = config.temperature
        if config.max_tokens is not None:
            options["num_predict"] = config.max_tokens
        options.update(config.additional_params)

        payload: dict[str, Any] = {"model": config.name, "prompt": prompt, "stream": stream}
        if self._context:
            payload["context"] = self._context
        if options:
            payload["options"] = options
        return payload

    def _raise_backend_error(self, message: str, status_code: int | None = None) -> NoReturn:
        lowered = message.lower()
        if "not found" in lowered and "model" in lowered:
            raise ModelUnavailableError(
                f"Model '{self.model_name}' not found. Run \"ollama pull {self.model_name}\".",
                model=self.model_name,
                status_code=status_code,
            )
        if "requires more system memory" in lowered:
            raise APIError(
                f"Ollama error: {message}",
                status_code=status_code,
                details={"suggestions": list(MEMORY_SUGGESTIONS)},
            )
        raise APIError(f"Ollama error: {message}", status_code=status_code)

    def _model_unavailable_message(self, detail: str) -> str:
        return f"Model '{self.model_name}' not found. Run \"ollama pull {self.model_name}\"."

    async def _send(self, prompt: str) -> str:
        url = f"{self.base_url}/api/generate"
        payload = self._payload(prompt, stream=False)

        with self._transport_errors(url):
            response = await self.http.post(url, json=payload, headers=self._headers())
        if response.status_code == 500:
            self._raise_backend_error(self._error_detail(response), status_code=500)
        self._raise_for_status(response)

        try:
            data = response.json()
        except ValueError as e:
            raise ProtocolError("Ollama returned a non-JSON response", cause=e) from e
        if data.get("error"):
            self._raise_backend_error(str(data["error"]))
        text = data.get("response")
        if not isinstance(text, str):
            raise ProtocolError(
                "Invalid response format from Ollama",
                details={"keys": sorted(data)},
            )
        if data.get("context"):
            self._context = data["context"]
        return text

    async def _stream_deltas(self, prompt: str) -> AsyncIterator[str]:
        """
        Yield deltas from the newline-delimited JSON stream.

        Malformed lines are skipped with a warning.
        """
        url = f"{self.base_url}/api/generate"
        payload = self._payload(prompt, stream=True)

        with self._transport_errors(url):
            async with self.http.stream(
                "POST",
                url,
                json=payload,
                headers=self._headers(),
            ) as response:
                if not response.is_success:
                    await response.aread()
                    if response.status_code == 500:
                        self._raise_backend_error(self._error_detail(response), status_code=500)
                    self._raise_for_status(response)

                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    try:
                        data = json.loads(line)
                    except json.JSONDecodeError:
                        logger.warning(f"Skipping malformed Ollama stream line: {line[:80]}")
                        continue
                    if data.get("error"):
                        self._raise_backend_error(str(data["error"]))
                    delta = data.get("response")
                    if delta:
                        yield delta
                    if data.get("done"):
                        if data.get("context"):
                            self._context = data["context"]
                        break
