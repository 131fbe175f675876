"""
HuggingFace Inference API adapter.

Sends text-generation requests to ``{endpoint}/{model}``. The hosted API
answers with a list of ``{"generated_text": ...}`` objects; text
generation inference servers also accept ``stream`` and answer with
server-sent events.
"""

import json
import logging
from typing import Any, AsyncIterator, NoReturn, Sequence

from tandem.constants import HUGGINGFACE_BASE_URL
from tandem.context.models import Message, MessageRole
from tandem.exceptions import APIError, ConfigurationError, ModelUnavailableError, ProtocolError
from tandem.llm.adapters.base import BaseModelAdapter, normalize_tool_schemas
from tandem.llm.capabilities import detect_tool_calling_support, estimate_context_length
from tandem.llm.models import ModelCapabilities
from tandem.types import ToolSchemas

logger = logging.getLogger(__name__)

DEFAULT_TEMPERATURE: float = 0.7
DEFAULT_MAX_NEW_TOKENS: int = 512
# End-of-text tokens of common chat templates, then the turn labels of our
# prompt so the model stops before writing the next user turn.
STOP_SEQUENCES: list[str] = [
    "<|endoftext|>",
    "</s>",
    "<|end|>",
    "Human:",
    "User:",
    "\n\nHuman:",
    "\n\nUser:",
]


class HuggingFaceAdapter(BaseModelAdapter):
    """
    Adapter for the HuggingFace Inference API.

    The prompt puts the latest user message first and the earlier turns
    after it under ``Conversation history:``. Tools are described inside
    ``<AVAILABLE_TOOLS>`` tags.

    The connection probe costs a generation request, so it only runs when
    an API key is configured.
    """

    providers = ("huggingface",)
    display_name = "HuggingFace"
    connection_hint = "Please check your network connection and the endpoint URL."
    default_capabilities = ModelCapabilities(
        supports_tool_calling=True,
        supports_streaming=False,
        supports_system_prompts=True,
        max_context_length=4096,
        supported_formats=["text", "json", "xml"],
    )

    @property
    def base_url(self) -> str:
        endpoint = self.config.endpoint if self.config else None
        return (endpoint or HUGGINGFACE_BASE_URL).rstrip("/")

    @property
    def model_url(self) -> str:
        return f"{self.base_url}/{self.model_name}"

    def _model_unavailable_message(self, detail: str) -> str:
        return (
            f"Model '{self.model_name}' is not available: {detail}. "
            "Check the model name or retry once it has loaded."
        )

    async def _on_initialize(self) -> None:
        config = self._require_config()
        if config.api_key and not await self.test_connection():
            raise ConfigurationError(
                f"Failed to connect to HuggingFace model '{config.name}'. "
                "Please check your API key and model name.",
                config_key="api_key",
            )

        self.capabilities = self.capabilities.model_copy(
            update={
                "supports_tool_calling": bool(
                    detect_tool_calling_support("huggingface", config.name),
                ),
                "max_context_length": estimate_context_length("huggingface", config.name),
            },
        )

    async def test_connection(self) -> bool:
        """Send a one-word prompt and check for a non-empty answer."""
        try:
            text = await self._send("Hello")
        except Exception as e:
            logger.debug(f"HuggingFace connection test failed: {e}")
            return False
        return bool(text.strip())

    def get_tool_schema(self, tools: Sequence[Any]) -> str:
        return json.dumps(normalize_tool_schemas(tools), indent=2)

    def format_tools_section(self, tools: ToolSchemas) -> str:
        return (
            f"<AVAILABLE_TOOLS>\n{json.dumps(tools, indent=2)}\n</AVAILABLE_TOOLS>\n\n"
            "To use a tool, respond with a JSON object in a ```json block containing "
            '"name" and "parameters".\n\n'
        )

    def format_prompt(self, messages: Sequence[Message], tools: Sequence[Any] | None = None) -> str:
        """
        Render the conversation with the latest user message first.

        Earlier turns follow under ``Conversation history:`` when there is
        more than one non-system message.
        """
        schemas = normalize_tool_schemas(tools)
        conversation = [m for m in messages if m.role != MessageRole.SYSTEM]

        prompt = self.format_system_section(messages)
        if schemas:
            prompt += self.format_tools_section(schemas)

        latest = next((m for m in reversed(conversation) if m.role == MessageRole.USER), None)
        if latest is not None:
            prompt += latest.content
        if len(conversation) > 1:
            prompt += "\n\nConversation history:\n" + self.format_history(conversation[:-1])
        return prompt

    def _payload(self, prompt: str, stream: bool = False) -> dict[str, Any]:
        config = self._require_config()
        parameters: dict[str, Any] = {
            "temperature": config.temperature if config.temperature is not None else DEFAULT_TEMPERATURE,
            "max_new_tokens": config.max_tokens or DEFAULT_MAX_NEW_TOKENS,
            "do_sample": True,
            "return_full_text": False,
            "stop": STOP_SEQUENCES,
        }
        parameters.update(config.additional_params)
        payload: dict[str, Any] = {
            "inputs": prompt,
            "parameters": parameters,
            "options": {"wait_for_model": True, "use_cache": False},
        }
        if stream:
            payload["stream"] = True
        return payload

    def _raise_payload_error(self, error: Any) -> NoReturn:
        message = str(error)
        if "loading" in message.lower():
            raise ModelUnavailableError(
                f"Model '{self.model_name}' is loading: {message}",
                model=self.model_name,
            )
        raise APIError(f"HuggingFace API error: {message}")

    async def _send(self, prompt: str) -> str:
        data = await self._request_json("POST", self.model_url, self._payload(prompt))

        if isinstance(data, dict) and data.get("error"):
            self._raise_payload_error(data["error"])
        if isinstance(data, list) and data and isinstance(data[0], dict):
            text = data[0].get("generated_text")
        elif isinstance(data, dict):
            text = data.get("generated_text")
        else:
            text = None
        if not isinstance(text, str):
            raise ProtocolError(
                "Invalid response format from HuggingFace",
                details={"response": str(data)[:200]},
            )
        return text

    async def _stream_deltas(self, prompt: str) -> AsyncIterator[str]:
        """
        Yield token texts from a server-sent event stream.

        Special tokens are skipped and ``[DONE]`` ends the stream.
        """
        url = self.model_url
        with self._transport_errors(url):
            async with self.http.stream(
                "POST",
                url,
                json=self._payload(prompt, stream=True),
                headers=self._headers(),
            ) as response:
                if not response.is_success:
                    await response.aread()
                    self._raise_for_status(response)

                async for line in response.aiter_lines():
                    if not line.startswith("data:"):
                        continue
                    data = line[len("data:"):].strip()
                    if data == "[DONE]":
                        break
                    try:
                        event = json.loads(data)
                    except json.JSONDecodeError:
                        logger.warning(f"Skipping malformed HuggingFace event: {data[:80]}")
                        continue
                    if event.get("error"):
                        self._raise_payload_error(event["error"])
                    token = event.get("token") or {}
                    if token.get("special"):
                        continue
                    if token.get("text"):
                        yield token["text"]
