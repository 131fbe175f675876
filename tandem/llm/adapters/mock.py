"""
Scripted model adapter for tests and offline use.
"""

import asyncio
import json
import logging
import time
from typing import Any, AsyncIterator, Sequence

from tandem.exceptions import ConfigurationError
from tandem.llm.adapters.base import BaseModelAdapter
from tandem.llm.models import AIResponse, ModelCapabilities, ToolCall

logger = logging.getLogger(__name__)


class MockModelAdapter(BaseModelAdapter):
    """
    Adapter that replays scripted responses.

    Responses are consumed in order; once they run out every request gets
    ``default_response``. A scripted ``Exception`` instance is raised
    instead of returned. Every prompt is recorded in ``prompts``.

    A response may also be a JSON envelope
    ``{"content": ..., "tool_calls": [...]}``, which ``parse_response``
    unpacks directly.

    Parameters
    ----------
    responses : Sequence[str | Exception] | None, optional
        Scripted responses.
    default_response : str, default="This is a mock response."
        Response used once the script is exhausted.
    chunk_size : int, default=10
        Characters per streamed chunk.
    delay : float, default=0.0
        Seconds to sleep before each streamed chunk.
    fail_connection : bool, default=False
        Make ``test_connection`` fail, and with it ``initialize``.

    Examples
    --------
    >>> adapter = MockModelAdapter(responses=['read_file(path="a.txt")'])
    >>> await adapter.initialize(ModelConfig(name="mock", provider="mock"))
    >>> adapter.parse_response(await adapter.send_request("hi")).tool_calls[0].name
    'read_file'
    """

    providers = ("mock",)
    display_name = "Mock"
    default_capabilities = ModelCapabilities(
        supports_tool_calling=True,
        supports_streaming=True,
        supports_system_prompts=True,
        max_context_length=4000,
        supported_formats=["text", "json"],
    )

    def __init__(
        self,
        responses: Sequence[str | Exception] | None = None,
        default_response: str = "This is a mock response.",
        chunk_size: int = 10,
        delay: float = 0.0,
        fail_connection: bool = False,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.responses: list[str | Exception] = list(responses or [])
        self.default_response = default_response
        self.chunk_size = max(chunk_size, 1)
        self.delay = delay
        self.fail_connection = fail_connection
        self.prompts: list[str] = []

    def queue(self, *responses: str | Exception) -> None:
        self.responses.extend(responses)

    async def _on_initialize(self) -> None:
        if not await self.test_connection():
            raise ConfigurationError("Mock backend is unavailable", config_key="provider")

    async def test_connection(self) -> bool:
        return not self.fail_connection

    def _next_response(self, prompt: str) -> str:
        self.prompts.append(prompt)
        response = self.responses.pop(0) if self.responses else self.default_response
        if isinstance(response, Exception):
            raise response
        return response

    async def _send(self, prompt: str) -> str:
        return self._next_response(prompt)

    async def _stream_deltas(self, prompt: str) -> AsyncIterator[str]:
        response = self._next_response(prompt)
        for start in range(0, len(response), self.chunk_size):
            if self.delay:
                await asyncio.sleep(self.delay)
            yield response[start:start + self.chunk_size]

    def parse_response(self, raw: str) -> AIResponse:
        started = time.perf_counter()
        try:
            envelope = json.loads(raw)
        except json.JSONDecodeError:
            envelope = None
        if not isinstance(envelope, dict) or not ({"content", "tool_calls"} & envelope.keys()):
            return super().parse_response(raw)

        tool_calls = [
            ToolCall.model_validate(item)
            for item in envelope.get("tool_calls") or []
            if isinstance(item, dict) and item.get("name")
        ]
        return AIResponse(
            content=str(envelope.get("content") or ""),
            tool_calls=tool_calls,
            metadata=self._response_metadata(raw, started),
        )
