"""
Protocol definitions for extensible interfaces in Tandem.

This module defines protocols (interfaces) that allow for flexible
implementation and testing through dependency injection.
"""

from typing import TYPE_CHECKING, Any, AsyncIterator, Literal, Protocol, Sequence

from tandem.config.schema import ModelConfig
from tandem.context.models import Message
from tandem.llm.models import AIResponse, ModelCapabilities, StreamChunk
from tandem.tools.models import ExecutionContext, ToolResult
from tandem.types import ToolSchemas

if TYPE_CHECKING:
    from tandem.tools.base import Tool


class ModelAdapterProtocol(Protocol):
    """
    Protocol for model adapter implementations.

    An adapter renders a conversation into a prompt, talks to one backend
    and normalizes the answer.
    """

    async def initialize(self, config: ModelConfig) -> None:
        """
        Validate the configuration and prepare the backend.

        Raises
        ------
        ConfigurationError
            If the configuration is invalid or the backend is unusable.
        """
        ...

    def format_prompt(self, messages: Sequence[Message], tools: Sequence[Any] | None = None) -> str:
        ...

    async def send_request(self, prompt: str) -> str:
        ...

    def stream(self, prompt: str) -> AsyncIterator[StreamChunk]:
        """
        Stream a completion.

        Yields
        ------
        StreamChunk
            Content chunks followed by one chunk with ``is_complete=True``.
        """
        ...

    def parse_response(self, raw: str) -> AIResponse:
        ...

    def get_capabilities(self) -> ModelCapabilities:
        ...

    async def test_connection(self) -> bool:
        ...

    async def close(self) -> None:
        ...


class ToolExecutorProtocol(Protocol):
    """
    Protocol for tool lookup and execution.

    ``ToolRegistry`` is the default implementation.
    """

    def register(self, tool: "Tool") -> None:
        ...

    def get(self, name: str) -> "Tool | None":
        ...

    def get_tools(self) -> "list[Tool]":
        ...

    def get_schemas(self) -> ToolSchemas:
        ...

    async def execute_tool(
        self,
        name: str,
        parameters: dict[str, Any],
        context: ExecutionContext,
    ) -> ToolResult:
        """
        Execute a tool.

        Raises
        ------
        TandemError
            Subclasses describing why the call was rejected or failed.
        """
        ...


class TokenizerProtocol(Protocol):
    """
    Protocol for tokenizer implementations.

    This protocol defines the interface for token counting and text
    truncation used by the conversation context manager.
    """

    def count(self, text: str | None) -> int:
        """
        Count the number of tokens in the given text.

        Parameters
        ----------
        text : str | None
            The text to count tokens for. None counts as empty.

        Returns
        -------
        int
            The number of tokens in the text.
        """
        ...

    def truncate(
        self,
        text: str,
        max_tokens: int,
        keep: Literal["head", "tail"] = "tail",
        marker: str = ...,
    ) -> str:
        ...
