"""
Agent service orchestrating conversations, model calls and tools.

``AIAgentService`` maps session ids to conversation contexts, holds the
single active model adapter and drives one request/response cycle per
``send_message``: append the user message, render the prompt, call the
model (streaming or not), run any tool calls the model asked for and
append the assistant message with their results.
"""

import asyncio
import contextlib
import inspect
import logging
import time
from typing import Any, Callable, Mapping

from tandem.config.schema import Configuration, ModelConfig
from tandem.context.manager import ConversationContextManager
from tandem.context.models import Message
from tandem.exceptions import (
    AbortError,
    ConfigurationError,
    StreamingInProgressError,
    TandemError,
    ValidationError,
)
from tandem.interfaces import ToolExecutorProtocol
from tandem.llm.adapters.base import BaseModelAdapter
from tandem.llm.adapters.factory import create_adapter
from tandem.llm.models import AIResponse, ToolCall
from tandem.tools.base import Tool
from tandem.tools.models import ExecutionContext, SecurityContext, ToolResult, UserContext
from tandem.tools.registry import ToolRegistry
from tandem.types import ChunkCallback, ToolSchemas

logger = logging.getLogger(__name__)

AdapterFactory = Callable[[str], BaseModelAdapter]


class AIAgentService:
    """
    Top-level facade for conversations with a model backend.

    Contexts are created lazily on the first message of a session. At
    most one streaming operation runs at a time across all sessions; a
    second concurrent stream is rejected, not queued. Non-streaming
    requests for different sessions may run concurrently.

    Parameters
    ----------
    configuration : Configuration | None, optional
        Defaults for new contexts, identity and security settings for tool
        execution. ``configuration.model`` is not applied automatically;
        call ``set_model``.
    tool_registry : ToolExecutorProtocol | None, optional
        Tool engine. A new ``ToolRegistry`` if not provided.
    adapter_factory : AdapterFactory, optional
        Builds an adapter for a provider name.

    Examples
    --------
    >>> service = AIAgentService()
    >>> await service.set_model({"provider": "ollama", "name": "llama3.1:8b"})
    >>> reply = await service.send_message("session-1", "What does main.py do?")
    >>> print(reply.content)
    """

    def __init__(
        self,
        configuration: Configuration | None = None,
        tool_registry: ToolExecutorProtocol | None = None,
        adapter_factory: AdapterFactory = create_adapter,
    ) -> None:
        self.configuration: Configuration = configuration or Configuration()
        self.tool_registry: ToolExecutorProtocol = tool_registry or ToolRegistry()
        self._adapter_factory: AdapterFactory = adapter_factory
        self._adapter: BaseModelAdapter | None = None
        self._model_config: ModelConfig | None = None
        self._contexts: dict[str, ConversationContextManager] = {}
        self._stream_task: asyncio.Task | None = None
        self._abort_requested: bool = False

    # ------------------------------------------------------------------
    # Model
    # ------------------------------------------------------------------

    async def set_model(self, config: ModelConfig | Mapping[str, Any]) -> None:
        """
        Create and initialize the adapter for ``config`` and make it active.

        The previous adapter stays active if the new one fails to
        initialize.

        Parameters
        ----------
        config : ModelConfig | Mapping[str, Any]
            Model configuration.

        Raises
        ------
        ConfigurationError
            If ``provider`` or ``name`` is missing, the configuration is
            invalid, or the backend cannot be used.
        """
        if isinstance(config, ModelConfig):
            model_config = config
        else:
            for field in ("provider", "name"):
                value = config.get(field)
                if not isinstance(value, str) or not value.strip():
                    raise ConfigurationError(
                        f"Model {field} is required",
                        config_key=field,
                    )
            try:
                model_config = ModelConfig.model_validate(dict(config))
            except ValueError as e:
                raise ConfigurationError(f"Invalid model configuration: {e}", cause=e) from e

        if not model_config.provider:
            raise ConfigurationError("Model provider is required", config_key="provider")
        if not model_config.name.strip():
            raise ConfigurationError("Model name is required", config_key="name")

        adapter = self._adapter_factory(model_config.provider)
        try:
            await adapter.initialize(model_config)
        except Exception:
            await adapter.close()
            raise

        previous = self._adapter
        self._adapter = adapter
        self._model_config = model_config
        if previous is not None:
            await previous.close()
        logger.info(f"Active model set to {model_config.provider}/{model_config.name}")

    def get_current_model(self) -> ModelConfig | None:
        return self._model_config

    @property
    def adapter(self) -> BaseModelAdapter | None:
        return self._adapter

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------

    def _get_or_create_context(self, session_id: str) -> ConversationContextManager:
        context = self._contexts.get(session_id)
        if context is None:
            context = ConversationContextManager(
                config=self.configuration.context,
                system_prompt=self.configuration.system_prompt,
            )
            self._contexts[session_id] = context
            logger.debug(f"Created conversation context for session {session_id}")
        return context

    def get_conversation_context(self, session_id: str) -> ConversationContextManager | None:
        """Return the session's context, or None if it has not sent a message yet."""
        return self._contexts.get(session_id)

    def clear_conversation_context(self, session_id: str) -> None:
        context = self._contexts.pop(session_id, None)
        if self._adapter is not None:
            self._adapter.clear_context()
        if context is not None:
            context.clear()
            logger.info(f"Cleared conversation context for session {session_id}")

    def clear_all_contexts(self) -> None:
        if self._adapter is not None:
            self._adapter.clear_context()
        for context in self._contexts.values():
            context.clear()
        count = len(self._contexts)
        self._contexts.clear()
        if count:
            logger.info(f"Cleared {count} conversation context(s)")

    @property
    def is_streaming(self) -> bool:
        return self._stream_task is not None

    async def send_message(
        self,
        session_id: str,
        text: str,
        on_chunk: ChunkCallback | None = None,
    ) -> Message:
        """
        Send a user message and return the assistant's reply.

        The user message is appended before the model is called and stays
        in the context if the call fails. Tool calls in the reply are
        executed once; their results are attached to the returned message
        and appended to the session's tool-result log.

        Parameters
        ----------
        session_id : str
            Conversation identifier.
        text : str
            User message.
        on_chunk : ChunkCallback | None, optional
            Receives every ``StreamChunk`` when given; may be a coroutine
            function. Streams the reply instead of waiting for it.

        Returns
        -------
        Message
            The stored assistant message.

        Raises
        ------
        ValidationError
            If ``session_id`` or ``text`` is empty.
        ConfigurationError
            If no model is set.
        StreamingInProgressError
            If ``on_chunk`` is given while another stream is running.
        AbortError
            If the stream was cancelled with ``abort_streaming``.
        TandemError
            Adapter failures (connection, authentication, rate limit and
            so on), unchanged.
        """
        if not session_id or not session_id.strip():
            raise ValidationError("Session ID is required", field="session_id")
        if not text or not text.strip():
            raise ValidationError("Message cannot be empty", field="text")
        adapter = self._adapter
        if adapter is None:
            raise ConfigurationError("No model configured. Call set_model() first.")
        if on_chunk is not None and self._stream_task is not None:
            raise StreamingInProgressError("A streaming operation is already in progress")

        context = self._get_or_create_context(session_id)
        context.add_user_message(text)
        prompt = adapter.format_prompt(context.get_prompt_messages(), self.tool_registry.get_schemas())

        # The prompt carries the full history; stale backend state from an
        # earlier request, possibly another session's, must not ride along.
        adapter.clear_context()
        try:
            if on_chunk is None:
                raw = await adapter.send_request(prompt)
                response = adapter.parse_response(raw)
            else:
                response = await self._run_stream(adapter, prompt, on_chunk)
        except AbortError:
            logger.info(f"Streaming aborted for session {session_id}")
            raise
        except Exception as e:
            logger.error(f"Failed to get a response for session {session_id}: {e}")
            raise
        finally:
            adapter.clear_context()

        results = [await self.execute_tool_call(call, session_id) for call in response.tool_calls]
        message = context.add_assistant_message(response.content, response.tool_calls, results)
        for result in results:
            context.add_tool_result(result)
        return message

    async def _run_stream(
        self,
        adapter: BaseModelAdapter,
        prompt: str,
        on_chunk: ChunkCallback,
    ) -> AIResponse:
        self._abort_requested = False
        task = asyncio.create_task(self._consume_stream(adapter, prompt, on_chunk))
        self._stream_task = task
        try:
            return await task
        except asyncio.CancelledError:
            if self._abort_requested:
                raise AbortError("Streaming operation was aborted") from None
            raise
        finally:
            self._stream_task = None
            self._abort_requested = False

    @staticmethod
    async def _consume_stream(
        adapter: BaseModelAdapter,
        prompt: str,
        on_chunk: ChunkCallback,
    ) -> AIResponse:
        parts: list[str] = []
        final = None
        async with contextlib.aclosing(adapter.stream(prompt)) as chunks:
            async for chunk in chunks:
                if chunk.is_complete:
                    final = chunk
                else:
                    parts.append(chunk.content)
                outcome = on_chunk(chunk)
                if inspect.isawaitable(outcome):
                    await outcome

        response = adapter.parse_response("".join(parts))
        if final is not None:
            # Keep the call ids the callback already saw
            response.tool_calls = final.tool_calls or []
            if final.metadata is not None:
                response.metadata = final.metadata
        return response

    def abort_streaming(self) -> None:
        """Cancel the running stream, if any. The pending call raises ``AbortError``."""
        task = self._stream_task
        if task is None or task.done():
            return
        self._abort_requested = True
        task.cancel()
        logger.debug("Streaming abort requested")

    # ------------------------------------------------------------------
    # Tools
    # ------------------------------------------------------------------

    def _execution_context(self, session_id: str) -> ExecutionContext:
        config = self.configuration
        return ExecutionContext(
            agent_id=config.agent_id,
            session_id=session_id,
            user=UserContext(id=config.user_id, permissions=list(config.user_permissions)),
            security=SecurityContext(
                level=config.security_level,
                allow_dangerous=config.allow_dangerous_tools,
            ),
        )

    async def execute_tool_call(self, tool_call: ToolCall, session_id: str = "") -> ToolResult:
        """
        Execute one tool call and return its result.

        Failures of any kind (unknown tool, missing parameters, rejected
        by the tool engine, or an exception in the tool) are returned as a
        failed ``ToolResult``; nothing is raised.

        Parameters
        ----------
        tool_call : ToolCall
            Call requested by the model.
        session_id : str, default=""
            Session the call belongs to, forwarded to the tool engine.

        Returns
        -------
        ToolResult
            Result with ``tool_name``, ``parameters`` and
            ``execution_time`` metadata.
        """
        start = time.perf_counter()
        name = (tool_call.name or "").strip()
        parameters = dict(tool_call.parameters)

        def failure(error: str) -> ToolResult:
            result = ToolResult.error_result(error)
            result.metadata.tool_name = name
            result.metadata.parameters = parameters
            result.metadata.execution_time = max((time.perf_counter() - start) * 1000, 1.0)
            return result

        if not name:
            return failure("Tool name is required")

        tool = self.tool_registry.get(name)
        if tool is None:
            logger.warning(f"Model requested unknown tool: {name}")
            return failure(f"Tool '{name}' not found")

        missing = tool.missing_parameters(parameters)
        if missing:
            return failure(f"Missing required parameters: {', '.join(missing)}")

        try:
            result = await self.tool_registry.execute_tool(
                name,
                parameters,
                self._execution_context(session_id),
            )
        except TandemError as e:
            logger.warning(f"Tool {name} rejected: {e.message}")
            return failure(e.message)
        except Exception as e:
            logger.exception(f"Tool {name} raised an unexpected error: {e}")
            return failure(str(e) or type(e).__name__)

        result.metadata.tool_name = name
        result.metadata.parameters = parameters
        result.metadata.execution_time = max(result.metadata.execution_time, 1.0)
        return result

    def register_tool(self, tool: Tool) -> None:
        """
        Register a tool with the tool engine.

        Raises
        ------
        ValidationError
            If the tool has no name.
        """
        if not getattr(tool, "name", None) or not tool.name.strip():
            raise ValidationError("Tool name is required", field="name")
        self.tool_registry.register(tool)

    def get_available_tools(self) -> list[Tool]:
        return self.tool_registry.get_tools()

    def get_tool_schemas(self) -> ToolSchemas:
        return self.tool_registry.get_schemas()

    async def close(self) -> None:
        """Abort any running stream and release the active adapter."""
        self.abort_streaming()
        if self._adapter is not None:
            await self._adapter.close()
            self._adapter = None
            self._model_config = None
        logger.debug("Agent service closed")
