# tests/conftest.py
"""
Shared pytest fixtures for tandem tests.
"""

import logging

import pytest
import pytest_asyncio

from tandem.agent.service import AIAgentService
from tandem.config.schema import Configuration, ContextConfig, ModelConfig
from tandem.context.manager import ConversationContextManager
from tandem.llm.adapters.mock import MockModelAdapter
from tandem.tools.base import FunctionTool
from tandem.tools.models import ExecutionContext, SecurityContext, ToolParameter, UserContext
from tandem.tools.registry import ToolRegistry

logging.basicConfig(level=logging.WARNING)
logging.getLogger("tandem").setLevel(logging.DEBUG)


@pytest.fixture
def context() -> ConversationContextManager:
    return ConversationContextManager(ContextConfig(max_tokens=1000))


@pytest.fixture
def execution_context() -> ExecutionContext:
    return ExecutionContext(
        agent_id="tandem",
        session_id="test-session",
        user=UserContext(id="tester"),
        security=SecurityContext(),
    )


@pytest.fixture
def read_file_tool() -> FunctionTool:
    async def read_file(path: str) -> str:
        return f"contents of {path}"

    return FunctionTool(
        name="read_file",
        func=read_file,
        description="Read a file",
        parameters=[ToolParameter(name="path", type="string", required=True)],
    )


@pytest.fixture
def registry(read_file_tool: FunctionTool) -> ToolRegistry:
    registry = ToolRegistry()
    registry.register(read_file_tool)
    return registry


@pytest.fixture
def mock_adapter() -> MockModelAdapter:
    return MockModelAdapter()


@pytest.fixture
def mock_model_config() -> ModelConfig:
    return ModelConfig(name="mock-model", provider="mock", max_retries=0)


@pytest_asyncio.fixture
async def service(
    mock_adapter: MockModelAdapter,
    mock_model_config: ModelConfig,
    registry: ToolRegistry,
) -> AIAgentService:
    """Service whose active model is ``mock_adapter``."""
    service = AIAgentService(
        configuration=Configuration(context=ContextConfig(max_tokens=4000)),
        tool_registry=registry,
        adapter_factory=lambda provider: mock_adapter,
    )
    await service.set_model(mock_model_config)
    return service
