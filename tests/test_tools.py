# tests/test_tools.py
"""
Tests for tool declarations and the tool registry.

Covers:
- parameter validation and schema generation
- FunctionTool result conversion
- registry lookup, security gating and approval
"""

import logging

import pytest

from tandem.exceptions import (
    SecurityViolationError,
    ToolNotFoundError,
    ToolValidationError,
    UserDeniedError,
)
from tandem.tools.base import FunctionTool
from tandem.tools.models import ToolParameter, ToolResult
from tandem.tools.registry import ToolRegistry


def search_tool() -> FunctionTool:
    def search(query: str, limit: int = 10, mode: str = "fast") -> list:
        return [query, limit, mode]

    return FunctionTool(
        name="search",
        func=search,
        description="Search the project",
        parameters=[
            ToolParameter(name="query", type="string", required=True),
            ToolParameter(name="limit", type="number"),
            ToolParameter(name="mode", type="string", enum=["fast", "deep"]),
        ],
    )


class TestTool:
    def test_valid_params(self):
        assert search_tool().validate_params({"query": "x", "limit": 5}) == []

    def test_missing_required(self):
        assert search_tool().validate_params({}) == ["Missing required parameter: query"]

    def test_wrong_type(self):
        errors = search_tool().validate_params({"query": "x", "limit": "5"})

        assert errors == ["Parameter 'limit' must be of type number"]

    def test_bool_is_not_a_number(self):
        errors = search_tool().validate_params({"query": "x", "limit": True})

        assert errors == ["Parameter 'limit' must be of type number"]

    def test_enum(self):
        errors = search_tool().validate_params({"query": "x", "mode": "slow"})

        assert errors == ["Parameter 'mode' must be one of: fast, deep"]

    def test_schema(self):
        schema = search_tool().to_schema()

        assert schema["name"] == "search"
        assert schema["description"] == "Search the project"
        assert schema["parameters"]["required"] == ["query"]
        assert schema["parameters"]["properties"]["mode"]["enum"] == ["fast", "deep"]
        assert schema["parameters"]["properties"]["limit"]["type"] == "number"

    def test_confirmation_only_when_needed(self):
        assert search_tool().get_confirmation({}) is None

        confirmation = FunctionTool("rm", lambda: None, dangerous=True).get_confirmation({"p": 1})

        assert confirmation.is_dangerous
        assert confirmation.params == {"p": 1}


class TestFunctionTool:
    @pytest.mark.asyncio
    async def test_list_rendered_as_json(self, execution_context):
        result = await search_tool().execute({"query": "q"}, execution_context)

        assert result.success
        assert result.output == '["q", 10, "fast"]'

    @pytest.mark.asyncio
    async def test_none_becomes_empty_output(self, execution_context):
        result = await FunctionTool("noop", lambda: None).execute({}, execution_context)

        assert result.output == ""

    @pytest.mark.asyncio
    async def test_tool_result_passed_through(self, execution_context):
        tool = FunctionTool("fail", lambda: ToolResult.error_result("nope"))

        result = await tool.execute({}, execution_context)

        assert not result.success
        assert result.error == "nope"

    def test_description_from_docstring(self):
        def documented():
            """Do the thing."""

        assert FunctionTool("documented", documented).description == "Do the thing."


class TestToolRegistry:
    @pytest.mark.asyncio
    async def test_execute_sets_metadata(self, registry, execution_context):
        result = await registry.execute_tool("read_file", {"path": "a.txt"}, execution_context)

        assert result.output == "contents of a.txt"
        assert result.metadata.tool_name == "read_file"
        assert result.metadata.parameters == {"path": "a.txt"}
        assert result.metadata.execution_time >= 0.0

    @pytest.mark.asyncio
    async def test_unknown_tool(self, registry, execution_context):
        with pytest.raises(ToolNotFoundError) as exc_info:
            await registry.execute_tool("nope", {}, execution_context)

        assert exc_info.value.message == "Tool 'nope' not found"

    @pytest.mark.asyncio
    async def test_invalid_parameters(self, registry, execution_context):
        with pytest.raises(ToolValidationError) as exc_info:
            await registry.execute_tool("read_file", {}, execution_context)

        assert exc_info.value.details["validation_errors"] == ["Missing required parameter: path"]

    @pytest.mark.asyncio
    async def test_dangerous_tool_blocked(self, execution_context):
        registry = ToolRegistry()
        registry.register(FunctionTool("wipe", lambda: "wiped", dangerous=True))

        with pytest.raises(SecurityViolationError):
            await registry.execute_tool("wipe", {}, execution_context)

    @pytest.mark.asyncio
    async def test_approval_denied(self, execution_context):
        asked = []

        async def deny(confirmation):
            asked.append(confirmation.tool_name)
            return False

        registry = ToolRegistry(approval_callback=deny)
        registry.register(FunctionTool("deploy", lambda: "ok", requires_approval=True))

        with pytest.raises(UserDeniedError):
            await registry.execute_tool("deploy", {}, execution_context)

        assert asked == ["deploy"]

    @pytest.mark.asyncio
    async def test_approval_granted(self, execution_context):
        registry = ToolRegistry(approval_callback=lambda confirmation: True)
        registry.register(FunctionTool("deploy", lambda: "ok", requires_approval=True))

        result = await registry.execute_tool("deploy", {}, execution_context)

        assert result.output == "ok"

    def test_register_and_unregister(self, registry, caplog):
        tool = search_tool()
        registry.register(tool)

        with caplog.at_level(logging.WARNING):
            registry.register(tool)

        assert "search" in registry
        assert len(registry) == 2
        assert "Overwriting existing tool" in caplog.text
        assert registry.unregister("search") is True
        assert registry.unregister("search") is False
        assert registry.get("search") is None

    def test_schemas(self, registry):
        assert [s["name"] for s in registry.get_schemas()] == ["read_file"]
