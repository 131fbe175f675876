# tests/test_capabilities.py
"""
Tests for model capability detection.

Covers:
- parameter size parsing
- tool-calling and context-length heuristics
- capability overrides
- minimum capability checks and probes
"""

import pytest

from tandem.exceptions import APIError
from tandem.llm.adapters.mock import MockModelAdapter
from tandem.llm.capabilities import (
    ModelCapabilityDetector,
    apply_capability_overrides,
    detect_tool_calling_support,
    estimate_context_length,
    parse_parameter_size,
)
from tandem.llm.models import ModelCapabilities


class TestHeuristics:
    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("70B", 70.0),
            ("8.0B", 8.0),
            ("llama3.1:8b", 8.0),
            ("llama2:70b", 70.0),
            ("mistral", None),
            (None, None),
        ],
    )
    def test_parse_parameter_size(self, text, expected):
        assert parse_parameter_size(text) == expected

    @pytest.mark.parametrize(
        ("provider", "name", "expected"),
        [
            ("ollama", "llama3.1:8b", True),
            ("ollama", "qwen2:7b", True),
            ("ollama", "phi3", False),
            ("huggingface", "bigcode/starcoder", True),
            ("huggingface", "gpt2", False),
            ("openai", "gpt-4o", None),
        ],
    )
    def test_tool_calling(self, provider, name, expected):
        assert detect_tool_calling_support(provider, name) is expected

    @pytest.mark.parametrize(
        ("provider", "name", "size", "expected"),
        [
            ("ollama", "llama2:70b", None, 8192),
            ("ollama", "mystery", "13B", 4096),
            ("ollama", "codellama", None, 16384),
            ("ollama", "llama3.2", None, 8192),
            ("ollama", "tinyllama", "1.1B", 4096),
            ("huggingface", "mistralai/Mistral-7B", None, 4096),
            ("huggingface", "bigcode/starcoder", None, 8192),
            ("openai", "gpt-4o-mini", None, 128000),
            ("openai", "gpt-3.5-turbo", None, 16385),
            ("custom", "local", None, 4096),
        ],
    )
    def test_context_length(self, provider, name, size, expected):
        assert estimate_context_length(provider, name, size) == expected


class TestOverrides:
    def test_known_fields_win(self):
        capabilities = apply_capability_overrides(
            ModelCapabilities(supports_tool_calling=False),
            {"supports_tool_calling": True, "max_context_length": 32768},
        )

        assert capabilities.supports_tool_calling is True
        assert capabilities.max_context_length == 32768

    def test_unknown_fields_ignored(self, caplog):
        original = ModelCapabilities()

        capabilities = apply_capability_overrides(original, {"telepathy": True})

        assert capabilities == original
        assert "telepathy" in caplog.text


class TestModelCapabilityDetector:
    def test_validate_minimum(self):
        check = ModelCapabilityDetector.validate_minimum_capabilities(
            ModelCapabilities(max_context_length=4096, supported_formats=["text"]),
            {
                "supports_tool_calling": True,
                "max_context_length": 8000,
                "supported_formats": ["text", "json"],
            },
        )

        assert check.valid is False
        assert check.missing_capabilities == [
            "tool calling",
            "context length (required: 8000, available: 4096)",
            "formats: json",
        ]

    def test_validate_minimum_met(self):
        check = ModelCapabilityDetector.validate_minimum_capabilities(
            ModelCapabilities(supports_streaming=True),
            {"supports_streaming": True},
        )

        assert check.valid
        assert check.missing_capabilities == []

    def test_recommended_config(self):
        config = ModelCapabilityDetector.recommended_config(ModelCapabilities(max_context_length=1000))

        assert config == {"max_tokens": 800, "temperature": 0.1}

    @pytest.mark.asyncio
    async def test_probe_tool_calling(self, mock_model_config):
        adapter = MockModelAdapter(responses=['test_function(input="hello")'])
        await adapter.initialize(mock_model_config)

        assert await ModelCapabilityDetector.probe_tool_calling(adapter) is True
        assert "test_function" in adapter.prompts[0]

    @pytest.mark.asyncio
    async def test_probe_tool_calling_skipped_without_support(self, mock_model_config):
        adapter = MockModelAdapter()
        await adapter.initialize(
            mock_model_config.model_copy(
                update={"capability_overrides": {"supports_tool_calling": False}},
            ),
        )

        assert await ModelCapabilityDetector.probe_tool_calling(adapter) is False
        assert adapter.prompts == []

    @pytest.mark.asyncio
    async def test_probe_context_length(self, mock_model_config):
        adapter = MockModelAdapter(responses=["ok", "ok", APIError("prompt too long")])
        await adapter.initialize(mock_model_config)

        assert await ModelCapabilityDetector.probe_context_length(adapter) == 2048
