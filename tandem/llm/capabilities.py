"""
Model capability detection.

Capabilities are estimated from the model name and, where the backend
reports it, the parameter size. These heuristics are best-effort: they
go stale as new model families appear and are never treated as guarantees.
Explicit values in ``ModelConfig.capability_overrides`` always win.
"""

import logging
import re
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

from tandem.constants import DEFAULT_CONTEXT_LENGTH
from tandem.context.models import Message, MessageRole
from tandem.llm.models import ModelCapabilities

if TYPE_CHECKING:
    from tandem.llm.adapters.base import BaseModelAdapter

logger = logging.getLogger(__name__)

PARAMETER_SIZE_PATTERN = re.compile(r"(\d+(?:\.\d+)?)\s*b\b")

OLLAMA_TOOL_MODELS: tuple[str, ...] = (
    "llama3",
    "llama3.1",
    "llama3.2",
    "mistral",
    "mixtral",
    "qwen",
    "qwen2",
    "codellama",
    "deepseek-coder",
)
HUGGINGFACE_NO_TOOL_MODELS: tuple[str, ...] = ("gpt2", "bert")

# (substrings, context length), first match wins
OLLAMA_CONTEXT_HINTS: list[tuple[tuple[str, ...], int]] = [
    (("llama3.1", "llama3.2"), 8192),
    (("codellama",), 16384),
    (("mistral", "mixtral"), 8192),
]
HUGGINGFACE_CONTEXT_HINTS: list[tuple[tuple[str, ...], int]] = [
    (("llama", "mistral"), 8192),
    (("gpt", "claude"), 8192),
    (("code", "starcoder"), 8192),
]
OPENAI_CONTEXT_HINTS: list[tuple[tuple[str, ...], int]] = [
    (("gpt-4o", "gpt-4.1", "gpt-4-turbo"), 128000),
    (("gpt-3.5",), 16385),
    (("gpt-4",), 8192),
]
CONTEXT_HINTS: dict[str, list[tuple[tuple[str, ...], int]]] = {
    "ollama": OLLAMA_CONTEXT_HINTS,
    "huggingface": HUGGINGFACE_CONTEXT_HINTS,
    "openai": OPENAI_CONTEXT_HINTS,
}


def parse_parameter_size(text: str | None) -> float | None:
    """
    Read a parameter count in billions from text such as ``"70B"`` or
    ``"llama3.1:8b"``.

    Returns
    -------
    float | None
        Billions of parameters, or None if no size is present.
    """
    if not text:
        return None
    match = PARAMETER_SIZE_PATTERN.search(text.lower())
    return float(match.group(1)) if match else None


def detect_tool_calling_support(provider: str, model_name: str) -> bool | None:
    """
    Guess whether a model can follow the tool-calling prompt format.

    Returns
    -------
    bool | None
        The guess, or None when there is no heuristic for ``provider``.
    """
    name = model_name.lower()
    if provider == "ollama":
        return any(marker in name for marker in OLLAMA_TOOL_MODELS)
    if provider == "huggingface":
        return not any(marker in name for marker in HUGGINGFACE_NO_TOOL_MODELS)
    return None


def estimate_context_length(
    provider: str,
    model_name: str,
    parameter_size: str | None = None,
) -> int:
    """
    Estimate a model's context window.

    An explicit parameter size (from the backend, or a size tag in the
    name) decides first: 65B and up maps to 8192 tokens, 7B and up to
    4096. Otherwise name substrings are consulted, and finally the
    4096-token default applies.

    Parameters
    ----------
    provider : str
        Backend key.
    model_name : str
        Model name.
    parameter_size : str | None, optional
        Parameter size reported by the backend (e.g. ``"70.6B"``).

    Returns
    -------
    int
        Estimated context length in tokens.

    Examples
    --------
    >>> estimate_context_length("ollama", "llama2:70b")
    8192
    >>> estimate_context_length("ollama", "codellama")
    16384
    """
    size = parse_parameter_size(parameter_size)
    if size is None:
        size = parse_parameter_size(model_name)
    if size is not None:
        if size >= 65:
            return 8192
        if size >= 7:
            return 4096

    name = model_name.lower()
    for markers, length in CONTEXT_HINTS.get(provider, []):
        if any(marker in name for marker in markers):
            return length

    return DEFAULT_CONTEXT_LENGTH


def apply_capability_overrides(
    capabilities: ModelCapabilities,
    overrides: dict[str, Any],
) -> ModelCapabilities:
    """
    Return ``capabilities`` with explicit overrides applied.

    Unknown keys are ignored with a warning.
    """
    known = {k: v for k, v in overrides.items() if k in ModelCapabilities.model_fields}
    for key in overrides.keys() - known.keys():
        logger.warning(f"Ignoring unknown capability override: {key}")
    if not known:
        return capabilities
    return ModelCapabilities.model_validate({**capabilities.model_dump(), **known})


class CapabilityCheck(BaseModel):
    valid: bool = Field(description="All requirements are met")
    missing_capabilities: list[str] = Field(default_factory=list)


class ModelCapabilityDetector:
    """
    Utilities for probing and validating model capabilities.

    Examples
    --------
    >>> check = ModelCapabilityDetector.validate_minimum_capabilities(
    ...     adapter.get_capabilities(),
    ...     {"supports_tool_calling": True, "max_context_length": 8000},
    ... )
    >>> check.valid
    False
    """

    PROBE_SIZES: tuple[int, ...] = (1024, 2048, 4096, 8192, 16384, 32768)

    @staticmethod
    async def probe_tool_calling(adapter: "BaseModelAdapter") -> bool:
        """
        Ask the model to call a test tool and check that it does.

        Costs one request. Returns False on any failure.
        """
        if not adapter.get_capabilities().supports_tool_calling:
            return False
        tools = [
            {
                "name": "test_function",
                "description": "A test function",
                "parameters": {
                    "type": "object",
                    "properties": {"input": {"type": "string", "description": "Test input"}},
                    "required": ["input"],
                },
            },
        ]
        messages = [
            Message(
                role=MessageRole.USER,
                content='Please call the test_function with input "hello"',
            ),
        ]
        try:
            raw = await adapter.send_request(adapter.format_prompt(messages, tools))
        except Exception as e:
            logger.warning(f"Tool calling probe failed: {e}")
            return False
        return adapter.parse_response(raw).has_tool_calls

    @classmethod
    async def probe_context_length(cls, adapter: "BaseModelAdapter") -> int:
        """
        Send increasingly long prompts and return the largest that worked.

        Costs up to six requests.
        """
        working = cls.PROBE_SIZES[0]
        for size in cls.PROBE_SIZES:
            messages = [Message(role=MessageRole.USER, content="x" * size)]
            try:
                await adapter.send_request(adapter.format_prompt(messages, []))
            except Exception as e:
                logger.debug(f"Context probe stopped at {size} characters: {e}")
                break
            working = size
        return working

    @staticmethod
    def validate_minimum_capabilities(
        capabilities: ModelCapabilities,
        requirements: dict[str, Any],
    ) -> CapabilityCheck:
        """
        Check capabilities against minimum requirements.

        Parameters
        ----------
        capabilities : ModelCapabilities
            Capabilities of the model.
        requirements : dict[str, Any]
            Subset of ``ModelCapabilities`` fields that must be met.

        Returns
        -------
        CapabilityCheck
            Whether all requirements are met and a description of each
            missing one.
        """
        missing: list[str] = []

        if requirements.get("supports_tool_calling") and not capabilities.supports_tool_calling:
            missing.append("tool calling")
        if requirements.get("supports_streaming") and not capabilities.supports_streaming:
            missing.append("streaming")
        if requirements.get("supports_system_prompts") and not capabilities.supports_system_prompts:
            missing.append("system prompts")

        required_length = requirements.get("max_context_length")
        if required_length and capabilities.max_context_length < required_length:
            missing.append(
                f"context length (required: {required_length}, "
                f"available: {capabilities.max_context_length})",
            )

        required_formats = requirements.get("supported_formats") or []
        missing_formats = [f for f in required_formats if f not in capabilities.supported_formats]
        if missing_formats:
            missing.append(f"formats: {', '.join(missing_formats)}")

        return CapabilityCheck(valid=not missing, missing_capabilities=missing)

    @staticmethod
    def recommended_config(capabilities: ModelCapabilities) -> dict[str, Any]:
        """
        Suggest ``ModelConfig`` values for the given capabilities.

        Returns
        -------
        dict[str, Any]
            ``max_tokens`` at 80% of the context length, and a low
            ``temperature`` for models without tool calling support.
        """
        config: dict[str, Any] = {}
        if capabilities.max_context_length > 0:
            config["max_tokens"] = int(capabilities.max_context_length * 0.8)
        if not capabilities.supports_tool_calling:
            config["temperature"] = 0.1
        return config
