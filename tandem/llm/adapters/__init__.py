"""Model adapters for Tandem."""

from tandem.llm.adapters.base import BaseModelAdapter, normalize_tool_schemas
from tandem.llm.adapters.factory import ADAPTERS, create_adapter, register_adapter
from tandem.llm.adapters.huggingface import HuggingFaceAdapter
from tandem.llm.adapters.mock import MockModelAdapter
from tandem.llm.adapters.ollama import OllamaAdapter, OllamaModelInfo
from tandem.llm.adapters.openai_compat import OpenAIAdapter

__all__ = [
    "ADAPTERS",
    "BaseModelAdapter",
    "HuggingFaceAdapter",
    "MockModelAdapter",
    "OllamaAdapter",
    "OllamaModelInfo",
    "OpenAIAdapter",
    "create_adapter",
    "normalize_tool_schemas",
    "register_adapter",
]
