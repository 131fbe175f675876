"""
Adapter lookup by provider name.
"""

import logging
from typing import Any

from tandem.exceptions import ConfigurationError
from tandem.llm.adapters.base import BaseModelAdapter
from tandem.llm.adapters.huggingface import HuggingFaceAdapter
from tandem.llm.adapters.mock import MockModelAdapter
from tandem.llm.adapters.ollama import OllamaAdapter
from tandem.llm.adapters.openai_compat import OpenAIAdapter

logger = logging.getLogger(__name__)

ADAPTERS: dict[str, type[BaseModelAdapter]] = {
    "ollama": OllamaAdapter,
    "huggingface": HuggingFaceAdapter,
    "openai": OpenAIAdapter,
    "custom": OpenAIAdapter,
    "mock": MockModelAdapter,
}


def register_adapter(provider: str, adapter_class: type[BaseModelAdapter]) -> None:
    """Register ``adapter_class`` for ``provider``, replacing any existing entry."""
    key = provider.strip().lower()
    if key in ADAPTERS:
        logger.warning(f"Replacing adapter for provider '{key}'")
    ADAPTERS[key] = adapter_class


def create_adapter(provider: str, **kwargs: Any) -> BaseModelAdapter:
    """
    Create an uninitialized adapter for ``provider``.

    Parameters
    ----------
    provider : str
        Provider key (``ollama``, ``huggingface``, ``openai``, ``custom``
        or ``mock``).
    **kwargs
        Forwarded to the adapter constructor.

    Returns
    -------
    BaseModelAdapter
        New adapter. Call ``initialize`` before use.

    Raises
    ------
    ConfigurationError
        If no adapter is registered for ``provider``.
    """
    key = (provider or "").strip().lower()
    adapter_class = ADAPTERS.get(key)
    if adapter_class is None:
        raise ConfigurationError(
            f"Unsupported provider: '{provider}'. "
            f"Available providers: {', '.join(sorted(ADAPTERS))}",
            config_key="provider",
        )
    return adapter_class(**kwargs)
