"""Configuration models and loading."""

from tandem.config.loader import load_configuration
from tandem.config.schema import (
    Configuration,
    ContextConfig,
    ModelConfig,
    TokenEstimatorKind,
    TruncationStrategy,
)

__all__ = [
    "Configuration",
    "ContextConfig",
    "ModelConfig",
    "TokenEstimatorKind",
    "TruncationStrategy",
    "load_configuration",
]
