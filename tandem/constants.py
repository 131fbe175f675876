"""
Application-wide constants for Tandem.

This module defines constants used throughout the application to ensure
consistency and maintainability.
"""

# Configuration file names
CONFIG_FILE_NAME: str = "config.toml"
SYSTEM_PROMPT_FILE_NAME: str = "SYSTEM_PROMPT.md"

# Application directories
APP_NAME: str = "tandem"
CONFIG_DIR_NAME: str = ".tandem"

# Retry defaults
DEFAULT_MAX_RETRIES: int = 2
DEFAULT_RETRY_BASE_DELAY: float = 1.0
DEFAULT_RETRY_MAX_DELAY: float = 60.0

# Token estimation
DEFAULT_CHARS_PER_TOKEN: int = 4
DEFAULT_CONTEXT_LENGTH: int = 4096

# Backend endpoints
OLLAMA_BASE_URL: str = "http://localhost:11434"
HUGGINGFACE_BASE_URL: str = "https://api-inference.huggingface.co/models"

# Request timeouts (seconds)
DEFAULT_REQUEST_TIMEOUT: float = 30.0
CONNECTION_PROBE_TIMEOUT: float = 5.0
MODEL_INFO_TIMEOUT: float = 10.0

# Conversation defaults
DEFAULT_SYSTEM_PROMPT: str = "You are a helpful AI coding assistant."
EMERGENCY_TRUNCATION_MARKER: str = "[...truncated] "

DEFAULT_ENCODING: str = "utf-8"
