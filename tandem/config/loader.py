"""
Configuration loader for Tandem.

This module loads and merges configuration from the user configuration
directory, the project ``.tandem`` directory and environment variables.
"""

import logging
import os
import tomllib
from pathlib import Path
from typing import Any

from platformdirs import user_config_dir

from tandem.config.schema import Configuration
from tandem.constants import (
    APP_NAME,
    CONFIG_DIR_NAME,
    CONFIG_FILE_NAME,
    DEFAULT_ENCODING,
    SYSTEM_PROMPT_FILE_NAME,
)
from tandem.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# Environment variable -> key in the [model] table
ENV_MODEL_KEYS: dict[str, str] = {
    "TANDEM_PROVIDER": "provider",
    "TANDEM_MODEL": "name",
    "TANDEM_ENDPOINT": "endpoint",
    "TANDEM_API_KEY": "api_key",
}
FALLBACK_API_KEY_VARS: tuple[str, ...] = ("HF_API_KEY", "OPENAI_API_KEY")


def get_config_dir() -> Path:
    """
    Get the user configuration directory.

    Returns
    -------
    Path
        Path to the user configuration directory.
    """
    return Path(user_config_dir(APP_NAME))


def get_user_config_path() -> Path:
    """
    Get the path to the user configuration file.

    Returns
    -------
    Path
        Path to ``config.toml`` in the user configuration directory.
    """
    return get_config_dir() / CONFIG_FILE_NAME


def _parse_toml(path: Path) -> dict[str, Any]:
    """
    Parse a TOML configuration file.

    Parameters
    ----------
    path : Path
        Path to the TOML file to parse.

    Returns
    -------
    dict[str, Any]
        Parsed configuration as a dictionary.

    Raises
    ------
    ConfigurationError
        If the file cannot be read or contains invalid TOML.
    """
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(
            f"Invalid TOML in {path}: {e}",
            config_file=str(path),
            cause=e,
        ) from e
    except OSError as e:
        raise ConfigurationError(
            f"Failed to read config file {path}: {e}",
            config_file=str(path),
            cause=e,
        ) from e


def _get_project_dir(cwd: Path) -> Path:
    return cwd.resolve() / CONFIG_DIR_NAME


def _get_system_prompt_content(cwd: Path) -> str | None:
    """
    Read the project system prompt file if it exists.

    Parameters
    ----------
    cwd : Path
        Project directory.

    Returns
    -------
    str | None
        Stripped file content, or None if absent or unreadable.
    """
    prompt_file: Path = _get_project_dir(cwd) / SYSTEM_PROMPT_FILE_NAME
    if not prompt_file.is_file():
        return None
    try:
        content = prompt_file.read_text(encoding=DEFAULT_ENCODING).strip()
    except OSError as e:
        logger.warning(f"Failed to read {prompt_file}: {e}", exc_info=True)
        return None
    return content or None


def _merge_dicts(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Recursively merge two dictionaries.

    Values from ``override`` take precedence over ``base``. Nested
    dictionaries are merged recursively.

    Examples
    --------
    >>> _merge_dicts({"a": 1, "b": {"c": 2}}, {"b": {"d": 3}})
    {'a': 1, 'b': {'c': 2, 'd': 3}}
    """
    result: dict[str, Any] = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _merge_dicts(result[key], value)
        else:
            result[key] = value
    return result


def _env_overrides(environ: dict[str, str] | os._Environ) -> dict[str, Any]:
    """
    Collect model settings from environment variables.

    ``TANDEM_API_KEY`` wins over the provider-specific fallbacks.
    """
    model: dict[str, Any] = {}
    for var, key in ENV_MODEL_KEYS.items():
        value = environ.get(var)
        if value:
            model[key] = value

    if "api_key" not in model:
        for var in FALLBACK_API_KEY_VARS:
            value = environ.get(var)
            if value:
                model["api_key"] = value
                break

    return {"model": model} if model else {}


def load_configuration(
    cwd: Path | None = None,
    environ: dict[str, str] | None = None,
) -> Configuration:
    """
    Load configuration from user, project and environment sources.

    Sources are merged in this order, later ones winning:

    1. User configuration (``<user config dir>/tandem/config.toml``)
    2. Project configuration (``./.tandem/config.toml``)
    3. Project system prompt (``./.tandem/SYSTEM_PROMPT.md``)
    4. Environment variables (``TANDEM_PROVIDER``, ``TANDEM_MODEL``,
       ``TANDEM_ENDPOINT``, ``TANDEM_API_KEY``, falling back to
       ``HF_API_KEY`` / ``OPENAI_API_KEY`` for the key)

    Parameters
    ----------
    cwd : Path | None, optional
        Project directory. If None, uses the current directory.
    environ : dict[str, str] | None, optional
        Environment mapping. If None, uses ``os.environ``.

    Returns
    -------
    Configuration
        Loaded and validated configuration object.

    Raises
    ------
    ConfigurationError
        If the merged configuration is invalid.

    Examples
    --------
    >>> config = load_configuration()
    >>> config = load_configuration(Path("/path/to/project"))
    """
    cwd = cwd or Path.cwd()
    environ = os.environ if environ is None else environ
    config_dict: dict[str, Any] = {}

    user_path: Path = get_user_config_path()
    if user_path.is_file():
        try:
            config_dict = _parse_toml(user_path)
            logger.debug(f"Loaded user config from {user_path}")
        except ConfigurationError as e:
            logger.warning(f"Skipping invalid user config {user_path}: {e}")

    project_path: Path = _get_project_dir(cwd) / CONFIG_FILE_NAME
    if project_path.is_file():
        try:
            config_dict = _merge_dicts(config_dict, _parse_toml(project_path))
            logger.debug(f"Loaded project config from {project_path}")
        except ConfigurationError as e:
            logger.warning(f"Skipping invalid project config {project_path}: {e}")

    system_prompt: str | None = _get_system_prompt_content(cwd)
    if system_prompt:
        config_dict["system_prompt"] = system_prompt
        logger.debug(f"Loaded system prompt from {_get_project_dir(cwd)}")

    config_dict = _merge_dicts(config_dict, _env_overrides(environ))

    try:
        config: Configuration = Configuration(**config_dict)
    except Exception as e:
        raise ConfigurationError(f"Invalid configuration: {e}", cause=e) from e

    logger.info(f"Configuration loaded successfully from {cwd}")
    return config
