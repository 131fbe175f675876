"""
Helpers for turning loosely-typed values into JSON-compatible data.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel

logger = logging.getLogger(__name__)

_DROP = object()


def json_safe(value: Any, path: str = "$") -> Any:
    """
    Convert ``value`` into JSON-compatible data.

    Mappings, sequences and Pydantic models are converted recursively,
    datetimes become ISO strings and unknown objects their ``str()``.
    A container that refers back to one of its ancestors is dropped from
    its parent (with a warning) instead of recursing forever.

    Parameters
    ----------
    value : Any
        Value to convert.
    path : str, default="$"
        Location used in warnings.

    Returns
    -------
    Any
        JSON-compatible copy of ``value``. A self-referencing top-level
        value becomes ``None``.

    Examples
    --------
    >>> params = {"a": [1, 2]}
    >>> params["self"] = params
    >>> json_safe(params)
    {'a': [1, 2]}
    """
    result = _convert(value, path, set())
    return None if result is _DROP else result


def _convert(value: Any, path: str, ancestors: set[int]) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, BaseModel):
        value = dict(value)

    if isinstance(value, (dict, list, tuple, set, frozenset)):
        marker = id(value)
        if marker in ancestors:
            logger.warning(f"Dropping circular reference at {path}")
            return _DROP
        ancestors.add(marker)
        try:
            if isinstance(value, dict):
                converted: Any = {}
                for key, item in value.items():
                    item_value = _convert(item, f"{path}.{key}", ancestors)
                    if item_value is not _DROP:
                        converted[str(key)] = item_value
            else:
                converted = []
                for index, item in enumerate(value):
                    item_value = _convert(item, f"{path}[{index}]", ancestors)
                    if item_value is not _DROP:
                        converted.append(item_value)
        finally:
            ancestors.discard(marker)
        return converted

    return str(value)
