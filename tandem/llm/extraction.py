"""
Tool-call extraction from free-text model output.

Models without a native tool-calling protocol describe tool calls in
text. This module recognizes three encodings, tried in order:

1. fenced JSON blocks (```json ... ```),
2. bare JSON objects anywhere in the text,
3. function-call syntax (``read_file(path="a.txt")``).

The first encoding that yields at least one call wins; later ones are not
attempted, so the same intent written twice is not counted twice.
Malformed input is skipped, never raised.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable

from tandem.llm.models import ToolCall

logger = logging.getLogger(__name__)

FENCED_JSON_PATTERN = re.compile(r"```json\b[^\n]*\n?(.*?)```", re.DOTALL | re.IGNORECASE)
FUNCTION_CALL_PATTERN = re.compile(r"\b([A-Za-z_]\w*)\(")
KEYWORD_ARGUMENT_PATTERN = re.compile(r"^([A-Za-z_]\w*)\s*=(?!=)\s*(.*)$", re.DOTALL)
NUMBER_PATTERN = re.compile(r"^-?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?$")

_OPENERS = {"(": ")", "[": "]", "{": "}"}
_CLOSERS = {")", "]", "}"}


@dataclass
class ExtractedToolCall:
    """A tool call together with the span of text that encoded it."""

    call: ToolCall
    start: int
    end: int


def _to_tool_call(value: Any) -> ToolCall | None:
    """
    Build a ToolCall from a decoded JSON value.

    Accepts a mapping with a non-empty string ``name``. ``parameters``
    falls back to ``arguments`` and then to ``{}`` when absent or not a
    mapping.
    """
    if not isinstance(value, dict):
        return None
    name = value.get("name")
    if not isinstance(name, str) or not name.strip():
        return None

    parameters = value.get("parameters", value.get("arguments"))
    if isinstance(parameters, str):
        try:
            parameters = json.loads(parameters)
        except json.JSONDecodeError:
            parameters = None
    if not isinstance(parameters, dict):
        parameters = {}

    call_id = value.get("id")
    if isinstance(call_id, str) and call_id:
        return ToolCall(id=call_id, name=name.strip(), parameters=parameters)
    return ToolCall(name=name.strip(), parameters=parameters)


def extract_fenced_json(text: str) -> list[ExtractedToolCall]:
    """
    Find tool calls in ```json fenced blocks.

    A block may hold one call object or a list of them. Fences with any
    other language tag are ignored.
    """
    found: list[ExtractedToolCall] = []
    for match in FENCED_JSON_PATTERN.finditer(text):
        body = match.group(1).strip()
        try:
            value = json.loads(body)
        except json.JSONDecodeError:
            logger.debug(f"Skipping malformed fenced JSON at offset {match.start()}")
            continue

        for item in value if isinstance(value, list) else [value]:
            call = _to_tool_call(item)
            if call is not None:
                found.append(ExtractedToolCall(call, match.start(), match.end()))
    return found


def _find_object_end(text: str, start: int) -> int | None:
    """
    Return the index just past the ``}`` closing the object at ``start``.

    Braces inside JSON strings are ignored. Returns None if the object is
    never closed.
    """
    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
        elif char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return index + 1
    return None


def extract_bare_json(text: str) -> list[ExtractedToolCall]:
    """
    Find tool calls in JSON objects embedded anywhere in the text.

    Each top-level ``{...}`` span is decoded. A span that is not valid
    JSON is rescanned from its next character, so a valid object nested
    inside broken text is still found.
    """
    found: list[ExtractedToolCall] = []
    position = 0
    while True:
        start = text.find("{", position)
        if start == -1:
            break
        end = _find_object_end(text, start)
        if end is None:
            position = start + 1
            continue

        try:
            value = json.loads(text[start:end])
        except json.JSONDecodeError:
            position = start + 1
            continue

        call = _to_tool_call(value)
        if call is not None:
            found.append(ExtractedToolCall(call, start, end))
        position = end
    return found


def _find_call_end(text: str, open_index: int) -> int | None:
    """
    Return the index of the ``)`` matching the ``(`` at ``open_index``.

    Quoted strings and nested brackets are skipped.
    """
    stack: list[str] = []
    quote: str | None = None
    escaped = False
    for index in range(open_index, len(text)):
        char = text[index]
        if quote:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == quote:
                quote = None
        elif char in ("'", '"'):
            quote = char
        elif char in _OPENERS:
            stack.append(_OPENERS[char])
        elif char in _CLOSERS:
            if not stack or stack.pop() != char:
                return None
            if not stack:
                return index
    return None


def _split_arguments(arguments: str) -> list[str]:
    """Split on commas that are outside quotes and brackets."""
    parts: list[str] = []
    depth = 0
    quote: str | None = None
    escaped = False
    current: list[str] = []
    for char in arguments:
        if quote:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == quote:
                quote = None
        elif char in ("'", '"'):
            quote = char
        elif char in _OPENERS:
            depth += 1
        elif char in _CLOSERS:
            depth -= 1
        elif char == "," and depth == 0:
            parts.append("".join(current))
            current = []
            continue
        current.append(char)
    parts.append("".join(current))
    return parts


def _coerce_scalar(value: str) -> Any:
    if value in ("true", "True"):
        return True
    if value in ("false", "False"):
        return False
    if NUMBER_PATTERN.match(value):
        try:
            return int(value)
        except ValueError:
            return float(value)
    return value


def coerce_argument(raw: str) -> Any:
    """
    Convert a function-call argument literal to a Python value.

    ``true``/``false`` become booleans, numeric literals become ``int`` or
    ``float``, JSON arrays and objects are decoded, and anything else is
    returned as the raw string. Quoted strings are dequoted first and then
    get the same boolean and numeric conversion, so ``retries="3"`` yields
    ``3``; models often quote every argument.

    Examples
    --------
    >>> coerce_argument('"a.txt"')
    'a.txt'
    >>> coerce_argument("3")
    3
    >>> coerce_argument("'3'")
    3
    >>> coerce_argument("true")
    True
    """
    value = raw.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        text = value[1:-1]
        if value[0] == '"':
            try:
                text = json.loads(value)
            except json.JSONDecodeError:
                pass
        return _coerce_scalar(text)
    if value[:1] in ("[", "{"):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            pass
    return _coerce_scalar(value)


def _parse_arguments(arguments: str) -> dict[str, Any] | None:
    """
    Parse ``key=value`` arguments.

    Returns None if any non-empty argument is not a keyword argument.
    """
    parameters: dict[str, Any] = {}
    for part in _split_arguments(arguments):
        if not part.strip():
            continue
        match = KEYWORD_ARGUMENT_PATTERN.match(part.strip())
        if match is None:
            return None
        parameters[match.group(1)] = coerce_argument(match.group(2))
    return parameters


def extract_function_calls(text: str) -> list[ExtractedToolCall]:
    """
    Find tool calls written as ``name(key=value, ...)``.

    Arguments are split on top-level commas. A call with a positional
    argument is not treated as a tool call.
    """
    found: list[ExtractedToolCall] = []
    position = 0
    while True:
        match = FUNCTION_CALL_PATTERN.search(text, position)
        if match is None:
            break
        open_index = match.end() - 1
        close_index = _find_call_end(text, open_index)
        if close_index is None:
            position = match.end()
            continue

        parameters = _parse_arguments(text[open_index + 1:close_index])
        if parameters is None:
            position = match.end()
            continue

        found.append(
            ExtractedToolCall(
                ToolCall(name=match.group(1), parameters=parameters),
                match.start(),
                close_index + 1,
            ),
        )
        position = close_index + 1
    return found


STRATEGIES: list[tuple[str, Callable[[str], list[ExtractedToolCall]]]] = [
    ("fenced_json", extract_fenced_json),
    ("bare_json", extract_bare_json),
    ("function_call", extract_function_calls),
]


class ToolCallExtractor:
    """
    Extract tool calls from free text.

    Strategies run in precedence order and extraction stops at the first
    one that finds anything. Extraction never raises.

    Examples
    --------
    >>> extractor = ToolCallExtractor()
    >>> calls = extractor.extract('read_file(path="a.txt", retries=3)')
    >>> calls[0].parameters
    {'path': 'a.txt', 'retries': 3}
    >>> extractor.extract("no tool calls here")
    []
    """

    def __init__(
        self,
        strategies: list[tuple[str, Callable[[str], list[ExtractedToolCall]]]] | None = None,
    ) -> None:
        self.strategies = strategies if strategies is not None else STRATEGIES

    def extract_with_spans(self, text: str) -> list[ExtractedToolCall]:
        """
        Extract tool calls along with the text spans that encoded them.

        Parameters
        ----------
        text : str
            Raw model output.

        Returns
        -------
        list[ExtractedToolCall]
            Calls found by the first successful strategy.
        """
        if not text:
            return []
        for name, strategy in self.strategies:
            try:
                found = strategy(text)
            except Exception as e:
                logger.warning(f"Tool call strategy {name} failed: {e}", exc_info=True)
                continue
            if found:
                logger.debug(f"Extracted {len(found)} tool call(s) with {name}")
                return found
        return []

    def extract(self, text: str) -> list[ToolCall]:
        return [item.call for item in self.extract_with_spans(text)]


def strip_spans(text: str, spans: list[tuple[int, int]]) -> str:
    """
    Remove ``spans`` from ``text`` and tidy the whitespace left behind.

    Parameters
    ----------
    text : str
        Original text.
    spans : list[tuple[int, int]]
        ``(start, end)`` offsets to remove. Overlaps are allowed.

    Returns
    -------
    str
        Text without the spans, with runs of blank lines collapsed and
        surrounding whitespace trimmed. Unchanged if ``spans`` is empty.
    """
    if not spans:
        return text
    pieces: list[str] = []
    cursor = 0
    for start, end in sorted(spans):
        if start > cursor:
            pieces.append(text[cursor:start])
        cursor = max(cursor, end)
    pieces.append(text[cursor:])
    stripped = "".join(pieces)
    stripped = re.sub(r"[ \t]+\n", "\n", stripped)
    stripped = re.sub(r"\n{3,}", "\n\n", stripped)
    return stripped.strip()


default_extractor = ToolCallExtractor()


def extract_tool_calls(text: str) -> list[ToolCall]:
    """Extract tool calls with the default strategy order."""
    return default_extractor.extract(text)
