from __future__ import annotations

"""JSON extraction and strict/lenient parsing of reasoning output.

Reasoning backends return free-form text that usually, but not always,
contains the JSON payload we asked for. ``StructuredOutputParser`` turns that
text into validated models in two passes:

1. **strict**: extract the JSON block and validate it as-is against the
   schema (``TypeAdapter.validate_json``; models forbid unknown keys).
2. **lenient**: tolerate minor deviations. Comments and trailing commas are
   removed, Python literals (single quotes) and truncated JSON are accepted,
   ``{"steps": [...]}``-style wrappers are unwrapped, key aliases such as
   ``agent``/``args`` are normalized, and the result is validated again.

Both passes raising means the output is unusable; callers decide whether to
re-ask (planner) or give up (remediation advisor).
"""

import ast
import json
import logging
import re
from typing import Any, Callable, Dict, Generic, List, Mapping, Optional, Sequence, TypeVar

from pydantic import TypeAdapter, ValidationError
from pydantic_core import from_json

logger = logging.getLogger(__name__)

T = TypeVar("T")

_FENCED_BLOCK = re.compile(r"```(?:json|JSON)?\s*(.*?)```", re.DOTALL)
_OPENERS = {"{": "}", "[": "]"}


class OutputParseError(ValueError):
    """Raised when text cannot be turned into the requested structure."""


def _balanced_from(text: str, start: int) -> str:
    """Return the bracket-balanced block starting at ``start`` (string-aware), or ``""``."""
    stack: List[str] = []
    in_string: Optional[str] = None
    escaped = False
    for i in range(start, len(text)):
        c = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif c == "\\":
                escaped = True
            elif c == in_string:
                in_string = None
            continue
        if c in ('"', "'"):
            in_string = c
        elif c in _OPENERS:
            stack.append(_OPENERS[c])
        elif c in ("}", "]"):
            if not stack or stack.pop() != c:
                return ""
            if not stack:
                return text[start : i + 1]
    return ""


def _balanced_candidates(text: str) -> List[str]:
    out: List[str] = []
    i = 0
    while i < len(text):
        if text[i] in _OPENERS:
            block = _balanced_from(text, i)
            if block:
                out.append(block)
                i += len(block)
                continue
        i += 1
    return out


def _is_json(candidate: str) -> bool:
    try:
        json.loads(candidate)
    except ValueError:
        return False
    return True


def _is_lenient_json(candidate: str) -> bool:
    try:
        loads_lenient(candidate)
    except OutputParseError:
        return False
    return True


def extract_json_block(text: Optional[str]) -> str:
    """Extract the most plausible JSON object/array from free-form text.

    Strategies, in order: fenced markdown blocks, balanced ``{...}``/``[...]``
    candidates (first strictly valid, then first leniently valid), and finally
    everything from the first opening bracket (possibly truncated JSON).

    Returns:
        The candidate block, or ``""`` when the text contains no bracket at all.
    """
    if not text or not text.strip():
        return ""

    fenced = [m.group(1).strip() for m in _FENCED_BLOCK.finditer(text)]
    fenced = [f for f in fenced if f[:1] in _OPENERS]
    for check in (_is_json, _is_lenient_json):
        for block in fenced:
            if check(block):
                return block

    candidates = _balanced_candidates(text)
    for check in (_is_json, _is_lenient_json):
        for block in candidates:
            if check(block):
                return block

    positions = [p for p in (text.find("{"), text.find("[")) if p != -1]
    if not positions:
        logger.warning(f"no JSON found in reasoning output (first 200 chars): {text[:200]!r}")
        return ""
    return text[min(positions) :].strip()


def relax_json(text: str) -> str:
    """Remove ``//`` and ``/* */`` comments and trailing commas outside of strings."""
    out: List[str] = []
    i = 0
    n = len(text)
    in_string: Optional[str] = None
    while i < n:
        c = text[i]
        if in_string:
            out.append(c)
            if c == "\\" and i + 1 < n:
                out.append(text[i + 1])
                i += 2
                continue
            if c == in_string:
                in_string = None
            i += 1
            continue
        if c in ('"', "'"):
            in_string = c
            out.append(c)
            i += 1
            continue
        if text.startswith("//", i):
            end = text.find("\n", i)
            i = n if end == -1 else end
            continue
        if text.startswith("/*", i):
            end = text.find("*/", i + 2)
            i = n if end == -1 else end + 2
            continue
        if c == ",":
            j = i + 1
            while j < n and text[j].isspace():
                j += 1
            if j < n and text[j] in "}]":
                i += 1
                continue
        out.append(c)
        i += 1
    return "".join(out)


def loads_lenient(text: str) -> Any:
    """Parse JSON tolerating comments, trailing commas, Python literals and truncation."""
    relaxed = relax_json(text).strip()
    if not relaxed:
        raise OutputParseError("empty JSON payload")
    try:
        return from_json(relaxed, allow_partial=True)
    except ValueError:
        pass
    try:
        value = ast.literal_eval(relaxed)
    except (ValueError, SyntaxError, TypeError, MemoryError, RecursionError) as e:
        raise OutputParseError(f"not parseable as JSON: {e}") from e
    if not isinstance(value, (dict, list, tuple)):
        raise OutputParseError("payload is not a JSON object or array")
    return list(value) if isinstance(value, tuple) else value


def _canonical_key(key: str) -> str:
    return re.sub(r"[^a-z0-9]", "", key.lower())


def normalize_keys(item: Mapping[str, Any], aliases: Mapping[str, Sequence[str]]) -> Dict[str, Any]:
    """Rename alias keys of ``item`` to their target field names.

    ``aliases`` maps a target field to accepted spellings, compared
    case-insensitively and ignoring ``_``/``-``. Earlier spellings win; keys
    that match no alias are kept unchanged.
    """
    lookup = {_canonical_key(k): k for k in item}
    out: Dict[str, Any] = {}
    consumed = set()
    for target, spellings in aliases.items():
        for spelling in (target, *spellings):
            original = lookup.get(_canonical_key(spelling))
            if original is not None and original not in consumed:
                out[target] = item[original]
                consumed.add(original)
                break
    for k, v in item.items():
        if k not in consumed:
            out[k] = v
    return out


class StructuredOutputParser(Generic[T]):
    """Strict-then-lenient parser of reasoning output into ``T``.

    Args:
        adapter: Pydantic ``TypeAdapter`` of the target type.
        many: Whether ``T`` is a list; enables wrapper unwrapping and
            single-object promotion in the lenient pass.
        wrapper_keys: Keys whose list value is the payload (``{"steps": [...]}``).
        key_aliases: Accepted key spellings per target field (lenient pass);
            keys matching no target field are dropped.
        item_hook: Extra lenient normalization applied to each item dict.
    """

    def __init__(
        self,
        adapter: TypeAdapter[T],
        *,
        many: bool = False,
        wrapper_keys: Sequence[str] = (),
        key_aliases: Optional[Mapping[str, Sequence[str]]] = None,
        item_hook: Optional[Callable[[Dict[str, Any]], Dict[str, Any]]] = None,
    ) -> None:
        self._adapter = adapter
        self._many = many
        self._wrapper_keys = tuple(wrapper_keys)
        self._key_aliases = dict(key_aliases or {})
        self._item_hook = item_hook

    def schema_json(self) -> str:
        return json.dumps(self._adapter.json_schema(by_alias=True), indent=2)

    def parse(self, text: Optional[str]) -> T:
        """Parse ``text`` strictly, falling back to the lenient pass.

        Raises:
            OutputParseError: If both passes fail.
        """
        block = extract_json_block(text)
        if not block:
            raise OutputParseError("no JSON payload found")
        try:
            return self.parse_strict(block)
        except OutputParseError as strict_error:
            logger.debug(f"strict parse failed, trying lenient parse: {strict_error}")
        return self.parse_lenient(block)

    def parse_strict(self, block: str) -> T:
        try:
            return self._adapter.validate_json(block)
        except ValidationError as e:
            raise OutputParseError(f"strict parse failed: {e.error_count()} error(s)") from e

    def parse_lenient(self, block: str) -> T:
        data = loads_lenient(block)
        data = self._unwrap(data)
        if self._many:
            if isinstance(data, dict):
                data = [data]
            if not isinstance(data, list):
                raise OutputParseError("expected a JSON array")
            data = [self._normalize_item(item) for item in data]
        else:
            if isinstance(data, list) and len(data) == 1:
                data = data[0]
            data = self._normalize_item(data)
        try:
            return self._adapter.validate_python(data)
        except ValidationError as e:
            raise OutputParseError(f"lenient parse failed: {e.error_count()} error(s)") from e

    def _unwrap(self, data: Any) -> Any:
        if not isinstance(data, dict) or not self._wrapper_keys:
            return data
        canonical = {_canonical_key(k): k for k in data}
        for key in self._wrapper_keys:
            original = canonical.get(_canonical_key(key))
            if original is not None:
                return data[original]
        return data

    def _normalize_item(self, item: Any) -> Any:
        if not isinstance(item, dict):
            return item
        if self._key_aliases:
            out = normalize_keys(item, self._key_aliases)
            out = {k: v for k, v in out.items() if k in self._key_aliases}
        else:
            out = dict(item)
        if self._item_hook is not None:
            out = self._item_hook(out)
        return out
