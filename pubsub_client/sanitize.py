"""Payload preparation before it leaves the process: clone, redact, encode.

`clone_payload` builds a detached JSON-shaped copy so the caller's object is
never touched; `sanitize` then redacts that copy in place.
"""

import json
import math
import re
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any

from pubsub_client.errors import DataCloneError

HIDDEN = "[HIDDEN]"
CIRCULAR = "[Circular]"

# Case-sensitive prefix match, e.g. "password", "password_salt", "creditcardNumber"
SENSITIVE_KEY_RE = re.compile(r"^(password|creditcard)")

_PRIMITIVES = (str, int, float, bool, type(None))
_PRESERVED = (datetime, date, time, re.Pattern)
_DROP = object()
_SURROGATE_RE = re.compile(r"[\ud800-\udfff]")


def clone_payload(value: Any) -> Any:
    """Deep-copy a JSON-compatible tree.

    Mappings and sequences are copied, primitives, dates and compiled patterns
    are kept, callables are carried over for `sanitize` to drop. Cycles and
    values with no JSON form raise DataCloneError.
    """
    return _clone(value, set())


def _clone(value: Any, path: set[int]) -> Any:
    if isinstance(value, _PRIMITIVES) or isinstance(value, _PRESERVED):
        return value
    if callable(value):
        return value
    if isinstance(value, dict):
        container: Any = {}
        items = value.items()
    elif isinstance(value, (list, tuple)):
        container = []
        items = enumerate(value)
    else:
        raise DataCloneError(
            f"data could not be parsed: unsupported type {type(value).__name__}"
        )

    marker = id(value)
    if marker in path:
        raise DataCloneError("data could not be parsed: circular structure")
    path.add(marker)
    try:
        for key, item in items:
            copied = _clone(item, path)
            if isinstance(container, dict):
                container[key if isinstance(key, str) else str(key)] = copied
            else:
                container.append(copied)
    finally:
        path.discard(marker)
    return container


def sanitize(value: Any, seen: set[int] | None = None) -> Any:
    """Redact a cloned payload in place and return it.

    Callables are removed (None inside lists), keys starting with `password`
    or `creditcard` become "[HIDDEN]", an object reached a second time
    becomes "[Circular]".
    """
    if seen is None:
        seen = set()
    if isinstance(value, dict):
        seen.add(id(value))
        for key in list(value):
            replacement = _sanitize_member(str(key), value[key], seen)
            if replacement is _DROP:
                del value[key]
            else:
                value[key] = replacement
    elif isinstance(value, list):
        seen.add(id(value))
        for index, item in enumerate(value):
            replacement = _sanitize_member("", item, seen)
            value[index] = None if replacement is _DROP else replacement
    return value


def _sanitize_member(key: str, value: Any, seen: set[int]) -> Any:
    if callable(value):
        return _DROP
    if key and SENSITIVE_KEY_RE.match(key):
        return HIDDEN
    if isinstance(value, (dict, list)):
        if id(value) in seen:
            return CIRCULAR
        return sanitize(value, seen)
    return value


def _encode_default(value: Any) -> Any:
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, re.Pattern):
        return value.pattern
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _escape_surrogates(text: str) -> str:
    return _SURROGATE_RE.sub(lambda m: f"\\u{ord(m.group()):04x}", text)


def format_number(value: float) -> str:
    """Number text as JavaScript's JSON.stringify writes it (1e-7, 1e+21, 2)."""
    if math.isnan(value) or math.isinf(value):
        return "null"
    if value == 0:
        return "0"
    sign = "-" if value < 0 else ""
    _, digit_tuple, exponent = Decimal(repr(abs(value))).as_tuple()
    point = len(digit_tuple) + exponent
    digits = "".join(map(str, digit_tuple)).rstrip("0")
    k = len(digits)
    if k <= point <= 21:
        text = digits + "0" * (point - k)
    elif 0 < point <= 21:
        text = f"{digits[:point]}.{digits[point:]}"
    elif -6 < point <= 0:
        text = "0." + "0" * -point + digits
    else:
        e = point - 1
        mantissa = digits if k == 1 else f"{digits[0]}.{digits[1:]}"
        text = f"{mantissa}e{'+' if e >= 0 else '-'}{abs(e)}"
    return sign + text


def _encode(value: Any, out: list[str]) -> None:
    if isinstance(value, str):
        out.append(_escape_surrogates(json.dumps(value, ensure_ascii=False)))
    elif value is None or isinstance(value, bool):
        out.append(json.dumps(value))
    elif isinstance(value, int):
        out.append(str(int(value)))
    elif isinstance(value, float):
        out.append(format_number(value))
    elif isinstance(value, dict):
        out.append("{")
        for i, (key, item) in enumerate(value.items()):
            if i:
                out.append(",")
            _encode(str(key), out)
            out.append(":")
            _encode(item, out)
        out.append("}")
    elif isinstance(value, (list, tuple)):
        out.append("[")
        for i, item in enumerate(value):
            if i:
                out.append(",")
            _encode(item, out)
        out.append("]")
    else:
        _encode(_encode_default(value), out)


def to_json(value: Any) -> str:
    """Compact JSON, byte-for-byte what the server signs and verifies.

    Strings keep non-ASCII text but escape lone surrogates as \\uXXXX, and
    numbers follow JavaScript formatting, so the result always encodes to
    UTF-8 and a parsed server body re-serializes to the signed text.
    """
    out: list[str] = []
    _encode(value, out)
    return "".join(out)
