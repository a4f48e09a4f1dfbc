"""Conversion of raw MQTT values into InfluxDB line protocol field values.

Line protocol field formats:

- float: bare decimal, e.g. ``1.500000``
- integer: base 10 with an ``i`` suffix, e.g. ``123i``
- boolean: ``true`` or ``false``
- string: double quoted, embedded quotes and backslashes escaped
"""

from __future__ import annotations

import math
import re
from enum import Enum

from app.schemas import ConversionSpec
from models.errors import (
    MissingLookupKey,
    ParseError,
    UnsupportedConversionError,
    ValidationError,
)

_FLOAT_PATTERN = re.compile(r"[+-]?(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")
_INTEGER_PATTERN = re.compile(r"[+-]?[0-9]+")

_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1

_TRUE_LITERALS = frozenset({"1", "t", "true"})
_FALSE_LITERALS = frozenset({"0", "f", "false"})


class ConversionKind(str, Enum):
    """Supported conversion kinds."""

    identity = "identity"
    float = "float"
    integer = "integer"
    boolean = "boolean"
    on_off = "on-off"
    string = "string"


def resolve_kind(kind: str) -> ConversionKind:
    if not kind:
        return ConversionKind.identity
    try:
        return ConversionKind(kind)
    except ValueError as exc:
        raise UnsupportedConversionError(f"conversion {kind!r} not supported") from exc


def convert(spec: ConversionSpec, raw: str) -> str:
    """Apply ``spec`` to ``raw`` and return the formatted field value."""
    if spec.lookup is not None:
        raw = translate(spec.lookup, raw)

    kind = resolve_kind(spec.kind)
    if kind is ConversionKind.identity:
        return raw
    if kind is ConversionKind.float:
        return to_float(raw, precision=spec.precision, scale=spec.scale)
    if kind is ConversionKind.integer:
        return to_integer(raw, scale=spec.scale)
    if kind is ConversionKind.boolean:
        return to_boolean(raw)
    if kind is ConversionKind.on_off:
        return on_off(raw)
    if kind is ConversionKind.string:
        return to_string(raw)
    raise UnsupportedConversionError(f"conversion {kind.value!r} not supported")


def translate(lookup: dict[str, str], raw: str) -> str:
    key = raw.strip()
    try:
        return lookup[key]
    except KeyError as exc:
        raise MissingLookupKey(f"lookup failed for {key!r}") from exc


def to_float(raw: str, precision: int = 0, scale: float = 0.0) -> str:
    if not _FLOAT_PATTERN.fullmatch(raw):
        raise ParseError(f"invalid float value {raw!r}")
    parsed = float(raw)
    if math.isinf(parsed):
        raise ParseError(f"float value {raw!r} out of range")
    if scale:
        parsed *= scale
    if parsed == 0:
        # normalizes -0
        parsed = 0.0
    digits = precision or 6
    return f"{parsed:.{digits}f}"


def to_integer(raw: str, scale: float = 0.0) -> str:
    if not _INTEGER_PATTERN.fullmatch(raw):
        raise ParseError(f"invalid integer value {raw!r}")
    parsed = int(raw)
    if not _INT64_MIN <= parsed <= _INT64_MAX:
        raise ParseError(f"integer value {raw!r} out of range")
    if scale:
        scaled = parsed * scale
        if not math.isfinite(scaled):
            raise ParseError(f"integer value {raw!r} out of range after scaling")
        parsed = int(scaled)
    return f"{parsed}i"


def to_boolean(raw: str) -> str:
    candidate = raw.strip().lower()
    if candidate in _TRUE_LITERALS:
        return "true"
    if candidate in _FALSE_LITERALS:
        return "false"
    raise ParseError(f"invalid boolean value {raw!r}")


def on_off(raw: str) -> str:
    candidate = raw.strip().lower()
    if candidate == "on":
        return "true"
    if candidate == "off":
        return "false"
    raise ValidationError(f"expected on/off, got {raw!r}")


def to_string(raw: str) -> str:
    escaped = raw.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'
