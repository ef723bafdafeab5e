"""
EDM (Entity Data Model) type system for table entities.

This module defines the primitive property types a table entity may carry,
how Python values map onto them, and how each type is written to and read
from the wire: as XML element text and as JSON values.

References:
    - OData v3 Primitive Data Types
    - Azure Table Storage Entity Properties
"""

from __future__ import annotations

import base64
import binascii
import math
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Optional


INT32_MIN = -(2 ** 31)
INT32_MAX = 2 ** 31 - 1
INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1

DOUBLE_NAN = "NaN"
DOUBLE_POSITIVE_INFINITY = "Infinity"
DOUBLE_NEGATIVE_INFINITY = "-Infinity"

_INTEGER_PATTERN = re.compile(r"^[+-]?\d+$")
_DATETIME_PATTERN = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2})"
    r"(?::(\d{2})(?:\.(\d{1,7}))?)?"
    r"(Z|[+-]\d{2}:\d{2})?$"
)


class EdmType(Enum):
    """
    Entity Data Model primitive types.

    Represents the set of property types supported by table storage.
    """
    STRING = "Edm.String"
    INT32 = "Edm.Int32"
    INT64 = "Edm.Int64"
    DOUBLE = "Edm.Double"
    BOOLEAN = "Edm.Boolean"
    DATETIME = "Edm.DateTime"
    GUID = "Edm.Guid"
    BINARY = "Edm.Binary"

    def is_json_native(self) -> bool:
        """Check if a JSON value of this type can be read back without a type annotation."""
        return self in (EdmType.STRING, EdmType.BOOLEAN, EdmType.INT32, EdmType.DOUBLE)

    @classmethod
    def from_name(cls, name: str) -> EdmType:
        """
        Look up a type by its wire name (e.g. ``Edm.Int64``).

        Raises:
            ValueError: If the name is not a known EDM type
        """
        try:
            return cls(name)
        except ValueError:
            raise ValueError(f"Unknown EDM type '{name}'") from None


# Marker for 64-bit integer properties: ``count: Optional[Int64] = None``
Int64 = Annotated[int, EdmType.INT64]


@dataclass(frozen=True)
class TypedValue:
    """
    Value with its EDM type.

    Immutable container for a property value and its type. A ``None`` value
    is an explicit null of the given type.
    """
    value: Any
    edm_type: EdmType

    @classmethod
    def of(cls, value: Any, edm_type: Optional[EdmType] = None) -> TypedValue:
        """Build a typed value, inferring the type when not given."""
        return cls(value, edm_type if edm_type is not None else infer_type(value))

    def __repr__(self) -> str:
        return f"TypedValue({self.value!r}, {self.edm_type.value})"


def infer_type(value: Any) -> EdmType:
    """
    Infer EDM type from Python value.

    Args:
        value: Python value

    Returns:
        Inferred EDM type (``None`` is treated as a null string)

    Raises:
        ValueError: If the value has no EDM equivalent
    """
    if value is None:
        return EdmType.STRING
    elif isinstance(value, bool):
        # Must check bool before int (bool is subclass of int)
        return EdmType.BOOLEAN
    elif isinstance(value, int):
        if INT32_MIN <= value <= INT32_MAX:
            return EdmType.INT32
        return EdmType.INT64
    elif isinstance(value, float):
        return EdmType.DOUBLE
    elif isinstance(value, str):
        return EdmType.STRING
    elif isinstance(value, datetime):
        return EdmType.DATETIME
    elif isinstance(value, uuid.UUID):
        return EdmType.GUID
    elif isinstance(value, (bytes, bytearray)):
        return EdmType.BINARY
    raise ValueError(f"No EDM type for Python type {type(value).__name__}")


def infer_json_type(raw: Any) -> Optional[EdmType]:
    """
    Infer EDM type from a JSON value carrying no type annotation.

    Returns:
        Inferred type, or None for objects and arrays
    """
    if isinstance(raw, (list, dict)):
        return None
    return infer_type(raw)


def validate_value(value: Any, edm_type: EdmType) -> Any:
    """
    Check that a Python value fits an EDM type and normalize it.

    Args:
        value: Python value (not None)
        edm_type: Declared type

    Returns:
        Normalized value (ints widened to float for Double, bytearray to bytes)

    Raises:
        ValueError: If the value does not fit the type
    """
    if edm_type == EdmType.STRING:
        if isinstance(value, str):
            return value
    elif edm_type == EdmType.BOOLEAN:
        if isinstance(value, bool):
            return value
    elif edm_type in (EdmType.INT32, EdmType.INT64):
        if isinstance(value, int) and not isinstance(value, bool):
            low, high = (INT32_MIN, INT32_MAX) if edm_type == EdmType.INT32 else (INT64_MIN, INT64_MAX)
            if not low <= value <= high:
                raise ValueError(f"{value} is out of range for {edm_type.value}")
            return value
    elif edm_type == EdmType.DOUBLE:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
    elif edm_type == EdmType.DATETIME:
        if isinstance(value, datetime):
            return _to_utc(value)
    elif edm_type == EdmType.GUID:
        if isinstance(value, uuid.UUID):
            return value
    elif edm_type == EdmType.BINARY:
        if isinstance(value, (bytes, bytearray)):
            return bytes(value)
    raise ValueError(f"{type(value).__name__} value is not valid for {edm_type.value}")


def to_wire_text(value: Any, edm_type: EdmType) -> str:
    """
    Format a validated value as wire text (XML content, JSON string forms).

    Strings are returned untouched.
    """
    if edm_type == EdmType.STRING:
        return value
    if edm_type == EdmType.BOOLEAN:
        return "true" if value else "false"
    if edm_type in (EdmType.INT32, EdmType.INT64):
        return str(value)
    if edm_type == EdmType.DOUBLE:
        return format_double(value)
    if edm_type == EdmType.DATETIME:
        return format_datetime(value)
    if edm_type == EdmType.GUID:
        return str(value)
    return base64.b64encode(value).decode("ascii")


def to_json_value(value: Any, edm_type: EdmType) -> Any:
    """
    Format a validated value as a JSON value.

    Int32, Boolean, String and finite Double use JSON natives; everything
    else, including the non-finite Double sentinels, is written as a string.
    """
    if edm_type in (EdmType.STRING, EdmType.BOOLEAN, EdmType.INT32):
        return value
    if edm_type == EdmType.DOUBLE and math.isfinite(value):
        return value
    return to_wire_text(value, edm_type)


def from_wire(raw: Any, edm_type: EdmType) -> Any:
    """
    Interpret a raw wire value as the given EDM type.

    Accepts both text forms (XML, string-encoded JSON) and JSON natives.

    Raises:
        ValueError: If the raw value cannot represent the type
    """
    if edm_type == EdmType.STRING:
        if isinstance(raw, str):
            return raw
    elif edm_type == EdmType.BOOLEAN:
        if isinstance(raw, bool):
            return raw
        if isinstance(raw, str) and raw.lower() in ("true", "false"):
            return raw.lower() == "true"
    elif edm_type in (EdmType.INT32, EdmType.INT64):
        if isinstance(raw, str) and _INTEGER_PATTERN.match(raw):
            raw = int(raw)
        if isinstance(raw, int) and not isinstance(raw, bool):
            return validate_value(raw, edm_type)
    elif edm_type == EdmType.DOUBLE:
        if isinstance(raw, str):
            return parse_double(raw)
        if isinstance(raw, (int, float)) and not isinstance(raw, bool):
            return float(raw)
    elif edm_type == EdmType.DATETIME:
        if isinstance(raw, str):
            return parse_datetime(raw)
    elif edm_type == EdmType.GUID:
        if isinstance(raw, str):
            return uuid.UUID(raw)
    elif edm_type == EdmType.BINARY:
        if isinstance(raw, str):
            try:
                return base64.b64decode(raw, validate=True)
            except binascii.Error as e:
                raise ValueError(f"Invalid base64 data: {e}") from e
    raise ValueError(f"Cannot read {raw!r} as {edm_type.value}")


def convert(value: Any, from_type: EdmType, to_type: EdmType) -> Any:
    """
    Convert a value read as one type into a declared type.

    Only widening numeric promotions are allowed:
    - Int32 → Int64
    - Int32, Int64 → Double

    Raises:
        ValueError: If conversion is not possible
    """
    if from_type == to_type or value is None:
        return value
    if from_type == EdmType.INT32 and to_type == EdmType.INT64:
        return value
    if from_type in (EdmType.INT32, EdmType.INT64) and to_type == EdmType.DOUBLE:
        return float(value)
    raise ValueError(f"Cannot convert from {from_type.value} to {to_type.value}")


def format_double(value: float) -> str:
    """Format a double, using sentinels for NaN and the infinities."""
    if math.isnan(value):
        return DOUBLE_NAN
    if math.isinf(value):
        return DOUBLE_POSITIVE_INFINITY if value > 0 else DOUBLE_NEGATIVE_INFINITY
    return repr(value)


def parse_double(text: str) -> float:
    """Parse a double, accepting the NaN and infinity sentinels."""
    if text == DOUBLE_NAN:
        return math.nan
    if text in (DOUBLE_POSITIVE_INFINITY, "INF"):
        return math.inf
    if text in (DOUBLE_NEGATIVE_INFINITY, "-INF"):
        return -math.inf
    try:
        return float(text)
    except ValueError:
        raise ValueError(f"Invalid Edm.Double value '{text}'") from None


def format_datetime(value: datetime) -> str:
    """Format a datetime as UTC ISO 8601 with microseconds, e.g. 2025-12-04T10:30:00.123456Z."""
    value = _to_utc(value)
    return (
        f"{value.year:04d}-{value.month:02d}-{value.day:02d}"
        f"T{value.hour:02d}:{value.minute:02d}:{value.second:02d}"
        f".{value.microsecond:06d}Z"
    )


def parse_datetime(text: str) -> datetime:
    """
    Parse an ISO 8601 datetime into an aware UTC datetime.

    Up to seven fractional digits are accepted; digits past microseconds
    are truncated. A missing offset is taken as UTC.
    """
    match = _DATETIME_PATTERN.match(text)
    if not match:
        raise ValueError(f"Invalid Edm.DateTime value '{text}'")

    year, month, day, hour, minute, second, fraction, offset = match.groups()
    microsecond = int((fraction or "0").ljust(6, "0")[:6])
    parsed = datetime(
        int(year), int(month), int(day),
        int(hour), int(minute), int(second or 0), microsecond,
        tzinfo=timezone.utc,
    )
    if offset and offset != "Z":
        parsed = datetime.fromisoformat(parsed.replace(tzinfo=None).isoformat() + offset)
    return parsed.astimezone(timezone.utc)


def _to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
