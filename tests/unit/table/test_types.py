"""
Tests for the EDM type system.

Covers type inference, value validation, and wire text / JSON encoding of
every primitive type.
"""

import math
import uuid
from datetime import datetime, timedelta, timezone

import pytest

from tablecodec.table.types import (
    INT32_MAX,
    INT32_MIN,
    INT64_MAX,
    EdmType,
    TypedValue,
    convert,
    format_datetime,
    format_double,
    from_wire,
    infer_json_type,
    infer_type,
    parse_datetime,
    parse_double,
    to_json_value,
    to_wire_text,
    validate_value,
)


class TestEdmType:
    """Test EDM type enum and methods."""

    def test_is_json_native(self):
        """Test which types survive JSON without an annotation."""
        assert EdmType.STRING.is_json_native()
        assert EdmType.BOOLEAN.is_json_native()
        assert EdmType.INT32.is_json_native()
        assert EdmType.DOUBLE.is_json_native()
        assert not EdmType.INT64.is_json_native()
        assert not EdmType.DATETIME.is_json_native()
        assert not EdmType.GUID.is_json_native()
        assert not EdmType.BINARY.is_json_native()

    def test_from_name(self):
        """Test lookup by wire name."""
        assert EdmType.from_name("Edm.Int64") is EdmType.INT64

    def test_from_unknown_name(self):
        """Test lookup of an unknown wire name."""
        with pytest.raises(ValueError, match="Unknown EDM type"):
            EdmType.from_name("Edm.Decimal")


class TestTypedValue:
    """Test TypedValue container."""

    def test_typed_value_creation(self):
        """Test creating typed values."""
        tv = TypedValue("hello", EdmType.STRING)
        assert tv.value == "hello"
        assert tv.edm_type == EdmType.STRING

    def test_typed_value_immutable(self):
        """Test that typed values are immutable."""
        tv = TypedValue(42, EdmType.INT32)
        with pytest.raises(Exception):  # FrozenInstanceError
            tv.value = 100

    def test_typed_value_of_infers(self):
        """Test that of() infers the type when none is given."""
        assert TypedValue.of(7).edm_type == EdmType.INT32
        assert TypedValue.of(7, EdmType.INT64).edm_type == EdmType.INT64
        assert TypedValue.of(None).edm_type == EdmType.STRING

    def test_typed_value_repr(self):
        """Test string representation."""
        tv = TypedValue(42, EdmType.INT32)
        assert "42" in repr(tv)
        assert "Edm.Int32" in repr(tv)


class TestTypeInference:
    """Test type inference from Python values."""

    def test_infer_boolean_before_int(self):
        assert infer_type(True) == EdmType.BOOLEAN

    def test_infer_integers(self):
        """Test Int32/Int64 split at the 32-bit boundary."""
        assert infer_type(INT32_MAX) == EdmType.INT32
        assert infer_type(INT32_MIN) == EdmType.INT32
        assert infer_type(INT32_MAX + 1) == EdmType.INT64
        assert infer_type(INT32_MIN - 1) == EdmType.INT64

    def test_infer_other_types(self):
        assert infer_type(1.5) == EdmType.DOUBLE
        assert infer_type("x") == EdmType.STRING
        assert infer_type(datetime(2025, 1, 1)) == EdmType.DATETIME
        assert infer_type(uuid.uuid4()) == EdmType.GUID
        assert infer_type(b"\x00") == EdmType.BINARY
        assert infer_type(bytearray(b"\x00")) == EdmType.BINARY

    def test_infer_unsupported(self):
        """Test that values without an EDM type are rejected."""
        with pytest.raises(ValueError):
            infer_type([1, 2])

    def test_infer_json_type(self):
        """Test inference from decoded JSON values."""
        assert infer_json_type("x") == EdmType.STRING
        assert infer_json_type(None) == EdmType.STRING
        assert infer_json_type(3) == EdmType.INT32
        assert infer_json_type([1]) is None
        assert infer_json_type({"a": 1}) is None


class TestValidateValue:
    """Test value validation against declared types."""

    def test_int32_range(self):
        """Test Int32 range checking."""
        assert validate_value(INT32_MAX, EdmType.INT32) == INT32_MAX
        with pytest.raises(ValueError, match="out of range"):
            validate_value(INT32_MAX + 1, EdmType.INT32)

    def test_int64_range(self):
        """Test Int64 range checking."""
        assert validate_value(INT64_MAX, EdmType.INT64) == INT64_MAX
        with pytest.raises(ValueError, match="out of range"):
            validate_value(INT64_MAX + 1, EdmType.INT64)

    def test_bool_is_not_integer(self):
        with pytest.raises(ValueError):
            validate_value(True, EdmType.INT32)

    def test_double_widens_int(self):
        result = validate_value(3, EdmType.DOUBLE)
        assert result == 3.0
        assert isinstance(result, float)

    def test_naive_datetime_is_utc(self):
        """Test that naive datetimes are taken as UTC."""
        result = validate_value(datetime(2025, 1, 2, 3, 4, 5), EdmType.DATETIME)
        assert result == datetime(2025, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

    def test_aware_datetime_converted_to_utc(self):
        local = datetime(2025, 1, 2, 5, 0, tzinfo=timezone(timedelta(hours=2)))
        assert validate_value(local, EdmType.DATETIME) == datetime(2025, 1, 2, 3, 0, tzinfo=timezone.utc)

    def test_wrong_python_type(self):
        """Test mismatched Python types."""
        with pytest.raises(ValueError, match="not valid for Edm.Guid"):
            validate_value("not-a-uuid-object", EdmType.GUID)


class TestWireEncoding:
    """Test wire text and JSON value encoding."""

    def test_wire_text(self):
        guid = uuid.UUID("12345678-1234-5678-1234-567812345678")
        assert to_wire_text(True, EdmType.BOOLEAN) == "true"
        assert to_wire_text(-5, EdmType.INT64) == "-5"
        assert to_wire_text(guid, EdmType.GUID) == "12345678-1234-5678-1234-567812345678"
        assert to_wire_text(b"\x00\x01\x02", EdmType.BINARY) == "AAEC"

    def test_strings_untouched(self):
        assert to_wire_text("  a\r\n ", EdmType.STRING) == "  a\r\n "

    def test_json_values(self):
        """Test that only JSON-native types stay native."""
        assert to_json_value(5, EdmType.INT32) == 5
        assert to_json_value(5, EdmType.INT64) == "5"
        assert to_json_value(1.5, EdmType.DOUBLE) == 1.5
        assert to_json_value(math.inf, EdmType.DOUBLE) == "Infinity"
        assert to_json_value(False, EdmType.BOOLEAN) is False

    def test_from_wire_text(self):
        assert from_wire("true", EdmType.BOOLEAN) is True
        assert from_wire("-12", EdmType.INT32) == -12
        assert from_wire("9223372036854775807", EdmType.INT64) == INT64_MAX
        assert from_wire("AAEC", EdmType.BINARY) == b"\x00\x01\x02"

    def test_from_wire_json_natives(self):
        assert from_wire(12, EdmType.INT64) == 12
        assert from_wire(12, EdmType.DOUBLE) == 12.0
        assert from_wire(False, EdmType.BOOLEAN) is False

    @pytest.mark.parametrize("raw,edm_type", [
        ("abc", EdmType.INT32),
        ("2147483648", EdmType.INT32),
        ("maybe", EdmType.BOOLEAN),
        ("not base64!", EdmType.BINARY),
        ("not-a-guid", EdmType.GUID),
        (5, EdmType.STRING),
        ("yesterday", EdmType.DATETIME),
    ])
    def test_from_wire_invalid(self, raw, edm_type):
        """Test raw values that cannot represent their type."""
        with pytest.raises(ValueError):
            from_wire(raw, edm_type)


class TestDoubles:
    """Test double formatting including the non-finite sentinels."""

    def test_format_sentinels(self):
        assert format_double(math.nan) == "NaN"
        assert format_double(math.inf) == "Infinity"
        assert format_double(-math.inf) == "-Infinity"

    def test_format_shortest_round_trip(self):
        assert format_double(0.1) == "0.1"
        assert parse_double(format_double(1 / 3)) == 1 / 3

    def test_parse_sentinels(self):
        assert math.isnan(parse_double("NaN"))
        assert parse_double("Infinity") == math.inf
        assert parse_double("-Infinity") == -math.inf

    def test_parse_invalid(self):
        with pytest.raises(ValueError, match="Invalid Edm.Double"):
            parse_double("one")


class TestDateTimes:
    """Test datetime formatting and parsing."""

    def test_format(self):
        value = datetime(2025, 12, 4, 10, 30, 0, 123456, tzinfo=timezone.utc)
        assert format_datetime(value) == "2025-12-04T10:30:00.123456Z"

    def test_parse_seven_fraction_digits(self):
        """Test that digits past microseconds are truncated."""
        parsed = parse_datetime("2025-12-04T10:30:00.1234567Z")
        assert parsed == datetime(2025, 12, 4, 10, 30, 0, 123456, tzinfo=timezone.utc)

    def test_parse_offset(self):
        parsed = parse_datetime("2025-12-04T12:30:00+02:00")
        assert parsed == datetime(2025, 12, 4, 10, 30, tzinfo=timezone.utc)

    def test_parse_without_offset_is_utc(self):
        assert parse_datetime("2025-12-04T10:30").tzinfo == timezone.utc


class TestConvert:
    """Test numeric promotion between wire and declared types."""

    def test_widening(self):
        assert convert(5, EdmType.INT32, EdmType.INT64) == 5
        assert convert(5, EdmType.INT64, EdmType.DOUBLE) == 5.0

    def test_null_passes(self):
        assert convert(None, EdmType.STRING, EdmType.GUID) is None

    def test_narrowing_rejected(self):
        with pytest.raises(ValueError, match="Cannot convert"):
            convert(5.0, EdmType.DOUBLE, EdmType.INT32)
