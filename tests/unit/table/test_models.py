"""
Unit tests for table entity models.
"""

import uuid
from datetime import datetime, timezone
from typing import Annotated, Optional

import pytest
from pydantic import ValidationError

from tablecodec.table.models import DynamicEntity, Table, TableEntity, generate_etag, table_name_error
from tablecodec.table.schema import IgnoreOnWrite, StoreAs
from tablecodec.table.types import EdmType, Int64, TypedValue


class Customer(TableEntity):
    name: Optional[str] = None
    visits: Optional[int] = None
    lifetime_value: Optional[Int64] = None
    email: Annotated[Optional[str], StoreAs("Email")] = None
    note: Annotated[Optional[str], IgnoreOnWrite] = None


class TestTableName:
    """Tests for table name validation."""

    def test_valid_table_name(self):
        assert table_name_error("Customers2") is None

    @pytest.mark.parametrize("name", ["", "ab", "1table", "my-table", "a" * 64, "Tables"])
    def test_invalid_table_names(self, name):
        assert table_name_error(name)

    def test_table_model_validates(self):
        with pytest.raises(ValidationError):
            Table(table_name="no_underscores")


class TestTableEntity:
    """Tests for typed entities."""

    def test_defaults(self):
        """Test that keys default to empty strings."""
        entity = Customer()
        assert entity.PartitionKey == ""
        assert entity.RowKey == ""
        assert entity.Timestamp is None
        assert entity.etag is None

    def test_custom_properties_use_wire_names(self):
        entity = Customer(PartitionKey="pk", RowKey="rk", name="Ada", email="ada@example.com", note="skip")
        props = entity.get_custom_properties()
        assert list(props) == ["name", "visits", "lifetime_value", "Email"]
        assert props["Email"] == TypedValue("ada@example.com", EdmType.STRING)
        assert props["lifetime_value"] == TypedValue(None, EdmType.INT64)

    def test_assignment_is_validated(self):
        entity = Customer()
        with pytest.raises(ValidationError):
            entity.visits = "many"


class TestDynamicEntity:
    """Tests for dynamic property bags."""

    def test_set_infers_type(self):
        entity = DynamicEntity(PartitionKey="pk", RowKey="rk")
        entity.set("count", 5)
        entity.set("big", 2 ** 40)
        entity["name"] = "x"

        assert entity.properties["count"] == TypedValue(5, EdmType.INT32)
        assert entity.properties["big"] == TypedValue(2 ** 40, EdmType.INT64)
        assert entity["name"] == "x"
        assert "name" in entity
        assert "missing" not in entity

    def test_set_explicit_type(self):
        entity = DynamicEntity()
        entity.set("count", 5, EdmType.INT64)
        entity.set("ratio", 2, EdmType.DOUBLE)
        assert entity.properties["count"].edm_type == EdmType.INT64
        assert entity.properties["ratio"] == TypedValue(2.0, EdmType.DOUBLE)

    def test_set_null(self):
        entity = DynamicEntity()
        entity.set("when", None, EdmType.DATETIME)
        assert entity.properties["when"] == TypedValue(None, EdmType.DATETIME)

    def test_set_rejects_mismatch(self):
        entity = DynamicEntity()
        with pytest.raises(ValueError):
            entity.set("id", "not-a-guid", EdmType.GUID)
        with pytest.raises(ValueError):
            entity.set("small", 2 ** 40, EdmType.INT32)

    def test_properties_keep_insertion_order(self):
        entity = DynamicEntity()
        for name in ("z", "a", "m"):
            entity.set(name, uuid.uuid4())
        assert list(entity.get_custom_properties()) == ["z", "a", "m"]


class TestETag:
    """Tests for ETag generation."""

    def test_etag_format(self):
        ts = datetime(2025, 12, 4, 10, 30, 0, 123456, tzinfo=timezone.utc)
        assert generate_etag(ts) == "W/\"datetime'2025-12-04T10%3A30%3A00.123456Z'\""

    def test_etag_default_timestamp(self):
        assert generate_etag().startswith('W/"datetime\'')
