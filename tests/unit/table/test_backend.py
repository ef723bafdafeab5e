"""
Unit tests for the in-memory table backend.
"""

from datetime import datetime, timezone

import pytest

from tablecodec.table.backend import (
    EntityAlreadyExistsError,
    EntityNotFoundError,
    ETagMismatchError,
    TableAlreadyExistsError,
    TableBackend,
    TableNotFoundError,
)
from tablecodec.table.models import DynamicEntity
from tablecodec.table.types import EdmType


def make_entity(pk: str = "pk1", rk: str = "rk1", **properties) -> DynamicEntity:
    entity = DynamicEntity(PartitionKey=pk, RowKey=rk)
    for name, value in properties.items():
        entity.set(name, value)
    return entity


@pytest.fixture
async def backend():
    """Create a fresh backend for each test."""
    backend_instance = TableBackend()
    await backend_instance.reset()
    return backend_instance


@pytest.fixture
async def backend_with_table(backend):
    """Create backend with one table."""
    await backend.create_table("testtable")
    return backend


class TestTables:
    """Tests for table operations."""

    @pytest.mark.asyncio
    async def test_create_table(self, backend):
        table = await backend.create_table("MyTable")
        assert table.table_name == "MyTable"

    @pytest.mark.asyncio
    async def test_create_table_case_insensitive(self, backend):
        """Test table name case-insensitivity."""
        await backend.create_table("MyTable")

        with pytest.raises(TableAlreadyExistsError):
            await backend.create_table("mytable")

    @pytest.mark.asyncio
    async def test_create_invalid_table_name(self, backend):
        with pytest.raises(ValueError):
            await backend.create_table("x")

    @pytest.mark.asyncio
    async def test_delete_table(self, backend_with_table):
        await backend_with_table.delete_table("TESTTABLE")
        assert await backend_with_table.list_tables() == []

    @pytest.mark.asyncio
    async def test_delete_nonexistent_table(self, backend):
        with pytest.raises(TableNotFoundError) as exc_info:
            await backend.delete_table("nonexistent")
        assert "not found" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_list_tables(self, backend):
        await backend.create_table("table1")
        await backend.create_table("table2")

        names = [t.table_name for t in await backend.list_tables()]
        assert names == ["table1", "table2"]


class TestInsertEntity:
    """Tests for insert_entity operation."""

    @pytest.mark.asyncio
    async def test_insert_entity(self, backend_with_table):
        """Test that insert stamps Timestamp and ETag."""
        inserted = await backend_with_table.insert_entity("testtable", make_entity(Name="Test"))

        assert inserted["Name"] == "Test"
        assert isinstance(inserted.Timestamp, datetime)
        assert inserted.Timestamp.tzinfo == timezone.utc
        assert inserted.etag.startswith('W/"datetime\'')

    @pytest.mark.asyncio
    async def test_insert_drops_nulls(self, backend_with_table):
        """Test that null properties are not stored."""
        entity = make_entity(Name="Test")
        entity.set("Missing", None, EdmType.INT64)

        inserted = await backend_with_table.insert_entity("testtable", entity)

        assert "Missing" not in inserted
        assert "Missing" in entity

    @pytest.mark.asyncio
    async def test_insert_duplicate_entity(self, backend_with_table):
        await backend_with_table.insert_entity("testtable", make_entity())

        with pytest.raises(EntityAlreadyExistsError) as exc_info:
            await backend_with_table.insert_entity("testtable", make_entity())
        assert "already exists" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_insert_entity_table_not_found(self, backend):
        with pytest.raises(TableNotFoundError):
            await backend.insert_entity("nonexistent", make_entity())

    @pytest.mark.asyncio
    async def test_empty_keys(self, backend_with_table):
        await backend_with_table.insert_entity("testtable", make_entity("", ""))
        retrieved = await backend_with_table.get_entity("testtable", "", "")
        assert retrieved.PartitionKey == ""


class TestGetEntity:
    """Tests for get_entity operation."""

    @pytest.mark.asyncio
    async def test_get_entity_returns_copy(self, backend_with_table):
        """Test that callers cannot mutate stored entities."""
        await backend_with_table.insert_entity("testtable", make_entity(Name="Test"))

        retrieved = await backend_with_table.get_entity("testtable", "pk1", "rk1")
        retrieved.set("Name", "Changed")

        again = await backend_with_table.get_entity("testtable", "pk1", "rk1")
        assert again["Name"] == "Test"

    @pytest.mark.asyncio
    async def test_get_nonexistent_entity(self, backend_with_table):
        with pytest.raises(EntityNotFoundError) as exc_info:
            await backend_with_table.get_entity("testtable", "pk1", "rk1")
        assert "not found" in str(exc_info.value)


class TestUpdateEntity:
    """Tests for update_entity operation."""

    @pytest.mark.asyncio
    async def test_update_replaces_all_properties(self, backend_with_table):
        await backend_with_table.insert_entity("testtable", make_entity(Prop1="val1", Prop2="val2"))

        result = await backend_with_table.update_entity("testtable", make_entity(Prop3="val3"))

        assert list(result.get_custom_properties()) == ["Prop3"]

    @pytest.mark.asyncio
    async def test_update_with_etag(self, backend_with_table):
        inserted = await backend_with_table.insert_entity("testtable", make_entity())

        result = await backend_with_table.update_entity(
            "testtable", make_entity(Name="Updated"), if_match=inserted.etag
        )

        assert result["Name"] == "Updated"

    @pytest.mark.asyncio
    async def test_update_etag_mismatch(self, backend_with_table):
        await backend_with_table.insert_entity("testtable", make_entity())

        with pytest.raises(ETagMismatchError):
            await backend_with_table.update_entity("testtable", make_entity(), if_match="wrong-etag")

    @pytest.mark.asyncio
    async def test_update_wildcard_etag(self, backend_with_table):
        await backend_with_table.insert_entity("testtable", make_entity())
        result = await backend_with_table.update_entity("testtable", make_entity(Name="Updated"), if_match="*")
        assert result["Name"] == "Updated"

    @pytest.mark.asyncio
    async def test_update_nonexistent_entity(self, backend_with_table):
        with pytest.raises(EntityNotFoundError):
            await backend_with_table.update_entity("testtable", make_entity())


class TestDeleteEntity:
    """Tests for delete_entity operation."""

    @pytest.mark.asyncio
    async def test_delete_entity_with_etag(self, backend_with_table):
        inserted = await backend_with_table.insert_entity("testtable", make_entity())

        await backend_with_table.delete_entity("testtable", "pk1", "rk1", if_match=inserted.etag)

        with pytest.raises(EntityNotFoundError):
            await backend_with_table.get_entity("testtable", "pk1", "rk1")

    @pytest.mark.asyncio
    async def test_delete_entity_etag_mismatch(self, backend_with_table):
        await backend_with_table.insert_entity("testtable", make_entity())

        with pytest.raises(ETagMismatchError):
            await backend_with_table.delete_entity("testtable", "pk1", "rk1", if_match="wrong-etag")
