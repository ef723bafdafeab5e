"""
In-memory table service backend.

Plays the part of the remote table service for ``TableClient``. Entities are
held as ``DynamicEntity`` instances (what the service sees after reading a
request payload); every write stamps a new Timestamp and ETag, and
conditional writes compare ETags. Table names are case-insensitive but keep
the casing they were created with.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

from tablecodec.table.models import DynamicEntity, Table, generate_etag

logger = logging.getLogger(__name__)

EntityKey = Tuple[str, str]


class TableBackendError(Exception):
    """Base error of the in-memory service, with its service error code and HTTP status."""
    error_code = "InternalError"
    status_code = 500


class TableAlreadyExistsError(TableBackendError):
    """Raised when creating a table that already exists."""
    error_code = "TableAlreadyExists"
    status_code = 409


class TableNotFoundError(TableBackendError):
    """Raised when a table does not exist."""
    error_code = "TableNotFound"
    status_code = 404


class EntityAlreadyExistsError(TableBackendError):
    """Raised when inserting an entity whose keys are taken."""
    error_code = "EntityAlreadyExists"
    status_code = 409


class EntityNotFoundError(TableBackendError):
    """Raised when an entity does not exist."""
    error_code = "ResourceNotFound"
    status_code = 404


class ETagMismatchError(TableBackendError):
    """Raised when an If-Match ETag is stale."""
    error_code = "UpdateConditionNotSatisfied"
    status_code = 412


@dataclass
class _StoredTable:
    table: Table
    entities: Dict[EntityKey, DynamicEntity] = field(default_factory=dict)


class TableBackend:
    """
    Async in-memory table service.

    Null-valued properties are not stored: a property replaced with null is
    absent on the next read. Returned entities are copies, so callers never
    share state with the store.
    """

    def __init__(self):
        # lower-cased table name -> table and its entities, in creation order
        self._tables: Dict[str, _StoredTable] = {}
        self._lock = asyncio.Lock()

    async def reset(self) -> None:
        """Drop every table."""
        async with self._lock:
            self._tables.clear()

    async def create_table(self, table_name: str) -> Table:
        """
        Create a table.

        Raises:
            TableAlreadyExistsError: If a table of that name exists, in any casing
            ValueError: If the table name is invalid
        """
        table = Table(table_name=table_name)
        async with self._lock:
            if table_name.lower() in self._tables:
                raise TableAlreadyExistsError(f"Table '{table_name}' already exists")
            self._tables[table_name.lower()] = _StoredTable(table)
        logger.debug(f"Created table '{table_name}'")
        return table

    async def delete_table(self, table_name: str) -> None:
        """
        Delete a table with all of its entities.

        Raises:
            TableNotFoundError: If the table does not exist
        """
        async with self._lock:
            stored = self._table(table_name)
            del self._tables[table_name.lower()]
        logger.debug(f"Deleted table '{stored.table.table_name}' ({len(stored.entities)} entities)")

    async def list_tables(self) -> List[Table]:
        async with self._lock:
            return [stored.table for stored in self._tables.values()]

    async def insert_entity(self, table_name: str, entity: DynamicEntity) -> DynamicEntity:
        """
        Insert an entity.

        Returns:
            The stored entity, with its Timestamp and ETag

        Raises:
            TableNotFoundError: If the table does not exist
            EntityAlreadyExistsError: If the keys are taken
        """
        async with self._lock:
            entities = self._table(table_name).entities
            key = _key(entity)
            if key in entities:
                raise EntityAlreadyExistsError(
                    f"Entity ({entity.PartitionKey!r}, {entity.RowKey!r}) already exists"
                )
            entities[key] = _stamped(entity)
            return entities[key].model_copy(deep=True)

    async def get_entity(self, table_name: str, partition_key: str, row_key: str) -> DynamicEntity:
        """
        Raises:
            TableNotFoundError: If the table does not exist
            EntityNotFoundError: If no entity has these keys
        """
        async with self._lock:
            return self._entity(table_name, (partition_key, row_key)).model_copy(deep=True)

    async def update_entity(
        self,
        table_name: str,
        entity: DynamicEntity,
        if_match: Optional[str] = None,
    ) -> DynamicEntity:
        """
        Replace the entity with the same keys.

        Args:
            table_name: Table holding the entity
            entity: Replacement; its keys select the entity
            if_match: ETag the stored entity must have; None or "*" matches any

        Returns:
            The stored entity

        Raises:
            TableNotFoundError: If the table does not exist
            EntityNotFoundError: If no entity has these keys
            ETagMismatchError: If ``if_match`` is stale
        """
        async with self._lock:
            existing = self._entity(table_name, _key(entity))
            _check_etag(existing, if_match)
            replacement = _stamped(entity, after=existing.Timestamp)
            self._table(table_name).entities[_key(entity)] = replacement
            return replacement.model_copy(deep=True)

    async def delete_entity(
        self,
        table_name: str,
        partition_key: str,
        row_key: str,
        if_match: Optional[str] = None,
    ) -> None:
        """
        Raises:
            TableNotFoundError: If the table does not exist
            EntityNotFoundError: If no entity has these keys
            ETagMismatchError: If ``if_match`` is stale
        """
        async with self._lock:
            key = (partition_key, row_key)
            _check_etag(self._entity(table_name, key), if_match)
            del self._table(table_name).entities[key]

    def _table(self, table_name: str) -> _StoredTable:
        stored = self._tables.get(table_name.lower())
        if stored is None:
            raise TableNotFoundError(f"Table '{table_name}' not found")
        return stored

    def _entity(self, table_name: str, key: EntityKey) -> DynamicEntity:
        entity = self._table(table_name).entities.get(key)
        if entity is None:
            raise EntityNotFoundError(f"Entity ({key[0]!r}, {key[1]!r}) not found")
        return entity


def _key(entity: DynamicEntity) -> EntityKey:
    return entity.PartitionKey, entity.RowKey


def _stamped(entity: DynamicEntity, after: Optional[datetime] = None) -> DynamicEntity:
    """Copy of ``entity`` without null properties, with a fresh Timestamp and ETag."""
    stored = entity.model_copy(deep=True)
    stored.properties = {
        name: typed for name, typed in entity.properties.items() if typed.value is not None
    }
    now = datetime.now(timezone.utc)
    # ETags derive from Timestamp, so every write must move it forward
    if after is not None and now <= after:
        now = after + timedelta(microseconds=1)
    stored.Timestamp = now
    stored.etag = generate_etag(now)
    return stored


def _check_etag(existing: DynamicEntity, if_match: Optional[str]) -> None:
    if if_match and if_match != "*" and existing.etag != if_match:
        raise ETagMismatchError(f"ETag mismatch: expected '{if_match}', got '{existing.etag}'")
