"""
Table client running entity operations through the codec.

Every operation crosses the wire boundary the way a real client would:
the entity is serialized into a request payload, the service side reads
that payload as a ``DynamicEntity``, and responses are serialized in the
requested payload format and read back into the caller's entity type. The
service is an in-memory ``TableBackend``; no network I/O takes place.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Optional, Type

from tablecodec.core.logging_config import clear_client_request_id, log_with_context, set_client_request_id
from tablecodec.table.backend import TableAlreadyExistsError, TableBackend, TableBackendError, TableNotFoundError
from tablecodec.table.codec import deserialize, serialize
from tablecodec.table.exceptions import TableServiceError
from tablecodec.table.formats import PayloadFormat
from tablecodec.table.models import DynamicEntity, TableEntity
from tablecodec.table.schema import PropertyResolver

logger = logging.getLogger(__name__)


@dataclass
class TableRequestOptions:
    """Per-request options."""
    payload_format: PayloadFormat = PayloadFormat.JSON_MINIMAL_METADATA
    property_resolver: Optional[PropertyResolver] = None
    xml_chunk_size: Optional[int] = None

    def __post_init__(self):
        self.payload_format = PayloadFormat(self.payload_format)


@dataclass
class TableResult:
    """Outcome of a table operation."""
    http_status_code: int
    etag: Optional[str] = None
    result: Optional[TableEntity] = None


class TableClient:
    """
    Client for the entities of one table.

    Args:
        table_name: Table the client operates on
        backend: Service backend (a private one is created when omitted)
        options: Default request options
    """

    def __init__(
        self,
        table_name: str,
        backend: Optional[TableBackend] = None,
        options: Optional[TableRequestOptions] = None,
    ):
        self.table_name = table_name
        self.backend = backend if backend is not None else TableBackend()
        self.default_options = options or TableRequestOptions()

    async def create_if_not_exists(self) -> bool:
        """Create the table; returns False if it already existed."""
        try:
            await self.backend.create_table(self.table_name)
            return True
        except TableAlreadyExistsError:
            return False

    async def delete_if_exists(self) -> bool:
        """Delete the table; returns False if it did not exist."""
        try:
            await self.backend.delete_table(self.table_name)
            return True
        except TableNotFoundError:
            return False

    async def insert(self, entity: TableEntity, options: Optional[TableRequestOptions] = None) -> TableResult:
        """
        Insert an entity.

        The entity's Timestamp and ETag are updated from the service response.

        Raises:
            TableServiceError: If the table is missing or the entity exists
        """
        options = options or self.default_options
        async with self._operation("insert", entity.PartitionKey, entity.RowKey, options):
            request = self._receive(entity, options)
            stored = await self._call(self.backend.insert_entity(self.table_name, request))
            entity.Timestamp = stored.Timestamp
            entity.etag = stored.etag
            return TableResult(http_status_code=201, etag=stored.etag, result=entity)

    async def retrieve(
        self,
        partition_key: str,
        row_key: str,
        entity_type: Type[TableEntity] = DynamicEntity,
        options: Optional[TableRequestOptions] = None,
    ) -> TableResult:
        """
        Retrieve an entity as ``entity_type``.

        A missing entity yields a 404 result with no entity rather than an error.

        Raises:
            TableServiceError: If the table is missing
        """
        options = options or self.default_options
        async with self._operation("retrieve", partition_key, row_key, options):
            try:
                stored = await self._call(self.backend.get_entity(self.table_name, partition_key, row_key))
            except TableServiceError as e:
                if e.status_code == 404 and e.error_code == "ResourceNotFound":
                    return TableResult(http_status_code=404)
                raise

            response = serialize(stored, options.payload_format, table_name=self.table_name)
            result = deserialize(
                response,
                options.payload_format,
                entity_type,
                options.property_resolver,
                xml_chunk_size=options.xml_chunk_size,
            )
            # ETag header; no-metadata payloads do not carry it
            result.etag = stored.etag
            return TableResult(http_status_code=200, etag=stored.etag, result=result)

    async def replace(self, entity: TableEntity, options: Optional[TableRequestOptions] = None) -> TableResult:
        """
        Replace an entity, conditional on its ETag ("*" when it has none).

        Raises:
            TableServiceError: If the entity is missing or its ETag is stale
        """
        options = options or self.default_options
        async with self._operation("replace", entity.PartitionKey, entity.RowKey, options):
            request = self._receive(entity, options)
            stored = await self._call(
                self.backend.update_entity(self.table_name, request, if_match=entity.etag or "*")
            )
            entity.Timestamp = stored.Timestamp
            entity.etag = stored.etag
            return TableResult(http_status_code=204, etag=stored.etag, result=entity)

    async def delete(self, entity: TableEntity, options: Optional[TableRequestOptions] = None) -> TableResult:
        """
        Delete an entity, conditional on its ETag ("*" when it has none).

        Raises:
            TableServiceError: If the entity is missing or its ETag is stale
        """
        options = options or self.default_options
        async with self._operation("delete", entity.PartitionKey, entity.RowKey, options):
            await self._call(
                self.backend.delete_entity(
                    self.table_name, entity.PartitionKey, entity.RowKey, if_match=entity.etag or "*"
                )
            )
            return TableResult(http_status_code=204)

    def _receive(self, entity: TableEntity, options: TableRequestOptions) -> DynamicEntity:
        """Write the request payload and read it back as the service does."""
        request_format = options.payload_format.request_format
        body = serialize(entity, request_format, table_name=self.table_name)
        return deserialize(body, request_format, DynamicEntity, xml_chunk_size=options.xml_chunk_size)

    @staticmethod
    async def _call(operation):
        try:
            return await operation
        except TableBackendError as e:
            raise TableServiceError(str(e), e.error_code, e.status_code) from e

    def _operation(self, name: str, partition_key: str, row_key: str, options: TableRequestOptions):
        return _OperationScope(self.table_name, name, partition_key, row_key, options)


class _OperationScope:
    """Tags log records of one operation with a fresh client request id."""

    def __init__(self, table_name: str, name: str, partition_key: str, row_key: str, options: TableRequestOptions):
        self.table_name = table_name
        self.name = name
        self.partition_key = partition_key
        self.row_key = row_key
        self.options = options

    async def __aenter__(self) -> "_OperationScope":
        set_client_request_id(str(uuid.uuid4()))
        log_with_context(
            logger,
            logging.DEBUG,
            f"Starting {self.name} on table '{self.table_name}'",
            partition_key=self.partition_key,
            row_key=self.row_key,
            payload_format=self.options.payload_format.value,
        )
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc is not None:
            logger.info(f"{self.name} on table '{self.table_name}' failed: {exc}")
        clear_client_request_id()
