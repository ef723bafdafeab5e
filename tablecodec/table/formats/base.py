"""
Payload format abstraction.

Each payload format has one ``FormatCodec`` that writes a ``WireEntity``
(typed, already validated properties) and reads a ``RawEntity`` (wire
values plus whatever type information the payload carries). Mapping raw
values onto entity types happens in ``tablecodec.table.codec``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, List, Optional, Tuple, Union

from ..types import EdmType, TypedValue


class PayloadFormat(str, Enum):
    """Wire encodings of a table entity."""
    ATOM = "atom"
    JSON_FULL_METADATA = "fullmetadata"
    JSON_MINIMAL_METADATA = "minimalmetadata"
    JSON_NO_METADATA = "nometadata"

    @property
    def is_json(self) -> bool:
        return self != PayloadFormat.ATOM

    @property
    def content_type(self) -> str:
        """Content-Type / Accept header value of the format."""
        if self == PayloadFormat.ATOM:
            return "application/atom+xml"
        return f"application/json;odata={self.value}"

    @property
    def request_format(self) -> "PayloadFormat":
        """
        Format used for request bodies.

        The JSON metadata level only shapes responses; request bodies are
        always written with the type annotations the service needs.
        """
        if self == PayloadFormat.ATOM:
            return PayloadFormat.ATOM
        return PayloadFormat.JSON_MINIMAL_METADATA


@dataclass
class WireEntity:
    """Entity ready to be written: keys plus ordered typed properties."""
    partition_key: str
    row_key: str
    timestamp: Optional[datetime] = None
    etag: Optional[str] = None
    properties: List[Tuple[str, TypedValue]] = field(default_factory=list)


@dataclass(frozen=True)
class RawProperty:
    """
    Property as found on the wire.

    ``raw`` is element text for XML and the JSON value for JSON; ``None``
    is an explicit null. ``edm_type`` is the inline type hint, if any.
    """
    name: str
    raw: Any
    edm_type: Optional[EdmType] = None


@dataclass
class RawEntity:
    """Entity as read from a payload, before type resolution."""
    partition_key: str
    row_key: str
    timestamp: Optional[datetime] = None
    etag: Optional[str] = None
    properties: List[RawProperty] = field(default_factory=list)


def edit_link(table_name: str, partition_key: str, row_key: str) -> str:
    """Relative edit link of an entity, e.g. ``people(PartitionKey='a',RowKey='b')``."""
    pk = partition_key.replace("'", "''")
    rk = row_key.replace("'", "''")
    return f"{table_name}(PartitionKey='{pk}',RowKey='{rk}')"


class FormatCodec(ABC):
    """Encoder/decoder for one payload format."""

    payload_format: PayloadFormat

    # Whether caller-supplied property resolvers apply to this format
    honors_resolver: bool = True

    @abstractmethod
    def write(self, entity: WireEntity, table_name: Optional[str] = None) -> bytes:
        """
        Encode an entity.

        Args:
            entity: Validated wire entity
            table_name: Table name for link metadata, if known

        Returns:
            UTF-8 encoded payload
        """

    @abstractmethod
    def read(self, payload: Union[bytes, str]) -> RawEntity:
        """
        Decode a payload.

        Raises:
            DeserializationError: If the payload is malformed
        """
