"""
Table entity codec.

This module converts typed and dynamic table entities to and from Atom and
OData JSON payloads, and provides an in-memory table client that runs
entity operations through the codec.
"""

from tablecodec.table.types import EdmType, Int64, TypedValue
from tablecodec.table.exceptions import (
    DeserializationError,
    ResolutionError,
    SchemaError,
    SerializationError,
    TableCodecError,
    TableServiceError,
)
from tablecodec.table.schema import (
    Ignore,
    IgnoreOnRead,
    IgnoreOnWrite,
    PropertyResolver,
    StoreAs,
    resolver_for,
)
from tablecodec.table.models import DynamicEntity, TableEntity
from tablecodec.table.formats import PayloadFormat
from tablecodec.table.codec import deserialize, serialize
from tablecodec.table.backend import TableBackend
from tablecodec.table.client import TableClient, TableRequestOptions, TableResult

__all__ = [
    "DeserializationError",
    "DynamicEntity",
    "EdmType",
    "Ignore",
    "IgnoreOnRead",
    "IgnoreOnWrite",
    "Int64",
    "PayloadFormat",
    "PropertyResolver",
    "ResolutionError",
    "SchemaError",
    "SerializationError",
    "StoreAs",
    "TableBackend",
    "TableClient",
    "TableCodecError",
    "TableEntity",
    "TableRequestOptions",
    "TableResult",
    "TableServiceError",
    "TypedValue",
    "deserialize",
    "resolver_for",
    "serialize",
]
