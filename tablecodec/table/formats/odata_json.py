"""
OData JSON payload formats.

One codec class serves the three JSON metadata levels:

- full metadata: link metadata plus a ``Name@odata.type`` annotation for
  every property
- minimal metadata: annotations only where JSON cannot carry the type
  (Binary, DateTime, Guid, Int64, non-finite Double)
- no metadata: plain values; readers need a resolver or declared types

Output is compact, UTF-8, with a fixed key order, so the same entity always
encodes to the same bytes.
"""

import json
import math
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from ..exceptions import DeserializationError
from ..types import EdmType, TypedValue, format_datetime, parse_datetime, to_json_value
from .base import FormatCodec, PayloadFormat, RawEntity, RawProperty, WireEntity, edit_link

TYPE_ANNOTATION_SUFFIX = "@odata.type"
METADATA_PREFIX = "odata."

_SYSTEM_KEYS = frozenset(("PartitionKey", "RowKey", "Timestamp"))


def _reject_constant(name: str) -> Any:
    raise ValueError(f"Invalid JSON constant {name}")


class ODataJsonCodec(FormatCodec):
    """Codec for ``application/json;odata=...`` entity payloads."""

    def __init__(self, payload_format: PayloadFormat):
        if not payload_format.is_json:
            raise ValueError(f"{payload_format.value} is not a JSON payload format")
        self.payload_format = payload_format

    @property
    def full_metadata(self) -> bool:
        return self.payload_format == PayloadFormat.JSON_FULL_METADATA

    @property
    def no_metadata(self) -> bool:
        return self.payload_format == PayloadFormat.JSON_NO_METADATA

    def write(self, entity: WireEntity, table_name: Optional[str] = None) -> bytes:
        document: Dict[str, Any] = {}

        if not self.no_metadata:
            if table_name:
                document["odata.metadata"] = f"$metadata#{table_name}/@Element"
            if self.full_metadata and table_name:
                link = edit_link(table_name, entity.partition_key, entity.row_key)
                document["odata.type"] = table_name
                document["odata.id"] = link
            if entity.etag:
                document["odata.etag"] = entity.etag
            if self.full_metadata and table_name:
                document["odata.editLink"] = link

        document["PartitionKey"] = entity.partition_key
        document["RowKey"] = entity.row_key
        if entity.timestamp is not None:
            if self.full_metadata:
                document["Timestamp" + TYPE_ANNOTATION_SUFFIX] = EdmType.DATETIME.value
            document["Timestamp"] = format_datetime(entity.timestamp)

        for name, typed in entity.properties:
            if self._annotate(typed):
                document[name + TYPE_ANNOTATION_SUFFIX] = typed.edm_type.value
            document[name] = None if typed.value is None else to_json_value(typed.value, typed.edm_type)

        return json.dumps(
            document,
            ensure_ascii=False,
            separators=(",", ":"),
            allow_nan=False,
        ).encode("utf-8")

    def _annotate(self, typed: TypedValue) -> bool:
        if self.full_metadata:
            return True
        if self.no_metadata or typed.value is None:
            return False
        if typed.edm_type == EdmType.DOUBLE:
            return not math.isfinite(typed.value)
        return not typed.edm_type.is_json_native()

    def read(self, payload: Union[bytes, str]) -> RawEntity:
        try:
            document = json.loads(payload, parse_constant=_reject_constant)
        except ValueError as e:
            raise DeserializationError(f"Malformed JSON payload: {e}") from e

        if not isinstance(document, dict):
            raise DeserializationError(
                f"Expected a JSON object, found {type(document).__name__}"
            )

        annotations: Dict[str, EdmType] = {}
        for key, value in document.items():
            if key.endswith(TYPE_ANNOTATION_SUFFIX):
                name = key[:-len(TYPE_ANNOTATION_SUFFIX)]
                if not isinstance(value, str):
                    raise DeserializationError(f"Type annotation of '{name}' must be a string", name)
                try:
                    annotations[name] = EdmType.from_name(value)
                except ValueError as e:
                    raise DeserializationError(str(e), name) from e

        properties: List[RawProperty] = []
        for key, value in document.items():
            if key in _SYSTEM_KEYS or key.startswith(METADATA_PREFIX) or "@" in key:
                continue
            properties.append(RawProperty(key, value, annotations.get(key)))

        etag = document.get("odata.etag")
        if etag is not None and not isinstance(etag, str):
            raise DeserializationError("odata.etag must be a string", "odata.etag")

        return RawEntity(
            partition_key=_key(document, "PartitionKey"),
            row_key=_key(document, "RowKey"),
            timestamp=_timestamp(document.get("Timestamp")),
            etag=etag,
            properties=properties,
        )


def _key(document: Dict[str, Any], name: str) -> str:
    value = document.get(name)
    if not isinstance(value, str):
        raise DeserializationError(f"Payload is missing required string property '{name}'", name)
    return value


def _timestamp(raw: Any) -> Optional[datetime]:
    if raw is None:
        return None
    if not isinstance(raw, str):
        raise DeserializationError("Timestamp must be a string", "Timestamp")
    try:
        return parse_datetime(raw)
    except ValueError as e:
        raise DeserializationError(str(e), "Timestamp") from e
