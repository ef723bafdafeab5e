"""
Verbose XML (AtomPub) payload format.

Entities are Atom ``<entry>`` documents whose content holds an
``<m:properties>`` element; each property is a ``<d:Name>`` element with an
optional ``m:type`` attribute (absent means Edm.String) and ``m:null="true"``
for nulls::

    <entry xmlns="http://www.w3.org/2005/Atom" xmlns:d="..." xmlns:m="..." m:etag="...">
      <content type="application/xml">
        <m:properties>
          <d:PartitionKey>pk</d:PartitionKey>
          <d:RowKey>rk</d:RowKey>
          <d:Count m:type="Edm.Int32">5</d:Count>
        </m:properties>
      </content>
    </entry>
"""

import io
import re
from datetime import datetime, timezone
from typing import List, Optional, Union
from xml.sax.saxutils import escape, quoteattr

from ..exceptions import DeserializationError, SerializationError
from ..types import EdmType, TypedValue, format_datetime, parse_datetime, to_wire_text
from ..xml_reader import DEFAULT_CHUNK_SIZE, create_xml_reader_from_stream, create_xml_reader_from_text
from .base import FormatCodec, PayloadFormat, RawEntity, RawProperty, WireEntity, edit_link


ATOM_NS = "http://www.w3.org/2005/Atom"
DATA_NS = "http://schemas.microsoft.com/ado/2007/08/dataservices"
METADATA_NS = "http://schemas.microsoft.com/ado/2007/08/dataservices/metadata"

_ENTRY_TAG = f"{{{ATOM_NS}}}entry"
_PROPERTIES_TAG = f"{{{METADATA_NS}}}properties"
_DATA_PREFIX = f"{{{DATA_NS}}}"
_TYPE_ATTR = f"{{{METADATA_NS}}}type"
_NULL_ATTR = f"{{{METADATA_NS}}}null"
_ETAG_ATTR = f"{{{METADATA_NS}}}etag"

# XML parsers normalize CR and CRLF to LF; a character reference survives
_TEXT_ENTITIES = {"\r": "&#13;"}

_INVALID_XML_CHARS = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f\ud800-\udfff\ufffe\uffff]")

_NO_TIMESTAMP = datetime(1, 1, 1, tzinfo=timezone.utc)


class AtomCodec(FormatCodec):
    """Codec for ``application/atom+xml`` entity payloads."""

    payload_format = PayloadFormat.ATOM
    honors_resolver = False

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.chunk_size = chunk_size

    def write(self, entity: WireEntity, table_name: Optional[str] = None) -> bytes:
        etag_attr = f" m:etag={quoteattr(entity.etag)}" if entity.etag else ""
        updated = format_datetime(entity.timestamp or _NO_TIMESTAMP)

        parts: List[str] = [
            '<?xml version="1.0" encoding="utf-8" standalone="yes"?>',
            f'<entry xmlns="{ATOM_NS}" xmlns:d="{DATA_NS}" xmlns:m="{METADATA_NS}"{etag_attr}>',
        ]
        if table_name:
            link = edit_link(table_name, entity.partition_key, entity.row_key)
            parts.append(f"<id>{escape(link)}</id>")
        parts.append("<title />")
        parts.append(f"<updated>{updated}</updated>")
        parts.append("<author><name /></author>")
        if table_name:
            parts.append(f"<link rel=\"edit\" title={quoteattr(table_name)} href={quoteattr(link)} />")
        parts.append('<content type="application/xml"><m:properties>')

        parts.append(self._property("PartitionKey", TypedValue(entity.partition_key, EdmType.STRING)))
        parts.append(self._property("RowKey", TypedValue(entity.row_key, EdmType.STRING)))
        if entity.timestamp is not None:
            parts.append(self._property("Timestamp", TypedValue(entity.timestamp, EdmType.DATETIME)))
        for name, typed in entity.properties:
            parts.append(self._property(name, typed))

        parts.append("</m:properties></content></entry>")
        return "".join(parts).encode("utf-8")

    def _property(self, name: str, typed: TypedValue) -> str:
        attrs = ""
        if typed.edm_type != EdmType.STRING or typed.value is None:
            attrs += f' m:type="{typed.edm_type.value}"'
        if typed.value is None:
            return f'<d:{name}{attrs} m:null="true" />'

        text = to_wire_text(typed.value, typed.edm_type)
        if _INVALID_XML_CHARS.search(text):
            raise SerializationError(
                f"Property '{name}' contains characters that cannot be written to XML",
                name,
            )
        if text != text.strip():
            attrs += ' xml:space="preserve"'
        return f"<d:{name}{attrs}>{escape(text, _TEXT_ENTITIES)}</d:{name}>"

    def read(self, payload: Union[bytes, str]) -> RawEntity:
        if isinstance(payload, str):
            reader = create_xml_reader_from_text(io.StringIO(payload), self.chunk_size)
        else:
            reader = create_xml_reader_from_stream(io.BytesIO(payload), self.chunk_size)

        etag: Optional[str] = None
        system = {}
        properties: List[RawProperty] = []
        depth = 0
        properties_depth: Optional[int] = None

        for event, element in reader.events():
            if event == "start":
                depth += 1
                if depth == 1:
                    if element.tag != _ENTRY_TAG:
                        raise DeserializationError(
                            f"Expected Atom entry element, found '{element.tag}'"
                        )
                    etag = element.get(_ETAG_ATTR)
                elif element.tag == _PROPERTIES_TAG and properties_depth is None:
                    properties_depth = depth
                continue

            if (
                properties_depth is not None
                and depth == properties_depth + 1
                and element.tag.startswith(_DATA_PREFIX)
            ):
                name = element.tag[len(_DATA_PREFIX):]
                prop = self._read_property(name, element.get(_TYPE_ATTR), element.get(_NULL_ATTR), element.text)
                if name in ("PartitionKey", "RowKey", "Timestamp"):
                    system[name] = prop
                else:
                    properties.append(prop)
                element.clear()
            elif element.tag == _PROPERTIES_TAG and depth == properties_depth:
                properties_depth = -1
            depth -= 1

        return RawEntity(
            partition_key=_key(system, "PartitionKey"),
            row_key=_key(system, "RowKey"),
            timestamp=_timestamp(system.get("Timestamp")),
            etag=etag,
            properties=properties,
        )

    @staticmethod
    def _read_property(name: str, type_name: Optional[str], null: Optional[str], text: Optional[str]) -> RawProperty:
        edm_type = EdmType.STRING
        if type_name:
            try:
                edm_type = EdmType.from_name(type_name)
            except ValueError as e:
                raise DeserializationError(str(e), name) from e
        if null == "true":
            return RawProperty(name, None, edm_type)
        return RawProperty(name, text or "", edm_type)


def _key(system: dict, name: str) -> str:
    prop = system.get(name)
    if prop is None or prop.raw is None:
        raise DeserializationError(f"Payload is missing required property '{name}'", name)
    return prop.raw


def _timestamp(prop: Optional[RawProperty]) -> Optional[datetime]:
    if prop is None or prop.raw is None:
        return None
    try:
        return parse_datetime(prop.raw)
    except ValueError as e:
        raise DeserializationError(str(e), "Timestamp") from e
