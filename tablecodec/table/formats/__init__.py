"""
Payload format codecs.

Maps each ``PayloadFormat`` to the codec that reads and writes it.
"""

from typing import Dict

from tablecodec.table.formats.base import (
    FormatCodec,
    PayloadFormat,
    RawEntity,
    RawProperty,
    WireEntity,
)
from tablecodec.table.formats.atom import AtomCodec
from tablecodec.table.formats.odata_json import ODataJsonCodec

_CODECS: Dict[PayloadFormat, FormatCodec] = {
    PayloadFormat.ATOM: AtomCodec(),
    PayloadFormat.JSON_FULL_METADATA: ODataJsonCodec(PayloadFormat.JSON_FULL_METADATA),
    PayloadFormat.JSON_MINIMAL_METADATA: ODataJsonCodec(PayloadFormat.JSON_MINIMAL_METADATA),
    PayloadFormat.JSON_NO_METADATA: ODataJsonCodec(PayloadFormat.JSON_NO_METADATA),
}


def get_format_codec(payload_format: PayloadFormat) -> FormatCodec:
    """
    Get the codec for a payload format.

    Args:
        payload_format: PayloadFormat member or its string value

    Raises:
        ValueError: If the format is unknown
    """
    return _CODECS[PayloadFormat(payload_format)]


__all__ = [
    "AtomCodec",
    "FormatCodec",
    "ODataJsonCodec",
    "PayloadFormat",
    "RawEntity",
    "RawProperty",
    "WireEntity",
    "get_format_codec",
]
