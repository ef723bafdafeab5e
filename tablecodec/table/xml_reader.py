"""
Streaming XML readers for verbose (Atom) payloads.

Every reader owns a fresh ``XMLPullParser``; there is no parser factory or
configuration object shared between readers, so nothing accumulates across
constructions and a long-running process can build any number of readers.
Readers can be backed by a binary stream or by a text stream.
"""

import xml.etree.ElementTree as ET
from typing import BinaryIO, Iterator, Optional, TextIO, Tuple, Union

from .exceptions import DeserializationError

DEFAULT_CHUNK_SIZE = 8192

XmlEvent = Tuple[str, ET.Element]


class XmlStreamReader:
    """
    Incremental reader over a single XML document.

    The source is consumed lazily in ``chunk_size`` pieces while events are
    iterated; nothing is read at construction.
    """

    EVENTS = ("start", "end")

    def __init__(self, source: Union[BinaryIO, TextIO], chunk_size: int = DEFAULT_CHUNK_SIZE):
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        self._source = source
        self._chunk_size = chunk_size
        self._parser = ET.XMLPullParser(events=self.EVENTS)
        self._consumed = False

    def events(self) -> Iterator[XmlEvent]:
        """
        Iterate over (event, element) pairs of the document.

        Raises:
            DeserializationError: If the document is not well-formed
        """
        if self._consumed:
            raise RuntimeError("XML reader has already been consumed")
        self._consumed = True

        try:
            while True:
                chunk = self._source.read(self._chunk_size)
                if not chunk:
                    break
                self._parser.feed(chunk)
                yield from self._parser.read_events()
            self._parser.close()
            yield from self._parser.read_events()
        except ET.ParseError as e:
            raise DeserializationError(f"Malformed XML payload: {e}") from e

    def read_document(self) -> ET.Element:
        """
        Consume the whole document and return its root element.

        Raises:
            DeserializationError: If the document is not well-formed
        """
        root: Optional[ET.Element] = None
        depth = 0
        for event, element in self.events():
            if event == "start":
                depth += 1
            else:
                depth -= 1
                if depth == 0:
                    root = element
        if root is None:
            raise DeserializationError("XML payload has no root element")
        return root


def create_xml_reader_from_stream(stream: BinaryIO, chunk_size: int = DEFAULT_CHUNK_SIZE) -> XmlStreamReader:
    """
    Create a reader over a binary stream.

    Args:
        stream: Binary file-like object positioned at the document start
        chunk_size: Bytes read per parser feed

    Returns:
        New XmlStreamReader with its own parser
    """
    return XmlStreamReader(stream, chunk_size)


def create_xml_reader_from_text(reader: TextIO, chunk_size: int = DEFAULT_CHUNK_SIZE) -> XmlStreamReader:
    """
    Create a reader over a text stream.

    Args:
        reader: Text file-like object positioned at the document start
        chunk_size: Characters read per parser feed

    Returns:
        New XmlStreamReader with its own parser
    """
    return XmlStreamReader(reader, chunk_size)
