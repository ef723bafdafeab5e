"""
tablecodec: table entity payload codec.

Converts table storage entities to and from their wire payloads (verbose
Atom XML and the three OData JSON metadata levels).
"""

__version__ = "0.1.0"

from .table.codec import deserialize, serialize

__all__ = ["deserialize", "serialize", "__version__"]
