"""
Table codec exceptions.

Error classes raised while describing entity types and while converting
entities to and from wire payloads.
"""

from typing import Optional


class TableCodecError(Exception):
    """Base exception for table codec errors.

    Attributes:
        message: Error message
        error_code: Short machine-readable error code
    """

    def __init__(self, message: str, error_code: str = "CodecError"):
        """Initialize table codec error.

        Args:
            message: Error message
            error_code: Error code
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code


class SchemaError(TableCodecError):
    """Entity type declares invalid or conflicting property annotations."""

    def __init__(self, message: str, entity_type: str = "", property_name: str = ""):
        """Initialize schema error.

        Args:
            message: Error message
            entity_type: Qualified name of the offending entity type
            property_name: Declared property that failed validation
        """
        super().__init__(message, "InvalidEntitySchema")
        self.entity_type = entity_type
        self.property_name = property_name


class SerializationError(TableCodecError):
    """A property value cannot be represented in its EDM type."""

    def __init__(self, message: str, property_name: str = ""):
        super().__init__(message, "InvalidPropertyValue")
        self.property_name = property_name


class DeserializationError(TableCodecError):
    """Payload is malformed or cannot be mapped onto the target type."""

    def __init__(
        self,
        message: str,
        property_name: Optional[str] = None,
        error_code: str = "InvalidPayload",
    ):
        """Initialize deserialization error.

        Args:
            message: Error message
            property_name: Wire property being read when the error occurred
            error_code: Error code
        """
        super().__init__(message, error_code)
        self.property_name = property_name


class ResolutionError(DeserializationError):
    """Property type of a metadata-free payload could not be resolved."""

    def __init__(self, message: str, property_name: Optional[str] = None):
        super().__init__(message, property_name, "PropertyTypeUnresolved")


class TableServiceError(TableCodecError):
    """Table operation rejected by the table service.

    Attributes:
        status_code: HTTP status code of the failed operation
    """

    def __init__(self, message: str, error_code: str, status_code: int):
        """Initialize table service error.

        Args:
            message: Error message
            error_code: Service error code (e.g. ``EntityNotFound``)
            status_code: HTTP status code
        """
        super().__init__(message, error_code)
        self.status_code = status_code
