"""
Pydantic models for table entities.

Typed entities subclass ``TableEntity`` and declare their properties as
fields; untyped property bags use ``DynamicEntity``.
"""

import re
from datetime import datetime, timezone
from typing import Annotated, Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .schema import Ignore, register_entity_type, schema_for
from .types import EdmType, TypedValue, format_datetime, validate_value

_TABLE_NAME = re.compile(r"[A-Za-z][A-Za-z0-9]{2,62}")


def table_name_error(name: str) -> Optional[str]:
    """
    Check a table name against the service's naming rules.

    Names are 3 to 63 alphanumeric characters starting with a letter, and
    "tables" is reserved.

    Returns:
        Why the name is invalid, or None if it is valid
    """
    if not _TABLE_NAME.fullmatch(name or ""):
        return (
            f"Invalid table name '{name}': use 3-63 letters or digits, "
            f"starting with a letter"
        )
    if name.lower() == "tables":
        return "Table name 'tables' is reserved"
    return None


class Table(BaseModel):
    """A table as the service records it."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    table_name: str

    @field_validator("table_name")
    @classmethod
    def validate_table_name(cls, v: str) -> str:
        error = table_name_error(v)
        if error:
            raise ValueError(error)
        return v


class TableEntity(BaseModel):
    """
    Table entity model.

    Entities carry PartitionKey and RowKey (system properties, may be empty
    strings). Timestamp and ETag are assigned by the service and populated
    on read. Subclasses declare custom properties as fields::

        class Customer(TableEntity):
            name: Optional[str] = None
            visits: Optional[int] = None
            lifetime_value: Optional[Int64] = None
    """
    model_config = ConfigDict(validate_assignment=True, arbitrary_types_allowed=True)

    # System properties
    PartitionKey: str = Field(default="", description="Partition key for the entity")
    RowKey: str = Field(default="", description="Row key for the entity")
    Timestamp: Optional[datetime] = Field(default=None, description="Last modification timestamp")
    etag: Optional[str] = Field(default=None, description="ETag for optimistic concurrency")

    @classmethod
    def __pydantic_init_subclass__(cls, **kwargs: Any) -> None:
        super().__pydantic_init_subclass__(**kwargs)
        register_entity_type(cls)

    def get_custom_properties(self) -> Dict[str, TypedValue]:
        """Get the writable custom properties keyed by wire name."""
        return {
            d.wire_name: TypedValue(getattr(self, d.attribute), d.edm_type)
            for d in schema_for(type(self)).writable
        }


class DynamicEntity(TableEntity):
    """
    Entity with an open set of typed properties.

    Used when no entity type is known, e.g. on the service side or when
    converting payloads. Properties keep insertion order.
    """
    properties: Annotated[Dict[str, Any], Ignore()] = Field(
        default_factory=dict,
        description="Property name to TypedValue",
    )

    def set(self, name: str, value: Any, edm_type: Optional[EdmType] = None) -> None:
        """
        Set a property, inferring its type from the value when not given.

        Raises:
            ValueError: If the value does not fit the type
        """
        typed = TypedValue.of(value, edm_type)
        if value is not None:
            typed = TypedValue(validate_value(value, typed.edm_type), typed.edm_type)
        self.properties[name] = typed

    def get_custom_properties(self) -> Dict[str, TypedValue]:
        return dict(self.properties)

    def __getitem__(self, name: str) -> Any:
        return self.properties[name].value

    def __setitem__(self, name: str, value: Any) -> None:
        self.set(name, value)

    def __contains__(self, name: object) -> bool:
        return name in self.properties


def generate_etag(timestamp: Optional[datetime] = None) -> str:
    """Weak ETag derived from a write timestamp, e.g. ``W/"datetime'2025-12-04T10%3A30%3A00.123456Z'"``."""
    stamp = format_datetime(timestamp or datetime.now(timezone.utc))
    return f"W/\"datetime'{stamp.replace(':', '%3A')}'\""
