"""
Entity schema registry.

Describes how each entity type maps onto wire properties. A schema is a
table of property descriptors (attribute → wire name, EDM type, ignore
rules) built once per type when the type is registered, so annotation
problems surface at class definition rather than on first use.

Annotations are attached with ``typing.Annotated``::

    class Customer(TableEntity):
        email: Annotated[Optional[str], StoreAs("Email")] = None
        cached_score: Annotated[Optional[float], Ignore()] = None
        audit_note: Annotated[Optional[str], IgnoreOnWrite] = None
"""

import logging
import re
import threading
import types
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Annotated, Any, Callable, Dict, Iterable, List, Optional, Tuple, Union, get_args, get_origin

from .exceptions import SchemaError
from .types import EdmType

logger = logging.getLogger(__name__)

PropertyResolver = Callable[[str, Any], Optional[EdmType]]

# Key properties are written by the codec itself, never through descriptors
SYSTEM_PROPERTIES = ("PartitionKey", "RowKey", "Timestamp")
SYSTEM_FIELDS = frozenset(SYSTEM_PROPERTIES + ("etag",))

_PROPERTY_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,254}$")

_PYTHON_TYPES: Tuple[Tuple[type, EdmType], ...] = (
    (bool, EdmType.BOOLEAN),
    (int, EdmType.INT32),
    (float, EdmType.DOUBLE),
    (str, EdmType.STRING),
    (datetime, EdmType.DATETIME),
    (uuid.UUID, EdmType.GUID),
    (bytes, EdmType.BINARY),
    (bytearray, EdmType.BINARY),
)


@dataclass(frozen=True)
class StoreAs:
    """Store a property under a different wire name."""
    name: str


@dataclass(frozen=True)
class Ignore:
    """Exclude a property from writes, reads, or both (the default)."""
    on_read: bool = True
    on_write: bool = True


IgnoreOnRead = Ignore(on_read=True, on_write=False)
IgnoreOnWrite = Ignore(on_read=False, on_write=True)


@dataclass(frozen=True)
class PropertyDescriptor:
    """How one declared attribute appears on the wire."""
    attribute: str
    wire_name: str
    edm_type: Optional[EdmType]
    ignore_on_read: bool = False
    ignore_on_write: bool = False


class EntitySchema:
    """Precomputed property descriptor table for one entity type."""

    def __init__(self, entity_type: type, descriptors: Iterable[PropertyDescriptor]):
        self.entity_type = entity_type
        self.descriptors: Tuple[PropertyDescriptor, ...] = tuple(descriptors)
        self._by_wire_name = {d.wire_name: d for d in self.descriptors if not d.ignore_on_read}

    @property
    def writable(self) -> List[PropertyDescriptor]:
        """Descriptors emitted on serialize, in declared order."""
        return [d for d in self.descriptors if not d.ignore_on_write]

    def readable(self, wire_name: str) -> Optional[PropertyDescriptor]:
        """Descriptor receiving a wire property, or None if it is unknown or ignored on read."""
        return self._by_wire_name.get(wire_name)

    def property_resolver(self) -> PropertyResolver:
        """Build a resolver answering with the declared type of each readable property."""
        declared = {
            d.wire_name: d.edm_type
            for d in self.descriptors
            if not d.ignore_on_read and d.edm_type is not None
        }

        def resolve(name: str, value: Any) -> Optional[EdmType]:
            return declared.get(name)

        return resolve

    @classmethod
    def build(cls, entity_type: type) -> "EntitySchema":
        """
        Build the schema of a pydantic entity type.

        Args:
            entity_type: TableEntity subclass

        Returns:
            EntitySchema for the type

        Raises:
            SchemaError: If annotations are invalid or conflict
        """
        type_name = f"{entity_type.__module__}.{entity_type.__qualname__}"
        descriptors: List[PropertyDescriptor] = []
        wire_names: Dict[str, str] = {}

        for attribute, field in entity_type.model_fields.items():
            if attribute in SYSTEM_FIELDS:
                continue

            markers = list(field.metadata) + _nested_metadata(field.annotation)
            store_as = [m for m in markers if isinstance(m, StoreAs)]
            ignores = [m for m in markers if isinstance(m, Ignore)]
            ignore_on_read = any(m.on_read for m in ignores)
            ignore_on_write = any(m.on_write for m in ignores)

            if len(store_as) > 1:
                raise SchemaError(
                    f"Property '{attribute}' of {type_name} has more than one StoreAs annotation",
                    type_name, attribute,
                )

            wire_name = store_as[0].name if store_as else attribute
            if wire_name in SYSTEM_PROPERTIES:
                raise SchemaError(
                    f"Property '{attribute}' of {type_name} cannot be stored as "
                    f"system property '{wire_name}'",
                    type_name, attribute,
                )
            if not isinstance(wire_name, str) or not _PROPERTY_NAME_PATTERN.match(wire_name):
                raise SchemaError(
                    f"Property '{attribute}' of {type_name} has invalid wire name {wire_name!r}",
                    type_name, attribute,
                )

            edm_type = _edm_type_of(field.annotation, field.metadata)
            fully_ignored = ignore_on_read and ignore_on_write
            if edm_type is None and not fully_ignored:
                raise SchemaError(
                    f"Property '{attribute}' of {type_name} has unsupported type {field.annotation!r}",
                    type_name, attribute,
                )

            if not fully_ignored:
                if wire_name in wire_names:
                    raise SchemaError(
                        f"Properties '{wire_names[wire_name]}' and '{attribute}' of {type_name} "
                        f"both map to wire name '{wire_name}'",
                        type_name, attribute,
                    )
                wire_names[wire_name] = attribute

            descriptors.append(PropertyDescriptor(
                attribute=attribute,
                wire_name=wire_name,
                edm_type=edm_type,
                ignore_on_read=ignore_on_read,
                ignore_on_write=ignore_on_write,
            ))

        return cls(entity_type, descriptors)


_registry: Dict[type, EntitySchema] = {}
_registry_lock = threading.Lock()


def register_entity_type(entity_type: type) -> EntitySchema:
    """
    Build and cache the schema of an entity type.

    Called from ``TableEntity.__pydantic_init_subclass__`` for every subclass.
    """
    schema = EntitySchema.build(entity_type)
    with _registry_lock:
        _registry[entity_type] = schema
    logger.debug(
        f"Registered entity type {entity_type.__qualname__} "
        f"with {len(schema.descriptors)} properties"
    )
    return schema


def schema_for(entity_type: type) -> EntitySchema:
    """Get the schema of an entity type, registering it if needed."""
    schema = _registry.get(entity_type)
    if schema is None:
        schema = register_entity_type(entity_type)
    return schema


def resolver_for(entity_type: type) -> PropertyResolver:
    """Property resolver answering with the declared types of an entity type."""
    return schema_for(entity_type).property_resolver()


def is_valid_property_name(name: Any) -> bool:
    """Check that a name can be used as a custom property on the wire."""
    return (
        isinstance(name, str)
        and name not in SYSTEM_PROPERTIES
        and _PROPERTY_NAME_PATTERN.match(name) is not None
    )


def _unwrap_optional(annotation: Any) -> Any:
    if get_origin(annotation) in (Union, types.UnionType):
        args = [a for a in get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return annotation


def _nested_metadata(annotation: Any) -> List[Any]:
    """Collect Annotated extras nested under Optional[...]."""
    found: List[Any] = []
    annotation = _unwrap_optional(annotation)
    while get_origin(annotation) is Annotated:
        base, *extras = get_args(annotation)
        found.extend(extras)
        annotation = _unwrap_optional(base)
    return found


def _edm_type_of(annotation: Any, metadata: Iterable[Any]) -> Optional[EdmType]:
    for item in list(metadata) + _nested_metadata(annotation):
        if isinstance(item, EdmType):
            return item

    annotation = _unwrap_optional(annotation)
    while get_origin(annotation) is Annotated:
        annotation = _unwrap_optional(get_args(annotation)[0])

    for python_type, edm_type in _PYTHON_TYPES:
        if annotation is python_type:
            return edm_type
    return None
