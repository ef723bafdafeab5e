"""
Entity codec.

Converts table entities to and from wire payloads in any supported payload
format. The codec keeps no state between calls: everything an operation
needs (entity, format, resolver) is passed in.

Reading resolves each wire property's type in this order:

1. the caller's property resolver (JSON formats only)
2. the type annotation carried by the payload
3. the declared type of the target entity's property
4. the JSON value itself (string, boolean, integer, double)

Wire properties the target type does not declare, or declares as ignored
on read, are dropped without error.
"""

import logging
from typing import Any, List, Optional, Tuple, Type, TypeVar, Union

from pydantic import ValidationError

from .exceptions import DeserializationError, ResolutionError, SerializationError
from .formats import AtomCodec, FormatCodec, PayloadFormat, RawEntity, RawProperty, WireEntity, get_format_codec
from .models import DynamicEntity, TableEntity
from .schema import PropertyResolver, is_valid_property_name, schema_for
from .types import EdmType, TypedValue, convert, from_wire, infer_json_type, validate_value

logger = logging.getLogger(__name__)

EntityT = TypeVar("EntityT", bound=TableEntity)


def serialize(
    entity: TableEntity,
    payload_format: Union[PayloadFormat, str],
    *,
    table_name: Optional[str] = None,
) -> bytes:
    """
    Encode an entity as a payload.

    Args:
        entity: Typed or dynamic entity
        payload_format: Target payload format
        table_name: Table name for link metadata (full/minimal JSON, Atom)

    Returns:
        UTF-8 encoded payload

    Raises:
        SerializationError: If a property value does not fit its type
    """
    payload_format = PayloadFormat(payload_format)
    wire = to_wire_entity(entity)
    try:
        payload = get_format_codec(payload_format).write(wire, table_name)
    except UnicodeEncodeError as e:
        raise SerializationError(f"Entity contains text that cannot be encoded as UTF-8: {e}") from e

    logger.debug(
        f"Serialized entity ({wire.partition_key!r}, {wire.row_key!r}) as {payload_format.value}: "
        f"{len(wire.properties)} properties, {len(payload)} bytes"
    )
    return payload


def deserialize(
    payload: Union[bytes, str],
    payload_format: Union[PayloadFormat, str],
    entity_type: Type[EntityT] = DynamicEntity,
    resolver: Optional[PropertyResolver] = None,
    *,
    xml_chunk_size: Optional[int] = None,
) -> EntityT:
    """
    Decode a payload into an entity.

    Args:
        payload: Payload bytes or text
        payload_format: Format the payload was encoded in
        entity_type: TableEntity subclass to build (DynamicEntity keeps every property)
        resolver: Optional callback ``(name, raw_value) -> EdmType | None``
        xml_chunk_size: Read size for Atom payloads (default: reader default)

    Returns:
        Entity of ``entity_type``

    Raises:
        DeserializationError: If the payload is malformed or does not fit the type
        ResolutionError: If a no-metadata property type cannot be resolved
    """
    payload_format = PayloadFormat(payload_format)
    if not (isinstance(entity_type, type) and issubclass(entity_type, TableEntity)):
        raise TypeError(f"entity_type must be a TableEntity subclass, got {entity_type!r}")

    codec: FormatCodec = get_format_codec(payload_format)
    if xml_chunk_size is not None and payload_format == PayloadFormat.ATOM:
        codec = AtomCodec(xml_chunk_size)

    raw = codec.read(payload)
    if not codec.honors_resolver:
        resolver = None
    strict = payload_format == PayloadFormat.JSON_NO_METADATA

    if issubclass(entity_type, DynamicEntity):
        entity = _build_dynamic(entity_type, raw, resolver, strict)
    else:
        entity = _build_typed(entity_type, raw, resolver, strict)

    logger.debug(
        f"Deserialized {payload_format.value} payload into {entity_type.__qualname__} "
        f"({raw.partition_key!r}, {raw.row_key!r})"
    )
    return entity


def to_wire_entity(entity: TableEntity) -> WireEntity:
    """
    Collect an entity's writable properties as validated typed values.

    Raises:
        SerializationError: If a property name or value is invalid
    """
    if isinstance(entity, DynamicEntity):
        items = list(entity.properties.items())
    else:
        items = [
            (d.wire_name, TypedValue(getattr(entity, d.attribute), d.edm_type))
            for d in schema_for(type(entity)).writable
        ]

    properties: List[Tuple[str, TypedValue]] = []
    for name, typed in items:
        if not is_valid_property_name(name):
            raise SerializationError(f"Invalid property name {name!r}", str(name))
        try:
            if not isinstance(typed, TypedValue):
                typed = TypedValue.of(typed)
            if typed.value is not None:
                typed = TypedValue(validate_value(typed.value, typed.edm_type), typed.edm_type)
        except ValueError as e:
            raise SerializationError(f"Property '{name}': {e}", name) from e
        properties.append((name, typed))

    return WireEntity(
        partition_key=entity.PartitionKey,
        row_key=entity.RowKey,
        timestamp=entity.Timestamp,
        etag=entity.etag,
        properties=properties,
    )


def _build_dynamic(
    entity_type: Type[EntityT],
    raw: RawEntity,
    resolver: Optional[PropertyResolver],
    strict: bool,
) -> EntityT:
    entity = entity_type(
        PartitionKey=raw.partition_key,
        RowKey=raw.row_key,
        Timestamp=raw.timestamp,
        etag=raw.etag,
    )
    for prop in raw.properties:
        edm_type, value = _interpret(prop, None, resolver, strict)
        entity.properties[prop.name] = TypedValue(value, edm_type)
    return entity


def _build_typed(
    entity_type: Type[EntityT],
    raw: RawEntity,
    resolver: Optional[PropertyResolver],
    strict: bool,
) -> EntityT:
    schema = schema_for(entity_type)
    values = {}

    for prop in raw.properties:
        descriptor = schema.readable(prop.name)
        if descriptor is None:
            logger.debug(f"Dropping property '{prop.name}' not read by {entity_type.__qualname__}")
            continue

        edm_type, value = _interpret(prop, descriptor.edm_type, resolver, strict)
        try:
            values[descriptor.attribute] = convert(value, edm_type, descriptor.edm_type)
        except ValueError as e:
            raise DeserializationError(
                f"Property '{prop.name}' of type {edm_type.value} does not fit "
                f"{entity_type.__qualname__}.{descriptor.attribute}: {e}",
                prop.name,
            ) from e

    try:
        return entity_type(
            PartitionKey=raw.partition_key,
            RowKey=raw.row_key,
            Timestamp=raw.timestamp,
            etag=raw.etag,
            **values,
        )
    except ValidationError as e:
        raise DeserializationError(
            f"Payload does not validate as {entity_type.__qualname__}: {e}"
        ) from e


def _interpret(
    prop: RawProperty,
    declared: Optional[EdmType],
    resolver: Optional[PropertyResolver],
    strict: bool,
) -> Tuple[EdmType, Any]:
    """Determine a wire property's type and decode its value."""
    unresolved_error = ResolutionError if strict else DeserializationError
    edm_type: Optional[EdmType] = None
    from_payload = False

    if resolver is not None:
        resolved = resolver(prop.name, prop.raw)
        if resolved is not None and not isinstance(resolved, EdmType):
            raise ResolutionError(
                f"Resolver returned {resolved!r} for property '{prop.name}', expected an EdmType",
                prop.name,
            )
        edm_type = resolved

    if edm_type is None and prop.edm_type is not None:
        edm_type = prop.edm_type
        from_payload = True
    if edm_type is None:
        edm_type = declared
    if edm_type is None:
        edm_type = infer_json_type(prop.raw)
        if edm_type is None:
            raise unresolved_error(
                f"Cannot determine the type of property '{prop.name}'; supply a property resolver",
                prop.name,
            )

    if prop.raw is None:
        return edm_type, None
    try:
        return edm_type, from_wire(prop.raw, edm_type)
    except ValueError as e:
        error = DeserializationError if from_payload else unresolved_error
        raise error(f"Property '{prop.name}': {e}", prop.name) from e
