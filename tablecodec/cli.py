"""
tablecodec Command-Line Interface

Converts and inspects table entity payloads.
"""

import sys
import json
import logging
from pathlib import Path
from typing import Dict, Optional, Tuple

import click
from pydantic import ValidationError

from tablecodec import __version__
from tablecodec.core.config_manager import ConfigManager, TableCodecConfig
from tablecodec.core.logging_config import setup_logging
from tablecodec.table.codec import deserialize, serialize
from tablecodec.table.exceptions import TableCodecError
from tablecodec.table.formats import PayloadFormat
from tablecodec.table.models import DynamicEntity
from tablecodec.table.schema import PropertyResolver
from tablecodec.table.types import EdmType, to_wire_text

logger = logging.getLogger("tablecodec.cli")

FORMAT_CHOICES = [f.value for f in PayloadFormat]


@click.group()
@click.version_option(version=__version__, prog_name="tablecodec")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to configuration file",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    help="Logging level (overrides configuration)",
)
@click.pass_context
def cli(ctx, config: Optional[Path], log_level: Optional[str]):
    """
    tablecodec - Table entity payload codec

    Convert table entities between Atom and OData JSON payloads.
    """
    overrides = {"logging": {"level": log_level.upper()}} if log_level else None
    manager = ConfigManager()
    try:
        settings = manager.load(config_file=str(config) if config else None, cli_overrides=overrides)
    except (ValidationError, ValueError) as e:
        click.echo(f"[ERROR] Invalid configuration: {e}", err=True)
        sys.exit(1)

    setup_logging(
        settings.logging.level,
        settings.logging.format,
        settings.logging.file,
        settings.logging.rotation_size,
        settings.logging.rotation_count,
        settings.logging.module_levels,
    )
    ctx.ensure_object(dict)
    ctx.obj["config"] = settings


@cli.command()
@click.argument("input_file", type=click.File("rb"))
@click.option(
    "--from",
    "source_format",
    required=True,
    type=click.Choice(FORMAT_CHOICES, case_sensitive=False),
    help="Payload format of the input",
)
@click.option(
    "--to",
    "target_format",
    type=click.Choice(FORMAT_CHOICES, case_sensitive=False),
    help="Payload format to write (default: configured payload format)",
)
@click.option(
    "--type",
    "-t",
    "property_types",
    multiple=True,
    help="Property type in Name=Edm.Type form (can specify multiple times)",
)
@click.option("--table-name", help="Table name for link metadata (default: configured table)")
@click.option(
    "--output",
    "-o",
    type=click.File("wb"),
    default="-",
    help="Output file (default: stdout)",
)
@click.pass_context
def convert(ctx, input_file, source_format: str, target_format: Optional[str],
            property_types: Tuple[str, ...], table_name: Optional[str], output):
    """
    Convert an entity payload to another payload format.

    Property types of no-metadata JSON input can be given with --type.

    Examples:
        tablecodec convert entity.xml --from atom --to nometadata
        tablecodec convert entity.json --from nometadata --to atom -t Created=Edm.DateTime
    """
    settings: TableCodecConfig = ctx.obj["config"]
    target_format = target_format or settings.codec.default_payload_format
    table_name = table_name or settings.client.table_name

    entity = _read_entity(input_file, source_format, property_types, settings)
    try:
        payload = serialize(entity, target_format.lower(), table_name=table_name)
    except TableCodecError as e:
        click.echo(f"[ERROR] {e.error_code}: {e.message}", err=True)
        sys.exit(1)

    logger.info(f"Converted {source_format} payload to {target_format} ({len(payload)} bytes)")
    output.write(payload)


@cli.command()
@click.argument("input_file", type=click.File("rb"))
@click.option(
    "--format",
    "-f",
    "source_format",
    required=True,
    type=click.Choice(FORMAT_CHOICES, case_sensitive=False),
    help="Payload format of the input",
)
@click.option(
    "--type",
    "-t",
    "property_types",
    multiple=True,
    help="Property type in Name=Edm.Type form (can specify multiple times)",
)
@click.pass_context
def inspect(ctx, input_file, source_format: str, property_types: Tuple[str, ...]):
    """
    Show the keys and typed properties of an entity payload.

    Example:
        tablecodec inspect entity.json --format minimalmetadata
    """
    entity = _read_entity(input_file, source_format, property_types, ctx.obj["config"])

    click.echo(f"PartitionKey: {entity.PartitionKey}")
    click.echo(f"RowKey:       {entity.RowKey}")
    if entity.Timestamp is not None:
        click.echo(f"Timestamp:    {entity.Timestamp.isoformat()}")
    if entity.etag:
        click.echo(f"ETag:         {entity.etag}")
    click.echo()

    if not entity.properties:
        click.echo("No properties.")
        return

    width = max(len(name) for name in entity.properties)
    for name, typed in entity.properties.items():
        shown = "null" if typed.value is None else json.dumps(to_wire_text(typed.value, typed.edm_type))
        click.echo(f"{name.ljust(width)}  {typed.edm_type.value:<12}  {shown}")


@cli.command()
@click.pass_context
def config(ctx):
    """
    Show current configuration.

    Displays the effective configuration after file, environment and
    command-line overrides are applied.
    """
    settings: TableCodecConfig = ctx.obj["config"]
    click.echo(json.dumps(settings.model_dump(mode="json"), indent=2))


def _read_entity(input_file, source_format: str, property_types: Tuple[str, ...],
                 settings: TableCodecConfig) -> DynamicEntity:
    resolver = _build_resolver(property_types)
    try:
        return deserialize(
            input_file.read(),
            source_format.lower(),
            DynamicEntity,
            resolver,
            xml_chunk_size=settings.codec.xml_chunk_size,
        )
    except TableCodecError as e:
        click.echo(f"[ERROR] {e.error_code}: {e.message}", err=True)
        sys.exit(1)


def _build_resolver(property_types: Tuple[str, ...]) -> Optional[PropertyResolver]:
    """Build a resolver from Name=Edm.Type options."""
    declared: Dict[str, EdmType] = {}
    for item in property_types:
        name, sep, type_name = item.partition("=")
        if not sep or not name:
            raise click.BadParameter(f"'{item}' is not in Name=Edm.Type form", param_hint="--type")
        try:
            declared[name] = EdmType.from_name(type_name)
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint="--type") from e

    if not declared:
        return None

    def resolve(name: str, value) -> Optional[EdmType]:
        return declared.get(name)

    return resolve


if __name__ == "__main__":
    cli()
