"""
Configuration for tablecodec.

Settings come from four layers, each overriding the one before it:
built-in defaults, a YAML or JSON file, ``TABLECODEC_*`` environment
variables, and command-line options. The merged result is validated by the
pydantic models below.
"""

import json
import logging
import os
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Literal, Optional, Tuple

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from tablecodec.table.formats import PayloadFormat

logger = logging.getLogger(__name__)


class LogLevel(str, Enum):
    """Valid log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LoggingConfig(BaseModel):
    """Logging settings passed to ``setup_logging``."""
    level: LogLevel = LogLevel.WARNING
    format: Literal["json", "text"] = "text"
    file: Optional[str] = None
    rotation_size: str = "10MB"
    rotation_count: int = Field(default=5, ge=0)
    module_levels: Optional[Dict[str, LogLevel]] = Field(
        default=None,
        description="Level overrides by logger name, e.g. {'tablecodec.table.codec': 'DEBUG'}"
    )


class CodecConfig(BaseModel):
    """Payload codec settings."""
    default_payload_format: PayloadFormat = PayloadFormat.JSON_MINIMAL_METADATA
    xml_chunk_size: int = Field(
        default=8192,
        ge=1,
        description="Bytes (or characters) handed to the XML parser per feed"
    )


class ClientConfig(BaseModel):
    """Table client settings."""
    table_name: str = Field(default="tablecodec", description="Table used for link metadata and client operations")


class TableCodecConfig(BaseModel):
    """Root configuration model."""
    model_config = ConfigDict(use_enum_values=True)

    version: str = Field(default="0.1.0", description="Configuration schema version")
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    codec: CodecConfig = Field(default_factory=CodecConfig)
    client: ClientConfig = Field(default_factory=ClientConfig)

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: str) -> str:
        parts = v.split(".")
        if len(parts) != 3:
            raise ValueError("Version must be in format x.y.z")
        if not all(part.isdigit() for part in parts):
            raise ValueError("Version components must be numeric")
        return v


# Environment variable -> (section, key, normalizer)
ENV_SETTINGS: Dict[str, Tuple[str, str, Callable[[str], Any]]] = {
    "TABLECODEC_LOG_LEVEL": ("logging", "level", str.upper),
    "TABLECODEC_LOG_FILE": ("logging", "file", str),
    "TABLECODEC_PAYLOAD_FORMAT": ("codec", "default_payload_format", str.lower),
    "TABLECODEC_XML_CHUNK_SIZE": ("codec", "xml_chunk_size", int),
    "TABLECODEC_TABLE_NAME": ("client", "table_name", str),
}

_FILE_LOADERS: Dict[str, Callable[[Any], Any]] = {
    ".yaml": yaml.safe_load,
    ".yml": yaml.safe_load,
    ".json": json.load,
}


class ConfigManager:
    """
    Loads, validates and holds the tablecodec configuration.

    Precedence, highest first: CLI overrides, ``TABLECODEC_*`` environment
    variables, the configuration file, defaults.
    """

    def __init__(self):
        self._config: Optional[TableCodecConfig] = None
        self._config_file: Optional[Path] = None
        self._cli_overrides: Optional[Dict[str, Any]] = None

    def load(
        self,
        config_file: Optional[str] = None,
        cli_overrides: Optional[Dict[str, Any]] = None
    ) -> TableCodecConfig:
        """
        Build the configuration from all sources.

        Args:
            config_file: YAML (.yaml/.yml) or JSON (.json) file
            cli_overrides: Nested dict of command-line settings

        Returns:
            Validated configuration

        Raises:
            FileNotFoundError: If ``config_file`` does not exist
            ValueError: If ``config_file`` has an unsupported suffix or an
                environment variable has an invalid value
            ValidationError: If the merged settings are invalid
        """
        layers = []
        if config_file:
            layers.append(("file", _read_config_file(Path(config_file))))
        layers.append(("environment", _read_environment()))
        if cli_overrides:
            layers.append(("command line", cli_overrides))

        settings: Dict[str, Any] = {}
        for source, layer in layers:
            if layer:
                logger.debug(f"Applying {source} settings: {sorted(layer)}")
                settings = deep_merge(settings, layer)

        try:
            config = TableCodecConfig(**settings)
        except ValidationError as e:
            logger.error(f"Configuration validation failed: {e}")
            raise

        self._config = config
        self._config_file = Path(config_file) if config_file else None
        self._cli_overrides = cli_overrides
        logger.debug(f"Active configuration: {config.model_dump_json()}")
        return config

    def get_config(self) -> TableCodecConfig:
        """
        Return the loaded configuration.

        Raises:
            RuntimeError: If ``load`` has not been called
        """
        if self._config is None:
            raise RuntimeError("Configuration not loaded. Call load() first.")
        return self._config

    def reload(self) -> TableCodecConfig:
        """Load again from the same file and overrides, picking up changes."""
        config_file = str(self._config_file) if self._config_file else None
        return self.load(config_file=config_file, cli_overrides=self._cli_overrides)


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Merge ``override`` into a copy of ``base``, recursing into nested dicts."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(merged.get(key), dict) and isinstance(value, dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _read_config_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    loader = _FILE_LOADERS.get(path.suffix.lower())
    if loader is None:
        raise ValueError(f"Unsupported config file format: {path.suffix}")

    with open(path, "r", encoding="utf-8") as f:
        try:
            data = loader(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Malformed configuration file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ValueError(f"Configuration file {path} must contain a mapping")
    return data


def _read_environment() -> Dict[str, Any]:
    settings: Dict[str, Any] = {}
    for variable, (section, key, normalize) in ENV_SETTINGS.items():
        raw = os.getenv(variable)
        if not raw:
            continue
        try:
            value = normalize(raw)
        except ValueError as e:
            raise ValueError(f"Invalid value for {variable}: {raw!r}") from e
        settings.setdefault(section, {})[key] = value
    return settings
