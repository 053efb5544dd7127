"""Configuration for the REST layer.

Settings are explicit objects passed to the API instead of process-wide
state: ``RestSettings`` holds the id field and HTTP parameter names shared
by all tables, ``ApiConfig`` holds the per-table options.

Configuration can also be loaded from a YAML file:

```yaml
settings:
  id_field: _id_
  id_separator: "_"

apis:
  employees:
    exclude_field_prefix: _
    fail_on_oversized_values: true
  orders:
    table_name: OrderDetails
    include_fields: [OrderID, ProductID, Quantity]
```

Each entry under ``apis`` uses its key as the table name unless
``table_name`` is given.
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Any
from urllib.parse import unquote

import yaml
from pydantic import BaseModel, Field, field_validator

from .encoding import encode_uri_component

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class RestSettings(BaseModel):
    """Settings shared by every API of an application."""

    id_field: str = Field(
        default="_id_",
        min_length=1,
        description="Name of the synthesized row id field in serialized rows",
    )
    id_separator: str = Field(
        default="_",
        description="Single character joining primary key values in a row id",
    )
    filter_param: str = Field(default="sqlfilter", description="HTTP parameter with the row filter")
    order_param: str = Field(default="sqlorder", description="HTTP parameter with the ordering")
    limit_param: str = Field(default="sqllimit", description="HTTP parameter with the row limit")
    aggregate_param: str = Field(
        default="sqlaggregate", description="HTTP parameter with aggregate functions"
    )
    select_param: str = Field(
        default="sqlselect", description="HTTP parameter with selected fields"
    )

    @field_validator("id_separator")
    @classmethod
    def validate_id_separator(cls, v: str) -> str:
        """Ensure the separator is one character that is not percent-encoded."""
        if len(v) != 1:
            raise ValueError(f"id_separator must be a single character, got '{v}'")
        if v == "%":
            raise ValueError("id_separator can't be '%'")
        return v

    def print_row_id(self, primary_key_values: list[str]) -> str:
        """Join primary key values into a row id.

        Each value is percent-encoded and any separator character inside a
        value is written as its percent escape so the id splits back
        unambiguously.

        Args:
            primary_key_values: Serialized primary key values in field order

        Returns:
            Row id string
        """
        escaped = "%" + format(ord(self.id_separator), "x")
        return self.id_separator.join(
            encode_uri_component(value).replace(self.id_separator, escaped)
            for value in primary_key_values
        )

    def split_row_id(self, row_id: str) -> list[str]:
        """Split a row id into its percent-decoded primary key values."""
        return [unquote(part) for part in row_id.split(self.id_separator)]


class ApiConfig(BaseModel):
    """Options of one table API."""

    table_name: str = Field(min_length=1, description="Database table served by the API")
    fail_on_oversized_values: bool = Field(
        default=False, description="Reject string values longer than the column allows"
    )
    fail_on_update_on_autoinc: bool = Field(
        default=False, description="Reject rows that set an auto-increment column"
    )
    fail_on_insert_without_key: bool = Field(
        default=False, description="Reject inserts missing a non-autoinc primary key"
    )
    fail_on_any_invalid_rows: bool = Field(
        default=True,
        description="Abort the whole batch on an invalid row instead of skipping the row",
    )
    use_dates_as_string: bool = Field(
        default=False, description="Treat date columns as strings in native database format"
    )
    include_fields: list[str] = Field(
        default_factory=list, description="Only expose these fields (all if empty)"
    )
    exclude_field_prefix: str = Field(
        default="", description="Hide fields whose name starts with this prefix"
    )
    exclude_fields: list[str] = Field(default_factory=list, description="Hide these fields")
    debug_on_error: bool = Field(
        default=False, description="Attach the generated SQL to error results"
    )
    number_decimals: int | None = Field(
        default=None, ge=0, description="Round number fields to this many decimals on output"
    )

    def is_field_included(self, field_name: str) -> bool:
        """Check whether a column is exposed by the API."""
        if self.exclude_field_prefix and field_name.startswith(self.exclude_field_prefix):
            return False
        if self.exclude_fields and field_name in self.exclude_fields:
            return False
        if self.include_fields and field_name not in self.include_fields:
            return False
        return True


class SqlRestConfig(BaseModel):
    """Root of a configuration file."""

    settings: RestSettings = Field(default_factory=RestSettings)
    apis: dict[str, ApiConfig] = Field(default_factory=dict)


class ApiConfigLoader:
    """Loads API configuration from a YAML file.

    File path priority:
        1. Explicit path passed to constructor
        2. SQLREST_CONFIG environment variable
        3. ~/.sqlrest/config.yml

    A missing file yields an empty configuration with default settings.
    """

    def __init__(self, config_path: str | Path | None = None):
        """Initialize loader.

        Args:
            config_path: Explicit path to the config file (optional)
        """
        self._config: SqlRestConfig | None = None
        self._explicit_path = Path(config_path) if config_path else None

    def get_config_path(self) -> Path | None:
        """Determine config file path using priority order.

        Returns:
            Path to config file, or None if file doesn't exist
        """
        if self._explicit_path:
            if self._explicit_path.exists():
                return self._explicit_path
            logger.warning(f"Explicit config path does not exist: {self._explicit_path}")
            return None

        env_path_str = os.getenv("SQLREST_CONFIG")
        if env_path_str:
            env_path = Path(env_path_str).expanduser()
            if env_path.exists():
                return env_path
            logger.warning(f"SQLREST_CONFIG path does not exist: {env_path}")
            return None

        standard_path = Path.home() / ".sqlrest" / "config.yml"
        if standard_path.exists():
            return standard_path
        return None

    def load_config(self) -> SqlRestConfig:
        """Load and validate the configuration, caching the result.

        Returns:
            Validated configuration

        Raises:
            ValueError: If the file is not valid YAML or fails validation
        """
        if self._config is not None:
            return self._config

        config_path = self.get_config_path()
        if config_path is None:
            logger.info("No config file found, using default settings")
            self._config = SqlRestConfig()
            return self._config

        logger.info(f"Loading config from: {config_path}")
        try:
            with open(config_path, encoding="utf-8") as f:
                raw_config = yaml.safe_load(f) or {}

            if not isinstance(raw_config, dict):
                raise ValueError("Config file must contain a YAML dictionary")

            apis: dict[str, Any] = raw_config.get("apis") or {}
            if not isinstance(apis, dict):
                raise ValueError("'apis' must be a dictionary of table configurations")
            for name, api in apis.items():
                if isinstance(api, dict):
                    api.setdefault("table_name", name)
                elif api is None:
                    apis[name] = {"table_name": name}

            config = SqlRestConfig(settings=raw_config.get("settings") or {}, apis=apis)
            logger.info(f"Loaded config: {len(config.apis)} apis")
            self._config = config
            return config

        except (yaml.YAMLError, ValueError) as e:
            raise ValueError(f"Failed to load config from {config_path}: {e}")

    def get_api_config(self, name: str) -> ApiConfig:
        """Get the configuration of one API.

        Raises:
            KeyError: If the API is not configured
        """
        config = self.load_config()
        if name not in config.apis:
            raise KeyError(f"API '{name}' not found. Available: {', '.join(sorted(config.apis))}")
        return config.apis[name]


def configure_logging(stream: Any = None) -> int:
    """Configure root logging from the SQLREST_LOG_LEVEL environment variable.

    Args:
        stream: Output stream (default stderr)

    Returns:
        Effective log level
    """
    log_level_str = os.getenv("SQLREST_LOG_LEVEL", "INFO").upper()
    if log_level_str not in VALID_LOG_LEVELS:
        print(
            f"Warning: Invalid SQLREST_LOG_LEVEL '{log_level_str}'. "
            f"Valid levels: {', '.join(sorted(VALID_LOG_LEVELS))}. "
            "Using INFO.",
            file=sys.stderr,
        )
        log_level_str = "INFO"

    log_level: int = getattr(logging, log_level_str)
    logging.basicConfig(level=log_level, format=LOG_FORMAT, stream=stream or sys.stderr)
    return log_level
