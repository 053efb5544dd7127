"""Tests for settings, API options and the YAML config loader."""

import io
import logging
from pathlib import Path

import pytest
from pydantic import ValidationError

from sqlrest.config import ApiConfig, ApiConfigLoader, RestSettings, configure_logging


class TestRestSettings:
    """Test shared settings."""

    def test_defaults(self) -> None:
        """Test default id field and parameter names."""
        settings = RestSettings()
        assert settings.id_field == "_id_"
        assert settings.filter_param == "sqlfilter"
        assert settings.print_row_id(["1", "a b"]) == "1_a%20b"

    @pytest.mark.parametrize("separator", ["", "__", "%"])
    def test_invalid_separator(self, separator: str) -> None:
        """Test the separator must be one non-percent character."""
        with pytest.raises(ValidationError):
            RestSettings(id_separator=separator)


class TestApiConfig:
    """Test per-table options."""

    def test_defaults(self) -> None:
        """Test invalid rows fail the batch by default."""
        config = ApiConfig(table_name="employees")
        assert config.fail_on_any_invalid_rows
        assert not config.fail_on_oversized_values
        assert config.number_decimals is None

    def test_table_name_required(self) -> None:
        """Test an empty table name is rejected."""
        with pytest.raises(ValidationError):
            ApiConfig(table_name="")

    def test_field_inclusion(self) -> None:
        """Test prefix, exclude list and include list."""
        config = ApiConfig(
            table_name="t",
            exclude_field_prefix="_",
            exclude_fields=["secret"],
            include_fields=["id", "name", "secret", "_hidden"],
        )
        assert config.is_field_included("id")
        assert not config.is_field_included("_hidden")
        assert not config.is_field_included("secret")
        assert not config.is_field_included("age")


class TestApiConfigLoader:
    """Test loading configuration from YAML."""

    def test_load(self, tmp_path: Path) -> None:
        """Test settings and APIs are loaded."""
        config_file = tmp_path / "config.yml"
        config_file.write_text(
            """
settings:
  id_separator: "~"
apis:
  employees:
    exclude_field_prefix: _
  orders:
    table_name: OrderDetails
    fail_on_oversized_values: true
  products:
"""
        )
        loader = ApiConfigLoader(config_file)
        config = loader.load_config()
        assert config.settings.id_separator == "~"
        assert loader.get_api_config("employees").table_name == "employees"
        assert loader.get_api_config("orders").table_name == "OrderDetails"
        assert loader.get_api_config("orders").fail_on_oversized_values
        assert loader.get_api_config("products").table_name == "products"

    def test_missing_api(self, tmp_path: Path) -> None:
        """Test an unknown API name raises KeyError."""
        config_file = tmp_path / "config.yml"
        config_file.write_text("apis:\n  employees: {}\n")
        with pytest.raises(KeyError, match="employees"):
            ApiConfigLoader(config_file).get_api_config("orders")

    def test_env_path(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test the config path from the environment."""
        config_file = tmp_path / "env.yml"
        config_file.write_text("apis:\n  orders: {}\n")
        monkeypatch.setenv("SQLREST_CONFIG", str(config_file))
        assert ApiConfigLoader().get_config_path() == config_file

    def test_missing_file(self, tmp_path: Path) -> None:
        """Test a missing file gives defaults."""
        config = ApiConfigLoader(tmp_path / "missing.yml").load_config()
        assert config.apis == {}
        assert config.settings == RestSettings()

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        """Test invalid YAML is reported as ValueError."""
        config_file = tmp_path / "config.yml"
        config_file.write_text("apis: [unclosed")
        with pytest.raises(ValueError, match="Failed to load config"):
            ApiConfigLoader(config_file).load_config()

    def test_invalid_option(self, tmp_path: Path) -> None:
        """Test invalid option values fail validation."""
        config_file = tmp_path / "config.yml"
        config_file.write_text("apis:\n  employees:\n    number_decimals: -1\n")
        with pytest.raises(ValueError):
            ApiConfigLoader(config_file).load_config()


class TestConfigureLogging:
    """Test logging setup from the environment."""

    def test_level_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test the log level environment variable."""
        monkeypatch.setenv("SQLREST_LOG_LEVEL", "debug")
        assert configure_logging(io.StringIO()) == logging.DEBUG

    def test_invalid_level(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test an invalid level falls back to INFO."""
        monkeypatch.setenv("SQLREST_LOG_LEVEL", "LOUD")
        assert configure_logging(io.StringIO()) == logging.INFO
