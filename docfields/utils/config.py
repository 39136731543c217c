"""Configuration management for the field extraction pipeline.

Loads and validates YAML configuration with defaults for the OCR provider,
company registry, result storage, async job polling and table extraction.
"""

import logging
import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "DOCFIELDS_CONFIG"
DEFAULT_CONFIG_PATH = Path("configs/config.yaml")

DEFAULT_TABLE_HEADERS = ["Item No.", "Quantity", "Descriptions", "Unit Price", "Amount"]


class ProviderConfig(BaseModel):
    """Configuration for the OCR/layout analysis provider."""

    region_name: str | None = None
    feature_types: list[str] = Field(default_factory=lambda: ["FORMS", "TABLES"])
    max_results: int | None = Field(default=None, ge=1, le=1000)
    local_root: str = "samples"


class RegistryConfig(BaseModel):
    """Where per-company extraction rules are read from."""

    backend: Literal["yaml", "dynamodb"] = "yaml"
    path: str = "configs/companies.yaml"
    table_name: str = "company-fields"


class StorageConfig(BaseModel):
    """Where extraction results are written."""

    backend: Literal["none", "dynamodb", "csv"] = "none"
    csv_path: str = "results/extractions.csv"


class PollingConfig(BaseModel):
    """Bounds for the asynchronous job polling loop."""

    max_attempts: int = Field(default=120, ge=1)
    interval_seconds: float = Field(default=5.0, ge=0.0)
    max_elapsed_seconds: float = Field(default=900.0, gt=0.0)
    raise_on_failure: bool = True


class TableConfig(BaseModel):
    """Geometry settings for table zone reconstruction."""

    headers: list[str] = Field(default_factory=lambda: list(DEFAULT_TABLE_HEADERS))
    bottom: float = Field(default=0.9, gt=0.0, le=1.0)
    row_precision: int = Field(default=3, ge=0, le=6)


class ExtractionConfig(BaseModel):
    """Configuration for field extraction."""

    extract_line_items: bool = False


class ServerConfig(BaseModel):
    """Bind address of the API server."""

    host: str = "0.0.0.0"
    port: int = Field(default=8000, ge=1, le=65535)


class AppConfig(BaseModel):
    """Top-level application configuration."""

    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    registry: RegistryConfig = Field(default_factory=RegistryConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    polling: PollingConfig = Field(default_factory=PollingConfig)
    table: TableConfig = Field(default_factory=TableConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    log_level: str = "INFO"


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from a YAML file.

    Args:
        path: Path to the YAML configuration file. Defaults to the
            ``DOCFIELDS_CONFIG`` environment variable, then
            ``configs/config.yaml``.

    Returns:
        Validated application configuration.
    """
    if path is None:
        path = Path(os.environ.get(CONFIG_ENV_VAR, DEFAULT_CONFIG_PATH))

    if path.exists():
        logger.info("Loading configuration from %s", path)
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
        return AppConfig(**raw)

    logger.info("No config file found at %s, using defaults", path)
    return AppConfig()
