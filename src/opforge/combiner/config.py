"""Combiner options and the services config file."""

from pathlib import Path

import pydantic
import yaml
from pydantic import BaseModel, Field

from opforge.errors import ConfigError

CONFLICT_STRATEGIES = ("override", "merge", "error")
SUPPORTED_STRATEGIES = ("override", "error")


def check_conflict_strategy(strategy: str) -> str:
    if strategy not in CONFLICT_STRATEGIES:
        raise ConfigError(
            f"unknown conflict_strategy {strategy!r} (expected one of {', '.join(CONFLICT_STRATEGIES)})"
        )
    if strategy not in SUPPORTED_STRATEGIES:
        raise ConfigError(f"conflict_strategy {strategy!r} is not supported; use 'override' or 'error'")
    return strategy


class CombinationSettings(BaseModel):
    merge_schemas: bool = True
    validate_output: bool = True
    include_tags: list[str] = []
    exclude_tags: list[str] = []
    conflict_strategy: str = "override"


class ServiceConfig(BaseModel):
    """One entry of the ``services`` list."""

    name: str
    spec_file: str
    path_prefix: str = ""
    tags: list[str] = []
    enabled: bool = True
    description: str = ""
    health_check: str = ""
    version: str = ""


class ServicesConfig(BaseModel):
    title: str = ""
    version: str = ""
    description: str = ""
    base_url: str = ""
    services: list[ServiceConfig] = []
    settings: CombinationSettings = Field(default_factory=CombinationSettings)


class CombinerConfig(BaseModel):
    """Options for one combine run; defaults mirror the CLI."""

    input_files: list[str] = []
    output_file: str = "combined-api.yaml"
    format: str = "yaml"
    title: str = "Combined API"
    version: str = "1.0.0"
    description: str = ""
    base_url: str = ""
    config_file: str = ""
    service_prefix: dict[str, str] = {}
    include_tags: list[str] = []
    exclude_tags: list[str] = []
    merge_schemas: bool = True
    validate_output: bool = True
    conflict_strategy: str = "override"


class CombinationStats(BaseModel):
    input_files: int = 0
    services_combined: int = 0
    total_paths: int = 0
    total_operations: int = 0
    merged_schemas: int = 0
    conflicts: int = 0


def load_services_config(path: str | Path) -> ServicesConfig:
    """Read and validate a services YAML file."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as err:
        raise ConfigError(f"cannot read services config {path}: {err}") from err

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as err:
        raise ConfigError(f"invalid YAML in services config {path}: {err}") from err
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"services config {path} must be a mapping")

    try:
        config = ServicesConfig.model_validate(data)
    except pydantic.ValidationError as err:
        raise ConfigError(f"invalid services config {path}: {err}") from err
    check_conflict_strategy(config.settings.conflict_strategy)
    return config
