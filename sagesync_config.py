from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from sagesync_errors import ConfigInvalidError


class SpecialRule(BaseModel):
    name: str = ""
    keywords: list[str] = Field(default_factory=list)
    warehouse_code: str


class LocationMapping(BaseModel):
    warehouse_code: str
    special_rules: list[SpecialRule] = Field(default_factory=list)


class DefaultWarehouse(BaseModel):
    code: str = ""
    description: str = ""


class WarehouseCreationSettings(BaseModel):
    enabled: bool = False
    description_template: str = "{code}"
    default_values: dict[str, Any] = Field(default_factory=dict)


class SyncSettings(BaseModel):
    max_stock_multiplier: float = 3
    max_stock_fallback: float = 100
    progress_every: int = 100


class ConfigModel(BaseModel):
    location_mapping: dict[str, LocationMapping] = Field(default_factory=dict)
    default_warehouse: DefaultWarehouse = Field(default_factory=DefaultWarehouse)
    warehouse_creation: WarehouseCreationSettings = Field(
        default_factory=WarehouseCreationSettings
    )
    sync: SyncSettings = Field(default_factory=SyncSettings)


def load_config(path: str | Path = "sagesync.config.json") -> ConfigModel:
    p = Path(path)
    if not p.exists():
        raise ConfigInvalidError(f"Config file not found: {p}")
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
        return ConfigModel.model_validate(data)
    except (json.JSONDecodeError, ValidationError) as e:
        raise ConfigInvalidError(f"Invalid config file {p}: {e}") from e


def validate_config(cfg: ConfigModel) -> None:
    """Raise ConfigInvalidError unless the mapping table and default warehouse are set."""
    errors = []
    if not cfg.location_mapping:
        errors.append("no location mappings configured")
    if not cfg.default_warehouse.code:
        errors.append("no default warehouse configured")
    if errors:
        raise ConfigInvalidError(f"Invalid configuration: {', '.join(errors)}")
