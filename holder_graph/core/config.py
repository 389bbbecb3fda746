"""
Configuration loader for holder-graph.

This module provides Pydantic models for strong validation of settings
and a loader function that merges a YAML configuration file with
environment variables.

Design Principles:
- Strict Schema: every option is a named, typed field with its default
  declared exactly once, here. Renderers and the layout engine receive these
  models instead of merging loose option dicts.
- Environment Overrides: any setting can be overridden by an environment
  variable following the nested structure, e.g. `provider.api_key` is
  overridden by `HOLDER_GRAPH_PROVIDER__API_KEY`.
- Clear Errors: if validation fails, Pydantic's `ValidationError` is
  wrapped in a `ConfigError` with one line per offending location.
"""

import copy
import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml
from loguru import logger
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from holder_graph.core.custom_types import (
    MAX_HISTORY,
    MAX_HOLDER_LINKS,
    MAX_HOLDERS,
    SUPPORTED_CHAINS,
)

ENV_PREFIX = "HOLDER_GRAPH"

# --- Custom Exceptions ---

class ConfigError(Exception):
    """Custom exception for configuration-related errors."""
    pass

# --- Pydantic Models for Configuration Sections ---

class ProviderSettings(BaseModel):
    """Holder-graph provider (Bubblemaps legacy API) settings."""
    base_url: str = "https://api-legacy.bubblemaps.io"
    map_data_path: str = "/map-data"
    map_metadata_path: str = "/map-metadata"
    api_key: Optional[str] = None
    timeout_sec: float = Field(15.0, gt=0)
    top_holders: int = Field(MAX_HOLDERS, gt=0, le=MAX_HOLDERS)
    top_links: int = Field(MAX_HOLDER_LINKS, ge=0, le=MAX_HOLDER_LINKS)

class MarketSettings(BaseModel):
    """DEX market data (DexScreener) used for price summaries."""
    base_url: str = "https://api.dexscreener.com/latest"
    timeout_sec: float = Field(10.0, gt=0)
    cache_ttl_sec: float = Field(60.0, gt=0)

class AnalysisSettings(BaseModel):
    """Freshness and history policy of the analysis store."""
    freshness_hours: float = Field(24.0, gt=0)
    history_cap: int = Field(MAX_HISTORY, gt=0, le=MAX_HISTORY)
    supported_chains: List[str] = Field(default_factory=lambda: list(SUPPORTED_CHAINS))
    # Collapse concurrent refreshes of the same (address, chain) into one fetch
    single_flight: bool = False
    refresh_batch_limit: int = Field(10, gt=0)
    prune_after_days: int = Field(30, gt=0)

    @field_validator("supported_chains")
    def chains_must_be_known(cls, v):
        unknown = [c for c in v if c not in SUPPORTED_CHAINS]
        if unknown:
            raise ValueError(f"Unsupported chains {unknown}; known chains: {list(SUPPORTED_CHAINS)}")
        return v

class LayoutSettings(BaseModel):
    """Force simulation parameters."""
    iterations: int = Field(300, gt=0)
    link_distance: float = Field(100.0, gt=0)
    charge_strength: float = -400.0
    collision_margin: float = Field(5.0, ge=0)
    collision_strength: float = Field(1.0, gt=0, le=1)
    alpha_decay: float = Field(1 - 0.001 ** (1 / 300), gt=0, lt=1)
    velocity_decay: float = Field(0.6, ge=0, le=1)
    seed: int = 42

class ColorSettings(BaseModel):
    contract: str = "#ff4444"
    wallet: str = "#4444ff"
    burn: str = "#000000"
    cex: str = "#44ff44"
    link: str = "#999999"
    outline: str = "#ffffff"
    text: str = "#000000"

class RenderSettings(BaseModel):
    """Canvas and scaling options shared by the bubble map and the summary card."""
    width: int = Field(1200, gt=0)
    height: int = Field(800, gt=0)
    dpi: int = Field(100, gt=0)
    min_node_size: float = Field(10.0, gt=0)
    max_node_size: float = Field(50.0, gt=0)
    min_link_width: float = Field(1.0, gt=0)
    max_link_width: float = Field(8.0, gt=0)
    flow_domain: Tuple[float, float] = (0.0, 1000.0)
    colors: ColorSettings = Field(default_factory=ColorSettings)
    font_family: str = "DejaVu Sans"
    background_color: str = "#ffffff"
    card_width: int = Field(400, gt=0)
    card_height: int = Field(300, gt=0)
    card_accent_color: str = "#0066ff"

    @model_validator(mode="after")
    def ranges_must_be_ordered(self):
        if self.min_node_size > self.max_node_size:
            raise ValueError("min_node_size must not exceed max_node_size")
        if self.min_link_width > self.max_link_width:
            raise ValueError("min_link_width must not exceed max_link_width")
        if self.flow_domain[0] >= self.flow_domain[1]:
            raise ValueError("flow_domain must be an increasing pair")
        return self

class CacheSettings(BaseModel):
    """Rendered-artifact cache."""
    ttl_sec: float = Field(3600.0, gt=0)
    check_period_sec: float = Field(600.0, gt=0)
    max_entries: Optional[int] = Field(512, gt=0)

class PersistenceSettings(BaseModel):
    db_path: str = "holder_graph.db"

class LoggingSettings(BaseModel):
    """Settings for logging configuration."""
    level: str = Field("INFO", description="The logging level, e.g., DEBUG, INFO, WARNING.")
    file: Optional[str] = None
    rotation: str = "10 MB"

class TelegramSettings(BaseModel):
    """Settings for Telegram transport."""
    enabled: bool = False
    bot_token: Optional[str] = None
    chat_id: Optional[str] = None

class TransportSettings(BaseModel):
    """Container for all transport-related settings."""
    telegram: TelegramSettings = Field(default_factory=TelegramSettings)
    dry_run: bool = True

class Settings(BaseModel):
    """Root settings object; every section has defaults."""
    provider: ProviderSettings = Field(default_factory=ProviderSettings)
    market: MarketSettings = Field(default_factory=MarketSettings)
    analysis: AnalysisSettings = Field(default_factory=AnalysisSettings)
    layout: LayoutSettings = Field(default_factory=LayoutSettings)
    render: RenderSettings = Field(default_factory=RenderSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    persistence: PersistenceSettings = Field(default_factory=PersistenceSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    transport: TransportSettings = Field(default_factory=TransportSettings)

# --- Helper Functions ---

def _load_config_from_yaml(path: Path) -> Dict[str, Any]:
    """Loads the YAML configuration file."""
    if not path.is_file():
        raise ConfigError(f"Configuration file not found at: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Error parsing YAML file at {path}: {e}") from e

def _get_env_overrides(prefix: str = ENV_PREFIX) -> Dict[str, Any]:
    """
    Parses environment variables and converts them into a nested dict.
    e.g., HOLDER_GRAPH_TRANSPORT__TELEGRAM__BOT_TOKEN becomes
    {'transport': {'telegram': {'bot_token': '...'}}}
    """
    overrides: Dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(prefix + "_"):
            continue
        parts = key.removeprefix(prefix).strip("_").lower().split("__")

        # Secrets and ids stay strings even when they look numeric
        if parts[-1] in ("bot_token", "chat_id", "api_key"):
            parsed_value: Any = value
        elif (value.startswith('[') and value.endswith(']')) or \
             (value.startswith('{') and value.endswith('}')) or \
             value.lower() in ['true', 'false', 'null'] or \
             value.lstrip('-').replace('.', '', 1).isdigit():
            try:
                parsed_value = json.loads(value)
            except json.JSONDecodeError:
                parsed_value = value
        else:
            parsed_value = value

        d = overrides
        for part in parts[:-1]:
            d = d.setdefault(part, {})
        d[parts[-1]] = parsed_value
    return overrides

def _merge_configs(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    """
    Recursively merges the override dict into the base dict.
    Overwrites values, dictionaries, and lists.
    """
    for key, value in overrides.items():
        if isinstance(value, dict) and key in base and isinstance(base[key], dict):
            base[key] = _merge_configs(base[key], value)
        else:
            base[key] = value
    return base

def _validate(config: Dict[str, Any]) -> Settings:
    try:
        return Settings.model_validate(config)
    except ValidationError as e:
        error_details = e.errors()
        error_msg = f"Configuration validation failed with {len(error_details)} error(s):\n"
        for error in error_details:
            loc = " -> ".join(map(str, error['loc'])) if error['loc'] else "root"
            error_msg += f"  - Location: {loc}\n    Message: {error['msg']}\n"
        logger.error(error_msg)
        raise ConfigError("Failed to validate settings.") from e

# --- Public API ---

def settings_from_dict(config: Optional[Dict[str, Any]] = None, *, use_env: bool = True) -> Settings:
    """Validate an in-memory mapping, optionally overlaid with environment overrides."""
    merged = copy.deepcopy(config or {})
    if use_env:
        merged = _merge_configs(merged, _get_env_overrides())
    return _validate(merged)

def load_settings(path: str = "settings.yaml") -> Settings:
    """
    Loads, validates, and returns the application settings.

    1. Loads the base configuration from the specified YAML file.
    2. Scans environment variables for overrides (prefixed with "HOLDER_GRAPH_").
    3. Merges the environment overrides into the base configuration.
    4. Validates the final configuration against the `Settings` model.

    Raises:
        ConfigError: If the file is not found, cannot be parsed, or if
                     validation fails.
    """
    logger.info(f"Loading settings from '{path}'...")
    yaml_config = _load_config_from_yaml(Path(path))
    settings = settings_from_dict(yaml_config)
    logger.success("Settings loaded and validated successfully.")
    return settings


__all__ = [
    "ConfigError", "ProviderSettings", "MarketSettings", "AnalysisSettings", "LayoutSettings", "ColorSettings",
    "RenderSettings", "CacheSettings", "PersistenceSettings", "LoggingSettings",
    "TelegramSettings", "TransportSettings", "Settings", "settings_from_dict", "load_settings",
]
