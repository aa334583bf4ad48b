"""
Configuration management for Edgeboard.

Loads configuration from YAML files and environment variables.
Environment variables take precedence over YAML config.
"""

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class FeedConfig(BaseSettings):
    """Upstream Gamma feed configuration."""

    base_url: str = "https://gamma-api.polymarket.com"
    page_size: int = Field(default=100, ge=1, le=500)
    request_timeout_seconds: float = Field(default=30.0, gt=0)
    refresh_timeout_seconds: float = Field(default=120.0, gt=0)


class CacheConfig(BaseSettings):
    """Snapshot cache configuration."""

    ttl_seconds: float = Field(default=45.0, ge=1.0, le=3600.0)


class QualityGatesConfig(BaseSettings):
    """Hard exclusion thresholds applied during normalization."""

    min_liquidity: float = 10000
    min_volume_24hr: float = 1000
    min_price: float = 0.05
    max_price: float = 0.95


class EdgeWeightsConfig(BaseSettings):
    """Weights of the four edge signals. Expected to sum to 1."""

    prob_deviation: float = Field(default=0.30, ge=0.0)
    liquidity: float = Field(default=0.30, ge=0.0)
    volume: float = Field(default=0.20, ge=0.0)
    time_pressure: float = Field(default=0.20, ge=0.0)

    @model_validator(mode="after")
    def validate_total(self) -> "EdgeWeightsConfig":
        """Keep the edge score on a 0-100 scale."""
        total = self.prob_deviation + self.liquidity + self.volume + self.time_pressure
        if abs(total - 1.0) > 1e-6:
            raise ValueError(f"edge weights must sum to 1.0, got {total:.4f}")
        return self


class ColumnsConfig(BaseSettings):
    """Curated column configuration."""

    max_per_column: int = Field(default=20, ge=1)


class ArbConfig(BaseSettings):
    """Cross-venue price gap scan configuration."""

    enabled: bool = True
    kalshi_url: str = "https://trading-api.kalshi.com/trade-api/v2"
    market_limit: int = 200
    min_gap: float = 0.03
    max_results: int = 20
    request_timeout_seconds: float = 10.0


class APIConfig(BaseSettings):
    """API server configuration."""

    host: str = "0.0.0.0"
    port: int = 8877
    debug: bool = False
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: Any) -> list[str]:
        """Parse CORS origins from various formats."""
        if isinstance(v, list):
            return v
        if isinstance(v, str):
            # Try to parse as JSON first
            try:
                parsed = json.loads(v)
                if isinstance(parsed, list):
                    return parsed
            except (json.JSONDecodeError, TypeError):
                pass
            if "," in v:
                return [origin.strip() for origin in v.split(",")]
            return [v]
        return ["*"]


class LoggingConfig(BaseSettings):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "json"

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Only json and console renderers are supported."""
        if v.lower() not in {"json", "console"}:
            raise ValueError("logging format must be 'json' or 'console'")
        return v.lower()


class Settings(BaseSettings):
    """
    Main settings class for Edgeboard.

    Settings are loaded from:
    1. Default values
    2. config/config.yaml
    3. Environment variables (highest priority)
    """

    model_config = SettingsConfigDict(
        env_prefix="",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    environment: str = Field(default="development")

    feed: FeedConfig = Field(default_factory=FeedConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    quality_gates: QualityGatesConfig = Field(default_factory=QualityGatesConfig)
    edge_weights: EdgeWeightsConfig = Field(default_factory=EdgeWeightsConfig)
    columns: ColumnsConfig = Field(default_factory=ColumnsConfig)
    arb: ArbConfig = Field(default_factory=ArbConfig)
    api: APIConfig = Field(default_factory=APIConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment value."""
        allowed = {"development", "staging", "production", "test"}
        if v.lower() not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v.lower()


def load_yaml_config(config_path: Path | None = None) -> dict[str, Any]:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to config file. Defaults to config/config.yaml

    Returns:
        Dictionary with configuration values
    """
    if config_path is None:
        possible_paths = [
            Path("config/config.yaml"),
            Path("../config/config.yaml"),
            Path(__file__).parent.parent / "config" / "config.yaml",
        ]
        for path in possible_paths:
            if path.exists():
                config_path = path
                break

    if config_path is None or not config_path.exists():
        return {}

    with open(config_path) as f:
        return yaml.safe_load(f) or {}


def flatten_dict(d: dict[str, Any], parent_key: str = "", sep: str = "__") -> dict[str, Any]:
    """
    Flatten a nested dictionary for environment variable style keys.

    Args:
        d: Dictionary to flatten
        parent_key: Parent key prefix
        sep: Separator between keys

    Returns:
        Flattened dictionary
    """
    items: list[tuple[str, Any]] = []
    for k, v in d.items():
        new_key = f"{parent_key}{sep}{k}" if parent_key else k
        if isinstance(v, dict):
            items.extend(flatten_dict(v, new_key, sep).items())
        else:
            items.append((new_key, v))
    return dict(items)


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    YAML values are exported as environment variables unless the
    variable is already set, so real environment always wins.

    Returns:
        Settings instance
    """
    yaml_config = load_yaml_config()
    flat_config = flatten_dict(yaml_config)
    env_style_config = {k.upper(): v for k, v in flat_config.items()}

    for key, value in env_style_config.items():
        if key not in os.environ and value is not None:
            if isinstance(value, (list, dict)):
                os.environ[key] = json.dumps(value)
            elif isinstance(value, bool):
                os.environ[key] = str(value).lower()
            else:
                os.environ[key] = str(value)

    return Settings()


def reset_settings() -> None:
    """Reset cached settings. Useful for testing."""
    get_settings.cache_clear()
