"""
Service configuration for TraceMask.

Uses Pydantic Settings for environment variable handling and validation.
A YAML config file provides defaults; environment variables override it.
"""

import json
import os
from functools import lru_cache
from typing import Any, Dict, List, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .core.policy import PrivacyLevel
from .log import LOG_FORMATS


CONFIG_ENV_VAR = "TRACEMASK_CONFIG"
DEFAULT_CONFIG_PATHS = ("config.yaml", "../../config.yaml", "../../../config.yaml")


def load_config_file(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Read the YAML config file into a dict.

    Without an explicit path, ``$TRACEMASK_CONFIG`` is tried first, then
    ``config.yaml`` in the working directory and two levels up. A missing
    or empty file yields ``{}``.
    """
    if config_path:
        candidates = [config_path]
    else:
        candidates = [os.environ.get(CONFIG_ENV_VAR, ""), *DEFAULT_CONFIG_PATHS]

    path = next((c for c in candidates if c and os.path.isfile(c)), None)
    if path is None:
        return {}

    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


class MaskingSettings(BaseSettings):
    """Masking policy configuration for the analytics path."""

    level: PrivacyLevel = Field(
        default=PrivacyLevel.LOCKED,
        description="Privacy level: open, restricted or locked"
    )
    mask_query_literals: bool = Field(
        default=True,
        description="Mask string and numeric literals in GraphQL query text"
    )
    unmasked_headers: List[str] = Field(
        default_factory=list,
        description="Header names left unmasked at restricted level"
    )
    unmasked_query_params: List[str] = Field(
        default_factory=list,
        description="URL query parameter names left unmasked at restricted level"
    )
    unmasked_body_fields: List[str] = Field(
        default_factory=list,
        description="Body and GraphQL variable keys left unmasked at restricted level"
    )
    max_depth: int = Field(
        default=64,
        ge=1,
        le=256,
        description="Nesting depth beyond which whole subtrees are masked"
    )

    @field_validator("level", mode="before")
    def parse_level(cls, v: Any) -> Any:
        """Accept any casing and the none/private/sensitive aliases."""
        if isinstance(v, str):
            return PrivacyLevel(v.strip())
        return v

    @field_validator("unmasked_headers", "unmasked_query_params", "unmasked_body_fields", mode="before")
    def parse_key_list(cls, v: Any) -> List[str]:
        """Accept a JSON list or a comma separated string."""
        if v is None:
            return []
        if isinstance(v, str):
            stripped = v.strip()
            if stripped.startswith("["):
                try:
                    parsed = json.loads(stripped)
                except json.JSONDecodeError:
                    return []
                return [str(item) for item in parsed] if isinstance(parsed, list) else []
            return [item.strip() for item in stripped.split(",") if item.strip()]
        return [str(item) for item in v]

    model_config = SettingsConfigDict(env_prefix="TRACEMASK_MASKING_")


class DiagnosticsSettings(BaseSettings):
    """Unmasked diagnostic logging configuration."""

    enabled: bool = Field(default=True, description="Emit diagnostic log lines for traced events")
    min_level: str = Field(default="debug", description="Minimum level: debug, info, error or critical")
    body_decoder: str = Field(default="pretty_json", description="Body rendering: pretty_json, utf8 or size_only")

    @field_validator("min_level")
    def validate_min_level(cls, v: str) -> str:
        """Restrict to the supported threshold names."""
        value = v.lower()
        if value not in {"debug", "info", "error", "critical"}:
            raise ValueError(f"Unsupported diagnostics level '{v}'")
        return value

    @field_validator("body_decoder")
    def validate_body_decoder(cls, v: str) -> str:
        """Restrict to the known body decoders."""
        value = v.lower()
        if value not in {"pretty_json", "utf8", "size_only"}:
            raise ValueError(f"Unsupported body decoder '{v}'")
        return value

    model_config = SettingsConfigDict(env_prefix="TRACEMASK_DIAGNOSTICS_")


class SinkSettings(BaseSettings):
    """Analytics sink configuration."""

    endpoint_url: str = Field(default="", description="Analytics collector URL; empty keeps events in memory")
    timeout_seconds: int = Field(default=30, description="Request timeout")
    max_retries: int = Field(default=3, description="Maximum retry attempts")
    backoff_seconds: List[int] = Field(default=[5, 10, 20], description="Backoff intervals")
    batch_max_events: int = Field(default=500, description="Maximum events per upload")
    buffer_max_events: int = Field(default=10000, description="Maximum buffered events before dropping oldest")
    flush_interval_seconds: int = Field(default=30, description="Interval between background flushes")

    model_config = SettingsConfigDict(env_prefix="TRACEMASK_SINK_")


class Settings(BaseSettings):
    """Main application settings."""

    # Server configuration
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")
    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="INFO", description="Log level")
    log_format: str = Field(default="console", description="Log rendering: console or json")

    # Component settings
    masking: MaskingSettings = Field(default_factory=MaskingSettings)
    diagnostics: DiagnosticsSettings = Field(default_factory=DiagnosticsSettings)
    sink: SinkSettings = Field(default_factory=SinkSettings)

    @field_validator("log_format")
    def validate_log_format(cls, v: str) -> str:
        value = v.lower()
        if value not in LOG_FORMATS:
            raise ValueError(f"Unsupported log format '{v}'")
        return value

    model_config = SettingsConfigDict(env_prefix="TRACEMASK_", case_sensitive=False)


@lru_cache()
def get_settings() -> Settings:
    """Settings from the YAML file, with environment variables taking precedence."""
    file_values = load_config_file()
    if file_values:
        _set_env_from_config(file_values)
    return Settings()


def _set_env_from_config(config_data: Dict[str, Any]) -> None:
    """Set environment variables from config file if not already set."""
    mappings = {
        ("server", "host"): "TRACEMASK_HOST",
        ("server", "port"): "TRACEMASK_PORT",
        ("server", "debug"): "TRACEMASK_DEBUG",
        ("server", "log_level"): "TRACEMASK_LOG_LEVEL",
        ("server", "log_format"): "TRACEMASK_LOG_FORMAT",
        ("masking", "level"): "TRACEMASK_MASKING_LEVEL",
        ("masking", "mask_query_literals"): "TRACEMASK_MASKING_MASK_QUERY_LITERALS",
        ("masking", "max_depth"): "TRACEMASK_MASKING_MAX_DEPTH",
        ("diagnostics", "enabled"): "TRACEMASK_DIAGNOSTICS_ENABLED",
        ("diagnostics", "min_level"): "TRACEMASK_DIAGNOSTICS_MIN_LEVEL",
        ("diagnostics", "body_decoder"): "TRACEMASK_DIAGNOSTICS_BODY_DECODER",
        ("sink", "endpoint_url"): "TRACEMASK_SINK_ENDPOINT_URL",
        ("sink", "timeout_seconds"): "TRACEMASK_SINK_TIMEOUT_SECONDS",
        ("sink", "max_retries"): "TRACEMASK_SINK_MAX_RETRIES",
        ("sink", "batch_max_events"): "TRACEMASK_SINK_BATCH_MAX_EVENTS",
        ("sink", "buffer_max_events"): "TRACEMASK_SINK_BUFFER_MAX_EVENTS",
        ("sink", "flush_interval_seconds"): "TRACEMASK_SINK_FLUSH_INTERVAL_SECONDS",
    }

    for (section, key), env_var in mappings.items():
        if env_var not in os.environ:
            value = (config_data.get(section) or {}).get(key)
            if value is not None:
                os.environ[env_var] = str(value)

    # List-valued settings travel as JSON strings
    list_mappings = {
        ("masking", "unmasked_headers"): "TRACEMASK_MASKING_UNMASKED_HEADERS",
        ("masking", "unmasked_query_params"): "TRACEMASK_MASKING_UNMASKED_QUERY_PARAMS",
        ("masking", "unmasked_body_fields"): "TRACEMASK_MASKING_UNMASKED_BODY_FIELDS",
        ("sink", "backoff_seconds"): "TRACEMASK_SINK_BACKOFF_SECONDS",
    }

    for (section, key), env_var in list_mappings.items():
        if env_var not in os.environ:
            value = (config_data.get(section) or {}).get(key)
            if value:
                os.environ[env_var] = json.dumps(value)


def reload_settings() -> Settings:
    """Reload settings (clears cache)."""
    get_settings.cache_clear()
    return get_settings()
