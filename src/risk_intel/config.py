"""Configuration management for risk-intel.

This module provides the typed engine configuration, loaders that read it
from environment variables and JSON / YAML / TOML files, and the logging
setup driven by ``LOG_LEVEL``.
"""

import json
import logging
import os
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import toml
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError, model_validator

from risk_intel.errors import ConfigurationError

logger = logging.getLogger(__name__)


class CacheBackendType(str, Enum):
    """Supported cache storage backends."""
    MEMORY = "memory"
    REDIS = "redis"
    KV = "kv"


class ConfigFormat(str, Enum):
    """Configuration file formats."""
    JSON = "json"
    YAML = "yaml"
    TOML = "toml"


class IntelConfig(BaseModel):
    """Engine configuration.

    Field names are the lower-cased environment variable names, so
    ``CACHE_TTL_MS`` populates ``cache_ttl_ms``. Durations keep the
    millisecond units of their variables; the ``*_seconds`` properties
    convert them for the services.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    # Provider credentials
    ipinfo_token: Optional[str] = None
    cloudflare_account_id: Optional[str] = None
    cloudflare_radar_token: Optional[str] = None
    abuseipdb_api_key: Optional[str] = None

    enable_threat_intel: bool = True

    # Cache
    cache_backend: CacheBackendType = CacheBackendType.MEMORY
    cache_ttl_ms: int = Field(default=300_000, gt=0)
    cache_stale_ttl_ms: int = Field(default=1_800_000, gt=0)
    cache_ttl_threats_ms: int = Field(default=3_600_000, gt=0)
    cache_ttl_asn_ms: int = Field(default=86_400_000, gt=0)
    cache_max_items: int = Field(default=500, gt=0)
    redis_url: Optional[str] = None
    kv_namespace_id: Optional[str] = None
    kv_api_token: Optional[str] = None

    # Warming
    cache_warming_enabled: bool = True
    cache_warming_delay_ms: int = Field(default=100, ge=0)

    # Outbound HTTP
    client_timeout_ms: int = Field(default=2500, gt=0)
    client_retries: int = Field(default=3, ge=0)
    client_retry_delay_ms: int = Field(default=100, ge=0)

    # Concurrency
    dedup_ttl_ms: int = Field(default=5000, gt=0)
    max_background_tasks: int = Field(default=32, gt=0)

    log_level: str = "INFO"

    @model_validator(mode="after")
    def validate_providers(self) -> "IntelConfig":
        if not self.ipinfo_token and not (self.cloudflare_account_id and self.cloudflare_radar_token):
            raise ValueError(
                "Either IPINFO_TOKEN or both CLOUDFLARE_ACCOUNT_ID and "
                "CLOUDFLARE_RADAR_TOKEN must be provided"
            )
        if self.cache_stale_ttl_ms < self.cache_ttl_ms:
            raise ValueError("CACHE_STALE_TTL_MS must not be shorter than CACHE_TTL_MS")
        return self

    @property
    def cache_ttl_seconds(self) -> float:
        return self.cache_ttl_ms / 1000

    @property
    def cache_stale_ttl_seconds(self) -> float:
        return self.cache_stale_ttl_ms / 1000

    @property
    def threat_ttl_seconds(self) -> float:
        return self.cache_ttl_threats_ms / 1000

    @property
    def asn_ttl_seconds(self) -> float:
        return self.cache_ttl_asn_ms / 1000

    @property
    def client_timeout_seconds(self) -> float:
        return self.client_timeout_ms / 1000

    @property
    def warming_delay_seconds(self) -> float:
        return self.cache_warming_delay_ms / 1000

    @property
    def radar_configured(self) -> bool:
        return bool(self.cloudflare_account_id and self.cloudflare_radar_token)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "IntelConfig":
        """Build a config from a mapping, raising ConfigurationError on invalid input."""
        normalized = {str(key).lower(): value for key, value in data.items()}
        try:
            return cls(**normalized)
        except PydanticValidationError as e:
            raise ConfigurationError(
                f"Invalid configuration: {e.errors()[0].get('msg', e)}",
                debug_info={"errors": json.loads(e.json())},
            ) from e

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, prefix: str = "") -> "IntelConfig":
        """Load configuration from environment variables."""
        return cls.from_mapping(_read_environment(environ, prefix))

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "IntelConfig":
        """Load configuration from a JSON, YAML or TOML file."""
        return cls.from_mapping(_read_file(Path(path)))


def _read_environment(environ: Optional[Mapping[str, str]], prefix: str) -> Dict[str, Any]:
    environ = os.environ if environ is None else environ
    fields = IntelConfig.model_fields
    config = {}
    for key, value in environ.items():
        if prefix:
            if not key.upper().startswith(prefix.upper()):
                continue
            key = key[len(prefix):]
        name = key.lower()
        # Empty variables count as unset
        if name in fields and value != "":
            config[name] = value
    return config


def _detect_format(path: Path) -> ConfigFormat:
    format_map = {
        '.json': ConfigFormat.JSON,
        '.yaml': ConfigFormat.YAML,
        '.yml': ConfigFormat.YAML,
        '.toml': ConfigFormat.TOML,
    }
    try:
        return format_map[path.suffix.lower()]
    except KeyError:
        raise ConfigurationError(f"Unsupported configuration file format: {path.suffix or path.name}")


def _read_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {path}")

    file_format = _detect_format(path)
    content = path.read_text(encoding="utf-8")
    try:
        if file_format == ConfigFormat.JSON:
            data = json.loads(content)
        elif file_format == ConfigFormat.YAML:
            data = yaml.safe_load(content) or {}
        else:
            data = toml.loads(content)
    except (ValueError, yaml.YAMLError) as e:
        logger.error(f"Failed to load config from {path}: {e}")
        raise ConfigurationError(f"Unable to parse configuration file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration file {path} must contain a mapping")
    return data


def load_config(
    path: Optional[Union[str, Path]] = None,
    environ: Optional[Mapping[str, str]] = None,
    prefix: str = "",
) -> IntelConfig:
    """Load configuration from an optional file, overridden by the environment."""
    data: Dict[str, Any] = {}
    if path is not None:
        data.update({str(k).lower(): v for k, v in _read_file(Path(path)).items()})
    data.update(_read_environment(environ, prefix))
    return IntelConfig.from_mapping(data)


def configure_logging(level: str = "INFO") -> None:
    """Apply the configured log level to the package loggers."""
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        logger.warning(f"Unknown log level {level!r}, falling back to INFO")
        numeric = logging.INFO

    logging.basicConfig(
        level=numeric,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("risk_intel").setLevel(numeric)
