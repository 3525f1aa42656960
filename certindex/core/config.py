"""
Configuration system for certindex.

Loads YAML configuration files and provides typed access to settings.
Uses Pydantic v2 for validation and immutable config objects.

Configuration Hierarchy (highest priority first):
1. CLI arguments (passed to load_config)
2. Environment variables (CERTINDEX_*)
3. YAML configuration file
4. Pydantic field defaults
"""

import os
import re
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from certindex.core.models import DEFAULT_EXCLUDED_FIELDS
from certindex.errors import ConfigError

_SECTIONS = {"storage", "search", "logging"}
_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class StorageConfig(BaseModel):
    """Where and how records are persisted."""

    model_config = ConfigDict(frozen=True)

    backend: Literal["sqlite", "memory"] = Field(default="sqlite", description="Record store backend")
    db_path: Path = Field(default=Path(".certindex/identity.db"), description="SQLite database file")
    collection: str = Field(default="identityRecords", description="Collection (table) name")
    timeout: float = Field(default=5.0, gt=0, description="Seconds to wait on a locked database")

    @field_validator("collection")
    @classmethod
    def validate_collection(cls, v: str) -> str:
        if not _IDENTIFIER_RE.match(v):
            raise ValueError(f"collection must be a plain identifier, got {v!r}")
        return v


class SearchConfig(BaseModel):
    """Free-text search settings."""

    model_config = ConfigDict(frozen=True)

    excluded_fields: list[str] = Field(
        default_factory=lambda: list(DEFAULT_EXCLUDED_FIELDS),
        description="Certificate fields left out of searchable attributes",
    )


class LoggingConfig(BaseModel):
    """Diagnostic logging and audit trail."""

    model_config = ConfigDict(frozen=True)

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="WARNING")
    to_file: Optional[Path] = Field(default=None, description="Also write diagnostics to this file")
    audit_db: Optional[Path] = Field(default=None, description="Audit log database (disabled when unset)")

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.strip().upper()
            return "WARNING" if v == "WARN" else v
        return v


class CertIndexConfig(BaseModel):
    """Central configuration object."""

    model_config = ConfigDict(frozen=True)

    storage: StorageConfig = Field(default_factory=StorageConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_yaml(cls, path: Path) -> "CertIndexConfig":
        """Load configuration from YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}

        return cls.from_dict(data, base_path=Path(path).parent)

    @classmethod
    def from_dict(cls, data: dict, base_path: Optional[Path] = None) -> "CertIndexConfig":
        """Create from dictionary, resolving relative paths against base_path.

        Raises:
            ConfigError: If validation fails
        """
        base_path = base_path or Path(".")
        storage = dict(data.get("storage") or {})
        logging_cfg = dict(data.get("logging") or {})

        if storage.get("db_path"):
            storage["db_path"] = _resolve(base_path, storage["db_path"])
        for key in ("to_file", "audit_db"):
            if logging_cfg.get(key):
                logging_cfg[key] = _resolve(base_path, logging_cfg[key])

        try:
            return cls.model_validate({
                "storage": storage,
                "search": data.get("search") or {},
                "logging": logging_cfg,
            })
        except ValidationError as exc:
            raise ConfigError(str(exc)) from exc


def _resolve(base_path: Path, value: Union[str, Path]) -> Path:
    path = Path(str(value)).expanduser()
    return path if path.is_absolute() else base_path / path


def load_config(
    path: Optional[Path] = None,
    env_prefix: str = "CERTINDEX_",
    cli_overrides: Optional[Dict[str, Any]] = None,
    use_env: bool = True,
) -> CertIndexConfig:
    """Load configuration with hierarchy: defaults → YAML → env vars → CLI args.

    Args:
        path: Optional explicit path to YAML config file
        env_prefix: Prefix for environment variables (default: "CERTINDEX_")
        cli_overrides: Optional dictionary of CLI argument overrides
        use_env: Whether to load environment variables (default: True)

    Returns:
        Merged CertIndexConfig

    Raises:
        ConfigError: If an explicit path doesn't exist or values are invalid

    Examples:
        # Environment variable: CERTINDEX_STORAGE_DB_PATH=/var/lib/ids.db
        config = load_config()  # config.storage.db_path == Path("/var/lib/ids.db")
    """
    if path is not None and not Path(path).exists():
        raise ConfigError(f"Config file not found: {path}")

    yaml_path = _find_config_file(path)
    base_path = yaml_path.parent if yaml_path else Path(".")

    if yaml_path:
        try:
            with open(yaml_path) as f:
                config_dict = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {yaml_path}: {exc}") from exc
        if not isinstance(config_dict, dict):
            raise ConfigError(f"Config file must contain a mapping: {yaml_path}")
    else:
        config_dict = {}

    if use_env:
        _deep_merge(config_dict, _extract_env_config(env_prefix))

    if cli_overrides:
        _deep_merge(config_dict, cli_overrides)

    return CertIndexConfig.from_dict(config_dict, base_path=base_path)


def _find_config_file(path: Optional[Path] = None) -> Optional[Path]:
    """Find configuration file.

    Searches in this order:
    1. Provided path
    2. ./certindex.yaml
    3. ./config.yaml
    """
    if path and Path(path).exists():
        return Path(path)

    for filename in ["certindex.yaml", "config.yaml"]:
        config_path = Path(filename)
        if config_path.exists():
            return config_path

    return None


def _extract_env_config(prefix: str = "CERTINDEX_") -> Dict[str, Any]:
    """Extract configuration from environment variables.

    - CERTINDEX_STORAGE_DB_PATH=/tmp/x.db → {"storage": {"db_path": "/tmp/x.db"}}
    - CERTINDEX_LOGGING_LEVEL=DEBUG → {"logging": {"level": "DEBUG"}}
    - CERTINDEX_SEARCH_EXCLUDED_FIELDS=icon,avatar → {"search": {"excluded_fields": [...]}}

    Variables outside a known section are ignored.
    """
    config: Dict[str, Any] = {}

    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue

        parts = key[len(prefix):].lower().split("_")
        if len(parts) < 2 or parts[0] not in _SECTIONS:
            continue

        section = parts[0]
        field = "_".join(parts[1:])
        config.setdefault(section, {})[field] = _convert_env_value(value, field)

    return config


def _convert_env_value(value: str, field: str = "") -> Union[str, int, float, bool, List[str]]:
    """Convert environment variable string to appropriate type.

    Paths and levels stay strings; list fields split on commas.
    """
    if not value:
        return value

    if field in ("db_path", "to_file", "audit_db", "level", "backend", "collection"):
        return value

    if field == "excluded_fields":
        return [v.strip() for v in value.split(",") if v.strip()]

    if value.lower() in ("true", "yes", "on"):
        return True
    if value.lower() in ("false", "no", "off"):
        return False

    try:
        return int(value)
    except ValueError:
        pass

    try:
        return float(value)
    except ValueError:
        pass

    return value


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> None:
    """Deep merge override into base dictionary (mutates base).

    Examples:
        >>> base = {"a": {"b": 1, "c": 2}, "d": 3}
        >>> _deep_merge(base, {"a": {"b": 10}, "e": 5})
        >>> base
        {'a': {'b': 10, 'c': 2}, 'd': 3, 'e': 5}
    """
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
