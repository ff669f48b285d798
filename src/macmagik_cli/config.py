"""CLI configuration management.

Handles persistent configuration stored in ~/.macmagik/config.yaml.
Supports environment variable overrides and CLI flag precedence.
"""

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from .shared.paths import CONFIG_FILE

# Default values
DEFAULT_DOMAIN = "kubernetes.docker.internal"
DEFAULT_LOOPBACK = "127.0.0.1"
DEFAULT_HOSTS_FILE = "/etc/hosts"
DEFAULT_KEYCHAIN = "/Library/Keychains/System.keychain"
DEFAULT_TLS_SECRET = "default-tls"

ENV_PREFIX = "MACMAGIK_"


@dataclass
class BootstrapConfig:
    """Effective configuration for one macmagik run."""

    domain: str = DEFAULT_DOMAIN
    loopback_address: str = DEFAULT_LOOPBACK
    hosts_file: str = DEFAULT_HOSTS_FILE
    keychain: str = DEFAULT_KEYCHAIN
    tls_secret_name: str = DEFAULT_TLS_SECRET
    cert_validity_days: int = 365
    ready_timeout: int = 300
    poll_interval: float = 2.0
    grafana_admin_password: str = "admin123"
    metrics_retention: str = "30d"
    monitoring: bool = True
    extra_hostnames: list[str] = field(default_factory=list)
    kubeconfig: str | None = None
    log_level: str = "warning"
    non_interactive: bool = False

    # Track where each value came from
    _sources: dict[str, str] = field(default_factory=dict, repr=False)

    @property
    def wildcard(self) -> str:
        return f"*.{self.domain}"

    def host(self, name: str) -> str:
        """Fully qualified hostname for a subdomain."""
        return f"{name}.{self.domain}"

    def get_source(self, key: str) -> str:
        """Get the source of a config value."""
        return self._sources.get(key, "default")

    def as_dict(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in config_keys()}


def config_keys() -> list[str]:
    """Public configuration keys, in declaration order."""
    return [f.name for f in fields(BootstrapConfig) if not f.name.startswith("_")]


def get_config_path() -> Path:
    """Get the CLI config file path.

    Returns:
        Path to ~/.macmagik/config.yaml
    """
    return CONFIG_FILE


def _coerce(key: str, value: Any) -> Any:
    """Convert a raw file/env value to the field's type."""
    default = getattr(BootstrapConfig(), key)
    if key == "kubeconfig":
        return str(value) if value else None
    if isinstance(default, bool):
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes", "on")
        return bool(value)
    if isinstance(default, int):
        return int(value)
    if isinstance(default, float):
        return float(value)
    if isinstance(default, list):
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return [str(item) for item in value]
    return str(value)


def load_config(path: str | Path | None = None, **overrides: Any) -> BootstrapConfig:
    """Load configuration.

    Precedence (highest to lowest):
    1. Explicit overrides (CLI flags); None values are ignored
    2. Environment variables (MACMAGIK_<KEY>)
    3. Config file (~/.macmagik/config.yaml or ``path``)
    4. Defaults

    Args:
        path: Optional config file path.
        **overrides: Values from CLI flags.

    Returns:
        BootstrapConfig with values and sources
    """
    config = BootstrapConfig()
    keys = config_keys()
    sources: dict[str, str] = {key: "default" for key in keys}

    # Load from config file
    config_path = Path(path) if path else get_config_path()
    if config_path.exists():
        try:
            with open(config_path) as f:
                file_config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ValueError(f"Cannot read config file {config_path}: {e}") from e

        for key in keys:
            if key in file_config:
                setattr(config, key, _coerce(key, file_config[key]))
                sources[key] = "config file"

    # Override with environment variables
    for key in keys:
        raw = os.environ.get(f"{ENV_PREFIX}{key.upper()}")
        if raw:
            try:
                setattr(config, key, _coerce(key, raw))
                sources[key] = "environment"
            except ValueError:
                pass  # Keep the lower-precedence value on malformed env

    # CLI flags
    for key, value in overrides.items():
        if value is not None and key in keys:
            setattr(config, key, value)
            sources[key] = "flag"

    config._sources = sources
    return config
