"""Configuration loading.

Settings come from environment variables, optionally layered over YAML files.
YAML keys are the environment variable names in lower case, e.g.::

    retry_attempts: 5
    use_traefik_labels: true
    traefik_default_record_type: CNAME
    traefik_default_content: origin.example.com

Environment variables:

    Cloudflare:
        CLOUDFLARE_TOKEN              API token (required)
        CLOUDFLARE_API_URL            API base URL (default: https://api.cloudflare.com/client/v4)

    Labels:
        DNS_LABEL_PREFIX              Label prefix (default: dns.cloudflare.)
        DEFAULT_RECORD_TYPE           Record type when labels omit it (default: A)
        DEFAULT_CONTENT               Content when labels omit it (default: public IP)
        DEFAULT_TTL                   TTL when labels omit it (default: 1, i.e. auto)
        DEFAULT_PROXIED               Proxied when labels omit it (default: true)

    Traefik:
        USE_TRAEFIK_LABELS            Derive hostnames from Host() router rules (default: false)
        TRAEFIK_DEFAULT_RECORD_TYPE   Record type for rule hostnames (default: A)
        TRAEFIK_DEFAULT_CONTENT       Content for rule hostnames (default: public IP)
        TRAEFIK_DEFAULT_PROXIED       Proxied for rule hostnames (default: true)
        TRAEFIK_DEFAULT_TTL           TTL for rule hostnames (default: 1)

    Runtime:
        RETRY_ATTEMPTS                Provider write attempts per task (default: 3)
        RETRY_DELAY_MS                Base retry backoff in ms (default: 300000)
        PROCESS_INTERVAL_SECONDS      Task queue pass interval (default: 5)
        IP_CHECK_INTERVAL_MS          Full rescan interval in ms (default: 3600000)
        SYNC_MODE                     "watch" or "once" (default: watch)
        LOG_LEVEL                     DEBUG, INFO, WARNING, ERROR (default: INFO)
        SWARM_DNS_CONFIG_PATH         YAML file or directory of *.yaml files (optional)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from .errors import ConfigError
from .labels import DEFAULT_LABEL_PREFIX
from .models import RECORD_TYPES, RecordDefaults
from .providers import CloudflareDNSProvider

logger = logging.getLogger(__name__)

SYNC_MODES = ("watch", "once")


@dataclass(frozen=True)
class Settings:
    cloudflare_token: str
    cloudflare_api_url: str = CloudflareDNSProvider.DEFAULT_BASE_URL
    label_prefix: str = DEFAULT_LABEL_PREFIX
    retry_attempts: int = 3
    retry_base_delay_ms: int = 300000
    process_interval_seconds: float = 5.0
    rescan_interval_ms: int = 3600000
    use_reverse_proxy_labels: bool = False
    defaults: RecordDefaults = field(default_factory=RecordDefaults)
    proxy_defaults: RecordDefaults = field(default_factory=RecordDefaults)
    sync_mode: str = "watch"
    log_level: str = "INFO"

    @property
    def retry_base_delay_seconds(self) -> float:
        return self.retry_base_delay_ms / 1000.0

    @property
    def rescan_interval_seconds(self) -> float:
        return self.rescan_interval_ms / 1000.0


# =============================================================================
# Utility Functions
# =============================================================================


def _parse_bool(value: Any, *, default: bool = True) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "y", "on"}


def find_config_files(config_path: str) -> List[str]:
    """Find all .yaml config files in directory or return single file.

    Args:
        config_path: Path to config file or directory

    Returns:
        List of config file paths, sorted (excluding .template files)
    """
    path = Path(config_path)
    if path.is_file():
        return [str(path)]
    if path.is_dir():
        yaml_files = sorted(path.glob("*.yaml"))
        return [str(f) for f in yaml_files if not f.name.endswith(".template")]
    return []


def load_config_files(config_path: str) -> Dict[str, Any]:
    """Merge YAML mappings from a config file or directory.

    Args:
        config_path: Path to config file or directory

    Returns:
        Merged settings keyed by upper-cased variable name; later files win

    Raises:
        ConfigError: A file cannot be read, is not valid YAML, or is not a mapping
    """
    merged: Dict[str, Any] = {}
    for config_file in find_config_files(config_path):
        try:
            with open(config_file, "r") as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError([f"Failed to load config from {config_file}: {e}"]) from e
        if data is None:
            continue
        if not isinstance(data, dict):
            raise ConfigError([f"Config file {config_file} must contain a mapping"])
        merged.update({str(k).upper(): v for k, v in data.items()})
        logger.debug(f"Loaded config file {config_file}")
    return merged


class _Reader:
    """Reads typed values from a mapping, collecting problems instead of failing fast."""

    def __init__(self, values: Mapping[str, Any]):
        self.values = values
        self.problems: List[str] = []

    def raw(self, *names: str) -> Optional[Any]:
        for name in names:
            value = self.values.get(name)
            if value is not None and str(value).strip() != "":
                return value
        return None

    def string(self, name: str, default: Optional[str] = None) -> Optional[str]:
        value = self.raw(name)
        return default if value is None else str(value).strip()

    def integer(self, *names: str, default: int, minimum: int = 1) -> int:
        value = self.raw(*names)
        if value is None:
            return default
        try:
            parsed = int(str(value).strip())
        except ValueError:
            self.problems.append(f"{names[0]} must be an integer, got '{value}'")
            return default
        if parsed < minimum:
            self.problems.append(f"{names[0]} must be >= {minimum}, got {parsed}")
            return default
        return parsed

    def boolean(self, name: str, default: bool) -> bool:
        return _parse_bool(self.raw(name), default=default)

    def record_type(self, name: str) -> str:
        value = self.string(name, "A").upper()
        if value not in RECORD_TYPES:
            self.problems.append(f"{name} must be one of {', '.join(RECORD_TYPES)}, got '{value}'")
            return "A"
        return value


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build validated settings. Raises ConfigError listing every problem."""
    env = dict(os.environ if environ is None else environ)
    values: Dict[str, Any] = {}
    config_path = env.get("SWARM_DNS_CONFIG_PATH", "").strip()
    if config_path:
        values.update(load_config_files(config_path))
    values.update({k: v for k, v in env.items() if v is not None})

    reader = _Reader(values)
    token = reader.string("CLOUDFLARE_TOKEN")
    if not token:
        reader.problems.append("Missing required environment variable: CLOUDFLARE_TOKEN")

    defaults = RecordDefaults(
        record_type=reader.record_type("DEFAULT_RECORD_TYPE"),
        content=reader.string("DEFAULT_CONTENT"),
        ttl=reader.integer("DEFAULT_TTL", default=1),
        proxied=reader.boolean("DEFAULT_PROXIED", True),
    )
    proxy_defaults = RecordDefaults(
        record_type=reader.record_type("TRAEFIK_DEFAULT_RECORD_TYPE"),
        content=reader.string("TRAEFIK_DEFAULT_CONTENT"),
        ttl=reader.integer("TRAEFIK_DEFAULT_TTL", default=1),
        proxied=reader.boolean("TRAEFIK_DEFAULT_PROXIED", True),
    )
    if proxy_defaults.record_type == "CNAME" and not proxy_defaults.content:
        reader.problems.append(
            "TRAEFIK_DEFAULT_CONTENT is required when the Traefik record type is CNAME"
        )

    sync_mode = reader.string("SYNC_MODE", "watch").lower()
    if sync_mode not in SYNC_MODES:
        reader.problems.append(f"Invalid SYNC_MODE: {sync_mode}. Use 'once' or 'watch'")

    settings = Settings(
        cloudflare_token=token or "",
        cloudflare_api_url=reader.string(
            "CLOUDFLARE_API_URL", CloudflareDNSProvider.DEFAULT_BASE_URL
        ),
        label_prefix=reader.string("DNS_LABEL_PREFIX", DEFAULT_LABEL_PREFIX),
        retry_attempts=reader.integer("RETRY_ATTEMPTS", default=3),
        retry_base_delay_ms=reader.integer(
            "RETRY_DELAY_MS", "RETRY_DELAY", default=300000, minimum=0
        ),
        process_interval_seconds=float(reader.integer("PROCESS_INTERVAL_SECONDS", default=5)),
        rescan_interval_ms=reader.integer(
            "IP_CHECK_INTERVAL_MS", "IP_CHECK_INTERVAL", default=3600000
        ),
        use_reverse_proxy_labels=reader.boolean("USE_TRAEFIK_LABELS", False),
        defaults=defaults,
        proxy_defaults=proxy_defaults,
        sync_mode=sync_mode,
        log_level=reader.string("LOG_LEVEL", "INFO").upper(),
    )

    if reader.problems:
        raise ConfigError(reader.problems)
    return settings
