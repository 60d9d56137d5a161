"""YAML configuration loader with environment variable overrides.

# ─── CONFIGURATION HIERARCHY ──────────────────────────────────────────
#
# Configuration is loaded in layers (later layers override earlier):
#
#   1. config/config.yaml  - Static defaults checked into the repo
#   2. .env file           - Local developer overrides (not committed)
#   3. Environment vars    - Set at deploy time
#
# load_config() reads the YAML file first, then deep-merges values from
# Settings on top.  The one exception is the storage host allow-list:
# YAML hosts and env hosts are unioned, so a deployment can add a bucket
# host without restating the defaults.
# ──────────────────────────────────────────────────────────────────────
"""

from pathlib import Path

import yaml

from mediaingest.config.settings import Settings


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> dict:
    """Load YAML config and merge with environment-based Settings.

    Args:
        path: Path to the YAML configuration file.
        settings: Settings instance to merge; a fresh one is built when omitted.

    Returns:
        Fully resolved configuration dictionary.
    """
    config_path = Path(path)
    if config_path.exists():
        with open(config_path) as f:
            yaml_config = yaml.safe_load(f) or {}
    else:
        yaml_config = {}

    settings = settings or Settings()

    yaml_hosts = yaml_config.get("url_import", {}).get("allowed_hosts", []) or []
    allowed_hosts = list(dict.fromkeys([*yaml_hosts, *settings.url_allowed_hosts]))

    env_overrides = {
        "app": {
            "host": settings.app_host,
            "port": settings.app_port,
            "env": settings.app_env,
        },
        "provider": {
            "name": "gemini",
            "base_url": settings.provider_base_url,
            "configured": settings.provider_configured(),
            "timeout_seconds": settings.provider_timeout_seconds,
        },
        "polling": {
            "interval_seconds": settings.poll_interval_seconds,
            "max_attempts": settings.poll_max_attempts,
        },
        "upload": {
            "max_bytes": settings.upload_max_bytes,
        },
        "url_import": {
            "max_bytes": settings.url_import_max_bytes,
            "allowed_hosts": allowed_hosts,
            "timeout_seconds": settings.url_fetch_timeout_seconds,
        },
        "credentials": {
            "ttl_seconds": settings.credential_ttl_seconds,
            "cache_size": settings.credential_cache_size,
        },
        "logging": {
            "level": settings.log_level,
        },
    }

    _deep_merge(yaml_config, env_overrides)
    return yaml_config


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
