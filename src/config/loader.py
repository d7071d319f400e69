"""YAML configuration loader with environment variable overrides.

# ─── CONFIGURATION HIERARCHY ───────────────────────────────────────────
#
# Configuration is loaded in layers (later layers override earlier):
#
#   1. config/config.yaml  - Static defaults checked into the repo
#                            (queue topology, search index field mapping)
#   2. .env file           - Local developer overrides (not committed)
#   3. Environment vars    - Set by the deployment
#
# load_config() reads the YAML file first, then deep-merges the
# environment-based values from Settings on top.
# ──────────────────────────────────────────────────────────────────────
"""

from pathlib import Path

import yaml

from src.config.settings import Settings


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> dict:
    """Load YAML config and merge with environment-based Settings.

    Environment variables (via Settings) override YAML values where keys overlap.

    Args:
        path: Path to the YAML configuration file.
        settings: Pre-built settings; a fresh ``Settings()`` when omitted.

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
    env_overrides = {
        "app": {
            "host": settings.app_host,
            "port": settings.app_port,
            "env": settings.app_env,
        },
        "queue": {
            "backend": settings.queue_backend,
            "exchange": settings.queue_exchange,
            "routing_key": settings.queue_routing_key,
            "queue": settings.queue_name,
            "stream": settings.queue_stream_key,
            "dead_letter_stream": settings.queue_dead_letter_key,
        },
        "search": {
            "snippet_length": settings.snippet_length,
            "max_query_length": settings.search_max_query_length,
            "default_max_results": settings.search_default_max_results,
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
