from __future__ import annotations

"""Configuration loader for the dashboard client.

Settings come from built-in defaults, an optional JSON file and a handful of
environment variables, in that order. The file is optional; sensible defaults
are used when it is missing or unreadable.
"""

from pathlib import Path
from typing import Any, Dict
import json
import logging
import os

from .client import API_BASE

# Configuration lives next to this file to keep paths predictable
CONFIG_FILE = Path(__file__).resolve().with_name("monitor_config.json")

# environment variable -> (config key, converter)
ENV_OVERRIDES = {
    "NEONGINX_URL": ("base_url", str),
    "NEONGINX_INTERVAL": ("interval_s", float),
    "NEONGINX_TIMEOUT": ("timeout_s", float),
    "NEONGINX_SESSION_FILE": ("session_file", str),
}

logger = logging.getLogger(__name__)


def default_config() -> Dict[str, Any]:
    return {
        "base_url": "http://localhost",
        "api_base": API_BASE,
        "interval_s": 1.0,
        "timeout_s": 5.0,
        "session_file": None,
    }


def load_config(path: Path | None = None, default: Dict[str, Any] | None = None) -> Dict[str, Any]:
    """Load configuration from ``path`` and the environment.

    If the file is absent or malformed it is skipped. ``default`` is copied to
    avoid mutating the caller's data.
    """
    cfg_path = path or CONFIG_FILE
    config = default_config()
    if default:
        config.update(default)
    if cfg_path.exists():
        try:
            with cfg_path.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
            if isinstance(data, dict):
                config.update(data)
            else:
                logger.warning("ignoring %s: expected a JSON object", cfg_path)
        except (OSError, ValueError) as exc:
            logger.warning("ignoring unreadable config %s: %s", cfg_path, exc)

    for env_name, (key, convert) in ENV_OVERRIDES.items():
        raw = os.getenv(env_name)
        if raw is None or raw == "":
            continue
        try:
            config[key] = convert(raw)
        except ValueError:
            logger.warning("ignoring %s=%r: not a valid %s", env_name, raw, convert.__name__)
    return config


def save_config(config: Dict[str, Any], path: Path | None = None) -> None:
    """Persist ``config`` to ``path``."""
    cfg_path = path or CONFIG_FILE
    with cfg_path.open("w", encoding="utf-8") as fh:
        json.dump(dict(config), fh, indent=2)
