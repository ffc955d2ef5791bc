"""
Configuration loader — reads config.yml into a ManagerConfig.

The config file is optional: without one, the defaults describe the
standard install. Lookup order is an explicit path, then
``$TM_CONFIG``, then ``/etc/transmission-manager/config.yml``.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
from pathlib import Path

import yaml

from transmission_manager.core.models.config import ManagerConfig

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "TM_CONFIG"
SYSTEM_CONFIG_FILE = Path("/etc/transmission-manager/config.yml")


class ConfigError(Exception):
    """Raised when the configuration file is unreadable or invalid."""


def find_config_file(explicit: Path | None = None) -> Path | None:
    """Locate the config file to use, or None for built-in defaults.

    An explicit path is returned even if missing so that
    ``load_config`` can report it.
    """
    if explicit is not None:
        return explicit

    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)

    if SYSTEM_CONFIG_FILE.is_file():
        return SYSTEM_CONFIG_FILE

    return None


def load_config(path: Path | None = None) -> ManagerConfig:
    """Load and validate the manager configuration.

    Args:
        path: Explicit config path. If None, uses ``find_config_file``.

    Returns:
        Validated ManagerConfig (defaults when no file is found).

    Raises:
        ConfigError: If the file is missing, unreadable or invalid.
    """
    path = find_config_file(path)
    if path is None:
        logger.debug("No config file found — using defaults")
        return ManagerConfig()

    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    # The file may wrap everything under a "manager" key or be flat
    data = data.get("manager", data)

    try:
        config = ManagerConfig.model_validate(data)
    except Exception as e:
        raise ConfigError(f"Invalid configuration: {e}") from e

    logger.info("Loaded config from %s (user=%s)", path, config.user)
    return config


def config_hash(config: ManagerConfig, extra: dict | None = None) -> str:
    """Stable fingerprint of the config (plus optional desired-state data).

    Stored with each successful install so ``status`` and ``install`` can
    tell whether the host was converged against the same inputs.
    """
    payload = {"config": config.model_dump(mode="json"), "extra": extra or {}}
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]
