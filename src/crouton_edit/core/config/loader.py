"""
Configuration loader — reads edit.yml into an EditConfig.

The file is optional; every setting has a default.  It is located by,
in order: an explicit ``--config`` path, the CROUTON_EDIT_CONFIG
environment variable, then /etc/crouton/edit.yml.  Values may sit at
the top level or under an ``edit:`` key.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Mapping

import yaml

from crouton_edit.core.errors import ConfigError
from crouton_edit.core.models.config import EditConfig

logger = logging.getLogger(__name__)

CONFIG_ENV = "CROUTON_EDIT_CONFIG"
RESPONSE_ENV = "CROUTON_EDIT_RESPONSE"
SYSTEM_CONFIG_FILE = Path("/etc/crouton/edit.yml")


def find_config_file(environ: Mapping[str, str] | None = None) -> Path | None:
    """Return the config file to use when none was given explicitly."""
    env = os.environ if environ is None else environ
    from_env = env.get(CONFIG_ENV)
    if from_env:
        return Path(from_env).expanduser()
    if SYSTEM_CONFIG_FILE.is_file():
        return SYSTEM_CONFIG_FILE
    return None


def load_config(
    path: Path | None = None,
    *,
    overrides: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
) -> EditConfig:
    """Load and validate edit configuration.

    Args:
        path: Explicit config file. If None, searches the default locations.
        overrides: Values from the command line; ``None`` values are ignored.
        environ: Environment to consult (default: ``os.environ``).

    Returns:
        Validated EditConfig.

    Raises:
        ConfigError: If an explicit file is missing or any file is invalid.
    """
    env = os.environ if environ is None else environ
    explicit = path is not None
    if path is None:
        path = find_config_file(env)

    data: dict[str, Any] = {}
    if path is not None:
        if not path.is_file():
            if explicit or env.get(CONFIG_ENV):
                raise ConfigError(f"Config file not found: {path}")
        else:
            data = _read_yaml(path)

    if env.get(RESPONSE_ENV) is not None:
        data["response"] = env[RESPONSE_ENV]

    for key, value in (overrides or {}).items():
        if value is not None:
            data[key] = value

    try:
        config = EditConfig.model_validate(data)
    except Exception as e:
        raise ConfigError(f"Invalid configuration: {e}") from e

    logger.debug("Chroots root: %s", config.chroots_root)
    return config


def _read_yaml(path: Path) -> dict[str, Any]:
    logger.debug("Loading edit config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    section = data.get("edit", data)
    if not isinstance(section, dict):
        raise ConfigError(f"Expected 'edit' to be a mapping in {path}")
    return dict(section)
