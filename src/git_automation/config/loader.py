"""
Configuration loader for git_automation.

Settings live in an optional JSON file named ``config.json`` inside the
``~/.git_automation/`` directory. Every key has a default, so a missing
file is not an error. A file that exists but is malformed, or holds a
key of the wrong type, raises :class:`ConfigError`.

Recognised keys:

- ``ssh_executable`` (str): ssh binary used for SSH remotes, default ``"ssh"``.
- ``exit_grace_period`` (number or null): seconds a closing transport
  waits for ssh to exit on its own, default ``5.0``; ``null`` checks
  immediately.
- ``log_level`` (str): logging level name used by the CLI, default ``"INFO"``.

The ``GIT_AUTOMATION_SSH`` environment variable, when set, overrides
``ssh_executable``.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional


logger = logging.getLogger(__name__)
# Attach a null handler to avoid "No handler" warnings when the root
# logger has not been configured. Propagation is disabled so that closed
# root streams (e.g. during unit tests) cannot cause logging errors.
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


SSH_ENV_VAR = "GIT_AUTOMATION_SSH"

DEFAULTS: Dict[str, Any] = {
    "ssh_executable": "ssh",
    "exit_grace_period": 5.0,
    "log_level": "INFO",
}


class ConfigError(Exception):
    """Raised when the configuration file is malformed or invalid."""

    pass


def _get_config_directory() -> Path:
    """Return the directory holding the git_automation configuration."""
    return Path.home() / ".git_automation"


def load_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """Load the configuration and return it merged over :data:`DEFAULTS`.

    Args:
        config_path: Explicit file to read. Defaults to
                     ``~/.git_automation/config.json``.

    Returns:
        A dictionary with the keys ``ssh_executable``,
        ``exit_grace_period`` and ``log_level``.

    Raises:
        ConfigError: If the file exists but is malformed or invalid.
    """
    if config_path is None:
        config_path = _get_config_directory() / "config.json"

    config: Dict[str, Any] = dict(DEFAULTS)

    if config_path.exists():
        try:
            content = config_path.read_text(encoding="utf-8")
            data = json.loads(content)
        except (OSError, json.JSONDecodeError) as exc:
            logger.error("Failed to read or parse configuration file: %s", exc)
            raise ConfigError(f"Invalid JSON in {config_path.name}: {exc}") from exc

        if not isinstance(data, dict):
            raise ConfigError(f"{config_path.name} must contain a JSON object")

        unknown = sorted(set(data) - set(DEFAULTS))
        if unknown:
            logger.warning("Ignoring unknown configuration keys: %s", unknown)

        if "ssh_executable" in data and not isinstance(data["ssh_executable"], str):
            raise ConfigError("'ssh_executable' must be a string")
        if "exit_grace_period" in data:
            grace = data["exit_grace_period"]
            if grace is not None and (isinstance(grace, bool) or not isinstance(grace, (int, float))):
                raise ConfigError("'exit_grace_period' must be a number or null")
            if grace is not None and grace < 0:
                raise ConfigError("'exit_grace_period' must not be negative")
        if "log_level" in data:
            level = data["log_level"]
            if not isinstance(level, str) or not isinstance(logging.getLevelName(level.upper()), int):
                raise ConfigError("'log_level' must be a logging level name")

        config.update({key: data[key] for key in DEFAULTS if key in data})
        logger.debug("Loaded configuration from: %s", config_path)
    else:
        logger.debug("No configuration file at %s; using defaults", config_path)

    env_ssh = os.environ.get(SSH_ENV_VAR)
    if env_ssh:
        config["ssh_executable"] = env_ssh

    return config
