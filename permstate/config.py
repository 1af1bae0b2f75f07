"""permstate configuration: project-level .permstaterc.yml support.

Loads configuration from .permstaterc.yml (or .permstaterc.yaml,
.permstaterc.json) found in the project root or any parent directory.

Example .permstaterc.yml:
    log_level: DEBUG
    strict_ordering: true      # compare full mappings in at_least_as_precise
    solver_timeout_ms: 2000
    forget_on_boundary: true
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

import yaml


@dataclass
class PermStateConfig:
    """Project-level permstate configuration."""
    # Level applied to the "permstate" logger by configure_logging
    log_level: str = "WARNING"
    # Ordering mode of DynamicStateLogic.at_least_as_precise
    strict_ordering: bool = False
    # z3 timeout for fraction solving
    solver_timeout_ms: int = 5000
    # Drop temporary state when PermissionTuple.cross_boundary is called
    forget_on_boundary: bool = True


# ---------------------------------------------------------------------------
# Config file names (in priority order)
# ---------------------------------------------------------------------------

_CONFIG_FILES = [
    ".permstaterc.yml",
    ".permstaterc.yaml",
    ".permstaterc.json",
    "permstate.config.yml",
    "permstate.config.json",
]


def find_config(start_dir: str = ".") -> Optional[str]:
    """Return the nearest config file at or above start_dir, or None."""
    directory = os.path.abspath(start_dir)
    while True:
        candidates = (os.path.join(directory, name) for name in _CONFIG_FILES)
        found = next((path for path in candidates if os.path.isfile(path)), None)
        parent = os.path.dirname(directory)
        if found is not None or parent == directory:
            return found
        directory = parent


def load_config(path: Optional[str] = None, start_dir: str = ".") -> PermStateConfig:
    """Load configuration from a file.

    If no path is given, searches for a config file starting from start_dir.
    If no config file is found, or it cannot be read or parsed, returns
    defaults.
    """
    if path is None:
        path = find_config(start_dir)

    if path is None:
        return PermStateConfig()

    try:
        with open(path, "r") as f:
            content = f.read()
    except OSError:
        return PermStateConfig()

    if path.endswith(".json"):
        try:
            data = json.loads(content)
        except json.JSONDecodeError:
            return PermStateConfig()
    else:
        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError:
            return PermStateConfig()

    if not isinstance(data, dict):
        return PermStateConfig()
    return _dict_to_config(data)


def _dict_to_config(data: Dict[str, Any]) -> PermStateConfig:
    """Convert a parsed dict to PermStateConfig."""
    config = PermStateConfig()

    if "log_level" in data:
        config.log_level = str(data["log_level"]).upper()
    if "strict_ordering" in data:
        config.strict_ordering = bool(data["strict_ordering"])
    if "solver_timeout_ms" in data:
        config.solver_timeout_ms = int(data["solver_timeout_ms"])
    if "forget_on_boundary" in data:
        config.forget_on_boundary = bool(data["forget_on_boundary"])

    return config


def configure_logging(config: PermStateConfig) -> logging.Logger:
    """Apply ``config.log_level`` to the package logger.  Installs no handlers."""
    logger = logging.getLogger("permstate")
    logger.setLevel(getattr(logging, config.log_level, logging.WARNING))
    return logger
