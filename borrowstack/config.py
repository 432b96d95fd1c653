"""borrowstack configuration -- project-level .borrowstackrc.yml support.

Loads configuration from .borrowstackrc.yml (or .borrowstackrc.yaml,
.borrowstackrc.json) found by walking up from the working directory.

Example .borrowstackrc.yml:
    format: pretty             # pretty | text | json | markdown | sarif
    external_write_value: 1    # value an opaque call writes through its argument
    check_bindings: false      # reject &mut / writes through immutable bindings
    log_level: warning
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, asdict
from typing import Any, Optional

import yaml

logger = logging.getLogger(__name__)

FORMATS = ("pretty", "text", "json", "markdown", "sarif")
LOG_LEVELS = ("debug", "info", "warning", "error")


@dataclass
class BorrowstackConfig:
    """Project-level checker configuration."""
    # Output
    format: str = "pretty"
    # Semantics
    external_write_value: int = 1
    check_bindings: bool = False
    # Diagnostics
    log_level: str = "warning"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------------
# Config file names (in priority order)
# ---------------------------------------------------------------------------

CONFIG_FILES = [
    ".borrowstackrc.yml",
    ".borrowstackrc.yaml",
    ".borrowstackrc.json",
]


def find_config(start_dir: str = ".") -> Optional[str]:
    """Find the nearest config file by walking up from start_dir."""
    current = os.path.abspath(start_dir)
    while True:
        for name in CONFIG_FILES:
            path = os.path.join(current, name)
            if os.path.isfile(path):
                return path
        parent = os.path.dirname(current)
        if parent == current:
            break
        current = parent
    return None


def load_config(path: Optional[str] = None, start_dir: str = ".") -> BorrowstackConfig:
    """Load configuration from a file.

    If no path is given, searches for a config file starting from start_dir.
    If no config file is found, returns defaults. An explicit path that
    cannot be read or parsed is an error.
    """
    explicit = path is not None
    if path is None:
        path = find_config(start_dir)

    if path is None:
        return BorrowstackConfig()

    try:
        with open(path, "r", encoding="utf-8") as f:
            content = f.read()
    except OSError:
        if explicit:
            raise
        logger.warning("could not read %s, using defaults", path)
        return BorrowstackConfig()

    if path.endswith(".json"):
        data = json.loads(content)
    else:
        try:
            data = yaml.safe_load(content) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"{path}: {e}") from e

    if not isinstance(data, dict):
        raise ValueError(f"{path}: configuration must be a mapping")
    logger.debug("loaded configuration from %s", path)
    return dict_to_config(data)


def dict_to_config(data: dict[str, Any]) -> BorrowstackConfig:
    """Convert a parsed dict to BorrowstackConfig. Unknown keys are ignored."""
    config = BorrowstackConfig()

    if "format" in data:
        fmt = str(data["format"])
        if fmt not in FORMATS:
            raise ValueError(f"unknown output format '{fmt}' (expected one of {', '.join(FORMATS)})")
        config.format = fmt
    if "external_write_value" in data:
        value = data["external_write_value"]
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"external_write_value must be an integer, got {value!r}")
        config.external_write_value = value
    if "check_bindings" in data:
        if not isinstance(data["check_bindings"], bool):
            raise ValueError(f"check_bindings must be true or false, got {data['check_bindings']!r}")
        config.check_bindings = data["check_bindings"]
    if "log_level" in data:
        level = str(data["log_level"]).lower()
        if level not in LOG_LEVELS:
            raise ValueError(f"unknown log level '{level}'")
        config.log_level = level

    return config


def dump_config(config: BorrowstackConfig) -> str:
    return yaml.safe_dump(config.to_dict(), sort_keys=False)
