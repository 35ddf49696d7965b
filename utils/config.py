"""Daemon configuration loaded from an optional JSON file."""

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from loguru import logger

from services.reconciler import OutputNames

APP_NAME = "monitord"

DEFAULTS = {
    "external_output": "DVI1",
    "internal_output": "LVDS1",
    "xrandr": "xrandr",
    "app_name": APP_NAME,
    "inhibit_reason": "External monitor in use",
    "log_level": "INFO",
}


@dataclass(frozen=True)
class DaemonConfig:
    external_output: str
    internal_output: str
    xrandr: str
    app_name: str
    inhibit_reason: str
    log_level: str

    @property
    def outputs(self) -> OutputNames:
        return OutputNames(external=self.external_output, internal=self.internal_output)


def config_path() -> Path:
    base = os.environ.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return Path(base) / APP_NAME / "config.json"


def _read_file(path: Path) -> Dict:
    try:
        if path.exists():
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                logger.error(f"Config {path} is not a JSON object, using defaults")
                return {}
            return data
    except (ValueError, OSError) as e:
        logger.error(f"Config load error: {e}")
    return {}


def load_config(path: Optional[Path] = None) -> DaemonConfig:
    """Load configuration with defaults."""
    path = path or config_path()
    loaded = _read_file(path)

    for key in sorted(set(loaded) - set(DEFAULTS)):
        logger.warning(f"Unknown config key {key!r} in {path}")

    merged = {**DEFAULTS, **{k: v for k, v in loaded.items() if k in DEFAULTS}}
    return DaemonConfig(**{k: str(v) for k, v in merged.items()})
