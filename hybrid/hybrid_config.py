"""
Configuration for the Hybrid runtime: which foreign backends exist and
which external commands serve them.

Built-in defaults are merged with an optional YAML file located via an
explicit path, the HYBRID_CONFIG environment variable, or ./hybrid.yaml.
"""

from __future__ import annotations

import copy
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from hybrid.hybrid_datatypes import ConfigError

logger = logging.getLogger("hybrid.config")

CONFIG_ENV_VAR = "HYBRID_CONFIG"
DEBUG_ENV_VAR = "HYBRID_DEBUG"
DEFAULT_CONFIG_NAME = "hybrid.yaml"

BACKEND_KINDS = ("python", "rust")

DEFAULT_BACKENDS: Dict[str, Dict[str, str]] = {
    "python": {"kind": "python", "command": "python3"},
    "rust": {"kind": "rust", "command": "rustc"},
}


@dataclass
class BackendSpec:
    tag: str
    kind: str
    command: str


@dataclass
class HybridConfig:
    backends: Dict[str, BackendSpec] = field(default_factory=dict)
    source: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]], source: Optional[str] = None) -> 'HybridConfig':
        merged = copy.deepcopy(DEFAULT_BACKENDS)
        data = data or {}
        if not isinstance(data, dict):
            raise ConfigError(f"Config root must be a mapping, got {type(data).__name__}")
        backends = data.get("backends") or {}
        if not isinstance(backends, dict):
            raise ConfigError("'backends' must be a mapping of tag -> settings")
        for tag, settings in backends.items():
            if not isinstance(settings, dict):
                raise ConfigError(f"Backend '{tag}' must be a mapping")
            base = merged.get(str(tag), {})
            merged[str(tag)] = {**base, **{str(k): v for k, v in settings.items()}}

        specs = {}
        for tag, settings in merged.items():
            kind = settings.get("kind")
            if kind not in BACKEND_KINDS:
                raise ConfigError(f"Backend '{tag}' has unknown kind {kind!r} (expected one of {', '.join(BACKEND_KINDS)})")
            command = settings.get("command")
            if not isinstance(command, str) or not command:
                raise ConfigError(f"Backend '{tag}' needs a non-empty 'command'")
            specs[tag] = BackendSpec(tag, kind, command)
        return cls(specs, source)


def find_config_file(path: Optional[str] = None) -> Optional[Path]:
    if path:
        return Path(path)
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)
    local = Path.cwd() / DEFAULT_CONFIG_NAME
    return local if local.is_file() else None


def load_config(path: Optional[str] = None) -> HybridConfig:
    """Loads the backend table, falling back to the built-in defaults."""
    cfg_path = find_config_file(path)
    if cfg_path is None:
        return HybridConfig.from_dict(None)
    try:
        text = cfg_path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read config file {cfg_path}: {e}") from e
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {cfg_path}: {e}") from e
    logger.debug("loaded config from %s", cfg_path)
    return HybridConfig.from_dict(data, source=str(cfg_path))


def debug_enabled() -> bool:
    return os.environ.get(DEBUG_ENV_VAR, "") not in ("", "0")
