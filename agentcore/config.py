"""
Agent Core — Configuration Loader

Three-tier configuration loading:
  1. Base file (agentcore.yaml)
  2. Per-environment overlay (config/{AGENTCORE_ENV}.yaml merged over base)
  3. Environment variable overrides (AGENTCORE_ prefixed, top-level scalars)

Usage:
    from agentcore.config import load_config

    cfg = load_config()                 # finds agentcore.yaml
    cfg = load_config(env="prod")       # + config/prod.yaml
    cfg.max_steps, cfg.sandbox_root, cfg.roles["implementer"]

Environment variables:
    AGENTCORE_CONFIG        — explicit path to the base file
    AGENTCORE_ENV           — active profile (dev, staging, prod)
    AGENTCORE_CONFIG_DIR    — directory for overlay files (default: config/)
    AGENTCORE_<FIELD>       — scalar overrides (AGENTCORE_MAX_STEPS=40)
"""

from __future__ import annotations

import copy
import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger("agentcore.config")


# Role → capability map, aliases and default path permissions.
# Permission tuples: (path_pattern, permission, allowed, priority)
DEFAULT_ROLES: dict[str, dict[str, Any]] = {
    "implementer": {
        "aliases": ["devon"],
        "tools": ["filesystem", "git", "shell", "project"],
        "permissions": [
            ["*", "read", True, 0],
            ["*", "execute", True, 0],
            ["src/*", "write", True, 10],
            ["projects/*", "write", True, 10],
            ["*__tests__*", "write", False, 20],
            ["*.test.*", "write", False, 20],
            ["*.spec.*", "write", False, 20],
        ],
    },
    "tester": {
        "aliases": ["tara"],
        "tools": ["filesystem", "git", "shell"],
        "permissions": [
            ["*", "read", True, 0],
            ["*", "execute", True, 0],
            ["tests/*", "write", True, 10],
            ["*__tests__*", "write", True, 10],
            ["*.test.*", "write", True, 10],
            ["*.spec.*", "write", True, 10],
            ["src/*", "write", False, 5],
        ],
    },
    "orchestrator": {
        "aliases": ["orion"],
        "tools": ["filesystem", "git", "shell", "project", "database"],
        "permissions": [
            ["*", "read", True, 0],
            ["*", "write", True, 0],
            ["*", "execute", True, 0],
        ],
    },
}


@dataclass
class CoreConfig:
    """Resolved runtime configuration."""
    max_steps: int = 20
    sandbox_root: str = "."
    db_path: str = "agentcore.db"
    log_level: str = "INFO"
    rate_limit_interval: float = 1.0
    rate_limit_retries: int = 3
    shell_timeout: float = 60.0
    roles: dict[str, dict[str, Any]] = field(
        default_factory=lambda: copy.deepcopy(DEFAULT_ROLES)
    )
    llm: dict[str, Any] = field(default_factory=dict)
    source: str = ""
    env: str = "default"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CoreConfig:
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in data.items() if k in known}
        unknown = sorted(set(data) - known)
        if unknown:
            logger.debug("Ignoring unknown config keys: %s", unknown)
        cfg = cls(**kwargs)
        if "roles" in data:
            cfg.roles = deep_merge(DEFAULT_ROLES, data["roles"] or {})
        return cfg


# ═══════════════════════════════════════════════════════════════════
# Deep Merge
# ═══════════════════════════════════════════════════════════════════

def deep_merge(base: dict, overlay: dict) -> dict:
    """
    Deep-merge overlay into base. Overlay values win.
    Lists are replaced (not appended). Dicts are recursed.
    """
    result = copy.deepcopy(base)
    for key, value in overlay.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


# ═══════════════════════════════════════════════════════════════════
# Sources
# ═══════════════════════════════════════════════════════════════════

def find_config_path(explicit: str | None = None) -> Path | None:
    """Locate the base config file."""
    candidates = [
        explicit or "",
        os.environ.get("AGENTCORE_CONFIG", ""),
        str(Path.cwd() / "agentcore.yaml"),
        str(Path(__file__).resolve().parent.parent / "agentcore.yaml"),
    ]
    for c in candidates:
        if c and os.path.isfile(c):
            return Path(c)
    return None


def _load_yaml(path: Path) -> dict[str, Any]:
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _load_overlay_file(base_path: Path | None, env: str, config_dir: str = "") -> dict[str, Any]:
    """Load config/{env}.yaml; empty dict when absent."""
    if not env:
        return {}
    config_dir = config_dir or os.environ.get("AGENTCORE_CONFIG_DIR", "config")
    candidates = [
        Path(config_dir) / f"{env}.yaml",
        Path(config_dir) / f"{env}.yml",
    ]
    if base_path is not None:
        candidates.append(base_path.parent / "config" / f"{env}.yaml")

    for path in candidates:
        if path.exists():
            overlay = _load_yaml(path)
            logger.info("Loaded config overlay: %s (%d keys)", path, len(overlay))
            return overlay

    logger.debug("No config overlay found for env=%s", env)
    return {}


def _load_env_overrides(prefix: str = "AGENTCORE_") -> dict[str, Any]:
    """
    AGENTCORE_<FIELD>=value for top-level scalar fields.

    Values are parsed as YAML scalars so numbers and booleans keep
    their type.
    """
    excluded = {"CONFIG", "ENV", "CONFIG_DIR", "VERSION"}
    scalar_fields = {
        f.name for f in fields(CoreConfig) if f.name not in ("roles", "llm", "source", "env")
    }
    overrides: dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue
        name = key[len(prefix):]
        if name in excluded or name.lower() not in scalar_fields:
            continue
        try:
            overrides[name.lower()] = yaml.safe_load(value)
        except yaml.YAMLError:
            overrides[name.lower()] = value
    if overrides:
        logger.debug("Loaded %d env var overrides", len(overrides))
    return overrides


# ═══════════════════════════════════════════════════════════════════
# Main Loader
# ═══════════════════════════════════════════════════════════════════

def load_config(
    path: str | None = None,
    env: str = "",
    config_dir: str = "",
    include_env_vars: bool = True,
) -> CoreConfig:
    """
    Load configuration with three-tier merging.

    Priority (highest wins): env vars > overlay file > base file > defaults.
    A missing base file is not an error; defaults apply.
    """
    base_path = find_config_path(path)
    data: dict[str, Any] = {}
    if base_path is not None:
        data = _load_yaml(base_path)
        logger.debug("Loaded base config: %s", base_path)

    env = env or os.environ.get("AGENTCORE_ENV", "")
    overlay = _load_overlay_file(base_path, env, config_dir)
    if overlay:
        data = deep_merge(data, overlay)

    if include_env_vars:
        env_overrides = _load_env_overrides()
        if env_overrides:
            data = deep_merge(data, env_overrides)

    cfg = CoreConfig.from_dict(data)
    cfg.source = str(base_path) if base_path else ""
    cfg.env = env or "default"
    return cfg
