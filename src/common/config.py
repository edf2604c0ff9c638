"""Load and validate Pipeline Pulse configuration from config.yaml."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger("pulse")

REPO_DIR = Path(__file__).resolve().parent.parent.parent
_DEFAULT_CONFIG_PATH = REPO_DIR / "config" / "config.yaml"

_DEFAULTS: dict[str, Any] = {
    "data_file": "data/dashboard.json",
    "log_dir": "logs",
    "log_level": "INFO",
    "history": {"retention": 52},
    "pipeline": {},
    "stats": {"currency": ["pipeline"]},
    "money": {"strict_suffix": False},
}


def load_config(config_path: Path | str | None = None) -> dict[str, Any]:
    """Load configuration from YAML file, with env-var overrides.

    Environment variable overrides (if set):
        PULSE_DATA_FILE  -> data_file
        PULSE_LOG_DIR    -> log_dir
        PULSE_LOG_LEVEL  -> log_level
    """
    path = Path(config_path) if config_path else _DEFAULT_CONFIG_PATH
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, encoding="utf-8") as fh:
        loaded = yaml.safe_load(fh) or {}

    cfg: dict[str, Any] = {}
    for key, default in _DEFAULTS.items():
        value = loaded.get(key)
        if value is None:
            value = dict(default) if isinstance(default, dict) else default
        elif isinstance(default, dict) and isinstance(value, dict):
            value = {**default, **value}
        cfg[key] = value
    for key, value in loaded.items():
        cfg.setdefault(key, value)

    # Apply env-var overrides
    _env_override(cfg, "PULSE_DATA_FILE", "data_file")
    _env_override(cfg, "PULSE_LOG_DIR", "log_dir")
    _env_override(cfg, "PULSE_LOG_LEVEL", "log_level")

    _validate(cfg)
    return cfg


def _env_override(cfg: dict, env_key: str, *keys: str) -> None:
    """Override a nested config value from an environment variable."""
    val = os.environ.get(env_key)
    if val is None:
        return
    target = cfg
    for k in keys[:-1]:
        target = target.setdefault(k, {})
    target[keys[-1]] = val


def _validate(cfg: dict[str, Any]) -> None:
    """Reject unusable retention settings; warn about the rest."""
    retention = cfg["history"].get("retention")
    if not isinstance(retention, int) or isinstance(retention, bool) or retention < 1:
        raise ValueError(f"history.retention must be a positive integer, got {retention!r}")

    stages = cfg["pipeline"].get("stages")
    if stages is not None and (not isinstance(stages, list) or not stages):
        raise ValueError("pipeline.stages must be a non-empty list")

    if not isinstance(cfg["stats"].get("currency"), list):
        logger.warning("stats.currency is not a list, trend badges will use plain numbers")
        cfg["stats"]["currency"] = []

    if str(cfg.get("log_level", "INFO")).upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        logger.warning("Unknown log_level %r, falling back to INFO", cfg.get("log_level"))
        cfg["log_level"] = "INFO"

    data_file = resolve_path(cfg["data_file"])
    if not data_file.parent.is_dir():
        logger.warning("Data directory %s does not exist yet, it will be created on first save", data_file.parent)


def resolve_path(value: str | Path) -> Path:
    """Return an absolute path; relative paths are taken from the repo root."""
    path = Path(os.path.expanduser(str(value)))
    if not path.is_absolute():
        path = REPO_DIR / path
    return path


def setup_logging(cfg: dict[str, Any]) -> None:
    """Configure the ``pulse`` logger: stderr + rotating file."""
    log_dir = resolve_path(cfg["log_dir"])
    log_dir.mkdir(parents=True, exist_ok=True)

    from logging.handlers import RotatingFileHandler

    fmt = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    root = logging.getLogger("pulse")
    root.setLevel(getattr(logging, str(cfg.get("log_level", "INFO")).upper()))

    # stderr
    sh = logging.StreamHandler()
    sh.setFormatter(fmt)
    root.addHandler(sh)

    # rotating file
    fh = RotatingFileHandler(log_dir / "pulse.log", maxBytes=5_000_000, backupCount=3)
    fh.setFormatter(fmt)
    root.addHandler(fh)
