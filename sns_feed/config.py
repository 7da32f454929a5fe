from __future__ import annotations

import hashlib
import json
from pathlib import Path

import yaml
from pydantic import ValidationError

from .config_schema import AppConfig
from .errors import ConfigError


def load_config(path: str | Path) -> AppConfig:
    """
    Load a YAML config file and validate it into a typed AppConfig.

    Relative storage and log paths are resolved against the config file's
    directory. Raises ConfigError with a readable validation message on failure.
    """
    p = Path(path)

    if not p.exists():
        raise ConfigError(f"Config file not found: {p}")

    try:
        raw_text = p.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Failed to read config file: {p}") from e

    try:
        data = yaml.safe_load(raw_text)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse YAML in {p}: {e}") from e

    if data is None:
        data = {}

    if not isinstance(data, dict):
        raise ConfigError(f"Top-level YAML in {p} must be a mapping/object")

    try:
        cfg = AppConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(_format_pydantic_errors(e, p)) from e

    return _resolve_paths(cfg, p.parent)


def _resolve_paths(cfg: AppConfig, base: Path) -> AppConfig:
    def _resolve(value: str) -> str:
        if value == ":memory:" or Path(value).is_absolute():
            return value
        return str(base / value)

    storage = cfg.storage.model_copy(update={"path": _resolve(cfg.storage.path)})
    logging_cfg = cfg.logging
    if logging_cfg.path:
        logging_cfg = logging_cfg.model_copy(update={"path": _resolve(logging_cfg.path)})

    return cfg.model_copy(update={"storage": storage, "logging": logging_cfg})


def config_sha256(config: AppConfig) -> str:
    """
    Compute a stable SHA-256 hash of the config values.
    """
    payload = json.dumps(
        config.model_dump(mode="json"),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")
    return hashlib.sha256(payload).hexdigest()


def _format_pydantic_errors(err: ValidationError, path: Path) -> str:
    lines: list[str] = [f"Invalid configuration in {path}:"]
    for item in err.errors():
        loc = ".".join(str(part) for part in item.get("loc", [])) or "<root>"
        msg = item.get("msg", "invalid value")
        lines.append(f"- {loc}: {msg}")
    return "\n".join(lines)
