# src/linewire/config.py
from __future__ import annotations

import codecs
import json
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from linewire.errors import ValidationError, os_reason

Json = Dict[str, Any]

DEFAULT_READ_TIMEOUT_S = 2
DEFAULT_WRITE_TIMEOUT_S = 2
DEFAULT_BUFFER_BYTES = 2048
DEFAULT_ENCODING = "utf-8"
DEFAULT_PORT = 23


def _as_int(name: str, v: Any, default: int) -> int:
    if v is None:
        return int(default)
    if isinstance(v, bool):
        raise ValidationError("invalid_type", f"{name} must be an int greater than 0", {"value": repr(v)})
    try:
        return int(v)
    except (TypeError, ValueError):
        return int(default)


def _as_str(v: Any, default: str) -> str:
    if v is None:
        return str(default)
    s = str(v)
    return s if s.strip() else str(default)


def require_positive_int(name: str, value: Any) -> int:
    """Return value as an int, or raise ValidationError if it is not an integer >= 1."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("invalid_type", f"{name} must be an int greater than 0", {"value": repr(value)})
    if value < 1:
        raise ValidationError("out_of_range", f"{name} must be an int greater than 0", {"value": value})
    return int(value)


@dataclass(frozen=True)
class ConnectionConfig:
    read_timeout_s: int = DEFAULT_READ_TIMEOUT_S
    write_timeout_s: int = DEFAULT_WRITE_TIMEOUT_S

    # Upper bound for a single recv() in Connection.read().
    buffer_bytes: int = DEFAULT_BUFFER_BYTES

    encoding: str = DEFAULT_ENCODING
    default_port: int = DEFAULT_PORT


def validate_connection_config(cfg: ConnectionConfig) -> None:
    """Fail-fast validation for connection config."""

    require_positive_int("read_timeout_s", cfg.read_timeout_s)
    require_positive_int("write_timeout_s", cfg.write_timeout_s)
    require_positive_int("buffer_bytes", cfg.buffer_bytes)

    port = require_positive_int("default_port", cfg.default_port)
    if port > 65535:
        raise ValidationError("out_of_range", f"default_port must be 1..65535; got: {port}")

    if not isinstance(cfg.encoding, str) or not cfg.encoding.strip():
        raise ValidationError("invalid_type", "encoding must be a non-empty string")
    try:
        codecs.lookup(cfg.encoding)
    except LookupError:
        raise ValidationError("unknown_encoding", f"encoding is not a known codec: {cfg.encoding!r}") from None


def default_connection_config() -> ConnectionConfig:
    return ConnectionConfig()


def config_from_mapping(raw: Mapping[str, Any], base: Optional[ConnectionConfig] = None) -> ConnectionConfig:
    d = base or default_connection_config()
    return ConnectionConfig(
        read_timeout_s=_as_int("read_timeout_s", raw.get("read_timeout_s"), d.read_timeout_s),
        write_timeout_s=_as_int("write_timeout_s", raw.get("write_timeout_s"), d.write_timeout_s),
        buffer_bytes=_as_int("buffer_bytes", raw.get("buffer_bytes"), d.buffer_bytes),
        encoding=_as_str(raw.get("encoding"), d.encoding),
        default_port=_as_int("default_port", raw.get("default_port"), d.default_port),
    )


def read_connection_config_file(path: str) -> ConnectionConfig:
    p = Path(path)
    try:
        raw = json.loads(p.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ValidationError("invalid_config", f"cannot read connection config: {os_reason(exc)}", {"path": str(p)}) from exc
    except ValueError as exc:
        raise ValidationError("invalid_config", f"connection config is not valid JSON: {exc}", {"path": str(p)}) from exc
    if not isinstance(raw, dict):
        raise ValidationError("invalid_config", "connection config must be a JSON object", {"path": str(p)})

    cfg = config_from_mapping(raw)
    validate_connection_config(cfg)
    return cfg


_ENV_KEYS = {
    "LINEWIRE_READ_TIMEOUT": "read_timeout_s",
    "LINEWIRE_WRITE_TIMEOUT": "write_timeout_s",
    "LINEWIRE_BUFFER_SIZE": "buffer_bytes",
    "LINEWIRE_ENCODING": "encoding",
    "LINEWIRE_DEFAULT_PORT": "default_port",
}


def apply_env_overrides(cfg: ConnectionConfig, environ: Optional[Mapping[str, str]] = None) -> ConnectionConfig:
    env = os.environ if environ is None else environ
    raw: Json = {}
    for env_name, field_name in _ENV_KEYS.items():
        v = env.get(env_name)
        if v is None or not v.strip():
            continue
        if field_name == "encoding":
            raw[field_name] = v.strip()
            continue
        try:
            raw[field_name] = int(v.strip())
        except ValueError:
            raise ValidationError("invalid_env", f"{env_name} must be an integer; got: {v!r}") from None

    if not raw:
        return cfg
    return replace(cfg, **raw)


def load_connection_config(*, config_path: Optional[str] = None) -> ConnectionConfig:
    p = config_path or os.environ.get("LINEWIRE_CONFIG_PATH")
    cfg = read_connection_config_file(p) if p else default_connection_config()

    cfg = apply_env_overrides(cfg)
    validate_connection_config(cfg)
    return cfg
