from __future__ import annotations
from .schemas import Config
from pathlib import Path
from typing import Any, Dict, Optional
import json

try:
    import tomllib  # py311+
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # py<=310

def _resolve_io_paths(data: Dict[str, Any], base: Path) -> None:
    """Make relative [io] paths relative to the config file's directory."""
    io = data.get("io")
    if not isinstance(io, dict):
        return
    for key in ("input_path", "output_path"):
        raw = io.get(key)
        if raw is None:
            continue
        p = Path(raw)
        if not p.is_absolute():
            io[key] = str((base / p).resolve())

def load_config(path: str | Path, overrides: Optional[Dict[str, Dict[str, Any]]] = None) -> Config:
    """
    Parse a TOML config into a validated Config.

    overrides maps section -> {field: value}; None values are ignored so CLI
    options that were not given leave the TOML untouched.
    """
    p = Path(path)
    data = tomllib.loads(p.read_text())
    _resolve_io_paths(data, p.parent)
    for section, values in (overrides or {}).items():
        sec = data.setdefault(section, {})
        for k, v in values.items():
            if v is not None:
                sec[k] = v
    return Config(**data)

def snapshot_config_toml(path: str | Path) -> str:
    """Return the raw TOML text for embedding in HDF5 metadata."""
    return Path(path).read_text()

def json_dumps(obj) -> str:
    return json.dumps(obj, separators=(",", ":"), ensure_ascii=False)
