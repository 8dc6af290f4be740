"""
Interpreter configuration.

Settings come from three layers, later ones winning: an optional YAML file,
DMSCRIPT_* environment variables, then keyword overrides from the host.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml


@dataclass(frozen=True)
class InterpreterConfig:
    debug: bool = False
    max_call_depth: int = 64
    # None disables the cap.
    max_loop_iterations: Optional[int] = 100000
    # When true, `return` stops the enclosing block/loop/function body.
    return_unwinds: bool = False
    # Render `=> value` for top-level expression statements.
    echo_results: bool = True


_ENV_KEYS = {
    "DMSCRIPT_DEBUG": "debug",
    "DMSCRIPT_MAX_CALL_DEPTH": "max_call_depth",
    "DMSCRIPT_MAX_LOOP_ITERS": "max_loop_iterations",
    "DMSCRIPT_RETURN_UNWINDS": "return_unwinds",
}


def _coerce(key: str, raw: Any) -> Any:
    if key in ("debug", "return_unwinds", "echo_results"):
        if isinstance(raw, str):
            return raw.strip().lower() not in ("", "0", "false", "no", "off")
        return bool(raw)
    if key == "max_loop_iterations":
        if raw is None or (isinstance(raw, str) and raw.strip().lower() in ("", "none", "off")):
            return None
    value = int(raw)
    if value <= 0:
        raise ValueError(f"{key} must be positive, got {value}")
    return value


def _validate(data: Dict[str, Any]) -> Dict[str, Any]:
    known = {f.name for f in fields(InterpreterConfig)}
    unknown = set(data) - known
    if unknown:
        raise ValueError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")
    return {k: _coerce(k, v) for k, v in data.items()}


def load_config(path: Optional[Union[str, Path]] = None, **overrides: Any) -> InterpreterConfig:
    """Build an InterpreterConfig from a YAML file, the environment and overrides."""
    data: Dict[str, Any] = {}
    if path is not None:
        text = Path(path).read_text(encoding="utf-8")
        loaded = yaml.safe_load(text)
        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise ValueError(f"Configuration file {path} must contain a mapping")
        data.update(loaded)

    for env_name, key in _ENV_KEYS.items():
        raw = os.environ.get(env_name)
        if raw is not None:
            data[key] = raw

    data.update(overrides)
    return replace(InterpreterConfig(), **_validate(data))
