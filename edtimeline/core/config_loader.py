#!/usr/bin/env python3
"""
Timeline configuration loader for EDTimeline.

Resolves a TimelineConfig from, in increasing precedence:
1. built-in defaults (6 hours / 30 days)
2. an optional JSON file ({"vital_recent_hours": .., "clinical_event_days": ..},
   optionally nested under a "timeline" key)
3. environment variables EDTIMELINE_VITAL_RECENT_HOURS / EDTIMELINE_CLINICAL_EVENT_DAYS
4. explicit overrides (CLI flags)

Design:
- Deterministic
- Fail-closed: unreadable or invalid configuration stops the run
- Immutable config at runtime
"""
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from edtimeline.core.model import TimelineConfig

ENV_PREFIX = "EDTIMELINE_"
_CONFIG_KEYS = ("vital_recent_hours", "clinical_event_days")


def _read_json(path: Path) -> Dict[str, Any]:
    """Read and parse JSON file with fail-closed error handling."""
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise SystemExit(f"Missing config JSON: {path}")
    except json.JSONDecodeError as e:
        raise SystemExit(f"Invalid config JSON: {path}\n{e}")


def _coerce_int(key: str, value: Any, origin: str) -> int:
    if isinstance(value, bool):
        raise SystemExit(f"{origin}: {key} must be a non-negative integer, got {value!r}")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise SystemExit(f"{origin}: {key} must be a non-negative integer, got {value!r}")
    if isinstance(value, float) and not value.is_integer():
        raise SystemExit(f"{origin}: {key} must be a whole number, got {value!r}")
    if number < 0:
        raise SystemExit(f"{origin}: {key} must be a non-negative integer, got {value!r}")
    return number


def _file_values(path: Path) -> Dict[str, int]:
    obj = _read_json(path)
    if not isinstance(obj, dict):
        raise SystemExit(f"{path}: config must be a JSON object")
    section = obj.get("timeline", obj)
    if not isinstance(section, dict):
        raise SystemExit(f"{path}: 'timeline' must be a JSON object")

    values: Dict[str, int] = {}
    for key in _CONFIG_KEYS:
        if key in section and section[key] is not None:
            values[key] = _coerce_int(key, section[key], str(path))
    return values


def _env_values(environ: Mapping[str, str]) -> Dict[str, int]:
    values: Dict[str, int] = {}
    for key in _CONFIG_KEYS:
        env_name = ENV_PREFIX + key.upper()
        raw = environ.get(env_name)
        if raw is None or not raw.strip():
            continue
        values[key] = _coerce_int(key, raw.strip(), env_name)
    return values


def load_timeline_config(
    path: Optional[Path] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> TimelineConfig:
    """
    Load the timeline configuration.

    Args:
        path: Optional JSON config file
        overrides: Optional explicit values; None entries are ignored
        environ: Environment mapping (defaults to os.environ)

    Returns: TimelineConfig

    Raises: SystemExit if the file is missing or malformed, or a value is invalid
    """
    values: Dict[str, int] = {}
    if path is not None:
        values.update(_file_values(Path(path)))

    values.update(_env_values(os.environ if environ is None else environ))

    for key, value in (overrides or {}).items():
        if key not in _CONFIG_KEYS:
            raise SystemExit(f"Unknown timeline config key: {key}")
        if value is not None:
            values[key] = _coerce_int(key, value, "override")

    return TimelineConfig.from_dict(values)
