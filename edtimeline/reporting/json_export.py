#!/usr/bin/env python3
"""
JSON export of a TimelineSnapshot.

The dict produced here is the stable wire contract consumed by dashboards:
- snake_case keys
- severity as "critical" | "high" | "moderate" | "low" | "info"
- event category as "Encounter" | "Procedure" | ... | "Other"
- diagnostic kind as "lab" | "imaging" | "other"
- timestamps as RFC 3339 UTC strings ("2024-03-01T10:15:00Z"), null when unknown
"""
from __future__ import annotations

import json
from dataclasses import fields, is_dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict

from edtimeline import ENGINE_VERSION, OUTPUT_SCHEMA_VERSION
from edtimeline.core.model import TimelineSnapshot

DYNAMIC_PLACEHOLDER = "__DYNAMIC_TIMESTAMP__"


def format_timestamp(value: datetime) -> str:
    text = value.astimezone(timezone.utc).isoformat()
    if text.endswith("+00:00"):
        text = text[:-6] + "Z"
    return text


def _to_jsonable(value: Any) -> Any:
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: _to_jsonable(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, (list, tuple)):
        return [_to_jsonable(v) for v in value]
    return value


def snapshot_to_dict(snapshot: TimelineSnapshot, include_meta: bool = False) -> Dict[str, Any]:
    """
    Convert a snapshot to plain JSON-compatible data.

    Args:
        snapshot: Engine output
        include_meta: Add a "meta" block with engine and schema versions
    """
    data = _to_jsonable(snapshot)
    if include_meta:
        data["meta"] = {
            "engine_version": ENGINE_VERSION,
            "schema_version": OUTPUT_SCHEMA_VERSION,
        }
    return data


def snapshot_to_json(snapshot: TimelineSnapshot, indent: int = 2, include_meta: bool = False) -> str:
    return json.dumps(snapshot_to_dict(snapshot, include_meta=include_meta), indent=indent, ensure_ascii=False)


def write_snapshot_json(snapshot: TimelineSnapshot, output_path: Path) -> Path:
    """Write the snapshot (with meta block) to output_path."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(snapshot_to_json(snapshot, include_meta=True), encoding="utf-8")
    return output_path


def normalize_dynamic_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    """Mask generated_at (and drop meta) so two exports of one bundle compare equal."""
    out = dict(data)
    if "generated_at" in out:
        out["generated_at"] = DYNAMIC_PLACEHOLDER
    out.pop("meta", None)
    return out
