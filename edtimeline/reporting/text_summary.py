#!/usr/bin/env python3
"""
Plain-text rendering of the critical panel.

Used by the CLI (--text) and for quick terminal review of a bundle.

Example vitals line:
    "Heart rate 88 bpm, Blood pressure 132/78 mmHg, SpO2 97 %"
"""
from __future__ import annotations

from typing import Iterable, List

from edtimeline.core.model import CriticalItem, TimelineSnapshot, VitalSnapshot
from edtimeline.reporting.json_export import format_timestamp

# Standard display order; anything else follows alphabetically
_VITAL_ORDER = ["Heart rate", "Blood pressure", "Respiratory rate", "SpO2", "Temperature"]


def format_vitals_summary(vitals: Iterable[VitalSnapshot]) -> str:
    """One line, one value per vital name, in standard order."""
    latest = {v.name: v for v in vitals}
    if not latest:
        return "No recent vitals."

    names = [n for n in _VITAL_ORDER if n in latest]
    names += sorted(n for n in latest if n not in _VITAL_ORDER)
    return ", ".join(f"{name} {latest[name].value}" for name in names)


def _item_lines(title: str, items: Iterable[CriticalItem]) -> List[str]:
    items = list(items)
    lines = [f"{title} ({len(items)})"]
    if not items:
        lines.append("  none")
    for item in items:
        line = f"  [{item.severity.value.upper()}] {item.label}"
        if item.detail:
            line += f" - {item.detail}"
        lines.append(line)
    return lines


def format_critical_panel(snapshot: TimelineSnapshot) -> str:
    """Multi-line text of the critical panel and the diagnostics list."""
    critical = snapshot.critical
    lines: List[str] = [f"Generated: {format_timestamp(snapshot.generated_at)}"]
    lines.append(f"Code status: {critical.code_status or 'not documented'}")
    lines.append(f"Vitals: {format_vitals_summary(critical.recent_vitals)}")
    lines.append("")
    lines += _item_lines("Alerts", critical.alerts)
    lines += _item_lines("Allergies", critical.allergies)
    lines += _item_lines("Medications", critical.medications)
    lines += _item_lines("Chronic conditions", critical.chronic_conditions)

    lines.append(f"Recent diagnostics ({len(critical.recent_diagnostics)})")
    for diag in critical.recent_diagnostics:
        when = format_timestamp(diag.recorded_at) if diag.recorded_at else "time unknown"
        lines.append(f"  [{diag.severity.value.upper()}] {diag.name}: {diag.value} ({diag.kind.value}, {when})")

    lines.append(f"Timeline events: {len(snapshot.events)}")
    return "\n".join(lines)
