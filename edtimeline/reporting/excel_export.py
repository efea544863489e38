#!/usr/bin/env python3
"""
Excel workbook export of a TimelineSnapshot.

Sheets:
- Critical Panel (code status, alerts, allergies, medications, chronic conditions)
- Vitals (recent vitals, then every trend point)
- Diagnostics (recent lab / imaging results)
- Timeline (all events, chronological)

Severity cells are color-filled with the triage palette.
Each export overwrites the target file.
"""
from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional, Sequence

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from edtimeline.core.model import Severity, TimelineSnapshot
from edtimeline.reporting.json_export import format_timestamp


# ---------------------------------------------------------------------------
# Triage palette (openpyxl uses ARGB hex without #)
# ---------------------------------------------------------------------------

def _fill(argb: str) -> PatternFill:
    return PatternFill(start_color=argb, end_color=argb, fill_type="solid")


SEVERITY_FILLS = {
    Severity.CRITICAL: _fill("FFFECACA"),
    Severity.HIGH: _fill("FFFED7AA"),
    Severity.MODERATE: _fill("FFFEF3C7"),
    Severity.LOW: _fill("FFD1FAE5"),
    Severity.INFO: _fill("FFF3F4F6"),
}

_HEADER_FONT = Font(name="Calibri", size=11, bold=True, color="FFFFFFFF")
_HEADER_FILL = _fill("FF1E3A8A")
_BODY_FONT = Font(name="Calibri", size=10)
_BOLD_FONT = Font(name="Calibri", size=10, bold=True)
_THIN_BORDER = Border(
    left=Side(style="thin", color="FFE5E7EB"),
    right=Side(style="thin", color="FFE5E7EB"),
    top=Side(style="thin", color="FFE5E7EB"),
    bottom=Side(style="thin", color="FFE5E7EB"),
)


def _ts(value: Optional[datetime]) -> str:
    return format_timestamp(value) if value else ""


def _write_header(ws, headers: Sequence[str], widths: Sequence[int]) -> None:
    """Write and style the header row, freeze it, set column widths."""
    for col, (header, width) in enumerate(zip(headers, widths), 1):
        cell = ws.cell(row=1, column=col, value=header)
        cell.font = _HEADER_FONT
        cell.fill = _HEADER_FILL
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)
        cell.border = _THIN_BORDER
        ws.column_dimensions[get_column_letter(col)].width = width
    ws.freeze_panes = "A2"
    ws.auto_filter.ref = f"A1:{get_column_letter(len(headers))}1"


def _write_row(ws, row: int, values: Sequence[Any], severity: Optional[Severity] = None,
               severity_col: Optional[int] = None) -> None:
    for col, value in enumerate(values, 1):
        cell = ws.cell(row=row, column=col, value=value)
        cell.font = _BODY_FONT
        cell.border = _THIN_BORDER
        cell.alignment = Alignment(vertical="top", wrap_text=True)
    if severity is not None and severity_col is not None:
        cell = ws.cell(row=row, column=severity_col)
        cell.fill = SEVERITY_FILLS[severity]
        cell.font = _BOLD_FONT


# ---------------------------------------------------------------------------
# Sheet builders
# ---------------------------------------------------------------------------

def _build_panel_sheet(wb: Workbook, snapshot: TimelineSnapshot) -> None:
    ws = wb.active
    ws.title = "Critical Panel"
    _write_header(ws, ["Section", "Label", "Detail", "Severity"], [20, 40, 60, 12])

    critical = snapshot.critical
    row = 2
    _write_row(ws, row, ["Code status", critical.code_status or "not documented", "", ""])
    row += 1

    sections = [
        ("Alert", critical.alerts),
        ("Allergy", critical.allergies),
        ("Medication", critical.medications),
        ("Chronic condition", critical.chronic_conditions),
    ]
    for section, items in sections:
        for item in items:
            _write_row(
                ws, row,
                [section, item.label, item.detail or "", item.severity.value],
                severity=item.severity, severity_col=4,
            )
            row += 1


def _build_vitals_sheet(wb: Workbook, snapshot: TimelineSnapshot) -> None:
    ws = wb.create_sheet("Vitals")
    _write_header(ws, ["Series", "Vital", "Value", "Numeric", "Unit", "Recorded At"], [12, 20, 20, 10, 10, 24])

    row = 2
    for vital in snapshot.critical.recent_vitals:
        _write_row(ws, row, ["latest", vital.name, vital.value, vital.numeric_value, vital.unit or "",
                             _ts(vital.recorded_at)])
        row += 1

    for trend in snapshot.critical.vital_trends:
        for point in trend.points:
            _write_row(ws, row, ["trend", trend.name, point.label or "", point.value, trend.unit or "",
                                 _ts(point.recorded_at)])
            row += 1


def _build_diagnostics_sheet(wb: Workbook, snapshot: TimelineSnapshot) -> None:
    ws = wb.create_sheet("Diagnostics")
    _write_header(ws, ["Name", "Value", "Unit", "Kind", "Severity", "Recorded At"], [32, 24, 10, 10, 12, 24])

    for row, diag in enumerate(snapshot.critical.recent_diagnostics, 2):
        _write_row(
            ws, row,
            [diag.name, diag.value, diag.unit or "", diag.kind.value, diag.severity.value, _ts(diag.recorded_at)],
            severity=diag.severity, severity_col=5,
        )


def _build_timeline_sheet(wb: Workbook, snapshot: TimelineSnapshot) -> None:
    ws = wb.create_sheet("Timeline")
    _write_header(ws, ["Occurred At", "Category", "Title", "Detail", "Severity", "Source"], [24, 14, 36, 60, 12, 32])

    for row, event in enumerate(snapshot.events, 2):
        source = event.source.reference if event.source and event.source.reference else ""
        _write_row(
            ws, row,
            [_ts(event.occurred_at), event.category.value, event.title, event.detail or "",
             event.severity.value, source],
            severity=event.severity, severity_col=5,
        )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def build_snapshot_workbook(snapshot: TimelineSnapshot) -> Workbook:
    """Create the four-sheet workbook in memory."""
    wb = Workbook()
    builders: List = [_build_panel_sheet, _build_vitals_sheet, _build_diagnostics_sheet, _build_timeline_sheet]
    for builder in builders:
        builder(wb, snapshot)
    return wb


def write_snapshot_workbook(snapshot: TimelineSnapshot, output_path: Path) -> Path:
    """
    Write the snapshot workbook to output_path (overwrites).

    Returns:
        Path to the Excel file
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    build_snapshot_workbook(snapshot).save(output_path)
    return output_path
