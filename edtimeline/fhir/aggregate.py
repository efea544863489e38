#!/usr/bin/env python3
"""
Per-bundle aggregation state and finalization.

AggregateData is the single builder threaded through every resource handler.
It keeps:
- the bundle anchor (latest timestamp anywhere in the bundle)
- four critical-item lists (alerts, allergies, medications, chronic conditions)
- the latest code status
- latest value per vital name, trend points per vital name
- latest result per diagnostic name
- the flat, unordered event list

finalize() consumes it into an immutable TimelineSnapshot.

Merge rules are explicit, never map-overwrite order:
- most recent wins (strictly later timestamp; present beats absent)
- on equal or absent timestamps the value seen first is kept
- code status is the exception: a later record replaces the held one
  unless the held one is strictly newer
- trend unit: first unit seen wins
- timestamp sorts put entries without a timestamp last, in processing order
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from edtimeline.core.model import (
    CriticalItem,
    CriticalSummary,
    DiagnosticSnapshot,
    TimelineConfig,
    TimelineEvent,
    TimelineSnapshot,
    VitalSnapshot,
    VitalTrend,
    VitalTrendPoint,
    utc_now,
)

_MIN_UTC = datetime.min.replace(tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Recency helpers
# ---------------------------------------------------------------------------

def is_more_recent(candidate: Optional[datetime], current: Optional[datetime]) -> bool:
    """True when candidate should replace current under most-recent-wins."""
    if candidate is not None and current is not None:
        return candidate > current
    return candidate is not None and current is None


def _whole_units(delta: timedelta, unit: timedelta) -> int:
    """Absolute difference in whole units, truncated."""
    return abs(delta) // unit


def is_recent_vital(anchor: Optional[datetime], recorded_at: Optional[datetime], window_hours: int) -> bool:
    """Within window_hours of the anchor. Unknown anchor or timestamp counts as recent."""
    if anchor is None or recorded_at is None:
        return True
    return _whole_units(anchor - recorded_at, timedelta(hours=1)) <= window_hours


def is_recent_event(anchor: Optional[datetime], recorded_at: Optional[datetime], window_days: int) -> bool:
    """Within window_days of the anchor. Unknown anchor or timestamp counts as recent."""
    if anchor is None or recorded_at is None:
        return True
    return _whole_units(anchor - recorded_at, timedelta(days=1)) <= window_days


def _severity_key(item: CriticalItem) -> int:
    return item.severity.rank


def _ascending_key(ts: Optional[datetime]):
    return (ts is None, ts or _MIN_UTC)


def _descending_key(ts: Optional[datetime]):
    # used with reverse=True; absent sorts after every present timestamp
    return (ts is not None, ts or _MIN_UTC)


# ---------------------------------------------------------------------------
# Builder state
# ---------------------------------------------------------------------------

@dataclass
class CodeStatusRecord:
    value: str
    recorded_at: Optional[datetime]


@dataclass
class TrendAccumulator:
    """Trend points for one vital. unit is the first unit seen."""
    name: str
    unit: Optional[str] = None
    points: List[VitalTrendPoint] = field(default_factory=list)

    def add(self, point: VitalTrendPoint, unit: Optional[str]) -> None:
        if self.unit is None and unit:
            self.unit = unit
        self.points.append(point)


@dataclass
class AggregateData:
    """Mutable aggregation context for one summarization pass."""
    anchor: Optional[datetime] = None
    alerts: List[CriticalItem] = field(default_factory=list)
    allergies: List[CriticalItem] = field(default_factory=list)
    medications: List[CriticalItem] = field(default_factory=list)
    chronic_conditions: List[CriticalItem] = field(default_factory=list)
    code_status: Optional[CodeStatusRecord] = None
    vitals: Dict[str, VitalSnapshot] = field(default_factory=dict)
    trends: Dict[str, TrendAccumulator] = field(default_factory=dict)
    diagnostics: Dict[str, DiagnosticSnapshot] = field(default_factory=dict)
    events: List[TimelineEvent] = field(default_factory=list)

    @classmethod
    def with_anchor(cls, anchor: Optional[datetime]) -> "AggregateData":
        return cls(anchor=anchor)

    # -- last-write-wins maps ------------------------------------------------

    def update_code_status(self, value: str, recorded_at: Optional[datetime]) -> str:
        """Apply a code-status record; returns the value now held."""
        if self.code_status is None or not is_more_recent(self.code_status.recorded_at, recorded_at):
            self.code_status = CodeStatusRecord(value=value, recorded_at=recorded_at)
        return self.code_status.value

    def upsert_vital(self, snapshot: VitalSnapshot) -> None:
        existing = self.vitals.get(snapshot.name)
        if existing is None or is_more_recent(snapshot.recorded_at, existing.recorded_at):
            self.vitals[snapshot.name] = snapshot

    def add_trend_point(self, name: str, point: VitalTrendPoint, unit: Optional[str]) -> None:
        accumulator = self.trends.get(name)
        if accumulator is None:
            accumulator = self.trends[name] = TrendAccumulator(name=name)
        accumulator.add(point, unit)

    def upsert_diagnostic(self, snapshot: DiagnosticSnapshot) -> None:
        existing = self.diagnostics.get(snapshot.name)
        if existing is None or is_more_recent(snapshot.recorded_at, existing.recorded_at):
            self.diagnostics[snapshot.name] = snapshot

    # -- reduction -------------------------------------------------------------

    def merge(self, later: "AggregateData") -> "AggregateData":
        """
        Fold an aggregate built from a later slice of the same bundle into this one.

        Ties on equal or absent timestamps keep this (earlier) aggregate's value,
        except code status, where the later slice wins ties. Either way the result
        equals a single sequential pass over both slices.
        """
        if later.anchor is not None and (self.anchor is None or later.anchor > self.anchor):
            self.anchor = later.anchor

        self.alerts.extend(later.alerts)
        self.allergies.extend(later.allergies)
        self.medications.extend(later.medications)
        self.chronic_conditions.extend(later.chronic_conditions)
        self.events.extend(later.events)

        if later.code_status is not None:
            self.update_code_status(later.code_status.value, later.code_status.recorded_at)

        for snapshot in later.vitals.values():
            self.upsert_vital(snapshot)

        for name, accumulator in later.trends.items():
            for point in accumulator.points:
                self.add_trend_point(name, point, accumulator.unit)

        for snapshot in later.diagnostics.values():
            self.upsert_diagnostic(snapshot)

        return self

    # -- finalization ----------------------------------------------------------

    def _finalize_trends(self) -> List[VitalTrend]:
        trends: List[VitalTrend] = []
        for accumulator in self.trends.values():
            points = sorted(accumulator.points, key=lambda p: _ascending_key(p.recorded_at))
            trends.append(VitalTrend(name=accumulator.name, unit=accumulator.unit, points=tuple(points)))

        def latest(trend: VitalTrend) -> Optional[datetime]:
            stamps = [p.recorded_at for p in trend.points if p.recorded_at is not None]
            return max(stamps) if stamps else None

        trends.sort(key=lambda t: _descending_key(latest(t)), reverse=True)
        return trends

    def finalize(self, config: TimelineConfig) -> TimelineSnapshot:
        """Filter, sort and package the aggregated data."""
        recent_vitals = [
            vital for vital in self.vitals.values()
            if is_recent_vital(self.anchor, vital.recorded_at, config.vital_recent_hours)
        ]
        recent_vitals.sort(key=lambda v: _descending_key(v.recorded_at), reverse=True)

        diagnostics = sorted(
            self.diagnostics.values(),
            key=lambda d: _descending_key(d.recorded_at),
            reverse=True,
        )

        critical = CriticalSummary(
            allergies=tuple(sorted(self.allergies, key=_severity_key)),
            medications=tuple(sorted(self.medications, key=_severity_key)),
            chronic_conditions=tuple(sorted(self.chronic_conditions, key=_severity_key)),
            code_status=self.code_status.value if self.code_status else None,
            alerts=tuple(sorted(self.alerts, key=_severity_key)),
            recent_vitals=tuple(recent_vitals),
            vital_trends=tuple(self._finalize_trends()),
            recent_diagnostics=tuple(diagnostics),
        )

        events = sorted(self.events, key=lambda e: _ascending_key(e.occurred_at))

        return TimelineSnapshot(
            generated_at=utc_now(),
            critical=critical,
            events=tuple(events),
        )
