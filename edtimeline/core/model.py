#!/usr/bin/env python3
"""
EDTimeline domain model

Defines the shared vocabulary of the bundle summarization engine:
- Severity: five-level triage rating, also the critical-panel sort key
- EventCategory / DiagnosticKind: presentation labels
- TimelineConfig: recency windows for one invocation
- CriticalItem, VitalSnapshot, VitalTrend, DiagnosticSnapshot: critical panel lines
- TimelineEvent, ResourceReference: timeline entries and their provenance
- CriticalSummary, TimelineSnapshot: the finalized output

Design:
- Deterministic
- Immutable after construction (frozen dataclasses, tuple collections)
- No identity across invocations: a new bundle yields a new snapshot
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple


class Severity(Enum):
    """
    Triage severity, ordered most-severe first.

    The declaration order is the sort order: ascending by ``rank`` puts the
    most urgent items first.
    """
    CRITICAL = "critical"
    HIGH = "high"
    MODERATE = "moderate"
    LOW = "low"
    INFO = "info"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {severity: index for index, severity in enumerate(Severity)}


class EventCategory(Enum):
    """Timeline grouping label."""
    ENCOUNTER = "Encounter"
    PROCEDURE = "Procedure"
    CONDITION = "Condition"
    MEDICATION = "Medication"
    OBSERVATION = "Observation"
    DOCUMENT = "Document"
    NOTE = "Note"
    OTHER = "Other"


class DiagnosticKind(Enum):
    """Kind of diagnostic result shown in the recent-diagnostics list."""
    LAB = "lab"
    IMAGING = "imaging"
    OTHER = "other"


DEFAULT_VITAL_RECENT_HOURS = 6
DEFAULT_CLINICAL_EVENT_DAYS = 30


@dataclass(frozen=True)
class TimelineConfig:
    """
    Recency windows for one summarization pass.

    Attributes:
        vital_recent_hours: Window (hours) for vitals shown in the critical panel
        clinical_event_days: Window (days) for conditions admitted into panel/timeline
    """
    vital_recent_hours: int = DEFAULT_VITAL_RECENT_HOURS
    clinical_event_days: int = DEFAULT_CLINICAL_EVENT_DAYS

    def __post_init__(self) -> None:
        for name in ("vital_recent_hours", "clinical_event_days"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ValueError(f"{name} must be a non-negative integer, got {value!r}")

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "TimelineConfig":
        """Build a config from a partial mapping; missing keys keep their defaults."""
        data = data or {}
        return cls(
            vital_recent_hours=data.get("vital_recent_hours", DEFAULT_VITAL_RECENT_HOURS),
            clinical_event_days=data.get("clinical_event_days", DEFAULT_CLINICAL_EVENT_DAYS),
        )

    def to_dict(self) -> Dict[str, int]:
        return {
            "vital_recent_hours": self.vital_recent_hours,
            "clinical_event_days": self.clinical_event_days,
        }


@dataclass(frozen=True)
class CriticalItem:
    """One line of a critical-panel list (allergy, medication, condition, alert)."""
    label: str
    detail: Optional[str]
    severity: Severity


@dataclass(frozen=True)
class VitalSnapshot:
    """Latest reading of one vital sign.

    Attributes:
        name: Canonical vital name ("Heart rate", "Blood pressure", ...)
        value: Display value ("88 bpm", "120/80 mmHg")
        recorded_at: UTC timestamp of the reading, if known
        numeric_value: Primary numeric value (systolic for blood pressure)
        unit: Unit of measure, if reported
    """
    name: str
    value: str
    recorded_at: Optional[datetime] = None
    numeric_value: Optional[float] = None
    unit: Optional[str] = None


@dataclass(frozen=True)
class VitalTrendPoint:
    """A single point of a vital trend series."""
    recorded_at: Optional[datetime] = None
    value: Optional[float] = None
    label: Optional[str] = None


@dataclass(frozen=True)
class VitalTrend:
    """All qualifying readings of one vital, oldest first."""
    name: str
    unit: Optional[str] = None
    points: Tuple[VitalTrendPoint, ...] = ()


@dataclass(frozen=True)
class DiagnosticSnapshot:
    """Latest lab or imaging result for one diagnostic name."""
    name: str
    value: str
    recorded_at: Optional[datetime] = None
    severity: Severity = Severity.INFO
    kind: DiagnosticKind = DiagnosticKind.LAB
    unit: Optional[str] = None


@dataclass(frozen=True)
class ResourceReference:
    """Back-pointer to the source record. Provenance display only."""
    system: Optional[str] = None
    reference: Optional[str] = None
    display: Optional[str] = None


@dataclass(frozen=True)
class TimelineEvent:
    """A single timeline entry."""
    id: str
    category: EventCategory
    title: str
    detail: Optional[str]
    occurred_at: Optional[datetime]
    severity: Severity
    source: Optional[ResourceReference] = None


@dataclass(frozen=True)
class CriticalSummary:
    """
    Finalized critical panel.

    Item lists are severity-sorted (most severe first, stable on ties);
    vitals and diagnostics are newest first.
    """
    allergies: Tuple[CriticalItem, ...] = ()
    medications: Tuple[CriticalItem, ...] = ()
    chronic_conditions: Tuple[CriticalItem, ...] = ()
    code_status: Optional[str] = None
    alerts: Tuple[CriticalItem, ...] = ()
    recent_vitals: Tuple[VitalSnapshot, ...] = ()
    vital_trends: Tuple[VitalTrend, ...] = ()
    recent_diagnostics: Tuple[DiagnosticSnapshot, ...] = ()


@dataclass(frozen=True)
class TimelineSnapshot:
    """Sole output of the engine: the critical panel plus the sorted timeline."""
    generated_at: datetime
    critical: CriticalSummary = field(default_factory=CriticalSummary)
    events: Tuple[TimelineEvent, ...] = ()

    def critical_panel(self) -> CriticalSummary:
        return self.critical

    def timeline(self) -> Tuple[TimelineEvent, ...]:
        return self.events


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def empty_snapshot() -> TimelineSnapshot:
    """Snapshot with an empty panel and no events (mocks, placeholders)."""
    return TimelineSnapshot(generated_at=utc_now())
