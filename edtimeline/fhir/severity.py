#!/usr/bin/env python3
"""
Severity classification for emergency triage coloring.

Maps a record's kind, coded values and numeric quantities to one of the five
Severity levels. Applied independently to allergies, medications, conditions
and observations.

Observation precedence:
1. explicit interpretation code (critical / HH / LL → CRITICAL; H / L / abnormal → HIGH)
2. vital-specific numeric thresholds (inclusive at the documented boundary)
3. INFO

Thresholds must stay exactly as tabled: they drive the dashboard colors.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from edtimeline.core.model import Severity
from edtimeline.fhir.extractors import codeable_candidates, quantity_value


# ---------------------------------------------------------------------------
# Vital sign detection
# ---------------------------------------------------------------------------
# (canonical name, keywords); first match wins

VITAL_KEYWORDS: List[Tuple[str, Tuple[str, ...]]] = [
    ("Heart rate", ("heart rate", "pulse")),
    ("SpO2", ("spo2", "oxygen saturation")),
    ("Blood pressure", ("blood pressure",)),
    ("Respiratory rate", ("respiratory rate",)),
    ("Temperature", ("temperature",)),
]


def infer_vital_label(name: str) -> Optional[str]:
    """Canonical vital name for an observation name, or None."""
    lower = name.lower()
    for label, keywords in VITAL_KEYWORDS:
        if any(k in lower for k in keywords):
            return label
    return None


# ---------------------------------------------------------------------------
# Numeric threshold tables
# ---------------------------------------------------------------------------
# Each band: (comparison, limit, severity). Checked in order; first hit wins.

_HEART_RATE_BANDS = [
    (">=", 140.0, Severity.CRITICAL),
    (">=", 120.0, Severity.HIGH),
    ("<=", 40.0, Severity.CRITICAL),
    ("<=", 50.0, Severity.HIGH),
]

_RESPIRATORY_RATE_BANDS = [
    (">=", 35.0, Severity.CRITICAL),
    (">=", 28.0, Severity.HIGH),
    ("<=", 8.0, Severity.CRITICAL),
    ("<=", 10.0, Severity.HIGH),
]

_SPO2_BANDS = [
    ("<", 85.0, Severity.CRITICAL),
    ("<", 92.0, Severity.HIGH),
]

_LACTATE_BANDS = [
    (">=", 4.0, Severity.CRITICAL),
    (">=", 2.0, Severity.HIGH),
]

# (keywords, bands) for single-value observations
_NUMERIC_RULES: List[Tuple[Tuple[str, ...], list]] = [
    (("heart rate", "pulse"), _HEART_RATE_BANDS),
    (("respiratory rate",), _RESPIRATORY_RATE_BANDS),
    (("spo2", "oxygen saturation"), _SPO2_BANDS),
]


def _band_severity(value: float, bands: list) -> Severity:
    for op, limit, severity in bands:
        if op == ">=" and value >= limit:
            return severity
        if op == "<=" and value <= limit:
            return severity
        if op == "<" and value < limit:
            return severity
    return Severity.MODERATE


def parse_blood_pressure_from_detail(detail: str) -> Optional[Tuple[int, int]]:
    """Integer (systolic, diastolic) from the first "sys/dia" token of a detail string."""
    for part in detail.split():
        if "/" in part:
            sys_text, dia_text = part.split("/", 1)
            try:
                return int(sys_text), int(dia_text)
            except ValueError:
                return None
    return None


def _blood_pressure_severity(systolic: int, diastolic: int) -> Severity:
    if systolic >= 200 or diastolic >= 120:
        return Severity.CRITICAL
    if systolic >= 180 or diastolic >= 110:
        return Severity.HIGH
    if systolic <= 80 or diastolic <= 50:
        return Severity.HIGH
    return Severity.MODERATE


# ---------------------------------------------------------------------------
# Observation
# ---------------------------------------------------------------------------

def severity_from_interpretation(resource: Dict[str, Any]) -> Optional[Severity]:
    """Severity implied by Observation.interpretation, if any concept is decisive."""
    interpretation = resource.get("interpretation")
    if not isinstance(interpretation, list):
        return None

    for concept in interpretation:
        for candidate in codeable_candidates(concept):
            lower = candidate.lower()
            if "critical" in lower or lower in ("hh", "ll"):
                return Severity.CRITICAL
            if lower in ("h", "l") or "abnormal" in lower:
                return Severity.HIGH
    return None


def classify_observation(name: str, resource: Dict[str, Any], detail: str) -> Severity:
    """
    Severity of an observation.

    Args:
        name: Observation display name
        resource: The raw Observation
        detail: Rendered display value (blood pressure thresholds read "sys/dia" from it)
    """
    explicit = severity_from_interpretation(resource)
    if explicit is not None:
        return explicit

    normalized = name.lower()
    value = quantity_value(resource.get("valueQuantity"))

    for keywords, bands in _NUMERIC_RULES:
        if value is not None and any(k in normalized for k in keywords):
            return _band_severity(value, bands)

    if "blood pressure" in normalized:
        bp = parse_blood_pressure_from_detail(detail)
        if bp is not None:
            return _blood_pressure_severity(*bp)

    if "lactate" in normalized and value is not None:
        return _band_severity(value, _LACTATE_BANDS)

    return Severity.INFO


# ---------------------------------------------------------------------------
# Allergy / medication / condition
# ---------------------------------------------------------------------------

_ALLERGY_CRITICALITY = {
    "high": Severity.CRITICAL,
    "unable-to-assess": Severity.CRITICAL,
    "low": Severity.MODERATE,
}

_REACTION_SEVERITY = {
    "severe": Severity.CRITICAL,
    "moderate": Severity.HIGH,
    "mild": Severity.MODERATE,
}

_MEDICATION_STATUS_SEVERITY = {
    "active": Severity.HIGH,
    "intended": Severity.HIGH,
    "on-hold": Severity.MODERATE,
    "completed": Severity.LOW,
}

_CONDITION_KEYWORDS: List[Tuple[Tuple[str, ...], Severity]] = [
    (("sepsis", "shock", "arrest", "respiratory failure"), Severity.CRITICAL),
    (("pneumonia", "infarction", "stroke", "pulmonary embolism"), Severity.HIGH),
]


def allergy_severity(resource: Dict[str, Any]) -> Severity:
    """criticality first, then the first reaction carrying a severity, else MODERATE."""
    criticality = resource.get("criticality")
    if isinstance(criticality, str):
        return _ALLERGY_CRITICALITY.get(criticality, Severity.MODERATE)

    reactions = resource.get("reaction")
    if isinstance(reactions, list):
        for reaction in reactions:
            if not isinstance(reaction, dict):
                continue
            severity = reaction.get("severity")
            if isinstance(severity, str):
                return _REACTION_SEVERITY.get(severity, Severity.MODERATE)

    return Severity.MODERATE


def medication_severity(status: str) -> Severity:
    return _MEDICATION_STATUS_SEVERITY.get(status, Severity.MODERATE)


def condition_severity(condition_name: str) -> Severity:
    normalized = condition_name.lower()
    for keywords, severity in _CONDITION_KEYWORDS:
        if any(k in normalized for k in keywords):
            return severity
    return Severity.MODERATE
