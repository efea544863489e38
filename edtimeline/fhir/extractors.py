#!/usr/bin/env python3
"""
Field extraction helpers for loosely-typed FHIR records.

Every helper takes plain JSON values (dicts, lists, strings, numbers) and
returns None when the field is absent or unusable. Nothing here raises for
missing or malformed data: "absent" is a legitimate value.

Fallback order:
- coded text: non-empty text → first coding display → first coding code
- timestamps: first listed field that parses as an instant; for a Period,
  end before start
- quantities: "value unit", trailing-zero precision dropped
"""
from __future__ import annotations

import math
import sys
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from dateutil import parser as dateutil_parser
from dateutil.relativedelta import relativedelta

from edtimeline.core.model import ResourceReference


# ---------------------------------------------------------------------------
# Timestamp field lists, per resource kind
# ---------------------------------------------------------------------------

OBSERVATION_TIME_FIELDS = ["effectiveDateTime", "effectiveInstant", "effectivePeriod", "issued"]
CONDITION_TIME_FIELDS = ["recordedDate", "onsetDateTime", "onsetDate", "assertedDate"]
MEDICATION_STATEMENT_TIME_FIELDS = ["effectiveDateTime", "effectivePeriod", "dateAsserted", "authoredOn"]
MEDICATION_REQUEST_TIME_FIELDS = ["authoredOn", "effectiveDateTime", "effectivePeriod"]
ALLERGY_TIME_FIELDS = ["recordedDate", "onsetDateTime", "onsetDate"]
PROCEDURE_TIME_FIELDS = ["performedDateTime", "performedPeriod"]
ENCOUNTER_TIME_FIELDS = ["period"]
DOCUMENT_TIME_FIELDS = ["date", "created"]
FALLBACK_TIME_FIELDS = ["effectiveDateTime", "issued", "date"]

RESOURCE_TIME_FIELDS: Dict[str, List[str]] = {
    "Observation": OBSERVATION_TIME_FIELDS,
    "Condition": CONDITION_TIME_FIELDS,
    "MedicationStatement": MEDICATION_STATEMENT_TIME_FIELDS,
    "MedicationRequest": MEDICATION_REQUEST_TIME_FIELDS,
    "AllergyIntolerance": ALLERGY_TIME_FIELDS,
    "Procedure": PROCEDURE_TIME_FIELDS,
    "Encounter": ENCOUNTER_TIME_FIELDS,
    "DocumentReference": DOCUMENT_TIME_FIELDS,
    "Composition": DOCUMENT_TIME_FIELDS,
}


# ---------------------------------------------------------------------------
# Coded values
# ---------------------------------------------------------------------------

def _non_empty(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def codeable_text(value: Any) -> Optional[str]:
    """Display text of a CodeableConcept."""
    if not isinstance(value, dict):
        return None

    text = _non_empty(value.get("text"))
    if text:
        return text

    codings = value.get("coding")
    if isinstance(codings, list):
        for coding in codings:
            if not isinstance(coding, dict):
                continue
            display = _non_empty(coding.get("display"))
            if display:
                return display
            code = _non_empty(coding.get("code"))
            if code:
                return code
    return None


def coding_text(value: Any) -> Optional[str]:
    """Display text of a bare Coding (display, then code)."""
    if not isinstance(value, dict):
        return None
    return _non_empty(value.get("display")) or _non_empty(value.get("code"))


def codeable_candidates(value: Any) -> List[str]:
    """All textual forms of a CodeableConcept: text, then each coding's display and code."""
    if not isinstance(value, dict):
        return []
    out: List[str] = []
    text = _non_empty(value.get("text"))
    if text:
        out.append(text)
    codings = value.get("coding")
    if isinstance(codings, list):
        for coding in codings:
            if not isinstance(coding, dict):
                continue
            for key in ("display", "code"):
                candidate = _non_empty(coding.get(key))
                if candidate:
                    out.append(candidate)
    return out


def status_text(value: Any) -> Optional[str]:
    """Status that may be either a CodeableConcept or a plain code string."""
    if value is None:
        return None
    text = codeable_text(value)
    if text:
        return text
    if isinstance(value, str):
        return value
    return None


def first_codeable_text(values: Any) -> Optional[str]:
    """Coded text of the first element of a CodeableConcept array."""
    if isinstance(values, list) and values:
        return codeable_text(values[0])
    return None


def capitalize_first(text: str) -> str:
    return text[:1].upper() + text[1:]


# ---------------------------------------------------------------------------
# Timestamps
# ---------------------------------------------------------------------------

def parse_instant(value: Any) -> Optional[datetime]:
    """
    Parse an ISO-8601 date-time carrying a UTC offset; returns UTC.

    Date-only and offset-less values are not instants and yield None.
    """
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = dateutil_parser.isoparse(value.strip())
    except (ValueError, OverflowError):
        return None
    if parsed.tzinfo is None or parsed.utcoffset() is None:
        return None
    return parsed.astimezone(timezone.utc)


def extract_datetime(resource: Any, fields: Sequence[str]) -> Optional[datetime]:
    """First field (in order) that parses as an instant. Periods prefer end over start."""
    if not isinstance(resource, dict):
        return None

    for name in fields:
        value = resource.get(name)
        if value is None:
            continue

        if isinstance(value, str):
            parsed = parse_instant(value)
            if parsed:
                return parsed

        if isinstance(value, dict):
            for bound in ("end", "start"):
                parsed = parse_instant(value.get(bound))
                if parsed:
                    return parsed
    return None


def resource_timestamp(resource: Any) -> Optional[datetime]:
    """Timestamp of any resource, using its kind's ordered field list."""
    if not isinstance(resource, dict):
        return None
    resource_type = resource.get("resourceType")
    if not isinstance(resource_type, str):
        return None
    fields = RESOURCE_TIME_FIELDS.get(resource_type, FALLBACK_TIME_FIELDS)
    return extract_datetime(resource, fields)


def observation_timestamp(resource: Any) -> Optional[datetime]:
    return extract_datetime(resource, OBSERVATION_TIME_FIELDS)


# ---------------------------------------------------------------------------
# Quantities
# ---------------------------------------------------------------------------

def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        number = float(value)
    except OverflowError:
        return None
    return number if math.isfinite(number) else None


def format_numeric(value: float) -> str:
    """
    Render a number without trailing zero precision.

    120.0 → "120", 37.5 → "37.5", 1.25 → "1.25"
    """
    value = float(value)
    if math.isfinite(value):
        if abs(math.modf(value)[0]) < sys.float_info.epsilon:
            return f"{value:.0f}"
        if abs(math.modf(value * 10.0)[0]) < sys.float_info.epsilon:
            return f"{value:.1f}"
    return repr(value)


def quantity_value(quantity: Any) -> Optional[float]:
    if not isinstance(quantity, dict):
        return None
    return _as_number(quantity.get("value"))


def quantity_unit(quantity: Any) -> Optional[str]:
    if not isinstance(quantity, dict):
        return None
    return _non_empty(quantity.get("unit"))


def format_quantity(quantity: Any) -> Optional[str]:
    """Format a Quantity as "value unit" (or bare value without a unit)."""
    magnitude = quantity_value(quantity)
    if magnitude is None:
        return None
    number = format_numeric(magnitude)
    unit = quantity.get("unit")
    if isinstance(unit, str) and unit:
        return f"{number} {unit}"
    return number


# ---------------------------------------------------------------------------
# Identity / provenance
# ---------------------------------------------------------------------------

def resource_id(resource: Dict[str, Any], fallback: str) -> str:
    rid = resource.get("id")
    if isinstance(rid, str):
        return rid
    return f"{fallback}-unknown"


def make_reference(resource: Dict[str, Any]) -> Optional[ResourceReference]:
    resource_type = resource.get("resourceType")
    rid = resource.get("id")
    if not isinstance(resource_type, str) or not isinstance(rid, str):
        return None
    return ResourceReference(
        system="FHIR",
        reference=f"{resource_type}/{rid}",
        display=codeable_text(resource.get("code")),
    )


# ---------------------------------------------------------------------------
# Patient
# ---------------------------------------------------------------------------

def patient_name(resource: Dict[str, Any]) -> Optional[str]:
    """First given name + family name of the first HumanName."""
    names = resource.get("name")
    if not isinstance(names, list) or not names or not isinstance(names[0], dict):
        return None
    name = names[0]

    given = ""
    given_list = name.get("given")
    if isinstance(given_list, list) and given_list and isinstance(given_list[0], str):
        given = given_list[0]
    family = name.get("family") if isinstance(name.get("family"), str) else ""

    full = f"{given} {family}".strip()
    return full or None


def parse_birth_date(value: Any) -> Optional[date]:
    if not isinstance(value, str):
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        return None


def patient_age(birth_date: Optional[date], today: Optional[date] = None) -> Optional[int]:
    """Age in whole years; None for a missing or future birth date."""
    if birth_date is None:
        return None
    today = today or datetime.now(timezone.utc).date()
    if birth_date > today:
        return None
    return relativedelta(today, birth_date).years


def gender_label(gender: Any) -> Optional[str]:
    if not isinstance(gender, str):
        return None
    if gender == "male":
        return "Male"
    if gender == "female":
        return "Female"
    return f"Gender: {gender}"


# ---------------------------------------------------------------------------
# Allergy / medication detail
# ---------------------------------------------------------------------------

def summarize_reactions(resource: Dict[str, Any]) -> Optional[str]:
    """Comma-joined manifestations across all reactions."""
    reactions = resource.get("reaction")
    if not isinstance(reactions, list):
        return None

    parts: List[str] = []
    for reaction in reactions:
        if not isinstance(reaction, dict):
            continue
        manifestations = reaction.get("manifestation")
        if not isinstance(manifestations, list):
            continue
        for manifestation in manifestations:
            text = codeable_text(manifestation)
            if text:
                parts.append(text)
    return ", ".join(parts) if parts else None


def summarize_dosage(resource: Dict[str, Any]) -> Optional[str]:
    """Text, route and rate of the first dosage instruction."""
    dosages = resource.get("dosage")
    if not isinstance(dosages, list) or not dosages or not isinstance(dosages[0], dict):
        return None
    dosage = dosages[0]

    parts: List[str] = []
    text = dosage.get("text")
    if isinstance(text, str):
        parts.append(text.strip())

    route = codeable_text(dosage.get("route"))
    if route:
        parts.append(f"Route: {route}")

    rate = format_quantity(dosage.get("rateQuantity"))
    if rate:
        parts.append(f"Rate: {rate}")

    return " | ".join(parts) if parts else None


# ---------------------------------------------------------------------------
# Observation values
# ---------------------------------------------------------------------------

def observation_value_text(resource: Dict[str, Any]) -> Optional[str]:
    """Coded or string value of an observation (used for code status)."""
    if "valueCodeableConcept" in resource:
        return codeable_text(resource.get("valueCodeableConcept"))
    return _non_empty_raw(resource.get("valueString"))


def _non_empty_raw(value: Any) -> Optional[str]:
    if isinstance(value, str) and value:
        return value
    return None


def summarize_blood_pressure(components: List[Any]) -> Optional[str]:
    """Render systolic/diastolic components as "sys/dia unit"."""
    systolic: Optional[str] = None
    diastolic: Optional[str] = None
    unit: Optional[str] = None

    for component in components:
        if not isinstance(component, dict):
            continue
        label = (codeable_text(component.get("code")) or "").lower()
        quantity = component.get("valueQuantity")
        if quantity is None:
            continue

        if systolic is None and "systolic" in label:
            formatted = format_quantity(quantity)
            if formatted:
                unit = quantity_unit(quantity)
                systolic = formatted.split()[0]

        if diastolic is None and "diastolic" in label:
            formatted = format_quantity(quantity)
            if formatted:
                unit = quantity_unit(quantity)
                diastolic = formatted.split()[0]

    if systolic is None or diastolic is None:
        return None
    return f"{systolic}/{diastolic} {unit or 'mmHg'}"


def blood_pressure_components(components: Any) -> Dict[str, Optional[float]]:
    """Numeric systolic/diastolic values and unit from BP components."""
    out: Dict[str, Any] = {"systolic": None, "diastolic": None, "unit": None}
    if not isinstance(components, list):
        return out
    for component in components:
        if not isinstance(component, dict):
            continue
        label = (codeable_text(component.get("code")) or "").lower()
        quantity = component.get("valueQuantity")
        for key in ("systolic", "diastolic"):
            if out[key] is None and key in label:
                value = quantity_value(quantity)
                if value is not None:
                    out[key] = value
                    out["unit"] = quantity_unit(quantity) or out["unit"]
    return out


def summarize_observation_value(resource: Dict[str, Any]) -> Optional[str]:
    """
    Displayable value of an observation.

    valueQuantity → valueString → valueCodeableConcept → components
    (blood pressure "sys/dia unit", else "label: value" parts).
    """
    if "valueQuantity" in resource:
        return format_quantity(resource.get("valueQuantity"))

    value_string = _non_empty_raw(resource.get("valueString"))
    if value_string:
        return value_string

    if "valueCodeableConcept" in resource:
        text = codeable_text(resource.get("valueCodeableConcept"))
        if text:
            return text

    components = resource.get("component")
    if isinstance(components, list):
        bp = summarize_blood_pressure(components)
        if bp:
            return bp

        parts: List[str] = []
        for component in components:
            if not isinstance(component, dict):
                continue
            label = codeable_text(component.get("code")) or "Component"
            value = format_quantity(component.get("valueQuantity"))
            if value:
                parts.append(f"{label}: {value}")
        if parts:
            return " | ".join(parts)

    return None


def observation_category_codes(resource: Dict[str, Any]) -> List[str]:
    """Lower-cased codes (and texts) of every Observation.category entry."""
    categories = resource.get("category")
    if isinstance(categories, dict):
        categories = [categories]
    if not isinstance(categories, list):
        return []
    out: List[str] = []
    for category in categories:
        out.extend(c.lower() for c in codeable_candidates(category))
    return out
