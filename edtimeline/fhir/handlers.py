#!/usr/bin/env python3
"""
Per-resource handlers for the bundle summarization engine.

One plain function per supported resource kind. Each receives a single
untyped resource, the shared AggregateData builder and the run config, and
appends zero or more critical items, vital/diagnostic points and timeline
events. Handlers never look at other resources; the only shared inputs are
the bundle anchor and the builder's dedup maps.

A resource that cannot yield a minimally viable entity (no allergy name, no
observation value, ...) is skipped without error.
"""
from __future__ import annotations

import logging
import re
from typing import Any, Callable, Dict, List, Optional, Tuple

from edtimeline.core.model import (
    CriticalItem,
    DiagnosticKind,
    DiagnosticSnapshot,
    EventCategory,
    Severity,
    TimelineConfig,
    TimelineEvent,
    VitalSnapshot,
    VitalTrendPoint,
)
from edtimeline.fhir.aggregate import AggregateData, is_recent_event
from edtimeline.fhir.extractors import (
    ALLERGY_TIME_FIELDS,
    CONDITION_TIME_FIELDS,
    DOCUMENT_TIME_FIELDS,
    ENCOUNTER_TIME_FIELDS,
    MEDICATION_REQUEST_TIME_FIELDS,
    MEDICATION_STATEMENT_TIME_FIELDS,
    PROCEDURE_TIME_FIELDS,
    blood_pressure_components,
    capitalize_first,
    codeable_text,
    coding_text,
    extract_datetime,
    first_codeable_text,
    gender_label,
    make_reference,
    observation_category_codes,
    observation_timestamp,
    observation_value_text,
    parse_birth_date,
    patient_age,
    patient_name,
    quantity_unit,
    quantity_value,
    resource_id,
    status_text,
    summarize_dosage,
    summarize_observation_value,
    summarize_reactions,
)
from edtimeline.fhir.severity import (
    allergy_severity,
    classify_observation,
    condition_severity,
    infer_vital_label,
    medication_severity,
)

logger = logging.getLogger(__name__)

Handler = Callable[[Dict[str, Any], AggregateData, TimelineConfig], None]


def _join(parts: List[str]) -> Optional[str]:
    return " | ".join(parts) if parts else None


# ---------------------------------------------------------------------------
# Patient
# ---------------------------------------------------------------------------

def handle_patient(resource: Dict[str, Any], aggregate: AggregateData, config: TimelineConfig) -> None:
    name = patient_name(resource)
    if not name:
        logger.debug("Patient %s has no usable name; skipped", resource.get("id"))
        return

    parts: List[str] = []
    age = patient_age(parse_birth_date(resource.get("birthDate")))
    if age is not None:
        parts.append(f"{age} y")
    gender = gender_label(resource.get("gender"))
    if gender:
        parts.append(gender)

    aggregate.alerts.append(CriticalItem(
        label=f"Patient: {name}",
        detail=_join(parts),
        severity=Severity.INFO,
    ))


# ---------------------------------------------------------------------------
# AllergyIntolerance
# ---------------------------------------------------------------------------

def handle_allergy(resource: Dict[str, Any], aggregate: AggregateData, config: TimelineConfig) -> None:
    label = codeable_text(resource.get("code"))
    if not label:
        logger.debug("AllergyIntolerance %s has no coded substance; skipped", resource.get("id"))
        return

    severity = allergy_severity(resource)
    details: List[str] = []

    categories = resource.get("category")
    if isinstance(categories, list):
        names = [capitalize_first(c) for c in categories if isinstance(c, str)]
        if names:
            details.append(f"Category: {', '.join(names)}")

    reactions = summarize_reactions(resource)
    if reactions:
        details.append(f"Reactions: {reactions}")

    criticality = resource.get("criticality")
    if isinstance(criticality, str):
        details.append(f"Criticality: {criticality.upper()}")

    detail = _join(details)
    aggregate.allergies.append(CriticalItem(
        label=f"Allergy: {label}",
        detail=detail,
        severity=severity,
    ))
    aggregate.events.append(TimelineEvent(
        id=resource_id(resource, "allergy"),
        category=EventCategory.CONDITION,
        title=f"Allergy recorded: {label}",
        detail=detail,
        occurred_at=extract_datetime(resource, ALLERGY_TIME_FIELDS),
        severity=severity,
        source=make_reference(resource),
    ))


# ---------------------------------------------------------------------------
# MedicationStatement / MedicationRequest
# ---------------------------------------------------------------------------

UNKNOWN_MEDICATION = "Unspecified medication"


def _medication_name(resource: Dict[str, Any]) -> str:
    name = codeable_text(resource.get("medicationCodeableConcept"))
    if name:
        return name
    reference = resource.get("medicationReference")
    if isinstance(reference, dict) and isinstance(reference.get("display"), str):
        return reference["display"]
    return UNKNOWN_MEDICATION


def handle_medication(resource: Dict[str, Any], aggregate: AggregateData, config: TimelineConfig) -> None:
    medication = _medication_name(resource)
    status = resource.get("status") if isinstance(resource.get("status"), str) else "unknown"
    severity = medication_severity(status)

    details = [f"Status: {status.upper()}"]
    reason = first_codeable_text(resource.get("reasonCode"))
    if reason:
        details.append(f"Indication: {reason}")
    dose = summarize_dosage(resource)
    if dose:
        details.append(dose)

    if resource.get("resourceType") == "MedicationRequest":
        time_fields = MEDICATION_REQUEST_TIME_FIELDS
    else:
        time_fields = MEDICATION_STATEMENT_TIME_FIELDS

    detail = _join(details)
    aggregate.medications.append(CriticalItem(
        label=f"Medication: {medication}",
        detail=detail,
        severity=severity,
    ))
    aggregate.events.append(TimelineEvent(
        id=resource_id(resource, "medication"),
        category=EventCategory.MEDICATION,
        title=medication,
        detail=detail,
        occurred_at=extract_datetime(resource, time_fields),
        severity=severity,
        source=make_reference(resource),
    ))


# ---------------------------------------------------------------------------
# Condition
# ---------------------------------------------------------------------------

def handle_condition(resource: Dict[str, Any], aggregate: AggregateData, config: TimelineConfig) -> None:
    condition_name = codeable_text(resource.get("code"))
    if not condition_name:
        logger.debug("Condition %s has no coded name; skipped", resource.get("id"))
        return

    recorded_at = extract_datetime(resource, CONDITION_TIME_FIELDS)
    if not is_recent_event(aggregate.anchor, recorded_at, config.clinical_event_days):
        logger.debug(
            "Condition %s outside %d-day window; skipped",
            resource.get("id"), config.clinical_event_days,
        )
        return

    severity = condition_severity(condition_name)
    details: List[str] = []
    clinical_status = status_text(resource.get("clinicalStatus"))
    if clinical_status:
        details.append(f"Status: {clinical_status}")
    severity_text = status_text(resource.get("severity"))
    if severity_text:
        details.append(f"Severity: {severity_text}")

    detail = _join(details)
    aggregate.chronic_conditions.append(CriticalItem(
        label=f"Chronic condition: {condition_name}",
        detail=detail,
        severity=severity,
    ))
    aggregate.events.append(TimelineEvent(
        id=resource_id(resource, "condition"),
        category=EventCategory.CONDITION,
        title=condition_name,
        detail=detail,
        occurred_at=recorded_at,
        severity=severity,
        source=make_reference(resource),
    ))


# ---------------------------------------------------------------------------
# Observation
# ---------------------------------------------------------------------------

_CODE_STATUS_KEYWORDS = (
    "code status",
    "dnr",
    "do not resuscitate",
    "resuscitation status",
    "advance directive",
)

# Name patterns for diagnostics when no category says so
_LAB_PATTERNS = [re.compile(p, re.IGNORECASE) for p in (
    r"\bh(?:a)?emoglobin\b",
    r"\bhematocrit\b",
    r"\bplatelets?\b",
    r"\bwhite blood cell",
    r"\bleukocytes?\b",
    r"\binr\b",
    r"\bprothrombin\b",
    r"\bcreatinine\b",
    r"\bsodium\b",
    r"\bpotassium\b",
    r"\bchloride\b",
    r"\bbicarbonate\b",
    r"\burea nitrogen\b",
    r"\bglucose\b",
    r"\btroponin",
    r"\blactate\b",
    r"\blactic acid\b",
    r"\bbilirubin\b",
    r"\bd-dimer\b",
    r"\bprocalcitonin\b",
    r"\bblood gas\b",
    r"\b(?:cbc|bmp|cmp)\b",
)]

_IMAGING_PATTERNS = [re.compile(p, re.IGNORECASE) for p in (
    r"\bx-?ray\b",
    r"\bradiograph",
    r"\bct\b",
    r"\bcomputed tomography\b",
    r"\bmri\b",
    r"\bmagnetic resonance\b",
    r"\bultrasound\b",
    r"\bechocardiogra",
    r"\bimaging\b",
)]

_CATEGORY_KINDS = {
    "laboratory": DiagnosticKind.LAB,
    "imaging": DiagnosticKind.IMAGING,
    "procedure": DiagnosticKind.OTHER,
}

_VITAL_CATEGORY = "vital-signs"


def observation_is_code_status(resource: Dict[str, Any]) -> bool:
    text = codeable_text(resource.get("code"))
    if not text:
        return False
    lower = text.lower()
    return any(k in lower for k in _CODE_STATUS_KEYWORDS)


def diagnostic_kind(name: str, category_codes: List[str]) -> Optional[DiagnosticKind]:
    """Lab/imaging kind from category codes first, then from name keywords."""
    for code in category_codes:
        if code in _CATEGORY_KINDS:
            return _CATEGORY_KINDS[code]
    if any(p.search(name) for p in _IMAGING_PATTERNS):
        return DiagnosticKind.IMAGING
    if any(p.search(name) for p in _LAB_PATTERNS):
        return DiagnosticKind.LAB
    return None


def _vital_numeric(vital_label: str, resource: Dict[str, Any]) -> Tuple[Optional[float], Optional[str]]:
    """Primary numeric value and unit (systolic for blood pressure)."""
    quantity = resource.get("valueQuantity")
    value = quantity_value(quantity)
    if value is not None:
        return value, quantity_unit(quantity)
    if vital_label == "Blood pressure":
        bp = blood_pressure_components(resource.get("component"))
        if bp["systolic"] is not None:
            return bp["systolic"], bp["unit"] or "mmHg"
    return None, quantity_unit(quantity)


def _handle_code_status(resource: Dict[str, Any], aggregate: AggregateData) -> None:
    value = observation_value_text(resource)
    if not value:
        logger.debug("Code status observation %s has no value; skipped", resource.get("id"))
        return

    recorded_at = observation_timestamp(resource)
    held = aggregate.update_code_status(value, recorded_at)
    aggregate.events.append(TimelineEvent(
        id=resource_id(resource, "code-status"),
        category=EventCategory.OBSERVATION,
        title="Code status updated",
        detail=held,
        occurred_at=recorded_at,
        severity=Severity.CRITICAL,
        source=make_reference(resource),
    ))


def handle_observation(resource: Dict[str, Any], aggregate: AggregateData, config: TimelineConfig) -> None:
    if observation_is_code_status(resource):
        _handle_code_status(resource, aggregate)
        return

    name = codeable_text(resource.get("code")) or "Observation"
    detail = summarize_observation_value(resource)
    if detail is None:
        logger.debug("Observation %s has no displayable value; skipped", resource.get("id"))
        return

    recorded_at = observation_timestamp(resource)
    severity = classify_observation(name, resource, detail)

    aggregate.events.append(TimelineEvent(
        id=resource_id(resource, "observation"),
        category=EventCategory.OBSERVATION,
        title=name,
        detail=detail,
        occurred_at=recorded_at,
        severity=severity,
        source=make_reference(resource),
    ))

    vital_label = infer_vital_label(name)
    if vital_label:
        numeric, unit = _vital_numeric(vital_label, resource)
        aggregate.upsert_vital(VitalSnapshot(
            name=vital_label,
            value=detail,
            recorded_at=recorded_at,
            numeric_value=numeric,
            unit=unit,
        ))
        if numeric is not None:
            aggregate.add_trend_point(
                vital_label,
                VitalTrendPoint(recorded_at=recorded_at, value=numeric, label=detail),
                unit,
            )
        return

    category_codes = observation_category_codes(resource)
    if _VITAL_CATEGORY in category_codes:
        return

    kind = diagnostic_kind(name, category_codes)
    if kind is None:
        return

    aggregate.upsert_diagnostic(DiagnosticSnapshot(
        name=name,
        value=detail,
        recorded_at=recorded_at,
        severity=severity,
        kind=kind,
        unit=quantity_unit(resource.get("valueQuantity")),
    ))


# ---------------------------------------------------------------------------
# Procedure / Encounter / Document
# ---------------------------------------------------------------------------

def handle_procedure(resource: Dict[str, Any], aggregate: AggregateData, config: TimelineConfig) -> None:
    aggregate.events.append(TimelineEvent(
        id=resource_id(resource, "procedure"),
        category=EventCategory.PROCEDURE,
        title=codeable_text(resource.get("code")) or "Procedure",
        detail=status_text(resource.get("status")),
        occurred_at=extract_datetime(resource, PROCEDURE_TIME_FIELDS),
        severity=Severity.MODERATE,
        source=make_reference(resource),
    ))


def _encounter_label(resource: Dict[str, Any]) -> str:
    encounter_class = resource.get("class")
    label = codeable_text(encounter_class) or coding_text(encounter_class)
    if label:
        return label
    return first_codeable_text(resource.get("type")) or "Encounter"


def handle_encounter(resource: Dict[str, Any], aggregate: AggregateData, config: TimelineConfig) -> None:
    aggregate.events.append(TimelineEvent(
        id=resource_id(resource, "encounter"),
        category=EventCategory.ENCOUNTER,
        title=f"Encounter: {_encounter_label(resource)}",
        detail=first_codeable_text(resource.get("reasonCode")),
        occurred_at=extract_datetime(resource, ENCOUNTER_TIME_FIELDS),
        severity=Severity.INFO,
        source=make_reference(resource),
    ))


def _attachment_title(resource: Dict[str, Any]) -> Optional[str]:
    content = resource.get("content")
    if not isinstance(content, list) or not content or not isinstance(content[0], dict):
        return None
    attachment = content[0].get("attachment")
    if isinstance(attachment, dict) and isinstance(attachment.get("title"), str):
        return attachment["title"]
    return None


def _document_title(resource: Dict[str, Any]) -> str:
    title = codeable_text(resource.get("type"))
    if title:
        return title
    for key in ("description", "title"):
        if isinstance(resource.get(key), str):
            return resource[key]
    return "Clinical document"


def handle_document(resource: Dict[str, Any], aggregate: AggregateData, config: TimelineConfig) -> None:
    aggregate.events.append(TimelineEvent(
        id=resource_id(resource, "document"),
        category=EventCategory.DOCUMENT,
        title=_document_title(resource),
        detail=_attachment_title(resource),
        occurred_at=extract_datetime(resource, DOCUMENT_TIME_FIELDS),
        severity=Severity.LOW,
        source=make_reference(resource),
    ))


# ---------------------------------------------------------------------------
# Dispatch table
# ---------------------------------------------------------------------------

RESOURCE_HANDLERS: Dict[str, Handler] = {
    "Patient": handle_patient,
    "AllergyIntolerance": handle_allergy,
    "MedicationStatement": handle_medication,
    "MedicationRequest": handle_medication,
    "Condition": handle_condition,
    "Observation": handle_observation,
    "Procedure": handle_procedure,
    "Encounter": handle_encounter,
    "DocumentReference": handle_document,
    "Composition": handle_document,
}
