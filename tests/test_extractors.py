"""
Tests for the FHIR field extraction helpers.
"""
from datetime import date, datetime, timezone

from edtimeline.fhir.extractors import (
    blood_pressure_components,
    codeable_candidates,
    codeable_text,
    coding_text,
    extract_datetime,
    format_numeric,
    format_quantity,
    gender_label,
    make_reference,
    observation_category_codes,
    parse_birth_date,
    parse_instant,
    patient_age,
    patient_name,
    quantity_value,
    resource_id,
    resource_timestamp,
    status_text,
    summarize_dosage,
    summarize_observation_value,
    summarize_reactions,
)


def _utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


class TestCodedValues:

    def test_text_wins_over_coding(self):
        concept = {"text": "Penicillin", "coding": [{"display": "Penicillin G"}]}
        assert codeable_text(concept) == "Penicillin"

    def test_blank_text_falls_back_to_display_then_code(self):
        assert codeable_text({"text": "  ", "coding": [{"display": "Sepsis"}]}) == "Sepsis"
        assert codeable_text({"coding": [{"code": "91302008"}]}) == "91302008"

    def test_skips_empty_codings(self):
        concept = {"coding": [{"system": "x"}, {"display": "Second"}]}
        assert codeable_text(concept) == "Second"

    def test_non_object_is_absent(self):
        assert codeable_text("Penicillin") is None
        assert codeable_text(None) is None
        assert codeable_text({}) is None

    def test_coding_text(self):
        assert coding_text({"code": "EMER", "display": "emergency"}) == "emergency"
        assert coding_text({"code": "EMER"}) == "EMER"
        assert coding_text([]) is None

    def test_candidates_lists_every_form(self):
        concept = {"text": "High", "coding": [{"code": "H", "display": "High"}, {"code": "HH"}]}
        assert codeable_candidates(concept) == ["High", "High", "H", "HH"]

    def test_status_text_accepts_plain_string(self):
        assert status_text("completed") == "completed"
        assert status_text({"coding": [{"code": "active"}]}) == "active"
        assert status_text(None) is None
        assert status_text(42) is None


class TestTimestamps:

    def test_parse_instant_normalizes_to_utc(self):
        assert parse_instant("2024-03-01T10:15:00+02:00") == _utc(2024, 3, 1, 8, 15)
        assert parse_instant("2024-03-01T10:15:00Z") == _utc(2024, 3, 1, 10, 15)

    def test_parse_instant_rejects_non_instants(self):
        assert parse_instant("2024-03-01") is None
        assert parse_instant("2024-03-01T10:15:00") is None
        assert parse_instant("yesterday") is None
        assert parse_instant("") is None
        assert parse_instant(20240301) is None

    def test_first_parsable_field_wins(self):
        resource = {
            "effectiveDateTime": "not a date",
            "issued": "2024-03-01T09:00:00Z",
        }
        fields = ["effectiveDateTime", "issued"]
        assert extract_datetime(resource, fields) == _utc(2024, 3, 1, 9, 0)

    def test_period_prefers_end(self):
        resource = {"period": {"start": "2024-03-01T08:00:00Z", "end": "2024-03-01T12:00:00Z"}}
        assert extract_datetime(resource, ["period"]) == _utc(2024, 3, 1, 12, 0)

    def test_period_falls_back_to_start(self):
        resource = {"period": {"start": "2024-03-01T08:00:00Z", "end": "soon"}}
        assert extract_datetime(resource, ["period"]) == _utc(2024, 3, 1, 8, 0)

    def test_resource_timestamp_uses_kind_fields(self):
        condition = {"resourceType": "Condition", "onsetDateTime": "2024-01-05T00:00:00Z",
                     "effectiveDateTime": "2024-02-01T00:00:00Z"}
        assert resource_timestamp(condition) == _utc(2024, 1, 5)

    def test_resource_timestamp_fallback_fields(self):
        other = {"resourceType": "DiagnosticReport", "issued": "2024-02-01T00:00:00Z"}
        assert resource_timestamp(other) == _utc(2024, 2, 1)

    def test_resource_timestamp_without_type(self):
        assert resource_timestamp({"issued": "2024-02-01T00:00:00Z"}) is None


class TestQuantities:

    def test_format_numeric_drops_trailing_zero(self):
        assert format_numeric(120.0) == "120"
        assert format_numeric(37.5) == "37.5"
        assert format_numeric(1.25) == "1.25"

    def test_format_quantity(self):
        assert format_quantity({"value": 145, "unit": "bpm"}) == "145 bpm"
        assert format_quantity({"value": 7.5}) == "7.5"
        assert format_quantity({"unit": "bpm"}) is None
        assert format_quantity({"value": "145"}) is None
        assert format_quantity({"value": True}) is None

    def test_non_finite_and_overflowing_values_are_absent(self):
        assert format_quantity({"value": 10 ** 400, "unit": "bpm"}) is None
        assert quantity_value({"value": 10 ** 400}) is None
        assert quantity_value({"value": float("nan")}) is None
        assert quantity_value({"value": float("inf")}) is None
        assert quantity_value({"value": -float("inf")}) is None


class TestIdentity:

    def test_resource_id_fallback(self):
        assert resource_id({"id": "obs-1"}, "observation") == "obs-1"
        assert resource_id({}, "observation") == "observation-unknown"

    def test_make_reference(self):
        ref = make_reference({"resourceType": "Condition", "id": "c1", "code": {"text": "Sepsis"}})
        assert ref.system == "FHIR"
        assert ref.reference == "Condition/c1"
        assert ref.display == "Sepsis"

    def test_make_reference_requires_id(self):
        assert make_reference({"resourceType": "Condition"}) is None


class TestPatient:

    def test_name_uses_first_given_and_family(self):
        assert patient_name({"name": [{"given": ["Minh", "Van"], "family": "Nguyen"}]}) == "Minh Nguyen"
        assert patient_name({"name": [{"family": "Nguyen"}]}) == "Nguyen"
        assert patient_name({"name": [{}]}) is None
        assert patient_name({}) is None

    def test_age_before_and_after_birthday(self):
        born = date(1980, 6, 15)
        assert patient_age(born, today=date(2024, 6, 14)) == 43
        assert patient_age(born, today=date(2024, 6, 15)) == 44

    def test_age_for_leap_day_birth(self):
        born = date(2000, 2, 29)
        assert patient_age(born, today=date(2001, 2, 27)) == 0
        # non-leap years count the birthday on Feb 28
        assert patient_age(born, today=date(2001, 2, 28)) == 1
        assert patient_age(born, today=date(2004, 2, 29)) == 4

    def test_future_birth_date_has_no_age(self):
        assert patient_age(date(2030, 1, 1), today=date(2024, 1, 1)) is None
        assert patient_age(None) is None

    def test_parse_birth_date(self):
        assert parse_birth_date("1980-06-15") == date(1980, 6, 15)
        assert parse_birth_date("1980") is None

    def test_gender_label(self):
        assert gender_label("male") == "Male"
        assert gender_label("female") == "Female"
        assert gender_label("other") == "Gender: other"
        assert gender_label(None) is None


class TestDetails:

    def test_reactions_are_joined(self):
        resource = {"reaction": [
            {"manifestation": [{"text": "Hives"}, {"text": "Wheezing"}]},
            {"manifestation": [{"coding": [{"display": "Anaphylaxis"}]}]},
        ]}
        assert summarize_reactions(resource) == "Hives, Wheezing, Anaphylaxis"
        assert summarize_reactions({}) is None

    def test_dosage_summary(self):
        resource = {"dosage": [{
            "text": "Infuse",
            "route": {"text": "IV"},
            "rateQuantity": {"value": 125, "unit": "mL/h"},
        }]}
        assert summarize_dosage(resource) == "Infuse | Route: IV | Rate: 125 mL/h"
        assert summarize_dosage({"dosage": []}) is None

    def test_observation_value_precedence(self):
        assert summarize_observation_value({"valueQuantity": {"value": 37.5, "unit": "Cel"}}) == "37.5 Cel"
        assert summarize_observation_value({"valueString": "Positive"}) == "Positive"
        assert summarize_observation_value({"valueCodeableConcept": {"text": "Detected"}}) == "Detected"
        assert summarize_observation_value({}) is None

    def test_blood_pressure_components(self):
        resource = {"component": [
            {"code": {"text": "Systolic"}, "valueQuantity": {"value": 120, "unit": "mmHg"}},
            {"code": {"text": "Diastolic"}, "valueQuantity": {"value": 80, "unit": "mmHg"}},
        ]}
        assert summarize_observation_value(resource) == "120/80 mmHg"
        assert blood_pressure_components(resource["component"]) == {
            "systolic": 120.0, "diastolic": 80.0, "unit": "mmHg",
        }

    def test_generic_components(self):
        resource = {"component": [
            {"code": {"text": "pH"}, "valueQuantity": {"value": 7.25}},
            {"valueQuantity": {"value": 40, "unit": "mmHg"}},
        ]}
        assert summarize_observation_value(resource) == "pH: 7.25 | Component: 40 mmHg"

    def test_category_codes_are_lowercased(self):
        resource = {"category": [{"coding": [{"code": "Laboratory"}]}]}
        assert observation_category_codes(resource) == ["laboratory"]
        assert observation_category_codes({"category": {"text": "Imaging"}}) == ["imaging"]
        assert observation_category_codes({}) == []
