"""Tests for CBC, diagnosis and pipeline schemas."""

import math
import uuid
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from hemoscan.schemas import (
    Augmentation,
    AugmentedResult,
    CBCSample,
    CBCValidationError,
    DietMeal,
    Marker,
    PipelineState,
    ReportRecord,
    Sex,
    validate_cbc_payload,
)
from hemoscan.services.rule_engine import classify


class TestCBCSample:
    """Input validation for CBC panels."""

    def test_valid_payload(self, sample_payload):
        sample = validate_cbc_payload(sample_payload)
        assert sample.sex == Sex.FEMALE
        assert sample.marker_value(Marker.MCV) == 70.0

    def test_sample_is_immutable(self, healthy_sample):
        with pytest.raises(ValidationError):
            healthy_sample.hemoglobin = 9.0

    @pytest.mark.parametrize("field", ["hemoglobin", "rbc_count", "mcv", "rdw"])
    def test_missing_marker_reports_field(self, sample_payload, field):
        del sample_payload[field]
        with pytest.raises(CBCValidationError) as exc_info:
            validate_cbc_payload(sample_payload)
        assert exc_info.value.field == field

    @pytest.mark.parametrize("value", [0, -1.5, math.nan, math.inf, "abc"])
    def test_rejects_non_positive_or_non_finite(self, sample_payload, value):
        sample_payload["mchc"] = value
        with pytest.raises(CBCValidationError) as exc_info:
            validate_cbc_payload(sample_payload)
        assert exc_info.value.field == "mchc"

    def test_rejects_unknown_sex(self, sample_payload):
        sample_payload["sex"] = "Other"
        with pytest.raises(CBCValidationError) as exc_info:
            validate_cbc_payload(sample_payload)
        assert exc_info.value.field == "sex"

    def test_rejects_non_positive_age(self, sample_payload):
        sample_payload["age"] = 0
        with pytest.raises(CBCValidationError):
            validate_cbc_payload(sample_payload)

    def test_age_has_no_upper_bound(self, sample_payload):
        sample_payload["age"] = 151
        assert validate_cbc_payload(sample_payload).age == 151

    def test_rejects_unknown_fields(self, sample_payload):
        sample_payload["platelets"] = 250
        with pytest.raises(CBCValidationError):
            validate_cbc_payload(sample_payload)

    def test_validation_error_is_value_error(self, sample_payload):
        del sample_payload["rdw"]
        with pytest.raises(ValueError):
            validate_cbc_payload(sample_payload)


class TestAugmentedResult:
    """Merging augmentation into a diagnosis."""

    def test_pending_has_no_guidance(self, mild_microcytic_sample):
        result = classify(mild_microcytic_sample).pending()
        assert isinstance(result, AugmentedResult)
        assert result.guidance is None
        assert result.diet_plan is None
        assert not result.is_augmented

    def test_merge_preserves_diagnosis_fields(self, mild_microcytic_sample, augmentation):
        diagnosis = classify(mild_microcytic_sample)
        result = diagnosis.with_augmentation(augmentation)

        assert result.is_augmented
        assert result.guidance == augmentation.guidance
        assert result.diet_plan == augmentation.diet_plan
        assert result.severity == diagnosis.severity
        assert result.explanations == diagnosis.explanations
        assert result.mentzer_index == diagnosis.mentzer_index

    def test_merge_does_not_mutate_diagnosis(self, mild_microcytic_sample, augmentation):
        diagnosis = classify(mild_microcytic_sample)
        before = diagnosis.model_dump()
        diagnosis.with_augmentation(augmentation)
        assert diagnosis.model_dump() == before


class TestAugmentation:
    def test_requires_guidance(self):
        with pytest.raises(ValidationError):
            Augmentation(guidance="", diet_plan=[DietMeal(meal="Lunch", suggestions=["Soup"])])

    def test_requires_meals(self):
        with pytest.raises(ValidationError):
            Augmentation(guidance="ok", diet_plan=[])

    def test_meal_requires_suggestions(self):
        with pytest.raises(ValidationError):
            DietMeal(meal="Lunch", suggestions=[])


class TestPipelineState:
    @pytest.mark.parametrize(
        "state,terminal",
        [
            (PipelineState.PENDING, False),
            (PipelineState.LOCAL_READY, False),
            (PipelineState.AUGMENTED, True),
            (PipelineState.FALLBACK, True),
        ],
    )
    def test_is_terminal(self, state, terminal):
        assert state.is_terminal is terminal

    def test_sample_round_trips_through_json(self, thalassemia_sample):
        restored = CBCSample.model_validate_json(thalassemia_sample.model_dump_json())
        assert restored == thalassemia_sample


class TestReportRecord:
    def test_record_is_immutable(self, healthy_sample):
        result = classify(healthy_sample).pending()
        record = ReportRecord(
            id=uuid.uuid4(), created_at=datetime.now(timezone.utc), sample=healthy_sample, result=result
        )
        with pytest.raises(ValidationError):
            record.result = result
