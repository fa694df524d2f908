"""Pydantic schemas."""

from hemoscan.schemas.cbc import CBCSample, CBCValidationError, Marker, Sex, validate_cbc_payload
from hemoscan.schemas.diagnosis import (
    Augmentation,
    AugmentedResult,
    Diagnosis,
    DietMeal,
    MarkerFinding,
    RiskLevel,
    Severity,
)
from hemoscan.schemas.report import (
    AnalysisOutcome,
    ClearReportsResponse,
    PipelineSnapshot,
    PipelineState,
    ReportListResponse,
    ReportRecord,
)

__all__ = [
    # CBC input
    "CBCSample",
    "CBCValidationError",
    "Marker",
    "Sex",
    "validate_cbc_payload",
    # Diagnosis
    "Augmentation",
    "AugmentedResult",
    "Diagnosis",
    "DietMeal",
    "MarkerFinding",
    "RiskLevel",
    "Severity",
    # Pipeline / archive
    "AnalysisOutcome",
    "ClearReportsResponse",
    "PipelineSnapshot",
    "PipelineState",
    "ReportListResponse",
    "ReportRecord",
]
