"""Rule engine output and AI augmentation schemas."""

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Severity(str, Enum):
    """Anemia severity tier."""

    NORMAL = "Normal"
    MILD = "Mild"
    MODERATE = "Moderate"
    SEVERE = "Severe"


class RiskLevel(str, Enum):
    """Overall clinical risk."""

    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class MarkerFinding(BaseModel):
    """A single marker compared against its sex-specific reference range."""

    model_config = ConfigDict(frozen=True)

    marker: str
    label: str
    unit: str
    value: float
    low: float
    high: float
    status: Literal["low", "normal", "high"]


class DietMeal(BaseModel):
    """One meal in a diet plan with its ordered suggestions."""

    model_config = ConfigDict(frozen=True)

    meal: str = Field(min_length=1, description="Meal label, e.g. 'Breakfast'")
    suggestions: list[str] = Field(min_length=1)


class Augmentation(BaseModel):
    """Guidance and diet plan produced by an augmentation provider."""

    model_config = ConfigDict(frozen=True)

    guidance: str = Field(min_length=1)
    diet_plan: list[DietMeal] = Field(min_length=1)


class Diagnosis(BaseModel):
    """Deterministic classification of a CBC panel."""

    model_config = ConfigDict(frozen=True)

    is_anemic: bool
    severity: Severity
    risk_level: RiskLevel
    morphology_type: str
    explanations: list[str] = Field(min_length=1)
    mentzer_index: float | None = None
    findings: list[MarkerFinding] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_severity_consistency(self):
        if self.is_anemic == (self.severity == Severity.NORMAL):
            raise ValueError("severity must be Normal exactly when is_anemic is false")
        return self

    def with_augmentation(self, augmentation: Augmentation) -> "AugmentedResult":
        """Merge guidance and diet plan into a new AugmentedResult."""
        return AugmentedResult(
            **self.model_dump(),
            guidance=augmentation.guidance,
            diet_plan=[meal.model_dump() for meal in augmentation.diet_plan],
        )

    def pending(self) -> "AugmentedResult":
        """Return this diagnosis as a result whose augmentation is not yet computed."""
        return AugmentedResult(**self.model_dump())


class AugmentedResult(Diagnosis):
    """A Diagnosis plus AI guidance and a diet plan.

    guidance and diet_plan are None until the pipeline settles, and are
    always populated once it has.
    """

    guidance: str | None = None
    diet_plan: list[DietMeal] | None = None

    @property
    def is_augmented(self) -> bool:
        return self.guidance is not None and self.diet_plan is not None
