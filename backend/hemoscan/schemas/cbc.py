"""CBC input schemas.

A CBCSample is the immutable, validated input to the rule engine. Every
marker must be a positive finite number; the engine never substitutes a
default for a missing or malformed marker.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError


class Sex(str, Enum):
    """Biological sex used to select reference ranges."""

    MALE = "Male"
    FEMALE = "Female"


class Marker(str, Enum):
    """CBC markers analyzed by the rule engine.

    Values match the CBCSample field names.
    """

    HEMOGLOBIN = "hemoglobin"
    RBC_COUNT = "rbc_count"
    HEMATOCRIT = "hematocrit"
    MCV = "mcv"
    MCH = "mch"
    MCHC = "mchc"
    RDW = "rdw"


class CBCValidationError(ValueError):
    """Raised when a CBC payload has a missing, non-finite or out-of-domain field."""

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


class CBCSample(BaseModel):
    """A patient's complete blood count panel."""

    model_config = ConfigDict(frozen=True, allow_inf_nan=False, extra="forbid")

    sex: Sex
    age: int = Field(gt=0, description="Age in years")
    hemoglobin: float = Field(gt=0, description="Hemoglobin (g/dL)")
    rbc_count: float = Field(gt=0, description="Red-cell count (million/µL)")
    hematocrit: float = Field(gt=0, description="Hematocrit (%)")
    mcv: float = Field(gt=0, description="Mean corpuscular volume (fL)")
    mch: float = Field(gt=0, description="Mean corpuscular hemoglobin (pg)")
    mchc: float = Field(gt=0, description="Mean corpuscular hemoglobin concentration (g/dL)")
    rdw: float = Field(gt=0, description="Red-cell distribution width (%)")

    def marker_value(self, marker: Marker) -> float:
        """Return the numeric value recorded for a marker."""
        return getattr(self, marker.value)


def validate_cbc_payload(data: dict[str, Any]) -> CBCSample:
    """Build a CBCSample from raw input, reporting the first offending field.

    Raises:
        CBCValidationError: If any field is missing, malformed or out of range.
    """
    try:
        return CBCSample.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or "sample"
        raise CBCValidationError(field, first.get("msg", "invalid value")) from e
