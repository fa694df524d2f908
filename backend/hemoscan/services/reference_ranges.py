"""CBC reference ranges and per-marker interpretation.

Provides the sex-specific normal bounds for the seven markers the rule
engine reads. Ranges are closed intervals: a value is in range iff
low <= value <= high.

Reference values are screening-grade, not for clinical use.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from hemoscan.schemas.cbc import CBCSample, Marker, Sex
from hemoscan.schemas.diagnosis import MarkerFinding

MarkerStatus = Literal["low", "normal", "high"]


class ReferenceRangeConfigError(LookupError):
    """Raised when the reference table lacks an entry for a marker/sex pair."""


@dataclass(frozen=True)
class ReferenceRange:
    """Closed [low, high] interval for one marker and sex."""

    low: float
    high: float

    def contains(self, value: float) -> bool:
        return self.low <= value <= self.high


# ---------------------------------------------------------------------------
# Reference range lookup table
#
# Structure:
#   Marker -> {
#       "label": str,    # Display label
#       "unit": str,     # Conventional unit
#       "ranges": {"male": (low, high), "female": (low, high)},
#   }
# ---------------------------------------------------------------------------

REFERENCE_RANGES: dict[Marker, dict] = {
    Marker.HEMOGLOBIN: {
        "label": "Hemoglobin (Hb)",
        "unit": "g/dL",
        "ranges": {"male": (13.5, 17.5), "female": (12.0, 15.5)},
    },
    Marker.RBC_COUNT: {
        "label": "RBC Count",
        "unit": "million/µL",
        "ranges": {"male": (4.5, 5.9), "female": (4.1, 5.1)},
    },
    Marker.HEMATOCRIT: {
        "label": "Hematocrit",
        "unit": "%",
        "ranges": {"male": (41.0, 50.0), "female": (36.0, 44.0)},
    },
    Marker.MCV: {
        "label": "MCV",
        "unit": "fL",
        "ranges": {"male": (80.0, 100.0), "female": (80.0, 100.0)},
    },
    Marker.MCH: {
        "label": "MCH",
        "unit": "pg",
        "ranges": {"male": (27.0, 33.0), "female": (27.0, 33.0)},
    },
    Marker.MCHC: {
        "label": "MCHC",
        "unit": "g/dL",
        "ranges": {"male": (32.0, 36.0), "female": (32.0, 36.0)},
    },
    Marker.RDW: {
        "label": "RDW",
        "unit": "%",
        "ranges": {"male": (11.5, 14.5), "female": (11.5, 14.5)},
    },
}


def _sex_key(sex: Sex) -> str:
    return sex.value.lower()


def check_reference_table(table: dict[Marker, dict] = REFERENCE_RANGES) -> None:
    """Verify every marker has a well-formed range for both sexes.

    Raises:
        ReferenceRangeConfigError: On the first missing or inverted entry.
    """
    for marker in Marker:
        entry = table.get(marker)
        if entry is None:
            raise ReferenceRangeConfigError(f"No reference entry for marker {marker.value!r}")
        for sex in Sex:
            bounds = entry.get("ranges", {}).get(_sex_key(sex))
            if bounds is None:
                raise ReferenceRangeConfigError(
                    f"No {sex.value} reference range for marker {marker.value!r}"
                )
            low, high = bounds
            if low > high:
                raise ReferenceRangeConfigError(
                    f"Inverted {sex.value} range for marker {marker.value!r}: {low} > {high}"
                )


def range_for(
    marker: Marker,
    sex: Sex,
    table: dict[Marker, dict] = REFERENCE_RANGES,
) -> ReferenceRange:
    """Return the reference range for a marker and sex.

    Raises:
        ReferenceRangeConfigError: If the table has no entry. There is no
            default range.
    """
    entry = table.get(marker)
    bounds = entry.get("ranges", {}).get(_sex_key(sex)) if entry else None
    if bounds is None:
        raise ReferenceRangeConfigError(
            f"No {sex.value} reference range for marker {marker.value!r}"
        )
    low, high = bounds
    return ReferenceRange(low=low, high=high)


def marker_status(value: float, reference_range: ReferenceRange) -> MarkerStatus:
    """Compare a value against a closed reference interval."""
    if value < reference_range.low:
        return "low"
    if value > reference_range.high:
        return "high"
    return "normal"


def interpret_panel(sample: CBCSample) -> list[MarkerFinding]:
    """Return one finding per marker, in table order."""
    findings: list[MarkerFinding] = []
    for marker, entry in REFERENCE_RANGES.items():
        rr = range_for(marker, sample.sex)
        value = sample.marker_value(marker)
        findings.append(
            MarkerFinding(
                marker=marker.value,
                label=entry["label"],
                unit=entry["unit"],
                value=value,
                low=rr.low,
                high=rr.high,
                status=marker_status(value, rr),
            )
        )
    return findings


def reference_table() -> list[dict]:
    """Serialize the table for API consumers."""
    return [
        {
            "marker": marker.value,
            "label": entry["label"],
            "unit": entry["unit"],
            "male": {"low": entry["ranges"]["male"][0], "high": entry["ranges"]["male"][1]},
            "female": {"low": entry["ranges"]["female"][0], "high": entry["ranges"]["female"][1]},
        }
        for marker, entry in REFERENCE_RANGES.items()
    ]


check_reference_table()
