"""Clinical rule engine for anemia screening.

Maps a validated CBC panel to a severity tier, a risk level, a red-cell
morphology label and an ordered list of explanations. The engine is a pure
function: no I/O, no shared state, identical output for identical input.
"""

from hemoscan.schemas.cbc import CBCSample, Marker
from hemoscan.schemas.diagnosis import Diagnosis, RiskLevel, Severity
from hemoscan.services.reference_ranges import interpret_panel, range_for

# Hemoglobin severity cut-offs (g/dL); boundaries belong to the healthier tier
MILD_HB_FLOOR = 11.0
MODERATE_HB_FLOOR = 8.0

# RDW above this on a normal panel warns of anisocytosis
ANISOCYTOSIS_RDW = 15.0
# RDW above this raises anemic risk to at least Medium
HIGH_RISK_RDW = 16.0

MICROCYTIC_MCV = 80.0
MACROCYTIC_MCV = 100.0
HYPOCHROMIC_MCHC = 32.0

# Mentzer index below this, with an elevated RBC count, points to thalassemia trait
MENTZER_THALASSEMIA_CUTOFF = 13.0
THALASSEMIA_RBC_FLOOR = 5.0

MORPHOLOGY_NOT_APPLICABLE = "N/A"
MORPHOLOGY_THALASSEMIA_TRAIT = "Microcytic (Possible Thalassemia Trait)"
MORPHOLOGY_MICROCYTIC_HYPOCHROMIC = "Microcytic Hypochromic"
MORPHOLOGY_MACROCYTIC = "Macrocytic"
MORPHOLOGY_NORMOCYTIC = "Normocytic"


def mentzer_index(mcv: float, rbc_count: float) -> float:
    """MCV divided by RBC count; 0 when the count is not positive."""
    if rbc_count <= 0:
        return 0.0
    return mcv / rbc_count


def severity_for(hemoglobin: float) -> Severity:
    """Severity tier for an anemic hemoglobin value."""
    if hemoglobin >= MILD_HB_FLOOR:
        return Severity.MILD
    if hemoglobin >= MODERATE_HB_FLOOR:
        return Severity.MODERATE
    return Severity.SEVERE


def risk_for(severity: Severity, rdw: float) -> RiskLevel:
    """Join of the severity tier and the distribution-width signal."""
    if severity == Severity.SEVERE:
        return RiskLevel.HIGH
    if severity == Severity.MODERATE or rdw > HIGH_RISK_RDW:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def _classify_morphology(sample: CBCSample, index: float) -> tuple[str, str]:
    """Return (morphology_type, explanation) from MCV and the Mentzer index."""
    if sample.mcv < MICROCYTIC_MCV:
        if index < MENTZER_THALASSEMIA_CUTOFF and sample.rbc_count > THALASSEMIA_RBC_FLOOR:
            return (
                MORPHOLOGY_THALASSEMIA_TRAIT,
                f"Mentzer Index is {index:.1f} (< 13). This frequently indicates "
                "Thalassemia trait rather than simple iron deficiency.",
            )
        qualifier = ">= 13" if index >= MENTZER_THALASSEMIA_CUTOFF else "RBC count not elevated"
        return (
            MORPHOLOGY_MICROCYTIC_HYPOCHROMIC,
            f"Mentzer Index is {index:.1f} ({qualifier}). This is highly suggestive "
            "of Iron Deficiency Anemia.",
        )
    if sample.mcv > MACROCYTIC_MCV:
        return (
            MORPHOLOGY_MACROCYTIC,
            "Elevated MCV suggests Megaloblastic Anemia, often linked to Vitamin B12 "
            "or Folate deficiency.",
        )
    return (
        MORPHOLOGY_NORMOCYTIC,
        "Normal cell size but low hemoglobin suggests blood loss, chronic disease, "
        "or early-stage deficiency.",
    )


def classify(sample: CBCSample) -> Diagnosis:
    """Classify a CBC panel for anemia.

    Only the hemoglobin low bound flags anemia; values above the high bound
    are reported in findings but do not form a separate condition.

    Args:
        sample: Validated CBC panel.

    Returns:
        Diagnosis with at least one explanation.

    Raises:
        ReferenceRangeConfigError: If the reference table is incomplete.
    """
    hb_range = range_for(Marker.HEMOGLOBIN, sample.sex)
    findings = interpret_panel(sample)
    explanations: list[str] = []

    if sample.hemoglobin >= hb_range.low:
        explanations.append(
            f"Hemoglobin {sample.hemoglobin:g} g/dL is within the healthy "
            f"{sample.sex.value.lower()} bound (>= {hb_range.low:g} g/dL)."
        )
        if sample.rdw > ANISOCYTOSIS_RDW:
            explanations.append(
                "Warning: Elevated RDW (Anisocytosis) detected. This can be an early "
                "warning sign of developing deficiency before Hb drops."
            )
        return Diagnosis(
            is_anemic=False,
            severity=Severity.NORMAL,
            risk_level=RiskLevel.LOW,
            morphology_type=MORPHOLOGY_NOT_APPLICABLE,
            explanations=explanations,
            findings=findings,
        )

    severity = severity_for(sample.hemoglobin)
    risk_level = risk_for(severity, sample.rdw)
    index = mentzer_index(sample.mcv, sample.rbc_count)

    morphology_type, morphology_note = _classify_morphology(sample, index)
    explanations.append(morphology_note)

    if sample.mchc < HYPOCHROMIC_MCHC:
        explanations.append(
            "Hypochromic markers detected (low MCHC), common in chronic iron depletion."
        )

    return Diagnosis(
        is_anemic=True,
        severity=severity,
        risk_level=risk_level,
        morphology_type=morphology_type,
        explanations=explanations,
        mentzer_index=round(index, 1),
        findings=findings,
    )
