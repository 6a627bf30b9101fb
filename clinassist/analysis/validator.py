"""Clinical sanity checks over normalized results.

The validator never edits extracted clinical data; it only reports warnings.
"""

from __future__ import annotations

from functools import singledispatch

from clinassist.analysis.models import (
    Confidence,
    DiagnosisAnalysis,
    PrescriptionAnalysis,
    Severity,
    VitalsAnalysis,
)


def _dedupe(items: list[str]) -> list[str]:
    seen: set[str] = set()
    unique: list[str] = []
    for item in items:
        if item not in seen:
            seen.add(item)
            unique.append(item)
    return unique


@singledispatch
def _warnings_for(result) -> list[str]:
    raise TypeError(f"Unsupported analysis result: {type(result).__name__}")


@_warnings_for.register
def _(result: PrescriptionAnalysis) -> list[str]:
    warnings: list[str] = []
    if not result.medications:
        warnings.append("no medications were extracted from the prescription")
    for medication in result.medications:
        if medication.dosage is None:
            warnings.append(f"missing dosage for {medication.name}")
        if medication.frequency is None:
            warnings.append(f"missing frequency for {medication.name}")
    if result.raw_confidence is Confidence.UNKNOWN:
        warnings.append("extraction confidence is unknown")
    return warnings


@_warnings_for.register
def _(result: DiagnosisAnalysis) -> list[str]:
    warnings: list[str] = []
    if not result.possible_diagnoses:
        warnings.append("no possible diagnoses were returned")
    for diagnosis in result.possible_diagnoses:
        if diagnosis.confidence is Confidence.UNKNOWN:
            warnings.append(
                f"confidence for {diagnosis.condition} is not one of high, medium, low"
            )
        if not diagnosis.matching_symptoms:
            warnings.append(
                f"{diagnosis.condition} does not reference any of the reported symptoms"
            )
    return warnings


@_warnings_for.register
def _(result: VitalsAnalysis) -> list[str]:
    warnings: list[str] = []
    if not result.trends:
        warnings.append("no trends were reported")
    for reading in result.abnormal_readings:
        if reading.severity is Severity.UNKNOWN:
            warnings.append(f"severity for abnormal {reading.metric} reading is unknown")
    return warnings


def validate(result):
    """Return `(result, warnings)` for a normalized analysis result.

    Prescription results come back as a copy whose `warnings` field also holds
    the new warnings, and the returned list is that merged list, so warnings
    raised while normalizing (dropped medications) are surfaced as well.
    """
    warnings = _dedupe(_warnings_for(result))
    if isinstance(result, PrescriptionAnalysis):
        warnings = _dedupe([*result.warnings, *warnings])
        result = result.model_copy(update={"warnings": warnings})
    return result, warnings
