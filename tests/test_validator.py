"""Tests for clinical sanity warnings."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest

from clinassist.analysis.models import (
    AbnormalReading,
    Confidence,
    Diagnosis,
    DiagnosisAnalysis,
    Medication,
    PrescriptionAnalysis,
    Severity,
    VitalsAnalysis,
)
from clinassist.analysis.validator import validate


def test_missing_dosage_and_frequency_are_flagged():
    result = PrescriptionAnalysis(
        medications=[
            Medication(name="Amoxicillin", frequency="twice daily"),
            Medication(name="Ibuprofen", dosage="200 mg"),
        ],
        raw_confidence=Confidence.MEDIUM,
    )

    validated, warnings = validate(result)

    assert warnings == ["missing dosage for Amoxicillin", "missing frequency for Ibuprofen"]
    assert validated.warnings == warnings
    assert validated.medications == result.medications


def test_prescription_warnings_keep_normalizer_warnings():
    result = PrescriptionAnalysis(
        medications=[],
        warnings=["medication entry 1 was dropped because it has no name"],
    )

    validated, warnings = validate(result)

    assert warnings == [
        "medication entry 1 was dropped because it has no name",
        "no medications were extracted from the prescription",
        "extraction confidence is unknown",
    ]
    assert validated.warnings == warnings
    assert result.warnings == ["medication entry 1 was dropped because it has no name"]


def test_complete_prescription_has_no_warnings():
    result = PrescriptionAnalysis(
        medications=[Medication(name="Metformin", dosage="500 mg", frequency="daily")],
        raw_confidence=Confidence.HIGH,
    )

    assert validate(result) == (result, [])


def test_diagnosis_warnings():
    result = DiagnosisAnalysis(
        possible_diagnoses=[
            Diagnosis(condition="Bronchitis", confidence=Confidence.MEDIUM, matching_symptoms=["cough"]),
            Diagnosis(condition="Asthma", confidence=Confidence.UNKNOWN, matching_symptoms=[]),
        ]
    )

    validated, warnings = validate(result)

    assert validated is result
    assert warnings == [
        "confidence for Asthma is not one of high, medium, low",
        "Asthma does not reference any of the reported symptoms",
    ]


def test_empty_diagnosis_is_flagged():
    _, warnings = validate(DiagnosisAnalysis())

    assert warnings == ["no possible diagnoses were returned"]


def test_vitals_warnings():
    result = VitalsAnalysis(
        abnormal_readings=[
            AbnormalReading(metric="glucose", severity=Severity.UNKNOWN),
            AbnormalReading(metric="weight", severity=Severity.LOW),
        ]
    )

    _, warnings = validate(result)

    assert warnings == ["no trends were reported", "severity for abnormal glucose reading is unknown"]


@pytest.mark.parametrize(
    "result",
    [
        PrescriptionAnalysis(medications=[Medication(name="Amoxicillin")]),
        DiagnosisAnalysis(possible_diagnoses=[Diagnosis(condition="Flu")]),
        VitalsAnalysis(),
    ],
)
def test_validation_is_stable_when_repeated(result):
    once, first = validate(result)
    twice, second = validate(once)

    assert first == second
    assert once == twice


def test_unknown_result_type_is_rejected():
    with pytest.raises(TypeError):
        validate({"use_case": "xray"})
