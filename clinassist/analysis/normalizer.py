"""Map loosely-typed model JSON onto the canonical result shapes.

Missing or unknown keys become null or empty collections, never fabricated
defaults. Array elements of the wrong shape are dropped rather than coerced.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Optional

from pydantic import BaseModel

from clinassist.analysis.models import (
    AbnormalReading,
    Confidence,
    Diagnosis,
    DiagnosisAnalysis,
    DoctorInfo,
    Medication,
    PatientInfo,
    PrescriptionAnalysis,
    Severity,
    UseCase,
    VitalsAnalysis,
)

_LEVELS = ("high", "medium", "low")


def _snake_to_camel(key: str) -> str:
    head, *rest = key.split("_")
    return head + "".join(part.title() for part in rest)


def _get(raw: Mapping[str, Any], key: str) -> Any:
    """Read `key` from raw JSON, accepting the snake_case or camelCase spelling."""
    if key in raw:
        return raw[key]
    return raw.get(_snake_to_camel(key))


def _text(value: Any) -> Optional[str]:
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    if isinstance(value, (int, float)):
        return str(value)
    return None


def _text_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


def _level(value: Any) -> str:
    if isinstance(value, str) and value.strip().lower() in _LEVELS:
        return value.strip().lower()
    return "unknown"


def _objects(value: Any) -> Iterable[Mapping[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, Mapping)]


def _symptom_key(value: str) -> str:
    return " ".join(value.split()).lower()


def _match_symptoms(value: Any, symptoms: Optional[list[str]]) -> list[str]:
    """Keep only mentions of reported symptoms, in the caller's spelling."""
    mentioned = _text_list(value)
    if symptoms is None:
        allowed = {_symptom_key(item): item for item in mentioned}
    else:
        allowed = {_symptom_key(item): item for item in symptoms if item and item.strip()}

    matched: list[str] = []
    for item in mentioned:
        spelling = allowed.get(_symptom_key(item))
        if spelling is not None and spelling not in matched:
            matched.append(spelling)
    return matched


def _normalize_prescription(raw: Mapping[str, Any]) -> PrescriptionAnalysis:
    warnings = _text_list(raw.get("warnings"))

    patient_raw = _get(raw, "patient_info")
    patient = None
    if isinstance(patient_raw, Mapping):
        patient = PatientInfo(
            name=_text(patient_raw.get("name")),
            age=_text(patient_raw.get("age")),
            id=_text(patient_raw.get("id")),
        )

    doctor_raw = _get(raw, "doctor_info")
    doctor = None
    if isinstance(doctor_raw, Mapping):
        doctor = DoctorInfo(
            name=_text(doctor_raw.get("name")),
            credentials=_text(doctor_raw.get("credentials")),
            clinic=_text(doctor_raw.get("clinic")),
            contact=_text(doctor_raw.get("contact")),
        )

    medications: list[Medication] = []
    raw_medications = _get(raw, "medications")
    for index, item in enumerate(raw_medications if isinstance(raw_medications, list) else []):
        name = _text(item.get("name")) if isinstance(item, Mapping) else None
        if name is None:
            message = f"medication entry {index + 1} was dropped because it has no name"
            if message not in warnings:
                warnings.append(message)
            continue
        medications.append(
            Medication(
                name=name,
                dosage=_text(item.get("dosage")),
                route=_text(item.get("route")),
                frequency=_text(item.get("frequency")),
                duration=_text(item.get("duration")),
            )
        )

    confidence = raw.get("confidence", _get(raw, "raw_confidence"))
    return PrescriptionAnalysis(
        patient_info=patient,
        doctor_info=doctor,
        diagnosis=_text(raw.get("diagnosis")),
        medications=medications,
        special_instructions=_text(_get(raw, "special_instructions")),
        prescription_date=_text(_get(raw, "prescription_date")),
        warnings=warnings,
        raw_confidence=Confidence(_level(confidence)),
    )


def _normalize_diagnosis(raw: Mapping[str, Any], symptoms: Optional[list[str]]) -> DiagnosisAnalysis:
    diagnoses: list[Diagnosis] = []
    for item in _objects(_get(raw, "possible_diagnoses")):
        condition = _text(item.get("condition"))
        if condition is None:
            continue
        diagnoses.append(
            Diagnosis(
                condition=condition,
                confidence=Confidence(_level(item.get("confidence"))),
                description=_text(item.get("description")),
                matching_symptoms=_match_symptoms(_get(item, "matching_symptoms"), symptoms),
                testing_recommendations=_text_list(_get(item, "testing_recommendations")),
            )
        )

    immediate = _get(raw, "immediate_attention")
    return DiagnosisAnalysis(
        possible_diagnoses=diagnoses,
        follow_up_questions=_text_list(_get(raw, "follow_up_questions")),
        immediate_attention=immediate if isinstance(immediate, bool) else None,
        disclaimer=_text(raw.get("disclaimer")),
    )


def _normalize_vitals(raw: Mapping[str, Any]) -> VitalsAnalysis:
    trends: dict[str, str] = {}
    raw_trends = raw.get("trends")
    if isinstance(raw_trends, Mapping):
        for metric, description in raw_trends.items():
            metric_name = _text(metric)
            text = _text(description)
            if metric_name and text:
                trends[metric_name] = text

    abnormal: list[AbnormalReading] = []
    for item in _objects(_get(raw, "abnormal_readings")):
        metric = _text(item.get("metric"))
        if metric is None:
            continue
        abnormal.append(
            AbnormalReading(
                metric=metric,
                value=_text(item.get("value")),
                normal_range=_text(_get(item, "normal_range")),
                severity=Severity(_level(item.get("severity"))),
            )
        )

    return VitalsAnalysis(
        trends=trends,
        concerns=_text_list(raw.get("concerns")),
        recommendations=_text_list(raw.get("recommendations")),
        abnormal_readings=abnormal,
        follow_up_recommendations=_text_list(_get(raw, "follow_up_recommendations")),
        summary=_text(raw.get("summary")),
    )


def normalize(
    use_case: UseCase,
    raw: Mapping[str, Any] | BaseModel,
    *,
    symptoms: Optional[list[str]] = None,
):
    """Normalize raw model output for `use_case` into its canonical result.

    `symptoms` restricts diagnosis `matching_symptoms` to the reported list.
    Already-canonical results are accepted and come back unchanged.
    """
    if isinstance(raw, BaseModel):
        raw = raw.model_dump(mode="json", by_alias=True)
    if not isinstance(raw, Mapping):
        raw = {}

    use_case = UseCase(use_case)
    if use_case is UseCase.PRESCRIPTION:
        return _normalize_prescription(raw)
    if use_case is UseCase.SYMPTOMS:
        return _normalize_diagnosis(raw, symptoms)
    if use_case is UseCase.VITALS:
        return _normalize_vitals(raw)
    raise ValueError(f"Unsupported use case: {use_case}")
