"""Request, prompt and result models for the clinical analysis pipeline."""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class UseCase(str, Enum):
    PRESCRIPTION = "prescription"
    SYMPTOMS = "symptoms"
    VITALS = "vitals"


class ErrorKind(str, Enum):
    INVALID_REQUEST = "INVALID_REQUEST"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    UNREACHABLE = "UNREACHABLE"
    TIMEOUT = "TIMEOUT"
    MALFORMED_OUTPUT = "MALFORMED_OUTPUT"
    UPSTREAM_ERROR = "UPSTREAM_ERROR"
    CANCELLED = "CANCELLED"


RETRYABLE_KINDS = frozenset({ErrorKind.UNREACHABLE, ErrorKind.TIMEOUT})

USER_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.INVALID_REQUEST: "The analysis request is invalid.",
    ErrorKind.QUOTA_EXCEEDED: (
        "The AI service usage allowance for this account is exhausted. "
        "Please contact support about your plan."
    ),
    ErrorKind.UNREACHABLE: "The AI service is temporarily unreachable. Please retry in a moment.",
    ErrorKind.TIMEOUT: "The AI service took too long to respond. Please retry.",
    ErrorKind.MALFORMED_OUTPUT: (
        "The AI service returned a response that could not be read. "
        "Please retry or review the input manually."
    ),
    ErrorKind.UPSTREAM_ERROR: (
        "The AI service rejected the request. Please contact support if this persists."
    ),
    ErrorKind.CANCELLED: "The analysis was cancelled.",
}


class InvalidRequestError(ValueError):
    """Raised when an analysis request payload is empty or malformed."""


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Requests ────────────────────────────────────────────────────────


class VitalsPeriod(str, Enum):
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"
    ALL = "all"

    @property
    def reading_limit(self) -> int:
        return {"week": 7, "month": 30}.get(self.value, 90)


class MetricValue(_CamelModel):
    systolic: float | None = None
    diastolic: float | None = None
    value: float | None = None
    unit: str | None = None


class VitalReading(_CamelModel):
    id: int | None = None
    patient_id: int
    metric_type: str
    metric_value: MetricValue
    recorded_at: str
    notes: str | None = None


class PrescriptionImage(BaseModel):
    kind: Literal["prescription_image"] = "prescription_image"
    image: bytes | str = Field(
        description="Raw image bytes, a data URL, bare base64 content, or an http(s) URL."
    )


class SymptomSet(BaseModel):
    kind: Literal["symptoms"] = "symptoms"
    symptoms: list[str] = Field(default_factory=list)

    @field_validator("symptoms")
    @classmethod
    def _dedupe_symptoms(cls, value: list[str]) -> list[str]:
        seen: set[str] = set()
        cleaned: list[str] = []
        for item in value:
            text = " ".join(str(item).split())
            key = text.lower()
            if text and key not in seen:
                seen.add(key)
                cleaned.append(text)
        return cleaned


class VitalsQuery(BaseModel):
    kind: Literal["vitals"] = "vitals"
    patient_id: int
    period: VitalsPeriod = VitalsPeriod.ALL
    readings: list[VitalReading] = Field(default_factory=list)


AnalysisRequest = Annotated[
    Union[PrescriptionImage, SymptomSet, VitalsQuery],
    Field(discriminator="kind"),
]


# ── Prompt ──────────────────────────────────────────────────────────


class ImageAttachment(BaseModel):
    model_config = ConfigDict(frozen=True)

    mime_type: str = "image/jpeg"
    data: str | None = None
    url: str | None = None

    @property
    def image_url(self) -> str:
        if self.url:
            return self.url
        return f"data:{self.mime_type};base64,{self.data}"


class PromptSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    use_case: UseCase
    instruction: str
    output_schema: dict[str, Any]
    attachment: ImageAttachment | None = None


# ── Inference ───────────────────────────────────────────────────────


class InferenceSuccess(BaseModel):
    ok: Literal[True] = True
    payload: dict[str, Any]
    attempts: int = 1


class InferenceFailure(BaseModel):
    ok: Literal[False] = False
    kind: ErrorKind
    message: str
    attempts: int = 1


InferenceResult = Union[InferenceSuccess, InferenceFailure]


# ── Canonical results ───────────────────────────────────────────────


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    UNKNOWN = "unknown"


class Severity(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    UNKNOWN = "unknown"


class PatientInfo(_CamelModel):
    name: str | None = None
    age: str | None = None
    id: str | None = None


class DoctorInfo(_CamelModel):
    name: str | None = None
    credentials: str | None = None
    clinic: str | None = None
    contact: str | None = None


class Medication(_CamelModel):
    name: str
    dosage: str | None = None
    route: str | None = None
    frequency: str | None = None
    duration: str | None = None


class PrescriptionAnalysis(_CamelModel):
    use_case: Literal[UseCase.PRESCRIPTION] = UseCase.PRESCRIPTION
    patient_info: PatientInfo | None = None
    doctor_info: DoctorInfo | None = None
    diagnosis: str | None = None
    medications: list[Medication] = Field(default_factory=list)
    special_instructions: str | None = None
    prescription_date: str | None = None
    warnings: list[str] = Field(default_factory=list)
    raw_confidence: Confidence = Confidence.UNKNOWN


class Diagnosis(_CamelModel):
    condition: str
    confidence: Confidence = Confidence.UNKNOWN
    description: str | None = None
    matching_symptoms: list[str] = Field(default_factory=list)
    testing_recommendations: list[str] = Field(default_factory=list)


class DiagnosisAnalysis(_CamelModel):
    use_case: Literal[UseCase.SYMPTOMS] = UseCase.SYMPTOMS
    possible_diagnoses: list[Diagnosis] = Field(default_factory=list)
    follow_up_questions: list[str] = Field(default_factory=list)
    immediate_attention: bool | None = None
    disclaimer: str | None = None


class AbnormalReading(_CamelModel):
    metric: str
    value: str | None = None
    normal_range: str | None = None
    severity: Severity = Severity.UNKNOWN


class VitalsAnalysis(_CamelModel):
    use_case: Literal[UseCase.VITALS] = UseCase.VITALS
    trends: dict[str, str] = Field(default_factory=dict)
    concerns: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    abnormal_readings: list[AbnormalReading] = Field(default_factory=list)
    follow_up_recommendations: list[str] = Field(default_factory=list)
    summary: str | None = None


AnalysisResult = Annotated[
    Union[PrescriptionAnalysis, DiagnosisAnalysis, VitalsAnalysis],
    Field(discriminator="use_case"),
]


# ── Outcomes ────────────────────────────────────────────────────────


class AnalysisReport(_CamelModel):
    ok: Literal[True] = True
    use_case: UseCase
    result: AnalysisResult
    warnings: list[str] = Field(default_factory=list)


class AnalysisError(_CamelModel):
    ok: Literal[False] = False
    kind: ErrorKind
    message: str
    detail: str = ""

    @classmethod
    def from_kind(cls, kind: ErrorKind, detail: str = "", message: str | None = None) -> "AnalysisError":
        return cls(kind=kind, message=message or USER_MESSAGES[kind], detail=detail)
