from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from clinassist.analysis.models import MetricValue, UseCase, VitalsPeriod


class _ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SymptomsRequest(_ApiModel):
    symptoms: list[str] = Field(default_factory=list)


class VitalsAnalysisRequest(_ApiModel):
    patient_id: int
    period: VitalsPeriod = VitalsPeriod.ALL


class VitalRecordRequest(_ApiModel):
    patient_id: int
    metric_type: str = Field(min_length=1)
    metric_value: MetricValue
    notes: str | None = None


class AnalysisResponse(_ApiModel):
    ok: bool = True
    use_case: UseCase
    data: dict[str, Any]
    warnings: list[str] = Field(default_factory=list)


class ErrorDetail(_ApiModel):
    kind: str
    message: str
    detail: str = ""
