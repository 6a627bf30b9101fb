"""Per-use-case analysis pipelines: build prompt, infer, normalize, validate."""

from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Optional, Protocol, Union

from clinassist.analysis.models import (
    AnalysisError,
    AnalysisReport,
    ErrorKind,
    InferenceFailure,
    InvalidRequestError,
    PrescriptionImage,
    SymptomSet,
    UseCase,
    VitalReading,
    VitalsPeriod,
    VitalsQuery,
)
from clinassist.analysis.normalizer import normalize
from clinassist.analysis.validator import validate
from clinassist.config.logger import get_logger, log_stage
from clinassist.llm.gateway import InferenceGateway
from clinassist.prompts.builder import build_prompt

_logger = get_logger(__name__)

AnalysisOutcome = Union[AnalysisReport, AnalysisError]


class VitalsSource(Protocol):
    async def fetch_vitals(self, patient_id: int, period: VitalsPeriod) -> list[VitalReading]:
        """Return a patient's readings for the period, most recent first."""


class _Analyzer:
    use_case: UseCase

    def __init__(self, gateway: InferenceGateway):
        self.gateway = gateway

    def _normalize(self, request: Any, payload: dict[str, Any]):
        return normalize(self.use_case, payload)

    async def _run(self, request: Any) -> AnalysisOutcome:
        start_ts = time.perf_counter()
        _logger.info("[%s] analysis started", self.use_case.value)
        try:
            spec = build_prompt(request)
        except InvalidRequestError as exc:
            _logger.info("[%s] invalid request: %s", self.use_case.value, exc)
            return AnalysisError.from_kind(ErrorKind.INVALID_REQUEST, detail=str(exc), message=str(exc))

        inference = await self.gateway.infer(spec)

        if isinstance(inference, InferenceFailure):
            _logger.warning(
                "[%s] inference failed kind=%s attempts=%d",
                self.use_case.value,
                inference.kind.value,
                inference.attempts,
            )
            return AnalysisError.from_kind(inference.kind, detail=inference.message)

        result = self._normalize(request, inference.payload)
        result, warnings = validate(result)
        log_stage(_logger, f"{self.use_case.value}.result", result)
        _logger.info(
            "[%s] analysis finished warnings=%d latency_ms=%d",
            self.use_case.value,
            len(warnings),
            int((time.perf_counter() - start_ts) * 1000),
        )
        return AnalysisReport(use_case=self.use_case, result=result, warnings=warnings)


class PrescriptionAnalyzer(_Analyzer):
    use_case = UseCase.PRESCRIPTION

    async def analyze(self, request: PrescriptionImage) -> AnalysisOutcome:
        return await self._run(request)


class SymptomAnalyzer(_Analyzer):
    use_case = UseCase.SYMPTOMS

    def _normalize(self, request: SymptomSet, payload: dict[str, Any]):
        return normalize(self.use_case, payload, symptoms=request.symptoms)

    async def analyze(self, request: SymptomSet) -> AnalysisOutcome:
        return await self._run(request)


class VitalsAnalyzer(_Analyzer):
    use_case = UseCase.VITALS

    def __init__(self, gateway: InferenceGateway, source: VitalsSource):
        super().__init__(gateway)
        self.source = source

    async def analyze(self, request: VitalsQuery) -> AnalysisOutcome:
        """Analyze a patient's vitals.

        Readings already attached to the query are used as-is; otherwise they
        are fetched from the vitals source for the requested period.
        """
        if not request.readings:
            readings = await self.source.fetch_vitals(request.patient_id, request.period)
            if not readings:
                message = "No vitals data found for this patient."
                return AnalysisError.from_kind(ErrorKind.INVALID_REQUEST, detail=message, message=message)
            request = request.model_copy(update={"readings": readings})
        return await self._run(request)


class AnalysisService:
    """Entry point for the three analysis operations.

    Cancelling the calling task (directly or through ``asyncio.timeout``)
    propagates as usual. A ``CancelledError`` raised from below while the
    caller itself is not being cancelled, for example by a provider client
    that aborted its own request, is reported as a CANCELLED outcome.
    """

    def __init__(
        self,
        prescriptions: PrescriptionAnalyzer,
        symptoms: SymptomAnalyzer,
        vitals: VitalsAnalyzer,
    ):
        self.prescriptions = prescriptions
        self.symptoms = symptoms
        self.vitals = vitals

    async def _outcome(self, use_case: UseCase, pending: Awaitable[AnalysisOutcome]) -> AnalysisOutcome:
        try:
            return await pending
        except asyncio.CancelledError:
            task = asyncio.current_task()
            if task is not None and task.cancelling():
                _logger.info("[%s] analysis cancelled by caller", use_case.value)
                raise
            _logger.warning("[%s] analysis cancelled from below, caller still waiting", use_case.value)
            return AnalysisError.from_kind(ErrorKind.CANCELLED)

    async def analyze_prescription_image(self, image: bytes | str) -> AnalysisOutcome:
        return await self._outcome(
            UseCase.PRESCRIPTION,
            self.prescriptions.analyze(PrescriptionImage(image=image)),
        )

    async def analyze_symptoms(self, symptoms: list[str]) -> AnalysisOutcome:
        return await self._outcome(UseCase.SYMPTOMS, self.symptoms.analyze(SymptomSet(symptoms=symptoms)))

    async def analyze_vitals(
        self,
        patient_id: int,
        period: VitalsPeriod | str = VitalsPeriod.ALL,
    ) -> AnalysisOutcome:
        return await self._outcome(
            UseCase.VITALS,
            self.vitals.analyze(VitalsQuery(patient_id=patient_id, period=period)),
        )


def build_analysis_service(store: Optional[VitalsSource] = None) -> AnalysisService:
    """Wire the production capabilities, gateways and vitals store."""
    from clinassist.llm.llm import ChatCapability
    from clinassist.utils.db import VitalsStore

    source = store if store is not None else VitalsStore()
    return AnalysisService(
        prescriptions=PrescriptionAnalyzer(InferenceGateway(ChatCapability("PRESCRIPTION"))),
        symptoms=SymptomAnalyzer(InferenceGateway(ChatCapability("SYMPTOMS"))),
        vitals=VitalsAnalyzer(InferenceGateway(ChatCapability("VITALS")), source),
    )
