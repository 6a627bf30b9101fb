"""End-to-end pipeline tests with a deterministic inference capability."""

import asyncio
import base64
import json
import sys
from io import BytesIO
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest
from PIL import Image

import clinassist.analysis.orchestrators as orchestrators
from clinassist.analysis.models import (
    AnalysisError,
    AnalysisReport,
    Confidence,
    ErrorKind,
    MetricValue,
    PrescriptionImage,
    Severity,
    SymptomSet,
    UseCase,
    VitalReading,
    VitalsPeriod,
    VitalsQuery,
)
from clinassist.analysis.orchestrators import (
    AnalysisService,
    PrescriptionAnalyzer,
    SymptomAnalyzer,
    VitalsAnalyzer,
)
from clinassist.llm.gateway import CapabilityError, InferenceGateway


def _run(coro):
    return asyncio.run(coro)


def _png() -> bytes:
    buf = BytesIO()
    Image.new("RGB", (16, 16), color=(255, 255, 255)).save(buf, format="PNG")
    return buf.getvalue()


class FakeCapability:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    async def generate(self, request):
        self.requests.append(request)
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item if isinstance(item, str) else json.dumps(item)


class HangingCapability:
    def __init__(self):
        self.calls = 0
        self.started = None
        self.cancelled = False

    async def generate(self, request):
        self.calls += 1
        self.started.set()
        try:
            await asyncio.sleep(60)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        return "{}"


class SlowCapability:
    def __init__(self):
        self.calls = 0

    async def generate(self, request):
        self.calls += 1
        await asyncio.sleep(1)
        return "{}"


class FakeVitalsSource:
    def __init__(self, readings):
        self.readings = readings
        self.calls = []

    async def fetch_vitals(self, patient_id, period):
        self.calls.append((patient_id, period))
        return list(self.readings)


def _gateway(capability, **kwargs) -> InferenceGateway:
    kwargs.setdefault("timeout_seconds", 1)
    kwargs.setdefault("max_retries", 1)
    return InferenceGateway(capability, **kwargs)


class TestSymptomAnalyzer:
    def test_bronchitis_scenario(self):
        capability = FakeCapability(
            {
                "possibleDiagnoses": [
                    {
                        "condition": "Bronchitis",
                        "confidence": "medium",
                        "matchingSymptoms": ["persistent cough"],
                        "testingRecommendations": ["chest X-ray"],
                    }
                ]
            }
        )
        analyzer = SymptomAnalyzer(_gateway(capability))

        report = _run(analyzer.analyze(SymptomSet(symptoms=["persistent cough", "fever"])))

        assert isinstance(report, AnalysisReport)
        assert report.use_case == UseCase.SYMPTOMS
        assert len(report.result.possible_diagnoses) == 1
        diagnosis = report.result.possible_diagnoses[0]
        assert diagnosis.condition == "Bronchitis"
        assert diagnosis.confidence == Confidence.MEDIUM
        assert diagnosis.matching_symptoms == ["persistent cough"]
        assert diagnosis.testing_recommendations == ["chest X-ray"]
        assert report.warnings == []

    def test_two_timeouts_skip_normalization(self, monkeypatch):
        def _fail_normalize(*_args, **_kwargs):
            raise AssertionError("normalize must not run after a failed inference")

        monkeypatch.setattr(orchestrators, "normalize", _fail_normalize)
        capability = SlowCapability()
        analyzer = SymptomAnalyzer(_gateway(capability, timeout_seconds=0.01))

        outcome = _run(analyzer.analyze(SymptomSet(symptoms=["fever"])))

        assert isinstance(outcome, AnalysisError)
        assert outcome.kind == ErrorKind.TIMEOUT
        assert outcome.message == "The AI service took too long to respond. Please retry."
        assert capability.calls == 2

    def test_malformed_output_is_surfaced(self):
        capability = FakeCapability("Sorry, I cannot help with that.")
        analyzer = SymptomAnalyzer(_gateway(capability))

        outcome = _run(analyzer.analyze(SymptomSet(symptoms=["fever"])))

        assert outcome.kind == ErrorKind.MALFORMED_OUTPUT
        assert outcome.message != outcome.kind.value
        assert outcome.detail

    def test_empty_symptoms_never_reach_capability(self):
        capability = FakeCapability()
        analyzer = SymptomAnalyzer(_gateway(capability))

        outcome = _run(analyzer.analyze(SymptomSet(symptoms=[])))

        assert outcome.kind == ErrorKind.INVALID_REQUEST
        assert outcome.message == "No symptoms provided."
        assert capability.requests == []

    def test_task_cancellation_propagates(self):
        capability = HangingCapability()
        analyzer = SymptomAnalyzer(_gateway(capability, timeout_seconds=30))

        async def scenario():
            capability.started = asyncio.Event()
            task = asyncio.create_task(analyzer.analyze(SymptomSet(symptoms=["fever"])))
            await capability.started.wait()
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
            return task

        task = _run(scenario())

        assert task.cancelled() is True
        assert capability.calls == 1
        assert capability.cancelled is True

    def test_caller_deadline_raises_timeout_error(self):
        capability = SlowCapability()
        analyzer = SymptomAnalyzer(_gateway(capability, timeout_seconds=30))

        async def scenario():
            async with asyncio.timeout(0.05):
                await analyzer.analyze(SymptomSet(symptoms=["fever"]))

        with pytest.raises(TimeoutError):
            _run(scenario())
        assert capability.calls == 1


class TestPrescriptionAnalyzer:
    def test_missing_dosage_is_warned_but_kept(self):
        capability = FakeCapability(
            {
                "medications": [
                    {"name": "Amoxicillin", "dosage": None, "frequency": "three times daily"}
                ],
                "confidence": "high",
            }
        )
        analyzer = PrescriptionAnalyzer(_gateway(capability))

        report = _run(analyzer.analyze(PrescriptionImage(image=_png())))

        assert isinstance(report, AnalysisReport)
        medication = report.result.medications[0]
        assert medication.name == "Amoxicillin"
        assert medication.dosage is None
        assert "missing dosage for Amoxicillin" in report.warnings
        assert report.result.warnings == report.warnings

    def test_image_is_attached_to_capability_request(self):
        capability = FakeCapability({"medications": [], "confidence": "low"})
        analyzer = PrescriptionAnalyzer(_gateway(capability))

        _run(analyzer.analyze(PrescriptionImage(image=_png())))

        attachment = capability.requests[0].attachment
        assert attachment.mime_type == "image/png"
        assert base64.b64decode(attachment.data).startswith(b"\x89PNG")

    def test_invalid_image_is_rejected_before_inference(self):
        capability = FakeCapability()
        analyzer = PrescriptionAnalyzer(_gateway(capability))

        outcome = _run(analyzer.analyze(PrescriptionImage(image=b"%PDF-1.4 not an image")))

        assert outcome.kind == ErrorKind.INVALID_REQUEST
        assert "Prescription image is invalid" in outcome.message
        assert capability.requests == []

    def test_quota_failure_is_passed_through(self):
        capability = FakeCapability(CapabilityError(ErrorKind.QUOTA_EXCEEDED, "insufficient_quota"))
        analyzer = PrescriptionAnalyzer(_gateway(capability))

        outcome = _run(analyzer.analyze(PrescriptionImage(image=_png())))

        assert outcome.kind == ErrorKind.QUOTA_EXCEEDED
        assert outcome.detail == "insufficient_quota"
        assert len(capability.requests) == 1


def _readings(count: int) -> list[VitalReading]:
    return [
        VitalReading(
            id=i,
            patient_id=3,
            metric_type="glucose",
            metric_value=MetricValue(value=100 + i, unit="mg/dL"),
            recorded_at=f"2024-05-{30 - i:02d}T07:30:00",
        )
        for i in range(count)
    ]


class TestVitalsAnalyzer:
    def test_fetches_readings_and_reports(self):
        source = FakeVitalsSource(_readings(3))
        capability = FakeCapability(
            {
                "trends": {"glucose": "stable"},
                "concerns": [],
                "recommendations": ["Keep monitoring"],
                "abnormalReadings": [{"metric": "glucose", "value": "250", "severity": "severe"}],
            }
        )
        analyzer = VitalsAnalyzer(_gateway(capability), source)

        report = _run(analyzer.analyze(VitalsQuery(patient_id=3, period=VitalsPeriod.WEEK)))

        assert source.calls == [(3, VitalsPeriod.WEEK)]
        assert report.result.trends == {"glucose": "stable"}
        assert report.result.abnormal_readings[0].severity == Severity.UNKNOWN
        assert report.warnings == ["severity for abnormal glucose reading is unknown"]
        assert "3 readings" in capability.requests[0].instruction

    def test_empty_history_is_invalid_request(self):
        capability = FakeCapability()
        analyzer = VitalsAnalyzer(_gateway(capability), FakeVitalsSource([]))

        outcome = _run(analyzer.analyze(VitalsQuery(patient_id=3)))

        assert outcome.kind == ErrorKind.INVALID_REQUEST
        assert outcome.message == "No vitals data found for this patient."
        assert capability.requests == []


def test_service_routes_to_analyzers():
    symptoms_capability = FakeCapability({"possibleDiagnoses": []})
    vitals_capability = FakeCapability({"trends": {"glucose": "improving"}})
    service = AnalysisService(
        prescriptions=PrescriptionAnalyzer(_gateway(FakeCapability())),
        symptoms=SymptomAnalyzer(_gateway(symptoms_capability)),
        vitals=VitalsAnalyzer(_gateway(vitals_capability), FakeVitalsSource(_readings(1))),
    )

    symptoms_report = _run(service.analyze_symptoms(["headache"]))
    vitals_report = _run(service.analyze_vitals(3, "month"))
    prescription_error = _run(service.analyze_prescription_image(""))

    assert symptoms_report.warnings == ["no possible diagnoses were returned"]
    assert vitals_report.result.trends == {"glucose": "improving"}
    assert prescription_error.kind == ErrorKind.INVALID_REQUEST


def _service(capability=None, source=None) -> AnalysisService:
    gateway = _gateway(capability or FakeCapability(), timeout_seconds=30)
    return AnalysisService(
        prescriptions=PrescriptionAnalyzer(gateway),
        symptoms=SymptomAnalyzer(gateway),
        vitals=VitalsAnalyzer(gateway, source or FakeVitalsSource(_readings(1))),
    )


class TestServiceCancellation:
    def test_capability_abort_becomes_cancelled_error(self):
        capability = FakeCapability(asyncio.CancelledError())

        outcome = _run(_service(capability).analyze_symptoms(["fever"]))

        assert isinstance(outcome, AnalysisError)
        assert outcome.kind == ErrorKind.CANCELLED
        assert outcome.message == "The analysis was cancelled."

    def test_caller_cancellation_is_not_converted(self):
        capability = HangingCapability()
        service = _service(capability)

        async def scenario():
            capability.started = asyncio.Event()
            task = asyncio.create_task(service.analyze_symptoms(["fever"]))
            await capability.started.wait()
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
            return task

        assert _run(scenario()).cancelled() is True
        assert capability.cancelled is True

    def test_caller_deadline_during_vitals_fetch_raises_timeout_error(self):
        class BlockingSource:
            def __init__(self):
                self.cancelled = False

            async def fetch_vitals(self, patient_id, period):
                try:
                    await asyncio.sleep(60)
                except asyncio.CancelledError:
                    self.cancelled = True
                    raise
                return []

        source = BlockingSource()
        capability = FakeCapability()
        service = _service(capability, source)

        async def scenario():
            async with asyncio.timeout(0.05):
                await service.analyze_vitals(3, "week")

        with pytest.raises(TimeoutError):
            _run(scenario())
        assert source.cancelled is True
        assert capability.requests == []


@pytest.mark.parametrize("kind", [ErrorKind.UNREACHABLE, ErrorKind.TIMEOUT])
def test_transient_failure_recovers_on_retry(kind):
    capability = FakeCapability(CapabilityError(kind, "blip"), {"possibleDiagnoses": []})
    analyzer = SymptomAnalyzer(_gateway(capability))

    report = _run(analyzer.analyze(SymptomSet(symptoms=["fever"])))

    assert isinstance(report, AnalysisReport)
    assert len(capability.requests) == 2
