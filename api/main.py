import time

from dotenv import load_dotenv

load_dotenv()

from fastapi import FastAPI, File, Form, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware

from api.schemas import (
    AnalysisResponse,
    ErrorDetail,
    SymptomsRequest,
    VitalRecordRequest,
    VitalsAnalysisRequest,
)
from clinassist.analysis.models import AnalysisError, AnalysisReport, ErrorKind
from clinassist.analysis.orchestrators import AnalysisService, build_analysis_service
from clinassist.config.logger import configure_logging, get_logger
from clinassist.utils.db import VitalsStore

app = FastAPI(title="Clinical Analysis Assistant")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

configure_logging()
logger = get_logger(__name__)

STATUS_BY_KIND = {
    ErrorKind.INVALID_REQUEST: 400,
    ErrorKind.QUOTA_EXCEEDED: 429,
    ErrorKind.TIMEOUT: 504,
    ErrorKind.UNREACHABLE: 503,
    ErrorKind.MALFORMED_OUTPUT: 502,
    ErrorKind.UPSTREAM_ERROR: 502,
    # Client closed request.
    ErrorKind.CANCELLED: 499,
}


def get_vitals_store() -> VitalsStore:
    store = getattr(app.state, "vitals_store", None)
    if store is None:
        store = VitalsStore()
        app.state.vitals_store = store
    return store


def get_analysis_service() -> AnalysisService:
    service = getattr(app.state, "analysis_service", None)
    if service is None:
        service = build_analysis_service(get_vitals_store())
        app.state.analysis_service = service
    return service


def _to_response(outcome: AnalysisReport | AnalysisError) -> AnalysisResponse:
    if isinstance(outcome, AnalysisError):
        logger.info("[analysis] failed kind=%s detail=%s", outcome.kind.value, outcome.detail)
        raise HTTPException(
            status_code=STATUS_BY_KIND.get(outcome.kind, 500),
            detail=ErrorDetail(
                kind=outcome.kind.value,
                message=outcome.message,
                detail=outcome.detail,
            ).model_dump(),
        )
    return AnalysisResponse(
        use_case=outcome.use_case,
        data=outcome.result.model_dump(mode="json", by_alias=True, exclude={"use_case"}),
        warnings=outcome.warnings,
    )


@app.middleware("http")
async def log_requests(request, call_next):
    start = time.perf_counter()
    logger.info("[request.start] %s %s", request.method, request.url.path)
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - start) * 1000
    logger.info(
        "[request.end] %s %s status=%s elapsed=%.1fms",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
    )
    return response


@app.on_event("startup")
async def startup():
    await get_vitals_store().init_db()
    get_analysis_service()


@app.get("/api/health")
async def health():
    return {"ok": True}


@app.post("/api/analysis/prescription")
async def analyze_prescription(
    image: UploadFile | None = File(None),
    image_data: str | None = Form(None),
):
    if image is not None:
        payload: bytes | str = await image.read()
    else:
        payload = (image_data or "").strip()
    if not payload:
        raise HTTPException(
            status_code=400,
            detail=ErrorDetail(
                kind=ErrorKind.INVALID_REQUEST.value,
                message="No prescription image provided.",
            ).model_dump(),
        )

    logger.info(
        "[analysis.prescription] source=%s size=%s",
        "upload" if image is not None else "form",
        len(payload),
    )
    outcome = await get_analysis_service().analyze_prescription_image(payload)
    return _to_response(outcome)


@app.post("/api/analysis/symptoms")
async def analyze_symptoms(body: SymptomsRequest):
    logger.info("[analysis.symptoms] count=%s", len(body.symptoms))
    outcome = await get_analysis_service().analyze_symptoms(body.symptoms)
    return _to_response(outcome)


@app.post("/api/analysis/vitals")
async def analyze_vitals(body: VitalsAnalysisRequest):
    logger.info("[analysis.vitals] patient_id=%s period=%s", body.patient_id, body.period.value)
    outcome = await get_analysis_service().analyze_vitals(body.patient_id, body.period)
    return _to_response(outcome)


@app.get("/api/vitals/history/{patient_id}")
async def vitals_history(patient_id: int):
    readings = await get_vitals_store().get_vitals_history(patient_id)
    return [reading.model_dump(mode="json", by_alias=True) for reading in readings]


@app.post("/api/vitals/record", status_code=201)
async def record_vital(body: VitalRecordRequest):
    reading = await get_vitals_store().record_vital(
        patient_id=body.patient_id,
        metric_type=body.metric_type.strip(),
        metric_value=body.metric_value,
        notes=body.notes,
    )
    logger.info("[vitals.record] patient_id=%s metric=%s id=%s", reading.patient_id, reading.metric_type, reading.id)
    return reading.model_dump(mode="json", by_alias=True)
