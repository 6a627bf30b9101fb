"""Build per-request instructions and output schemas for the inference capability."""

from __future__ import annotations

import json
from functools import singledispatch

from clinassist.analysis.models import (
    ImageAttachment,
    InvalidRequestError,
    PrescriptionImage,
    PromptSpec,
    SymptomSet,
    UseCase,
    VitalsQuery,
)
from clinassist.config.settings import settings
from clinassist.prompts.prompts import (
    DIAGNOSIS_SCHEMA,
    PRESCRIPTION_PROMPT,
    PRESCRIPTION_SCHEMA,
    SYMPTOMS_PROMPT,
    VITALS_PROMPT,
    VITALS_SCHEMA,
)
from clinassist.utils.image_utils import (
    SUPPORTED_FORMATS,
    decode_base64_image,
    detect_image_format,
    image_bytes_to_base64,
    is_remote_url,
    resize_image_if_needed,
    split_data_url,
)


def _schema_text(schema: dict) -> str:
    return json.dumps(schema, indent=2)


@singledispatch
def build_prompt(request) -> PromptSpec:
    """Return a fresh PromptSpec for an analysis request.

    Raises InvalidRequestError when the request payload is empty or malformed.
    """
    raise InvalidRequestError(f"Unsupported analysis request: {type(request).__name__}")


def _image_attachment(image: bytes | str) -> ImageAttachment:
    if isinstance(image, str) and is_remote_url(image):
        return ImageAttachment(url=image.strip())

    try:
        if isinstance(image, bytes):
            raw = image
        else:
            _, encoded = split_data_url(image)
            raw = decode_base64_image(encoded)
        if len(raw) > settings.IMAGE_MAX_BYTES:
            raise ValueError(f"image exceeds max allowed size of {settings.IMAGE_MAX_BYTES} bytes.")
        fmt = detect_image_format(raw)
        raw = resize_image_if_needed(raw, settings.IMAGE_MAX_SIDE)
    except ValueError as exc:
        raise InvalidRequestError(f"Prescription image is invalid: {exc}") from exc

    return ImageAttachment(mime_type=SUPPORTED_FORMATS[fmt], data=image_bytes_to_base64(raw))


@build_prompt.register
def _(request: PrescriptionImage) -> PromptSpec:
    if not request.image:
        raise InvalidRequestError("No prescription image provided.")
    return PromptSpec(
        use_case=UseCase.PRESCRIPTION,
        instruction=PRESCRIPTION_PROMPT.format(schema=_schema_text(PRESCRIPTION_SCHEMA)),
        output_schema=PRESCRIPTION_SCHEMA,
        attachment=_image_attachment(request.image),
    )


@build_prompt.register
def _(request: SymptomSet) -> PromptSpec:
    if not request.symptoms:
        raise InvalidRequestError("No symptoms provided.")
    symptom_lines = "\n".join(f"- {symptom}" for symptom in request.symptoms)
    return PromptSpec(
        use_case=UseCase.SYMPTOMS,
        instruction=SYMPTOMS_PROMPT.format(
            symptoms=symptom_lines,
            schema=_schema_text(DIAGNOSIS_SCHEMA),
        ),
        output_schema=DIAGNOSIS_SCHEMA,
    )


@build_prompt.register
def _(request: VitalsQuery) -> PromptSpec:
    if not request.readings:
        raise InvalidRequestError("No vitals data found for this patient.")
    readings = request.readings[: settings.VITALS_PROMPT_MAX_READINGS]
    readings_json = json.dumps(
        [
            reading.model_dump(
                mode="json",
                by_alias=True,
                exclude={"id", "patient_id"},
                exclude_none=True,
            )
            for reading in readings
        ],
        indent=2,
    )
    return PromptSpec(
        use_case=UseCase.VITALS,
        instruction=VITALS_PROMPT.format(
            count=len(readings),
            period=request.period.value,
            readings=readings_json,
            schema=_schema_text(VITALS_SCHEMA),
        ),
        output_schema=VITALS_SCHEMA,
    )
