"""Inference gateway: one budgeted call to the external capability per attempt.

The gateway turns a PromptSpec into a CapabilityRequest, bounds every attempt
with a timeout, classifies failures into ErrorKind values and parses the
response as a JSON object. It returns either a complete InferenceSuccess or an
InferenceFailure; partially parsed payloads never leave this module.
"""

from __future__ import annotations

import asyncio
import json
import re
import time
from typing import Any, Protocol, runtime_checkable

import openai
from pydantic import BaseModel, ConfigDict

from clinassist.analysis.models import (
    RETRYABLE_KINDS,
    ErrorKind,
    ImageAttachment,
    InferenceFailure,
    InferenceResult,
    InferenceSuccess,
    PromptSpec,
)
from clinassist.config.logger import get_logger
from clinassist.config.settings import settings

_logger = get_logger(__name__)

_CODE_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)


class CapabilityRequest(BaseModel):
    """Single outbound request to the inference capability."""

    model_config = ConfigDict(frozen=True)

    instruction: str
    attachment: ImageAttachment | None = None
    json_mode: bool = True
    max_output_tokens: int = 2000


class CapabilityError(Exception):
    """Raised by a capability when it can classify its own failure."""

    def __init__(self, kind: ErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message


@runtime_checkable
class InferenceCapability(Protocol):
    async def generate(self, request: CapabilityRequest) -> str:
        """Send one request and return the raw text response."""


def _status_code(exc: BaseException) -> int | None:
    status = getattr(exc, "status_code", None)
    if status is None:
        status = getattr(getattr(exc, "response", None), "status_code", None)
    return status if isinstance(status, int) else None


def _error_code(exc: BaseException) -> str:
    code = getattr(exc, "code", None)
    if isinstance(code, str):
        return code
    body = getattr(exc, "body", None)
    if isinstance(body, dict):
        nested = body.get("error") if isinstance(body.get("error"), dict) else body
        if isinstance(nested.get("code"), str):
            return nested["code"]
    return ""


def classify_exception(exc: BaseException) -> ErrorKind:
    """Map an exception raised by a capability call onto the error taxonomy."""
    if isinstance(exc, CapabilityError):
        return exc.kind
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return ErrorKind.TIMEOUT

    if isinstance(exc, openai.RateLimitError):
        return ErrorKind.QUOTA_EXCEEDED
    if isinstance(exc, openai.APITimeoutError):
        return ErrorKind.TIMEOUT
    if isinstance(exc, (openai.APIConnectionError, openai.InternalServerError)):
        return ErrorKind.UNREACHABLE

    if _error_code(exc) == "insufficient_quota" or _status_code(exc) == 429:
        return ErrorKind.QUOTA_EXCEEDED
    status = _status_code(exc)
    if status is not None and status >= 500:
        return ErrorKind.UNREACHABLE

    name = exc.__class__.__name__.lower()
    text = str(exc).lower()
    if "timeout" in name or "timed out" in text:
        return ErrorKind.TIMEOUT
    if isinstance(exc, (ConnectionError, OSError)) or "connect" in name:
        return ErrorKind.UNREACHABLE
    return ErrorKind.UPSTREAM_ERROR


def parse_json_object(text: str) -> dict[str, Any]:
    """Parse a capability response as a JSON object, or raise ValueError."""
    stripped = (text or "").strip()
    if not stripped:
        raise ValueError("capability returned an empty response")
    fenced = _CODE_FENCE.match(stripped)
    if fenced:
        stripped = fenced.group(1)
    try:
        parsed = json.loads(stripped)
    except json.JSONDecodeError as exc:
        raise ValueError(f"response is not valid JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise ValueError(f"expected a JSON object, got {type(parsed).__name__}")
    if not parsed:
        raise ValueError("capability returned an empty JSON object")
    return parsed


class InferenceGateway:
    """Budgeted, classified access to an InferenceCapability."""

    def __init__(
        self,
        capability: InferenceCapability,
        *,
        timeout_seconds: float | None = None,
        max_output_tokens: int | None = None,
        max_retries: int | None = None,
    ) -> None:
        self.capability = capability
        self.timeout_seconds = (
            settings.INFERENCE_TIMEOUT_SECONDS if timeout_seconds is None else timeout_seconds
        )
        self.max_output_tokens = (
            settings.INFERENCE_MAX_OUTPUT_TOKENS if max_output_tokens is None else max_output_tokens
        )
        retries = settings.retry_budget if max_retries is None else max_retries
        self.max_retries = max(0, min(1, retries))

    def _request_for(self, spec: PromptSpec) -> CapabilityRequest:
        return CapabilityRequest(
            instruction=spec.instruction,
            attachment=spec.attachment,
            json_mode=True,
            max_output_tokens=self.max_output_tokens,
        )

    async def infer(self, spec: PromptSpec) -> InferenceResult:
        """Run the prompt against the capability.

        Cancellation is never retried: asyncio.CancelledError aborts the
        pending call and propagates to the caller.
        """
        request = self._request_for(spec)
        attempts = 0

        while True:
            attempts += 1
            start_ts = time.perf_counter()
            try:
                raw = await asyncio.wait_for(
                    self.capability.generate(request),
                    timeout=self.timeout_seconds,
                )
            except asyncio.CancelledError:
                _logger.info(
                    "[gateway] use_case=%s attempt=%d cancelled by caller",
                    spec.use_case.value,
                    attempts,
                )
                raise
            except Exception as exc:
                kind = classify_exception(exc)
                message = str(exc).strip() or exc.__class__.__name__
                latency_ms = int((time.perf_counter() - start_ts) * 1000)
                if kind in RETRYABLE_KINDS and attempts <= self.max_retries:
                    _logger.warning(
                        "[gateway] use_case=%s attempt=%d %s after %dms, retrying: %s",
                        spec.use_case.value,
                        attempts,
                        kind.value,
                        latency_ms,
                        message,
                    )
                    continue
                _logger.error(
                    "[gateway] use_case=%s attempt=%d failed kind=%s latency_ms=%d: %s",
                    spec.use_case.value,
                    attempts,
                    kind.value,
                    latency_ms,
                    message,
                )
                return InferenceFailure(kind=kind, message=message, attempts=attempts)

            latency_ms = int((time.perf_counter() - start_ts) * 1000)
            try:
                payload = parse_json_object(raw)
            except ValueError as exc:
                _logger.error(
                    "[gateway] use_case=%s malformed output after %dms: %s | raw[:200]=%r",
                    spec.use_case.value,
                    latency_ms,
                    exc,
                    (raw or "")[:200],
                )
                return InferenceFailure(
                    kind=ErrorKind.MALFORMED_OUTPUT,
                    message=str(exc),
                    attempts=attempts,
                )

            _logger.info(
                "[gateway] use_case=%s ok attempts=%d latency_ms=%d keys=%s",
                spec.use_case.value,
                attempts,
                latency_ms,
                sorted(payload),
            )
            return InferenceSuccess(payload=payload, attempts=attempts)
