"""LLM module."""

from clinassist.llm.gateway import (
    CapabilityError,
    CapabilityRequest,
    InferenceCapability,
    InferenceGateway,
    classify_exception,
    parse_json_object,
)
from clinassist.llm.llm import ChatCapability

__all__ = [
    "CapabilityError",
    "CapabilityRequest",
    "ChatCapability",
    "InferenceCapability",
    "InferenceGateway",
    "classify_exception",
    "parse_json_object",
]
