"""Analysis models, normalization and validation."""

from clinassist.analysis.models import (
    AnalysisError,
    AnalysisReport,
    AnalysisRequest,
    AnalysisResult,
    ErrorKind,
    InvalidRequestError,
    UseCase,
)
from clinassist.analysis.normalizer import normalize
from clinassist.analysis.validator import validate

__all__ = [
    "AnalysisError",
    "AnalysisReport",
    "AnalysisRequest",
    "AnalysisResult",
    "ErrorKind",
    "InvalidRequestError",
    "UseCase",
    "normalize",
    "validate",
]
