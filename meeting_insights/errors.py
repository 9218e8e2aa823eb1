"""Exceptions raised by the analysis pipeline."""

from enum import Enum
from typing import Sequence

__all__ = [
    "AnalysisErrorKind",
    "AnalysisError",
    "ProviderError",
    "DecodeError",
    "SchemaError",
]


class AnalysisErrorKind(Enum):
    """Failure category preserved for callers that need to tell them apart."""

    DECODE_ERROR = "decode_error"
    SCHEMA_ERROR = "schema_error"
    PROVIDER_ERROR = "provider_error"


class AnalysisError(Exception):
    """Base exception for analysis failures.

    Attributes:
        kind: Failure category
        fields: Dotted paths of violated fields (schema errors only)
        attempts: Number of provider attempts made before giving up
    """

    kind: AnalysisErrorKind = AnalysisErrorKind.PROVIDER_ERROR

    def __init__(
        self,
        message: str,
        *,
        kind: AnalysisErrorKind | None = None,
        fields: Sequence[str] = (),
        attempts: int = 0,
    ):
        super().__init__(message)
        if kind is not None:
            self.kind = kind
        self.fields = list(fields)
        self.attempts = attempts

    def to_dict(self) -> dict:
        """Serialize to the error shape returned across the service boundary."""
        data = {
            "kind": self.kind.value,
            "message": str(self),
            "attempts": self.attempts,
        }
        if self.kind is AnalysisErrorKind.SCHEMA_ERROR:
            data["fields"] = list(self.fields)
        return data


class ProviderError(AnalysisError):
    """Generative service unreachable, rate-limited, rejected auth, or timed out."""

    kind = AnalysisErrorKind.PROVIDER_ERROR


class DecodeError(AnalysisError):
    """Response text was not JSON and no JSON-shaped span could be extracted."""

    kind = AnalysisErrorKind.DECODE_ERROR


class SchemaError(AnalysisError):
    """Decoded JSON failed field, type, enum, or range validation."""

    kind = AnalysisErrorKind.SCHEMA_ERROR
