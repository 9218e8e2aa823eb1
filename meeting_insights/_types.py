"""Shared types and dataclasses for cross-module use."""

from dataclasses import dataclass, field
from enum import Enum


@dataclass(frozen=True)
class AudioArtifact:
    """Finalized audio produced by a recording session."""

    data: bytes
    mime_type: str


@dataclass(frozen=True)
class RecordingOutput:
    """Artifact plus the elapsed duration handed back by stop()."""

    artifact: AudioArtifact
    duration_seconds: int


class RecordingErrorKind(Enum):
    """Device failure taxonomy surfaced by the recording controller."""

    PERMISSION_DENIED = "permission_denied"
    DEVICE_NOT_FOUND = "device_not_found"
    DEVICE_ERROR = "device_error"


@dataclass(frozen=True)
class RecordingError:
    """Descriptive error set on a session when acquisition or capture fails."""

    kind: RecordingErrorKind
    message: str


@dataclass(frozen=True)
class TranscriptSegment:
    """A committed, speaker-tagged piece of transcript."""

    id: str
    speaker: str
    text: str
    timestamp_ms: int
    is_final: bool = True


@dataclass(frozen=True)
class RecognitionAlternative:
    """One candidate transcription of a recognition result."""

    text: str
    confidence: float = 0.0


@dataclass(frozen=True)
class RecognitionResult:
    """A single recognition result, interim or final."""

    alternatives: tuple[RecognitionAlternative, ...] = ()
    is_final: bool = False


@dataclass(frozen=True)
class RecognitionEvent:
    """Incremental recognizer event.

    ``results`` is the full result list of the recognition session so far;
    ``result_index`` marks the first entry that changed since the last event.
    """

    results: tuple[RecognitionResult, ...] = field(default_factory=tuple)
    result_index: int = 0
