"""Incremental conversion of speech-recognition events into transcript segments."""

import logging
import time
import uuid
from collections.abc import Mapping
from typing import Any, Callable, Iterable, Iterator

from meeting_insights._types import (
    RecognitionAlternative,
    RecognitionEvent,
    RecognitionResult,
    TranscriptSegment,
)
from meeting_insights.config import SegmenterConfig

logger = logging.getLogger(__name__)

__all__ = ["TranscriptSegmenter", "format_transcript", "parse_event"]


def _now_ms() -> int:
    return int(time.time() * 1000)


class TranscriptSegmenter:
    """Accumulates final segments and tracks the current interim text.

    Speaker labels come from a cadence heuristic: the label advances after
    every ``speaker_cadence`` finalized segments. This is an approximation,
    not diarization; accurate speaker attribution belongs to an external
    transcription service.
    """

    def __init__(
        self,
        speaker_cadence: int = 5,
        speaker_prefix: str = "Speaker",
        clock: Callable[[], int] = _now_ms,
        id_factory: Callable[[], str] = lambda: uuid.uuid4().hex,
    ):
        """Initialize segmenter.

        Args:
            speaker_cadence: Finalized segments per speaker label
            speaker_prefix: Label prefix, e.g. "Speaker" -> "Speaker 1"
            clock: Returns the current time in milliseconds
            id_factory: Returns a unique segment id
        """
        if speaker_cadence <= 0:
            raise ValueError("speaker_cadence must be positive")

        self.speaker_cadence = speaker_cadence
        self.speaker_prefix = speaker_prefix
        self._clock = clock
        self._id_factory = id_factory

        self._segments: list[TranscriptSegment] = []
        self._interim = ""
        self._speaker_number = 1
        self._finals_for_speaker = 0

    @classmethod
    def from_config(cls, segmenter_cfg: SegmenterConfig, **kwargs) -> "TranscriptSegmenter":
        """Build a segmenter from the [segmenter] config section."""
        return cls(
            speaker_cadence=segmenter_cfg.speaker_cadence,
            speaker_prefix=segmenter_cfg.speaker_prefix,
            **kwargs,
        )

    @property
    def current_speaker(self) -> str:
        return f"{self.speaker_prefix} {self._speaker_number}"

    def handle_event(self, event: RecognitionEvent) -> list[TranscriptSegment]:
        """Consume one recognition event.

        Final results from ``event.result_index`` onward become committed
        segments; non-final results are concatenated into the interim text,
        which replaces the previous interim value.

        Returns:
            Segments committed by this event
        """
        start = max(event.result_index, 0)
        committed: list[TranscriptSegment] = []
        interim_parts: list[str] = []

        for result in event.results[start:]:
            if not result.alternatives:
                continue
            text = result.alternatives[0].text

            if not result.is_final:
                interim_parts.append(text)
                continue

            text = text.strip()
            if not text:
                logger.debug("Skipping empty final result")
                continue

            if self._finals_for_speaker >= self.speaker_cadence:
                self._speaker_number += 1
                self._finals_for_speaker = 0

            segment = TranscriptSegment(
                id=self._id_factory(),
                speaker=self.current_speaker,
                text=text,
                timestamp_ms=self._clock(),
                is_final=True,
            )
            self._finals_for_speaker += 1
            committed.append(segment)

        self._segments.extend(committed)
        self._interim = "".join(interim_parts)

        if committed:
            logger.debug(
                "Committed %d segment(s), total=%d", len(committed), len(self._segments)
            )
        return committed

    def committed_segments(self) -> Iterator[TranscriptSegment]:
        """Lazily iterate committed segments in order."""
        yield from self._segments

    def interim_text(self) -> str:
        return self._interim

    def __len__(self) -> int:
        return len(self._segments)

    def reset(self) -> None:
        """Clear segments, interim text, and the speaker cadence."""
        self._segments = []
        self._interim = ""
        self._speaker_number = 1
        self._finals_for_speaker = 0
        logger.debug("Transcript segmenter reset")


def format_transcript(segments: Iterable[TranscriptSegment]) -> str:
    """Render segments as "Speaker N: text" lines for analysis."""
    return "\n".join(f"{seg.speaker}: {seg.text}" for seg in segments)


def parse_event(data: Any) -> RecognitionEvent:
    """Build a RecognitionEvent from its JSON form.

    Expects the recognizer's wire shape::

        {"resultIndex": 0,
         "results": [{"isFinal": true,
                      "alternatives": [{"transcript": "...", "confidence": 0.9}]}]}

    Raises:
        ValueError: If the object does not have that shape
    """
    if not isinstance(data, Mapping):
        raise ValueError("recognition event must be an object")

    raw_results = data.get("results", [])
    if not isinstance(raw_results, list):
        raise ValueError("results must be an array")

    results = []
    for raw in raw_results:
        if not isinstance(raw, Mapping):
            raise ValueError("each result must be an object")
        alternatives = []
        for alt in raw.get("alternatives", []):
            if not isinstance(alt, Mapping) or not isinstance(alt.get("transcript"), str):
                raise ValueError("each alternative needs a transcript string")
            alternatives.append(
                RecognitionAlternative(
                    text=alt["transcript"],
                    confidence=float(alt.get("confidence", 0.0)),
                )
            )
        results.append(
            RecognitionResult(
                alternatives=tuple(alternatives),
                is_final=bool(raw.get("isFinal", False)),
            )
        )

    result_index = data.get("resultIndex", 0)
    if isinstance(result_index, bool) or not isinstance(result_index, int):
        raise ValueError("resultIndex must be an integer")
    return RecognitionEvent(results=tuple(results), result_index=result_index)
