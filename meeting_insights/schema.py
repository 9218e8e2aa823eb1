"""Structured analysis result and the schema gate that admits it.

Models use snake_case attributes with camelCase aliases so that a validated
result dumps back to exactly the JSON shape the provider was asked for.
Validation is strict: out-of-range numbers, unknown enum values, booleans or
strings in numeric fields are rejected rather than coerced or clamped.
"""

import logging
import re
from datetime import date
from typing import Annotated, Any, Literal

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    StrictStr,
    ValidationError,
    field_validator,
)
from pydantic.alias_generators import to_camel

from meeting_insights.errors import SchemaError

logger = logging.getLogger(__name__)

__all__ = [
    "Priority",
    "Consensus",
    "Emotion",
    "Summary",
    "ActionItem",
    "Decision",
    "Topic",
    "Sentiment",
    "AnalysisResult",
    "validate_analysis",
    "fallback_result",
]

Priority = Literal["high", "medium", "low"]
Consensus = Literal["unanimous", "majority", "contested"]
Emotion = Literal["positive", "negative", "neutral", "mixed"]

_ISO_DATE = re.compile(r"\d{4}-\d{2}-\d{2}")


def _require_number(value: Any) -> float:
    # bool is an int subclass; JSON true/false must not pass as 1/0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError("must be a number")
    return float(value)


Number = Annotated[float, BeforeValidator(_require_number)]


class _SchemaModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )


class Summary(_SchemaModel):
    executive: StrictStr = Field(min_length=1)
    detailed: StrictStr = Field(min_length=1)
    bullet_points: list[StrictStr] = Field(min_length=1)


class ActionItem(_SchemaModel):
    description: StrictStr
    assignee: StrictStr | None = None
    due_date: date | None = None
    priority: Priority

    @field_validator("due_date", mode="before")
    @classmethod
    def _due_date_is_text(cls, value: Any) -> Any:
        """Accept only ISO calendar date strings (or null)."""
        if value is None or isinstance(value, date):
            return value
        if not isinstance(value, str) or not _ISO_DATE.fullmatch(value):
            raise ValueError("must be a YYYY-MM-DD string or null")
        return date.fromisoformat(value)


class Decision(_SchemaModel):
    description: StrictStr
    consensus: Consensus


class Topic(_SchemaModel):
    name: StrictStr
    relevance: Number = Field(ge=0.0, le=1.0)


class Sentiment(_SchemaModel):
    score: Number = Field(ge=-1.0, le=1.0)
    magnitude: Number = Field(ge=0.0, le=1.0)
    primary_emotion: Emotion


class AnalysisResult(_SchemaModel):
    """Validated meeting intelligence for one transcript."""

    summary: Summary
    action_items: list[ActionItem]
    decisions: list[Decision]
    topics: list[Topic]
    sentiment: Sentiment
    suggested_title: StrictStr | None = None

    def to_dict(self) -> dict:
        """Return the JSON-ready wire shape (camelCase keys, ISO dates)."""
        data = self.model_dump(mode="json", by_alias=True)
        if data.get("suggestedTitle") is None:
            data.pop("suggestedTitle", None)
        return data


def _error_path(loc: tuple) -> str:
    return ".".join(str(part) for part in loc) or "<root>"


def validate_analysis(data: Any) -> AnalysisResult:
    """Run the schema gate over a decoded provider response.

    Args:
        data: Decoded JSON value

    Returns:
        Validated AnalysisResult

    Raises:
        SchemaError: If any field violates type, enum, range, or length
            constraints. ``fields`` lists every offending dotted path.
    """
    if not isinstance(data, dict):
        raise SchemaError(
            f"Expected a JSON object, got {type(data).__name__}",
            fields=["<root>"],
        )

    try:
        return AnalysisResult.model_validate(data)
    except ValidationError as e:
        fields = []
        for error in e.errors():
            path = _error_path(error["loc"])
            if path not in fields:
                fields.append(path)
        logger.debug("Schema validation failed on fields: %s", ", ".join(fields))
        raise SchemaError(
            f"Analysis response failed validation ({e.error_count()} errors): "
            f"{', '.join(fields)}",
            fields=fields,
        ) from e


_FALLBACK_PAYLOAD = {
    "summary": {
        "executive": "Automated analysis is not available for this meeting.",
        "detailed": (
            "The analysis service could not produce a result for this transcript. "
            "The transcript itself is unaffected; try generating insights again later."
        ),
        "bulletPoints": ["Analysis unavailable; review the transcript directly."],
    },
    "actionItems": [],
    "decisions": [],
    "topics": [],
    "sentiment": {"score": 0.0, "magnitude": 0.0, "primaryEmotion": "neutral"},
}


def fallback_result() -> AnalysisResult:
    """Fixed placeholder result returned when the provider path is exhausted."""
    return AnalysisResult.model_validate(_FALLBACK_PAYLOAD)
