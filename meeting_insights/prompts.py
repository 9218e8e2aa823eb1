"""Prompt construction for meeting analysis."""

from typing import Sequence

__all__ = [
    "ANALYSIS_PROMPT",
    "QUICK_SUMMARY_PROMPT",
    "build_analysis_prompt",
    "build_correction_note",
    "build_quick_summary_prompt",
]

ANALYSIS_PROMPT = """You are an expert meeting analyst. Analyze the following meeting transcript and return a JSON object.

TRANSCRIPT:
{transcript}

Return this exact JSON structure:
{{
  "summary": {{
    "executive": "2-3 sentence executive summary of the meeting",
    "detailed": "Detailed multi-paragraph summary of the meeting",
    "bulletPoints": ["Key point 1", "Key point 2", "Key point 3"]
  }},
  "actionItems": [
    {{
      "description": "Task description",
      "assignee": "Person name or null",
      "dueDate": "YYYY-MM-DD or null",
      "priority": "high"
    }}
  ],
  "decisions": [
    {{
      "description": "What was decided",
      "consensus": "unanimous"
    }}
  ],
  "topics": [
    {{
      "name": "Topic discussed",
      "relevance": 0.9
    }}
  ],
  "sentiment": {{
    "score": 0.5,
    "magnitude": 0.5,
    "primaryEmotion": "positive"
  }},
  "suggestedTitle": "Meeting title suggestion"
}}

IMPORTANT RULES:
- Base ALL content strictly on what is in the transcript. Do not invent information.
- priority must be one of: "high", "medium", "low"
- consensus must be one of: "unanimous", "majority", "contested"
- primaryEmotion must be one of: "positive", "negative", "neutral", "mixed"
- score ranges from -1.0 to 1.0, magnitude from 0.0 to 1.0, relevance from 0.0 to 1.0
- Use null for unknown values, empty arrays [] if no items exist
- bulletPoints must have at least 1 item
- Respond with JSON only: no markdown, no explanation."""

QUICK_SUMMARY_PROMPT = "Summarize this meeting in 2-3 sentences: {transcript}"

# Constraint reminders keyed by the top-level or leaf field that failed
_FIELD_RULES = {
    "priority": 'priority must be exactly one of "high", "medium", "low"',
    "consensus": 'consensus must be exactly one of "unanimous", "majority", "contested"',
    "primaryEmotion": 'primaryEmotion must be exactly one of "positive", "negative", "neutral", "mixed"',
    "score": "sentiment.score must be a number between -1.0 and 1.0",
    "magnitude": "sentiment.magnitude must be a number between 0.0 and 1.0",
    "relevance": "every topics[].relevance must be a number between 0.0 and 1.0",
    "bulletPoints": "summary.bulletPoints must be an array with at least 1 string",
    "executive": "summary.executive must be a non-empty string",
    "detailed": "summary.detailed must be a non-empty string",
    "dueDate": 'dueDate must be a "YYYY-MM-DD" string or null',
}


def build_analysis_prompt(transcript: str) -> str:
    """Embed the transcript verbatim in the analysis instructions."""
    return ANALYSIS_PROMPT.format(transcript=transcript)


def build_correction_note(fields: Sequence[str]) -> str:
    """Restate the constraints a previous response violated.

    Args:
        fields: Dotted field paths reported by the schema gate

    Returns:
        Text to append to the analysis prompt, or "" when nothing applies
    """
    if not fields:
        return ""

    rules: list[str] = []
    for path in fields:
        parts = [p for p in path.split(".") if not p.isdigit()]
        for part in reversed(parts):
            rule = _FIELD_RULES.get(part)
            if rule:
                break
        else:
            rule = f"{path} is missing or has the wrong type"
        if rule not in rules:
            rules.append(rule)

    lines = "\n".join(f"- {rule}" for rule in rules)
    return (
        "\n\nYOUR PREVIOUS RESPONSE WAS REJECTED. Invalid fields: "
        f"{', '.join(fields)}.\nFix these constraints:\n{lines}"
    )


def build_quick_summary_prompt(transcript: str) -> str:
    """Free-text summary prompt; no schema attached."""
    return QUICK_SUMMARY_PROMPT.format(transcript=transcript)
