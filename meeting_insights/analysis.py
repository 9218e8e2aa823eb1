"""Meeting analysis engine: prompt, generate, decode, validate, retry."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from meeting_insights.config import AnalysisConfig, FAILURE_POLICIES
from meeting_insights.decoding import decode_response
from meeting_insights.errors import AnalysisError, ProviderError, SchemaError
from meeting_insights.prompts import (
    build_analysis_prompt,
    build_correction_note,
    build_quick_summary_prompt,
)
from meeting_insights.providers import GenerativeProvider
from meeting_insights.schema import AnalysisResult, fallback_result, validate_analysis

logger = logging.getLogger(__name__)

__all__ = ["AnalysisEngine", "AnalysisOutcome", "QUICK_SUMMARY_FAILED"]

QUICK_SUMMARY_FAILED = "Summary generation failed. Please try again."


@dataclass
class AnalysisOutcome:
    """Validated result plus how it was obtained.

    ``is_fallback`` marks placeholder data so consumers can show it as such;
    ``error`` carries the last failure when the fallback was used.
    """

    result: AnalysisResult
    is_fallback: bool = False
    attempts: int = 1
    error: AnalysisError | None = None

    def to_dict(self) -> dict:
        data = self.result.to_dict()
        data["isFallback"] = self.is_fallback
        if self.error is not None:
            data["error"] = self.error.to_dict()
        return data


class AnalysisEngine:
    """Turns a transcript into a schema-validated AnalysisResult.

    Attempts are strictly sequential: each provider call, decode, and schema
    check completes (including the backoff delay) before the next attempt is
    issued. Exhausting the attempt budget either yields the fallback result or
    raises the last AnalysisError, depending on ``failure_policy``.
    """

    def __init__(
        self,
        provider: GenerativeProvider,
        config: AnalysisConfig | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize analysis engine.

        Args:
            provider: Generative provider used for every call
            config: AnalysisConfig with retry and policy settings
            sleep: Awaitable delay used between attempts
        """
        self.provider = provider
        self.config = config or AnalysisConfig()
        self._sleep = sleep

        if self.config.failure_policy not in FAILURE_POLICIES:
            raise ValueError(
                f"failure_policy must be one of {FAILURE_POLICIES}, "
                f"got {self.config.failure_policy!r}"
            )
        if self.config.max_attempts <= 0:
            raise ValueError("max_attempts must be positive")

        logger.info(
            "AnalysisEngine initialized: max_attempts=%d, base_delay=%.1fs, policy=%s",
            self.config.max_attempts,
            self.config.base_delay,
            self.config.failure_policy,
        )

    def backoff_delay(self, attempt: int) -> float:
        """Delay to wait after the given (1-based) failed attempt."""
        return self.config.base_delay * (2 ** (attempt - 1))

    async def analyze(self, transcript: str) -> AnalysisOutcome:
        """Analyze a transcript.

        Args:
            transcript: Raw meeting transcript (length gate is the caller's job)

        Returns:
            AnalysisOutcome with the validated result, or the fallback result
            when the attempt budget is exhausted under the "fallback" policy

        Raises:
            ValueError: If the transcript is empty
            AnalysisError: When attempts are exhausted under the "propagate" policy
        """
        if not transcript or not transcript.strip():
            raise ValueError("transcript must be non-empty")

        max_attempts = self.config.max_attempts
        base_prompt = build_analysis_prompt(transcript)
        prompt = base_prompt
        last_error: AnalysisError | None = None

        logger.info("Starting analysis, transcript length: %d", len(transcript))

        for attempt in range(1, max_attempts + 1):
            try:
                logger.debug("Analysis attempt %d/%d", attempt, max_attempts)
                result = await self._attempt(prompt)
                logger.info("Analysis validated on attempt %d/%d", attempt, max_attempts)
                return AnalysisOutcome(result=result, attempts=attempt)
            except AnalysisError as e:
                last_error = e
                logger.warning(
                    "Analysis attempt %d/%d failed (%s: %s)",
                    attempt,
                    max_attempts,
                    e.kind.value,
                    e,
                )
                if isinstance(e, SchemaError) and self.config.strengthen_prompt:
                    prompt = base_prompt + build_correction_note(e.fields)

            if attempt < max_attempts:
                wait_time = self.backoff_delay(attempt)
                logger.debug("Waiting %.1fs before retry", wait_time)
                await self._sleep(wait_time)

        assert last_error is not None
        last_error.attempts = max_attempts
        logger.error(
            "Analysis failed after %d attempts: %s: %s",
            max_attempts,
            last_error.kind.value,
            last_error,
        )

        if self.config.failure_policy == "propagate":
            raise last_error

        logger.warning("Returning fallback analysis result")
        return AnalysisOutcome(
            result=fallback_result(),
            is_fallback=True,
            attempts=max_attempts,
            error=last_error,
        )

    async def _attempt(self, prompt: str) -> AnalysisResult:
        """One provider call, decoded and passed through the schema gate.

        Raises:
            ProviderError, DecodeError, SchemaError
        """
        text = await self._generate(prompt, json_mode=True)
        logger.debug("Response preview: %s", text[:200])
        data = decode_response(text)
        return validate_analysis(data)

    async def _generate(self, prompt: str, *, json_mode: bool) -> str:
        timeout = self.config.attempt_timeout
        try:
            return await asyncio.wait_for(
                self.provider.generate(
                    prompt,
                    temperature=self.config.temperature,
                    json_mode=json_mode,
                    timeout=timeout,
                ),
                timeout=timeout,
            )
        except ProviderError:
            raise
        except asyncio.TimeoutError as e:
            raise ProviderError(f"Provider call timed out after {timeout} seconds") from e
        except Exception as e:
            raise ProviderError(f"Provider call failed: {e}") from e

    async def quick_summarize(self, transcript: str) -> str:
        """Produce a short free-text summary.

        Single attempt with no schema; any failure yields a user-facing
        placeholder string instead of an exception.
        """
        prompt = build_quick_summary_prompt(transcript)
        try:
            text = await self._generate(prompt, json_mode=False)
        except ProviderError as e:
            logger.warning("Quick summary failed: %s", e)
            return QUICK_SUMMARY_FAILED

        summary = text.strip()
        if not summary:
            logger.warning("Quick summary returned empty text")
            return QUICK_SUMMARY_FAILED
        return summary

    async def shutdown(self) -> None:
        """Shut down the underlying provider."""
        logger.info("AnalysisEngine shutting down")
        await self.provider.shutdown()
