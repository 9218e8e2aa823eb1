"""Generative text providers used by the analysis engine."""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor

from meeting_insights.errors import ProviderError

logger = logging.getLogger(__name__)

__all__ = ["GenerativeProvider", "GeminiProvider"]


class GenerativeProvider(ABC):
    """Boundary to an external generative-text service.

    Implementations raise ProviderError for every failure so the engine can
    treat them uniformly.
    """

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        *,
        temperature: float = 0.2,
        json_mode: bool = False,
        timeout: float = 60.0,
    ) -> str:
        """Send a prompt and return the response text.

        Raises:
            ProviderError: If the service cannot produce a response
        """
        raise NotImplementedError

    async def shutdown(self) -> None:
        """Release client resources."""


class GeminiProvider(GenerativeProvider):
    """Google Gemini provider via the google-generativeai SDK.

    Runs the blocking SDK call inside a thread pool executor to avoid blocking
    the event loop. Lazy-initializes the model on first request.
    """

    def __init__(
        self,
        api_key: str | None,
        model: str = "gemini-2.0-flash",
        executor: ThreadPoolExecutor | None = None,
    ):
        """Initialize Gemini provider.

        Args:
            api_key: Gemini API key
            model: Gemini model name
            executor: Optional ThreadPoolExecutor for SDK calls
        """
        self.api_key = api_key
        self.model = model
        self.executor = executor or ThreadPoolExecutor(max_workers=1)
        self._executor_owned = executor is None
        self._client = None
        self._genai = None
        self._client_lock = asyncio.Lock()
        logger.info("GeminiProvider initialized: model=%s", model)

    async def _ensure_client_initialized(self) -> None:
        """Lazy-initialize the Gemini model on first use.

        Raises:
            ProviderError: If the API key is missing or the SDK fails to load
        """
        async with self._client_lock:
            if self._client is not None:
                return

            if not self.api_key:
                raise ProviderError(
                    "Gemini API key is missing. Set it in the config file or via "
                    "GEMINI_API_KEY environment variable."
                )

            logger.info("Initializing Gemini client with model: %s", self.model)

            try:
                import google.generativeai as genai

                start_time = time.perf_counter()
                genai.configure(api_key=self.api_key)
                self._client = genai.GenerativeModel(self.model)
                self._genai = genai
                duration = time.perf_counter() - start_time
                logger.info("Gemini client initialized in %.3f seconds", duration)
            except Exception as e:
                logger.error("Failed to initialize Gemini client: %s", e)
                raise ProviderError(f"Failed to initialize Gemini client: {e}") from e

    async def generate(
        self,
        prompt: str,
        *,
        temperature: float = 0.2,
        json_mode: bool = False,
        timeout: float = 60.0,
    ) -> str:
        """Generate content asynchronously.

        Args:
            prompt: Prompt text
            temperature: Sampling temperature
            json_mode: Request application/json output
            timeout: Maximum time in seconds for this call

        Returns:
            Response text

        Raises:
            ProviderError: On SDK failure, empty response, or timeout
        """
        await self._ensure_client_initialized()

        logger.debug(
            "Calling Gemini (model=%s, prompt_chars=%d, json_mode=%s)",
            self.model,
            len(prompt),
            json_mode,
        )

        try:
            text = await asyncio.wait_for(
                asyncio.get_running_loop().run_in_executor(
                    self.executor,
                    self._generate_sync,
                    prompt,
                    temperature,
                    json_mode,
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error("Gemini request timed out after %.1f seconds", timeout)
            raise ProviderError(f"Gemini request timed out after {timeout} seconds") from e

        logger.debug("Gemini response: %d characters", len(text))
        return text

    def _generate_sync(self, prompt: str, temperature: float, json_mode: bool) -> str:
        """Synchronous SDK call (runs in thread pool).

        Raises:
            ProviderError: If the call fails or yields no text
        """
        if self._client is None or self._genai is None:
            raise ProviderError("Gemini client not initialized")

        generation_config = {"temperature": temperature}
        if json_mode:
            generation_config["response_mime_type"] = "application/json"

        try:
            response = self._client.generate_content(
                prompt,
                generation_config=self._genai.GenerationConfig(**generation_config),
            )
        except Exception as e:
            message = str(e)
            if "API key" in message or "API_KEY" in message:
                raise ProviderError("Gemini API key is missing or invalid") from e
            if "429" in message or "quota" in message.lower():
                raise ProviderError("Gemini API rate limit exceeded") from e
            if "404" in message:
                raise ProviderError(f"Gemini model '{self.model}' not found") from e
            raise ProviderError(f"Gemini API error: {e}") from e

        try:
            text = response.text
        except ValueError as e:
            # Raised by the SDK when the candidate was blocked or has no parts
            raise ProviderError(f"Gemini response has no text: {e}") from e

        if not text or not text.strip():
            raise ProviderError("Gemini returned an empty response")
        return text

    async def shutdown(self) -> None:
        """Release client reference and stop the thread pool if owned."""
        logger.info("GeminiProvider shutting down")
        self._client = None
        self._genai = None
        if self._executor_owned and self.executor:
            self.executor.shutdown(wait=True)
            logger.debug("Executor shut down")
