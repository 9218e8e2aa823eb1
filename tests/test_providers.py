"""Tests for the Gemini provider."""

import sys
import time
from unittest.mock import MagicMock, patch

import pytest

from meeting_insights.errors import AnalysisErrorKind, ProviderError
from meeting_insights.providers import GeminiProvider


class _BlockedResponse:
    """Response whose text accessor fails like a safety-blocked candidate."""

    @property
    def text(self):
        raise ValueError("blocked")


@pytest.fixture
def fake_genai():
    """Stand-in for the google.generativeai module."""
    genai = MagicMock()
    model = MagicMock()
    model.generate_content.return_value = MagicMock(text='{"ok": true}')
    genai.GenerativeModel.return_value = model
    genai.GenerationConfig.side_effect = lambda **kwargs: kwargs
    return genai


@pytest.fixture
def patched_sdk(fake_genai):
    """Install fake_genai as google.generativeai for lazy imports."""
    google_pkg = MagicMock()
    google_pkg.generativeai = fake_genai
    with patch.dict(sys.modules, {"google": google_pkg, "google.generativeai": fake_genai}):
        yield fake_genai


class TestGeminiClientInit:
    """Tests for lazy client initialization."""

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        """Test a missing key fails as a provider error."""
        provider = GeminiProvider(api_key=None)
        with pytest.raises(ProviderError, match="API key is missing") as exc_info:
            await provider.generate("hello")
        assert exc_info.value.kind is AnalysisErrorKind.PROVIDER_ERROR
        await provider.shutdown()

    @pytest.mark.asyncio
    async def test_client_initialized_once(self, patched_sdk):
        """Test the SDK is configured once across calls."""
        provider = GeminiProvider(api_key="key", model="gemini-test")

        await provider.generate("one")
        await provider.generate("two")

        patched_sdk.configure.assert_called_once_with(api_key="key")
        patched_sdk.GenerativeModel.assert_called_once_with("gemini-test")
        await provider.shutdown()


class TestGeminiGenerate:
    """Tests for content generation."""

    @pytest.mark.asyncio
    async def test_json_mode_requests_json_mime_type(self, patched_sdk):
        """Test JSON mode sets response_mime_type and temperature."""
        provider = GeminiProvider(api_key="key")

        text = await provider.generate("prompt", temperature=0.1, json_mode=True)

        assert text == '{"ok": true}'
        model = patched_sdk.GenerativeModel.return_value
        _, kwargs = model.generate_content.call_args
        assert kwargs["generation_config"] == {
            "temperature": 0.1,
            "response_mime_type": "application/json",
        }
        await provider.shutdown()

    @pytest.mark.asyncio
    async def test_text_mode_has_no_mime_type(self, patched_sdk):
        """Test free-text mode leaves the mime type unset."""
        provider = GeminiProvider(api_key="key")
        await provider.generate("prompt")
        _, kwargs = patched_sdk.GenerativeModel.return_value.generate_content.call_args
        assert "response_mime_type" not in kwargs["generation_config"]
        await provider.shutdown()

    @pytest.mark.asyncio
    async def test_sdk_error_wrapped(self, patched_sdk):
        """Test SDK exceptions become ProviderError."""
        patched_sdk.GenerativeModel.return_value.generate_content.side_effect = RuntimeError(
            "boom"
        )
        provider = GeminiProvider(api_key="key")
        with pytest.raises(ProviderError, match="Gemini API error"):
            await provider.generate("prompt")
        await provider.shutdown()

    @pytest.mark.asyncio
    async def test_rate_limit_message(self, patched_sdk):
        """Test 429 responses are reported as rate limiting."""
        patched_sdk.GenerativeModel.return_value.generate_content.side_effect = RuntimeError(
            "429 Resource has been exhausted"
        )
        provider = GeminiProvider(api_key="key")
        with pytest.raises(ProviderError, match="rate limit"):
            await provider.generate("prompt")
        await provider.shutdown()

    @pytest.mark.asyncio
    async def test_blocked_response(self, patched_sdk):
        """Test a response without text parts is a provider error."""
        patched_sdk.GenerativeModel.return_value.generate_content.return_value = (
            _BlockedResponse()
        )
        provider = GeminiProvider(api_key="key")
        with pytest.raises(ProviderError, match="no text"):
            await provider.generate("prompt")
        await provider.shutdown()

    @pytest.mark.asyncio
    async def test_empty_response(self, patched_sdk):
        """Test a blank response is a provider error."""
        patched_sdk.GenerativeModel.return_value.generate_content.return_value = MagicMock(
            text="  "
        )
        provider = GeminiProvider(api_key="key")
        with pytest.raises(ProviderError, match="empty"):
            await provider.generate("prompt")
        await provider.shutdown()

    @pytest.mark.asyncio
    async def test_timeout(self, patched_sdk):
        """Test a slow SDK call is cut off by the timeout."""
        patched_sdk.GenerativeModel.return_value.generate_content.side_effect = (
            lambda *args, **kwargs: time.sleep(0.2)
        )
        provider = GeminiProvider(api_key="key")
        with pytest.raises(ProviderError, match="timed out"):
            await provider.generate("prompt", timeout=0.01)
        await provider.shutdown()


class TestGeminiShutdown:
    """Tests for provider shutdown."""

    @pytest.mark.asyncio
    async def test_shared_executor_not_shut_down(self):
        """Test an injected executor is left running."""
        executor = MagicMock()
        provider = GeminiProvider(api_key="key", executor=executor)
        await provider.shutdown()
        executor.shutdown.assert_not_called()
