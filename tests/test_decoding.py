"""Tests for the response decode pipeline."""

import pytest

from meeting_insights.decoding import (
    decode_response,
    extract_balanced_object,
    extract_fenced_block,
    parse_direct,
)
from meeting_insights.errors import AnalysisErrorKind, DecodeError


class TestParseDirect:
    """Tests for the direct parse stage."""

    def test_valid_json(self):
        """Test plain JSON decodes directly."""
        assert parse_direct('{"a": 1}') == {"a": 1}

    def test_surrounding_whitespace(self):
        """Test whitespace around JSON is tolerated."""
        assert parse_direct('\n  {"a": [1, 2]}  \n') == {"a": [1, 2]}

    def test_invalid_json(self):
        """Test non-JSON returns None."""
        assert parse_direct("Here is your analysis") is None


class TestExtractFencedBlock:
    """Tests for markdown fence extraction."""

    def test_json_fence(self):
        """Test ```json fences are unwrapped."""
        text = 'Sure!\n```json\n{"a": 1}\n```\nAnything else?'
        assert extract_fenced_block(text) == '{"a": 1}'

    def test_bare_fence(self):
        """Test fences without a language tag are unwrapped."""
        assert extract_fenced_block('```\n{"a": 1}\n```') == '{"a": 1}'

    def test_first_fence_wins(self):
        """Test only the first fenced block is returned."""
        text = '```json\n{"a": 1}\n```\n```json\n{"b": 2}\n```'
        assert extract_fenced_block(text) == '{"a": 1}'

    def test_no_fence(self):
        """Test text without fences returns None."""
        assert extract_fenced_block('{"a": 1}') is None

    def test_empty_fence(self):
        """Test an empty fence returns None."""
        assert extract_fenced_block("```json\n```") is None


class TestExtractBalancedObject:
    """Tests for the balanced-brace scan."""

    def test_object_in_prose(self):
        """Test the object is cut out of surrounding prose."""
        text = 'Result: {"a": {"b": 2}} -- hope this helps'
        assert extract_balanced_object(text) == '{"a": {"b": 2}}'

    def test_braces_inside_strings(self):
        """Test braces in string literals do not affect depth."""
        text = 'x {"a": "}{", "b": "\\"}"} y'
        assert extract_balanced_object(text) == '{"a": "}{", "b": "\\"}"}'

    def test_unclosed_candidate_skipped(self):
        """Test scanning restarts after an unbalanced opening brace."""
        text = 'oops { never closed {"a": 1}'
        assert extract_balanced_object(text) == '{"a": 1}'

    def test_no_object(self):
        """Test text without braces returns None."""
        assert extract_balanced_object("no json here") is None

    def test_truncated_object(self):
        """Test a truncated response yields None."""
        assert extract_balanced_object('{"summary": {"executive": "cut') is None


class TestDecodeResponse:
    """Tests for the ordered pipeline."""

    def test_direct(self):
        """Test direct JSON short-circuits the pipeline."""
        assert decode_response('{"a": 1}') == {"a": 1}

    def test_fenced(self):
        """Test fenced JSON is recovered."""
        assert decode_response('```json\n{"a": 1}\n```') == {"a": 1}

    def test_fenced_with_prose_inside(self):
        """Test a fence holding prose plus JSON falls through to the brace scan."""
        assert decode_response('```json\nResult: {"a": 1}\n```') == {"a": 1}

    def test_prose_wrapped(self):
        """Test JSON embedded in prose is recovered."""
        assert decode_response('Here you go: {"a": 1}. Done.') == {"a": 1}

    def test_no_json_raises(self):
        """Test text with no JSON span raises DecodeError."""
        with pytest.raises(DecodeError) as exc_info:
            decode_response("I cannot help with that.")
        assert exc_info.value.kind is AnalysisErrorKind.DECODE_ERROR

    def test_empty_raises(self):
        """Test empty text raises DecodeError."""
        with pytest.raises(DecodeError):
            decode_response("   ")

    def test_truncated_raises(self):
        """Test truncated JSON raises DecodeError."""
        with pytest.raises(DecodeError):
            decode_response('{"summary": {"executive": "The team')
