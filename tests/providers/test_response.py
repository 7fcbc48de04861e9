"""Tests for providers/response.py structured output parsing."""

from __future__ import annotations

import pytest

from coderecall.providers.response import (
    FallbackText,
    ParsedResponse,
    expect_object,
    parse_structured_response,
)


class TestParseStructuredResponse:
    """Recovering JSON from loosely structured text."""

    def test_plain_json(self) -> None:
        result = parse_structured_response('{"summary": "ok"}')

        assert isinstance(result, ParsedResponse)
        assert result.data == {"summary": "ok"}

    def test_fenced_block(self) -> None:
        text = 'Here you go:\n```json\n{"complexity": "low"}\n```\nHope that helps.'

        result = parse_structured_response(text)

        assert isinstance(result, ParsedResponse)
        assert result.data == {"complexity": "low"}
        assert result.raw == text

    def test_object_embedded_in_prose(self) -> None:
        text = 'The answer is {"a": [1, 2], "b": "}"} as requested.'

        result = parse_structured_response(text)

        assert isinstance(result, ParsedResponse)
        assert result.data == {"a": [1, 2], "b": "}"}

    def test_array_before_object_wins(self) -> None:
        result = parse_structured_response('Items: [1, {"x": 2}] end')

        assert isinstance(result, ParsedResponse)
        assert result.data == [1, {"x": 2}]

    @pytest.mark.parametrize("text", ["", "   ", "\n"])
    def test_empty_falls_back(self, text: str) -> None:
        result = parse_structured_response(text)

        assert isinstance(result, FallbackText)
        assert result.reason == "empty response"

    def test_prose_falls_back_with_text_kept(self) -> None:
        text = "This function validates the token and returns the user."

        result = parse_structured_response(text)

        assert isinstance(result, FallbackText)
        assert result.text == text

    def test_broken_json_falls_back(self) -> None:
        assert isinstance(parse_structured_response('{"a": 1,,}'), FallbackText)


class TestExpectObject:
    """Shape checks on parsed values."""

    def test_object_with_keys_passes(self) -> None:
        parsed = parse_structured_response('{"summary": "s", "details": "d"}')

        assert expect_object(parsed, "summary", "details") is parsed

    def test_missing_keys_downgrade(self) -> None:
        result = expect_object(parse_structured_response('{"summary": "s"}'), "summary", "details")

        assert isinstance(result, FallbackText)
        assert "details" in result.reason

    def test_non_object_downgrades(self) -> None:
        assert isinstance(expect_object(parse_structured_response("[1, 2]")), FallbackText)

    def test_fallback_passes_through(self) -> None:
        fallback = FallbackText(text="x", reason="no JSON value found")

        assert expect_object(fallback, "a") is fallback
