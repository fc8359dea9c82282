"""Unit tests for recovering JSON from model output."""

import pytest

from cre_docs.core.exceptions import ParseError
from cre_docs.utils.json_parser import parse_json


class TestParseJson:
    """Test suite for parse_json."""

    def test_parses_plain_json(self):
        assert parse_json('{"type": "rent_roll", "confidence": 0.9}') == {
            "type": "rent_roll",
            "confidence": 0.9,
        }

    def test_parses_json_fence(self):
        raw = 'Here you go:\n```json\n{"documentType": "offering_memo"}\n```\nThanks'
        assert parse_json(raw) == {"documentType": "offering_memo"}

    def test_parses_untagged_fence(self):
        raw = 'Result:\n```\n{"a": [1, 2, 3]}\n```'
        assert parse_json(raw) == {"a": [1, 2, 3]}

    def test_parses_unclosed_leading_fence(self):
        assert parse_json('```json\n{"a": 1}') == {"a": 1}

    def test_direct_parse_wins_over_fences(self):
        # A valid document that merely contains a fence inside a string
        raw = '{"note": "```json {\\"b\\": 2} ```"}'
        assert parse_json(raw) == {"note": '```json {"b": 2} ```'}

    def test_raises_parse_error_with_prefix(self):
        raw = "I could not read this document. " * 40
        with pytest.raises(ParseError) as exc_info:
            parse_json(raw)

        assert raw[:500] in exc_info.value.message
        assert raw[:501] not in exc_info.value.message
        assert exc_info.value.raw_text == raw

    def test_empty_input_raises(self):
        with pytest.raises(ParseError):
            parse_json("")
