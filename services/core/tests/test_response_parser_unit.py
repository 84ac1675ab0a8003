"""Unit tests for AI response parsing.

Tests cover:
1. Plain JSON, code fences, prose and think blocks
2. Score coercion and range validation
3. Fury field requirements
4. Error results instead of exceptions
"""

import json

import pytest

from tests.factories import verdict_json
from trendjack_core.domain.services.response_parser import (
    EntityListParser,
    ResponseParser,
    extract_json_array,
    extract_json_object,
)


@pytest.fixture
def parser():
    return ResponseParser(require_fury=True)


# =============================================================================
# JSON EXTRACTION
# =============================================================================


class TestExtractJsonObject:
    """Tests for extract_json_object."""

    def test_finds_object_in_prose(self):
        assert extract_json_object('Sure! {"a": 1} hope that helps') == '{"a": 1}'

    def test_nested_objects(self):
        text = 'x {"a": {"b": 2}, "c": 3} y'

        assert json.loads(extract_json_object(text)) == {"a": {"b": 2}, "c": 3}

    def test_braces_inside_strings_are_ignored(self):
        text = '{"reply": "use {name} here", "n": 1}'

        assert extract_json_object(text) == text

    def test_no_object(self):
        assert extract_json_object("no json here") is None

    def test_unbalanced(self):
        assert extract_json_object('{"a": 1') is None


# =============================================================================
# PARSING
# =============================================================================


class TestResponseParser:
    """Tests for ResponseParser.parse."""

    def test_plain_json(self, parser):
        result = parser.parse(verdict_json(intent_score=82))

        assert result.ok is True
        assert result.error is None
        assert result.value.intent_score == 82
        assert result.value.fury_score == 60

    def test_code_fenced_json(self, parser):
        result = parser.parse(f"Here is my analysis:\n```json\n{verdict_json()}\n```")

        assert result.ok is True
        assert result.value.intent_score == 90

    def test_think_block_is_stripped(self, parser):
        text = '<think>The user {maybe} wants help</think>\n' + verdict_json(intent_score=40)

        result = parser.parse(text)

        assert result.ok is True
        assert result.value.intent_score == 40

    def test_json_embedded_in_prose(self, parser):
        result = parser.parse(f"My verdict: {verdict_json()} Let me know.")

        assert result.ok is True

    def test_float_and_string_scores_are_rounded(self, parser):
        result = parser.parse(verdict_json(intent_score=74.6, fury_score="33"))

        assert result.value.intent_score == 75
        assert result.value.fury_score == 33

    def test_out_of_range_score_is_error(self, parser):
        result = parser.parse(verdict_json(intent_score=150))

        assert result.ok is False
        assert result.value is None
        assert result.error.startswith("Validation error")

    def test_missing_required_field_is_error(self, parser):
        data = json.loads(verdict_json())
        del data["suggested_reply"]

        result = parser.parse(json.dumps(data))

        assert result.ok is False
        assert "Validation error" in result.error

    def test_missing_fury_fields_is_error_when_required(self, parser):
        data = json.loads(verdict_json())
        del data["fury_score"]
        del data["sample_quote"]

        result = parser.parse(json.dumps(data))

        assert result.ok is False
        assert result.error == "Missing fury fields: fury_score, sample_quote"

    def test_missing_fury_fields_allowed_when_not_required(self):
        payload = json.dumps({
            "intent_score": 80,
            "pain_point": "Slow invoices",
            "suggested_reply": "Try batching.",
        })

        result = ResponseParser(require_fury=False).parse(payload)

        assert result.ok is True
        assert result.value.fury_score is None

    @pytest.mark.parametrize("text", ["", "   ", None])
    def test_empty_response(self, parser, text):
        result = parser.parse(text)

        assert result.ok is False
        assert result.error == "Empty response"

    def test_non_json_response(self, parser):
        result = parser.parse("I cannot help with that.")

        assert result.ok is False
        assert result.error.startswith("Invalid JSON response")

    def test_json_array_is_rejected(self, parser):
        result = parser.parse("[1, 2, 3]")

        assert result.ok is False


class TestEntityListParser:
    """Tests for parsing entity extraction responses."""

    def test_array_wrapped_in_prose(self):
        text = (
            "Here are the entities:\n"
            '[{"entity": " Cursor AI ", "category": "SaaS", "confidence": 0.95}, '
            '{"entity": "Ozempic", "category": "Health", "confidence": 0.8}]\n'
            "Let me know if you need more."
        )

        result = EntityListParser().parse(text)

        assert result.ok is True
        assert [e.entity for e in result.entities] == ["Cursor AI", "Ozempic"]
        assert result.dropped == 0

    def test_low_confidence_and_invalid_items_are_dropped(self):
        text = json.dumps([
            {"entity": "Cursor AI", "category": "SaaS", "confidence": 0.9},
            {"entity": "review", "category": "Misc", "confidence": 0.6},
            {"entity": "", "category": "Tech", "confidence": 0.9},
            {"entity": "Linear", "confidence": 0.9},
            "Notion",
        ])

        result = EntityListParser(min_confidence=0.6).parse(text)

        assert result.ok is True
        assert [e.entity for e in result.entities] == ["Cursor AI"]
        assert result.dropped == 4

    def test_fenced_array_after_think_block(self):
        text = (
            "<think>[not this]</think>\n"
            '```json\n[{"entity": "Stripe", "category": "Finance", "confidence": 0.7}]\n```'
        )

        result = EntityListParser().parse(text)

        assert [e.entity for e in result.entities] == ["Stripe"]

    def test_no_array_is_an_error(self):
        result = EntityListParser().parse('{"entity": "Stripe"}')

        assert result.ok is False
        assert result.error.startswith("Invalid JSON response")

    def test_empty_array_is_ok(self):
        result = EntityListParser().parse("[]")

        assert result.ok is True
        assert result.entities == []

    def test_extract_json_array_ignores_brackets_in_strings(self):
        text = 'x ["a]b", ["c"]] y'

        assert extract_json_array(text) == '["a]b", ["c"]]'
