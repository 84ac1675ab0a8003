"""Parsing of free-form AI scoring and entity extraction responses.

Models wrap the JSON in prose, markdown code fences or reasoning
``<think>`` blocks. The parsers locate the first balanced JSON object
(or array, for entity lists), validate it with pydantic and return a
tagged result instead of raising.

Usage:
    parser = ResponseParser(require_fury=True)
    result = parser.parse(response.content)
    if result.ok:
        print(result.value.intent_score)
    else:
        print(result.error)
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator


THINK_BLOCK_RE = re.compile(r"<think>.*?</think>", re.DOTALL | re.IGNORECASE)
CODE_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)

FURY_FIELDS = ("fury_score", "pain_summary", "primary_trigger", "sample_quote")


# =============================================================================
# OUTPUT SCHEMA
# =============================================================================


class ScoredResponse(BaseModel):
    """Structured verdict returned by the scoring model."""

    intent_score: int = Field(..., ge=0, le=100, description="Buying intent 0-100")
    pain_point: str = Field(..., description="Short summary of the user's problem")
    suggested_reply: str = Field(..., description="Reply text to post")
    fury_score: Optional[int] = Field(default=None, ge=0, le=100, description="Frustration 0-100")
    pain_summary: Optional[str] = None
    primary_trigger: Optional[str] = None
    sample_quote: Optional[str] = None

    @field_validator("intent_score", "fury_score", mode="before")
    @classmethod
    def round_numeric_scores(cls, v: Any) -> Any:
        # Models sometimes answer 82.5 or "82"
        if isinstance(v, bool):
            return v
        if isinstance(v, float):
            return round(v)
        if isinstance(v, str):
            try:
                return round(float(v.strip()))
            except ValueError:
                return v
        return v


class ExtractedEntity(BaseModel):
    """One entity named by the extraction model."""

    entity: str = Field(..., min_length=1, max_length=255)
    category: str = Field(..., min_length=1, max_length=64)
    confidence: float = Field(..., ge=0.0, le=1.0)

    @field_validator("entity", "category", mode="before")
    @classmethod
    def strip_text(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v


# =============================================================================
# RESULT
# =============================================================================


@dataclass
class ParseResult:
    """Either a validated response or an error message, never both."""

    ok: bool
    value: Optional[ScoredResponse] = None
    error: Optional[str] = None

    @classmethod
    def success(cls, value: ScoredResponse) -> "ParseResult":
        return cls(ok=True, value=value)

    @classmethod
    def from_error(cls, error: str) -> "ParseResult":
        return cls(ok=False, error=error)


@dataclass
class EntityListResult:
    """Entities kept from one extraction response."""

    ok: bool
    entities: list[ExtractedEntity] = field(default_factory=list)
    dropped: int = 0
    error: Optional[str] = None


# =============================================================================
# PARSER
# =============================================================================


def _extract_balanced(text: str, opener: str, closer: str) -> Optional[str]:
    start = text.find(opener)
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for index in range(start, len(text)):
            char = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == opener:
                depth += 1
            elif char == closer:
                depth -= 1
                if depth == 0:
                    return text[start:index + 1]
        # Unbalanced from this opener; try the next one
        start = text.find(opener, start + 1)
    return None


def candidate_texts(text: str) -> list[str]:
    """Fenced blocks first, then the whole text, with think blocks removed."""
    cleaned = THINK_BLOCK_RE.sub("", text).strip()
    candidates = [match.strip() for match in CODE_FENCE_RE.findall(cleaned)]
    candidates.append(cleaned)
    return candidates


def extract_json_object(text: str) -> Optional[str]:
    """Return the first balanced ``{...}`` substring of ``text``.

    Braces inside JSON string literals are ignored.
    """
    return _extract_balanced(text, "{", "}")


def extract_json_array(text: str) -> Optional[str]:
    """Return the first balanced ``[...]`` substring of ``text``."""
    return _extract_balanced(text, "[", "]")


class ResponseParser:
    """Turns raw completion text into a ``ParseResult``."""

    def __init__(self, require_fury: bool = True):
        """Initialize the parser.

        Args:
            require_fury: Treat missing fury fields as a parse failure.
        """
        self.require_fury = require_fury

    def _load(self, text: str) -> Optional[dict]:
        for candidate in candidate_texts(text):
            for payload in (candidate, extract_json_object(candidate)):
                if not payload:
                    continue
                try:
                    data = json.loads(payload)
                except json.JSONDecodeError:
                    continue
                if isinstance(data, dict):
                    return data
        return None

    def parse(self, text: Optional[str]) -> ParseResult:
        """Parse and validate a completion.

        Args:
            text: Raw completion content.

        Returns:
            ParseResult tagged ok or error.
        """
        if not text or not text.strip():
            return ParseResult.from_error("Empty response")

        data = self._load(text)
        if data is None:
            return ParseResult.from_error("Invalid JSON response: no JSON object found")

        try:
            value = ScoredResponse.model_validate(data)
        except ValidationError as e:
            return ParseResult.from_error(f"Validation error: {e.error_count()} invalid field(s): {e}")

        if self.require_fury:
            missing = [name for name in FURY_FIELDS if getattr(value, name) is None]
            if missing:
                return ParseResult.from_error(f"Missing fury fields: {', '.join(missing)}")

        return ParseResult.success(value)


class EntityListParser:
    """Turns an extraction completion into validated entities.

    Items that fail validation or sit at or below ``min_confidence`` are
    dropped and counted; only a missing array fails the whole response.
    """

    def __init__(self, min_confidence: float = 0.6):
        self.min_confidence = min_confidence

    def _load(self, text: str) -> Optional[list]:
        for candidate in candidate_texts(text):
            for payload in (candidate, extract_json_array(candidate)):
                if not payload:
                    continue
                try:
                    data = json.loads(payload)
                except json.JSONDecodeError:
                    continue
                if isinstance(data, list):
                    return data
        return None

    def parse(self, text: Optional[str]) -> EntityListResult:
        if not text or not text.strip():
            return EntityListResult(ok=False, error="Empty response")

        items = self._load(text)
        if items is None:
            return EntityListResult(ok=False, error="Invalid JSON response: no JSON array found")

        result = EntityListResult(ok=True)
        for item in items:
            if not isinstance(item, dict):
                result.dropped += 1
                continue
            try:
                entity = ExtractedEntity.model_validate(item)
            except ValidationError:
                result.dropped += 1
                continue
            if entity.confidence <= self.min_confidence:
                result.dropped += 1
                continue
            result.entities.append(entity)
        return result


__all__ = [
    "EntityListParser",
    "EntityListResult",
    "ExtractedEntity",
    "ParseResult",
    "ResponseParser",
    "ScoredResponse",
    "candidate_texts",
    "extract_json_array",
    "extract_json_object",
]
