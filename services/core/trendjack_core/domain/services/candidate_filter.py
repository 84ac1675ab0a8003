"""Cheap lexical gate in front of AI scoring.

A post becomes a candidate when at least one reason matches: a question
mark in the title or body, a known intent phrase, or a help/question/advice
flair. Nothing here touches the network.
"""

from dataclasses import dataclass, field
from typing import Iterable

from trendjack_core.domain.models import MonitoredKeyword, RawPost


INTENT_PHRASES = [
    "looking for",
    "recommend",
    "anyone used",
    "suggestions",
    "advice",
    "help me",
    "what should",
    "how do i",
    "best way",
    "need help",
    "any tips",
    "struggling with",
]

HELP_FLAIR_WORDS = ("help", "question", "advice")

REASON_QUESTION = "contains_question"
REASON_INTENT_PREFIX = "intent_phrases: "
REASON_HELP_FLAIR = "help_question_flair"
REASON_SEPARATOR = "; "


@dataclass
class FilteredCandidate:
    """A post that passed the lexical gate for one keyword."""

    post: RawPost
    keyword: MonitoredKeyword
    reasons: list[str] = field(default_factory=list)

    @property
    def reason_text(self) -> str:
        return REASON_SEPARATOR.join(self.reasons)


def detect_reasons(post: RawPost) -> list[str]:
    """Return every lexical reason the post matches, in a stable order."""
    title = post.title or ""
    body = post.body or ""
    reasons = []

    if "?" in title or "?" in body:
        reasons.append(REASON_QUESTION)

    combined = f"{title} {body}".lower()
    matched = [phrase for phrase in INTENT_PHRASES if phrase in combined]
    if matched:
        reasons.append(REASON_INTENT_PREFIX + ", ".join(matched))

    if post.flair:
        flair = post.flair.lower()
        if any(word in flair for word in HELP_FLAIR_WORDS):
            reasons.append(REASON_HELP_FLAIR)

    return reasons


def filter_posts(
    posts: Iterable[RawPost],
    keyword: MonitoredKeyword,
) -> list[FilteredCandidate]:
    """Keep posts with at least one reason, preserving input order."""
    candidates = []
    for post in posts:
        reasons = detect_reasons(post)
        if reasons:
            candidates.append(FilteredCandidate(post=post, keyword=keyword, reasons=reasons))
    return candidates


__all__ = [
    "INTENT_PHRASES",
    "FilteredCandidate",
    "detect_reasons",
    "filter_posts",
]
