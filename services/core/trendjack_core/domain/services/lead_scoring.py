"""AI lead scoring for filtered candidates.

Scores each novel candidate with the completion service and returns:
1. intent_score (0-100) - how clearly the author needs a solution
2. pain_point / suggested_reply - what hurts and what to answer
3. fury fields (optional) - frustration level, trigger and a quote

``LeadScorer`` spends at most the remaining quota, in groups of three
concurrent calls. A failed, timed-out or unparseable call drops that
candidate only; calls are never retried.

Usage:
    agent = LeadScoringAgent(inference_client=client, timeout=45.0)
    scorer = LeadScorer(agent)

    batch = await scorer.score_candidates(
        candidates,
        remaining_quota=limits.remaining_ai_analyses,
        offer_context=offer_context,
        news_context=news_context,
    )
    for scored in batch.scored:
        print(scored.response.intent_score)
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Optional

from trendjack_core.domain.services.candidate_filter import FilteredCandidate
from trendjack_core.domain.services.inference import (
    ChatMessage,
    InferenceClient,
    InferenceError,
)
from trendjack_core.domain.services.response_parser import ResponseParser, ScoredResponse
from trendjack_core.domain.services.usage import UsageReservation
from trendjack_core.observability.metrics import (
    AI_CALL_FAILURES,
    AI_CALL_LATENCY_SECONDS,
    AI_CALLS_MADE,
    get_collector,
)

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================


SCORING_CONCURRENCY = 3
DEFAULT_AI_CALL_TIMEOUT = 45.0

# Post body characters included in the prompt
MAX_PROMPT_BODY_LENGTH = 4000


# =============================================================================
# RESULTS
# =============================================================================


@dataclass
class LeadScoringResult:
    """Result from scoring a single candidate."""

    success: bool
    output: Optional[ScoredResponse] = None
    error: Optional[str] = None
    model_info: Optional[dict] = None
    raw_response: Optional[str] = None

    @classmethod
    def from_error(
        cls,
        error: str,
        model_info: Optional[dict] = None,
        raw_response: Optional[str] = None,
    ) -> "LeadScoringResult":
        return cls(success=False, error=error, model_info=model_info, raw_response=raw_response)


@dataclass
class ScoredCandidate:
    """A candidate together with its validated AI verdict."""

    candidate: FilteredCandidate
    response: ScoredResponse
    model_info: Optional[dict] = None


@dataclass
class ScoreBatchResult:
    """Outcome of scoring one keyword's candidates."""

    scored: list[ScoredCandidate] = field(default_factory=list)
    ai_calls_made: int = 0
    errors: list[str] = field(default_factory=list)


# =============================================================================
# PROMPTS
# =============================================================================


LEAD_SCORING_SYSTEM_PROMPT = """You are a lead analyst for a founder who finds customers in online communities.
You read one community post at a time and judge how likely its author is to want a solution right now.
You MUST respond with a single JSON object and nothing else."""


INTENT_GUIDE = """INTENT SCORE (0-100) based on:
- How clearly they express a problem or need
- How likely they are to be receptive to a solution
- How relevant their problem is to {keyword}
Be strict: only score above 75 when there is clear buying intent or a specific problem to solve."""


FURY_GUIDE = """FURY SCORE (0-100), the pain-to-solution ratio:
- 0-30: mild curiosity, no real frustration
- 30-60: noticeable dissatisfaction, some pain points
- 60-80: high frustration, clear complaints about the current solution
- 80-100: anger, urgency or desperation ("hate", "stuck", "broken", "expensive", "nightmare")
Score high when the author is ready to switch now, not just browsing."""


REPLY_GUIDE = """SUGGESTED REPLY strategy:
1. fury_score above 70: sympathize with the specific pain, mention you found a workaround,
   do not name products or post links, and end by offering to share the steps by DM.
2. fury_score at most 70 and intent_score above 80: give genuinely useful, actionable advice
   with no pitch, so the author wants to follow up.
3. Both low: a short empathetic comment, or exactly "SKIP - Low priority lead".
Never pitch publicly; the goal is for the author to reach out."""


def build_scoring_prompt(
    candidate: FilteredCandidate,
    offer_context: str = "",
    news_context: str = "",
    include_fury: bool = True,
) -> str:
    """Build the user prompt for one candidate.

    Args:
        candidate: Filtered candidate (post plus keyword).
        offer_context: Free-text business description, may be empty.
        news_context: Recent headlines about the keyword, may be empty.
        include_fury: Ask for the fury fields as well.

    Returns:
        Prompt text.
    """
    post = candidate.post
    keyword = candidate.keyword.keyword
    body = (post.body or "")[:MAX_PROMPT_BODY_LENGTH]

    fields = [
        '  "intent_score": <number 0-100>',
        '  "pain_point": "<short summary of the user\'s problem>"',
        '  "suggested_reply": "<the reply text to post>"',
    ]
    if include_fury:
        fields += [
            '  "fury_score": <number 0-100>',
            '  "pain_summary": "<what is causing the frustration>"',
            '  "primary_trigger": "<main frustration trigger>"',
            '  "sample_quote": "<direct quote from the post>"',
        ]

    parts = [
        f'Analyze this community post for buying intent related to "{keyword}".',
        "",
        f"Post Title: {post.title}",
        f"Post Body: {body}",
        f"Community: {post.community}",
        f"Matched because: {candidate.reason_text}",
        "",
        "Return JSON ONLY in this exact format:",
        "{",
        ",\n".join(fields),
        "}",
        "",
        INTENT_GUIDE.format(keyword=keyword),
    ]
    if include_fury:
        parts += ["", FURY_GUIDE]
    parts += ["", REPLY_GUIDE]

    if offer_context:
        parts += ["", "Business context (for reference when crafting the reply):", offer_context]
    if news_context:
        parts += [
            "",
            f'Recent news about "{keyword}" (reference it only if relevant to the problem):',
            news_context,
        ]

    return "\n".join(parts)


# =============================================================================
# AGENT
# =============================================================================


class LeadScoringAgent:
    """Scores a single candidate with one completion call."""

    def __init__(
        self,
        inference_client: InferenceClient,
        parser: Optional[ResponseParser] = None,
        timeout: float = DEFAULT_AI_CALL_TIMEOUT,
        include_fury: bool = True,
    ):
        """Initialize the lead scoring agent.

        Args:
            inference_client: Client for LLM inference
            parser: Response parser (defaults to one matching ``include_fury``)
            timeout: Deadline in seconds for a single call
            include_fury: Request and require the fury fields
        """
        self.inference_client = inference_client
        self.include_fury = include_fury
        self.parser = parser or ResponseParser(require_fury=include_fury)
        self.timeout = timeout

    async def score(
        self,
        candidate: FilteredCandidate,
        offer_context: str = "",
        news_context: str = "",
    ) -> LeadScoringResult:
        """Score a candidate.

        Returns:
            LeadScoringResult with output or error; never raises for
            inference, timeout or parse failures.
        """
        messages = [
            ChatMessage(role="system", content=LEAD_SCORING_SYSTEM_PROMPT),
            ChatMessage(
                role="user",
                content=build_scoring_prompt(
                    candidate, offer_context, news_context, include_fury=self.include_fury
                ),
            ),
        ]

        try:
            response = await asyncio.wait_for(
                self.inference_client.chat(messages), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            return LeadScoringResult.from_error(f"Timed out after {self.timeout:g}s")
        except InferenceError as e:
            return LeadScoringResult.from_error(f"Inference error: {e}")

        model_info = response.model_info.to_dict() if response.model_info else None
        parsed = self.parser.parse(response.content)
        if not parsed.ok:
            return LeadScoringResult.from_error(
                parsed.error, model_info=model_info, raw_response=response.content
            )

        return LeadScoringResult(
            success=True,
            output=parsed.value,
            model_info=model_info,
            raw_response=response.content,
        )


# =============================================================================
# BATCH SCORER
# =============================================================================


class LeadScorer:
    """Bounded-concurrency, quota-respecting scorer for a candidate list."""

    def __init__(self, agent: LeadScoringAgent, concurrency: int = SCORING_CONCURRENCY):
        self.agent = agent
        self.concurrency = max(1, concurrency)
        self.metrics = get_collector()

    async def _score_one(
        self,
        candidate: FilteredCandidate,
        offer_context: str,
        news_context: str,
    ) -> LeadScoringResult:
        started = time.monotonic()
        try:
            return await self.agent.score(candidate, offer_context, news_context)
        finally:
            self.metrics.record_histogram(AI_CALL_LATENCY_SECONDS, time.monotonic() - started)

    async def score_candidates(
        self,
        candidates: list[FilteredCandidate],
        remaining_quota: int,
        offer_context: str = "",
        news_context: str = "",
        reservation: Optional[UsageReservation] = None,
    ) -> ScoreBatchResult:
        """Score candidates in sequential groups of concurrent calls.

        Args:
            candidates: Novel candidates, in priority order.
            remaining_quota: Most calls this batch may make.
            offer_context: Business context shared by every prompt.
            news_context: Recent news shared by every prompt.
            reservation: Optional usage reservation; one unit is acquired
                before each call is issued and released if it fails.

        Returns:
            ScoreBatchResult. ``ai_calls_made`` counts successful calls.
        """
        result = ScoreBatchResult()
        to_score = candidates[: max(0, remaining_quota)]

        for start in range(0, len(to_score), self.concurrency):
            group = to_score[start:start + self.concurrency]

            issued = []
            for candidate in group:
                if reservation is not None and not reservation.acquire():
                    break
                issued.append(candidate)

            if not issued:
                result.errors.append("AI analysis quota exhausted")
                break

            # Every call of the group is created before any is awaited
            outcomes = await asyncio.gather(
                *(self._score_one(c, offer_context, news_context) for c in issued),
                return_exceptions=True,
            )

            for candidate, outcome in zip(issued, outcomes):
                if isinstance(outcome, BaseException):
                    error = f"AI scoring error: {outcome}"
                elif not outcome.success:
                    error = f"AI scoring error: {outcome.error}"
                else:
                    result.scored.append(
                        ScoredCandidate(
                            candidate=candidate,
                            response=outcome.output,
                            model_info=outcome.model_info,
                        )
                    )
                    result.ai_calls_made += 1
                    self.metrics.increment(AI_CALLS_MADE)
                    continue

                logger.warning(f"Post {candidate.post.id}: {error}")
                result.errors.append(error)
                self.metrics.increment(AI_CALL_FAILURES)
                if reservation is not None:
                    reservation.release()

            if len(issued) < len(group):
                result.errors.append("AI analysis quota exhausted")
                break

        return result


# =============================================================================
# EXPORTS
# =============================================================================


__all__ = [
    "LeadScorer",
    "LeadScoringAgent",
    "LeadScoringResult",
    "ScoreBatchResult",
    "ScoredCandidate",
    "build_scoring_prompt",
]
