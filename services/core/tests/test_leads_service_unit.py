"""Unit tests for lead persistence."""

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from tests.factories import create_keyword, create_lead, create_post
from trendjack_core.domain.models import Lead, LeadStatus
from trendjack_core.domain.services.candidate_filter import FilteredCandidate
from trendjack_core.domain.services.lead_scoring import ScoredCandidate
from trendjack_core.domain.services.leads import ERROR_LEADS_LIMIT, LeadsService, quadrant_label
from trendjack_core.domain.services.response_parser import ScoredResponse


def scored(keyword, post, intent_score=90, fury_score=60, model_info=None):
    response = ScoredResponse(
        intent_score=intent_score,
        pain_point="Manual invoicing",
        suggested_reply="Happy to share what worked for us.",
        fury_score=fury_score,
        pain_summary="Slow tooling",
        primary_trigger="time",
        sample_quote="this is killing me",
    )
    candidate = FilteredCandidate(post=post, keyword=keyword, reasons=["contains_question"])
    return ScoredCandidate(candidate=candidate, response=response, model_info=model_info)


def lead_count(db_session):
    return db_session.scalar(select(func.count()).select_from(Lead))


class TestQuadrantLabel:
    """Tests for the intent/fury matrix."""

    @pytest.mark.parametrize(
        "intent,fury,expected",
        [
            (90, 80, "RED ZONE"),
            (90, 10, "High Intent"),
            (60, 75, "High Fury"),
            (80, 74, "Standard"),
        ],
    )
    def test_quadrants(self, intent, fury, expected):
        assert quadrant_label(intent, fury) == expected


class TestPersistScored:
    """Tests for LeadsService.persist_scored."""

    def test_threshold_is_inclusive(self, db_session: Session):
        keyword = create_keyword(db_session)
        low_post = create_post(db_session)
        edge_post = create_post(db_session)

        result = LeadsService(db_session).persist_scored(
            "user-1",
            [scored(keyword, low_post, intent_score=74), scored(keyword, edge_post, intent_score=75)],
            threshold=75,
        )

        assert [lead.post_id for lead in result.created] == [edge_post.id]
        assert result.below_threshold == 1
        assert lead_count(db_session) == 1

    def test_lead_fields(self, db_session: Session):
        keyword = create_keyword(db_session)
        post = create_post(db_session)

        result = LeadsService(db_session).persist_scored(
            "user-1", [scored(keyword, post, intent_score=90, fury_score=80, model_info={"model_name": "m"})]
        )

        lead = result.created[0]
        assert lead.user_id == "user-1"
        assert lead.keyword_id == keyword.id
        assert lead.status == LeadStatus.NEW
        assert lead.fury_score == 80
        assert lead.sample_quote == "this is killing me"
        assert lead.ai_analysis["quadrant"] == "RED ZONE"
        assert lead.ai_analysis["reasons"] == ["contains_question"]
        assert lead.ai_analysis["model_info"] == {"model_name": "m"}

    def test_missing_fury_defaults_to_zero(self, db_session: Session):
        keyword = create_keyword(db_session)
        post = create_post(db_session)
        item = scored(keyword, post)
        item.response.fury_score = None
        item.response.sample_quote = None

        lead = LeadsService(db_session).persist_scored("user-1", [item]).created[0]

        assert lead.fury_score == 0
        assert lead.sample_quote == ""

    def test_existing_lead_is_skipped(self, db_session: Session):
        keyword = create_keyword(db_session)
        post = create_post(db_session)
        create_lead(db_session, keyword, post)
        db_session.commit()

        result = LeadsService(db_session).persist_scored("user-1", [scored(keyword, post)])

        assert result.created == []
        assert result.skipped_existing == 1
        assert lead_count(db_session) == 1

    def test_same_post_twice_in_batch_creates_one_lead(self, db_session: Session):
        keyword = create_keyword(db_session)
        other_keyword = create_keyword(db_session, keyword="billing")
        post = create_post(db_session)

        result = LeadsService(db_session).persist_scored(
            "user-1", [scored(keyword, post), scored(other_keyword, post)]
        )

        assert len(result.created) == 1
        assert result.skipped_existing == 1

    def test_get_lead(self, db_session: Session):
        keyword = create_keyword(db_session)
        post = create_post(db_session)
        created = create_lead(db_session, keyword, post)
        service = LeadsService(db_session)

        assert service.get_lead("user-1", post.id).id == created.id
        assert service.get_lead("user-2", post.id) is None


class FakeReservation:
    """Lead-quota handle with a fixed number of units."""

    def __init__(self, available):
        self.available = available
        self.acquired = 0
        self.released = 0

    def acquire(self):
        if self.acquired - self.released >= self.available:
            return False
        self.acquired += 1
        return True

    def release(self):
        self.released += 1


class TestLeadQuota:
    """Tests for persist_scored with a lead-quota reservation."""

    def test_stops_when_quota_refused(self, db_session: Session):
        keyword = create_keyword(db_session)
        posts = [create_post(db_session) for _ in range(3)]
        reservation = FakeReservation(available=1)

        result = LeadsService(db_session).persist_scored(
            "user-1", [scored(keyword, p) for p in posts], reservation=reservation
        )

        assert [lead.post_id for lead in result.created] == [posts[0].id]
        assert result.errors == [ERROR_LEADS_LIMIT]
        assert reservation.acquired == 1
        assert lead_count(db_session) == 1

    def test_no_unit_spent_below_threshold_or_on_existing_lead(self, db_session: Session):
        keyword = create_keyword(db_session)
        existing = create_post(db_session)
        low = create_post(db_session)
        create_lead(db_session, keyword, existing)
        db_session.commit()
        reservation = FakeReservation(available=5)

        LeadsService(db_session).persist_scored(
            "user-1",
            [scored(keyword, existing), scored(keyword, low, intent_score=40)],
            reservation=reservation,
        )

        assert reservation.acquired == 0

    def test_unit_released_when_insert_fails(self, db_session: Session, fail_insert):
        keyword = create_keyword(db_session)
        bad, good = create_post(db_session), create_post(db_session)
        db_session.commit()
        fail_insert(Lead, bad.id)
        reservation = FakeReservation(available=5)

        result = LeadsService(db_session).persist_scored(
            "user-1", [scored(keyword, bad), scored(keyword, good)], reservation=reservation
        )

        assert [lead.post_id for lead in result.created] == [good.id]
        assert reservation.acquired == 2
        assert reservation.released == 1


class TestLeadInsertErrors:
    """A storage error fails only the lead being inserted."""

    def test_other_leads_still_created(self, db_session: Session, fail_insert):
        keyword = create_keyword(db_session)
        posts = [create_post(db_session) for _ in range(3)]
        db_session.commit()
        fail_insert(Lead, posts[1].id)

        result = LeadsService(db_session).persist_scored("user-1", [scored(keyword, p) for p in posts])

        assert [lead.post_id for lead in result.created] == [posts[0].id, posts[2].id]
        assert len(result.errors) == 1
        assert result.errors[0].startswith(f"Lead insert error for post {posts[1].id}:")
        assert "disk I/O error" in result.errors[0]
        assert lead_count(db_session) == 2
