"""Unit tests for candidate deduplication."""

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from tests.factories import create_candidate, create_keyword, create_post
from trendjack_core.domain.models import LeadCandidate
from trendjack_core.domain.services.candidate_filter import FilteredCandidate
from trendjack_core.domain.services.deduplication import CandidateDeduplicator


def candidates_for(keyword, posts):
    return [FilteredCandidate(post=p, keyword=keyword, reasons=["contains_question"]) for p in posts]


class TestCandidateDeduplicator:
    """Tests for CandidateDeduplicator.deduplicate."""

    def test_new_candidates_are_recorded(self, db_session: Session):
        keyword = create_keyword(db_session)
        posts = [create_post(db_session), create_post(db_session)]

        result = CandidateDeduplicator(db_session).deduplicate("user-1", candidates_for(keyword, posts))

        assert [c.post.id for c in result.novel] == [p.id for p in posts]
        assert result.duplicates == 0
        stored = db_session.scalars(select(LeadCandidate).order_by(LeadCandidate.id)).all()
        assert [row.post_id for row in stored] == [p.id for p in posts]
        assert stored[0].reason == "contains_question"

    def test_second_run_drops_everything(self, db_session: Session):
        keyword = create_keyword(db_session)
        posts = [create_post(db_session), create_post(db_session)]
        dedup = CandidateDeduplicator(db_session)

        dedup.deduplicate("user-1", candidates_for(keyword, posts))
        result = dedup.deduplicate("user-1", candidates_for(keyword, posts))

        assert result.novel == []
        assert result.duplicates == 2
        assert result.errors == []
        assert db_session.scalar(select(func.count()).select_from(LeadCandidate)) == 2

    def test_duplicate_in_middle_keeps_order_of_others(self, db_session: Session):
        keyword = create_keyword(db_session)
        posts = [create_post(db_session) for _ in range(3)]
        create_candidate(db_session, keyword, posts[1])
        db_session.commit()

        result = CandidateDeduplicator(db_session).deduplicate("user-1", candidates_for(keyword, posts))

        assert [c.post.id for c in result.novel] == [posts[0].id, posts[2].id]
        assert result.duplicates == 1

    def test_same_post_for_another_keyword_is_new(self, db_session: Session):
        first = create_keyword(db_session, keyword="invoicing")
        second = create_keyword(db_session, keyword="billing")
        post = create_post(db_session)
        dedup = CandidateDeduplicator(db_session)

        dedup.deduplicate("user-1", candidates_for(first, [post]))
        result = dedup.deduplicate("user-1", candidates_for(second, [post]))

        assert len(result.novel) == 1

    def test_empty_input(self, db_session: Session):
        result = CandidateDeduplicator(db_session).deduplicate("user-1", [])

        assert result.novel == []
        assert result.duplicates == 0


class TestCandidateStoreErrors:
    """A non-conflict storage error fails only that candidate."""

    def test_error_recorded_and_rest_of_batch_continues(self, db_session: Session, fail_insert):
        keyword = create_keyword(db_session)
        posts = [create_post(db_session) for _ in range(3)]
        db_session.commit()
        fail_insert(LeadCandidate, posts[1].id)

        result = CandidateDeduplicator(db_session).deduplicate("user-1", candidates_for(keyword, posts))

        assert [c.post.id for c in result.novel] == [posts[0].id, posts[2].id]
        assert result.duplicates == 0
        assert len(result.errors) == 1
        assert result.errors[0].startswith(f"Candidate insert error for post {posts[1].id}:")
        assert "disk I/O error" in result.errors[0]
        stored = db_session.scalars(select(LeadCandidate.post_id).order_by(LeadCandidate.id)).all()
        assert stored == [posts[0].id, posts[2].id]
