"""Unit tests for entity trend analysis."""

from datetime import date, timedelta

import pytest
from sqlalchemy.orm import Session

from tests.factories import create_entity, create_mentions
from trendjack_core.domain.services.entity_analysis import (
    EntityAnalysisService,
    daily_series,
    historical_z_score,
)


# 30 days alternating 1/3 (mean 2, std 1) then a 20-mention day
SPIKE = [1, 3] * 15 + [20]


class TestDailySeries:
    """Tests for the zero-filled daily series."""

    def test_has_thirty_one_days_ending_today(self):
        today = date(2026, 3, 15)

        series = daily_series({today: 4, today - timedelta(days=2): 1}, today)

        assert len(series) == 31
        assert series[0] == (date(2026, 2, 13), 0)
        assert series[-1] == (today, 4)
        assert series[-3] == (today - timedelta(days=2), 1)
        assert series[-2][1] == 0


class TestHistoricalZScore:
    def test_needs_two_history_points(self):
        assert historical_z_score(10, [3]) == 0.0

    def test_flat_history(self):
        assert historical_z_score(10, [2, 2, 2]) == 0.0

    def test_z_score(self):
        assert historical_z_score(20, [1, 3] * 15) == pytest.approx(18.0)


class TestAnalyzeEntity:
    """Tests for analyze_entity and run."""

    def test_spike_is_exploding(self, db_session: Session, fixed_now):
        entity = create_entity(db_session)
        create_mentions(db_session, entity, SPIKE, end=fixed_now.date())
        db_session.commit()

        result = EntityAnalysisService(db_session).run(now=fixed_now)

        assert result.success is True
        assert result.analyzed == 1
        summary = result.results[0]
        assert summary["volume_24h"] == 20
        assert summary["volume_7d"] == 32
        assert summary["volume_30d"] == 80
        assert summary["z_score"] == 18.0
        assert summary["trend_status"] == "Exploding"
        assert summary["momentum_signal"] == "Pre-Explosion"
        assert summary["prediction_label"] == "IMMINENT BREAKOUT"

        db_session.refresh(entity)
        assert entity.trend_status == "Exploding"
        assert entity.volume_24h == 20
        assert entity.last_analyzed_at == fixed_now

    def test_sources_are_summed_per_day(self, db_session: Session, fixed_now):
        entity = create_entity(db_session)
        create_mentions(db_session, entity, [2, 2], end=fixed_now.date(), source="news")
        create_mentions(db_session, entity, [1, 3], end=fixed_now.date(), source="posts")
        db_session.commit()

        summary = EntityAnalysisService(db_session).run(now=fixed_now).results[0]

        assert summary["volume_24h"] == 5
        assert summary["volume_30d"] == 8

    def test_low_volume_is_new(self, db_session: Session, fixed_now):
        entity = create_entity(db_session)
        create_mentions(db_session, entity, [1, 1, 2], end=fixed_now.date())
        db_session.commit()

        summary = EntityAnalysisService(db_session).run(now=fixed_now).results[0]

        assert summary["trend_status"] == "New"

    def test_entity_without_mentions_is_stamped_but_not_reported(self, db_session: Session, fixed_now):
        entity = create_entity(db_session)
        db_session.commit()

        result = EntityAnalysisService(db_session).run(now=fixed_now)

        assert result.analyzed == 0
        db_session.refresh(entity)
        assert entity.last_analyzed_at == fixed_now

    def test_mentions_older_than_thirty_days_are_ignored(self, db_session: Session, fixed_now):
        entity = create_entity(db_session)
        create_mentions(db_session, entity, [50], end=fixed_now.date() - timedelta(days=31))
        db_session.commit()

        result = EntityAnalysisService(db_session).run(now=fixed_now)

        assert result.analyzed == 0


class TestEntityRotation:
    """Tests for batch selection."""

    def test_least_recently_analyzed_first(self, db_session: Session, fixed_now):
        stale = create_entity(db_session, entity_name="Stale", last_analyzed_at=fixed_now - timedelta(days=2))
        fresh = create_entity(db_session, entity_name="Fresh", last_analyzed_at=fixed_now - timedelta(hours=1))
        never = create_entity(db_session, entity_name="Never")
        service = EntityAnalysisService(db_session)

        assert [e.id for e in service.fetch_entities(batch_size=2)] == [never.id, stale.id]
        assert fresh.id not in [e.id for e in service.fetch_entities(batch_size=2)]

    def test_single_entity_by_id(self, db_session: Session, fixed_now):
        create_entity(db_session, entity_name="Other")
        target = create_entity(db_session, entity_name="Target")
        create_mentions(db_session, target, [4, 5, 6], end=fixed_now.date())
        db_session.commit()

        result = EntityAnalysisService(db_session).run(entity_id=target.id, now=fixed_now)

        assert [r["entity_name"] for r in result.results] == ["Target"]

    def test_to_dict(self, db_session: Session, fixed_now):
        data = EntityAnalysisService(db_session).run(now=fixed_now).to_dict()

        assert data == {"success": True, "analyzed": 0, "results": [], "errors": [], "error": None}
