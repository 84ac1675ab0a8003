"""Unit tests for the lead pipeline task.

The pipeline itself is covered by the core tests; these check the task
wrapper: session handling, skip on missing inference config, retries.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from celery.exceptions import Retry

from trendjack_core.domain.services.lead_pipeline import (
    KeywordLog,
    PipelineResult,
    PipelineSummary,
)
from trendjack_worker.tasks.leads import run_pipeline


def make_result(success=True, error=None):
    log = KeywordLog(
        timestamp="2026-03-15T12:00:00Z",
        keyword="invoicing",
        keyword_id=1,
        posts_analyzed=4,
        candidates_created=2,
        ai_calls_made=2,
        leads_created=1,
    )
    return PipelineResult(
        success=success,
        summary=PipelineSummary.from_logs([log]),
        logs=[log],
        start_time="2026-03-15T12:00:00Z",
        end_time="2026-03-15T12:00:05Z",
        error=error,
    )


@pytest.fixture
def patched_runtime(mock_db_session, worker_settings):
    with patch("trendjack_worker.tasks.leads.get_db_session", return_value=mock_db_session), \
         patch("trendjack_worker.tasks.leads.mark_run") as mark_run, \
         patch("trendjack_core.config.get_settings", return_value=worker_settings):
        yield mark_run


class TestRunPipelineTask:
    """Tests for leads.run_pipeline."""

    def test_success(self, patched_runtime, mock_db_session):
        service = MagicMock()
        service.run = AsyncMock(return_value=make_result())

        with patch(
            "trendjack_core.domain.services.lead_pipeline.build_lead_pipeline",
            return_value=service,
        ) as build:
            result = run_pipeline.apply(kwargs={"batch_size": 5}).get()

        assert result["status"] == "success"
        assert result["summary"]["total_leads_created"] == 1
        assert result["logs"][0]["keyword"] == "invoicing"
        assert service.run.await_args.kwargs["batch_size"] == 5
        assert service.run.await_args.kwargs["context"].task_name == "leads.run_pipeline"
        assert build.call_args.args[0] is mock_db_session
        patched_runtime.assert_called_once_with("leads.run_pipeline")
        mock_db_session.close.assert_called_once()

    def test_failed_run_reports_error(self, patched_runtime):
        service = MagicMock()
        service.run = AsyncMock(return_value=make_result(success=False, error="database is down"))

        with patch(
            "trendjack_core.domain.services.lead_pipeline.build_lead_pipeline",
            return_value=service,
        ):
            result = run_pipeline.apply().get()

        assert result["status"] == "error"
        assert result["error"] == "database is down"

    def test_skipped_without_inference_config(self, mock_db_session, unconfigured_settings):
        with patch("trendjack_worker.tasks.leads.get_db_session", return_value=mock_db_session), \
             patch("trendjack_worker.tasks.leads.mark_run") as mark_run, \
             patch("trendjack_core.config.get_settings", return_value=unconfigured_settings):
            result = run_pipeline.apply().get()

        assert result["status"] == "skipped"
        assert "INFERENCE_URL" in result["reason"]
        mark_run.assert_not_called()
        mock_db_session.close.assert_called_once()

    def test_unexpected_error_is_retried(self, patched_runtime):
        with patch(
            "trendjack_core.domain.services.lead_pipeline.build_lead_pipeline",
            side_effect=RuntimeError("boom"),
        ), patch.object(run_pipeline, "retry", side_effect=Retry()) as retry:
            with pytest.raises(Retry):
                run_pipeline.run()

        assert isinstance(retry.call_args.kwargs["exc"], RuntimeError)

    def test_error_returned_once_retries_exhausted(self, patched_runtime, mock_db_session):
        run_pipeline.push_request(retries=run_pipeline.max_retries)
        try:
            with patch(
                "trendjack_core.domain.services.lead_pipeline.build_lead_pipeline",
                side_effect=RuntimeError("boom"),
            ):
                result = run_pipeline.run()
        finally:
            run_pipeline.pop_request()

        assert result == {"status": "error", "error": "boom"}
        mock_db_session.close.assert_called_once()
