"""Unit tests for the post embedding task."""

from unittest.mock import patch

from trendjack_core.domain.services.embedding import EmbedResult
from trendjack_core.infrastructure.embeddings import EmbeddingsClient, EmbeddingsError
from trendjack_worker.tasks.embed import embed_pending_posts, embed_posts


class TestEmbedPosts:
    """Tests for the embed_posts helper."""

    def test_wraps_client_with_retries(self, mock_db_session, worker_settings):
        with patch("trendjack_core.domain.services.embedding.PostEmbeddingService") as service_cls:
            service_cls.return_value.embed_pending.return_value = EmbedResult(processed=2, embedded=2)
            result = embed_posts(mock_db_session, worker_settings, limit=10, community="freelance")

        kwargs = service_cls.call_args.kwargs
        assert kwargs["db"] is mock_db_session
        assert isinstance(kwargs["client"], EmbeddingsClient)
        assert kwargs["embed_fn"] is not kwargs["client"].embed
        service_cls.return_value.embed_pending.assert_called_once_with(limit=10, community="freelance")
        assert result.embedded == 2

    def test_retrying_embed_fn_recovers_from_transient_error(self, mock_db_session, worker_settings):
        with patch("trendjack_core.domain.services.embedding.PostEmbeddingService") as service_cls, \
             patch.object(EmbeddingsClient, "embed", side_effect=[EmbeddingsError("503"), [0.1, 0.2]]), \
             patch("trendjack_worker.util.retry.time.sleep"):
            embed_posts(mock_db_session, worker_settings, limit=1)
            embed_fn = service_cls.call_args.kwargs["embed_fn"]

            assert embed_fn("hello") == [0.1, 0.2]


class TestEmbedPendingPostsTask:
    """Tests for embed.embed_pending_posts."""

    def test_success(self, mock_db_session, worker_settings):
        with patch("trendjack_worker.tasks.embed.get_db_session", return_value=mock_db_session), \
             patch("trendjack_worker.tasks.embed.mark_run") as mark_run, \
             patch("trendjack_core.config.get_settings", return_value=worker_settings), \
             patch(
                 "trendjack_worker.tasks.embed.embed_posts",
                 return_value=EmbedResult(processed=3, embedded=2, errors=["Post 9: empty"]),
             ) as embed:
            result = embed_pending_posts.apply(kwargs={"limit": 3}).get()

        assert result == {"status": "success", "processed": 3, "embedded": 2, "errors": ["Post 9: empty"]}
        embed.assert_called_once_with(mock_db_session, worker_settings, 3, None)
        mark_run.assert_called_once_with("embed.embed_pending_posts")
        mock_db_session.close.assert_called_once()

    def test_skipped_without_embeddings_config(self, mock_db_session, unconfigured_settings):
        with patch("trendjack_worker.tasks.embed.get_db_session", return_value=mock_db_session), \
             patch("trendjack_worker.tasks.embed.mark_run") as mark_run, \
             patch("trendjack_core.config.get_settings", return_value=unconfigured_settings):
            result = embed_pending_posts.apply().get()

        assert result["status"] == "skipped"
        assert "EMBEDDINGS_URL" in result["reason"]
        mark_run.assert_not_called()

    def test_error(self, mock_db_session, worker_settings):
        with patch("trendjack_worker.tasks.embed.get_db_session", return_value=mock_db_session), \
             patch("trendjack_worker.tasks.embed.mark_run"), \
             patch("trendjack_core.config.get_settings", return_value=worker_settings), \
             patch("trendjack_worker.tasks.embed.embed_posts", side_effect=RuntimeError("disk full")):
            result = embed_pending_posts.apply().get()

        assert result == {"status": "error", "error": "disk full"}
        mock_db_session.close.assert_called_once()

