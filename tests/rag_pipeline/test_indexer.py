"""Unit tests for the embedding indexer."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.rag_pipeline.indexer import EmbeddingIndexer
from src.utils.exceptions import UpstreamServiceError


@pytest.mark.unit
class TestEmbeddingIndexer:
    """Test suite for EmbeddingIndexer class."""

    @pytest.fixture
    def embedding_service(self) -> MagicMock:
        service = MagicMock()
        service.embed_batch = AsyncMock(return_value=[[0.1], [0.2]])
        return service

    @pytest.fixture
    def storage_service(self) -> MagicMock:
        service = MagicMock()
        service.insert_documents = AsyncMock(return_value=["d1", "d2"])
        return service

    @pytest.fixture
    def indexer(
        self, embedding_service: MagicMock, storage_service: MagicMock
    ) -> EmbeddingIndexer:
        return EmbeddingIndexer(embedding_service, storage_service)

    @pytest.mark.asyncio
    async def test_index_chunks(
        self,
        indexer: EmbeddingIndexer,
        embedding_service: MagicMock,
        storage_service: MagicMock,
    ) -> None:
        ids = await indexer.index_chunks(["first", "second"], "lec-1", course_id="course-1")

        assert ids == ["d1", "d2"]
        embedding_service.embed_batch.assert_awaited_once_with(["first", "second"])
        rows = storage_service.insert_documents.call_args[0][0]
        assert [row.content for row in rows] == ["first", "second"]
        assert [row.embedding for row in rows] == [[0.1], [0.2]]
        assert all(row.lecture_id == "lec-1" and row.course_id == "course-1" for row in rows)

    @pytest.mark.asyncio
    async def test_no_chunks_means_no_calls(
        self,
        indexer: EmbeddingIndexer,
        embedding_service: MagicMock,
        storage_service: MagicMock,
    ) -> None:
        assert await indexer.index_chunks([], "lec-1") == []
        embedding_service.embed_batch.assert_not_called()
        storage_service.insert_documents.assert_not_called()

    @pytest.mark.asyncio
    async def test_embedding_failure_inserts_nothing(
        self,
        indexer: EmbeddingIndexer,
        embedding_service: MagicMock,
        storage_service: MagicMock,
    ) -> None:
        embedding_service.embed_batch.side_effect = UpstreamServiceError("down")

        with pytest.raises(UpstreamServiceError):
            await indexer.index_chunks(["first"], "lec-1")

        storage_service.insert_documents.assert_not_called()
