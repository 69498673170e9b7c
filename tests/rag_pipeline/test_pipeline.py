"""Unit tests for the transcript embedding pipeline orchestrator."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.rag_pipeline.chunking_service import ChunkingService
from src.rag_pipeline.config import LectureRAGConfig
from src.rag_pipeline.pipeline import TranscriptEmbeddingPipeline
from src.rag_pipeline.schemas import LectureRecord, TranscriptSegment
from src.utils.exceptions import AuthorizationError, UpstreamServiceError


def segment(text: str, start: float = 0.0, ids: list[str] | None = None) -> TranscriptSegment:
    return TranscriptSegment(text=text, start=start, embedding_ids=ids)


@pytest.mark.unit
class TestTranscriptEmbeddingPipeline:
    """Test suite for TranscriptEmbeddingPipeline class."""

    @pytest.fixture
    def config(self) -> LectureRAGConfig:
        """Create test configuration (embedding threshold: 500 chars)."""
        return LectureRAGConfig(
            chunk_size=1000,
            chunk_overlap=100,
            supabase_url="https://test.supabase.co",
            supabase_key="test_key",
        )

    @pytest.fixture
    def lecture(self) -> LectureRecord:
        return LectureRecord(id="lec-1", user_id="user-1", course_id="course-1")

    @pytest.fixture
    def storage_service(self, lecture: LectureRecord) -> MagicMock:
        """Storage mock whose get_lecture returns whatever was saved last."""
        storage = MagicMock()
        state = {"lecture": lecture}

        async def get_lecture(lecture_id: str) -> LectureRecord | None:
            return state["lecture"] if lecture_id == state["lecture"].id else None

        async def save_transcript(lecture_id: str, transcript: list[TranscriptSegment]) -> None:
            state["lecture"] = state["lecture"].model_copy(update={"transcript": transcript})

        storage.get_lecture = AsyncMock(side_effect=get_lecture)
        storage.save_transcript = AsyncMock(side_effect=save_transcript)
        return storage

    @pytest.fixture
    def indexer(self) -> MagicMock:
        indexer = MagicMock()
        indexer.index_chunks = AsyncMock(return_value=["d1", "d2"])
        return indexer

    @pytest.fixture
    def pipeline(
        self, config: LectureRAGConfig, storage_service: MagicMock, indexer: MagicMock
    ) -> TranscriptEmbeddingPipeline:
        return TranscriptEmbeddingPipeline(
            config=config,
            storage_service=storage_service,
            chunking_service=ChunkingService(config),
            indexer=indexer,
        )

    def test_from_clients_builds_services(self, config: LectureRAGConfig) -> None:
        clients = MagicMock()

        pipeline = TranscriptEmbeddingPipeline.from_clients(config, clients)

        assert pipeline.storage_service.client is clients.supabase
        assert pipeline.indexer.embedding_service.client is clients.embedding_client

    @pytest.mark.asyncio
    async def test_short_update_is_saved_without_embedding(
        self,
        pipeline: TranscriptEmbeddingPipeline,
        storage_service: MagicMock,
        indexer: MagicMock,
    ) -> None:
        result = await pipeline.update_transcript(
            "lec-1", "user-1", [segment("Welcome to class.", 0)]
        )

        indexer.index_chunks.assert_not_called()
        assert result.embedding_job_ran is False
        assert result.embedded_segments == 0
        storage_service.save_transcript.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_pending_text_accumulates_until_threshold(
        self,
        pipeline: TranscriptEmbeddingPipeline,
        storage_service: MagicMock,
        indexer: MagicMock,
    ) -> None:
        """Segments below the threshold wait, then embed together with later ones."""
        a = segment("a" * 200, 0)
        b = segment("b" * 200, 10)
        c = segment("c" * 300, 20)

        await pipeline.update_transcript("lec-1", "user-1", [a, b])
        indexer.index_chunks.assert_not_called()

        result = await pipeline.update_transcript("lec-1", "user-1", [a, b, c])

        indexer.index_chunks.assert_awaited_once()
        chunks = indexer.index_chunks.call_args[0][0]
        assert "".join(chunks).count("a") == 200
        assert indexer.index_chunks.call_args.kwargs == {
            "lecture_id": "lec-1",
            "course_id": "course-1",
        }
        assert [s.embedding_ids for s in result.transcript] == [["d1", "d2"]] * 3
        assert result.new_embedding_ids == ["d1", "d2"]
        assert result.embedded_segments == 3

    @pytest.mark.asyncio
    async def test_resubmitting_unchanged_transcript_is_idempotent(
        self,
        pipeline: TranscriptEmbeddingPipeline,
        storage_service: MagicMock,
        indexer: MagicMock,
    ) -> None:
        transcript = [segment("x" * 300, 0), segment("y" * 300, 5)]

        first = await pipeline.update_transcript("lec-1", "user-1", transcript)
        second = await pipeline.update_transcript("lec-1", "user-1", transcript)

        assert indexer.index_chunks.await_count == 1
        assert second.embedding_job_ran is False
        assert second.transcript == first.transcript

    @pytest.mark.asyncio
    async def test_watermark_only_moves_forward(
        self,
        pipeline: TranscriptEmbeddingPipeline,
        indexer: MagicMock,
    ) -> None:
        first_batch = [segment("x" * 600, 0)]
        await pipeline.update_transcript("lec-1", "user-1", first_batch)

        indexer.index_chunks.return_value = ["d3"]
        result = await pipeline.update_transcript(
            "lec-1", "user-1", [*first_batch, segment("z" * 100, 60)]
        )

        assert result.transcript[0].embedding_ids == ["d1", "d2"]
        assert result.transcript[1].embedding_ids is None
        assert indexer.index_chunks.await_count == 1

    @pytest.mark.asyncio
    async def test_only_pending_suffix_is_embedded(
        self,
        pipeline: TranscriptEmbeddingPipeline,
        indexer: MagicMock,
    ) -> None:
        first = segment("x" * 600, 0)
        await pipeline.update_transcript("lec-1", "user-1", [first])

        indexer.index_chunks.return_value = ["d3"]
        result = await pipeline.update_transcript(
            "lec-1", "user-1", [first, segment("w" * 600, 60)]
        )

        chunks = indexer.index_chunks.call_args[0][0]
        assert "x" not in "".join(chunks)
        assert result.transcript[0].embedding_ids == ["d1", "d2"]
        assert result.transcript[1].embedding_ids == ["d3"]

    @pytest.mark.asyncio
    async def test_foreign_lecture_is_rejected(
        self,
        pipeline: TranscriptEmbeddingPipeline,
        storage_service: MagicMock,
    ) -> None:
        with pytest.raises(AuthorizationError):
            await pipeline.update_transcript("lec-1", "someone-else", [segment("hi")])

        storage_service.save_transcript.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_lecture_is_rejected(self, pipeline: TranscriptEmbeddingPipeline) -> None:
        with pytest.raises(AuthorizationError):
            await pipeline.update_transcript("nope", "user-1", [segment("hi")])

    @pytest.mark.asyncio
    async def test_storage_failure_is_upstream_error(
        self,
        pipeline: TranscriptEmbeddingPipeline,
        storage_service: MagicMock,
    ) -> None:
        storage_service.save_transcript.side_effect = Exception("Database error")

        with pytest.raises(UpstreamServiceError):
            await pipeline.update_transcript("lec-1", "user-1", [segment("hi")])

    @pytest.mark.asyncio
    async def test_embedding_failure_leaves_transcript_unsaved(
        self,
        pipeline: TranscriptEmbeddingPipeline,
        storage_service: MagicMock,
        indexer: MagicMock,
    ) -> None:
        indexer.index_chunks.side_effect = UpstreamServiceError("Embedding request failed")

        with pytest.raises(UpstreamServiceError):
            await pipeline.update_transcript("lec-1", "user-1", [segment("x" * 600)])

        storage_service.save_transcript.assert_not_called()

    @pytest.mark.asyncio
    async def test_reindex_restamps_every_segment(
        self,
        pipeline: TranscriptEmbeddingPipeline,
        storage_service: MagicMock,
        indexer: MagicMock,
        lecture: LectureRecord,
    ) -> None:
        storage_service.get_lecture.side_effect = None
        storage_service.get_lecture.return_value = lecture.model_copy(
            update={"transcript": [segment("a", ids=["old"]), segment("b")]}
        )

        result = await pipeline.reindex_lecture("lec-1")

        indexer.index_chunks.assert_awaited_once()
        assert indexer.index_chunks.call_args[0][0] == ["a\nb"]
        assert [s.embedding_ids for s in result.transcript] == [["d1", "d2"]] * 2

    @pytest.mark.asyncio
    async def test_reindex_dry_run_writes_nothing(
        self,
        pipeline: TranscriptEmbeddingPipeline,
        storage_service: MagicMock,
        indexer: MagicMock,
    ) -> None:
        with patch.object(
            pipeline.chunking_service, "split_text", wraps=pipeline.chunking_service.split_text
        ) as split_text:
            await pipeline.reindex_lecture("lec-1", dry_run=True)

        split_text.assert_called_once()
        indexer.index_chunks.assert_not_called()
        storage_service.save_transcript.assert_not_called()

    @pytest.mark.asyncio
    async def test_reindex_missing_lecture(self, pipeline: TranscriptEmbeddingPipeline) -> None:
        with pytest.raises(ValueError):
            await pipeline.reindex_lecture("nope")
