"""Transcript update orchestrator: watermark, chunking, indexing, persistence."""

from src.utils.clients import ServiceClients
from src.utils.exceptions import AuthorizationError, LectureChatError, UpstreamServiceError
from src.utils.logging import get_logger

from .chunking_service import ChunkingService
from .config import LectureRAGConfig
from .embedding_service import EmbeddingService
from .indexer import EmbeddingIndexer
from .schemas import LectureRecord, TranscriptSegment, TranscriptUpdateResult
from .storage_service import StorageService
from .watermark import EmbeddingWatermarkTracker, join_segments

logger = get_logger(__name__)


class TranscriptEmbeddingPipeline:
    """Incrementally embeds lecture transcripts as they grow.

    Each update embeds only the segments after the watermark, and only once
    they hold more than half a chunk of text. Every segment that contributed
    to a job is stamped with the same list of vector row ids, which moves the
    watermark forward. Re-submitting an unchanged transcript embeds nothing.
    """

    def __init__(
        self,
        config: LectureRAGConfig,
        storage_service: StorageService,
        chunking_service: ChunkingService,
        indexer: EmbeddingIndexer,
        tracker: EmbeddingWatermarkTracker | None = None,
    ):
        self.config = config
        self.storage_service = storage_service
        self.chunking_service = chunking_service
        self.indexer = indexer
        self.tracker = tracker or EmbeddingWatermarkTracker(config)

        logger.info(
            "pipeline_initialized",
            chunk_size=config.chunk_size,
            embed_threshold_chars=config.embed_threshold_chars,
        )

    @classmethod
    def from_clients(
        cls, config: LectureRAGConfig, clients: ServiceClients
    ) -> "TranscriptEmbeddingPipeline":
        """Build the pipeline and its services from shared client handles."""
        storage_service = StorageService(config, clients.supabase)
        embedding_service = EmbeddingService(config, clients.embedding_client)
        return cls(
            config=config,
            storage_service=storage_service,
            chunking_service=ChunkingService(config),
            indexer=EmbeddingIndexer(embedding_service, storage_service),
        )

    async def load_owned_lecture(self, lecture_id: str, user_id: str) -> LectureRecord:
        """Fetch a lecture and check that ``user_id`` owns it.

        Raises:
            AuthorizationError: If the lecture is missing or owned by someone else.
        """
        lecture = await self.storage_service.get_lecture(lecture_id)
        if lecture is None or lecture.user_id != user_id:
            logger.warning(
                "lecture_access_denied",
                lecture_id=lecture_id,
                user_id=user_id,
                lecture_found=lecture is not None,
            )
            raise AuthorizationError()
        return lecture

    async def update_transcript(
        self,
        lecture_id: str,
        user_id: str,
        submitted: list[TranscriptSegment],
    ) -> TranscriptUpdateResult:
        """Process a transcript update for a lecture.

        Steps:
        1. Verify ownership
        2. Find the watermark in the stored transcript
        3. Embed the pending suffix if it holds enough text
        4. Stamp the suffix with the returned ids
        5. Persist embedded prefix + suffix

        Args:
            lecture_id: Lecture being transcribed.
            user_id: Authenticated caller.
            submitted: Full transcript as known to the client.

        Returns:
            TranscriptUpdateResult with the persisted transcript.

        Raises:
            AuthorizationError: If the caller does not own the lecture.
            UpstreamServiceError: If embedding or storage fails.
        """
        logger.info(
            "transcript_update_started",
            lecture_id=lecture_id,
            submitted_segments=len(submitted),
        )

        lecture = await self.load_owned_lecture(lecture_id, user_id)
        job = self.tracker.plan(lecture.transcript, submitted, lecture_id=lecture_id)

        pending = job.pending
        new_ids: list[str] = []

        try:
            if job.should_embed:
                new_ids = await self._embed(job.pending_text, lecture)
                pending = [
                    segment.model_copy(update={"embedding_ids": list(new_ids)})
                    for segment in pending
                ]

            combined = [*job.embedded_prefix, *pending]
            await self.storage_service.save_transcript(lecture_id, combined)

        except LectureChatError:
            raise
        except Exception as e:
            logger.exception(
                "transcript_update_failed",
                lecture_id=lecture_id,
                error_type=type(e).__name__,
            )
            raise UpstreamServiceError(f"Transcript update failed: {e}") from e

        embedded_segments = sum(1 for segment in combined if segment.is_embedded)
        logger.info(
            "transcript_update_completed",
            lecture_id=lecture_id,
            segments=len(combined),
            embedded_segments=embedded_segments,
            new_embedding_ids=len(new_ids),
        )

        return TranscriptUpdateResult(
            lecture_id=lecture_id,
            transcript=combined,
            embedded_segments=embedded_segments,
            new_embedding_ids=new_ids,
            embedding_job_ran=job.should_embed,
        )

    async def reindex_lecture(
        self, lecture_id: str, dry_run: bool = False
    ) -> TranscriptUpdateResult:
        """Re-embed a lecture's whole transcript from scratch.

        Old vector rows are left in place. With ``dry_run`` the transcript is
        chunked but nothing is embedded or written.

        Raises:
            ValueError: If the lecture does not exist.
        """
        lecture = await self.storage_service.get_lecture(lecture_id)
        if lecture is None:
            raise ValueError(f"Lecture {lecture_id} not found")

        segments = [
            segment.model_copy(update={"embedding_ids": None})
            for segment in lecture.transcript
        ]
        text = join_segments(segments)
        logger.info(
            "reindex_started",
            lecture_id=lecture_id,
            segments=len(segments),
            text_length=len(text),
            dry_run=dry_run,
        )

        if dry_run:
            chunks = self.chunking_service.split_text(text)
            logger.info("reindex_dry_run_completed", lecture_id=lecture_id, chunks=len(chunks))
            return TranscriptUpdateResult(
                lecture_id=lecture_id,
                transcript=lecture.transcript,
                embedded_segments=sum(1 for s in lecture.transcript if s.is_embedded),
            )

        new_ids = await self._embed(text, lecture) if text.strip() else []
        if new_ids:
            segments = [
                segment.model_copy(update={"embedding_ids": list(new_ids)})
                for segment in segments
            ]
        await self.storage_service.save_transcript(lecture_id, segments)

        logger.info("reindex_completed", lecture_id=lecture_id, ids=len(new_ids))
        return TranscriptUpdateResult(
            lecture_id=lecture_id,
            transcript=segments,
            embedded_segments=len(segments) if new_ids else 0,
            new_embedding_ids=new_ids,
            embedding_job_ran=bool(new_ids),
        )

    async def _embed(self, text: str, lecture: LectureRecord) -> list[str]:
        chunks = self.chunking_service.split_text(text)
        return await self.indexer.index_chunks(
            chunks,
            lecture_id=lecture.id,
            course_id=lecture.course_id,
        )
