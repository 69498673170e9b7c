"""Embedding indexer: turns chunks into stored vector rows."""

from src.utils.logging import get_logger

from .embedding_service import EmbeddingService
from .schemas import DocumentRow
from .storage_service import StorageService

logger = get_logger(__name__)


class EmbeddingIndexer:
    """Embeds chunks and appends them to the vector table.

    Embedding happens for all chunks before any row is inserted, so an
    embedding failure leaves the index untouched. Insert failures keep the
    batches already written; duplicates from a retried job only add noise to
    similarity search.
    """

    def __init__(self, embedding_service: EmbeddingService, storage_service: StorageService):
        self.embedding_service = embedding_service
        self.storage_service = storage_service

    async def index_chunks(
        self,
        chunks: list[str],
        lecture_id: str,
        course_id: str | None = None,
    ) -> list[str]:
        """Embed and store chunks for a lecture.

        Args:
            chunks: Chunk texts in order.
            lecture_id: Lecture the chunks belong to (stored in metadata).
            course_id: Optional course of the lecture (stored in metadata).

        Returns:
            Vector row ids, one per chunk, in chunk order.

        Raises:
            UpstreamServiceError: If embedding fails.
            Exception: If a vector insert fails.
        """
        if not chunks:
            return []

        logger.info(
            "indexing_started",
            lecture_id=lecture_id,
            course_id=course_id,
            chunks=len(chunks),
        )

        embeddings = await self.embedding_service.embed_batch(chunks)

        rows = [
            DocumentRow(
                content=chunk,
                embedding=embedding,
                lecture_id=lecture_id,
                course_id=course_id,
            )
            for chunk, embedding in zip(chunks, embeddings, strict=True)
        ]
        ids = await self.storage_service.insert_documents(rows)

        logger.info("indexing_completed", lecture_id=lecture_id, ids=len(ids))
        return ids
