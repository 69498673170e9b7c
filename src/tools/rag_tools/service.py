"""RAG tools service layer implementation.

Contains helper functions and the tool implementation for searching embedded
lecture transcript chunks.
"""

from src.rag_pipeline.embedding_service import EmbeddingService
from src.rag_pipeline.storage_service import StorageService
from src.utils.logging import get_logger

logger = get_logger(__name__)

MAX_MATCH_COUNT = 10


# ==============================================================================
# Helper Functions (Deterministic, not exposed as LLM tools)
# ==============================================================================


def clamp_match_count(match_count: int) -> int:
    """Keep match_count within 1..MAX_MATCH_COUNT."""
    return max(1, min(match_count, MAX_MATCH_COUNT))


# ==============================================================================
# Tool Implementation Functions
# ==============================================================================


async def search_transcript_chunks(
    storage: StorageService,
    embedding_service: EmbeddingService,
    query: str,
    match_count: int = 5,
    lecture_id: str | None = None,
    course_id: str | None = None,
) -> str:
    """Search for relevant transcript chunks using vector similarity.

    This function:
    1. Generates an embedding for the query
    2. Calls the vector match function filtered by lecture or course
    3. Formats results for the model

    Args:
        storage: Storage service exposing vector search.
        embedding_service: Embedding service for the query vector.
        query: Search query.
        match_count: Maximum number of results (clamped to 1..10).
        lecture_id: Restrict results to one lecture.
        course_id: Restrict results to one course.

    Returns:
        Formatted string with one block per matching chunk, or an empty-state
        message when nothing matched.

    Raises:
        Exception: If embedding or search fails.
    """
    match_count = clamp_match_count(match_count)
    logger.info(
        "transcript_search_started",
        query_length=len(query),
        match_count=match_count,
        lecture_id=lecture_id,
        course_id=course_id,
    )

    try:
        query_embedding = await embedding_service.embed_text(query)
        chunks = await storage.search_documents(
            query_embedding,
            match_count=match_count,
            lecture_id=lecture_id,
            course_id=course_id,
        )
    except Exception as e:
        logger.exception(
            "transcript_search_failed",
            error_type=type(e).__name__,
        )
        raise

    if not chunks:
        return "No relevant lecture content found for this query. Try rephrasing or using different keywords."

    formatted_results = []
    for i, chunk in enumerate(chunks, 1):
        similarity = chunk.get("similarity") or 0
        metadata = chunk.get("metadata") or {}
        content = chunk.get("content", "")

        result = f"""
**Result {i}** (Similarity: {similarity:.2%})
**Lecture:** {metadata.get("lectureId", "unknown")}

{content}
"""
        formatted_results.append(result.strip())

    final_output = "\n\n---\n\n".join(formatted_results)

    logger.info(
        "transcript_search_completed",
        results_count=len(formatted_results),
        total_chars=len(final_output),
    )
    return final_output
