"""Storage service for lecture transcripts and the Supabase vector table."""

from datetime import UTC, datetime
from typing import Any

from supabase import Client

from src.utils.logging import get_logger

from .config import LectureRAGConfig
from .schemas import DocumentRow, LectureRecord, TranscriptSegment

logger = get_logger(__name__)

LECTURES_TABLE = "lectures"


class StorageService:
    """Service for lecture rows and embedded transcript documents in Supabase.

    Handles lecture lookup, transcript persistence, batched vector inserts and
    vector similarity search. Vector rows are append-only.
    """

    def __init__(self, config: LectureRAGConfig, client: Client):
        """Initialize storage service.

        Args:
            config: Configuration object with table names and batch limits.
            client: Supabase client shared by the process.
        """
        self.config = config
        self.client = client
        logger.info(
            "storage_service_initialized",
            documents_table=config.documents_table,
            insert_batch_size=config.insert_batch_size,
        )

    async def get_lecture(self, lecture_id: str) -> LectureRecord | None:
        """Fetch a lecture with its transcript.

        Args:
            lecture_id: Lecture primary key.

        Returns:
            LectureRecord, or None if no such lecture exists.
        """
        try:
            response = (
                self.client.table(LECTURES_TABLE)
                .select("id, user_id, course_id, title, transcript, created_at")
                .eq("id", lecture_id)
                .execute()
            )
        except Exception as e:
            logger.exception(
                "lecture_fetch_failed",
                lecture_id=lecture_id,
                error_type=type(e).__name__,
            )
            raise

        if not response.data:
            logger.debug("lecture_not_found", lecture_id=lecture_id)
            return None

        return LectureRecord.model_validate(_with_transcript(response.data[0]))

    async def list_course_lectures(self, course_id: str) -> list[LectureRecord]:
        """Fetch every lecture of a course, transcripts included."""
        try:
            response = (
                self.client.table(LECTURES_TABLE)
                .select("id, user_id, course_id, title, transcript, created_at")
                .eq("course_id", course_id)
                .order("created_at", desc=True)
                .execute()
            )
        except Exception as e:
            logger.exception(
                "course_lectures_fetch_failed",
                course_id=course_id,
                error_type=type(e).__name__,
            )
            raise

        lectures = [
            LectureRecord.model_validate(_with_transcript(row))
            for row in response.data or []
        ]
        logger.debug("course_lectures_fetched", course_id=course_id, count=len(lectures))
        return lectures

    async def save_transcript(
        self, lecture_id: str, transcript: list[TranscriptSegment]
    ) -> None:
        """Persist the combined transcript of a lecture.

        Args:
            lecture_id: Lecture primary key.
            transcript: Full transcript, embedded prefix first.

        Raises:
            Exception: If the database update fails.
        """
        try:
            data = {
                "transcript": [segment.to_storage() for segment in transcript],
                "updated_at": datetime.now(UTC).isoformat(),
            }
            self.client.table(LECTURES_TABLE).update(data).eq("id", lecture_id).execute()
            logger.info(
                "transcript_saved",
                lecture_id=lecture_id,
                segments=len(transcript),
            )

        except Exception as e:
            logger.exception(
                "transcript_save_failed",
                lecture_id=lecture_id,
                error_type=type(e).__name__,
            )
            raise

    async def insert_documents(self, rows: list[DocumentRow]) -> list[str]:
        """Insert embedded chunks into the vector table in bounded batches.

        Batches hold at most ``insert_batch_size`` rows. Batches inserted
        before a failing one are kept (no rollback).

        Args:
            rows: Rows to insert, in chunk order.

        Returns:
            Generated row ids, one per row, in input order.

        Raises:
            Exception: If any batch insert fails.
        """
        ids: list[str] = []
        batch_size = self.config.insert_batch_size

        for i in range(0, len(rows), batch_size):
            batch = rows[i : i + batch_size]
            try:
                response = (
                    self.client.table(self.config.documents_table)
                    .insert([row.to_row() for row in batch])
                    .select("id")
                    .execute()
                )
            except Exception as e:
                logger.exception(
                    "documents_insert_failed",
                    batch_num=i // batch_size + 1,
                    count=len(batch),
                    inserted_before_failure=len(ids),
                    error_type=type(e).__name__,
                )
                raise

            inserted = [str(row["id"]) for row in response.data or []]
            if len(inserted) != len(batch):
                raise RuntimeError(
                    f"Vector insert returned {len(inserted)} ids for {len(batch)} rows"
                )
            ids.extend(inserted)

            logger.debug(
                "documents_batch_inserted",
                batch_num=i // batch_size + 1,
                count=len(batch),
            )

        logger.info("documents_inserted", count=len(ids))
        return ids

    async def search_documents(
        self,
        query_embedding: list[float],
        match_count: int = 5,
        lecture_id: str | None = None,
        course_id: str | None = None,
    ) -> list[dict[str, Any]]:
        """Search for similar transcript chunks using vector similarity.

        Args:
            query_embedding: Query embedding vector.
            match_count: Number of results to return (default: 5).
            lecture_id: Restrict results to one lecture.
            course_id: Restrict results to one course.

        Returns:
            Matching rows (content, metadata, similarity), best first.

        Raises:
            Exception: If the search RPC fails.
        """
        filter_json: dict[str, str] = {}
        if lecture_id:
            filter_json["lectureId"] = lecture_id
        if course_id:
            filter_json["courseId"] = course_id

        try:
            response = self.client.rpc(
                self.config.match_function,
                {
                    "query_embedding": query_embedding,
                    "match_count": match_count,
                    "filter": filter_json,
                },
            ).execute()
        except Exception as e:
            logger.exception(
                "vector_search_failed",
                error_type=type(e).__name__,
            )
            raise

        results: list[dict[str, Any]] = response.data or []
        logger.info(
            "vector_search_completed",
            results=len(results),
            match_count=match_count,
            filter=filter_json,
        )
        return results


def _with_transcript(row: dict[str, Any]) -> dict[str, Any]:
    # New lectures are created with a NULL transcript.
    return {**row, "transcript": row.get("transcript") or []}
