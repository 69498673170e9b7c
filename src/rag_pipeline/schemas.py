"""Pydantic schemas for the transcript embedding pipeline."""

from datetime import UTC, datetime

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class TranscriptSegment(BaseModel):
    """Single transcript segment produced by live transcription.

    Stored and exchanged with the original JSON keys ``text``, ``start`` and
    ``embeddingIds``. ``embedding_ids`` is set only once the segment's text has
    been embedded; embedded segments always form a prefix of the transcript.
    """

    model_config = ConfigDict(populate_by_name=True)

    text: str
    start: float = Field(
        default=0.0,
        ge=0,
        validation_alias=AliasChoices("start", "startOffsetSeconds", "start_offset_seconds"),
    )
    embedding_ids: list[str] | None = Field(
        default=None,
        alias="embeddingIds",
        validation_alias=AliasChoices("embeddingIds", "embedding_ids"),
    )

    @property
    def is_embedded(self) -> bool:
        return self.embedding_ids is not None

    def to_storage(self) -> dict:
        """Serialize with the stored JSON keys, omitting unset embedding ids."""
        return self.model_dump(by_alias=True, exclude_none=True)


class LectureRecord(BaseModel):
    """Lecture row as read from the relational store."""

    id: str
    user_id: str
    course_id: str | None = None
    title: str = "Untitled Lecture"
    transcript: list[TranscriptSegment] = Field(default_factory=list)
    created_at: datetime | None = None

    @field_validator("created_at")
    @classmethod
    def assume_utc(cls, value: datetime | None) -> datetime | None:
        # Timestamps without a zone are stored in UTC.
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value


class EmbeddingJob(BaseModel):
    """Outcome of the watermark scan for one transcript update.

    ``embedded_prefix`` comes from the stored transcript and is kept as-is.
    ``pending`` is the submitted suffix after the watermark.
    """

    watermark: int
    embedded_prefix: list[TranscriptSegment]
    pending: list[TranscriptSegment]
    pending_text: str
    should_embed: bool
    reset: bool = False


class DocumentRow(BaseModel):
    """Row inserted into the vector table. Never updated or deleted."""

    content: str
    embedding: list[float]
    lecture_id: str
    course_id: str | None = None

    def to_row(self) -> dict:
        return {
            "content": self.content,
            "embedding": self.embedding,
            "metadata": {"lectureId": self.lecture_id, "courseId": self.course_id},
            "lecture_id": self.lecture_id,
            "course_id": self.course_id,
        }


class TranscriptUpdateResult(BaseModel):
    """Result of processing one transcript update.

    Used for the API response and for logging.
    """

    lecture_id: str
    transcript: list[TranscriptSegment]
    embedded_segments: int
    new_embedding_ids: list[str] = Field(default_factory=list)
    embedding_job_ran: bool = False
