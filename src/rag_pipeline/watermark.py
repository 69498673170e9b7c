"""Embedding watermark tracking for append-only lecture transcripts.

The watermark is the index of the last stored segment that already carries
embedding ids. Everything after it in a newly submitted transcript is pending
and becomes the next embedding job once enough text has accumulated.
"""

from src.utils.exceptions import DataConsistencyError
from src.utils.logging import get_logger

from .config import LectureRAGConfig
from .schemas import EmbeddingJob, TranscriptSegment

logger = get_logger(__name__)


def find_watermark(segments: list[TranscriptSegment]) -> int:
    """Return the index of the last segment of the embedded prefix.

    The scan stops at the first segment without embedding ids, so a later
    embedded segment never moves the watermark past a gap.

    Args:
        segments: Stored transcript segments, oldest first.

    Returns:
        Watermark index, or -1 when no segment is embedded.

    Raises:
        DataConsistencyError: If an embedded segment follows an unembedded one.
    """
    watermark = -1
    for index, segment in enumerate(segments):
        if not segment.is_embedded:
            break
        watermark = index

    trailing = segments[watermark + 1 :]
    if any(segment.is_embedded for segment in trailing):
        raise DataConsistencyError(
            f"Embedded segment found after unembedded segment {watermark + 1}"
        )

    return watermark


def join_segments(segments: list[TranscriptSegment]) -> str:
    """Concatenate segment texts the way they are sent to the chunker."""
    return "\n".join(segment.text for segment in segments)


class EmbeddingWatermarkTracker:
    """Splits a transcript update into its embedded prefix and pending suffix."""

    def __init__(self, config: LectureRAGConfig):
        self.config = config

    def plan(
        self,
        stored: list[TranscriptSegment],
        submitted: list[TranscriptSegment],
        lecture_id: str | None = None,
    ) -> EmbeddingJob:
        """Decide which submitted segments still need embedding.

        A stored transcript that breaks the prefix invariant, or a submission
        shorter than the embedded prefix, resets the watermark to -1 so the
        whole submitted transcript is embedded again.

        Args:
            stored: Transcript currently persisted for the lecture.
            submitted: Transcript sent by the transcription client. Expected to
                extend ``stored``.
            lecture_id: Only used for log context.

        Returns:
            EmbeddingJob describing the prefix to keep and the pending suffix.
        """
        reset = False
        try:
            watermark = find_watermark(stored)
        except DataConsistencyError as e:
            logger.warning(
                "watermark_inconsistent",
                lecture_id=lecture_id,
                reason=e.message,
                stored_segments=len(stored),
            )
            watermark = -1
            reset = True

        if watermark >= len(submitted):
            logger.warning(
                "watermark_inconsistent",
                lecture_id=lecture_id,
                reason="submitted_transcript_shorter_than_embedded_prefix",
                watermark=watermark,
                submitted_segments=len(submitted),
            )
            watermark = -1
            reset = True

        embedded_prefix = [] if reset else stored[: watermark + 1]
        # Ids sent back by the client are not trusted for pending segments.
        pending = [
            segment.model_copy(update={"embedding_ids": None})
            for segment in submitted[watermark + 1 :]
        ]
        pending_text = join_segments(pending)
        should_embed = len(pending_text) > self.config.embed_threshold_chars

        logger.info(
            "watermark_planned",
            lecture_id=lecture_id,
            watermark=watermark,
            pending_segments=len(pending),
            pending_chars=len(pending_text),
            should_embed=should_embed,
            reset=reset,
        )

        return EmbeddingJob(
            watermark=watermark,
            embedded_prefix=embedded_prefix,
            pending=pending,
            pending_text=pending_text,
            should_embed=should_embed,
            reset=reset,
        )
