"""Unit tests for embedding watermark tracking."""

import pytest

from src.rag_pipeline.config import LectureRAGConfig
from src.rag_pipeline.schemas import TranscriptSegment
from src.rag_pipeline.watermark import (
    EmbeddingWatermarkTracker,
    find_watermark,
    join_segments,
)
from src.utils.exceptions import DataConsistencyError


def segment(text: str, start: float = 0.0, ids: list[str] | None = None) -> TranscriptSegment:
    return TranscriptSegment(text=text, start=start, embedding_ids=ids)


@pytest.mark.unit
class TestFindWatermark:
    """Test suite for find_watermark."""

    def test_empty_transcript(self) -> None:
        assert find_watermark([]) == -1

    def test_nothing_embedded(self) -> None:
        assert find_watermark([segment("a"), segment("b")]) == -1

    def test_embedded_prefix(self) -> None:
        segments = [
            segment("a", ids=["1"]),
            segment("b", ids=["1"]),
            segment("c"),
        ]

        assert find_watermark(segments) == 1

    def test_fully_embedded(self) -> None:
        segments = [segment("a", ids=["1"]), segment("b", ids=["2"])]

        assert find_watermark(segments) == 1

    def test_empty_id_list_counts_as_embedded(self) -> None:
        """An empty list is still a stamp; only None means pending."""
        assert find_watermark([segment("a", ids=[]), segment("b")]) == 0

    def test_gap_raises(self) -> None:
        """Test that an embedded segment after a pending one is rejected."""
        segments = [
            segment("a", ids=["1"]),
            segment("b"),
            segment("c", ids=["2"]),
        ]

        with pytest.raises(DataConsistencyError):
            find_watermark(segments)


@pytest.mark.unit
class TestEmbeddingWatermarkTracker:
    """Test suite for EmbeddingWatermarkTracker.plan."""

    @pytest.fixture
    def tracker(self) -> EmbeddingWatermarkTracker:
        return EmbeddingWatermarkTracker(LectureRAGConfig(chunk_size=1000, chunk_overlap=100))

    def test_short_pending_text_waits(self, tracker: EmbeddingWatermarkTracker) -> None:
        """Test that pending text at or below half a chunk is not embedded."""
        submitted = [segment("x" * 250), segment("y" * 249)]  # joined: 500 chars

        job = tracker.plan([], submitted)

        assert job.watermark == -1
        assert len(job.pending_text) == 500
        assert job.should_embed is False

    def test_long_pending_text_embeds(self, tracker: EmbeddingWatermarkTracker) -> None:
        submitted = [segment("x" * 250), segment("y" * 250)]  # joined: 501 chars

        job = tracker.plan([], submitted)

        assert job.should_embed is True
        assert job.pending_text == "x" * 250 + "\n" + "y" * 250

    def test_prefix_comes_from_stored_transcript(
        self, tracker: EmbeddingWatermarkTracker
    ) -> None:
        """Test that the embedded prefix keeps the stored ids, not the client's."""
        stored = [segment("a", ids=["1"]), segment("b", ids=["1"])]
        submitted = [segment("a"), segment("b"), segment("c")]

        job = tracker.plan(stored, submitted)

        assert job.watermark == 1
        assert job.embedded_prefix == stored
        assert [s.text for s in job.pending] == ["c"]

    def test_pending_ids_from_client_are_dropped(
        self, tracker: EmbeddingWatermarkTracker
    ) -> None:
        submitted = [segment("a", ids=["forged"])]

        job = tracker.plan([], submitted)

        assert job.pending[0].embedding_ids is None

    def test_unchanged_transcript_has_no_pending(
        self, tracker: EmbeddingWatermarkTracker
    ) -> None:
        stored = [segment("a", ids=["1"]), segment("b", ids=["1"])]

        job = tracker.plan(stored, stored)

        assert job.pending == []
        assert job.pending_text == ""
        assert job.should_embed is False

    def test_inconsistent_stored_transcript_resets(
        self, tracker: EmbeddingWatermarkTracker
    ) -> None:
        stored = [segment("a", ids=["1"]), segment("b"), segment("c", ids=["2"])]
        submitted = [segment("a"), segment("b"), segment("c")]

        job = tracker.plan(stored, submitted, lecture_id="lec-1")

        assert job.reset is True
        assert job.watermark == -1
        assert job.embedded_prefix == []
        assert len(job.pending) == 3

    def test_submission_shorter_than_prefix_resets(
        self, tracker: EmbeddingWatermarkTracker
    ) -> None:
        stored = [segment("a", ids=["1"]), segment("b", ids=["1"])]

        job = tracker.plan(stored, [segment("a")])

        assert job.reset is True
        assert job.watermark == -1
        assert [s.text for s in job.pending] == ["a"]


def test_join_segments_uses_newlines() -> None:
    assert join_segments([segment("one"), segment("two")]) == "one\ntwo"
    assert join_segments([]) == ""
