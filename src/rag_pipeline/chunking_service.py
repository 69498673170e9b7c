"""Chunking service for splitting transcript text into overlapping pieces."""

from langchain_text_splitters import RecursiveCharacterTextSplitter

from src.utils.logging import get_logger

from .config import LectureRAGConfig

logger = get_logger(__name__)

# Paragraph, then line, then sentence, then word, then arbitrary boundaries.
SEPARATORS = ["\n\n", "\n", ". ", "! ", "? ", " ", ""]


class ChunkingService:
    """Service for splitting transcript text into bounded, overlapping chunks.

    Chunks are at most ``chunk_size`` characters and consecutive chunks share
    up to ``chunk_overlap`` characters. Splitting is deterministic: the same
    text and settings always produce the same chunks.
    """

    def __init__(self, config: LectureRAGConfig):
        """Initialize chunking service with configuration.

        Args:
            config: Configuration object with chunk size and overlap.

        Raises:
            ValueError: If the overlap is not smaller than the chunk size.
        """
        if config.chunk_overlap >= config.chunk_size:
            raise ValueError("chunk_overlap must be smaller than chunk_size")

        self.config = config
        self.splitter = RecursiveCharacterTextSplitter(
            chunk_size=config.chunk_size,
            chunk_overlap=config.chunk_overlap,
            length_function=len,
            separators=SEPARATORS,
            keep_separator="end",
        )
        logger.info(
            "chunking_service_initialized",
            chunk_size=config.chunk_size,
            chunk_overlap=config.chunk_overlap,
        )

    def split_text(self, text: str) -> list[str]:
        """Split text into overlapping chunks.

        Args:
            text: Plain text, usually transcript segments joined by newlines.

        Returns:
            Ordered list of chunks. Empty for blank input.
        """
        if not text or not text.strip():
            return []

        chunks = self.splitter.split_text(text)

        logger.info(
            "chunking_completed",
            text_length=len(text),
            chunks_created=len(chunks),
        )
        return chunks
