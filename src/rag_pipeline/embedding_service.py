"""Embedding service for generating text embeddings via OpenAI-compatible APIs."""

from openai import AsyncOpenAI, OpenAIError

from src.utils.exceptions import UpstreamServiceError
from src.utils.logging import get_logger

from .config import LectureRAGConfig

logger = get_logger(__name__)


class EmbeddingService:
    """Service for generating text embeddings.

    Works with any OpenAI-compatible embeddings endpoint (OpenAI, Ollama,
    OpenRouter). The client is injected so one handle is shared per process.
    """

    def __init__(self, config: LectureRAGConfig, client: AsyncOpenAI):
        """Initialize embedding service.

        Args:
            config: Configuration object with embedding model settings.
            client: OpenAI-compatible async client.
        """
        self.config = config
        self.client = client
        logger.info(
            "embedding_service_initialized",
            provider=config.embedding_provider,
            model=config.embedding_model,
        )

    async def embed_text(self, text: str) -> list[float]:
        """Generate embedding for a single text.

        Args:
            text: Text content to embed.

        Returns:
            Embedding vector as a list of floats.

        Raises:
            UpstreamServiceError: If the embedding request fails or times out.
        """
        embeddings = await self._create([text])
        return embeddings[0]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for multiple texts.

        Texts are sent in requests of ``embedding_batch_size`` inputs. A failure
        in any request fails the whole call.

        Args:
            texts: List of text strings to embed.

        Returns:
            List of embedding vectors in the same order as input texts.

        Raises:
            UpstreamServiceError: If any batch request fails.
        """
        batch_size = self.config.embedding_batch_size
        logger.info(
            "batch_embedding_started",
            count=len(texts),
            batch_size=batch_size,
        )

        embeddings: list[list[float]] = []

        for i in range(0, len(texts), batch_size):
            batch = texts[i : i + batch_size]
            embeddings.extend(await self._create(batch))

            logger.debug(
                "batch_completed",
                batch_num=i // batch_size + 1,
                count=len(batch),
            )

        logger.info(
            "batch_embedding_completed",
            total_embeddings=len(embeddings),
        )
        return embeddings

    async def _create(self, inputs: list[str]) -> list[list[float]]:
        try:
            response = await self.client.embeddings.create(
                input=inputs,
                model=self.config.embedding_model,
            )
        except OpenAIError as e:
            logger.exception(
                "embedding_failed",
                count=len(inputs),
                error_type=type(e).__name__,
            )
            raise UpstreamServiceError(f"Embedding request failed: {e}") from e

        # The API may return items out of order; index is authoritative.
        ordered = sorted(response.data, key=lambda item: item.index)
        if len(ordered) != len(inputs):
            raise UpstreamServiceError(
                f"Embedding service returned {len(ordered)} vectors for {len(inputs)} inputs"
            )

        return [item.embedding for item in ordered]
