"""Agent dependency definitions.

Defines the AgentDeps dataclass that holds runtime dependencies
passed to agent tools during execution.
"""

from dataclasses import dataclass

from src.rag_pipeline.embedding_service import EmbeddingService
from src.rag_pipeline.storage_service import StorageService


@dataclass
class AgentDeps:
    """Runtime dependencies for agent tools.

    Injected into tools via RunContext. The lecture and course ids scope
    vector search to the conversation the agent is answering.

    Attributes:
        storage: Storage service used for vector similarity search.
        embedding_service: Embedding service for query embeddings.
        lecture_id: Lecture of a single-lecture chat.
        course_id: Course of a course-wide chat.
        max_steps: Model requests allowed in one turn. Tools are withheld
            on the last one.
    """

    storage: StorageService
    embedding_service: EmbeddingService
    lecture_id: str | None = None
    course_id: str | None = None
    max_steps: int = 5
