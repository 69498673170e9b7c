"""Client initialization utilities.

Service handles for the embedding API and Supabase are built once by process
bootstrap (the FastAPI lifespan or the CLI) and injected into the services that
use them.
"""

from dataclasses import dataclass

from openai import AsyncOpenAI
from supabase import Client, create_client

from src.rag_pipeline.config import LectureRAGConfig


@dataclass
class ServiceClients:
    """External service handles shared by one process.

    Attributes:
        embedding_client: AsyncOpenAI client for generating embeddings.
        supabase: Supabase client for relational rows and the vector table.
    """

    embedding_client: AsyncOpenAI
    supabase: Client


def get_embedding_client(config: LectureRAGConfig) -> AsyncOpenAI:
    """Build the OpenAI-compatible embedding client for the configured provider.

    Ollama does not need a real API key; every other provider does.

    Raises:
        ValueError: If the provider requires an API key and none is configured.
    """
    if config.embedding_provider == "ollama":
        api_key = "ollama"
    else:
        api_key = config.embedding_api_key
        if not api_key:
            raise ValueError("EMBEDDING_API_KEY environment variable is required")

    return AsyncOpenAI(
        base_url=config.embedding_base_url,
        api_key=api_key,
        timeout=config.embedding_timeout_seconds,
        max_retries=0,
    )


def get_service_clients(config: LectureRAGConfig) -> ServiceClients:
    """Initialize and return the embedding and Supabase clients.

    Args:
        config: Pipeline configuration holding credentials and endpoints.

    Returns:
        ServiceClients with both handles.

    Raises:
        ValueError: If required settings are missing.

    Examples:
        >>> clients = get_service_clients(get_config())
        >>> storage = StorageService(config, clients.supabase)
    """
    embedding_client = get_embedding_client(config)

    if not config.supabase_url or not config.supabase_key:
        raise ValueError(
            "SUPABASE_URL and SUPABASE_SERVICE_KEY environment variables are required"
        )

    supabase = create_client(config.supabase_url, config.supabase_key)

    return ServiceClients(embedding_client=embedding_client, supabase=supabase)
