"""Agent configuration utilities.

Provides functions for loading LLM configuration and chat settings from
environment variables.
"""

import os
from pathlib import Path

from dotenv import load_dotenv
from openai import AsyncOpenAI
from pydantic import BaseModel, Field
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.providers.openai import OpenAIProvider

# Check if we're in production
is_production = os.getenv("ENVIRONMENT") == "production"

if not is_production:
    # Development: prioritize .env file
    project_root = Path(__file__).resolve().parent.parent.parent
    dotenv_path = project_root / ".env"
    load_dotenv(dotenv_path, override=True)
else:
    # Production: use cloud platform env vars only
    load_dotenv()


def get_model() -> OpenAIChatModel:
    """Get the configured LLM model for the chat agents.

    Reads configuration from environment variables:
    - LLM_CHOICE: Model name (default: gpt-4o-mini)
    - LLM_BASE_URL: API base URL (default: https://api.openai.com/v1)
    - LLM_API_KEY: API key (default: ollama for local testing)

    The underlying client does not retry; a failed turn is retried by the
    caller as a whole.

    Returns:
        OpenAIChatModel configured with environment settings.
    """
    llm = os.getenv("LLM_CHOICE") or "gpt-4o-mini"
    base_url = os.getenv("LLM_BASE_URL") or "https://api.openai.com/v1"
    api_key = os.getenv("LLM_API_KEY") or "ollama"

    client = AsyncOpenAI(
        base_url=base_url,
        api_key=api_key,
        timeout=get_generation_timeout(),
        max_retries=0,
    )
    return OpenAIChatModel(llm, provider=OpenAIProvider(openai_client=client))


def get_max_steps() -> int:
    """Get the maximum number of model requests per chat turn.

    Reads CHAT_MAX_STEPS from environment (default: 5). Each tool round trip
    costs one step.
    """
    return int(os.getenv("CHAT_MAX_STEPS", "5"))


def get_generation_timeout() -> float:
    """Get the wall-clock limit in seconds for one generation (default: 60)."""
    return float(os.getenv("GENERATION_TIMEOUT_SECONDS", "60"))


def get_context_token_budget() -> int:
    """Get the estimated-token ceiling for assembled chat context.

    Reads CONTEXT_TOKEN_BUDGET from environment (default: 900000), sized
    below the generation model's context window.
    """
    return int(os.getenv("CONTEXT_TOKEN_BUDGET", "900000"))


def get_chars_per_token() -> float:
    """Get the characters-per-token ratio used to estimate token counts.

    Reads CHARS_PER_TOKEN from environment (default: 4). This is a rough
    approximation, not any particular tokenizer.
    """
    return float(os.getenv("CHARS_PER_TOKEN", "4"))


class ChatConfig(BaseModel):
    """Settings for one chat turn: context budget, step limit and timeouts."""

    max_steps: int = Field(default_factory=get_max_steps, ge=1)
    generation_timeout_seconds: float = Field(default_factory=get_generation_timeout, gt=0)
    token_budget: int = Field(default_factory=get_context_token_budget, gt=0)
    budget_ratio: float = Field(
        default_factory=lambda: float(os.getenv("CONTEXT_BUDGET_RATIO", "0.9")),
        gt=0,
        le=1,
    )
    chars_per_token: float = Field(default_factory=get_chars_per_token, gt=0)
    title_timeout_seconds: float = Field(
        default_factory=lambda: float(os.getenv("TITLE_TIMEOUT_SECONDS", "10")),
        gt=0,
    )


def get_chat_config() -> ChatConfig:
    """Get validated chat configuration from the environment."""
    return ChatConfig()
