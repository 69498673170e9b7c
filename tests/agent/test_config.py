"""Unit tests for agent configuration utilities.

Tests functions for loading LLM configuration and chat settings from
environment variables.
"""

import pydantic
import pytest
from pydantic_ai.models.openai import OpenAIChatModel

from src.agent.config import (
    ChatConfig,
    get_chars_per_token,
    get_chat_config,
    get_context_token_budget,
    get_generation_timeout,
    get_max_steps,
    get_model,
)


@pytest.mark.unit
class TestGetModel:
    """Test get_model configuration function."""

    def test_get_model_returns_openai_model(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that get_model returns an OpenAIChatModel instance."""
        monkeypatch.setenv("LLM_CHOICE", "gpt-4o-mini")
        monkeypatch.setenv("LLM_BASE_URL", "https://api.openai.com/v1")
        monkeypatch.setenv("LLM_API_KEY", "test-key")

        result = get_model()

        assert isinstance(result, OpenAIChatModel)
        assert result.model_name == "gpt-4o-mini"

    def test_get_model_uses_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that get_model uses default values when env vars not set."""
        monkeypatch.delenv("LLM_CHOICE", raising=False)
        monkeypatch.delenv("LLM_BASE_URL", raising=False)
        monkeypatch.delenv("LLM_API_KEY", raising=False)

        result = get_model()

        assert isinstance(result, OpenAIChatModel)
        assert result.model_name == "gpt-4o-mini"

    def test_get_model_with_custom_llm_choice(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LLM_CHOICE", "gpt-4.1")
        monkeypatch.setenv("LLM_API_KEY", "test-key")

        result = get_model()

        assert result.model_name == "gpt-4.1"


@pytest.mark.unit
class TestChatSettings:
    """Test chat setting getters."""

    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for name in (
            "CHAT_MAX_STEPS",
            "GENERATION_TIMEOUT_SECONDS",
            "CONTEXT_TOKEN_BUDGET",
            "CHARS_PER_TOKEN",
        ):
            monkeypatch.delenv(name, raising=False)

        assert get_max_steps() == 5
        assert get_generation_timeout() == 60.0
        assert get_context_token_budget() == 900_000
        assert get_chars_per_token() == 4.0

    def test_custom_values(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CHAT_MAX_STEPS", "3")
        monkeypatch.setenv("GENERATION_TIMEOUT_SECONDS", "12.5")
        monkeypatch.setenv("CONTEXT_TOKEN_BUDGET", "1000")
        monkeypatch.setenv("CHARS_PER_TOKEN", "3.5")

        assert get_max_steps() == 3
        assert get_generation_timeout() == 12.5
        assert get_context_token_budget() == 1000
        assert get_chars_per_token() == 3.5


@pytest.mark.unit
class TestChatConfig:
    """Test ChatConfig model."""

    def test_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CONTEXT_BUDGET_RATIO", "0.8")
        monkeypatch.setenv("TITLE_TIMEOUT_SECONDS", "2")

        config = get_chat_config()

        assert config.budget_ratio == 0.8
        assert config.title_timeout_seconds == 2.0

    def test_explicit_values(self) -> None:
        config = ChatConfig(max_steps=2, token_budget=100, generation_timeout_seconds=1)

        assert config.max_steps == 2
        assert config.token_budget == 100
        assert config.generation_timeout_seconds == 1

    def test_rejects_invalid_values(self) -> None:
        with pytest.raises(pydantic.ValidationError):
            ChatConfig(max_steps=0)
        with pytest.raises(pydantic.ValidationError):
            ChatConfig(budget_ratio=1.5)
