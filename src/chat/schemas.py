"""Pydantic schemas for chat messages, requests and stream frames."""

from datetime import UTC, datetime
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


def utc_now() -> datetime:
    return datetime.now(UTC)


# ==============================================================================
# Message parts
# ==============================================================================


class TextMessagePart(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ReasoningMessagePart(BaseModel):
    type: Literal["reasoning"] = "reasoning"
    reasoning: str


class ToolCallMessagePart(BaseModel):
    """A tool invocation made while generating an answer, with its result."""

    type: Literal["tool-call"] = "tool-call"
    tool_call_id: str
    tool_name: str
    args: dict[str, Any] = Field(default_factory=dict)
    result: Any = None


MessagePart = Annotated[
    TextMessagePart | ReasoningMessagePart | ToolCallMessagePart,
    Field(discriminator="type"),
]


class Attachment(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    url: str
    name: str | None = None
    content_type: str | None = Field(default=None, alias="contentType")


class Message(BaseModel):
    """A chat message as exchanged with clients and stored.

    Messages are created once and never edited. Clients may still send the
    legacy ``content`` string instead of ``parts``; it becomes a text part.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(min_length=1)
    role: Literal["user", "assistant", "system"]
    parts: list[MessagePart] = Field(default_factory=list)
    attachments: list[Attachment] = Field(
        default_factory=list, alias="experimental_attachments"
    )
    created_at: datetime = Field(default_factory=utc_now, alias="createdAt")

    @model_validator(mode="before")
    @classmethod
    def parts_from_content(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("parts") and data.get("content"):
            data = {**data, "parts": [{"type": "text", "text": data["content"]}]}
        return data

    @property
    def text(self) -> str:
        """Concatenated text parts."""
        return "".join(part.text for part in self.parts if isinstance(part, TextMessagePart))


def get_most_recent_user_message(messages: list[Message]) -> Message | None:
    user_messages = [message for message in messages if message.role == "user"]
    return user_messages[-1] if user_messages else None


# ==============================================================================
# Requests
# ==============================================================================


class LectureChatRequest(BaseModel):
    """Body of the single-lecture chat endpoint."""

    id: str = Field(min_length=1)
    messages: list[Message] = Field(min_length=1)


class CourseChatRequest(BaseModel):
    """Body of the course-wide chat endpoint. ``id`` is the chat id."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(min_length=1)
    course_id: str = Field(alias="courseId", min_length=1)
    messages: list[Message] = Field(min_length=1)


# ==============================================================================
# Records
# ==============================================================================


class ChatRecord(BaseModel):
    id: str
    course_id: str
    user_id: str
    title: str = ""
    created_at: datetime | None = None


class CourseRecord(BaseModel):
    id: str
    user_id: str
    name: str = ""


# ==============================================================================
# Streaming
# ==============================================================================


class ChatTurnState(str, Enum):
    RECEIVED = "received"
    CONTEXT_ASSEMBLED = "context_assembled"
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"


class StreamFrame(BaseModel):
    """One event sent to the client. ``finish`` and ``error`` are terminal."""

    type: Literal[
        "text-delta", "reasoning-delta", "tool-call", "tool-result", "finish", "error"
    ]
    text: str | None = None
    tool_call_id: str | None = None
    tool_name: str | None = None
    args: dict[str, Any] | None = None
    result: Any = None
    message_id: str | None = None
    error: str | None = None
    complete: bool = False

    def encode(self) -> bytes:
        """Serialize as one NDJSON line."""
        return self.model_dump_json(exclude_none=True).encode("utf-8") + b"\n"
