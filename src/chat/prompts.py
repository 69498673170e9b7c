"""Prompt formatting and message-history conversion for chat turns."""

from datetime import UTC, datetime

from pydantic_ai.messages import (
    ModelMessage,
    ModelRequest,
    ModelResponse,
    SystemPromptPart,
    TextPart,
    UserPromptPart,
)

from src.rag_pipeline.schemas import LectureRecord, TranscriptSegment

from .context import ContextDocument
from .schemas import Message

NO_DATE = datetime.min.replace(tzinfo=UTC)


def format_timestamp(seconds: float) -> str:
    """Format seconds as HH:MM:SS."""
    total = int(seconds)
    return f"{total // 3600:02d}:{(total % 3600) // 60:02d}:{total % 60:02d}"


def format_transcript(transcript: list[TranscriptSegment]) -> str:
    lines = "\n".join(
        f"{format_timestamp(segment.start)} {segment.text}" for segment in transcript
    )
    return f"Transcript:\n{lines}"


def lecture_to_document(lecture: LectureRecord) -> ContextDocument:
    return ContextDocument(
        identifier=lecture.id,
        title=lecture.title,
        text=format_transcript(lecture.transcript),
        recency=lecture.created_at or NO_DATE,
    )


def lecture_chat_prompt(context: str, message: str) -> str:
    if not context:
        context = "(The transcript is too long to include. Use search_lecture_content.)"
    return f"""Here is the transcript from the lecture:
------------
{context}
------------

Given the transcript, respond to the student's message:
{message}"""


def course_chat_prompt(context: str, message: str) -> str:
    if not context:
        context = "(No lecture transcripts fit in the context. Use search_lecture_content.)"
    return f"""Here is the relevant context from my past classes:
------------
{context}
------------

Given the context, respond to the student's message:
{message}"""


def build_message_history(messages: list[Message]) -> list[ModelMessage]:
    """Convert prior chat messages into model history.

    Only text parts are replayed; reasoning and tool calls from earlier turns
    are not sent back to the model. Messages without text are skipped.
    """
    history: list[ModelMessage] = []
    for message in messages:
        text = message.text
        if not text:
            continue
        if message.role == "user":
            history.append(ModelRequest(parts=[UserPromptPart(content=text)]))
        elif message.role == "assistant":
            history.append(ModelResponse(parts=[TextPart(content=text)]))
        else:
            history.append(ModelRequest(parts=[SystemPromptPart(content=text)]))
    return history
