"""Chat persistence: courses, course chats and append-only messages in Supabase."""

from datetime import UTC, datetime
from typing import Any

from supabase import Client

from src.utils.logging import get_logger

from .schemas import ChatRecord, CourseRecord, Message

logger = get_logger(__name__)

COURSES_TABLE = "courses"
CHATS_TABLE = "chats"
MESSAGES_TABLE = "messages"


class ChatStore:
    """Service for chat and message rows.

    Messages are written with an upsert keyed on their id, so a client that
    retries a turn with the same message id never creates a duplicate.
    """

    def __init__(self, client: Client):
        self.client = client

    async def get_course(self, course_id: str) -> CourseRecord | None:
        try:
            response = (
                self.client.table(COURSES_TABLE)
                .select("id, user_id, name")
                .eq("id", course_id)
                .execute()
            )
        except Exception as e:
            logger.exception("course_fetch_failed", course_id=course_id, error_type=type(e).__name__)
            raise

        if not response.data:
            return None
        return CourseRecord.model_validate(response.data[0])

    async def get_chat(self, chat_id: str) -> ChatRecord | None:
        try:
            response = (
                self.client.table(CHATS_TABLE)
                .select("id, course_id, user_id, title, created_at")
                .eq("id", chat_id)
                .execute()
            )
        except Exception as e:
            logger.exception("chat_fetch_failed", chat_id=chat_id, error_type=type(e).__name__)
            raise

        if not response.data:
            return None
        return ChatRecord.model_validate(response.data[0])

    async def create_chat(
        self, chat_id: str, course_id: str, user_id: str, title: str
    ) -> ChatRecord:
        """Create a chat unless one with this id already exists.

        Two first requests racing on the same id both end up reading the row
        that won.

        Returns:
            The stored chat, which may belong to another user if the id was
            already taken.
        """
        data = {
            "id": chat_id,
            "course_id": course_id,
            "user_id": user_id,
            "title": title,
            "created_at": datetime.now(UTC).isoformat(),
        }
        try:
            self.client.table(CHATS_TABLE).upsert(
                data, on_conflict="id", ignore_duplicates=True
            ).execute()
        except Exception as e:
            logger.exception("chat_create_failed", chat_id=chat_id, error_type=type(e).__name__)
            raise

        chat = await self.get_chat(chat_id)
        if chat is None:
            raise RuntimeError(f"Chat {chat_id} missing after create")

        logger.info("chat_created", chat_id=chat_id, course_id=course_id)
        return chat

    async def upsert_message(
        self,
        message: Message,
        lecture_id: str | None = None,
        chat_id: str | None = None,
    ) -> None:
        """Insert a message unless a row with its id already exists.

        Existing rows are never touched, so retries are idempotent and a
        message id from another conversation cannot be rewritten. Exactly one
        of ``lecture_id`` and ``chat_id`` must be given.

        Raises:
            ValueError: If the owner is missing or ambiguous.
            Exception: If the database operation fails.
        """
        if (lecture_id is None) == (chat_id is None):
            raise ValueError("A message belongs to exactly one lecture or chat")

        data = message_to_row(message)
        data["lecture_id"] = lecture_id
        data["chat_id"] = chat_id

        try:
            self.client.table(MESSAGES_TABLE).upsert(
                data, on_conflict="id", ignore_duplicates=True
            ).execute()
        except Exception as e:
            logger.exception(
                "message_upsert_failed",
                message_id=message.id,
                role=message.role,
                error_type=type(e).__name__,
            )
            raise

        logger.info(
            "message_upserted",
            message_id=message.id,
            role=message.role,
            lecture_id=lecture_id,
            chat_id=chat_id,
            parts=len(message.parts),
        )

    async def list_messages(
        self, lecture_id: str | None = None, chat_id: str | None = None
    ) -> list[Message]:
        """Return the stored messages of a lecture or chat, oldest first."""
        query = self.client.table(MESSAGES_TABLE).select(
            "id, role, parts, attachments, created_at"
        )
        if lecture_id is not None:
            query = query.eq("lecture_id", lecture_id)
        if chat_id is not None:
            query = query.eq("chat_id", chat_id)

        try:
            response = query.order("created_at").execute()
        except Exception as e:
            logger.exception("messages_fetch_failed", error_type=type(e).__name__)
            raise

        return [Message.model_validate(row) for row in response.data or []]


def message_to_row(message: Message) -> dict[str, Any]:
    return message.model_dump(mode="json", include={"id", "role", "parts", "attachments", "created_at"})
