"""Chat turn orchestration: validation, persistence, context and streaming.

A turn moves through RECEIVED -> CONTEXT_ASSEMBLED -> GENERATING and ends in
COMPLETED or FAILED. RECEIVED work (ownership check, user message upsert)
happens before the response stream opens so that access and validation errors
reach the caller as plain HTTP errors. Everything after that is reported
through stream frames, ending with exactly one ``finish`` or ``error`` frame.
"""

import asyncio
import uuid
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Literal

from pydantic_ai import Agent
from pydantic_ai.exceptions import UsageLimitExceeded
from pydantic_ai.messages import (
    FunctionToolCallEvent,
    FunctionToolResultEvent,
    ModelMessage,
    ModelRequest,
    ModelResponse,
    PartDeltaEvent,
    PartStartEvent,
    RetryPromptPart,
    TextPart,
    TextPartDelta,
    ThinkingPart,
    ThinkingPartDelta,
    ToolCallPart,
    ToolReturnPart,
)
from pydantic_ai.usage import UsageLimits

from src.agent.config import ChatConfig
from src.agent.deps import AgentDeps
from src.rag_pipeline.embedding_service import EmbeddingService
from src.rag_pipeline.schemas import LectureRecord
from src.rag_pipeline.storage_service import StorageService
from src.utils.exceptions import (
    AuthorizationError,
    LectureChatError,
    UpstreamServiceError,
    ValidationError,
)
from src.utils.logging import get_logger

from .context import AssembledContext, ContextBudgetAssembler
from .prompts import (
    build_message_history,
    course_chat_prompt,
    lecture_chat_prompt,
    lecture_to_document,
)
from .schemas import (
    ChatRecord,
    ChatTurnState,
    CourseChatRequest,
    LectureChatRequest,
    Message,
    MessagePart,
    ReasoningMessagePart,
    StreamFrame,
    TextMessagePart,
    ToolCallMessagePart,
    get_most_recent_user_message,
)
from .store import ChatStore

logger = get_logger(__name__)

TITLE_MAX_CHARS = 80


@dataclass
class ChatTurn:
    """State of one conversational turn. Lives for a single request."""

    kind: Literal["lecture", "course"]
    user_id: str
    user_message: Message
    history: list[Message]
    lecture: LectureRecord | None = None
    chat: ChatRecord | None = None
    state: ChatTurnState = ChatTurnState.RECEIVED
    context: AssembledContext | None = None
    assistant_message_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def owner(self) -> dict[str, str]:
        """Keyword arguments naming the message log this turn writes to."""
        if self.lecture is not None:
            return {"lecture_id": self.lecture.id}
        return {"chat_id": self.chat.id}

    @property
    def course_id(self) -> str | None:
        if self.chat is not None:
            return self.chat.course_id
        return None


class ChatStreamCoordinator:
    """Runs chat turns for single-lecture and course-wide conversations.

    Holds no per-request state; one instance serves every request of the
    process.
    """

    def __init__(
        self,
        config: ChatConfig,
        storage: StorageService,
        chat_store: ChatStore,
        embedding_service: EmbeddingService,
        lecture_agent: Agent[AgentDeps, str],
        course_agent: Agent[AgentDeps, str],
        title_agent: Agent[None, str] | None = None,
    ):
        self.config = config
        self.storage = storage
        self.chat_store = chat_store
        self.embedding_service = embedding_service
        self.lecture_agent = lecture_agent
        self.course_agent = course_agent
        self.title_agent = title_agent
        self.assembler = ContextBudgetAssembler(
            token_budget=config.token_budget,
            budget_ratio=config.budget_ratio,
            chars_per_token=config.chars_per_token,
        )

    # ==========================================================================
    # RECEIVED
    # ==========================================================================

    async def receive_lecture_turn(
        self, user_id: str, lecture_id: str, request: LectureChatRequest
    ) -> ChatTurn:
        """Validate a lecture chat request and persist its user message.

        Raises:
            ValidationError: If the request holds no usable user message.
            AuthorizationError: If the lecture is missing or not the caller's.
            UpstreamServiceError: If the store cannot be reached.
        """
        user_message, history = split_messages(request.messages)

        try:
            lecture = await self.storage.get_lecture(lecture_id)
            if lecture is None or lecture.user_id != user_id:
                logger.warning(
                    "lecture_access_denied",
                    lecture_id=lecture_id,
                    user_id=user_id,
                    lecture_found=lecture is not None,
                )
                raise AuthorizationError()

            await self.chat_store.upsert_message(user_message, lecture_id=lecture_id)

        except LectureChatError:
            raise
        except Exception as e:
            raise UpstreamServiceError(f"Could not store the message: {e}") from e

        turn = ChatTurn(
            kind="lecture",
            user_id=user_id,
            user_message=user_message,
            history=history,
            lecture=lecture,
        )
        self._log_state(turn, history_messages=len(history))
        return turn

    async def receive_course_turn(
        self, user_id: str, request: CourseChatRequest
    ) -> ChatTurn:
        """Validate a course chat request, creating the chat on first use.

        Raises:
            ValidationError: If the request holds no usable user message.
            AuthorizationError: If the chat or course belongs to someone else.
            UpstreamServiceError: If the store cannot be reached.
        """
        user_message, history = split_messages(request.messages)

        try:
            chat = await self.chat_store.get_chat(request.id)
            if chat is None:
                course = await self.chat_store.get_course(request.course_id)
                if course is None or course.user_id != user_id:
                    logger.warning(
                        "course_access_denied",
                        course_id=request.course_id,
                        user_id=user_id,
                        course_found=course is not None,
                    )
                    raise AuthorizationError()

                title = await self.generate_title(user_message.text)
                chat = await self.chat_store.create_chat(
                    request.id, request.course_id, user_id, title
                )

            if chat.user_id != user_id or chat.course_id != request.course_id:
                logger.warning(
                    "chat_access_denied",
                    chat_id=request.id,
                    user_id=user_id,
                    course_id=request.course_id,
                )
                raise AuthorizationError()

            await self.chat_store.upsert_message(user_message, chat_id=chat.id)

        except LectureChatError:
            raise
        except Exception as e:
            raise UpstreamServiceError(f"Could not store the message: {e}") from e

        turn = ChatTurn(
            kind="course",
            user_id=user_id,
            user_message=user_message,
            history=history,
            chat=chat,
        )
        self._log_state(turn, history_messages=len(history))
        return turn

    async def generate_title(self, text: str) -> str:
        """Name a new chat after its first message.

        Falls back to the truncated message when the title agent is missing,
        slow or failing; a chat title never blocks the turn.
        """
        fallback = text.strip()[:TITLE_MAX_CHARS] or "New chat"
        if self.title_agent is None:
            return fallback

        try:
            result = await asyncio.wait_for(
                self.title_agent.run(text),
                timeout=self.config.title_timeout_seconds,
            )
        except TimeoutError:
            logger.warning("chat_title_generation_timeout")
            return fallback
        except Exception:
            logger.exception("chat_title_generation_failed")
            return fallback

        title = result.output.strip().strip('"')[:TITLE_MAX_CHARS]
        return title or fallback

    async def list_lecture_messages(self, user_id: str, lecture_id: str) -> list[Message]:
        """Return a lecture's stored conversation for its owner."""
        lecture = await self.storage.get_lecture(lecture_id)
        if lecture is None or lecture.user_id != user_id:
            raise AuthorizationError()
        return await self.chat_store.list_messages(lecture_id=lecture_id)

    async def list_chat_messages(self, user_id: str, chat_id: str) -> list[Message]:
        """Return a course chat's stored conversation for its owner."""
        chat = await self.chat_store.get_chat(chat_id)
        if chat is None or chat.user_id != user_id:
            raise AuthorizationError()
        return await self.chat_store.list_messages(chat_id=chat_id)

    # ==========================================================================
    # CONTEXT_ASSEMBLED -> GENERATING -> COMPLETED | FAILED
    # ==========================================================================

    async def stream_turn(self, turn: ChatTurn) -> AsyncIterator[StreamFrame]:
        """Stream the frames of a received turn.

        Generation runs in a producer task feeding a queue. Closing this
        iterator early (client disconnect) cancels the producer, which cancels
        the upstream model call; nothing is persisted in that case.
        """
        queue: asyncio.Queue[StreamFrame | None] = asyncio.Queue()
        producer = asyncio.create_task(self._produce(turn, queue))

        try:
            while True:
                frame = await queue.get()
                if frame is None:
                    break
                yield frame
        finally:
            if not producer.done():
                producer.cancel()
            await asyncio.gather(producer, return_exceptions=True)

    async def _produce(self, turn: ChatTurn, queue: asyncio.Queue) -> None:
        try:
            turn.context = await self._assemble_context(turn)
            self._log_state(
                turn,
                ChatTurnState.CONTEXT_ASSEMBLED,
                mode=turn.context.mode,
                included=len(turn.context.included_ids),
                excluded=len(turn.context.excluded_ids),
                estimated_tokens=turn.context.estimated_tokens,
            )

            self._log_state(turn, ChatTurnState.GENERATING)
            assistant_message = await self._generate(turn, queue)

            await self.chat_store.upsert_message(assistant_message, **turn.owner)
            self._log_state(
                turn,
                ChatTurnState.COMPLETED,
                assistant_message_id=assistant_message.id,
                parts=len(assistant_message.parts),
            )
            await queue.put(
                StreamFrame(
                    type="finish",
                    message_id=assistant_message.id,
                    text=assistant_message.text,
                    complete=True,
                )
            )

        except asyncio.CancelledError:
            self._log_state(turn, ChatTurnState.FAILED, reason="cancelled")
            raise

        except Exception as e:
            self._log_state(
                turn,
                ChatTurnState.FAILED,
                reason=failure_reason(e),
                error_type=type(e).__name__,
            )
            logger.exception("chat_turn_failed", kind=turn.kind, **turn.owner)
            await queue.put(StreamFrame(type="error", error=public_error(e), complete=True))

        finally:
            queue.put_nowait(None)

    async def _assemble_context(self, turn: ChatTurn) -> AssembledContext:
        if turn.kind == "lecture":
            lectures = [turn.lecture]
        else:
            lectures = await self.storage.list_course_lectures(turn.course_id)

        return self.assembler.assemble([lecture_to_document(lecture) for lecture in lectures])

    async def _generate(self, turn: ChatTurn, queue: asyncio.Queue) -> Message:
        if turn.kind == "lecture":
            agent = self.lecture_agent
            prompt = lecture_chat_prompt(turn.context.text, turn.user_message.text)
            deps = AgentDeps(
                storage=self.storage,
                embedding_service=self.embedding_service,
                lecture_id=turn.lecture.id,
                max_steps=self.config.max_steps,
            )
        else:
            agent = self.course_agent
            prompt = course_chat_prompt(turn.context.text, turn.user_message.text)
            deps = AgentDeps(
                storage=self.storage,
                embedding_service=self.embedding_service,
                course_id=turn.course_id,
                max_steps=self.config.max_steps,
            )

        async with asyncio.timeout(self.config.generation_timeout_seconds):
            async with agent.iter(
                prompt,
                deps=deps,
                message_history=build_message_history(turn.history),
                usage_limits=UsageLimits(request_limit=self.config.max_steps),
            ) as run:
                async for node in run:
                    if Agent.is_model_request_node(node):
                        async with node.stream(run.ctx) as request_stream:
                            async for event in request_stream:
                                frame = frame_for_model_event(event)
                                if frame is not None:
                                    await queue.put(frame)

                    elif Agent.is_call_tools_node(node):
                        async with node.stream(run.ctx) as tools_stream:
                            async for event in tools_stream:
                                frame = frame_for_tool_event(event)
                                if frame is not None:
                                    await queue.put(frame)

                result = run.result

        if result is None:
            raise UpstreamServiceError("Generation ended without a result")

        parts = parts_from_model_messages(result.new_messages())
        if not any(isinstance(part, TextMessagePart) for part in parts) and result.output:
            parts.append(TextMessagePart(text=result.output))

        return Message(id=turn.assistant_message_id, role="assistant", parts=parts)

    def _log_state(
        self, turn: ChatTurn, state: ChatTurnState | None = None, **context
    ) -> None:
        if state is not None:
            turn.state = state
        log = logger.warning if turn.state is ChatTurnState.FAILED else logger.info
        log(
            "chat_turn_state",
            state=turn.state.value,
            kind=turn.kind,
            user_message_id=turn.user_message.id,
            **turn.owner,
            **context,
        )


# ==============================================================================
# Helper Functions
# ==============================================================================


def split_messages(messages: list[Message]) -> tuple[Message, list[Message]]:
    """Return the most recent user message and the messages before it.

    Raises:
        ValidationError: If there is no user message or it has no text.
    """
    user_message = get_most_recent_user_message(messages)
    if user_message is None:
        raise ValidationError("No user message found")
    if not user_message.text.strip():
        raise ValidationError("The user message has no text")

    index = messages.index(user_message)
    return user_message, messages[:index]


def frame_for_model_event(event) -> StreamFrame | None:
    """Translate a model streaming event into a client frame, if it has one."""
    if isinstance(event, PartStartEvent):
        if isinstance(event.part, TextPart) and event.part.content:
            return StreamFrame(type="text-delta", text=event.part.content)
        if isinstance(event.part, ThinkingPart) and event.part.content:
            return StreamFrame(type="reasoning-delta", text=event.part.content)

    elif isinstance(event, PartDeltaEvent):
        if isinstance(event.delta, TextPartDelta) and event.delta.content_delta:
            return StreamFrame(type="text-delta", text=event.delta.content_delta)
        if isinstance(event.delta, ThinkingPartDelta) and event.delta.content_delta:
            return StreamFrame(type="reasoning-delta", text=event.delta.content_delta)

    return None


def frame_for_tool_event(event) -> StreamFrame | None:
    if isinstance(event, FunctionToolCallEvent):
        return StreamFrame(
            type="tool-call",
            tool_call_id=event.part.tool_call_id,
            tool_name=event.part.tool_name,
            args=event.part.args_as_dict(),
        )
    if isinstance(event, FunctionToolResultEvent):
        part = event.part
        if isinstance(part, RetryPromptPart):
            result = part.model_response()
        else:
            result = part.content
        return StreamFrame(
            type="tool-result",
            tool_call_id=part.tool_call_id,
            tool_name=part.tool_name,
            result=result,
        )
    return None


def parts_from_model_messages(messages: list[ModelMessage]) -> list[MessagePart]:
    """Collect the assistant's text, reasoning and tool calls from a run.

    Adjacent text parts are merged. Tool results are attached to the call
    they answer.
    """
    parts: list[MessagePart] = []
    tool_calls: dict[str, ToolCallMessagePart] = {}

    for message in messages:
        if isinstance(message, ModelResponse):
            for part in message.parts:
                if isinstance(part, TextPart) and part.content:
                    if parts and isinstance(parts[-1], TextMessagePart):
                        parts[-1].text += part.content
                    else:
                        parts.append(TextMessagePart(text=part.content))
                elif isinstance(part, ThinkingPart) and part.content:
                    parts.append(ReasoningMessagePart(reasoning=part.content))
                elif isinstance(part, ToolCallPart):
                    call = ToolCallMessagePart(
                        tool_call_id=part.tool_call_id,
                        tool_name=part.tool_name,
                        args=part.args_as_dict(),
                    )
                    tool_calls[part.tool_call_id] = call
                    parts.append(call)

        elif isinstance(message, ModelRequest):
            for part in message.parts:
                if isinstance(part, ToolReturnPart) and part.tool_call_id in tool_calls:
                    tool_calls[part.tool_call_id].result = part.content

    return parts


def failure_reason(error: Exception) -> str:
    if isinstance(error, TimeoutError):
        return "timeout"
    if isinstance(error, UsageLimitExceeded):
        return "step_limit"
    return "upstream_error"


def public_error(error: Exception) -> str:
    """Message shown to the client in the terminal error frame."""
    if isinstance(error, TimeoutError):
        return "The assistant took too long to respond. Please try again."
    if isinstance(error, UsageLimitExceeded):
        return "The assistant needed too many steps to answer. Please try again."
    if isinstance(error, LectureChatError):
        return error.message
    return "An error occurred while generating a response. Please try again."
