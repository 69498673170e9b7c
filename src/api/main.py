"""FastAPI application for lecture transcripts and lecture chat.

Provides the transcript update endpoint (incremental embedding), streaming
single-lecture and course-wide chat endpoints, and conversation history, all
behind Supabase JWT authentication.
"""

import os
from collections.abc import AsyncIterator
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, HTTPException, Request, Security
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from httpx import AsyncClient
from pydantic import BaseModel

from src.agent.agent import create_course_agent, create_lecture_agent, create_title_agent
from src.agent.config import get_chat_config
from src.chat.schemas import CourseChatRequest, LectureChatRequest, Message, StreamFrame
from src.chat.store import ChatStore
from src.chat.stream_coordinator import ChatStreamCoordinator
from src.rag_pipeline.chunking_service import ChunkingService
from src.rag_pipeline.config import get_config
from src.rag_pipeline.embedding_service import EmbeddingService
from src.rag_pipeline.indexer import EmbeddingIndexer
from src.rag_pipeline.pipeline import TranscriptEmbeddingPipeline
from src.rag_pipeline.schemas import TranscriptSegment
from src.rag_pipeline.storage_service import StorageService
from src.utils.clients import get_service_clients
from src.utils.exceptions import AuthorizationError, UpstreamServiceError, ValidationError
from src.utils.logging import get_logger

logger = get_logger(__name__)

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


# ==============================================================================
# Lifespan Management
# ==============================================================================


async def lifespan(app: FastAPI):  # type: ignore[misc]
    """Lifecycle manager for the FastAPI application.

    Builds every service handle once and stores it on ``app.state``; request
    handlers receive them through the dependency getters below.
    """
    logger.info("application_startup_started")

    try:
        config = get_config()
        chat_config = get_chat_config()
        clients = get_service_clients(config)

        storage = StorageService(config, clients.supabase)
        embedding_service = EmbeddingService(config, clients.embedding_client)

        app.state.config = config
        app.state.http_client = AsyncClient()
        app.state.pipeline = TranscriptEmbeddingPipeline(
            config=config,
            storage_service=storage,
            chunking_service=ChunkingService(config),
            indexer=EmbeddingIndexer(embedding_service, storage),
        )
        app.state.coordinator = ChatStreamCoordinator(
            config=chat_config,
            storage=storage,
            chat_store=ChatStore(clients.supabase),
            embedding_service=embedding_service,
            lecture_agent=create_lecture_agent(),
            course_agent=create_course_agent(),
            title_agent=create_title_agent(),
        )

        logger.info(
            "application_startup_completed",
            services=["http", "pipeline", "coordinator"],
            max_steps=chat_config.max_steps,
            token_budget=chat_config.token_budget,
        )

    except Exception:
        logger.exception("application_startup_failed")
        raise

    yield  # Application runs here

    # Shutdown: Clean up resources
    logger.info("application_shutdown_started")

    await app.state.http_client.aclose()

    logger.info("application_shutdown_completed")


# ==============================================================================
# FastAPI Application Setup
# ==============================================================================

app = FastAPI(
    title="Lecture Chat API",
    description="Incremental transcript embedding and token-budgeted lecture chat",
    version="1.0.0",
    lifespan=lifespan,
)

security = HTTPBearer()

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ==============================================================================
# Error Handling
# ==============================================================================


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(
        status_code=422,
        content={"detail": exc.message, "errors": exc.details},
    )


@app.exception_handler(AuthorizationError)
async def authorization_error_handler(request: Request, exc: AuthorizationError):
    return JSONResponse(status_code=403, content={"detail": "Access denied"})


@app.exception_handler(UpstreamServiceError)
async def upstream_error_handler(request: Request, exc: UpstreamServiceError):
    return JSONResponse(status_code=502, content={"detail": exc.message})


# ==============================================================================
# Dependencies
# ==============================================================================


def get_pipeline(request: Request) -> TranscriptEmbeddingPipeline:
    return request.app.state.pipeline


def get_coordinator(request: Request) -> ChatStreamCoordinator:
    return request.app.state.coordinator


async def verify_token(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Security(security),
) -> dict[str, Any]:
    """Verify the JWT token from Supabase and return the user information.

    Args:
        request: Incoming request, used to reach the shared HTTP client.
        credentials: The HTTP Authorization credentials containing the bearer token.

    Returns:
        User information from Supabase.

    Raises:
        HTTPException: If the token is invalid or the user cannot be verified.
    """
    logger.info("auth_verification_started")

    try:
        token = credentials.credentials

        http_client = getattr(request.app.state, "http_client", None)
        if http_client is None:
            logger.error("auth_verification_failed", reason="http_client_not_initialized")
            raise HTTPException(status_code=500, detail="HTTP client not initialized")

        config = request.app.state.config

        # Make request to Supabase auth API to get user info
        response = await http_client.get(
            f"{config.supabase_url}/auth/v1/user",
            headers={"Authorization": f"Bearer {token}", "apikey": config.supabase_key},
        )

        if response.status_code != 200:
            logger.warning(
                "auth_verification_failed",
                status_code=response.status_code,
                response_text=response.text[:200],
            )
            raise HTTPException(status_code=401, detail="Invalid authentication token")

        user_data = response.json()

        logger.info("auth_verification_completed", user_id=user_data.get("id"))

        return user_data

    except HTTPException:
        raise
    except Exception as e:
        logger.exception("auth_verification_error")
        raise HTTPException(status_code=401, detail=f"Authentication error: {str(e)}")


# ==============================================================================
# Request/Response Models
# ==============================================================================


class TranscriptUpdateRequest(BaseModel):
    """Full transcript as currently known to the client."""

    transcript: list[TranscriptSegment]


class TranscriptUpdateResponse(BaseModel):
    message: str
    embedded_segments: int
    new_embedding_ids: list[str]


# ==============================================================================
# Helper Functions
# ==============================================================================


async def encode_frames(frames: AsyncIterator[StreamFrame]) -> AsyncIterator[bytes]:
    """Encode stream frames as NDJSON lines."""
    async for frame in frames:
        yield frame.encode()


def stream_response(frames: AsyncIterator[StreamFrame]) -> StreamingResponse:
    return StreamingResponse(encode_frames(frames), media_type="application/x-ndjson")


# ==============================================================================
# API Endpoints
# ==============================================================================


@app.get("/health")
async def health_check(request: Request):
    """Health check endpoint.

    Returns:
        Health status and timestamp.
    """
    state = request.app.state
    return {
        "status": "healthy",
        "timestamp": datetime.now(UTC).isoformat(),
        "services": {
            "http_client": getattr(state, "http_client", None) is not None,
            "pipeline": getattr(state, "pipeline", None) is not None,
            "coordinator": getattr(state, "coordinator", None) is not None,
        },
    }


@app.patch("/api/lectures/{lecture_id}/transcript", response_model=TranscriptUpdateResponse)
async def update_transcript(
    lecture_id: str,
    body: TranscriptUpdateRequest,
    user: dict[str, Any] = Depends(verify_token),
    pipeline: TranscriptEmbeddingPipeline = Depends(get_pipeline),
):
    """Save a lecture transcript and embed any new text past the watermark."""
    result = await pipeline.update_transcript(lecture_id, user["id"], body.transcript)

    return TranscriptUpdateResponse(
        message="Transcript updated",
        embedded_segments=result.embedded_segments,
        new_embedding_ids=result.new_embedding_ids,
    )


@app.post("/api/lectures/{lecture_id}/chat")
async def lecture_chat(
    lecture_id: str,
    body: LectureChatRequest,
    user: dict[str, Any] = Depends(verify_token),
    coordinator: ChatStreamCoordinator = Depends(get_coordinator),
):
    """Chat about one lecture with a streaming NDJSON response."""
    logger.info(
        "lecture_chat_request_started",
        lecture_id=lecture_id,
        user_id=user["id"],
        messages=len(body.messages),
    )

    turn = await coordinator.receive_lecture_turn(user["id"], lecture_id, body)
    return stream_response(coordinator.stream_turn(turn))


@app.post("/api/chat/course")
async def course_chat(
    body: CourseChatRequest,
    user: dict[str, Any] = Depends(verify_token),
    coordinator: ChatStreamCoordinator = Depends(get_coordinator),
):
    """Chat across every lecture of a course with a streaming NDJSON response."""
    logger.info(
        "course_chat_request_started",
        chat_id=body.id,
        course_id=body.course_id,
        user_id=user["id"],
        messages=len(body.messages),
    )

    turn = await coordinator.receive_course_turn(user["id"], body)
    return stream_response(coordinator.stream_turn(turn))


@app.get("/api/lectures/{lecture_id}/messages", response_model=list[Message])
async def lecture_messages(
    lecture_id: str,
    user: dict[str, Any] = Depends(verify_token),
    coordinator: ChatStreamCoordinator = Depends(get_coordinator),
):
    return await coordinator.list_lecture_messages(user["id"], lecture_id)


@app.get("/api/chat/{chat_id}/messages", response_model=list[Message])
async def chat_messages(
    chat_id: str,
    user: dict[str, Any] = Depends(verify_token),
    coordinator: ChatStreamCoordinator = Depends(get_coordinator),
):
    return await coordinator.list_chat_messages(user["id"], chat_id)
