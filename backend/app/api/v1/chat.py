"""
Chat API endpoints.

Thin wrapper around the property agent and its conversation memory.

Endpoints:
    POST /api/v1/chat                                 one query, one AgentResponse
    GET  /api/v1/chat/users/{user_id}/session         active session (messages included)
    GET  /api/v1/chat/users/{user_id}/preferences     stored preferences plus a summary
    GET  /api/v1/chat/users/{user_id}/sessions        recent sessions, newest first
    GET  /api/v1/chat/health
"""

import structlog
from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from app.agents.agent import PropertyAgent
from app.models.agent import AgentResponse
from app.models.memory import ConversationSession, PreferenceSummary, UserPreferences
from app.services.memory_manager import MemoryManager

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])


class ChatRequest(BaseModel):
    """Request body for the chat endpoint."""

    message: str
    user_id: str | None = None


class PreferencesResponse(BaseModel):
    preferences: UserPreferences | None
    summary: PreferenceSummary | None


class SessionsResponse(BaseModel):
    user_id: str
    sessions: list[ConversationSession]


def _get_agent(request: Request) -> PropertyAgent:
    agent = getattr(request.app.state, "agent", None)
    if agent is None:
        raise HTTPException(status_code=503, detail="Agent not available.")
    return agent


def _get_memory(request: Request) -> MemoryManager:
    memory = getattr(request.app.state, "memory", None)
    if memory is None:
        raise HTTPException(status_code=503, detail="Conversation memory not available.")
    return memory


@router.post("", response_model=AgentResponse)
async def chat(body: ChatRequest, request: Request) -> AgentResponse:
    """
    Answer one user query.

    Returns the parsed reasoning steps (with real tool results attached to
    each action) and the final answer. Passing a user_id enables the
    session, preference and search-history memory for that user.

    Example usage with curl:
    ```
    curl -X POST http://localhost:8000/api/v1/chat \\
      -H "Content-Type: application/json" \\
      -d '{"message": "Find me a 2BHK apartment in Kathmandu under NPR 30,000", "user_id": "u1"}'
    ```
    """
    if not body.message or not body.message.strip():
        raise HTTPException(status_code=422, detail="Message cannot be empty.")

    agent = _get_agent(request)
    structlog.contextvars.bind_contextvars(message_preview=body.message[:50])
    return await agent.process_query(body.message.strip(), user_id=body.user_id)


@router.get("/users/{user_id}/session", response_model=ConversationSession)
async def get_active_session(user_id: str, request: Request) -> ConversationSession:
    """The user's active session, resumed or created as needed."""
    memory = _get_memory(request)
    session = memory.get_session(user_id)
    if session is None:
        session = await memory.initialize_session(user_id)
    return session


@router.get("/users/{user_id}/preferences", response_model=PreferencesResponse)
async def get_preferences(user_id: str, request: Request) -> PreferencesResponse:
    memory = _get_memory(request)
    if memory.get_user_preferences(user_id) is None:
        await memory.initialize_session(user_id)
    return PreferencesResponse(
        preferences=memory.get_user_preferences(user_id),
        summary=memory.get_preference_summary(user_id),
    )


@router.get("/users/{user_id}/sessions", response_model=SessionsResponse)
async def list_sessions(user_id: str, request: Request, limit: int = 5) -> SessionsResponse:
    memory = _get_memory(request)
    sessions = await memory.get_conversation_history(user_id, limit=max(1, min(limit, 50)))
    return SessionsResponse(user_id=user_id, sessions=sessions)


@router.get("/health")
async def health_check() -> dict:
    """Health check for the chat service."""
    return {"status": "healthy", "service": "ghar-chat"}
