"""Session affinity: resume the latest session or start a new one."""

from enum import Enum

from app.models.memory import ConversationSession

DEFAULT_SESSION_TIMEOUT_MS = 60 * 60 * 1000


class SessionDecision(str, Enum):
    RESUME = "resume"
    CREATE_NEW = "create_new"


def choose_session(
    candidate: ConversationSession | None,
    now_ms: int,
    timeout_ms: int = DEFAULT_SESSION_TIMEOUT_MS,
) -> SessionDecision:
    """RESUME iff a candidate exists and its last activity is strictly within `timeout_ms`."""
    if candidate is None:
        return SessionDecision.CREATE_NEW
    if now_ms - candidate.context.last_activity_ms < timeout_ms:
        return SessionDecision.RESUME
    return SessionDecision.CREATE_NEW
