"""
Session API for codeloop.

Each session owns its own :class:`Conversation`; requests for one session are serialised by a
per-session lock, while different sessions run independently.
It exposes the following endpoints:
- **GET /health**  - liveness probe for health checks.
- **POST /sessions** - create a new session, returns a session ID.
- **GET /sessions** - list all active sessions.
- **GET /sessions/{session_id}** - transcript of a session.
- **POST /agent**   - run one query: {"message": "...", "session_id": "..."}
"""

import logging
import threading
import uuid
from dataclasses import (
    dataclass,
    field,
)
from typing import (
    Dict,
    List,
    Optional,
)

from fastapi import (
    Depends,
    FastAPI,
    HTTPException,
)

from codeloop.agent.agent_loop import ask
from codeloop.agent.planner_interface import (
    BasePlanner,
    load_planner,
)
from codeloop.agent.tool_executor import ToolDispatcher
from codeloop.api.models import (
    MessageRequest,
    MessageResponse,
    SessionResponse,
    ToolResultOut,
    TranscriptResponse,
)
from codeloop.common import (
    AnsiColors,
    colored_print,
)
from codeloop.config import settings
from codeloop.core.conversation import Conversation
from codeloop.core.schema import ToolResultTurn
from codeloop.tools.sandbox import Workspace

logger = logging.getLogger(__name__)


@dataclass
class Session:
    """A conversation and the lock that makes its loop the only writer."""

    conversation: Conversation = field(default_factory=Conversation)
    lock: threading.Lock = field(default_factory=threading.Lock)


# Session storage (in-memory; nothing survives a restart)
sessions: Dict[str, Session] = {}
_sessions_lock = threading.Lock()

app = FastAPI(title="codeloop API", version="0.1.0", description="codeloop agent runtime API")


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------
def get_planner() -> BasePlanner:
    """Planner used by ``/agent``; override in tests via ``app.dependency_overrides``."""
    return load_planner()


def get_dispatcher() -> ToolDispatcher:
    """Dispatcher bound to the configured workspace."""
    return ToolDispatcher(Workspace.from_settings())


# ---------------------------------------------------------------------------
# Helper functions
# ---------------------------------------------------------------------------
def get_or_create_session(session_id: Optional[str] = None) -> str:
    """Get existing session or create a new one."""
    with _sessions_lock:
        if session_id and session_id in sessions:
            return session_id

        new_session_id = str(uuid.uuid4())
        sessions[new_session_id] = Session()
        return new_session_id


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@app.get("/health", summary="Health check")
async def health() -> dict[str, str]:
    """Return a simple liveness payload."""
    return {"status": "ok"}


@app.post("/sessions", response_model=SessionResponse, summary="Create a new session")
async def create_session() -> SessionResponse:
    """Create a new conversation session."""
    session_id = get_or_create_session()
    return SessionResponse(session_id=session_id)


@app.get("/sessions", response_model=List[str], summary="List active sessions")
async def list_sessions() -> List[str]:
    """List all active session IDs."""
    return list(sessions.keys())


@app.get(
    "/sessions/{session_id}", response_model=TranscriptResponse, summary="Session transcript"
)
async def get_session(session_id: str) -> TranscriptResponse:
    """Return every turn recorded for *session_id*."""
    session = sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Unknown session: {session_id}")
    return TranscriptResponse(session_id=session_id, turns=session.conversation.model_dump())


@app.post("/agent", response_model=MessageResponse, summary="Process a message")
def agent_endpoint(
    req: MessageRequest,
    planner: BasePlanner = Depends(get_planner),
    dispatcher: ToolDispatcher = Depends(get_dispatcher),
) -> MessageResponse:
    """Run the agent loop for one user message within a session."""
    # Sync handler: FastAPI runs it in a worker thread, so the blocking loop is fine here.
    session_id = get_or_create_session(req.session_id)
    session = sessions[session_id]

    with session.lock:
        conversation = session.conversation
        start = len(conversation)
        try:
            result = ask(
                conversation,
                req.message,
                planner,
                dispatcher,
                max_iterations=settings.MAX_ITERATIONS,
            )
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Agent loop failed for session %s", session_id)
            raise HTTPException(status_code=502, detail=f"Model call failed: {exc}") from exc

        tool_results = [
            ToolResultOut(name=turn.name, content=turn.content)
            for turn in conversation.turns[start:]
            if isinstance(turn, ToolResultTurn)
        ]

    return MessageResponse(
        reply=result.reply or "",
        status=result.status,
        session_id=session_id,
        tool_results=tool_results,
    )


@app.get("/", summary="API root")
async def root() -> dict[str, str]:
    """Return a simple welcome message."""
    return {"message": "Welcome to the codeloop API! Use /docs for API documentation."}


# ---------------------------------------------------------------------------
# Public helper to launch the API (imported by main.py)
# ---------------------------------------------------------------------------
def run_api(
    host: str = "0.0.0.0", port: int = 8000, reload: bool = False, log_level: str | None = None
) -> None:
    """Start a uvicorn server hosting *app*.

    Parameters
    ----------
    host, port:
        Bind address for the HTTP server.
    reload:
        If *True*, enable auto-reload.
    log_level:
        Logging level to use (default from settings if not provided).
    """

    # Lazy import - keeps uvicorn an optional dependency at pkg-import time
    import uvicorn  # pylint: disable=import-outside-toplevel

    if log_level is None:  # Use the default from settings if not provided
        log_level = settings.LOG_LEVEL

    logger.info(
        "Starting codeloop API at %s:%d (reload=%s, log_level=%s)", host, port, reload, log_level
    )
    logger.debug("API settings: %s", settings.model_dump())

    colored_print(f"🔮 codeloop API is running at http://{host}:{port}.", AnsiColors.GREEN)
    colored_print(
        f"Visit http://{host}:{port}/docs for API documentation.",
        AnsiColors.BLUE,
    )
    uvicorn.run(
        "codeloop.api.app:app",
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
    )


# ---------------------------------------------------------------------------
# `python -m codeloop.api.app` helper
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    run_api(reload=True)
