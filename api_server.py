"""
Flowbot API Server

FastAPI server that accepts chat messages via HTTP POST, runs them
through the workflow command engine and returns the reply together with
the updated board. Sessions live in memory only.

Usage:
    python -m uvicorn api_server:app --host 127.0.0.1 --port 8080
    # or: python api_server.py
"""

import asyncio
import logging
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field, field_validator

import flowbot_config
from board_loader import load_board
from chat_session import ChatSession
from workflow_models import ChatMessage, Workflow, WorkflowState

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Flowbot API",
    description="Conversational front-end for an in-memory workflow board",
    version="1.0.0",
)

# --- In-memory storage ---

sessions: "OrderedDict[str, ChatSession]" = OrderedDict()


# --- Request/Response models ---


class ChatRequest(BaseModel):
    message: str = Field(max_length=2000)
    session_id: Optional[str] = None

    @field_validator("message")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("message must not be blank")
        return value


class ChatResponse(BaseModel):
    session_id: str
    reply: str
    intent: str
    highlighted_workflow_id: Optional[str] = None
    workflows: list[Workflow]


class SessionInfo(BaseModel):
    session_id: str
    created_at: str
    last_prompt: str
    turns: int
    workflows: int


class SessionDetail(BaseModel):
    session_id: str
    highlighted_workflow_id: Optional[str] = None
    workflows: list[Workflow]
    messages: list[ChatMessage]


# --- Helpers ---


def initial_state() -> WorkflowState:
    """Board for a new session: the configured seed file, or empty."""
    if flowbot_config.SEED_BOARD:
        return load_board(flowbot_config.SEED_BOARD)
    return WorkflowState()


def create_session() -> ChatSession:
    session = ChatSession(state=initial_state())
    sessions[session.session_id] = session
    while len(sessions) > flowbot_config.MAX_SESSIONS:
        evicted, _ = sessions.popitem(last=False)
        logger.info(f"Evicted session {evicted}")
    return session


def get_session(session_id: str) -> ChatSession:
    session = sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return session


# --- Endpoints ---


@app.get("/health")
async def health():
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


@app.get("/api/suggestions")
async def suggestions() -> list[str]:
    """Example commands to offer as quick replies."""
    return list(flowbot_config.SUGGESTIONS)


@app.post("/api/chat", response_model=ChatResponse)
async def chat(req: ChatRequest):
    """
    Send one chat message; starts a new session when no session_id is given.

    The session table is only touched on the event loop. The turn itself
    (think delay plus interpretation) runs in a worker thread.
    """
    if req.session_id is None:
        session = create_session()
    else:
        session = get_session(req.session_id)

    result = await asyncio.to_thread(session.send, req.message)

    return ChatResponse(
        session_id=session.session_id,
        reply=result.reply,
        intent=result.intent,
        highlighted_workflow_id=result.highlighted_id,
        workflows=list(result.state.workflows),
    )


@app.get("/api/sessions")
async def list_sessions() -> list[SessionInfo]:
    """List active sessions, oldest first."""
    return [SessionInfo(**s.summary()) for s in list(sessions.values())]


@app.get("/api/sessions/{session_id}", response_model=SessionDetail)
async def session_detail(session_id: str):
    """Current board and transcript of a session."""
    session = get_session(session_id)
    return SessionDetail(
        session_id=session.session_id,
        highlighted_workflow_id=session.highlighted_id,
        workflows=list(session.state.workflows),
        messages=list(session.messages),
    )


@app.delete("/api/sessions/{session_id}")
async def delete_session(session_id: str):
    get_session(session_id)
    del sessions[session_id]
    return {"status": "deleted", "session_id": session_id}


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(
        level=flowbot_config.LOG_LEVEL,
        format='%(asctime)s - %(levelname)s - %(message)s',
    )
    uvicorn.run(app, host=flowbot_config.API_HOST, port=flowbot_config.API_PORT)
