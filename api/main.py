"""FastAPI adapter for the blueprint coach.

Run locally with:
    uvicorn api.main:app --reload --port 8000

Endpoints:
    POST /blueprints/{blueprint_id}/events   one UI event → {replyText, uiAffordances, newState}
    GET  /blueprints/{blueprint_id}/state    current state and progress
    GET  /health
"""

import logging
import os
import sys
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

# Add project root to path so blueprint_coach is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from blueprint_coach import __version__
from blueprint_coach.errors import MalformedEventError
from blueprint_coach.flows.session import CoachSession, create_session
from blueprint_coach.state.conversation_state import calculate_progress

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# --- In-memory session registry (one CoachSession per blueprint) ---
sessions: dict[str, CoachSession] = {}
session_factory = create_session


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    for blueprint_id, session in list(sessions.items()):
        try:
            await session.close()
        except Exception as e:
            logger.error(f"Failed to close session {blueprint_id}: {e}")
    sessions.clear()


app = FastAPI(title="Blueprint Coach API", version=__version__, lifespan=lifespan)

# --- CORS ---
origins = [
    "http://localhost:3000",
]
frontend_url = os.getenv("FRONTEND_URL")
if frontend_url:
    origins.append(frontend_url)

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)


# --- Request / Response models ---
class EventRequest(BaseModel):
    type: str
    payload: Any = None
    wizard_context: Optional[dict] = None


class EventResponse(BaseModel):
    replyText: str
    uiAffordances: list
    newState: dict
    outcome: str


class StateResponse(BaseModel):
    blueprint_id: str
    state: dict
    progress: dict


async def _get_session(blueprint_id: str, wizard_context: Optional[dict] = None) -> CoachSession:
    session = sessions.get(blueprint_id)
    if session is None:
        session = session_factory(blueprint_id)
        await session.load_or_create(wizard_context)
        sessions[blueprint_id] = session
    return session


@app.post("/blueprints/{blueprint_id}/events", response_model=EventResponse)
async def post_event(blueprint_id: str, req: EventRequest):
    session = await _get_session(blueprint_id, req.wizard_context)
    try:
        result = await session.handle({"type": req.type, "payload": req.payload})
    except MalformedEventError as e:
        logger.warning(f"Malformed event for {blueprint_id}: {e}")
        raise HTTPException(status_code=422, detail=str(e))

    return EventResponse(outcome=result.outcome, **result.to_response())


@app.get("/blueprints/{blueprint_id}/state", response_model=StateResponse)
async def get_state(blueprint_id: str):
    session = await _get_session(blueprint_id)
    return StateResponse(
        blueprint_id=blueprint_id,
        state=session.state,
        progress=calculate_progress(session.state),
    )


@app.get("/health")
async def health():
    return {"status": "ok", "version": __version__, "sessions": len(sessions)}
