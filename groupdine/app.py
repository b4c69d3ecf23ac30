from __future__ import annotations

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import httpx
from fastapi import Depends, FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .consensus.models import RankedResult
from .consensus.orchestrator import ConsensusOrchestrator, ReasoningProvider
from .consensus.runner import ConsensusRunner
from .errors import (
    GroupDineError,
    NotFoundError,
    SessionBusyError,
    UpstreamError,
    ValidationError,
)
from .llm.groq_client import GroqReasoner
from .schemas import (
    ConsensusResponse,
    CreateSessionRequest,
    JoinSessionRequest,
    MoreRestaurantsRequest,
    RefineRequest,
    ReservationRequest,
    ReservationResponse,
    SubmitPreferencesRequest,
    SubmitPreferencesResponse,
)
from .sessions import events
from .sessions.config import DEFAULT_SESSION_CONFIG
from .sessions.events import EventBroadcaster
from .sessions.models import Participant, Session
from .sessions.registry import SessionRegistry
from .yelp.client import YelpAIClient

logger = logging.getLogger(__name__)


def _build_reasoner(yelp: YelpAIClient) -> ReasoningProvider:
    provider = os.environ.get("REASONING_PROVIDER", "yelp").lower()
    if provider == "groq":
        return GroqReasoner()
    return yelp


# ── Process-wide collaborators ───────────────────────────────────────────

registry = SessionRegistry(config=DEFAULT_SESSION_CONFIG)
broadcaster = EventBroadcaster()
yelp_client = YelpAIClient()
runner = ConsensusRunner(
    registry,
    ConsensusOrchestrator(yelp_client, _build_reasoner(yelp_client)),
    broadcaster,
)


def get_registry() -> SessionRegistry:
    return registry


def get_broadcaster() -> EventBroadcaster:
    return broadcaster


def get_runner() -> ConsensusRunner:
    return runner


def get_yelp_client() -> YelpAIClient:
    return yelp_client


async def _sweep_periodically(reg: SessionRegistry, interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        try:
            reg.sweep_expired()
        except Exception:
            logger.warning("Session sweep failed; retrying next interval", exc_info=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    http_client = httpx.AsyncClient(timeout=yelp_client.config.timeout)
    yelp_client.set_client(http_client)
    sweeper = asyncio.create_task(
        _sweep_periodically(registry, DEFAULT_SESSION_CONFIG.sweep_interval_seconds)
    )
    try:
        yield
    finally:
        sweeper.cancel()
        yelp_client.set_client(None)
        await http_client.aclose()


app = FastAPI(title="GroupDine API", version="1.0.0", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[os.environ.get("FRONTEND_URL", "http://localhost:5173")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


_STATUS_BY_ERROR: list[tuple[type[GroupDineError], int]] = [
    (NotFoundError, 404),
    (SessionBusyError, 409),
    (ValidationError, 400),
    (UpstreamError, 502),
]


@app.exception_handler(GroupDineError)
async def groupdine_error_handler(request: Request, exc: GroupDineError) -> JSONResponse:
    status_code = next(
        (code for cls, code in _STATUS_BY_ERROR if isinstance(exc, cls)),
        500,
    )
    return JSONResponse(status_code=status_code, content={"detail": exc.message})


# ── Public endpoints ─────────────────────────────────────────────────────


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


# ── Session endpoints ────────────────────────────────────────────────────


@app.post("/api/sessions", response_model=Session)
def create_session(
    body: CreateSessionRequest,
    reg: SessionRegistry = Depends(get_registry),
) -> Session:
    return reg.create_session(body.host_name)


@app.get("/api/sessions/{session_id}", response_model=Session)
def get_session(
    session_id: str,
    reg: SessionRegistry = Depends(get_registry),
) -> Session:
    session = reg.get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return session


@app.post("/api/sessions/{session_id}/participants", response_model=Participant)
async def join_session(
    session_id: str,
    body: JoinSessionRequest,
    reg: SessionRegistry = Depends(get_registry),
    bus: EventBroadcaster = Depends(get_broadcaster),
) -> Participant:
    participant = reg.add_participant(session_id, body.name)
    if participant is None:
        raise HTTPException(status_code=404, detail="Session not found")

    bus.publish(session_id, events.PARTICIPANT_JOINED, {
        "participant_id": participant.id,
        "participant_name": participant.name,
    })
    return participant


@app.post("/api/sessions/{session_id}/preferences", response_model=SubmitPreferencesResponse)
async def submit_preferences(
    session_id: str,
    body: SubmitPreferencesRequest,
    reg: SessionRegistry = Depends(get_registry),
    bus: EventBroadcaster = Depends(get_broadcaster),
) -> SubmitPreferencesResponse:
    submitted, all_ready = reg.submit_and_check_ready(
        session_id, body.participant_id, body.preferences,
    )
    if not submitted:
        raise HTTPException(status_code=404, detail="Session or participant not found")

    bus.publish(session_id, events.PREFERENCE_SUBMITTED, {"participant_id": body.participant_id})
    if all_ready:
        bus.publish(session_id, events.ALL_READY)
    return SubmitPreferencesResponse(success=True, all_ready=all_ready)


# ── Consensus endpoints ──────────────────────────────────────────────────


@app.post("/api/sessions/{session_id}/consensus", response_model=ConsensusResponse)
async def trigger_consensus(
    session_id: str,
    consensus: ConsensusRunner = Depends(get_runner),
) -> ConsensusResponse:
    results = await consensus.run(session_id)
    return ConsensusResponse(results=results)


@app.post("/api/sessions/{session_id}/more-restaurants", response_model=list[RankedResult])
async def more_restaurants(
    session_id: str,
    body: MoreRestaurantsRequest | None = None,
    consensus: ConsensusRunner = Depends(get_runner),
) -> list[RankedResult]:
    chat_id = body.chat_id if body else None
    return await consensus.load_more(session_id, chat_id)


@app.post("/api/sessions/{session_id}/refine", response_model=list[RankedResult])
async def refine(
    session_id: str,
    body: RefineRequest,
    consensus: ConsensusRunner = Depends(get_runner),
) -> list[RankedResult]:
    return await consensus.refine(session_id, body.query, body.chat_id)


@app.post("/api/reservations", response_model=ReservationResponse)
async def reservations(
    body: ReservationRequest,
    yelp: YelpAIClient = Depends(get_yelp_client),
) -> ReservationResponse:
    reply = await yelp.make_reservation(
        body.restaurant_name, body.party_size, body.date, body.time, body.chat_id,
    )
    return ReservationResponse(text=reply.text, chat_id=reply.chat_id)


# ── Observers ────────────────────────────────────────────────────────────


@app.websocket("/ws/sessions/{session_id}")
async def session_events(
    websocket: WebSocket,
    session_id: str,
    reg: SessionRegistry = Depends(get_registry),
    bus: EventBroadcaster = Depends(get_broadcaster),
) -> None:
    if reg.get_session(session_id) is None:
        await websocket.close(code=4404)
        return

    await websocket.accept()
    queue = bus.subscribe(session_id)

    async def _forward() -> None:
        while True:
            await websocket.send_json(await queue.get())

    forwarder = asyncio.create_task(_forward())
    try:
        # Observers only listen; inbound frames are drained to detect disconnects.
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        forwarder.cancel()
        bus.unsubscribe(session_id, queue)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.environ.get("PORT", "8000")))
