from __future__ import annotations
"""
FastAPI Server for Invigilator

Local HTTP surface for the exam UI: start and stop proctoring sessions,
read their state, and forward input events to the lockdown.
"""

from contextlib import asynccontextmanager
from typing import Awaitable, Callable, Optional

from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel

from invigilator.cfg import get_settings
from invigilator.data.publisher import ViolationPublisher, connect_room
from invigilator.lockdown import (
    Document,
    Event,
    KeyboardEvent,
    TouchEvent,
    WheelEvent,
    create_keyboard_lock,
)
from invigilator.models.face import get_model_cache
from invigilator.service.proctoring import ProctoringSession
from invigilator.utils import get_logger

logger = get_logger(__name__)

# Track active proctoring sessions
active_sessions: dict[str, ProctoringSession] = {}


class StartSessionRequest(BaseModel):
    """Request to start proctoring."""
    session_id: Optional[str] = None
    lockdown: bool = True
    room_name: Optional[str] = None
    participant_id: str = ""


class SessionResponse(BaseModel):
    """Response after starting or stopping a session."""
    success: bool
    session_id: str
    message: str
    detection_active: bool = False
    error: Optional[str] = None


class StopSessionResponse(SessionResponse):
    metadata: dict = {}


class StatusResponse(BaseModel):
    """Status response."""
    active_sessions: list[str]
    total_sessions: int


class InputEventRequest(BaseModel):
    """An input event from the exam UI, checked against the lockdown."""
    type: str
    key: Optional[str] = None
    ctrl_key: bool = False
    alt_key: bool = False
    meta_key: bool = False
    shift_key: bool = False
    touches: int = 1
    delta_y: float = 0.0
    fullscreen: Optional[bool] = None
    hidden: Optional[bool] = None


class InputEventResponse(BaseModel):
    allowed: bool


SessionFactory = Callable[[StartSessionRequest], Awaitable[ProctoringSession]]


async def default_session_factory(request: StartSessionRequest) -> ProctoringSession:
    """Build a session on the local camera and microphone."""
    settings = get_settings()

    publisher = None
    if request.room_name:
        room = await connect_room(settings.to_livekit_config(), request.room_name)
        publisher = ViolationPublisher(room, request.participant_id, settings.to_livekit_config())

    return ProctoringSession(
        settings.to_session_config(),
        document=Document(fullscreen=True) if request.lockdown else None,
        keyboard_lock=create_keyboard_lock(settings.lock_keyboard),
        publisher=publisher,
        session_id=request.session_id,
    )


def get_session_factory() -> SessionFactory:
    return default_session_factory


def get_session(session_id: str) -> ProctoringSession:
    session = active_sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Unknown session: {session_id}")
    return session


async def _close_publisher(session: ProctoringSession):
    if session.publisher is not None:
        await session.publisher.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("🚀 Invigilator API starting...")
    yield
    # Cleanup on shutdown
    logger.info("👋 Shutting down, stopping all sessions...")
    for session_id, session in list(active_sessions.items()):
        try:
            await session.stop()
            await _close_publisher(session)
        except Exception as e:
            logger.error(f"Error stopping session {session_id}: {e}")
    active_sessions.clear()
    get_model_cache().dispose()


app = FastAPI(
    title="Invigilator",
    description="Local proctoring agent API",
    version="0.1.0",
    lifespan=lifespan,
)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "active_sessions": len(active_sessions)}


@app.get("/status", response_model=StatusResponse)
async def get_status():
    """Get current service status."""
    return StatusResponse(
        active_sessions=list(active_sessions.keys()),
        total_sessions=len(active_sessions),
    )


@app.post("/sessions", response_model=SessionResponse)
async def start_session(
    request: StartSessionRequest,
    factory: SessionFactory = Depends(get_session_factory),
):
    """
    Start a proctoring session.

    Called by the exam UI when a proctored screen opens.
    """
    if request.session_id and request.session_id in active_sessions:
        session = active_sessions[request.session_id]
        return SessionResponse(
            success=True,
            session_id=session.session_id,
            message="Session already running",
            detection_active=session.detector.is_detecting,
        )

    try:
        session = await factory(request)
        await session.start()
    except Exception as e:
        logger.error(f"❌ Failed to start session: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    if not session.running:
        await session.stop()
        await _close_publisher(session)
        raise HTTPException(status_code=503, detail=session.error or "Media unavailable")

    active_sessions[session.session_id] = session
    logger.info(f"✅ Started session: {session.session_id}")

    return SessionResponse(
        success=True,
        session_id=session.session_id,
        message="Proctoring started",
        detection_active=session.detector.is_detecting,
        error=session.error,
    )


@app.post("/sessions/{session_id}/stop", response_model=StopSessionResponse)
async def stop_session(session_id: str):
    """
    Stop a session and return its submission metadata.

    Called by the exam UI when the exam is submitted or the screen closes.
    """
    if session_id not in active_sessions:
        return StopSessionResponse(
            success=True,
            session_id=session_id,
            message="Session not running",
        )

    session = active_sessions.pop(session_id)
    try:
        await session.stop()
        await _close_publisher(session)
    except Exception as e:
        logger.error(f"❌ Failed to stop session {session_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    return StopSessionResponse(
        success=True,
        session_id=session_id,
        message="Proctoring stopped",
        metadata=session.to_metadata(),
    )


@app.get("/sessions/{session_id}")
async def get_session_state(session: ProctoringSession = Depends(get_session)):
    """Status, face count and latest violation for the status display."""
    return session.snapshot()


@app.get("/sessions/{session_id}/violations")
async def get_violations(session: ProctoringSession = Depends(get_session)):
    return {
        "violations": [event.to_dict() for event in session.log],
        "total": len(session.log),
        "threshold_reached": session.log.threshold_reached,
    }


@app.post("/sessions/{session_id}/events", response_model=InputEventResponse)
async def dispatch_input_event(
    request: InputEventRequest,
    session: ProctoringSession = Depends(get_session),
):
    """
    Check an input event against the lockdown.

    Fullscreen and visibility changes update the document state instead.
    """
    if session.lockdown is None:
        return InputEventResponse(allowed=True)

    document = session.lockdown.document
    if request.type == "fullscreenchange" and request.fullscreen is not None:
        document.set_fullscreen(request.fullscreen)
        return InputEventResponse(allowed=True)
    if request.type == "visibilitychange" and request.hidden is not None:
        document.set_hidden(request.hidden)
        return InputEventResponse(allowed=True)

    if request.type in ("keydown", "keyup"):
        event: Event = KeyboardEvent(
            request.key or "",
            type=request.type,
            ctrl_key=request.ctrl_key,
            alt_key=request.alt_key,
            meta_key=request.meta_key,
            shift_key=request.shift_key,
        )
    elif request.type == "wheel":
        event = WheelEvent(request.delta_y, ctrl_key=request.ctrl_key, meta_key=request.meta_key)
    elif request.type.startswith("touch"):
        event = TouchEvent(request.type, touches=request.touches)
    else:
        event = Event(request.type)

    return InputEventResponse(allowed=document.dispatch_event(event))


def start_server(host: str = "127.0.0.1", port: int = 8001):
    """Start the FastAPI server."""
    import uvicorn

    uvicorn.run(
        "invigilator.api.server:app",
        host=host,
        port=port,
        reload=False,
    )


if __name__ == "__main__":
    settings = get_settings()
    start_server(settings.api_host, settings.api_port)
