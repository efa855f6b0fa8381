"""FastAPI surface for the coaching assistant."""

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from coaching_assistant import __version__
from coaching_assistant.errors import (
    CoachingError,
    ConfigurationError,
    ModelRequestError,
    ParseError,
    RecognitionError,
)
from coaching_assistant.models import EntryKind, Speaker, SubmissionMode, parse_speaker
from coaching_assistant.prompts import library_questions
from coaching_assistant.recognizer import PushRecognizer, event_from_dict
from coaching_assistant.session import CoachingSession

logger = logging.getLogger(__name__)

HEARTBEAT_SECONDS = 15.0

_ERROR_STATUS = {
    ConfigurationError: 400,
    ParseError: 502,
    ModelRequestError: 502,
    RecognitionError: 502,
}


# Request models
class RecognizerEventRequest(BaseModel):
    type: str
    speaker: str
    text: Optional[str] = None
    detail: Optional[str] = None
    captured_at: Optional[float] = None


class ModeRequest(BaseModel):
    mode: SubmissionMode


class PendingTextRequest(BaseModel):
    text: str


class CombineRequest(BaseModel):
    entry_ids: List[int] = Field(..., min_length=1)


class GenerateRequest(BaseModel):
    count: Optional[int] = Field(None, ge=1, le=3)


class FollowUpRequest(BaseModel):
    question: str = Field(..., min_length=1)
    response: str = Field(..., min_length=1)
    count: int = Field(1, ge=1, le=3)


def _speaker(value: str) -> Speaker:
    try:
        return parse_speaker(value)
    except ValueError:
        raise HTTPException(status_code=404, detail=f"Unknown speaker '{value}'")


def create_app(session: Optional[CoachingSession] = None) -> FastAPI:
    """Build the app around ``session`` (a fresh one from Config when omitted)."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        current = session or CoachingSession()
        recognizer = PushRecognizer()
        current.attach_recognizer(recognizer)
        app.state.session = current
        app.state.recognizer = recognizer
        logger.info("[API] session ready | model=%s", current.settings.model)
        try:
            yield
        finally:
            await current.close()

    app = FastAPI(title="Coaching Assistant", version=__version__, lifespan=lifespan)

    # CORS for local development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(CoachingError)
    async def coaching_error_handler(request: Request, exc: CoachingError):
        status = _ERROR_STATUS.get(type(exc), 500)
        return JSONResponse(status_code=status, content={"error": exc.to_dict()})

    def _session(request: Request) -> CoachingSession:
        return request.app.state.session

    @app.post("/recognizer/event")
    async def recognizer_event(body: RecognizerEventRequest, request: Request):
        """Feed one recognizer event (interim, final, error or end) into the session."""
        try:
            event = event_from_dict(body.model_dump())
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e))
        accepted = request.app.state.recognizer.push(event)
        return {"accepted": accepted}

    @app.post("/recognizer/{speaker}/start")
    async def recognizer_start(speaker: str, request: Request):
        """Restart recognition for a speaker after an error or end of session."""
        who = _speaker(speaker)
        s = _session(request)
        recognizer = request.app.state.recognizer
        if not recognizer.active(who):
            recognizer.start_stream(who, s.handle_event)
        s.submissions.set_recognizing(who, True)
        return s.submissions.state(who).to_dict()

    @app.put("/speakers/{speaker}/mode")
    async def set_mode(speaker: str, body: ModeRequest, request: Request):
        s = _session(request)
        who = _speaker(speaker)
        s.submissions.set_mode(who, body.mode)
        return s.submissions.state(who).to_dict()

    @app.put("/speakers/{speaker}/pending")
    async def set_pending(speaker: str, body: PendingTextRequest, request: Request):
        s = _session(request)
        who = _speaker(speaker)
        s.submissions.set_pending(who, body.text)
        return s.submissions.state(who).to_dict()

    @app.post("/speakers/{speaker}/submit")
    async def submit(speaker: str, request: Request):
        s = _session(request)
        who = _speaker(speaker)
        task = s.submissions.submit(who)
        return {"queued": task is not None, "state": s.submissions.state(who).to_dict()}

    @app.delete("/speakers/{speaker}")
    async def clear_speaker(speaker: str, request: Request):
        s = _session(request)
        who = _speaker(speaker)
        s.submissions.clear(who)
        return s.submissions.state(who).to_dict()

    @app.post("/responses/cancel")
    async def cancel_response(request: Request):
        return {"cancelled": _session(request).aggregator.cancel()}

    @app.get("/history")
    async def history(request: Request, kind: Optional[EntryKind] = None):
        log = _session(request).history
        entries = log.entries if kind is None else log.of_kind(kind)
        return {"history": [e.to_dict() for e in entries]}

    @app.post("/history/combine")
    async def combine(body: CombineRequest, request: Request):
        """Ask the selected earlier questions again as one combined question."""
        s = _session(request)
        try:
            task = s.submissions.combine_and_ask(body.entry_ids)
        except KeyError as e:
            raise HTTPException(status_code=404, detail=e.args[0])
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e))
        return {"queued": task is not None}

    @app.post("/questions/generate")
    async def generate_questions(request: Request, body: Optional[GenerateRequest] = None):
        count = body.count if body else None
        suggested = await _session(request).questions.generate(count)
        return suggested.to_dict()

    @app.post("/questions/follow-up")
    async def follow_up(body: FollowUpRequest, request: Request):
        suggested = await _session(request).questions.follow_up(body.question, body.response, body.count)
        return suggested.to_dict()

    @app.get("/questions")
    async def current_questions(request: Request):
        current = _session(request).questions.current
        return {"questions": current.to_dict() if current else None}

    @app.delete("/questions")
    async def clear_questions(request: Request):
        _session(request).questions.clear()
        return {"questions": None}

    @app.get("/questions/library")
    async def question_library(methodology: str = ""):
        try:
            return {"library": library_questions(methodology)}
        except KeyError as e:
            raise HTTPException(status_code=404, detail=e.args[0])

    @app.get("/state")
    async def state(request: Request):
        return _session(request).snapshot()

    @app.get("/events/stream")
    async def event_stream(request: Request):
        """Stream session events via Server-Sent Events."""
        bus = _session(request).events
        queue = bus.subscribe()

        async def event_generator():
            try:
                while not await request.is_disconnected():
                    try:
                        event = await asyncio.wait_for(queue.get(), timeout=HEARTBEAT_SECONDS)
                    except asyncio.TimeoutError:
                        # Send heartbeat to keep connection alive
                        yield ": heartbeat\n\n"
                        continue
                    yield f"event: {event['type']}\ndata: {json.dumps(event)}\n\n"
            finally:
                bus.unsubscribe(queue)

        return StreamingResponse(
            event_generator(),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Accel-Buffering": "no",  # Disable buffering for nginx
            },
        )

    return app


app = create_app()
