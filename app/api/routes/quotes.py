from __future__ import annotations

from typing import AsyncIterator

from fastapi import APIRouter, Depends, HTTPException
from sse_starlette.sse import EventSourceResponse

from app.agents.orchestrator import InvalidQuoteRequest, QuoteSearchOrchestrator
from app.api.deps import get_broadcaster, get_orchestrator, get_registry
from app.config import settings
from app.models.events import SSEEvent
from app.models.quote import QuoteSession
from app.models.schemas import QuoteSearchRequest, QuoteSearchStartResponse
from app.services import logger as log_service
from app.services import streaming
from app.services.broadcaster import ProgressBroadcaster, Subscriber
from app.services.session_registry import SessionNotFound, SessionRegistry

router = APIRouter(prefix="/api", tags=["quotes"])

# How often an idle stream checks that its session still exists.
SESSION_POLL_SECONDS = 1.0


def replay_events(session: QuoteSession) -> list[SSEEvent]:
    """Events that bring a newly attached client up to date."""
    events = [streaming.session_update(worker) for worker in session.workers]
    if session.contractors:
        events.append(streaming.contractors_found(None, session.contractors))
    if session.final_event is not None:
        events.append(session.final_event)
    return events


async def progress_events(
    job_id: str,
    registry: SessionRegistry,
    broadcaster: ProgressBroadcaster,
    *,
    poll_seconds: float = SESSION_POLL_SECONDS,
) -> AsyncIterator[dict[str, str]]:
    """Yield SSE messages for one client of `job_id` until the job ends."""
    try:
        session = registry.require(job_id)
    except SessionNotFound as exc:
        yield {"data": streaming.error(str(exc)).to_json()}
        return

    subscriber = Subscriber(job_id)
    broadcaster.subscribe(job_id, subscriber)
    try:
        for event in replay_events(session):
            yield {"data": event.to_json()}
        if session.final_event is not None:
            return

        while True:
            delivery = await subscriber.receive(timeout=poll_seconds)
            if delivery is None:
                if subscriber.closed or registry.get(job_id) is not session:
                    return
                continue
            event_type, message = delivery
            yield {"data": message}
            if event_type.is_terminal:
                return
    finally:
        broadcaster.unsubscribe(job_id, subscriber)


@router.post("/request-quotes", response_model=QuoteSearchStartResponse, response_model_exclude_none=True)
async def request_quotes(
    request: QuoteSearchRequest,
    orchestrator: QuoteSearchOrchestrator = Depends(get_orchestrator),
):
    """Start a quote search for a job. Progress is streamed from /quote-progress/{jobId}."""
    try:
        result = await orchestrator.start_search(
            request.job_id,
            request.zip_code,
            request.city,
            request.to_context(),
        )
    except InvalidQuoteRequest as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    return QuoteSearchStartResponse(
        job_id=result.job_id,
        already_running=True if result.already_running else None,
    )


@router.get("/quote-progress/{job_id}")
async def quote_progress(
    job_id: str,
    registry: SessionRegistry = Depends(get_registry),
    broadcaster: ProgressBroadcaster = Depends(get_broadcaster),
):
    """SSE endpoint that streams quote search progress events."""
    log_service.log_event(
        event_type="progress_stream_opened",
        message="Progress stream opened",
        job_id=job_id,
    )
    return EventSourceResponse(
        progress_events(job_id, registry, broadcaster),
        ping=settings.sse_ping_seconds,
    )


@router.get("/quote-sessions/{job_id}")
async def quote_session(job_id: str, registry: SessionRegistry = Depends(get_registry)):
    """Current state of a job's search."""
    try:
        session = registry.require(job_id)
    except SessionNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return session.snapshot()
