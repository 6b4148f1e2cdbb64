"""In-memory registry of quote search sessions, keyed by job id."""
from __future__ import annotations

import asyncio

from loguru import logger

from app.models.quote import QuoteSession, SearchContext


class SessionNotFound(KeyError):
    """Raised when a job id has no live session."""

    def __init__(self, job_id: str):
        super().__init__(job_id)
        self.job_id = job_id

    def __str__(self) -> str:
        return f"No quote search session for job {self.job_id}"


class SessionRegistry:
    """Process-wide map of job id to session.

    All access happens on the event loop thread, so no lock guards the map.
    One instance is created per server process and closed at shutdown.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, QuoteSession] = {}
        self._cleanup_handles: dict[str, asyncio.TimerHandle] = {}
        self._closed = False

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, job_id: object) -> bool:
        return job_id in self._sessions

    @property
    def closed(self) -> bool:
        return self._closed

    def create(
        self,
        job_id: str,
        *,
        zip_code: str,
        city: str = "",
        context: SearchContext | None = None,
    ) -> tuple[QuoteSession, bool]:
        """Create a session, or return the running one with created=False."""
        if self._closed:
            raise RuntimeError("Session registry is closed")

        existing = self._sessions.get(job_id)
        if existing is not None and existing.is_running:
            logger.info(f"Quote search already running for job {job_id}")
            return existing, False

        if existing is not None:
            # A finished session waiting out its grace period is replaced.
            self._cancel_cleanup(job_id)
            existing.subscribers.clear()

        session = QuoteSession(
            job_id=job_id,
            zip_code=zip_code,
            city=city,
            context=context or SearchContext(),
        )
        self._sessions[job_id] = session
        logger.info(f"Created quote search session for job {job_id}")
        return session, True

    def get(self, job_id: str) -> QuoteSession | None:
        return self._sessions.get(job_id)

    def require(self, job_id: str) -> QuoteSession:
        session = self._sessions.get(job_id)
        if session is None:
            raise SessionNotFound(job_id)
        return session

    def schedule_cleanup(self, job_id: str, delay: float) -> None:
        """Drop the session `delay` seconds from now."""
        if self._closed:
            return
        session = self._sessions.get(job_id)
        if session is None:
            return

        self._cancel_cleanup(job_id)
        loop = asyncio.get_running_loop()
        self._cleanup_handles[job_id] = loop.call_later(
            max(delay, 0.0), self._expire, job_id, session
        )
        logger.debug(f"Session {job_id} scheduled for cleanup in {delay:.0f}s")

    def _expire(self, job_id: str, session: QuoteSession) -> None:
        self._cleanup_handles.pop(job_id, None)
        # The job id may have been reused by a newer session in the meantime.
        if self._sessions.get(job_id) is not session:
            return
        del self._sessions[job_id]
        session.subscribers.clear()
        logger.info(f"Cleaned up quote search session for job {job_id}")

    def _cancel_cleanup(self, job_id: str) -> None:
        handle = self._cleanup_handles.pop(job_id, None)
        if handle is not None:
            handle.cancel()

    def close(self) -> None:
        """Cancel pending cleanups and forget every session."""
        for handle in self._cleanup_handles.values():
            handle.cancel()
        self._cleanup_handles.clear()
        for session in self._sessions.values():
            session.subscribers.clear()
        self._sessions.clear()
        self._closed = True
