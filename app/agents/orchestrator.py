from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Callable

from loguru import logger

from app.agents.platform_worker import PlatformSearchWorker
from app.config import settings
from app.models.events import SSEEvent
from app.models.quote import QuoteSession, SearchContext, WorkerRecord, utc_now
from app.services import logger as log_service
from app.services import streaming
from app.services.broadcaster import ProgressBroadcaster
from app.services.platforms import Platform, resolve_platforms
from app.services.session_registry import SessionRegistry

WorkerFactory = Callable[..., PlatformSearchWorker]


class InvalidQuoteRequest(ValueError):
    pass


@dataclass
class StartResult:
    job_id: str
    already_running: bool = False

    def to_dict(self) -> dict:
        data = {"success": True, "jobId": self.job_id}
        if self.already_running:
            data["alreadyRunning"] = True
        return data


class QuoteSearchOrchestrator:
    """Runs one contractor search per job across all configured platforms.

    Flow:
      1. Validate the request and create (or find) the job's session
      2. Create one worker per platform and announce them
      3. Run the workers concurrently in a background task
      4. Aggregate contractors as each worker finishes
      5. Broadcast `complete` (or `error`) and schedule session cleanup

    `start_search` returns as soon as step 2 is done.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        broadcaster: ProgressBroadcaster,
        *,
        platforms: list[Platform] | None = None,
        worker_factory: WorkerFactory | None = None,
        grace_period_seconds: float | None = None,
    ):
        self.registry = registry
        self.broadcaster = broadcaster
        self.platforms = platforms or resolve_platforms(settings.platform_list)
        self.worker_factory = worker_factory or PlatformSearchWorker
        self.grace_period_seconds = (
            settings.session_grace_period_seconds
            if grace_period_seconds is None
            else grace_period_seconds
        )
        self._tasks: dict[str, asyncio.Task] = {}

    async def start_search(
        self,
        job_id: str | None,
        zip_code: str | None,
        city: str | None = None,
        context: SearchContext | None = None,
    ) -> StartResult:
        job_id = (job_id or "").strip()
        zip_code = (zip_code or "").strip()
        if not job_id:
            raise InvalidQuoteRequest("jobId is required")
        if not zip_code:
            raise InvalidQuoteRequest("zipCode is required")

        session, created = self.registry.create(
            job_id,
            zip_code=zip_code,
            city=(city or "").strip(),
            context=context,
        )
        if not created:
            return StartResult(job_id=job_id, already_running=True)

        workers = [
            self.worker_factory(platform, session, notify=self._notifier(job_id))
            for platform in self.platforms
        ]
        for worker in workers:
            session.workers.append(worker.record)
            self._publish(job_id, streaming.session_update(worker.record))

        log_service.log_event(
            event_type="quote_search_started",
            message="Quote search started",
            job_id=job_id,
            zip_code=zip_code,
            platforms=[p.name for p in self.platforms],
        )
        task = asyncio.create_task(self.run_search(session, workers), name=f"quote-search-{job_id}")
        self._tasks[job_id] = task
        task.add_done_callback(lambda t: self._tasks.pop(job_id, None) if self._tasks.get(job_id) is t else None)
        return StartResult(job_id=job_id)

    def _notifier(self, job_id: str) -> Callable[[WorkerRecord], None]:
        def notify(record: WorkerRecord) -> None:
            self._publish(job_id, streaming.session_update(record))

        return notify

    def _publish(self, job_id: str, event: SSEEvent) -> None:
        self.broadcaster.broadcast(job_id, event)

    async def _run_worker(self, session: QuoteSession, worker: PlatformSearchWorker) -> int:
        contractors = await worker.run()
        if contractors:
            session.contractors.extend(contractors)
            self._publish(session.job_id, streaming.contractors_found(worker.platform.name, contractors))
        return len(contractors)

    async def run_search(self, session: QuoteSession, workers: list[PlatformSearchWorker]) -> None:
        job_id = session.job_id
        try:
            await asyncio.gather(*(self._run_worker(session, worker) for worker in workers))
            final = streaming.complete(
                len(session.contractors),
                platforms={w.platform.name: w.record.status.value for w in workers},
            )
            log_service.log_event(
                event_type="quote_search_complete",
                message="Quote search complete",
                job_id=job_id,
                total_contractors=len(session.contractors),
            )
        except Exception as exc:
            logger.exception(f"Quote search failed for job {job_id}")
            final = streaming.error(f"Quote search failed: {exc}")
        finally:
            session.is_running = False
            session.completed_at = utc_now()
            self.registry.schedule_cleanup(job_id, self.grace_period_seconds)

        session.final_event = final
        self._publish(job_id, final)

    async def shutdown(self) -> None:
        """Cancel searches still in flight; used at process stop."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
