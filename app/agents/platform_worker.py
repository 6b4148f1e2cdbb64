from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Protocol

from loguru import logger

from app.agents.base import AgentResult
from app.agents.browser_agent import BrowserAgent
from app.config import settings
from app.models.quote import Contractor, LogType, QuoteSession, WorkerRecord, WorkerStatus
from app.services import logger as log_service
from app.services.contractor_normalizer import normalize_listings, parse_listings
from app.services.log_capture import capture_agent_logs
from app.services.platforms import Platform
from app.services.query_builder import build_search_instruction
from app.tools.remote_browser import RemoteBrowser

# Progress reported on entering each phase. Searching climbs towards
# SEARCH_PROGRESS_CEILING as agent steps complete.
PHASE_PROGRESS = {
    WorkerStatus.INITIALIZING: 5,
    WorkerStatus.NAVIGATING: 15,
    WorkerStatus.SEARCHING: 25,
    WorkerStatus.EXTRACTING: 65,
    WorkerStatus.COMPLETED: 100,
}
BROWSER_READY_PROGRESS = 10
SEARCH_PROGRESS_CEILING = 60
EXTRACT_DONE_PROGRESS = 95


class Browser(Protocol):
    session_id: str
    live_view_url: str | None
    page: Any

    async def close(self) -> None: ...


class Agent(Protocol):
    async def run(
        self, instruction: str, *, max_steps: int, on_step: Callable[[int, int], None] | None = None
    ) -> AgentResult: ...


BrowserProvider = Callable[[], Awaitable[Browser]]
AgentFactory = Callable[[Any, Platform], Agent]
Notify = Callable[[WorkerRecord], None]


class PlatformSearchWorker:
    """One automated contractor search on one platform.

    Flow:
      1. Provision a remote browser (initializing)
      2. Open the platform home page (navigating)
      3. Let the browsing agent search and collect listings (searching)
      4. Parse and normalize the agent's answer (extracting)
      5. completed, or error from any earlier phase

    Every state change and log entry is pushed through `notify`.
    """

    def __init__(
        self,
        platform: Platform,
        session: QuoteSession,
        *,
        notify: Notify,
        browser_provider: BrowserProvider | None = None,
        agent_factory: AgentFactory | None = None,
        max_steps: int | None = None,
        navigation_timeout_ms: int | None = None,
        timeout_seconds: float | None = None,
    ):
        self.platform = platform
        self.session = session
        self.record = WorkerRecord(platform=platform.name)
        self._notify = notify
        self._browser_provider = browser_provider or RemoteBrowser.open
        self._agent_factory = agent_factory or BrowserAgent
        self.max_steps = max(int(max_steps or settings.agent_max_steps), 1)
        self.navigation_timeout_ms = int(navigation_timeout_ms or settings.navigation_timeout_ms)
        self.timeout_seconds = float(timeout_seconds or settings.worker_timeout_seconds)
        self.record.append_log(f"Queued search on {platform.display_name}")

    # --- state helpers ---

    def _emit(self) -> None:
        self._notify(self.record)

    def _log(self, message: str, type: LogType = LogType.INFO) -> None:
        self.record.append_log(message, type)
        self._emit()

    def _transition(self, status: WorkerStatus, action: str) -> None:
        if not self.record.transition(
            status, progress=PHASE_PROGRESS.get(status), current_action=action
        ):
            return
        log_service.log_worker_step(
            self.session.job_id, self.platform.name, status.value, self.record.progress, action
        )
        self._emit()

    def _bump(self, progress: int, action: str | None = None) -> None:
        if self.record.bump_progress(progress, action):
            self._emit()

    def _fail(self, message: str) -> None:
        record = self.record
        if record.status.is_terminal:
            return
        record.error = message
        record.transition(WorkerStatus.ERROR, current_action=f"Error: {message}")
        record.append_log(f"Search failed: {message}", LogType.ERROR)
        log_service.log_worker_step(
            self.session.job_id, self.platform.name, WorkerStatus.ERROR.value, record.progress, message
        )
        self._emit()

    def _on_agent_step(self, step: int, max_steps: int) -> None:
        span = SEARCH_PROGRESS_CEILING - PHASE_PROGRESS[WorkerStatus.SEARCHING]
        progress = PHASE_PROGRESS[WorkerStatus.SEARCHING] + int(span * step / max_steps)
        self._bump(progress, f"Browsing {self.platform.display_name} (step {step}/{max_steps})")

    # --- run ---

    async def run(self) -> list[Contractor]:
        """Run the search; never raises for platform failures.

        Returns the extracted contractors, empty on error or when nothing
        could be parsed.
        """
        platform = self.platform
        browser: Browser | None = None

        with capture_agent_logs(
            self.record.id,
            self._log,
            max_chars=settings.log_entry_max_chars,
        ):
            try:
                async with asyncio.timeout(self.timeout_seconds):
                    self._transition(
                        WorkerStatus.INITIALIZING, f"Starting a browser for {platform.display_name}"
                    )
                    browser = await self._browser_provider()
                    self.record.browser_session_id = browser.session_id
                    self.record.live_view_url = browser.live_view_url
                    self._bump(BROWSER_READY_PROGRESS, "Browser ready")
                    self._log(f"Browser session {browser.session_id} started", LogType.ACTION)

                    self._transition(WorkerStatus.NAVIGATING, f"Opening {platform.base_url}")
                    await browser.page.goto(
                        platform.base_url,
                        wait_until="domcontentloaded",
                        timeout=self.navigation_timeout_ms,
                    )
                    self._log(f"Loaded {platform.display_name}", LogType.ACTION)

                    self._transition(
                        WorkerStatus.SEARCHING,
                        f"Searching {platform.display_name} near {self.session.zip_code}",
                    )
                    instruction = build_search_instruction(
                        platform,
                        self.session.context,
                        zip_code=self.session.zip_code,
                        city=self.session.city,
                    )
                    agent = self._agent_factory(browser.page, platform)
                    result = await agent.run(
                        instruction, max_steps=self.max_steps, on_step=self._on_agent_step
                    )
                    if not result.success:
                        self._log(
                            f"Agent stopped after {result.steps} steps without finishing",
                            LogType.INFO,
                        )

                    self._transition(WorkerStatus.EXTRACTING, "Reading contractor listings")
                    contractors = self._extract(result.final_text)
            except TimeoutError as exc:
                self._fail(str(exc) or f"Timed out after {self.timeout_seconds:g}s")
                return []
            except Exception as exc:
                logger.exception(f"{platform.name} search failed for job {self.session.job_id}")
                self._fail(str(exc) or exc.__class__.__name__)
                return []
            finally:
                if browser is not None:
                    try:
                        await browser.close()
                    except Exception as exc:
                        logger.warning(f"Failed to close {platform.name} browser: {exc}")

        self.record.contractors = contractors
        self._transition(
            WorkerStatus.COMPLETED, f"Found {len(contractors)} contractors on {platform.display_name}"
        )
        self._log(
            f"Finished: {len(contractors)} contractors from {platform.display_name}",
            LogType.SUCCESS,
        )
        return contractors

    def _extract(self, final_text: str) -> list[Contractor]:
        raw_items = parse_listings(final_text)
        if raw_items is None:
            logger.warning(
                f"Could not parse listings from {self.platform.name} agent output "
                f"for job {self.session.job_id}"
            )
            self._log("Could not read any listings from the results", LogType.INFO)
            return []

        contractors = normalize_listings(raw_items, self.platform.name)
        self._bump(EXTRACT_DONE_PROGRESS, f"Extracted {len(contractors)} listings")
        return contractors
