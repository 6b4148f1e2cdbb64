from __future__ import annotations

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from loguru import logger

from app.agents.browser_agent import BrowserAgent
from app.agents.platform_worker import PlatformSearchWorker
from app.models.quote import LogType, WorkerStatus
from app.services.platforms import PLATFORMS
from conftest import FakeAgent, FakeBrowser, listing_json

agent_logger = logger.patch(lambda record: record.update(name="app.agents.base"))


def make_worker(quote_session, agent, *, browser=None, platform="taskrabbit", **kwargs):
    browser = browser or FakeBrowser()
    snapshots = []

    async def provide():
        return browser

    worker = PlatformSearchWorker(
        PLATFORMS[platform],
        quote_session,
        notify=lambda record: snapshots.append((record.status, record.progress)),
        browser_provider=provide,
        agent_factory=lambda page, platform: agent,
        max_steps=5,
        navigation_timeout_ms=1000,
        **kwargs,
    )
    return worker, browser, snapshots


@pytest.mark.asyncio
async def test_successful_run_walks_the_state_machine(quote_session):
    agent = FakeAgent(listing_json(3))
    worker, browser, snapshots = make_worker(quote_session, agent)

    contractors = await worker.run()

    assert len(contractors) == 3
    assert [c.name for c in contractors] == ["Pro 1", "Pro 2", "Pro 3"]
    assert worker.record.status == WorkerStatus.COMPLETED
    assert worker.record.progress == 100
    assert worker.record.contractors == contractors
    assert worker.record.browser_session_id == "bb-session-1"
    assert worker.record.live_view_url.endswith("bb-session-1")
    assert worker.record.end_time is not None
    assert browser.page.visited == ["https://www.taskrabbit.com"]
    assert browser.closed == 1

    statuses = [status for status, _ in snapshots]
    order = [
        WorkerStatus.INITIALIZING,
        WorkerStatus.NAVIGATING,
        WorkerStatus.SEARCHING,
        WorkerStatus.EXTRACTING,
        WorkerStatus.COMPLETED,
    ]
    assert [s for s in dict.fromkeys(statuses)] == order
    progress = [p for _, p in snapshots]
    assert progress == sorted(progress)


@pytest.mark.asyncio
async def test_instruction_carries_job_context(quote_session):
    agent = FakeAgent("[]")
    worker, _, _ = make_worker(quote_session, agent, platform="thumbtack")

    await worker.run()

    instruction = agent.instructions[0]
    assert "faucet repair" in instruction
    assert "94107" in instruction
    assert "thumbtack.com" in instruction


@pytest.mark.asyncio
async def test_unparseable_answer_completes_with_no_contractors(quote_session):
    worker, browser, _ = make_worker(quote_session, FakeAgent("Sorry, the page did not load."))

    contractors = await worker.run()

    assert contractors == []
    assert worker.record.status == WorkerStatus.COMPLETED
    assert worker.record.error is None
    assert any("Could not read any listings" in e.message for e in worker.record.logs)
    assert browser.closed == 1


@pytest.mark.asyncio
async def test_agent_failure_marks_error_and_closes_browser(quote_session):
    worker, browser, _ = make_worker(quote_session, FakeAgent("", raises=RuntimeError("timeout")))

    contractors = await worker.run()

    assert contractors == []
    assert worker.record.status == WorkerStatus.ERROR
    assert worker.record.error == "timeout"
    assert worker.record.logs[-1].type == LogType.ERROR
    assert browser.closed == 1


@pytest.mark.asyncio
async def test_navigation_failure_is_contained(quote_session):
    browser = FakeBrowser()
    browser.page.fail_goto = RuntimeError("net::ERR_NAME_NOT_RESOLVED")
    worker, _, _ = make_worker(quote_session, FakeAgent("[]"), browser=browser)

    assert await worker.run() == []
    assert worker.record.status == WorkerStatus.ERROR
    assert "ERR_NAME_NOT_RESOLVED" in worker.record.error
    assert browser.closed == 1


@pytest.mark.asyncio
async def test_browser_provisioning_failure_is_contained(quote_session):
    async def broken():
        raise RuntimeError("Browserbase unavailable")

    worker = PlatformSearchWorker(
        PLATFORMS["thumbtack"],
        quote_session,
        notify=lambda record: None,
        browser_provider=broken,
        agent_factory=lambda page, platform: FakeAgent("[]"),
    )

    assert await worker.run() == []
    assert worker.record.status == WorkerStatus.ERROR
    assert worker.record.error == "Browserbase unavailable"


@pytest.mark.asyncio
async def test_wall_clock_timeout_marks_error(quote_session):
    never = asyncio.get_running_loop().create_future()
    worker, browser, _ = make_worker(quote_session, FakeAgent("[]", wait=never), timeout_seconds=0.05)

    assert await worker.run() == []
    assert worker.record.status == WorkerStatus.ERROR
    assert "Timed out" in worker.record.error
    assert browser.closed == 1


@pytest.mark.asyncio
async def test_agent_steps_raise_progress_within_search_band(quote_session):
    worker, _, snapshots = make_worker(quote_session, FakeAgent("[]", steps=5))

    await worker.run()

    search_progress = [p for status, p in snapshots if status == WorkerStatus.SEARCHING]
    assert search_progress[0] == 25
    assert max(search_progress) == 60


@pytest.mark.asyncio
async def test_agent_reasoning_lines_become_log_entries(quote_session):
    class ChattyAgent(FakeAgent):
        async def run(self, instruction, *, max_steps, on_step=None):
            agent_logger.info("Reasoning: the search box is at the top")
            return await super().run(instruction, max_steps=max_steps, on_step=on_step)

    worker, _, _ = make_worker(quote_session, ChattyAgent("[]"))

    await worker.run()

    messages = [e.message for e in worker.record.logs]
    assert "the search box is at the top" in messages


@pytest.mark.asyncio
async def test_terminal_record_ignores_later_updates(quote_session):
    worker, _, _ = make_worker(quote_session, FakeAgent("[]"))
    await worker.run()

    assert worker.record.transition(WorkerStatus.SEARCHING, progress=10) is False
    assert worker.record.bump_progress(50) is False
    assert worker.record.status == WorkerStatus.COMPLETED
    assert worker.record.progress == 100


@pytest.mark.asyncio
async def test_listings_from_the_last_turn_survive_the_step_limit(quote_session):
    def scroll_turn(text=None):
        blocks = [SimpleNamespace(type="tool_use", name="scroll", input={"direction": "down"}, id="t")]
        if text is not None:
            blocks.insert(0, SimpleNamespace(type="text", text=text))
        return SimpleNamespace(content=blocks, usage=SimpleNamespace(input_tokens=1, output_tokens=1))

    def build_agent(page, platform):
        page.mouse = SimpleNamespace(wheel=AsyncMock())
        agent = BrowserAgent(page, platform, model="test-model")
        turns = [scroll_turn() for _ in range(4)] + [scroll_turn(listing_json(2))]
        agent.client = SimpleNamespace(messages=SimpleNamespace(create=AsyncMock(side_effect=turns)))
        return agent

    worker = PlatformSearchWorker(
        PLATFORMS["thumbtack"],
        quote_session,
        notify=lambda record: None,
        browser_provider=AsyncMock(return_value=FakeBrowser()),
        agent_factory=build_agent,
        max_steps=5,
        navigation_timeout_ms=1000,
    )

    contractors = await worker.run()

    assert [c.name for c in contractors] == ["Pro 1", "Pro 2"]
    assert worker.record.status == WorkerStatus.COMPLETED
    assert any("without finishing" in e.message for e in worker.record.logs)
