"""Shared fakes for the remote browser, page and browsing agent."""
from __future__ import annotations

import pytest

from app.agents.base import AgentResult
from app.models.quote import QuoteSession, SearchContext


class FakePage:
    def __init__(self, url: str = "about:blank"):
        self.url = url
        self.visited: list[str] = []
        self.fail_goto: Exception | None = None

    async def goto(self, url, **kwargs):
        if self.fail_goto is not None:
            raise self.fail_goto
        self.visited.append(url)
        self.url = url

    async def go_back(self, **kwargs):
        self.visited.pop()
        self.url = self.visited[-1] if self.visited else "about:blank"


class FakeBrowser:
    def __init__(self, session_id: str = "bb-session-1"):
        self.session_id = session_id
        self.live_view_url = f"https://live.example/{session_id}"
        self.page = FakePage()
        self.closed = 0

    async def close(self):
        self.closed += 1


class FakeAgent:
    """Replays a canned final answer after reporting `steps` agent steps."""

    def __init__(self, final_text: str, *, steps: int = 2, success: bool = True, raises=None, wait=None):
        self.final_text = final_text
        self.steps = steps
        self.success = success
        self.raises = raises
        self.wait = wait
        self.instructions: list[str] = []

    async def run(self, instruction, *, max_steps, on_step=None):
        self.instructions.append(instruction)
        if self.wait is not None:
            await self.wait
        if self.raises is not None:
            raise self.raises
        for step in range(1, min(self.steps, max_steps) + 1):
            if on_step is not None:
                on_step(step, max_steps)
        return AgentResult(success=self.success, final_text=self.final_text, steps=self.steps)


def listing_json(count: int, prefix: str = "Pro") -> str:
    items = ", ".join(
        f'{{"name": "{prefix} {i}", "rating": 4.{i}, "reviewCount": {10 * i}, "price": "${40 + i}/hr"}}'
        for i in range(1, count + 1)
    )
    return f"Here is what I found:\n```json\n[{items}]\n```"


@pytest.fixture
def context() -> SearchContext:
    return SearchContext(
        category="Plumbing",
        subcategory="faucet repair",
        problem_summary="Kitchen faucet is leaking under the sink",
        scope_of_work="Replace cartridge and reseal base",
    )


@pytest.fixture
def quote_session(context) -> QuoteSession:
    return QuoteSession(job_id="job-1", zip_code="94107", city="San Francisco", context=context)


@pytest.fixture(autouse=True)
def reset_sse_app_status():
    """sse-starlette keeps a process-wide exit event bound to the first loop."""
    from sse_starlette import sse

    app_status = getattr(sse, "AppStatus", None)
    if app_status is not None and hasattr(app_status, "should_exit_event"):
        app_status.should_exit_event = None
    yield
