"""Turn the browsing agent's own log lines into worker log entries.

The agent reports its reasoning and screenshots through loguru. While a
worker runs, a dedicated sink is attached that only accepts records bound to
that worker's correlation id, so concurrent workers never see each other's
lines. The sink is removed on every exit path.
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Callable, Iterator

from loguru import logger

from app.models.quote import LogType

REASONING_MARKERS = ("Reasoning:", "Thinking:", "Plan:")
ACTION_MARKERS = ("Action:",)
SCREENSHOT_MARKERS = ("Screenshot",)
CORRELATION_KEY = "worker_id"
# Only lines emitted by the agent are captured. Anything logged while an
# entry is being handled (broadcast warnings) comes from other modules, which
# keeps the sink from re-entering itself.
AGENT_MODULES = ("app.agents.base", "app.agents.browser_agent")

LogCallback = Callable[[str, LogType], None]


def truncate(text: str, max_chars: int) -> str:
    text = " ".join(text.split())
    if len(text) <= max_chars:
        return text
    return text[: max(max_chars - 3, 0)].rstrip() + "..."


def classify_line(line: str, *, max_chars: int) -> tuple[str, LogType] | None:
    """Map one agent log line to a (message, type) entry, or None to skip it."""
    for marker in REASONING_MARKERS:
        idx = line.find(marker)
        if idx >= 0:
            reasoning = line[idx + len(marker) :].strip()
            if not reasoning:
                return None
            return truncate(reasoning, max_chars), LogType.INFO
    for marker in ACTION_MARKERS:
        idx = line.find(marker)
        if idx >= 0:
            return truncate(line[idx + len(marker) :].strip(), max_chars), LogType.ACTION
    if any(marker in line for marker in SCREENSHOT_MARKERS):
        return truncate(line, max_chars), LogType.ACTION
    return None


@contextmanager
def capture_agent_logs(
    correlation_id: str,
    on_entry: LogCallback,
    *,
    max_chars: int = 200,
) -> Iterator[None]:
    """Route this task's reasoning/screenshot log lines to `on_entry`."""

    def sink(message) -> None:
        entry = classify_line(message.record["message"], max_chars=max_chars)
        if entry is not None:
            on_entry(*entry)

    # catch=True: loguru reports a failing callback on stderr instead of
    # raising into the agent code that emitted the line.
    handler_id = logger.add(
        sink,
        level="DEBUG",
        format="{message}",
        filter=lambda record: (
            record["extra"].get(CORRELATION_KEY) == correlation_id
            and record["name"] in AGENT_MODULES
        ),
        catch=True,
    )
    try:
        with logger.contextualize(**{CORRELATION_KEY: correlation_id}):
            yield
    finally:
        logger.remove(handler_id)
