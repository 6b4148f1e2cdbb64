"""Playwright page on top of a Browserbase remote browser."""
from __future__ import annotations

from typing import Any

from loguru import logger

from app.tools import browserbase


class RemoteBrowser:
    """Owns one Browserbase session and the Playwright connection to it.

    Create with `await RemoteBrowser.open()`; `close()` is idempotent and
    never raises, so it is safe in `finally` blocks.
    """

    def __init__(self, session: browserbase.BrowserbaseSession):
        self.session = session
        self._playwright: Any = None
        self._browser: Any = None
        self._page: Any = None
        self._closed = False

    @property
    def session_id(self) -> str:
        return self.session.id

    @property
    def live_view_url(self) -> str | None:
        return self.session.live_view_url

    @property
    def page(self) -> Any:
        if self._page is None:
            raise RuntimeError("RemoteBrowser is not connected")
        return self._page

    @classmethod
    async def open(cls) -> "RemoteBrowser":
        session = await browserbase.create_session()
        browser = cls(session)
        try:
            await browser._connect()
        except BaseException:
            await browser.close()
            raise
        return browser

    async def _connect(self) -> None:
        from playwright.async_api import async_playwright

        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.connect_over_cdp(self.session.connect_url)
        # Browserbase starts every session with one context and one page.
        context = (
            self._browser.contexts[0]
            if self._browser.contexts
            else await self._browser.new_context()
        )
        self._page = context.pages[0] if context.pages else await context.new_page()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True

        if self._browser is not None:
            try:
                await self._browser.close()
            except Exception as exc:
                logger.warning(f"Failed to close browser for session {self.session_id}: {exc}")
        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except Exception as exc:
                logger.warning(f"Failed to stop Playwright for session {self.session_id}: {exc}")
        try:
            await browserbase.release_session(self.session_id)
        except Exception as exc:
            logger.warning(f"Failed to release Browserbase session {self.session_id}: {exc}")
        self._page = None
        logger.debug(f"Closed remote browser {self.session_id}")
