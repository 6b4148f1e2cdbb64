from __future__ import annotations

import base64
from typing import Any

from loguru import logger

from app.agents.base import BaseAgent
from app.services.platforms import Platform
from app.services.prompt_store import render_prompt
from app.tools import web_utils

PAGE_TEXT_LIMIT = 12000
ACTION_TIMEOUT_MS = 10000


class BrowserAgent(BaseAgent):
    """Agent that drives one Playwright page, confined to a single site."""

    name = "browser"
    tools = [
        {
            "name": "navigate",
            "description": "Open a URL. Only URLs on the current site are allowed.",
            "input_schema": {
                "type": "object",
                "properties": {"url": {"type": "string", "description": "Absolute URL to open."}},
                "required": ["url"],
            },
        },
        {
            "name": "click_text",
            "description": "Click the first visible element whose text matches.",
            "input_schema": {
                "type": "object",
                "properties": {
                    "text": {"type": "string", "description": "Visible text of a link, button or option."},
                    "exact": {"type": "boolean", "default": False},
                },
                "required": ["text"],
            },
        },
        {
            "name": "click_at",
            "description": "Click at page coordinates taken from the latest screenshot.",
            "input_schema": {
                "type": "object",
                "properties": {"x": {"type": "integer"}, "y": {"type": "integer"}},
                "required": ["x", "y"],
            },
        },
        {
            "name": "type_text",
            "description": (
                "Fill an input. Target it with a CSS selector or its placeholder/label text. "
                "Set submit to press Enter afterwards."
            ),
            "input_schema": {
                "type": "object",
                "properties": {
                    "target": {"type": "string"},
                    "text": {"type": "string"},
                    "submit": {"type": "boolean", "default": False},
                },
                "required": ["target", "text"],
            },
        },
        {
            "name": "press_key",
            "description": "Press a keyboard key such as Enter, Escape or Tab.",
            "input_schema": {
                "type": "object",
                "properties": {"key": {"type": "string"}},
                "required": ["key"],
            },
        },
        {
            "name": "scroll",
            "description": "Scroll the page up or down by one screen.",
            "input_schema": {
                "type": "object",
                "properties": {"direction": {"type": "string", "enum": ["up", "down"]}},
                "required": ["direction"],
            },
        },
        {
            "name": "read_page",
            "description": "Return the current URL, title and visible text of the page.",
            "input_schema": {"type": "object", "properties": {}},
        },
        {
            "name": "screenshot",
            "description": "Capture the visible viewport as an image.",
            "input_schema": {"type": "object", "properties": {}},
        },
    ]

    def __init__(self, page: Any, platform: Platform, model: str | None = None):
        super().__init__(model)
        self.page = page
        self.platform = platform
        self.system_prompt = render_prompt(
            "browser_agent.system_prompt",
            platform_name=platform.display_name,
            allowed_domain=platform.domain,
        )

    def _allowed(self, url: str) -> bool:
        return web_utils.is_on_domain(url, self.platform.domain)

    async def _stay_on_site(self) -> str | None:
        """Go back if the last action left the platform; returns a note for the model."""
        current = self.page.url
        if not current or current == "about:blank" or self._allowed(current):
            return None
        logger.info(f"Left {self.platform.domain} ({current}), going back")
        await self.page.go_back(wait_until="domcontentloaded", timeout=ACTION_TIMEOUT_MS)
        if not self._allowed(self.page.url):
            await self.page.goto(self.platform.base_url, wait_until="domcontentloaded")
        return f"That action left {self.platform.domain}; returned to {self.page.url}."

    async def handle_tool_call(
        self, tool_name: str, tool_input: dict[str, Any]
    ) -> str | list[dict[str, Any]]:
        page = self.page

        if tool_name == "navigate":
            url = str(tool_input.get("url", ""))
            if not web_utils.is_valid_url(url):
                return f"Invalid URL: {url}"
            if not self._allowed(url):
                logger.info(f"Blocked navigation outside {self.platform.domain}: {url}")
                return f"Navigation blocked: only {self.platform.domain} may be visited."
            logger.info(f"Action: navigate to {url}")
            await page.goto(url, wait_until="domcontentloaded", timeout=ACTION_TIMEOUT_MS * 3)
            return f"Opened {page.url}"

        if tool_name == "click_text":
            text = str(tool_input["text"])
            logger.info(f"Action: click '{text}'")
            locator = page.get_by_text(text, exact=bool(tool_input.get("exact", False))).first
            await locator.click(timeout=ACTION_TIMEOUT_MS)
            await page.wait_for_load_state("domcontentloaded")
            note = await self._stay_on_site()
            return note or f"Clicked '{text}'. Now at {page.url}"

        if tool_name == "click_at":
            x, y = int(tool_input["x"]), int(tool_input["y"])
            logger.info(f"Action: click at ({x}, {y})")
            await page.mouse.click(x, y)
            await page.wait_for_load_state("domcontentloaded")
            note = await self._stay_on_site()
            return note or f"Clicked at ({x}, {y}). Now at {page.url}"

        if tool_name == "type_text":
            target = str(tool_input["target"])
            text = str(tool_input["text"])
            logger.info(f"Action: type '{text}' into {target}")
            if target.startswith(("#", ".", "[")) or target.startswith(("input", "textarea")):
                locator = page.locator(target).first
            else:
                locator = page.get_by_placeholder(target).or_(page.get_by_label(target)).first
            await locator.fill(text, timeout=ACTION_TIMEOUT_MS)
            if tool_input.get("submit"):
                await locator.press("Enter")
                await page.wait_for_load_state("domcontentloaded")
                note = await self._stay_on_site()
                if note:
                    return note
            return f"Typed '{text}' into {target}"

        if tool_name == "press_key":
            key = str(tool_input["key"])
            logger.info(f"Action: press {key}")
            await page.keyboard.press(key)
            note = await self._stay_on_site()
            return note or f"Pressed {key}"

        if tool_name == "scroll":
            direction = tool_input.get("direction", "down")
            delta = -800 if direction == "up" else 800
            await page.mouse.wheel(0, delta)
            return f"Scrolled {direction}"

        if tool_name == "read_page":
            title = await page.title()
            body = await page.inner_text("body")
            text = web_utils.clean_content(body, max_length=PAGE_TEXT_LIMIT)
            return f"URL: {page.url}\nTitle: {title}\n\n{text}"

        if tool_name == "screenshot":
            image = await page.screenshot(type="jpeg", quality=60)
            logger.info(f"Screenshot captured at {page.url}")
            return [
                {
                    "type": "image",
                    "source": {
                        "type": "base64",
                        "media_type": "image/jpeg",
                        "data": base64.b64encode(image).decode("ascii"),
                    },
                }
            ]

        raise NotImplementedError(f"Unknown tool: {tool_name}")
