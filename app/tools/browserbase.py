from __future__ import annotations

from dataclasses import dataclass

import httpx
from loguru import logger

from app.config import settings


class BrowserbaseError(RuntimeError):
    pass


@dataclass
class BrowserbaseSession:
    id: str
    connect_url: str
    live_view_url: str | None = None


def _headers() -> dict[str, str]:
    if not settings.browserbase_api_key:
        raise BrowserbaseError("BROWSERBASE_API_KEY is not configured")
    return {
        "X-BB-API-Key": settings.browserbase_api_key,
        "Content-Type": "application/json",
    }


def _url(path: str) -> str:
    return settings.browserbase_base_url.rstrip("/") + path


async def create_session() -> BrowserbaseSession:
    """Provision a remote browser and resolve its live-view URL."""
    if not settings.browserbase_project_id:
        raise BrowserbaseError("BROWSERBASE_PROJECT_ID is not configured")

    async with httpx.AsyncClient(timeout=30.0) as client:
        response = await client.post(
            _url("/sessions"),
            json={"projectId": settings.browserbase_project_id},
            headers=_headers(),
        )
        if response.status_code >= 400:
            raise BrowserbaseError(
                f"Browserbase session create failed ({response.status_code}): {response.text[:200]}"
            )
        payload = response.json()

        session_id = payload.get("id")
        connect_url = payload.get("connectUrl")
        if not session_id or not connect_url:
            raise BrowserbaseError("Browserbase response missing session id or connectUrl")

        live_view_url = None
        try:
            debug = await client.get(_url(f"/sessions/{session_id}/debug"), headers=_headers())
            debug.raise_for_status()
            data = debug.json()
            live_view_url = data.get("debuggerFullscreenUrl") or data.get("debuggerUrl")
        except (httpx.HTTPError, ValueError) as exc:
            # The live view is optional; the search can run without it.
            logger.warning(f"Could not fetch live view for Browserbase session {session_id}: {exc}")

    return BrowserbaseSession(id=session_id, connect_url=connect_url, live_view_url=live_view_url)


async def release_session(session_id: str) -> None:
    """Ask Browserbase to shut the remote browser down."""
    async with httpx.AsyncClient(timeout=15.0) as client:
        response = await client.post(
            _url(f"/sessions/{session_id}"),
            json={
                "projectId": settings.browserbase_project_id,
                "status": "REQUEST_RELEASE",
            },
            headers=_headers(),
        )
        response.raise_for_status()
