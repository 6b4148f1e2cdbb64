from __future__ import annotations

import httpx
import pytest

from app.config import settings
from app.tools import browserbase


class _FakeResponse:
    def __init__(self, payload: dict, status_code: int = 200):
        self._payload = payload
        self.status_code = status_code
        self.text = str(payload)

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            request = httpx.Request("GET", "https://api.browserbase.test")
            raise httpx.HTTPStatusError(
                "error", request=request, response=httpx.Response(self.status_code, request=request)
            )

    def json(self) -> dict:
        return self._payload


@pytest.fixture
def configured(monkeypatch):
    monkeypatch.setattr(settings, "browserbase_api_key", "bb-key")
    monkeypatch.setattr(settings, "browserbase_project_id", "proj-1")
    monkeypatch.setattr(settings, "browserbase_base_url", "https://api.browserbase.test/v1/")


@pytest.mark.asyncio
async def test_create_session_resolves_live_view(monkeypatch, configured):
    posted: list[tuple[str, dict, dict]] = []

    async def fake_post(self, url: str, **kwargs):  # noqa: ARG001
        posted.append((url, kwargs["json"], kwargs["headers"]))
        return _FakeResponse({"id": "sess-1", "connectUrl": "wss://connect.test/sess-1"})

    async def fake_get(self, url: str, **kwargs):  # noqa: ARG001
        assert url == "https://api.browserbase.test/v1/sessions/sess-1/debug"
        return _FakeResponse({"debuggerFullscreenUrl": "https://live.test/sess-1"})

    monkeypatch.setattr(httpx.AsyncClient, "post", fake_post)
    monkeypatch.setattr(httpx.AsyncClient, "get", fake_get)

    session = await browserbase.create_session()

    assert session.id == "sess-1"
    assert session.connect_url == "wss://connect.test/sess-1"
    assert session.live_view_url == "https://live.test/sess-1"
    url, body, headers = posted[0]
    assert url == "https://api.browserbase.test/v1/sessions"
    assert body == {"projectId": "proj-1"}
    assert headers["X-BB-API-Key"] == "bb-key"


@pytest.mark.asyncio
async def test_live_view_failure_is_not_fatal(monkeypatch, configured):
    async def fake_post(self, url: str, **kwargs):  # noqa: ARG001
        return _FakeResponse({"id": "sess-1", "connectUrl": "wss://connect.test/sess-1"})

    async def fake_get(self, url: str, **kwargs):  # noqa: ARG001
        return _FakeResponse({}, status_code=500)

    monkeypatch.setattr(httpx.AsyncClient, "post", fake_post)
    monkeypatch.setattr(httpx.AsyncClient, "get", fake_get)

    session = await browserbase.create_session()
    assert session.live_view_url is None


@pytest.mark.asyncio
async def test_create_session_reports_api_errors(monkeypatch, configured):
    async def fake_post(self, url: str, **kwargs):  # noqa: ARG001
        return _FakeResponse({"error": "quota exceeded"}, status_code=429)

    monkeypatch.setattr(httpx.AsyncClient, "post", fake_post)

    with pytest.raises(browserbase.BrowserbaseError, match="429"):
        await browserbase.create_session()


@pytest.mark.asyncio
async def test_missing_credentials_fail_fast(monkeypatch):
    monkeypatch.setattr(settings, "browserbase_project_id", "")
    with pytest.raises(browserbase.BrowserbaseError, match="PROJECT_ID"):
        await browserbase.create_session()


@pytest.mark.asyncio
async def test_release_session_requests_release(monkeypatch, configured):
    posted: list[tuple[str, dict]] = []

    async def fake_post(self, url: str, **kwargs):  # noqa: ARG001
        posted.append((url, kwargs["json"]))
        return _FakeResponse({})

    monkeypatch.setattr(httpx.AsyncClient, "post", fake_post)

    await browserbase.release_session("sess-1")

    assert posted == [
        (
            "https://api.browserbase.test/v1/sessions/sess-1",
            {"projectId": "proj-1", "status": "REQUEST_RELEASE"},
        )
    ]


@pytest.mark.asyncio
async def test_remote_browser_releases_session_when_connect_fails(monkeypatch):
    from app.tools import remote_browser

    released: list[str] = []

    async def fake_create():
        return browserbase.BrowserbaseSession(id="sess-9", connect_url="wss://x")

    async def fake_release(session_id):
        released.append(session_id)

    async def broken_connect(self):
        raise RuntimeError("CDP handshake failed")

    monkeypatch.setattr(browserbase, "create_session", fake_create)
    monkeypatch.setattr(browserbase, "release_session", fake_release)
    monkeypatch.setattr(remote_browser.RemoteBrowser, "_connect", broken_connect)

    with pytest.raises(RuntimeError, match="CDP"):
        await remote_browser.RemoteBrowser.open()
    assert released == ["sess-9"]


@pytest.mark.asyncio
async def test_remote_browser_close_is_idempotent_and_swallows_release_errors(monkeypatch):
    from app.tools import remote_browser

    calls = 0

    async def failing_release(session_id):
        nonlocal calls
        calls += 1
        raise httpx.ConnectError("down")

    monkeypatch.setattr(browserbase, "release_session", failing_release)
    browser = remote_browser.RemoteBrowser(
        browserbase.BrowserbaseSession(id="sess-1", connect_url="wss://x")
    )

    await browser.close()
    await browser.close()
    assert calls == 1
    with pytest.raises(RuntimeError):
        browser.page
