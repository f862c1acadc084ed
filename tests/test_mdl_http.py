import httpx
import pytest

from markdownlang.mdl_http import fetch_document


def make_client(responses, seen):
    """Builds an AsyncClient stand-in that replays `responses` in order."""
    class DummyResp:
        def __init__(self, status, text):
            self.status_code = status
            self.text = text

    class DummyAsyncClient:
        def __init__(self, *args, **kwargs):
            seen.append(('init', kwargs))
        async def __aenter__(self):
            return self
        async def __aexit__(self, exc_type, exc, tb):
            return False
        async def request(self, method, url, headers=None):
            seen.append(('request', method, url, dict(headers or {})))
            item = responses.pop(0)
            if isinstance(item, Exception):
                raise item
            return DummyResp(*item)

    return DummyAsyncClient


@pytest.mark.asyncio
async def test_fetch_document_returns_status_and_text(monkeypatch):
    seen = []
    monkeypatch.setattr(httpx, "AsyncClient", make_client([(200, "# main\n")], seen))
    status, text = await fetch_document("https://example.com/a.md", config={"timeout": 1.5})
    assert (status, text) == (200, "# main\n")
    assert seen[0] == ('init', {'timeout': 1.5, 'follow_redirects': True})
    _, method, url, headers = seen[1]
    assert method == 'GET' and url == "https://example.com/a.md"
    assert headers["Accept"].startswith("text/markdown")


@pytest.mark.asyncio
async def test_fetch_document_does_not_raise_on_error_status(monkeypatch):
    seen = []
    monkeypatch.setattr(httpx, "AsyncClient", make_client([(503, "busy")], seen))
    assert await fetch_document("https://example.com/a.md", config={"retries": 0}) == (503, "busy")


@pytest.mark.asyncio
async def test_fetch_document_retries_transport_errors(monkeypatch):
    seen = []
    responses = [httpx.ConnectError("refused"), (200, "ok")]
    monkeypatch.setattr(httpx, "AsyncClient", make_client(responses, seen))
    status, text = await fetch_document("https://example.com/a.md", config={"retries": 1, "backoff": 0})
    assert (status, text) == (200, "ok")
    assert len([s for s in seen if s[0] == 'request']) == 2


@pytest.mark.asyncio
async def test_fetch_document_gives_up_after_retries(monkeypatch):
    seen = []
    responses = [httpx.ConnectError("refused"), httpx.ConnectError("refused again")]
    monkeypatch.setattr(httpx, "AsyncClient", make_client(responses, seen))
    with pytest.raises(httpx.ConnectError):
        await fetch_document("https://example.com/a.md", config={"retries": 1, "backoff": 0})


@pytest.mark.asyncio
async def test_fetch_document_reads_env_defaults(monkeypatch):
    seen = []
    monkeypatch.setenv("MDLANG_HTTP_TIMEOUT", "9")
    monkeypatch.setattr(httpx, "AsyncClient", make_client([(200, "")], seen))
    await fetch_document("https://example.com/a.md")
    assert seen[0][1]['timeout'] == 9.0
