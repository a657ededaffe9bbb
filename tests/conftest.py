"""Shared fixtures: isolated settings and a fake HTTP server."""

import pytest
import requests

from scmultiome.settings import reset_settings

BASE_URL = "https://data.test/releases"


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Point the package at a temporary cache and a fake release host."""
    monkeypatch.setenv("SCMULTIOME_CACHE_DIR", str(tmp_path / "cache"))
    monkeypatch.setenv("SCMULTIOME_BASE_URL", BASE_URL)
    monkeypatch.setenv("SCMULTIOME_VERBOSE", "0")
    monkeypatch.delenv("SCMULTIOME_OFFLINE", raising=False)
    monkeypatch.delenv("SCMULTIOME_TIMEOUT", raising=False)
    reset_settings()
    yield
    reset_settings()


class FakeResponse:
    def __init__(self, content: bytes, status_code: int = 200):
        self.content = content
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error", response=self)

    def iter_content(self, chunk_size=1):
        for start in range(0, len(self.content), chunk_size):
            yield self.content[start:start + chunk_size]


class FakeServer:
    """Serves registered URLs; everything else is a 404."""

    def __init__(self):
        self.files = {}
        self.errors = {}
        self.requests = []

    def add(self, url: str, content: bytes):
        self.files[url] = content

    def fail(self, url: str, status_code: int):
        self.errors[url] = status_code

    def get(self, url, stream=False, timeout=None):
        self.requests.append(url)
        if url in self.errors:
            return FakeResponse(b"", status_code=self.errors[url])
        if url not in self.files:
            return FakeResponse(b"", status_code=404)
        return FakeResponse(self.files[url])


@pytest.fixture
def fake_server(monkeypatch):
    server = FakeServer()
    monkeypatch.setattr(requests, "get", server.get)
    return server
