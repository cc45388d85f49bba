from __future__ import annotations

import sys
from pathlib import Path
from typing import Callable
from unittest.mock import patch

import httpx
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from askexpert.config import ExpertConfig

# PNG signature plus an IHDR-sized stub; content is never decoded.
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00\x00\x00\x0dIHDR" + b"\x00" * 13


class FakeHttp:
    """Records every outbound request and answers with ``handler``."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.handler: Callable[[httpx.Request], httpx.Response] | None = None

    def respond(self, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.handler = handler

    def respond_json(self, payload: object, status_code: int = 200) -> None:
        self.handler = lambda request: httpx.Response(status_code, json=payload)

    def _dispatch(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.handler is None:
            raise AssertionError(f"unexpected HTTP request: {request.method} {request.url}")
        return self.handler(request)


@pytest.fixture
def fake_http():
    fake = FakeHttp()
    real_client = httpx.AsyncClient
    transport = httpx.MockTransport(fake._dispatch)

    def _factory(*args, **kwargs):
        kwargs.pop("transport", None)
        return real_client(*args, transport=transport, **kwargs)

    with patch("httpx.AsyncClient", side_effect=_factory):
        yield fake


@pytest.fixture
def config() -> ExpertConfig:
    return ExpertConfig(base_url="https://api.example.com", model="o3", temperature=1.0, timeout=60.0)
