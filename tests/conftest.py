"""Shared fixtures: a fake KIE.ai API behind httpx.MockTransport."""
from __future__ import annotations

from typing import Any, Callable

import httpx
import pytest

from suno_relay.client import FailoverClient
from suno_relay.history import JsonHistoryStore


class FakeKie:
    """Answers requests per API key and records which keys were used.

    ``replies`` maps a key to either a JSON-able dict, an ``httpx.Response``,
    an exception instance to raise, or a callable taking the request.
    """

    def __init__(self, replies: dict[str, Any] | None = None) -> None:
        self.replies: dict[str, Any] = dict(replies or {})
        self.calls: list[tuple[str, httpx.Request]] = []

    @property
    def keys_used(self) -> list[str]:
        return [key for key, _ in self.calls]

    def handler(self, request: httpx.Request) -> httpx.Response:
        key = request.headers["Authorization"].removeprefix("Bearer ")
        self.calls.append((key, request))
        reply = self.replies.get(key, {"code": 401, "msg": "Unauthorized"})
        if callable(reply):
            reply = reply(request)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, httpx.Response):
            return reply
        return httpx.Response(200, json=reply)


@pytest.fixture
def fake_kie() -> FakeKie:
    return FakeKie()


@pytest.fixture
def make_client(fake_kie: FakeKie) -> Callable[..., FailoverClient]:
    def _make(default_key: str | None = None) -> FailoverClient:
        return FailoverClient(
            default_key=default_key,
            base_url="https://api.test",
            transport=httpx.MockTransport(fake_kie.handler),
        )
    return _make


@pytest.fixture
def store(tmp_path) -> JsonHistoryStore:
    return JsonHistoryStore(tmp_path / "data")
