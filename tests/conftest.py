"""Pytest configuration and fixtures for qwikhttp tests.

This file provides:
- ScriptedSender: in-memory Sender that replays queued exchanges
- Item/Tag models: representative domain objects for codec tests
- Fixtures: isolated ProcessConfig, sender and builder factory
"""

from __future__ import annotations

from collections import deque
from pathlib import Path
from typing import Any, Callable

import pytest
from pydantic import BaseModel, Field

from qwikhttp.config import ProcessConfig
from qwikhttp.errors import TransportError
from qwikhttp.models import HttpMethod, RequestDescriptor, ResponseThread, TransportResponse
from qwikhttp.request_builder import RequestBuilder

BASE_URL = "https://api.example.com"


class Tag(BaseModel):
    label: str


class Item(BaseModel):
    id: int | None = None
    name: str
    tags: list[Tag] = Field(default_factory=list)


class Empty(BaseModel):
    pass


class ScriptedSender:
    """Sender that answers from a queue of scripted exchanges.

    Callbacks run synchronously inside send(), which keeps lifecycle tests
    deterministic. Every descriptor sent is recorded in `sent`.

    Usage:
        sender = ScriptedSender()
        sender.respond(201, b'{"id": 7}')
        sender.fail(TransportError("offline"))
    """

    def __init__(self) -> None:
        self.sent: list[RequestDescriptor] = []
        self._script: deque[tuple[bytes | None, TransportResponse | None, Exception | None]] = deque()

    def respond(
        self,
        status_code: int = 200,
        body: bytes | str = b"",
        headers: dict[str, str] | None = None,
    ) -> "ScriptedSender":
        data = body.encode("utf-8") if isinstance(body, str) else body
        response = TransportResponse(status_code=status_code, headers=headers or {})
        self._script.append((data, response, None))
        return self

    def fail(self, error: Exception) -> "ScriptedSender":
        self._script.append((None, None, error))
        return self

    @property
    def call_count(self) -> int:
        return len(self.sent)

    def send(
        self,
        descriptor: RequestDescriptor,
        callback: Callable[[bytes | None, TransportResponse | None, Exception | None], None],
    ) -> None:
        self.sent.append(descriptor)
        if self._script:
            data, response, error = self._script.popleft()
        else:
            data, response, error = None, None, TransportError("No scripted response")
        callback(data, response, error)


class Recorder:
    """Collects handler invocations as tuples."""

    def __init__(self) -> None:
        self.calls: list[tuple[Any, ...]] = []

    def __call__(self, *args: Any) -> None:
        self.calls.append(args)

    @property
    def last(self) -> tuple[Any, ...]:
        assert self.calls, "handler was never called"
        return self.calls[-1]


# =============================================================================
# Pytest Fixtures
# =============================================================================


@pytest.fixture
def sender() -> ScriptedSender:
    return ScriptedSender()


@pytest.fixture
def config(sender: ScriptedSender) -> ProcessConfig:
    """Isolated config delivering handlers inline, wired to the scripted sender."""
    return ProcessConfig(
        default_response_thread=ResponseThread.BACKGROUND,
        sender=sender,
    )


@pytest.fixture
def make_builder(config: ProcessConfig) -> Callable[..., RequestBuilder]:
    """Factory for builders bound to the isolated config."""

    def factory(path: str = "/items", method: HttpMethod | str = HttpMethod.GET) -> RequestBuilder:
        return RequestBuilder(f"{BASE_URL}{path}", method, config=config)

    return factory


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


# =============================================================================
# Pytest Hooks
# =============================================================================


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    """Automatically apply markers based on test location.

    Enables running subsets via:
        pytest -m integration  # only integration tests
        pytest -m unit         # only unit tests
    """
    for item in items:
        test_path = Path(item.fspath)
        if "integration" in test_path.parts:
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)
