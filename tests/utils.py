from __future__ import annotations

import json
from typing import Any, Dict, Iterator, List, Optional


class FakeGenerator:
    """Stand-in for the generation collaborator.

    ``complete`` returns ``reply``; ``stream`` yields ``chunks`` and, when
    ``error`` is set, raises it after ``fail_after`` chunks (immediately for
    ``complete``).
    """

    provider = "fake"
    model = "fake-model"

    def __init__(
        self,
        reply: str = "",
        chunks: Optional[List[str]] = None,
        error: Optional[Exception] = None,
        fail_after: int = 0,
    ) -> None:
        self.reply = reply
        self.chunks = list(chunks) if chunks is not None else [reply]
        self.error = error
        self.fail_after = fail_after
        self.calls: List[List[Dict[str, str]]] = []

    def complete(self, messages: List[Dict[str, str]]) -> str:
        self.calls.append(messages)
        if self.error is not None:
            raise self.error
        return self.reply

    def stream(self, messages: List[Dict[str, str]]) -> Iterator[str]:
        self.calls.append(messages)
        for index, chunk in enumerate(self.chunks):
            if self.error is not None and index == self.fail_after:
                raise self.error
            yield chunk
        if self.error is not None and self.fail_after >= len(self.chunks):
            raise self.error


def factory_for(generator: FakeGenerator):
    purposes: List[str] = []

    def _factory(purpose: str) -> FakeGenerator:
        purposes.append(purpose)
        return generator

    _factory.purposes = purposes  # type: ignore[attr-defined]
    return _factory


def read_events(body: str) -> List[Dict[str, Any]]:
    """Decode ``data: {...}`` frames from a server-sent event body."""
    events: List[Dict[str, Any]] = []
    for frame in body.split("\n\n"):
        frame = frame.strip()
        if frame.startswith("data: "):
            events.append(json.loads(frame[len("data: "):]))
    return events
