from __future__ import annotations

from typing import Any, Dict, Iterator, Optional

from ..core.extractor import combine, extract
from ..core.turn_state import TurnPhase
from .channel import LOG, ChannelFactory, Event, TurnClient


NOTHING_USABLE_MESSAGE = "No valid code was generated. Please try a different prompt."


class PreviewSession(TurnClient):
    """Client for the HTML/CSS/JS writer.

    Every ``chunk`` event re-extracts the artifact set from the accumulated
    text and replaces the preview; ``complete`` finalizes it.
    """

    STREAM_PATH = "/codewriter/stream"
    GENERATE_PATH = "/codewriter/generate"
    CONTINUE_PATH = "/codewriter/continue"

    def __init__(
        self,
        base_url: str,
        http: Optional[Any] = None,
        channel_factory: Optional[ChannelFactory] = None,
    ) -> None:
        super().__init__(base_url, http=http, channel_factory=channel_factory)
        self.files: Dict[str, str] = {}
        self.content = ""
        self.nothing_usable = False

    def start(self, instruction: str) -> Iterator[Event]:
        """Open a streaming turn and yield each event after it has been applied."""
        self._begin()
        self.nothing_usable = False
        channel = self._open(self.STREAM_PATH, self._turn_payload(instruction))
        for event in channel.events():
            self.handle_event(event)
            yield event
            if self.lifecycle.finished:
                break
        self._channel = None

    def submit(self, instruction: str) -> Dict[str, str]:
        for _ in self.start(instruction):
            pass
        return self.files

    def handle_event(self, event: Event) -> None:
        kind = event.get("type")
        if kind == "chunk":
            self.lifecycle.advance(TurnPhase.STREAMING)
            self.content = event.get("accumulated") or ""
            self.files = extract(self.content)
            if event.get("sessionId"):
                self.session_id = event["sessionId"]
        elif kind == "complete":
            self._remember(event)
            self._finalize(event.get("content") or "")
        elif kind == "error":
            self._fail(event.get("message") or "Stream error occurred")
        else:
            LOG.debug("preview_unknown_event", extra={"type": kind})

    def _finalize(self, content: str) -> None:
        self.content = content
        self.files = extract(content)
        self.lifecycle.advance(TurnPhase.COMPLETED)
        self.nothing_usable = not self.files
        if self.nothing_usable:
            self.error = NOTHING_USABLE_MESSAGE

    def run_blocking(self, instruction: str) -> Dict[str, str]:
        """Non-streaming fallback: one request, no chunk handling."""
        self._begin()
        self.nothing_usable = False
        path = self.CONTINUE_PATH if self.session_id or self.conversation else self.GENERATE_PATH
        body = self._post(path, self._turn_payload(instruction))
        if body is None:
            return self.files
        self._remember(body)
        self._finalize(body.get("content") or "")
        return self.files

    def combined_html(self) -> str:
        return combine(self.files)
