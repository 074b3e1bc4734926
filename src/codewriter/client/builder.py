from __future__ import annotations

from typing import Any, Iterator, List, Optional

from ..core.directives import find_node, materialize, parse_directives
from ..core.turn_state import TurnPhase
from ..domain.directives import Directive, FileTreeNode
from ..domain.models import ConversationTurn
from .channel import LOG, ChannelFactory, Event, TurnClient


class ProjectBuilder(TurnClient):
    """Client for the multi-file builder.

    Keeps the ordered directive list and the file tree. Directive ids keep
    increasing across turns; only completed replies are folded into the tree,
    while ``preview_steps`` shows what the reply in flight describes so far.
    """

    TEMPLATE_PATH = "/builder/template"
    STREAM_PATH = "/builder/stream"
    CHAT_PATH = "/builder/chat"
    CONTINUE_PATH = "/builder/continue"

    def __init__(
        self,
        base_url: str,
        http: Optional[Any] = None,
        channel_factory: Optional[ChannelFactory] = None,
    ) -> None:
        super().__init__(base_url, http=http, channel_factory=channel_factory)
        self.steps: List[Directive] = []
        self.tree: List[FileTreeNode] = []
        self.preview_steps: List[Directive] = []

    def _next_id(self) -> int:
        return max((step.id for step in self.steps), default=0) + 1

    def apply_response(self, text: str) -> List[Directive]:
        """Parse ``text`` into new directives and fold them into the tree."""
        parsed = parse_directives(text, start_id=self._next_id())
        self.tree, self.steps = materialize(self.tree, self.steps + parsed)
        self.preview_steps = []
        return parsed

    def load_template(self, prompt: str) -> List[Directive]:
        """Seed the tree and the conversation from the server template."""
        self._begin()
        body = self._post(self.TEMPLATE_PATH, {"prompt": prompt})
        if body is None:
            return []
        applied: List[Directive] = []
        for ui_prompt in body.get("uiPrompts") or []:
            applied.extend(self.apply_response(ui_prompt))
        self.conversation = [ConversationTurn(role="user", content=p) for p in body.get("prompts") or []]
        self.lifecycle.advance(TurnPhase.COMPLETED)
        return applied

    def start(self, instruction: str) -> Iterator[Event]:
        self._begin()
        channel = self._open(self.STREAM_PATH, self._turn_payload(instruction))
        for event in channel.events():
            self.handle_event(event)
            yield event
            if self.lifecycle.finished:
                break
        self._channel = None

    def send(self, instruction: str) -> List[Directive]:
        before = len(self.steps)
        for _ in self.start(instruction):
            pass
        return self.steps[before:]

    def handle_event(self, event: Event) -> None:
        kind = event.get("type")
        if kind == "chunk":
            self.lifecycle.advance(TurnPhase.STREAMING)
            self.preview_steps = parse_directives(event.get("accumulated") or "", start_id=self._next_id())
            if event.get("sessionId"):
                self.session_id = event["sessionId"]
        elif kind == "complete":
            self._remember(event)
            self.apply_response(event.get("content") or "")
            self.lifecycle.advance(TurnPhase.COMPLETED)
        elif kind == "error":
            self.preview_steps = []
            self._fail(event.get("message") or "Stream error occurred")
        else:
            LOG.debug("builder_unknown_event", extra={"type": kind})

    def run_blocking(self, instruction: str) -> List[Directive]:
        self._begin()
        body = self._post(self.CHAT_PATH, self._turn_payload(instruction))
        return self._apply_body(body)

    def continue_generation(self) -> List[Directive]:
        """Ask the server to resume a reply that was cut off."""
        self._begin()
        payload = {"history": [t.model_dump() for t in self.conversation]}
        if self.session_id:
            payload["sessionId"] = self.session_id
        body = self._post(self.CONTINUE_PATH, payload)
        if body is not None and "<boltArtifact" not in (body.get("content") or ""):
            # Continuations omit the outer artifact tag.
            body = dict(body, content=f"<boltArtifact>{body.get('content') or ''}</boltArtifact>")
        return self._apply_body(body)

    def _apply_body(self, body: Optional[dict]) -> List[Directive]:
        if body is None:
            return []
        self._remember(body)
        applied = self.apply_response(body.get("content") or "")
        self.lifecycle.advance(TurnPhase.COMPLETED)
        return applied

    def file(self, path: str) -> Optional[FileTreeNode]:
        return find_node(self.tree, path)

    def download(self) -> bytes:
        resp = self._http.post(
            f"{self.base_url}/builder/download",
            json={"tree": [node.model_dump() for node in self.tree]},
        )
        if resp.status_code >= 400:
            raise RuntimeError(f"Download failed with status {resp.status_code}")
        return resp.content
