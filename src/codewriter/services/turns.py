"""Server half of a generation turn.

A turn resolves the conversation history (stored session first, then the
history the client sent), asks the generation collaborator for a reply and
either returns it in one piece or relays it as incremental events::

    {"type": "chunk", "accumulated": "...", "sessionId": "..."}
    {"type": "complete", "content": "...", "conversation": [...], "sessionId": "..."}
    {"type": "error", "message": "..."}

Session state only changes once the full reply is in hand; a failed or
abandoned turn leaves the store exactly as it was, so retrying is safe.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from ..core.directives import parse_directives
from ..core.extractor import extract
from ..core.turn_state import TurnLifecycle, TurnPhase
from ..domain.directives import Directive
from ..domain.models import ConversationTurn, TurnRequest
from ..infrastructure.session_store import SessionNotFoundError, SessionStore, get_session_store
from ..observability.metrics import record_extraction, record_turn
from .generation import GenerationError, Message, TextGenerator, resolve_generator
from .prompts import BUILDER_SYSTEM_PROMPT, WEB_WRITER_SYSTEM_PROMPT


LOG = logging.getLogger("codewriter.turns")

ARTIFACTS = "artifacts"
DIRECTIVES = "directives"


@dataclass(frozen=True)
class Flow:
    name: str
    purpose: str
    system_prompt: str
    output: str


WEB_FLOW = Flow(name="codewriter", purpose="web_artifacts", system_prompt=WEB_WRITER_SYSTEM_PROMPT, output=ARTIFACTS)
BUILDER_FLOW = Flow(
    name="builder",
    purpose="project_builder",
    system_prompt=BUILDER_SYSTEM_PROMPT,
    output=DIRECTIVES,
)


@dataclass
class TurnResult:
    session_id: str
    content: str
    conversation: List[ConversationTurn]
    files: Optional[Dict[str, str]] = None
    steps: Optional[List[Directive]] = None


@dataclass
class _Resolved:
    session_id: Optional[str]
    history: List[ConversationTurn] = field(default_factory=list)


GeneratorFactory = Callable[[str], TextGenerator]


class TurnOrchestrator:
    def __init__(
        self,
        flow: Flow,
        store: Optional[SessionStore] = None,
        generator_factory: Optional[GeneratorFactory] = None,
    ) -> None:
        self.flow = flow
        self._store = store if store is not None else get_session_store()
        self._generator_factory = generator_factory or resolve_generator

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------
    def resolve_history(self, request: TurnRequest) -> _Resolved:
        """Pick the history a turn builds on.

        A known ``sessionId`` wins over the body history; an unknown or
        evicted one falls back to the body history and a new session.
        """

        if request.session_id:
            session = self._store.get(request.session_id)
            if session is not None:
                if request.history and _dump(request.history) != _dump(session.history):
                    LOG.info(
                        "session_history_preferred",
                        extra={"session_id": session.session_id, "flow": self.flow.name},
                    )
                return _Resolved(session_id=session.session_id, history=session.history)
            LOG.info("session_unknown", extra={"session_id": request.session_id, "flow": self.flow.name})
        return _Resolved(session_id=None, history=[t.model_copy() for t in request.history])

    def build_messages(self, history: List[ConversationTurn], instruction: str) -> List[Message]:
        messages: List[Message] = [{"role": "system", "content": self.flow.system_prompt}]
        messages.extend({"role": t.role, "content": t.content} for t in history)
        messages.append({"role": "user", "content": instruction})
        return messages

    def _commit(
        self,
        resolved: _Resolved,
        reply_id: str,
        instruction: str,
        content: str,
    ) -> Tuple[str, List[ConversationTurn]]:
        user_turn = ConversationTurn(role="user", content=instruction)
        assistant_turn = ConversationTurn(role="assistant", content=content)
        conversation = list(resolved.history) + [user_turn, assistant_turn]
        if resolved.session_id:
            try:
                self._store.append(resolved.session_id, user_turn)
                self._store.append(resolved.session_id, assistant_turn)
                self._store.touch(resolved.session_id)
                return resolved.session_id, conversation
            except SessionNotFoundError:
                # Evicted while the reply was generated.
                LOG.info("session_evicted_mid_turn", extra={"session_id": resolved.session_id})
        session_id = self._store.create(conversation, session_id=reply_id)
        return session_id, conversation

    def _hand_off(self, content: str) -> Tuple[Optional[Dict[str, str]], Optional[List[Directive]]]:
        if self.flow.output == DIRECTIVES:
            steps = parse_directives(content)
            record_extraction(self.flow.name, len(steps))
            LOG.info("turn_directives_parsed", extra={"flow": self.flow.name, "count": len(steps)})
            return None, steps
        files = extract(content)
        record_extraction(self.flow.name, len(files))
        LOG.info("turn_artifacts_extracted", extra={"flow": self.flow.name, "files": sorted(files)})
        return files, None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def run(self, request: TurnRequest) -> TurnResult:
        """Blocking turn. Raises :class:`GenerationError` without touching the store."""

        lifecycle = TurnLifecycle()
        lifecycle.advance(TurnPhase.REQUESTED)
        resolved = self.resolve_history(request)
        messages = self.build_messages(resolved.history, request.instruction)
        try:
            generator = self._generator_factory(self.flow.purpose)
            content = generator.complete(messages)
        except Exception as exc:
            lifecycle.advance(TurnPhase.FAILED)
            record_turn(self.flow.name, "blocking", "failed")
            LOG.warning("turn_failed", extra={"flow": self.flow.name, "err": str(exc)})
            if isinstance(exc, GenerationError):
                raise
            raise GenerationError(f"Failed to generate code: {exc}") from exc

        reply_id = resolved.session_id or self._store.new_id()
        session_id, conversation = self._commit(resolved, reply_id, request.instruction, content or "")
        lifecycle.advance(TurnPhase.COMPLETED)
        record_turn(self.flow.name, "blocking", "completed")
        files, steps = self._hand_off(content or "")
        return TurnResult(
            session_id=session_id,
            content=content or "",
            conversation=conversation,
            files=files,
            steps=steps,
        )

    def stream(self, request: TurnRequest) -> Iterator[Dict[str, Any]]:
        """Yield chunk events then one complete event, or a single error event."""

        lifecycle = TurnLifecycle()
        lifecycle.advance(TurnPhase.REQUESTED)
        resolved = self.resolve_history(request)
        messages = self.build_messages(resolved.history, request.instruction)
        # New flows get an id up front so chunk events can carry it.
        reply_id = resolved.session_id or self._store.new_id()
        accumulated = ""
        try:
            generator = self._generator_factory(self.flow.purpose)
            for delta in generator.stream(messages):
                if not delta:
                    continue
                lifecycle.advance(TurnPhase.STREAMING)
                accumulated += delta
                yield {"type": "chunk", "accumulated": accumulated, "sessionId": reply_id}
        except GeneratorExit:
            record_turn(self.flow.name, "stream", "cancelled")
            LOG.info("turn_cancelled", extra={"flow": self.flow.name, "session_id": reply_id})
            raise
        except GenerationError as exc:
            lifecycle.advance(TurnPhase.FAILED)
            record_turn(self.flow.name, "stream", "failed")
            LOG.warning("turn_stream_failed", extra={"flow": self.flow.name, "err": str(exc)})
            yield {"type": "error", "message": str(exc)}
            return
        except Exception as exc:
            lifecycle.advance(TurnPhase.FAILED)
            record_turn(self.flow.name, "stream", "failed")
            LOG.exception("turn_stream_error", extra={"flow": self.flow.name})
            yield {"type": "error", "message": f"Stream error occurred: {exc}"}
            return

        session_id, conversation = self._commit(resolved, reply_id, request.instruction, accumulated)
        lifecycle.advance(TurnPhase.COMPLETED)
        record_turn(self.flow.name, "stream", "completed")
        self._hand_off(accumulated)
        yield {
            "type": "complete",
            "content": accumulated,
            "conversation": _dump(conversation),
            "sessionId": session_id,
        }


def _dump(turns: List[ConversationTurn]) -> List[Dict[str, str]]:
    return [t.model_dump() for t in turns]
