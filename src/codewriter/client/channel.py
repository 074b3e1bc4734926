"""HTTP transport for the client half of a turn."""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict, Iterator, List, Optional, Protocol

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..core.turn_state import TurnLifecycle, TurnPhase
from ..domain.models import ConversationTurn


LOG = logging.getLogger("codewriter.client")

Event = Dict[str, Any]

_TIMEOUT = (5, 300)
_BLOCKING_TIMEOUT = 300


def build_http_session() -> requests.Session:
    session = requests.Session()
    # POSTs are not retried: a turn must not be submitted twice.
    retry = Retry(total=2, backoff_factor=0.5, status_forcelist=(502, 503, 504), allowed_methods=frozenset(["GET"]))
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


class EventChannel(Protocol):
    def events(self) -> Iterator[Event]: ...

    def close(self) -> None: ...


class TurnChannel:
    """One server-sent event stream for a single turn.

    ``events()`` yields decoded frames until a ``complete`` or ``error`` event.
    Transport failures and a stream that ends early both surface as a final
    ``error`` event rather than an exception. ``close()`` may be called from
    another thread to abandon the turn.
    """

    def __init__(
        self,
        url: str,
        payload: Dict[str, Any],
        http: Optional[requests.Session] = None,
        timeout: Any = _TIMEOUT,
    ) -> None:
        self.url = url
        self.payload = payload
        self._http = http or build_http_session()
        self._timeout = timeout
        self._response: Optional[requests.Response] = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        self._closed = True
        if self._response is not None:
            self._response.close()

    def events(self) -> Iterator[Event]:
        try:
            self._response = self._http.post(self.url, json=self.payload, stream=True, timeout=self._timeout)
            if self._response.status_code >= 400:
                yield {"type": "error", "message": f"Request failed with status {self._response.status_code}"}
                return
            for raw_line in self._response.iter_lines(decode_unicode=True):
                if self._closed:
                    return
                event = parse_frame(raw_line)
                if event is None:
                    continue
                yield event
                if event.get("type") in ("complete", "error"):
                    return
        except requests.RequestException as exc:
            if self._closed:
                return
            LOG.warning("channel_transport_error", extra={"url": self.url, "err": str(exc)})
            yield {"type": "error", "message": f"Connection error: {exc}"}
            return
        finally:
            if self._response is not None:
                self._response.close()
        if not self._closed:
            yield {"type": "error", "message": "Stream ended before the reply was complete"}


def parse_frame(line: Any) -> Optional[Event]:
    """Decode one ``data: {...}`` line; anything else yields ``None``."""
    if not line:
        return None
    if isinstance(line, bytes):
        line = line.decode("utf-8")
    if not line.startswith("data:"):
        return None
    try:
        event = json.loads(line[5:].strip())
    except json.JSONDecodeError:
        return None
    return event if isinstance(event, dict) else None


ChannelFactory = Callable[[str, Dict[str, Any]], EventChannel]


class TurnClient:
    """State shared by the client flows: session id, conversation and the open channel."""

    def __init__(
        self,
        base_url: str,
        http: Optional[Any] = None,
        channel_factory: Optional[ChannelFactory] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._http = http or build_http_session()
        self._channel_factory = channel_factory or self._default_channel
        self._channel: Optional[EventChannel] = None
        self.lifecycle = TurnLifecycle()
        self.session_id: Optional[str] = None
        self.conversation: List[ConversationTurn] = []
        self.error: Optional[str] = None

    def _default_channel(self, path: str, payload: Dict[str, Any]) -> EventChannel:
        return TurnChannel(f"{self.base_url}{path}", payload, http=self._http)

    def _turn_payload(self, instruction: str) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "instruction": instruction,
            "history": [t.model_dump() for t in self.conversation],
        }
        if self.session_id:
            payload["sessionId"] = self.session_id
        return payload

    def _begin(self) -> None:
        # At most one open channel; a new turn abandons the previous one.
        self.cancel()
        self.lifecycle = TurnLifecycle()
        self.lifecycle.advance(TurnPhase.REQUESTED)
        self.error = None

    def cancel(self) -> None:
        if self._channel is not None:
            self._channel.close()
            self._channel = None

    def _open(self, path: str, payload: Dict[str, Any]) -> EventChannel:
        self._channel = self._channel_factory(path, payload)
        return self._channel

    def _fail(self, message: str) -> None:
        self.lifecycle.advance(TurnPhase.FAILED)
        self.error = message
        LOG.warning("turn_failed", extra={"err": message})

    def _remember(self, event: Event) -> None:
        if event.get("sessionId"):
            self.session_id = event["sessionId"]
        if event.get("conversation") is not None:
            self.conversation = [ConversationTurn.model_validate(t) for t in event["conversation"]]

    def _post(self, path: str, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Blocking POST; returns the JSON body or records a failure and returns ``None``."""
        try:
            resp = self._http.post(f"{self.base_url}{path}", json=payload, timeout=_BLOCKING_TIMEOUT)
        except requests.RequestException as exc:
            self._fail(f"Connection error: {exc}")
            return None
        if resp.status_code >= 400:
            try:
                detail = resp.json().get("detail")
            except ValueError:
                detail = None
            self._fail(str(detail or f"Request failed with status {resp.status_code}"))
            return None
        return resp.json()

    @property
    def busy(self) -> bool:
        return self.lifecycle.phase in (TurnPhase.REQUESTED, TurnPhase.STREAMING)
