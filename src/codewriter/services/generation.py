"""Clients for the external text-generation collaborator.

Hosted OpenAI-compatible providers (Mistral, OpenAI) go through
``langchain_openai.ChatOpenAI``; a local OpenAI-compatible or Ollama server is
called directly with a retrying ``requests`` session. Both expose the same two
calls: ``complete(messages) -> str`` and ``stream(messages) -> Iterator[str]``
yielding text deltas. Failures surface as :class:`GenerationError`.
"""

from __future__ import annotations

import json
import logging
import os
import time
from typing import Any, Dict, Iterator, List, Optional, Protocol

import requests
from langchain_openai import ChatOpenAI
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..config import Settings, get_settings
from .model_router import ModelRouter, ProviderSelection


LOG = logging.getLogger("codewriter.llm")

Message = Dict[str, str]

_BREAKER_THRESHOLD = int(os.getenv("CODEWRITER_LLM_BREAKER_THRESHOLD", "3"))
_BREAKER_COOLDOWN = float(os.getenv("CODEWRITER_LLM_BREAKER_COOLDOWN", "60.0"))
_STREAM_TIMEOUT = (
    int(os.getenv("CODEWRITER_LLM_CONNECT_TIMEOUT", "5")),
    int(os.getenv("CODEWRITER_LLM_READ_TIMEOUT", "300")),
)


class GenerationError(RuntimeError):
    """The generation collaborator failed or is unavailable."""


class TextGenerator(Protocol):
    provider: str
    model: str

    def complete(self, messages: List[Message]) -> str: ...

    def stream(self, messages: List[Message]) -> Iterator[str]: ...


class CircuitBreaker:
    """Fail fast after repeated upstream failures until a cooldown passes."""

    def __init__(self, threshold: int = _BREAKER_THRESHOLD, cooldown: float = _BREAKER_COOLDOWN) -> None:
        self.threshold = max(1, threshold)
        self.cooldown = cooldown
        self.fails = 0
        self.opened_at = 0.0

    def is_open(self) -> bool:
        if self.opened_at == 0.0:
            return False
        if time.time() - self.opened_at < self.cooldown:
            return True
        self.fails = 0
        self.opened_at = 0.0
        return False

    def record_failure(self) -> None:
        self.fails += 1
        if self.fails >= self.threshold and self.opened_at == 0.0:
            self.opened_at = time.time()
            LOG.warning("llm_breaker_opened", extra={"fails": self.fails, "cooldown_s": self.cooldown})

    def record_success(self) -> None:
        if self.fails or self.opened_at:
            LOG.info("llm_breaker_closed")
        self.fails = 0
        self.opened_at = 0.0


_BREAKER = CircuitBreaker()


def _build_session() -> requests.Session:
    session = requests.Session()
    retry = Retry(
        total=2,
        backoff_factor=0.5,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=frozenset(["POST", "GET"]),
    )
    adapter = HTTPAdapter(max_retries=retry, pool_connections=10, pool_maxsize=10)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


class HostedChatClient:
    """OpenAI-compatible hosted endpoint driven through ChatOpenAI."""

    def __init__(
        self,
        provider: str,
        model: str,
        api_key: str,
        base_url: Optional[str],
        temperature: float = 0.7,
        max_tokens: int = 4000,
    ) -> None:
        self.provider = provider
        self.model = model
        self._llm = ChatOpenAI(
            api_key=api_key,
            base_url=base_url,
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
        )

    def complete(self, messages: List[Message]) -> str:
        res = self._llm.invoke(messages)
        content = res.content if hasattr(res, "content") else res
        return content if isinstance(content, str) else str(content or "")

    def stream(self, messages: List[Message]) -> Iterator[str]:
        for chunk in self._llm.stream(messages):
            piece = getattr(chunk, "content", "")
            if isinstance(piece, str) and piece:
                yield piece


class LocalLLMClient:
    """Local server speaking the OpenAI chat API or the Ollama generate API."""

    def __init__(self, base_url: str, model: str, max_tokens: int = 4000, temperature: float = 0.7) -> None:
        self.provider = "local"
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._timeout = _STREAM_TIMEOUT
        self._session = _build_session()
        self.api_style = (os.getenv("CODEWRITER_LLM_LOCAL_API") or "openai").lower()

    def complete(self, messages: List[Message]) -> str:
        if self.api_style == "ollama":
            return self._complete_ollama(messages)
        return self._complete_openai(messages)

    def stream(self, messages: List[Message]) -> Iterator[str]:
        if self.api_style == "ollama":
            yield from self._stream_ollama(messages)
            return
        yield from self._stream_openai(messages)

    def _openai_payload(self, messages: List[Message], stream: bool) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "stream": stream,
        }

    def _complete_openai(self, messages: List[Message]) -> str:
        LOG.debug("local_llm_invoke", extra={"model": self.model, "base_url": self.base_url})
        resp = self._session.post(
            f"{self.base_url}/v1/chat/completions",
            json=self._openai_payload(messages, stream=False),
            timeout=self._timeout,
        )
        resp.raise_for_status()
        data = resp.json()
        choices = data.get("choices") or []
        if choices:
            message = choices[0].get("message") or {}
            content = message.get("content")
            if content:
                return content
        return data.get("response") or data.get("text") or ""

    def _stream_openai(self, messages: List[Message]) -> Iterator[str]:
        LOG.debug("local_llm_stream", extra={"model": self.model, "base_url": self.base_url})
        with self._session.post(
            f"{self.base_url}/v1/chat/completions",
            json=self._openai_payload(messages, stream=True),
            timeout=self._timeout,
            stream=True,
        ) as resp:
            resp.raise_for_status()
            for raw_line in resp.iter_lines():
                if not raw_line:
                    continue
                line = raw_line.decode("utf-8") if isinstance(raw_line, bytes) else raw_line
                if not line.startswith("data: "):
                    continue
                data = line[6:].strip()
                if data == "[DONE]":
                    break
                try:
                    parsed = json.loads(data)
                except json.JSONDecodeError:
                    continue
                delta = (parsed.get("choices") or [{}])[0].get("delta") or {}
                token = delta.get("content") or ""
                if token:
                    yield token

    def _complete_ollama(self, messages: List[Message]) -> str:
        resp = self._session.post(
            f"{self.base_url}/api/generate",
            json={"model": self.model, "prompt": self._messages_to_prompt(messages), "stream": False},
            timeout=self._timeout,
        )
        resp.raise_for_status()
        data = resp.json()
        return data.get("response") or data.get("text") or ""

    def _stream_ollama(self, messages: List[Message]) -> Iterator[str]:
        LOG.debug("local_llm_stream_ollama", extra={"model": self.model, "base_url": self.base_url})
        with self._session.post(
            f"{self.base_url}/api/generate",
            json={"model": self.model, "prompt": self._messages_to_prompt(messages), "stream": True},
            timeout=self._timeout,
            stream=True,
        ) as resp:
            resp.raise_for_status()
            for raw_line in resp.iter_lines():
                if not raw_line:
                    continue
                try:
                    data = json.loads(raw_line.decode("utf-8") if isinstance(raw_line, bytes) else raw_line)
                except json.JSONDecodeError:
                    continue
                token = data.get("response") or ""
                if token:
                    yield token
                if data.get("done"):
                    break

    @staticmethod
    def _messages_to_prompt(messages: List[Message]) -> str:
        parts: List[str] = []
        for msg in messages:
            role = (msg.get("role") or "user").strip().upper()
            parts.append(f"{role}: {msg.get('content') or ''}")
        parts.append("ASSISTANT:")
        return "\n".join(parts)


class GuardedGenerator:
    """Wraps a backend with the circuit breaker and error translation."""

    def __init__(self, backend: TextGenerator, breaker: Optional[CircuitBreaker] = None) -> None:
        self._backend = backend
        self._breaker = breaker or _BREAKER
        self.provider = backend.provider
        self.model = backend.model

    def _check(self) -> None:
        if self._breaker.is_open():
            LOG.info("llm_skipped_due_to_breaker", extra={"cooldown_s": self._breaker.cooldown})
            raise GenerationError("Generation service is temporarily unavailable; please retry shortly.")

    def complete(self, messages: List[Message]) -> str:
        self._check()
        try:
            text = self._backend.complete(messages)
        except Exception as exc:
            self._breaker.record_failure()
            LOG.warning("llm_complete_failed", extra={"provider": self.provider, "err": str(exc)})
            raise GenerationError(f"Failed to generate code: {exc}") from exc
        self._breaker.record_success()
        return text

    def stream(self, messages: List[Message]) -> Iterator[str]:
        self._check()
        try:
            for piece in self._backend.stream(messages):
                yield piece
        except GeneratorExit:
            raise
        except Exception as exc:
            self._breaker.record_failure()
            LOG.warning("llm_stream_failed", extra={"provider": self.provider, "err": str(exc)})
            raise GenerationError(f"Stream error occurred: {exc}") from exc
        self._breaker.record_success()


def _base_url(selection: ProviderSelection) -> Optional[str]:
    base_url = selection.default_base_url
    if selection.base_url_env:
        base_url = os.getenv(selection.base_url_env) or base_url
    return base_url


def _api_key(selection: ProviderSelection) -> Optional[str]:
    key = os.getenv(selection.api_key_env) if selection.api_key_env else None
    if not key and selection.name == "mistral":
        key = os.getenv("AI_API_KEY")
    return key


def resolve_generator(
    purpose: str,
    provider: Optional[str] = None,
    model: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> TextGenerator:
    """Build the generator for ``purpose``.

    Raises :class:`GenerationError` when no provider is configured.
    """

    settings = settings or get_settings()
    router = ModelRouter()
    try:
        selection = router.resolve_provider(provider) if provider else router.select_provider(purpose)
    except KeyError as exc:
        raise GenerationError(f"Unknown provider override: {provider}") from exc
    except RuntimeError as exc:
        raise GenerationError(str(exc)) from exc

    model_name = model or selection.model
    max_tokens = settings.builder_max_tokens if purpose == "project_builder" else settings.llm_max_tokens
    base_url = _base_url(selection)

    if selection.name == "local":
        LOG.info("Using local LLM provider base_url=%s model=%s", base_url, model_name)
        backend: TextGenerator = LocalLLMClient(
            base_url=base_url or "http://127.0.0.1:11434",
            model=model_name,
            max_tokens=max_tokens,
            temperature=settings.llm_temperature,
        )
        return GuardedGenerator(backend)

    api_key = _api_key(selection)
    if selection.requires_api_key and not api_key:
        raise GenerationError("AI API key is not configured")

    LOG.info(
        "Using remote LLM provider name=%s model=%s base_url=%s",
        selection.name,
        model_name,
        base_url,
    )
    backend = HostedChatClient(
        provider=selection.name,
        model=model_name,
        api_key=api_key or "",
        base_url=base_url,
        temperature=settings.llm_temperature,
        max_tokens=max_tokens,
    )
    return GuardedGenerator(backend)
