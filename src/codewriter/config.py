"""Runtime settings read from the environment.

Values come from process environment variables (a local ``.env`` file is
loaded by the API entrypoint). Malformed numbers fall back to the defaults
instead of failing startup.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional


DEFAULT_SESSION_CAPACITY = 100
DEFAULT_SESSION_TTL_SECONDS = 60 * 60
DEFAULT_SWEEP_INTERVAL_SECONDS = 60 * 60


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or not str(raw).strip():
        return default
    try:
        value = int(str(raw).strip())
    except ValueError:
        return default
    return value if value > 0 else default


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or not str(raw).strip():
        return default
    try:
        return float(str(raw).strip())
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    session_capacity: int = DEFAULT_SESSION_CAPACITY
    session_ttl_seconds: float = DEFAULT_SESSION_TTL_SECONDS
    sweep_interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS
    llm_max_tokens: int = 4000
    llm_temperature: float = 0.7
    builder_max_tokens: int = 12000

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        env = env if env is not None else os.environ
        return cls(
            session_capacity=_env_int(env, "CODEWRITER_SESSION_CAPACITY", DEFAULT_SESSION_CAPACITY),
            session_ttl_seconds=_env_float(env, "CODEWRITER_SESSION_TTL_SECONDS", DEFAULT_SESSION_TTL_SECONDS),
            sweep_interval_seconds=_env_float(
                env, "CODEWRITER_SESSION_SWEEP_INTERVAL_SECONDS", DEFAULT_SWEEP_INTERVAL_SECONDS
            ),
            llm_max_tokens=_env_int(env, "CODEWRITER_LLM_MAX_TOKENS", 4000),
            llm_temperature=_env_float(env, "CODEWRITER_LLM_TEMPERATURE", 0.7),
            builder_max_tokens=_env_int(env, "CODEWRITER_BUILDER_MAX_TOKENS", 12000),
        )


def get_settings() -> Settings:
    return Settings.from_env()
