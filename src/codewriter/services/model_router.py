"""Routing helpers for selecting the generation provider.

The router does not construct SDK clients itself; it picks a provider
configuration that :mod:`codewriter.services.generation` turns into a client.
Keeping the policy separate makes it unit-testable without network access.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Optional, Set


@dataclass(frozen=True)
class ProviderSelection:
    """Returned details about the provider that should handle a turn."""

    name: str
    model: str
    api_key_env: Optional[str]
    base_url_env: Optional[str] = None
    default_base_url: Optional[str] = None
    requires_api_key: bool = True


class ModelRouter:
    """Simple policy-based router across hosted and local providers."""

    PROVIDER_CONFIG: Dict[str, Dict[str, Optional[str] | bool]] = {
        "mistral": {
            "api_key_env": "MISTRAL_API_KEY",
            "base_url_env": "MISTRAL_BASE_URL",
            "model_env": "MISTRAL_MODEL",
            "default_model": "mistral-large-latest",
            "default_base_url": "https://api.mistral.ai/v1",
        },
        "openai": {
            "api_key_env": "OPENAI_API_KEY",
            "base_url_env": "OPENAI_BASE_URL",
            "model_env": "OPENAI_MODEL",
            "default_model": "gpt-4o-mini",
            "default_base_url": "https://api.openai.com/v1",
        },
        "local": {
            "api_key_env": "LOCAL_API_KEY",
            "base_url_env": "LOCAL_BASE_URL",
            "model_env": "LOCAL_MODEL",
            "default_model": "qwen2.5-coder:14b",
            "default_base_url": "http://127.0.0.1:11434",
            "requires_api_key": False,
        },
    }

    ROUTING_POLICY: Dict[str, tuple[str, ...]] = {
        # Single-page HTML/CSS/JS generation.
        "web_artifacts": ("mistral", "openai", "local"),
        # Multi-file project scaffolds need the longer-context models first.
        "project_builder": ("openai", "mistral", "local"),
    }

    def __init__(
        self,
        env: Optional[Mapping[str, str]] = None,
        allowed_providers: Optional[Iterable[str]] = None,
    ) -> None:
        self._env = env if env is not None else os.environ
        self._allowed: Optional[Set[str]] = set(allowed_providers) if allowed_providers else None
        preferred = (self._env.get("CODEWRITER_MODEL_PROVIDER") or "").strip().lower()
        self._preferred_provider = preferred if preferred else None

    # ------------------------------------------------------------------
    # Provider resolution helpers
    # ------------------------------------------------------------------
    def provider_available(self, provider: str) -> bool:
        cfg = self.PROVIDER_CONFIG.get(provider)
        if not cfg:
            return False
        if self._allowed is not None and provider not in self._allowed:
            return False
        if bool(cfg.get("requires_api_key", True)):
            api_key_env = cfg.get("api_key_env")
            if not api_key_env:
                return False
            if provider == "mistral":
                # Deployments of the original service used a generic key name.
                return bool(self._env.get(str(api_key_env)) or self._env.get("AI_API_KEY"))
            return bool(self._env.get(str(api_key_env)))

        enabled_flag = (self._env.get("CODEWRITER_ENABLE_LOCAL_PROVIDER") or "").strip() == "1"
        if not enabled_flag and self._preferred_provider != provider:
            return False
        base_url_env = cfg.get("base_url_env")
        return bool(base_url_env and self._env.get(str(base_url_env))) or bool(cfg.get("default_base_url"))

    def resolve_provider(self, provider: str) -> ProviderSelection:
        if provider not in self.PROVIDER_CONFIG:
            raise KeyError(provider)
        cfg = self.PROVIDER_CONFIG[provider]
        model_env = str(cfg.get("model_env") or "")
        model = self._env.get(model_env) or str(cfg.get("default_model") or "")
        return ProviderSelection(
            name=provider,
            model=model,
            api_key_env=cfg.get("api_key_env"),  # type: ignore[arg-type]
            base_url_env=cfg.get("base_url_env"),  # type: ignore[arg-type]
            default_base_url=cfg.get("default_base_url"),  # type: ignore[arg-type]
            requires_api_key=bool(cfg.get("requires_api_key", True)),
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def select_provider(self, purpose: str) -> ProviderSelection:
        """Return the provider selected for the supplied purpose.

        Raises
        ------
        RuntimeError
            If no provider configured for the purpose is available.
        """

        priority = list(self.ROUTING_POLICY.get(purpose, self.ROUTING_POLICY["web_artifacts"]))
        if self._preferred_provider and self._preferred_provider in self.PROVIDER_CONFIG:
            priority = [self._preferred_provider] + [p for p in priority if p != self._preferred_provider]
        for provider in priority:
            if self.provider_available(provider):
                return self.resolve_provider(provider)
        raise RuntimeError("No active model provider available for this task.")
