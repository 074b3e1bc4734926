"""Unit tests for `ModelRouter` provider selection."""

from __future__ import annotations

import os
from typing import Dict

import pytest

from src.codewriter.services.model_router import ModelRouter, ProviderSelection


@pytest.fixture(autouse=True)
def clean_env():
    """Ensure each test starts with a clean slate of credentials."""

    original_env = dict(os.environ)
    for key in [
        "MISTRAL_API_KEY",
        "AI_API_KEY",
        "OPENAI_API_KEY",
        "LOCAL_BASE_URL",
        "LOCAL_MODEL",
        "MISTRAL_MODEL",
        "CODEWRITER_ENABLE_LOCAL_PROVIDER",
        "CODEWRITER_MODEL_PROVIDER",
    ]:
        os.environ.pop(key, None)
    try:
        yield
    finally:
        os.environ.clear()
        os.environ.update(original_env)


def _with_env(values: Dict[str, str]) -> ModelRouter:
    env = dict(os.environ)
    env.update(values)
    return ModelRouter(env=env)


def test_web_artifacts_prefer_mistral():
    router = _with_env({"MISTRAL_API_KEY": "m", "OPENAI_API_KEY": "o"})
    selection = router.select_provider("web_artifacts")
    assert isinstance(selection, ProviderSelection)
    assert selection.name == "mistral"
    assert selection.model == "mistral-large-latest"


def test_project_builder_prefers_openai():
    router = _with_env({"MISTRAL_API_KEY": "m", "OPENAI_API_KEY": "o"})
    assert router.select_provider("project_builder").name == "openai"


def test_generic_key_enables_mistral():
    router = _with_env({"AI_API_KEY": "legacy"})
    assert router.select_provider("web_artifacts").name == "mistral"


def test_model_override_from_env():
    router = _with_env({"MISTRAL_API_KEY": "m", "MISTRAL_MODEL": "codestral-latest"})
    assert router.select_provider("web_artifacts").model == "codestral-latest"


def test_local_provider_requires_opt_in():
    assert not _with_env({}).provider_available("local")
    router = _with_env({"CODEWRITER_ENABLE_LOCAL_PROVIDER": "1"})
    selection = router.select_provider("web_artifacts")
    assert selection.name == "local"
    assert selection.requires_api_key is False


def test_preferred_provider_goes_first():
    router = _with_env(
        {"MISTRAL_API_KEY": "m", "OPENAI_API_KEY": "o", "CODEWRITER_MODEL_PROVIDER": "openai"}
    )
    assert router.select_provider("web_artifacts").name == "openai"


def test_allowed_providers_filter():
    env = dict(os.environ)
    env.update({"MISTRAL_API_KEY": "m", "OPENAI_API_KEY": "o"})
    router = ModelRouter(env=env, allowed_providers=["openai"])
    assert router.select_provider("web_artifacts").name == "openai"


def test_no_provider_raises():
    with pytest.raises(RuntimeError):
        _with_env({}).select_provider("web_artifacts")


def test_resolve_unknown_provider_raises_key_error():
    with pytest.raises(KeyError):
        _with_env({}).resolve_provider("nope")
