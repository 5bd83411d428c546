"""Tests for configuration loading."""

from __future__ import annotations

import pytest

from repowiki.config import PipelineSettings, get_model_config, replace_env_placeholders


def test_env_placeholders_are_substituted(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("REPOWIKI_TEST_HOST", "http://localhost:11434")

    result = replace_env_placeholders({"hosts": ["${REPOWIKI_TEST_HOST}/api", "${REPOWIKI_MISSING_VAR}"], "n": 3})

    assert result == {"hosts": ["http://localhost:11434/api", "${REPOWIKI_MISSING_VAR}"], "n": 3}


def test_bundled_provider_config() -> None:
    kwargs = get_model_config("ollama", "qwen3:8b")["model_kwargs"]

    assert kwargs["model"] == "qwen3:8b"
    assert kwargs["num_ctx"] == 32000


def test_unknown_provider_is_rejected() -> None:
    with pytest.raises(ValueError):
        get_model_config("nonexistent")


def test_pipeline_defaults() -> None:
    settings = PipelineSettings()

    assert settings.max_features == 15
    assert settings.feature_batch_size == 3
    assert settings.prefetch_concurrency == 10
