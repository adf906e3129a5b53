"""Unit tests for environment-driven settings."""

from __future__ import annotations

from pathlib import Path

from casabot.core.config import Settings


def test_settings_reads_llm_and_runtime_env(monkeypatch) -> None:
    monkeypatch.setenv("LLM_API_KEY", "test-key")
    monkeypatch.setenv("LLM_BASE_URL", "https://api.example.com/v1")
    monkeypatch.setenv("LLM_MODEL", "gpt-test")
    monkeypatch.setenv("LLM_TIMEOUT_SECONDS", "9")
    monkeypatch.setenv("LLM_TEMPERATURE", "0.4")
    monkeypatch.setenv("LLM_MAX_TOKENS", "321")
    monkeypatch.setenv("LLM_PROVIDER_PROFILES_FILE", "custom/provider_profiles.yaml")
    monkeypatch.setenv("LLM_PROVIDER_PROFILE", "compact")
    monkeypatch.setenv("DATABASE_PATH", ":memory:")
    monkeypatch.setenv("CHAT_HISTORY_LIMIT", "6")
    monkeypatch.setenv("RECENT_RECOMMENDATION_WINDOW", "4")
    monkeypatch.setenv("SESSION_TIMEOUT_SECONDS", "600")
    monkeypatch.setenv("SESSION_SWEEP_INTERVAL_SECONDS", "30")
    monkeypatch.setenv("DELIVERY_TIME_SCALE", "0")
    monkeypatch.setenv("ENABLE_VECTOR_INDEX", "false")

    settings = Settings.from_env()

    assert settings.llm_api_key == "test-key"
    assert settings.llm_base_url == "https://api.example.com/v1"
    assert settings.llm_model == "gpt-test"
    assert settings.llm_timeout_seconds == 9
    assert settings.llm_temperature == 0.4
    assert settings.llm_max_tokens == 321
    assert settings.llm_provider_profiles_file == Path("custom/provider_profiles.yaml")
    assert settings.llm_provider_profile == "compact"
    assert settings.database_path == ":memory:"
    assert settings.chat_history_limit == 6
    assert settings.recent_recommendation_window == 4
    assert settings.session_timeout_seconds == 600
    assert settings.session_sweep_interval_seconds == 30
    assert settings.delivery_time_scale == 0.0
    assert settings.enable_vector_index is False


def test_settings_fall_back_to_openai_key(monkeypatch) -> None:
    monkeypatch.delenv("LLM_API_KEY", raising=False)
    monkeypatch.setenv("OPENAI_API_KEY", "sk-legacy")

    settings = Settings.from_env()

    assert settings.llm_api_key == "sk-legacy"
    assert settings.session_timeout_seconds == 30 * 60
    assert settings.session_sweep_interval_seconds == 5 * 60
