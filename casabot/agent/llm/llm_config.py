"""LLM config resolver: merge env settings with YAML provider profiles."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from casabot.core.config import Settings


@dataclass(frozen=True)
class LLMConfig:
    """Normalized LLM runtime configuration."""

    api_key: str
    base_url: str
    model: str
    embedding_model: str
    timeout_seconds: float
    temperature: float
    max_tokens: int
    json_mode: bool = True
    embeddings_enabled: bool = True
    profile_name: str = "default"
    profile_enabled: bool = True

    @property
    def enabled(self) -> bool:
        return self.profile_enabled and bool(self.api_key.strip())


def _load_profile(profile_file: Path, profile_name: str) -> dict[str, Any]:
    if not profile_file.exists():
        return {}
    try:
        raw = yaml.safe_load(profile_file.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError):
        return {}
    if not isinstance(raw, dict):
        return {}
    profiles = raw.get("profiles")
    if not isinstance(profiles, dict):
        return {}
    payload = profiles.get(profile_name)
    if not isinstance(payload, dict):
        payload = profiles.get("default")
    if not isinstance(payload, dict):
        return {}
    return payload


def _pick_str(payload: dict[str, Any], key: str, fallback: str) -> str:
    value = payload.get(key)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return fallback


def _pick_float(payload: dict[str, Any], key: str, fallback: float) -> float:
    value = payload.get(key)
    if isinstance(value, bool):
        return fallback
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return fallback
    return fallback


def _pick_int(payload: dict[str, Any], key: str, fallback: int) -> int:
    value = payload.get(key)
    if isinstance(value, bool):
        return fallback
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return fallback
    return fallback


def _pick_bool(payload: dict[str, Any], key: str, fallback: bool) -> bool:
    value = payload.get(key)
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"1", "true", "yes", "on"}:
            return True
        if normalized in {"0", "false", "no", "off"}:
            return False
    return fallback


def resolve_llm_config(settings: Settings) -> LLMConfig:
    """Build LLM config; explicit env settings win over profile values."""
    profile = _load_profile(settings.llm_provider_profiles_file, settings.llm_provider_profile)
    enabled = _pick_bool(profile, "enabled", True)
    defaults = Settings()

    def _choose(current: Any, default: Any, from_profile: Any) -> Any:
        return current if current != default else from_profile

    base_url = _choose(
        settings.llm_base_url,
        defaults.llm_base_url,
        _pick_str(profile, "base_url", defaults.llm_base_url),
    )
    model = _choose(
        settings.llm_model,
        defaults.llm_model,
        _pick_str(profile, "model", defaults.llm_model),
    )
    embedding_model = _choose(
        settings.llm_embedding_model,
        defaults.llm_embedding_model,
        _pick_str(profile, "embedding_model", defaults.llm_embedding_model),
    )
    timeout = _choose(
        float(settings.llm_timeout_seconds),
        float(defaults.llm_timeout_seconds),
        _pick_float(profile, "timeout_seconds", float(defaults.llm_timeout_seconds)),
    )
    temperature = _choose(
        float(settings.llm_temperature),
        float(defaults.llm_temperature),
        _pick_float(profile, "temperature", float(defaults.llm_temperature)),
    )
    max_tokens = _choose(
        int(settings.llm_max_tokens),
        int(defaults.llm_max_tokens),
        _pick_int(profile, "max_tokens", int(defaults.llm_max_tokens)),
    )

    return LLMConfig(
        api_key=settings.llm_api_key if enabled else "",
        base_url=base_url,
        model=model,
        embedding_model=embedding_model,
        timeout_seconds=max(1.0, timeout),
        temperature=max(0.0, temperature),
        max_tokens=max(32, max_tokens),
        json_mode=_pick_bool(profile, "json_mode", True),
        embeddings_enabled=_pick_bool(profile, "embeddings_enabled", True),
        profile_name=settings.llm_provider_profile,
        profile_enabled=enabled,
    )
