"""Configuration layer: load runtime settings from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


def _resolve_path(path_like: str) -> Path:
    candidate = Path(path_like)
    if candidate.is_absolute():
        return candidate
    if candidate.exists():
        return candidate
    project_root = Path(__file__).resolve().parents[2]
    rooted = project_root / candidate
    if rooted.exists():
        return rooted
    return candidate


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    """Immutable application settings used across API/runtime layers."""

    app_name: str = "CasaBot API"
    app_version: str = "0.1.0"
    env: str = "dev"
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 5000
    cors_allow_origins: str = "http://localhost:5173,http://127.0.0.1:5173"
    listings_jsonl_path: Path = Path("data/properties.jsonl")
    database_path: str = "data/casabot.db"
    prompt_dir: Path = Path("config/prompts")
    llm_api_key: str = ""
    llm_base_url: str = "https://api.openai.com/v1"
    llm_model: str = "gpt-4o"
    llm_embedding_model: str = "text-embedding-3-small"
    llm_timeout_seconds: float = 30.0
    llm_temperature: float = 0.7
    llm_max_tokens: int = 1000
    llm_provider_profiles_file: Path = Path("config/provider_profiles.yaml")
    llm_provider_profile: str = "default"
    chat_history_limit: int = 10
    recent_recommendation_window: int = 6
    candidate_limit: int = 20
    session_timeout_seconds: int = 30 * 60
    session_sweep_interval_seconds: int = 5 * 60
    delivery_time_scale: float = 1.0
    enable_vector_index: bool = True

    @classmethod
    def from_env(cls) -> "Settings":
        """Create settings from process env with deterministic defaults."""
        return cls(
            app_name=os.getenv("APP_NAME", cls.app_name),
            app_version=os.getenv("APP_VERSION", cls.app_version),
            env=os.getenv("APP_ENV", cls.env),
            log_level=os.getenv("LOG_LEVEL", cls.log_level),
            host=os.getenv("HOST", cls.host),
            port=int(os.getenv("PORT", str(cls.port))),
            cors_allow_origins=os.getenv("CORS_ALLOW_ORIGINS", cls.cors_allow_origins),
            listings_jsonl_path=_resolve_path(
                os.getenv("LISTINGS_JSONL", str(cls.listings_jsonl_path))
            ),
            database_path=os.getenv("DATABASE_PATH", cls.database_path),
            prompt_dir=_resolve_path(os.getenv("PROMPT_DIR", str(cls.prompt_dir))),
            llm_api_key=os.getenv("LLM_API_KEY", os.getenv("OPENAI_API_KEY", cls.llm_api_key)),
            llm_base_url=os.getenv("LLM_BASE_URL", cls.llm_base_url),
            llm_model=os.getenv("LLM_MODEL", cls.llm_model),
            llm_embedding_model=os.getenv("LLM_EMBEDDING_MODEL", cls.llm_embedding_model),
            llm_timeout_seconds=float(
                os.getenv("LLM_TIMEOUT_SECONDS", str(cls.llm_timeout_seconds))
            ),
            llm_temperature=float(
                os.getenv("LLM_TEMPERATURE", str(cls.llm_temperature))
            ),
            llm_max_tokens=int(
                os.getenv("LLM_MAX_TOKENS", str(cls.llm_max_tokens))
            ),
            llm_provider_profiles_file=_resolve_path(
                os.getenv("LLM_PROVIDER_PROFILES_FILE", str(cls.llm_provider_profiles_file))
            ),
            llm_provider_profile=os.getenv("LLM_PROVIDER_PROFILE", cls.llm_provider_profile),
            chat_history_limit=int(
                os.getenv("CHAT_HISTORY_LIMIT", str(cls.chat_history_limit))
            ),
            recent_recommendation_window=int(
                os.getenv("RECENT_RECOMMENDATION_WINDOW", str(cls.recent_recommendation_window))
            ),
            candidate_limit=int(os.getenv("CANDIDATE_LIMIT", str(cls.candidate_limit))),
            session_timeout_seconds=int(
                os.getenv("SESSION_TIMEOUT_SECONDS", str(cls.session_timeout_seconds))
            ),
            session_sweep_interval_seconds=int(
                os.getenv(
                    "SESSION_SWEEP_INTERVAL_SECONDS",
                    str(cls.session_sweep_interval_seconds),
                )
            ),
            delivery_time_scale=float(
                os.getenv("DELIVERY_TIME_SCALE", str(cls.delivery_time_scale))
            ),
            enable_vector_index=_env_bool("ENABLE_VECTOR_INDEX", cls.enable_vector_index),
        )
