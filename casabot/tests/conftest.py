"""Test fixtures shared by unit/integration tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from casabot.core.config import Settings
from casabot.tests.listing_samples import SEED_LISTINGS, write_listings

PROJECT_ROOT = Path(__file__).resolve().parents[2]


@pytest.fixture
def listings_path(tmp_path: Path) -> Path:
    return write_listings(tmp_path / "properties.jsonl", SEED_LISTINGS)


@pytest.fixture
def prompt_dir() -> Path:
    return PROJECT_ROOT / "config" / "prompts"


@pytest.fixture
def profiles_file() -> Path:
    return PROJECT_ROOT / "config" / "provider_profiles.yaml"


@pytest.fixture
def settings(listings_path: Path, prompt_dir: Path, profiles_file: Path) -> Settings:
    """Offline settings: no model calls, in-memory database, no real sleeps."""
    return Settings(
        listings_jsonl_path=listings_path,
        database_path=":memory:",
        prompt_dir=prompt_dir,
        llm_api_key="",
        llm_provider_profiles_file=profiles_file,
        llm_provider_profile="offline",
        delivery_time_scale=0.0,
        session_sweep_interval_seconds=3600,
    )
