"""Assistant configuration - dataclass, env vars, and CLI overrides."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# config.py lives in src/mediscan/ -> 3 levels up = repo root
_REPO_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_REPO_ROOT / ".env")
load_dotenv(Path.cwd() / ".env")

NOMINATIM_SEARCH_URL = "https://nominatim.openstreetmap.org/search"


def _env(key: str, default: str) -> str:
    """Read env var with default."""
    return os.environ.get(key, default)


def _sibling(path: str, name: str) -> str:
    """File ``name`` in the same directory as ``path``."""
    return str(Path(path).with_name(name))


def load_config(
    *,
    openai_api_key: str | None = None,
    model: str | None = None,
    fast_model: str | None = None,
    oracle_timeout_s: float | None = None,
    oracle_max_retries: int | None = None,
    max_unresolved_rounds: int | None = None,
    image_max_width: int | None = None,
    image_quality: int | None = None,
    records_path: str | None = None,
    cabinet_path: str | None = None,
    profiles_path: str | None = None,
    record_store_url: str | None = None,
    lookup_url: str | None = None,
    lookup_limit: int | None = None,
    language: str | None = None,
    log_level: str | None = None,
) -> AssistantConfig:
    """Load config. CLI/args override env vars."""
    def _str(k: str, d: str, override: str | None) -> str:
        return override if override is not None else _env(k, d)

    def _int(k: str, d: int, override: int | None) -> int:
        if override is not None:
            return override
        return int(_env(k, str(d)))

    def _float(k: str, d: float, override: float | None) -> float:
        if override is not None:
            return override
        return float(_env(k, str(d)))

    records = _str("MEDISCAN_RECORDS_PATH", "data/records.json", records_path)
    return AssistantConfig(
        openai_api_key=_str("OPENAI_API_KEY", "", openai_api_key),
        model=_str("MEDISCAN_MODEL", "gpt-4o", model),
        fast_model=_str("MEDISCAN_FAST_MODEL", "gpt-4o-mini", fast_model),
        oracle_timeout_s=_float("MEDISCAN_ORACLE_TIMEOUT_S", 60.0, oracle_timeout_s),
        oracle_max_retries=_int("MEDISCAN_ORACLE_MAX_RETRIES", 1, oracle_max_retries),
        max_unresolved_rounds=_int("MEDISCAN_MAX_UNRESOLVED_ROUNDS", 3, max_unresolved_rounds),
        image_max_width=_int("MEDISCAN_IMAGE_MAX_WIDTH", 800, image_max_width),
        image_quality=_int("MEDISCAN_IMAGE_QUALITY", 60, image_quality),
        records_path=records,
        cabinet_path=_str("MEDISCAN_CABINET_PATH", _sibling(records, "medications.json"), cabinet_path),
        profiles_path=_str("MEDISCAN_PROFILES_PATH", _sibling(records, "profiles.json"), profiles_path),
        record_store_url=_str("MEDISCAN_RECORD_STORE_URL", "", record_store_url),
        lookup_url=_str("MEDISCAN_LOOKUP_URL", NOMINATIM_SEARCH_URL, lookup_url),
        lookup_limit=_int("MEDISCAN_LOOKUP_LIMIT", 5, lookup_limit),
        language=_str("MEDISCAN_LANGUAGE", "en", language),
        log_level=_str("MEDISCAN_LOG_LEVEL", "INFO", log_level),
    )


@dataclass(frozen=True)
class AssistantConfig:
    """Configuration for the health assistant."""

    # OpenAI API key (empty = oracle calls fail with OracleError)
    openai_api_key: str = ""

    # Symptom analysis / medication / insights model; fast model for first-aid guides
    model: str = "gpt-4o"
    fast_model: str = "gpt-4o-mini"

    # Per-request timeout and retries on transport errors / empty completions
    oracle_timeout_s: float = 60.0
    oracle_max_retries: int = 1

    # Consecutive empty completions before the interview is abandoned to a manual note
    max_unresolved_rounds: int = 3

    # Media normalizer: max image width in pixels and JPEG quality (0-100)
    image_max_width: int = 800
    image_quality: int = 60

    # Local JSON record store; a non-empty URL selects the remote store instead
    records_path: str = "data/records.json"
    record_store_url: str = ""

    # Medicine cabinet and profile registry files (default: next to the records file)
    cabinet_path: str = "data/medications.json"
    profiles_path: str = "data/profiles.json"

    # Specialist lookup (OpenStreetMap Nominatim search) and max results
    lookup_url: str = NOMINATIM_SEARCH_URL
    lookup_limit: int = 5

    # Default language code for oracle output
    language: str = "en"

    log_level: str = "INFO"
