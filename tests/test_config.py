"""Config loading: defaults, env vars, explicit overrides; localization lookup; logging setup."""

from __future__ import annotations

import logging

from mediscan.config import NOMINATIM_SEARCH_URL, load_config
from mediscan.localization import LANGUAGES, language_name
from mediscan.utils.logging import setup_logging

_ENV_KEYS = (
    "OPENAI_API_KEY",
    "MEDISCAN_MODEL",
    "MEDISCAN_MAX_UNRESOLVED_ROUNDS",
    "MEDISCAN_ORACLE_TIMEOUT_S",
    "MEDISCAN_LANGUAGE",
    "MEDISCAN_RECORD_STORE_URL",
    "MEDISCAN_LOOKUP_URL",
    "MEDISCAN_RECORDS_PATH",
    "MEDISCAN_CABINET_PATH",
    "MEDISCAN_PROFILES_PATH",
)


def _clear(monkeypatch):
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_defaults(monkeypatch):
    _clear(monkeypatch)
    cfg = load_config()
    assert cfg.model == "gpt-4o"
    assert cfg.fast_model == "gpt-4o-mini"
    assert cfg.max_unresolved_rounds == 3
    assert cfg.image_max_width == 800
    assert cfg.lookup_url == NOMINATIM_SEARCH_URL
    assert cfg.record_store_url == ""


def test_env_vars(monkeypatch):
    _clear(monkeypatch)
    monkeypatch.setenv("MEDISCAN_MODEL", "gpt-4.1")
    monkeypatch.setenv("MEDISCAN_MAX_UNRESOLVED_ROUNDS", "5")
    monkeypatch.setenv("MEDISCAN_ORACLE_TIMEOUT_S", "12.5")
    cfg = load_config()
    assert cfg.model == "gpt-4.1"
    assert cfg.max_unresolved_rounds == 5
    assert cfg.oracle_timeout_s == 12.5


def test_overrides_beat_env(monkeypatch):
    _clear(monkeypatch)
    monkeypatch.setenv("MEDISCAN_LANGUAGE", "fr")
    assert load_config().language == "fr"
    assert load_config(language="sw").language == "sw"


def test_cabinet_and_profiles_sit_next_to_records(monkeypatch):
    _clear(monkeypatch)
    cfg = load_config(records_path="/srv/health/records.json")
    assert cfg.cabinet_path == "/srv/health/medications.json"
    assert cfg.profiles_path == "/srv/health/profiles.json"
    monkeypatch.setenv("MEDISCAN_CABINET_PATH", "/tmp/cabinet.json")
    assert load_config().cabinet_path == "/tmp/cabinet.json"


def test_language_names():
    assert len(LANGUAGES) == 14
    assert language_name("es") == "Español"
    assert language_name("EN") == "English"
    assert language_name("xx") == "English"
    assert language_name(None) == "English"


class TestLogging:
    def test_http_clients_held_at_warning(self):
        setup_logging("INFO")
        assert logging.getLogger().level == logging.INFO
        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("openai").level == logging.WARNING

    def test_debug_lets_http_clients_through(self):
        setup_logging("debug")
        assert logging.getLogger("httpx").level == logging.DEBUG

    def test_unknown_level_falls_back_to_info(self):
        setup_logging("chatty")
        assert logging.getLogger().level == logging.INFO
