"""Supported output languages and code -> display name resolution."""

from __future__ import annotations

LANGUAGES: dict[str, str] = {
    "en": "English",
    "es": "Español",
    "fr": "Français",
    "pt": "Português",
    "hi": "हिन्दी (Hindi)",
    "ur": "اردو (Urdu)",
    "bn": "বাংলা (Bengali)",
    "ta": "தமிழ் (Tamil)",
    "ar": "العربية (Arabic)",
    "sw": "Kiswahili",
    "am": "አማርኛ (Amharic)",
    "zh": "中文 (Mandarin)",
    "id": "Bahasa Indonesia",
    "vi": "Tiếng Việt",
}

DEFAULT_LANGUAGE_NAME = "English"


def language_name(code: str | None) -> str:
    """Display name for a language code; English for unknown codes."""
    return LANGUAGES.get((code or "").strip().lower(), DEFAULT_LANGUAGE_NAME)
