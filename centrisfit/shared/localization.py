"""Locale lookup for entities that carry one name per language"""

from typing import Mapping, Optional

DEFAULT_LANGUAGE = "ru"
SUPPORTED_LANGUAGES = ("ru", "uz")


def normalize_language(language: Optional[str]) -> str:
    """Map an Accept-Language style value ("uz-UZ,uz;q=0.9") to a supported code"""
    if not language:
        return DEFAULT_LANGUAGE
    code = language.split(",")[0].split(";")[0].split("-")[0].strip().lower()
    return code if code in SUPPORTED_LANGUAGES else DEFAULT_LANGUAGE


def localize(names: Mapping[str, Optional[str]], language: Optional[str]) -> str:
    """
    Pick the value for ``language`` from a ``{"ru": ..., "uz": ...}`` table.

    Falls back to the default language, then to any non-empty value.
    """
    value = names.get(normalize_language(language))
    if value:
        return value
    value = names.get(DEFAULT_LANGUAGE)
    if value:
        return value
    for candidate in names.values():
        if candidate:
            return candidate
    return ""
