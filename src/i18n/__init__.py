"""
Message translation for Farm Agent.

Thin gettext wrapper: user-facing messages go through ``_()`` and are looked
up in ``locales/<lang>/LC_MESSAGES/messages.mo`` next to this file. Missing
catalogs fall back to the English source strings.
"""

import gettext
import os
from typing import Dict, Optional

DEFAULT_LANGUAGE = "en"
LOCALE_DIR = os.path.join(os.path.dirname(__file__), "locales")

CURRENT_LANGUAGE = DEFAULT_LANGUAGE

_TRANSLATIONS: Dict[str, gettext.NullTranslations] = {}


def set_language(language: Optional[str]) -> None:
    """Select the language used by later ``_()`` calls."""
    global CURRENT_LANGUAGE  # pylint: disable=global-statement
    CURRENT_LANGUAGE = language or DEFAULT_LANGUAGE


def get_language() -> str:
    """Get the current language."""
    return CURRENT_LANGUAGE


def get_translation(language: Optional[str] = None) -> gettext.NullTranslations:
    """Translation catalog for a language, cached after the first lookup."""
    language = language or CURRENT_LANGUAGE
    if language not in _TRANSLATIONS:
        _TRANSLATIONS[language] = gettext.translation(
            "messages", LOCALE_DIR, [language], fallback=True
        )
    return _TRANSLATIONS[language]


def _(message: str, language: Optional[str] = None) -> str:
    """Translate a message."""
    return get_translation(language).gettext(message)
