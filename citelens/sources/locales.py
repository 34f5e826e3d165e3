"""Locale negotiation for citation styles."""
import re
from typing import Dict, Iterable, List, Optional

# Locales published in the CSL locales repository
CSL_LOCALES = frozenset([
    "af-ZA", "ar", "bg-BG", "ca-AD", "cs-CZ", "cy-GB", "da-DK", "de-AT",
    "de-CH", "de-DE", "el-GR", "en-GB", "en-US", "es-CL", "es-ES", "es-MX",
    "et-EE", "eu", "fa-IR", "fi-FI", "fr-CA", "fr-FR", "he-IL", "hi-IN",
    "hr-HR", "hu-HU", "id-ID", "is-IS", "it-IT", "ja-JP", "km-KH", "ko-KR",
    "la", "lt-LT", "lv-LV", "mn-MN", "nb-NO", "nl-NL", "nn-NO", "pl-PL",
    "pt-BR", "pt-PT", "ro-RO", "ru-RU", "sk-SK", "sl-SI", "sr-RS", "sv-SE",
    "th-TH", "tr-TR", "uk-UA", "vi-VN", "zh-CN", "zh-TW",
])

# Default region for a bare language code
LANG_BASES: Dict[str, str] = {
    "af": "af-ZA", "ar": "ar", "bg": "bg-BG", "ca": "ca-AD", "cs": "cs-CZ",
    "cy": "cy-GB", "da": "da-DK", "de": "de-DE", "el": "el-GR", "en": "en-US",
    "es": "es-ES", "et": "et-EE", "eu": "eu", "fa": "fa-IR", "fi": "fi-FI",
    "fr": "fr-FR", "he": "he-IL", "hi": "hi-IN", "hr": "hr-HR", "hu": "hu-HU",
    "id": "id-ID", "is": "is-IS", "it": "it-IT", "ja": "ja-JP", "km": "km-KH",
    "ko": "ko-KR", "la": "la", "lt": "lt-LT", "lv": "lv-LV", "mn": "mn-MN",
    "nb": "nb-NO", "nl": "nl-NL", "nn": "nn-NO", "pl": "pl-PL", "pt": "pt-PT",
    "ro": "ro-RO", "ru": "ru-RU", "sk": "sk-SK", "sl": "sl-SI", "sr": "sr-RS",
    "sv": "sv-SE", "th": "th-TH", "tr": "tr-TR", "uk": "uk-UA", "vi": "vi-VN",
    "zh": "zh-CN",
}

DEFAULT_LOCALE = "en-US"

_LOCALE_ATTR_RE = re.compile(r'locale="([^"]+)"')


def normalize_locale(locale: str) -> Optional[str]:
    """Map a locale tag to a published CSL locale, or None if there is none.

    "de-DE-1996" becomes "de-DE", "de_AT" becomes "de-AT", "fr" becomes
    "fr-FR".
    """
    if not locale:
        return None
    parts = locale.replace("_", "-").split("-")
    candidate = "-".join(parts[:2])
    if len(parts) > 1:
        candidate = f"{parts[0].lower()}-{parts[1].upper()}"
    if candidate in CSL_LOCALES:
        return candidate
    return LANG_BASES.get(parts[0].lower())


def normalize_locales(locales: Iterable[str]) -> List[str]:
    """Normalize and de-duplicate locales, keeping first-seen order."""
    seen: Dict[str, bool] = {}
    for locale in locales:
        normalized = normalize_locale(locale)
        if normalized:
            seen[normalized] = True
    return list(seen)


def extract_raw_locales(style: Optional[str], lang: Optional[str] = None) -> List[str]:
    """Locales an engine needs for a style document and requested language.

    Always includes en-US, then the requested language, then every locale a
    ``locale="..."`` attribute in the style refers to.
    """
    locales = [DEFAULT_LOCALE]
    if lang:
        locales.append(lang)
    if style:
        for match in _LOCALE_ATTR_RE.finditer(style):
            locales.extend(match.group(1).split())
    return normalize_locales(locales)
