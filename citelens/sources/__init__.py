"""Bibliography, style and locale sources."""

from .bibliography import load_bibliography, parse_csl_json, parse_csl_yaml
from .documents import LocaleCache, StyleCache, style_reference
from .index import BibliographyIndex
from .locales import extract_raw_locales, normalize_locale, normalize_locales
from .zotero import ZoteroClient

__all__ = [
    "load_bibliography",
    "parse_csl_json",
    "parse_csl_yaml",
    "LocaleCache",
    "StyleCache",
    "style_reference",
    "BibliographyIndex",
    "extract_raw_locales",
    "normalize_locale",
    "normalize_locales",
    "ZoteroClient",
]
