"""Build rendering engines bound to one (style, locale, bibliography) scope."""
import logging
from typing import Callable, Type

from ..exceptions import CitelensError, EngineError
from ..sources.documents import LocaleCache, StyleCache
from ..sources.index import BibliographyIndex
from .base import BaseEngine, EngineSystem
from .csl import CSLEngine

logger = logging.getLogger(__name__)

EngineFactory = Callable[[str, LocaleCache, str, StyleCache, BibliographyIndex], BaseEngine]


def build_engine(
    lang: str,
    locale_cache: LocaleCache,
    style: str,
    style_cache: StyleCache,
    bibliography: BibliographyIndex,
    engine_class: Type[BaseEngine] = CSLEngine,
) -> BaseEngine:
    """Build an engine for a style that is already in the style cache.

    Locale documents are looked up lazily through ``locale_cache``; the
    caller loads the ones the style needs beforehand.

    Args:
        lang: Locale to render in
        locale_cache: Loaded locale documents
        style: Style cache key (id, URL or explicit path)
        style_cache: Loaded style documents
        bibliography: Entry lookup for the scope

    Returns:
        Engine instance

    Raises:
        StyleError: If the style is not loaded or cannot be parsed
        EngineError: If the engine cannot be constructed
    """
    style_text = style_cache.get(style)
    if style_text is None:
        raise EngineError(f"Style is not loaded: {style}")

    system = EngineSystem(
        retrieve_locale=locale_cache.get,
        retrieve_item=bibliography.get,
    )

    try:
        engine = engine_class(system, style_text, lang)
    except CitelensError:
        raise
    except Exception as e:
        raise EngineError(f"Failed to build engine for {style}: {e}") from e

    logger.debug(f"Built {engine_class.__name__} for style {style} ({lang})")
    return engine
