"""citelens - Pandoc citation parsing, resolution and rendering.

A Python library for working with Pandoc-style citations in documents:
- Tokenizing citation syntax with exact source offsets
- Resolving cited keys against CSL-JSON, YAML, BibTeX or Zotero bibliographies
- Rendering citations and bibliographies through CSL styles and locales
- Per-document style, locale and bibliography overrides with cached results
"""

from .config import Config
from .exceptions import (
    CitelensError,
    ConfigurationError,
    BibliographyError,
    StyleError,
    LocaleError,
    EngineError,
    RenderError,
)
from .core.models import (
    Segment,
    SegmentType,
    Citation,
    CitationGroup,
    CitationMode,
    RenderedCitation,
    ScopedSettings,
    Resolution,
    ResolutionResult,
)
from .core.parser import tokenize, extract, get_citation_groups
from .core.resolver import CitationResolver

__version__ = "0.1.0"
__all__ = [
    "CitationResolver",
    "Config",
    "tokenize",
    "extract",
    "get_citation_groups",
    "Segment",
    "SegmentType",
    "Citation",
    "CitationGroup",
    "CitationMode",
    "RenderedCitation",
    "ScopedSettings",
    "Resolution",
    "ResolutionResult",
    "CitelensError",
    "ConfigurationError",
    "BibliographyError",
    "StyleError",
    "LocaleError",
    "EngineError",
    "RenderError",
]
