"""Citation parsing, resolution caching and rendering."""

from .models import (
    Segment,
    SegmentType,
    Citation,
    CitationGroup,
    CitationMode,
    RenderedCitation,
    ScopedSettings,
    Scope,
    Resolution,
    ResolutionResult,
    BibliographyMetadata,
)
from .parser import tokenize, split_groups, extract, extract_group, get_citation_groups
from .lru import LRUCache
from .frontmatter import parse_frontmatter, read_scoped_settings

__all__ = [
    "Segment",
    "SegmentType",
    "Citation",
    "CitationGroup",
    "CitationMode",
    "RenderedCitation",
    "ScopedSettings",
    "Scope",
    "Resolution",
    "ResolutionResult",
    "BibliographyMetadata",
    "tokenize",
    "split_groups",
    "extract",
    "extract_group",
    "get_citation_groups",
    "LRUCache",
    "parse_frontmatter",
    "read_scoped_settings",
]
