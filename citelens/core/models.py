"""Data models for citelens."""
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple


class SegmentType(str, Enum):
    """Lexical unit kinds of the citation micro-syntax."""

    KEY = "key"
    AT = "at"
    BRACKET = "bracket"
    CURLY_BRACKET = "curlyBracket"
    SEPARATOR = "separator"
    SUPPRESSOR = "suppressor"
    PREFIX = "prefix"
    SUFFIX = "suffix"
    LOCATOR = "locator"
    LOCATOR_LABEL = "locatorLabel"
    LOCATOR_SUFFIX = "locatorSuffix"


class CitationMode(str, Enum):
    """How a citation group sits in the running text."""

    PARENTHETICAL = "parenthetical"
    IN_TEXT = "in-text"


@dataclass(frozen=True)
class Segment:
    """One lexical unit of citation syntax.

    Attributes:
        type: Segment kind
        value: Raw text slice
        start: Offset of the first character in the scanned text
        end: Offset one past the last character (half-open range)
    """

    type: SegmentType
    value: str
    start: int
    end: int


@dataclass(frozen=True)
class Citation:
    """One cited work inside a citation group.

    Attributes:
        id: Bibliographic key
        prefix: Free text before the key
        suffix: Free text after the key or locator
        locator: Sub-reference such as a page range
        locator_label: Label typed before the locator ("p.", "chapter")
        suppress_author: Set by a leading "-" before the key
    """

    id: str
    prefix: Optional[str] = None
    suffix: Optional[str] = None
    locator: Optional[str] = None
    locator_label: Optional[str] = None
    suppress_author: bool = False


@dataclass(frozen=True)
class CitationGroup:
    """A bracketed or bare citation construct and the citations it holds."""

    citations: Tuple[Citation, ...]
    mode: CitationMode
    start: int
    end: int
    segments: Tuple[Segment, ...] = ()

    @property
    def ids(self) -> List[str]:
        return [c.id for c in self.citations]


@dataclass(frozen=True)
class RenderedCitation:
    """Output of rendering one citation group.

    Attributes:
        citations: Source citations, in the order the engine returned them
        val: Display string, may contain inline HTML
        start: Start offset of the group in the source text
        end: End offset of the group in the source text
        note: Footnote body for note styles
        note_index: Footnote number for note styles
        segments: Segments of the source group, used to match live edits
    """

    citations: Tuple[Citation, ...]
    val: str
    start: int
    end: int
    note: Optional[str] = None
    note_index: Optional[int] = None
    segments: Tuple[Segment, ...] = ()

    def rendering(self) -> Tuple[Any, ...]:
        """Value identity of the rendered output, ignoring source offsets."""
        return (self.citations, self.val, self.note, self.note_index)


@dataclass(frozen=True)
class ScopedSettings:
    """Per-document overrides of the global bibliography, style and locale.

    Two settings are equal iff all three fields match, absent included.
    """

    bibliography: Optional[str] = None
    style: Optional[str] = None
    lang: Optional[str] = None

    def is_empty(self) -> bool:
        return not (self.bibliography or self.style or self.lang)


@dataclass
class BibliographyMetadata:
    """Framing data an engine returns alongside rendered bibliography entries."""

    bibstart: str = '<div class="csl-bib-body">'
    bibend: str = "</div>"
    entry_ids: List[List[str]] = field(default_factory=list)


@dataclass
class Scope:
    """Bibliography lookup and engine bound to one set of scope settings.

    Attributes:
        bibliography: Lookup of entries by id, with a fuzzy search index
        engine: Rendering engine, or None when the scope failed to load
        lock: Held while the engine renders; engines keep state between
            the citation and bibliography renders of one document
    """

    bibliography: Any
    engine: Optional[Any] = None
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)


@dataclass(frozen=True)
class Resolution:
    """Resolution state of one cited key within a document."""

    is_resolved: bool = False
    is_unresolved: bool = False


@dataclass
class ResolutionResult:
    """Per-document memo of the last resolution pass.

    ``resolved_keys`` and ``unresolved_keys`` partition ``keys``.

    Attributes:
        keys: Every cited id found in the document
        resolved_keys: Cited ids present in the scope's bibliography
        unresolved_keys: Cited ids missing from it
        bibliography: Parsed bibliography document, or None when empty
        bibliography_html: The HTML the bibliography document was parsed from
        citations: Rendered citation groups in source order
        cite_bib_map: Rendered bibliography fragment per cited id
        settings: Scope settings that produced this result
        fingerprint: Fingerprint of the override bibliography file, if any
        scope: Bibliography lookup and engine bound to the settings
        groups: The citation groups that were rendered
    """

    keys: FrozenSet[str]
    resolved_keys: FrozenSet[str]
    unresolved_keys: FrozenSet[str]
    bibliography: Optional[Any]
    citations: Tuple[RenderedCitation, ...]
    cite_bib_map: Dict[str, str]
    settings: Optional[ScopedSettings]
    scope: Scope
    fingerprint: Optional[Tuple[int, int]] = None
    bibliography_html: Optional[str] = None
    groups: Tuple[CitationGroup, ...] = ()

    @property
    def is_empty(self) -> bool:
        """True when the result renders nothing."""
        return self.bibliography is None and not self.citations
