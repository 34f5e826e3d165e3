"""CSL engine backed by citeproc-py.

The style document is parsed once per engine. Every citation render builds a
fresh citeproc bibliography over the cited entries only, so the next
bibliography render lists exactly what that render cited.
"""
import html
import io
import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from citeproc import CitationStylesBibliography, CitationStylesStyle, formatter
from citeproc.source import Citation as CiteprocCitation
from citeproc.source import CitationItem, Locator
from citeproc.source.json import CiteProcJSON

from ..core.locators import locator_type
from ..core.models import BibliographyMetadata, Citation, CitationGroup, RenderedCitation
from ..exceptions import StyleError
from ..sources.locales import DEFAULT_LOCALE, normalize_locale
from .base import BaseEngine, EngineSystem

logger = logging.getLogger(__name__)

CSL_NS = "{http://purl.org/net/xbiblio/csl}"

# Entries without a type still need one for citeproc
DEFAULT_ITEM_TYPE = "article"

_URL_RE = re.compile(r'(?<![">])(https?://[^\s<"]+[^\s<".,;:)\]])')


@dataclass
class StyleInfo:
    """Style metadata read from the CSL document."""

    title: str = ""
    style_class: str = "in-text"
    citation_format: str = "author-date"
    default_locale: Optional[str] = None
    has_bibliography: bool = True

    @property
    def is_note(self) -> bool:
        return self.style_class == "note"


def _style_info(root) -> StyleInfo:
    if root.tag != f"{CSL_NS}style":
        raise StyleError(f"Not a CSL style document (root element {root.tag})")

    info = root.find(f"{CSL_NS}info")
    if root.find(f"{CSL_NS}citation") is None:
        link = info.find(f"{CSL_NS}link[@rel='independent-parent']") if info is not None else None
        if link is not None:
            raise StyleError(f"Dependent style; load its parent style instead: {link.get('href')}")
        raise StyleError("Style has no citation element")

    style = StyleInfo(
        style_class=root.get("class", "in-text"),
        default_locale=root.get("default-locale"),
        has_bibliography=root.find(f"{CSL_NS}bibliography") is not None,
    )
    if info is not None:
        style.title = (info.findtext(f"{CSL_NS}title") or "").strip()
        category = info.find(f"{CSL_NS}category[@citation-format]")
        if category is not None:
            style.citation_format = category.get("citation-format")
    if style.is_note:
        style.citation_format = "note"
    return style


def load_style(text: str, lang: Optional[str] = None) -> Tuple[CitationStylesStyle, StyleInfo]:
    """Parse a CSL style document for rendering in ``lang``.

    Raises:
        StyleError: If the document is not an independent CSL style
    """
    info = parse_style(text)
    try:
        style = CitationStylesStyle(io.BytesIO(text.encode("utf-8")), locale=lang, validate=False)
    except Exception as e:
        raise StyleError(f"Invalid CSL style document: {e}") from e
    return style, info


def parse_style(text: str) -> StyleInfo:
    """Style metadata of a CSL document."""
    try:
        root = ET.fromstring(text)
    except ET.ParseError as e:
        raise StyleError(f"Invalid CSL style document: {e}") from e
    return _style_info(root)


def link_urls(text: str) -> str:
    """Wrap bare http(s) URLs of rendered HTML in anchors."""
    return _URL_RE.sub(r'<a href="\1">\1</a>', text)


def _affixed(citation: Citation) -> Dict[str, Any]:
    """citeproc item options for a parsed citation."""
    options: Dict[str, Any] = {}
    if citation.locator:
        options["locator"] = Locator(locator_type(citation.locator_label), citation.locator)
    if citation.prefix:
        options["prefix"] = f"{html.escape(citation.prefix, quote=False)} "
    if citation.suffix:
        suffix = html.escape(citation.suffix, quote=False)
        options["suffix"] = suffix if suffix[0] in ",.;:)" else f" {suffix}"
    return options


class CSLEngine(BaseEngine):
    """Renders citations and bibliographies through a CSL style."""

    def __init__(self, system: EngineSystem, style_text: str, lang: str = DEFAULT_LOCALE):
        """Initialize engine.

        Args:
            system: Locale and bibliography entry lookups
            style_text: Raw CSL style document
            lang: Locale to render in

        Raises:
            StyleError: If the style cannot be parsed
        """
        super().__init__(system, lang or DEFAULT_LOCALE)
        self.locale = self._negotiate_locale()
        self.style, self.info = load_style(style_text, self.locale)
        self._bibliography: Optional[CitationStylesBibliography] = None
        self._ids: Dict[str, str] = {}

    def _negotiate_locale(self) -> str:
        """First requested locale the scope has a document for."""
        normalized = normalize_locale(self.lang)
        for candidate in (normalized, self.lang):
            if candidate and self.system.retrieve_locale(candidate):
                return candidate
        logger.debug(f"No locale document for {self.lang}, rendering in {normalized or DEFAULT_LOCALE}")
        return normalized or DEFAULT_LOCALE

    def _source(self, ids: Sequence[str]) -> CiteProcJSON:
        """citeproc source holding the entries of ``ids``, keyed in lower case."""
        items = []
        self._ids = {}
        for entry_id in ids:
            entry = self.system.retrieve_item(entry_id)
            if entry is None:
                raise LookupError(f"Unknown bibliography id: {entry_id}")
            key = entry_id.lower()
            if key in self._ids:
                logger.warning(f"Ids {self._ids[key]!r} and {entry_id!r} differ only in case")
            self._ids[key] = entry_id

            item = dict(entry, id=key)
            item.setdefault("type", DEFAULT_ITEM_TYPE)
            items.append(item)
        return CiteProcJSON(items)

    def _missing(self, item) -> None:
        raise LookupError(f"Unknown bibliography id: {item.key}")

    def render_citations(self, groups: Sequence[CitationGroup]) -> List[RenderedCitation]:
        ids = list(dict.fromkeys(c.id for group in groups for c in group.citations))
        bibliography = CitationStylesBibliography(self.style, self._source(ids), formatter.html)
        self._bibliography = bibliography

        clusters = [
            CiteprocCitation([CitationItem(c.id.lower(), **_affixed(c)) for c in group.citations])
            for group in groups
        ]
        for cluster in clusters:
            bibliography.register(cluster, self._missing)
        if self.info.has_bibliography:
            bibliography.sort()

        rendered = []
        for note_index, (group, cluster) in enumerate(zip(groups, clusters), start=1):
            text = str(bibliography.cite(cluster, self._missing))
            if self.info.is_note:
                val, note, index = f"<sup>{note_index}</sup>", text, note_index
            else:
                val, note, index = text, None, None

            rendered.append(RenderedCitation(
                citations=group.citations,
                val=val,
                start=group.start,
                end=group.end,
                note=note,
                note_index=index,
                segments=group.segments,
            ))
        return rendered

    def render_bibliography(self) -> Optional[Tuple[BibliographyMetadata, List[str]]]:
        if not self.info.has_bibliography:
            return None
        if self._bibliography is None:
            return BibliographyMetadata(), []

        bibliography = self._bibliography
        entries = [
            f'<div class="csl-entry">{link_urls(str(item))}</div>'
            for item in bibliography.bibliography()
        ]
        entry_ids = [[self._ids.get(key, key)] for key in bibliography.keys]
        return BibliographyMetadata(entry_ids=entry_ids), entries
