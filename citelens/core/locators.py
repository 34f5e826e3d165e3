"""Locator labels recognized after a citation key.

Maps every accepted label spelling (lower case) to its CSL locator type.
"""
import re
from typing import Optional

LOCATOR_LABELS = {
    "book": "book", "books": "book", "bk.": "book", "bks.": "book",
    "chapter": "chapter", "chapters": "chapter", "chap.": "chapter",
    "chaps.": "chapter", "ch.": "chapter",
    "column": "column", "columns": "column", "col.": "column", "cols.": "column",
    "figure": "figure", "figures": "figure", "fig.": "figure", "figs.": "figure",
    "folio": "folio", "folios": "folio", "fol.": "folio", "fols.": "folio",
    "number": "number", "numbers": "number", "no.": "number", "nos.": "number",
    "line": "line", "lines": "line", "l.": "line", "ll.": "line",
    "note": "note", "notes": "note", "n.": "note", "nn.": "note",
    "opus": "opus", "opera": "opus", "op.": "opus", "opp.": "opus",
    "page": "page", "pages": "page", "p.": "page", "pp.": "page",
    "paragraph": "paragraph", "paragraphs": "paragraph", "para.": "paragraph",
    "paras.": "paragraph", "¶": "paragraph", "¶¶": "paragraph",
    "part": "part", "parts": "part", "pt.": "part", "pts.": "part",
    "section": "section", "sections": "section", "sec.": "section",
    "secs.": "section", "§": "section", "§§": "section",
    "sub verbo": "sub verbo", "sub verbis": "sub verbo", "s.v.": "sub verbo",
    "s.vv.": "sub verbo",
    "verse": "verse", "verses": "verse", "v.": "verse", "vv.": "verse",
    "volume": "volume", "volumes": "volume", "vol.": "volume", "vols.": "volume",
}

# Longest first so "pp." wins over "p." and "vol." over "v."
LABEL_PATTERN = "|".join(
    re.escape(label) for label in sorted(LOCATOR_LABELS, key=len, reverse=True)
)

_NUMERIC_TOKEN = r"\d+[A-Za-z]*\b"
_ROMAN_TOKEN = r"[ivxlcdmIVXLCDM]+\b"
_RANGE_JOIN = r"\s*[-–—,&]\s*"
_RANGE_DASH = r"\s*[-–—]\s*"

# Only digit-led tokens continue a locator after "," or "&"; a roman numeral
# locator is one numeral or a dashed range of two
_NUMERIC_RUN = rf"{_NUMERIC_TOKEN}(?:{_RANGE_JOIN}{_NUMERIC_TOKEN})*"
_ROMAN_RUN = rf"{_ROMAN_TOKEN}(?:{_RANGE_DASH}{_ROMAN_TOKEN})?"

LOCATOR_PATTERN = rf"(?:{_NUMERIC_RUN}|{_ROMAN_RUN})"
# Without a label only digit-led locators count (page is implied)
BARE_LOCATOR_PATTERN = _NUMERIC_RUN


def locator_type(label: Optional[str]) -> str:
    """Return the CSL locator type for a typed label; page when absent or unknown."""
    if not label:
        return "page"
    return LOCATOR_LABELS.get(label.strip().lower(), "page")

