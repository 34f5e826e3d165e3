"""Pandoc citation syntax: segment tokenizer and citation extractor.

The tokenizer scans a text buffer and returns every piece of citation syntax
as a typed, positioned :class:`Segment`:

    [see @smith99, p. 33-35; -@doe2000]   bracketed group
    @smith99 says                          bare in-text citation
    @{key with spaces}                     curly-bracketed key

It knows nothing about bibliographies, and nothing about code spans or math
either: callers that need to ignore matches inside such spans filter the
segments themselves. Every character of a bracketed group is covered by
exactly one segment, so joining the values of a group's segments gives back
the bracketed source text.
"""
import logging
import re
from typing import Dict, List, Optional, Sequence

from .locators import BARE_LOCATOR_PATTERN, LABEL_PATTERN, LOCATOR_PATTERN
from .models import Citation, CitationGroup, CitationMode, Segment, SegmentType

logger = logging.getLogger(__name__)

# Internal punctuation is allowed only when followed by more key characters
_KEY = r"\w+(?:[:.#$%&\-+?<>~/]+\w+)*"

_GROUP_RE = re.compile(r"\[([^\[\]]*)\]")

_CITE_MARKER_RE = re.compile(
    rf"(?<![\w@])(?P<suppressor>-)?(?P<at>@)"
    rf"(?:(?P<curly>\{{(?P<curly_key>[^{{}}]*)\}})|(?P<key>{_KEY}))"
)

_BARE_MARKER_RE = re.compile(
    rf"(?<![\w@])(?P<at>@)"
    rf"(?:(?P<curly>\{{(?P<curly_key>[^{{}}]*)\}})|(?P<key>{_KEY}))"
)

_SEPARATOR_RE = re.compile(r";\s*")

_LABELED_LOCATOR_RE = re.compile(
    rf"(?P<lead>\s*,\s*)(?P<label>{LABEL_PATTERN})(?:(?<=\W)|(?=\s))(?P<gap>\s*)"
    rf"(?P<locator>{LOCATOR_PATTERN})",
    re.IGNORECASE,
)

_BARE_LOCATOR_RE = re.compile(rf"(?P<lead>\s*,\s*)(?P<locator>{BARE_LOCATOR_PATTERN})")


def _segment(seg_type: SegmentType, text: str, start: int, end: int) -> Segment:
    return Segment(type=seg_type, value=text[start:end], start=start, end=end)


def _first_valid_marker(pattern: "re.Pattern", text: str, start: int, end: int):
    """First marker match in text[start:end] whose key is non-empty."""
    for match in pattern.finditer(text, start, end):
        if match.group("curly") is not None and not match.group("curly_key").strip():
            continue
        return match
    return None


def _marker_segments(text: str, match: "re.Match") -> List[Segment]:
    """Segments for "-@key" / "@key" / "@{key}" in source order."""
    segments = []
    if "suppressor" in match.groupdict() and match.group("suppressor"):
        segments.append(_segment(SegmentType.SUPPRESSOR, text, *match.span("suppressor")))
    segments.append(_segment(SegmentType.AT, text, *match.span("at")))

    if match.group("curly") is not None:
        curly_start, curly_end = match.span("curly")
        segments.append(_segment(SegmentType.CURLY_BRACKET, text, curly_start, curly_start + 1))
        segments.append(_segment(SegmentType.KEY, text, curly_start + 1, curly_end - 1))
        segments.append(_segment(SegmentType.CURLY_BRACKET, text, curly_end - 1, curly_end))
    else:
        segments.append(_segment(SegmentType.KEY, text, *match.span("key")))

    return segments


def _remainder_segments(text: str, start: int, end: int) -> List[Segment]:
    """Locator and suffix segments for the text following a key."""
    if start >= end:
        return []

    labeled = _LABELED_LOCATOR_RE.match(text, start, end)
    if labeled:
        segments = [
            _segment(SegmentType.LOCATOR_LABEL, text, start, labeled.start("locator")),
            _segment(SegmentType.LOCATOR, text, *labeled.span("locator")),
        ]
        if labeled.end() < end:
            segments.append(_segment(SegmentType.LOCATOR_SUFFIX, text, labeled.end(), end))
        return segments

    bare = _BARE_LOCATOR_RE.match(text, start, end)
    if bare:
        segments = [_segment(SegmentType.LOCATOR, text, start, bare.end())]
        if bare.end() < end:
            segments.append(_segment(SegmentType.LOCATOR_SUFFIX, text, bare.end(), end))
        return segments

    return [_segment(SegmentType.SUFFIX, text, start, end)]


def _part_segments(text: str, start: int, end: int):
    """Tokenize one ";"-delimited part of a bracketed group.

    Returns:
        Tuple of (segments, has_key). A part without a usable key is kept as a
        single prefix segment so the group stays fully covered.
    """
    if start >= end:
        return [], False

    match = _first_valid_marker(_CITE_MARKER_RE, text, start, end)
    if match is None:
        return [_segment(SegmentType.PREFIX, text, start, end)], False

    segments = []
    if match.start() > start:
        segments.append(_segment(SegmentType.PREFIX, text, start, match.start()))
    segments.extend(_marker_segments(text, match))
    segments.extend(_remainder_segments(text, match.end(), end))
    return segments, True


def _group_segments(text: str, start: int, end: int) -> Optional[List[Segment]]:
    """Tokenize the bracketed group text[start:end] ("[" ... "]").

    Returns None when the brackets hold no citation.
    """
    open_bracket = _segment(SegmentType.BRACKET, text, start, start + 1)
    close_bracket = _segment(SegmentType.BRACKET, text, end - 1, end)

    inner_start, inner_end = start + 1, end - 1
    if inner_start == inner_end:
        return [open_bracket, close_bracket]

    segments = [open_bracket]
    has_citation = False
    part_start = inner_start

    for separator in _SEPARATOR_RE.finditer(text, inner_start, inner_end):
        part, has_key = _part_segments(text, part_start, separator.start())
        segments.extend(part)
        has_citation = has_citation or has_key
        segments.append(_segment(SegmentType.SEPARATOR, text, *separator.span()))
        part_start = separator.end()

    part, has_key = _part_segments(text, part_start, inner_end)
    segments.extend(part)
    has_citation = has_citation or has_key

    if not has_citation:
        return None

    segments.append(close_bracket)
    return segments


def _bare_segments(text: str, start: int, end: int) -> List[Segment]:
    """In-text "@key" citations found in text[start:end]."""
    segments = []
    pos = start
    while pos < end:
        match = _first_valid_marker(_BARE_MARKER_RE, text, pos, end)
        if match is None:
            break
        segments.extend(_marker_segments(text, match))
        pos = match.end()
    return segments


def tokenize(text: str) -> List[Segment]:
    """Scan text for citation syntax.

    Args:
        text: Buffer to scan (a whole document or just a visible range)

    Returns:
        Segments ordered by start offset, non-overlapping, with offsets
        relative to the start of ``text``
    """
    segments: List[Segment] = []
    pos = 0

    for group in _GROUP_RE.finditer(text):
        group_segments = _group_segments(text, group.start(), group.end())
        if group_segments is None:
            continue
        segments.extend(_bare_segments(text, pos, group.start()))
        segments.extend(group_segments)
        pos = group.end()

    segments.extend(_bare_segments(text, pos, len(text)))
    return segments


def split_groups(segments: Sequence[Segment]) -> List[List[Segment]]:
    """Split a flat segment sequence into one run per citation group.

    A run is either everything from "[" to the matching "]", or one bare
    "@key" (with its curly brackets, if any).
    """
    runs: List[List[Segment]] = []
    current: List[Segment] = []
    in_group = False

    for seg in segments:
        if seg.type == SegmentType.BRACKET:
            if seg.value == "[":
                if current:
                    runs.append(current)
                current = [seg]
                in_group = True
            else:
                current.append(seg)
                runs.append(current)
                current = []
                in_group = False
            continue

        if not in_group and seg.type == SegmentType.AT and current:
            runs.append(current)
            current = []
        current.append(seg)

    if current:
        runs.append(current)
    return runs


def _clean(value: str) -> str:
    """Strip whitespace and the comma that introduces a locator."""
    return value.strip().lstrip(",").strip()


class _CitationBuilder:
    """Accumulates the fields of one citation between separators."""

    def __init__(self):
        self.reset()

    def reset(self):
        self.fields: Dict[str, object] = {}
        self.malformed: Optional[str] = None

    def add(self, seg: Segment) -> None:
        fields = self.fields

        if seg.type == SegmentType.PREFIX:
            if "id" in fields:
                self.malformed = "prefix after key"
            fields["prefix"] = fields.get("prefix", "") + seg.value
        elif seg.type == SegmentType.SUPPRESSOR:
            fields["suppress_author"] = True
        elif seg.type == SegmentType.KEY:
            if "id" in fields:
                self.malformed = "two keys without a separator"
            fields["id"] = seg.value.strip()
        elif seg.type == SegmentType.LOCATOR_LABEL:
            fields["locator_label"] = _clean(seg.value)
        elif seg.type == SegmentType.LOCATOR:
            fields["locator"] = _clean(seg.value)
        elif seg.type in (SegmentType.SUFFIX, SegmentType.LOCATOR_SUFFIX):
            fields["suffix"] = fields.get("suffix", "") + seg.value
        # at and curly brackets carry no data

    def finish(self) -> Optional[Citation]:
        fields = self.fields
        try:
            if not fields:
                return None
            if not fields.get("id"):
                logger.debug(f"Dropping citation without key: {fields}")
                return None
            if self.malformed:
                logger.debug(f"Dropping malformed citation {fields['id']}: {self.malformed}")
                return None
            if fields.get("locator_label") and not fields.get("locator"):
                logger.debug(f"Dropping citation {fields['id']}: locator label without locator")
                return None

            prefix = (fields.get("prefix") or "").strip()
            suffix = (fields.get("suffix") or "").strip()
            return Citation(
                id=fields["id"],
                prefix=prefix or None,
                suffix=suffix or None,
                locator=fields.get("locator") or None,
                locator_label=fields.get("locator_label") or None,
                suppress_author=bool(fields.get("suppress_author", False)),
            )
        finally:
            self.reset()


def extract_group(run: Sequence[Segment]) -> Optional[CitationGroup]:
    """Assemble the citations of one segment run.

    A citation with a malformed part is dropped; the rest of the group is
    kept. Returns None when no citation survives.
    """
    if not run:
        return None

    bracketed = run[0].type == SegmentType.BRACKET
    builder = _CitationBuilder()
    citations: List[Citation] = []

    for seg in run:
        if seg.type == SegmentType.SEPARATOR:
            citation = builder.finish()
            if citation:
                citations.append(citation)
        elif seg.type != SegmentType.BRACKET:
            builder.add(seg)

    citation = builder.finish()
    if citation:
        citations.append(citation)

    if not citations:
        return None

    return CitationGroup(
        citations=tuple(citations),
        mode=CitationMode.PARENTHETICAL if bracketed else CitationMode.IN_TEXT,
        start=run[0].start,
        end=run[-1].end,
        segments=tuple(run),
    )


def extract(segments: Sequence[Segment]) -> List[CitationGroup]:
    """Group a segment sequence into citation groups, in source order.

    Groups that end up without any citation (such as "[]") are left out.
    """
    groups = []
    for run in split_groups(segments):
        group = extract_group(run)
        if group is not None:
            groups.append(group)
    return groups


def get_citation_groups(text: str) -> List[CitationGroup]:
    """Tokenize and extract in one step."""
    return extract(tokenize(text))
