"""Drive an engine over citation groups and assemble its bibliography output."""
import logging
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple

from bs4 import BeautifulSoup

from ..exceptions import RenderError
from .models import CitationGroup, RenderedCitation

logger = logging.getLogger(__name__)


@dataclass
class RenderedBibliography:
    """Bibliography output of one render pass.

    Attributes:
        html: Full bibliography HTML, framing included
        document: Parsed ``csl-bib-body`` element
        cite_bib_map: Rendered entry HTML per cited id
    """

    html: str
    document: Any
    cite_bib_map: Dict[str, str]


def partition_keys(keys: Iterable[str], lookup) -> Tuple[FrozenSet[str], FrozenSet[str]]:
    """Split cited ids into (resolved, unresolved) against a bibliography lookup."""
    resolved = set()
    unresolved = set()
    for key in keys:
        if key in lookup:
            resolved.add(key)
        else:
            unresolved.add(key)
    return frozenset(resolved), frozenset(unresolved)


def renderable_groups(groups: Sequence[CitationGroup], resolved: FrozenSet[str]) -> List[CitationGroup]:
    """Groups whose every citation resolves; the others are never rendered."""
    return [g for g in groups if all(c.id in resolved for c in g.citations)]


def render_citations(engine, groups: Sequence[CitationGroup]) -> List[RenderedCitation]:
    """Render groups in source order.

    Raises:
        RenderError: If the engine fails
    """
    if not groups:
        return []
    try:
        return list(engine.render_citations(groups))
    except Exception as e:
        raise RenderError(f"Engine failed rendering citations: {e}", stage="citations") from e


def build_cite_bib_map(entry_ids: Sequence[Sequence[str]], entries: Sequence[str]) -> Dict[str, str]:
    """Align the engine's per-entry id lists with its rendered entries."""
    if len(entry_ids) != len(entries):
        logger.warning(
            f"Bibliography has {len(entries)} entries but {len(entry_ids)} id lists"
        )
    mapping: Dict[str, str] = {}
    for ids, entry in zip(entry_ids, entries):
        for entry_id in ids:
            mapping[entry_id] = entry
    return mapping


def parse_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def render_bibliography(engine) -> Optional[RenderedBibliography]:
    """Render the bibliography of the items cited by the last citation render.

    Returns:
        RenderedBibliography, or None when there is no entry to list

    Raises:
        RenderError: If the engine fails
    """
    try:
        result = engine.render_bibliography()
    except Exception as e:
        raise RenderError(f"Engine failed rendering bibliography: {e}", stage="bibliography") from e

    if not result:
        return None
    metadata, entries = result
    if not entries:
        return None

    html = metadata.bibstart + "".join(entries) + metadata.bibend
    soup = parse_html(html)
    document = soup.find(class_="csl-bib-body") or soup

    return RenderedBibliography(
        html=html,
        document=document,
        cite_bib_map=build_cite_bib_map(metadata.entry_ids, entries),
    )
