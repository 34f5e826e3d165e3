"""Base rendering engine interface."""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from ..core.models import BibliographyMetadata, CitationGroup, RenderedCitation


@dataclass
class EngineSystem:
    """Lookups an engine may call while rendering.

    Attributes:
        retrieve_locale: Locale id -> raw locale document, or None
        retrieve_item: Bibliography id -> CSL-JSON entry, or None
    """

    retrieve_locale: Callable[[str], Optional[str]]
    retrieve_item: Callable[[str], Optional[Dict[str, Any]]]


class BaseEngine(ABC):
    """Citation style rendering capability bound to one scope.

    An engine is built once per (style, locale, bibliography) combination and
    reused for every render in that scope.
    """

    def __init__(self, system: EngineSystem, lang: str):
        """Initialize engine.

        Args:
            system: Locale and bibliography entry lookups
            lang: Locale to render in
        """
        self.system = system
        self.lang = lang

    @abstractmethod
    def render_citations(self, groups: Sequence[CitationGroup]) -> List[RenderedCitation]:
        """Render citation groups, in order.

        Every cited id must be present in the bibliography. The items cited
        here are the ones the next ``render_bibliography`` call lists.

        Args:
            groups: Citation groups in source order

        Returns:
            One RenderedCitation per group
        """
        pass

    @abstractmethod
    def render_bibliography(self) -> Optional[Tuple[BibliographyMetadata, List[str]]]:
        """Render the bibliography for the items cited by the last render.

        Returns:
            (metadata, entries) with one HTML string per entry, or None when
            the style has no bibliography
        """
        pass
