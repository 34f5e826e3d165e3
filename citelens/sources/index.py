"""Bibliography lookup by id, with fuzzy search for autocompletion."""
import logging
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from rapidfuzz import fuzz, process, utils

logger = logging.getLogger(__name__)

# Relative weight of each searched field
SEARCH_WEIGHTS = {"id": 0.7, "title": 0.3}
MIN_QUERY_LENGTH = 2
SCORE_CUTOFF = 65.0


class BibliographyIndex:
    """CSL-JSON entries keyed by id.

    Example:
        >>> index = BibliographyIndex([{"id": "smith99", "title": "On Things"}])
        >>> "smith99" in index
        True
        >>> index.search("smith")[0][0]["id"]
        'smith99'
    """

    def __init__(self, entries: Optional[Iterable[Dict[str, Any]]] = None):
        self._entries: Dict[str, Dict[str, Any]] = {}
        self.set_entries(entries or [])

    def set_entries(self, entries: Iterable[Dict[str, Any]]) -> None:
        """Replace the whole collection. Later duplicates of an id win."""
        self._entries = {}
        for entry in entries:
            self._entries[str(entry["id"])] = entry

    def clear(self) -> None:
        self._entries = {}

    def get(self, entry_id: str) -> Optional[Dict[str, Any]]:
        return self._entries.get(entry_id)

    def ids(self) -> List[str]:
        return list(self._entries)

    def __contains__(self, entry_id: object) -> bool:
        return entry_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Dict[str, Any]]:
        return iter(self._entries.values())

    def search(self, query: str, limit: int = 20) -> List[Tuple[Dict[str, Any], float]]:
        """Fuzzy-match entries against their id and title.

        Args:
            query: Partial key or title words
            limit: Maximum number of results

        An entry matches when any one field scores at least SCORE_CUTOFF;
        matches are ranked by the weighted sum over all fields.

        Returns:
            (entry, score) pairs, best first; score is 0-100
        """
        query = (query or "").strip()
        if len(query) < MIN_QUERY_LENGTH or not self._entries:
            return []

        scores: Dict[str, float] = {}
        best: Dict[str, float] = {}
        for field_name, weight in SEARCH_WEIGHTS.items():
            choices = {
                entry_id: str(entry.get(field_name) or "")
                for entry_id, entry in self._entries.items()
            }
            matches = process.extract(
                query,
                choices,
                scorer=fuzz.WRatio,
                processor=utils.default_process,
                limit=None,
            )
            for _, score, entry_id in matches:
                scores[entry_id] = scores.get(entry_id, 0.0) + weight * score
                best[entry_id] = max(best.get(entry_id, 0.0), score)

        ranked = sorted(
            (item for item in scores.items() if best[item[0]] >= SCORE_CUTOFF),
            key=lambda item: item[1],
            reverse=True,
        )
        return [(self._entries[entry_id], score) for entry_id, score in ranked[:limit]]
