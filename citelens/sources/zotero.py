"""Bibliographies pulled from Zotero through the Better BibTeX HTTP server."""
import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import requests

from ..exceptions import BibliographyError
from .bibliography import parse_csl_json

logger = logging.getLogger(__name__)

DEFAULT_ZOTERO_PORT = 23119


class ZoteroClient:
    """Export CSL-JSON libraries from a running Zotero instance.

    Each successful export is written to ``cache_dir`` so that the last known
    library is still available while Zotero is closed.
    """

    def __init__(
        self,
        port: int = DEFAULT_ZOTERO_PORT,
        cache_dir: Optional[str] = None,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        self.port = port
        self.cache_dir = Path(cache_dir) if cache_dir else None
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def base_url(self) -> str:
        return f"http://127.0.0.1:{self.port}/better-bibtex"

    def is_running(self) -> bool:
        """Whether Zotero answers on its local connector port."""
        try:
            response = self.session.get(f"http://127.0.0.1:{self.port}/connector/ping", timeout=5)
        except requests.RequestException:
            return False
        return response.ok

    def _cache_path(self, group_id: int) -> Optional[Path]:
        if self.cache_dir is None:
            return None
        return self.cache_dir / f"zotero-library-{group_id}.json"

    def _read_cached(self, group_id: int) -> Optional[List[Dict[str, Any]]]:
        path = self._cache_path(group_id)
        if path is None or not path.exists():
            return None
        try:
            return parse_csl_json(path.read_text(encoding="utf-8"), str(path))
        except OSError as e:
            raise BibliographyError(f"Failed to read cached Zotero library {path}: {e}") from e

    def fetch_group(self, group_id: int) -> List[Dict[str, Any]]:
        """CSL-JSON entries of one Zotero library.

        Raises:
            BibliographyError: If Zotero is unreachable and nothing is cached
        """
        if not self.is_running():
            cached = self._read_cached(group_id)
            if cached is None:
                raise BibliographyError(
                    f"Zotero is not running on port {self.port} and library {group_id} is not cached"
                )
            logger.info(f"Zotero not running, using cached library {group_id}")
            return cached

        url = f"{self.base_url}/export/library?/{group_id}/library.json"
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise BibliographyError(f"Failed to export Zotero library {group_id}: {e}") from e

        entries = parse_csl_json(response.text, url)

        path = self._cache_path(group_id)
        if path is not None:
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_text(json.dumps(entries), encoding="utf-8")
            except OSError as e:
                logger.warning(f"Could not cache Zotero library {group_id}: {e}")

        logger.info(f"Exported {len(entries)} entries from Zotero library {group_id}")
        return entries

    def fetch_groups(self, group_ids: Iterable[int]) -> List[Dict[str, Any]]:
        """Entries of several libraries, concatenated in the given order."""
        entries: List[Dict[str, Any]] = []
        for group_id in group_ids:
            entries.extend(self.fetch_group(group_id))
        return entries
