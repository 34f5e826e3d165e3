"""Style and locale document caches.

Each cache maps an identifier (style id/URL/path, or locale id) to the raw
document text. Entries are filled lazily, at most once per identifier, and
never evicted; ``clear()`` is only used on full reinitialization. A failed
load is not cached so a later call retries.
"""
import logging
import re
import threading
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

import requests

from ..exceptions import LocaleError, StyleError

logger = logging.getLogger(__name__)

CSL_STYLES_URL = "https://raw.githubusercontent.com/citation-style-language/styles/master"
CSL_LOCALES_URL = "https://raw.githubusercontent.com/citation-style-language/locales/master"

_URL_RE = re.compile(r"^https?://", re.IGNORECASE)


def is_url(value: str) -> bool:
    return bool(_URL_RE.match(value))


def _cache_file_name(identifier: str, suffix: str) -> str:
    """Filesystem-safe name for a cached document."""
    name = re.sub(r"[^A-Za-z0-9_.\-]+", "_", identifier).strip("_")
    if not name.endswith(suffix):
        name += suffix
    return name


class DocumentCache:
    """Load-once cache of raw documents keyed by identifier.

    Concurrent loads of the same identifier are serialized: the second
    caller waits for the first and then finds the document cached.
    """

    error_class = StyleError
    suffix = ".xml"

    def __init__(
        self,
        cache_dir: Optional[str] = None,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        """Initialize the cache.

        Args:
            cache_dir: Directory where fetched documents are also stored on disk
            timeout: Timeout in seconds for network requests
            session: requests session to fetch with (a new one by default)
        """
        self.cache_dir = Path(cache_dir) if cache_dir else None
        self.timeout = timeout
        self.session = session or requests.Session()
        self._documents: Dict[str, str] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def get(self, identifier: str) -> Optional[str]:
        """Cached document for an identifier, or None."""
        return self._documents.get(identifier)

    def has(self, identifier: str) -> bool:
        return identifier in self._documents

    def __contains__(self, identifier: str) -> bool:
        return self.has(identifier)

    def __len__(self) -> int:
        return len(self._documents)

    def clear(self) -> None:
        self._documents.clear()

    def _lock_for(self, key: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(key, threading.Lock())

    def _release_lock(self, key: str, lock: threading.Lock) -> None:
        # The last waiter out removes the lock
        with self._locks_guard:
            if self._locks.get(key) is lock and not lock.locked():
                del self._locks[key]

    def load(self, identifier: str, explicit_path: Optional[str] = None) -> str:
        """Return the document, fetching or reading it on first use.

        The document is stored under ``explicit_path`` when one is given,
        since a user-supplied path may alias a canonical id.

        Args:
            identifier: Document id or URL
            explicit_path: Local file to read instead of fetching

        Returns:
            Raw document text

        Raises:
            StyleError or LocaleError: If the document cannot be loaded
        """
        key = explicit_path or identifier
        if not key:
            raise self.error_class("No document identifier given")

        cached = self._documents.get(key)
        if cached is not None:
            return cached

        lock = self._lock_for(key)
        try:
            with lock:
                cached = self._documents.get(key)
                if cached is not None:
                    return cached

                if explicit_path:
                    document = self._read_file(explicit_path)
                else:
                    document = self._fetch(identifier)

                self._documents[key] = document
                logger.debug(f"Cached {self.__class__.__name__} entry: {key}")
                return document
        finally:
            self._release_lock(key, lock)

    def _read_file(self, path: str) -> str:
        try:
            return Path(path).expanduser().read_text(encoding="utf-8")
        except OSError as e:
            raise self.error_class(f"Failed to read {path}: {e}") from e

    def _fetch(self, identifier: str) -> str:
        """Fetch a document by id, going through the disk cache."""
        url = self.url_for(identifier)
        disk_path = self._disk_path(url)

        if disk_path is not None and disk_path.exists():
            try:
                return disk_path.read_text(encoding="utf-8")
            except OSError as e:
                logger.warning(f"Ignoring unreadable cache file {disk_path}: {e}")

        logger.info(f"Fetching {url}")
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise self.error_class(f"Failed to fetch {url}: {e}") from e

        document = response.text
        if disk_path is not None:
            try:
                disk_path.parent.mkdir(parents=True, exist_ok=True)
                disk_path.write_text(document, encoding="utf-8")
            except OSError as e:
                logger.warning(f"Could not write cache file {disk_path}: {e}")

        return document

    def _disk_path(self, url: str) -> Optional[Path]:
        if self.cache_dir is None:
            return None
        return self.cache_dir / _cache_file_name(url.rsplit("/", 1)[-1], self.suffix)

    def url_for(self, identifier: str) -> str:
        raise NotImplementedError


class StyleCache(DocumentCache):
    """Citation style documents, keyed by style id, URL, or explicit path."""

    error_class = StyleError
    suffix = ".csl"

    def url_for(self, identifier: str) -> str:
        if is_url(identifier):
            return identifier
        style_id = identifier[:-4] if identifier.endswith(".csl") else identifier
        return f"{CSL_STYLES_URL}/{style_id}.csl"


class LocaleCache(DocumentCache):
    """CSL locale documents, keyed by locale id such as "en-US"."""

    error_class = LocaleError
    suffix = ".xml"

    def url_for(self, identifier: str) -> str:
        return f"{CSL_LOCALES_URL}/locales-{identifier}.xml"

    def load_all(self, locales: Iterable[str]) -> List[str]:
        """Load every locale that is not cached yet; empty ids are skipped."""
        loaded = []
        for locale in locales:
            if not locale:
                continue
            loaded.append(self.load(locale))
        return loaded


def style_reference(style: str) -> Tuple[str, Optional[str]]:
    """Split a style setting into (identifier, explicit_path).

    URLs and bare style ids ("chicago-note-bibliography") are fetched;
    anything that names a file is read from disk.
    """
    if is_url(style):
        return style, None
    looks_like_path = (
        "/" in style
        or "\\" in style
        or style.endswith(".csl")
        or Path(style).expanduser().exists()
    )
    if looks_like_path:
        return style, style
    return style, None
