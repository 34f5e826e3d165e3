"""Per-document citation resolution with scope and render caching."""
import dataclasses
import logging
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Hashable, List, Optional, Tuple

from ..config import Config
from ..engine.builder import EngineFactory, build_engine
from ..exceptions import CitelensError, RenderError
from ..sources.bibliography import bibliography_fingerprint, load_bibliography
from ..sources.documents import LocaleCache, StyleCache, style_reference
from ..sources.index import BibliographyIndex
from ..sources.locales import extract_raw_locales
from ..sources.zotero import ZoteroClient
from .frontmatter import read_scoped_settings
from .lru import LRUCache
from .models import RenderedCitation, Resolution, ResolutionResult, Scope, ScopedSettings
from .parser import get_citation_groups
from .renderer import (
    parse_html,
    partition_keys,
    render_bibliography,
    render_citations,
    renderable_groups,
)

logger = logging.getLogger(__name__)

Observer = Callable[[Hashable, ResolutionResult], None]


def _same_rendering(cached: Tuple[RenderedCitation, ...], fresh: List[RenderedCitation]) -> bool:
    if len(cached) != len(fresh):
        return False
    return all(a.rendering() == b.rendering() for a, b in zip(cached, fresh))


class CitationResolver:
    """Resolve the citations of documents against a global or per-document scope.

    One resolver is shared by every document of a session. It owns the style
    and locale caches, the global bibliography and engine, and an LRU cache of
    the last resolution result per document.

    Example:
        >>> resolver = CitationResolver(Config(bibliography_path="refs.json"))
        >>> resolver.init()
        >>> result = resolver.resolve("notes/chapter1.md", text)
        >>> sorted(result.unresolved_keys)
        ['missing2020']
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        style_cache: Optional[StyleCache] = None,
        locale_cache: Optional[LocaleCache] = None,
        zotero: Optional[ZoteroClient] = None,
        engine_factory: EngineFactory = build_engine,
        capacity: Optional[int] = None,
    ):
        """Initialize the resolver. Nothing is loaded until ``init()``.

        Args:
            config: Global settings (read from the environment by default)
            style_cache: Style document cache
            locale_cache: Locale document cache
            zotero: Zotero client used when ``pull_from_zotero`` is set
            engine_factory: Builds an engine for a scope
            capacity: Number of documents kept in the resolution cache
        """
        self.config = config or Config.from_env()
        cache_dir = self.config.cache_dir
        timeout = self.config.request_timeout
        self.style_cache = style_cache or StyleCache(cache_dir, timeout)
        self.locale_cache = locale_cache or LocaleCache(cache_dir, timeout)
        self.zotero = zotero or ZoteroClient(self.config.zotero_port, cache_dir, timeout)
        self.engine_factory = engine_factory

        self._cache: LRUCache[ResolutionResult] = LRUCache(
            capacity or self.config.file_cache_size, on_evict=self._drop_lock
        )
        self._global = Scope(bibliography=BibliographyIndex())
        self._ready = threading.Event()
        self._observers: List[Observer] = []
        self._doc_locks: Dict[Hashable, threading.Lock] = {}
        self._doc_locks_guard = threading.Lock()

    # Lifecycle

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set()

    @property
    def global_scope(self) -> Scope:
        return self._global

    def init(self) -> None:
        """Load the global bibliography, style and locales, then mark ready."""
        self._ready.clear()
        self._load_global(from_cache=False)
        self._ready.set()
        logger.info(f"Citation resolver ready ({len(self._global.bibliography)} entries)")

    def reinit(self, clear_cache: bool = False) -> None:
        """Drop every cached resolution and reload the global scope.

        Args:
            clear_cache: Also re-read the global bibliography instead of
                keeping the entries already loaded
        """
        self._ready.clear()
        self._cache.clear()
        self._drop_idle_locks()
        if clear_cache:
            self._global.bibliography.clear()
        self._load_global(from_cache=True)
        self._ready.set()
        logger.info("Citation resolver reinitialized")

    def destroy(self) -> None:
        self._ready.clear()
        self._cache.clear()
        self._drop_idle_locks()
        self.style_cache.clear()
        self.locale_cache.clear()
        self._global = Scope(bibliography=BibliographyIndex())
        self._observers.clear()

    def _load_global(self, from_cache: bool) -> None:
        index = self._global.bibliography

        if not from_cache or len(index) == 0:
            try:
                entries = self._load_global_entries()
            except CitelensError as e:
                logger.error(f"Failed to load global bibliography: {e}")
                entries = None
            if entries is not None:
                index.set_entries(entries)

        engine = None
        style = self.config.default_style
        try:
            style_text = self.style_cache.load(style, self.config.csl_style_path)
            self.locale_cache.load_all(extract_raw_locales(style_text, self.config.csl_lang))
            engine = self.engine_factory(
                self.config.csl_lang, self.locale_cache, style, self.style_cache, index
            )
        except CitelensError as e:
            logger.error(f"Failed to load global style {style}: {e}")

        self._global = Scope(bibliography=index, engine=engine)

    def _load_global_entries(self) -> Optional[List[Dict[str, Any]]]:
        if self.config.pull_from_zotero:
            if not self.config.zotero_groups:
                return None
            return self.zotero.fetch_groups(self.config.zotero_groups)
        if self.config.bibliography_path:
            return load_bibliography(
                self._resolve_path(self.config.bibliography_path), self.config.pandoc_path
            )
        return None

    # Observers

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register a callback for new resolution results.

        Returns:
            Function that removes the callback again
        """
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def _notify(self, document_id: Hashable, result: ResolutionResult) -> None:
        for observer in list(self._observers):
            try:
                observer(document_id, result)
            except Exception as e:
                logger.error(f"Resolution observer failed for {document_id!r}: {e}")

    # Scope construction

    def _resolve_path(self, path: str) -> str:
        candidate = Path(path).expanduser()
        if not candidate.is_absolute():
            candidate = Path(self.config.base_dir).expanduser() / candidate
        return str(candidate)

    def _fingerprint(self, settings: Optional[ScopedSettings]) -> Optional[Tuple[int, int]]:
        if settings is None or not settings.bibliography:
            return None
        return bibliography_fingerprint(self._resolve_path(settings.bibliography))

    def _build_scope(self, settings: Optional[ScopedSettings]) -> Scope:
        """Scope for a document's settings, falling back to the global one per field.

        Any failure yields a scope without an engine.
        """
        if settings is None:
            return self._global

        bibliography = self._global.bibliography
        try:
            if settings.style:
                identifier, explicit_path = style_reference(settings.style)
                if explicit_path:
                    explicit_path = self._resolve_path(explicit_path)
                style_text = self.style_cache.load(identifier, explicit_path)
                style = explicit_path or identifier
            else:
                style = self.config.default_style
                style_text = self.style_cache.load(style, self.config.csl_style_path)

            lang = settings.lang or self.config.csl_lang
            self.locale_cache.load_all(extract_raw_locales(style_text, lang))

            if settings.bibliography:
                entries = load_bibliography(
                    self._resolve_path(settings.bibliography), self.config.pandoc_path
                )
                bibliography = BibliographyIndex(entries)

            engine = self.engine_factory(lang, self.locale_cache, style, self.style_cache, bibliography)
        except CitelensError as e:
            logger.error(f"Failed to load citation scope {settings}: {e}")
            return Scope(bibliography=bibliography, engine=None)

        logger.debug(f"Built citation scope {settings}")
        return Scope(bibliography=bibliography, engine=engine)

    # Resolution

    def _lock_for(self, document_id: Hashable) -> threading.Lock:
        with self._doc_locks_guard:
            return self._doc_locks.setdefault(document_id, threading.Lock())

    def _drop_lock(self, document_id: Hashable) -> None:
        """Forget the lock of a document that is no longer cached, unless a resolve holds it."""
        with self._doc_locks_guard:
            lock = self._doc_locks.get(document_id)
            if lock is not None and not lock.locked():
                del self._doc_locks[document_id]

    def _drop_idle_locks(self) -> None:
        with self._doc_locks_guard:
            for document_id, lock in list(self._doc_locks.items()):
                if not lock.locked():
                    del self._doc_locks[document_id]

    def _store(self, document_id: Hashable, result: ResolutionResult) -> ResolutionResult:
        self._cache.set(document_id, result)
        self._notify(document_id, result)
        return result

    def resolve(
        self,
        document_id: Hashable,
        text: str,
        timeout: Optional[float] = None,
    ) -> Optional[ResolutionResult]:
        """Resolve and render the citations of a document.

        Failures never propagate: a scope that cannot be loaded or rendered
        yields a result with every key unresolved.

        Args:
            document_id: Stable identity of the document, used as cache key
            text: Current document text
            timeout: Seconds to wait for initialization (config default)

        Returns:
            ResolutionResult, or None while initialization is still pending
        """
        wait = self.config.ready_timeout if timeout is None else timeout
        if not self._ready.wait(wait):
            logger.debug(f"Resolution of {document_id!r} pending initialization")
            return None

        with self._lock_for(document_id):
            return self._resolve(document_id, text)

    def _resolve(self, document_id: Hashable, text: str) -> ResolutionResult:
        groups = get_citation_groups(text)
        keys = frozenset(key for group in groups for key in group.ids)
        settings = read_scoped_settings(text)
        fingerprint = self._fingerprint(settings)

        cached = self._cache.get(document_id)
        reuse = (
            cached is not None
            and cached.settings == settings
            and cached.fingerprint == fingerprint
            and cached.scope.engine is not None
        )
        if reuse:
            scope = cached.scope
            logger.debug(f"Reusing citation scope for {document_id!r}")
        else:
            scope = self._build_scope(settings)

        def result(**fields) -> ResolutionResult:
            values = dict(
                keys=keys,
                resolved_keys=frozenset(),
                unresolved_keys=keys,
                bibliography=None,
                citations=(),
                cite_bib_map={},
                settings=settings,
                scope=scope,
                fingerprint=fingerprint,
            )
            values.update(fields)
            return ResolutionResult(**values)

        if scope.engine is None:
            return self._store(document_id, result())

        resolved, unresolved = partition_keys(keys, scope.bibliography)
        partition = dict(resolved_keys=resolved, unresolved_keys=unresolved)
        groups = renderable_groups(groups, resolved)

        if reuse and cached.keys == keys and cached.groups == tuple(groups):
            logger.debug(f"Citations of {document_id!r} unchanged")
            return cached

        if not groups:
            return self._store(document_id, result(groups=(), **partition))

        # The engine is shared by every document of the scope, and its
        # bibliography lists what the last citation render cited
        try:
            with scope.lock:
                citations = render_citations(scope.engine, groups)
                unchanged = reuse and _same_rendering(cached.citations, citations)
                bibliography = None if unchanged else render_bibliography(scope.engine)
        except RenderError as e:
            logger.error(f"Failed to render citations of {document_id!r}: {e}")
            # No groups recorded, so the next resolve renders again
            return self._store(document_id, result(groups=()))

        if unchanged:
            logger.debug(f"Rendering of {document_id!r} unchanged, keeping bibliography")
            return self._store(document_id, dataclasses.replace(
                cached,
                keys=keys,
                citations=tuple(citations),
                groups=tuple(groups),
                **partition,
            ))

        if bibliography is None:
            return self._store(document_id, result(groups=tuple(groups), **partition))

        return self._store(document_id, result(
            bibliography=bibliography.document,
            bibliography_html=bibliography.html,
            citations=tuple(citations),
            cite_bib_map=bibliography.cite_bib_map,
            groups=tuple(groups),
            **partition,
        ))

    # Queries

    def get_cache(self, document_id: Hashable) -> Optional[ResolutionResult]:
        return self._cache.get(document_id)

    def forget(self, document_id: Hashable) -> bool:
        """Drop the cached result of one document."""
        removed = self._cache.delete(document_id)
        self._drop_lock(document_id)
        return removed

    def get_resolution(self, document_id: Hashable, key: str) -> Resolution:
        cached = self._cache.get(document_id)
        if cached is None:
            return Resolution()
        return Resolution(
            is_resolved=key in cached.resolved_keys,
            is_unresolved=key in cached.unresolved_keys,
        )

    def get_citations_in_range(self, document_id: Hashable, start: int, end: int) -> List[RenderedCitation]:
        """Rendered citations whose source span lies within [start, end]."""
        cached = self._cache.get(document_id)
        if cached is None:
            return []
        return [c for c in cached.citations if c.start >= start and c.end <= end]

    def get_note_for_note_index(self, document_id: Hashable, note_index: int) -> Optional[list]:
        """Parsed footnote body for a note index, as a list of nodes."""
        cached = self._cache.get(document_id)
        if cached is None:
            return None
        for citation in cached.citations:
            if citation.note_index == note_index:
                if not citation.note:
                    return None
                return list(parse_html(citation.note).contents)
        return None

    def get_bib_for_cite_key(self, document_id: Hashable, key: str):
        """Parsed bibliography entry of one cited key, or None."""
        cached = self._cache.get(document_id)
        if cached is None or key not in cached.keys:
            return None
        entry = cached.cite_bib_map.get(key)
        if not entry:
            return None
        return parse_html(entry).find()

    def search(
        self,
        query: str,
        document_id: Optional[Hashable] = None,
        limit: int = 20,
    ) -> List[Tuple[Dict[str, Any], float]]:
        """Fuzzy-search bibliography entries, in the document's scope when it is cached."""
        cached = self._cache.peek(document_id) if document_id is not None else None
        scope = cached.scope if cached is not None else self._global
        return scope.bibliography.search(query, limit=limit)
