"""Shared fixtures: CSL documents, bibliography entries and offline fakes."""

import json

import pytest
import requests

from citelens.config import Config
from citelens.core.resolver import CitationResolver
from citelens.engine.base import EngineSystem
from citelens.engine.builder import build_engine
from citelens.sources.documents import LocaleCache, StyleCache
from citelens.sources.zotero import ZoteroClient


AUTHOR_DATE_STYLE = """<?xml version="1.0" encoding="utf-8"?>
<style xmlns="http://purl.org/net/xbiblio/csl" class="in-text" version="1.0" default-locale="en-US">
  <info>
    <title>Test Author-Date</title>
    <id>http://www.zotero.org/styles/test-author-date</id>
    <category citation-format="author-date"/>
  </info>
  <macro name="author-short">
    <names variable="author">
      <name form="short" and="text" delimiter=", " et-al-min="3" et-al-use-first="1"/>
    </names>
  </macro>
  <macro name="year">
    <date variable="issued">
      <date-part name="year"/>
    </date>
  </macro>
  <citation>
    <layout prefix="(" suffix=")" delimiter="; ">
      <group delimiter=", ">
        <text macro="author-short"/>
        <text macro="year"/>
        <group delimiter=" ">
          <label variable="locator" form="short"/>
          <text variable="locator"/>
        </group>
      </group>
    </layout>
  </citation>
  <bibliography>
    <sort>
      <key variable="title"/>
    </sort>
    <layout>
      <group delimiter=". " suffix=".">
        <text macro="author-short"/>
        <text macro="year"/>
        <text variable="title" font-style="italic"/>
        <text variable="DOI" prefix="https://doi.org/"/>
      </group>
    </layout>
  </bibliography>
</style>
"""

# Citations show the title only, so output must come from the layout
TITLE_STYLE = """<?xml version="1.0" encoding="utf-8"?>
<style xmlns="http://purl.org/net/xbiblio/csl" class="in-text" version="1.0">
  <info>
    <title>Test Titles</title>
    <category citation-format="label"/>
  </info>
  <citation>
    <layout prefix="[" suffix="]" delimiter=" | ">
      <text variable="title"/>
    </layout>
  </citation>
  <bibliography>
    <layout>
      <text variable="title"/>
    </layout>
  </bibliography>
</style>
"""

NUMERIC_STYLE = """<?xml version="1.0" encoding="utf-8"?>
<style xmlns="http://purl.org/net/xbiblio/csl" class="in-text" version="1.0">
  <info>
    <title>Test Numeric</title>
    <category citation-format="numeric"/>
  </info>
  <citation>
    <layout prefix="[" suffix="]" delimiter=",">
      <group delimiter=", ">
        <text variable="citation-number"/>
        <group delimiter=" ">
          <label variable="locator" form="short"/>
          <text variable="locator"/>
        </group>
      </group>
    </layout>
  </citation>
  <bibliography>
    <layout>
      <group delimiter=" ">
        <text variable="citation-number" prefix="[" suffix="]"/>
        <text variable="title"/>
      </group>
    </layout>
  </bibliography>
</style>
"""

NOTE_STYLE = """<?xml version="1.0" encoding="utf-8"?>
<style xmlns="http://purl.org/net/xbiblio/csl" class="note" version="1.0">
  <info>
    <title>Test Notes</title>
    <category citation-format="note"/>
  </info>
  <citation>
    <layout suffix="." delimiter="; ">
      <group delimiter=", ">
        <text variable="title" font-style="italic"/>
        <text variable="locator"/>
      </group>
    </layout>
  </citation>
  <bibliography>
    <layout>
      <text variable="title"/>
    </layout>
  </bibliography>
</style>
"""

NO_BIBLIOGRAPHY_STYLE = """<?xml version="1.0" encoding="utf-8"?>
<style xmlns="http://purl.org/net/xbiblio/csl" class="in-text" version="1.0">
  <info>
    <title>Citations Only</title>
    <category citation-format="author-date"/>
  </info>
  <citation>
    <layout prefix="(" suffix=")" delimiter="; ">
      <text variable="title"/>
    </layout>
  </citation>
</style>
"""

EN_LOCALE = """<?xml version="1.0" encoding="utf-8"?>
<locale xmlns="http://purl.org/net/xbiblio/csl" version="1.0" xml:lang="en-US">
  <terms>
    <term name="and">and</term>
    <term name="et-al">et al.</term>
    <term name="no date" form="short">n.d.</term>
    <term name="page" form="short">
      <single>p.</single>
      <multiple>pp.</multiple>
    </term>
  </terms>
</locale>
"""

DE_LOCALE = """<?xml version="1.0" encoding="utf-8"?>
<locale xmlns="http://purl.org/net/xbiblio/csl" version="1.0" xml:lang="de-DE">
  <terms>
    <term name="and">und</term>
    <term name="et-al">u. a.</term>
    <term name="no date" form="short">o. J.</term>
    <term name="page" form="short">
      <single>S.</single>
      <multiple>S.</multiple>
    </term>
  </terms>
</locale>
"""

ENTRIES = [
    {
        "id": "smith99",
        "type": "book",
        "title": "On Things: A Study",
        "author": [{"family": "Smith", "given": "John"}],
        "issued": {"date-parts": [[1999]]},
        "publisher": "Academic Press",
    },
    {
        "id": "doe2000",
        "type": "article-journal",
        "title": "Deep Results",
        "author": [
            {"family": "Doe", "given": "Jane"},
            {"family": "Roe", "given": "Richard"},
        ],
        "container-title": "Journal of Tests",
        "volume": "4",
        "issue": "2",
        "page": "10-20",
        "issued": {"date-parts": [[2000, 3]]},
        "DOI": "10.1000/xyz",
    },
    {
        "id": "lee2010",
        "type": "chapter",
        "title": "Many Hands",
        "author": [
            {"family": "Lee", "given": "Ann"},
            {"family": "Park", "given": "Min"},
            {"family": "Kim", "given": "Soo"},
        ],
        "container-title": "Collected Work",
        "issued": {"date-parts": [[2010]]},
    },
]


class FakeResponse:
    def __init__(self, text, status_code=200):
        self.text = text
        self.status_code = status_code

    @property
    def ok(self):
        return self.status_code < 400

    def raise_for_status(self):
        if not self.ok:
            raise requests.HTTPError(f"{self.status_code} Error")


class FakeSession:
    """requests.Session stand-in: canned responses by URL, connection errors otherwise."""

    def __init__(self, responses=None):
        self.responses = dict(responses or {})
        self.requests = []

    def get(self, url, params=None, timeout=None):
        self.requests.append(url)
        if url not in self.responses:
            raise requests.ConnectionError(f"offline: {url}")
        response = self.responses[url]
        if isinstance(response, FakeResponse):
            return response
        return FakeResponse(response)


class EngineSpy:
    """Wraps an engine and counts render calls."""

    def __init__(self, engine):
        self.engine = engine
        self.citation_calls = 0
        self.bibliography_calls = 0

    def render_citations(self, groups):
        self.citation_calls += 1
        return self.engine.render_citations(groups)

    def render_bibliography(self):
        self.bibliography_calls += 1
        return self.engine.render_bibliography()


class CountingFactory:
    """Engine factory that records every engine it builds."""

    def __init__(self):
        self.engines = []
        self.calls = []

    def __call__(self, lang, locale_cache, style, style_cache, bibliography):
        self.calls.append((lang, style))
        spy = EngineSpy(build_engine(lang, locale_cache, style, style_cache, bibliography))
        self.engines.append(spy)
        return spy

    @property
    def builds(self):
        return len(self.engines)

    @property
    def citation_calls(self):
        return sum(e.citation_calls for e in self.engines)

    @property
    def bibliography_calls(self):
        return sum(e.bibliography_calls for e in self.engines)


@pytest.fixture
def entries():
    return [dict(entry) for entry in ENTRIES]


@pytest.fixture
def entry_lookup(entries):
    return {entry["id"]: entry for entry in entries}


@pytest.fixture
def engine_system(entry_lookup):
    return EngineSystem(retrieve_locale=lambda _: None, retrieve_item=entry_lookup.get)


@pytest.fixture
def fake_session():
    return FakeSession()


@pytest.fixture
def cache_dir(tmp_path):
    """Disk cache pre-filled with the locales and a style id, so nothing is fetched."""
    path = tmp_path / "cache"
    path.mkdir()
    (path / "locales-en-US.xml").write_text(EN_LOCALE, encoding="utf-8")
    (path / "locales-de-DE.xml").write_text(DE_LOCALE, encoding="utf-8")
    (path / "test-numeric.csl").write_text(NUMERIC_STYLE, encoding="utf-8")
    return path


@pytest.fixture
def workspace(tmp_path):
    """Directory holding the global bibliography and style files."""
    path = tmp_path / "vault"
    path.mkdir()
    (path / "refs.json").write_text(json.dumps(ENTRIES), encoding="utf-8")
    (path / "author-date.csl").write_text(AUTHOR_DATE_STYLE, encoding="utf-8")
    (path / "notes.csl").write_text(NOTE_STYLE, encoding="utf-8")
    (path / "citations-only.csl").write_text(NO_BIBLIOGRAPHY_STYLE, encoding="utf-8")
    return path


@pytest.fixture
def engine_factory():
    return CountingFactory()


@pytest.fixture
def make_resolver(workspace, cache_dir, fake_session, engine_factory):
    """Build an initialized resolver that never touches the network."""

    def _make(init=True, **overrides):
        settings = dict(
            bibliography_path=str(workspace / "refs.json"),
            csl_style_path=str(workspace / "author-date.csl"),
            cache_dir=str(cache_dir),
            base_dir=str(workspace),
            ready_timeout=0.05,
        )
        settings.update(overrides)
        config = Config(**settings)
        resolver = CitationResolver(
            config,
            style_cache=StyleCache(str(cache_dir), session=fake_session),
            locale_cache=LocaleCache(str(cache_dir), session=fake_session),
            zotero=ZoteroClient(cache_dir=str(cache_dir), session=fake_session),
            engine_factory=engine_factory,
        )
        if init:
            resolver.init()
        return resolver

    return _make


ENV_VARS = [
    "CITELENS_BIBLIOGRAPHY",
    "CITELENS_PULL_FROM_ZOTERO",
    "CITELENS_ZOTERO_PORT",
    "CITELENS_ZOTERO_GROUPS",
    "CITELENS_CSL_STYLE_URL",
    "CITELENS_CSL_STYLE_PATH",
    "CITELENS_CSL_LANG",
    "CITELENS_PANDOC_PATH",
    "CITELENS_CACHE_DIR",
    "CITELENS_BASE_DIR",
    "CITELENS_FILE_CACHE_SIZE",
    "CITELENS_REQUEST_TIMEOUT",
    "CITELENS_READY_TIMEOUT",
]


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """No CITELENS_* variables and no stray .env file.

    Each variable is set then deleted so teardown also removes values a
    loaded .env file put into the environment.
    """
    for name in ENV_VARS:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)
    return monkeypatch
