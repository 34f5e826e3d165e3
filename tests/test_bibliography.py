"""Tests for bibliography loading, Zotero export and the search index."""

import json
import subprocess

import pytest

from citelens.exceptions import BibliographyError
from citelens.sources import bibliography as bibliography_module
from citelens.sources.bibliography import (
    bibliography_fingerprint,
    load_bibliography,
    parse_csl_json,
    parse_csl_yaml,
)
from citelens.sources.index import BibliographyIndex
from citelens.sources.zotero import ZoteroClient

from conftest import ENTRIES, FakeSession


class TestCslJson:
    """Reading CSL-JSON."""

    def test_load_file(self, tmp_path):
        path = tmp_path / "refs.json"
        path.write_text(json.dumps(ENTRIES), encoding="utf-8")
        entries = load_bibliography(str(path))
        assert [e["id"] for e in entries] == ["smith99", "doe2000", "lee2010"]

    def test_entries_without_id_skipped(self):
        content = json.dumps([{"id": 42, "title": "Numbered"}, {"title": "No id"}, "junk"])
        entries = parse_csl_json(content)
        assert entries == [{"id": "42", "title": "Numbered"}]

    def test_items_wrapper(self):
        assert parse_csl_json(json.dumps({"items": ENTRIES[:1]}))[0]["id"] == "smith99"

    def test_invalid_json(self):
        with pytest.raises(BibliographyError):
            parse_csl_json("{not json")

    def test_not_a_list(self):
        with pytest.raises(BibliographyError):
            parse_csl_json(json.dumps({"id": "single"}))

    def test_missing_file(self, tmp_path):
        with pytest.raises(BibliographyError, match="not found"):
            load_bibliography(str(tmp_path / "missing.json"))


class TestCslYaml:
    """Reading pandoc YAML references."""

    def test_references_list(self, tmp_path):
        path = tmp_path / "refs.yaml"
        path.write_text(
            "references:\n"
            "  - id: smith99\n"
            "    title: On Things\n"
            "  - id: doe2000\n"
            "    title: Deep Results\n",
            encoding="utf-8",
        )
        assert [e["id"] for e in load_bibliography(str(path))] == ["smith99", "doe2000"]

    def test_invalid_yaml(self):
        with pytest.raises(BibliographyError):
            parse_csl_yaml("references: [unclosed")

    def test_empty_document(self):
        assert parse_csl_yaml("") == []


class TestPandocConversion:
    """Other formats go through pandoc."""

    @pytest.fixture
    def bib_file(self, tmp_path):
        path = tmp_path / "refs.bib"
        path.write_text("@book{smith99, title={On Things}}", encoding="utf-8")
        return path

    def test_converted_output_parsed(self, bib_file, monkeypatch):
        calls = []

        def fake_run(cmd, **kwargs):
            calls.append(cmd)
            return subprocess.CompletedProcess(cmd, 0, stdout=json.dumps(ENTRIES[:1]), stderr="")

        monkeypatch.setattr(bibliography_module.subprocess, "run", fake_run)
        entries = load_bibliography(str(bib_file), pandoc_path="/opt/pandoc")

        assert entries[0]["id"] == "smith99"
        assert calls[0] == ["/opt/pandoc", "-f", "biblatex", str(bib_file), "-t", "csljson"]

    def test_pandoc_missing(self, bib_file, monkeypatch):
        def fake_run(cmd, **kwargs):
            raise FileNotFoundError(cmd[0])

        monkeypatch.setattr(bibliography_module.subprocess, "run", fake_run)
        with pytest.raises(BibliographyError, match="pandoc not found"):
            load_bibliography(str(bib_file))

    def test_pandoc_failure(self, bib_file, monkeypatch):
        def fake_run(cmd, **kwargs):
            raise subprocess.CalledProcessError(64, cmd, stderr="parse error")

        monkeypatch.setattr(bibliography_module.subprocess, "run", fake_run)
        with pytest.raises(BibliographyError, match="parse error"):
            load_bibliography(str(bib_file))

    def test_pandoc_timeout(self, bib_file, monkeypatch):
        def fake_run(cmd, **kwargs):
            raise subprocess.TimeoutExpired(cmd, kwargs.get("timeout"))

        monkeypatch.setattr(bibliography_module.subprocess, "run", fake_run)
        with pytest.raises(BibliographyError, match="timed out"):
            load_bibliography(str(bib_file))


class TestFingerprint:
    def test_changes_with_content(self, tmp_path):
        path = tmp_path / "refs.json"
        path.write_text("[]", encoding="utf-8")
        before = bibliography_fingerprint(str(path))
        path.write_text(json.dumps(ENTRIES), encoding="utf-8")
        assert bibliography_fingerprint(str(path)) != before

    def test_missing_file(self, tmp_path):
        assert bibliography_fingerprint(str(tmp_path / "none.json")) is None


class TestZoteroClient:
    """Better BibTeX exports."""

    PING = "http://127.0.0.1:23119/connector/ping"
    EXPORT = "http://127.0.0.1:23119/better-bibtex/export/library?/1/library.json"

    def test_export_written_to_cache(self, tmp_path):
        session = FakeSession({self.PING: "Zotero is running", self.EXPORT: json.dumps(ENTRIES)})
        client = ZoteroClient(cache_dir=str(tmp_path), session=session)

        entries = client.fetch_group(1)

        assert len(entries) == 3
        assert json.loads((tmp_path / "zotero-library-1.json").read_text(encoding="utf-8"))[0]["id"] == "smith99"

    def test_cached_export_used_when_offline(self, tmp_path):
        (tmp_path / "zotero-library-1.json").write_text(json.dumps(ENTRIES[:1]), encoding="utf-8")
        client = ZoteroClient(cache_dir=str(tmp_path), session=FakeSession())
        assert [e["id"] for e in client.fetch_group(1)] == ["smith99"]

    def test_offline_without_cache(self, tmp_path):
        client = ZoteroClient(cache_dir=str(tmp_path), session=FakeSession())
        with pytest.raises(BibliographyError, match="not running"):
            client.fetch_group(1)

    def test_groups_concatenated(self, tmp_path):
        export2 = self.EXPORT.replace("/1/", "/2/")
        session = FakeSession({
            self.PING: "Zotero is running",
            self.EXPORT: json.dumps(ENTRIES[:1]),
            export2: json.dumps(ENTRIES[1:]),
        })
        client = ZoteroClient(session=session)
        assert [e["id"] for e in client.fetch_groups([1, 2])] == ["smith99", "doe2000", "lee2010"]


class TestBibliographyIndex:
    """Lookup and fuzzy search."""

    @pytest.fixture
    def index(self, entries):
        return BibliographyIndex(entries)

    def test_lookup(self, index):
        assert "smith99" in index
        assert index.get("doe2000")["title"] == "Deep Results"
        assert index.get("missing") is None
        assert len(index) == 3
        assert index.ids() == ["smith99", "doe2000", "lee2010"]

    def test_search_by_key(self, index):
        results = index.search("doe20")
        assert results[0][0]["id"] == "doe2000"

    def test_search_by_title(self, index):
        results = index.search("Many Hands")
        assert results[0][0]["id"] == "lee2010"

    def test_short_query(self, index):
        assert index.search("d") == []
        assert index.search("") == []

    def test_limit(self, index):
        assert len(index.search("20", limit=1)) <= 1

    def test_set_entries_replaces(self, index):
        index.set_entries([{"id": "new"}])
        assert index.ids() == ["new"]
        index.clear()
        assert len(index) == 0
