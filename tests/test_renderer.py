"""Tests for the render helpers shared by the resolver."""

import pytest

from citelens.core.models import BibliographyMetadata
from citelens.core.parser import get_citation_groups
from citelens.core.renderer import (
    build_cite_bib_map,
    partition_keys,
    render_bibliography,
    render_citations,
    renderable_groups,
)
from citelens.exceptions import RenderError


class StubEngine:
    def __init__(self, citations=None, bibliography=None, error=None):
        self.citations = citations or []
        self.bibliography = bibliography
        self.error = error
        self.calls = 0

    def render_citations(self, groups):
        self.calls += 1
        if self.error:
            raise self.error
        return self.citations

    def render_bibliography(self):
        if self.error:
            raise self.error
        return self.bibliography


class TestPartition:
    def test_keys_split(self, entry_lookup):
        resolved, unresolved = partition_keys(["smith99", "ghost", "doe2000"], entry_lookup)
        assert resolved == {"smith99", "doe2000"}
        assert unresolved == {"ghost"}

    def test_groups_with_unresolved_citation_dropped(self):
        groups = get_citation_groups("[@smith99] [@smith99; @ghost] @doe2000")
        kept = renderable_groups(groups, frozenset({"smith99", "doe2000"}))
        assert [[c.id for c in g.citations] for g in kept] == [["smith99"], ["doe2000"]]


class TestRenderCitations:
    """Engine errors surface as RenderError."""

    def test_no_groups_skips_engine(self):
        engine = StubEngine()
        assert render_citations(engine, []) == []
        assert engine.calls == 0

    def test_failure_wrapped(self):
        engine = StubEngine(error=ValueError("bad item"))
        with pytest.raises(RenderError, match="bad item") as info:
            render_citations(engine, get_citation_groups("[@smith99]"))
        assert info.value.stage == "citations"


class TestRenderBibliography:
    """Bibliography assembly."""

    def test_document_and_map(self):
        metadata = BibliographyMetadata(entry_ids=[["doe2000"], ["smith99"]])
        entries = [
            '<div class="csl-entry">Doe, J. (2000).</div>',
            '<div class="csl-entry">Smith, J. (1999).</div>',
        ]
        rendered = render_bibliography(StubEngine(bibliography=(metadata, entries)))

        assert rendered.html.startswith('<div class="csl-bib-body"><div class="csl-entry">Doe')
        assert rendered.document["class"] == ["csl-bib-body"]
        assert len(rendered.document.find_all(class_="csl-entry")) == 2
        assert rendered.cite_bib_map["smith99"] == entries[1]

    def test_style_without_bibliography(self):
        assert render_bibliography(StubEngine(bibliography=None)) is None

    def test_no_entries(self):
        assert render_bibliography(StubEngine(bibliography=(BibliographyMetadata(), []))) is None

    def test_failure_wrapped(self):
        with pytest.raises(RenderError) as info:
            render_bibliography(StubEngine(error=KeyError("x")))
        assert info.value.stage == "bibliography"


class TestCiteBibMap:
    def test_shared_entry(self):
        mapping = build_cite_bib_map([["a", "b"]], ["<div>ab</div>"])
        assert mapping == {"a": "<div>ab</div>", "b": "<div>ab</div>"}

    def test_length_mismatch_truncates(self, caplog):
        mapping = build_cite_bib_map([["a"], ["b"]], ["<div>a</div>"])
        assert mapping == {"a": "<div>a</div>"}
        assert "id lists" in caplog.text
