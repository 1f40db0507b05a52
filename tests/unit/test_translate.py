"""Tests for query translation into each source's native syntax."""

from __future__ import annotations

import pytest

from bibsources.models import UnifiedQuery
from bibsources.plugins.ads import AdsQueryTranslator
from bibsources.plugins.arxiv import ArxivQueryTranslator
from bibsources.plugins.inspire import InspireQueryTranslator
from bibsources.translate import NativeSort, QueryTranslator, quote

TRANSLATORS = [QueryTranslator(), AdsQueryTranslator(), ArxivQueryTranslator(), InspireQueryTranslator()]


@pytest.mark.parametrize("translator", TRANSLATORS, ids=lambda t: t.language)
def test_raw_wins_over_everything(translator):
    query = UnifiedQuery(raw="anything goes", title="ignored", bibcode="2024ApJ...123..456A", year=2020)
    assert translator.translate(query) == "anything goes"


@pytest.mark.parametrize("translator", TRANSLATORS, ids=lambda t: t.language)
def test_exact_bibcode_short_circuits(translator):
    query = UnifiedQuery(bibcode="2024ApJ...123..456A", title="ignored", keywords=["galaxies"], year=2020)
    native = translator.translate(query)
    assert native == translator.exact_clause("bibcode", "2024ApJ...123..456A")
    assert "2024ApJ...123..456A" in native
    assert "ignored" not in native
    assert "galaxies" not in native
    assert "2020" not in native


@pytest.mark.parametrize("translator", TRANSLATORS, ids=lambda t: t.language)
def test_exact_match_priority_bibcode_then_doi_then_arxiv(translator):
    both = UnifiedQuery(bibcode="2024ApJ...123..456A", doi="10.1086/305772", arxiv_id="2401.12345")
    assert translator.translate(both) == translator.exact_clause("bibcode", "2024ApJ...123..456A")

    doi_and_arxiv = UnifiedQuery(doi="10.1086/305772", arxiv_id="2401.12345")
    assert translator.translate(doi_and_arxiv) == translator.exact_clause("doi", "10.1086/305772")


def test_quote_escapes():
    assert quote('say "hi"') == '"say \\"hi\\""'


class TestAds:
    translator = AdsQueryTranslator()

    def test_field_year_and_keyword_composition(self):
        query = UnifiedQuery(
            title="dark matter",
            author="Smith, J",
            year=(2020, 2022),
            keywords=["galaxies", "halos"],
        )
        assert self.translator.translate(query) == (
            'title:"dark matter" author:"Smith, J" year:[2020 TO 2022] '
            '(keyword:"galaxies" OR keyword:"halos")'
        )

    def test_abstract_and_full_text(self):
        query = UnifiedQuery(abstract="lensing", full_text="weak shear", year=2019)
        assert self.translator.translate(query) == 'abs:"lensing" full:"weak shear" year:2019'

    def test_exact_clauses(self):
        assert self.translator.translate(UnifiedQuery(bibcode="2024ApJ...123..456A")) == 'bibcode:"2024ApJ...123..456A"'
        assert self.translator.translate(UnifiedQuery(doi="10.1086/305772")) == 'doi:"10.1086/305772"'
        assert self.translator.translate(UnifiedQuery(arxiv_id="arXiv:2401.12345v2")) == "arxiv:2401.12345"

    def test_sort(self):
        assert str(self.translator.translate_sort("citations", "asc")) == "citation_count asc"
        assert str(self.translator.translate_sort("relevance", "desc")) == "score desc"
        assert self.translator.translate_sort("popularity", "desc") == NativeSort("date", "desc")


class TestArxiv:
    translator = ArxivQueryTranslator()

    def test_clauses_joined_with_and(self):
        query = UnifiedQuery(title="attention", author="Vaswani", year=2017)
        assert self.translator.translate(query) == (
            'ti:"attention" AND au:"Vaswani" AND submittedDate:[201701010000 TO 201712312359]'
        )

    def test_year_range_and_keywords(self):
        query = UnifiedQuery(year=(2019, 2021), keywords=["cs.LG", "stat.ML"])
        assert self.translator.translate(query) == (
            'submittedDate:[201901010000 TO 202112312359] AND (all:"cs.LG" OR all:"stat.ML")'
        )

    def test_arxiv_id_lookup_expression(self):
        assert self.translator.translate(UnifiedQuery(arxiv_id="arXiv:1706.03762v5")) == "id:1706.03762"

    def test_sort_names(self):
        assert self.translator.translate_sort("relevance", "asc") == NativeSort("relevance", "ascending")
        # arXiv cannot sort by citations; falls back to date
        assert self.translator.translate_sort("citations", "desc") == NativeSort("submittedDate", "descending")


class TestInspire:
    translator = InspireQueryTranslator()

    def test_spires_syntax(self):
        query = UnifiedQuery(author="Maldacena", year=(1997, 1998), keywords=["AdS/CFT"])
        assert self.translator.translate(query) == 'a "Maldacena" and date 1997->1998 and (k "AdS/CFT")'

    def test_title_and_single_year(self):
        assert self.translator.translate(UnifiedQuery(title="large N", year=1998)) == 't "large N" and date 1998'

    def test_exact_clauses(self):
        assert self.translator.translate(UnifiedQuery(doi="10.1023/A:1026654312961")) == "doi 10.1023/A:1026654312961"
        assert self.translator.translate(UnifiedQuery(arxiv_id="hep-th/9711200")) == "eprint hep-th/9711200"

    @pytest.mark.parametrize(
        ("sort", "direction", "expected"),
        [
            ("date", "desc", "mostrecent"),
            ("date", "asc", "leastrecent"),
            ("citations", "desc", "mostcited"),
            ("relevance", "desc", "bestmatch"),
            ("unknown", "desc", "mostrecent"),
        ],
    )
    def test_sort_names(self, sort, direction, expected):
        assert str(self.translator.translate_sort(sort, direction)) == expected
