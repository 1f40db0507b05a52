"""
Translation of a UnifiedQuery into a source's native query syntax.

The compositional policy is shared by every source:

1. ``raw`` wins outright and is returned verbatim.
2. Exact-match identifiers short-circuit, in the order bibcode > doi > arxiv_id.
3. Field clauses (title, author, abstract, full_text) as quoted phrases.
4. A year clause (single year or inclusive range).
5. A parenthesised, OR-combined keyword clause.

Clauses are joined with the source's implicit AND. Subclasses only provide
the lexical tables (field prefixes, templates, operators, sort names).
"""

from __future__ import annotations

from typing import Dict, List, NamedTuple, Optional, Tuple

from .identifiers import normalize_arxiv_id, normalize_doi
from .models import SortKey, UnifiedQuery, YearSpec

EXACT_MATCH_PRIORITY: Tuple[str, ...] = ("bibcode", "doi", "arxiv_id")
FIELD_ORDER: Tuple[str, ...] = ("title", "author", "abstract", "full_text")


class NativeSort(NamedTuple):
    field: str
    direction: str

    def __str__(self) -> str:
        return f"{self.field} {self.direction}".strip()


def quote(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


class QueryTranslator:
    """Base translator; pure and deterministic."""

    #: source language tag, mirrors ``SearchCapabilities.query_language``
    language = "generic"
    joiner = " "
    or_operator = "OR"

    field_prefixes: Dict[str, str] = {
        "title": "title:",
        "author": "author:",
        "abstract": "abstract:",
        "full_text": "",
    }
    exact_templates: Dict[str, str] = {
        "bibcode": "bibcode:{quoted}",
        "doi": "doi:{quoted}",
        "arxiv_id": "arxiv:{value}",
    }
    year_template = "year:{year}"
    year_range_template = "year:[{start} TO {end}]"
    keyword_prefix = "keyword:"

    sort_fields: Dict[str, str] = {
        SortKey.DATE.value: "date",
        SortKey.CITATIONS.value: "citations",
        SortKey.RELEVANCE.value: "relevance",
    }
    directions: Dict[str, str] = {"asc": "asc", "desc": "desc"}

    def translate(self, query: UnifiedQuery) -> str:
        if query.raw:
            return query.raw

        for name in EXACT_MATCH_PRIORITY:
            value = getattr(query, name)
            if value:
                return self.exact_clause(name, value)

        clauses: List[str] = []
        for name in FIELD_ORDER:
            value = getattr(query, name)
            if value:
                clauses.append(self.field_clause(name, value))

        if query.year is not None:
            clauses.append(self.year_clause(query.year))

        if query.keywords:
            joined = f" {self.or_operator} ".join(self.keyword_clause(kw) for kw in query.keywords)
            clauses.append(f"({joined})")

        return self.joiner.join(clauses)

    def exact_clause(self, name: str, value: str) -> str:
        if name == "arxiv_id":
            value = normalize_arxiv_id(value)
        elif name == "doi":
            value = normalize_doi(value)
        return self.exact_templates[name].format(value=value, quoted=quote(value))

    def field_clause(self, name: str, value: str) -> str:
        return f"{self.field_prefixes[name]}{quote(value)}"

    def year_clause(self, year: YearSpec) -> str:
        if isinstance(year, tuple):
            start, end = year
            return self.year_range_template.format(start=start, end=end)
        return self.year_template.format(year=year)

    def keyword_clause(self, keyword: str) -> str:
        return f"{self.keyword_prefix}{quote(keyword)}"

    def translate_sort(self, sort: Optional[str], direction: Optional[str] = "desc") -> NativeSort:
        field = self.sort_fields.get(sort or "", self.sort_fields[SortKey.DATE.value])
        return NativeSort(field, self.directions.get(direction or "desc", self.directions["desc"]))


__all__ = ["QueryTranslator", "NativeSort", "EXACT_MATCH_PRIORITY", "quote"]
