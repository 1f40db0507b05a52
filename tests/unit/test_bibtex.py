"""Tests for splitting combined BibTeX exports."""

from __future__ import annotations

from bibsources.bibtex import split_bibtex

COMBINED = """@ARTICLE{2019ApJ...875L...1E,
       author = {{Event Horizon Telescope Collaboration}},
        title = "{First M87 Event Horizon Telescope Results. I.}",
         year = 2019,
}

@article{Maldacena:1997re,
    author = "Maldacena, Juan Martin",
    title = "{The Large N limit of superconformal field theories and supergravity}",
    eprint = "hep-th/9711200",
    year = "1998"
}
"""


def test_entries_keyed_by_citation_key():
    entries = split_bibtex(COMBINED)
    assert list(entries) == ["2019ApJ...875L...1E", "Maldacena:1997re"]
    assert entries["2019ApJ...875L...1E"].startswith("@ARTICLE{2019ApJ...875L...1E,")
    assert entries["2019ApJ...875L...1E"].endswith("}")
    assert "hep-th/9711200" in entries["Maldacena:1997re"]
    assert "Maldacena" not in entries["2019ApJ...875L...1E"]


def test_empty_input():
    assert split_bibtex("") == {}
    assert split_bibtex("no entries here") == {}


def test_single_entry_without_trailing_newline():
    entries = split_bibtex("@misc{key1, title={A}}")
    assert entries == {"key1": "@misc{key1, title={A}}"}


def test_entries_on_one_line_are_split():
    entries = split_bibtex("@article{a, title={A}}@article{b, title={B}} @misc{c, note={mail x@y.org}}")
    assert entries == {
        "a": "@article{a, title={A}}",
        "b": "@article{b, title={B}}",
        "c": "@misc{c, note={mail x@y.org}}",
    }
