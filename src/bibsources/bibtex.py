"""Splitting of combined BibTeX exports into per-entry strings."""

from __future__ import annotations

import re
from typing import Dict

# An entry runs from "@type{key," up to the next "@type{" or end of text.
_ENTRY_RE = re.compile(r"@\w+\s*\{\s*([^,\s]+)\s*,.*?(?=\s*@\w+\s*\{|\s*\Z)", re.DOTALL)


def split_bibtex(text: str) -> Dict[str, str]:
    """Map citation key -> entry text for every entry in ``text``.

    Later entries with a repeated key replace earlier ones.
    """
    entries: Dict[str, str] = {}
    if not text:
        return entries
    for match in _ENTRY_RE.finditer(text):
        entries[match.group(1).strip()] = match.group(0).strip()
    return entries


__all__ = ["split_bibtex"]
