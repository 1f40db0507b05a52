"""
Identifier classification and normalisation.

``classify`` maps a free-text identifier to the type tag that drives the
Plugin Manager's lookup dispatch. Patterns overlap (a short numeric string
is a plausible INSPIRE record id and nothing else, but an arXiv id is also
digits), so rules are evaluated in a fixed order and the first match wins:

    doi > arxiv > bibcode > inspire > unknown
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Iterable, Optional


class IdentifierType(str, Enum):
    DOI = "doi"
    ARXIV = "arxiv"
    BIBCODE = "bibcode"
    INSPIRE = "inspire"
    UNKNOWN = "unknown"


DOI_PATTERN = re.compile(r"^10\.\d{4,}/")
ARXIV_NEW_PATTERN = re.compile(r"^\d{4}\.\d{4,5}(v\d+)?$")
ARXIV_LEGACY_PATTERN = re.compile(r"^[a-z-]+(\.[A-Z]{2})?/\d{7}(v\d+)?$")
BIBCODE_PATTERN = re.compile(r"^\d{4}[A-Za-z0-9&.]{5}[A-Za-z0-9.]{9}[A-Z.]$")
INSPIRE_PATTERN = re.compile(r"^\d{1,9}$")

_DOI_PREFIX = re.compile(r"^(?:doi:\s*|https?://(?:dx\.)?doi\.org/)", re.IGNORECASE)
_ARXIV_PREFIX = re.compile(r"^arxiv:\s*", re.IGNORECASE)
_VERSION_SUFFIX = re.compile(r"v\d+$")


def classify(identifier: str) -> IdentifierType:
    """Return the identifier type tag; never raises."""
    value = (identifier or "").strip()

    if DOI_PATTERN.match(value):
        return IdentifierType.DOI
    if ARXIV_NEW_PATTERN.match(value) or ARXIV_LEGACY_PATTERN.match(value):
        return IdentifierType.ARXIV
    if BIBCODE_PATTERN.match(value):
        return IdentifierType.BIBCODE
    if INSPIRE_PATTERN.match(value):
        return IdentifierType.INSPIRE
    return IdentifierType.UNKNOWN


def normalize_doi(value: str) -> str:
    """Strip ``doi:`` and resolver URL prefixes."""
    return _DOI_PREFIX.sub("", value.strip())


def normalize_arxiv_id(value: str) -> str:
    """Strip the ``arXiv:`` prefix and any version suffix (``2401.12345v2`` -> ``2401.12345``)."""
    value = _ARXIV_PREFIX.sub("", value.strip())
    return _VERSION_SUFFIX.sub("", value)


def is_doi(value: str) -> bool:
    return bool(DOI_PATTERN.match(value)) and len(value) > value.index("/") + 1


def is_arxiv_id(value: str) -> bool:
    return bool(ARXIV_NEW_PATTERN.match(value) or ARXIV_LEGACY_PATTERN.match(value))


def is_bibcode(value: str) -> bool:
    return bool(BIBCODE_PATTERN.match(value))


def is_inspire_id(value: str) -> bool:
    return bool(INSPIRE_PATTERN.match(value))


def extract_arxiv_id(identifiers: Optional[Iterable[str]]) -> Optional[str]:
    """Pick the arXiv id out of a list of mixed identifiers (ADS ``identifier`` field)."""
    if not identifiers:
        return None

    for ident in identifiers:
        if ident.lower().startswith("arxiv:"):
            return normalize_arxiv_id(ident)
        if ARXIV_NEW_PATTERN.match(ident):
            return normalize_arxiv_id(ident)
    return None


def arxiv_pdf_url(arxiv_id: str) -> str:
    return f"https://arxiv.org/pdf/{normalize_arxiv_id(arxiv_id)}.pdf"


__all__ = [
    "IdentifierType",
    "classify",
    "normalize_doi",
    "normalize_arxiv_id",
    "is_doi",
    "is_arxiv_id",
    "is_bibcode",
    "is_inspire_id",
    "extract_arxiv_id",
    "arxiv_pdf_url",
]
