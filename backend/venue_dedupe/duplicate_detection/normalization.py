"""Deterministic normalization helpers for venue names and addresses."""

from __future__ import annotations

import re

_PUNCTUATION_RE = re.compile(r"[^\w\s]")
_MULTISPACE_RE = re.compile(r"\s+")
_NAME_STOPWORDS_RE = re.compile(
    r"\b(the|and|pub|restaurant|bar|hotel|inn|tavern|club|cafe|coffee|shop)\b"
)
_ADDRESS_ABBREVIATIONS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"\bstreet\b"), "st"),
    (re.compile(r"\broad\b"), "rd"),
    (re.compile(r"\bavenue\b"), "ave"),
    (re.compile(r"\blane\b"), "ln"),
    (re.compile(r"\bplace\b"), "pl"),
)


def normalize_name(name: str | None) -> str:
    """Normalize a venue name for matching.

    >>> normalize_name("The Crown Pub & Restaurant")
    'crown'
    """

    if not name:
        return ""
    value = _PUNCTUATION_RE.sub(" ", name.lower())
    value = _NAME_STOPWORDS_RE.sub(" ", value)
    return _MULTISPACE_RE.sub(" ", value).strip()


def normalize_address(address: str | None) -> str:
    """Normalize a street address, standardizing common abbreviations.

    >>> normalize_address("123 High Street, London")
    '123 high st london'
    """

    if not address:
        return ""
    value = address.lower()
    for pattern, replacement in _ADDRESS_ABBREVIATIONS:
        value = pattern.sub(replacement, value)
    value = _PUNCTUATION_RE.sub(" ", value)
    return _MULTISPACE_RE.sub(" ", value).strip()
