"""Normalized edit-distance similarity shared by the scorer and the duplicate guard.

``similarity(a, b)`` is ``(max_len - levenshtein(a, b)) / max_len`` with unit
insert/delete/substitute costs, and ``similarity("", "") == 1``. Callers are
expected to normalize their inputs first with :func:`normalize_value` or
:func:`normalize_url`.
"""
from __future__ import annotations

import re
from urllib.parse import urlsplit, urlunsplit

from rapidfuzz.distance import Levenshtein

_URL_HINT = re.compile(r"^(?:[a-z][a-z0-9+.-]*://|www\.)", re.IGNORECASE)
_BARE_DOMAIN = re.compile(r"^[a-z0-9-]+(?:\.[a-z0-9-]+)*\.[a-z]{2,}(?::\d+)?(?:/\S*)?$", re.IGNORECASE)


def edit_distance(a: str, b: str) -> int:
    """Unit-cost Levenshtein distance."""

    return Levenshtein.distance(a, b)


def similarity(a: str, b: str) -> float:
    """Return the normalized similarity of ``a`` and ``b`` in ``[0, 1]``."""

    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return (longest - edit_distance(a, b)) / longest


def normalize_value(value: object, *, case_sensitive: bool = False, trim: bool = True) -> str:
    """Case-fold and trim a stored or scraped value."""

    if value is None:
        return ""
    text = str(value)
    if trim:
        text = text.strip()
    if not case_sensitive:
        text = text.lower()
    return text


def looks_like_url(value: str) -> bool:
    text = value.strip()
    return bool(_URL_HINT.match(text) or _BARE_DOMAIN.match(text))


def normalize_url(value: object, *, case_sensitive: bool = False, trim: bool = True) -> str:
    """Canonicalize a URL so that cosmetic variants compare equal.

    ``https://www.Facebook.com/acme/`` and ``facebook.com/acme`` style inputs both
    become ``https://facebook.com/acme``. Text that does not parse as a URL falls
    back to :func:`normalize_value`.
    """

    text = normalize_value(value, case_sensitive=case_sensitive, trim=trim)
    if not text:
        return ""
    candidate = text if "://" in text else f"https://{text}"
    try:
        parts = urlsplit(candidate)
        port = parts.port
    except ValueError:
        return text
    host = (parts.hostname or "").lower()
    if not host or "." not in host or " " in candidate:
        return text
    if host.startswith("www."):
        host = host[4:]
    netloc = host if port is None else f"{host}:{port}"
    path = parts.path.rstrip("/")
    return urlunsplit(((parts.scheme or "https").lower(), netloc, path, parts.query, ""))


def normalize_any(value: object, *, case_sensitive: bool = False, trim: bool = True) -> str:
    """URL-canonicalize values that look like links, plain-normalize the rest."""

    text = normalize_value(value, case_sensitive=True, trim=trim)
    if looks_like_url(text):
        return normalize_url(text, case_sensitive=case_sensitive, trim=trim)
    return normalize_value(text, case_sensitive=case_sensitive, trim=trim)
