"""Turn Set-Cookie response material into a request Cookie header."""

from __future__ import annotations

import logging
import re
from typing import Any, Sequence

logger = logging.getLogger(__name__)

# Split only at commas followed by "key=", so "Expires=Wed, 21 Oct 2015 ..." stays intact.
_COOKIE_SPLIT_RE = re.compile(r",\s*(?=[^\s;,=]+=)")


def _split_joined(header: str) -> list[str]:
    return _COOKIE_SPLIT_RE.split(header)


def parse_set_cookie(set_cookie: str | Sequence[str] | None) -> str:
    """Build a ``Cookie`` header value from Set-Cookie material.

    Args:
        set_cookie: None, a single (possibly comma-joined) header string, or a
            sequence with one Set-Cookie line per element.

    Returns:
        "k1=v1; k2=v2" in encounter order with attributes (Path, Expires,
        HttpOnly, ...) stripped, or "" when there are no cookies.
    """

    if not set_cookie:
        return ""

    if isinstance(set_cookie, str):
        entries = _split_joined(set_cookie)
    elif isinstance(set_cookie, (list, tuple)):
        entries = list(set_cookie)
    else:
        logger.warning("Unexpected Set-Cookie header type: %s", type(set_cookie).__name__)
        return ""

    pairs: list[str] = []
    for entry in entries:
        if not isinstance(entry, str):
            continue
        first = entry.split(";", 1)[0].strip()
        if "=" in first:
            pairs.append(first)

    cookie_header = "; ".join(pairs)
    logger.debug("Parsed cookies for request header: %s", ", ".join(cookie_names(cookie_header)))
    return cookie_header


def cookie_names(cookie_header: str) -> list[str]:
    """Names of the cookies in a Cookie header (values are secrets, never log them)."""

    return [p.split("=", 1)[0] for p in cookie_header.split("; ") if "=" in p]


def set_cookie_material(response: Any) -> str | list[str] | None:
    """Extract raw Set-Cookie material from an HTTP response.

    Prefers the individual header lines kept by urllib3; falls back to the
    merged header value, whose name may vary in case.
    """

    raw_headers = getattr(getattr(response, "raw", None), "headers", None)
    getlist = getattr(raw_headers, "getlist", None)
    if callable(getlist):
        lines = getlist("Set-Cookie")
        if lines:
            return list(lines)

    headers = getattr(response, "headers", None) or {}
    return headers.get("Set-Cookie") or headers.get("set-cookie")
