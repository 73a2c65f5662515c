"""
Cookie header helpers.

The portals hand out classic ``Set-Cookie`` sessions and we replay them by
hand in a ``Cookie`` request header, one set per session key.  This module is
the only place that looks at how a response carries its ``Set-Cookie``
fields; everything else works with plain ``list[str]`` of raw cookies.
"""

from __future__ import annotations

import re
from typing import Mapping, Sequence, Union

import requests

RawCookies = Union[str, Sequence[str]]


def _as_list(cookies: RawCookies | None) -> list[str]:
    if not cookies:
        return []
    if isinstance(cookies, str):
        return [cookies]
    return list(cookies)


def _name_value(raw: str) -> str:
    """``"SESS=abc; Path=/; HttpOnly"`` → ``"SESS=abc"``."""
    return raw.split(";", 1)[0].strip()


def format_cookies(cookies: RawCookies) -> str:
    """Reduce one or more raw ``Set-Cookie`` values to a ``Cookie`` header."""
    return "; ".join(pair for pair in map(_name_value, _as_list(cookies)) if pair)


def parse_set_cookie(
    headers: Mapping[str, object] | None,
    raw_headers: Sequence[str] | None = None,
) -> list[str] | None:
    """
    Pull raw ``Set-Cookie`` values out of response headers.

    Looks at, in order: a ``set-cookie`` field, a ``Set-Cookie`` field
    (either may be a string or a list), then a flattened
    ``[name, value, name, value, …]`` raw header list.

    Returns ``None`` when there are no cookies at all.
    """
    found: list[str] = []
    headers = headers or {}

    for field in ("set-cookie", "Set-Cookie"):
        value = headers.get(field)
        if value:
            found = [value] if isinstance(value, str) else [v for v in value if v]
            break
    else:
        if raw_headers:
            for i in range(0, len(raw_headers) - 1, 2):
                name, value = raw_headers[i], raw_headers[i + 1]
                if name and name.lower() == "set-cookie" and value:
                    found.append(value)

    return found or None


def cookies_from_response(resp: requests.Response) -> list[str] | None:
    """
    ``parse_set_cookie`` for a ``requests`` response.

    ``resp.headers`` folds repeated ``Set-Cookie`` fields into one
    comma-joined string, which breaks on ``Expires=Tue, 01 …``.  The
    underlying urllib3 header dict still has them apart, so it is preferred
    when present.
    """
    raw = getattr(resp, "raw", None)
    raw_headers = getattr(raw, "headers", None)
    if raw_headers is not None and hasattr(raw_headers, "items"):
        flat: list[str] = []
        for name, value in raw_headers.items():
            flat.extend((name, value))
        cookies = parse_set_cookie(None, flat)
        if cookies:
            return cookies
    return parse_set_cookie(resp.headers)


def merge_cookie_list(*cookie_sets: RawCookies | None) -> list[str]:
    """
    Merge several cookie sets into one list of ``name=value`` pairs.

    Cookies are keyed by name; a later set overrides an earlier one but the
    cookie keeps the position where its name first appeared.
    """
    merged: dict[str, str] = {}
    for cookies in cookie_sets:
        for raw in _as_list(cookies):
            pair = _name_value(raw)
            if not pair:
                continue
            name = pair.split("=", 1)[0].strip()
            if name:
                merged[name] = pair
    return list(merged.values())


def merge_cookies(*cookie_sets: RawCookies | None) -> str:
    """:func:`merge_cookie_list` joined into a ``Cookie`` header."""
    return "; ".join(merge_cookie_list(*cookie_sets))


def get_cookie_value(cookies: RawCookies, name: str) -> str | None:
    joined = "; ".join(_as_list(cookies))
    m = re.search(r"(?:^|;\s*)" + re.escape(name) + r"=([^;]*)", joined)
    return m.group(1) if m else None


def has_cookie(cookies: RawCookies, name: str) -> bool:
    return get_cookie_value(cookies, name) is not None


def parse_cookies(cookies: RawCookies) -> dict[str, str]:
    """``"a=1; b=2"`` (or a list of raw cookies) → ``{"a": "1", "b": "2"}``."""
    result: dict[str, str] = {}
    for part in "; ".join(_as_list(cookies)).split(";"):
        name, sep, value = part.strip().partition("=")
        if name and sep and value:
            result[name.strip()] = value.strip()
    return result


def is_valid_cookie_string(cookies: object) -> bool:
    return isinstance(cookies, str) and re.search(r"[^=\s]+=.+", cookies) is not None

