"""
Session-expiry detection.

Neither portal answers 401 when its session cookie has lapsed.  The bus
portal redirects to its anonymous landing page (or serves it with 200), the
registrar serves its login form.  These helpers recognise both.
"""

import requests

from ..config import (
    BUS_LANDING_LOCATIONS,
    BUS_LANDING_TITLE,
    BUS_LOGIN_MARKERS,
    BUS_RESERVATION_LIST,
    REG_LANDING_LOCATIONS,
    REG_LOGIN_MARKERS,
)

_REDIRECT_CODES = frozenset({301, 302, 303, 307, 308})


def redirect_location(resp: requests.Response) -> str | None:
    """Return the ``Location`` of a redirect response, else None."""
    if resp.status_code not in _REDIRECT_CODES:
        return None
    return resp.headers.get("Location", "").strip()


def is_bus_landing_page(html: str) -> bool:
    """
    The anonymous landing page carries the login check script, or the
    portal title without the reservation list every member page has.
    """
    if any(marker in html for marker in BUS_LOGIN_MARKERS):
        return True
    return BUS_LANDING_TITLE in html and BUS_RESERVATION_LIST not in html


def is_registrar_login_page(html: str) -> bool:
    # A genuine login form has ALL markers present at the same time.
    return all(marker in html for marker in REG_LOGIN_MARKERS)


def is_bus_session_expired(
    resp: requests.Response, body: str = "", check_content: bool = True
) -> bool:
    """
    True when the bus portal sent us back to its landing page.

    *check_content* enables the body heuristic; pages that legitimately
    show the portal title to members (the calendar) pass False.
    """
    location = redirect_location(resp)
    if location is not None and location in BUS_LANDING_LOCATIONS:
        return True
    return check_content and bool(body) and is_bus_landing_page(body)


def is_registrar_session_expired(resp: requests.Response, body: str = "") -> bool:
    location = redirect_location(resp)
    if location is not None and (
        location in REG_LANDING_LOCATIONS or location.lower().endswith("login.asp")
    ):
        return True
    return bool(body) and is_registrar_login_page(body)
