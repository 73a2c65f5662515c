"""
Registrar login.

The login form embeds a numeric BUILDKEY that must be posted back together
with the credentials.  The validate endpoint gives no machine-readable
verdict: a login counts as successful when it leaves us holding a session
cookie and the answer does not print one of the portal's rejection phrases.
"""

import re

import requests

from ..config import LOGIN_RETRIES, REG_BASE_URL, REG_LOGIN_PAGE, REG_VALIDATE, REQUEST_TIMEOUT
from ..cookies import cookies_from_response, format_cookies
from ..errors import BackendResponseError, LoginError, find_rejection_phrase
from ..logging_setup import log
from ..network.client import decode_body, random_headers
from ..network.retry import retry_on_timeout

BUILDKEY_RE = re.compile(r"NAME=BUILDKEY\s+value=(\d+)", re.IGNORECASE)


def extract_build_key(html: str) -> str | None:
    m = BUILDKEY_RE.search(html)
    return m.group(1) if m else None


def get_build_key_and_cookies(
    session: requests.Session,
    base: str = REG_BASE_URL,
    timeout: float = REQUEST_TIMEOUT,
) -> tuple[str | None, list[str] | None]:
    """
    GET the login form; return its BUILDKEY and the bootstrap cookies.

    Best effort: a failed fetch yields ``(None, None)`` and the login is
    attempted without them.
    """
    try:
        resp = session.get(
            base + REG_LOGIN_PAGE,
            headers=random_headers(),
            timeout=timeout,
            allow_redirects=False,
        )
    except requests.RequestException as exc:
        log.warning("Registrar login page request failed (continuing without BUILDKEY): %s", exc)
        return None, None
    if resp.status_code >= 400:
        log.warning("Registrar login page answered %s (continuing without BUILDKEY)",
                    resp.status_code)
        return None, None
    build_key = extract_build_key(decode_body(resp))
    if build_key is None:
        log.warning("No BUILDKEY found on the registrar login page")
    return build_key, cookies_from_response(resp)


def login(
    session: requests.Session,
    username: str,
    password: str,
    build_key: str | None = None,
    base: str = REG_BASE_URL,
    retries: int = LOGIN_RETRIES,
    timeout: float = REQUEST_TIMEOUT,
) -> list[str]:
    """
    Log *username* into the registrar and return the session cookies.

    An explicit *build_key* overrides the one scraped from the login form.
    """
    fetched_key, bootstrap = get_build_key_and_cookies(session, base, timeout)
    build_key = build_key or fetched_key

    form = {"f_uid": username, "f_pwd": password}
    if build_key:
        form["BUILDKEY"] = build_key

    headers = random_headers(referer=base + REG_LOGIN_PAGE)
    if bootstrap:
        headers["Cookie"] = format_cookies(bootstrap)

    resp = retry_on_timeout(
        lambda: session.post(base + REG_VALIDATE, data=form, headers=headers,
                             timeout=timeout, allow_redirects=False),
        retries=retries,
        what="Registrar validate",
    )
    if resp.status_code >= 400:
        raise BackendResponseError(
            f"Unexpected response status from registrar validate: {resp.status_code}"
        )

    phrase = find_rejection_phrase(decode_body(resp))
    if phrase:
        raise LoginError(f"Login failed: {phrase}")

    cookies = cookies_from_response(resp) or bootstrap
    if not cookies:
        raise BackendResponseError("Failed to obtain session cookies from login")
    log.info("Registrar login successful for %s (%d cookie(s))", username, len(cookies))
    return cookies
