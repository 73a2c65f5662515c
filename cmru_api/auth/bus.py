"""
Bus portal login.

    GET  /                       → bootstrap cookie (best effort)
    POST /user/userloginchk      data=<user>:||:<password>:||:<user type>
    GET  /user/userloginchk?data=…   only if the POST answer was empty or
                                     not a response code
    answer "1"                   → logged in, Set-Cookie carries the session

Only transport timeouts are retried.  A rejected password or a blocked
account fails on the first attempt.
"""

import re

import requests

from ..config import (
    BUS_BASE_URL,
    BUS_DEFAULT_USER_TYPE,
    BUS_FIELD_DELIMITER,
    BUS_LOGIN_BLOCKED_CODES,
    BUS_LOGIN_CHECK,
    BUS_LOGIN_PAGE,
    BUS_LOGIN_SUCCESS_CODES,
    LOGIN_RETRIES,
    REQUEST_TIMEOUT,
)
from ..cookies import cookies_from_response, format_cookies
from ..errors import AccountBlockedError, BackendResponseError, LoginError
from ..logging_setup import log
from ..network.client import decode_body, random_headers
from ..network.retry import retry_on_timeout
from .session import redirect_location

_CODE_RE = re.compile(r"^-?\d{1,3}$")


def encode_payload(*fields: object) -> str:
    """Join *fields* the way the portal's own scripts build ``data=``."""
    return BUS_FIELD_DELIMITER.join(str(f) for f in fields)


def login_payload(username: str, password: str, user_type: int = BUS_DEFAULT_USER_TYPE) -> str:
    return encode_payload(username, password, user_type)


def parse_response_code(body: str) -> str | None:
    """Return the bare response code in *body*, or None if it is not one."""
    body = body.strip()
    return body if _CODE_RE.match(body) else None


def fetch_bootstrap_cookies(
    session: requests.Session, base: str = BUS_BASE_URL, timeout: float = REQUEST_TIMEOUT
) -> list[str] | None:
    """GET the anonymous landing page for its cookie.  Never raises."""
    try:
        resp = session.get(
            base + BUS_LOGIN_PAGE,
            headers=random_headers(),
            timeout=timeout,
            allow_redirects=False,
        )
    except requests.RequestException as exc:
        log.debug("Bus bootstrap request failed (continuing without cookie): %s", exc)
        return None
    cookies = cookies_from_response(resp)
    log.debug("Bus bootstrap cookies: %s", [c.split("=", 1)[0] for c in cookies or []])
    return cookies


def _submit(
    session: requests.Session,
    payload: str,
    bootstrap: list[str] | None,
    base: str,
    timeout: float,
) -> tuple[requests.Response, str]:
    headers = random_headers(referer=base + "/", ajax=True)
    if bootstrap:
        headers["Cookie"] = format_cookies(bootstrap)

    url = base + BUS_LOGIN_CHECK
    resp = session.post(url, data={"data": payload}, headers=headers,
                        timeout=timeout, allow_redirects=False)
    body = decode_body(resp).strip()
    if redirect_location(resp) is None and parse_response_code(body) is None:
        # Some networks mangle POST bodies; the portal takes a query string too.
        log.debug("Login check POST answered %r; retrying as GET", body[:60])
        resp = session.get(url, params={"data": payload}, headers=headers,
                           timeout=timeout, allow_redirects=False)
        body = decode_body(resp).strip()
    return resp, body


def login(
    session: requests.Session,
    username: str,
    password: str,
    user_type: int = BUS_DEFAULT_USER_TYPE,
    base: str = BUS_BASE_URL,
    retries: int = LOGIN_RETRIES,
    timeout: float = REQUEST_TIMEOUT,
) -> list[str]:
    """
    Log *username* into the bus portal and return the session cookies.

    Raises :class:`LoginError` (or :class:`AccountBlockedError`) when the
    portal refuses, :class:`BackendResponseError` on an unusable answer and
    ``requests.Timeout`` once *retries* timed-out attempts are used up.
    """
    bootstrap = fetch_bootstrap_cookies(session, base, timeout)
    payload = login_payload(username, password, user_type)

    resp, body = retry_on_timeout(
        lambda: _submit(session, payload, bootstrap, base, timeout),
        retries=retries,
        what="Bus login check",
    )

    if redirect_location(resp) is not None:
        raise LoginError("Login failed - invalid username or password")
    if resp.status_code != 200:
        raise BackendResponseError(
            f"Unexpected response status from bus login check: {resp.status_code}"
        )

    code = parse_response_code(body)
    if code in BUS_LOGIN_BLOCKED_CODES:
        raise AccountBlockedError(f"Login failed: {BUS_LOGIN_BLOCKED_CODES[code]}")
    if code not in BUS_LOGIN_SUCCESS_CODES:
        raise LoginError(f'Login failed: bus portal answered "{body[:200]}"')

    cookies = cookies_from_response(resp) or bootstrap
    if not cookies:
        raise LoginError("Login failed - no session cookies received")
    log.info("Bus login successful for %s (%d cookie(s))", username, len(cookies))
    return cookies
