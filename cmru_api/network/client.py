"""
HTTP client configuration for portal communication.

Provides session setup with connection retries, browser header rotation and
decoding of the portals' legacy Thai-encoded bodies.
"""

import http.cookiejar
import random

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..config import CONNECT_RETRIES, PORTAL_ENCODING

USER_AGENTS = [
    # Chrome (Windows)
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/125.0.0.0 Safari/537.36",
    # Chrome (Android)
    "Mozilla/5.0 (Linux; Android 14; Pixel 8) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Mobile Safari/537.36",
    "Mozilla/5.0 (Linux; Android 13; SM-A546E) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/129.0.0.0 Mobile Safari/537.36",
    # Firefox (Windows)
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:133.0) Gecko/20100101 Firefox/133.0",
    # Firefox (Android)
    "Mozilla/5.0 (Android 14; Mobile; rv:133.0) Gecko/133.0 Firefox/133.0",
    # Edge (Windows)
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36 Edg/131.0.0.0",
]


def build_session(verify_ssl: bool = True) -> requests.Session:
    """
    Return a requests.Session shared by every session key of one backend.

    The cookie jar refuses to store anything: each call carries the cookies
    of its own session key in an explicit ``Cookie`` header, so two users
    served by the same process never see each other's cookies.

    urllib3 only retries connection establishment.  A request that reached
    the portal is never replayed here (booking is a GET).
    """
    session = requests.Session()
    retry = Retry(
        total=CONNECT_RETRIES,
        connect=CONNECT_RETRIES,
        read=0,
        status=0,
        other=0,
        backoff_factor=0.5,
    )
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    session.verify = verify_ssl
    session.cookies.set_policy(http.cookiejar.DefaultCookiePolicy(allowed_domains=[]))
    session.headers.update({
        "User-Agent": USER_AGENTS[0],
        "Accept-Language": "th-TH,th;q=0.9,en-US;q=0.8,en;q=0.7",
        "Connection": "keep-alive",
    })
    return session


def random_headers(referer: str = "", ajax: bool = False) -> dict[str, str]:
    """Return a fresh set of browser headers for one request."""
    headers: dict[str, str] = {
        "User-Agent": random.choice(USER_AGENTS),
        "Accept": (
            "text/html,application/xhtml+xml,application/xml;q=0.9,"
            "image/avif,image/webp,*/*;q=0.8"
        ),
        "Accept-Language": random.choice([
            "th-TH,th;q=0.9,en-US;q=0.8,en;q=0.7",
            "th,en-US;q=0.9,en;q=0.8",
            "en-US,en;q=0.9,th;q=0.8",
        ]),
        "Cache-Control": random.choice(["no-cache", "max-age=0"]),
        "Upgrade-Insecure-Requests": "1",
    }
    if referer:
        headers["Referer"] = referer
    if ajax:
        headers["X-Requested-With"] = "XMLHttpRequest"
    return headers


def decode_body(resp: requests.Response, encoding: str = PORTAL_ENCODING) -> str:
    """
    Decode the raw bytes of *resp* with the portal's codec.

    ``resp.text`` would guess from headers the portals get wrong, so the
    bytes are decoded explicitly before any pattern matching.
    """
    content = resp.content or b""
    return content.decode(encoding, errors="replace")
