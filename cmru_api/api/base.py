"""Common plumbing of the two portal facades."""

from __future__ import annotations

import requests

from ..config import REQUEST_TIMEOUT
from ..executor import AuthExecutor, session_key
from ..network.client import decode_body, random_headers
from ..session import Credentials, Session, SessionKind


class PortalApi:
    """
    One portal as seen by many users.

    Every user gets their own session key (``"<kind>:<username>"``); the
    shared ``requests.Session`` only pools connections and never stores
    cookies.
    """

    kind: SessionKind

    def __init__(
        self,
        executor: AuthExecutor,
        http: requests.Session,
        base: str,
        timeout: float = REQUEST_TIMEOUT,
    ) -> None:
        self.executor = executor
        self.http = http
        self.base = base.rstrip("/")
        self.timeout = timeout

    def key_for(self, username: str) -> str:
        return session_key(self.kind, username)

    def login(self, username: str, password: str, **kwargs) -> tuple[str, Session]:
        key = self.key_for(username)
        session = self.executor.login(key, Credentials(username, password), self.kind, **kwargs)
        return key, session

    def logout(self, key: str) -> None:
        self.executor.clear_session(key)

    def _get(
        self,
        path: str,
        cookie_header: str,
        params: dict | None = None,
        referer: str = "",
        ajax: bool = False,
    ) -> tuple[requests.Response, str]:
        """GET *path* with an explicit ``Cookie`` header; never follows redirects."""
        headers = random_headers(referer=referer or self.base + "/", ajax=ajax)
        headers["Cookie"] = cookie_header
        resp = self.http.get(
            self.base + path,
            params=params,
            headers=headers,
            timeout=self.timeout,
            allow_redirects=False,
        )
        return resp, decode_body(resp)
