"""
cmru_api.executor
=================
Authenticated-request executor.

Per session key the executor walks

    UNAUTHENTICATED → LOGGING_IN → AUTHENTICATED → STALE → LOGGING_IN
                                                 ↘ CLEARED

``ensure_authenticated`` is the only way out of UNAUTHENTICATED / STALE.
At most one login protocol runs per key: the first caller to claim the
store's pending-login slot runs it, everyone else blocks on the same
:class:`concurrent.futures.Future` and sees the same outcome.

Every exception leaving a public method has been through
:func:`cmru_api.errors.classify`.
"""

from __future__ import annotations

import concurrent.futures
from contextlib import contextmanager
from typing import Callable, Iterator, Mapping, Protocol, TypeVar

from .cookies import format_cookies
from .errors import (
    ClassifiedError,
    CmruApiError,
    ErrorCategory,
    NoCredentialsError,
    SessionExpiredError,
    classify,
)
from .logging_setup import log
from .session import (
    Credentials,
    Session,
    SessionConfig,
    SessionKind,
    SessionStore,
    key_kind,
)

T = TypeVar("T")

# (username, password) -> raw session cookies
LoginProtocol = Callable[[str, str], "list[str]"]

RELOGIN_DISABLED_MESSAGE = "Session expired and auto re-login is disabled. Please login again."
CLEARED_DURING_LOGIN_MESSAGE = (
    "Session was cleared while a login was in progress. Please login again."
)


class SessionPersistence(Protocol):
    """What the executor needs from a persistence collaborator."""

    def persist_session(self, key: str, record: dict) -> None: ...

    def load_session(self, key: str) -> dict | None: ...

    def delete_session(self, key: str) -> None: ...


@contextmanager
def _classified() -> Iterator[None]:
    try:
        yield
    except ClassifiedError:
        raise
    except Exception as exc:
        raise classify(exc) from exc


def session_key(kind: SessionKind | str, owner: str) -> str:
    """``"bus:6512345678"``: one key per backend and user."""
    return f"{SessionKind(kind).value}:{owner}"


class AuthExecutor:
    """
    Drives login protocols against a :class:`SessionStore`.

    *protocols* maps each backend kind to a callable that takes a username
    and password and returns fresh session cookies (or raises).  *configs*
    overrides the default :class:`SessionConfig` per kind.
    """

    def __init__(
        self,
        store: SessionStore,
        protocols: Mapping[SessionKind, LoginProtocol],
        persistence: SessionPersistence | None = None,
        configs: Mapping[SessionKind, SessionConfig] | None = None,
        wait_timeout: float | None = None,
    ) -> None:
        self.store = store
        self._protocols = dict(protocols)
        self._persistence = persistence
        self._configs = dict(configs or {})
        self._wait_timeout = wait_timeout

    session_key = staticmethod(session_key)

    def config_for(self, key: str) -> SessionConfig:
        kind = key_kind(key)
        return self._configs.get(kind) or SessionConfig.for_kind(kind)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def ensure_authenticated(self, key: str) -> Session:
        """Return a valid session for *key*, logging in again if allowed."""
        with _classified():
            return self._ensure(key)

    def call_authenticated(self, key: str, operation: Callable[[str], T]) -> T:
        """
        Run ``operation(cookie_header)`` with the session of *key*.

        A :class:`SessionExpiredError` from *operation* drops the session's
        cookies so the next call logs in afresh.  The operation itself is
        never repeated.
        """
        with _classified():
            self._ensure(key)
            cookies = self.store.get_cookies(key)
            if not cookies:
                raise CmruApiError("No authentication cookies available. Please login first.")
            try:
                result = operation(format_cookies(cookies))
            except SessionExpiredError:
                log.info("Session %s expired mid-operation; dropping its cookies", key)
                self.store.invalidate(key)
                self._forget(key)
                raise
            self.store.touch(key)
            return result

    def login(
        self,
        key: str,
        credentials: Credentials,
        kind: SessionKind | None = None,
        one_click: bool = False,
    ) -> Session:
        """
        Log in with explicit *credentials* and install the new session.

        A login already in flight for *key* is waited out first (whatever
        its outcome) and then this one runs with its own credentials.
        """
        with _classified():
            kind = SessionKind(kind) if kind is not None else key_kind(key)
            config = self._configs.get(kind) or SessionConfig.for_kind(kind)
            while True:
                future, is_owner = self.store.begin_login(key, config)
                if is_owner:
                    break
                log.debug("Login for %s already in flight; waiting for it", key)
                concurrent.futures.wait([future], timeout=self._wait_timeout)
            return self._run_login(
                key, future, kind, credentials.username, credentials.password, one_click
            )

    def clear_session(self, key: str) -> None:
        self.store.clear(key)
        self._forget(key)

    def is_session_valid(self, key: str) -> bool:
        return self.store.is_valid(key)

    def resume_session(self, key: str) -> bool:
        """
        Reinstall the persisted cookies of *key* after a restart.

        The persisted record has no password, so a resumed session can be
        used until its validity window lapses but never re-logs in by
        itself.  Returns True when a session was installed.
        """
        if self.store.get_session(key) is not None or self._persistence is None:
            return False
        record = self._persistence.load_session(key)
        if not record or not record.get("cookies"):
            return False
        self.store.get_or_create(key, self.config_for(key))
        self.store.set_session(
            key,
            record.get("owner", key.split(":", 1)[-1]),
            None,
            record["cookies"],
            one_click=bool(record.get("one_click", False)),
            validated_at=record.get("last_validated_at"),
        )
        log.info("Resumed persisted session %s", key)
        return True

    def validate_session(self, key: str, operation: Callable[[str], object]) -> bool:
        """
        Probe the portal with the current cookies of *key*, without logging in.

        Returns False when there are no cookies or the portal answers with
        its landing page; transport and backend failures are raised.
        """
        with _classified():
            cookies = self.store.get_cookies(key)
            if not cookies:
                return False
            try:
                operation(format_cookies(cookies))
            except SessionExpiredError:
                self.store.invalidate(key)
                self._forget(key)
                return False
            self.store.touch(key)
            return True

    def set_one_click(self, key: str, enabled: bool) -> bool:
        changed = self.store.set_one_click(key, enabled)
        if changed:
            self._persist(key, self.store.get_session(key))
        return changed

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _ensure(self, key: str) -> Session:
        config = self.config_for(key)
        self.store.get_or_create(key, config)
        if self.store.is_valid(key):
            session = self.store.get_session(key)
            if session is not None:
                return session

        future, is_owner = self.store.begin_login(key, config, reuse_valid=True)
        if not is_owner:
            if not future.done():
                log.debug("Waiting for in-flight login of %s", key)
            return future.result(timeout=self._wait_timeout)

        try:
            if not config.auto_relogin:
                raise ClassifiedError(RELOGIN_DISABLED_MESSAGE, 401, ErrorCategory.SESSION)
            credentials = self.store.get_credentials(key)
            if credentials is None:
                raise NoCredentialsError("No credentials available for auto re-login")
        except Exception as exc:
            raise self._abort(key, future, exc)

        log.info("Session %s is stale; logging in again", key)
        session = self.store.get_session(key)
        one_click = session.one_click if session is not None else False
        return self._run_login(key, future, config.kind, *credentials, one_click)

    def _run_login(
        self,
        key: str,
        future: concurrent.futures.Future,
        kind: SessionKind,
        username: str,
        password: str,
        one_click: bool,
    ) -> Session:
        """Run the protocol for the login owning *future*; network happens here."""
        protocol = self._protocols.get(kind)
        try:
            if protocol is None:
                raise CmruApiError(f"No login protocol registered for {kind.value!r}")
            cookies = protocol(username, password)
        except Exception as exc:
            raise self._abort(key, future, exc)

        session = self.store.finish_login(key, future, username, password, cookies, one_click)
        if session is None:
            raise ClassifiedError(CLEARED_DURING_LOGIN_MESSAGE, 401, ErrorCategory.SESSION)
        self._persist(key, session)
        return session

    def _abort(
        self, key: str, future: concurrent.futures.Future, exc: Exception
    ) -> ClassifiedError:
        error = classify(exc)
        log.warning("Login for %s failed: %s", key, error.message)
        self.store.abort_login(key, future, error)
        self._forget(key)
        return error

    # ------------------------------------------------------------------
    # Persistence hooks
    # ------------------------------------------------------------------

    def _persist(self, key: str, session: Session | None) -> None:
        if self._persistence is None or session is None:
            return
        self._persistence.persist_session(key, {
            "owner": session.owner,
            "backend": session.kind.value,
            "cookies": list(session.cookies),
            "created_at": session.created_at,
            "last_validated_at": session.last_validated_at,
            "one_click": session.one_click,
        })

    def _forget(self, key: str) -> None:
        if self._persistence is not None:
            self._persistence.delete_session(key)
