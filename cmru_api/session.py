"""
cmru_api.session
================
Per-key session state for both portals.

A :class:`SessionStore` owns every :class:`SessionHandle` of the process.
A handle holds the current :class:`Session` for one session key (if any)
and the slot for the one login that may be in flight for that key.

All mutations go through the store's lock and the lock is never held
across a network call; the executor runs login protocols outside it and
only uses the store to install / resolve the pending-login future.
"""

from __future__ import annotations

import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Sequence

from .config import BUS_SESSION_VALIDITY, REG_SESSION_VALIDITY
from .errors import ClassifiedError, ErrorCategory
from .logging_setup import log


class SessionKind(str, Enum):
    BUS = "bus"
    REGISTRAR = "reg"


def key_kind(key: str) -> SessionKind:
    """Backend of a ``"<kind>:<owner>"`` session key; BUS when unprefixed."""
    prefix = key.split(":", 1)[0]
    try:
        return SessionKind(prefix)
    except ValueError:
        return SessionKind.BUS


@dataclass(frozen=True)
class SessionConfig:
    kind: SessionKind = SessionKind.BUS
    validity: float = BUS_SESSION_VALIDITY      # seconds
    auto_relogin: bool = True

    @classmethod
    def for_bus(cls) -> "SessionConfig":
        return cls(SessionKind.BUS, BUS_SESSION_VALIDITY, True)

    @classmethod
    def for_registrar(cls) -> "SessionConfig":
        # The registrar login is slow and brittle; expiry is surfaced to the
        # caller instead of silently logging in again.
        return cls(SessionKind.REGISTRAR, REG_SESSION_VALIDITY, False)

    @classmethod
    def for_kind(cls, kind: SessionKind) -> "SessionConfig":
        return cls.for_bus() if SessionKind(kind) is SessionKind.BUS else cls.for_registrar()


@dataclass(frozen=True)
class Credentials:
    username: str
    password: str = field(repr=False)


@dataclass
class Session:
    """One authenticated identity against one portal."""

    owner: str
    secret: str | None
    cookies: list[str]
    kind: SessionKind
    created_at: float
    last_validated_at: float
    one_click: bool = False

    def __repr__(self) -> str:
        return (
            f"Session(owner={self.owner!r}, kind={self.kind.value!r}, "
            f"cookies={len(self.cookies)}, one_click={self.one_click})"
        )


@dataclass
class SessionHandle:
    """State for one session key.  Mutated only by :class:`SessionStore`."""

    key: str
    config: SessionConfig
    session: Session | None = None
    pending: Future | None = field(default=None, repr=False)

    @property
    def login_in_progress(self) -> bool:
        return self.pending is not None


class SessionStore:
    """Process-wide map of session key → :class:`SessionHandle`."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._handles: dict[str, SessionHandle] = {}
        self._lock = threading.Lock()
        self._clock = clock

    # ------------------------------------------------------------------
    # Handles
    # ------------------------------------------------------------------

    def get_or_create(self, key: str, config: SessionConfig | None = None) -> SessionHandle:
        """Return the handle for *key*, creating it with *config* if needed."""
        with self._lock:
            return self._get_or_create(key, config)

    def _get_or_create(self, key: str, config: SessionConfig | None) -> SessionHandle:
        handle = self._handles.get(key)
        if handle is None:
            config = config or SessionConfig.for_kind(key_kind(key))
            handle = SessionHandle(key=key, config=config)
            self._handles[key] = handle
            log.debug("Created session handle %s", key)
        return handle

    def get_handle(self, key: str) -> SessionHandle | None:
        with self._lock:
            return self._handles.get(key)

    def active_keys(self) -> list[str]:
        with self._lock:
            return list(self._handles)

    # ------------------------------------------------------------------
    # Session state
    # ------------------------------------------------------------------

    def set_session(
        self,
        key: str,
        owner: str,
        secret: str | None,
        cookies: Sequence[str],
        one_click: bool | None = None,
        validated_at: float | None = None,
    ) -> Session:
        """Install a fresh session for *key*, replacing any previous one."""
        with self._lock:
            return self._install(key, owner, secret, cookies, one_click, validated_at)

    def _install(
        self,
        key: str,
        owner: str,
        secret: str | None,
        cookies: Sequence[str],
        one_click: bool | None,
        validated_at: float | None = None,
    ) -> Session:
        handle = self._get_or_create(key, None)
        now = self._clock()
        previous = handle.session
        if one_click is None:
            one_click = previous.one_click if previous is not None else False
        handle.session = Session(
            owner=owner,
            secret=secret,
            cookies=list(cookies),
            kind=handle.config.kind,
            created_at=now,
            last_validated_at=now if validated_at is None else min(validated_at, now),
            one_click=one_click,
        )
        return handle.session

    def is_valid(self, key: str) -> bool:
        with self._lock:
            return self._is_valid(self._handles.get(key))

    def _is_valid(self, handle: SessionHandle | None) -> bool:
        if handle is None or handle.session is None or not handle.session.cookies:
            return False
        age = self._clock() - handle.session.last_validated_at
        return age < handle.config.validity

    def touch(self, key: str) -> None:
        """Mark the session of *key* as just validated.  Never creates one."""
        with self._lock:
            handle = self._handles.get(key)
            if handle is not None and handle.session is not None:
                handle.session.last_validated_at = max(
                    handle.session.last_validated_at, self._clock()
                )

    def invalidate(self, key: str) -> None:
        """
        Forget the cookies of *key* but keep owner and secret, so the next
        access logs in again instead of replaying a dead cookie.
        """
        with self._lock:
            handle = self._handles.get(key)
            if handle is not None and handle.session is not None:
                handle.session.cookies = []

    def clear(self, key: str) -> None:
        """
        Drop everything known about *key*.

        A login still in flight for *key* is failed for its waiters; its
        result will not be installed.
        """
        with self._lock:
            handle = self._handles.pop(key, None)
        if handle is None:
            return
        pending = handle.pending
        handle.session = None
        handle.pending = None
        if pending is not None and not pending.done():
            pending.set_exception(ClassifiedError(
                "Session was cleared while a login was in progress. Please login again.",
                401, ErrorCategory.SESSION,
            ))
        log.debug("Cleared session %s", key)

    def clear_all(self) -> None:
        for key in self.active_keys():
            self.clear(key)

    def get_session(self, key: str) -> Session | None:
        with self._lock:
            handle = self._handles.get(key)
            return handle.session if handle is not None else None

    def get_cookies(self, key: str) -> list[str] | None:
        session = self.get_session(key)
        return list(session.cookies) if session is not None and session.cookies else None

    def get_credentials(self, key: str) -> tuple[str, str] | None:
        session = self.get_session(key)
        if session is None or not session.secret:
            return None
        return session.owner, session.secret

    def set_one_click(self, key: str, enabled: bool) -> bool:
        """Toggle one-click on the current session; False if there is none."""
        with self._lock:
            handle = self._handles.get(key)
            if handle is None or handle.session is None:
                return False
            handle.session.one_click = enabled
            return True

    def seconds_since_validation(self, key: str) -> float | None:
        session = self.get_session(key)
        if session is None:
            return None
        return self._clock() - session.last_validated_at

    # ------------------------------------------------------------------
    # Pending login slot
    # ------------------------------------------------------------------

    def begin_login(
        self, key: str, config: SessionConfig | None = None, reuse_valid: bool = False
    ) -> tuple[Future, bool]:
        """
        Claim the login slot of *key*.

        Returns ``(future, True)`` to the one caller that must run the login
        and ``(existing_future, False)`` to everyone else.  With
        *reuse_valid*, a session that became valid since the caller last
        looked is handed back as an already-resolved future instead of
        starting another login.  Check and install happen under one lock
        acquisition.
        """
        with self._lock:
            handle = self._get_or_create(key, config)
            if handle.pending is not None:
                return handle.pending, False
            if reuse_valid and self._is_valid(handle):
                done: Future = Future()
                done.set_result(handle.session)
                return done, False
            handle.pending = Future()
            handle.pending.set_running_or_notify_cancel()
            return handle.pending, True

    def finish_login(
        self,
        key: str,
        future: Future,
        owner: str,
        secret: str | None,
        cookies: Sequence[str],
        one_click: bool | None = None,
    ) -> Session | None:
        """
        Install the result of the login owning *future* and release the
        slot.  Returns ``None`` if the key was cleared meanwhile, in which
        case nothing is installed.
        """
        with self._lock:
            handle = self._handles.get(key)
            if handle is None or handle.pending is not future:
                return None
            handle.pending = None
            session = self._install(key, owner, secret, cookies, one_click)
        if not future.done():
            future.set_result(session)
        return session

    def abort_login(self, key: str, future: Future, error: BaseException) -> None:
        """Fail the login owning *future*: clear *key* and reject waiters."""
        with self._lock:
            handle = self._handles.get(key)
            if handle is not None and handle.pending is future:
                handle.pending = None
                self._handles.pop(key, None)
        if not future.done():
            future.set_exception(error)
