"""
cmru_api.storage
================
JSON-file persistence for bearer tokens and session cookies.

    <storage dir>/tokens.json     token → {owner, backend, expires_at}
    <storage dir>/sessions.json   session key → {owner, backend, cookies,
                                                 created_at, last_validated_at,
                                                 one_click}

Passwords are never written.  Both files are rewritten in full on every
change (write to a temporary file, then rename).
"""

from __future__ import annotations

import json
import secrets
import threading
import time
from pathlib import Path
from typing import Any, Callable

from .config import (
    SESSION_MAX_AGE,
    SESSION_STORAGE_FILE,
    STORAGE_DIR,
    TOKEN_STORAGE_FILE,
    TOKEN_TTL,
)
from .logging_setup import log

# Fields a persisted session record may carry
_SESSION_FIELDS = ("owner", "backend", "cookies", "created_at", "last_validated_at", "one_click")


class PersistentStorage:
    """Token and session records, mirrored to two JSON files."""

    def __init__(
        self,
        storage_dir: Path | str = STORAGE_DIR,
        token_ttl: float = TOKEN_TTL,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.storage_dir = Path(storage_dir)
        self.token_ttl = token_ttl
        self._clock = clock
        self._lock = threading.RLock()
        self._tokens: dict[str, dict[str, Any]] = {}
        self._sessions: dict[str, dict[str, Any]] = {}
        self.storage_dir.mkdir(parents=True, exist_ok=True)
        self._load()

    @property
    def token_file(self) -> Path:
        return self.storage_dir / TOKEN_STORAGE_FILE

    @property
    def session_file(self) -> Path:
        return self.storage_dir / SESSION_STORAGE_FILE

    # ------------------------------------------------------------------
    # Disk I/O
    # ------------------------------------------------------------------

    @staticmethod
    def _read(path: Path) -> dict[str, Any]:
        if not path.exists():
            return {}
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            log.warning("Could not read %s (%s); starting empty", path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _write(path: Path, data: dict[str, Any]) -> None:
        tmp = path.with_suffix(path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
        tmp.replace(path)

    def _load(self) -> None:
        with self._lock:
            self._tokens = self._read(self.token_file)
            self._sessions = self._read(self.session_file)
            expired = self._drop_expired_tokens()
        if expired:
            self._save_tokens()
        log.info("Loaded %d token(s) and %d session(s) from %s",
                 len(self._tokens), len(self._sessions), self.storage_dir)

    def _save_tokens(self) -> None:
        with self._lock:
            self._write(self.token_file, self._tokens)

    def _save_sessions(self) -> None:
        with self._lock:
            self._write(self.session_file, self._sessions)

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    def issue_token(self, owner: str, backend: str) -> tuple[str, float]:
        """Create a bearer token for *owner* on *backend*; returns (token, expires_at)."""
        token = secrets.token_urlsafe(32)
        expires_at = self._clock() + self.token_ttl
        with self._lock:
            self._tokens[token] = {"owner": owner, "backend": backend, "expires_at": expires_at}
            self._save_tokens()
        return token, expires_at

    def get_token(self, token: str) -> dict[str, Any] | None:
        """Return the record of *token*, or None if unknown or expired."""
        with self._lock:
            record = self._tokens.get(token)
            if record is None:
                return None
            if record.get("expires_at", 0) <= self._clock():
                del self._tokens[token]
                self._save_tokens()
                return None
            return dict(record)

    def delete_token(self, token: str) -> bool:
        with self._lock:
            if self._tokens.pop(token, None) is None:
                return False
            self._save_tokens()
            return True

    def delete_tokens_for(self, owner: str, backend: str) -> int:
        """Revoke every token of *owner* on *backend* (logout)."""
        with self._lock:
            doomed = [
                t for t, r in self._tokens.items()
                if r.get("owner") == owner and r.get("backend") == backend
            ]
            for token in doomed:
                del self._tokens[token]
            if doomed:
                self._save_tokens()
            return len(doomed)

    def _drop_expired_tokens(self) -> int:
        now = self._clock()
        expired = [t for t, r in self._tokens.items() if r.get("expires_at", 0) <= now]
        for token in expired:
            del self._tokens[token]
        return len(expired)

    def cleanup_expired_tokens(self) -> int:
        with self._lock:
            count = self._drop_expired_tokens()
            if count:
                self._save_tokens()
        if count:
            log.info("Cleaned up %d expired token(s)", count)
        return count

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def persist_session(self, key: str, record: dict[str, Any]) -> None:
        with self._lock:
            self._sessions[key] = {k: record[k] for k in _SESSION_FIELDS if k in record}
            self._save_sessions()

    def load_session(self, key: str) -> dict[str, Any] | None:
        with self._lock:
            record = self._sessions.get(key)
            return dict(record) if record is not None else None

    def delete_session(self, key: str) -> None:
        with self._lock:
            if self._sessions.pop(key, None) is not None:
                self._save_sessions()

    def cleanup_old_sessions(self, max_age: float = SESSION_MAX_AGE) -> int:
        cutoff = self._clock() - max_age
        with self._lock:
            old = [k for k, r in self._sessions.items() if r.get("last_validated_at", 0) < cutoff]
            for key in old:
                del self._sessions[key]
            if old:
                self._save_sessions()
        if old:
            log.info("Cleaned up %d old session(s)", len(old))
        return len(old)

    def cleanup(self) -> tuple[int, int]:
        return self.cleanup_expired_tokens(), self.cleanup_old_sessions()

    def stats(self) -> dict[str, Any]:
        with self._lock:
            return {
                "tokens": len(self._tokens),
                "sessions": len(self._sessions),
                "storage_dir": str(self.storage_dir),
            }
