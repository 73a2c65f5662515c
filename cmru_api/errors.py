"""
cmru_api.errors
===============
Exception types and the error-classification table.

Login protocols and API facades raise plain :class:`CmruApiError`
subclasses (or let ``requests`` exceptions through).  Everything that
leaves :class:`cmru_api.executor.AuthExecutor` has been passed through
:func:`classify`, which turns an arbitrary failure into a
:class:`ClassifiedError` carrying an HTTP status and a category.

Classification looks only at the error text.  ``CLASSIFICATION_RULES`` is
evaluated top to bottom and the first match wins, so the backend-literal
phrases must stay above the generic substring rules.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    VALIDATION = "validation"
    AUTH = "auth"
    SESSION = "session"
    NETWORK = "network"
    SERVER = "server"
    UNKNOWN = "unknown"
    PARTIAL = "partial"


class CmruApiError(Exception):
    """Base exception for all cmru_api errors."""


class LoginError(CmruApiError):
    """The backend rejected a login attempt."""


class AccountBlockedError(LoginError):
    """Credentials were accepted but the account may not use the service."""


class SessionExpiredError(CmruApiError):
    """The backend answered with its anonymous landing page."""


class NoCredentialsError(CmruApiError):
    """No stored credentials to log in with."""


class BackendResponseError(CmruApiError):
    """The backend answered with something we cannot use."""


class ClassifiedError(CmruApiError):
    """A failure with an HTTP status and a category attached."""

    def __init__(
        self,
        message: str,
        status: int = 500,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.category = ErrorCategory(category)

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, "errorType": self.category.value}

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}({self.message!r}, status={self.status}, "
            f"category={self.category.value!r})"
        )


class ValidationError(ClassifiedError):
    """Caller input is malformed."""

    def __init__(self, message: str) -> None:
        super().__init__(message, 400, ErrorCategory.VALIDATION)


class PartialSuccessError(ClassifiedError):
    """
    The primary step of a combined action succeeded but the follow-up step
    failed.  ``primary_result`` holds what the primary step returned and
    ``secondary_error`` the classified failure of the follow-up.
    """

    def __init__(
        self, message: str, primary_result: Any, secondary_error: ClassifiedError
    ) -> None:
        super().__init__(message, 207, ErrorCategory.PARTIAL)
        self.primary_result = primary_result
        self.secondary_error = secondary_error

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["primaryResult"] = self.primary_result
        data["secondaryError"] = self.secondary_error.to_dict()
        return data


# ---------------------------------------------------------------------------
# Classification table
# ---------------------------------------------------------------------------

# Literal phrases the portals print on a rejected login
WRONG_CREDENTIALS_PHRASES = (
    "กรุณากรอกรหัสผู้ใช้และรหัสผ่านให้ถูกต้อง",
    "กรุณาป้อนรหัสประจำตัวและรหัสผ่านให้ถูกต้อง",
)
TOO_MANY_ATTEMPTS_PHRASES = (
    "ใส่รหัสผ่านผิดเกินจำนวนครั้งที่กำหนด",
)


def find_rejection_phrase(text: str) -> str | None:
    """Return the first login-rejection phrase printed in *text*, if any."""
    for phrase in WRONG_CREDENTIALS_PHRASES + TOO_MANY_ATTEMPTS_PHRASES:
        if phrase in text:
            return phrase
    return None


SESSION_EXPIRED_MESSAGE = "Session expired. Please login again."
AUTH_REQUIRED_MESSAGE = "Authentication required: no credentials available. Please login first."
NETWORK_MESSAGE = "Network error or timeout. Please try again."


@dataclass(frozen=True)
class ClassificationRule:
    pattern: re.Pattern[str]
    category: ErrorCategory
    status: int
    message: str | None = None      # None keeps the original message


def _literal(phrases: tuple[str, ...]) -> re.Pattern[str]:
    return re.compile("|".join(re.escape(p) for p in phrases))


CLASSIFICATION_RULES: tuple[ClassificationRule, ...] = (
    ClassificationRule(_literal(WRONG_CREDENTIALS_PHRASES), ErrorCategory.AUTH, 401),
    ClassificationRule(_literal(TOO_MANY_ATTEMPTS_PHRASES), ErrorCategory.AUTH, 429),
    ClassificationRule(
        re.compile(r"invalid username or password|login failed", re.I),
        ErrorCategory.AUTH, 401,
    ),
    ClassificationRule(
        re.compile(r"session expired|please login again", re.I),
        ErrorCategory.SESSION, 401, SESSION_EXPIRED_MESSAGE,
    ),
    ClassificationRule(
        re.compile(r"no authentication cookies|no credentials available", re.I),
        ErrorCategory.AUTH, 401, AUTH_REQUIRED_MESSAGE,
    ),
    ClassificationRule(
        re.compile(
            r"timeout|timed out|network|econnrefused"
            r"|connection (?:refused|reset|aborted)|max retries exceeded",
            re.I,
        ),
        ErrorCategory.NETWORK, 503, NETWORK_MESSAGE,
    ),
    ClassificationRule(
        re.compile(r"unexpected response status|failed to", re.I),
        ErrorCategory.SERVER, 502,
    ),
)


def classify(error: "BaseException | str") -> ClassifiedError:
    """
    Map *error* to a :class:`ClassifiedError`.

    Already-classified errors are returned unchanged.  Strings are accepted
    so that ``classify(classify(e).message)`` lands on the same rule.
    """
    if isinstance(error, ClassifiedError):
        return error

    if isinstance(error, str):
        message = error
    else:
        message = str(error) or type(error).__name__

    for rule in CLASSIFICATION_RULES:
        if rule.pattern.search(message):
            classified = ClassifiedError(rule.message or message, rule.status, rule.category)
            break
    else:
        classified = ClassifiedError(message, 500, ErrorCategory.UNKNOWN)

    if isinstance(error, BaseException):
        classified.__cause__ = error
    return classified
