"""
Registrar facade.

Registrar sessions never log in again by themselves: once the validity
window has lapsed or the portal serves its login form, the caller has to
call :meth:`RegistrarApi.login` again.
"""

from __future__ import annotations

import requests

from ..config import REG_BASE_URL, REG_STUDENT, REG_TIMETABLE
from ..auth.session import is_registrar_session_expired
from ..errors import BackendResponseError, SessionExpiredError
from ..parser.registrar import StudentInfo, TimetableData, parse_student_info, parse_timetable
from ..session import SessionKind
from .base import PortalApi


class RegistrarApi(PortalApi):
    kind = SessionKind.REGISTRAR

    def __init__(self, executor, http: requests.Session, base: str = REG_BASE_URL, **kwargs) -> None:
        super().__init__(executor, http, base, **kwargs)

    def _page(self, path: str):
        def _fetch(cookie_header: str) -> str:
            resp, body = self._get(path, cookie_header)
            if is_registrar_session_expired(resp, body):
                raise SessionExpiredError("Session expired - received registrar login page")
            if resp.status_code != 200:
                raise BackendResponseError(f"Unexpected response status: {resp.status_code}")
            return body
        return _fetch

    def get_student_info_raw(self, key: str) -> str:
        return self.executor.call_authenticated(key, self._page(REG_STUDENT))

    def get_student_info(self, key: str) -> StudentInfo:
        return parse_student_info(self.get_student_info_raw(key))

    def get_timetable_raw(self, key: str) -> str:
        return self.executor.call_authenticated(key, self._page(REG_TIMETABLE))

    def get_timetable(self, key: str) -> TimetableData:
        return parse_timetable(self.get_timetable_raw(key))

    def validate_session(self, key: str) -> bool:
        return self.executor.validate_session(key, self._page(REG_STUDENT))
