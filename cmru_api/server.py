"""
cmru_api.server
===============
JSON REST front end.

:class:`ApiService` wires the portal facades, the executor and the token
store together and answers ``dispatch(method, path, headers, body)`` with a
``(status, payload)`` pair.  :class:`ApiHandler` is the thin
``BaseHTTPRequestHandler`` that feeds it from a ``ThreadingHTTPServer``.

Authenticated routes expect ``Authorization: Bearer <token>``; tokens are
issued by the two login routes and map to one user on one portal.
"""

from __future__ import annotations

import dataclasses
import functools
import http.server
import json
import threading
import urllib.parse
from datetime import datetime
from typing import Any, Callable, Mapping

from . import __version__
from .api import BusApi, RegistrarApi
from .auth import bus as bus_auth
from .auth import registrar as reg_auth
from .config import BUS_BASE_URL, CLEANUP_INTERVAL, REG_BASE_URL, REQUEST_TIMEOUT
from .errors import (
    AUTH_REQUIRED_MESSAGE,
    ClassifiedError,
    ErrorCategory,
    ValidationError,
    classify,
)
from .executor import AuthExecutor, session_key
from .logging_setup import log
from .network.client import build_session
from .session import SessionKind, SessionStore
from .storage import PersistentStorage

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}

API_ENDPOINTS = {
    "bus": {
        "login": "POST /bus/login",
        "logout": "POST /bus/logout",
        "availableBuses": "GET /bus/available",
        "schedule": "GET /bus/schedule",
        "confirmReservation": "POST /bus/confirm",
        "cancelReservation": "POST /bus/cancel",
        "bookBus": "POST /bus/book",
        "oneClick": "POST /bus/oneclick",
        "validateSession": "GET /bus/validate",
    },
    "reg": {
        "login": "POST /reg/login",
        "logout": "POST /reg/logout",
        "studentInfo": "GET /reg/student",
        "timetable": "GET /reg/timetable",
    },
}


def _json_default(obj: Any) -> Any:
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return dataclasses.asdict(obj)
    if isinstance(obj, datetime):
        return obj.isoformat()
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def encode_json(payload: Any) -> bytes:
    return json.dumps(payload, default=_json_default, ensure_ascii=False).encode("utf-8")


@dataclasses.dataclass
class ApiRequest:
    body: dict[str, Any]
    query: dict[str, str]
    key: str | None = None        # session key resolved from the bearer token
    token: str | None = None
    owner: str | None = None


@dataclasses.dataclass(frozen=True)
class Route:
    handler: Callable[["ApiService", ApiRequest], Any]
    backend: SessionKind | None = None    # token required for this backend


def _require(body: Mapping[str, Any], *fields: str, message: str) -> list[Any]:
    values = [body.get(f) for f in fields]
    if any(v in (None, "") for v in values):
        raise ValidationError(message)
    return values


def _as_int(value: Any, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer") from None


class ApiService:
    """Everything a request handler needs, built once per process."""

    def __init__(
        self,
        storage: PersistentStorage | None = None,
        store: SessionStore | None = None,
        verify_ssl: bool = True,
        bus_base: str = BUS_BASE_URL,
        reg_base: str = REG_BASE_URL,
        timeout: float = REQUEST_TIMEOUT,
    ) -> None:
        self.storage = storage
        self.store = store or SessionStore()
        bus_http = build_session(verify_ssl)
        reg_http = build_session(verify_ssl)
        self.executor = AuthExecutor(
            self.store,
            {
                SessionKind.BUS: functools.partial(
                    bus_auth.login, bus_http, base=bus_base, timeout=timeout),
                SessionKind.REGISTRAR: functools.partial(
                    reg_auth.login, reg_http, base=reg_base, timeout=timeout),
            },
            persistence=storage,
        )
        self.bus = BusApi(self.executor, bus_http, bus_base, timeout=timeout)
        self.reg = RegistrarApi(self.executor, reg_http, reg_base, timeout=timeout)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def dispatch(
        self, method: str, path: str, headers: Mapping[str, str], body: bytes = b""
    ) -> tuple[int, Any]:
        """Route one request; returns (HTTP status, JSON-able payload)."""
        url = urllib.parse.urlsplit(path)
        route = ROUTES.get((method, url.path.rstrip("/") or "/"))
        if route is None:
            return 404, {"error": "Endpoint not found"}
        try:
            request = ApiRequest(
                body=self._parse_body(body) if method == "POST" else {},
                query=dict(urllib.parse.parse_qsl(url.query)),
            )
            if route.backend is not None:
                self._authorize(request, headers, route.backend)
            return 200, route.handler(self, request)
        except ClassifiedError as exc:
            if exc.status >= 500:
                log.error("%s %s failed: %s", method, url.path, exc.message)
            return exc.status, exc.to_dict()
        except Exception as exc:
            error = classify(exc)
            log.exception("%s %s failed", method, url.path)
            return error.status, error.to_dict()

    @staticmethod
    def _parse_body(raw: bytes) -> dict[str, Any]:
        if not raw or not raw.strip():
            return {}
        try:
            body = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, ValueError):
            raise ValidationError("Invalid JSON body") from None
        if not isinstance(body, dict):
            raise ValidationError("JSON body must be an object")
        return body

    def _authorize(
        self, request: ApiRequest, headers: Mapping[str, str], backend: SessionKind
    ) -> None:
        scheme, _, token = (headers.get("Authorization") or "").partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            raise ClassifiedError(AUTH_REQUIRED_MESSAGE, 401, ErrorCategory.AUTH)
        token = token.strip()
        record = self.storage.get_token(token) if self.storage is not None else None
        if record is None or record.get("backend") != backend.value:
            raise ClassifiedError(
                "Invalid or expired token. Please login again.", 401, ErrorCategory.SESSION
            )
        request.token = token
        request.owner = record["owner"]
        request.key = session_key(backend, request.owner)
        # After a restart the cookies only exist on disk
        self.executor.resume_session(request.key)

    # ------------------------------------------------------------------
    # Routes
    # ------------------------------------------------------------------

    def index(self, request: ApiRequest) -> dict[str, Any]:
        info: dict[str, Any] = {
            "message": "CMRU API Server",
            "version": __version__,
            "endpoints": API_ENDPOINTS,
        }
        if self.storage is not None:
            info["storage"] = self.storage.stats()
        return info

    def _issue(self, owner: str, backend: SessionKind) -> dict[str, Any]:
        if self.storage is None:
            return {}
        token, expires_at = self.storage.issue_token(owner, backend.value)
        return {"token": token, "expiresAt": datetime.fromtimestamp(expires_at).isoformat()}

    def bus_login(self, request: ApiRequest) -> dict[str, Any]:
        username, password = _require(
            request.body, "username", "password", message="Username and password are required"
        )
        one_click = bool(request.body.get("oneClick", False))
        _, session = self.bus.login(str(username), str(password), one_click=one_click)
        return {
            "success": True,
            "message": "Logged in successfully",
            "oneClick": session.one_click,
            **self._issue(session.owner, SessionKind.BUS),
        }

    def reg_login(self, request: ApiRequest) -> dict[str, Any]:
        username, password = _require(
            request.body, "username", "password", message="Username and password are required"
        )
        _, session = self.reg.login(str(username), str(password))
        return {
            "success": True,
            "message": "Logged in successfully",
            **self._issue(session.owner, SessionKind.REGISTRAR),
        }

    def _logout(self, request: ApiRequest, api, backend: SessionKind) -> dict[str, Any]:
        api.logout(request.key)
        if self.storage is not None:
            self.storage.delete_tokens_for(request.owner, backend.value)
        return {"success": True, "message": "Logged out"}

    def bus_logout(self, request: ApiRequest) -> dict[str, Any]:
        return self._logout(request, self.bus, SessionKind.BUS)

    def reg_logout(self, request: ApiRequest) -> dict[str, Any]:
        return self._logout(request, self.reg, SessionKind.REGISTRAR)

    def bus_available(self, request: ApiRequest):
        return self.bus.get_available_buses(request.key, request.query.get("month") or None)

    def bus_schedule(self, request: ApiRequest):
        return self.bus.get_schedule(request.key)

    def bus_confirm(self, request: ApiRequest) -> dict[str, Any]:
        (data,) = _require(request.body, "data", message="Confirmation data is required")
        return {"success": True, "data": self.bus.confirm_reservation(request.key, str(data))}

    def bus_cancel(self, request: ApiRequest) -> dict[str, Any]:
        (data,) = _require(request.body, "data", message="Cancellation data is required")
        return {"success": True, "data": self.bus.cancel_reservation(request.key, str(data))}

    def bus_book(self, request: ApiRequest) -> dict[str, Any]:
        schedule_id, schedule_date, destination_type = _require(
            request.body, "scheduleId", "scheduleDate", "destinationType",
            message="scheduleId, scheduleDate, and destinationType are required",
        )
        result = self.bus.book_bus(
            request.key,
            _as_int(schedule_id, "scheduleId"),
            str(schedule_date),
            _as_int(destination_type, "destinationType"),
        )
        response: dict[str, Any] = {"success": True, "bookingId": result.booking_id}
        if result.confirmed is not None:
            response["confirmed"] = result.confirmed
        return response

    def bus_one_click(self, request: ApiRequest) -> dict[str, Any]:
        (enabled,) = _require(request.body, "enabled", message="enabled is required")
        if not isinstance(enabled, bool):
            raise ValidationError("enabled must be true or false")
        if not self.bus.set_one_click(request.key, enabled):
            raise ClassifiedError(AUTH_REQUIRED_MESSAGE, 401, ErrorCategory.AUTH)
        return {"success": True, "oneClick": enabled}

    def bus_validate(self, request: ApiRequest) -> dict[str, Any]:
        return {"valid": self.bus.validate_session(request.key)}

    def reg_student(self, request: ApiRequest):
        return self.reg.get_student_info(request.key)

    def reg_timetable(self, request: ApiRequest):
        return self.reg.get_timetable(request.key)


ROUTES: dict[tuple[str, str], Route] = {
    ("GET", "/"): Route(ApiService.index),
    ("POST", "/bus/login"): Route(ApiService.bus_login),
    ("POST", "/bus/logout"): Route(ApiService.bus_logout, SessionKind.BUS),
    ("GET", "/bus/available"): Route(ApiService.bus_available, SessionKind.BUS),
    ("GET", "/bus/schedule"): Route(ApiService.bus_schedule, SessionKind.BUS),
    ("POST", "/bus/confirm"): Route(ApiService.bus_confirm, SessionKind.BUS),
    ("POST", "/bus/cancel"): Route(ApiService.bus_cancel, SessionKind.BUS),
    ("POST", "/bus/book"): Route(ApiService.bus_book, SessionKind.BUS),
    ("POST", "/bus/oneclick"): Route(ApiService.bus_one_click, SessionKind.BUS),
    ("GET", "/bus/validate"): Route(ApiService.bus_validate, SessionKind.BUS),
    ("POST", "/reg/login"): Route(ApiService.reg_login),
    ("POST", "/reg/logout"): Route(ApiService.reg_logout, SessionKind.REGISTRAR),
    ("GET", "/reg/student"): Route(ApiService.reg_student, SessionKind.REGISTRAR),
    ("GET", "/reg/timetable"): Route(ApiService.reg_timetable, SessionKind.REGISTRAR),
}


class ApiHandler(http.server.BaseHTTPRequestHandler):
    """HTTP adapter around :meth:`ApiService.dispatch`."""

    # Shared across instances; set by run_server before serving
    service: ApiService
    server_version = f"cmru-api/{__version__}"

    def log_message(self, fmt: str, *args: Any) -> None:  # noqa: D401
        """Route default HTTP request logging through the package logger."""
        log.debug("HTTP: " + fmt, *args)

    def _send(self, status: int, payload: Any = None) -> None:
        data = encode_json(payload) if payload is not None else b""
        self.send_response(status)
        for name, value in CORS_HEADERS.items():
            self.send_header(name, value)
        if payload is not None:
            self.send_header("Content-Type", "application/json; charset=utf-8")
        self.send_header("Content-Length", str(len(data)))
        self.end_headers()
        if data:
            self.wfile.write(data)

    def _handle(self) -> None:
        log.info("%s %s", self.command, self.path)
        try:
            length = int(self.headers.get("Content-Length") or 0)
        except ValueError:
            self.close_connection = True
            self._send(400, ValidationError("Invalid Content-Length header").to_dict())
            return
        body = self.rfile.read(length) if length > 0 else b""
        status, payload = self.service.dispatch(self.command, self.path, self.headers, body)
        self._send(status, payload)

    def do_OPTIONS(self) -> None:  # noqa: N802
        self._send(200)

    def do_GET(self) -> None:  # noqa: N802
        self._handle()

    def do_POST(self) -> None:  # noqa: N802
        self._handle()


class StorageJanitor(threading.Thread):
    """Periodically drops expired tokens and stale persisted sessions."""

    def __init__(self, storage: PersistentStorage, interval: float = CLEANUP_INTERVAL) -> None:
        super().__init__(name="storage-janitor", daemon=True)
        self.storage = storage
        self.interval = interval
        self._stop_event = threading.Event()

    def run(self) -> None:
        while not self._stop_event.wait(self.interval):
            try:
                self.storage.cleanup()
            except OSError as exc:
                log.warning("Storage cleanup failed: %s", exc)

    def stop(self) -> None:
        self._stop_event.set()


def make_server(host: str, port: int, service: ApiService) -> http.server.ThreadingHTTPServer:
    handler = type("BoundApiHandler", (ApiHandler,), {"service": service})
    return http.server.ThreadingHTTPServer((host, port), handler)


def run_server(host: str, port: int, service: ApiService) -> None:
    """Serve until interrupted."""
    janitor = None
    if service.storage is not None:
        service.storage.cleanup()
        janitor = StorageJanitor(service.storage)
        janitor.start()

    server = make_server(host, port, service)
    base = f"http://{host}:{server.server_address[1]}"
    log.info("CMRU API Server running at %s", base)
    for endpoints in API_ENDPOINTS.values():
        for endpoint in endpoints.values():
            verb, path = endpoint.split(" ", 1)
            log.info("  %-6s %s%s", verb, base, path)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        log.info("Shutting down...")
    finally:
        server.server_close()
        if janitor is not None:
            janitor.stop()
