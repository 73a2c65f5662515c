"""
Bus portal facade.

Reads (reservation list, booking calendar) and writes (book, confirm,
cancel) against the bus portal, each one wrapped by
:meth:`AuthExecutor.call_authenticated`.  Writes are never repeated.

With one-click enabled on the session, booking also confirms the new
reservation and cancelling also deletes it.  When only that second step
fails the caller gets :class:`PartialSuccessError` carrying the result of
the first step.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Callable

import requests

from ..config import (
    BUS_AVAILABLE,
    BUS_BASE_URL,
    BUS_BOOK,
    BUS_CONFIRM,
    BUS_SCHEDULE,
    BUS_UNCONFIRM,
)
from ..auth.bus import encode_payload
from ..auth.session import is_bus_session_expired
from ..errors import (
    BackendResponseError,
    PartialSuccessError,
    SessionExpiredError,
    ValidationError,
    classify,
)
from ..logging_setup import log
from ..parser.bus import (
    DESTINATIONS,
    AvailableBusData,
    ParsedSchedule,
    ScheduleReservation,
    parse_available_buses,
    parse_schedule,
    parse_schedule_date,
)
from ..session import SessionKind
from .base import PortalApi

SESSION_EXPIRED = "Session expired or invalid. Please login again."


@dataclass
class BookingResult:
    booking_id: str
    confirmed: bool | None = None   # None unless one-click tried to confirm


class BusApi(PortalApi):
    kind = SessionKind.BUS

    def __init__(self, executor, http: requests.Session, base: str = BUS_BASE_URL, **kwargs) -> None:
        super().__init__(executor, http, base, **kwargs)

    def login(self, username: str, password: str, one_click: bool = False):
        return super().login(username, password, one_click=one_click)

    def set_one_click(self, key: str, enabled: bool) -> bool:
        return self.executor.set_one_click(key, enabled)

    def one_click_enabled(self, key: str) -> bool:
        session = self.executor.store.get_session(key)
        return session is not None and session.one_click

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _fetch_schedule(self, cookie_header: str) -> str:
        resp, body = self._get(BUS_SCHEDULE, cookie_header)
        if is_bus_session_expired(resp, body):
            raise SessionExpiredError(SESSION_EXPIRED)
        if resp.status_code != 200:
            raise BackendResponseError(f"Unexpected response status: {resp.status_code}")
        return body

    def get_schedule_raw(self, key: str) -> str:
        return self.executor.call_authenticated(key, self._fetch_schedule)

    def get_schedule(self, key: str) -> ParsedSchedule:
        return parse_schedule(self.get_schedule_raw(key))

    def get_available_buses_raw(self, key: str, month: str | None = None) -> str:
        def _fetch(cookie_header: str) -> str:
            resp, body = self._get(
                BUS_AVAILABLE, cookie_header, params={"month": month} if month else None
            )
            # The calendar shows the portal title to members too; redirect check only.
            if is_bus_session_expired(resp, body, check_content=False):
                raise SessionExpiredError(SESSION_EXPIRED)
            if resp.status_code != 200:
                raise BackendResponseError(f"Unexpected response status: {resp.status_code}")
            return body

        return self.executor.call_authenticated(key, _fetch)

    def get_available_buses(self, key: str, month: str | None = None) -> AvailableBusData:
        return parse_available_buses(self.get_available_buses_raw(key, month))

    def validate_session(self, key: str) -> bool:
        return self.executor.validate_session(key, self._fetch_schedule)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _action(self, path: str, data: str, what: str, referer: str) -> Callable[[str], str]:
        def _call(cookie_header: str) -> str:
            resp, body = self._get(path, cookie_header, params={"data": data},
                                   referer=self.base + referer, ajax=True)
            if is_bus_session_expired(resp, body, check_content=False):
                raise SessionExpiredError(SESSION_EXPIRED)
            if resp.status_code != 200:
                raise BackendResponseError(f"Failed to {what}: {resp.status_code}")
            return body.strip()
        return _call

    def confirm_reservation(self, key: str, data: str) -> str:
        if not data:
            raise ValidationError("Confirmation data is required")
        return self.executor.call_authenticated(
            key, self._action(BUS_CONFIRM, data, "confirm reservation", BUS_SCHEDULE)
        )

    def unconfirm_reservation(self, key: str, data: str) -> str:
        if not data:
            raise ValidationError("Cancellation data is required")
        return self.executor.call_authenticated(
            key, self._action(BUS_UNCONFIRM, data, "cancel reservation", BUS_SCHEDULE)
        )

    def delete_reservation(self, key: str, reservation: ScheduleReservation) -> str:
        url = reservation.actions.delete_url
        if not reservation.actions.can_delete or not url:
            raise BackendResponseError(f"Failed to delete reservation {reservation.id}: not deletable")
        path = url[len(self.base):] if url.startswith(self.base) else url

        def _call(cookie_header: str) -> str:
            resp, body = self._get(path, cookie_header, referer=self.base + BUS_SCHEDULE)
            if is_bus_session_expired(resp, body, check_content=False):
                raise SessionExpiredError(SESSION_EXPIRED)
            if resp.status_code not in (200, 301, 302, 303):
                raise BackendResponseError(f"Failed to delete reservation: {resp.status_code}")
            return body.strip()

        return self.executor.call_authenticated(key, _call)

    def cancel_reservation(self, key: str, data: str) -> str:
        """Unconfirm a reservation; with one-click, delete it afterwards."""
        result = self.unconfirm_reservation(key, data)
        if not self.one_click_enabled(key):
            return result

        def _delete() -> None:
            reservation = self._find_reservation(
                key, lambda r: data in (r.confirmation.confirm_data, r.confirmation.unconfirm_data)
            )
            if reservation is None:
                raise BackendResponseError("Failed to find the cancelled reservation to delete")
            self.delete_reservation(key, reservation)

        self._secondary(_delete, result, "Reservation cancelled but could not be deleted")
        return result

    def book_bus(
        self, key: str, schedule_id: int, schedule_date: str, destination_type: int
    ) -> BookingResult:
        """
        Reserve a seat.  *schedule_date* is the calendar's ``schDate``
        (``YYYY-MM-DD`` or ``DD/MM/YYYY``), *destination_type* is 1 (แม่ริม)
        or 2 (เวียงบัว).
        """
        if not schedule_id or not schedule_date or not destination_type:
            raise ValidationError("scheduleId, scheduleDate, and destinationType are required")
        if destination_type not in DESTINATIONS:
            raise ValidationError("destinationType must be 1 or 2")

        data = encode_payload(schedule_id, schedule_date, destination_type)
        booking_id = self.executor.call_authenticated(
            key, self._action(BUS_BOOK, data, "book bus", BUS_AVAILABLE)
        )
        result = BookingResult(booking_id=booking_id)
        log.info("Booked schedule %s on %s for %s", schedule_id, schedule_date, key)
        if not self.one_click_enabled(key):
            return result

        destination = DESTINATIONS[destination_type]
        day = parse_schedule_date(schedule_date)

        def _confirm() -> None:
            reservation = self._find_reservation(
                key,
                lambda r: r.confirmation.can_confirm
                and r.confirmation.confirm_data is not None
                and r.destination == destination
                and (day is None or (r.date is not None and r.date.date() == day)),
            )
            if reservation is None:
                raise BackendResponseError("Failed to find the new reservation to confirm")
            self.confirm_reservation(key, reservation.confirmation.confirm_data)

        result.confirmed = False
        self._secondary(_confirm, asdict(result), "Bus booked but could not be confirmed")
        result.confirmed = True
        return result

    # ------------------------------------------------------------------
    # One-click helpers
    # ------------------------------------------------------------------

    def _find_reservation(
        self, key: str, predicate: Callable[[ScheduleReservation], bool]
    ) -> ScheduleReservation | None:
        for reservation in self.get_schedule(key).reservations:
            if predicate(reservation):
                return reservation
        return None

    def _secondary(self, step: Callable[[], None], primary_result: object, message: str) -> None:
        try:
            step()
        except Exception as exc:
            error = classify(exc)
            log.warning("%s: %s", message, error.message)
            raise PartialSuccessError(
                f"{message}: {error.message}", primary_result, error
            ) from exc
