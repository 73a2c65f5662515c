"""
Tests for the portal facades – reads, writes and the one-click flows – against
a scripted stand-in for the portal's HTTP answers.
"""

import unittest
from unittest.mock import MagicMock

import requests
from urllib3 import HTTPHeaderDict

from cmru_api.api import BusApi, RegistrarApi
from cmru_api.errors import (
    ClassifiedError,
    ErrorCategory,
    PartialSuccessError,
    ValidationError,
)
from cmru_api.executor import AuthExecutor
from cmru_api.session import SessionKind, SessionStore

BUS = "https://bus.example"
REG = "https://reg.example"


def _make_response(text="", status_code=200, location=None):
    resp = MagicMock(spec=requests.Response)
    resp.status_code = status_code
    resp.content = text.encode("cp874")
    headers = HTTPHeaderDict({"Content-Type": "text/html"})
    if location is not None:
        headers["Location"] = location
    resp.raw = MagicMock()
    resp.raw.headers = headers
    resp.headers = requests.structures.CaseInsensitiveDict(dict(headers.items()))
    return resp


class FakePortal:
    """``requests.Session.get`` replacement answering by path."""

    def __init__(self, base):
        self.base = base
        self.routes = {}
        self.calls = []

    def on(self, path, *responses):
        self.routes[path] = list(responses)

    def get(self, url, params=None, headers=None, **kwargs):
        path = url[len(self.base):]
        self.calls.append((path, params, headers.get("Cookie") if headers else None))
        answers = self.routes.get(path)
        if not answers:
            return _make_response("not found", status_code=404)
        return answers.pop(0) if len(answers) > 1 else answers[0]

    def paths(self):
        return [path for path, _, _ in self.calls]


def _reservation_row(row_id, destination, departure, confirm=None, unconfirm=None, delete=None):
    links = []
    if confirm:
        links.append(f'<a class="badge badge-success" onclick="confirmReserv(\'{confirm}\')">ยืนยัน</a>')
    if unconfirm:
        links.append('<span class="badge badge-success"><i class="fa fa-check"></i> ยืนยันแล้ว</span>')
        links.append(f'<a class="badge badge-warning" onclick="unconfirmReserv(\'{unconfirm}\')">ยกเลิก</a>')
    if delete:
        links.append(f'<a class="badge badge-danger" onclick="return confirm(\'{delete}\')">ลบ</a>')
    return (
        f"<tr><td>{row_id}</td><td>รอถึงเวลา</td><td><span>{destination}</span></td>"
        f"<td>{departure}</td><td>{' '.join(links)}</td><td></td></tr>"
    )


def _schedule_page(*rows):
    return (
        "<html><body><div id='alert-Top'><h4>นาย ทดสอบ</h4></div>"
        "<h3>รายการจอง</h3>"
        f"<table class='table'><tbody>{''.join(rows)}</tbody></table>"
        "</body></html>"
    )


class BusApiTestCase(unittest.TestCase):
    KEY = "bus:6512"

    def setUp(self):
        self.portal = FakePortal(BUS)
        http = MagicMock(spec=requests.Session)
        http.get.side_effect = self.portal.get
        self.protocol = MagicMock(return_value=["SESS=relogin"])
        self.store = SessionStore()
        self.executor = AuthExecutor(self.store, {SessionKind.BUS: self.protocol})
        self.api = BusApi(self.executor, http, BUS, timeout=5)
        self.store.get_or_create(self.KEY, self.executor.config_for(self.KEY))
        self.store.set_session(self.KEY, "6512", "pw", ["SESS=abc; Path=/"])


class TestBusReads(BusApiTestCase):
    def test_schedule_sends_session_cookie(self):
        self.portal.on("/users/schedule/showall", _make_response(_schedule_page(
            _reservation_row(1, "แม่ริม", "จ., 10 ก.พ. 68, 07.30", confirm="7:||:1"),
        )))
        schedule = self.api.get_schedule(self.KEY)
        self.assertEqual(schedule.user_name, "นาย ทดสอบ")
        self.assertEqual(len(schedule.reservations), 1)
        self.assertEqual(self.portal.calls[0][2], "SESS=abc")

    def test_schedule_redirect_means_expired(self):
        self.portal.on("/users/schedule/showall", _make_response(status_code=302, location="/"))
        with self.assertRaises(ClassifiedError) as ctx:
            self.api.get_schedule(self.KEY)
        self.assertEqual(ctx.exception.category, ErrorCategory.SESSION)
        self.assertFalse(self.store.is_valid(self.KEY))
        self.protocol.assert_not_called()

    def test_next_read_after_expiry_logs_in_again(self):
        self.portal.on(
            "/users/schedule/showall",
            _make_response(status_code=302, location="/"),
            _make_response(_schedule_page()),
        )
        with self.assertRaises(ClassifiedError):
            self.api.get_schedule(self.KEY)
        self.api.get_schedule(self.KEY)
        self.protocol.assert_called_once_with("6512", "pw")
        self.assertEqual(self.portal.calls[-1][2], "SESS=relogin")

    def test_available_buses_with_month(self):
        self.portal.on("/schedule/showevent", _make_response(
            "<title>ระบบจองการใช้บริการรถรับ-ส่ง</title><select id='sMonth'>"
            "<option value='2025-03' selected>มี.ค.</option></select>"
        ))
        data = self.api.get_available_buses(self.KEY, "2025-03")
        self.assertEqual(data.current_month, "2025-03")
        self.assertEqual(self.portal.calls[0][1], {"month": "2025-03"})

    def test_server_error_is_classified(self):
        self.portal.on("/users/schedule/showall", _make_response("boom", status_code=500))
        with self.assertRaises(ClassifiedError) as ctx:
            self.api.get_schedule(self.KEY)
        self.assertEqual((ctx.exception.status, ctx.exception.category), (502, ErrorCategory.SERVER))

    def test_validate_session(self):
        self.portal.on("/users/schedule/showall", _make_response(_schedule_page()))
        self.assertTrue(self.api.validate_session(self.KEY))

    def test_validate_session_expired(self):
        self.portal.on("/users/schedule/showall", _make_response(status_code=302, location="/"))
        self.assertFalse(self.api.validate_session(self.KEY))
        self.protocol.assert_not_called()


class TestBusWrites(BusApiTestCase):
    def test_confirm(self):
        self.portal.on("/users/schedule/confirmreserv", _make_response("1"))
        self.assertEqual(self.api.confirm_reservation(self.KEY, "7:||:1"), "1")
        self.assertEqual(self.portal.calls[0][1], {"data": "7:||:1"})

    def test_confirm_requires_data(self):
        with self.assertRaises(ValidationError):
            self.api.confirm_reservation(self.KEY, "")

    def test_book_without_one_click(self):
        self.portal.on("/schedule/saveschereserv", _make_response("4321\n"))
        result = self.api.book_bus(self.KEY, 901, "2025-02-13", 1)
        self.assertEqual((result.booking_id, result.confirmed), ("4321", None))
        self.assertEqual(self.portal.calls[0][1], {"data": "901:||:2025-02-13:||:1"})
        self.assertEqual(self.portal.paths(), ["/schedule/saveschereserv"])

    def test_book_validation(self):
        with self.assertRaises(ValidationError):
            self.api.book_bus(self.KEY, 901, "2025-02-13", 3)
        with self.assertRaises(ValidationError):
            self.api.book_bus(self.KEY, 0, "2025-02-13", 1)
        self.assertEqual(self.portal.calls, [])

    def test_write_is_not_repeated_on_expiry(self):
        self.portal.on("/schedule/saveschereserv", _make_response(status_code=302, location="/"))
        with self.assertRaises(ClassifiedError):
            self.api.book_bus(self.KEY, 901, "2025-02-13", 1)
        self.assertEqual(self.portal.paths(), ["/schedule/saveschereserv"])
        self.protocol.assert_not_called()


class TestOneClick(BusApiTestCase):
    def setUp(self):
        super().setUp()
        self.assertTrue(self.api.set_one_click(self.KEY, True))

    def test_book_then_confirm(self):
        self.portal.on("/schedule/saveschereserv", _make_response("4321"))
        self.portal.on("/users/schedule/showall", _make_response(_schedule_page(
            _reservation_row(1, "เวียงบัว", "พฤ., 13 ก.พ. 68, 16.00", confirm="9:||:2"),
            _reservation_row(2, "แม่ริม", "พฤ., 13 ก.พ. 68, 07.30", confirm="8:||:1"),
        )))
        self.portal.on("/users/schedule/confirmreserv", _make_response("1"))

        result = self.api.book_bus(self.KEY, 901, "13/02/2025", 1)
        self.assertEqual((result.booking_id, result.confirmed), ("4321", True))
        self.assertEqual(self.portal.calls[-1][:2], ("/users/schedule/confirmreserv", {"data": "8:||:1"}))

    def test_confirm_failure_is_partial_success(self):
        self.portal.on("/schedule/saveschereserv", _make_response("4321"))
        self.portal.on("/users/schedule/showall", _make_response(_schedule_page(
            _reservation_row(2, "แม่ริม", "พฤ., 13 ก.พ. 68, 07.30", confirm="8:||:1"),
        )))
        self.portal.on("/users/schedule/confirmreserv", _make_response("err", status_code=500))

        with self.assertRaises(PartialSuccessError) as ctx:
            self.api.book_bus(self.KEY, 901, "2025-02-13", 1)
        err = ctx.exception
        self.assertEqual(err.status, 207)
        self.assertEqual(err.primary_result["booking_id"], "4321")
        self.assertEqual(err.secondary_error.category, ErrorCategory.SERVER)
        self.assertEqual(err.to_dict()["errorType"], "partial")

    def test_reservation_not_found_is_partial_success(self):
        self.portal.on("/schedule/saveschereserv", _make_response("4321"))
        self.portal.on("/users/schedule/showall", _make_response(_schedule_page()))
        with self.assertRaises(PartialSuccessError):
            self.api.book_bus(self.KEY, 901, "2025-02-13", 1)

    def test_cancel_then_delete(self):
        self.portal.on("/users/schedule/unconfirmreserv", _make_response("1"))
        self.portal.on("/users/schedule/showall", _make_response(_schedule_page(
            _reservation_row(3, "แม่ริม", "ศ., 14 ก.พ. 68, 07.30",
                             unconfirm="5:||:1", delete="/users/schedule/delt/5"),
        )))
        self.portal.on("/users/schedule/delt/5", _make_response(status_code=302, location="/users/schedule/showall"))

        self.assertEqual(self.api.cancel_reservation(self.KEY, "5:||:1"), "1")
        self.assertEqual(
            self.portal.paths(),
            ["/users/schedule/unconfirmreserv", "/users/schedule/showall", "/users/schedule/delt/5"],
        )

    def test_one_click_off_skips_secondary(self):
        self.api.set_one_click(self.KEY, False)
        self.portal.on("/users/schedule/unconfirmreserv", _make_response("1"))
        self.api.cancel_reservation(self.KEY, "5:||:1")
        self.assertEqual(self.portal.paths(), ["/users/schedule/unconfirmreserv"])


LOGIN_FORM = "<form><input name=f_pwd><INPUT TYPE=HIDDEN NAME=BUILDKEY value=1></form>"


class TestRegistrarApi(unittest.TestCase):
    KEY = "reg:6512"

    def setUp(self):
        self.portal = FakePortal(REG)
        http = MagicMock(spec=requests.Session)
        http.get.side_effect = self.portal.get
        self.protocol = MagicMock(return_value=["ASPSESSIONID=x"])
        self.store = SessionStore()
        self.executor = AuthExecutor(self.store, {SessionKind.REGISTRAR: self.protocol})
        self.api = RegistrarApi(self.executor, http, REG, timeout=5)

    def test_login_then_student_info(self):
        key, session = self.api.login("6512", "pw")
        self.assertEqual(key, self.KEY)
        self.assertEqual(session.kind, SessionKind.REGISTRAR)
        self.portal.on("/registrar/student.asp", _make_response(
            "<table class='username'><tr><td>x</td><td>65123456 : นายทดสอบ</td></tr></table>"
        ))
        self.assertEqual(self.api.get_student_info(key).student_id, "65123456")

    def test_login_form_means_expired_and_no_relogin(self):
        self.api.login("6512", "pw")
        self.portal.on("/registrar/time_table.asp", _make_response(LOGIN_FORM))
        with self.assertRaises(ClassifiedError) as ctx:
            self.api.get_timetable(self.KEY)
        self.assertEqual(ctx.exception.category, ErrorCategory.SESSION)

        with self.assertRaises(ClassifiedError) as ctx:
            self.api.get_timetable(self.KEY)
        self.assertEqual(ctx.exception.category, ErrorCategory.SESSION)
        self.protocol.assert_called_once()

    def test_logout_clears(self):
        self.api.login("6512", "pw")
        self.api.logout(self.KEY)
        self.assertIsNone(self.store.get_session(self.KEY))


if __name__ == "__main__":
    unittest.main()
